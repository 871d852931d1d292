"""
In-memory data model for channels and program guides.

Nothing here is persisted; every refresh builds new instances and swaps
them in as a whole.
"""
from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from urllib.parse import urlsplit


MULTICAST_SCHEME = "igmp"


@dataclass(frozen=True, slots=True)
class ChannelURL:
    """A single transport endpoint of a channel."""
    url: str

    @property
    def scheme(self) -> str:
        return urlsplit(self.url).scheme.lower()

    @property
    def host(self) -> str:
        return urlsplit(self.url).netloc

    @property
    def is_multicast(self) -> bool:
        return self.scheme == MULTICAST_SCHEME


@dataclass(frozen=True, slots=True)
class Channel:
    """A classified channel as served to readers."""
    channel_id: str
    user_channel_id: str
    name: str
    urls: tuple[ChannelURL, ...]
    group: str
    logo_identity: str
    time_shift: bool = False
    time_shift_window: timedelta = timedelta(0)
    time_shift_url: str | None = None

    @property
    def supports_catchup(self) -> bool:
        return (
            self.time_shift
            and self.time_shift_window > timedelta(0)
            and bool(self.time_shift_url)
        )

    @property
    def catchup_days(self) -> int:
        return int(self.time_shift_window.total_seconds() // 3600 // 24)


@dataclass(frozen=True, slots=True)
class DirectorySnapshot:
    """Immutable view of the channel directory produced by one refresh."""
    channels: tuple[Channel, ...]
    refreshed_at: datetime

    def __iter__(self) -> Iterator[Channel]:
        return iter(self.channels)

    def __len__(self) -> int:
        return len(self.channels)

    def groups(self) -> list[str]:
        """Distinct group names in first-seen order."""
        seen: dict[str, None] = {}
        for channel in self.channels:
            seen.setdefault(channel.group, None)
        return list(seen)


@dataclass(frozen=True, slots=True)
class Program:
    name: str
    start: datetime
    end: datetime


@dataclass(frozen=True, slots=True)
class DateProgramList:
    date: date
    programs: tuple[Program, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class ChannelProgramList:
    """All known listings of one channel, ordered by date."""
    channel_id: str
    channel_name: str
    dates: tuple[DateProgramList, ...] = field(default_factory=tuple)

    @property
    def program_count(self) -> int:
        return sum(len(day.programs) for day in self.dates)


@dataclass(frozen=True, slots=True)
class GuideSnapshot:
    """Immutable view of the aggregated guide produced by one refresh."""
    program_lists: tuple[ChannelProgramList, ...]
    refreshed_at: datetime

    def __iter__(self) -> Iterator[ChannelProgramList]:
        return iter(self.program_lists)

    def __len__(self) -> int:
        return len(self.program_lists)


__all__ = [
    "MULTICAST_SCHEME",
    "ChannelURL",
    "Channel",
    "DirectorySnapshot",
    "Program",
    "DateProgramList",
    "ChannelProgramList",
    "GuideSnapshot",
]
