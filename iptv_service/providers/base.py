"""
Provider collaborator interfaces.

The channel directory and EPG aggregator only talk to the provider through
these protocols, so dialect implementations (and test fakes) are
interchangeable.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Protocol, runtime_checkable

from iptv_service.models import Channel


class DayAddressing(str, Enum):
    """How a program-fetch dialect identifies a day."""
    DATE = "date"
    INDEX = "index"


@dataclass(frozen=True, slots=True)
class DayKey:
    """A guide day, carrying both the calendar date and its offset from today."""
    date: date
    offset: int

    def value(self, addressing: DayAddressing) -> str | int:
        if addressing is DayAddressing.INDEX:
            return self.offset
        return self.date.strftime("%Y%m%d")


@dataclass(slots=True)
class RawChannelRecord:
    """Channel as reported by the provider, before classification."""
    channel_id: str
    name: str
    user_channel_id: str = ""
    urls: list[str] = field(default_factory=list)
    time_shift: bool = False
    time_shift_length: timedelta = timedelta(0)
    time_shift_url: str | None = None


@dataclass(slots=True)
class RawProgramEntry:
    """Program as reported by the provider; times are "HH:MM[:SS]"."""
    name: str
    start_time: str
    end_time: str


@dataclass(frozen=True, slots=True)
class ProviderSession:
    """Authenticated session handed out by the (external) auth handshake."""
    host: str
    jsessionid: str
    user_token: str | None = None


@runtime_checkable
class SessionProvider(Protocol):
    async def get_session(self) -> ProviderSession:
        ...


@runtime_checkable
class ChannelAcquirer(Protocol):
    async def fetch_all_channels(self) -> list[RawChannelRecord]:
        """
        Raises:
            EmptyResultError: The provider returned no channels
            AcquisitionError: Transport or authentication failure
        """
        ...


@runtime_checkable
class ProgramFetcher(Protocol):
    addressing: DayAddressing

    async def fetch_day_program(self, channel: Channel, day: DayKey) -> list[RawProgramEntry]:
        """
        Raises:
            DayNotFoundError: The provider has no listing for the day
            AcquisitionError: Transport failure
            ParseError: Undecodable response
        """
        ...


class StaticSessionProvider:
    """Session provider returning a pre-established session."""

    def __init__(self, session: ProviderSession):
        self._session = session

    async def get_session(self) -> ProviderSession:
        return self._session


__all__ = [
    "DayAddressing",
    "DayKey",
    "RawChannelRecord",
    "RawProgramEntry",
    "ProviderSession",
    "SessionProvider",
    "ChannelAcquirer",
    "ProgramFetcher",
    "StaticSessionProvider",
]
