"""
EPG Aggregation Service

Fetches per-day program listings for every channel over a rolling window,
normalizes program times and stitches the days together. A missing or
broken day never aborts a channel; a broken channel never aborts the guide.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo

from iptv_service.errors import DayNotFoundError, EmptyResultError, ParseError
from iptv_service.models import (
    Channel,
    ChannelProgramList,
    DateProgramList,
    GuideSnapshot,
    Program,
)
from iptv_service.providers.base import DayKey, ProgramFetcher, RawProgramEntry
from iptv_service.services.channel_directory import ChannelDirectory
from iptv_service.utils.logging_helpers import log_refresh_summary
from iptv_service.utils.timezone import anchor_times, today_in


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FetchWindow:
    """Days to fetch relative to today: [-back_days, +preview_days]."""
    back_days: int
    preview_days: int

    def offsets(self) -> range:
        return range(-self.back_days, self.preview_days + 1)

    def day_keys(self, today: date) -> list[DayKey]:
        return [
            DayKey(date=today + timedelta(days=offset), offset=offset)
            for offset in self.offsets()
        ]


def parse_program(entry: RawProgramEntry, day: date, tz: tzinfo) -> Program:
    """
    Build a Program anchored to its listing day.

    Raises:
        ParseError: If the entry has unparseable times
    """
    start, end = anchor_times(day, entry.start_time, entry.end_time, tz)
    return Program(name=entry.name, start=start, end=end)


class EPGAggregator:
    """Builds Channel-Program-Lists from a program-fetch collaborator."""

    def __init__(
        self,
        fetcher: ProgramFetcher,
        window: FetchWindow,
        *,
        tz: tzinfo = timezone.utc,
        max_concurrency: int = 8,
        today: Callable[[], date] | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.window = window
        self._tz = tz
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))
        self._today = today or (lambda: today_in(self._tz))

    async def fetch_channel_program_list(
        self,
        channel: Channel,
        window: FetchWindow | None = None,
    ) -> ChannelProgramList:
        """
        Fetch every day of the window for one channel.

        Days are requested concurrently (bounded by the shared semaphore) and
        re-assembled in date order. Days the provider does not know are
        simply absent from the result.
        """
        day_keys = (window or self.window).day_keys(self._today())
        results = await asyncio.gather(
            *(self._fetch_day(channel, day_key) for day_key in day_keys)
        )
        dates = sorted(
            (day for day in results if day is not None),
            key=lambda day: day.date,
        )
        logger.debug(
            "Channel %s: %s/%s day(s) with listings",
            channel.name,
            len(dates),
            len(day_keys),
        )
        return ChannelProgramList(
            channel_id=channel.channel_id,
            channel_name=channel.name,
            dates=tuple(dates),
        )

    async def fetch_all(self, channels: Sequence[Channel]) -> list[ChannelProgramList]:
        """
        Aggregate listings for all channels.

        Returns:
            Program lists in channel order, leaving out channels without any listing
        """
        program_lists = await asyncio.gather(
            *(self.fetch_channel_program_list(channel) for channel in channels)
        )
        return [program_list for program_list in program_lists if program_list.dates]

    async def _fetch_day(self, channel: Channel, day_key: DayKey) -> DateProgramList | None:
        async with self._semaphore:
            try:
                entries = await self.fetcher.fetch_day_program(channel, day_key)
            except DayNotFoundError:
                return None
            except Exception as exc:
                logger.warning(
                    "EPG fetch failed for %s on %s (offset %s): %s",
                    channel.name,
                    day_key.date.isoformat(),
                    day_key.offset,
                    exc,
                )
                return None

        programs: list[Program] = []
        for entry in entries:
            try:
                programs.append(parse_program(entry, day_key.date, self._tz))
            except ParseError as exc:
                logger.debug("Dropping program '%s' of %s: %s", entry.name, channel.name, exc)

        if not programs:
            return None

        programs.sort(key=lambda program: program.start)
        return DateProgramList(date=day_key.date, programs=tuple(programs))


class GuideCache:
    """Holds the most recent aggregated guide; swapped as a whole."""

    def __init__(self, aggregator: EPGAggregator) -> None:
        self.aggregator = aggregator
        self._snapshot: GuideSnapshot | None = None

    def current(self) -> GuideSnapshot | None:
        return self._snapshot

    async def refresh(self, directory: ChannelDirectory) -> GuideSnapshot:
        """
        Aggregate listings for the directory's current channels.

        Raises:
            EmptyResultError: If there is no channel snapshot or no listing at all
        """
        channels = directory.current()
        if channels is None or not len(channels):
            raise EmptyResultError("No channel snapshot available for guide refresh")

        logger.info(
            "Guide refresh started for %s channel(s), window -%s/+%s days",
            len(channels),
            self.aggregator.window.back_days,
            self.aggregator.window.preview_days,
        )
        program_lists = await self.aggregator.fetch_all(channels.channels)
        if not program_lists:
            raise EmptyResultError("No program listings returned for any channel")

        snapshot = GuideSnapshot(
            program_lists=tuple(program_lists),
            refreshed_at=datetime.now(timezone.utc),
        )
        previous = self._snapshot
        self._snapshot = snapshot
        log_refresh_summary(
            logger, "Program guide", len(snapshot), len(previous) if previous else None
        )
        return snapshot
