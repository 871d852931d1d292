"""
Shared fixtures: fake provider collaborators and channel factories.
"""
import asyncio
from datetime import date, timedelta

import pytest

from iptv_service.config import DEFAULT_GROUP_RULES, DEFAULT_LOGO_RULES
from iptv_service.errors import DayNotFoundError
from iptv_service.models import Channel, ChannelURL
from iptv_service.providers.base import (
    DayAddressing,
    DayKey,
    RawChannelRecord,
    RawProgramEntry,
)
from iptv_service.services.classification import build_rule_set


TODAY = date(2025, 1, 15)


class FakeAcquirer:
    """Acquisition collaborator returning queued results (records or exceptions)."""

    def __init__(self, *results, delay: float = 0.0):
        self.results = list(results)
        self.delay = delay
        self.calls = 0

    async def fetch_all_channels(self) -> list[RawChannelRecord]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results[0] if len(self.results) == 1 else self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return list(result)


class FakeFetcher:
    """Program-fetch collaborator keyed by day offset."""

    def __init__(self, listings=None, addressing=DayAddressing.INDEX, delays=None):
        self.listings = listings or {}
        self.addressing = addressing
        self.delays = delays or {}
        self.requested: list = []
        self.active = 0
        self.max_active = 0

    async def fetch_day_program(self, channel: Channel, day: DayKey) -> list[RawProgramEntry]:
        self.requested.append((channel.channel_id, day.value(self.addressing)))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delays.get(day.offset, 0))
        finally:
            self.active -= 1

        listing = self.listings.get((channel.channel_id, day.offset), self.listings.get(day.offset))
        if listing is None:
            raise DayNotFoundError(f"no listing for offset {day.offset}")
        if isinstance(listing, BaseException):
            raise listing
        return [RawProgramEntry(name, start, end) for name, start, end in listing]


def raw_record(
    channel_id: str,
    name: str,
    urls=("igmp://239.1.1.1:1234",),
    **kwargs,
) -> RawChannelRecord:
    return RawChannelRecord(
        channel_id=channel_id,
        name=name,
        user_channel_id=kwargs.pop("user_channel_id", channel_id),
        urls=list(urls),
        **kwargs,
    )


def make_channel(
    channel_id: str = "1",
    name: str = "CCTV-1高清",
    urls=("igmp://239.1.1.1:1234",),
    group: str = "央视",
    logo_identity: str = "CCTV1",
    **kwargs,
) -> Channel:
    return Channel(
        channel_id=channel_id,
        user_channel_id=kwargs.pop("user_channel_id", channel_id),
        name=name,
        urls=tuple(ChannelURL(url) for url in urls),
        group=group,
        logo_identity=logo_identity,
        **kwargs,
    )


@pytest.fixture
def rule_set():
    return build_rule_set(DEFAULT_GROUP_RULES, DEFAULT_LOGO_RULES, "其他")


@pytest.fixture
def catchup_channel():
    return make_channel(
        time_shift=True,
        time_shift_window=timedelta(days=7),
        time_shift_url="http://h/ts",
    )


@pytest.fixture
def sample_records():
    return [
        raw_record("1", "CCTV-1高清"),
        raw_record("2", "湖南卫视高清", urls=("igmp://239.1.1.2:1234", "rtsp://10.0.0.1/hunan")),
        raw_record("3", "CCTV-1画中画"),
        raw_record("4", "购物频道"),
        raw_record("5", "CCTV-5+体育", time_shift=True, time_shift_length=timedelta(hours=72),
                   time_shift_url="rtsp://10.0.0.1/ts/5"),
    ]
