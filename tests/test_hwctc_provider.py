"""Tests for the HWCTC provider dialects using httpx.MockTransport."""

import json
from datetime import date, timedelta

import httpx
import pytest

from iptv_service.errors import (
    AcquisitionError,
    ConfigurationError,
    DayNotFoundError,
    EmptyResultError,
    ParseError,
)
from iptv_service.providers.base import DayKey, ProviderSession, StaticSessionProvider
from iptv_service.providers.hwctc import (
    DatedProgramFetcher,
    HWCTCChannelClient,
    IndexedProgramFetcher,
    build_program_fetcher,
    parse_channel_list,
)

from tests.conftest import make_channel


SESSION = StaticSessionProvider(ProviderSession(host="10.0.0.1:8082", jsessionid="ABC123", user_token="tok"))

CHANNEL_PAGE = """
<script>
Authentication.CTCSetConfig('Channel','ChannelID="101",ChannelName="CCTV-1高清",UserChannelID="1",ChannelURL="igmp://239.93.0.1:5140|rtsp://10.0.0.9/PLTV/1",TimeShift="1",TimeShiftLength="10080",TimeShiftURL="rtsp://10.0.0.9/PLTV/1?tvod=1"');
Authentication.CTCSetConfig('Channel','ChannelID="102",ChannelName="购物频道",UserChannelID="99",ChannelURL="igmp://239.93.0.2:5140",TimeShift="0",TimeShiftLength="0"');
Authentication.CTCSetConfig('Channel','ChannelName="无编号"');
</script>
"""


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _listing(*items) -> dict:
    return {"data": [{"progName": n, "startTime": s, "endTime": e} for n, s, e in items]}


class TestParseChannelList:

    def test_parses_entries(self):
        records = parse_channel_list(CHANNEL_PAGE)

        assert [r.channel_id for r in records] == ["101", "102"]
        cctv = records[0]
        assert cctv.name == "CCTV-1高清"
        assert cctv.user_channel_id == "1"
        assert cctv.urls == ["igmp://239.93.0.1:5140", "rtsp://10.0.0.9/PLTV/1"]
        assert cctv.time_shift is True
        assert cctv.time_shift_length == timedelta(days=7)
        assert cctv.time_shift_url == "rtsp://10.0.0.9/PLTV/1?tvod=1"
        assert records[1].time_shift is False
        assert records[1].time_shift_url is None

    def test_page_without_entries(self):
        assert parse_channel_list("<html></html>") == []


class TestHWCTCChannelClient:

    @pytest.mark.asyncio
    async def test_fetch_all_channels(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["cookie"] = request.headers.get("Cookie")
            seen["body"] = request.content.decode()
            return httpx.Response(200, text=CHANNEL_PAGE)

        async with _client(handler) as http:
            records = await HWCTCChannelClient(http, SESSION).fetch_all_channels()

        assert len(records) == 2
        assert seen["url"] == "http://10.0.0.1:8082/EPG/jsp/getchannellistHWCTC.jsp"
        assert seen["cookie"] == "JSESSIONID=ABC123"
        assert "UserToken=tok" in seen["body"]

    @pytest.mark.asyncio
    async def test_empty_page_is_empty_result(self):
        async with _client(lambda request: httpx.Response(200, text="")) as http:
            with pytest.raises(EmptyResultError):
                await HWCTCChannelClient(http, SESSION).fetch_all_channels()

    @pytest.mark.asyncio
    async def test_http_error_is_acquisition_error(self):
        async with _client(lambda request: httpx.Response(503)) as http:
            with pytest.raises(AcquisitionError):
                await HWCTCChannelClient(http, SESSION).fetch_all_channels()


class TestProgramFetchers:

    DAY = DayKey(date=date(2025, 1, 14), offset=-1)

    @pytest.mark.asyncio
    async def test_indexed_dialect_sends_offset(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            seen["path"] = request.url.path
            seen["cookie"] = request.headers.get("Cookie")
            return httpx.Response(200, json=_listing(("新闻联播", "19:00:00", "19:30:00")))

        async with _client(handler) as http:
            entries = await IndexedProgramFetcher(http, SESSION).fetch_day_program(make_channel("101"), self.DAY)

        assert seen["params"] == {"CHANNELID": "101", "index": "-1"}
        assert seen["path"].endswith("getTvodProgListByIndex.jsp")
        assert "JSESSIONID=ABC123" in seen["cookie"]
        assert "STARV_TIMESHFTCID=101" in seen["cookie"]
        assert [(e.name, e.start_time, e.end_time) for e in entries] == [("新闻联播", "19:00:00", "19:30:00")]

    @pytest.mark.asyncio
    async def test_dated_dialect_sends_date(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=_listing(("天气预报", "19:30", "19:35")))

        async with _client(handler) as http:
            await DatedProgramFetcher(http, SESSION).fetch_day_program(make_channel("101"), self.DAY)

        assert seen["params"] == {"CHANNELID": "101", "date": "20250114"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [httpx.Response(404), httpx.Response(200, json={"data": []}), httpx.Response(200, json={})],
    )
    async def test_not_found_and_empty_are_day_not_found(self, response):
        async with _client(lambda request: response) as http:
            with pytest.raises(DayNotFoundError):
                await IndexedProgramFetcher(http, SESSION).fetch_day_program(make_channel(), self.DAY)

    @pytest.mark.asyncio
    async def test_server_error_is_acquisition_error(self):
        async with _client(lambda request: httpx.Response(500)) as http:
            with pytest.raises(AcquisitionError):
                await IndexedProgramFetcher(http, SESSION).fetch_day_program(make_channel(), self.DAY)

    @pytest.mark.asyncio
    async def test_transport_error_is_acquisition_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as http:
            with pytest.raises(AcquisitionError):
                await IndexedProgramFetcher(http, SESSION).fetch_day_program(make_channel(), self.DAY)

    @pytest.mark.asyncio
    async def test_invalid_json_is_parse_error(self):
        async with _client(lambda request: httpx.Response(200, text="<html>")) as http:
            with pytest.raises(ParseError):
                await IndexedProgramFetcher(http, SESSION).fetch_day_program(make_channel(), self.DAY)

    @pytest.mark.asyncio
    async def test_non_list_data_is_parse_error(self):
        async with _client(lambda request: httpx.Response(200, json={"data": "19:00 新闻联播"})) as http:
            with pytest.raises(ParseError):
                await IndexedProgramFetcher(http, SESSION).fetch_day_program(make_channel(), self.DAY)

    @pytest.mark.asyncio
    async def test_non_object_payload_is_parse_error(self):
        async with _client(lambda request: httpx.Response(200, text=json.dumps([1, 2]))) as http:
            with pytest.raises(ParseError):
                await DatedProgramFetcher(http, SESSION).fetch_day_program(make_channel(), self.DAY)


class TestBuildProgramFetcher:

    @pytest.mark.asyncio
    async def test_selects_dialect(self):
        async with httpx.AsyncClient() as http:
            assert isinstance(build_program_fetcher("indexed", http, SESSION), IndexedProgramFetcher)
            assert isinstance(build_program_fetcher("dated", http, SESSION), DatedProgramFetcher)

    @pytest.mark.asyncio
    async def test_unknown_dialect(self):
        async with httpx.AsyncClient() as http:
            with pytest.raises(ConfigurationError):
                build_program_fetcher("shanghai", http, SESSION)
