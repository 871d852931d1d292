"""
HWCTC provider client

Channel-list acquisition and program-list dialects for HWCTC-style IPTV
portals. Authentication is handled elsewhere; every request reuses the
session handed out by the injected SessionProvider.
"""
from __future__ import annotations

import logging
import re
from datetime import timedelta
from urllib.parse import quote

import httpx

from iptv_service.errors import (
    AcquisitionError,
    ConfigurationError,
    DayNotFoundError,
    EmptyResultError,
    ParseError,
)
from iptv_service.models import Channel
from iptv_service.providers.base import (
    DayAddressing,
    DayKey,
    ProviderSession,
    RawChannelRecord,
    RawProgramEntry,
    SessionProvider,
)
from iptv_service.utils.logging_helpers import sanitize_url_for_logging


logger = logging.getLogger(__name__)

CHANNEL_LIST_PATH = "/EPG/jsp/getchannellistHWCTC.jsp"
INDEXED_PROGRAM_PATH = "/EPG/jsp/defaulttrans2/en/datajsp/getTvodProgListByIndex.jsp"
DATED_PROGRAM_PATH = "/EPG/jsp/defaulttrans2/en/datajsp/getTvodProgListByDate.jsp"

STB_USER_AGENT = "webkit;Resolution(PAL,720P,1080P)"

_CHANNEL_ENTRY = re.compile(r"Authentication\.CTCSetConfig\(\s*'Channel'\s*,\s*'(.+?)'\s*\)")
_CHANNEL_FIELD = re.compile(r'(\w+)="(.*?)"')


def cookie_header(cookies: dict[str, str]) -> str:
    return "; ".join(f"{name}={value}" for name, value in cookies.items())


def parse_channel_list(page: str) -> list[RawChannelRecord]:
    """
    Extract channel records from the channel-list page.

    Each channel is a CTCSetConfig('Channel', '...') call whose payload is a
    list of Key="value" pairs. ChannelURL may hold several endpoints
    separated by '|'; TimeShiftLength is in minutes.
    """
    records: list[RawChannelRecord] = []
    for entry in _CHANNEL_ENTRY.finditer(page):
        fields = dict(_CHANNEL_FIELD.findall(entry.group(1)))
        channel_id = fields.get("ChannelID")
        name = fields.get("ChannelName")
        if not channel_id or not name:
            logger.debug("Skipping channel entry without ID or name: %s", entry.group(1)[:80])
            continue

        try:
            shift_minutes = int(fields.get("TimeShiftLength") or 0)
        except ValueError:
            logger.debug("Invalid TimeShiftLength for %s: %s", name, fields.get("TimeShiftLength"))
            shift_minutes = 0

        urls = [url.strip() for url in fields.get("ChannelURL", "").split("|") if url.strip()]
        records.append(RawChannelRecord(
            channel_id=channel_id,
            name=name,
            user_channel_id=fields.get("UserChannelID", ""),
            urls=urls,
            time_shift=fields.get("TimeShift") == "1",
            time_shift_length=timedelta(minutes=shift_minutes),
            time_shift_url=fields.get("TimeShiftURL") or None,
        ))
    return records


class HWCTCChannelClient:
    """Channel acquisition collaborator for HWCTC portals."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        sessions: SessionProvider,
        headers: dict[str, str] | None = None,
    ):
        self._http = http_client
        self._sessions = sessions
        self._headers = headers or {}

    async def fetch_all_channels(self) -> list[RawChannelRecord]:
        session = await self._sessions.get_session()
        url = f"http://{session.host}{CHANNEL_LIST_PATH}"
        data = {"UserToken": session.user_token or "", "conntype": "", "Lang": ""}

        try:
            response = await self._http.post(
                url,
                data=data,
                headers={**self._headers, "Cookie": cookie_header({"JSESSIONID": session.jsessionid})},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise AcquisitionError(
                f"Channel list request to {sanitize_url_for_logging(url)} failed: {exc}"
            ) from exc

        records = parse_channel_list(response.text)
        if not records:
            raise EmptyResultError("Provider returned no channels")

        logger.info("Fetched %s channel record(s) from %s", len(records), session.host)
        return records


class _ProgramFetcherBase:
    """Shared request/decoding logic of the JSON program-list dialects."""

    addressing: DayAddressing
    path: str
    key_param: str

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        sessions: SessionProvider,
        headers: dict[str, str] | None = None,
    ):
        self._http = http_client
        self._sessions = sessions
        self._headers = headers or {}

    def _cookies(self, session: ProviderSession, channel: Channel) -> dict[str, str]:
        return {
            "JSESSIONID": session.jsessionid,
            "STARV_TIMESHFTCID": channel.channel_id,
            "STARV_TIMESHFTCNAME": quote(channel.name),
            "maidianFlag": "1",
            "navNameFocus": "3",
            "channelTip": "1",
            "jumpTime": "0",
            "lastChanNum": "1",
        }

    async def fetch_day_program(self, channel: Channel, day: DayKey) -> list[RawProgramEntry]:
        session = await self._sessions.get_session()
        url = f"http://{session.host}{self.path}"
        params = {"CHANNELID": channel.channel_id, self.key_param: str(day.value(self.addressing))}
        headers = {
            "User-Agent": STB_USER_AGENT,
            "X-Requested-With": "com.hisense.iptv",
            "Referer": f"http://{session.host}/EPG/jsp/defaulttrans2/en/chanMiniList.html",
            **self._headers,
            "Cookie": cookie_header(self._cookies(session, channel)),
        }

        try:
            response = await self._http.get(url, params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise AcquisitionError(f"Program request for {channel.name} failed: {exc}") from exc

        if response.status_code == httpx.codes.NOT_FOUND:
            raise DayNotFoundError(f"No listing for {channel.name} on {day.date}")
        if response.status_code != httpx.codes.OK:
            raise AcquisitionError(
                f"Unexpected status {response.status_code} for {channel.name} on {day.date}"
            )

        return self._parse(response, channel, day)

    def _parse(self, response: httpx.Response, channel: Channel, day: DayKey) -> list[RawProgramEntry]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseError(f"Invalid JSON listing for {channel.name} on {day.date}") from exc

        if not isinstance(payload, dict):
            raise ParseError(f"Unexpected listing payload for {channel.name} on {day.date}")

        items = payload.get("data")
        if not items:
            raise DayNotFoundError(f"Empty listing for {channel.name} on {day.date}")
        if not isinstance(items, list):
            raise ParseError(f"Unexpected listing data for {channel.name} on {day.date}")

        entries: list[RawProgramEntry] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            entries.append(RawProgramEntry(
                name=str(item.get("progName") or ""),
                start_time=str(item.get("startTime") or ""),
                end_time=str(item.get("endTime") or ""),
            ))
        return entries


class IndexedProgramFetcher(_ProgramFetcherBase):
    """Dialect addressing days by signed offset from today (0 is today)."""

    addressing = DayAddressing.INDEX
    path = INDEXED_PROGRAM_PATH
    key_param = "index"


class DatedProgramFetcher(_ProgramFetcherBase):
    """Dialect addressing days by literal YYYYMMDD date."""

    addressing = DayAddressing.DATE
    path = DATED_PROGRAM_PATH
    key_param = "date"


PROGRAM_DIALECTS: dict[str, type[_ProgramFetcherBase]] = {
    "indexed": IndexedProgramFetcher,
    "dated": DatedProgramFetcher,
}


def build_program_fetcher(
    dialect: str,
    http_client: httpx.AsyncClient,
    sessions: SessionProvider,
    headers: dict[str, str] | None = None,
) -> _ProgramFetcherBase:
    """
    Create the program-fetch collaborator for the configured dialect.

    Raises:
        ConfigurationError: If the dialect is unknown
    """
    try:
        fetcher_cls = PROGRAM_DIALECTS[dialect]
    except KeyError:
        raise ConfigurationError(
            f"Unknown EPG dialect '{dialect}', expected one of {sorted(PROGRAM_DIALECTS)}"
        ) from None
    return fetcher_cls(http_client, sessions, headers)
