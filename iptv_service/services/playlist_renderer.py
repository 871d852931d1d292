"""
Playlist Rendering Service

Turns a directory snapshot into a simple group/channel list (txt) or an
extended M3U playlist. Attribute names and catch-up labels are consumed by
playlist clients and must not change.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, IntEnum
from urllib.parse import quote

from iptv_service.errors import ConfigurationError, EmptyResultError, RenderError
from iptv_service.models import Channel, ChannelURL, DirectorySnapshot


logger = logging.getLogger(__name__)

DIYP_CATCHUP_SOURCE = "?playseek=${(b)yyyyMMddHHmmss}-${(e)yyyyMMddHHmmss}"
KODI_CATCHUP_SOURCE = "?playseek={utc:YmdHMS}-{utcend:YmdHMS}"
FLUSSONIC_CATCHUP_QUERY = "?start=${start}&end=${end}&dvr=${duration}"
XDOMO_CATCHUP_QUERY = "?timeshift=${start}-${end}"


class CatchUpMode(IntEnum):
    DEFAULT = 0
    APPEND = 1
    FLUSSONIC = 2
    XDOMO = 3
    CUSTOM = 4

    @property
    def label(self) -> str:
        return _CATCHUP_LABELS[self]


_CATCHUP_LABELS = {
    CatchUpMode.DEFAULT: "default",
    CatchUpMode.APPEND: "append",
    CatchUpMode.FLUSSONIC: "flussonic",
    CatchUpMode.XDOMO: "xdomo",
    CatchUpMode.CUSTOM: "custom",
}


def parse_catchup_mode(value: str | int) -> CatchUpMode:
    """
    Validate a catch-up mode value ("0".."4").

    Raises:
        ConfigurationError: If the value is not a known mode
    """
    try:
        return CatchUpMode(int(str(value).strip()))
    except ValueError:
        raise ConfigurationError(
            f"Unknown catch-up mode '{value}', expected one of 0-4"
        ) from None


class PlaylistFormat(str, Enum):
    TXT = "txt"
    M3U = "m3u"


@dataclass(frozen=True, slots=True)
class PlaylistOptions:
    proxy_base_url: str = ""
    prefer_multicast: bool = False
    catchup_mode: CatchUpMode = CatchUpMode.DEFAULT
    catchup_source: str = DIYP_CATCHUP_SOURCE
    logo_base_url: str = ""
    logo_exists: Callable[[str], bool] | None = None


@dataclass(frozen=True, slots=True)
class RenderedPlaylist:
    content: str
    rendered: int
    skipped: tuple[RenderError, ...] = ()


def select_url(urls: tuple[ChannelURL, ...], prefer_multicast: bool) -> ChannelURL:
    """
    Pick the endpoint to publish.

    With several URLs the first one matching the preference wins; when none
    matches, the last candidate examined is used.
    """
    if len(urls) == 1:
        return urls[0]
    for candidate in urls:
        if candidate.is_multicast == prefer_multicast:
            return candidate
    return urls[-1]


def resolve_url(channel: Channel, proxy_base_url: str, prefer_multicast: bool) -> str:
    """
    Resolve the playable URL of a channel.

    Multicast endpoints are rewritten to {proxy}/rtp/{host} when a proxy
    (udpxy) base URL is configured.

    Raises:
        RenderError: If the channel has no URL
    """
    if not channel.urls:
        raise RenderError(f"Channel {channel.name} ({channel.channel_id}) has no URL", channel)

    selected = select_url(channel.urls, prefer_multicast)
    if selected.is_multicast and proxy_base_url:
        return f"{proxy_base_url.rstrip('/')}/rtp/{selected.host}"
    return selected.url


def build_catchup_source(base_url: str, mode: CatchUpMode, catchup_source: str) -> str:
    if mode is CatchUpMode.APPEND:
        return base_url + catchup_source
    if mode is CatchUpMode.FLUSSONIC:
        return base_url + FLUSSONIC_CATCHUP_QUERY
    if mode is CatchUpMode.XDOMO:
        return base_url + XDOMO_CATCHUP_QUERY
    if mode is CatchUpMode.CUSTOM:
        return f"{base_url}?{catchup_source.lstrip('?')}"
    return base_url


def build_catchup_attributes(
    channel: Channel,
    mode: CatchUpMode,
    catchup_source: str = "",
) -> dict[str, str] | None:
    """Catch-up attributes for a channel, or None if it has no time-shift."""
    if not channel.supports_catchup:
        return None
    return {
        "catchup": mode.label,
        "catchup-source": build_catchup_source(channel.time_shift_url or "", mode, catchup_source),
        "catchup-days": str(channel.catchup_days),
    }


def _logo_url(channel: Channel, options: PlaylistOptions) -> str | None:
    if not options.logo_base_url or not channel.logo_identity:
        return None
    if options.logo_exists is None or not options.logo_exists(channel.logo_identity):
        return None
    return f"{options.logo_base_url.rstrip('/')}/{quote(channel.logo_identity + '.png')}"


def _extinf_line(channel: Channel, options: PlaylistOptions) -> str:
    attributes = {
        "tvg-id": channel.channel_id,
        "tvg-chno": channel.user_channel_id,
    }
    logo_url = _logo_url(channel, options)
    if logo_url:
        attributes["tvg-logo"] = logo_url
    catchup = build_catchup_attributes(channel, options.catchup_mode, options.catchup_source)
    if catchup:
        attributes.update(catchup)
    attributes["group-title"] = channel.group

    rendered = " ".join(f'{name}="{value}"' for name, value in attributes.items())
    return f"#EXTINF:-1 {rendered},{channel.name}"


def _render_m3u(snapshot: DirectorySnapshot, options: PlaylistOptions) -> tuple[list[str], int, list[RenderError]]:
    lines = ["#EXTM3U"]
    rendered = 0
    skipped: list[RenderError] = []
    for channel in snapshot:
        try:
            url = resolve_url(channel, options.proxy_base_url, options.prefer_multicast)
        except RenderError as exc:
            skipped.append(exc)
            continue
        lines.append(_extinf_line(channel, options))
        lines.append(url)
        rendered += 1
    return lines, rendered, skipped


def _render_txt(snapshot: DirectorySnapshot, options: PlaylistOptions) -> tuple[list[str], int, list[RenderError]]:
    grouped: dict[str, list[Channel]] = {}
    for channel in snapshot:
        grouped.setdefault(channel.group, []).append(channel)

    lines: list[str] = []
    rendered = 0
    skipped: list[RenderError] = []
    for group, channels in grouped.items():
        lines.append(f"{group},#genre#")
        for channel in channels:
            try:
                url = resolve_url(channel, options.proxy_base_url, options.prefer_multicast)
            except RenderError as exc:
                skipped.append(exc)
                continue
            lines.append(f"{channel.name},{url}")
            rendered += 1
    return lines, rendered, skipped


_RENDERERS = {
    PlaylistFormat.M3U: _render_m3u,
    PlaylistFormat.TXT: _render_txt,
}


def render_playlist(
    snapshot: DirectorySnapshot,
    fmt: PlaylistFormat,
    options: PlaylistOptions | None = None,
) -> RenderedPlaylist:
    """
    Render a snapshot into a playlist document.

    Channels without a usable URL are left out and reported in
    RenderedPlaylist.skipped.

    Raises:
        EmptyResultError: If no channel could be rendered
    """
    options = options or PlaylistOptions()
    lines, rendered, skipped = _RENDERERS[PlaylistFormat(fmt)](snapshot, options)

    for error in skipped:
        logger.warning("Skipping channel in %s playlist: %s", PlaylistFormat(fmt).value, error)
    if rendered == 0:
        raise EmptyResultError(f"No channels could be rendered ({len(skipped)} skipped)")

    return RenderedPlaylist(
        content="\n".join(lines) + "\n",
        rendered=rendered,
        skipped=tuple(skipped),
    )
