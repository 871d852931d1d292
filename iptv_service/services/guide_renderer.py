"""
Guide Rendering Service

Serializes aggregated program lists as an XMLTV document and answers
single-day lookups for DIYP-style JSON clients.
"""
from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta
import logging

from lxml import etree  # type: ignore

from iptv_service.models import ChannelProgramList, DateProgramList
from iptv_service.utils.timezone import format_xmltv_time

logger = logging.getLogger(__name__)

GENERATOR_NAME = "iptv-service"
GUIDE_LANG = "zh"


def truncate_history(
    program_lists: Iterable[ChannelProgramList],
    back_days: int,
    today: date,
) -> list[ChannelProgramList]:
    """
    Keep only the most recent `back_days` days of history.

    Today and future days are always kept; back_days <= 0 keeps everything.
    """
    if back_days <= 0:
        return list(program_lists)

    cutoff = today - timedelta(days=back_days)
    return [
        ChannelProgramList(
            channel_id=program_list.channel_id,
            channel_name=program_list.channel_name,
            dates=tuple(day for day in program_list.dates if day.date >= cutoff),
        )
        for program_list in program_lists
    ]


def render_guide(
    program_lists: Iterable[ChannelProgramList],
    *,
    back_days: int = 0,
    today: date | None = None,
) -> bytes:
    """
    Render program lists as an XMLTV document

    Args:
        program_lists: Aggregated guide
        back_days: Truncate emitted history to this many past days (0 = all)
        today: Reference date for truncation (defaults to the local date)

    Returns:
        UTF-8 encoded XMLTV document including the XML declaration
    """
    lists = truncate_history(program_lists, back_days, today or date.today())

    root = etree.Element("tv", {"generator-info-name": GENERATOR_NAME})
    for program_list in lists:
        channel = etree.SubElement(root, "channel", id=program_list.channel_id)
        display_name = etree.SubElement(channel, "display-name", lang=GUIDE_LANG)
        display_name.text = program_list.channel_name

    programme_count = 0
    for program_list in lists:
        for day in program_list.dates:
            for program in day.programs:
                programme = etree.SubElement(
                    root,
                    "programme",
                    start=format_xmltv_time(program.start),
                    stop=format_xmltv_time(program.end),
                    channel=program_list.channel_id,
                )
                title = etree.SubElement(programme, "title", lang=GUIDE_LANG)
                title.text = program.name
                programme_count += 1

    logger.debug("Rendered XMLTV guide: %s channels, %s programmes", len(lists), programme_count)
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True)


def find_day_programs(
    program_lists: Iterable[ChannelProgramList],
    channel_name: str,
    day: date,
) -> DateProgramList | None:
    """
    Look up one channel's listing for one day

    Channels are matched by name first, then by channel ID.
    """
    lists = list(program_lists)
    match = next((pl for pl in lists if pl.channel_name == channel_name), None)
    if match is None:
        match = next((pl for pl in lists if pl.channel_id == channel_name), None)
    if match is None:
        return None
    return next((d for d in match.dates if d.date == day), None)
