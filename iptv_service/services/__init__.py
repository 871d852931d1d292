"""
Services package for IPTV Service

This package contains the channel directory, classification, guide
aggregation, rendering and scheduling components.
"""
from iptv_service.services.channel_directory import ChannelDirectory
from iptv_service.services.classification import RuleSet, build_rule_set, classify
from iptv_service.services.epg_aggregator import EPGAggregator, FetchWindow, GuideCache
from iptv_service.services.guide_renderer import render_guide
from iptv_service.services.playlist_renderer import (
    CatchUpMode,
    PlaylistFormat,
    PlaylistOptions,
    render_playlist,
    resolve_url,
)

__all__ = [
    'ChannelDirectory',
    'RuleSet',
    'build_rule_set',
    'classify',
    'EPGAggregator',
    'FetchWindow',
    'GuideCache',
    'render_guide',
    'CatchUpMode',
    'PlaylistFormat',
    'PlaylistOptions',
    'render_playlist',
    'resolve_url',
]
