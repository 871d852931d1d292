"""
Error taxonomy for the IPTV service.

Transport and parse errors are recovered close to their origin (per day,
per record); configuration errors abort startup.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from iptv_service.models import Channel


class IptvError(Exception):
    """Base class for all service errors."""


class AcquisitionError(IptvError):
    """Transport or authentication failure while talking to the provider."""


class EmptyResultError(IptvError):
    """The provider (or a filter stage) produced nothing usable."""


class DayNotFoundError(IptvError):
    """The provider has no program listing for the requested day."""


class ParseError(IptvError):
    """A single upstream record could not be parsed."""


class ConfigurationError(IptvError, ValueError):
    """Invalid configuration, raised at load/validation time."""


class RenderError(IptvError):
    """A channel could not be rendered (no usable URL)."""

    def __init__(self, message: str, channel: "Channel | None" = None):
        super().__init__(message)
        self.channel = channel
