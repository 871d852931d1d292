"""
Channel Directory

Owns the live channel snapshot. A refresh fetches raw records from the
acquisition collaborator, filters and classifies them, and only then swaps
the new snapshot in; readers always see either the old or the new one.
"""
from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timezone

from iptv_service.errors import AcquisitionError, EmptyResultError, IptvError
from iptv_service.models import Channel, ChannelURL, DirectorySnapshot
from iptv_service.providers.base import ChannelAcquirer, RawChannelRecord
from iptv_service.services.classification import RuleSet, classify
from iptv_service.utils.logging_helpers import log_refresh_summary


logger = logging.getLogger(__name__)


class ChannelDirectory:
    """Single-writer, multi-reader holder of the current DirectorySnapshot."""

    def __init__(
        self,
        acquirer: ChannelAcquirer,
        rule_set: RuleSet,
        exclude_rule: re.Pattern[str] | None = None,
        *,
        fetch_timeout: float | None = None,
    ) -> None:
        self._acquirer = acquirer
        self._rule_set = rule_set
        self._exclude_rule = exclude_rule
        self._fetch_timeout = fetch_timeout
        self._snapshot: DirectorySnapshot | None = None

    def current(self) -> DirectorySnapshot | None:
        """Return the live snapshot (None until the first successful refresh)."""
        return self._snapshot

    async def refresh(self) -> DirectorySnapshot:
        """
        Fetch, filter and classify channels, then swap the snapshot.

        Returns:
            The new snapshot

        Raises:
            AcquisitionError: If the provider could not be reached
            EmptyResultError: If no usable channel remains
            asyncio.TimeoutError: If the fetch timeout elapsed
        """
        records = await self._acquire()
        channels = self._build_channels(records)
        if not channels:
            raise EmptyResultError(
                f"No usable channels after filtering ({len(records)} raw record(s))"
            )

        snapshot = DirectorySnapshot(
            channels=tuple(channels),
            refreshed_at=datetime.now(timezone.utc),
        )
        previous = self._snapshot
        self._snapshot = snapshot
        log_refresh_summary(
            logger, "Channel directory", len(snapshot), len(previous) if previous else None
        )
        return snapshot

    async def refresh_with_retry(self, max_retries: int, retry_wait: float) -> bool:
        """
        Run refresh() with fixed-interval retries.

        Args:
            max_retries: Number of attempts in this cycle
            retry_wait: Seconds to sleep between attempts

        Returns:
            True if one attempt succeeded, False if the cycle gave up
        """
        attempts = max(1, max_retries)
        for attempt in range(1, attempts + 1):
            try:
                await self.refresh()
                return True
            except (IptvError, asyncio.TimeoutError) as exc:
                if attempt < attempts:
                    logger.warning(
                        "Channel refresh attempt %s/%s failed: %s. Retrying in %.1fs...",
                        attempt,
                        attempts,
                        exc,
                        retry_wait,
                    )
                    await asyncio.sleep(retry_wait)
                else:
                    logger.error(
                        "Channel refresh failed after %s attempt(s): %s. Keeping previous snapshot (%s channels)",
                        attempts,
                        exc,
                        len(self._snapshot) if self._snapshot else 0,
                    )
        return False

    async def _acquire(self) -> list[RawChannelRecord]:
        fetch = self._acquirer.fetch_all_channels()
        try:
            if self._fetch_timeout:
                return await asyncio.wait_for(fetch, timeout=self._fetch_timeout)
            return await fetch
        except (IptvError, asyncio.TimeoutError):
            raise
        except Exception as exc:
            raise AcquisitionError(f"Channel acquisition failed: {exc}") from exc

    def _build_channels(self, records: list[RawChannelRecord]) -> list[Channel]:
        channels: list[Channel] = []
        excluded = 0
        for record in records:
            if self._exclude_rule and self._exclude_rule.search(record.name):
                excluded += 1
                continue
            if not record.urls:
                logger.warning("Rejecting channel %s (%s): no URLs", record.name, record.channel_id)
                continue

            group, logo_identity = classify(record.name, self._rule_set)
            channels.append(Channel(
                channel_id=record.channel_id,
                user_channel_id=record.user_channel_id,
                name=record.name,
                urls=tuple(ChannelURL(url) for url in record.urls),
                group=group,
                logo_identity=logo_identity,
                time_shift=record.time_shift,
                time_shift_window=record.time_shift_length,
                time_shift_url=record.time_shift_url,
            ))

        if excluded:
            logger.debug("Excluded %s channel(s) by exclude rule", excluded)
        return channels
