"""Tests for refresh coordination and the background refresh jobs."""

import asyncio

import pytest

from iptv_service.errors import AcquisitionError
from iptv_service.services.channel_directory import ChannelDirectory
from iptv_service.services.epg_aggregator import EPGAggregator, FetchWindow, GuideCache
from iptv_service.services.refresh_coordinator import RefreshCoordinator
from iptv_service.services.scheduler_service import CHANNEL_JOB_ID, GUIDE_JOB_ID, RefreshScheduler

from tests.conftest import TODAY, FakeAcquirer, FakeFetcher


def _scheduler(rule_set, acquirer, fetcher=None) -> RefreshScheduler:
    directory = ChannelDirectory(acquirer, rule_set)
    aggregator = EPGAggregator(fetcher or FakeFetcher({0: [("新闻", "08:00", "09:00")]}), FetchWindow(0, 0), today=lambda: TODAY)
    return RefreshScheduler(directory, GuideCache(aggregator), RefreshCoordinator(), retry_wait=0)


class TestRefreshCoordinator:

    @pytest.mark.asyncio
    async def test_success_wraps_result(self):
        async def refresh():
            return 3

        assert await RefreshCoordinator().execute("channels", refresh) == {"status": "success", "result": 3}

    @pytest.mark.asyncio
    async def test_concurrent_request_is_skipped(self):
        coordinator = RefreshCoordinator()
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow():
            started.set()
            await release.wait()
            return "done"

        first = asyncio.create_task(coordinator.execute("channels", slow))
        await started.wait()
        assert coordinator.is_running("channels")

        second = await coordinator.execute("channels", slow)
        release.set()

        assert second["status"] == "skipped"
        assert (await first)["result"] == "done"
        assert not coordinator.is_running("channels")

    @pytest.mark.asyncio
    async def test_different_names_do_not_block_each_other(self):
        coordinator = RefreshCoordinator()
        release = asyncio.Event()

        async def slow():
            await release.wait()

        async def fast():
            return "epg"

        task = asyncio.create_task(coordinator.execute("channels", slow))
        await asyncio.sleep(0)
        assert (await coordinator.execute("epg", fast))["status"] == "success"
        release.set()
        await task

    @pytest.mark.asyncio
    async def test_errors_propagate_and_release_lock(self):
        coordinator = RefreshCoordinator()

        async def failing():
            raise AcquisitionError("down")

        with pytest.raises(AcquisitionError):
            await coordinator.execute("channels", failing)
        assert not coordinator.is_running("channels")


class TestRefreshScheduler:

    @pytest.mark.asyncio
    async def test_first_channel_snapshot_builds_guide(self, rule_set, sample_records):
        scheduler = _scheduler(rule_set, FakeAcquirer(sample_records))

        await scheduler._channel_job(max_retries=1)

        assert scheduler.directory.current() is not None
        guide = scheduler.guide.current()
        assert guide is not None
        assert len(guide) == len(scheduler.directory.current())

    @pytest.mark.asyncio
    async def test_guide_is_not_rebuilt_on_later_channel_refreshes(self, rule_set, sample_records):
        fetcher = FakeFetcher({0: [("新闻", "08:00", "09:00")]})
        scheduler = _scheduler(rule_set, FakeAcquirer(sample_records), fetcher)

        await scheduler._channel_job(max_retries=1)
        requests = len(fetcher.requested)
        await scheduler._channel_job(max_retries=1)

        assert len(fetcher.requested) == requests

    @pytest.mark.asyncio
    async def test_failed_channel_refresh_keeps_previous_state(self, rule_set):
        scheduler = _scheduler(rule_set, FakeAcquirer(AcquisitionError("down")))

        await scheduler._channel_job(max_retries=2)

        assert scheduler.directory.current() is None
        assert scheduler.guide.current() is None

    @pytest.mark.asyncio
    async def test_guide_job_logs_instead_of_raising(self, rule_set):
        scheduler = _scheduler(rule_set, FakeAcquirer([]))
        await scheduler._guide_job()
        assert scheduler.guide.current() is None

    @pytest.mark.asyncio
    async def test_start_registers_jobs(self, rule_set, sample_records):
        scheduler = _scheduler(rule_set, FakeAcquirer(sample_records))

        scheduler.start(interval_minutes=60, max_retries=1, guide_cron="30 */6 * * *")
        try:
            assert scheduler.running
            assert scheduler.get_next_run_time(CHANNEL_JOB_ID) is not None
            assert scheduler.get_next_run_time(GUIDE_JOB_ID) is not None
        finally:
            scheduler.shutdown()

        assert not scheduler.running
        assert scheduler.get_next_run_time(CHANNEL_JOB_ID) is None

    def test_invalid_cron_is_rejected(self, rule_set):
        scheduler = _scheduler(rule_set, FakeAcquirer([]))
        with pytest.raises(ValueError):
            scheduler.schedule_guide_refresh("not a cron")
