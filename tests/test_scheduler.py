"""Tests for startup mode selection."""

import pytest

from hassink.scheduler import RENDER_JOB_ID
from hassink.service import ScreensaverService

from .conftest import FakeSession


@pytest.mark.asyncio
async def test_scheduled_mode_renders_and_registers_cron(make_config):
    config = make_config(CRON_JOB='*/5 * * * *')
    session = FakeSession()
    service = ScreensaverService(config, session=session)

    await service.scheduler.start()
    try:
        assert session.rendered == ['/lovelace/0']
        assert service.store.read(config.pages[0])[0] == session.default
        job = service.scheduler.scheduler.get_job(RENDER_JOB_ID)
        assert job is not None
        assert 'minute=\'*/5\'' in str(job.trigger)
    finally:
        service.scheduler.shutdown()

    assert service.scheduler.scheduler is None


@pytest.mark.asyncio
async def test_eager_mode_clears_cache_without_rendering(make_config, tmp_path):
    config = make_config(EAGER_RERENDER='true')
    session = FakeSession()
    service = ScreensaverService(config, session=session)
    service.store.write(config.pages[0], b'stale')

    await service.scheduler.start()

    assert session.rendered == []
    assert service.scheduler.scheduler is None
    assert not (tmp_path / 'output').exists()


@pytest.mark.asyncio
async def test_debug_mode_renders_once_without_cron(make_config):
    config = make_config(DEBUG='true')
    session = FakeSession()
    service = ScreensaverService(config, session=session)

    await service.scheduler.start()

    assert session.rendered == ['/lovelace/0']
    assert service.scheduler.scheduler is None
    assert service.store.read(config.pages[0])[0] == session.default
