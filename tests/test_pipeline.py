"""Tests for the download-then-restore pipeline."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from backup_download import BackupSource, DownloadFailed, LocalCacheEntry, MissingCredential
from conftest import FILELIST_ROWS, TEST_ACCOUNT_KEY, TEST_FILE_URL, FakeConnectionManager
from database_restore import (
    ResourceReadyEvent,
    RestoreConfig,
    RestorePipeline,
    RestoreState
)

CONNECTION_STRING = "Server=127.0.0.1,1433;User ID=sa;Password=Secret!1;Initial Catalog=app"
CACHE_PATH = Path("/tmp/sqldata/app.bak")


def make_fetcher(entry=None, error=None):
    fetcher = MagicMock()
    fetcher.cache_path_for.return_value = CACHE_PATH
    if error is not None:
        fetcher.ensure_local = AsyncMock(side_effect=error)
    else:
        fetcher.ensure_local = AsyncMock(
            return_value=entry or LocalCacheEntry(local_path=CACHE_PATH, exists=True, size_bytes=10)
        )
    return fetcher


def provider(value=CONNECTION_STRING):
    async def _provide():
        return value
    return _provide


class PipelineHarness:
    def __init__(self, fake_sleep, fetcher=None, handlers=None, **restore_config):
        self.manager = FakeConnectionManager(
            handlers if handlers is not None else {"sys.databases": 0, "FILELISTONLY": FILELIST_ROWS}
        )
        self.endpoints = []
        self.fetcher = fetcher or make_fetcher()
        self.pipeline = RestorePipeline(
            BackupSource.from_url(TEST_FILE_URL, signing_key=TEST_ACCOUNT_KEY),
            restore_config=RestoreConfig(**restore_config),
            fetcher=self.fetcher,
            connection_manager_factory=self._factory,
            sleep=fake_sleep
        )

    def _factory(self, endpoint):
        self.endpoints.append(endpoint)
        return self.manager


class TestOnResourceReady:
    @pytest.mark.asyncio
    async def test_downloads_waits_and_restores(self, fake_sleep, sleep_calls):
        harness = PipelineHarness(fake_sleep)

        result = await harness.pipeline.on_resource_ready(
            ResourceReadyEvent(database_name="app", connection_string_provider=provider())
        )

        assert result.success
        assert result.restored
        assert sleep_calls == [5.0]
        harness.fetcher.ensure_local.assert_awaited_once()
        assert harness.manager.closed
        restore = harness.manager.sql_containing("RESTORE DATABASE")[0]
        assert "FROM DISK = N'/var/opt/mssql/backup/app.bak'" in restore

    @pytest.mark.asyncio
    async def test_database_name_falls_back_to_event(self, fake_sleep):
        harness = PipelineHarness(fake_sleep)

        result = await harness.pipeline.on_resource_ready(
            ResourceReadyEvent(
                database_name="inventory",
                connection_string_provider=provider("Server=db;User ID=sa;Password=pw")
            )
        )

        assert result.database_name == "inventory"
        assert harness.manager.sql_containing("RESTORE DATABASE [inventory]")

    @pytest.mark.asyncio
    async def test_missing_download_fails_before_connecting(self, fake_sleep, sleep_calls):
        fetcher = make_fetcher(entry=LocalCacheEntry.failed(CACHE_PATH, "HTTP 404 Not Found"))
        harness = PipelineHarness(fake_sleep, fetcher=fetcher)

        result = await harness.pipeline.on_resource_ready(
            ResourceReadyEvent(database_name="app", connection_string_provider=provider())
        )

        assert result.final_state == RestoreState.FAILED
        assert "HTTP 404" in result.error_message
        assert harness.endpoints == []
        assert sleep_calls == []

    @pytest.mark.parametrize("error", [
        MissingCredential("Storage account key is required"),
        DownloadFailed("connection reset"),
    ])
    @pytest.mark.asyncio
    async def test_download_errors_become_failed_results(self, fake_sleep, error):
        harness = PipelineHarness(fake_sleep, fetcher=make_fetcher(error=error))

        result = await harness.pipeline.on_resource_ready(
            ResourceReadyEvent(database_name="app", connection_string_provider=provider())
        )

        assert result.final_state == RestoreState.FAILED
        assert harness.endpoints == []

    @pytest.mark.asyncio
    async def test_unavailable_connection_string_fails_before_warmup(self, fake_sleep, sleep_calls):
        harness = PipelineHarness(fake_sleep)

        result = await harness.pipeline.on_resource_ready(
            ResourceReadyEvent(database_name="app", connection_string_provider=provider(None))
        )

        assert result.final_state == RestoreState.FAILED
        assert "Connection string" in result.error_message
        assert sleep_calls == []
        assert harness.endpoints == []

    @pytest.mark.asyncio
    async def test_provider_exception_fails_before_warmup(self, fake_sleep, sleep_calls):
        async def broken():
            raise RuntimeError("secret store unavailable")

        harness = PipelineHarness(fake_sleep)
        result = await harness.pipeline.on_resource_ready(
            ResourceReadyEvent(database_name="app", connection_string_provider=broken)
        )

        assert result.final_state == RestoreState.FAILED
        assert "secret store unavailable" in result.error_message
        assert sleep_calls == []

    @pytest.mark.asyncio
    async def test_invalid_database_name(self, fake_sleep):
        harness = PipelineHarness(fake_sleep)

        result = await harness.pipeline.on_resource_ready(
            ResourceReadyEvent(
                database_name="app",
                connection_string_provider=provider("Server=db;Database=app];DROP")
            )
        )

        assert result.final_state == RestoreState.FAILED
        assert harness.manager.statements == []

    @pytest.mark.asyncio
    async def test_cancelled_during_warmup(self, fake_sleep, sleep_calls):
        harness = PipelineHarness(fake_sleep)
        cancel_event = asyncio.Event()
        cancel_event.set()

        result = await harness.pipeline.on_resource_ready(
            ResourceReadyEvent(
                database_name="app",
                connection_string_provider=provider(),
                cancel_event=cancel_event
            )
        )

        assert result.final_state == RestoreState.FAILED
        assert harness.endpoints == []

    @pytest.mark.asyncio
    async def test_unexpected_errors_become_failed_results(self, fake_sleep):
        harness = PipelineHarness(fake_sleep)
        harness.pipeline._connection_manager_factory = MagicMock(side_effect=RuntimeError("boom"))

        result = await harness.pipeline.on_resource_ready(
            ResourceReadyEvent(database_name="app", connection_string_provider=provider())
        )

        assert result.final_state == RestoreState.FAILED
        assert "boom" in result.error_message

    @pytest.mark.asyncio
    async def test_configured_warmup(self, fake_sleep, sleep_calls):
        harness = PipelineHarness(fake_sleep, warmup_seconds=12.5)

        await harness.pipeline.on_resource_ready(
            ResourceReadyEvent(database_name="app", connection_string_provider=provider())
        )

        assert sleep_calls[0] == 12.5


class TestFromSettings:
    def test_builds_from_settings(self, tmp_path):
        from config import RestoreOpsSettings

        settings = RestoreOpsSettings(
            storage={"file_url": TEST_FILE_URL, "storage_account_key": TEST_ACCOUNT_KEY,
                     "local_cache_dir": str(tmp_path)},
            database={"database_name": "app", "backup_file_name": "restore.bak"},
            restore={"backup_directory": "/mnt/backup"}
        )

        pipeline = RestorePipeline.from_settings(settings)

        assert pipeline.source.share_name == "backups"
        assert pipeline.backup_file_name == "restore.bak"
        assert pipeline._restore_config.backup_file_path(pipeline.backup_file_name) == "/mnt/backup/restore.bak"
