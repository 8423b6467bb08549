"""Tests for the restore state machine."""

import asyncio

import pytest

from conftest import FILELIST_ROWS, FakeConnectionManager, Script, in_use_error
from connection_management import SqlStatementError
from database_restore import (
    DatabaseState,
    RestoreConfig,
    RestoreOrchestrator,
    RestoreState
)
from restore_ops_exceptions import OperationTimeoutError

BACKUP_PATH = "/var/opt/mssql/backup/app.bak"


def make_orchestrator(manager, fake_sleep, **config):
    return RestoreOrchestrator(manager, config=RestoreConfig(**config), sleep=fake_sleep)


def empty_target_handlers(**overrides):
    handlers = {
        "sys.databases": 1,
        "sys.tables": 0,
        "FILELISTONLY": FILELIST_ROWS,
    }
    handlers.update(overrides)
    return handlers


class TestPopulatedTarget:
    @pytest.mark.asyncio
    async def test_is_never_overwritten(self, target, fake_sleep):
        manager = FakeConnectionManager({"sys.databases": 1, "sys.tables": 5})

        result = await make_orchestrator(manager, fake_sleep).run(target, BACKUP_PATH)

        assert result.success
        assert result.skipped
        assert not result.restored
        assert result.probe_state == DatabaseState.PRESENT_POPULATED
        assert result.transitions == [RestoreState.PROBING, RestoreState.RECLAIMING, RestoreState.DONE]
        assert manager.sql_containing("DROP DATABASE") == []
        assert manager.sql_containing("RESTORE") == []


class TestAbsentTarget:
    @pytest.mark.asyncio
    async def test_restores_without_drop(self, target, fake_sleep):
        manager = FakeConnectionManager({"sys.databases": 0, "FILELISTONLY": FILELIST_ROWS})

        result = await make_orchestrator(manager, fake_sleep).run(target, BACKUP_PATH)

        assert result.success
        assert result.restored
        assert result.drop_attempts == 0
        assert result.files_restored == 2
        assert result.transitions == [
            RestoreState.PROBING,
            RestoreState.RESTORING,
            RestoreState.FINALIZING,
            RestoreState.DONE,
        ]
        assert manager.sql_containing("DROP DATABASE") == []
        assert manager.sql_containing("KILL") == []


class TestEmptyTarget:
    @pytest.mark.asyncio
    async def test_drops_then_restores(self, target, fake_sleep, sleep_calls):
        manager = FakeConnectionManager(empty_target_handlers())

        result = await make_orchestrator(manager, fake_sleep).run(target, BACKUP_PATH)

        assert result.success
        assert result.drop_attempts == 1
        assert sleep_calls == []
        assert result.transitions == [
            RestoreState.PROBING,
            RestoreState.RECLAIMING,
            RestoreState.DROPPING,
            RestoreState.RESTORING,
            RestoreState.FINALIZING,
            RestoreState.DONE,
        ]
        assert len(manager.sql_containing("DROP DATABASE [app]")) == 1

        restores = manager.sql_containing("RESTORE DATABASE")
        assert len(restores) == 1
        assert "MOVE N'app_data' TO N'/var/opt/mssql/data/app_0.mdf'" in restores[0]
        assert "MOVE N'app_log' TO N'/var/opt/mssql/data/app_1_log.ldf'" in restores[0]
        assert "FROM DISK = N'/var/opt/mssql/backup/app.bak'" in restores[0]

    @pytest.mark.asyncio
    async def test_manifest_rows_are_returned_whole(self, target, fake_sleep):
        for _ in range(2):
            manager = FakeConnectionManager(empty_target_handlers())
            result = await make_orchestrator(manager, fake_sleep).run(target, BACKUP_PATH)
            assert result.files_restored == len(FILELIST_ROWS) == 2

    @pytest.mark.asyncio
    async def test_statement_order_and_connections(self, target, fake_sleep):
        manager = FakeConnectionManager(empty_target_handlers())

        await make_orchestrator(manager, fake_sleep).run(target, BACKUP_PATH)

        sql = manager.sql()
        order = [
            next(i for i, s in enumerate(sql) if fragment in s)
            for fragment in ("sys.databases", "KILL", "sys.tables", "DROP DATABASE",
                             "FILELISTONLY", "RESTORE DATABASE", "TRUSTWORTHY", "sp_changedbowner")
        ]
        assert order == sorted(order)
        assert manager.opened == ["master", "app"]
        owner = [entry for entry in manager.statements if "sp_changedbowner" in entry[1]]
        assert owner[0][0] == "app"

    @pytest.mark.asyncio
    async def test_restore_uses_configured_timeout(self, target, fake_sleep):
        manager = FakeConnectionManager(empty_target_handlers())

        await make_orchestrator(manager, fake_sleep, restore_timeout_seconds=120).run(target, BACKUP_PATH)

        restore = [entry for entry in manager.statements if "RESTORE DATABASE" in entry[1]]
        assert restore[0][3] == 120
        assert manager.query_timeouts[0] == 120


class TestDropRetry:
    @pytest.mark.asyncio
    async def test_retries_while_in_use(self, target, fake_sleep, sleep_calls):
        manager = FakeConnectionManager(empty_target_handlers(**{
            "DROP DATABASE": Script(in_use_error(), in_use_error(), 0)
        }))

        result = await make_orchestrator(manager, fake_sleep).run(target, BACKUP_PATH)

        assert result.success
        assert result.drop_attempts == 3
        assert sleep_calls == [2.0, 2.0]
        assert len(manager.sql_containing("RESTORE DATABASE")) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, target, fake_sleep, sleep_calls):
        manager = FakeConnectionManager(empty_target_handlers(**{
            "DROP DATABASE": in_use_error()
        }))

        result = await make_orchestrator(manager, fake_sleep).run(target, BACKUP_PATH)

        assert result.final_state == RestoreState.FAILED
        assert result.drop_attempts == 3
        assert sleep_calls == [2.0, 2.0]
        assert manager.sql_containing("RESTORE") == []
        assert "in use" in result.error_message

    @pytest.mark.asyncio
    async def test_other_errors_fail_without_retry(self, target, fake_sleep, sleep_calls):
        manager = FakeConnectionManager(empty_target_handlers(**{
            "DROP DATABASE": SqlStatementError("Permission denied", native_error=3701)
        }))

        result = await make_orchestrator(manager, fake_sleep).run(target, BACKUP_PATH)

        assert result.final_state == RestoreState.FAILED
        assert result.drop_attempts == 1
        assert sleep_calls == []
        assert manager.sql_containing("RESTORE") == []

    @pytest.mark.asyncio
    async def test_configured_attempts_and_delay(self, target, fake_sleep, sleep_calls):
        manager = FakeConnectionManager(empty_target_handlers(**{
            "DROP DATABASE": in_use_error()
        }))

        result = await make_orchestrator(
            manager, fake_sleep, drop_max_attempts=5, drop_retry_delay_seconds=0.5
        ).run(target, BACKUP_PATH)

        assert result.drop_attempts == 5
        assert sleep_calls == [0.5] * 4


class TestRestoreFailures:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("rows", [
        [(None, "C:\\data\\app.mdf", "D")],
        [("app_data",)],
    ])
    async def test_malformed_manifest_row(self, target, fake_sleep, rows):
        manager = FakeConnectionManager({"sys.databases": 0, "FILELISTONLY": rows})

        result = await make_orchestrator(manager, fake_sleep).run(target, BACKUP_PATH)

        assert result.final_state == RestoreState.FAILED
        assert "file list row" in result.error_message
        assert manager.sql_containing("RESTORE DATABASE") == []

    @pytest.mark.asyncio
    async def test_empty_manifest(self, target, fake_sleep):
        manager = FakeConnectionManager({"sys.databases": 0, "FILELISTONLY": []})

        result = await make_orchestrator(manager, fake_sleep).run(target, BACKUP_PATH)

        assert result.final_state == RestoreState.FAILED
        assert manager.sql_containing("RESTORE DATABASE") == []

    @pytest.mark.asyncio
    async def test_restore_statement_error(self, target, fake_sleep):
        manager = FakeConnectionManager({
            "sys.databases": 0,
            "FILELISTONLY": FILELIST_ROWS,
            "RESTORE DATABASE": SqlStatementError("The media set has 2 media families", native_error=3231),
        })

        result = await make_orchestrator(manager, fake_sleep).run(target, BACKUP_PATH)

        assert result.final_state == RestoreState.FAILED
        assert RestoreState.FINALIZING not in result.transitions
        assert "media families" in result.error_message

    @pytest.mark.asyncio
    async def test_restore_timeout(self, target, fake_sleep):
        manager = FakeConnectionManager({
            "sys.databases": 0,
            "FILELISTONLY": FILELIST_ROWS,
            "RESTORE DATABASE": OperationTimeoutError("Statement exceeded timeout of 300s"),
        })

        result = await make_orchestrator(manager, fake_sleep).run(target, BACKUP_PATH)

        assert result.final_state == RestoreState.FAILED

    @pytest.mark.asyncio
    async def test_master_connection_failure(self, target, fake_sleep):
        manager = FakeConnectionManager(fail_databases=["master"])

        result = await make_orchestrator(manager, fake_sleep).run(target, BACKUP_PATH)

        assert result.final_state == RestoreState.FAILED
        assert manager.statements == []


class TestFinalize:
    @pytest.mark.asyncio
    async def test_owner_change_failure_is_a_warning(self, target, fake_sleep):
        manager = FakeConnectionManager({
            "sys.databases": 0,
            "FILELISTONLY": FILELIST_ROWS,
            "sp_changedbowner": SqlStatementError("The proposed new database owner is already a user", native_error=15110),
        })

        result = await make_orchestrator(manager, fake_sleep).run(target, BACKUP_PATH)

        assert result.success
        assert result.completed_with_warnings
        assert len(result.warnings) == 1
        assert "owner" in result.warnings[0]

    @pytest.mark.asyncio
    async def test_owner_connection_failure_is_a_warning(self, target, fake_sleep):
        manager = FakeConnectionManager(
            {"sys.databases": 0, "FILELISTONLY": FILELIST_ROWS},
            fail_databases=["app"]
        )

        result = await make_orchestrator(manager, fake_sleep).run(target, BACKUP_PATH)

        assert result.success
        assert result.completed_with_warnings

    @pytest.mark.asyncio
    async def test_trustworthy_failure_is_a_warning(self, target, fake_sleep):
        manager = FakeConnectionManager({
            "sys.databases": 0,
            "FILELISTONLY": FILELIST_ROWS,
            "TRUSTWORTHY": SqlStatementError("Permission denied", native_error=5011),
        })

        result = await make_orchestrator(manager, fake_sleep).run(target, BACKUP_PATH)

        assert result.success
        assert len(result.warnings) == 1
        assert len(manager.sql_containing("sp_changedbowner")) == 1


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_before_restore(self, target, fake_sleep):
        manager = FakeConnectionManager({"sys.databases": 0, "FILELISTONLY": FILELIST_ROWS})
        cancel_event = asyncio.Event()
        cancel_event.set()

        result = await make_orchestrator(manager, fake_sleep).run(
            target, BACKUP_PATH, cancel_event=cancel_event
        )

        assert result.final_state == RestoreState.FAILED
        assert manager.sql_containing("RESTORE") == []

    @pytest.mark.asyncio
    async def test_rerun_after_restore_is_a_noop(self, target, fake_sleep):
        first = FakeConnectionManager({"sys.databases": 0, "FILELISTONLY": FILELIST_ROWS})
        second = FakeConnectionManager({"sys.databases": 1, "sys.tables": 7})

        assert (await make_orchestrator(first, fake_sleep).run(target, BACKUP_PATH)).restored
        rerun = await make_orchestrator(second, fake_sleep).run(target, BACKUP_PATH)

        assert rerun.skipped
        assert second.sql_containing("RESTORE") == []
