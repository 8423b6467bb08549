"""
Database Probe

Classifies the target database as absent, present-but-empty or populated.

Probing an existing database is disruptive: every other session on it is
killed and in-flight transactions are rolled back before the tables are
counted. Callers must own the target exclusively.
"""

import logging

from connection_management import SqlServerConnection, SqlStatementError
from ..exceptions import RestoreStatementFailed
from ..models.entities import DatabaseIdentifier, DatabaseState, ProbeResult, RestoreTarget
from . import statements

logger = logging.getLogger(__name__)


class DatabaseProbe:
    """
    Inspects a live SQL Server instance through a ``master`` connection.

    Example:
        ```python
        async with manager.connect("master") as master:
            result = await DatabaseProbe().classify(target, master)
            if result.state == DatabaseState.PRESENT_POPULATED:
                ...
        ```
    """

    async def classify(self, target: RestoreTarget, connection: SqlServerConnection) -> ProbeResult:
        """
        Classify the target database.

        Raises:
            RestoreStatementFailed: If the existence check or table count fails
        """
        database = target.database

        if not await self.database_exists(database, connection):
            logger.info(f"Database {database} does not exist, will restore from backup.")
            return ProbeResult(state=DatabaseState.ABSENT)

        reclaimed = await self.reclaim(database, connection)
        table_count = await self.count_user_tables(database, connection)

        state = DatabaseState.PRESENT_EMPTY if table_count == 0 else DatabaseState.PRESENT_POPULATED
        return ProbeResult(
            state=state,
            table_count=table_count,
            reclaim_attempted=True,
            reclaim_succeeded=reclaimed,
        )

    async def database_exists(self, database: DatabaseIdentifier, connection: SqlServerConnection) -> bool:
        try:
            count = await connection.execute_scalar(statements.DATABASE_EXISTS, (database.name,))
        except SqlStatementError as e:
            raise RestoreStatementFailed(
                f"Could not check whether database exists: {e.message}",
                database_name=database.name,
                native_error=e.native_error,
                step="probe"
            ) from e
        return int(count or 0) > 0

    async def reclaim(self, database: DatabaseIdentifier, connection: SqlServerConnection) -> bool:
        """
        Kill other sessions and force MULTI_USER with immediate rollback.

        Best-effort: a failure is logged and reported as False.
        """
        try:
            await connection.execute_non_query(statements.reclaim_sessions(database))
        except SqlStatementError as e:
            logger.warning(f"Could not reset database {database} to multi-user mode: {e}")
            return False
        logger.info(f"Killed connections and set database {database} to multi-user mode")
        return True

    async def count_user_tables(self, database: DatabaseIdentifier, connection: SqlServerConnection) -> int:
        try:
            count = await connection.execute_scalar(statements.count_user_tables(database))
        except SqlStatementError as e:
            raise RestoreStatementFailed(
                f"Could not count tables: {e.message}",
                database_name=database.name,
                native_error=e.native_error,
                step="probe"
            ) from e
        return int(count or 0)
