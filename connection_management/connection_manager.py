"""
SQL Server Connection Manager

This module provides an asynchronous interface over the synchronous pymssql
driver. Every driver call is executed on a dedicated ThreadPoolExecutor so the
event loop is never blocked, and statements on one connection run strictly
one after another.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, List, Optional, Sequence

import pymssql

from restore_ops_exceptions import OperationTimeoutError
from .connection_string import ConnectionEndpoint
from .connection_exceptions import (
    DatabaseConnectionError,
    SqlStatementError,
    driver_error_message,
    native_error_number
)

logger = logging.getLogger(__name__)

_FETCH_NONE = "none"
_FETCH_SCALAR = "scalar"
_FETCH_ALL = "all"


class SqlServerConnection:
    """
    One open SQL Server session.

    Connections are opened in autocommit mode: RESTORE and DROP DATABASE
    cannot run inside a user transaction, and each statement is its own unit
    of work.

    Example:
        ```python
        async with manager.connect("master") as conn:
            count = await conn.execute_scalar(
                "SELECT COUNT(*) FROM sys.databases WHERE name = %s", ("app",)
            )
        ```
    """

    def __init__(self, raw_connection: Any, executor: ThreadPoolExecutor, database: Optional[str]):
        self._raw = raw_connection
        self._executor = executor
        self.database = database
        self._closed = False
        self.abandoned = False

    async def execute_non_query(
        self,
        statement: str,
        params: Optional[Sequence[Any]] = None,
        timeout: Optional[float] = None
    ) -> int:
        """Execute a statement or batch and return the driver row count."""
        return await self._run(statement, params, _FETCH_NONE, timeout)

    async def execute_scalar(
        self,
        statement: str,
        params: Optional[Sequence[Any]] = None,
        timeout: Optional[float] = None
    ) -> Any:
        """Execute a query and return the first column of the first row."""
        return await self._run(statement, params, _FETCH_SCALAR, timeout)

    async def fetch_all(
        self,
        statement: str,
        params: Optional[Sequence[Any]] = None,
        timeout: Optional[float] = None
    ) -> List[tuple]:
        """Execute a query and return every row of the first result set."""
        return await self._run(statement, params, _FETCH_ALL, timeout)

    async def close(self) -> None:
        """
        Close the session.

        After a timed-out statement the worker thread is still busy with it;
        the close is queued behind that statement instead of awaited.
        """
        if self._closed:
            return
        self._closed = True
        if self.abandoned:
            self._executor.submit(self._raw.close)
            logger.warning(f"Connection to {self.database} abandoned after a statement timeout")
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self._executor, self._raw.close)
        logger.debug(f"Closed connection to {self.database}")

    async def _run(
        self,
        statement: str,
        params: Optional[Sequence[Any]],
        fetch: str,
        timeout: Optional[float]
    ) -> Any:
        if self._closed or self.abandoned:
            raise DatabaseConnectionError(
                "Connection is closed", context={"database": self.database}
            )

        logger.debug(f"[{self.database}] {statement.strip()}")
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(
            self._executor, self._execute_sync, statement, params, fetch
        )

        if timeout:
            try:
                return await asyncio.wait_for(future, timeout=timeout)
            except asyncio.TimeoutError:
                self.abandoned = True
                raise OperationTimeoutError(
                    f"Statement exceeded timeout of {timeout}s",
                    context={"database": self.database}
                )
        return await future

    def _execute_sync(self, statement: str, params: Optional[Sequence[Any]], fetch: str) -> Any:
        cursor = self._raw.cursor()
        try:
            if params:
                cursor.execute(statement, tuple(params))
            else:
                cursor.execute(statement)

            if fetch == _FETCH_SCALAR:
                row = cursor.fetchone()
                result = row[0] if row else None
            elif fetch == _FETCH_ALL:
                result = list(cursor.fetchall())
            else:
                result = cursor.rowcount

            # Errors raised by later statements of a batch surface while the
            # remaining result sets are consumed.
            while cursor.nextset():
                pass
            return result
        except pymssql.Error as e:
            raise SqlStatementError(
                driver_error_message(e),
                native_error=native_error_number(e),
                database=self.database,
                statement=statement
            ) from e
        finally:
            cursor.close()


class ConnectionManager:
    """
    Opens SQL Server connections for one endpoint.

    The manager owns a ThreadPoolExecutor sized for sequential use; the
    restore flow never issues statements in parallel.

    Example:
        ```python
        endpoint = ConnectionEndpoint.parse(connection_string)
        manager = ConnectionManager(endpoint)
        try:
            async with manager.connect("master") as master:
                await master.execute_non_query("ALTER DATABASE [app] SET TRUSTWORTHY ON;")
        finally:
            manager.close()
        ```
    """

    def __init__(
        self,
        endpoint: ConnectionEndpoint,
        login_timeout: int = 30,
        connect_func: Optional[Callable[..., Any]] = None,
        max_workers: int = 1
    ):
        """
        Initialize the connection manager.

        Args:
            endpoint: Server, credentials and default catalog
            login_timeout: Login timeout in seconds
            connect_func: DB-API connect callable (defaults to pymssql.connect)
            max_workers: Threads in the dedicated executor
        """
        self.endpoint = endpoint
        self._login_timeout = login_timeout
        self._connect_func = connect_func or pymssql.connect
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=f"SqlConnMgr-{id(self)}"
        )
        self._abandoned = False
        logger.debug(f"ConnectionManager initialized for {endpoint!r}")

    @asynccontextmanager
    async def connect(
        self,
        database: Optional[str] = None,
        query_timeout: Optional[float] = None
    ) -> AsyncIterator[SqlServerConnection]:
        """
        Open a connection, optionally re-targeted at another catalog.

        Args:
            database: Catalog to use instead of the endpoint's
            query_timeout: Driver-side timeout applied to every statement

        Raises:
            DatabaseConnectionError: If the connection cannot be opened
        """
        target = self.endpoint.for_database(database) if database else self.endpoint
        loop = asyncio.get_running_loop()
        raw = await loop.run_in_executor(self._executor, self._open_sync, target, query_timeout)
        connection = SqlServerConnection(raw, self._executor, target.database)
        try:
            yield connection
        finally:
            await connection.close()
            if connection.abandoned:
                self._abandoned = True

    def _open_sync(self, target: ConnectionEndpoint, query_timeout: Optional[float]) -> Any:
        try:
            raw = self._connect_func(**target.connect_kwargs(self._login_timeout, query_timeout))
        except pymssql.Error as e:
            raise DatabaseConnectionError(
                f"Could not connect to {target.host}:{target.port}: {driver_error_message(e)}",
                context={"database": target.database, "native_error": native_error_number(e)}
            ) from e
        logger.info(f"Connected to SQL Server {target.host}:{target.port} (database={target.database})")
        return raw

    def close(self) -> None:
        """
        Shut down the dedicated executor.

        Does not wait for statements abandoned after a timeout.
        """
        self._executor.shutdown(wait=not self._abandoned)
        logger.debug(f"Shut down ThreadPoolExecutor for ConnectionManager {id(self)}")
