"""Global pytest configuration and fixtures."""

import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from connection_management import ConnectionEndpoint, DatabaseConnectionError, SqlStatementError
from database_restore import DatabaseIdentifier, RestoreTarget

TEST_ACCOUNT_KEY = "cmVzdG9yZS1vcHMtdGVzdC1rZXktMDEyMzQ1Njc4OSEh"
TEST_FILE_URL = "https://acct.file.core.windows.net/backups/prod/app.bak"


class Script:
    """
    Answers consumed one per call; the last one repeats.

    Each answer is a value or an exception instance to raise.
    """

    def __init__(self, *answers):
        if not answers:
            raise ValueError("Script needs at least one answer")
        self._answers = list(answers)

    def next(self):
        if len(self._answers) > 1:
            return self._answers.pop(0)
        return self._answers[0]


class FakeConnection:
    """
    Records every statement and answers from scripted handlers.

    ``handlers`` maps a statement fragment to a value (returned as-is, lists
    included), an exception instance to raise, or a Script.
    """

    def __init__(self, database: Optional[str], handlers: Dict[str, Any], log: List[tuple]):
        self.database = database
        self._handlers = handlers
        self._log = log

    def _answer(self, statement: str, default: Any) -> Any:
        text = statement.strip()
        for prefix, answer in self._handlers.items():
            if prefix in text:
                if isinstance(answer, Script):
                    answer = answer.next()
                if isinstance(answer, BaseException):
                    raise answer
                return answer
        return default

    async def execute_non_query(self, statement, params=None, timeout=None):
        self._log.append((self.database, statement, params, timeout))
        return self._answer(statement, 0)

    async def execute_scalar(self, statement, params=None, timeout=None):
        self._log.append((self.database, statement, params, timeout))
        return self._answer(statement, None)

    async def fetch_all(self, statement, params=None, timeout=None):
        self._log.append((self.database, statement, params, timeout))
        return self._answer(statement, [])


class FakeConnectionManager:
    """Stands in for ConnectionManager; all connections share one statement log."""

    def __init__(self, handlers: Optional[Dict[str, Any]] = None, fail_databases=()):
        self.handlers = handlers or {}
        self.fail_databases = set(fail_databases)
        self.statements: List[tuple] = []
        self.opened: List[Optional[str]] = []
        self.query_timeouts: List[Optional[float]] = []
        self.closed = False

    @asynccontextmanager
    async def connect(self, database=None, query_timeout=None):
        self.opened.append(database)
        self.query_timeouts.append(query_timeout)
        if database in self.fail_databases:
            raise DatabaseConnectionError(f"Login failed for {database}")
        yield FakeConnection(database, self.handlers, self.statements)

    def close(self):
        self.closed = True

    def sql(self) -> List[str]:
        return [entry[1] for entry in self.statements]

    def sql_containing(self, fragment: str) -> List[str]:
        return [s for s in self.sql() if fragment in s]


def in_use_error() -> SqlStatementError:
    return SqlStatementError(
        "Cannot drop database because it is currently in use.",
        native_error=3702,
        database="master"
    )


FILELIST_ROWS = [
    ("app_data", "C:\\data\\app.mdf", "D", "PRIMARY"),
    ("app_log", "C:\\data\\app_log.ldf", "L", None),
]


@pytest.fixture
def endpoint():
    return ConnectionEndpoint(host="127.0.0.1", port=1433, database="app", user="sa", password="Secret!1")


@pytest.fixture
def target(endpoint):
    return RestoreTarget(database=DatabaseIdentifier("app"), endpoint=endpoint)


@pytest.fixture
def sleep_calls():
    return []


@pytest.fixture
def fake_sleep(sleep_calls):
    async def _sleep(seconds):
        sleep_calls.append(seconds)
    return _sleep
