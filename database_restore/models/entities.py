"""
Database Restore Entities

Defines the data models for one restore run: the validated target, the probe
classification, the file manifest read from the backup, the orchestration
states and the outcome.
"""

import asyncio
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from connection_management.connection_string import ConnectionEndpoint
from ..exceptions import InvalidIdentifierError

_IDENTIFIER_PATTERN = re.compile(r"[A-Za-z0-9_][A-Za-z0-9_\-]{0,127}")


class DatabaseState(str, Enum):
    """
    Classification of the target database.

    States:
        ABSENT: Not registered in sys.databases
        PRESENT_EMPTY: Exists but has no user tables, restore needed
        PRESENT_POPULATED: Has user tables, never overwritten
    """
    ABSENT = "ABSENT"
    PRESENT_EMPTY = "PRESENT_EMPTY"
    PRESENT_POPULATED = "PRESENT_POPULATED"


class RestoreState(str, Enum):
    """
    States of the restore orchestration.

    States:
        PROBING: Classifying the target
        RECLAIMING: Terminating other sessions on an existing target
        DROPPING: Dropping an empty target so the restore can recreate it
        RESTORING: Reading the backup manifest and running RESTORE DATABASE
        FINALIZING: Setting TRUSTWORTHY and the database owner
        DONE: Terminal success, after a skip or a full restore
        FAILED: Terminal failure
    """
    PROBING = "PROBING"
    RECLAIMING = "RECLAIMING"
    DROPPING = "DROPPING"
    RESTORING = "RESTORING"
    FINALIZING = "FINALIZING"
    DONE = "DONE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (RestoreState.DONE, RestoreState.FAILED)


class StreamKind(str, Enum):
    """Kind of physical file stored in a backup."""
    DATA = "DATA"
    LOG = "LOG"


@dataclass(frozen=True)
class DatabaseIdentifier:
    """
    A database name that is safe to interpolate as ``[name]``.

    Allowed characters are letters, digits, underscore and hyphen; the first
    character may not be a hyphen; at most 128 characters.

    Raises:
        InvalidIdentifierError: On construction with a disallowed name
    """
    name: str

    def __post_init__(self):
        if not isinstance(self.name, str) or not _IDENTIFIER_PATTERN.fullmatch(self.name):
            raise InvalidIdentifierError(
                "Database name must match [A-Za-z0-9_][A-Za-z0-9_-]{0,127}",
                database_name=str(self.name)
            )

    @property
    def quoted(self) -> str:
        return f"[{self.name}]"

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class RestoreTarget:
    """
    The database one orchestration run restores into.

    Attributes:
        database: Validated database name
        endpoint: Server and credentials; its catalog is switched per connection
    """
    database: DatabaseIdentifier
    endpoint: ConnectionEndpoint

    @property
    def database_name(self) -> str:
        return self.database.name


@dataclass
class ProbeResult:
    """
    Outcome of DatabaseProbe.classify.

    Attributes:
        state: Classification
        table_count: Number of user tables (0 when absent)
        reclaim_attempted: Whether other sessions were terminated
        reclaim_succeeded: Whether the reclaim batch ran without error
    """
    state: DatabaseState
    table_count: int = 0
    reclaim_attempted: bool = False
    reclaim_succeeded: bool = False


class BackupManifestEntry(BaseModel):
    """
    One physical file inside a backup, from RESTORE FILELISTONLY.

    Attributes:
        logical_name: Logical file name to relocate with MOVE
        stream_kind: DATA or LOG
        file_type: Raw Type column (D, L, F, S)
        physical_name: Original physical path recorded in the backup
    """
    model_config = ConfigDict(frozen=True)

    logical_name: str = Field(..., min_length=1, description="Logical file name")
    stream_kind: StreamKind = Field(..., description="Data or log stream")
    file_type: str = Field(default="D", description="Raw FILELISTONLY Type column")
    physical_name: Optional[str] = Field(default=None, description="Physical path recorded in the backup")

    @classmethod
    def from_row(cls, row: Sequence) -> "BackupManifestEntry":
        """Build from a FILELISTONLY row: LogicalName, PhysicalName, Type, ..."""
        file_type = str(row[2]).strip().upper()
        return cls(
            logical_name=row[0],
            physical_name=row[1],
            file_type=file_type,
            stream_kind=StreamKind.LOG if file_type == "L" else StreamKind.DATA,
        )

    def physical_file_name(self, database: DatabaseIdentifier, ordinal: int) -> str:
        """Destination file name: ``{db}_{i}.mdf`` or ``{db}_{i}_log.ldf``."""
        extension = "_log.ldf" if self.stream_kind == StreamKind.LOG else ".mdf"
        return f"{database.name}_{ordinal}{extension}"


class RestoreResult(BaseModel):
    """
    Result of one orchestration run.

    Attributes:
        database_name: Target database
        final_state: DONE or FAILED
        probe_state: Classification found by the probe, if it ran
        skipped: True when a populated target was left untouched
        drop_attempts: Number of drop statements issued
        files_restored: Number of files relocated by the RESTORE
        transitions: States visited, in order
        warnings: Non-fatal problems (e.g. owner change failed)
        error_message: Reason for FAILED
        execution_time_ms: Time taken in milliseconds

    Example:
        ```python
        result = await orchestrator.run(target, "/var/opt/mssql/backup/app.bak")
        if result.success and result.completed_with_warnings:
            logger.warning(result.warnings)
        ```
    """
    database_name: str = Field(..., description="Target database")
    final_state: RestoreState = Field(default=RestoreState.PROBING, description="Last state reached")
    probe_state: Optional[DatabaseState] = Field(default=None, description="Probe classification")
    skipped: bool = Field(default=False, description="Whether the restore was skipped")
    drop_attempts: int = Field(default=0, ge=0, description="Drop statements issued")
    files_restored: int = Field(default=0, ge=0, description="Files relocated by RESTORE")
    transitions: List[RestoreState] = Field(default_factory=list, description="States visited")
    warnings: List[str] = Field(default_factory=list, description="Non-fatal problems")
    error_message: Optional[str] = Field(default=None, description="Error message if failed")
    execution_time_ms: float = Field(default=0.0, ge=0.0, description="Execution time in milliseconds")

    @property
    def success(self) -> bool:
        return self.final_state == RestoreState.DONE

    @property
    def completed_with_warnings(self) -> bool:
        return self.success and bool(self.warnings)

    @property
    def restored(self) -> bool:
        return self.success and not self.skipped

    def enter(self, state: RestoreState) -> None:
        self.final_state = state
        self.transitions.append(state)

    @classmethod
    def failed(cls, database_name: str, error_message: str) -> "RestoreResult":
        """Result for a run that failed before orchestration started."""
        return cls(
            database_name=database_name,
            final_state=RestoreState.FAILED,
            transitions=[RestoreState.FAILED],
            error_message=error_message,
        )


ConnectionStringProvider = Callable[[], Awaitable[Optional[str]]]


@dataclass
class ResourceReadyEvent:
    """
    Trigger raised by the environment once the target database is ready.

    Attributes:
        database_name: Name the environment registered the database under
        connection_string_provider: Resolves the target connection string
            (returns None when it cannot be materialized)
        cancel_event: Set to abort the run
    """
    database_name: str
    connection_string_provider: ConnectionStringProvider
    cancel_event: Optional[asyncio.Event] = field(default=None)
