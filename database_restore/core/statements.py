"""
T-SQL statement builders for the restore flow.

Database names arrive as DatabaseIdentifier and are emitted bracketed.
Everything else that ends up inside a string literal (backup path, logical
file names, owner login) goes through ``quote_literal``.
"""

from typing import List, Sequence, Tuple

from ..models.entities import DatabaseIdentifier

DATABASE_EXISTS = "SELECT COUNT(*) FROM sys.databases WHERE name = %s"


def quote_literal(value: str) -> str:
    """Render ``value`` as an N'...' literal with embedded quotes doubled."""
    return "N'" + value.replace("'", "''") + "'"


def reclaim_sessions(database: DatabaseIdentifier) -> str:
    """Kill every other session on the database and return it to MULTI_USER."""
    return f"""
DECLARE @kill varchar(8000) = '';
SELECT @kill = @kill + 'KILL ' + CONVERT(varchar(5), session_id) + ';'
FROM sys.dm_exec_sessions
WHERE database_id = DB_ID({quote_literal(database.name)})
AND session_id <> @@SPID;
EXEC(@kill);
ALTER DATABASE {database.quoted} SET MULTI_USER WITH ROLLBACK IMMEDIATE;"""


def count_user_tables(database: DatabaseIdentifier) -> str:
    return f"SELECT COUNT(*) FROM {database.quoted}.sys.tables WHERE is_ms_shipped = 0"


def drop_database(database: DatabaseIdentifier) -> str:
    return (
        f"ALTER DATABASE {database.quoted} SET SINGLE_USER WITH ROLLBACK IMMEDIATE;\n"
        f"DROP DATABASE {database.quoted};"
    )


def restore_filelist(backup_file_path: str) -> str:
    return f"RESTORE FILELISTONLY FROM DISK = {quote_literal(backup_file_path)}"


def restore_database(
    database: DatabaseIdentifier,
    backup_file_path: str,
    moves: Sequence[Tuple[str, str]]
) -> str:
    """
    Single RESTORE statement relocating every logical file.

    All MOVE clauses stay in one statement; the engine applies it atomically.

    Args:
        database: Database to create or replace
        backup_file_path: Engine-side path of the backup
        moves: (logical name, destination path) pairs in manifest order
    """
    if not moves:
        raise ValueError("At least one MOVE clause is required")
    move_clauses: List[str] = [
        f"MOVE {quote_literal(logical)} TO {quote_literal(destination)}"
        for logical, destination in moves
    ]
    with_clause = ",\n     ".join(move_clauses + ["REPLACE", "RECOVERY"])
    return (
        f"RESTORE DATABASE {database.quoted}\n"
        f"FROM DISK = {quote_literal(backup_file_path)}\n"
        f"WITH {with_clause}"
    )


def set_trustworthy(database: DatabaseIdentifier) -> str:
    return f"ALTER DATABASE {database.quoted} SET TRUSTWORTHY ON;"


def change_owner(owner_login: str) -> str:
    """Run against the restored database itself."""
    return f"EXEC sp_changedbowner {quote_literal(owner_login)};"
