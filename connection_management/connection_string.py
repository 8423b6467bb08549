"""
SQL Server Connection Strings

Parses the ADO.NET-style connection strings handed over by the environment
(``Server=127.0.0.1,1433;User ID=sa;Password=...;Initial Catalog=app``) into
a ConnectionEndpoint that can be re-targeted at another catalog and turned
into pymssql connection arguments.
"""

import math
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

from .connection_exceptions import DatabaseConnectionError

DEFAULT_PORT = 1433

_KEY_ALIASES = {
    "server": "server",
    "data source": "server",
    "address": "server",
    "addr": "server",
    "network address": "server",
    "database": "database",
    "initial catalog": "database",
    "user id": "user",
    "uid": "user",
    "user": "user",
    "password": "password",
    "pwd": "password",
}


@dataclass(frozen=True)
class ConnectionEndpoint:
    """
    Location and credentials of a SQL Server instance plus a catalog.

    Attributes:
        host: Server host name or address
        port: TCP port (1433 unless the connection string says otherwise)
        database: Catalog to connect to, None for the login's default
        user: SQL login
        password: SQL login password
    """
    host: str
    port: int = DEFAULT_PORT
    database: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def parse(cls, connection_string: str) -> "ConnectionEndpoint":
        """
        Parse a ``key=value;`` connection string.

        Keys are case-insensitive; unknown keys are ignored. Values may be
        wrapped in double or single quotes, with the quote character doubled
        inside, so they can contain ``;`` and ``=``.

        Raises:
            DatabaseConnectionError: If the string is empty or names no server
        """
        if not connection_string or not connection_string.strip():
            raise DatabaseConnectionError("Connection string is empty")

        values: Dict[str, str] = {}
        for key, value in _split_pairs(connection_string):
            canonical = _KEY_ALIASES.get(key.lower())
            if canonical:
                values[canonical] = value

        server = values.get("server")
        if not server:
            raise DatabaseConnectionError(
                "Connection string does not name a server",
                context={"keys": sorted(values)}
            )

        host, port = _split_server(server)
        return cls(
            host=host,
            port=port,
            database=values.get("database") or None,
            user=values.get("user") or None,
            password=values.get("password") or None,
        )

    def for_database(self, database: str) -> "ConnectionEndpoint":
        """Return a copy of this endpoint targeting another catalog."""
        return replace(self, database=database)

    def connect_kwargs(self, login_timeout: int = 30, query_timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Keyword arguments for ``pymssql.connect``.

        ``query_timeout`` is enforced by the driver for every statement on the
        connection (whole seconds, rounded up); None leaves statements unbounded.
        """
        kwargs: Dict[str, Any] = {
            "server": self.host,
            "port": str(self.port),
            "login_timeout": login_timeout,
            "autocommit": True,
        }
        if query_timeout:
            kwargs["timeout"] = int(math.ceil(query_timeout))
        if self.database:
            kwargs["database"] = self.database
        if self.user:
            kwargs["user"] = self.user
        if self.password:
            kwargs["password"] = self.password
        return kwargs

    def __repr__(self) -> str:
        return (
            f"ConnectionEndpoint(host={self.host}, port={self.port}, "
            f"database={self.database}, user={self.user})"
        )


def _split_server(server: str):
    """Split ``tcp:host,port`` into host and port."""
    if server.lower().startswith("tcp:"):
        server = server[4:]
    if "," in server:
        host, port_text = server.split(",", 1)
        try:
            port = int(port_text.strip())
        except ValueError:
            raise DatabaseConnectionError(
                f"Invalid port in server address: {server}"
            )
        return host.strip(), port
    return server.strip(), DEFAULT_PORT


def _split_pairs(connection_string: str) -> List[Tuple[str, str]]:
    """Split ``key=value;`` pairs, honouring quoted values."""
    pairs: List[Tuple[str, str]] = []
    text = connection_string
    length = len(text)
    i = 0
    while i < length:
        equals = text.find("=", i)
        if equals == -1:
            break
        key = text[i:equals]
        if ";" in key:
            # segment without a value
            i += key.index(";") + 1
            continue

        i = equals + 1
        while i < length and text[i] in " \t":
            i += 1

        if i < length and text[i] in "\"'":
            value, i = _read_quoted(text, i)
            while i < length and text[i] in " \t":
                i += 1
            if i < length and text[i] != ";":
                raise DatabaseConnectionError(
                    f"Unexpected characters after quoted value of {key.strip()!r}"
                )
            i += 1
        else:
            end = text.find(";", i)
            if end == -1:
                end = length
            value = text[i:end].strip()
            i = end + 1

        pairs.append((key.strip(), value))
    return pairs


def _read_quoted(text: str, start: int) -> Tuple[str, int]:
    """Read a quoted value starting at ``start``; return it and the index after the closing quote."""
    quote = text[start]
    chars: List[str] = []
    i = start + 1
    while i < len(text):
        if text[i] == quote:
            if i + 1 < len(text) and text[i + 1] == quote:
                chars.append(quote)
                i += 2
                continue
            return "".join(chars), i + 1
        chars.append(text[i])
        i += 1
    raise DatabaseConnectionError("Connection string has an unterminated quoted value")
