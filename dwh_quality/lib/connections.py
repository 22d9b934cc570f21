"""Connection registry for the warehouse store.

Connections are Ibis backends, created once per name and reused, so a
config that checks bronze and then silver opens the database once.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

import ibis

from dwh_quality.lib.env import expand_env_vars
from dwh_quality.lib.errors import ConfigurationError, SourceConnectionError

logger = logging.getLogger(__name__)

__all__ = [
    "DATABASE_SOURCE_TYPES",
    "close_all_connections",
    "close_connection",
    "get_connection",
    "get_connection_count",
    "list_connections",
]

_connections: Dict[str, ibis.BaseBackend] = {}


def _create_mssql_connection(options: Dict[str, Any]) -> ibis.BaseBackend:
    """SQL Server through ibis-framework[mssql] (pyodbc underneath)."""
    user = expand_env_vars(options.get("user", ""))
    password = expand_env_vars(options.get("password", ""))
    return ibis.mssql.connect(
        host=expand_env_vars(options.get("host", "localhost")),
        port=options.get("port", 1433),
        database=expand_env_vars(options.get("database", "DataWarehouse")),
        user=user or None,
        password=password or None,
        driver=options.get("driver", "ODBC Driver 17 for SQL Server"),
    )


def _create_postgres_connection(options: Dict[str, Any]) -> ibis.BaseBackend:
    user = expand_env_vars(options.get("user", ""))
    password = expand_env_vars(options.get("password", ""))
    return ibis.postgres.connect(
        host=expand_env_vars(options.get("host", "localhost")),
        port=options.get("port", 5432),
        database=expand_env_vars(options.get("database", "")),
        user=user or None,
        password=password or None,
    )


def _create_duckdb_connection(options: Dict[str, Any]) -> ibis.BaseBackend:
    """DuckDB file (or in-memory when no path is given)."""
    path = expand_env_vars(options.get("path", "") or "")
    return ibis.duckdb.connect(path or ":memory:", read_only=bool(path))


_FACTORIES: Dict[str, Callable[[Dict[str, Any]], ibis.BaseBackend]] = {
    "database_mssql": _create_mssql_connection,
    "database_postgres": _create_postgres_connection,
    "duckdb": _create_duckdb_connection,
}

DATABASE_SOURCE_TYPES = tuple(_FACTORIES)


def get_connection(
    connection_name: str,
    source_type: str,
    options: Dict[str, Any],
) -> ibis.BaseBackend:
    """Get or create a connection by name.

    Args:
        connection_name: Unique name for this connection
        source_type: One of DATABASE_SOURCE_TYPES
        options: Connection options (host, database, user, password, etc.)

    Returns:
        Ibis backend connection

    Raises:
        ConfigurationError: unsupported source type
        SourceConnectionError: the backend refused the connection
    """
    if connection_name in _connections:
        logger.debug("Reusing existing connection: %s", connection_name)
        return _connections[connection_name]

    factory = _FACTORIES.get(source_type)
    if factory is None:
        raise ConfigurationError(
            f"Unsupported database source type: {source_type}",
            field="source.type",
            value=source_type,
            suggestion=f"Use one of: {', '.join(DATABASE_SOURCE_TYPES)}",
        )

    logger.info("Creating new connection: %s (%s)", connection_name, source_type)
    try:
        con = factory(options)
    except Exception as e:
        raise SourceConnectionError(
            f"Could not connect to {source_type} source",
            connection_name=connection_name,
            host=options.get("host"),
            cause=e,
        ) from e

    _connections[connection_name] = con
    return con


def close_connection(connection_name: str) -> None:
    """Close a specific connection."""
    if connection_name not in _connections:
        return
    con = _connections.pop(connection_name)
    try:
        con.disconnect()
        logger.info("Closed connection: %s", connection_name)
    except Exception as e:
        logger.warning("Error closing connection %s: %s", connection_name, e)


def close_all_connections() -> None:
    """Release every registered connection."""
    for name in list(_connections):
        close_connection(name)


def list_connections() -> List[str]:
    return list(_connections)


def get_connection_count() -> int:
    return len(_connections)
