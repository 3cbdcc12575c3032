"""MySQL access: one short-lived connection per statement."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import mysql.connector

from .config import Config

log = logging.getLogger(__name__)


def connect(config: Config):
    """Open a connection using the configured MySQL settings."""
    connection = mysql.connector.connect(
        host=config.mysql_host,
        port=config.mysql_port,
        user=config.mysql_user,
        password=config.mysql_password,
        database=config.mysql_database or None,
    )
    log.debug(
        "Connected to MySQL %s:%s/%s",
        config.mysql_host, config.mysql_port, config.mysql_database,
    )
    return connection


def quote_identifier(name: str) -> str:
    """Back-quote a (possibly schema-qualified) table name.

    orders       -> `orders`
    shop.orders  -> `shop`.`orders`
    odd`name     -> `odd``name`
    """
    parts = name.split(".")
    if not name or any(not part for part in parts) or "\x00" in name:
        raise ValueError(f"Invalid table name: {name!r}")
    return ".".join("`" + part.replace("`", "``") + "`" for part in parts)


def execute_query(
    config: Config,
    sql: str,
    params: Sequence[Any] = (),
) -> list[dict[str, Any]]:
    """Run one statement and return its rows as dicts.

    Statements that produce no result set are committed and reported as a
    single ``{"affected_rows": n}`` row.
    """
    connection = connect(config)
    try:
        cursor = connection.cursor(dictionary=True)
        try:
            cursor.execute(sql, tuple(params))
            if cursor.with_rows:
                return cursor.fetchall()
            connection.commit()
            return [{"affected_rows": cursor.rowcount}]
        finally:
            cursor.close()
    finally:
        connection.close()


def get_tables(config: Config) -> list[str]:
    rows = execute_query(config, "SHOW TABLES")
    # Each row has a single column named after the schema (Tables_in_<db>)
    return [str(next(iter(row.values()))) for row in rows]


def get_table_structure(config: Config, table: str) -> list[dict[str, Any]]:
    return execute_query(config, f"DESCRIBE {quote_identifier(table)}")


def get_table_data(config: Config, table: str, limit: int = 100) -> list[dict[str, Any]]:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise ValueError(f"limit must be a positive integer, got {limit!r}")
    return execute_query(
        config, f"SELECT * FROM {quote_identifier(table)} LIMIT %s", (limit,)
    )
