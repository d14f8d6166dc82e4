"""
Shared helper functions for integration tests.

This module provides CLI command execution and direct SQL helpers for tests
that run against a real PostgreSQL database.
"""

import json
import subprocess
from typing import Any

import psycopg

from quorumctl.constants import TABLE_ACTIONS, TABLE_OBJECTS


def run_quorumctl_command(
    command: str, database_url: str, extra_args: list[str] = None, timeout: int = 30
) -> subprocess.CompletedProcess:
    """
    Run a quorumctl command using subprocess.

    Args:
        command: The command to run ('apply', 'dry-run', 'status')
        database_url: Database URL to pass to the CLI
        extra_args: Additional CLI arguments
        timeout: Timeout in seconds

    Returns:
        CompletedProcess result
    """
    cmd = ["uv", "run", "quorumctl", command, "--postgres-url", database_url]
    if extra_args:
        cmd.extend(extra_args)

    return subprocess.run(
        cmd,
        capture_output=True,
        text=True,
        timeout=timeout,
    )


def drop_tables(conn: psycopg.Connection):
    with conn.cursor() as cur:
        for table in (TABLE_OBJECTS, TABLE_ACTIONS):
            cur.execute(f"DROP TABLE IF EXISTS {table}")


def put_object(conn: psycopg.Connection, kind: str, name: str, body: dict[str, Any]):
    """Insert or overwrite an object, bumping its version like any writer."""
    with conn.cursor() as cur:
        cur.execute(
            f"""
            INSERT INTO {TABLE_OBJECTS} (kind, name, resource_version, body)
                VALUES (%s, %s, 1, %s)
                ON CONFLICT (kind, name) DO UPDATE
                    SET body = EXCLUDED.body,
                        resource_version = {TABLE_OBJECTS}.resource_version + 1
            """,
            (kind, name, json.dumps(body)),
        )


def get_object_body(
    conn: psycopg.Connection, kind: str, name: str
) -> dict[str, Any] | None:
    with conn.cursor() as cur:
        cur.execute(
            f"SELECT body FROM {TABLE_OBJECTS} WHERE kind = %s AND name = %s",
            (kind, name),
        )
        row = cur.fetchone()
        return row["body"] if row else None


def get_actions(conn: psycopg.Connection, cluster: str) -> list[dict[str, Any]]:
    """Get audit rows for a cluster, oldest first."""
    with conn.cursor() as cur:
        cur.execute(
            f"""
            SELECT kind, name, description, decision_ctx, executed
            FROM {TABLE_ACTIONS}
            WHERE cluster = %s
            ORDER BY created_at
            """,
            (cluster,),
        )
        return cur.fetchall()
