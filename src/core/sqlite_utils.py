"""
src/core/sqlite_utils.py

===========================================================
PURPOSE
===========================================================

Helpers for opening the mail client's SQLite files safely.

Two databases are read:
- the Envelope Index (messages, mailboxes, addresses, ...)
- the system Accounts store (ZACCOUNT)

Neither belongs to us. Mail has them open while we read, and a
stray write (even a WAL checkpoint) could corrupt the user's
mailbox. So everything here opens READ-ONLY through a URI and
never runs a PRAGMA that changes state.

===========================================================
WHY PRAGMA table_info?
===========================================================

The Envelope Index schema is undocumented and drifts between
Mail versions (columns appear, move, or vanish). Rather than
crash on "no such column", callers ask which columns exist and
build their SELECT accordingly.
"""

from __future__ import annotations

import os
import sqlite3
from pathlib import Path
from typing import FrozenSet, Union
from urllib.parse import quote


def open_readonly(db_path: Union[str, Path], timeout: float = 5.0) -> sqlite3.Connection:
    """
    Open an existing SQLite file read-only.

    mode=ro means SQLite will refuse any write and will not create the
    file if it is missing (it raises OperationalError instead).
    """
    # quote() keeps spaces ("Envelope Index") and '?' / '#' from being
    # read as URI syntax.
    uri = "file:" + quote(os.path.abspath(str(db_path))) + "?mode=ro"
    conn = sqlite3.connect(uri, uri=True, timeout=timeout)
    # Wait briefly if Mail holds a lock rather than failing immediately
    conn.execute("PRAGMA busy_timeout=5000;")
    return conn


def table_names(conn: sqlite3.Connection) -> FrozenSet[str]:
    """Names of every table in the database (lower-cased)."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table'"
    ).fetchall()
    return frozenset(str(r[0]).lower() for r in rows if r[0])


def table_columns(conn: sqlite3.Connection, table: str) -> FrozenSet[str]:
    """
    Column names of one table (lower-cased). Empty set if the table
    does not exist.

    table is interpolated, so only call this with names from our own
    code, never with user input.
    """
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return frozenset(str(r[1]).lower() for r in rows)
