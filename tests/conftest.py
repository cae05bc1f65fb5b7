# ============================================================================
# conftest.py -- Shared Test Fixtures for the MailLens Test Suite
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Pytest automatically loads this file before any test runs.
#   It provides:
#     1. sys.path setup so "from src.core.X import Y" works from any test
#     2. A throwaway log directory (tests never write into ./logs)
#     3. Builders for a synthetic mail store: an Envelope Index, an
#        Accounts database and a V10 directory tree with real .emlx
#        containers and attachment files
#
# THE FIXTURE STORE (build_mail_store):
#   Mail/V10/
#     MailData/Envelope Index
#     ACCT-1/INBOX.mbox/STORE-1/Data/Messages/812.emlx
#     ACCT-1/INBOX.mbox/STORE-1/Data/Attachments/812/2/report.txt
#     Local/Archive.mbox/Messages/900.emlx        (file:// mailbox)
#   Accounts4.sqlite  (ACCT-1 -> jane@example.com, ACCT-2 inherits "Google")
#
#   message 812  INBOX    subject + sender + recipients + attachment
#   message 813  INBOX    no subject, no sender, 2001-epoch date, no file
#   message 900  Archive  HTML body, attachment listed but not on disk
#
# INTERNET ACCESS: NONE
# ============================================================================

import os
import sys
import sqlite3
import tempfile
from dataclasses import dataclass
from pathlib import Path

import pytest

# -- sys.path setup --
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# -- logs go to a temp dir, never the working tree --
os.environ.setdefault("MAILLENS_LOG_DIR", tempfile.mkdtemp(prefix="maillens_test_logs_"))


# ============================================================================
# SECTION 0: CONTAINER BUILDERS
# ============================================================================

PLIST_TRAILER = (
    b'<?xml version="1.0" encoding="UTF-8"?>\n'
    b"<plist version=\"1.0\"><dict><key>flags</key><integer>8590195713</integer>"
    b"</dict></plist>\n"
)


def make_emlx(message: str) -> bytes:
    """Wrap an RFC 822 message in the byte-count + plist container shape."""
    body = message.encode("utf-8")
    return str(len(body)).encode("ascii") + b"\n" + body + PLIST_TRAILER


MESSAGE_812 = (
    "Message-ID: <abc@x>\r\n"
    "From: Alice <alice@example.com>\r\n"
    "Subject: Quarterly report\r\n"
    'Content-Type: multipart/mixed; boundary="OUTER"\r\n'
    "\r\n"
    "This is a multi-part message in MIME format.\r\n"
    "--OUTER\r\n"
    "Content-Type: text/plain; charset=utf-8\r\n"
    "\r\n"
    "Hello Bob, the report is attached.\r\n"
    "--OUTER\r\n"
    'Content-Type: text/plain; name="report.txt"\r\n'
    'Content-Disposition: attachment; filename="report.txt"\r\n'
    "Content-Transfer-Encoding: base64\r\n"
    "\r\n"
    "VGhlIHF1YXJ0ZXJseSByZXZlbnVlIGdyZXcu\r\n"
    "--OUTER--\r\n"
)

MESSAGE_900 = (
    "Message-ID: <inv-900@example.com>\n"
    "Subject: Invoice\n"
    "Content-Type: text/html; charset=utf-8\n"
    "\n"
    "<html><body><p>Invoice <b>#900</b> is due.</p></body></html>\n"
)

REPORT_TEXT = "The quarterly revenue grew by ten percent this year."


# ============================================================================
# SECTION 1: DATABASE BUILDERS
# ============================================================================

ENVELOPE_SCHEMA = """
CREATE TABLE messages (
    ROWID INTEGER PRIMARY KEY, mailbox INTEGER, subject INTEGER,
    sender INTEGER, date_sent INTEGER, date_received INTEGER
);
CREATE TABLE subjects (ROWID INTEGER PRIMARY KEY, subject TEXT);
CREATE TABLE addresses (ROWID INTEGER PRIMARY KEY, address TEXT, comment TEXT);
CREATE TABLE mailboxes (ROWID INTEGER PRIMARY KEY, url TEXT);
CREATE TABLE recipients (
    ROWID INTEGER PRIMARY KEY, message INTEGER, address INTEGER, type INTEGER
);
CREATE TABLE attachments (
    ROWID INTEGER PRIMARY KEY, message INTEGER, attachment_id TEXT, name TEXT
);
"""


def build_envelope_index(path, mailboxes, subjects=(), addresses=(),
                         messages=(), recipients=(), attachments=(),
                         schema=ENVELOPE_SCHEMA):
    """
    Write an Envelope Index at `path`.

    Each row argument is a sequence of tuples in column order (ROWID
    first). Returns the path.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(schema)
        conn.executemany("INSERT INTO mailboxes VALUES (?, ?)", mailboxes)
        conn.executemany("INSERT INTO subjects VALUES (?, ?)", subjects)
        conn.executemany("INSERT INTO addresses VALUES (?, ?, ?)", addresses)
        conn.executemany("INSERT INTO messages VALUES (?, ?, ?, ?, ?, ?)", messages)
        conn.executemany("INSERT INTO recipients VALUES (?, ?, ?, ?)", recipients)
        conn.executemany("INSERT INTO attachments VALUES (?, ?, ?, ?)", attachments)
        conn.commit()
    finally:
        conn.close()
    return path


def build_accounts_db(path, rows):
    """rows: (Z_PK, ZIDENTIFIER, ZACCOUNTDESCRIPTION, ZUSERNAME, ZPARENTACCOUNT)"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    try:
        conn.execute(
            "CREATE TABLE ZACCOUNT (Z_PK INTEGER PRIMARY KEY, ZIDENTIFIER TEXT, "
            "ZACCOUNTDESCRIPTION TEXT, ZUSERNAME TEXT, ZPARENTACCOUNT INTEGER)"
        )
        conn.executemany("INSERT INTO ZACCOUNT VALUES (?, ?, ?, ?, ?)", rows)
        conn.commit()
    finally:
        conn.close()
    return path


ACCOUNT_ROWS = [
    (1, "ACCT-1", None, "jane@example.com", None),
    (2, "PARENT-G", "Google", None, None),
    (3, "ACCT-2", None, None, 2),
]


# ============================================================================
# SECTION 2: THE FIXTURE MAIL STORE
# ============================================================================

@dataclass
class MailStore:
    """Paths of one synthetic mail store."""
    mail_root: Path
    data_dir: Path
    index_path: Path
    accounts_db: Path
    inbox_data: Path          # .../INBOX.mbox/STORE-1/Data
    archive_dir: Path         # .../Local/Archive.mbox
    report_path: Path


def build_mail_store(base) -> MailStore:
    base = Path(base)
    mail_root = base / "Mail"
    data_dir = mail_root / "V10"

    # IMAP mailbox: the store UUID level is what the locator must search past
    inbox_data = data_dir / "ACCT-1" / "INBOX.mbox" / "STORE-1" / "Data"
    (inbox_data / "Messages").mkdir(parents=True)
    (inbox_data / "Messages" / "812.emlx").write_bytes(make_emlx(MESSAGE_812))
    report_dir = inbox_data / "Attachments" / "812" / "2"
    report_dir.mkdir(parents=True)
    report_path = report_dir / "report.txt"
    report_path.write_text(REPORT_TEXT, encoding="utf-8")

    # file:// mailbox
    archive_dir = data_dir / "Local" / "Archive.mbox"
    (archive_dir / "Messages").mkdir(parents=True)
    (archive_dir / "Messages" / "900.emlx").write_bytes(make_emlx(MESSAGE_900))

    # an older version folder that must lose to V10
    (mail_root / "V9").mkdir()

    index_path = build_envelope_index(
        data_dir / "MailData" / "Envelope Index",
        mailboxes=[
            (1, "imap://ACCT-1/INBOX"),
            (2, "file://" + str(archive_dir)),
            (3, "imap://ACCT-1/Trash"),
            (4, "imap://ACCT-2/%5BGmail%5D/All%20Mail"),
        ],
        subjects=[(1, "Quarterly report"), (2, "Invoice")],
        addresses=[
            (1, "alice@example.com", "Alice"),
            (2, "bob@example.com", None),
            (3, "carol@example.com", ""),
        ],
        messages=[
            # 812: Unix-seconds dates (2023-11-14T22:13:20Z)
            (812, 1, 1, 1, 1699999000, 1700000000),
            # 813: seconds since 2001 (2023-03-08T20:26:40Z)
            (813, 1, None, None, None, 700000000),
            # 900: 2020-09-13T12:26:40Z
            (900, 2, 2, 2, 1600000000, 1600000000),
        ],
        recipients=[(1, 812, 2, 0), (2, 812, 3, 0)],
        attachments=[
            (1, 812, "2", "report.txt"),
            (2, 900, "3", "missing.pdf"),
        ],
    )
    accounts_db = build_accounts_db(base / "Accounts" / "Accounts4.sqlite", ACCOUNT_ROWS)

    return MailStore(
        mail_root=mail_root,
        data_dir=data_dir,
        index_path=index_path,
        accounts_db=accounts_db,
        inbox_data=inbox_data,
        archive_dir=archive_dir,
        report_path=report_path,
    )


@pytest.fixture
def mail_store(tmp_path):
    """A freshly built synthetic mail store under tmp_path."""
    return build_mail_store(tmp_path)


class RecordingSearcher:
    """
    FileSearcher fake: returns canned answers and records every call.

    answers maps a filename to the Path to return for it.
    """

    def __init__(self, answers=None):
        self.answers = dict(answers or {})
        self.calls = []

    def find_first(self, root, names):
        self.calls.append(("find_first", Path(root), tuple(names)))
        for name in names:
            if name in self.answers:
                return self.answers[name]
        return None

    def find_first_path_suffix(self, root, suffix_parts):
        self.calls.append(("find_first_path_suffix", Path(root), tuple(suffix_parts)))
        return self.answers.get(suffix_parts[-1])


class StaticSearchProvider:
    """AttachmentSearchProvider fake returning fixed paths."""

    def __init__(self, paths):
        self.paths = [str(p) for p in paths]
        self.queries = []

    def find_paths(self, query, limit):
        self.queries.append((query, limit))
        return self.paths[:limit]
