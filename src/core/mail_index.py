# ============================================================================
# MailLens -- Mail Index Repository (src/core/mail_index.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   The query layer over Mail's "Envelope Index" SQLite database. It
#   turns rows into Mailbox / Message / Attachment records, and for
#   single-message requests it goes to disk (through the locator and
#   the container parser) to fill in the body and attachments.
#
# THE TABLES WE READ (undocumented, reverse-engineered):
#   messages(ROWID, mailbox, subject, sender, date_sent, date_received)
#   subjects(ROWID, subject)            messages.subject -> subjects.ROWID
#   addresses(ROWID, address, comment)  messages.sender  -> addresses.ROWID
#   mailboxes(ROWID, url)               messages.mailbox -> mailboxes.ROWID
#   recipients(message, address, type)
#   attachments(message, attachment_id, name)
#
#   messages.ROWID is also the container filename: 12345 -> 12345.emlx.
#
# SCHEMA DRIFT:
#   Columns come and go between Mail versions. At open we record the
#   column set of each table (PRAGMA table_info) and every SELECT is
#   built from it: a missing optional column is selected as NULL, a
#   missing join table drops the join, a missing attachments table
#   means "no attachments".
#
# FAILURE POLICY:
#   - Index missing                  -> IndexNotFoundError
#   - Index unreadable / open fails  -> AccessDeniedError
#   - A query the index rejects      -> QueryFailedError
#   - Container not found, container unparseable, recipients query
#     failed                         -> logged; the record comes back
#                                       without that part
#
# READ-ONLY:
#   The connection is opened with mode=ro. Nothing here writes.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import os
import sqlite3
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple, Union

from ..mail.accounts import AccountIdentityResolver, fallback_account_name
from ..mail.mailbox_url import derive_mailbox_identity, mailbox_display_name
from ..mail.models import (
    NO_SUBJECT,
    UNKNOWN_SENDER,
    Attachment,
    AttachmentSearchResult,
    Mailbox,
    Message,
    SearchFilter,
)
from ..monitoring.logger import get_app_logger
from ..parsers.attachment_extractor import AttachmentExtractor
from ..parsers.emlx_parser import EmlxParser
from ..parsers.registry import mime_type_for_filename
from .exceptions import (
    AccessDeniedError,
    AttachmentNotFoundError,
    AttachmentPathUnavailableError,
    IndexNotFoundError,
    MailLensError,
    MessageNotFoundError,
    QueryFailedError,
    exception_from_sqlite_error,
)
from .search_provider import (
    DEFAULT_SNIPPET_RADIUS,
    DirectAttachmentScanner,
    SpotlightSearchProvider,
    message_id_from_path,
    snippet_around,
)
from .sqlite_utils import open_readonly, table_columns, table_names
from .timestamps import (
    REFERENCE_OFFSET_SECONDS,
    UNIX_THRESHOLD,
    decode_timestamp,
    to_reference_seconds,
    to_unix_seconds,
)

KNOWN_TABLES = (
    "messages", "subjects", "addresses", "mailboxes", "recipients", "attachments",
)

# list_attachments needs all three; without any of them nothing can be listed
ATTACHMENT_COLUMNS = ("message", "attachment_id", "name")

UNKNOWN_SUBJECT = "Unknown"


class MailIndexRepository:
    """
    Read-only access to the Envelope Index.

    Usage:
        with MailIndexRepository(index_path, locator, identities) as repo:
            for mb in repo.list_mailboxes():
                print(mb.name, mb.account_name)
            msg = repo.get_message(12345)

    Collaborators (all optional except the index path):
        locator           MailboxLocationResolver, finds files on disk
        identities        AccountIdentityResolver, UUID -> account name
        parser            EmlxParser (default: one bound to the locator)
        extractor         AttachmentExtractor
        search_provider   attachment full-text search (default: Spotlight)
        attachment_scanner  fallback scanner (default: walk Attachments/)
    """

    def __init__(
        self,
        index_path: Union[str, Path],
        locator=None,
        identities: Optional[AccountIdentityResolver] = None,
        parser: Optional[EmlxParser] = None,
        extractor: Optional[AttachmentExtractor] = None,
        search_provider=None,
        attachment_scanner=None,
        snippet_radius: int = DEFAULT_SNIPPET_RADIUS,
    ) -> None:
        self.logger = get_app_logger("mail_index")
        self.index_path = Path(os.path.expanduser(str(index_path)))
        self.locator = locator
        self.identities = identities
        self.parser = parser or EmlxParser(locator)
        self.extractor = extractor or AttachmentExtractor()
        data_dir = getattr(locator, "mail_data_dir", None)
        self.search_provider = (
            search_provider if search_provider is not None
            else SpotlightSearchProvider(data_dir)
        )
        self.attachment_scanner = (
            attachment_scanner if attachment_scanner is not None
            else DirectAttachmentScanner(data_dir, self.extractor)
        )
        self.snippet_radius = snippet_radius

        self._conn: Optional[sqlite3.Connection] = self._open()
        self._schema: Dict[str, FrozenSet[str]] = self._read_schema()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _open(self) -> sqlite3.Connection:
        path = str(self.index_path)
        if not self.index_path.exists():
            self.logger.error("index_not_found", path=path)
            raise IndexNotFoundError(path=path)
        if not os.access(path, os.R_OK):
            self.logger.error("index_access_denied", path=path)
            raise AccessDeniedError(path=path)
        try:
            conn = open_readonly(path)
        except sqlite3.Error as e:
            self.logger.error("index_open_failed", path=path, error=str(e))
            raise AccessDeniedError(path=path) from e
        self.logger.info("index_opened", path=path)
        return conn

    def _read_schema(self) -> Dict[str, FrozenSet[str]]:
        conn = self._connection()
        try:
            present = table_names(conn)
            schema = {
                table: table_columns(conn, table)
                for table in KNOWN_TABLES if table in present
            }
        except sqlite3.Error as e:
            self.close()
            raise exception_from_sqlite_error(e, path=str(self.index_path)) from e

        self.logger.info(
            "index_schema",
            tables=sorted(schema),
            columns={t: sorted(cols) for t, cols in schema.items()},
        )
        return schema

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            self.logger.info("index_closed", path=str(self.index_path))

    def __enter__(self) -> "MailIndexRepository":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise QueryFailedError("Mail index is closed")
        return self._conn

    # ------------------------------------------------------------------
    # SQL building blocks
    # ------------------------------------------------------------------

    def has_table(self, table: str) -> bool:
        return table in self._schema

    def has_column(self, table: str, column: str) -> bool:
        return column.lower() in self._schema.get(table, frozenset())

    def _col(self, table: str, alias: str, column: str) -> str:
        """alias.column if it exists, else NULL."""
        return f"{alias}.{column}" if self.has_column(table, column) else "NULL"

    def _message_query(self) -> Tuple[str, Dict[str, str]]:
        """
        SELECT ... FROM messages + joins, and the SQL expression used for
        each logical field (so WHERE clauses can reuse them).
        """
        exprs = {
            "subject": "NULL",
            "address": "NULL",
            "comment": "NULL",
            "url": "NULL",
            "mailbox": self._col("messages", "m", "mailbox"),
            "date_sent": self._col("messages", "m", "date_sent"),
            "date_received": self._col("messages", "m", "date_received"),
        }
        joins: List[str] = []

        if self.has_column("messages", "subject"):
            if self.has_table("subjects"):
                joins.append("LEFT JOIN subjects s ON m.subject = s.ROWID")
                exprs["subject"] = self._col("subjects", "s", "subject")
        if self.has_column("messages", "sender") and self.has_table("addresses"):
            joins.append("LEFT JOIN addresses a ON m.sender = a.ROWID")
            exprs["address"] = self._col("addresses", "a", "address")
            exprs["comment"] = self._col("addresses", "a", "comment")
        if self.has_column("messages", "mailbox") and self.has_table("mailboxes"):
            joins.append("LEFT JOIN mailboxes mb ON m.mailbox = mb.ROWID")
            exprs["url"] = self._col("mailboxes", "mb", "url")

        sql = (
            "SELECT m.ROWID, {subject}, {address}, {comment}, {date_sent}, "
            "{date_received}, {mailbox}, {url} FROM messages m"
        ).format(**exprs)
        if joins:
            sql += " " + " ".join(joins)
        return sql, exprs

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> List[tuple]:
        try:
            return self._connection().execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as e:
            self.logger.error("query_failed", sql=sql, error=str(e))
            raise exception_from_sqlite_error(e, path=str(self.index_path)) from e

    def _account_name(self, identifier: str) -> str:
        if self.identities is None:
            return fallback_account_name(identifier)
        return self.identities.display_name(identifier)

    @staticmethod
    def _received_bound(expr: str, op: str) -> str:
        # Rows hold either Unix seconds or seconds since 2001; each row is
        # compared against the bound encoded in its own regime.
        return (
            f"(({expr} > {UNIX_THRESHOLD} AND {expr} {op} ?) OR "
            f"({expr} <= {UNIX_THRESHOLD} AND {expr} {op} ?))"
        )

    @staticmethod
    def _received_order(expr: str) -> str:
        """Sort key in Unix seconds whichever regime the row is in."""
        return (
            f"(CASE WHEN {expr} > {UNIX_THRESHOLD} THEN {expr} "
            f"ELSE {expr} + {REFERENCE_OFFSET_SECONDS} END)"
        )

    @staticmethod
    def _row_to_message(row: tuple) -> Message:
        mailbox_id = row[6]
        return Message(
            id=int(row[0]),
            subject=row[1] or NO_SUBJECT,
            sender_address=row[2] or UNKNOWN_SENDER,
            sender_name=row[3] or None,
            date_sent=decode_timestamp(row[4]),
            date_received=decode_timestamp(row[5]),
            mailbox_id=int(mailbox_id) if mailbox_id is not None else None,
            mailbox_name=mailbox_display_name(row[7]),
        )

    # ------------------------------------------------------------------
    # Mailboxes
    # ------------------------------------------------------------------

    def list_mailboxes(self) -> List[Mailbox]:
        """Every mailbox row, with name and account derived from its URL."""
        url_expr = self._col("mailboxes", "mb", "url")
        rows = self._execute(f"SELECT mb.ROWID, {url_expr} FROM mailboxes mb")
        result = []
        for row_id, url in rows:
            name, account = derive_mailbox_identity(url, self._account_name)
            result.append(Mailbox(id=int(row_id), name=name, url=url, account_name=account))
        self.logger.info("mailboxes_listed", count=len(result))
        return result

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def search_messages(self, search: SearchFilter) -> List[Message]:
        """
        Messages matching every set field of `search`, newest first.

        subject / sender / mailbox are case-insensitive substring
        matches (LIKE). Date bounds are inclusive.
        """
        sql, exprs = self._message_query()
        clauses: List[str] = []
        params: List[Any] = []

        if search.subject:
            clauses.append(f"{exprs['subject']} LIKE ?")
            params.append(f"%{search.subject}%")
        if search.sender:
            clauses.append(f"{exprs['address']} LIKE ?")
            params.append(f"%{search.sender}%")
        if search.mailbox:
            clauses.append(f"{exprs['url']} LIKE ?")
            params.append(f"%{search.mailbox}%")
        if search.received_after is not None:
            clauses.append(self._received_bound(exprs["date_received"], ">="))
            params += [
                to_unix_seconds(search.received_after),
                to_reference_seconds(search.received_after),
            ]
        if search.received_before is not None:
            clauses.append(self._received_bound(exprs["date_received"], "<="))
            params += [
                to_unix_seconds(search.received_before),
                to_reference_seconds(search.received_before),
            ]

        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += f" ORDER BY {self._received_order(exprs['date_received'])} DESC LIMIT ?"
        params.append(max(0, int(search.limit)))

        messages = [self._row_to_message(r) for r in self._execute(sql, params)]
        self.logger.info(
            "search_complete", results=len(messages), limit=search.limit,
            filters=[c.split(" ", 1)[0] for c in clauses],
        )
        return messages

    def list_messages(
        self, mailbox_ref: Union[str, int], limit: int = 20, offset: int = 0
    ) -> List[Message]:
        """
        One page of a mailbox, newest first.

        mailbox_ref is either a mailbox ROWID ("42") or a substring of
        the mailbox URL ("INBOX").
        """
        sql, exprs = self._message_query()
        ref = str(mailbox_ref).strip()
        if ref.isdigit():
            sql += f" WHERE {exprs['mailbox']} = ?"
            params: List[Any] = [int(ref)]
        else:
            sql += f" WHERE {exprs['url']} LIKE ?"
            params = [f"%{ref}%"]
        sql += f" ORDER BY {self._received_order(exprs['date_received'])} DESC LIMIT ? OFFSET ?"
        params += [max(0, int(limit)), max(0, int(offset))]

        messages = [self._row_to_message(r) for r in self._execute(sql, params)]
        self.logger.info(
            "mailbox_listed", mailbox=ref, results=len(messages),
            limit=limit, offset=offset,
        )
        return messages

    def get_message(self, message_id: int) -> Message:
        """
        One message with recipients, and (when its container file can
        be found and parsed) body, HTML body, attachments and Message-ID.

        Raises MessageNotFoundError if there is no such row.
        """
        sql, _ = self._message_query()
        rows = self._execute(sql + " WHERE m.ROWID = ?", [int(message_id)])
        if not rows:
            raise MessageNotFoundError(message_id=message_id)

        row = rows[0]
        message = replace(
            self._row_to_message(row),
            recipients=tuple(self._recipients(int(message_id))),
        )
        return self._enrich_from_container(message, row[7])

    def _recipients(self, message_id: int) -> List[str]:
        if not (self.has_table("recipients") and self.has_table("addresses")):
            return []
        sql = (
            "SELECT a.address FROM recipients r "
            "LEFT JOIN addresses a ON r.address = a.ROWID "
            "WHERE r.message = ?"
        )
        try:
            rows = self._connection().execute(sql, (message_id,)).fetchall()
        except sqlite3.Error as e:
            self.logger.warning(
                "recipients_query_failed", message_id=message_id, error=str(e),
            )
            return []
        return [r[0] for r in rows if r[0]]

    def _enrich_from_container(self, message: Message, mailbox_url: Optional[str]) -> Message:
        if self.locator is None or not mailbox_url:
            self.logger.info(
                "container_skipped", message_id=message.id,
                reason="no locator" if self.locator is None else "no mailbox url",
            )
            return message

        try:
            container = self.locator.find_container_path(mailbox_url, message.id)
            if container is None:
                self.logger.info("container_missing", message_id=message.id)
                return message
            parsed = self.parser.parse_file(container)
        except (MailLensError, OSError, ValueError) as e:
            self.logger.warning(
                "container_parse_failed", message_id=message.id,
                error_type=type(e).__name__, error=str(e),
            )
            return message

        return replace(
            message,
            body=parsed.body,
            html_body=parsed.html_body,
            attachments=parsed.attachments,
            message_id=parsed.message_id or message.message_id,
        )

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------

    def list_attachments(self, message_id: int) -> List[Attachment]:
        """
        Attachments the index records for a message, each resolved to a
        file on disk when possible (path None otherwise).
        """
        if not self.has_table("attachments"):
            self.logger.info("attachments_table_missing", message_id=message_id)
            return []
        missing = [
            c for c in ATTACHMENT_COLUMNS if not self.has_column("attachments", c)
        ]
        if missing:
            self.logger.info(
                "attachments_columns_missing", message_id=message_id, missing=missing,
            )
            return []

        url_expr = "NULL"
        join = ""
        if self.has_column("messages", "mailbox") and self.has_table("mailboxes"):
            url_expr = self._col("mailboxes", "mb", "url")
            join = " LEFT JOIN mailboxes mb ON m.mailbox = mb.ROWID"
        sql = (
            f"SELECT at.attachment_id, at.name, {url_expr} "
            "FROM attachments at JOIN messages m ON at.message = m.ROWID"
            + join + " WHERE at.message = ?"
        )

        attachments: List[Attachment] = []
        for attachment_id, name, url in self._execute(sql, [int(message_id)]):
            if attachment_id is None or not name:
                continue
            path = None
            if self.locator is not None:
                found = self.locator.find_attachment_path(
                    url, message_id, str(attachment_id), name
                )
                path = str(found) if found is not None else None
            size = 0
            if path is not None:
                try:
                    size = os.path.getsize(path)
                except OSError:
                    size = 0
            attachments.append(Attachment(
                filename=name,
                mime_type=mime_type_for_filename(name),
                size=size,
                path=path,
            ))

        self.logger.info(
            "attachments_listed", message_id=message_id, count=len(attachments),
            on_disk=sum(1 for a in attachments if a.path),
        )
        return attachments

    def get_attachment_content(
        self, message_id: int, filename: str, extract_text: bool = True
    ) -> str:
        """
        Text of one attachment (or, with extract_text=False, a short
        description of it).

        Raises AttachmentNotFoundError when the message has no
        attachment with exactly that filename, and
        AttachmentPathUnavailableError when it has one that isn't on
        disk.
        """
        attachment = next(
            (a for a in self.list_attachments(message_id) if a.filename == filename),
            None,
        )
        if attachment is None:
            raise AttachmentNotFoundError(filename=filename)
        if attachment.path is None:
            raise AttachmentPathUnavailableError(filename=filename)

        if not extract_text:
            return (
                f"Attachment: {attachment.filename} "
                f"({attachment.mime_type}, {attachment.size} bytes)\n"
                f"Path: {attachment.path}"
            )
        return self.extractor.extract_text(attachment.path, attachment.mime_type)

    def search_attachments(self, query: str, limit: int = 20) -> List[AttachmentSearchResult]:
        """
        Attachments whose content contains `query`: search provider
        first, then the direct scanner for whatever slots are left.
        """
        results: List[AttachmentSearchResult] = []
        if not query or limit <= 0:
            return results
        seen = set()

        def add_paths(paths) -> None:
            for path in paths:
                if len(results) >= limit:
                    return
                if path in seen:
                    continue
                seen.add(path)
                result = self._attachment_result(path, query)
                if result is not None:
                    results.append(result)

        add_paths(self.search_provider.find_paths(query, limit))
        from_provider = len(results)
        if len(results) < limit and self.attachment_scanner is not None:
            add_paths(self.attachment_scanner.find_paths(query, limit))

        self.logger.info(
            "attachment_search_complete", query=query, results=len(results),
            from_provider=from_provider, from_scanner=len(results) - from_provider,
        )
        return results

    def _attachment_result(self, path: str, query: str) -> Optional[AttachmentSearchResult]:
        message_id = message_id_from_path(path)
        if message_id is None:
            self.logger.info("attachment_hit_unmapped", path=path)
            return None

        try:
            text = self.extractor.extract_text(path)
        except (MailLensError, OSError) as e:
            self.logger.info("attachment_hit_unreadable", path=path, error=str(e))
            text = ""

        return AttachmentSearchResult(
            message_id=message_id,
            message_subject=self._subject_for(message_id),
            filename=os.path.basename(path),
            snippet=snippet_around(text, query, self.snippet_radius),
        )

    def _subject_for(self, message_id: int) -> str:
        sql, exprs = self._message_query()
        rows = self._execute(sql + " WHERE m.ROWID = ?", [message_id])
        if not rows:
            return UNKNOWN_SUBJECT
        return rows[0][1] or NO_SUBJECT
