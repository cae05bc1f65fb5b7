# ============================================================================
# MailLens -- Data Model (src/mail/models.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Defines the value objects every other module passes around:
#   mailboxes, messages, attachments, search results, and the result of
#   parsing one container file.
#
# WHY FROZEN DATACLASSES:
#   Everything here is a read-only snapshot of the mail store taken at
#   the moment of the call. Nothing holds a database cursor or an open
#   file. Freezing the dataclasses makes accidental mutation an error
#   instead of a silent bug, and lets enrichment steps build a new
#   record with dataclasses.replace() rather than patching the old one.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

NO_SUBJECT = "(No Subject)"
UNKNOWN_SENDER = "Unknown"


@dataclass(frozen=True)
class AccountInfo:
    """One row of the system accounts store, after parent inheritance."""
    description: Optional[str] = None
    username: Optional[str] = None
    parent_pk: Optional[int] = None

    @property
    def is_resolved(self) -> bool:
        return bool(self.username) or bool(self.description)


@dataclass(frozen=True)
class Mailbox:
    """
    A mailbox row. `name` and `account_name` are derived from `url`
    every time the row is read; they are not stored in the index.
    """
    id: int
    name: str
    url: Optional[str] = None
    account_name: Optional[str] = None


@dataclass(frozen=True)
class Attachment:
    filename: str
    mime_type: str
    size: int = 0
    path: Optional[str] = None    # None = listed in the index, not on disk


@dataclass(frozen=True)
class Message:
    """
    One email. `id` is the index ROWID and also the stem of the
    container filename (12345 -> 12345.emlx), so it is the join key to
    everything on disk.
    """
    id: int
    subject: str = NO_SUBJECT
    sender_address: str = UNKNOWN_SENDER
    sender_name: Optional[str] = None
    recipients: Tuple[str, ...] = ()
    date_sent: Optional[datetime] = None
    date_received: Optional[datetime] = None
    mailbox_id: Optional[int] = None
    mailbox_name: Optional[str] = None
    message_id: Optional[str] = None
    body: Optional[str] = None
    html_body: Optional[str] = None
    attachments: Optional[Tuple[Attachment, ...]] = None

    @property
    def sender(self) -> str:
        """Display form: 'Name <addr>' when a display name is known."""
        if self.sender_name:
            return f"{self.sender_name} <{self.sender_address}>"
        return self.sender_address


@dataclass(frozen=True)
class AttachmentSearchResult:
    message_id: int
    message_subject: str
    filename: str
    snippet: str = ""


@dataclass(frozen=True)
class ParsedMessage:
    """What the container parser recovers from one .emlx file."""
    body: Optional[str] = None
    html_body: Optional[str] = None
    attachments: Tuple[Attachment, ...] = field(default_factory=tuple)
    message_id: Optional[str] = None


@dataclass(frozen=True)
class SearchFilter:
    """
    Optional predicates for MailIndexRepository.search_messages().
    Every field left as None imposes no constraint; the rest are ANDed.
    """
    subject: Optional[str] = None
    sender: Optional[str] = None
    mailbox: Optional[str] = None
    received_after: Optional[datetime] = None
    received_before: Optional[datetime] = None
    limit: int = 20
