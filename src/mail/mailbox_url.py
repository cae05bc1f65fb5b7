# ============================================================================
# MailLens -- Mailbox Reference Parsing (src/mail/mailbox_url.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Every row in the `mailboxes` table carries a URL-like reference.
#   Three shapes exist on disk:
#
#     imap://D34D0622-B00F-4C90-B2B4-34BCDE6BE4D5/INBOX
#     imap://14E62692-.../%5BGmail%5D/All%20Mail        (nested, encoded)
#     local://B1FE72F2-6AB9-42D2-9601-C136C6D4EA21/      (On My Mac)
#     file:///Users/jane/Library/Mail/V10/Work/Archive.mbox/
#
#   This module turns a reference into:
#     - a scheme kind (closed enum, with an UNKNOWN arm)
#     - the account identifier (host part) and mailbox path segments
#     - a display name and owning account name for the UI
#
# WHY PURE FUNCTIONS:
#   Name/account are derived, never stored. derive_mailbox_identity()
#   depends only on the reference string and the account-name lookup
#   passed in, so the same reference always gives the same answer,
#   with or without a trailing slash.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple
from urllib.parse import unquote, urlsplit

from .accounts import fallback_account_name

UNKNOWN_MAILBOX = "Unknown"
DEFAULT_MAILBOX = "Inbox"
MBOX_SUFFIX = ".mbox"

# "V10", "V11", ... -- the versioned data root under ~/Library/Mail
VERSION_DIR_RE = re.compile(r"^V\d+$")


class MailboxScheme(Enum):
    IMAP = "imap"
    LOCAL = "local"
    FILE = "file"
    UNKNOWN = "unknown"

    @classmethod
    def from_string(cls, scheme: Optional[str]) -> "MailboxScheme":
        value = (scheme or "").lower()
        for member in cls:
            if member.value == value and member is not cls.UNKNOWN:
                return member
        return cls.UNKNOWN


@dataclass(frozen=True)
class MailboxReference:
    """A mailbox URL split into the parts the resolvers need."""
    raw: str
    scheme: MailboxScheme
    account_id: str               # host part; empty for file:// URLs
    path: str                     # percent-decoded path, slashes kept

    @property
    def segments(self) -> Tuple[str, ...]:
        """Non-empty path segments, e.g. ('[Gmail]', 'All Mail')."""
        return tuple(s for s in self.path.split("/") if s)

    @property
    def last_segment(self) -> str:
        segs = self.segments
        return segs[-1] if segs else ""


def parse_reference(raw: Optional[str]) -> Optional[MailboxReference]:
    """
    Parse a raw mailbox URL. Returns None for None/empty input or a
    string that isn't URL-shaped at all.
    """
    if not raw or not raw.strip():
        return None
    try:
        parts = urlsplit(raw.strip())
    except ValueError:
        return None
    if not parts.scheme:
        return None

    # netloc, not hostname: hostname lower-cases the UUID
    host = parts.netloc.rsplit("@", 1)[-1]
    return MailboxReference(
        raw=raw,
        scheme=MailboxScheme.from_string(parts.scheme),
        account_id=host,
        path=unquote(parts.path),
    )


def _strip_mbox(name: str) -> str:
    return name.replace(MBOX_SUFFIX, "")


def derive_mailbox_identity(
    raw: Optional[str],
    account_name: Callable[[str], str] = fallback_account_name,
) -> Tuple[str, Optional[str]]:
    """
    (mailbox name, account name) for a raw reference.

    account_name maps an account identifier to a display name; pass
    AccountIdentityResolver.display_name. The default just takes the
    8-character UUID prefix.
    """
    ref = parse_reference(raw)
    if ref is None:
        return UNKNOWN_MAILBOX, None

    if ref.scheme in (MailboxScheme.IMAP, MailboxScheme.LOCAL):
        name = ref.last_segment or DEFAULT_MAILBOX
        account = account_name(ref.account_id) if ref.account_id else None
        return name, account

    if ref.scheme is MailboxScheme.FILE:
        segs = ref.segments
        version_index = next(
            (i for i, s in enumerate(segs) if VERSION_DIR_RE.match(s)), None
        )
        if version_index is None:
            return _strip_mbox(ref.last_segment) or UNKNOWN_MAILBOX, None
        after = segs[version_index + 1:]
        if not after:
            return UNKNOWN_MAILBOX, None
        return _strip_mbox(after[-1]) or UNKNOWN_MAILBOX, after[0]

    # UNKNOWN scheme
    return _strip_mbox(ref.last_segment) or UNKNOWN_MAILBOX, None


def mailbox_display_name(raw: Optional[str]) -> Optional[str]:
    """Mailbox name alone, or None when there is no reference."""
    if raw is None:
        return None
    name, _ = derive_mailbox_identity(raw)
    return name
