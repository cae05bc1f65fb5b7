# ===========================================================================
# MailLens -- TYPED EXCEPTIONS
# ===========================================================================
# FILE: src/core/exceptions.py
#
# WHAT THIS IS:
#   Custom error types for MailLens. Instead of generic Python errors
#   that say "something went wrong," these tell you EXACTLY what failed
#   and HOW TO FIX IT.
#
# WHY THIS MATTERS:
#   The mail store is undocumented and lives behind macOS privacy
#   protection. "File not found" and "permission denied" look alike to
#   a caller but need very different fixes: the first means Mail was
#   never used on this machine, the second means the host process needs
#   Full Disk Access. Typed exceptions keep those apart.
#
# HOW IT'S USED:
#   Instead of:  raise Exception("cannot open db")
#   We write:    raise AccessDeniedError(path=index_path)
#
#   The caller catches the specific type and shows the right message:
#     try:
#         repo = MailIndexRepository(path, ...)
#     except AccessDeniedError as e:
#         show_user(e.fix_suggestion)
#     except MailLensError as e:
#         show_user(f"Error: {e} -- Fix: {e.fix_suggestion}")
#
# PROPAGATION RULES:
#   - Structural failures (index missing, unreadable, query rejected)
#     propagate to the caller as one of these types.
#   - Failures inside enrichment steps (finding a container file,
#     parsing MIME, resolving an account) are caught where they happen
#     and degrade the result instead. InvalidFormatError is raised by
#     the container parser but the repository catches it.
# ===========================================================================

from __future__ import annotations

import sqlite3


class MailLensError(Exception):
    """
    Base class for all MailLens errors.

    Attributes:
        fix_suggestion (str | None): Human-readable fix instruction.
        error_code (str | None): Machine-readable code like "IDX-001"
            for logging and tool responses.
    """

    def __init__(self, message, fix_suggestion=None, error_code=None):
        self.fix_suggestion = fix_suggestion
        self.error_code = error_code
        super().__init__(message)

    def to_dict(self):
        """Convert to dictionary for JSON logging or a tool response."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": str(self),
            "fix_suggestion": self.fix_suggestion,
        }


# ---------------------------------------------------------------------------
# INDEX ERRORS (IDX-xxx)
# The Envelope Index could not be opened or queried.
# ---------------------------------------------------------------------------

class IndexNotFoundError(MailLensError):
    """
    The mail index database does not exist.

    WHEN YOU'LL SEE THIS:
      - Mail has never been opened on this machine
      - No V<n> data directory under the mail root
      - paths.mail_root points somewhere else
    """
    def __init__(self, message=None, path=None):
        detail = f" Looked for: {path}" if path else ""
        super().__init__(
            message or f"Mail database not found.{detail}",
            fix_suggestion=(
                "Make sure Mail has been used on this system, or set "
                "MAILLENS_MAIL_ROOT / paths.mail_root to the Mail folder."
            ),
            error_code="IDX-001",
        )


class AccessDeniedError(MailLensError):
    """
    The file exists but cannot be read.

    WHEN YOU'LL SEE THIS:
      - The host process lacks Full Disk Access (macOS privacy)
      - File permissions were changed by hand
    """
    def __init__(self, message=None, path=None):
        detail = f" Path: {path}" if path else ""
        super().__init__(
            message or f"Access denied to Mail database.{detail}",
            fix_suggestion=(
                "Grant Full Disk Access to the application running MailLens "
                "(System Settings > Privacy & Security > Full Disk Access)."
            ),
            error_code="IDX-002",
        )


class QueryFailedError(MailLensError):
    """The index rejected a query (schema drift, locked file, bad SQL)."""
    def __init__(self, message=None, detail=None):
        suffix = f": {detail}" if detail else ""
        super().__init__(
            message or f"Database query failed{suffix}",
            fix_suggestion=(
                "The Mail index schema may have changed. Close Mail and "
                "retry; if it persists, report the Mail version."
            ),
            error_code="IDX-003",
        )


# ---------------------------------------------------------------------------
# ENTITY ERRORS (ENT-xxx)
# The index opened fine but the requested record is not there.
# ---------------------------------------------------------------------------

class MessageNotFoundError(MailLensError):
    """No message row with the requested identifier."""
    def __init__(self, message=None, message_id=None):
        super().__init__(
            message or f"Email not found with ID: {message_id}",
            fix_suggestion="Search or list a mailbox to get a valid message ID.",
            error_code="ENT-001",
        )
        self.message_id = message_id


class AttachmentNotFoundError(MailLensError):
    """The message has no attachment with that filename, or the file vanished."""
    def __init__(self, message=None, filename=None):
        super().__init__(
            message or f"Attachment not found: {filename}",
            fix_suggestion="List the message's attachments to get exact filenames.",
            error_code="ENT-002",
        )
        self.filename = filename


class AttachmentPathUnavailableError(MailLensError):
    """
    The attachment is listed in the index but has no file on disk.

    WHEN YOU'LL SEE THIS:
      - IMAP account set to not download attachments
      - Mail purged the local copy to save space
    """
    def __init__(self, message=None, filename=None):
        super().__init__(
            message or f"Attachment path not available: {filename}",
            fix_suggestion=(
                "Open the message in Mail once so the attachment is "
                "downloaded, then retry."
            ),
            error_code="ENT-003",
        )
        self.filename = filename


# ---------------------------------------------------------------------------
# FORMAT ERRORS (FMT-xxx)
# ---------------------------------------------------------------------------

class InvalidFormatError(MailLensError):
    """Container bytes do not have the byte-count + message shape."""
    def __init__(self, message=None, path=None):
        detail = f" ({path})" if path else ""
        super().__init__(
            message or f"Invalid email file format{detail}",
            fix_suggestion=None,
            error_code="FMT-001",
        )


# ---------------------------------------------------------------------------
# HELPER: Map sqlite3 errors to typed exceptions
# ---------------------------------------------------------------------------
# sqlite3 reports "unable to open database file" and "authorization
# denied" as OperationalError, the same class it uses for a missing
# column. The message text is the only thing that tells them apart.
# ---------------------------------------------------------------------------

_ACCESS_MARKERS = (
    "unable to open",
    "authorization denied",
    "permission denied",
    "readonly database",
    "not authorized",
)


def exception_from_sqlite_error(exc, path=None):
    """
    Convert a sqlite3 error into the appropriate typed exception.

    Returns:
        A MailLensError subclass instance, ready to raise.
    """
    text = str(exc)
    lowered = text.lower()
    if isinstance(exc, sqlite3.OperationalError) and any(
        marker in lowered for marker in _ACCESS_MARKERS
    ):
        return AccessDeniedError(path=path)
    return QueryFailedError(detail=text)
