# ============================================================================
# MailLens -- Mailbox Location Resolver (src/mail/locator.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Turns (mailbox reference, message id) into the path of the .emlx
#   container on disk, and (mailbox reference, message id, attachment
#   id, filename) into the path of a stored attachment.
#
# THE THREE LAYOUTS:
#   1. file:// (local mailboxes, older Mail versions)
#        <mailbox>/Messages/<id>.emlx
#        <mailbox>/Messages/<id>.partial.emlx
#        <mailbox>/Attachments/<id>/<attachment id>/<filename>
#
#   2. imap:// (remote-backed accounts)
#        <data root>/<account uuid>/INBOX.mbox/<store uuid>/Data/9/8/Messages/<id>.emlx
#      The part after INBOX.mbox depends on the account and Mail version,
#      so we can't build it. We build as far as the .mbox folder and then
#      search below it. Nested mailboxes nest .mbox folders:
#        [Gmail]/Sent Mail  ->  [Gmail].mbox/Sent Mail.mbox
#
#   3. local:// (On My Mac) -- no on-disk mapping we can rely on; lookups
#      return None.
#
# THE SEARCH IS INJECTED:
#   The recursive search lives behind the FileSearcher interface.
#   WalkFileSearcher uses os.walk; tests hand in a fake that records
#   what was asked for, so the resolver can be checked without building
#   a real Mail tree.
#
# NOT FOUND IS NORMAL:
#   Every lookup returns None when nothing matches. A missing file is an
#   everyday event (attachments not downloaded, message not cached) and
#   never raises.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from ..monitoring.logger import get_app_logger
from .mailbox_url import (
    MBOX_SUFFIX,
    VERSION_DIR_RE,
    MailboxReference,
    MailboxScheme,
    parse_reference,
)

DEFAULT_CONTAINER_EXT = "emlx"
PARTIAL_MARKER = ".partial"
MESSAGES_DIR = "Messages"
ATTACHMENTS_DIR = "Attachments"
EMLXPART_SUFFIX = ".emlxpart"


# -------------------------------------------------------------------
# Data root discovery
# -------------------------------------------------------------------

def find_mail_data_dir(mail_root: Union[str, Path]) -> Optional[Path]:
    """
    Highest-numbered V<n> directory under the mail root
    (~/Library/Mail/V10 beats V9). None if there isn't one.
    """
    root = Path(os.path.expanduser(str(mail_root)))
    try:
        entries = list(root.iterdir())
    except OSError:
        return None
    versions = [
        p for p in entries if p.is_dir() and VERSION_DIR_RE.match(p.name)
    ]
    if not versions:
        return None
    return max(versions, key=lambda p: int(p.name[1:]))


# -------------------------------------------------------------------
# Search capability
# -------------------------------------------------------------------

class FileSearcher:
    """
    Interface for "find a file somewhere under this folder".

    Both methods return the first match or None. Order between several
    matches is whatever the implementation walks first.
    """

    def find_first(self, root: Path, names: Sequence[str]) -> Optional[Path]:
        raise NotImplementedError

    def find_first_path_suffix(
        self, root: Path, suffix_parts: Sequence[str]
    ) -> Optional[Path]:
        """First file whose path ends with suffix_parts (one per component)."""
        raise NotImplementedError


class WalkFileSearcher(FileSearcher):
    """os.walk-based search. Can be slow on a large mail store."""

    def find_first(self, root: Path, names: Sequence[str]) -> Optional[Path]:
        wanted = set(names)
        for dirpath, _dirnames, filenames in os.walk(root):
            for name in names:
                if name in wanted and name in filenames:
                    return Path(dirpath) / name
        return None

    def find_first_path_suffix(
        self, root: Path, suffix_parts: Sequence[str]
    ) -> Optional[Path]:
        if not suffix_parts:
            return None
        parts = tuple(suffix_parts)
        filename = parts[-1]
        for dirpath, _dirnames, filenames in os.walk(root):
            if filename not in filenames:
                continue
            candidate = Path(dirpath) / filename
            if candidate.parts[-len(parts):] == parts:
                return candidate
        return None


# -------------------------------------------------------------------
# The resolver
# -------------------------------------------------------------------

class MailboxLocationResolver:
    """
    Maps mailbox references to container and attachment files.

    Usage:
        locator = MailboxLocationResolver(Path("~/Library/Mail/V10"))
        path = locator.find_container_path("imap://UUID/INBOX", 12345)
    """

    def __init__(
        self,
        mail_data_dir: Optional[Union[str, Path]],
        searcher: Optional[FileSearcher] = None,
        container_ext: str = DEFAULT_CONTAINER_EXT,
    ) -> None:
        self.mail_data_dir = (
            Path(os.path.expanduser(str(mail_data_dir))) if mail_data_dir else None
        )
        self.searcher = searcher or WalkFileSearcher()
        self.container_ext = container_ext.lstrip(".")
        self.logger = get_app_logger("locator")

    # -- names --------------------------------------------------------

    def container_names(self, message_id: Union[int, str]) -> List[str]:
        """['123.emlx', '123.partial.emlx'] -- full file first."""
        return [
            f"{message_id}.{self.container_ext}",
            f"{message_id}{PARTIAL_MARKER}.{self.container_ext}",
        ]

    def container_stem(self, container_path: Union[str, Path]) -> str:
        """'123' for 123.emlx and 123.partial.emlx."""
        name = Path(container_path).name
        suffix = f".{self.container_ext}"
        if name.endswith(suffix):
            name = name[: -len(suffix)]
        if name.endswith(PARTIAL_MARKER):
            name = name[: -len(PARTIAL_MARKER)]
        return name

    # -- directories --------------------------------------------------

    def mbox_directory(self, ref: MailboxReference) -> Optional[Path]:
        """
        <data root>/<account>/<seg1>.mbox/<seg2>.mbox/... for an IMAP
        reference. None when the data root or account is unknown.
        """
        if self.mail_data_dir is None or not ref.account_id:
            return None
        segments = ref.segments
        if not segments:
            return None
        path = self.mail_data_dir / ref.account_id
        for segment in segments:
            path = path / f"{segment}{MBOX_SUFFIX}"
        return path

    @staticmethod
    def file_mailbox_directory(ref: MailboxReference) -> Path:
        return Path(ref.path)

    # -- containers ---------------------------------------------------

    def find_container_path(
        self, mailbox_ref: Optional[str], message_id: Union[int, str]
    ) -> Optional[Path]:
        """Path to <id>.emlx / <id>.partial.emlx, or None."""
        ref = parse_reference(mailbox_ref)
        if ref is None:
            self.logger.info("container_ref_unparseable", mailbox_ref=mailbox_ref)
            return None

        if ref.scheme is MailboxScheme.FILE:
            messages_dir = self.file_mailbox_directory(ref) / MESSAGES_DIR
            for name in self.container_names(message_id):
                candidate = messages_dir / name
                if candidate.is_file():
                    self.logger.info("container_found", path=str(candidate))
                    return candidate
            self.logger.info(
                "container_not_found", layout="file", directory=str(messages_dir),
                message_id=str(message_id),
            )
            return None

        if ref.scheme is MailboxScheme.IMAP:
            mbox_dir = self.mbox_directory(ref)
            if mbox_dir is None or not mbox_dir.is_dir():
                self.logger.info(
                    "container_not_found", layout="imap",
                    directory=str(mbox_dir) if mbox_dir else None,
                    message_id=str(message_id),
                )
                return None
            found = self.searcher.find_first(mbox_dir, self.container_names(message_id))
            if found is None:
                self.logger.info(
                    "container_not_found", layout="imap", directory=str(mbox_dir),
                    message_id=str(message_id),
                )
            else:
                self.logger.info("container_found", path=str(found))
            return found

        self.logger.info(
            "container_layout_unsupported", scheme=ref.scheme.value,
            mailbox_ref=mailbox_ref,
        )
        return None

    # -- attachments --------------------------------------------------

    def find_attachment_path(
        self,
        mailbox_ref: Optional[str],
        message_id: Union[int, str],
        attachment_id: str,
        filename: str,
    ) -> Optional[Path]:
        """Path of a stored attachment file, or None."""
        ref = parse_reference(mailbox_ref)
        if ref is None or not filename:
            return None

        parts = (ATTACHMENTS_DIR, str(message_id), str(attachment_id), filename)

        if ref.scheme is MailboxScheme.FILE:
            candidate = self.file_mailbox_directory(ref).joinpath(*parts)
            return candidate if candidate.is_file() else None

        if ref.scheme is MailboxScheme.IMAP:
            mbox_dir = self.mbox_directory(ref)
            if mbox_dir is None or not mbox_dir.is_dir():
                return None
            return self.searcher.find_first_path_suffix(mbox_dir, parts)

        return None

    def find_sibling_attachment(
        self,
        container_path: Union[str, Path],
        filename: str,
        exclude: Sequence[Path] = (),
    ) -> Optional[Path]:
        """
        Attachment file stored next to a container, looked up by the
        container's own stem. Used by the container parser, which knows
        the filename from the MIME headers but not the attachment id.

        Order:
          1. <container dir>/../Attachments/<stem>/**/<filename>
          2. <container dir>/../Attachments/<stem>/<filename> (older layout,
             also reached when the container is not under Messages/)
          3. <container dir>/<stem>.<n>.emlxpart, lowest part number
             first, skipping parts in exclude. A part file carries no
             filename, so a caller resolving several attachments of one
             message passes the parts it already took to get the next.
        """
        container = Path(container_path)
        stem = self.container_stem(container)
        messages_dir = container.parent
        attachments_dir = messages_dir.parent / ATTACHMENTS_DIR / stem

        if messages_dir.name == MESSAGES_DIR and attachments_dir.is_dir():
            found = self.searcher.find_first(attachments_dir, [filename])
            if found is not None:
                return found

        legacy = attachments_dir / filename
        if legacy.is_file():
            return legacy

        for part in _emlxpart_files(messages_dir, stem):
            if part not in exclude:
                return part

        return None


def _part_number(name: str, stem: str) -> Tuple[int, ...]:
    # 812.2.emlxpart -> (2,), 812.2.1.emlxpart -> (2, 1)
    middle = name[len(stem) + 1:-len(EMLXPART_SUFFIX)]
    try:
        return tuple(int(p) for p in middle.split("."))
    except ValueError:
        return (sys.maxsize,)


def _emlxpart_files(directory: Path, stem: str) -> Iterable[Path]:
    try:
        names = os.listdir(directory)
    except OSError:
        return []
    parts = [
        n for n in names
        if n.startswith(f"{stem}.") and n.endswith(EMLXPART_SUFFIX)
    ]
    parts.sort(key=lambda n: (_part_number(n, stem), n))
    return [directory / n for n in parts]
