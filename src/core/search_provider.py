# ============================================================================
# MailLens -- Attachment Search Providers (src/core/search_provider.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Finds attachment files whose CONTENT matches a query. The index
#   only knows attachment names, so full-text search has to come from
#   somewhere else:
#
#   1. SpotlightSearchProvider -- asks macOS Spotlight (mdfind), which
#      has usually already indexed every attachment Mail saved.
#   2. DirectAttachmentScanner -- walks the Attachments/ folders and
#      extracts text itself. Slow, but works when Spotlight is off or
#      has not caught up.
#   3. NullSearchProvider -- finds nothing (tests, non-macOS hosts).
#
#   The repository asks the provider first and fills any remaining
#   slots from the scanner.
#
# PATH -> MESSAGE:
#   A hit is just a path. message_id_from_path() recovers the message
#   ROWID from the two layouts Mail uses:
#     .../Attachments/12345/2/report.pdf      -> 12345
#     .../Messages/12345.2.emlxpart           -> 12345
#
# INTERNET ACCESS: NONE (mdfind is a local query)
# ============================================================================

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Iterator, List, Optional, Union

from ..mail.locator import EMLXPART_SUFFIX
from ..monitoring.logger import get_app_logger
from .exceptions import AttachmentNotFoundError

ATTACHMENTS_DIR = "Attachments"
CANNOT_EXTRACT_PREFIX = "Cannot extract text"
DEFAULT_SNIPPET_RADIUS = 50


# -------------------------------------------------------------------
# Helpers shared by the providers and the repository
# -------------------------------------------------------------------

def _leading_int(name: str) -> Optional[int]:
    head = name.split(".", 1)[0]
    return int(head) if head.isdigit() else None


def message_id_from_path(path: Union[str, Path]) -> Optional[int]:
    """
    Message ROWID for an attachment path, or None.

    Order: the folder after "Attachments", then a numeric .emlxpart
    name, then the first path segment whose part before the first dot
    is a number.
    """
    parts = Path(str(path)).parts
    for i, part in enumerate(parts[:-1]):
        if part == ATTACHMENTS_DIR:
            found = _leading_int(parts[i + 1])
            if found is not None:
                return found
    if parts and parts[-1].endswith(EMLXPART_SUFFIX):
        found = _leading_int(parts[-1])
        if found is not None:
            return found
    for part in parts:
        found = _leading_int(part)
        if found is not None:
            return found
    return None


def snippet_around(text: str, query: str, radius: int = DEFAULT_SNIPPET_RADIUS) -> str:
    """
    "..." + up to `radius` characters either side of the first
    case-insensitive match + "...". Empty string if there is no match.
    """
    if not query:
        return ""
    idx = text.lower().find(query.lower())
    if idx == -1:
        return ""
    start = max(0, idx - radius)
    end = min(len(text), idx + len(query) + radius)
    return "..." + text[start:end] + "..."


# -------------------------------------------------------------------
# Providers
# -------------------------------------------------------------------

class AttachmentSearchProvider:
    """Interface: paths of attachment files whose content matches."""

    def find_paths(self, query: str, limit: int) -> List[str]:
        raise NotImplementedError


class NullSearchProvider(AttachmentSearchProvider):
    def find_paths(self, query: str, limit: int) -> List[str]:
        return []


class SpotlightSearchProvider(AttachmentSearchProvider):
    """
    Spotlight content search, restricted to the mail data directory.

    No mdfind binary (Linux, stripped-down macOS) or a failing query
    gives no results, not an error.
    """

    def __init__(
        self,
        root: Optional[Union[str, Path]],
        binary: str = "mdfind",
        timeout: float = 30.0,
    ) -> None:
        self.root = str(root) if root else None
        self.binary = binary
        self.timeout = timeout
        self.logger = get_app_logger("spotlight")

    @staticmethod
    def build_query(query: str) -> str:
        # c = case-insensitive, d = diacritic-insensitive
        escaped = query.replace("\\", "\\\\").replace("'", "\\'")
        return f"kMDItemTextContent == '*{escaped}*'cd"

    def find_paths(self, query: str, limit: int) -> List[str]:
        if not self.root or not query or limit <= 0:
            return []
        cmd = [self.binary, "-onlyin", self.root, self.build_query(query)]
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout,
            )
        except FileNotFoundError:
            self.logger.info("spotlight_unavailable", binary=self.binary)
            return []
        except subprocess.TimeoutExpired:
            self.logger.warning("spotlight_timeout", timeout=self.timeout)
            return []

        if result.returncode != 0:
            self.logger.warning(
                "spotlight_failed", returncode=result.returncode,
                stderr=result.stderr.strip()[:200],
            )
            return []

        paths = [line for line in result.stdout.splitlines() if line.strip()]
        self.logger.info("spotlight_search", query=query, hits=len(paths))
        return paths[:limit]


class DirectAttachmentScanner(AttachmentSearchProvider):
    """
    Walks every Attachments/ folder under the data root and extracts
    text from each file until enough matches are found.

    Files the extractor can't read are skipped, as are paths under
    folders other than Attachments/.
    """

    def __init__(self, root: Optional[Union[str, Path]], extractor) -> None:
        self.root = Path(root) if root else None
        self.extractor = extractor
        self.logger = get_app_logger("attachment_scanner")

    def iter_attachment_files(self) -> Iterator[Path]:
        if self.root is None or not self.root.is_dir():
            return
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames.sort()
            if ATTACHMENTS_DIR not in Path(dirpath).parts:
                continue
            for name in sorted(filenames):
                yield Path(dirpath) / name

    def iter_matches(self, query: str) -> Iterator[str]:
        needle = query.lower()
        for path in self.iter_attachment_files():
            try:
                text = self.extractor.extract_text(path)
            except (OSError, AttachmentNotFoundError) as e:
                self.logger.info("scan_read_failed", path=str(path), error=str(e))
                continue
            if text.startswith(CANNOT_EXTRACT_PREFIX):
                continue
            if needle in text.lower():
                yield str(path)

    def find_paths(self, query: str, limit: int) -> List[str]:
        if not query or limit <= 0:
            return []
        found: List[str] = []
        for path in self.iter_matches(query):
            found.append(path)
            if len(found) >= limit:
                break
        return found
