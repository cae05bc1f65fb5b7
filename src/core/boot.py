# ===========================================================================
# MailLens -- BOOT PIPELINE
# ===========================================================================
# FILE: src/core/boot.py
#
# WHAT THIS IS:
#   The single entry point that wires MailLens together. It builds every
#   component in dependency order and hands back one object that holds
#   them all.
#
# THE ORDER:
#     1. Load + validate config
#     2. Start logging (log dir from config)
#     3. Account identities (Accounts4.sqlite, loaded lazily)
#     4. Mail data directory + location resolver
#     5. Container parser + attachment extractor
#     6. Attachment search provider + fallback scanner
#     7. Open the Envelope Index (repository)
#
#   Steps 1-6 never touch the index. Step 7 is where a missing store or
#   missing Full Disk Access shows up.
#
# USAGE:
#   from src.core.boot import boot_mail_lens
#
#   with boot_mail_lens() as lens:
#       for mb in lens.mailboxes():
#           print(mb.name)
#
# DESIGN DECISIONS:
#   - Index failures PROPAGATE (IndexNotFoundError, AccessDeniedError).
#     There is nothing useful MailLens can do without the index, and the
#     caller needs the typed error to show the right fix.
#   - Invalid config values are reported as warnings, not errors: every
#     bad value has a working default.
#   - boot_mail_lens() is the ONLY function that constructs components.
# ===========================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..mail.accounts import AccountIdentityResolver
from ..mail.locator import MailboxLocationResolver
from ..mail.models import Mailbox, SearchFilter, Message
from ..monitoring.logger import get_app_logger, initialize_logging
from ..parsers.attachment_extractor import AttachmentExtractor
from ..parsers.emlx_parser import EmlxParser
from .config import (
    Config,
    load_config,
    resolve_envelope_index,
    resolve_mail_data_dir,
    validate_config,
)
from .exceptions import IndexNotFoundError
from .mail_index import MailIndexRepository
from .scope import apply_scope, effective_limit, filter_mailboxes
from .search_provider import DirectAttachmentScanner, SpotlightSearchProvider


@dataclass
class MailLensInstance:
    """
    Everything boot built, plus scoped shortcuts for front ends.

    The raw repository is unscoped; mailboxes() / search() apply the
    configured scope.
    """
    config: Config
    repository: MailIndexRepository
    identities: AccountIdentityResolver
    locator: MailboxLocationResolver
    extractor: AttachmentExtractor
    boot_timestamp: str = ""
    warnings: List[str] = field(default_factory=list)

    def mailboxes(self) -> List[Mailbox]:
        return filter_mailboxes(self.repository.list_mailboxes(), self.config.scope)

    def search(self, search: SearchFilter) -> List[Message]:
        return self.repository.search_messages(apply_scope(search, self.config.scope))

    def list_messages(self, mailbox_ref, limit: int = 20, offset: int = 0) -> List[Message]:
        return self.repository.list_messages(
            mailbox_ref, limit=effective_limit(limit, self.config.scope), offset=offset,
        )

    def close(self) -> None:
        self.repository.close()

    def __enter__(self) -> "MailLensInstance":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def summary(self) -> str:
        """Human-readable boot summary for the console."""
        lines = ["=" * 50, "  MAILLENS BOOT STATUS", "=" * 50]
        lines.append(f"  Booted:   {self.boot_timestamp}")
        lines.append(f"  Index:    {self.repository.index_path}")
        lines.append(f"  Data dir: {self.locator.mail_data_dir or '(none)'}")
        if self.warnings:
            lines.append("")
            lines.append("  WARNINGS:")
            for w in self.warnings:
                lines.append(f"    [!] {w}")
        lines.append("=" * 50)
        return "\n".join(lines)


def boot_mail_lens(
    config: Optional[Config] = None, project_dir: str = "."
) -> MailLensInstance:
    """
    Run the boot pipeline and return a ready MailLensInstance.

    Args:
        config: Pre-built Config (tests, embedding hosts). Loaded from
            <project_dir>/config/default_config.yaml when None.
        project_dir: Where to look for config/ when loading.

    Raises:
        IndexNotFoundError: no data directory / no Envelope Index.
        AccessDeniedError: index present but unreadable.
    """
    boot_timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    # === STEP 1: Config ===
    if config is None:
        config = load_config(project_dir)
    warnings = validate_config(config)

    # === STEP 2: Logging ===
    initialize_logging(config.paths.log_dir)
    logger = get_app_logger("boot")
    logger.info("boot_step", step=1, name="config", warnings=warnings)

    # === STEP 3: Identities ===
    identities = AccountIdentityResolver(config.paths.accounts_db)
    logger.info("boot_step", step=3, name="identities", accounts_db=config.paths.accounts_db)

    # === STEP 4: Data directory + locator ===
    data_dir = resolve_mail_data_dir(config)
    if data_dir is None:
        warnings.append(f"No V<n> data directory under {config.paths.mail_root}")
    locator = MailboxLocationResolver(
        data_dir, container_ext=config.parsing.container_ext,
    )
    logger.info("boot_step", step=4, name="locator", data_dir=str(data_dir) if data_dir else None)

    # === STEP 5: Parsers ===
    parser = EmlxParser(locator)
    extractor = AttachmentExtractor()
    logger.info("boot_step", step=5, name="parsers")

    # === STEP 6: Attachment search ===
    provider = SpotlightSearchProvider(data_dir)
    scanner = DirectAttachmentScanner(data_dir, extractor)
    logger.info("boot_step", step=6, name="attachment_search", provider=type(provider).__name__)

    # === STEP 7: Index ===
    index_path = resolve_envelope_index(config)
    if index_path is None:
        logger.error("boot_failed", step=7, reason="no data directory")
        raise IndexNotFoundError(path=config.paths.mail_root)
    repository = MailIndexRepository(
        index_path,
        locator=locator,
        identities=identities,
        parser=parser,
        extractor=extractor,
        search_provider=provider,
        attachment_scanner=scanner,
        snippet_radius=config.parsing.snippet_radius,
    )
    logger.info("boot_complete", index=str(index_path), warnings=len(warnings))

    return MailLensInstance(
        config=config,
        repository=repository,
        identities=identities,
        locator=locator,
        extractor=extractor,
        boot_timestamp=boot_timestamp,
        warnings=warnings,
    )
