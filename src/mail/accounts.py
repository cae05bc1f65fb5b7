# ============================================================================
# MailLens -- Account Identity Resolver (src/mail/accounts.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Mailbox URLs name their account by UUID only:
#     imap://D34D0622-B00F-4C90-B2B4-34BCDE6BE4D5/INBOX
#   Nobody recognises a UUID. The system Accounts store
#   (~/Library/Accounts/Accounts4.sqlite) maps that UUID to the login
#   ("jane@example.com") or a description ("Work").
#
# PARENT INHERITANCE:
#   Mail accounts are often children of an internet account (Google,
#   iCloud). The child row has neither username nor description; the
#   parent row has them. We copy the parent's values down one level.
#   A parent that is itself empty leaves the child empty. We never walk
#   further, so a cycle in the data cannot loop.
#
# FAILURE MODE:
#   The Accounts store is protected by macOS privacy controls and is
#   often unreadable. That is not fatal: resolve() returns {} and
#   callers fall back to the first 8 characters of the UUID.
#
# CACHING:
#   resolve() reads the store once per resolver instance. The result is
#   never invalidated; accounts only change when the user edits them in
#   System Settings, and a restart picks that up.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import os
import sqlite3
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from ..core.sqlite_utils import open_readonly
from ..monitoring.logger import get_app_logger
from .models import AccountInfo

ACCOUNTS_QUERY = (
    "SELECT Z_PK, ZIDENTIFIER, ZACCOUNTDESCRIPTION, ZUSERNAME, ZPARENTACCOUNT "
    "FROM ZACCOUNT"
)

FALLBACK_PREFIX_LEN = 8


def fallback_account_name(identifier: str) -> str:
    """UUID prefix used when nothing better is known."""
    return identifier[:FALLBACK_PREFIX_LEN]


def _text(value) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _int(value) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def inherit_from_parents(
    accounts: Mapping[str, AccountInfo],
    pk_to_identifier: Mapping[int, str],
) -> Dict[str, AccountInfo]:
    """
    Second pass: copy username/description from the parent account
    into any account that has neither. One level only.

    Reads from the first-pass snapshot, so the order accounts are
    visited in cannot change the outcome.
    """
    resolved: Dict[str, AccountInfo] = dict(accounts)
    for identifier, info in accounts.items():
        if info.is_resolved or info.parent_pk is None:
            continue
        parent_id = pk_to_identifier.get(info.parent_pk)
        parent = accounts.get(parent_id) if parent_id is not None else None
        if parent is None or not parent.is_resolved:
            continue
        resolved[identifier] = AccountInfo(
            description=parent.description,
            username=parent.username,
            parent_pk=info.parent_pk,
        )
    return resolved


class AccountIdentityResolver:
    """
    Loads account identities once and answers "what do I call this UUID".

    Usage:
        resolver = AccountIdentityResolver("~/Library/Accounts/Accounts4.sqlite")
        resolver.display_name("D34D0622-...")   # "jane@example.com"
    """

    def __init__(self, accounts_db_path: Optional[Union[str, Path]] = None) -> None:
        self.accounts_db_path = (
            os.path.expanduser(str(accounts_db_path)) if accounts_db_path else None
        )
        self.logger = get_app_logger("accounts")
        self._cache: Optional[Dict[str, AccountInfo]] = None

    @classmethod
    def from_mapping(cls, accounts: Mapping[str, AccountInfo]) -> "AccountIdentityResolver":
        """Build a resolver with a pre-loaded cache (no database)."""
        resolver = cls(None)
        resolver._cache = dict(accounts)
        return resolver

    def resolve(self) -> Dict[str, AccountInfo]:
        """identifier -> AccountInfo. Empty dict if the store can't be read."""
        if self._cache is None:
            self._cache = self._load()
        return self._cache

    def get(self, identifier: str) -> Optional[AccountInfo]:
        return self.resolve().get(identifier)

    def display_name(self, identifier: str) -> str:
        """Prefer username (the email address), then description, then UUID prefix."""
        info = self.get(identifier)
        if info is not None:
            if info.username:
                return info.username
            if info.description:
                return info.description
        return fallback_account_name(identifier)

    def _load(self) -> Dict[str, AccountInfo]:
        path = self.accounts_db_path
        if not path or not os.path.isfile(path) or not os.access(path, os.R_OK):
            self.logger.warning("accounts_store_unreadable", path=path)
            return {}

        accounts: Dict[str, AccountInfo] = {}
        pk_to_identifier: Dict[int, str] = {}
        try:
            conn = open_readonly(path)
            try:
                for row in conn.execute(ACCOUNTS_QUERY):
                    pk, identifier = _int(row[0]), _text(row[1])
                    if pk is None or not identifier:
                        continue
                    pk_to_identifier[pk] = identifier
                    accounts[identifier] = AccountInfo(
                        description=_text(row[2]),
                        username=_text(row[3]),
                        parent_pk=_int(row[4]),
                    )
            finally:
                conn.close()
        except sqlite3.Error as e:
            self.logger.warning("accounts_store_error", path=path, error=str(e))
            return {}

        resolved = inherit_from_parents(accounts, pk_to_identifier)
        inherited = sum(
            1 for k, v in resolved.items() if v.is_resolved and not accounts[k].is_resolved
        )
        self.logger.info(
            "accounts_loaded", count=len(resolved), inherited_from_parent=inherited
        )
        return resolved
