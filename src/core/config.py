# ============================================================================
# MailLens -- Configuration (src/core/config.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   The single source of truth for every MailLens setting: where the
#   mail store lives, how containers are named, and how far a caller
#   may see into the store (scope).
#
# HOW IT WORKS:
#   1. Dataclasses define every setting with a default
#   2. config/default_config.yaml can override those defaults
#   3. Environment variables override YAML (machine-specific paths)
#
#   Priority: env vars > YAML file > hardcoded defaults
#
# READ-ONLY:
#   MailLens never writes configuration. The YAML file is edited by
#   hand or by whatever front end embeds the engine.
#
# USAGE:
#   from src.core.config import load_config
#   config = load_config(".")
#   config.paths.mail_root            # "~/Library/Mail"
#   resolve_envelope_index(config)    # Path(".../V10/MailData/Envelope Index")
# ============================================================================

from __future__ import annotations

import os
import sys
import yaml
import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..mail.locator import find_mail_data_dir

ENVELOPE_INDEX_RELATIVE = os.path.join("MailData", "Envelope Index")

DATE_RANGES = (
    "all", "last_year", "last_six_months", "last_month", "last_week", "custom",
)


def _expand(path: str) -> str:
    return os.path.normpath(os.path.expanduser(os.path.expandvars(path)))


# -------------------------------------------------------------------
# Sub-configs: each one maps to a section in the YAML file
# -------------------------------------------------------------------

@dataclass
class PathsConfig:
    """
    Where the mail store lives and where logs go.

    mail_data_dir and envelope_index are normally left empty: the
    highest V<n> folder under mail_root is found at startup. Set them
    only to point at a copied or test store.

    Environment overrides:
      MAILLENS_MAIL_ROOT, MAILLENS_DATA_DIR, MAILLENS_ACCOUNTS_DB,
      MAILLENS_LOG_DIR
    """
    mail_root: str = "~/Library/Mail"
    mail_data_dir: str = ""
    envelope_index: str = ""
    accounts_db: str = "~/Library/Accounts/Accounts4.sqlite"
    log_dir: str = "logs"

    def __post_init__(self) -> None:
        root_env = os.getenv("MAILLENS_MAIL_ROOT")
        if root_env:
            self.mail_root = root_env

        data_env = os.getenv("MAILLENS_DATA_DIR")
        if data_env:
            self.mail_data_dir = data_env

        accounts_env = os.getenv("MAILLENS_ACCOUNTS_DB")
        if accounts_env:
            self.accounts_db = accounts_env

        log_env = os.getenv("MAILLENS_LOG_DIR")
        if log_env:
            self.log_dir = log_env

        # Expand ~ and $VARS so every consumer sees an absolute-ish path
        for name in ("mail_root", "mail_data_dir", "envelope_index", "accounts_db"):
            value = getattr(self, name)
            if value:
                setattr(self, name, _expand(value))


@dataclass
class ParsingConfig:
    """
    Container and snippet settings.

    container_ext: extension of message containers ("emlx" gives
        12345.emlx and 12345.partial.emlx)
    snippet_radius: characters kept either side of an attachment
        search match
    """
    container_ext: str = "emlx"
    snippet_radius: int = 50


@dataclass
class ScopeConfig:
    """
    How much of the mailbox a caller may see.

    excluded_mailboxes / allowed_mailboxes are case-insensitive
    substrings of the mailbox name. allowed_mailboxes = None means
    "everything not excluded".

    date_range limits searches to recent mail:
      all | last_year | last_six_months | last_month | last_week | custom
    custom uses custom_start_date (ISO 8601).
    """
    max_results: int = 100
    excluded_mailboxes: List[str] = field(default_factory=lambda: ["Trash", "Junk"])
    allowed_mailboxes: Optional[List[str]] = None
    date_range: str = "all"
    custom_start_date: Optional[str] = None


@dataclass
class Config:
    """Top-level configuration: one field per YAML section."""
    paths: PathsConfig = field(default_factory=PathsConfig)
    parsing: ParsingConfig = field(default_factory=ParsingConfig)
    scope: ScopeConfig = field(default_factory=ScopeConfig)


# -------------------------------------------------------------------
# Helper: build a dataclass from a YAML dict
# -------------------------------------------------------------------

def _dict_to_dataclass(cls, data):
    """
    Build a dataclass from a YAML section, warning about keys that
    don't match a field.

    A misspelt key ("max_result") would otherwise be dropped silently
    and the default would win. We print a [WARN] to stderr and suggest
    the closest field by substring match.
    """
    if not isinstance(data, dict):
        return cls()

    known_fields = {f.name for f in dataclasses.fields(cls)}

    filtered = {}
    for k, v in data.items():
        if k in known_fields:
            filtered[k] = v
        else:
            suggestion = ""
            for field_name in sorted(known_fields):
                if k in field_name or field_name in k:
                    suggestion = " Did you mean '" + field_name + "'?"
                    break
            print(
                "  [WARN] config/" + cls.__name__ + ": YAML key '"
                + str(k) + "' is not a recognized setting"
                + " -- IGNORED (using default)." + suggestion,
                file=sys.stderr,
            )

    return cls(**filtered)


# -------------------------------------------------------------------
# Main entry point: load_config()
# -------------------------------------------------------------------

def load_config(
    project_dir: str = ".",
    config_filename: str = "default_config.yaml",
) -> Config:
    """
    Load configuration from <project_dir>/config/<config_filename>,
    with defaults and env var overrides.

    A missing file is not an error: every setting has a default.
    """
    config_path = Path(project_dir) / "config" / config_filename

    yaml_data: dict = {}
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                yaml_data = raw

    return Config(
        paths=_dict_to_dataclass(PathsConfig, yaml_data.get("paths", {})),
        parsing=_dict_to_dataclass(ParsingConfig, yaml_data.get("parsing", {})),
        scope=_dict_to_dataclass(ScopeConfig, yaml_data.get("scope", {})),
    )


def validate_config(config: Config) -> List[str]:
    """
    Check a Config object for problems. Returns a list of error
    messages; empty list = valid.
    """
    errors: List[str] = []

    if not config.paths.mail_root and not config.paths.mail_data_dir:
        errors.append(
            "paths.mail_root is empty. "
            "Set MAILLENS_MAIL_ROOT or configure it in YAML."
        )

    if not config.parsing.container_ext.strip(". "):
        errors.append("parsing.container_ext is empty.")

    if config.parsing.snippet_radius < 0:
        errors.append(
            "parsing.snippet_radius must be >= 0, got "
            + str(config.parsing.snippet_radius)
        )

    if config.scope.max_results < 1:
        errors.append(
            "scope.max_results must be >= 1, got " + str(config.scope.max_results)
        )

    if config.scope.date_range not in DATE_RANGES:
        errors.append(
            "Invalid scope.date_range: '" + str(config.scope.date_range)
            + "'. Must be one of: " + ", ".join(DATE_RANGES) + "."
        )
    elif config.scope.date_range == "custom":
        if not config.scope.custom_start_date:
            errors.append("scope.date_range is 'custom' but custom_start_date is empty.")
        else:
            try:
                datetime.fromisoformat(str(config.scope.custom_start_date))
            except ValueError:
                errors.append(
                    "scope.custom_start_date is not an ISO 8601 date: '"
                    + str(config.scope.custom_start_date) + "'"
                )

    return errors


# -------------------------------------------------------------------
# Path resolution
# -------------------------------------------------------------------

def resolve_mail_data_dir(config: Config) -> Optional[Path]:
    """
    The V<n> data directory: the explicit override if set, else the
    highest-numbered one under mail_root. None if neither exists.
    """
    if config.paths.mail_data_dir:
        return Path(config.paths.mail_data_dir)
    return find_mail_data_dir(config.paths.mail_root)


def resolve_envelope_index(config: Config) -> Optional[Path]:
    """<data dir>/MailData/Envelope Index, or the explicit override."""
    if config.paths.envelope_index:
        return Path(config.paths.envelope_index)
    data_dir = resolve_mail_data_dir(config)
    if data_dir is None:
        return None
    return data_dir / ENVELOPE_INDEX_RELATIVE
