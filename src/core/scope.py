# ============================================================================
# MailLens -- Scope Filtering (src/core/scope.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Applies the [scope] section of the config to what callers see:
#     - hide mailboxes (Trash, Junk by default) or allow only some
#     - cap every result count at max_results
#     - move a search's "received after" bound forward to the start of
#       the configured date range ("last month" etc.)
#   Plus message_link(), which builds the message:// URL Mail opens.
#
# WHERE IT SITS:
#   The repository returns everything the index holds. Front ends
#   (the CLI, an embedding host) pass results through these functions.
#   Keeping scope out of the repository keeps the SQL layer testable
#   without a config.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import calendar
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional
from urllib.parse import quote

from ..mail.models import Mailbox, Message, SearchFilter
from ..monitoring.logger import get_app_logger
from .config import ScopeConfig

MESSAGE_URL_SCHEME = "message://"

# Left unescaped in message:// links. '<', '>' and '@' are always escaped:
#   <abc@x> -> message://%3Cabc%40x%3E
_LINK_SAFE = "!$&'()*+,;=:[]"


def _months_ago(now: datetime, months: int) -> datetime:
    month_index = now.month - 1 - months
    year = now.year + month_index // 12
    month = month_index % 12 + 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def scope_start(scope: ScopeConfig, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Earliest received date the scope allows, as an aware UTC datetime.
    None for "all", and for "custom" with no start date or one that
    is not ISO 8601 (logged, never raised: config loading only warns).
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    kind = scope.date_range
    if kind == "last_year":
        return _months_ago(now, 12)
    if kind == "last_six_months":
        return _months_ago(now, 6)
    if kind == "last_month":
        return _months_ago(now, 1)
    if kind == "last_week":
        return now - timedelta(weeks=1)
    if kind == "custom" and scope.custom_start_date:
        try:
            start = datetime.fromisoformat(str(scope.custom_start_date))
        except ValueError as e:
            get_app_logger("scope").warning(
                "custom_start_date_invalid",
                value=str(scope.custom_start_date), error=str(e),
            )
            return None
        return start if start.tzinfo else start.replace(tzinfo=timezone.utc)
    return None


def _contains_any(name: str, needles: Iterable[str]) -> bool:
    lowered = name.lower()
    return any(n.lower() in lowered for n in needles if n)


def mailbox_in_scope(mailbox: Mailbox, scope: ScopeConfig) -> bool:
    if _contains_any(mailbox.name, scope.excluded_mailboxes):
        return False
    if scope.allowed_mailboxes is not None:
        return _contains_any(mailbox.name, scope.allowed_mailboxes)
    return True


def filter_mailboxes(mailboxes: Iterable[Mailbox], scope: ScopeConfig) -> List[Mailbox]:
    return [mb for mb in mailboxes if mailbox_in_scope(mb, scope)]


def effective_limit(requested: int, scope: ScopeConfig) -> int:
    """min(requested, max_results), never below 1."""
    return max(1, min(int(requested), scope.max_results))


def apply_scope(
    search: SearchFilter,
    scope: ScopeConfig,
    now: Optional[datetime] = None,
) -> SearchFilter:
    """
    Search filter with the limit clamped and received_after moved
    forward to the scope start when the scope is narrower.
    """
    after = search.received_after
    start = scope_start(scope, now)
    if start is not None:
        if after is not None and after.tzinfo is None:
            after = after.replace(tzinfo=timezone.utc)
        if after is None or start > after:
            after = start
    return replace(
        search,
        received_after=after,
        limit=effective_limit(search.limit, scope),
    )


def message_link(message: Message) -> Optional[str]:
    """message://<percent-encoded Message-ID>, or None without one."""
    if not message.message_id:
        return None
    return MESSAGE_URL_SCHEME + quote(message.message_id, safe=_LINK_SAFE)
