# ============================================================================
# MailLens - Command Line Tool (src/tools/mail_cli.py)
# ============================================================================
# What this tool does:
# - Boots MailLens against the local Mail store
# - Runs one read-only query per invocation and prints plain text
# - Applies the configured scope (hidden mailboxes, result cap, date range)
#
# Usage:
#   python -m src.tools.mail_cli mailboxes
#   python -m src.tools.mail_cli search --from alice@example.com --limit 5
#   python -m src.tools.mail_cli list INBOX --offset 20
#   python -m src.tools.mail_cli show 12345
#   python -m src.tools.mail_cli attachments 12345
#   python -m src.tools.mail_cli attachment 12345 report.pdf
#   python -m src.tools.mail_cli search-attachments "quarterly"
#   python -m src.tools.mail_cli link 12345
#   python -m src.tools.mail_cli config
#
# Exit codes: 0 = ok (including "nothing found"), 1 = MailLens error,
# 2 = bad arguments (argparse).
# ============================================================================

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from ..core.boot import MailLensInstance, boot_mail_lens
from ..core.config import Config, load_config
from ..core.exceptions import MailLensError
from ..core.scope import effective_limit, message_link
from ..mail.models import AttachmentSearchResult, Attachment, Mailbox, Message, SearchFilter

UNKNOWN = "Unknown"


# -------------------------------------------------------------------
# Formatting (pure: records in, text out)
# -------------------------------------------------------------------

def format_date(moment: Optional[datetime], missing: str = UNKNOWN) -> str:
    """2024-01-15T10:30:00Z, or `missing` for None."""
    if moment is None:
        return missing
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_mailboxes(mailboxes: Sequence[Mailbox]) -> str:
    by_account: Dict[str, List[Mailbox]] = {}
    for mb in mailboxes:
        by_account.setdefault(mb.account_name or "Local", []).append(mb)

    lines = [f"Found {len(mailboxes)} mailboxes:"]
    for account in sorted(by_account):
        lines.append("")
        lines.append(f"[{account}]")
        for mb in sorted(by_account[account], key=lambda m: m.name):
            lines.append(f"  - {mb.name} (ID: {mb.id})")
    return "\n".join(lines)


def format_search_results(messages: Sequence[Message]) -> str:
    if not messages:
        return "No emails found matching the search criteria."
    lines = [f"Found {len(messages)} email(s):"]
    for msg in messages:
        lines += [
            "---",
            f"ID: {msg.id}",
            f"Subject: {msg.subject}",
            f"From: {msg.sender}",
            f"Date: {format_date(msg.date_received, 'Unknown date')}",
            f"Mailbox: {msg.mailbox_name or UNKNOWN}",
        ]
    return "\n".join(lines)


def format_mailbox_page(mailbox: str, messages: Sequence[Message], offset: int) -> str:
    if not messages:
        return f"No emails found in mailbox '{mailbox}'."
    lines = [f"Emails in '{mailbox}' (showing {len(messages)}, offset {offset}):"]
    for msg in messages:
        date = format_date(msg.date_received, "Unknown date")
        lines.append(f"[{msg.id}] {date} - {msg.sender}: {msg.subject}")
    return "\n".join(lines)


def _attachment_line(att: Attachment) -> str:
    return f"- {att.filename} ({att.mime_type or 'unknown type'}, {att.size} bytes)"


def format_message(msg: Message) -> str:
    lines = [
        f"Subject: {msg.subject}",
        f"From: {msg.sender}",
        f"To: {', '.join(msg.recipients)}",
        f"Date: {format_date(msg.date_received)}",
        f"Mailbox: {msg.mailbox_name or UNKNOWN}",
        f"Message-ID: {msg.message_id or UNKNOWN}",
    ]
    text = "\n".join(lines)
    if msg.body:
        text += f"\n\n--- Body ---\n{msg.body}"
    if msg.attachments:
        text += "\n\n--- Attachments ---\n"
        text += "\n".join(_attachment_line(a) for a in msg.attachments)
    return text


def format_attachments(message_id: int, attachments: Sequence[Attachment]) -> str:
    if not attachments:
        return f"No attachments found for email ID: {message_id}"
    return f"Attachments for email {message_id}:\n" + "\n".join(
        _attachment_line(a) for a in attachments
    )


def format_attachment_hits(query: str, results: Sequence[AttachmentSearchResult]) -> str:
    if not results:
        return f"No attachments found containing: {query}"
    lines = [f"Found {len(results)} attachment(s) matching '{query}':"]
    for hit in results:
        lines += [
            "---",
            f"Email ID: {hit.message_id}",
            f"Subject: {hit.message_subject}",
            f"Attachment: {hit.filename}",
            f"Match: {hit.snippet}",
        ]
    return "\n".join(lines)


def format_link(msg: Message) -> str:
    link = message_link(msg)
    if link is None:
        return "Email does not have a Message-ID, cannot generate link"
    return f"Mail.app link: {link}\n\nClick or open this URL to view the email in Mail.app."


def format_config(config: Config) -> str:
    return "Current configuration:\n" + json.dumps(
        dataclasses.asdict(config), indent=2, sort_keys=True,
    )


# -------------------------------------------------------------------
# Arguments
# -------------------------------------------------------------------

def _iso_date(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO 8601 date: {value!r}")
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mail_cli",
        description="Read-only queries against the local Mail store.",
    )
    parser.add_argument(
        "--project-dir", default=".",
        help="Folder containing config/default_config.yaml (default: .)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("mailboxes", help="List mailboxes grouped by account")

    p = sub.add_parser("search", help="Search messages")
    p.add_argument("--query", help="Subject contains")
    p.add_argument("--from", dest="sender", help="Sender address contains")
    p.add_argument("--mailbox", help="Mailbox URL contains")
    p.add_argument("--after", type=_iso_date, help="Received on/after (ISO 8601)")
    p.add_argument("--before", type=_iso_date, help="Received on/before (ISO 8601)")
    p.add_argument("--limit", type=int, default=20)

    p = sub.add_parser("list", help="List one page of a mailbox")
    p.add_argument("mailbox", help="Mailbox ID or name (e.g. INBOX)")
    p.add_argument("--limit", type=int, default=20)
    p.add_argument("--offset", type=int, default=0)

    p = sub.add_parser("show", help="Show one message with body")
    p.add_argument("id", type=int)

    p = sub.add_parser("attachments", help="List a message's attachments")
    p.add_argument("id", type=int)

    p = sub.add_parser("attachment", help="Print an attachment's text")
    p.add_argument("id", type=int)
    p.add_argument("filename")
    p.add_argument(
        "--no-extract", action="store_true",
        help="Describe the file instead of extracting its text",
    )

    p = sub.add_parser("search-attachments", help="Full-text search inside attachments")
    p.add_argument("query")
    p.add_argument("--limit", type=int, default=20)

    p = sub.add_parser("link", help="Print the message:// link for a message")
    p.add_argument("id", type=int)

    sub.add_parser("config", help="Print the effective configuration")
    return parser


# -------------------------------------------------------------------
# Commands
# -------------------------------------------------------------------

def run_command(args: argparse.Namespace, lens: MailLensInstance) -> str:
    repo = lens.repository
    scope = lens.config.scope

    if args.command == "mailboxes":
        return format_mailboxes(lens.mailboxes())

    if args.command == "search":
        search = SearchFilter(
            subject=args.query,
            sender=args.sender,
            mailbox=args.mailbox,
            received_after=args.after,
            received_before=args.before,
            limit=args.limit,
        )
        return format_search_results(lens.search(search))

    if args.command == "list":
        messages = lens.list_messages(args.mailbox, limit=args.limit, offset=args.offset)
        return format_mailbox_page(args.mailbox, messages, args.offset)

    if args.command == "show":
        return format_message(repo.get_message(args.id))

    if args.command == "attachments":
        return format_attachments(args.id, repo.list_attachments(args.id))

    if args.command == "attachment":
        return repo.get_attachment_content(
            args.id, args.filename, extract_text=not args.no_extract,
        )

    if args.command == "search-attachments":
        limit = effective_limit(args.limit, scope)
        return format_attachment_hits(args.query, repo.search_attachments(args.query, limit))

    if args.command == "link":
        return format_link(repo.get_message(args.id))

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[Sequence[str]] = None, config: Optional[Config] = None) -> int:
    args = build_parser().parse_args(argv)

    if config is None:
        config = load_config(args.project_dir)
    if args.command == "config":
        print(format_config(config))
        return 0

    try:
        with boot_mail_lens(config) as lens:
            print(run_command(args, lens))
    except MailLensError as e:
        print(f"Error: {e}", file=sys.stderr)
        if e.fix_suggestion:
            print(f"Fix: {e.fix_suggestion}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
