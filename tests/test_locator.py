# ============================================================================
# test_locator.py -- Tests for MailboxLocationResolver
# ============================================================================
#
# COVERS:
#   TestFindMailDataDir  -- picking the highest V<n> folder
#   TestContainerLookup  -- file:// direct paths, imap:// searched paths,
#                           local:// unsupported
#   TestAttachmentLookup -- index attachments and sibling attachments
#   TestWalkFileSearcher -- the real os.walk searcher
#
# The resolver takes a FileSearcher. Most tests hand it the
# RecordingSearcher fake from conftest so we can see exactly which
# folder it searched and for which names.
#
# RUN:
#   python -m pytest tests/test_locator.py -v
#
# INTERNET ACCESS: NONE
# ============================================================================

from pathlib import Path

import sys as _sys, os as _os
_sys.path.insert(0, _os.path.dirname(__file__))
from conftest import RecordingSearcher

from src.mail.locator import (
    MailboxLocationResolver,
    WalkFileSearcher,
    find_mail_data_dir,
)


class TestFindMailDataDir:

    def test_highest_version_wins(self, tmp_path):
        for name in ("V2", "V10", "V9", "Vx", "MailData"):
            (tmp_path / name).mkdir()
        assert find_mail_data_dir(tmp_path) == tmp_path / "V10"

    def test_no_version_dir(self, tmp_path):
        (tmp_path / "Other").mkdir()
        assert find_mail_data_dir(tmp_path) is None

    def test_missing_root(self, tmp_path):
        assert find_mail_data_dir(tmp_path / "absent") is None

    def test_files_ignored(self, tmp_path):
        (tmp_path / "V11").write_text("not a dir")
        (tmp_path / "V3").mkdir()
        assert find_mail_data_dir(tmp_path) == tmp_path / "V3"


class TestContainerLookup:

    def test_names(self, tmp_path):
        locator = MailboxLocationResolver(tmp_path)
        assert locator.container_names(123) == ["123.emlx", "123.partial.emlx"]
        assert locator.container_stem("/x/123.partial.emlx") == "123"
        assert locator.container_stem("/x/123.emlx") == "123"

    def test_custom_container_extension(self, tmp_path):
        locator = MailboxLocationResolver(tmp_path, container_ext=".mlx")
        assert locator.container_names(5) == ["5.mlx", "5.partial.mlx"]

    def test_file_scheme_full_container(self, tmp_path):
        mbox = tmp_path / "Local" / "Archive.mbox"
        (mbox / "Messages").mkdir(parents=True)
        (mbox / "Messages" / "7.emlx").write_bytes(b"0\n")
        locator = MailboxLocationResolver(tmp_path)
        assert locator.find_container_path("file://" + str(mbox), 7) == mbox / "Messages" / "7.emlx"

    def test_file_scheme_partial_container(self, tmp_path):
        mbox = tmp_path / "Archive.mbox"
        (mbox / "Messages").mkdir(parents=True)
        (mbox / "Messages" / "7.partial.emlx").write_bytes(b"0\n")
        locator = MailboxLocationResolver(tmp_path)
        found = locator.find_container_path("file://" + str(mbox), 7)
        assert found == mbox / "Messages" / "7.partial.emlx"

    def test_file_scheme_prefers_full_over_partial(self, tmp_path):
        mbox = tmp_path / "Archive.mbox"
        (mbox / "Messages").mkdir(parents=True)
        (mbox / "Messages" / "7.emlx").write_bytes(b"0\n")
        (mbox / "Messages" / "7.partial.emlx").write_bytes(b"0\n")
        locator = MailboxLocationResolver(tmp_path)
        assert locator.find_container_path("file://" + str(mbox), 7).name == "7.emlx"

    def test_file_scheme_missing(self, tmp_path):
        locator = MailboxLocationResolver(tmp_path)
        assert locator.find_container_path("file://" + str(tmp_path / "Nope.mbox"), 7) is None

    def test_imap_searches_below_mbox_dir(self, tmp_path):
        mbox_dir = tmp_path / "ACCT-1" / "INBOX.mbox"
        mbox_dir.mkdir(parents=True)
        target = mbox_dir / "S" / "Data" / "Messages" / "812.emlx"
        searcher = RecordingSearcher({"812.emlx": target})
        locator = MailboxLocationResolver(tmp_path, searcher=searcher)

        assert locator.find_container_path("imap://ACCT-1/INBOX", 812) == target
        assert searcher.calls == [
            ("find_first", mbox_dir, ("812.emlx", "812.partial.emlx")),
        ]

    def test_imap_nested_mailbox_directory(self, tmp_path):
        nested = tmp_path / "ACCT-1" / "[Gmail].mbox" / "Sent Mail.mbox"
        nested.mkdir(parents=True)
        searcher = RecordingSearcher()
        locator = MailboxLocationResolver(tmp_path, searcher=searcher)

        assert locator.find_container_path("imap://ACCT-1/%5BGmail%5D/Sent%20Mail", 1) is None
        assert searcher.calls[0][1] == nested

    def test_imap_missing_mbox_dir_skips_search(self, tmp_path):
        searcher = RecordingSearcher()
        locator = MailboxLocationResolver(tmp_path, searcher=searcher)
        assert locator.find_container_path("imap://ACCT-1/INBOX", 1) is None
        assert searcher.calls == []

    def test_imap_without_data_dir(self):
        locator = MailboxLocationResolver(None, searcher=RecordingSearcher())
        assert locator.find_container_path("imap://ACCT-1/INBOX", 1) is None

    def test_local_scheme_unsupported(self, tmp_path):
        searcher = RecordingSearcher()
        locator = MailboxLocationResolver(tmp_path, searcher=searcher)
        assert locator.find_container_path("local://ACCT-1/Drafts", 1) is None
        assert searcher.calls == []

    def test_unparseable_reference(self, tmp_path):
        locator = MailboxLocationResolver(tmp_path)
        assert locator.find_container_path(None, 1) is None
        assert locator.find_container_path("garbage", 1) is None


class TestAttachmentLookup:

    def test_file_scheme_direct_path(self, tmp_path):
        mbox = tmp_path / "Archive.mbox"
        att = mbox / "Attachments" / "9" / "3" / "a.pdf"
        att.parent.mkdir(parents=True)
        att.write_bytes(b"%PDF")
        locator = MailboxLocationResolver(tmp_path)
        assert locator.find_attachment_path("file://" + str(mbox), 9, "3", "a.pdf") == att
        assert locator.find_attachment_path("file://" + str(mbox), 9, "4", "a.pdf") is None

    def test_imap_searches_path_suffix(self, tmp_path):
        mbox_dir = tmp_path / "ACCT-1" / "INBOX.mbox"
        mbox_dir.mkdir(parents=True)
        target = mbox_dir / "S" / "Data" / "Attachments" / "812" / "2" / "a.pdf"
        searcher = RecordingSearcher({"a.pdf": target})
        locator = MailboxLocationResolver(tmp_path, searcher=searcher)

        assert locator.find_attachment_path("imap://ACCT-1/INBOX", 812, "2", "a.pdf") == target
        assert searcher.calls == [
            ("find_first_path_suffix", mbox_dir, ("Attachments", "812", "2", "a.pdf")),
        ]

    def test_empty_filename(self, tmp_path):
        locator = MailboxLocationResolver(tmp_path)
        assert locator.find_attachment_path("imap://ACCT-1/INBOX", 1, "2", "") is None

    def test_sibling_in_attachments_folder(self, tmp_path):
        data = tmp_path / "Data"
        (data / "Messages").mkdir(parents=True)
        container = data / "Messages" / "812.partial.emlx"
        container.write_bytes(b"0\n")
        att = data / "Attachments" / "812" / "2" / "report.pdf"
        att.parent.mkdir(parents=True)
        att.write_bytes(b"%PDF")

        locator = MailboxLocationResolver(tmp_path)
        assert locator.find_sibling_attachment(container, "report.pdf") == att

    def test_sibling_legacy_flat_layout(self, tmp_path):
        data = tmp_path / "Data"
        data.mkdir()
        container = data / "812.emlx"
        container.write_bytes(b"0\n")
        att = tmp_path / "Attachments" / "812" / "report.pdf"
        att.parent.mkdir(parents=True)
        att.write_bytes(b"%PDF")

        locator = MailboxLocationResolver(tmp_path)
        assert locator.find_sibling_attachment(container, "report.pdf") == att

    def test_sibling_emlxpart(self, tmp_path):
        messages = tmp_path / "Messages"
        messages.mkdir()
        container = messages / "812.partial.emlx"
        container.write_bytes(b"0\n")
        part = messages / "812.2.emlxpart"
        part.write_bytes(b"payload")
        (messages / "8120.2.emlxpart").write_bytes(b"other message")

        locator = MailboxLocationResolver(tmp_path)
        assert locator.find_sibling_attachment(container, "report.pdf") == part

    def test_sibling_emlxparts_in_part_number_order(self, tmp_path):
        messages = tmp_path / "Messages"
        messages.mkdir()
        container = messages / "812.partial.emlx"
        container.write_bytes(b"0\n")
        for number in ("10", "3", "2"):
            (messages / f"812.{number}.emlxpart").write_bytes(b"payload")

        locator = MailboxLocationResolver(tmp_path)
        taken = []
        for _ in range(3):
            taken.append(locator.find_sibling_attachment(container, "a.pdf", exclude=taken))
        assert [p.name for p in taken] == [
            "812.2.emlxpart", "812.3.emlxpart", "812.10.emlxpart",
        ]
        assert locator.find_sibling_attachment(container, "a.pdf", exclude=taken) is None

    def test_sibling_not_found(self, tmp_path):
        messages = tmp_path / "Messages"
        messages.mkdir()
        container = messages / "5.emlx"
        container.write_bytes(b"0\n")
        locator = MailboxLocationResolver(tmp_path)
        assert locator.find_sibling_attachment(container, "x.pdf") is None


class TestWalkFileSearcher:

    def test_find_first(self, tmp_path):
        deep = tmp_path / "a" / "b"
        deep.mkdir(parents=True)
        (deep / "12.partial.emlx").write_bytes(b"")
        found = WalkFileSearcher().find_first(tmp_path, ["12.emlx", "12.partial.emlx"])
        assert found == deep / "12.partial.emlx"

    def test_find_first_name_order_within_folder(self, tmp_path):
        (tmp_path / "12.emlx").write_bytes(b"")
        (tmp_path / "12.partial.emlx").write_bytes(b"")
        found = WalkFileSearcher().find_first(tmp_path, ["12.emlx", "12.partial.emlx"])
        assert found.name == "12.emlx"

    def test_path_suffix_must_match_every_component(self, tmp_path):
        wrong = tmp_path / "Attachments" / "99" / "2" / "a.pdf"
        right = tmp_path / "x" / "Attachments" / "12" / "2" / "a.pdf"
        for p in (wrong, right):
            p.parent.mkdir(parents=True)
            p.write_bytes(b"")
        found = WalkFileSearcher().find_first_path_suffix(
            tmp_path, ("Attachments", "12", "2", "a.pdf")
        )
        assert found == right

    def test_nothing_found(self, tmp_path):
        assert WalkFileSearcher().find_first(tmp_path, ["x"]) is None
        assert WalkFileSearcher().find_first_path_suffix(tmp_path, ()) is None
