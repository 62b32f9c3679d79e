import os
import stat
from dataclasses import replace
from datetime import date

import pytest

from conftest import FakeClient, make_memo
from memos_sync.errors import PersistError
from memos_sync.services.vault_writer import (
    VaultWriter,
    content_preview,
    extract_tags,
    normalize_inline_tags,
    relative_path,
    sanitize_filename,
)


class TestHelpers:
    def test_relative_path_same_folder(self):
        assert relative_path("root/2024/05/note.md", "root/2024/05/resources/img.png") == "resources/img.png"

    def test_relative_path_other_month(self):
        assert relative_path("root/2024/05/note.md", "root/2024/06/resources/a.pdf") == "../06/resources/a.pdf"

    def test_sanitize_filename(self):
        assert sanitize_filename('  #a/b:c*d?"e<f>g|h  i.md') == "abcdefgh i.md"
        assert sanitize_filename("###") == "untitled"

    def test_preview_strips_markup(self):
        content = "> [!tip] callout\n> quoted\n# Heading\nSome **bold** and [a link](http://x) ![img](a.png)"
        assert content_preview(content) == "Heading Some bold and a link"

    def test_preview_truncates_and_falls_back(self):
        assert content_preview("x" * 60) == "x" * 50 + "..."
        assert content_preview("![only](image.png)") == "Untitled"

    def test_inline_tags(self):
        assert normalize_inline_tags("#work# and #life#") == "#work and #life"
        assert extract_tags("#work done, see http://x.com/#anchor and #work again #plan.") == ["work", "plan"]
        assert extract_tags("## Heading only") == []


class TestSaveMemo:
    def test_scenario_document(self, tmp_path, utc):
        memo = make_memo(7, content="#work# finished draft", create_time="2024-03-14T10:00:00Z")
        writer = VaultWriter(tmp_path, FakeClient(), tz=utc)
        path = writer.save_memo(memo, memo.content)

        assert path == tmp_path / "2024" / "03" / "work finished draft (2024-03-14 10-00).md"
        text = path.read_text(encoding="utf-8")
        assert text.startswith("#work finished draft")
        assert "#work#" not in text
        assert "> [!note]- Memo Properties" in text
        assert "> - Created: 2024-03-14 10:00:00" in text
        assert "> - Type: memo" in text
        assert "> - Tags: [work]" in text
        assert "> - ID: memos/7" in text
        assert "> - Visibility: public" in text

    def test_empty_content_uses_memo_id(self, tmp_path, utc):
        memo = make_memo(9, create_time="2024-12-01T08:05:00Z")
        memo = replace(memo, content="")
        path = VaultWriter(tmp_path, FakeClient(), tz=utc).save_memo(memo, "")
        assert path.name == "9 (2024-12-01 08-05).md"

    def test_attachments_are_downloaded_and_linked(self, tmp_path, utc):
        resources = [
            {"name": "resources/42", "filename": "photo.png", "type": "image/png", "size": 4},
            {"name": "resources/43", "filename": "report.pdf", "type": "application/pdf", "size": 3},
            {"name": "resources/44", "filename": "broken.jpg", "type": "image/jpeg", "size": 1},
        ]
        memo = make_memo(5, content="Trip photos and the report", resources=resources)
        client = FakeClient(files={"42": b"\x89PNG", "43": b"PDF"})
        path = VaultWriter(tmp_path, client, tz=utc).save_memo(memo, memo.content)

        month = tmp_path / "2024" / "03"
        assert (month / "resources" / "42_photo.png").read_bytes() == b"\x89PNG"
        assert (month / "resources" / "43_report.pdf").read_bytes() == b"PDF"
        assert not (month / "resources" / "44_broken.jpg").exists()

        text = path.read_text(encoding="utf-8")
        assert "![photo.png](resources/42_photo.png)" in text
        assert "### Attachments\n- [report.pdf](resources/43_report.pdf)" in text
        assert "broken.jpg" not in text
        assert client.downloads == ["42", "44", "43"]

    def test_no_temp_files_left_behind(self, tmp_path, utc):
        memo = make_memo(1)
        VaultWriter(tmp_path, FakeClient(), tz=utc).save_memo(memo, memo.content)
        leftovers = [p for p in tmp_path.rglob("*") if p.name.endswith(".tmp")]
        assert leftovers == []

    def test_unwritable_root_raises_persist_error(self, tmp_path, utc):
        blocker = tmp_path / "vault"
        blocker.write_text("not a folder")
        memo = make_memo(1)
        with pytest.raises(PersistError):
            VaultWriter(blocker, FakeClient(), tz=utc).save_memo(memo, memo.content)

    def test_colliding_names_keep_both_memos(self, tmp_path, utc):
        first = make_memo(1, content="![a](x.png)", create_time="2024-03-14T10:00:05Z")
        second = make_memo(2, content="![b](y.png)", create_time="2024-03-14T10:00:40Z")
        writer = VaultWriter(tmp_path, FakeClient(), tz=utc)

        first_path = writer.save_memo(first, first.content)
        second_path = writer.save_memo(second, second.content)

        assert first_path.name == "Untitled (2024-03-14 10-00).md"
        assert second_path.name == "Untitled (2024-03-14 10-00) 2.md"
        assert "> - ID: memos/1" in first_path.read_text(encoding="utf-8")
        assert "> - ID: memos/2" in second_path.read_text(encoding="utf-8")

    def test_same_memo_rewrites_its_own_file(self, tmp_path, utc):
        memo = make_memo(1, content="![a](x.png)")
        writer = VaultWriter(tmp_path, FakeClient(), tz=utc)
        first = writer.save_memo(memo, memo.content)
        again = writer.save_memo(memo, memo.content)
        assert again == first
        assert len(list(tmp_path.rglob("*.md"))) == 1


@pytest.mark.skipif(os.name != "posix", reason="POSIX permission bits")
class TestFileModes:
    @pytest.fixture
    def umask_022(self):
        old = os.umask(0o022)
        yield
        os.umask(old)

    def test_new_files_follow_umask(self, tmp_path, utc, umask_022):
        resources = [{"name": "resources/42", "filename": "photo.png"}]
        memo = make_memo(1, resources=resources)
        path = VaultWriter(tmp_path, FakeClient(files={"42": b"png"}), tz=utc).save_memo(memo, memo.content)

        image = path.parent / "resources" / "42_photo.png"
        assert stat.S_IMODE(path.stat().st_mode) == 0o644
        assert stat.S_IMODE(image.stat().st_mode) == 0o644

    def test_rewritten_file_keeps_its_mode(self, tmp_path, utc, umask_022):
        memo = make_memo(1)
        writer = VaultWriter(tmp_path, FakeClient(), tz=utc)
        path = writer.save_memo(memo, memo.content)
        os.chmod(path, 0o640)

        writer.save_memo(memo, memo.content)
        assert stat.S_IMODE(path.stat().st_mode) == 0o640


class TestIndex:
    def test_written_memo_is_found_by_a_fresh_writer(self, tmp_path, utc):
        memo = make_memo(7)
        VaultWriter(tmp_path, FakeClient(), tz=utc).save_memo(memo, memo.content)

        fresh = VaultWriter(tmp_path, FakeClient(), tz=utc)
        assert fresh.exists("memos/7")
        assert not fresh.exists("memos/70")
        assert not fresh.exists("memos/8")

    def test_marker_must_be_a_whole_line(self, tmp_path, utc):
        (tmp_path / "notes.md").write_text("quoting > - ID: memos/3 inline\n> - ID: memos/30\n")
        writer = VaultWriter(tmp_path, FakeClient(), tz=utc)
        assert writer.exists("memos/30")
        assert not writer.exists("memos/3")

    def test_missing_root_is_empty(self, tmp_path, utc):
        writer = VaultWriter(tmp_path / "nothing-here", FakeClient(), tz=utc)
        assert writer.build_index() == {}


def test_write_digest(tmp_path, utc):
    writer = VaultWriter(tmp_path, FakeClient(), tz=utc)
    path = writer.write_digest("# Weekly Digest\n", day=date(2024, 3, 17))
    assert path == tmp_path / "digests" / "Weekly Digest 2024-03-17.md"
    assert path.read_text(encoding="utf-8") == "# Weekly Digest\n"
