"""Tests for reader.py module."""

from glance.config import defaults
from glance.ignore import IgnoreChain, parse_ignore_lines
from glance.reader import gather_local_files, looks_like_text, read_text_file, truncate_content


class TestLooksLikeText:
    """Tests for the text heuristic."""

    def test_empty_is_text(self):
        assert looks_like_text(b"")

    def test_ascii_and_utf8(self):
        assert looks_like_text(b"hello world\n")
        assert looks_like_text("héllo".encode("utf-8"))

    def test_nul_byte_is_binary(self):
        assert not looks_like_text(b"\x89PNG\r\n\x1a\n\x00\x00")

    def test_split_multibyte_sequence_at_end_is_text(self):
        data = "aé".encode("utf-8")[:-1]

        assert looks_like_text(data)

    def test_invalid_utf8_in_middle_is_binary(self):
        assert not looks_like_text(b"abc\xff\xfeabc")


class TestTruncateContent:
    """Tests for truncate_content."""

    def test_short_content_unchanged(self):
        assert truncate_content("abc", 10) == ("abc", False)

    def test_zero_disables_limit(self):
        assert truncate_content("abcdef", 0) == ("abcdef", False)

    def test_long_content_is_cut_and_marked(self):
        content, truncated = truncate_content("abcdefghij", 4)

        assert truncated is True
        assert content == "abcd" + defaults.TRUNCATION_MARKER


class TestReadTextFile:
    """Tests for read_text_file."""

    def test_invalid_utf8_is_replaced(self, tmp_path):
        path = tmp_path / "f.txt"
        path.write_bytes(b"ok \xff end")

        entry = read_text_file(path)

        assert entry.name == "f.txt"
        assert "�" in entry.content
        assert entry.size == 8

    def test_large_file_truncated(self, tmp_path):
        path = tmp_path / "big.txt"
        path.write_text("x" * 100)

        entry = read_text_file(path, max_bytes=10)

        assert entry.truncated
        assert entry.content == "x" * 10 + defaults.TRUNCATION_MARKER
        assert entry.size == 100


class TestGatherLocalFiles:
    """Tests for gather_local_files."""

    def test_filters_and_sorts(self, tmp_path):
        (tmp_path / "b.txt").write_text("bee")
        (tmp_path / "a.txt").write_text("ay")
        (tmp_path / "debug.log").write_text("log")
        (tmp_path / ".hidden").write_text("secret")
        (tmp_path / ".glance.md").write_text("old summary")
        (tmp_path / ".gitignore").write_text("*.log\n")
        (tmp_path / "image.png").write_bytes(b"\x89PNG\x00\x00\x00")
        (tmp_path / "sub").mkdir()
        chain = IgnoreChain().extend(parse_ignore_lines(["*.log"], tmp_path))

        entries = gather_local_files(tmp_path, chain)

        assert [e.name for e in entries] == ["a.txt", "b.txt"]
        assert entries[0].content == "ay"

    def test_custom_summary_filename_is_skipped(self, tmp_path):
        (tmp_path / "SUMMARY").write_text("old")
        (tmp_path / "a.txt").write_text("a")

        entries = gather_local_files(tmp_path, IgnoreChain(), summary_filename="SUMMARY")

        assert [e.name for e in entries] == ["a.txt"]

    def test_negation_re_includes(self, tmp_path):
        (tmp_path / "keep.log").write_text("kept")
        (tmp_path / "drop.log").write_text("dropped")
        chain = IgnoreChain().extend(parse_ignore_lines(["*.log", "!keep.log"], tmp_path))

        entries = gather_local_files(tmp_path, chain)

        assert [e.name for e in entries] == ["keep.log"]
