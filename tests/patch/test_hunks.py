import pytest

from arcl.patch.errors import ErrorKind, ParseError
from arcl.patch.hunks import ChangeKind, Hunk, LineChange, parse_hunk_header, parse_hunks


def test_parse_single_hunk():
    hunks = parse_hunks("@@ -2,1 +2,1 @@\n-b\n+B\n")

    assert len(hunks) == 1
    hunk = hunks[0]
    assert (hunk.old_start, hunk.old_count, hunk.new_start, hunk.new_count) == (2, 1, 2, 1)
    assert hunk.changes == (
        LineChange(ChangeKind.REMOVE, "b"),
        LineChange(ChangeKind.ADD, "B"),
    ), "The diff's final newline must not become a context line"


def test_header_with_omitted_counts_defaults_to_one():
    assert parse_hunk_header("@@ -5 +5 @@") == (5, 1, 5, 1)
    assert parse_hunk_header("@@ -5,3 +7 @@ def foo():") == (5, 3, 7, 1)
    assert parse_hunk_header("not a header") is None


def test_file_headers_and_preamble_are_ignored():
    diff = "diff --git a/f b/f\nindex 123..456\n--- a/f\n+++ b/f\n@@ -1,1 +1,1 @@\n-x\n+y\n"
    hunks = parse_hunks(diff)

    assert len(hunks) == 1
    assert hunks[0].old_lines == ["x"]
    assert hunks[0].new_lines == ["y"]


def test_multiple_hunks_keep_document_order():
    diff = "@@ -1,1 +1,1 @@\n-a\n+A\n@@ -10,2 +10,1 @@\n k\n-l\n"
    hunks = parse_hunks(diff)

    assert [h.old_start for h in hunks] == [1, 10]
    assert hunks[1].changes[0] == LineChange(ChangeKind.CONTEXT, "k")


def test_bare_empty_line_inside_hunk_is_context():
    hunks = parse_hunks("@@ -1,3 +1,3 @@\n a\n\n-c\n+C\n")
    kinds = [c.kind for c in hunks[0].changes]

    assert kinds == [ChangeKind.CONTEXT, ChangeKind.CONTEXT, ChangeKind.REMOVE, ChangeKind.ADD]
    assert hunks[0].changes[1].text == ""
    assert len(hunks[0].old_lines) == 3


def test_crlf_diff_text_is_normalized():
    hunks = parse_hunks("@@ -1,1 +1,1 @@\r\n-a\r\n+b\r\n")

    assert hunks[0].old_lines == ["a"]
    assert hunks[0].new_lines == ["b"]


def test_no_newline_marker_is_ignored():
    hunks = parse_hunks("@@ -1,1 +1,1 @@\n-a\n\\ No newline at end of file\n+b\n")
    assert [c.render() for c in hunks[0].changes] == ["-a", "+b"]


def test_invalid_hunk_header_raises():
    with pytest.raises(ParseError) as excinfo:
        parse_hunks("@@ -a +b @@\n-x\n")

    assert excinfo.value.kind is ErrorKind.INVALID_HUNK_HEADER
    assert "invalid hunk header" in str(excinfo.value)


def test_no_hunks_raises():
    with pytest.raises(ParseError) as excinfo:
        parse_hunks("--- a/f\n+++ b/f\n")

    assert excinfo.value.kind is ErrorKind.NO_HUNKS_FOUND


def test_hunk_header_and_describe():
    hunk = Hunk(3, 2, 3, 1, (LineChange(ChangeKind.CONTEXT, "x"), LineChange(ChangeKind.REMOVE, "y")))

    assert hunk.header == "@@ -3,2 +3,1 @@"
    assert hunk.describe() == "@@ -3,2 +3,1 @@ (2 lines)"
