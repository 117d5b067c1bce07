import pytest

from arcl.patch.applier import apply_hunks, apply_patch, reverse_diff
from arcl.patch.errors import ErrorKind, PatchError
from arcl.patch.validator import validate_diff_format


def test_replace_middle_line():
    result = apply_patch("a\nb\nc\n", "@@ -2,1 +2,1 @@\n-b\n+B\n")

    assert result.succeeded, result.error
    assert result.patched_content == "a\nB\nc\n"
    assert result.warnings == []


def test_append_after_context_line():
    result = apply_patch("x\n", "@@ -1,1 +1,2 @@\n x\n+y\n")
    assert result.patched_content == "x\ny\n"


def test_file_headers_are_tolerated():
    result = apply_patch("a\nb\nc\n", "--- a/f\n+++ b/f\n@@ -2,1 +2,1 @@\n-b\n+B\n")
    assert result.patched_content == "a\nB\nc\n"


def test_crlf_convention_is_restored():
    result = apply_patch("a\r\nb\r\nc\r\n", "@@ -2,1 +2,1 @@\n-b\n+B\n")
    assert result.patched_content == "a\r\nB\r\nc\r\n"


def test_missing_trailing_newline_is_preserved():
    result = apply_patch("a\nb\nc", "@@ -2,1 +2,1 @@\n-b\n+B\n")
    assert result.patched_content == "a\nB\nc"


def test_hunks_apply_bottom_up():
    original = "".join(f"l{i}\n" for i in range(1, 11))
    diff = "@@ -2,1 +2,2 @@\n-l2\n+L2\n+L2b\n@@ -8,1 +9,1 @@\n-l8\n+L8\n"

    result = apply_patch(original, diff)

    expected = ["l1", "L2", "L2b", "l3", "l4", "l5", "l6", "l7", "L8", "l9", "l10"]
    assert result.patched_content == "\n".join(expected) + "\n"


def test_insert_at_top_with_zero_start():
    result = apply_patch("b\n", "@@ -0,0 +1,1 @@\n+a\n")
    assert result.patched_content == "a\nb\n"


def test_context_mismatch_warns_and_continues():
    seen = []
    result = apply_patch("a\nb\nc\n", "@@ -1,2 +1,2 @@\n x\n-b\n+B\n", on_warning=seen.append)

    assert result.succeeded, "Context drift must not fail the patch"
    assert result.patched_content == "x\nB\nc\n"
    assert result.warnings == ['Context mismatch at line 1: expected "a", got "x"']
    assert seen == result.warnings


def test_context_whitespace_differences_are_ignored():
    result = apply_patch("    a\nb\n", "@@ -1,2 +1,2 @@\n a\n-b\n+B\n")

    assert result.warnings == []
    assert result.patched_content == "a\nB\n"


def test_start_past_end_of_file_appends_with_warning():
    result = apply_patch("a\n", "@@ -5,0 +5,1 @@\n+z\n")

    assert result.patched_content == "a\nz\n"
    assert len(result.warnings) == 1
    assert "past end of file" in result.warnings[0]


def test_invalid_hunk_header_fails():
    result = apply_patch("a\n", "@@ -x,1 +1,1 @@\n-a\n+b\n")

    assert not result.succeeded
    assert result.error == "Invalid hunk header format"
    assert result.failed_hunks == ["Invalid hunk header"]
    assert result.kind is ErrorKind.INVALID_HUNK_HEADER


def test_no_hunks_fails():
    result = apply_patch("a\n", "--- a/f\n+++ b/f\n")

    assert not result.succeeded
    assert result.error == "No valid hunks found in diff"
    assert result.kind is ErrorKind.NO_VALID_HUNKS


def test_apply_hunks_rejects_empty_list():
    with pytest.raises(PatchError) as excinfo:
        apply_hunks("a\n", [])
    assert excinfo.value.kind is ErrorKind.NO_VALID_HUNKS


@pytest.mark.parametrize(
    "original, diff",
    [
        ("a\nb\nc\n", "--- a/f\n+++ b/f\n@@ -2,1 +2,1 @@\n-b\n+B\n"),
        ("a\nb\nc\nd\ne\n", "--- a/f\n+++ b/f\n@@ -2,1 +2,2 @@\n-b\n+B\n+B2\n@@ -4,2 +5,1 @@\n d\n-e\n"),
        ("x\n", "--- a/f\n+++ b/f\n@@ -1,1 +1,2 @@\n x\n+y\n"),
    ],
)
def test_reverse_diff_undoes_patch(original, diff):
    forward = apply_patch(original, diff)
    assert forward.succeeded and forward.warnings == []

    inverse = reverse_diff(diff)
    back = apply_patch(forward.patched_content, inverse)

    assert back.warnings == [], f"Inverse diff drifted: {back.warnings}"
    assert back.patched_content == original


def test_reverse_diff_swaps_headers_and_ranges():
    inverse = reverse_diff("--- a/f.py\n+++ b/f.py\n@@ -2,1 +2,2 @@\n-b\n+B\n+B2\n")

    assert inverse == "--- b/f.py\n+++ a/f.py\n@@ -2,2 +2,1 @@\n+b\n-B\n-B2\n"
    assert validate_diff_format(inverse, "f.py").valid
