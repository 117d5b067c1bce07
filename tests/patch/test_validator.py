import pytest

from arcl.patch.errors import ErrorKind
from arcl.patch.validator import (
    DiffOutcome,
    RewriteThresholds,
    ValidationOptions,
    classify_response,
    count_changed_lines,
    validate_diff_format,
)

VALID_DIFF = "--- a/foo.py\n+++ b/foo.py\n@@ -1,1 +1,1 @@\n-a\n+b\n"


def _big_hunk_diff(name: str, deletions: int, additions: int) -> str:
    lines = [f"--- a/{name}", f"+++ b/{name}", f"@@ -1,{deletions} +1,{additions} @@"]
    lines += [f"-old {i}" for i in range(deletions)]
    lines += [f"+new {i}" for i in range(additions)]
    return "\n".join(lines) + "\n"


def test_valid_diff_passes():
    result = validate_diff_format(VALID_DIFF)
    assert result.valid, f"Expected valid diff, got error: {result.error}"
    assert result.error is None
    assert result.outcome is DiffOutcome.DIFF


@pytest.mark.parametrize("text", ["NO_CHANGES", "  NO_CHANGES\n"])
def test_no_changes_sentinel_is_distinct_outcome(text):
    result = validate_diff_format(text)

    assert not result.valid
    assert result.kind is ErrorKind.NO_CHANGES_REQUESTED
    assert result.no_changes
    assert result.outcome is DiffOutcome.NO_CHANGES


def test_refuse_sentinel_is_reported_as_refusal():
    result = validate_diff_format("REFUSE")

    assert not result.valid
    assert result.kind is ErrorKind.MODEL_REFUSED
    assert result.refused
    assert "REFUSE" in result.error
    assert result.kind is not ErrorKind.MISSING_HEADERS


def test_provider_error_text():
    result = validate_diff_format("ERROR: rate limit exceeded")

    assert result.kind is ErrorKind.PROVIDER_ERROR
    assert result.error == "ERROR: rate limit exceeded"
    assert result.outcome is DiffOutcome.ERROR


@pytest.mark.parametrize("text", [None, "", "   \n"])
def test_empty_input(text):
    result = validate_diff_format(text)
    assert result.kind is ErrorKind.EMPTY_DIFF


def test_missing_headers():
    result = validate_diff_format("@@ -1,1 +1,1 @@\n-a\n+b\n")
    assert result.kind is ErrorKind.MISSING_HEADERS
    assert result.error == "Missing unified diff headers (--- and +++)"


def test_missing_hunk_header():
    result = validate_diff_format("--- a/foo.py\n+++ b/foo.py\n-a\n+b\n")
    assert result.kind is ErrorKind.MISSING_HUNK_HEADER


def test_multi_file_diff_rejected():
    diff = VALID_DIFF + "--- a/bar.py\n+++ b/bar.py\n@@ -1,1 +1,1 @@\n-x\n+y\n"
    result = validate_diff_format(diff)

    assert result.kind is ErrorKind.MULTI_FILE_DIFF_REJECTED
    assert "found 2 --- headers and 2 +++ headers" in result.error


def test_rename_rejected():
    diff = "--- a/foo.js\n+++ b/bar.js\n@@ -1,1 +1,1 @@\n-a\n+b\n"
    result = validate_diff_format(diff)

    assert not result.valid
    assert result.kind is ErrorKind.RENAME_REJECTED
    assert "mismatch" in result.error
    assert "foo.js" in result.error and "bar.js" in result.error


def test_headers_without_prefix_are_accepted():
    diff = "--- foo.py\n+++ foo.py\n@@ -1,1 +1,1 @@\n-a\n+b\n"
    assert validate_diff_format(diff, "foo.py").valid


def test_target_mismatch():
    result = validate_diff_format(VALID_DIFF, "other.py")

    assert result.kind is ErrorKind.TARGET_MISMATCH
    assert result.error == "Diff target mismatch: expected other.py, got foo.py"


def test_target_compares_basenames():
    assert validate_diff_format(VALID_DIFF, "/home/user/project/foo.py").valid
    diff = "--- a/src/foo.py\n+++ b/src/foo.py\n@@ -1,1 +1,1 @@\n-a\n+b\n"
    assert validate_diff_format(diff, "foo.py").valid


def test_full_deletion_rejected_unless_allowed():
    diff = "--- a/one.txt\n+++ b/one.txt\n@@ -1,1 +0,0 @@\n-only line\n"

    result = validate_diff_format(diff)
    assert result.kind is ErrorKind.FULL_DELETION_REJECTED

    allowed = validate_diff_format(diff, options=ValidationOptions(allow_full_rewrite=True))
    assert allowed.valid


def test_suspected_full_rewrite_rejected():
    diff = _big_hunk_diff("big.py", 25, 25)

    result = validate_diff_format(diff, "big.py")
    assert result.kind is ErrorKind.SUSPECTED_FULL_REWRITE
    assert "25 deletions, 25 additions" in result.error

    allowed = validate_diff_format(diff, "big.py", ValidationOptions(allow_full_rewrite=True))
    assert allowed.valid


def test_rewrite_at_threshold_is_allowed():
    result = validate_diff_format(_big_hunk_diff("big.py", 20, 20))
    assert result.valid, f"20/20 is not above the threshold, got: {result.error}"


def test_rewrite_thresholds_are_tunable():
    options = ValidationOptions(thresholds=RewriteThresholds(min_changed_lines=2, min_hunk_lines=2))
    result = validate_diff_format(_big_hunk_diff("small.py", 3, 3), options=options)
    assert result.kind is ErrorKind.SUSPECTED_FULL_REWRITE


def test_checks_run_in_order():
    # Rename and rewrite both apply; the header mismatch is reported first.
    diff = _big_hunk_diff("a.py", 25, 25).replace("+++ b/a.py", "+++ b/b.py")
    assert validate_diff_format(diff).kind is ErrorKind.RENAME_REJECTED


@pytest.mark.parametrize(
    "text, expected",
    [
        ("NO_CHANGES", DiffOutcome.NO_CHANGES),
        ("REFUSE\n", DiffOutcome.REFUSE),
        ("ERROR: timeout", DiffOutcome.ERROR),
        ("", DiffOutcome.ERROR),
        (VALID_DIFF, DiffOutcome.DIFF),
    ],
)
def test_classify_response(text, expected):
    assert classify_response(text) is expected


def test_count_changed_lines_ignores_file_headers():
    assert count_changed_lines(VALID_DIFF) == (1, 1)
    assert count_changed_lines(_big_hunk_diff("x", 3, 5)) == (3, 5)


@pytest.mark.parametrize("text", ["\n\tREFUSE  \n", "  NO_CHANGES\r\n"])
def test_sentinels_match_after_stripping_whitespace(text):
    assert classify_response(text) is not DiffOutcome.DIFF


@pytest.mark.parametrize("text", ["NO_CHANGES needed", "I must REFUSE"])
def test_sentinel_with_extra_text_is_not_a_sentinel(text):
    assert classify_response(text) is DiffOutcome.DIFF
