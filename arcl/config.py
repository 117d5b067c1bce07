import json
import logging
import logging.handlers
import os
import re
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from arcl.patch.errors import ErrorKind
from arcl.patch.validator import RewriteThresholds, ValidationOptions, ValidationResult

# --- Path Constants ---
ARCL_HOME_ENV = "ARCL_HOME"
ARCL_DIR_NAME = ".arcl"
CONFIG_FILE_NAME = "config.json"
HISTORY_FILE_NAME = "history.json"
LOGS_DIR_NAME = "logs"
LOG_FILE_NAME = "arcl.log"

# --- Logging Constants ---
LOG_LEVEL_CONSOLE = "WARNING"
LOG_LEVEL_FILE = "DEBUG"
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
LOG_BACKUP_COUNT = 5

# --- Policy Defaults ---
DEFAULT_FORBID_PATTERNS = [r"eval\(", r"exec\(", r"__import__\("]
DEFAULT_MAX_DIFF_LINES = 500

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when the config file exists but cannot be used."""

    kind = ErrorKind.CONFIG_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def __str__(self):
        return self.message


def get_arcl_dir() -> Path:
    """State directory: ``$ARCL_HOME`` if set, else ``<cwd>/.arcl``."""
    override = os.environ.get(ARCL_HOME_ENV)
    if override:
        return Path(override).expanduser().resolve()
    return Path.cwd() / ARCL_DIR_NAME


def get_config_path() -> Path:
    return get_arcl_dir() / CONFIG_FILE_NAME


def get_history_path() -> Path:
    return get_arcl_dir() / HISTORY_FILE_NAME


def get_log_path() -> Path:
    return get_arcl_dir() / LOGS_DIR_NAME / LOG_FILE_NAME


# --- Policy ---


@dataclass(frozen=True)
class PatchPolicy:
    """User guardrails applied to every proposed diff.

    Attributes:
        allow_full_rewrites: Permit diffs the rewrite heuristic would reject
        forbid_patterns: Case-insensitive regexes that must not occur in a diff
        max_diff_lines: Maximum lines in one diff (0 disables the check)
        require_confirmation: Ask before applying
        rewrite_thresholds: Limits for the full-rewrite heuristic
    """

    allow_full_rewrites: bool = False
    forbid_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_FORBID_PATTERNS))
    max_diff_lines: int = DEFAULT_MAX_DIFF_LINES
    require_confirmation: bool = True
    rewrite_thresholds: RewriteThresholds = field(default_factory=RewriteThresholds)

    def validation_options(self, allow_full_rewrite: Optional[bool] = None) -> ValidationOptions:
        allow = self.allow_full_rewrites if allow_full_rewrite is None else allow_full_rewrite
        return ValidationOptions(allow_full_rewrite=allow, thresholds=self.rewrite_thresholds)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _require(name: str, value: Any, expected: type) -> None:
    # bool is an int subclass; never accept it where a count is expected
    if (expected is int and isinstance(value, bool)) or not isinstance(value, expected):
        raise ConfigError(f"{name} must be of type {expected.__name__}, got {type(value).__name__}")


def _policy_from_dict(data: Dict[str, Any]) -> PatchPolicy:
    policy = PatchPolicy()
    known = {f for f in PatchPolicy.__dataclass_fields__}
    unknown = set(data) - known
    if unknown:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))
    values = {k: v for k, v in data.items() if k in known}

    for name in ("allow_full_rewrites", "require_confirmation"):
        if name in values:
            _require(name, values[name], bool)
    if "max_diff_lines" in values:
        _require("max_diff_lines", values["max_diff_lines"], int)
    if "forbid_patterns" in values:
        _require("forbid_patterns", values["forbid_patterns"], list)
        for pattern in values["forbid_patterns"]:
            _require("forbid_patterns entry", pattern, str)

    thresholds = values.pop("rewrite_thresholds", None)
    if thresholds is not None:
        _require("rewrite_thresholds", thresholds, dict)
        unknown_thresholds = set(thresholds) - set(RewriteThresholds.__dataclass_fields__)
        if unknown_thresholds:
            raise ConfigError(
                f"Unknown rewrite_thresholds keys: {', '.join(sorted(unknown_thresholds))}"
            )
        for name, value in thresholds.items():
            _require(f"rewrite_thresholds.{name}", value, int)
        values["rewrite_thresholds"] = RewriteThresholds(**thresholds)
    return replace(policy, **values)


def _env_flag(name: str) -> Optional[bool]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def load_policy(config_path: Optional[Path] = None) -> PatchPolicy:
    """Load the policy, merging ``config.json`` over defaults.

    ``ARCL_ALLOW_FULL_REWRITES`` overrides ``allow_full_rewrites`` when set.
    """
    path = config_path or get_config_path()
    policy = PatchPolicy()
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Invalid config file {path}: expected a JSON object")
        try:
            policy = _policy_from_dict(data)
        except TypeError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e

    allow = _env_flag("ARCL_ALLOW_FULL_REWRITES")
    if allow is not None:
        policy = replace(policy, allow_full_rewrites=allow)
    return policy


def init_policy(config_path: Optional[Path] = None) -> bool:
    """Write the default config if none exists. Returns True if written."""
    path = config_path or get_config_path()
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(PatchPolicy().to_dict(), f, indent=2)
    logger.info("Wrote default config to %s", path)
    return True


def validate_against_policy(diff_text: str, policy: PatchPolicy) -> ValidationResult:
    """Reject diffs containing forbidden patterns or exceeding the size cap.

    Full-rewrite detection lives in the format validator; the policy only
    decides whether it is enforced.
    """
    if not diff_text:
        return ValidationResult(valid=True)

    for pattern in policy.forbid_patterns:
        try:
            regex = re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            logger.warning("Skipping invalid forbid_pattern %r: %s", pattern, e)
            continue
        if regex.search(diff_text):
            return ValidationResult(
                valid=False,
                error=f"Policy violation: diff contains forbidden pattern '{pattern}'",
                kind=ErrorKind.POLICY_VIOLATION,
            )

    if policy.max_diff_lines > 0:
        line_count = len(diff_text.split("\n"))
        if line_count > policy.max_diff_lines:
            return ValidationResult(
                valid=False,
                error=f"Policy violation: diff has {line_count} lines, max is {policy.max_diff_lines}",
                kind=ErrorKind.POLICY_VIOLATION,
            )

    return ValidationResult(valid=True)


# --- Logging Setup ---


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> Path:
    """Set up logging for the application.

    Installs a rotating file handler and a console handler on the ``arcl``
    logger. Calling it again replaces the handlers it installed before.
    Returns the log file path.
    """
    app_logger = logging.getLogger("arcl")
    app_logger.setLevel(logging.DEBUG)

    for handler in list(app_logger.handlers):
        if getattr(handler, "_arcl_handler", False):
            app_logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(
        "%(asctime)s - %(levelname)s - %(module)s - %(funcName)s - %(lineno)d - %(message)s"
    )

    log_file_path = log_file or get_log_path()
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        log_file_path,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(getattr(logging, LOG_LEVEL_FILE.upper(), logging.DEBUG))
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_level = "DEBUG" if verbose else LOG_LEVEL_CONSOLE
    console_handler.setLevel(getattr(logging, console_level))
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    for handler in (file_handler, console_handler):
        handler._arcl_handler = True  # type: ignore[attr-defined]
        app_logger.addHandler(handler)

    app_logger.debug("Logging setup complete (file=%s)", log_file_path)
    return log_file_path
