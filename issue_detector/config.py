"""Configuration loading and validation.

Usage:
    config   = load("issue-detector.yaml")     # raises ConfigError on bad config
    config   = load("checkers.txt")            # plain-text authoring format
    checker  = config.find_checker("extract-method")
    checkers = parse_authoring_text(text)      # -> list of checker configs
    generate_template("issue-detector.yaml")   # writes example file to disk

Authoring format (records separated by blank lines):

    Code snippet id: Methods.ScheduleService.IsAvailable
    Metric name: CyclomaticComplexity
    Value threshold: 1, 4

    Code snippet id: ALL_CODE
    Banned words: info, set, list
"""

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from issue_detector.index import DEFAULT_PARSE_TIMEOUT
from issue_detector.models import (
    CheckerConfig,
    LexicalChecker,
    Metric,
    MetricChecker,
    SnippetId,
    WordListKind,
)

DEFAULT_CONFIG_PATH = "issue-detector.yaml"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ConfigError(Exception):
    """Raised when the configuration is missing or malformed."""


class InvalidConfigError(ConfigError):
    """Raised when a checker definition is rejected at registration time."""


# ---------------------------------------------------------------------------
# Config dataclass
# ---------------------------------------------------------------------------

@dataclass
class Config:
    checkers: list[CheckerConfig] = field(default_factory=list)
    parse_timeout: float = DEFAULT_PARSE_TIMEOUT
    workers: int = 1

    def find_checker(self, checker_id: str) -> CheckerConfig:
        """Return the checker with the given id."""
        for checker in self.checkers:
            if checker.checker_id == checker_id:
                return checker
        available = ", ".join(c.checker_id for c in self.checkers) or "(none configured)"
        raise ConfigError(
            f"Checker '{checker_id}' not found. Available checkers: {available}"
        )


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load(config_path: str = DEFAULT_CONFIG_PATH) -> Config:
    """Load and validate a checker configuration.

    ``.yaml`` / ``.yml`` files are read as YAML; anything else is read in the
    plain-text authoring format. Environment variables
    ISSUE_DETECTOR_PARSE_TIMEOUT and ISSUE_DETECTOR_WORKERS override file
    values.

    Raises:
        ConfigError:        the file is missing or malformed.
        InvalidConfigError: a checker definition is invalid.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(
            f"Config file not found: '{config_path}'\n"
            "Run `issue-detector init` to generate a template."
        )

    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse '{config_path}': {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError(f"'{config_path}' must be a YAML mapping at the top level.")
        config = _from_mapping(raw)
    else:
        config = Config(checkers=parse_authoring_text(text))

    timeout = os.environ.get("ISSUE_DETECTOR_PARSE_TIMEOUT")
    if timeout:
        config.parse_timeout = _as_number(timeout, "ISSUE_DETECTOR_PARSE_TIMEOUT")
    workers = os.environ.get("ISSUE_DETECTOR_WORKERS")
    if workers:
        config.workers = _as_int(workers, "ISSUE_DETECTOR_WORKERS")

    _validate(config)
    return config


def _from_mapping(raw: dict[str, Any]) -> Config:
    settings = raw.get("settings") or {}
    if not isinstance(settings, dict):
        raise ConfigError("'settings' must be a mapping")
    entries = raw.get("checkers") or []
    if not isinstance(entries, list):
        raise ConfigError("'checkers' must be a list of checker definitions")

    checkers = []
    for position, entry in enumerate(entries, 1):
        if not isinstance(entry, dict):
            raise InvalidConfigError(f"Checker #{position} must be a mapping")
        checkers.append(parse_checker(entry, position))

    return Config(
        checkers=checkers,
        parse_timeout=_as_number(settings.get("parse_timeout", DEFAULT_PARSE_TIMEOUT),
                                 "settings.parse_timeout"),
        workers=_as_int(settings.get("workers", 1), "settings.workers"),
    )


def _validate(config: Config) -> None:
    """Raise ConfigError if settings are out of range, InvalidConfigError if ids collide."""
    errors: list[str] = []

    if config.parse_timeout < 0:
        errors.append("  - 'parse_timeout' must be zero (no limit) or a positive number of seconds")
    if config.workers < 1:
        errors.append("  - 'workers' must be at least 1")
    if not config.checkers:
        errors.append("  - no checkers defined; add at least one checker")
    if errors:
        raise ConfigError("Invalid configuration:\n" + "\n".join(errors))

    seen: set[str] = set()
    duplicates: list[str] = []
    for checker in config.checkers:
        if checker.checker_id in seen and checker.checker_id not in duplicates:
            duplicates.append(checker.checker_id)
        seen.add(checker.checker_id)
    if duplicates:
        raise InvalidConfigError(
            "Duplicate checker ids: " + ", ".join(f"'{d}'" for d in duplicates)
        )


# ---------------------------------------------------------------------------
# Checker definitions
# ---------------------------------------------------------------------------

_CHECKER_KEYS = frozenset({"id", "snippet", "metric", "threshold", "banned_words", "required_words", "hint"})

_AUTHORING_KEYS = {
    "code snippet id": "snippet",
    "metric name":     "metric",
    "value threshold": "threshold",
    "banned words":    "banned_words",
    "required words":  "required_words",
    "hint":            "hint",
    "checker id":      "id",
}


def parse_checker(raw: dict[str, Any], position: int = 1) -> CheckerConfig:
    """Build one checker from a definition mapping (YAML entry or text record).

    Raises:
        InvalidConfigError: missing or conflicting keys, bad snippet id,
                            unknown metric, low > high, empty word set.
    """
    where = f"Checker #{position}"
    unknown = set(raw) - _CHECKER_KEYS
    if unknown:
        raise InvalidConfigError(f"{where}: unknown keys {', '.join(sorted(unknown))}")

    if not raw.get("snippet"):
        raise InvalidConfigError(f"{where}: a snippet id is required")
    try:
        snippet = SnippetId.parse(str(raw["snippet"]))
    except ValueError as exc:
        raise InvalidConfigError(f"{where}: {exc}") from exc

    hint = str(raw.get("hint") or "").strip()
    kinds = [k for k in ("metric", "banned_words", "required_words") if raw.get(k) is not None]
    if len(kinds) != 1:
        raise InvalidConfigError(
            f"{where}: define exactly one of a metric, banned words or required words"
        )

    if kinds[0] == "metric":
        try:
            metric = Metric.from_name(str(raw["metric"]))
        except ValueError as exc:
            raise InvalidConfigError(f"{where}: {exc}") from exc
        if raw.get("threshold") is None:
            raise InvalidConfigError(f"{where}: metric checkers need a value threshold")
        low, high = _parse_threshold(raw["threshold"], where)
        checker: CheckerConfig = MetricChecker(
            checker_id=str(raw.get("id") or f"{position:02d}-{metric.value}"),
            snippet=snippet,
            metric=metric,
            low=low,
            high=high,
            hint=hint,
        )
    else:
        kind = WordListKind.BANNED if kinds[0] == "banned_words" else WordListKind.REQUIRED
        checker = LexicalChecker(
            checker_id=str(raw.get("id") or f"{position:02d}-{kind.value}Words"),
            snippet=snippet,
            kind=kind,
            words=_parse_words(raw[kinds[0]]),
            hint=hint,
        )

    try:
        validate_checker(checker)
    except InvalidConfigError as exc:
        raise InvalidConfigError(f"{where}: {exc}") from exc
    return checker


def parse_authoring_text(text: str) -> list[CheckerConfig]:
    """Parse checker records written in the plain-text authoring format.

    Records are separated by blank lines; lines starting with ``#`` are
    comments.

    Raises:
        ConfigError:        a line is not ``Key: value`` or uses an unknown key.
        InvalidConfigError: a record does not define a valid checker.
    """
    records: list[dict[str, str]] = []
    current: dict[str, str] = {}

    for number, line in enumerate(text.splitlines(), 1):
        stripped = line.strip()
        if stripped.startswith("#"):
            continue
        if not stripped:
            if current:
                records.append(current)
                current = {}
            continue
        label, sep, value = stripped.partition(":")
        if not sep:
            raise ConfigError(f"Line {number}: expected 'Key: value', got '{stripped}'")
        key = _AUTHORING_KEYS.get(label.strip().lower())
        if key is None:
            known = ", ".join(k.capitalize() for k in _AUTHORING_KEYS)
            raise ConfigError(f"Line {number}: unknown key '{label.strip()}'. Known keys: {known}")
        if key in current:
            raise ConfigError(f"Line {number}: '{label.strip()}' given twice in one record")
        current[key] = value.strip()
    if current:
        records.append(current)

    return [parse_checker(record, position) for position, record in enumerate(records, 1)]


def validate_checker(checker: CheckerConfig) -> None:
    """Reject a checker that can never be evaluated meaningfully.

    Raises:
        InvalidConfigError: empty id, low > high, empty or blank word set.
    """
    if not checker.checker_id.strip():
        raise InvalidConfigError("checker id must not be empty")
    if not isinstance(checker.snippet, SnippetId):
        raise InvalidConfigError(f"snippet must be a SnippetId, got {checker.snippet!r}")

    if isinstance(checker, MetricChecker):
        for name in ("low", "high"):
            value = getattr(checker, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidConfigError(f"threshold {name} must be a number, got {value!r}")
        if checker.low > checker.high:
            raise InvalidConfigError(
                f"threshold low ({checker.low}) is greater than high ({checker.high})"
            )
    elif isinstance(checker, LexicalChecker):
        if not checker.words:
            raise InvalidConfigError("word set must not be empty")
        if any(not str(w).strip() for w in checker.words):
            raise InvalidConfigError("word set must not contain blank words")
    else:
        raise InvalidConfigError(f"Unsupported checker type {type(checker).__name__}")


def _parse_threshold(value: Any, where: str) -> tuple[float, float]:
    if isinstance(value, str):
        parts = [p.strip() for p in value.split(",")]
    elif isinstance(value, (list, tuple)):
        parts = list(value)
    else:
        raise InvalidConfigError(f"{where}: threshold must be 'low, high', got {value!r}")
    if len(parts) != 2:
        raise InvalidConfigError(f"{where}: threshold must have exactly two values, got {value!r}")
    try:
        return _as_number(parts[0], "threshold"), _as_number(parts[1], "threshold")
    except ConfigError as exc:
        raise InvalidConfigError(f"{where}: {exc}") from exc


def _parse_words(value: Any) -> tuple[str, ...]:
    items = value.split(",") if isinstance(value, str) else list(value or [])
    words: list[str] = []
    seen: set[str] = set()
    for item in items:
        word = str(item).strip()
        if word and word.lower() not in seen:
            seen.add(word.lower())
            words.append(word)
    return tuple(words)


def _as_number(value: Any, name: str) -> float:
    """Return an int for whole numbers (e.g. ``"4"`` -> 4), else a float."""
    if isinstance(value, bool):
        raise ConfigError(f"'{name}' must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"'{name}' must be a number, got {value!r}") from exc
    if not math.isfinite(number):
        raise ConfigError(f"'{name}' must be a finite number, got {value!r}")
    return int(number) if number.is_integer() else number


def _as_int(value: Any, name: str) -> int:
    number = _as_number(value, name)
    if not isinstance(number, int):
        raise ConfigError(f"'{name}' must be a whole number, got {value!r}")
    return number


# ---------------------------------------------------------------------------
# Template generator (used by `init` command)
# ---------------------------------------------------------------------------

TEMPLATE = """\
settings:
  parse_timeout: 2.0   # seconds; 0 disables the limit
  workers: 1           # checkers evaluated in parallel

checkers:
  # Extract method: keep the scheduling check simple
  - id: extract-method
    snippet: Methods.ScheduleService.IsAvailable
    metric: CyclomaticComplexity
    threshold: [1, 4]
    hint: "Extract the vacation and operation overlap checks into their own methods."

  # Close the single-method bypass: no method anywhere may grow too complex
  - id: all-methods-simple
    snippet: ALL_CODE
    metric: CyclomaticComplexity
    threshold: [1, 6]

  # Remove noise words
  - id: noise-words
    snippet: ALL_CODE
    banned_words: [info, set, list]
    hint: "Names such as DoctorInfo or certificateSet say how data is stored, not what it is."

  - id: domain-words
    snippet: ALL_CODE
    required_words: [Certificates, HasCertificates]
"""

TEXT_TEMPLATE = """\
# Checker records are separated by blank lines.
Checker id: extract-method
Code snippet id: Methods.ScheduleService.IsAvailable
Metric name: CyclomaticComplexity
Value threshold: 1, 4
Hint: Extract the vacation and operation overlap checks into their own methods.

Checker id: noise-words
Code snippet id: ALL_CODE
Banned words: info, set, list
"""


def generate_template(output_path: str = DEFAULT_CONFIG_PATH) -> None:
    """Write a template configuration to *output_path*.

    A ``.yaml`` / ``.yml`` path gets the YAML template, any other path the
    plain-text authoring template.

    Raises:
        ConfigError: if the file already exists.
    """
    path = Path(output_path)
    if path.exists():
        raise ConfigError(
            f"'{output_path}' already exists. Remove it first or choose a different path."
        )
    template = TEMPLATE if path.suffix.lower() in (".yaml", ".yml") else TEXT_TEMPLATE
    path.write_text(template, encoding="utf-8")
