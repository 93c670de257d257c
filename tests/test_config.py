"""Tests for issue_detector/config.py"""

import textwrap
from pathlib import Path

import pytest

from issue_detector.config import (
    Config,
    ConfigError,
    InvalidConfigError,
    generate_template,
    load,
    parse_authoring_text,
    parse_checker,
)
from issue_detector.models import LexicalChecker, Metric, MetricChecker, SnippetId, WordListKind


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def write_config(tmp_path: Path, content: str, name: str = "issue-detector.yaml") -> Path:
    p = tmp_path / name
    p.write_text(textwrap.dedent(content), encoding="utf-8")
    return p


VALID_YAML = """\
    settings:
      parse_timeout: 5
      workers: 2
    checkers:
      - id: extract-method
        snippet: Methods.ScheduleService.IsAvailable
        metric: CyclomaticComplexity
        threshold: [1, 4]
        hint: "Extract the overlap checks."
      - snippet: ALL_CODE
        banned_words: [info, set, list]
    """

VALID_TEXT = """\
    # Methods exercise
    Code snippet id: Methods.ScheduleService.IsAvailable
    Metric name: CyclomaticComplexity
    Value threshold: 1, 4

    Code snippet id: ALL_CODE
    Banned words: info, set, list
    """


# ---------------------------------------------------------------------------
# load(): happy path
# ---------------------------------------------------------------------------

def test_load_valid_yaml(tmp_path):
    p = write_config(tmp_path, VALID_YAML)
    config = load(str(p))
    assert config.parse_timeout == 5
    assert config.workers == 2
    assert config.checkers == [
        MetricChecker(
            "extract-method", SnippetId("Methods.ScheduleService.IsAvailable"),
            Metric.CYCLOMATIC_COMPLEXITY, 1, 4, "Extract the overlap checks.",
        ),
        LexicalChecker("02-BannedWords", SnippetId("ALL_CODE"), WordListKind.BANNED, ("info", "set", "list")),
    ]


def test_load_authoring_text(tmp_path):
    p = write_config(tmp_path, VALID_TEXT, "checkers.txt")
    config = load(str(p))
    assert [c.checker_id for c in config.checkers] == ["01-CyclomaticComplexity", "02-BannedWords"]
    assert config.checkers[0].low == 1
    assert config.checkers[0].high == 4
    assert config.checkers[1].words == ("info", "set", "list")


def test_yaml_and_text_formats_are_equivalent(tmp_path):
    yaml_path = write_config(tmp_path, """\
        checkers:
          - snippet: Methods.ScheduleService.IsAvailable
            metric: CyclomaticComplexity
            threshold: [1, 4]
          - snippet: ALL_CODE
            banned_words: [info, set, list]
        """)
    text_path = write_config(tmp_path, VALID_TEXT, "checkers.txt")
    assert load(str(yaml_path)).checkers == load(str(text_path)).checkers


def test_load_defaults_settings(tmp_path):
    p = write_config(tmp_path, """\
        checkers:
          - snippet: ALL_CODE
            required_words: [Doctor]
        """)
    config = load(str(p))
    assert config.parse_timeout == 2.0
    assert config.workers == 1


# ---------------------------------------------------------------------------
# load(): errors
# ---------------------------------------------------------------------------

def test_load_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load(str(tmp_path / "no-such-file.yaml"))


def test_load_invalid_yaml(tmp_path):
    p = write_config(tmp_path, "checkers: [unclosed\n")
    with pytest.raises(ConfigError, match="Failed to parse"):
        load(str(p))


def test_load_no_checkers(tmp_path):
    p = write_config(tmp_path, "settings:\n  workers: 1\n")
    with pytest.raises(ConfigError, match="no checkers"):
        load(str(p))


def test_load_bad_settings(tmp_path):
    p = write_config(tmp_path, """\
        settings:
          workers: 0
          parse_timeout: -1
        checkers:
          - snippet: ALL_CODE
            banned_words: [info]
        """)
    with pytest.raises(ConfigError, match="workers") as info:
        load(str(p))
    assert "parse_timeout" in str(info.value)


def test_load_duplicate_checker_ids(tmp_path):
    p = write_config(tmp_path, """\
        checkers:
          - id: same
            snippet: ALL_CODE
            banned_words: [info]
          - id: same
            snippet: ALL_CODE
            required_words: [Doctor]
        """)
    with pytest.raises(InvalidConfigError, match="same"):
        load(str(p))


def test_load_inverted_threshold(tmp_path):
    p = write_config(tmp_path, """\
        checkers:
          - snippet: ALL_CODE
            metric: CyclomaticComplexity
            threshold: [5, 1]
        """)
    with pytest.raises(InvalidConfigError, match="Checker #1"):
        load(str(p))


# ---------------------------------------------------------------------------
# load(): environment variable overrides
# ---------------------------------------------------------------------------

def test_env_parse_timeout_overrides_config(tmp_path, monkeypatch):
    p = write_config(tmp_path, VALID_YAML)
    monkeypatch.setenv("ISSUE_DETECTOR_PARSE_TIMEOUT", "0.5")
    assert load(str(p)).parse_timeout == 0.5


def test_env_workers_overrides_config(tmp_path, monkeypatch):
    p = write_config(tmp_path, VALID_YAML)
    monkeypatch.setenv("ISSUE_DETECTOR_WORKERS", "8")
    assert load(str(p)).workers == 8


def test_env_workers_must_be_whole_number(tmp_path, monkeypatch):
    p = write_config(tmp_path, VALID_YAML)
    monkeypatch.setenv("ISSUE_DETECTOR_WORKERS", "many")
    with pytest.raises(ConfigError, match="ISSUE_DETECTOR_WORKERS"):
        load(str(p))


# ---------------------------------------------------------------------------
# parse_checker()
# ---------------------------------------------------------------------------

def test_parse_checker_metric_name_is_case_insensitive():
    checker = parse_checker({"snippet": "ALL_CODE", "metric": "numberofmethods", "threshold": "0, 7"})
    assert checker.metric is Metric.NUMBER_OF_METHODS
    assert (checker.low, checker.high) == (0, 7)


def test_parse_checker_fractional_threshold():
    checker = parse_checker({"snippet": "ALL_CODE", "metric": "OwnStateAccessRatio", "threshold": [0.5, 1]})
    assert checker.low == 0.5


@pytest.mark.parametrize("raw, message", [
    ({"snippet": "ALL_CODE", "metric": "Lines", "threshold": [1, 2]}, "Unknown metric"),
    ({"snippet": "ALL_CODE", "metric": "CyclomaticComplexity"}, "threshold"),
    ({"snippet": "ALL_CODE", "metric": "CyclomaticComplexity", "threshold": [1]}, "exactly two"),
    ({"snippet": "ALL_CODE", "metric": "CyclomaticComplexity", "threshold": "a, b"}, "number"),
    ({"snippet": "ALL_CODE", "metric": "CyclomaticComplexity", "threshold": "nan, 5"}, "finite"),
    ({"snippet": "ALL_CODE", "metric": "CyclomaticComplexity", "threshold": [1, float("inf")]}, "finite"),
    ({"snippet": "Methods..Broken", "banned_words": ["x"]}, "Invalid snippet id"),
    ({"snippet": "ALL_CODE"}, "exactly one"),
    ({"snippet": "ALL_CODE", "banned_words": ["x"], "required_words": ["y"]}, "exactly one"),
    ({"snippet": "ALL_CODE", "banned_words": " , "}, "empty"),
    ({"metric": "CyclomaticComplexity", "threshold": [1, 2]}, "snippet id is required"),
    ({"snippet": "ALL_CODE", "banned_words": ["x"], "colour": "red"}, "unknown keys"),
])
def test_parse_checker_rejects_invalid_definitions(raw, message):
    with pytest.raises(InvalidConfigError, match=message):
        parse_checker(raw)


def test_parse_checker_trims_and_dedupes_words():
    checker = parse_checker({"snippet": "ALL_CODE", "banned_words": " Info, info ,set,, "})
    assert checker.words == ("Info", "set")


# ---------------------------------------------------------------------------
# parse_authoring_text()
# ---------------------------------------------------------------------------

def test_authoring_text_optional_lines():
    checkers = parse_authoring_text(textwrap.dedent("""\
        Checker id: noise-words
        Code snippet id: ALL_CODE
        Required words: Doctor
        Hint: Use the domain vocabulary.
        """))
    assert checkers[0].checker_id == "noise-words"
    assert checkers[0].kind is WordListKind.REQUIRED
    assert checkers[0].hint == "Use the domain vocabulary."


def test_authoring_text_unknown_key():
    with pytest.raises(ConfigError, match="Line 2: unknown key 'Metric'"):
        parse_authoring_text("Code snippet id: ALL_CODE\nMetric: CyclomaticComplexity\n")


def test_authoring_text_line_without_colon():
    with pytest.raises(ConfigError, match="Line 1"):
        parse_authoring_text("just some words\n")


def test_authoring_text_repeated_key():
    with pytest.raises(ConfigError, match="given twice"):
        parse_authoring_text("Code snippet id: ALL_CODE\nCode snippet id: ALL_CODE\n")


def test_authoring_text_rejects_nan_threshold():
    with pytest.raises(InvalidConfigError, match="finite"):
        parse_authoring_text(textwrap.dedent("""\
            Code snippet id: ALL_CODE
            Metric name: CyclomaticComplexity
            Value threshold: nan, 5
            """))


def test_authoring_text_empty():
    assert parse_authoring_text("# nothing here\n\n") == []


# ---------------------------------------------------------------------------
# find_checker()
# ---------------------------------------------------------------------------

def test_find_checker_known_id(tmp_path):
    config = load(str(write_config(tmp_path, VALID_YAML)))
    assert config.find_checker("extract-method").metric is Metric.CYCLOMATIC_COMPLEXITY


def test_find_checker_unknown_raises():
    with pytest.raises(ConfigError, match="nope"):
        Config().find_checker("nope")


# ---------------------------------------------------------------------------
# generate_template()
# ---------------------------------------------------------------------------

def test_generate_template_creates_loadable_yaml(tmp_path):
    out = tmp_path / "issue-detector.yaml"
    generate_template(str(out))
    assert out.exists()
    config = load(str(out))
    assert [c.checker_id for c in config.checkers] == [
        "extract-method", "all-methods-simple", "noise-words", "domain-words",
    ]


def test_generate_template_text_format(tmp_path):
    out = tmp_path / "checkers.txt"
    generate_template(str(out))
    config = load(str(out))
    assert [c.checker_id for c in config.checkers] == ["extract-method", "noise-words"]


def test_generate_template_refuses_to_overwrite(tmp_path):
    out = tmp_path / "issue-detector.yaml"
    out.write_text("existing content")
    with pytest.raises(ConfigError, match="already exists"):
        generate_template(str(out))
