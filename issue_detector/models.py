"""Data models for the issue detector.

Contains the dataclasses shared by the index, the engines and the reports:
    - Token, Parameter, FieldModel, MethodModel, ClassModel, SourceUnit
    - Identifier
    - SnippetId
    - Metric, WordListKind, MetricChecker, LexicalChecker
    - Measurement, Verdict, Report

Every model is frozen. A SourceUnit is built once per submission and shared
read-only across checker evaluations.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

ALL_CODE = "ALL_CODE"

_SNIPPET_RE = re.compile(r"^@?[A-Za-z_][A-Za-z0-9_]*(\.@?[A-Za-z_][A-Za-z0-9_]*)*$")


# ---------------------------------------------------------------------------
# Structural model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Token:
    kind: str
    value: str
    line: int
    column: int


@dataclass(frozen=True)
class Parameter:
    name: str
    type_name: str


@dataclass(frozen=True)
class FieldModel:
    """A field, property, indexer or enum member."""

    name: str
    type_name: str
    kind: str = "field"
    line: int = 0


@dataclass(frozen=True)
class MethodModel:
    """A method or constructor with the token sequence of its body."""

    name: str
    qualified_name: str
    parameters: tuple[Parameter, ...] = ()
    return_type: str | None = None
    body: tuple[Token, ...] = ()
    locals: tuple[str, ...] = ()
    referenced_types: frozenset[str] = frozenset()
    is_constructor: bool = False
    line: int = 0


@dataclass(frozen=True)
class ClassModel:
    name: str
    qualified_name: str
    namespace: str = ""
    kind: str = "class"
    methods: tuple[MethodModel, ...] = ()
    constructors: tuple[MethodModel, ...] = ()
    fields: tuple[FieldModel, ...] = ()
    base_types: tuple[str, ...] = ()
    referenced_types: frozenset[str] = frozenset()
    line: int = 0

    @property
    def members(self) -> tuple[MethodModel, ...]:
        """Methods and constructors, in declaration order of each group."""
        return self.methods + self.constructors


@dataclass(frozen=True)
class SourceUnit:
    classes: tuple[ClassModel, ...] = ()
    source_name: str = "<submission>"

    @property
    def class_names(self) -> frozenset[str]:
        return frozenset(c.name for c in self.classes)

    def all_methods(self) -> list[MethodModel]:
        return [m for c in self.classes for m in c.members]


Element = Union[SourceUnit, ClassModel, MethodModel]


@dataclass(frozen=True)
class Identifier:
    """A declared name, tagged with what declares it and where."""

    name: str
    kind: str
    scope: str

    def describe(self) -> str:
        return f"{self.name} ({self.kind} in {self.scope})"


# ---------------------------------------------------------------------------
# Checker configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SnippetId:
    raw: str

    @classmethod
    def parse(cls, text: str) -> "SnippetId":
        """Validate the syntax of a snippet id. Raises ValueError."""
        value = (text or "").strip()
        if value != ALL_CODE and not _SNIPPET_RE.match(value):
            raise ValueError(
                f"Invalid snippet id '{text}': expected ALL_CODE or a dotted "
                "path such as Namespace.Class or Namespace.Class.Method"
            )
        return cls(value)

    @property
    def is_all_code(self) -> bool:
        return self.raw == ALL_CODE

    def __str__(self) -> str:
        return self.raw


class Metric(Enum):
    CYCLOMATIC_COMPLEXITY = "CyclomaticComplexity"
    WEIGHTED_METHODS_PER_CLASS = "WeightedMethodsPerClass"
    AFFERENT_COUPLING = "AfferentCoupling"
    EFFERENT_COUPLING = "EfferentCoupling"
    NUMBER_OF_METHODS = "NumberOfMethods"
    OWN_STATE_ACCESS_RATIO = "OwnStateAccessRatio"

    @property
    def is_method_level(self) -> bool:
        return self is Metric.CYCLOMATIC_COMPLEXITY

    @classmethod
    def from_name(cls, name: str) -> "Metric":
        """Look a metric up by its authoring name, case-insensitively."""
        wanted = (name or "").strip().lower()
        for metric in cls:
            if metric.value.lower() == wanted:
                return metric
        available = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown metric '{name}'. Available metrics: {available}")


class WordListKind(Enum):
    BANNED = "Banned"
    REQUIRED = "Required"


@dataclass(frozen=True)
class MetricChecker:
    checker_id: str
    snippet: SnippetId
    metric: Metric
    low: float
    high: float
    hint: str = ""

    @property
    def label(self) -> str:
        return self.metric.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "id":        self.checker_id,
            "snippet":   str(self.snippet),
            "metric":    self.metric.value,
            "threshold": [self.low, self.high],
        }


@dataclass(frozen=True)
class LexicalChecker:
    checker_id: str
    snippet: SnippetId
    kind: WordListKind
    words: tuple[str, ...]
    hint: str = ""

    @property
    def label(self) -> str:
        return f"{self.kind.value}Words"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id":      self.checker_id,
            "snippet": str(self.snippet),
            "kind":    self.kind.value,
            "words":   list(self.words),
        }


CheckerConfig = Union[MetricChecker, LexicalChecker]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Measurement:
    element: str
    value: float
    in_range: bool

    def to_dict(self) -> dict[str, Any]:
        return {"element": self.element, "value": self.value, "in_range": self.in_range}


@dataclass(frozen=True)
class Verdict:
    checker: CheckerConfig
    passed: bool
    hint: str = ""
    measurements: tuple[Measurement, ...] = ()
    matched_words: tuple[str, ...] = ()
    missing_words: tuple[str, ...] = ()
    offending_identifiers: tuple[Identifier, ...] = ()
    skipped: bool = False
    diagnostic: str | None = None

    @property
    def checker_id(self) -> str:
        return self.checker.checker_id

    @property
    def measured_value(self) -> float | None:
        """The value of a single-element measurement, else None."""
        if len(self.measurements) == 1:
            return self.measurements[0].value
        return None

    @property
    def violations(self) -> tuple[str, ...]:
        """Qualified names of the measured elements outside the range."""
        return tuple(m.element for m in self.measurements if not m.in_range)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "checker_id": self.checker_id,
            "checker":    self.checker.to_dict(),
            "passed":     self.passed,
            "skipped":    self.skipped,
            "hint":       self.hint,
        }
        if self.skipped:
            data["diagnostic"] = self.diagnostic
            return data
        if isinstance(self.checker, MetricChecker):
            data["measured_value"] = self.measured_value
            data["measurements"] = [m.to_dict() for m in self.measurements]
            data["violations"] = list(self.violations)
        else:
            data["matched_words"] = list(self.matched_words)
            data["missing_words"] = list(self.missing_words)
            data["offending_identifiers"] = [i.describe() for i in self.offending_identifiers]
        return data


@dataclass(frozen=True)
class Report:
    verdicts: tuple[Verdict, ...] = ()
    source_name: str | None = None
    generated_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def passed(self) -> bool:
        """True when no checker failed. Skipped checkers do not count."""
        return all(v.passed for v in self.verdicts if not v.skipped)

    @property
    def failed(self) -> tuple[Verdict, ...]:
        return tuple(v for v in self.verdicts if not v.passed and not v.skipped)

    @property
    def skipped(self) -> tuple[Verdict, ...]:
        return tuple(v for v in self.verdicts if v.skipped)

    def to_dict(self) -> dict[str, Any]:
        from issue_detector.report import build_summary

        return {
            "report_type":  "maintainability",
            "source":       self.source_name,
            "generated_at": self.generated_at,
            "summary":      build_summary(self.verdicts),
            "verdicts":     [v.to_dict() for v in self.verdicts],
        }
