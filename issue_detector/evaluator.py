"""Checker registry and evaluator.

Usage:
    registry = CheckerRegistry(config.checkers)      # raises InvalidConfigError
    verdict  = evaluate(checker, unit)
    report   = registry.run(unit, workers=4)
    report   = check_source(source_text, config.checkers, source_name="Schedule.cs")

Evaluation is pure: the SourceUnit is shared read-only, so checkers may run
in any order or in parallel. Verdicts always come back in registration
order.
"""

from collections.abc import Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor

from issue_detector.config import InvalidConfigError, validate_checker
from issue_detector.engines.lexical import collect_identifiers, contains_word, find_word
from issue_detector.engines.metrics import measure
from issue_detector.index import DEFAULT_PARSE_TIMEOUT, SnippetError, index_source, resolve
from issue_detector.models import (
    CheckerConfig,
    Element,
    Identifier,
    LexicalChecker,
    Measurement,
    Metric,
    MetricChecker,
    Report,
    SourceUnit,
    Verdict,
    WordListKind,
)
from issue_detector.report import aggregate

#: Hints used when a checker's author did not write one
DEFAULT_HINTS = {
    Metric.CYCLOMATIC_COMPLEXITY:
        "Extract complex logic into well-named methods to reduce the number of decision paths.",
    Metric.WEIGHTED_METHODS_PER_CLASS:
        "The class carries too much logic; consider extracting a class for one of its responsibilities.",
    Metric.NUMBER_OF_METHODS:
        "The number of methods is outside the expected range; revisit how responsibilities are split.",
    Metric.AFFERENT_COUPLING:
        "The number of classes depending on this class is outside the expected range.",
    Metric.EFFERENT_COUPLING:
        "The class depends on an unexpected number of other classes; revisit its responsibilities.",
    Metric.OWN_STATE_ACCESS_RATIO:
        "The class mostly works with other objects' data; check whether the behavior belongs there.",
    WordListKind.BANNED:
        "Remove noise words from identifiers; a name should say what a thing is, not how it is stored.",
    WordListKind.REQUIRED:
        "Use the domain terms the exercise expects in your identifiers.",
}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class CheckerRegistry:
    """An ordered collection of validated checkers."""

    def __init__(self, checkers: Iterable[CheckerConfig] = ()) -> None:
        self._checkers: list[CheckerConfig] = []
        for checker in checkers:
            self.register(checker)

    def register(self, checker: CheckerConfig) -> None:
        """Validate and append *checker*.

        Raises:
            InvalidConfigError: invalid definition or duplicate checker id.
        """
        validate_checker(checker)
        if any(c.checker_id == checker.checker_id for c in self._checkers):
            raise InvalidConfigError(f"Duplicate checker id '{checker.checker_id}'")
        self._checkers.append(checker)

    def __iter__(self) -> Iterator[CheckerConfig]:
        return iter(self._checkers)

    def __len__(self) -> int:
        return len(self._checkers)

    def run(self, unit: SourceUnit, workers: int = 1) -> Report:
        """Evaluate every registered checker against *unit*."""
        return aggregate(evaluate_all(self._checkers, unit, workers), unit.source_name)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def hint_for(checker: CheckerConfig) -> str:
    if checker.hint:
        return checker.hint
    key = checker.metric if isinstance(checker, MetricChecker) else checker.kind
    return DEFAULT_HINTS[key]


def evaluate(checker: CheckerConfig, unit: SourceUnit) -> Verdict:
    """Evaluate one checker. Snippet errors become a skipped verdict."""
    hint = hint_for(checker)
    try:
        element = resolve(unit, checker.snippet)
        if isinstance(checker, MetricChecker):
            return _evaluate_metric(checker, element, unit, hint)
        return _evaluate_lexical(checker, element, hint)
    except SnippetError as exc:
        return Verdict(checker=checker, passed=False, hint=hint, skipped=True, diagnostic=str(exc))


def evaluate_all(
    checkers: Iterable[CheckerConfig],
    unit: SourceUnit,
    workers: int = 1,
) -> list[Verdict]:
    """Evaluate all *checkers*, in parallel when *workers* > 1.

    Every checker runs even after another one fails.
    """
    checkers = list(checkers)
    if workers <= 1 or len(checkers) <= 1:
        return [evaluate(c, unit) for c in checkers]
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="issue-detector-eval") as pool:
        return list(pool.map(lambda c: evaluate(c, unit), checkers))


def check_source(
    source_text: str,
    checkers: Iterable[CheckerConfig],
    source_name: str = "<submission>",
    parse_timeout: float | None = DEFAULT_PARSE_TIMEOUT,
    workers: int = 1,
) -> Report:
    """Index *source_text* once and evaluate every checker against it.

    Checkers are validated before the source is parsed.

    Raises:
        InvalidConfigError: a checker is invalid (no report is produced).
        ParseError:         the source cannot be modeled (no report is produced).
    """
    registry = checkers if isinstance(checkers, CheckerRegistry) else CheckerRegistry(checkers)
    unit = index_source(source_text, source_name, timeout=parse_timeout)
    return registry.run(unit, workers)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _evaluate_metric(checker: MetricChecker, element: Element, unit: SourceUnit, hint: str) -> Verdict:
    measurements = tuple(
        Measurement(name, value, checker.low <= value <= checker.high)
        for name, value in measure(checker.metric, element, unit)
    )
    return Verdict(
        checker=checker,
        passed=all(m.in_range for m in measurements),
        hint=hint,
        measurements=measurements,
    )


def _evaluate_lexical(checker: LexicalChecker, element: Element, hint: str) -> Verdict:
    identifiers = collect_identifiers(element)
    names = {i.name for i in identifiers}
    matched = tuple(w for w in checker.words if contains_word(names, w))

    if checker.kind is WordListKind.BANNED:
        offending: list[Identifier] = []
        for word in matched:
            for identifier in find_word(identifiers, word):
                if identifier not in offending:
                    offending.append(identifier)
        return Verdict(
            checker=checker,
            passed=not matched,
            hint=hint,
            matched_words=matched,
            offending_identifiers=tuple(offending),
        )

    missing = tuple(w for w in checker.words if w not in matched)
    return Verdict(
        checker=checker,
        passed=not missing,
        hint=hint,
        matched_words=matched,
        missing_words=missing,
    )
