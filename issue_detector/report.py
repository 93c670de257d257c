"""Report aggregation and rendering.

Functions:
    aggregate(verdicts, source_name)   -> Report
    build_summary(verdicts)            -> dict
    render_text(report)                -> str
    build_metrics_report(unit)         -> dict
"""

from collections.abc import Iterable
from datetime import datetime, timezone

from issue_detector.engines.metrics import compute_metric
from issue_detector.models import Metric, Report, SourceUnit, Verdict

_CHECKER_LABELS = tuple(m.value for m in Metric) + ("BannedWords", "RequiredWords")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def aggregate(verdicts: Iterable[Verdict], source_name: str | None = None) -> Report:
    """Combine verdicts, in configured-checker order, into one report."""
    return Report(verdicts=tuple(verdicts), source_name=source_name)


def build_summary(verdicts: Iterable[Verdict]) -> dict:
    verdicts = list(verdicts)
    failed_by_checker = {label: 0 for label in _CHECKER_LABELS}
    passed = failed = skipped = 0

    for verdict in verdicts:
        if verdict.skipped:
            skipped += 1
        elif verdict.passed:
            passed += 1
        else:
            failed += 1
            failed_by_checker[verdict.checker.label] += 1

    return {
        "total":             len(verdicts),
        "passed":            passed,
        "failed":            failed,
        "skipped":           skipped,
        "failed_by_checker": failed_by_checker,
    }


def render_text(report: Report) -> str:
    """Human-readable listing of a report, failures first."""
    title = report.source_name or "<submission>"
    lines = [f"{'=' * 80}", f"Maintainability report: {title}", f"{'=' * 80}", ""]

    failed = [v for v in report.verdicts if not v.passed and not v.skipped]
    skipped = [v for v in report.verdicts if v.skipped]
    passed = [v for v in report.verdicts if v.passed]

    if failed:
        lines.append(f"FAILED ({len(failed)}):")
        lines.append("-" * 80)
        for verdict in failed:
            lines.extend(_describe(verdict))
    if skipped:
        lines.append(f"SKIPPED ({len(skipped)}):")
        lines.append("-" * 80)
        for verdict in skipped:
            lines.append(f"  [{verdict.checker_id}] {verdict.checker.snippet}")
            lines.append(f"    Diagnostic: {verdict.diagnostic}\n")
    if passed:
        lines.append(f"PASSED ({len(passed)}):")
        lines.append("-" * 80)
        for verdict in passed:
            lines.append(f"  [{verdict.checker_id}] {verdict.checker.label} on {verdict.checker.snippet}")
        lines.append("")

    summary = build_summary(report.verdicts)
    lines.append(
        f"Summary: {summary['passed']} passed, {summary['failed']} failed, "
        f"{summary['skipped']} skipped"
    )
    lines.append("=" * 80)
    return "\n".join(lines)


def build_metrics_report(unit: SourceUnit) -> dict:
    """Every metric for every class and method of *unit*."""
    classes = []
    for cls in unit.classes:
        entry: dict = {"name": cls.qualified_name, "kind": cls.kind}
        if cls.kind != "enum":
            for metric in Metric:
                if not metric.is_method_level:
                    entry[metric.value] = compute_metric(metric, cls, unit)
        entry["methods"] = [
            {
                "name":        m.qualified_name,
                "constructor": m.is_constructor,
                "line":        m.line,
                Metric.CYCLOMATIC_COMPLEXITY.value:
                    compute_metric(Metric.CYCLOMATIC_COMPLEXITY, m, unit),
            }
            for m in cls.members
        ]
        classes.append(entry)

    return {
        "report_type":  "metrics",
        "source":       unit.source_name,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "classes":      classes,
    }


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _describe(verdict: Verdict) -> list[str]:
    checker = verdict.checker
    lines = [f"  [{verdict.checker_id}] {checker.label} on {checker.snippet}"]
    if verdict.measurements:
        low, high = checker.low, checker.high
        for m in verdict.measurements:
            if not m.in_range:
                lines.append(f"    {m.element}: {m.value} (expected {low}..{high})")
    if verdict.offending_identifiers:
        found = ", ".join(i.describe() for i in verdict.offending_identifiers)
        lines.append(f"    Banned words {', '.join(verdict.matched_words)} found in: {found}")
    if verdict.missing_words:
        lines.append(f"    Required words missing: {', '.join(verdict.missing_words)}")
    lines.append(f"    Hint: {verdict.hint}\n")
    return lines
