"""Code index: build the structural snapshot of a submission and resolve
snippet ids against it.

Usage:
    unit    = index_source(source_text, timeout=2.0)   # raises ParseError
    element = resolve(unit, SnippetId.parse("Methods.ScheduleService.IsAvailable"))
"""

from issue_detector.models import ClassModel, Element, MethodModel, SnippetId, SourceUnit
from issue_detector.parser import parse

DEFAULT_PARSE_TIMEOUT = 2.0


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class SnippetError(Exception):
    """Base exception for checker snippets that cannot be evaluated.

    These are authoring faults: they are reported on the checker that
    caused them and never abort the rest of the evaluation.
    """


class UnknownSnippetError(SnippetError):
    """Raised when a snippet id matches nothing in the submission."""


class AmbiguousSnippetError(SnippetError):
    """Raised when a snippet id matches more than one element (overloads)."""


# ---------------------------------------------------------------------------
# Indexing
# ---------------------------------------------------------------------------

def index_source(
    source_text: str,
    source_name: str = "<submission>",
    timeout: float | None = DEFAULT_PARSE_TIMEOUT,
) -> SourceUnit:
    """Parse *source_text* into a SourceUnit, bounded by *timeout* seconds.

    The parser checks the budget as it walks the tokens and stops once it
    is spent. A timeout of None or 0 parses without a bound.

    Raises:
        ParseError: invalid source, or parsing took longer than *timeout*.
    """
    return parse(source_text, source_name, timeout=timeout or None)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def resolve(unit: SourceUnit, snippet: SnippetId) -> Element:
    """Return the narrowest element of *unit* addressed by *snippet*.

    ``ALL_CODE`` resolves to the unit itself. Otherwise a method whose
    qualified name matches exactly wins over a class; more than one match
    at the same level is an ambiguity, never a guess.

    Raises:
        UnknownSnippetError:   nothing matches.
        AmbiguousSnippetError: several methods (or several classes) match.
    """
    if snippet.is_all_code:
        return unit

    wanted = snippet.raw
    methods: list[MethodModel] = [
        m for c in unit.classes for m in c.members if m.qualified_name == wanted
    ]
    if len(methods) == 1:
        return methods[0]
    if len(methods) > 1:
        lines = ", ".join(str(m.line) for m in methods)
        raise AmbiguousSnippetError(
            f"Snippet id '{wanted}' matches {len(methods)} overloads (lines {lines}); "
            "point the checker at the class instead or rename the overloads"
        )

    classes: list[ClassModel] = [c for c in unit.classes if c.qualified_name == wanted]
    if len(classes) == 1:
        return classes[0]
    if len(classes) > 1:
        raise AmbiguousSnippetError(
            f"Snippet id '{wanted}' matches {len(classes)} type declarations"
        )

    available = ", ".join(c.qualified_name for c in unit.classes) or "(no classes)"
    raise UnknownSnippetError(
        f"Snippet id '{wanted}' not found in '{unit.source_name}'. Classes: {available}"
    )
