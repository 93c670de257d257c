"""Structural metric engine.

Functions:
    cyclomatic_complexity(method)               -> int
    weighted_methods_per_class(cls)             -> int
    number_of_methods(cls)                      -> int
    afferent_coupling(cls, unit)                -> int
    efferent_coupling(cls, unit)                -> int
    own_state_access_ratio(cls)                 -> float   (advisory)
    compute_metric(metric, element, unit)       -> number
    measure(metric, element, unit)              -> list[(qualified name, number)]

Method-level metrics evaluated on a class or on ALL_CODE are measured once
per contained method and constructor; class-level metrics on ALL_CODE once
per class. A checker passes only if every measurement is in range.
"""

from issue_detector.index import SnippetError
from issue_detector.models import ClassModel, Element, Metric, MethodModel, SourceUnit, Token

#: Keywords and operators that each add one independent path through a method body
DECISION_KEYWORDS: frozenset[str] = frozenset({"if", "while", "for", "foreach", "case"})
DECISION_OPERATORS: frozenset[str] = frozenset({"&&", "||"})


class ScopeMismatchError(SnippetError):
    """Raised when a class-level metric is pointed at a single method."""


# --------------------------------------------------------------------------- #
# Method metrics
# --------------------------------------------------------------------------- #

def cyclomatic_complexity(method: MethodModel) -> int:
    """1 + the number of decision points in the method body."""
    return 1 + sum(1 for token in method.body if _is_decision_point(token))


# --------------------------------------------------------------------------- #
# Class metrics
# --------------------------------------------------------------------------- #

def weighted_methods_per_class(cls: ClassModel) -> int:
    """Sum of cyclomatic complexity over the methods declared on *cls*.

    Constructors and methods of other classes (nested, base or extracted)
    are not included.
    """
    return sum(cyclomatic_complexity(m) for m in cls.methods)


def number_of_methods(cls: ClassModel) -> int:
    return len(cls.methods)


def efferent_coupling(cls: ClassModel, unit: SourceUnit) -> int:
    """Number of other submission classes that *cls* references."""
    return len(_dependencies(cls, unit))


def afferent_coupling(cls: ClassModel, unit: SourceUnit) -> int:
    """Number of other submission classes that reference *cls*."""
    return sum(
        1 for other in unit.classes
        if other is not cls and cls.name in _dependencies(other, unit)
    )


def own_state_access_ratio(cls: ClassModel) -> float:
    """Share of member accesses in *cls* that target its own state.

    Counts references to the class's own fields and properties (bare or
    through ``this.``) against member accesses made through parameters and
    local variables (``doctor.Operations``). Coordinating service classes
    score low, domain classes high. Returns 0.0 when nothing is accessed.
    """
    own_names = {f.name for f in cls.fields if f.kind in ("field", "property")}
    own = 0
    other = 0

    for method in cls.members:
        scoped = {p.name for p in method.parameters} | set(method.locals)
        body = method.body
        for i, token in enumerate(body):
            if token.kind not in ("ident", "keyword"):
                continue
            previous = body[i - 1].value if i > 0 else None
            following = body[i + 1].value if i + 1 < len(body) else None
            if token.value == "this" and following == "." and i + 2 < len(body):
                if body[i + 2].value in own_names:
                    own += 1
                continue
            if previous in (".", "?."):
                continue
            if token.value in scoped:
                if following in (".", "?."):
                    other += 1
            elif token.value in own_names:
                own += 1

    total = own + other
    return round(own / total, 2) if total else 0.0


def _is_decision_point(token: Token) -> bool:
    if token.kind == "keyword":
        return token.value in DECISION_KEYWORDS
    return token.kind == "op" and token.value in DECISION_OPERATORS


def _dependencies(cls: ClassModel, unit: SourceUnit) -> set[str]:
    return (set(cls.referenced_types) & unit.class_names) - {cls.name}


# --------------------------------------------------------------------------- #
# Dispatch
# --------------------------------------------------------------------------- #

_CLASS_METRICS = {
    Metric.WEIGHTED_METHODS_PER_CLASS: lambda cls, unit: weighted_methods_per_class(cls),
    Metric.NUMBER_OF_METHODS:          lambda cls, unit: number_of_methods(cls),
    Metric.AFFERENT_COUPLING:          afferent_coupling,
    Metric.EFFERENT_COUPLING:          efferent_coupling,
    Metric.OWN_STATE_ACCESS_RATIO:     lambda cls, unit: own_state_access_ratio(cls),
}


def compute_metric(metric: Metric, element: Element, unit: SourceUnit) -> float:
    """Compute *metric* for a single method (method-level) or class (class-level).

    Raises:
        ScopeMismatchError: *element* is not the kind the metric applies to.
    """
    if metric.is_method_level:
        if not isinstance(element, MethodModel):
            raise ScopeMismatchError(f"{metric.value} is computed per method")
        return cyclomatic_complexity(element)
    if not isinstance(element, ClassModel):
        raise ScopeMismatchError(f"{metric.value} is computed per class")
    return _CLASS_METRICS[metric](element, unit)


def measure(metric: Metric, element: Element, unit: SourceUnit) -> list[tuple[str, float]]:
    """Measure *metric* on every element of the scope selected by *element*.

    Raises:
        ScopeMismatchError: a class-level metric was pointed at a method.
    """
    if metric.is_method_level:
        if isinstance(element, MethodModel):
            targets = [element]
        elif isinstance(element, ClassModel):
            targets = list(element.members)
        else:
            targets = unit.all_methods()
        return [(m.qualified_name, compute_metric(metric, m, unit)) for m in targets]

    if isinstance(element, MethodModel):
        raise ScopeMismatchError(
            f"{metric.value} is a class metric and cannot be measured on method "
            f"'{element.qualified_name}'"
        )
    if isinstance(element, ClassModel):
        classes = [element]
    else:
        classes = [c for c in unit.classes if c.kind != "enum"]
    return [(c.qualified_name, compute_metric(metric, c, unit)) for c in classes]
