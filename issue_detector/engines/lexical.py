"""Identifier-level lexical engine.

Functions:
    collect_identifiers(element)          -> frozenset[Identifier]
    contains_word(names, word)            -> bool
    find_word(identifiers, word)          -> list[Identifier]

Matching is a case-insensitive substring test against each declared name,
so ``certificateSet`` and ``Setup`` both contain ``set``. Only declared
names are collected (types, called members and literals are not), and a
match says which identifier contains a word, not where it should have been.
"""

from collections.abc import Iterable

from issue_detector.models import ClassModel, Element, Identifier, MethodModel, SourceUnit
from issue_detector.parser import is_identifier_name

_FIELD_KINDS = {"field": "field", "property": "property", "enum_member": "field"}


def collect_identifiers(element: Element) -> frozenset[Identifier]:
    """Return the tagged identifiers declared within *element*'s scope."""
    if isinstance(element, MethodModel):
        return frozenset(_method_identifiers(element))
    if isinstance(element, ClassModel):
        return frozenset(_class_identifiers(element))
    if isinstance(element, SourceUnit):
        return frozenset(i for c in element.classes for i in _class_identifiers(c))
    raise TypeError(f"Cannot collect identifiers from {type(element).__name__}")


def contains_word(names: Iterable[str], word: str) -> bool:
    """True if any of *names* contains *word*, ignoring case."""
    needle = word.lower()
    return any(needle in name.lower() for name in names)


def find_word(identifiers: Iterable[Identifier], word: str) -> list[Identifier]:
    """Identifiers containing *word*, ignoring case, sorted by scope and name."""
    needle = word.lower()
    hits = [i for i in identifiers if needle in i.name.lower()]
    return sorted(hits, key=lambda i: (i.scope, i.name, i.kind))


# --------------------------------------------------------------------------- #
# Helpers
# --------------------------------------------------------------------------- #

def _class_identifiers(cls: ClassModel) -> list[Identifier]:
    scope = cls.qualified_name
    found = [Identifier(cls.name, "class", cls.namespace or "<global>")]
    for field in cls.fields:
        kind = _FIELD_KINDS.get(field.kind)
        if kind is not None:
            found.append(Identifier(field.name, kind, scope))
    for method in cls.members:
        found.extend(_method_identifiers(method))
    return found


def _method_identifiers(method: MethodModel) -> list[Identifier]:
    scope = method.qualified_name
    owner = scope.rsplit(".", 1)[0]
    found: list[Identifier] = []
    if is_identifier_name(method.name):
        kind = "constructor" if method.is_constructor else "method"
        found.append(Identifier(method.name, kind, owner))
    found.extend(Identifier(p.name, "parameter", scope) for p in method.parameters)
    found.extend(Identifier(name, "local", scope) for name in method.locals)
    return found
