"""Tests for issue_detector/parser.py"""

import textwrap
from pathlib import Path

import pytest

from issue_detector.parser import (
    ParseError,
    declared_locals,
    parse,
    referenced_types,
    tokenize,
)

FIXTURES = Path(__file__).parent / "fixtures"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse(source: str):
    return parse(textwrap.dedent(source))


def _class(unit, name):
    return next(c for c in unit.classes if c.name == name)


def _values(source: str) -> list[str]:
    return [t.value for t in tokenize(source)]


# ---------------------------------------------------------------------------
# tokenize()
# ---------------------------------------------------------------------------

def test_tokenize_drops_comments_and_whitespace():
    assert _values("int x = 1; // note\n/* block */ x++;") == ["int", "x", "=", "1", ";", "x", "++", ";"]


def test_tokenize_drops_preprocessor_directives():
    assert _values("#region Fields\nint x;\n#endregion") == ["int", "x", ";"]


def test_tokenize_tracks_line_and_column():
    tokens = tokenize("class A\n{\n    int x;\n}")
    x = next(t for t in tokens if t.value == "x")
    assert (x.line, x.column) == (3, 9)


def test_tokenize_keeps_string_literals_whole():
    tokens = tokenize('var s = "if (a && b) { }";')
    strings = [t for t in tokens if t.kind == "string"]
    assert len(strings) == 1
    assert "&&" not in [t.value for t in tokens]


def test_tokenize_verbatim_and_raw_strings():
    tokens = tokenize('var a = @"C:\\path ""quoted"" {";\nvar b = """\n  raw } text\n  """;')
    assert [t.kind for t in tokens].count("string") == 2
    assert "}" not in [t.value for t in tokens]


def test_tokenize_escaped_identifier_is_not_a_keyword():
    tokens = tokenize("int @class = 1;")
    assert tokens[1].kind == "ident"
    assert tokens[1].value == "class"


def test_tokenize_keywords_are_marked():
    tokens = tokenize("if (ready) return;")
    assert tokens[0].kind == "keyword"
    assert tokens[2].kind == "ident"


def test_tokenize_generic_closers_stay_separate():
    assert _values("Dictionary<string, List<int>> map;").count(">") == 2


def test_tokenize_unterminated_string():
    with pytest.raises(ParseError, match="Unterminated string") as info:
        tokenize('string s = "abc')
    assert (info.value.line, info.value.column) == (1, 12)


def test_tokenize_unterminated_block_comment():
    with pytest.raises(ParseError, match="Unterminated block comment"):
        tokenize("int x; /* never closed")


# ---------------------------------------------------------------------------
# parse(): structure
# ---------------------------------------------------------------------------

def test_parse_file_scoped_namespace():
    unit = parse((FIXTURES / "schedule.cs").read_text(encoding="utf-8"))
    assert [c.qualified_name for c in unit.classes] == [
        "Methods.ScheduleService",
        "Methods.VacationSlot",
        "Methods.Operation",
        "Methods.Doctor",
    ]


def test_parse_block_namespace_and_nested_types():
    unit = _parse("""\
        namespace Clinic.Core
        {
            public class Outer
            {
                private class Inner
                {
                    public void Run() { }
                }
            }
        }
        """)
    assert [c.qualified_name for c in unit.classes] == ["Clinic.Core.Outer", "Clinic.Core.Outer.Inner"]
    inner = _class(unit, "Inner")
    assert inner.namespace == "Clinic.Core"
    assert inner.methods[0].qualified_name == "Clinic.Core.Outer.Inner.Run"


def test_parse_global_namespace_uses_plain_class_name():
    unit = _parse("class Ward { void Open() { } }")
    assert unit.classes[0].qualified_name == "Ward"
    assert unit.classes[0].methods[0].qualified_name == "Ward.Open"


def test_parse_methods_constructors_and_properties():
    unit = parse((FIXTURES / "schedule.cs").read_text(encoding="utf-8"))
    slot = _class(unit, "VacationSlot")
    assert [f.name for f in slot.fields] == ["StartTime", "EndTime"]
    assert all(f.kind == "property" for f in slot.fields)
    assert slot.methods == ()
    assert [c.name for c in slot.constructors] == ["VacationSlot"]
    assert [p.name for p in slot.constructors[0].parameters] == ["startTime", "endTime"]


def test_parse_method_signature():
    unit = parse((FIXTURES / "schedule.cs").read_text(encoding="utf-8"))
    method = _class(unit, "ScheduleService").methods[0]
    assert method.name == "IsAvailable"
    assert method.return_type == "bool"
    assert [(p.name, p.type_name) for p in method.parameters] == [
        ("doctor", "Doctor"), ("operation", "Operation"),
    ]
    assert not method.is_constructor


def test_parse_member_without_return_type_is_a_constructor():
    """A constructor whose name does not match its class is still a constructor."""
    unit = parse((FIXTURES / "doctor_info.cs").read_text(encoding="utf-8"))
    certificate = _class(unit, "Certificate")
    assert [c.name for c in certificate.constructors] == ["Specialization"]
    assert [m.name for m in certificate.methods] == ["Equals", "GetHashCode"]


def test_parse_fields_with_multiple_declarators():
    unit = _parse("""\
        class Counter
        {
            private int a = 1, b, c = Compute(2, 3);
            public const string Label = "x";
        }
        """)
    fields = _class(unit, "Counter").fields
    assert [f.name for f in fields] == ["a", "b", "c", "Label"]
    assert all(f.kind == "field" for f in fields)


def test_parse_expression_bodied_members_and_indexers():
    unit = _parse("""\
        class Roster
        {
            private readonly List<string> _names = new();
            public int Count => _names.Count;
            public string this[int index] => _names[index];
            public T First<T>(List<T> items) where T : class => items[0];
            public static bool operator ==(Roster left, Roster right) => true;
            public static bool operator !=(Roster left, Roster right) => false;
        }
        """)
    roster = _class(unit, "Roster")
    kinds = {f.name: f.kind for f in roster.fields}
    assert kinds == {"_names": "field", "Count": "property", "this": "indexer"}
    assert [m.name for m in roster.methods] == ["First", "operator==", "operator!="]
    assert roster.methods[0].return_type == "T"


def test_parse_records_enums_interfaces_and_structs():
    unit = _parse("""\
        namespace Shapes;

        public record Point(int X, int Y);
        public enum Color { Red, [Obsolete] Green = 2, Blue }
        public interface IShape { double Area(); }
        public readonly struct Size { public int Width { get; init; } }
        """)
    point = _class(unit, "Point")
    assert point.kind == "record"
    assert [(f.name, f.kind) for f in point.fields] == [("X", "property"), ("Y", "property")]
    color = _class(unit, "Color")
    assert color.kind == "enum"
    assert [f.name for f in color.fields] == ["Red", "Green", "Blue"]
    shape = _class(unit, "IShape")
    assert shape.kind == "interface"
    assert shape.methods[0].body == ()
    assert _class(unit, "Size").kind == "struct"


def test_parse_attributes_base_types_and_destructors():
    unit = _parse("""\
        [Serializable]
        public sealed class Nurse : Person, IComparable<Nurse>
        {
            [Obsolete("use Ward")]
            public Nurse(string name) : base(name) { }
            ~Nurse() { }
            public int CompareTo(Nurse other) => 0;
        }
        """)
    nurse = _class(unit, "Nurse")
    assert nurse.base_types == ("Person", "IComparable<Nurse>")
    assert [c.name for c in nurse.constructors] == ["Nurse"]
    assert [m.name for m in nurse.methods] == ["CompareTo"]


def test_parse_tuple_return_type():
    unit = _parse("class Pairs { public (int, string) Pair() => (1, \"a\"); }")
    assert _class(unit, "Pairs").methods[0].name == "Pair"


def test_parse_method_locals():
    unit = parse((FIXTURES / "schedule.cs").read_text(encoding="utf-8"))
    method = _class(unit, "ScheduleService").methods[0]
    assert method.locals == ("vacation", "vacationStart", "vacationEnd", "op", "opStart", "opEnd")


def test_parse_referenced_types():
    unit = parse((FIXTURES / "schedule.cs").read_text(encoding="utf-8"))
    service = _class(unit, "ScheduleService")
    assert {"Doctor", "Operation", "VacationSlot", "DateTime", "InvalidOperationException"} <= service.referenced_types
    assert "ScheduleService" not in service.referenced_types
    doctor = _class(unit, "Doctor")
    assert {"Operation", "VacationSlot", "List"} <= doctor.referenced_types
    assert "Operations" not in doctor.referenced_types


def test_parse_sets_source_name():
    unit = parse("class A { }", "A.cs")
    assert unit.source_name == "A.cs"


def test_parse_warns_when_no_types_found():
    with pytest.warns(UserWarning, match="No type declarations"):
        unit = parse("using System;")
    assert unit.classes == ()


# ---------------------------------------------------------------------------
# parse(): errors
# ---------------------------------------------------------------------------

def test_parse_missing_closing_brace():
    with pytest.raises(ParseError, match="Missing '}'"):
        parse("class A { void M() { }")


def test_parse_mismatched_brackets():
    with pytest.raises(ParseError, match="Mismatched"):
        parse("class A { void M() { ( } }")


def test_parse_unexpected_closing_brace():
    with pytest.raises(ParseError, match="Unexpected '}'"):
        parse("class A { }\n}")


def test_parse_statement_at_namespace_level():
    with pytest.raises(ParseError, match="namespace level") as info:
        parse("namespace N;\n\nint x = 1;")
    assert info.value.line == 3


def test_parse_error_message_carries_location():
    with pytest.raises(ParseError, match=r"\(line 1, column \d+\)"):
        parse("class A { void M() { ( } }")


# ---------------------------------------------------------------------------
# declared_locals() / referenced_types()
# ---------------------------------------------------------------------------

def test_declared_locals_loop_and_typed_declarations():
    names, types = declared_locals(tokenize(
        'for (int i = 0; i < n; i++) { string s = ""; Dictionary<string, List<int>> map = new(); }'
    ))
    assert names == ["i", "s", "map"]
    assert types == {"Dictionary", "List"}


def test_declared_locals_pattern_and_lambda_variables():
    names, _ = declared_locals(tokenize(
        "if (obj is Certificate other) { items.Where(x => x.Ok).Select((a, b) => a + b); }"
    ))
    assert names == ["other", "x", "a", "b"]


def test_declared_locals_ignores_member_access_and_assignments():
    names, _ = declared_locals(tokenize("Name = name; other.Value = 3; Call(a, b);"))
    assert names == []


def test_referenced_types_instantiation_casts_and_static_access():
    found = referenced_types(tokenize(
        "var d = new Doctor(); if (x is Nurse) { } Helper.Run(); var t = typeof(Ward); var l = new List<Shift>();"
    ))
    assert found == {"Doctor", "Nurse", "Helper", "Ward", "List", "Shift"}
