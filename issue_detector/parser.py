"""C# tokenizer and structural parser.

Usage:
    tokens = tokenize(source_text)                 # raises ParseError
    unit   = parse(source_text, "Schedule.cs")     # -> SourceUnit

The parser does not build a full syntax tree. It recognizes namespaces,
type declarations and member signatures, keeps member bodies as token
sequences, and extracts from those bodies what the engines need: the
declared local variables and the referenced type names.
"""

import re
import time
import warnings

from issue_detector.models import (
    ClassModel,
    FieldModel,
    MethodModel,
    Parameter,
    SourceUnit,
    Token,
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ParseError(Exception):
    """Raised when a submission cannot be structurally modeled."""

    def __init__(self, message: str, line: int = 0, column: int = 0) -> None:
        self.line = line
        self.column = column
        location = f" (line {line}, column {column})" if line else ""
        super().__init__(f"{message}{location}")


class _DeadlineExceeded(Exception):
    """Raised from inside the parser once its time budget is spent."""


def _check_deadline(deadline: float | None) -> None:
    if deadline is not None and time.monotonic() > deadline:
        raise _DeadlineExceeded


# ---------------------------------------------------------------------------
# Lexical tables
# ---------------------------------------------------------------------------

_TOKEN_RE = re.compile(
    r"""
      (?P<ws>\s+)
    | (?P<directive>\#[^\n]*)
    | (?P<line_comment>//[^\n]*)
    | (?P<block_comment>/\*.*?\*/)
    | (?P<open_comment>/\*)
    | (?P<raw_string>\$*(?P<quotes>"{3,}).*?(?P=quotes))
    | (?P<verbatim>(?:\$@|@\$|@)"(?:[^"]|"")*")
    | (?P<string>\$?"(?:\\.|[^"\\\n])*")
    | (?P<open_string>(?:\$@|@\$|@|\$)?")
    | (?P<char>'(?:\\.|[^'\\\n])+')
    | (?P<number>0[xXbB][0-9a-fA-F_]+[uUlL]*|\d[\d_]*(?:\.\d[\d_]*)?(?:[eE][+-]?\d+)?[A-Za-z]*|\.\d[\d_]*[A-Za-z]*)
    | (?P<ident>@?[A-Za-z_][A-Za-z0-9_]*)
    | (?P<op>\?\?=|<<=|=>|==|!=|<=|>=|&&|\|\||\?\?|\?\.|\+\+|--|\+=|-=|\*=|/=|%=|&=|\|=|\^=|::|->|<<|\.\.
             |[{}()\[\];,.:?<>=!+\-*/%&|^~])
    """,
    re.VERBOSE | re.DOTALL,
)

_SKIPPED_KINDS = frozenset({"ws", "directive", "line_comment", "block_comment"})
_LITERAL_KINDS = {"raw_string": "string", "verbatim": "string", "string": "string", "char": "char"}

KEYWORDS = frozenset("""
    abstract as base bool break byte case catch char checked class const continue
    decimal default delegate do double else enum event explicit extern false
    finally fixed float for foreach goto if implicit in int interface internal is
    lock long namespace new null object operator out override params private
    protected public readonly ref return sbyte sealed short sizeof stackalloc
    static string struct switch this throw true try typeof uint ulong unchecked
    unsafe ushort using virtual void volatile while
""".split())

BUILTIN_TYPES = frozenset("""
    bool byte char decimal double float int long object sbyte short string uint
    ulong ushort void var dynamic nint nuint
""".split())

# Contextual keywords that can precede an identifier without being a type.
_NOT_TYPES = frozenset("""
    await yield async when where select orderby group into join on equals by
    ascending descending with and or not nameof global
""".split())

_MODIFIERS = frozenset("""
    public private protected internal static readonly const virtual override
    abstract sealed async extern unsafe volatile new partial event required
    file fixed implicit explicit
""".split())

_PARAMETER_MODIFIERS = frozenset({"ref", "out", "in", "params", "this", "scoped", "readonly"})

_TYPE_KEYWORDS = frozenset({"class", "struct", "interface", "record", "enum"})

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = frozenset(_OPENERS.values())

_DECLARATION_FOLLOWERS = frozenset({"=", ";", ",", ")", "in"})

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Longest generic argument list walked back over when looking for a type.
_MAX_GENERIC_SPAN = 64


def is_identifier_name(name: str) -> bool:
    return bool(_IDENTIFIER_RE.match(name))


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

def tokenize(source_text: str, deadline: float | None = None) -> list[Token]:
    """Split C# source into tokens, dropping whitespace, comments and directives.

    Raises:
        ParseError: on an unterminated string or block comment, or on a
                    character that cannot start any token.
    """
    tokens: list[Token] = []
    pos = 0
    line = 1
    line_start = 0
    length = len(source_text)

    while pos < length:
        _check_deadline(deadline)
        match = _TOKEN_RE.match(source_text, pos)
        column = pos - line_start + 1
        if match is None:
            raise ParseError(f"Unexpected character {source_text[pos]!r}", line, column)

        kind = match.lastgroup
        value = match.group(0)

        if kind == "open_comment":
            raise ParseError("Unterminated block comment", line, column)
        if kind == "open_string":
            raise ParseError("Unterminated string literal", line, column)

        if kind not in _SKIPPED_KINDS:
            if kind == "ident":
                name = value.lstrip("@")
                token_kind = "keyword" if name in KEYWORDS and not value.startswith("@") else "ident"
                tokens.append(Token(token_kind, name, line, column))
            else:
                tokens.append(Token(_LITERAL_KINDS.get(kind, kind), value, line, column))

        newlines = value.count("\n")
        if newlines:
            line += newlines
            line_start = pos + value.rfind("\n") + 1
        pos = match.end()

    return tokens


# ---------------------------------------------------------------------------
# Token-sequence helpers (shared with the engines)
# ---------------------------------------------------------------------------

def _is_type_word(token: Token) -> bool:
    if token.value in BUILTIN_TYPES:
        return True
    return token.kind == "ident" and token.value not in _NOT_TYPES


def _type_start(tokens: list[Token], end: int) -> int | None:
    """Index where a type expression ending at ``end`` begins, or None.

    Recognizes names, dotted names, generic argument lists, array rank
    specifiers and the nullable marker: ``System.Collections.Generic.List<int>[]?``.
    """
    i = end
    if i >= 0 and tokens[i].value == "?":
        i -= 1
    while i >= 0 and tokens[i].value == "]":
        j = i - 1
        while j >= 0 and tokens[j].value == ",":
            j -= 1
        if j < 0 or tokens[j].value != "[":
            return None
        i = j - 1
    if i < 0:
        return None

    if tokens[i].value == ">":
        depth = 0
        j = i
        while j >= 0:
            if i - j > _MAX_GENERIC_SPAN:
                return None
            value = tokens[j].value
            if value == ">":
                depth += 1
            elif value == "<":
                depth -= 1
                if depth == 0:
                    break
            elif not (_is_type_word(tokens[j]) or value in (",", ".", "?", "[", "]")):
                return None
            j -= 1
        if j <= 0:
            return None
        i = j - 1

    if i < 0 or not _is_type_word(tokens[i]):
        return None
    while i >= 2 and tokens[i - 1].value == "." and tokens[i - 2].kind == "ident":
        i -= 2
    return i


def type_names(tokens: list[Token]) -> set[str]:
    """User-type names mentioned in a type expression (builtins excluded)."""
    return {
        t.value for t in tokens
        if t.kind == "ident" and t.value not in BUILTIN_TYPES and t.value not in _NOT_TYPES
    }


def join_type(tokens: list[Token]) -> str:
    """Render a type expression: ``List<Certificate>``, ``int[]``, ``ref int``."""
    parts: list[str] = []
    previous: Token | None = None
    for token in tokens:
        if previous is not None and previous.kind in ("ident", "keyword") and token.kind in ("ident", "keyword"):
            parts.append(" ")
        elif previous is not None and previous.value == ",":
            parts.append(" ")
        parts.append(token.value)
        previous = token
    return "".join(parts)


def split_top_level(tokens: list[Token], separator: str = ",") -> list[list[Token]]:
    """Split on ``separator`` outside (), [], {} and <> nesting."""
    segments: list[list[Token]] = [[]]
    depth = 0
    angle = 0
    for token in tokens:
        value = token.value
        if value in _OPENERS:
            depth += 1
        elif value in _CLOSERS:
            depth -= 1
        elif value == "<":
            angle += 1
        elif value == ">" and angle:
            angle -= 1
        if value == separator and depth == 0 and angle == 0:
            segments.append([])
            continue
        segments[-1].append(token)
    return [s for s in segments if s]


def declared_locals(tokens: list[Token], deadline: float | None = None) -> tuple[list[str], set[str]]:
    """Find local, loop and pattern variable declarations in a member body.

    Returns the declared names (in order of first appearance) and the type
    names used in those declarations.
    """
    names: list[str] = []
    types: set[str] = set()

    for i, token in enumerate(tokens):
        _check_deadline(deadline)
        if token.kind != "ident" or token.value in _NOT_TYPES or token.value == "_":
            continue
        following = tokens[i + 1].value if i + 1 < len(tokens) else None

        if following == "=>":
            if i == 0 or tokens[i - 1].value in ("(", ",", "=", "return", "=>"):
                _add_unique(names, token.value)
            continue
        if following not in _DECLARATION_FOLLOWERS or i == 0:
            continue
        start = _type_start(tokens, i - 1)
        if start is None:
            continue
        if start > 0 and tokens[start - 1].value == ".":
            continue
        _add_unique(names, token.value)
        types.update(type_names(tokens[start:i]))

    for name in _lambda_parameter_lists(tokens):
        _add_unique(names, name)
    return names, types


def _lambda_parameter_lists(tokens: list[Token]) -> list[str]:
    """Parameter names of parenthesized lambdas: ``(a, b) => ...``."""
    names: list[str] = []
    for i, token in enumerate(tokens):
        if token.value != "=>" or i == 0 or tokens[i - 1].value != ")":
            continue
        depth = 0
        j = i - 1
        while j >= 0:
            value = tokens[j].value
            if value == ")":
                depth += 1
            elif value == "(":
                depth -= 1
                if depth == 0:
                    break
            j -= 1
        inner = tokens[j + 1:i - 1]
        for segment in split_top_level(inner):
            last = segment[-1]
            if last.kind == "ident" and last.value != "_":
                names.append(last.value)
    return names


def referenced_types(tokens: list[Token]) -> set[str]:
    """Type names referenced by instantiations, ``is``/``as``/``typeof``
    targets and static member access within a body or initializer."""
    found: set[str] = set()
    count = len(tokens)
    for i, token in enumerate(tokens):
        value = token.value
        if value == "new":
            j = i + 1
            angle = 0
            while j < count:
                t = tokens[j]
                if t.value == "<":
                    angle += 1
                elif t.value == ">":
                    angle -= 1
                elif angle == 0 and t.value in ("(", "{", "["):
                    break
                elif not (_is_type_word(t) or t.value in (".", ",", "?")):
                    break
                if t.kind == "ident":
                    found.add(t.value)
                j += 1
        elif value in ("is", "as") and i + 1 < count and tokens[i + 1].kind == "ident":
            found.add(tokens[i + 1].value)
        elif value == "typeof" and i + 2 < count and tokens[i + 2].kind == "ident":
            found.add(tokens[i + 2].value)
        elif (
            token.kind == "ident"
            and i + 1 < count
            and tokens[i + 1].value == "."
            and (i == 0 or tokens[i - 1].value not in (".", "?."))
        ):
            found.add(value)
    return {name for name in found if name not in BUILTIN_TYPES and name not in _NOT_TYPES}


def _add_unique(items: list[str], value: str) -> None:
    if value not in items:
        items.append(value)


# ---------------------------------------------------------------------------
# Structural parser
# ---------------------------------------------------------------------------

class _RawMember:
    """Member signature collected while a class body is being read."""

    def __init__(self, name, return_type, parameters, body, signature_types,
                 is_constructor, line):
        self.name = name
        self.return_type = return_type
        self.parameters = parameters
        self.body = body
        self.signature_types = signature_types
        self.is_constructor = is_constructor
        self.line = line


class _Parser:

    def __init__(self, tokens: list[Token], deadline: float | None = None) -> None:
        self._tokens = tokens
        self._pos = 0
        self._deadline = deadline
        self._classes: list[ClassModel | None] = []

    # ------------------------------------------------------------------
    # Token navigation
    # ------------------------------------------------------------------

    def _peek(self, offset: int = 0) -> Token | None:
        index = self._pos + offset
        return self._tokens[index] if index < len(self._tokens) else None

    def _at(self, value: str, offset: int = 0) -> bool:
        token = self._peek(offset)
        return token is not None and token.value == value

    def _advance(self) -> Token:
        token = self._peek()
        if token is None:
            raise self._error("Unexpected end of input")
        _check_deadline(self._deadline)
        self._pos += 1
        return token

    def _expect(self, value: str) -> Token:
        _check_deadline(self._deadline)
        token = self._peek()
        if token is None or token.value != value:
            found = f"'{token.value}'" if token else "end of input"
            raise self._error(f"Expected '{value}' but found {found}", token)
        self._pos += 1
        return token

    def _error(self, message: str, token: Token | None = None) -> ParseError:
        if token is None:
            token = self._peek() or (self._tokens[-1] if self._tokens else None)
        if token is None:
            return ParseError(message)
        return ParseError(message, token.line, token.column)

    def _take_balanced(self) -> list[Token]:
        """Consume a bracketed group and return the tokens inside it."""
        opener = self._advance()
        if opener.value not in _OPENERS:
            raise self._error(f"Expected an opening bracket, found '{opener.value}'", opener)
        stack = [(_OPENERS[opener.value], opener)]
        inner: list[Token] = []
        while stack:
            token = self._peek()
            if token is None:
                closer, start = stack[-1]
                raise ParseError(f"Missing '{closer}' to close '{start.value}'", start.line, start.column)
            _check_deadline(self._deadline)
            self._pos += 1
            if token.value in _OPENERS:
                stack.append((_OPENERS[token.value], token))
            elif token.value in _CLOSERS:
                closer, start = stack.pop()
                if token.value != closer:
                    raise ParseError(
                        f"Mismatched '{token.value}': expected '{closer}' to close "
                        f"'{start.value}' from line {start.line}",
                        token.line, token.column,
                    )
                if not stack:
                    break
            inner.append(token)
        return inner

    def _read_until(self, stops: frozenset[str]) -> list[Token]:
        """Collect tokens up to (not including) a stop token at depth 0."""
        collected: list[Token] = []
        while True:
            token = self._peek()
            if token is None:
                raise self._error(f"Unexpected end of input, expected one of {sorted(stops)}")
            if token.value in stops:
                return collected
            if token.value in _OPENERS:
                collected.extend(self._take_balanced())
                continue
            if token.value in _CLOSERS:
                raise self._error(f"Unexpected '{token.value}'", token)
            collected.append(self._advance())

    def _read_statement(self) -> list[Token]:
        tokens = self._read_until(frozenset({";"}))
        self._advance()
        return tokens

    def _read_dotted_name(self) -> str:
        parts = [self._expect_identifier().value]
        while self._at("."):
            self._advance()
            parts.append(self._expect_identifier().value)
        return ".".join(parts)

    def _expect_identifier(self) -> Token:
        _check_deadline(self._deadline)
        token = self._peek()
        if token is None or token.kind != "ident":
            found = f"'{token.value}'" if token else "end of input"
            raise self._error(f"Expected an identifier but found {found}", token)
        self._pos += 1
        return token

    # ------------------------------------------------------------------
    # Compilation unit and namespaces
    # ------------------------------------------------------------------

    def parse_unit(self) -> list[ClassModel]:
        self._parse_declarations(namespace="", closing=None)
        return [c for c in self._classes if c is not None]

    def _parse_declarations(self, namespace: str, closing: Token | None) -> None:
        while True:
            token = self._peek()
            if token is None:
                if closing is not None:
                    raise ParseError("Missing '}' to close namespace", closing.line, closing.column)
                return
            value = token.value
            if value == "}":
                if closing is None:
                    raise self._error("Unexpected '}'", token)
                self._advance()
                return
            if value == "using" or (value == "global" and self._at("using", 1)):
                self._read_statement()
            elif value == "namespace":
                self._advance()
                name = self._read_dotted_name()
                qualified = f"{namespace}.{name}" if namespace else name
                if self._at(";"):
                    self._advance()
                    namespace = qualified
                else:
                    opener = self._expect("{")
                    self._parse_declarations(qualified, opener)
            elif value == "[":
                self._take_balanced()
            elif value == ";" or value in _MODIFIERS:
                self._advance()
            elif value in _TYPE_KEYWORDS:
                self._parse_type(namespace, [])
            elif value == "delegate":
                self._read_statement()
            else:
                raise self._error(f"Unexpected '{value}' at namespace level", token)

    # ------------------------------------------------------------------
    # Type declarations
    # ------------------------------------------------------------------

    def _parse_type(self, namespace: str, outer: list[str]) -> None:
        keyword = self._advance()
        kind = keyword.value
        if kind == "record" and self._peek() is not None and self._peek().value in ("class", "struct"):
            self._advance()
        name = self._expect_identifier().value
        if self._at("<"):
            self._skip_type_parameters()

        qualified = ".".join(part for part in (namespace, *outer, name) if part)
        slot = len(self._classes)
        self._classes.append(None)

        if kind == "enum":
            self._classes[slot] = self._parse_enum(name, qualified, namespace, keyword.line)
            return

        primary: list[Parameter] = []
        signature_types: set[str] = set()
        if self._at("("):
            primary, primary_types = self._parse_parameters(self._take_balanced())
            signature_types |= primary_types

        base_types: list[str] = []
        if self._at(":"):
            self._advance()
            base_tokens = self._read_until(frozenset({"{", ";", "where"}))
            for segment in split_top_level(base_tokens):
                if segment[0].kind == "ident":
                    base_types.append(join_type(segment))
            signature_types |= type_names(base_tokens)
        if self._at("where"):
            self._read_until(frozenset({"{", ";"}))

        primary_kind = "property" if kind == "record" else "field"
        fields = [FieldModel(p.name, p.type_name, primary_kind, keyword.line) for p in primary]
        members: list[_RawMember] = []
        if self._at(";"):
            self._advance()
        else:
            self._parse_class_body(namespace, [*outer, name], fields, members, signature_types)
            if self._at(";"):
                self._advance()

        self._classes[slot] = self._build_class(
            name, qualified, namespace, kind, fields, members, base_types,
            signature_types, keyword.line,
        )

    def _skip_type_parameters(self) -> None:
        depth = 0
        while True:
            token = self._advance()
            if token.value == "<":
                depth += 1
            elif token.value == ">":
                depth -= 1
                if depth == 0:
                    return

    def _parse_enum(self, name: str, qualified: str, namespace: str, line: int) -> ClassModel:
        if self._at(":"):
            self._advance()
            self._read_until(frozenset({"{"}))
        body = self._take_balanced()
        if self._at(";"):
            self._advance()
        members = []
        for segment in split_top_level(body):
            while segment and segment[0].value == "[":
                segment = _drop_attribute(segment)
            if segment and segment[0].kind == "ident":
                members.append(FieldModel(segment[0].value, name, "enum_member", segment[0].line))
        return ClassModel(
            name=name, qualified_name=qualified, namespace=namespace, kind="enum",
            fields=tuple(members), line=line,
        )

    def _parse_class_body(self, namespace, outer, fields, members, signature_types) -> None:
        opener = self._expect("{")
        while True:
            token = self._peek()
            if token is None:
                raise ParseError(f"Missing '}}' to close type '{outer[-1]}'", opener.line, opener.column)
            value = token.value
            if value == "}":
                self._advance()
                return
            if value == ";" or value in _MODIFIERS:
                self._advance()
            elif value == "[":
                self._take_balanced()
            elif value in _TYPE_KEYWORDS and self._starts_nested_type():
                self._parse_type(namespace, outer)
            elif value == "delegate":
                self._read_statement()
            elif value == "~":
                self._advance()
                self._expect_identifier()
                self._take_balanced()
                self._read_body()
            else:
                self._parse_member(outer[-1], fields, members, signature_types)

    def _starts_nested_type(self) -> bool:
        if self._peek().value != "record":
            return True
        following = self._peek(1)
        return following is not None and (following.kind == "ident" or following.value in ("class", "struct"))

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def _read_member_header(self) -> tuple[list[Token], str]:
        header: list[Token] = []
        angle = 0
        while True:
            token = self._peek()
            if token is None:
                raise self._error("Unexpected end of input in type body")
            value = token.value
            if value == "operator":
                header.append(self._advance())
                while not self._at("("):
                    header.append(self._advance())
                return header, "("
            if value == "(" and (angle > 0 or not header):
                header.extend(self._take_balanced())
                continue
            if value == "[":
                inner = self._take_balanced()
                header.extend([token, *inner, Token("op", "]", token.line, token.column)])
                continue
            if angle == 0 and value in ("(", "{", "=", ";", "=>"):
                return header, value
            if value in _CLOSERS:
                raise self._error(f"Unexpected '{value}' in member declaration", token)
            if value == "<":
                angle += 1
            elif value == ">" and angle:
                angle -= 1
            header.append(self._advance())

    def _parse_member(self, class_name, fields, members, signature_types) -> None:
        first = self._peek()
        header, stop = self._read_member_header()
        if not header:
            raise self._error(f"Unexpected '{stop}' in type '{class_name}'", first)

        if stop == "(":
            self._parse_method(header, members)
            return

        is_indexer = any(t.value == "this" for t in header)
        if is_indexer:
            this_index = next(i for i, t in enumerate(header) if t.value == "this")
            type_tokens, name_token = header[:this_index], header[this_index]
        else:
            type_tokens, name_token = _split_declarator(header)
        if name_token is None or (name_token.kind != "ident" and not is_indexer):
            raise self._error("Expected a member name", header[-1])
        signature_types |= type_names(type_tokens)

        if stop == "{":
            accessors = self._take_balanced()
            signature_types |= referenced_types(accessors)
            if self._at("="):
                self._advance()
                signature_types |= referenced_types(self._read_statement())
            fields.append(FieldModel(
                "this" if is_indexer else name_token.value, join_type(type_tokens),
                "indexer" if is_indexer else "property", name_token.line,
            ))
        elif stop == "=>":
            self._advance()
            signature_types |= referenced_types(self._read_statement())
            fields.append(FieldModel(
                "this" if is_indexer else name_token.value, join_type(type_tokens),
                "indexer" if is_indexer else "property", name_token.line,
            ))
        else:
            type_name = join_type(type_tokens)
            fields.append(FieldModel(name_token.value, type_name, "field", name_token.line))
            self._parse_declarators(type_name, fields, signature_types)

    def _parse_declarators(self, type_name, fields, signature_types) -> None:
        """Read ``= init, other = init2;`` after the first field name."""
        while True:
            if self._at("="):
                self._advance()
                signature_types |= referenced_types(self._read_initializer())
            if self._at(";"):
                self._advance()
                return
            self._expect(",")
            name_token = self._expect_identifier()
            fields.append(FieldModel(name_token.value, type_name, "field", name_token.line))

    def _read_initializer(self) -> list[Token]:
        collected: list[Token] = []
        while True:
            token = self._peek()
            if token is None:
                raise self._error("Unexpected end of input in field initializer")
            value = token.value
            if value == ";":
                return collected
            if value == "," and self._looks_like_declarator(1):
                return collected
            if value in _OPENERS:
                collected.extend(self._take_balanced())
                continue
            if value in _CLOSERS:
                raise self._error(f"Unexpected '{value}' in field initializer", token)
            collected.append(self._advance())

    def _looks_like_declarator(self, offset: int) -> bool:
        name = self._peek(offset)
        following = self._peek(offset + 1)
        return (
            name is not None and name.kind == "ident"
            and following is not None and following.value in ("=", ",", ";")
        )

    def _parse_method(self, header: list[Token], members: list[_RawMember]) -> None:
        is_operator = any(t.value == "operator" for t in header)
        if is_operator:
            index = next(i for i, t in enumerate(header) if t.value == "operator")
            name = "operator" + "".join(t.value for t in header[index + 1:])
            type_tokens = header[:index] or header[index + 1:]
            name_token = header[index]
        else:
            type_tokens, name_token = _split_declarator(_strip_type_parameters(header))
            if name_token is None or name_token.kind != "ident":
                raise self._error("Expected a method name", header[-1])
            name = name_token.value

        parameters, parameter_types = self._parse_parameters(self._take_balanced())
        trailer = self._read_until(frozenset({"{", "=>", ";"}))
        body = self._read_body()

        signature_types = parameter_types | type_names(type_tokens) | referenced_types(trailer)
        is_constructor = not type_tokens and not is_operator
        members.append(_RawMember(
            name=name,
            return_type=None if is_constructor else join_type(type_tokens),
            parameters=parameters,
            body=body,
            signature_types=signature_types,
            is_constructor=is_constructor,
            line=name_token.line,
        ))

    def _read_body(self) -> list[Token]:
        if self._at("{"):
            return self._take_balanced()
        if self._at("=>"):
            self._advance()
            return self._read_statement()
        if self._at(";"):
            self._advance()
            return []
        raise self._error("Expected a member body")

    def _parse_parameters(self, tokens: list[Token]) -> tuple[list[Parameter], set[str]]:
        parameters: list[Parameter] = []
        types: set[str] = set()
        for segment in split_top_level(tokens):
            while segment and segment[0].value == "[":
                segment = _drop_attribute(segment)
            while segment and segment[0].value in _PARAMETER_MODIFIERS:
                segment = segment[1:]
            default = next((i for i, t in enumerate(segment) if t.value == "="), None)
            if default is not None:
                types |= referenced_types(segment[default + 1:])
                segment = segment[:default]
            if len(segment) < 2 or segment[-1].kind != "ident":
                if segment:
                    raise self._error("Malformed parameter", segment[0])
                continue
            type_tokens = segment[:-1]
            parameters.append(Parameter(segment[-1].value, join_type(type_tokens)))
            types |= type_names(type_tokens)
        return parameters, types

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _build_class(self, name, qualified, namespace, kind, fields, members,
                     base_types, signature_types, line) -> ClassModel:
        member_names = {f.name for f in fields} | {m.name for m in members}
        methods: list[MethodModel] = []
        constructors: list[MethodModel] = []
        class_refs = set(signature_types)

        for raw in members:
            local_names, local_types = declared_locals(raw.body, self._deadline)
            scoped = member_names | {p.name for p in raw.parameters} | set(local_names)
            body_types = {t for t in referenced_types(raw.body) if t not in scoped}
            method_refs = frozenset(raw.signature_types | local_types | body_types)
            class_refs |= method_refs
            model = MethodModel(
                name=raw.name,
                qualified_name=f"{qualified}.{raw.name}",
                parameters=tuple(raw.parameters),
                return_type=raw.return_type,
                body=tuple(raw.body),
                locals=tuple(local_names),
                referenced_types=method_refs,
                is_constructor=raw.is_constructor,
                line=raw.line,
            )
            (constructors if raw.is_constructor else methods).append(model)

        class_refs.discard(name)
        return ClassModel(
            name=name,
            qualified_name=qualified,
            namespace=namespace,
            kind=kind,
            methods=tuple(methods),
            constructors=tuple(constructors),
            fields=tuple(fields),
            base_types=tuple(base_types),
            referenced_types=frozenset(class_refs),
            line=line,
        )


def _split_declarator(header: list[Token]) -> tuple[list[Token], Token | None]:
    """Split ``Type Name`` into type tokens and the name token.

    Explicit interface qualifiers (``IFoo.Bar``) are dropped from the type.
    """
    if not header:
        return [], None
    name = header[-1]
    type_tokens = header[:-1]
    while len(type_tokens) >= 2 and type_tokens[-1].value == ".":
        type_tokens = type_tokens[:-2]
    return type_tokens, name


def _strip_type_parameters(header: list[Token]) -> list[Token]:
    """Remove a trailing ``<T, U>`` from a generic method header."""
    if not header or header[-1].value != ">":
        return header
    depth = 0
    for i in range(len(header) - 1, -1, -1):
        if header[i].value == ">":
            depth += 1
        elif header[i].value == "<":
            depth -= 1
            if depth == 0:
                return header[:i]
    return header


def _drop_attribute(segment: list[Token]) -> list[Token]:
    depth = 0
    for i, token in enumerate(segment):
        if token.value == "[":
            depth += 1
        elif token.value == "]":
            depth -= 1
            if depth == 0:
                return segment[i + 1:]
    return []


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse(
    source_text: str,
    source_name: str = "<submission>",
    timeout: float | None = None,
) -> SourceUnit:
    """Build the structural model of one submission.

    With a *timeout* (seconds), the parser checks its budget as it walks
    the tokens and gives up once the budget is spent.

    Raises:
        ParseError: if the text cannot be tokenized or structurally modeled,
                    or if parsing takes longer than *timeout*.
    """
    deadline = time.monotonic() + timeout if timeout else None
    try:
        classes = _Parser(tokenize(source_text, deadline), deadline).parse_unit()
    except _DeadlineExceeded:
        raise ParseError(f"Parsing '{source_name}' did not finish within {timeout}s") from None
    if not classes:
        warnings.warn(
            f"No type declarations found in '{source_name}'; every checker will "
            "see an empty submission.",
            UserWarning,
            stacklevel=2,
        )
    return SourceUnit(classes=tuple(classes), source_name=source_name)
