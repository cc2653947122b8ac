"""Filter and ordering expressions shared by every backend.

Filters parse into a small immutable AST. Backends either evaluate it against
in-memory records (:func:`evaluate`) or compile it to their own query language.
"""

from __future__ import annotations

import operator
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Final

from beetle.domain.errors import InvalidQuery


class CompareOp(StrEnum):
    EQ = "=="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="


class LogicalOp(StrEnum):
    AND = "and"
    OR = "or"


class Method(StrEnum):
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    TO_LOWER = "toLower"
    TO_UPPER = "toUpper"


@dataclass(frozen=True, slots=True)
class Literal:
    value: Any


@dataclass(frozen=True, slots=True)
class Member:
    path: tuple[str, ...]

    @property
    def dotted(self) -> str:
        return ".".join(self.path)


@dataclass(frozen=True, slots=True)
class Call:
    method: Method
    target: Node
    args: tuple[Node, ...] = ()


@dataclass(frozen=True, slots=True)
class Compare:
    op: CompareOp
    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class Logical:
    op: LogicalOp
    operands: tuple[Node, ...]


@dataclass(frozen=True, slots=True)
class Not:
    operand: Node


type Node = Literal | Member | Call | Compare | Logical | Not


@dataclass(frozen=True, slots=True)
class SortKey:
    path: tuple[str, ...]
    descending: bool = False


_METHOD_ARITY: Final[dict[Method, int]] = {
    Method.CONTAINS: 1,
    Method.STARTS_WITH: 1,
    Method.ENDS_WITH: 1,
    Method.TO_LOWER: 0,
    Method.TO_UPPER: 0,
}
_METHODS_BY_NAME: Final[dict[str, Method]] = {method.value.lower(): method for method in Method}

_COMPARE_WORDS: Final[dict[str, CompareOp]] = {
    "eq": CompareOp.EQ,
    "ne": CompareOp.NE,
    "lt": CompareOp.LT,
    "le": CompareOp.LE,
    "gt": CompareOp.GT,
    "ge": CompareOp.GE,
}
_COMPARE_SYMBOLS: Final[dict[str, CompareOp]] = {op.value: op for op in CompareOp}
_CONSTANTS: Final[dict[str, object]] = {"true": True, "false": False, "null": None}

_TOKEN_RE = re.compile(
    r"""
    (?P<number>\d+\.\d+|\d+)
    |(?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    |(?P<op>==|!=|<=|>=|&&|\|\||[<>!(),.\-])
    |(?P<name>[A-Za-z_$][A-Za-z0-9_$]*)
    """,
    re.VERBOSE,
)
_PATH_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*(?:\.[A-Za-z_$][A-Za-z0-9_$]*)*$")


@dataclass(frozen=True, slots=True)
class _Token:
    kind: str
    text: str
    position: int


def _tokenize(source: str) -> list[_Token]:
    tokens: list[_Token] = []
    position = 0
    while position < len(source):
        if source[position].isspace():
            position += 1
            continue
        match = _TOKEN_RE.match(source, position)
        if match is None:
            raise InvalidQuery(f"Unexpected character {source[position]!r} at {position}")
        kind = match.lastgroup or ""
        tokens.append(_Token(kind, match.group(), position))
        position = match.end()
    return tokens


class _Parser:
    """Recursive descent parser; precedence: or < and < not < comparison."""

    def __init__(self, source: str) -> None:
        self.source = source
        self.tokens = _tokenize(source)
        self.position = 0

    def parse(self) -> Node:
        if not self.tokens:
            raise InvalidQuery("Empty filter expression")
        node = self._or()
        if self._peek() is not None:
            token = self._peek()
            assert token is not None
            raise InvalidQuery(f"Unexpected {token.text!r} at {token.position} in {self.source!r}")
        return node

    def _peek(self) -> _Token | None:
        if self.position < len(self.tokens):
            return self.tokens[self.position]
        return None

    def _advance(self) -> _Token:
        token = self._peek()
        if token is None:
            raise InvalidQuery(f"Unexpected end of expression: {self.source!r}")
        self.position += 1
        return token

    def _expect(self, text: str) -> None:
        token = self._advance()
        if token.text != text:
            raise InvalidQuery(f"Expected {text!r} at {token.position}, got {token.text!r}")

    def _accept(self, *texts: str) -> bool:
        token = self._peek()
        if token is None:
            return False
        if token.text in texts or (token.kind == "name" and token.text.lower() in texts):
            self.position += 1
            return True
        return False

    def _or(self) -> Node:
        operands = [self._and()]
        while self._accept("||", "or"):
            operands.append(self._and())
        return operands[0] if len(operands) == 1 else Logical(LogicalOp.OR, tuple(operands))

    def _and(self) -> Node:
        operands = [self._not()]
        while self._accept("&&", "and"):
            operands.append(self._not())
        return operands[0] if len(operands) == 1 else Logical(LogicalOp.AND, tuple(operands))

    def _not(self) -> Node:
        if self._accept("!", "not"):
            return Not(self._not())
        return self._comparison()

    def _comparison(self) -> Node:
        left = self._primary()
        token = self._peek()
        if token is None:
            return left
        op = _COMPARE_SYMBOLS.get(token.text)
        if op is None and token.kind == "name":
            op = _COMPARE_WORDS.get(token.text.lower())
        if op is None:
            return left
        self.position += 1
        return Compare(op, left, self._primary())

    def _primary(self) -> Node:
        token = self._advance()
        if token.kind == "number":
            return Literal(_parse_number(token.text))
        if token.kind == "string":
            return Literal(_unquote(token.text))
        if token.text == "-":
            number = self._advance()
            if number.kind != "number":
                raise InvalidQuery(f"Expected a number after '-' at {token.position}")
            return Literal(-_parse_number(number.text))
        if token.text == "(":
            node = self._or()
            self._expect(")")
            return node
        if token.kind == "name":
            constant = token.text.lower()
            if constant in _CONSTANTS:
                return Literal(_CONSTANTS[constant])
            return self._member(token)
        raise InvalidQuery(f"Unexpected {token.text!r} at {token.position} in {self.source!r}")

    def _member(self, first: _Token) -> Node:
        path = [first.text]
        node: Node | None = None
        while self._accept("."):
            name = self._advance()
            if name.kind != "name":
                raise InvalidQuery(f"Expected a member name at {name.position}")
            following = self._peek()
            if following is not None and following.text == "(":
                target: Node = node if node is not None else Member(tuple(path))
                node = self._call(name, target)
            elif node is not None:
                raise InvalidQuery(f"Member access on a method result at {name.position}")
            else:
                path.append(name.text)
        return node if node is not None else Member(tuple(path))

    def _call(self, name: _Token, target: Node) -> Node:
        method = _METHODS_BY_NAME.get(name.text.lower())
        if method is None:
            raise InvalidQuery(f"Unsupported method {name.text!r} at {name.position}")
        self._expect("(")
        args: list[Node] = []
        if not self._accept(")"):
            args.append(self._or())
            while self._accept(","):
                args.append(self._or())
            self._expect(")")
        if len(args) != _METHOD_ARITY[method]:
            raise InvalidQuery(
                f"{method.value} expects {_METHOD_ARITY[method]} argument(s), got {len(args)}"
            )
        return Call(method, target, tuple(args))


def _parse_number(text: str) -> int | float:
    return float(text) if "." in text else int(text)


def _unquote(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text[1:-1])


def parse_filter(source: str) -> Node:
    """Parse a filter expression such as ``Name.startsWith("A") && Age >= 18``."""

    return _Parser(source).parse()


def parse_member_path(text: str) -> tuple[str, ...]:
    stripped = text.strip()
    if not _PATH_RE.match(stripped):
        raise InvalidQuery(f"Invalid member path: {text!r}")
    return tuple(stripped.split("."))


def parse_member_paths(text: str) -> tuple[tuple[str, ...], ...]:
    """Parse a comma separated list of member paths (expand and select directives)."""

    return tuple(parse_member_path(part) for part in text.split(","))


def parse_order_by(text: str) -> tuple[SortKey, ...]:
    """Parse ``"Name desc, Address.City"`` into sort keys."""

    keys: list[SortKey] = []
    for part in text.split(","):
        words = part.split()
        if not words or len(words) > 2:
            raise InvalidQuery(f"Invalid order-by clause: {part.strip()!r}")
        descending = False
        if len(words) == 2:
            direction = words[1].lower()
            if direction not in {"asc", "desc"}:
                raise InvalidQuery(f"Invalid sort direction: {words[1]!r}")
            descending = direction == "desc"
        keys.append(SortKey(parse_member_path(words[0]), descending))
    return tuple(keys)


# In-memory evaluation -------------------------------------------------------

_ORDERING: Final[dict[CompareOp, Callable[[Any, Any], bool]]] = {
    CompareOp.LT: operator.lt,
    CompareOp.LE: operator.le,
    CompareOp.GT: operator.gt,
    CompareOp.GE: operator.ge,
}


def resolve_path(item: object, path: tuple[str, ...]) -> Any:
    current: Any = item
    for name in path:
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(name)  # pyright: ignore[reportUnknownMemberType]
        elif hasattr(current, name):
            current = getattr(current, name)
        else:
            raise InvalidQuery(f"Unknown member {'.'.join(path)!r} on {type(item).__name__}")
    return current


def evaluate(node: Node, item: object) -> Any:
    match node:
        case Literal(value=value):
            return value
        case Member(path=path):
            return resolve_path(item, path)
        case Call():
            return _evaluate_call(node, item)
        case Compare(op=op, left=left, right=right):
            return _compare(op, evaluate(left, item), evaluate(right, item))
        case Logical(op=LogicalOp.AND, operands=operands):
            return all(bool(evaluate(operand, item)) for operand in operands)
        case Logical(operands=operands):
            return any(bool(evaluate(operand, item)) for operand in operands)
        case Not(operand=operand):
            return not bool(evaluate(operand, item))


def _evaluate_call(node: Call, item: object) -> Any:
    target = evaluate(node.target, item)
    if target is None:
        return None
    args = [evaluate(arg, item) for arg in node.args]
    match node.method:
        case Method.CONTAINS:
            if isinstance(target, str):
                return str(args[0]) in target
            return args[0] in target
        case Method.STARTS_WITH:
            return str(target).startswith(str(args[0]))
        case Method.ENDS_WITH:
            return str(target).endswith(str(args[0]))
        case Method.TO_LOWER:
            return str(target).lower()
        case Method.TO_UPPER:
            return str(target).upper()


def _compare(op: CompareOp, left: Any, right: Any) -> bool:
    if op is CompareOp.EQ:
        return left == right
    if op is CompareOp.NE:
        return left != right
    if left is None or right is None:
        return False
    try:
        return _ORDERING[op](left, right)
    except TypeError as exc:
        raise InvalidQuery(
            f"Cannot compare {type(left).__name__} with {type(right).__name__}"
        ) from exc


def compile_predicate(node: Node) -> Callable[[object], bool]:
    """Return a predicate evaluating ``node`` against one record."""

    def predicate(item: object) -> bool:
        return bool(evaluate(node, item))

    return predicate


def sort_value(item: object, path: tuple[str, ...]) -> tuple[bool, Any]:
    """Sort key placing ``None`` before every other value."""

    value = resolve_path(item, path)
    return (value is not None, value)
