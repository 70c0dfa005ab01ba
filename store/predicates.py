"""
Predicate expressions over stored records.

Each node compiles to two targets:
- eval(ctx)    → Python value (memory backend)
- to_sql(col)  → PostgreSQL JSONB expression (DB push-down)

Values compare with jsonb semantics on both targets: numbers numerically,
strings lexicographically, and across types null < string < number < boolean.
A missing attribute acts as SQL NULL and satisfies no comparison.

Operators only build the tree; nothing is evaluated until eval() or to_sql().

    from store.predicates import Field, all_of

    pred = all_of(Field("folder") == "/", Field("visible") == True)
"""

import json
from abc import ABC, abstractmethod
from functools import reduce

from store.base import KEY, _JSONEncoder, to_plain_json


class _Missing:
    """Placeholder for an attribute absent from a stored row."""

    def __repr__(self):
        return "MISSING"


MISSING = _Missing()


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class Expr(ABC):
    """Abstract expression node. All concrete nodes subclass this."""

    @abstractmethod
    def eval(self, ctx: dict):
        """Evaluate this expression against a context dict."""

    @abstractmethod
    def to_sql(self, col: str = "data") -> str:
        """Compile to a PostgreSQL JSONB expression fragment."""

    @abstractmethod
    def to_json(self) -> dict:
        """Serialize to a JSON-compatible dict."""

    # -- Comparison operators ------------------------------------------------

    def __gt__(self, other):
        return BinOp(">", self, _wrap(other))

    def __lt__(self, other):
        return BinOp("<", self, _wrap(other))

    def __ge__(self, other):
        return BinOp(">=", self, _wrap(other))

    def __le__(self, other):
        return BinOp("<=", self, _wrap(other))

    def __eq__(self, other):
        return BinOp("==", self, _wrap(other))

    def __ne__(self, other):
        return BinOp("!=", self, _wrap(other))

    # -- Logical operators (use & | ~ since and/or/not can't be overridden) --

    def __and__(self, other):
        return BinOp("and", self, _wrap(other))

    def __rand__(self, other):
        return BinOp("and", _wrap(other), self)

    def __or__(self, other):
        return BinOp("or", self, _wrap(other))

    def __ror__(self, other):
        return BinOp("or", _wrap(other), self)

    def __invert__(self):
        return UnaryOp("not", self)

    __hash__ = None

    def __repr__(self):
        return f"{self.__class__.__name__}({self.to_json()})"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _wrap(value):
    """Wrap a Python literal as a Const if it's not already an Expr."""
    if isinstance(value, Expr):
        return value
    return Const(value)


def _sql_literal(text: str) -> str:
    """Quote text for inlining; %% survives psycopg2 parameter binding."""
    return "'" + text.replace("'", "''").replace("%", "%%") + "'"


def jsonb_key(value):
    """Sort key reproducing jsonb ordering for JSON-native values."""
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (3, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, str):
        return (1, value)
    if isinstance(value, list):
        return (4, json.dumps(value, sort_keys=True))
    return (5, json.dumps(value, sort_keys=True))


_SQL_OPS = {
    ">": ">", "<": "<", ">=": ">=", "<=": "<=", "==": "=", "!=": "!=",
    "and": "AND", "or": "OR",
}

_COMPARE = {
    ">": lambda l, r: l > r,
    "<": lambda l, r: l < r,
    ">=": lambda l, r: l >= r,
    "<=": lambda l, r: l <= r,
    "==": lambda l, r: l == r,
    "!=": lambda l, r: l != r,
}


# ---------------------------------------------------------------------------
# Leaf nodes
# ---------------------------------------------------------------------------

class Const(Expr):
    """A constant literal value."""

    def __init__(self, value):
        self.value = value

    def eval(self, ctx: dict):
        return to_plain_json(self.value)

    def to_sql(self, col: str = "data") -> str:
        return _sql_literal(json.dumps(self.value, cls=_JSONEncoder)) + "::jsonb"

    def to_json(self) -> dict:
        return {"type": "Const", "value": to_plain_json(self.value)}


class Field(Expr):
    """A reference to a field on the stored record ("id" is the primary key)."""

    def __init__(self, name: str):
        self.name = name

    def eval(self, ctx: dict):
        return ctx.get(self.name, MISSING)

    def to_sql(self, col: str = "data") -> str:
        if self.name == KEY:
            return "to_jsonb(id)"
        return f"({col}->{_sql_literal(self.name)})"

    def order_sql(self, col: str = "data") -> str:
        """Expression used in ORDER BY."""
        if self.name == KEY:
            return "id"
        return f"({col}->{_sql_literal(self.name)})"

    def to_json(self) -> dict:
        return {"type": "Field", "name": self.name}


# ---------------------------------------------------------------------------
# Composite nodes
# ---------------------------------------------------------------------------

class BinOp(Expr):
    """Binary operation: comparison, AND, OR."""

    def __init__(self, op: str, left: Expr, right: Expr):
        self.op = op
        self.left = left
        self.right = right

    def eval(self, ctx: dict):
        l = self.left.eval(ctx)
        r = self.right.eval(ctx)
        if self.op == "and":
            return bool(l) and bool(r)
        if self.op == "or":
            return bool(l) or bool(r)
        if self.op in _COMPARE:
            # SQL NULL never compares
            if l is MISSING or r is MISSING:
                return False
            return _COMPARE[self.op](jsonb_key(l), jsonb_key(r))
        raise ValueError(f"Unknown binary op: {self.op}")

    def to_sql(self, col: str = "data") -> str:
        l_sql = self.left.to_sql(col)
        r_sql = self.right.to_sql(col)
        return f"({l_sql} {_SQL_OPS[self.op]} {r_sql})"

    def to_json(self) -> dict:
        return {
            "type": "BinOp",
            "op": self.op,
            "left": self.left.to_json(),
            "right": self.right.to_json(),
        }


class UnaryOp(Expr):
    """Unary operation: not."""

    def __init__(self, op: str, operand: Expr):
        self.op = op
        self.operand = operand

    def eval(self, ctx: dict):
        v = self.operand.eval(ctx)
        if self.op == "not":
            return not v
        raise ValueError(f"Unknown unary op: {self.op}")

    def to_sql(self, col: str = "data") -> str:
        if self.op == "not":
            return f"NOT ({self.operand.to_sql(col)})"
        raise ValueError(f"Unknown unary op: {self.op}")

    def to_json(self) -> dict:
        return {
            "type": "UnaryOp",
            "op": self.op,
            "operand": self.operand.to_json(),
        }


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def all_of(*exprs):
    """AND together the given predicates, skipping None. None if nothing left."""
    parts = [e for e in exprs if e is not None]
    if not parts:
        return None
    return reduce(lambda acc, e: acc & e, parts)


def equals_all(values: dict):
    """Equality test for every field → value pair."""
    return all_of(*(Field(name) == value for name, value in values.items()))


def _lexicographic(op, fields, values):
    if len(fields) != len(values):
        raise ValueError(
            f"Expected {len(fields)} reference values, got {len(values)}"
        )
    branches = []
    for i, name in enumerate(fields):
        prefix = [Field(fields[j]) == values[j] for j in range(i)]
        branches.append(all_of(*prefix, BinOp(op, Field(name), _wrap(values[i]))))
    return reduce(lambda acc, e: acc | e, branches)


def after(fields, values):
    """Rows strictly after `values` in the lexicographic order of `fields`."""
    return _lexicographic(">", list(fields), list(values))


def before(fields, values):
    """Rows strictly before `values` in the lexicographic order of `fields`."""
    return _lexicographic("<", list(fields), list(values))


def matches(predicate, ctx: dict) -> bool:
    """Evaluate a possibly-absent predicate; None matches everything."""
    if predicate is None:
        return True
    return bool(predicate.eval(ctx))


def where_sql(predicate, col: str = "data") -> str:
    """SQL condition for a possibly-absent predicate."""
    if predicate is None:
        return "TRUE"
    return predicate.to_sql(col)
