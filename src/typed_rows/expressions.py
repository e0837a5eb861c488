"""Boolean filter expressions.

A filter is a binary tree of :class:`Expression` nodes in the form
term-operator-term. Leaves compare a column name with a literal; inner
nodes join two expressions with And/Or. Nodes are frozen, so composing
filters never changes a tree a caller still holds.

Long predicate lists fold into deep trees, so every traversal in this
module uses an explicit stack instead of recursion.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, Sequence

from typed_rows.errors import ArgumentError


class Operator(Enum):
    """Operators allowed in an expression node."""

    AND = "And"
    OR = "Or"
    EQUALS = "Equals"
    NOT_EQUALS = "NotEquals"
    IN = "In"
    NOT_IN = "NotIn"
    CONTAINS = "Contains"
    CONTAINS_NOT = "ContainsNot"
    STARTS_WITH = "StartsWith"
    ENDS_WITH = "EndsWith"
    GREATER_THAN = "GreaterThan"
    GREATER_THAN_OR_EQUAL = "GreaterThanOrEqual"
    LESS_THAN = "LessThan"
    LESS_THAN_OR_EQUAL = "LessThanOrEqual"
    IS_NULL = "IsNull"
    IS_NOT_NULL = "IsNotNull"

    @property
    def is_logical(self) -> bool:
        """Return whether this operator joins two expressions."""
        return self in (Operator.AND, Operator.OR)

    @property
    def is_unary(self) -> bool:
        """Return whether this operator ignores its right term."""
        return self in (Operator.IS_NULL, Operator.IS_NOT_NULL)

    @property
    def takes_list(self) -> bool:
        return self in (Operator.IN, Operator.NOT_IN)

    @property
    def matches_text(self) -> bool:
        """Return whether this operator matches a text fragment."""
        return self in (
            Operator.CONTAINS,
            Operator.CONTAINS_NOT,
            Operator.STARTS_WITH,
            Operator.ENDS_WITH,
        )


@dataclass(frozen=True)
class Expression:
    """One term-operator-term node of a filter tree.

    Attributes:
        left: Column name, or a nested expression for And/Or.
        operator: The operator.
        right: Literal value, a nested expression for And/Or, or None.
    """

    left: str | Expression
    operator: Operator
    right: Any = None

    def __post_init__(self) -> None:
        if not isinstance(self.operator, Operator):
            raise ArgumentError(f"Unknown operator {self.operator!r}")
        if self.operator.is_logical:
            if not isinstance(self.left, Expression) or not isinstance(self.right, Expression):
                raise ArgumentError(
                    f"{self.operator.value} requires an expression on both sides"
                )
            return
        if not isinstance(self.left, str) or not self.left:
            raise ArgumentError(
                f"{self.operator.value} requires a column name as its left term, got {self.left!r}"
            )
        if self.operator.takes_list:
            if isinstance(self.right, (str, bytes)) or not isinstance(self.right, Iterable):
                raise ArgumentError(f"{self.operator.value} requires a list of values")
            # Lists are copied into tuples so the node stays immutable
            object.__setattr__(self, "right", tuple(self.right))

    def __str__(self) -> str:
        parts: list[str] = []
        stack: list[Any] = [self]
        while stack:
            item = stack.pop()
            if isinstance(item, Expression):
                stack.append(")")
                stack.append(_RightTerm(item.right))
                stack.append(f" {item.operator.value} ")
                stack.append(_LeftTerm(item.left))
                stack.append("(")
            elif isinstance(item, _LeftTerm):
                if isinstance(item.value, Expression):
                    stack.append(item.value)
                else:
                    parts.append(str(item.value))
            elif isinstance(item, _RightTerm):
                if isinstance(item.value, Expression):
                    stack.append(item.value)
                else:
                    parts.append(_format_literal(item.value))
            else:
                parts.append(item)
        return "".join(parts)

    @property
    def depth(self) -> int:
        """Return the number of nested And/Or levels below this node."""
        deepest = 0
        stack: list[tuple[Expression, int]] = [(self, 0)]
        while stack:
            node, level = stack.pop()
            deepest = max(deepest, level)
            for term in (node.left, node.right):
                if isinstance(term, Expression):
                    stack.append((term, level + 1))
        return deepest


@dataclass(frozen=True)
class _LeftTerm:
    value: Any


@dataclass(frozen=True)
class _RightTerm:
    value: Any


def _format_literal(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, str):
        return repr(value)
    if isinstance(value, tuple):
        return "(" + ", ".join(_format_literal(v) for v in value) + ")"
    return str(value)


def _require_expression(expr: Any, name: str) -> Expression:
    if expr is None:
        raise ArgumentError(f"{name} cannot be None")
    if not isinstance(expr, Expression):
        raise ArgumentError(f"{name} must be an Expression, got {type(expr).__name__}")
    return expr


def _copy(expr: Expression) -> Expression:
    """Copy the root triple of an expression into a new node."""
    return Expression(expr.left, expr.operator, expr.right)


def between(column: str, values: Sequence[Any]) -> Expression:
    """Build ``(column >= low) AND (column <= high)``.

    Raises:
        ArgumentError: If ``values`` does not hold exactly two elements.
    """
    if values is None:
        raise ArgumentError("Between requires a list of two values")
    values = list(values)
    if len(values) != 2:
        raise ArgumentError(f"Between requires exactly two values, got {len(values)}")
    low, high = values
    return Expression(
        Expression(column, Operator.GREATER_THAN_OR_EQUAL, low),
        Operator.AND,
        Expression(column, Operator.LESS_THAN_OR_EQUAL, high),
    )


def prepend_and(existing: Expression, clause: Expression) -> Expression:
    """Return ``clause AND existing`` as a new tree."""
    existing = _require_expression(existing, "existing")
    clause = _require_expression(clause, "clause")
    return Expression(clause, Operator.AND, _copy(existing))


def prepend_or(existing: Expression, clause: Expression) -> Expression:
    """Return ``clause OR existing`` as a new tree."""
    existing = _require_expression(existing, "existing")
    clause = _require_expression(clause, "clause")
    return Expression(clause, Operator.OR, _copy(existing))


def _fold(expressions: Iterable[Expression] | None, operator: Operator) -> Expression | None:
    if expressions is None:
        raise ArgumentError("Expression list cannot be None")
    items = [_require_expression(e, "list element") for e in expressions]
    if not items:
        return None
    if len(items) == 1:
        return items[0]

    # Build from the tail: e1 op (e2 op (... op eN))
    result = items[-1]
    for expr in reversed(items[:-1]):
        result = Expression(_copy(expr), operator, result)
    return result


def list_to_nested_and(expressions: Iterable[Expression]) -> Expression | None:
    """Fold expressions into one tree joined by And.

    A single-element list returns that element unchanged; an empty list
    returns None.
    """
    return _fold(expressions, Operator.AND)


def list_to_nested_or(expressions: Iterable[Expression]) -> Expression | None:
    """Fold expressions into one tree joined by Or."""
    return _fold(expressions, Operator.OR)


def walk(expr: Expression) -> Iterator[Expression]:
    """Yield every node of a tree in pre-order."""
    expr = _require_expression(expr, "expr")
    stack = [expr]
    while stack:
        node = stack.pop()
        yield node
        if isinstance(node.right, Expression):
            stack.append(node.right)
        if isinstance(node.left, Expression):
            stack.append(node.left)


def columns(expr: Expression) -> list[str]:
    """List the column names referenced by a tree, in first-seen order."""
    seen: dict[str, None] = {}
    for node in walk(expr):
        if isinstance(node.left, str):
            seen.setdefault(node.left, None)
    return list(seen)


def _bool_to_int(value: Any) -> Any:
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, tuple):
        return tuple(_bool_to_int(v) for v in value)
    return value


def map_literals(expr: Expression, convert: Callable[[str, Operator, Any], Any]) -> Expression:
    """Return a copy of ``expr`` with each leaf's literal replaced.

    ``convert`` is called as ``convert(column, operator, value)`` for every
    leaf whose operator takes a value. IsNull/IsNotNull leaves are copied
    unchanged.
    """
    expr = _require_expression(expr, "expr")
    rebuilt: dict[int, Expression] = {}
    stack: list[tuple[Expression, bool]] = [(expr, False)]
    while stack:
        node, children_done = stack.pop()
        if id(node) in rebuilt:
            continue
        if not children_done:
            stack.append((node, True))
            for term in (node.right, node.left):
                if isinstance(term, Expression) and id(term) not in rebuilt:
                    stack.append((term, False))
            continue
        if node.operator.is_logical:
            right = rebuilt[id(node.right)]
            rebuilt[id(node)] = Expression(rebuilt[id(node.left)], node.operator, right)
        elif node.operator.is_unary:
            rebuilt[id(node)] = Expression(node.left, node.operator, node.right)
        else:
            right = convert(node.left, node.operator, node.right)
            rebuilt[id(node)] = Expression(node.left, node.operator, right)
    return rebuilt[id(expr)]


def preprocess(expr: Expression) -> Expression:
    """Return a copy of ``expr`` with boolean literals replaced by 1/0."""
    return map_literals(expr, lambda column, operator, value: _bool_to_int(value))
