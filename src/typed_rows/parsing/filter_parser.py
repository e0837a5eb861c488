"""Parser turning filter text into expression trees.

Example::

    age >= 18 and (name startswith "A" or email is not null)
"""

from __future__ import annotations

import threading
from typing import Any

import ply.yacc as yacc

from typed_rows.errors import FilterSyntaxError
from typed_rows.expressions import Expression, Operator, between
from typed_rows.parsing.filter_lexer import FilterLexer

_COMPARISON_OPERATORS = {
    "=": Operator.EQUALS,
    "!=": Operator.NOT_EQUALS,
    "<>": Operator.NOT_EQUALS,
    "<": Operator.LESS_THAN,
    "<=": Operator.LESS_THAN_OR_EQUAL,
    ">": Operator.GREATER_THAN,
    ">=": Operator.GREATER_THAN_OR_EQUAL,
}


class FilterParser:
    """Parser for filter expressions."""

    tokens = FilterLexer.tokens

    # Operator precedence
    precedence = (
        ("left", "OR"),
        ("left", "AND"),
    )

    def __init__(self) -> None:
        self.lexer = FilterLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore

    def p_filter(self, p: yacc.YaccProduction) -> None:
        """filter : condition"""
        p[0] = p[1]

    def p_condition_and(self, p: yacc.YaccProduction) -> None:
        """condition : condition AND condition"""
        p[0] = Expression(p[1], Operator.AND, p[3])

    def p_condition_or(self, p: yacc.YaccProduction) -> None:
        """condition : condition OR condition"""
        p[0] = Expression(p[1], Operator.OR, p[3])

    def p_condition_paren(self, p: yacc.YaccProduction) -> None:
        """condition : LPAREN condition RPAREN"""
        p[0] = p[2]

    def p_condition_comparison(self, p: yacc.YaccProduction) -> None:
        """condition : IDENTIFIER EQ value
                     | IDENTIFIER NEQ value
                     | IDENTIFIER LT value
                     | IDENTIFIER LTE value
                     | IDENTIFIER GT value
                     | IDENTIFIER GTE value"""
        operator = _COMPARISON_OPERATORS[p[2]]
        if p[3] is None and operator in (Operator.EQUALS, Operator.NOT_EQUALS):
            # "= null" reads as "is null"
            operator = Operator.IS_NULL if operator is Operator.EQUALS else Operator.IS_NOT_NULL
        p[0] = Expression(p[1], operator, p[3])

    def p_condition_in(self, p: yacc.YaccProduction) -> None:
        """condition : IDENTIFIER IN LPAREN value_list RPAREN"""
        p[0] = Expression(p[1], Operator.IN, p[4])

    def p_condition_not_in(self, p: yacc.YaccProduction) -> None:
        """condition : IDENTIFIER NOT IN LPAREN value_list RPAREN"""
        p[0] = Expression(p[1], Operator.NOT_IN, p[5])

    def p_condition_contains(self, p: yacc.YaccProduction) -> None:
        """condition : IDENTIFIER CONTAINS value"""
        p[0] = Expression(p[1], Operator.CONTAINS, p[3])

    def p_condition_contains_not(self, p: yacc.YaccProduction) -> None:
        """condition : IDENTIFIER NOT CONTAINS value"""
        p[0] = Expression(p[1], Operator.CONTAINS_NOT, p[4])

    def p_condition_starts_with(self, p: yacc.YaccProduction) -> None:
        """condition : IDENTIFIER STARTSWITH value"""
        p[0] = Expression(p[1], Operator.STARTS_WITH, p[3])

    def p_condition_ends_with(self, p: yacc.YaccProduction) -> None:
        """condition : IDENTIFIER ENDSWITH value"""
        p[0] = Expression(p[1], Operator.ENDS_WITH, p[3])

    def p_condition_between(self, p: yacc.YaccProduction) -> None:
        """condition : IDENTIFIER BETWEEN value AND value"""
        p[0] = between(p[1], [p[3], p[5]])

    def p_condition_is_null(self, p: yacc.YaccProduction) -> None:
        """condition : IDENTIFIER IS NULL"""
        p[0] = Expression(p[1], Operator.IS_NULL, None)

    def p_condition_is_not_null(self, p: yacc.YaccProduction) -> None:
        """condition : IDENTIFIER IS NOT NULL"""
        p[0] = Expression(p[1], Operator.IS_NOT_NULL, None)

    def p_value_list_single(self, p: yacc.YaccProduction) -> None:
        """value_list : value"""
        p[0] = [p[1]]

    def p_value_list_multiple(self, p: yacc.YaccProduction) -> None:
        """value_list : value_list COMMA value"""
        p[0] = p[1] + [p[3]]

    def p_value_literal(self, p: yacc.YaccProduction) -> None:
        """value : INTEGER
                 | FLOAT
                 | STRING"""
        p[0] = p[1]

    def p_value_true(self, p: yacc.YaccProduction) -> None:
        """value : TRUE"""
        p[0] = True

    def p_value_false(self, p: yacc.YaccProduction) -> None:
        """value : FALSE"""
        p[0] = False

    def p_value_null(self, p: yacc.YaccProduction) -> None:
        """value : NULL"""
        p[0] = None

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise FilterSyntaxError(f"Syntax error at '{p.value}' (position {p.lexpos})")
        else:
            raise FilterSyntaxError("Syntax error at end of input")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, start="filter", **kwargs)

    def parse(self, data: str) -> Expression:
        """Parse a filter string into an expression tree."""
        if not data or not data.strip():
            raise FilterSyntaxError("Filter text is empty")
        if self.parser is None:
            self.build(debug=False, write_tables=False)

        return self.parser.parse(data, lexer=self.lexer.lexer)


# PLY lexers keep position state, so each thread gets its own parser
_local = threading.local()


def parse_filter(text: str) -> Expression:
    """Parse filter text using a parser cached for the current thread."""
    parser = getattr(_local, "parser", None)
    if parser is None:
        parser = FilterParser()
        _local.parser = parser
    return parser.parse(text)
