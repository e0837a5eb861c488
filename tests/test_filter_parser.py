"""Tests for the filter lexer and parser."""

import pytest

from typed_rows.errors import FilterSyntaxError
from typed_rows.expressions import Expression, Operator
from typed_rows.parsing import FilterParser, parse_filter
from typed_rows.parsing.filter_lexer import FilterLexer


class TestFilterLexer:
    """Tests for the filter lexer."""

    def test_tokenize_comparison(self):
        """Test tokenizing a simple comparison."""
        lexer = FilterLexer()
        lexer.build()

        tokens = lexer.tokenize("age >= 18")
        token_types = [t.type for t in tokens]

        assert token_types == ["IDENTIFIER", "GTE", "INTEGER"]

    def test_tokenize_keywords_case_insensitive(self):
        """Keywords are recognized in any case."""
        lexer = FilterLexer()
        lexer.build()

        tokens = lexer.tokenize("name IS NOT NULL And x In (1)")
        token_types = [t.type for t in tokens]

        assert token_types == [
            "IDENTIFIER", "IS", "NOT", "NULL", "AND",
            "IDENTIFIER", "IN", "LPAREN", "INTEGER", "RPAREN",
        ]

    def test_tokenize_literals(self):
        """Numbers and strings carry converted values."""
        lexer = FilterLexer()
        lexer.build()

        tokens = lexer.tokenize('-3 2.5 "a \\"b\\"" \'c\'')
        values = [t.value for t in tokens]

        assert values == [-3, 2.5, 'a "b"', "c"]

    def test_tokenize_operators(self):
        """Both inequality spellings lex as NEQ."""
        lexer = FilterLexer()
        lexer.build()

        tokens = lexer.tokenize("a != 1 b <> 2 c <= 3 d < 4")
        token_types = [t.type for t in tokens if t.type != "IDENTIFIER" and t.type != "INTEGER"]

        assert token_types == ["NEQ", "NEQ", "LTE", "LT"]

    def test_illegal_character(self):
        """Unknown characters raise FilterSyntaxError."""
        lexer = FilterLexer()
        lexer.build()

        with pytest.raises(FilterSyntaxError, match="Illegal character"):
            lexer.tokenize("age = $5")


class TestFilterParser:
    """Tests for parsing filters into expressions."""

    def test_comparisons(self):
        """Every comparison operator maps to its Operator."""
        cases = {
            "a = 1": Operator.EQUALS,
            "a != 1": Operator.NOT_EQUALS,
            "a < 1": Operator.LESS_THAN,
            "a <= 1": Operator.LESS_THAN_OR_EQUAL,
            "a > 1": Operator.GREATER_THAN,
            "a >= 1": Operator.GREATER_THAN_OR_EQUAL,
        }
        for text, operator in cases.items():
            assert parse_filter(text) == Expression("a", operator, 1)

    def test_string_operators(self):
        """contains, startswith and endswith take a literal."""
        assert parse_filter('name contains "da"') == Expression("name", Operator.CONTAINS, "da")
        assert parse_filter('name not contains "x"') == Expression("name", Operator.CONTAINS_NOT, "x")
        assert parse_filter('name startswith "A"') == Expression("name", Operator.STARTS_WITH, "A")
        assert parse_filter('name endswith "a"') == Expression("name", Operator.ENDS_WITH, "a")

    def test_in_lists(self):
        """in and not in take a parenthesized list."""
        assert parse_filter("id in (1, 2, 3)") == Expression("id", Operator.IN, (1, 2, 3))
        assert parse_filter('tag not in ("a")') == Expression("tag", Operator.NOT_IN, ("a",))

    def test_null_checks(self):
        """is null / is not null, and = null as a shorthand."""
        assert parse_filter("email is null") == Expression("email", Operator.IS_NULL)
        assert parse_filter("email is not null") == Expression("email", Operator.IS_NOT_NULL)
        assert parse_filter("email = null") == Expression("email", Operator.IS_NULL)
        assert parse_filter("email != null") == Expression("email", Operator.IS_NOT_NULL)

    def test_literals(self):
        """Booleans, floats and negative numbers are parsed."""
        assert parse_filter("active = true").right is True
        assert parse_filter("active = false").right is False
        assert parse_filter("score > 2.5").right == 2.5
        assert parse_filter("delta < -4").right == -4

    def test_between(self):
        """between expands to an And of >= and <=."""
        expr = parse_filter("age between 18 and 65")
        assert str(expr) == "((age GreaterThanOrEqual 18) And (age LessThanOrEqual 65))"

    def test_between_inside_and(self):
        """The and of between does not end the condition early."""
        expr = parse_filter('age between 1 and 2 and name = "x"')
        assert expr.operator is Operator.AND
        assert expr.left.operator is Operator.AND
        assert expr.right == Expression("name", Operator.EQUALS, "x")

    def test_and_binds_tighter_than_or(self):
        """a or b and c parses as a or (b and c)."""
        expr = parse_filter("a = 1 or b = 2 and c = 3")
        assert str(expr) == "((a Equals 1) Or ((b Equals 2) And (c Equals 3)))"

    def test_parentheses(self):
        """Parentheses override precedence."""
        expr = parse_filter("(a = 1 or b = 2) and c = 3")
        assert str(expr) == "(((a Equals 1) Or (b Equals 2)) And (c Equals 3))"

    def test_left_associative(self):
        """Chains of and group to the left."""
        expr = parse_filter("a = 1 and b = 2 and c = 3")
        assert str(expr) == "(((a Equals 1) And (b Equals 2)) And (c Equals 3))"

    def test_parser_instance_reusable(self):
        """One parser parses many inputs."""
        parser = FilterParser()
        assert parser.parse("a = 1") == Expression("a", Operator.EQUALS, 1)
        assert parser.parse("b = 2") == Expression("b", Operator.EQUALS, 2)

    def test_syntax_errors(self):
        """Malformed filters raise FilterSyntaxError."""
        for text in ("a =", "a == 1", "= 1", "a = 1 and", "(a = 1", "a in ()", "a between 1"):
            with pytest.raises(FilterSyntaxError):
                parse_filter(text)

    def test_empty_filter(self):
        """Blank filter text is rejected."""
        with pytest.raises(FilterSyntaxError, match="empty"):
            parse_filter("   ")

    def test_filter_syntax_error_is_syntax_error(self):
        """FilterSyntaxError can be caught as SyntaxError."""
        with pytest.raises(SyntaxError):
            parse_filter("a >")
