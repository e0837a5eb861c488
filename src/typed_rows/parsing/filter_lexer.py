"""Lexer for the textual filter syntax."""

import re

import ply.lex as lex

from typed_rows.errors import FilterSyntaxError

_ESCAPE_RE = re.compile(r"\\(.)")


class FilterLexer:
    """Lexer for tokenizing filter expressions."""

    # Reserved keywords
    reserved = {
        "and": "AND",
        "or": "OR",
        "not": "NOT",
        "in": "IN",
        "contains": "CONTAINS",
        "startswith": "STARTSWITH",
        "endswith": "ENDSWITH",
        "between": "BETWEEN",
        "is": "IS",
        "null": "NULL",
        "true": "TRUE",
        "false": "FALSE",
    }

    # Token list
    tokens = [
        "IDENTIFIER",
        "INTEGER",
        "FLOAT",
        "STRING",
        "LPAREN",
        "RPAREN",
        "COMMA",
        "EQ",
        "NEQ",
        "LT",
        "LTE",
        "GT",
        "GTE",
    ] + list(reserved.values())

    # Simple tokens
    t_LPAREN = r"\("
    t_RPAREN = r"\)"
    t_COMMA = r","
    t_EQ = r"="
    t_NEQ = r"!=|<>"
    t_LTE = r"<="
    t_LT = r"<"
    t_GTE = r">="
    t_GT = r">"

    # Ignored characters
    t_ignore = " \t\r\n"

    def __init__(self) -> None:
        self.lexer: lex.LexToken = None  # type: ignore

    def t_FLOAT(self, t: lex.LexToken) -> lex.LexToken:
        r"-?\d+\.\d+"
        t.value = float(t.value)
        return t

    def t_INTEGER(self, t: lex.LexToken) -> lex.LexToken:
        r"-?\d+"
        t.value = int(t.value)
        return t

    def t_STRING(self, t: lex.LexToken) -> lex.LexToken:
        r'"([^"\\]|\\.)*"|\'([^\'\\]|\\.)*\''
        # Strip quotes and backslash escapes
        t.value = _ESCAPE_RE.sub(r"\1", t.value[1:-1])
        return t

    def t_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"[a-zA-Z_][a-zA-Z0-9_.]*"
        t.type = self.reserved.get(t.value.lower(), "IDENTIFIER")
        return t

    def t_error(self, t: lex.LexToken) -> None:
        raise FilterSyntaxError(f"Illegal character '{t.value[0]}' at position {t.lexpos}")

    def build(self, **kwargs) -> None:  # type: ignore
        """Build the lexer."""
        self.lexer = lex.lex(module=self, **kwargs)

    def input(self, data: str) -> None:
        """Set the input string to tokenize."""
        self.lexer.input(data)

    def token(self) -> lex.LexToken | None:
        """Return the next token."""
        return self.lexer.token()

    def tokenize(self, data: str) -> list[lex.LexToken]:
        """Tokenize the input and return all tokens."""
        self.input(data)
        tokens = []
        while True:
            tok = self.token()
            if tok is None:
                break
            tokens.append(tok)
        return tokens
