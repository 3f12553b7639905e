"""Lexer for the schema definition DSL."""

import re

import ply.lex as lex


class SchemaLexer:
    """Lexer for tokenizing schema definition DSL."""

    # Reserved keywords
    reserved = {
        "enum": "ENUM",
        "flags": "FLAGS",
        "bitfield": "BITFIELD",
        "root": "ROOT",
    }

    # Token list
    tokens = [
        "IDENTIFIER",
        "INTEGER",
        "FLOAT",
        "STRING",
        "LBRACE",
        "RBRACE",
        "LBRACKET",
        "RBRACKET",
        "LPAREN",
        "RPAREN",
        "COLON",
        "COMMA",
        "EQUALS",
        "STAR",
        "QUESTION",
        "BANG",
        "AT",
        "DOTDOT",
    ] + list(reserved.values())

    # Simple tokens
    t_LBRACE = r"\{"
    t_RBRACE = r"\}"
    t_LBRACKET = r"\["
    t_RBRACKET = r"\]"
    t_LPAREN = r"\("
    t_RPAREN = r"\)"
    t_COLON = r":"
    t_COMMA = r","
    t_EQUALS = r"="
    t_STAR = r"\*"
    t_QUESTION = r"\?"
    t_BANG = r"!"
    t_AT = r"@"
    t_DOTDOT = r"\.\."

    # Ignored characters (spaces and tabs)
    t_ignore = " \t"

    # Comments
    t_ignore_COMMENT = r"\#[^\n]*"

    def __init__(self) -> None:
        self.lexer: lex.LexToken = None  # type: ignore

    def t_FLOAT(self, t: lex.LexToken) -> lex.LexToken:
        r"-?\d+\.\d+([eE][-+]?\d+)?"
        t.value = float(t.value)
        return t

    def t_INTEGER(self, t: lex.LexToken) -> lex.LexToken:
        r"-?(0[xX][0-9a-fA-F]+|\d+)"
        t.value = int(t.value, 0) if "x" in t.value.lower() else int(t.value)
        return t

    def t_STRING(self, t: lex.LexToken) -> lex.LexToken:
        r'"([^"\\\n]|\\.)*"'
        t.value = re.sub(r"\\(.)", r"\1", t.value[1:-1])
        return t

    def t_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"[a-zA-Z_][a-zA-Z0-9_]*"
        # Check if it's a reserved word
        t.type = self.reserved.get(t.value, "IDENTIFIER")
        return t

    def t_NEWLINE(self, t: lex.LexToken) -> None:
        r"\n+"
        t.lexer.lineno += len(t.value)

    def t_error(self, t: lex.LexToken) -> None:
        raise SyntaxError(f"Illegal character '{t.value[0]}' at line {t.lineno}")

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
