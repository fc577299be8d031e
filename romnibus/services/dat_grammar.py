"""Tokenizer and clause parser for clrmamepro-style DAT files.

A DAT file is a sequence of clauses. A clause is a key followed by either an
atom (a bare word or a quoted string) or a parenthesised list of further
clauses::

    clrmamepro ( name "Nintendo - Game Boy" version 20240101 )
    game (
        name "Tetris (World)"
        rom ( name "Tetris (World).gb" size 32768 sha1 74591CC9501AF93873F9A5D3EB12DA12C0723BBC )
    )

Damage in the input (unterminated quotes, stray closing parentheses, lists
cut off by the end of the file) is recorded as a ``GrammarIssue`` on the
parse result instead of aborting the parse, so the caller decides which
blocks to keep.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class TokenKind(Enum):
    """Lexical classes of the DAT grammar."""
    OPEN = "("
    CLOSE = ")"
    STRING = "string"
    WORD = "word"


@dataclass(frozen=True)
class Token:
    """A single lexical token with the line it started on."""
    kind: TokenKind
    text: str
    line: int
    terminated: bool = True  # False for a quoted string cut off by end of line

    @property
    def quoted(self) -> bool:
        return self.kind is TokenKind.STRING


@dataclass(frozen=True)
class GrammarIssue:
    """A structural problem found while reading a DAT file."""
    line: int
    message: str


@dataclass
class Clause:
    """A key with either an atom value or a nested list of clauses."""
    key: str
    line: int
    value: Union[Token, "ClauseList", None] = None
    complete: bool = True  # False when the nested list ran into end of input

    @property
    def is_block(self) -> bool:
        return isinstance(self.value, ClauseList)

    @property
    def atom(self) -> Token | None:
        return self.value if isinstance(self.value, Token) else None


@dataclass
class ClauseList:
    """An ordered list of clauses inside one pair of parentheses."""
    clauses: list[Clause] = field(default_factory=list)

    def first(self, key: str) -> Clause | None:
        """Return the first clause with the given key, compared case-insensitively."""
        key = key.lower()
        for clause in self.clauses:
            if clause.key.lower() == key:
                return clause
        return None

    def all(self, key: str) -> list[Clause]:
        key = key.lower()
        return [clause for clause in self.clauses if clause.key.lower() == key]


@dataclass
class ParseResult:
    """Top-level clauses of a DAT file plus anything that looked wrong."""
    clauses: ClauseList
    issues: list[GrammarIssue] = field(default_factory=list)


def tokenize(text: str) -> tuple[list[Token], list[GrammarIssue]]:
    """Split DAT text into tokens.

    Quoted strings run to the next double quote on the same line. A string
    with no closing quote ends at the end of its line and is flagged as
    unterminated.
    """
    tokens: list[Token] = []
    issues: list[GrammarIssue] = []
    pos = 0
    line = 1
    length = len(text)

    while pos < length:
        char = text[pos]

        if char == "\n":
            line += 1
            pos += 1
        elif char.isspace():
            pos += 1
        elif char == "(":
            tokens.append(Token(TokenKind.OPEN, char, line))
            pos += 1
        elif char == ")":
            tokens.append(Token(TokenKind.CLOSE, char, line))
            pos += 1
        elif char == '"':
            end = pos + 1
            while end < length and text[end] not in '"\n':
                end += 1
            if end < length and text[end] == '"':
                tokens.append(Token(TokenKind.STRING, text[pos + 1:end], line))
                pos = end + 1
            else:
                issues.append(GrammarIssue(line, "unterminated quoted string"))
                tokens.append(Token(TokenKind.STRING, text[pos + 1:end], line, terminated=False))
                pos = end
        else:
            end = pos
            while end < length and not text[end].isspace() and text[end] not in "()":
                end += 1
            tokens.append(Token(TokenKind.WORD, text[pos:end], line))
            pos = end

    return tokens, issues


class _ClauseParser:
    """Recursive-descent parser over a token list with an explicit cursor."""

    def __init__(self, tokens: list[Token], issues: list[GrammarIssue]) -> None:
        self._tokens = tokens
        self._pos = 0
        self.issues = issues

    def _peek(self) -> Token | None:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        self._pos += 1
        return token

    def parse_document(self) -> ClauseList:
        document = ClauseList()
        while (token := self._peek()) is not None:
            if token.kind is TokenKind.CLOSE:
                self.issues.append(GrammarIssue(token.line, "unexpected ')'"))
                self._advance()
                continue
            clause = self._parse_clause()
            if clause is not None:
                document.clauses.append(clause)
        return document

    def _parse_list(self, opened_at: int) -> tuple[ClauseList, bool]:
        """Parse clauses up to the matching ')'. Returns the list and whether it closed."""
        clauses = ClauseList()
        while (token := self._peek()) is not None:
            if token.kind is TokenKind.CLOSE:
                self._advance()
                return clauses, True
            clause = self._parse_clause()
            if clause is not None:
                clauses.clauses.append(clause)

        self.issues.append(GrammarIssue(opened_at, "'(' never closed before end of input"))
        return clauses, False

    def _parse_clause(self) -> Clause | None:
        key_token = self._advance()

        if key_token.kind is TokenKind.OPEN:
            # Anonymous list: keep its contents reachable under an empty key
            nested, closed = self._parse_list(key_token.line)
            self.issues.append(GrammarIssue(key_token.line, "list without a key"))
            return Clause(key="", line=key_token.line, value=nested, complete=closed)

        clause = Clause(key=key_token.text, line=key_token.line)
        token = self._peek()

        if token is None or token.kind is TokenKind.CLOSE:
            # Key with no value, e.g. "name )"
            return clause

        if token.kind is TokenKind.OPEN:
            self._advance()
            clause.value, clause.complete = self._parse_list(token.line)
        else:
            clause.value = self._advance()

        return clause


def parse_clauses(text: str) -> ParseResult:
    """Tokenize and parse DAT text into a clause tree."""
    tokens, issues = tokenize(text)
    parser = _ClauseParser(tokens, issues)
    document = parser.parse_document()
    return ParseResult(clauses=document, issues=parser.issues)
