"""
Shell-like tokenizer for submitted commands.

Splits a command line into words the way a POSIX shell would quote them,
without ever handing the text to a shell. Characters a shell would treat as
control operators or expansions are reported as typed tokens instead of being
folded into words, so the policy layer can refuse them.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List

OPERATOR_CHARS = frozenset(";&|()<>")
EXPANSION_CHARS = frozenset("$`")

# Characters a backslash may escape inside double quotes
_DQUOTE_ESCAPABLE = frozenset('"\\$`')


class TokenizeError(ValueError):
    """Raised when a command line cannot be split into words."""


class TokenKind(str, Enum):
    """Kinds of tokens produced by the tokenizer."""

    WORD = "word"
    OPERATOR = "operator"
    EXPANSION = "expansion"


@dataclass(frozen=True)
class Token:
    """A single token from a command line."""

    kind: TokenKind
    value: str
    quoted: bool = False

    @property
    def is_word(self) -> bool:
        return self.kind is TokenKind.WORD


def tokenize(text: str) -> List[Token]:
    """
    Split a command line into tokens.

    Args:
        text: Raw command line

    Returns:
        Tokens in source order

    Raises:
        TokenizeError: On unterminated quotes or a trailing backslash
    """
    tokens: List[Token] = []
    word: List[str] = []
    in_word = False
    quoted = False
    i = 0
    n = len(text)

    def flush() -> None:
        nonlocal word, in_word, quoted
        if in_word:
            tokens.append(Token(TokenKind.WORD, "".join(word), quoted))
        word = []
        in_word = False
        quoted = False

    while i < n:
        ch = text[i]

        if ch.isspace():
            flush()
            i += 1
            continue

        if ch == "'":
            end = text.find("'", i + 1)
            if end == -1:
                raise TokenizeError("Unterminated single quote")
            word.append(text[i + 1:end])
            in_word = True
            quoted = True
            i = end + 1
            continue

        if ch == '"':
            i += 1
            while True:
                if i >= n:
                    raise TokenizeError("Unterminated double quote")
                c = text[i]
                if c == '"':
                    i += 1
                    break
                if c == "\\" and i + 1 < n and text[i + 1] in _DQUOTE_ESCAPABLE:
                    word.append(text[i + 1])
                    i += 2
                    continue
                word.append(c)
                i += 1
            in_word = True
            quoted = True
            continue

        if ch == "\\":
            if i + 1 >= n:
                raise TokenizeError("Trailing backslash")
            word.append(text[i + 1])
            in_word = True
            quoted = True
            i += 2
            continue

        if ch in OPERATOR_CHARS:
            flush()
            # Group runs like "&&", "||", ">>" into a single operator token
            j = i + 1
            while j < n and text[j] in OPERATOR_CHARS and text[j] == ch:
                j += 1
            tokens.append(Token(TokenKind.OPERATOR, text[i:j]))
            i = j
            continue

        if ch in EXPANSION_CHARS:
            flush()
            tokens.append(Token(TokenKind.EXPANSION, ch))
            i += 1
            continue

        word.append(ch)
        in_word = True
        i += 1

    flush()
    return tokens


def split_words(text: str) -> List[str]:
    """Tokenize and return plain words, refusing operators and expansions."""
    words = []
    for token in tokenize(text):
        if not token.is_word:
            raise TokenizeError(f"Unexpected {token.kind.value} '{token.value}'")
        words.append(token.value)
    return words
