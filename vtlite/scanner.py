"""
Сканер шаблонов.

Разбивает исходный текст на токены верхнего уровня: литеральный текст,
комментарии, блоки #[[...]]#, ссылки $... и директивы #name(...).
Аргументы директив и ссылки сохраняются как сырые участки исходника;
их внутреннюю структуру разбирает парсер выражений.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional

from .config import DEFAULT_CONFIG, EngineConfig
from .source import SourceText

logger = logging.getLogger(__name__)


class TokenType(enum.Enum):
    """Типы токенов верхнего уровня."""

    TEXT = "TEXT"
    COMMENT = "COMMENT"                # ## ... и #* ... *#
    LITERAL_BLOCK = "LITERAL_BLOCK"    # #[[ ... ]]#
    REFERENCE = "REFERENCE"            # $x.y[0] и ${x.y}
    DIRECTIVE = "DIRECTIVE"            # #if(...), #end, #{else}, #myMacro(...)
    EOF = "EOF"


# Директивы, у которых нет аргументов в скобках
NO_ARG_DIRECTIVES = frozenset({"else", "end"})

# Встроенные директивы со скобками; всё остальное считается вызовом макроса
ARG_DIRECTIVES = frozenset({"if", "elseif", "foreach", "set", "macro"})


@dataclass(frozen=True)
class Token:
    """
    Токен с позиционной информацией.

    Для REFERENCE value содержит исходный текст ссылки целиком.
    Для DIRECTIVE value содержит имя директивы, args — текст между скобками,
    args_position — смещение первого символа после "(".
    """
    type: TokenType
    value: str
    position: int
    line: int
    column: int
    args: Optional[str] = None
    args_position: int = 0

    def __repr__(self) -> str:
        if self.args is not None:
            return f"Token({self.type.name}, {self.value!r}, args={self.args!r}, {self.line}:{self.column})"
        return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"


_TEXT_RUN = re.compile(r"[^#$]+")
_DIRECTIVE_NEWLINE = re.compile(r"[ \t]*\r?\n")
_LINE_REST = re.compile(r"[ \t]*(?:\r?\n|\Z)")
_HORIZONTAL_SPACE = re.compile(r"[ \t]*\Z")

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {")", "]", "}"}


def is_identifier_start(char: str) -> bool:
    return ("a" <= char <= "z") or ("A" <= char <= "Z")


def is_identifier_char(char: str) -> bool:
    return is_identifier_start(char) or ("0" <= char <= "9") or char in "_-"


class TemplateScanner:
    """
    Сканер исходного текста шаблона.

    Литеральный текст копится до ближайшей конструкции и выдаётся одним
    токеном TEXT. Символы # и $, которые не начинают конструкцию, остаются
    частью текста.
    """

    def __init__(self, source: SourceText | str, config: EngineConfig = DEFAULT_CONFIG):
        if isinstance(source, str):
            source = SourceText(source, config=config)
        self.source = source
        self.text = source.text
        self.length = source.length
        self.config = config
        self.position = 0
        self._literal_start = 0

    def tokenize(self) -> List[Token]:
        """Токенизирует весь текст; последний токен всегда EOF."""
        tokens = list(self.iter_tokens())
        logger.debug("Scanned %s: %d tokens", self.source.name, len(tokens))
        return tokens

    def iter_tokens(self) -> Iterator[Token]:
        """Потоковая токенизация."""
        self.position = 0
        self._literal_start = 0

        while self.position < self.length:
            char = self.text[self.position]
            if char == "#":
                yield from self._scan_hash()
            elif char == "$":
                yield from self._scan_dollar()
            else:
                match = _TEXT_RUN.match(self.text, self.position)
                self.position = match.end()

        yield from self._flush_literal(self.length)
        yield self._make(TokenType.EOF, "", self.length)

    # -------------------- # constructs --------------------

    def _scan_hash(self) -> Iterator[Token]:
        start = self.position
        following = self._peek(1)

        if following == "#":
            yield from self._flush_before_comment(start)
            yield self._scan_line_comment(start)
        elif following == "*":
            yield from self._scan_block_comment(start)
        elif following == "[" and self._peek(2) == "[":
            yield from self._flush_literal(start)
            yield self._scan_literal_block(start)
        elif following == "{" or is_identifier_start(following):
            yield from self._flush_literal(start)
            yield self._scan_directive(start)
        else:
            self.position += 1

    def _scan_line_comment(self, start: int) -> Token:
        newline = self.text.find("\n", start + 2)
        end = self.length if newline < 0 else newline + 1
        self.position = end
        self._literal_start = end
        return self._make(TokenType.COMMENT, self.text[start:end], start)

    def _scan_block_comment(self, start: int) -> Iterator[Token]:
        close = self.text.find("*#", start + 2)
        if close < 0:
            raise self.source.error("Unterminated #* - did not see matching *#", start)
        end = close + 2

        # Комментарий, занимающий строку целиком, удаляется вместе со строкой
        line_start = self.text.rfind("\n", 0, start) + 1
        rest = _LINE_REST.match(self.text, end)
        if rest and self._only_indentation(line_start, start):
            yield from self._flush_literal(max(line_start, self._literal_start))
            end = rest.end()
        else:
            yield from self._flush_literal(start)

        self.position = end
        self._literal_start = end
        yield self._make(TokenType.COMMENT, self.text[start:end], start)

    def _scan_literal_block(self, start: int) -> Token:
        close = self.text.find("]]#", start + 3)
        if close < 0:
            raise self.source.error("Unterminated #[[ - did not see matching ]]#", start)
        self.position = close + 3
        self._literal_start = self.position
        return self._make(TokenType.LITERAL_BLOCK, self.text[start + 3:close], start)

    def _scan_directive(self, start: int) -> Token:
        self.position = start + 1
        if self._peek(0) == "{":
            self.position += 1
            name = self._read_identifier("Directive inside #{...}")
            self._skip_whitespace()
            if self._peek(0) != "}":
                raise self.source.error("Expected }", self.position)
            self.position += 1
        else:
            name = self._read_identifier("Directive")

        if name in NO_ARG_DIRECTIVES:
            token = self._make(TokenType.DIRECTIVE, name, start)
        else:
            self._skip_whitespace()
            if self._peek(0) != "(":
                if name in ARG_DIRECTIVES:
                    raise self.source.error("Expected (", self.position)
                raise self.source.error(f"Unrecognized directive #{name}", start)
            close = self._scan_balanced(self.position)
            args_position = self.position + 1
            token = self._make(
                TokenType.DIRECTIVE,
                name,
                start,
                args=self.text[args_position:close],
                args_position=args_position,
            )
            self.position = close + 1

        if self.config.directive_newline_elision:
            elided = _DIRECTIVE_NEWLINE.match(self.text, self.position)
            if elided:
                self.position = elided.end()

        self._literal_start = self.position
        return token

    # -------------------- $ constructs --------------------

    def _scan_dollar(self) -> Iterator[Token]:
        start = self.position
        following = self._peek(1)

        if is_identifier_start(following):
            yield from self._flush_literal(start)
            self.position = start + 1
            self._read_identifier("Reference")
            self._scan_reference_suffix()
        elif following == "{" and is_identifier_start(self._peek(2)):
            yield from self._flush_literal(start)
            self.position = start + 2
            self._read_identifier("Reference")
            self._scan_reference_suffix()
            self._skip_whitespace()
            if self._peek(0) != "}":
                raise self.source.error("Expected }", self.position)
            self.position += 1
        else:
            self.position += 1
            return

        self._literal_start = self.position
        yield self._make(TokenType.REFERENCE, self.text[start:self.position], start)

    def _scan_reference_suffix(self) -> None:
        while self.position < self.length:
            char = self.text[self.position]
            if char == "." and is_identifier_start(self._peek(1)):
                self.position += 1
                self._read_identifier("Member")
                if self._peek(0) == "(":
                    self.position = self._scan_balanced(self.position) + 1
            elif char == "[":
                self.position = self._scan_balanced(self.position) + 1
            else:
                return

    # -------------------- helpers --------------------

    def _scan_balanced(self, open_position: int) -> int:
        """
        Находит парную закрывающую скобку для скобки в open_position.

        Учитывает вложенные (), [], {} и строковые литералы в двойных кавычках.
        Возвращает смещение закрывающей скобки.
        """
        stack = [_OPENERS[self.text[open_position]]]
        index = open_position + 1
        while index < self.length:
            char = self.text[index]
            if char == '"':
                index = self._skip_string(index)
                continue
            if char in _OPENERS:
                stack.append(_OPENERS[char])
            elif char in _CLOSERS:
                if char != stack[-1]:
                    raise self.source.error(f"Expected {stack[-1]}, not {char}", index)
                stack.pop()
                if not stack:
                    return index
            index += 1
        raise self.source.error(f"Expected {stack[-1]}", self.length)

    def _skip_string(self, quote_position: int) -> int:
        index = quote_position + 1
        while index < self.length and self.text[index] not in '"\n':
            index += 1
        if index >= self.length or self.text[index] == "\n":
            raise self.source.error("Unterminated string constant", quote_position)
        return index + 1

    def _read_identifier(self, what: str) -> str:
        if not is_identifier_start(self._peek(0)):
            raise self.source.error(f"{what} should start with an ASCII letter", self.position)
        start = self.position
        self.position += 1
        while self.position < self.length and is_identifier_char(self.text[self.position]):
            self.position += 1
        return self.text[start:self.position]

    def _skip_whitespace(self) -> None:
        while self.position < self.length and self.text[self.position].isspace():
            self.position += 1

    def _peek(self, offset: int) -> str:
        index = self.position + offset
        return self.text[index] if index < self.length else ""

    def _only_indentation(self, line_start: int, position: int) -> bool:
        return _HORIZONTAL_SPACE.match(self.text, line_start, position) is not None

    def _flush_before_comment(self, start: int) -> Iterator[Token]:
        # Отступ перед "##" в начале строки отбрасывается
        line_start = self.text.rfind("\n", 0, start) + 1
        if self._only_indentation(line_start, start):
            yield from self._flush_literal(max(line_start, self._literal_start))
        else:
            yield from self._flush_literal(start)

    def _flush_literal(self, end: int) -> Iterator[Token]:
        if end > self._literal_start:
            yield self._make(TokenType.TEXT, self.text[self._literal_start:end], self._literal_start)
        self._literal_start = end

    def _make(self, token_type: TokenType, value: str, position: int, **extra) -> Token:
        line, column = self.source.locate(position)
        return Token(token_type, value, position, line, column, **extra)


__all__ = ["TokenType", "Token", "TemplateScanner", "is_identifier_start", "is_identifier_char"]
