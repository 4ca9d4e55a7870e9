"""
Лексер и парсер выражений с рекурсивным спуском.

Разбирает аргументы директив и ссылки в AST-выражения. Работает над участком
исходного текста шаблона, поэтому позиции ошибок указываются относительно
всего шаблона.

Грамматика:
expression      → or_expression
or_expression   → and_expression ("||" and_expression)*
and_expression  → equality ("&&" equality)*
equality        → relational (("==" | "!=") relational)*
relational      → additive (("<" | "<=" | ">" | ">=") additive)*
additive        → multiplicative (("+" | "-") multiplicative)*
multiplicative  → unary (("*" | "/" | "%") unary)*
unary           → "!" unary | primary
primary         → reference | STRING | INTEGER | "-" INTEGER | "true" | "false"
                | "(" expression ")"
reference       → "$" ["{"] IDENTIFIER suffix* ["}"]
suffix          → "." IDENTIFIER ["(" [expression ("," expression)*] ")"]
                | "[" expression "]"

Внутри ссылки элементы идут вплотную, без пробелов.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .config import EngineConfig
from .nodes import (
    BinaryNode,
    ConstantNode,
    ExpressionNode,
    IndexReference,
    MemberReference,
    MethodReference,
    NotNode,
    Operator,
    PlainReference,
)
from .source import SourceText


@dataclass(frozen=True)
class ExprToken:
    """
    Токен выражения.

    Attributes:
        type: STRING, INTEGER, IDENTIFIER, OPERATOR, SYMBOL или EOF
        value: Текст токена (для STRING — без кавычек)
        position: Смещение начала в тексте шаблона
        end: Смещение за концом токена
    """
    type: str
    value: str
    position: int
    end: int

    def __repr__(self):
        return f"ExprToken({self.type}, '{self.value}', pos={self.position})"


class ExpressionLexer:
    """Лексер выражений."""

    # Спецификация токенов: (regex_pattern, token_type, ignore_flag)
    TOKEN_SPECS = [
        (r'\s+', 'WHITESPACE', True),

        (r'"[^"\n]*"', 'STRING', False),
        (r'"', 'UNTERMINATED', False),

        (r'[0-9]+', 'INTEGER', False),
        (r'[A-Za-z][A-Za-z0-9_-]*', 'IDENTIFIER', False),

        # Двухсимвольные операторы проверяются раньше односимвольных
        (r'\|\||&&|==|!=|<=|>=', 'OPERATOR', False),
        (r'[<>+\-*/%!=]', 'OPERATOR', False),
        (r'[$(){}\[\].,]', 'SYMBOL', False),

        (r'.', 'UNKNOWN', False),
    ]

    def __init__(self, source: SourceText):
        self.source = source
        self._compiled_patterns = [
            (re.compile(pattern, re.DOTALL), token_type, ignore)
            for pattern, token_type, ignore in self.TOKEN_SPECS
        ]

    def tokenize(self, start: int, end: int) -> List[ExprToken]:
        """
        Разбивает участок [start, end) текста шаблона на токены.

        Raises:
            ParseError: При недопустимом символе или строковом литерале
        """
        text = self.source.text
        tokens: List[ExprToken] = []
        position = start

        while position < end:
            for pattern, token_type, ignore in self._compiled_patterns:
                match = pattern.match(text, position, end)
                if match:
                    break
            else:  # pragma: no cover - '.' с DOTALL совпадает всегда
                raise self.source.error("Unexpected character", position)

            value = match.group(0)
            if not ignore:
                tokens.append(self._make_token(token_type, value, position))
            position = match.end()

        tokens.append(ExprToken('EOF', '', end, end))
        return tokens

    def _make_token(self, token_type: str, value: str, position: int) -> ExprToken:
        if token_type == 'UNTERMINATED':
            raise self.source.error("Unterminated string constant", position)
        if token_type == 'UNKNOWN':
            raise self.source.error(f"Unexpected character '{value}'", position)
        if token_type == 'STRING':
            content = value[1:-1]
            if "$" in content or "\\" in content:
                raise self.source.error(
                    "Escapes or references in string constants are not currently supported",
                    position,
                )
            return ExprToken(token_type, content, position, position + len(value))
        return ExprToken(token_type, value, position, position + len(value))


class ExpressionParser:
    """
    Парсер выражений над участком текста шаблона.

    Помимо разбора полных выражений предоставляет примитивы (peek, match,
    expect), из которых парсер директив собирает заголовки #foreach, #set
    и #macro.
    """

    _EQUALITY = {"==": Operator.EQUAL, "!=": Operator.NOT_EQUAL}
    _RELATIONAL = {
        "<": Operator.LESS,
        "<=": Operator.LESS_OR_EQUAL,
        ">": Operator.GREATER,
        ">=": Operator.GREATER_OR_EQUAL,
    }
    _ADDITIVE = {"+": Operator.PLUS, "-": Operator.MINUS}
    _MULTIPLICATIVE = {"*": Operator.TIMES, "/": Operator.DIVIDE, "%": Operator.REMAINDER}

    def __init__(self, source: SourceText, start: int, end: int, config: EngineConfig):
        self.source = source
        self.config = config
        self._tokens = ExpressionLexer(source).tokenize(start, end)
        self._position = 0

    # -------------------- public entry points --------------------

    def parse_expression(self) -> ExpressionNode:
        """Парсит полное выражение."""
        return self._parse_or_expression()

    def parse_primary(self) -> ExpressionNode:
        """Парсит первичное выражение (аргумент вызова макроса)."""
        return self._parse_primary()

    def parse_reference(self) -> ExpressionNode:
        """Парсит ссылку $..., которая должна занимать весь участок."""
        node = self._parse_reference()
        self.expect_end()
        return node

    def expect_end(self) -> None:
        if not self.is_at_end():
            current = self.peek()
            raise self.source.error(f"Unexpected '{current.value}'", current.position)

    # -------------------- token primitives --------------------

    def peek(self) -> ExprToken:
        return self._tokens[self._position]

    def advance(self) -> ExprToken:
        token = self._tokens[self._position]
        if token.type != 'EOF':
            self._position += 1
        return token

    def is_at_end(self) -> bool:
        return self.peek().type == 'EOF'

    def check(self, token_type: str, value: Optional[str] = None) -> bool:
        token = self.peek()
        return token.type == token_type and (value is None or token.value == value)

    def match(self, token_type: str, value: Optional[str] = None) -> Optional[ExprToken]:
        if self.check(token_type, value):
            return self.advance()
        return None

    def expect(self, token_type: str, value: Optional[str], message: str) -> ExprToken:
        token = self.match(token_type, value)
        if token is None:
            raise self.error(message)
        return token

    def expect_variable(self, message: str) -> Tuple[str, ExprToken]:
        """Ожидает $name (без суффиксов) и возвращает имя и токен '$'."""
        dollar = self.expect('SYMBOL', '$', message)
        name = self.peek()
        if name.type != 'IDENTIFIER' or name.position != dollar.end:
            raise self.error(message)
        self.advance()
        return name.value, dollar

    def error(self, message: str, token: Optional[ExprToken] = None):
        token = token or self.peek()
        return self.source.error(message, token.position)

    def where(self, token: ExprToken) -> dict:
        line, column = self.source.locate(token.position)
        return {"line": line, "column": column}

    # -------------------- binary levels --------------------

    def _parse_or_expression(self) -> ExpressionNode:
        return self._parse_left_assoc({"||": Operator.OR}, self._parse_and_expression)

    def _parse_and_expression(self) -> ExpressionNode:
        return self._parse_left_assoc({"&&": Operator.AND}, self._parse_equality)

    def _parse_equality(self) -> ExpressionNode:
        return self._parse_left_assoc(self._EQUALITY, self._parse_relational)

    def _parse_relational(self) -> ExpressionNode:
        return self._parse_left_assoc(self._RELATIONAL, self._parse_additive)

    def _parse_additive(self) -> ExpressionNode:
        return self._parse_left_assoc(self._ADDITIVE, self._parse_multiplicative)

    def _parse_multiplicative(self) -> ExpressionNode:
        return self._parse_left_assoc(self._MULTIPLICATIVE, self._parse_unary)

    def _parse_left_assoc(
        self,
        operators: dict,
        operand: Callable[[], ExpressionNode],
    ) -> ExpressionNode:
        left = operand()
        while self.check('OPERATOR') and self.peek().value in operators:
            token = self.advance()
            right = operand()
            left = BinaryNode(operators[token.value], left, right, **self.where(token))
        return left

    def _parse_unary(self) -> ExpressionNode:
        token = self.match('OPERATOR', '!')
        if token:
            operand = self._parse_unary()
            return NotNode(operand, **self.where(token))
        return self._parse_primary()

    # -------------------- primaries --------------------

    def _parse_primary(self) -> ExpressionNode:
        token = self.peek()

        if token.type == 'SYMBOL' and token.value == '$':
            return self._parse_reference()

        if token.type == 'SYMBOL' and token.value == '(':
            self.advance()
            expr = self._parse_or_expression()
            self.expect('SYMBOL', ')', "Expected )")
            return expr

        if token.type == 'STRING':
            self.advance()
            return ConstantNode(token.value, **self.where(token))

        if token.type == 'INTEGER':
            self.advance()
            return ConstantNode(self._int_literal(token.value, token), **self.where(token))

        if token.type == 'OPERATOR' and token.value == '-':
            self.advance()
            digits = self.peek()
            if digits.type != 'INTEGER' or digits.position != token.end:
                raise self.error("Invalid integer: -", token)
            self.advance()
            return ConstantNode(self._int_literal("-" + digits.value, token), **self.where(token))

        if token.type == 'IDENTIFIER':
            if token.value in ("true", "false"):
                self.advance()
                return ConstantNode(token.value == "true", **self.where(token))
            raise self.error("Identifier in expression must be preceded by $ or be true or false", token)

        if token.type == 'EOF':
            raise self.error("Expected an expression")
        raise self.error(f"Expected an expression, not '{token.value}'")

    def _int_literal(self, text: str, token: ExprToken) -> int:
        value = int(text)
        bounds = self.config.int_literal_range
        if bounds is not None and not bounds[0] <= value <= bounds[1]:
            raise self.error(f"Invalid integer: {text}", token)
        return value

    # -------------------- references --------------------

    def _parse_reference(self) -> ExpressionNode:
        dollar = self.expect('SYMBOL', '$', "Expected $")
        braced = self._match_adjacent('SYMBOL', '{', dollar.end) is not None
        previous_end = dollar.end + (1 if braced else 0)

        name = self.peek()
        if name.type != 'IDENTIFIER' or name.position != previous_end:
            raise self.error("Reference should start with an ASCII letter", name)
        self.advance()

        where = self.where(dollar)
        node: ExpressionNode = PlainReference(name.value, **where)
        node = self._parse_reference_suffixes(node, name.end, where)

        if braced:
            self.expect('SYMBOL', '}', "Expected }")
        return node

    def _parse_reference_suffixes(self, node: ExpressionNode, previous_end: int, where: dict) -> ExpressionNode:
        while True:
            dot = self._match_adjacent('SYMBOL', '.', previous_end)
            if dot is not None:
                member = self.peek()
                if member.type != 'IDENTIFIER' or member.position != dot.end:
                    raise self.error("Member should start with an ASCII letter", member)
                self.advance()
                paren = self._match_adjacent('SYMBOL', '(', member.end)
                if paren is None:
                    node = MemberReference(node, member.value, **where)
                    previous_end = member.end
                else:
                    args = self._parse_method_args()
                    node = MethodReference(node, member.value, args, **where)
                    previous_end = self._tokens[self._position - 1].end
                continue

            bracket = self._match_adjacent('SYMBOL', '[', previous_end)
            if bracket is not None:
                index = self._parse_or_expression()
                closing = self.expect('SYMBOL', ']', "Expected ]")
                node = IndexReference(node, index, **where)
                previous_end = closing.end
                continue

            return node

    def _parse_method_args(self) -> Tuple[ExpressionNode, ...]:
        args: List[ExpressionNode] = []
        if self.match('SYMBOL', ')'):
            return ()
        while True:
            args.append(self._parse_or_expression())
            if self.match('SYMBOL', ')'):
                return tuple(args)
            self.expect('SYMBOL', ',', "Expected , or )")

    def _match_adjacent(self, token_type: str, value: str, previous_end: int) -> Optional[ExprToken]:
        token = self.peek()
        if token.type == token_type and token.value == value and token.position == previous_end:
            return self.advance()
        return None


def parse_expression_text(
    source: SourceText,
    start: int,
    end: int,
    config: EngineConfig,
) -> ExpressionNode:
    """Парсит участок текста как одно полное выражение."""
    parser = ExpressionParser(source, start, end, config)
    expr = parser.parse_expression()
    parser.expect_end()
    return expr


__all__ = ["ExprToken", "ExpressionLexer", "ExpressionParser", "parse_expression_text"]
