"""
Парсер директив.

Строит дерево шаблона из токенов сканера: вложенные блоки #if/#foreach/#macro
разбираются рекурсивно до одной из стоп-директив (#elseif, #else, #end).
Аргументы директив и ссылки передаются парсеру выражений.

Также здесь выполняется нормализация пробелов перед #set и связывание
вызовов макросов с их определениями.
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, List, Optional, Tuple

from .config import DEFAULT_CONFIG, EngineConfig
from .expressions import ExpressionParser
from .nodes import (
    Branch,
    CompoundNode,
    ConditionalNode,
    ExpressionNode,
    ForEachNode,
    Macro,
    MacroCallNode,
    Node,
    SetNode,
    TextNode,
)
from .scanner import TemplateScanner, Token, TokenType
from .source import SourceText

logger = logging.getLogger(__name__)

_IF_STOPS = frozenset({"elseif", "else", "end"})
_END_STOPS = frozenset({"end"})
_NO_STOPS: FrozenSet[str] = frozenset()


def remove_space_before_set(tokens: List[Token]) -> List[Token]:
    """
    Убирает пробельный текст между ссылкой, комментарием, #set или #macro
    и следующим за ним #set.

    Так "$x  #set ($y = 1)" выводит только значение $x, без хвостовых пробелов.
    """
    result: List[Token] = []
    for i, token in enumerate(tokens):
        if (
            token.type is TokenType.TEXT
            and token.value.isspace()
            and 0 < i < len(tokens) - 1
            and _is_set(tokens[i + 1])
            and _precedes_set_gobbling(tokens[i - 1])
        ):
            continue
        result.append(token)
    return result


def _is_set(token: Token) -> bool:
    return token.type is TokenType.DIRECTIVE and token.value == "set"


def _precedes_set_gobbling(token: Token) -> bool:
    if token.type in (TokenType.COMMENT, TokenType.REFERENCE):
        return True
    return token.type is TokenType.DIRECTIVE and token.value in ("set", "macro")


class TemplateParser:
    """
    Парсер шаблона.

    parse() возвращает корневой узел и таблицу макросов. Определения макросов
    в дерево не попадают; при повторном определении действует первое.
    """

    def __init__(self, source: SourceText | str, config: EngineConfig = DEFAULT_CONFIG):
        if isinstance(source, str):
            source = SourceText(source, config=config)
        self.source = source
        self.config = config
        self._tokens: List[Token] = []
        self._position = 0
        self._macros: Dict[str, Macro] = {}
        self._calls: List[Tuple[MacroCallNode, Token]] = []

    def parse(self) -> Tuple[Node, Dict[str, Macro]]:
        """
        Разбирает весь шаблон.

        Raises:
            ParseError: При синтаксической ошибке, неизвестном макросе
                или неверном числе аргументов макроса
        """
        tokens = TemplateScanner(self.source, self.config).tokenize()
        self._tokens = remove_space_before_set(tokens)
        self._position = 0
        self._macros = {}
        self._calls = []

        root = self._parse_until(_NO_STOPS, None)
        self._link_macro_calls()

        logger.debug(
            "Parsed %s: %d top-level nodes, %d macros",
            self.source.name, len(root.children), len(self._macros),
        )
        return root, dict(self._macros)

    # -------------------- block structure --------------------

    def _parse_until(self, stops: FrozenSet[str], opener: Optional[Token]) -> CompoundNode:
        """
        Парсит узлы до стоп-директивы из stops (не потребляя её) или до EOF.

        EOF допустим только на верхнем уровне (opener is None).
        """
        children: List[Node] = []
        start = self._current()

        while True:
            token = self._current()
            if token.type is TokenType.EOF:
                if opener is not None:
                    raise self.source.error(
                        f"Reached end of file while parsing #{opener.value}", opener.position
                    )
                break
            if token.type is TokenType.DIRECTIVE and token.value in stops:
                break

            node = self._parse_token(token)
            if node is None:
                continue
            if isinstance(node, TextNode) and children and isinstance(children[-1], TextNode):
                previous = children.pop()
                node = TextNode(previous.text + node.text, line=previous.line, column=previous.column)
            children.append(node)

        return CompoundNode(tuple(children), line=start.line, column=start.column)

    def _parse_token(self, token: Token) -> Optional[Node]:
        self._advance()

        if token.type in (TokenType.TEXT, TokenType.LITERAL_BLOCK):
            return TextNode(token.value, line=token.line, column=token.column)

        if token.type is TokenType.COMMENT:
            return None

        if token.type is TokenType.REFERENCE:
            parser = ExpressionParser(
                self.source, token.position, token.position + len(token.value), self.config
            )
            return parser.parse_reference()

        name = token.value
        if name == "if":
            return self._parse_if(token)
        if name == "foreach":
            return self._parse_foreach(token)
        if name == "set":
            return self._parse_set(token)
        if name == "macro":
            self._parse_macro_definition(token)
            return None
        if name == "end":
            raise self.source.error("#end without matching #if, #foreach or #macro", token.position)
        if name in ("elseif", "else"):
            raise self.source.error(f"#{name} without matching #if", token.position)
        return self._parse_macro_call(token)

    def _expect_end(self, opener: Token) -> None:
        token = self._current()
        if not (token.type is TokenType.DIRECTIVE and token.value == "end"):
            raise self.source.error(f"Expected #end for #{opener.value}", token.position)
        self._advance()

    # -------------------- directives --------------------

    def _parse_if(self, token: Token) -> ConditionalNode:
        branches = [Branch(self._parse_condition(token), self._parse_until(_IF_STOPS, token))]
        else_body: Optional[Node] = None

        while True:
            stop = self._advance()
            if stop.value == "end":
                break
            if stop.value == "elseif":
                branches.append(Branch(self._parse_condition(stop), self._parse_until(_IF_STOPS, token)))
                continue
            # else: после него допустим только #end
            else_body = self._parse_until(_END_STOPS, token)
            self._expect_end(token)
            break

        return ConditionalNode(tuple(branches), else_body, line=token.line, column=token.column)

    def _parse_condition(self, token: Token) -> ExpressionNode:
        parser = self._args_parser(token)
        expr = parser.parse_expression()
        parser.expect_end()
        return expr

    def _parse_foreach(self, token: Token) -> ForEachNode:
        parser = self._args_parser(token)
        variable, _ = parser.expect_variable("Expected $variable for #foreach")
        if parser.match('IDENTIFIER', 'in') is None:
            raise parser.error("Expected 'in' for #foreach")
        collection = parser.parse_expression()
        parser.expect_end()

        body = self._parse_until(_END_STOPS, token)
        self._expect_end(token)
        return ForEachNode(variable, collection, body, line=token.line, column=token.column)

    def _parse_set(self, token: Token) -> SetNode:
        parser = self._args_parser(token)
        variable, _ = parser.expect_variable("Expected $variable for #set")
        parser.expect('OPERATOR', '=', "Expected = for #set")
        value = parser.parse_expression()
        parser.expect_end()
        return SetNode(variable, value, line=token.line, column=token.column)

    def _parse_macro_definition(self, token: Token) -> None:
        parser = self._args_parser(token)
        name = parser.expect('IDENTIFIER', None, "Expected macro name for #macro")
        parameters: List[str] = []
        while not parser.is_at_end():
            parameter, dollar = parser.expect_variable("Expected $parameter for #macro")
            if parameter in parameters:
                raise parser.error(f"Duplicate parameter ${parameter} for #macro {name.value}", dollar)
            parameters.append(parameter)
            parser.match('SYMBOL', ',')

        body = self._parse_until(_END_STOPS, token)
        self._expect_end(token)

        if name.value in self._macros:
            logger.debug("Ignoring redefinition of macro #%s on line %d", name.value, token.line)
            return
        self._macros[name.value] = Macro(name.value, tuple(parameters), body, token.line)

    def _parse_macro_call(self, token: Token) -> MacroCallNode:
        parser = self._args_parser(token)
        args: List[ExpressionNode] = []
        while not parser.is_at_end():
            args.append(parser.parse_primary())
            parser.match('SYMBOL', ',')

        node = MacroCallNode(token.value, tuple(args), line=token.line, column=token.column)
        self._calls.append((node, token))
        return node

    def _link_macro_calls(self) -> None:
        for call, token in self._calls:
            macro = self._macros.get(call.name)
            if macro is None:
                raise self.source.error(f"#{call.name} is neither a standard directive nor a macro that has been defined", token.position)
            if len(call.args) != len(macro.parameters):
                raise self.source.error(
                    f"Wrong number of arguments to #{call.name}: expected {len(macro.parameters)}, "
                    f"got {len(call.args)}",
                    token.position,
                )

    # -------------------- helpers --------------------

    def _args_parser(self, token: Token) -> ExpressionParser:
        args = token.args or ""
        return ExpressionParser(
            self.source, token.args_position, token.args_position + len(args), self.config
        )

    def _current(self) -> Token:
        return self._tokens[self._position]

    def _advance(self) -> Token:
        token = self._tokens[self._position]
        if token.type is not TokenType.EOF:
            self._position += 1
        return token


__all__ = ["TemplateParser", "remove_space_before_set"]
