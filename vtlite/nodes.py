"""
AST-узлы шаблона.

Дерево неизменяемо: узлы являются frozen dataclass'ы, дочерние элементы хранятся
в кортежах. Каждый узел знает строку и колонку своего начала; позиция не
участвует в сравнении, поэтому деревья удобно сравнивать в тестах.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple


class Operator(enum.Enum):
    """Бинарные операторы выражений."""

    OR = "||"
    AND = "&&"
    EQUAL = "=="
    NOT_EQUAL = "!="
    LESS = "<"
    LESS_OR_EQUAL = "<="
    GREATER = ">"
    GREATER_OR_EQUAL = ">="
    PLUS = "+"
    MINUS = "-"
    TIMES = "*"
    DIVIDE = "/"
    REMAINDER = "%"

    @property
    def symbol(self) -> str:
        return self.value

    @property
    def is_relational(self) -> bool:
        return self in _RELATIONAL


_RELATIONAL = frozenset({Operator.LESS, Operator.LESS_OR_EQUAL, Operator.GREATER, Operator.GREATER_OR_EQUAL})


@dataclass(frozen=True)
class Node:
    """Базовый класс всех узлов."""
    line: int = field(default=0, kw_only=True, compare=False)
    column: int = field(default=0, kw_only=True, compare=False)


# -------------------- Text --------------------

@dataclass(frozen=True)
class TextNode(Node):
    """Литеральный текст, выводится как есть."""
    text: str


@dataclass(frozen=True)
class CompoundNode(Node):
    """Последовательность узлов, выводимых подряд."""
    children: Tuple[Node, ...] = ()


# -------------------- Expressions --------------------

@dataclass(frozen=True)
class ExpressionNode(Node):
    """Узел, вычисляемый в значение."""
    pass


@dataclass(frozen=True)
class ConstantNode(ExpressionNode):
    """Строковый, целочисленный или булев литерал."""
    value: Any


@dataclass(frozen=True)
class ReferenceNode(ExpressionNode):
    """Базовый класс ссылок $..."""
    pass


@dataclass(frozen=True)
class PlainReference(ReferenceNode):
    """$name"""
    name: str


@dataclass(frozen=True)
class MemberReference(ReferenceNode):
    """$base.name"""
    base: ExpressionNode
    name: str


@dataclass(frozen=True)
class IndexReference(ReferenceNode):
    """$base[index]"""
    base: ExpressionNode
    index: ExpressionNode


@dataclass(frozen=True)
class MethodReference(ReferenceNode):
    """$base.name(args...)"""
    base: ExpressionNode
    name: str
    args: Tuple[ExpressionNode, ...] = ()


@dataclass(frozen=True)
class NotNode(ExpressionNode):
    """!operand"""
    operand: ExpressionNode


@dataclass(frozen=True)
class BinaryNode(ExpressionNode):
    """left op right"""
    op: Operator
    left: ExpressionNode
    right: ExpressionNode


# -------------------- Directives --------------------

@dataclass(frozen=True)
class Branch:
    """Ветка #if или #elseif: условие и тело."""
    test: ExpressionNode
    body: Node


@dataclass(frozen=True)
class ConditionalNode(Node):
    """
    #if (...) ... #elseif (...) ... #else ... #end

    Ветки проверяются по порядку; выполняется первая с истинным условием,
    иначе else_body (если есть).
    """
    branches: Tuple[Branch, ...]
    else_body: Optional[Node] = None


@dataclass(frozen=True)
class ForEachNode(Node):
    """#foreach ($variable in collection) body #end"""
    variable: str
    collection: ExpressionNode
    body: Node


@dataclass(frozen=True)
class SetNode(Node):
    """#set ($variable = value)"""
    variable: str
    value: ExpressionNode


@dataclass(frozen=True)
class MacroCallNode(Node):
    """#name(args...): вызов макроса, определённого в том же шаблоне."""
    name: str
    args: Tuple[ExpressionNode, ...] = ()


@dataclass(frozen=True)
class Macro:
    """
    Определение макроса.

    Хранится в таблице макросов шаблона, а не в дереве: на месте
    #macro ничего не выводится.
    """
    name: str
    parameters: Tuple[str, ...]
    body: Node
    line: int = 0


def reference_text(node: ExpressionNode) -> str:
    """
    Восстанавливает исходный вид выражения для сообщений об ошибках.

    Не претендует на точность: пробелы и скобки группировки не сохраняются.
    """
    if isinstance(node, PlainReference):
        return f"${node.name}"
    if isinstance(node, MemberReference):
        return f"{reference_text(node.base)}.{node.name}"
    if isinstance(node, IndexReference):
        return f"{reference_text(node.base)}[{reference_text(node.index)}]"
    if isinstance(node, MethodReference):
        args = ", ".join(reference_text(arg) for arg in node.args)
        return f"{reference_text(node.base)}.{node.name}({args})"
    if isinstance(node, ConstantNode):
        if isinstance(node.value, str):
            return f'"{node.value}"'
        if isinstance(node.value, bool):
            return "true" if node.value else "false"
        return str(node.value)
    if isinstance(node, NotNode):
        return f"!{reference_text(node.operand)}"
    if isinstance(node, BinaryNode):
        return f"{reference_text(node.left)} {node.op.symbol} {reference_text(node.right)}"
    return type(node).__name__


def format_ast_tree(node: Node, indent: int = 0) -> str:
    """Форматирует AST как дерево для отладки."""
    prefix = "  " * indent

    if isinstance(node, TextNode):
        text_preview = repr(node.text[:50] + "..." if len(node.text) > 50 else node.text)
        return f"{prefix}TextNode({text_preview})"
    if isinstance(node, CompoundNode):
        lines = [f"{prefix}CompoundNode"]
        lines.extend(format_ast_tree(child, indent + 1) for child in node.children)
        return "\n".join(lines)
    if isinstance(node, ConditionalNode):
        lines = []
        for i, branch in enumerate(node.branches):
            keyword = "if" if i == 0 else "elseif"
            lines.append(f"{prefix}{keyword} ({reference_text(branch.test)}):")
            lines.append(format_ast_tree(branch.body, indent + 1))
        if node.else_body is not None:
            lines.append(f"{prefix}else:")
            lines.append(format_ast_tree(node.else_body, indent + 1))
        return "\n".join(lines)
    if isinstance(node, ForEachNode):
        header = f"{prefix}foreach (${node.variable} in {reference_text(node.collection)}):"
        return header + "\n" + format_ast_tree(node.body, indent + 1)
    if isinstance(node, SetNode):
        return f"{prefix}set (${node.variable} = {reference_text(node.value)})"
    if isinstance(node, MacroCallNode):
        args = " ".join(reference_text(arg) for arg in node.args)
        return f"{prefix}#{node.name}({args})"
    if isinstance(node, ExpressionNode):
        return f"{prefix}{reference_text(node)}"
    return f"{prefix}{type(node).__name__}"


__all__ = [
    "Operator",
    "Node",
    "TextNode",
    "CompoundNode",
    "ExpressionNode",
    "ConstantNode",
    "ReferenceNode",
    "PlainReference",
    "MemberReference",
    "IndexReference",
    "MethodReference",
    "NotNode",
    "BinaryNode",
    "Branch",
    "ConditionalNode",
    "ForEachNode",
    "SetNode",
    "MacroCallNode",
    "Macro",
    "reference_text",
    "format_ast_tree",
]
