"""
Вычислитель шаблонов.

Обходит AST и собирает вывод в список фрагментов. Вычисление выражений,
истинность, равенство и арифметика определены здесь; доступ к членам
и методам хостовых объектов делегируется Introspector'у.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from functools import partial
from numbers import Integral, Real
from typing import Any, List, Optional

from .config import DEFAULT_CONFIG, EngineConfig
from .context import EvaluationContext, LazyValue
from .errors import EvaluationError
from .introspection import DefaultIntrospector, Introspector, ResolutionError, is_number
from .nodes import (
    BinaryNode,
    CompoundNode,
    ConditionalNode,
    ConstantNode,
    ExpressionNode,
    ForEachNode,
    IndexReference,
    Macro,
    MacroCallNode,
    MemberReference,
    MethodReference,
    Node,
    NotNode,
    Operator,
    PlainReference,
    SetNode,
    TextNode,
    reference_text,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForEachState:
    """
    Состояние текущей итерации, доступное в теле цикла как $foreach.

    index считается с нуля, count с единицы.
    """
    index: int
    size: int
    parent: Optional[ForEachState] = None

    @property
    def count(self) -> int:
        return self.index + 1

    @property
    def first(self) -> bool:
        return self.index == 0

    @property
    def last(self) -> bool:
        return self.index == self.size - 1

    @property
    def has_next(self) -> bool:
        return self.index < self.size - 1

    @property
    def hasNext(self) -> bool:  # noqa: N802
        return self.has_next


# -------------------- value semantics --------------------

def is_truthy(value: Any) -> bool:
    """
    Истинность значения в условиях.

    Ложны: None, False, числовой ноль, пустая строка и пустые коллекции.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0
    if isinstance(value, str):
        return value != ""
    try:
        return len(value) > 0
    except TypeError:
        return True


def render_value(value: Any) -> str:
    """Текстовое представление значения в выводе (None обрабатывает вызывающий)."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def template_equals(left: Any, right: Any) -> bool:
    """
    Равенство для == и !=.

    Числа сравниваются по значению, булевы значения с числами не равны никогда.
    Число равно строке, если его текстовое представление совпадает со строкой.
    """
    if left is right:
        return True
    if left is None or right is None:
        return False
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if is_number(left) and isinstance(right, str):
        return render_value(left) == right
    if is_number(right) and isinstance(left, str):
        return render_value(right) == left
    return left == right


def _int_divide(left: int, right: int) -> int:
    quotient = abs(left) // abs(right)
    return quotient if (left >= 0) == (right >= 0) else -quotient


def _remainder(left, right):
    if isinstance(left, float) or isinstance(right, float):
        return math.fmod(left, right)
    return left - right * math.trunc(left / right)


def arithmetic(op: Operator, left: Any, right: Any) -> Any:
    """
    Арифметика над числами.

    Целочисленное деление округляет к нулю, знак остатка совпадает со знаком делимого.

    Raises:
        ArithmeticError: Деление на ноль
        TypeError: Несовместимые типы чисел
    """
    if op is Operator.PLUS:
        return left + right
    if op is Operator.MINUS:
        return left - right
    if op is Operator.TIMES:
        return left * right

    if right == 0:
        raise ZeroDivisionError("Division by zero" if op is Operator.DIVIDE else "Modulo by zero")
    both_integral = isinstance(left, Integral) and isinstance(right, Integral)
    if op is Operator.DIVIDE:
        return _int_divide(left, right) if both_integral else left / right
    if both_integral:
        return left - right * _int_divide(left, right)
    return _remainder(left, right)


def compare(op: Operator, left: Any, right: Any) -> bool:
    if op is Operator.LESS:
        return left < right
    if op is Operator.LESS_OR_EQUAL:
        return left <= right
    if op is Operator.GREATER:
        return left > right
    return left >= right


def _is_ordered_number(value: Any) -> bool:
    return isinstance(value, (Real, Decimal)) and not isinstance(value, bool)


# -------------------- evaluator --------------------

class TemplateEvaluator:
    """
    Вычислитель AST шаблона.

    Один экземпляр обслуживает один вызов render(): таблица макросов
    и Introspector фиксированы, переменные живут в EvaluationContext.
    """

    def __init__(
        self,
        macros: Mapping[str, Macro],
        *,
        template_name: str = "template",
        introspector: Optional[Introspector] = None,
        config: EngineConfig = DEFAULT_CONFIG,
    ):
        self.macros = macros
        self.template_name = template_name
        self.introspector = introspector or DefaultIntrospector(
            snake_case_members=config.snake_case_members
        )

    def render(self, node: Node, context: EvaluationContext) -> str:
        """
        Рендерит узел в строку.

        Raises:
            EvaluationError: При любой ошибке вычисления; частичный вывод не возвращается
        """
        parts: List[str] = []
        self._render_into(node, context, parts)
        return "".join(parts)

    def _render_into(self, node: Node, context: EvaluationContext, out: List[str]) -> None:
        if isinstance(node, TextNode):
            out.append(node.text)
        elif isinstance(node, CompoundNode):
            for child in node.children:
                self._render_into(child, context, out)
        elif isinstance(node, ConditionalNode):
            self._render_conditional(node, context, out)
        elif isinstance(node, ForEachNode):
            self._render_foreach(node, context, out)
        elif isinstance(node, SetNode):
            context.set(node.variable, self.evaluate(node.value, context))
        elif isinstance(node, MacroCallNode):
            self._render_macro_call(node, context, out)
        elif isinstance(node, ExpressionNode):
            value = self.evaluate(node, context)
            if value is None:
                raise self._error(f"Null value for {reference_text(node)}", node)
            out.append(render_value(value))
        else:
            raise TypeError(f"Unknown node type: {type(node).__name__}")

    # -------------------- directives --------------------

    def _render_conditional(self, node: ConditionalNode, context: EvaluationContext, out: List[str]) -> None:
        for branch in node.branches:
            if self._test(branch.test, context):
                self._render_into(branch.body, context, out)
                return
        if node.else_body is not None:
            self._render_into(node.else_body, context, out)

    def _render_foreach(self, node: ForEachNode, context: EvaluationContext, out: List[str]) -> None:
        if context.is_loop_variable(node.variable):
            raise self._error(
                f"Loop variable ${node.variable} is already in use by an enclosing #foreach", node
            )

        collection = self.evaluate(node.collection, context)
        items = self._iteration_items(collection, node)

        parent_state = None
        if context.is_defined("foreach"):
            enclosing = context.get("foreach")
            if isinstance(enclosing, ForEachState):
                parent_state = enclosing

        for index, item in enumerate(items):
            state = ForEachState(index, len(items), parent_state)
            scope = context.child({node.variable: item, "foreach": state}, loop_variable=node.variable)
            self._render_into(node.body, scope, out)

    def _iteration_items(self, collection: Any, node: ForEachNode) -> List[Any]:
        where = reference_text(node.collection)
        if collection is None:
            raise self._error(f"Cannot iterate over null value {where}", node)
        if isinstance(collection, (str, bytes)):
            raise self._error(f"Cannot iterate over string value {where}", node)
        if isinstance(collection, Mapping):
            return list(collection.values())
        if isinstance(collection, Iterable):
            try:
                return list(collection)
            except Exception as e:
                raise self._error(f"Exception while iterating over {where}: {e!r}", node) from e
        raise self._error(
            f"Value of {where} is not iterable: {type(collection).__name__}", node
        )

    def _render_macro_call(self, node: MacroCallNode, context: EvaluationContext, out: List[str]) -> None:
        macro = self.macros[node.name]
        bindings = {
            parameter: LazyValue(partial(self.evaluate, arg, context))
            for parameter, arg in zip(macro.parameters, node.args)
        }
        try:
            self._render_into(macro.body, context.child(bindings), out)
        except EvaluationError as e:
            raise EvaluationError(
                f"In macro #{macro.name} defined on line {macro.line}: {e.message}",
                template_name=e.template_name,
                line=e.line,
                column=e.column,
            ) from e

    # -------------------- expressions --------------------

    def evaluate(self, node: ExpressionNode, context: EvaluationContext) -> Any:
        """Вычисляет выражение в значение."""
        if isinstance(node, ConstantNode):
            return node.value

        if isinstance(node, PlainReference):
            if not context.is_defined(node.name):
                raise self._error(f"Undefined reference ${node.name}", node)
            return context.get(node.name)

        if isinstance(node, MemberReference):
            base = self.evaluate(node.base, context)
            if base is None:
                raise self._error(
                    f"Cannot get member {node.name} of null value {reference_text(node.base)}", node
                )
            return self._host_call(node, self.introspector.get_member, base, node.name)

        if isinstance(node, IndexReference):
            base = self.evaluate(node.base, context)
            if base is None:
                raise self._error(f"Cannot index null value {reference_text(node.base)}", node)
            index = self.evaluate(node.index, context)
            return self._host_call(node, self.introspector.get_index, base, index)

        if isinstance(node, MethodReference):
            base = self.evaluate(node.base, context)
            if base is None:
                raise self._error(
                    f"Cannot invoke method {node.name} on null value {reference_text(node.base)}", node
                )
            args = [self.evaluate(arg, context) for arg in node.args]
            return self._host_call(node, self.introspector.call_method, base, node.name, args)

        if isinstance(node, NotNode):
            return not is_truthy(self.evaluate(node.operand, context))

        if isinstance(node, BinaryNode):
            return self._evaluate_binary(node, context)

        raise TypeError(f"Unknown expression type: {type(node).__name__}")

    def _test(self, node: ExpressionNode, context: EvaluationContext) -> bool:
        """
        Истинность условия #if/#elseif.

        Неопределённая ссылка ложна, только если она и есть всё условие.
        """
        if isinstance(node, PlainReference):
            return context.is_defined(node.name) and is_truthy(context.get(node.name))
        return is_truthy(self.evaluate(node, context))

    def _evaluate_binary(self, node: BinaryNode, context: EvaluationContext) -> Any:
        op = node.op
        if op is Operator.AND:
            return is_truthy(self.evaluate(node.left, context)) and is_truthy(self.evaluate(node.right, context))
        if op is Operator.OR:
            return is_truthy(self.evaluate(node.left, context)) or is_truthy(self.evaluate(node.right, context))

        left = self.evaluate(node.left, context)
        right = self.evaluate(node.right, context)

        if op is Operator.EQUAL:
            return template_equals(left, right)
        if op is Operator.NOT_EQUAL:
            return not template_equals(left, right)

        if op.is_relational:
            for operand, value in ((node.left, left), (node.right, right)):
                if not _is_ordered_number(value):
                    raise self._error(
                        f"Operator {op.symbol} requires numbers, but {reference_text(operand)} "
                        f"is {_describe(value)}",
                        node,
                    )
            return compare(op, left, right)

        for operand, value in ((node.left, left), (node.right, right)):
            if not is_number(value):
                raise self._error(
                    f"Arithmetic is only available on numbers, but {reference_text(operand)} "
                    f"is {_describe(value)}",
                    node,
                )
        try:
            return arithmetic(op, left, right)
        except ZeroDivisionError as e:
            raise self._error(str(e), node) from e
        except (TypeError, ArithmeticError) as e:
            raise self._error(f"Cannot compute {reference_text(node)}: {e}", node) from e

    # -------------------- helpers --------------------

    def _host_call(self, node: ExpressionNode, function, *args) -> Any:
        try:
            return function(*args)
        except ResolutionError as e:
            raise self._error(f"{e.message} (in {reference_text(node)})", node) from e
        except EvaluationError:
            raise
        except Exception as e:
            logger.debug("Host code raised %r while evaluating %s", e, reference_text(node))
            raise self._error(f"Exception evaluating {reference_text(node)}: {e!r}", node) from e

    def _error(self, message: str, node: Node) -> EvaluationError:
        return EvaluationError(
            message,
            template_name=self.template_name,
            line=node.line,
            column=node.column,
        )


def _describe(value: Any) -> str:
    if value is None:
        return "null"
    return f"{value!r}, a {type(value).__name__}"


__all__ = [
    "TemplateEvaluator",
    "ForEachState",
    "is_truthy",
    "render_value",
    "template_equals",
    "arithmetic",
]
