"""
Контекст вычисления шаблона.

Цепочка областей видимости: корневая область создаётся из переменных,
переданных вызывающим кодом, дочерние — на каждую итерацию #foreach
и на каждый вызов макроса.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterator, Mapping, Optional


class LazyValue:
    """
    Отложенное значение.

    Используется для параметров макросов: выражение-аргумент вычисляется
    в контексте вызывающего заново при каждом обращении к параметру.
    """

    __slots__ = ("_compute",)

    def __init__(self, compute: Callable[[], Any]):
        self._compute = compute

    def resolve(self) -> Any:
        return self._compute()

    def __repr__(self) -> str:
        return "LazyValue(...)"


class EvaluationContext:
    """
    Область видимости переменных.

    Поиск имени идёт от текущей области к корню. Присваивание (#set) пишет
    в ближайшую область, где имя уже определено, а если такой нет, то в корень.
    Поэтому переменная цикла восстанавливается после #foreach, а переменная,
    впервые заданная внутри цикла, остаётся видна после него.
    """

    def __init__(
        self,
        variables: Optional[Mapping[str, Any]] = None,
        parent: Optional[EvaluationContext] = None,
        *,
        loop_variable: Optional[str] = None,
    ):
        self._vars: Dict[str, Any] = dict(variables or {})
        self._parent = parent
        self._loop_variable = loop_variable

    @property
    def parent(self) -> Optional[EvaluationContext]:
        return self._parent

    @property
    def root(self) -> EvaluationContext:
        scope = self
        while scope._parent is not None:
            scope = scope._parent
        return scope

    def child(
        self,
        bindings: Optional[Mapping[str, Any]] = None,
        *,
        loop_variable: Optional[str] = None,
    ) -> EvaluationContext:
        """Создаёт дочернюю область с локальными привязками."""
        return EvaluationContext(bindings, self, loop_variable=loop_variable)

    def is_defined(self, name: str) -> bool:
        return self._find_scope(name) is not None

    def get(self, name: str) -> Any:
        """
        Возвращает значение переменной.

        Отложенные значения вычисляются при каждом обращении.

        Raises:
            KeyError: Переменная не определена ни в одной области
        """
        scope = self._find_scope(name)
        if scope is None:
            raise KeyError(name)
        value = scope._vars[name]
        if isinstance(value, LazyValue):
            return value.resolve()
        return value

    def set(self, name: str, value: Any) -> None:
        """Присваивание в стиле #set."""
        scope = self._find_scope(name) or self.root
        scope._vars[name] = value

    def define(self, name: str, value: Any) -> None:
        """Привязывает имя в текущей области."""
        self._vars[name] = value

    def is_loop_variable(self, name: str) -> bool:
        """Привязано ли имя активным #foreach в этой или внешних областях."""
        return any(scope._loop_variable == name for scope in self._scopes())

    def _find_scope(self, name: str) -> Optional[EvaluationContext]:
        for scope in self._scopes():
            if name in scope._vars:
                return scope
        return None

    def _scopes(self) -> Iterator[EvaluationContext]:
        scope: Optional[EvaluationContext] = self
        while scope is not None:
            yield scope
            scope = scope._parent


__all__ = ["EvaluationContext", "LazyValue"]
