"""
Разобранный шаблон и функции верхнего уровня parse() / render().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

from .config import DEFAULT_CONFIG, EngineConfig
from .context import EvaluationContext
from .evaluator import TemplateEvaluator
from .introspection import DefaultIntrospector, Introspector
from .nodes import Macro, Node
from .parser import TemplateParser
from .source import SourceText

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ParsedTemplate:
    """
    Неизменяемый результат разбора.

    Один ParsedTemplate можно рендерить сколько угодно раз, в том числе
    из разных потоков: каждый вызов render() создаёт собственный контекст.
    """
    name: str
    root: Node
    macros: Mapping[str, Macro]
    config: EngineConfig = DEFAULT_CONFIG
    introspector: Introspector = field(default=None, repr=False)  # type: ignore[assignment]

    def __post_init__(self):
        if not isinstance(self.macros, MappingProxyType):
            object.__setattr__(self, "macros", MappingProxyType(dict(self.macros)))
        if self.introspector is None:
            object.__setattr__(
                self,
                "introspector",
                DefaultIntrospector(snake_case_members=self.config.snake_case_members),
            )

    def render(self, variables: Optional[Mapping[str, Any]] = None) -> str:
        """
        Рендерит шаблон с заданными переменными.

        Переданный словарь копируется и не изменяется директивами #set.

        Raises:
            EvaluationError: При ошибке вычисления
        """
        evaluator = TemplateEvaluator(
            self.macros,
            template_name=self.name,
            introspector=self.introspector,
            config=self.config,
        )
        logger.debug("Rendering %s", self.name)
        return evaluator.render(self.root, EvaluationContext(variables))


def parse(
    text: str,
    *,
    name: str = "template",
    config: Optional[EngineConfig] = None,
    introspector: Optional[Introspector] = None,
) -> ParsedTemplate:
    """
    Разбирает текст шаблона.

    Args:
        text: Исходный текст шаблона
        name: Имя шаблона для сообщений об ошибках
        config: Опции движка (по умолчанию DEFAULT_CONFIG)
        introspector: Разрешение членов и методов хостовых объектов

    Raises:
        ParseError: При синтаксической ошибке
    """
    config = config or DEFAULT_CONFIG
    source = SourceText(text, name=name, config=config)
    root, macros = TemplateParser(source, config).parse()
    return ParsedTemplate(name, root, macros, config, introspector)


def render(
    text: str,
    variables: Optional[Mapping[str, Any]] = None,
    **kwargs: Any,
) -> str:
    """Разбирает и сразу рендерит шаблон; kwargs передаются в parse()."""
    return parse(text, **kwargs).render(variables)


__all__ = ["ParsedTemplate", "parse", "render"]
