"""
vtlite: движок шаблонов для подмножества языка Velocity.

Поддерживаются ссылки ($x, $x.y, $x.m(...), $x[i]), директивы #if/#elseif/#else,
#foreach, #set, #macro и вызовы макросов, комментарии ## и #* *#, блоки #[[ ]]#.
"""

from .config import DEFAULT_CONFIG, EngineConfig, load_config
from .errors import ConfigError, EvaluationError, ParseError, TemplateError
from .evaluator import ForEachState
from .introspection import DefaultIntrospector, Introspector, template_method
from .template import ParsedTemplate, parse, render

__all__ = [
    # Основной API
    "parse",
    "render",
    "ParsedTemplate",

    # Конфигурация
    "EngineConfig",
    "DEFAULT_CONFIG",
    "load_config",

    # Исключения
    "TemplateError",
    "ParseError",
    "EvaluationError",
    "ConfigError",

    # Хостовые объекты
    "template_method",
    "Introspector",
    "DefaultIntrospector",
    "ForEachState",
]
