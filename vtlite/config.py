"""
Конфигурация движка шаблонов.

EngineConfig: неизменяемый набор опций, фиксируемый при создании шаблона.
Конфигурацию можно загрузить из YAML-файла: сырые данные проходят типизированную
коэрцию по аннотациям dataclass'а с указанием пути поля в сообщении об ошибке.
"""

from __future__ import annotations

import dataclasses
import logging
import typing as t
from dataclasses import dataclass, fields, is_dataclass
from pathlib import Path
from types import UnionType
from typing import Any, Optional, get_args, get_origin

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import ConfigError

_LOG = logging.getLogger(__name__)

_yaml = YAML(typ="safe")


@dataclass(frozen=True)
class EngineConfig:
    """
    Опции движка.

    Attributes:
        directive_newline_elision: Съедать перевод строки (и пробелы перед ним)
            сразу после директивы
        excerpt_length: Сколько символов исходника показывать в сообщении об ошибке разбора
        int_literal_bits: Разрядность целочисленных литералов (None: без ограничения)
        snake_case_members: Пробовать snake_case-псевдонимы при разрешении $x.fooBar
    """
    directive_newline_elision: bool = True
    excerpt_length: int = 20
    int_literal_bits: Optional[int] = 32
    snake_case_members: bool = True

    def __post_init__(self):
        if self.excerpt_length < 0:
            raise ConfigError(
                f"excerpt_length must be >= 0, got {self.excerpt_length}", template_name="config"
            )
        if self.int_literal_bits is not None and self.int_literal_bits < 2:
            raise ConfigError(
                f"int_literal_bits must be >= 2, got {self.int_literal_bits}", template_name="config"
            )

    @property
    def int_literal_range(self) -> Optional[tuple[int, int]]:
        """Допустимый диапазон целочисленных литералов или None."""
        if self.int_literal_bits is None:
            return None
        bound = 1 << (self.int_literal_bits - 1)
        return -bound, bound - 1

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> EngineConfig:
        """Строит конфигурацию из сырого словаря (например, из YAML)."""
        if data is None:
            return cls()
        return load_typed(cls, data, path="$")


DEFAULT_CONFIG = EngineConfig()


# -------------------- Typed coercion --------------------

def _type_name(tp: Any) -> str:
    try:
        return tp.__name__  # type: ignore[attr-defined]
    except Exception:
        return str(tp)


def _err(path: str, msg: str) -> ConfigError:
    _LOG.debug("RAISE at %s: %s", path, msg)
    return ConfigError(f"{path}: {msg}", template_name="config")


def _coerce_union(val: Any, tp: Any, path: str) -> Any:
    variants = get_args(tp)
    errs: list[str] = []
    for sub in variants:
        # NoneType матчится только при val is None
        if sub is type(None):
            if val is None:
                return None
            continue
        try:
            return load_typed(sub, val, path=path)
        except ConfigError as e:
            errs.append(e.message)
    raise _err(path, " | ".join(errs) or f"no variant of {_type_name(tp)} matched")


def _coerce_dataclass(val: Any, tp: Any, path: str) -> Any:
    _LOG.debug("Dataclass at %s: %s, val-type=%s", path, _type_name(tp), type(val).__name__)
    if not isinstance(val, dict):
        raise _err(path, f"expected mapping for {_type_name(tp)}, got {type(val).__name__}")
    hints = t.get_type_hints(tp)
    fld_map = {f.name: f for f in fields(tp)}
    extras = set(val.keys()) - set(fld_map.keys())
    if extras:
        raise _err(path, f"unknown key(s): {sorted(extras)}")
    kwargs: dict[str, Any] = {}
    for name, f in fld_map.items():
        sub_path = f"{path}.{name}"
        if name in val:
            kwargs[name] = load_typed(hints.get(name, f.type), val[name], path=sub_path)
        elif f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            raise _err(sub_path, "required field missing")
    try:
        return tp(**kwargs)
    except ConfigError as e:
        raise _err(path, e.message) from e


def load_typed(tp: Any, val: Any, *, path: str = "$") -> Any:
    """
    Рекурсивная коэрция сырых данных в типизированный объект по аннотации tp.

    Поддерживаются dataclass'ы, Optional/Union, Literal и примитивы.
    """
    origin = get_origin(tp)

    if tp is Any or tp is object:
        return val

    if isinstance(tp, type) and is_dataclass(tp):
        return _coerce_dataclass(val, tp, path)

    if origin is t.Literal:
        allowed = get_args(tp)
        if val in allowed:
            return val
        raise _err(path, f"expected one of {list(allowed)}, got {val!r}")

    if origin in (t.Union, UnionType):
        return _coerce_union(val, tp, path)

    if tp is type(None):
        if val is None:
            return None
        raise _err(path, f"expected None, got {type(val).__name__}")

    if tp in (str, int, float, bool):
        # bool является подклассом int, но в конфиге это разные вещи
        if isinstance(val, bool) and tp is not bool:
            raise _err(path, f"expected {_type_name(tp)}, got bool")
        if tp is float and isinstance(val, int):
            return float(val)
        if not isinstance(val, tp):
            raise _err(path, f"expected {_type_name(tp)}, got {type(val).__name__}")
        return val

    raise _err(path, f"unsupported type {_type_name(tp)}")


# -------------------- Loading --------------------

def load_config(path: Path | str) -> EngineConfig:
    """
    Загружает EngineConfig из YAML-файла.

    Пустой файл даёт конфигурацию по умолчанию.

    Raises:
        ConfigError: Файл не читается, это не YAML-мапа или значения неверных типов
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file: {e}", template_name=str(path)) from e

    try:
        data = _yaml.load(text)
    except YAMLError as e:
        raise ConfigError(f"Invalid YAML: {e}", template_name=str(path)) from e

    if data is not None and not isinstance(data, dict):
        raise ConfigError(
            f"Config root must be a mapping, got {type(data).__name__}",
            template_name=str(path),
        )

    config = EngineConfig.from_dict(data)
    _LOG.debug("Loaded engine config from %s: %r", path, config)
    return config


__all__ = ["EngineConfig", "DEFAULT_CONFIG", "load_config", "load_typed"]
