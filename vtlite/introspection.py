"""
Member and method resolution on host objects.

The evaluator never touches host values directly: everything it needs
(`$x.name`, `$x.name(args)`, `$x[index]`) goes through an Introspector.
The default implementation follows these rules:

* `$x.name` on a mapping is a key lookup; otherwise the first of
  `name`, `getName`, `isName` (the last one only if it yields a bool)
  that exists on the object. A callable member is invoked with no arguments.
  With snake_case aliasing, `is_name`, `get_name` and `name` spelled in
  snake_case are tried as well.
* `$x.name(args)` selects among overloads. Overloads are the plain
  attribute `name` plus every method tagged with `@template_method("name")`.
  Candidates are filtered by arity and by argument type annotations,
  allowing numeric widening (int -> Fraction/Decimal/float/complex,
  Fraction -> float/complex, float -> complex). Exactly one must remain.
* Names starting with an underscore are never resolved.
"""

from __future__ import annotations

import inspect
import re
import types
import typing
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from fractions import Fraction
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

_TEMPLATE_NAME_ATTR = "__vtlite_template_name__"

# Numeric widening: value kind -> annotations it may be passed to
_WIDENING: Tuple[Tuple[type, Tuple[type, ...]], ...] = (
    (int, (Fraction, Decimal, float, complex)),
    (Fraction, (float, complex)),
    (float, (complex,)),
)


class ResolutionError(Exception):
    """A member, method or index cannot be resolved on a value."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


def template_method(name: Optional[str] = None):
    """
    Expose a method to templates under the given name.

    Several Python methods may share one template name; a call is routed to
    the single overload whose signature accepts the arguments.

        class Text:
            @template_method("indexOf")
            def index_of(self, needle: str) -> int: ...

            @template_method("indexOf")
            def index_of_from(self, needle: str, start: int) -> int: ...
    """
    def decorator(func):
        target = getattr(func, "__func__", func)
        setattr(target, _TEMPLATE_NAME_ATTR, name or target.__name__)
        return func
    return decorator


class Introspector(Protocol):
    """What the evaluator needs from host values."""

    def get_member(self, value: Any, name: str) -> Any: ...

    def call_method(self, value: Any, name: str, args: List[Any]) -> Any: ...

    def get_index(self, value: Any, index: Any) -> Any: ...


@dataclass(frozen=True)
class MethodCandidate:
    """One overload that a template method call might resolve to."""
    name: str
    function: Callable[..., Any]
    signature: Optional[inspect.Signature] = None
    hints: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def of(cls, name: str, function: Callable[..., Any]) -> MethodCandidate:
        return cls(name, function, _signature(function), _type_hints(function))

    def accepts(self, args: List[Any]) -> bool:
        """Arity and type compatibility of the arguments."""
        if self.signature is None:
            return True
        try:
            bound = self.signature.bind(*args)
        except TypeError:
            return False
        for pname, value in bound.arguments.items():
            param = self.signature.parameters[pname]
            annotation = self.hints.get(pname, param.annotation)
            if param.kind is inspect.Parameter.VAR_POSITIONAL:
                if not all(is_compatible(annotation, item) for item in value):
                    return False
            elif param.kind is inspect.Parameter.VAR_KEYWORD:
                continue
            elif not is_compatible(annotation, value):
                return False
        return True

    def invoke(self, args: List[Any]) -> Any:
        converted = list(args)
        if self.signature is not None:
            params = [
                p for p in self.signature.parameters.values()
                if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
            ]
            for i, param in enumerate(params[:len(args)]):
                converted[i] = widen(self.hints.get(param.name, param.annotation), args[i])
        return self.function(*converted)

    def describe(self) -> str:
        owner = getattr(self.function, "__qualname__", None) or repr(self.function)
        return f"{owner}{self.signature}" if self.signature is not None else owner


# -------------------- type compatibility --------------------

def is_number(value: Any) -> bool:
    """Numbers in the template sense: bool is not one."""
    return isinstance(value, (int, float, complex, Decimal, Fraction)) and not isinstance(value, bool)


def is_compatible(annotation: Any, value: Any) -> bool:
    """Can value be passed to a parameter annotated with annotation."""
    if annotation is inspect.Parameter.empty or annotation is Any or annotation is object:
        return True

    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        return any(is_compatible(arg, value) for arg in typing.get_args(annotation))
    if origin is typing.Literal:
        return value in typing.get_args(annotation)

    if annotation is None or annotation is type(None):
        return value is None
    if origin is not None:
        annotation = origin
    if not isinstance(annotation, type):
        # TypeVar, строковые аннотации и прочее, что не удалось разрешить
        return True

    if value is None:
        return False
    if isinstance(value, bool):
        return annotation is bool
    if isinstance(value, annotation):
        return True
    return _widening_target(value, annotation) is not None


def widen(annotation: Any, value: Any) -> Any:
    """Converts a numeric argument to the annotated type if widening applies."""
    if not isinstance(annotation, type) or value is None or isinstance(value, bool):
        return value
    if isinstance(value, annotation):
        return value
    target = _widening_target(value, annotation)
    if target is None:
        return value
    return target(value)


def _widening_target(value: Any, annotation: type) -> Optional[type]:
    for kind, targets in _WIDENING:
        if isinstance(value, kind):
            for target in targets:
                if issubclass(target, annotation):
                    return target
            return None
    return None


# -------------------- signatures --------------------

def _signature(function: Callable[..., Any]) -> Optional[inspect.Signature]:
    try:
        return inspect.signature(function)
    except (TypeError, ValueError):
        return None


def _type_hints(function: Callable[..., Any]) -> Dict[str, Any]:
    try:
        return typing.get_type_hints(function)
    except Exception:
        # неразрешимые forward-ссылки: сравниваем с сырыми аннотациями
        return {}


def _is_bound_method(member: Any) -> bool:
    return (
        inspect.ismethod(member)
        or inspect.isbuiltin(member)
        or isinstance(member, (types.MethodWrapperType, types.BuiltinMethodType))
    )


# -------------------- names --------------------

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def snake_case(name: str) -> str:
    """fooBar -> foo_bar"""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _swap_initial(name: str) -> str:
    first = name[0]
    return (first.lower() if first.isupper() else first.upper()) + name[1:]


def _dedupe(names: List[str]) -> List[str]:
    seen = set()
    result = []
    for name in names:
        if name not in seen and not name.startswith("_"):
            seen.add(name)
            result.append(name)
    return result


class DefaultIntrospector:
    """
    Resolution by Python attributes, mapping keys and @template_method tags.

    The introspector is stateless and may be shared between renders.
    """

    def __init__(self, *, snake_case_members: bool = True):
        self.snake_case_members = snake_case_members

    # -------------------- members --------------------

    def get_member(self, value: Any, name: str) -> Any:
        if isinstance(value, Mapping):
            return value.get(name)

        for attr, needs_bool in self._member_candidates(name):
            found, result = self._read_member(value, attr)
            if not found:
                continue
            if needs_bool and not isinstance(result, bool):
                continue
            return result

        raise ResolutionError(
            f"Member {name} does not correspond to a public attribute or getter "
            f"of {value!r}, a {type(value).__name__}"
        )

    def _member_candidates(self, name: str) -> List[Tuple[str, bool]]:
        if name.startswith("_"):
            return []
        capitalized = _swap_initial(name) if name[0].islower() else name
        plain = [name]
        getters = ["get" + capitalized]
        predicates = ["is" + capitalized]
        if self.snake_case_members:
            snake = snake_case(name)
            plain.append(snake)
            getters.append("get_" + snake)
            predicates.append("is_" + snake)
        candidates = [(attr, False) for attr in _dedupe(plain + getters)]
        candidates.extend((attr, True) for attr in _dedupe(predicates))
        return candidates

    def _read_member(self, value: Any, attr: str) -> Tuple[bool, Any]:
        try:
            member = getattr(value, attr)
        except AttributeError:
            return False, None
        if _is_bound_method(member):
            signature = _signature(member)
            if signature is not None:
                try:
                    signature.bind()
                except TypeError:
                    return False, None
            return True, member()
        return True, member

    # -------------------- methods --------------------

    def find_methods(self, value: Any, name: str) -> List[MethodCandidate]:
        """All overloads available under a template method name."""
        candidates = self._collect_methods(value, name)
        if not candidates and self.snake_case_members:
            snake = snake_case(name)
            if snake != name:
                candidates = self._collect_methods(value, snake)
        return candidates

    def _collect_methods(self, value: Any, name: str) -> List[MethodCandidate]:
        if name.startswith("_"):
            return []

        candidates: List[MethodCandidate] = []
        seen_attrs = set()

        for klass in type(value).__mro__:
            for attr, raw in vars(klass).items():
                if attr in seen_attrs or attr.startswith("_"):
                    continue
                target = getattr(raw, "__func__", raw)
                if getattr(target, _TEMPLATE_NAME_ATTR, None) != name:
                    continue
                seen_attrs.add(attr)
                candidates.append(MethodCandidate.of(name, getattr(value, attr)))

        if name not in seen_attrs:
            member = getattr(value, name, None)
            if member is not None and callable(member):
                exported = getattr(getattr(member, "__func__", member), _TEMPLATE_NAME_ATTR, None)
                if exported is None or exported == name:
                    candidates.append(MethodCandidate.of(name, member))

        return candidates

    def select_method(self, value: Any, name: str, args: List[Any]) -> MethodCandidate:
        candidates = self.find_methods(value, name)
        if not candidates:
            raise ResolutionError(f"No method {name} in {type(value).__name__}")

        compatible = [c for c in candidates if c.accepts(args)]
        if not compatible:
            raise ResolutionError(
                f"Parameters for method {name} have wrong types: {_describe_args(args)}"
            )
        if len(compatible) > 1:
            options = "; ".join(c.describe() for c in compatible)
            raise ResolutionError(f"Ambiguous method invocation, could be one of: {options}")
        return compatible[0]

    def call_method(self, value: Any, name: str, args: List[Any]) -> Any:
        return self.select_method(value, name, args).invoke(args)

    # -------------------- indexing --------------------

    def get_index(self, value: Any, index: Any) -> Any:
        if isinstance(value, Sequence) and not isinstance(value, str):
            if not isinstance(index, int) or isinstance(index, bool):
                raise ResolutionError(f"List index is not an integer: {index!r}")
            if not 0 <= index < len(value):
                raise ResolutionError(f"List index {index} is not valid for list of size {len(value)}")
            return value[index]
        if isinstance(value, Mapping):
            try:
                return value.get(index)
            except TypeError as e:
                raise ResolutionError(f"Invalid map key {index!r}: {e}") from e
        return self.call_method(value, "get", [index])


def _describe_args(args: List[Any]) -> str:
    return "(" + ", ".join("null" if a is None else type(a).__name__ for a in args) + ")"


__all__ = [
    "Introspector",
    "DefaultIntrospector",
    "MethodCandidate",
    "ResolutionError",
    "template_method",
    "is_compatible",
    "is_number",
    "snake_case",
    "widen",
]
