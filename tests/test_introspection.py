"""
Tests for member and method resolution on host objects.
"""

from collections.abc import Mapping
from decimal import Decimal
from fractions import Fraction
from typing import Optional, Union

import pytest

from vtlite.introspection import (
    DefaultIntrospector,
    ResolutionError,
    is_compatible,
    snake_case,
    template_method,
)


class Person:
    def __init__(self, name, admin=False):
        self.name = name
        self._admin = admin
        self._secret = "hidden"

    def getAge(self):
        return 42

    def is_admin(self):
        return self._admin

    def isVerbose(self):
        return "yes"

    def greet(self, other: str) -> str:
        return f"Hello, {other}"

    @property
    def full_name(self):
        return self.name + " Smith"


class Text:
    def __init__(self, value):
        self.value = value

    @template_method("indexOf")
    def index_of(self, needle: str) -> int:
        return self.value.find(needle)

    @template_method("indexOf")
    def index_of_from(self, needle: str, start: int) -> int:
        return self.value.find(needle, start)

    @template_method("scale")
    def scale_float(self, factor: float) -> float:
        return factor * 2

    @template_method("money")
    def money(self, amount: Decimal) -> Decimal:
        return amount

    def is_empty(self) -> bool:
        return not self.value

    @template_method("pick")
    def pick_int(self, x: int) -> str:
        return "int"

    @template_method("pick")
    def pick_float(self, x: float) -> str:
        return "float"


class Registry:
    def get(self, key: str) -> str:
        return key.upper()


class _SingletonMap(Mapping):
    """Private implementation of a public ABC."""

    def __getitem__(self, key):
        if key == "only":
            return 1
        raise KeyError(key)

    def __iter__(self):
        return iter(["only"])

    def __len__(self):
        return 1


class TestMemberResolution:

    def setup_method(self):
        self.introspector = DefaultIntrospector()
        self.person = Person("Ann")

    def test_plain_attribute(self):
        assert self.introspector.get_member(self.person, "name") == "Ann"

    def test_getter(self):
        assert self.introspector.get_member(self.person, "age") == 42

    def test_snake_case_predicate(self):
        assert self.introspector.get_member(self.person, "admin") is False

    def test_snake_case_property(self):
        assert self.introspector.get_member(self.person, "fullName") == "Ann Smith"

    def test_predicate_must_return_bool(self):
        with pytest.raises(ResolutionError, match="Member verbose"):
            self.introspector.get_member(self.person, "verbose")

    def test_private_names_are_not_resolved(self):
        with pytest.raises(ResolutionError):
            self.introspector.get_member(self.person, "_secret")
        with pytest.raises(ResolutionError, match="a Person"):
            self.introspector.get_member(self.person, "secret")

    def test_snake_case_can_be_disabled(self):
        introspector = DefaultIntrospector(snake_case_members=False)
        with pytest.raises(ResolutionError):
            introspector.get_member(self.person, "fullName")

    def test_mapping_key(self):
        assert self.introspector.get_member({"a": 1}, "a") == 1
        assert self.introspector.get_member({"a": 1}, "b") is None

    def test_method_needing_arguments_is_not_a_getter(self):
        with pytest.raises(ResolutionError):
            self.introspector.get_member(self.person, "greet")


class TestMethodResolution:

    def setup_method(self):
        self.introspector = DefaultIntrospector()
        self.text = Text("abcabc")

    def test_plain_method(self):
        assert self.introspector.call_method(Person("Ann"), "greet", ["Bob"]) == "Hello, Bob"

    def test_overloads_by_arity(self):
        assert self.introspector.call_method(self.text, "indexOf", ["b"]) == 1
        assert self.introspector.call_method(self.text, "indexOf", ["b", 2]) == 4

    def test_numeric_widening_converts(self):
        result = self.introspector.call_method(self.text, "scale", [3])
        assert result == 6.0
        assert isinstance(result, float)

    def test_widening_to_decimal(self):
        result = self.introspector.call_method(self.text, "money", [5])
        assert result == Decimal(5)
        assert isinstance(result, Decimal)

    def test_ambiguous_overloads(self):
        with pytest.raises(ResolutionError, match="Ambiguous method invocation"):
            self.introspector.call_method(self.text, "pick", [1])

    def test_exact_float_overload(self):
        assert self.introspector.call_method(self.text, "pick", [1.5]) == "float"

    def test_wrong_types(self):
        with pytest.raises(ResolutionError, match="Parameters for method pick have wrong types"):
            self.introspector.call_method(self.text, "pick", ["x"])

    def test_bool_is_not_numeric(self):
        with pytest.raises(ResolutionError, match="wrong types"):
            self.introspector.call_method(self.text, "pick", [True])

    def test_no_such_method(self):
        with pytest.raises(ResolutionError, match="No method nope in Text"):
            self.introspector.call_method(self.text, "nope", [])

    def test_builtin_methods(self):
        assert self.introspector.call_method("abc", "upper", []) == "ABC"
        assert self.introspector.call_method("a,b", "split", [","]) == ["a", "b"]

    def test_snake_case_method_alias(self):
        assert self.introspector.call_method(self.text, "isEmpty", []) is False
        assert self.introspector.call_method(Text(""), "isEmpty", []) is True

    def test_private_class_implementing_public_abc(self):
        mapping = _SingletonMap()
        assert list(self.introspector.call_method(mapping, "keys", [])) == ["only"]
        assert self.introspector.call_method(mapping, "get", ["only"]) == 1

    def test_private_methods_are_hidden(self):
        with pytest.raises(ResolutionError, match="No method"):
            self.introspector.call_method(self.text, "__init__", ["x"])


class TestIndexing:

    def setup_method(self):
        self.introspector = DefaultIntrospector()

    def test_sequence_index(self):
        assert self.introspector.get_index(["a", "b"], 1) == "b"
        assert self.introspector.get_index(("a", "b"), 0) == "a"

    def test_index_out_of_range(self):
        with pytest.raises(ResolutionError, match="List index 2 is not valid for list of size 2"):
            self.introspector.get_index(["a", "b"], 2)
        with pytest.raises(ResolutionError):
            self.introspector.get_index(["a", "b"], -1)

    def test_index_must_be_integer(self):
        with pytest.raises(ResolutionError, match="not an integer"):
            self.introspector.get_index(["a"], "0")
        with pytest.raises(ResolutionError, match="not an integer"):
            self.introspector.get_index(["a"], True)

    def test_mapping_index(self):
        assert self.introspector.get_index({"k": "v"}, "k") == "v"
        assert self.introspector.get_index({"k": "v"}, "x") is None

    def test_falls_back_to_get(self):
        assert self.introspector.get_index(Registry(), "key") == "KEY"


class TestTypeCompatibility:

    @pytest.mark.parametrize("annotation,value,expected", [
        (float, 1, True),
        (complex, 1.5, True),
        (Fraction, 1, True),
        (float, Fraction(1, 2), True),
        (int, 1.0, False),
        (Decimal, 1.5, False),
        (int, True, False),
        (bool, True, True),
        (Optional[int], None, True),
        (int, None, False),
        (Union[int, str], "x", True),
        (int | str, 2, True),
        (list[int], [1], True),
        (str, 1, False),
    ])
    def test_is_compatible(self, annotation, value, expected):
        assert is_compatible(annotation, value) is expected


def test_snake_case():
    assert snake_case("hasNext") == "has_next"
    assert snake_case("getURL") == "get_url"
    assert snake_case("name") == "name"
