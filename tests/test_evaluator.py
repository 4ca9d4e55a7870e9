"""
Тесты вычислителя: семантика значений, ссылки, директивы.
"""

from decimal import Decimal
from fractions import Fraction

import pytest

from vtlite import EngineConfig, EvaluationError
from vtlite.evaluator import arithmetic, is_truthy, render_value, template_equals
from vtlite.nodes import Operator


class Boom:
    def explode(self):
        raise ValueError("boom")


class Counter:
    def __init__(self):
        self.value = 0

    def next(self):
        self.value += 1
        return self.value


class Builder:
    """Изменяемый буфер без собственного __eq__."""

    def __init__(self, text):
        self.parts = [text]

    def __str__(self):
        return "".join(self.parts)


class TestValueSemantics:

    @pytest.mark.parametrize("value,expected", [
        (None, False),
        (False, False),
        (True, True),
        (0, False),
        (0.0, False),
        (Decimal("0"), False),
        (3, True),
        ("", False),
        ("false", True),
        ([], False),
        ({}, False),
        (set(), False),
        ([0], True),
        (object(), True),
    ])
    def test_is_truthy(self, value, expected):
        assert is_truthy(value) is expected

    @pytest.mark.parametrize("left,right,expected", [
        (123, "123", True),
        (123, "1234", False),
        ("123", 123, True),
        (1, 1.0, True),
        (Decimal("1.5"), 1.5, True),
        (True, 1, False),
        (True, True, True),
        (None, None, True),
        (None, 0, False),
        ("a", "a", True),
        ([1], [1], True),
        ("a", ["a"], False),
    ])
    def test_template_equals(self, left, right, expected):
        assert template_equals(left, right) is expected

    @pytest.mark.parametrize("op,left,right,expected", [
        (Operator.DIVIDE, 7, 2, 3),
        (Operator.DIVIDE, -7, 2, -3),
        (Operator.DIVIDE, 7, -2, -3),
        (Operator.REMAINDER, -7, 2, -1),
        (Operator.REMAINDER, 7, -2, 1),
        (Operator.DIVIDE, 7.0, 2, 3.5),
        (Operator.REMAINDER, -7.5, 2, -1.5),
        (Operator.TIMES, 6, 7, 42),
    ])
    def test_arithmetic(self, op, left, right, expected):
        assert arithmetic(op, left, right) == expected

    def test_render_value(self):
        assert render_value(True) == "true"
        assert render_value(False) == "false"
        assert render_value(12) == "12"
        assert render_value([1, 2]) == "[1, 2]"


class TestExpressions:

    @pytest.mark.parametrize("expression,expected", [
        ("1 + 2 + 3 * 4 * 5 + 6", "69"),
        ("3 - 2 - 1", "0"),
        ("16 / 4 / 4", "1"),
        ("-7 / 2", "-3"),
        ("-7 % 2", "-1"),
        ("(1 + 2) * 3", "9"),
        ("2 < 3", "true"),
        ("3 <= 2", "false"),
        ("!true", "false"),
        ("true && false || true", "true"),
        ("123 == \"123\"", "true"),
        ("123 == \"1234\"", "false"),
        ("1 != 2", "true"),
    ])
    def test_expression_values(self, vtl, expression, expected):
        assert vtl(f"#set ($r = {expression})$r") == expected

    def test_float_arithmetic(self, vtl):
        assert vtl("#set ($r = $x / 4)$r", {"x": 1.0}) == "0.25"

    @pytest.mark.parametrize("expression,message", [
        ("1 / 0", "Division by zero"),
        ("1 % 0", "Modulo by zero"),
        ("true + 1", "Arithmetic is only available on numbers"),
        ("\"a\" + 1", "Arithmetic is only available on numbers"),
        ("\"a\" < \"b\"", "requires numbers"),
    ])
    def test_expression_errors(self, vtl, expression, message):
        with pytest.raises(EvaluationError, match=message):
            vtl(f"#set ($r = {expression})")

    @pytest.mark.parametrize("left", [-1, 0, 1, 17])
    @pytest.mark.parametrize("right", [-1, 0, 1, 17])
    def test_relational_matrix(self, vtl, left, right):
        expected = {
            "==": left == right,
            "!=": left != right,
            "<": left < right,
            ">": left > right,
            "<=": left <= right,
            ">=": left >= right,
        }
        for symbol, result in expected.items():
            rendered = vtl(f"#set ($r = $a {symbol} $b)$r", {"a": left, "b": right})
            assert rendered == str(result).lower(), symbol

    @pytest.mark.parametrize("value,expected", [
        (Decimal("1.5"), "lt"),
        (Decimal("3"), "eq"),
        (Fraction(7, 2), "gt"),
        (2.5, "lt"),
    ])
    def test_relational_on_non_integer_numbers(self, vtl, value, expected):
        template = "#if ($d < 3)lt#elseif ($d <= 3)eq#elseif ($d > $limit)gt#end"
        assert vtl(template, {"d": value, "limit": Decimal("3.25")}) == expected

    def test_builders_use_their_own_equality(self, vtl):
        variables = {"a": Builder("x"), "b": Builder("x"), "c": Builder("y")}
        assert vtl("#if ($a == $b)same#end", variables) == ""
        assert vtl("#if ($a != $c)differ#end", variables) == "differ"
        assert vtl("#if ($a == $a)self#end", variables) == "self"

    def test_short_circuit(self, vtl):
        boom = Boom()
        assert vtl("#set ($r = false && $b.explode())$r", {"b": boom}) == "false"
        assert vtl("#set ($r = true || $b.explode())$r", {"b": boom}) == "true"


class TestReferences:

    def test_plain_and_member(self, vtl):
        assert vtl("$a $m.k $m.get(\"k\")", {"a": "x", "m": {"k": "v"}}) == "x v v"

    def test_braced_reference_next_to_text(self, vtl):
        assert vtl("${a}b", {"a": "x"}) == "xb"

    def test_booleans_render_lowercase(self, vtl):
        assert vtl("$t $f", {"t": True, "f": False}) == "true false"

    def test_index(self, vtl):
        data = {"list": ["a", "b"], "map": {"k": "v"}}
        assert vtl('$list[1] $map["k"] $list[$list.index("b")]', data) == "b v b"

    def test_undefined_reference(self, vtl):
        with pytest.raises(EvaluationError, match=r"Undefined reference \$nope"):
            vtl("$nope")

    def test_null_value_cannot_be_rendered(self, vtl):
        with pytest.raises(EvaluationError, match="Null value"):
            vtl("$x", {"x": None})
        with pytest.raises(EvaluationError, match="Null value"):
            vtl("$m.missing", {"m": {}})

    @pytest.mark.parametrize("template,message", [
        ("$n.foo", "Cannot get member foo of null value"),
        ("$n[0]", "Cannot index null value"),
        ("$n.foo()", "Cannot invoke method foo on null value"),
    ])
    def test_null_base(self, vtl, template, message):
        with pytest.raises(EvaluationError, match=message):
            vtl(template, {"n": None})

    def test_index_out_of_range(self, vtl):
        with pytest.raises(EvaluationError, match="List index 5 is not valid"):
            vtl("$l[5]", {"l": [1]})

    def test_host_exception_is_wrapped(self, vtl):
        with pytest.raises(EvaluationError) as exc_info:
            vtl("$b.explode()", {"b": Boom()})
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_error_position(self, vtl):
        with pytest.raises(EvaluationError) as exc_info:
            vtl("line1\n  $nope", name="page.vm")
        error = exc_info.value
        assert (error.line, error.column) == (2, 3)
        assert str(error) == "page.vm:2:3: Undefined reference $nope"


class TestConditionals:

    def test_branches(self, vtl):
        template = "#if ($n == 1)one#elseif ($n == 2)two#{else}many#end"
        assert vtl(template, {"n": 1}) == "one"
        assert vtl(template, {"n": 2}) == "two"
        assert vtl(template, {"n": 3}) == "many"

    def test_undefined_reference_in_test_is_false(self, vtl):
        assert vtl("#if ($nope)a#{else}b#end") == "b"
        assert vtl("#if ($a)x#elseif ($nope)y#{else}z#end", {"a": False}) == "z"

    @pytest.mark.parametrize("template", [
        "#if (!$nope)a#end",
        "#if ($nope && true)a#end",
        "#if (!$nope && !$other)a#end",
        "#if ($nope || $yes)a#end",
    ])
    def test_undefined_reference_inside_logic_is_an_error(self, vtl, template):
        with pytest.raises(EvaluationError, match=r"Undefined reference \$nope"):
            vtl(template, {"yes": True})

    def test_undefined_reference_in_comparison_is_an_error(self, vtl):
        with pytest.raises(EvaluationError, match="Undefined reference"):
            vtl("#if ($nope == 1)a#end")

    def test_truthiness_of_values(self, vtl):
        template = "#if ($v)T#{else}F#end"
        assert vtl(template, {"v": []}) == "F"
        assert vtl(template, {"v": [0]}) == "T"
        assert vtl(template, {"v": ""}) == "F"
        assert vtl(template, {"v": None}) == "F"
        assert vtl(template, {"v": 0}) == "F"


class TestForEach:

    def test_separator_pattern(self, vtl):
        template = "x#foreach ($x in $c) <$x#if ($foreach.hasNext), #end> #end y"
        assert vtl(template, {"c": ["foo", "bar", "baz"]}) == "x <foo, >  <bar, >  <baz>  y"

    def test_separator_without_snake_case_aliases(self, vtl):
        config = EngineConfig(snake_case_members=False)
        template = "#foreach ($x in $c)$x#if ($foreach.hasNext),#end#end"
        assert vtl(template, {"c": ["a", "b"]}, config=config) == "a,b"

    def test_empty_collection(self, vtl):
        assert vtl("[#foreach ($x in $c)$x#end]", {"c": []}) == "[]"

    def test_loop_state(self, vtl):
        template = (
            "#foreach ($x in $l)$foreach.index:$foreach.count"
            "#if ($foreach.first)F#end#if ($foreach.last)L#end;#end"
        )
        assert vtl(template, {"l": ["a", "b", "c"]}) == "0:1F;1:2;2:3L;"

    def test_parent_loop_state(self, vtl):
        template = "#foreach ($i in $a)#foreach ($j in $b)$foreach.parent.index$foreach.index #end#end"
        assert vtl(template, {"a": [1, 2], "b": [1, 2]}) == "00 01 10 11 "

    def test_mapping_values_and_sets(self, vtl):
        assert vtl("#foreach ($v in $m)$v#end", {"m": {"a": 1, "b": 2}}) == "12"
        assert vtl("#foreach ($v in $s)$v#end", {"s": {7}}) == "7"
        assert vtl("#foreach ($v in $r)$v#end", {"r": range(3)}) == "012"

    def test_variable_set_in_loop_is_visible_after(self, vtl):
        assert vtl("#foreach ($x in $l)#set ($y = $x)#end$y", {"l": ["a", "b", "c"]}) == "c"

    def test_loop_variable_is_restored(self, vtl):
        data = {"x": "outer", "l": ["a", "b"]}
        assert vtl("#foreach ($x in $l)$x#end $x", data) == "ab outer"
        assert vtl('#foreach ($x in $l)#set ($x = "z")#end$x', data) == "outer"

    @pytest.mark.parametrize("value,message", [
        ("text", "Cannot iterate over string"),
        (None, "Cannot iterate over null"),
        (5, "is not iterable"),
    ])
    def test_not_iterable(self, vtl, value, message):
        with pytest.raises(EvaluationError, match=message):
            vtl("#foreach ($x in $v)$x#end", {"v": value})

    def test_nested_loop_cannot_reuse_variable(self, vtl):
        with pytest.raises(EvaluationError, match=r"Loop variable \$x is already in use"):
            vtl("#foreach ($x in $l)#foreach ($x in $l)#end#end", {"l": [1]})


class TestSet:

    def test_set_does_not_mutate_caller_variables(self, vtl):
        variables = {"a": 1}
        assert vtl("#set ($a = 2)$a", variables) == "2"
        assert variables == {"a": 1}

    def test_set_from_method_call(self, vtl):
        counter = Counter()
        assert vtl("#set ($n = $c.next())#set ($n = $c.next())$n", {"c": counter}) == "2"
