"""
Whitespace handling: newline elision after directives, space before #set,
comment lines.
"""

import pytest


class TestSpaceBeforeSet:

    @pytest.mark.parametrize("template,variables,expected", [
        ("x#set ($x = 0)\nbar", {}, "xbar"),
        ("$x  #set ($x = 0)x", {"x": "!"}, "!x"),
        ("x  #set($x = 0)  #set($x = 0)  #set($x = 0)  y", {}, "x    y"),
        ("x ## comment\n  #set($x = 0)  y", {}, "x   y"),
        ("#macro (m)  #set ($a = 1)$a#end#m()", {}, "1"),
    ])
    def test_space_before_set(self, vtl, template, variables, expected):
        assert vtl(template, variables) == expected

    def test_newlines_count_as_space(self, vtl):
        assert vtl("$a\n\n#set ($b = 1)$b", {"a": "A"}) == "A1"


class TestDirectiveNewlines:

    def test_block_lines_disappear(self, vtl):
        template = "#if ($a)\n  yes\n#end\ndone"
        assert vtl(template, {"a": True}) == "  yes\ndone"

    def test_foreach_lines(self, vtl):
        assert vtl("#foreach ($x in $l)\n- $x\n#end\n", {"l": ["a", "b"]}) == "- a\n- b\n"

    def test_trailing_spaces_before_newline(self, vtl):
        assert vtl("#set ($a = 1)   \nx$a") == "x1"

    def test_only_one_newline_is_eaten(self, vtl):
        assert vtl("#set ($a = 1)\n\nx") == "\nx"

    def test_elision_disabled(self, vtl, no_elision):
        assert vtl("#set ($a = 1)\nx$a", config=no_elision) == "\nx1"

    def test_indented_directives_keep_indentation(self, vtl):
        assert vtl("  #if (true)\nx\n  #end\n") == "  x\n  "


class TestComments:

    def test_line_comment_keeps_preceding_text(self, vtl):
        assert vtl("line 1 ##\n  line 2") == "line 1   line 2"

    def test_comment_only_line_is_removed(self, vtl):
        assert vtl("a\n  ## note\nb") == "a\nb"

    def test_block_comment_line_is_removed(self, vtl):
        assert vtl("a\n#* multi\nline *#\nb") == "a\nb"

    def test_inline_block_comment(self, vtl):
        assert vtl("a #* c *# b") == "a  b"

    def test_literal_block(self, vtl):
        assert vtl("#[[$x #if ($y)]]#") == "$x #if ($y)"
