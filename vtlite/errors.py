"""
Base exceptions for user-facing template errors.

Every expected failure of the engine (a malformed template, a reference that cannot
be resolved while rendering, a bad configuration file) inherits from TemplateError
and carries enough position information to locate the fault in the template text.

Programming errors and bugs should NOT inherit from TemplateError;
they will propagate with full tracebacks.
"""

from __future__ import annotations

from typing import Optional


class TemplateError(Exception):
    """
    Base class for all user-facing errors in vtlite.

    Attributes:
        message: Human-readable description without position prefix
        template_name: Name of the template (as given to parse())
        line: 1-based line of the failing construct (0 if unknown)
        column: 1-based column of the failing construct (0 if unknown)
        excerpt: Short piece of source text at the failure point
    """

    def __init__(
        self,
        message: str,
        *,
        template_name: str = "template",
        line: int = 0,
        column: int = 0,
        excerpt: Optional[str] = None,
    ):
        self.message = message
        self.template_name = template_name
        self.line = line
        self.column = column
        self.excerpt = excerpt
        super().__init__(self._format())

    def _format(self) -> str:
        where = self.template_name
        if self.line:
            where += f":{self.line}"
            if self.column:
                where += f":{self.column}"
        text = f"{where}: {self.message}"
        if self.excerpt is not None:
            text += f" [at: {self.excerpt}]"
        return text


class ParseError(TemplateError):
    """Syntax error in template text. Always fatal for parse()."""
    pass


class EvaluationError(TemplateError):
    """Error while rendering a parsed template. Always fatal for render()."""
    pass


class ConfigError(TemplateError):
    """Invalid engine configuration (file or values)."""
    pass


__all__ = ["TemplateError", "ParseError", "EvaluationError", "ConfigError"]
