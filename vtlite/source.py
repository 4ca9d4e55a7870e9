"""
Исходный текст шаблона с привязкой смещений к строкам и колонкам.

Используется сканером и парсерами для позиционной диагностики ошибок.
"""

from __future__ import annotations

from bisect import bisect_right
from typing import List, Tuple

from .config import DEFAULT_CONFIG, EngineConfig
from .errors import ParseError


class SourceText:
    """
    Текст шаблона с индексом начал строк.

    Позволяет по смещению в тексте получить номер строки и колонки
    (оба начинаются с 1) и короткий фрагмент исходника для сообщений об ошибках.
    """

    def __init__(self, text: str, name: str = "template", config: EngineConfig = DEFAULT_CONFIG):
        self.text = text
        self.name = name
        self.config = config
        self.length = len(text)
        self._line_starts: List[int] = [0]
        for index, char in enumerate(text):
            if char == "\n":
                self._line_starts.append(index + 1)

    def locate(self, offset: int) -> Tuple[int, int]:
        """Возвращает (line, column) для смещения."""
        offset = max(0, min(offset, self.length))
        line_index = bisect_right(self._line_starts, offset) - 1
        return line_index + 1, offset - self._line_starts[line_index] + 1

    def excerpt(self, offset: int) -> str:
        """
        Фрагмент исходника, начиная со смещения.

        Длина ограничена EngineConfig.excerpt_length; обрезанный фрагмент
        заканчивается многоточием, а позиция за концом текста даёт "EOF".
        """
        if offset >= self.length:
            return "EOF"
        limit = self.config.excerpt_length
        piece = self.text[offset:offset + limit]
        if offset + limit < self.length:
            piece += "..."
        return piece

    def error(self, message: str, offset: int) -> ParseError:
        """Создаёт ParseError с позицией и фрагментом исходника."""
        line, column = self.locate(offset)
        return ParseError(
            message,
            template_name=self.name,
            line=line,
            column=column,
            excerpt=self.excerpt(offset),
        )


__all__ = ["SourceText"]
