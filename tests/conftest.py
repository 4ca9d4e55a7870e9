import textwrap
from pathlib import Path

import pytest

from vtlite import EngineConfig, parse


def render(text: str, variables=None, **kwargs) -> str:
    """Parse + render в одну строку для компактных тестов."""
    return parse(text, **kwargs).render(variables or {})


@pytest.fixture
def vtl():
    """Возвращает функцию render(text, variables=None, **parse_kwargs)."""
    return render


@pytest.fixture
def no_elision() -> EngineConfig:
    return EngineConfig(directive_newline_elision=False)


@pytest.fixture
def config_file(tmp_path: Path):
    """Фабрика YAML-файлов конфигурации во временном каталоге."""
    def _write(content: str, name: str = "vtlite.yaml") -> Path:
        path = tmp_path / name
        path.write_text(textwrap.dedent(content).lstrip(), encoding="utf-8")
        return path
    return _write
