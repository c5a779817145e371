"""Jinja2 rendering for managed configuration files."""

from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

TEMPLATES_DIR = Path(__file__).parent / 'templates'


def create_jinja_env(templates_dir: Path) -> Environment:
    return Environment(
        loader=FileSystemLoader(templates_dir),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=StrictUndefined,
    )


@lru_cache(maxsize=None)
def _default_env() -> Environment:
    return create_jinja_env(TEMPLATES_DIR)


def render_template(name: str, **variables) -> str:
    """Render a bundled template by file name."""
    return _default_env().get_template(name).render(**variables)
