from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from string import Template


class PromptLoadError(RuntimeError):
    pass


def project_root() -> Path:
    # lifesim/prompts.py -> lifesim/ -> project root
    return Path(__file__).resolve().parents[1]


@lru_cache(maxsize=32)
def load_prompt(name: str) -> str:
    """Load a prompt template from the repo `prompts/` directory."""

    path = project_root() / "prompts" / name
    try:
        return path.read_text(encoding="utf-8").strip() + "\n"
    except FileNotFoundError as e:
        raise PromptLoadError(f"Prompt not found: {path}") from e


def render_prompt(name: str, **values: object) -> str:
    """Load a template and substitute `$placeholders`.

    Example:
        render_prompt("system.txt", effect_bound="0.25")
    """

    try:
        return Template(load_prompt(name)).substitute({k: str(v) for k, v in values.items()})
    except KeyError as e:
        raise PromptLoadError(f"Prompt {name} is missing a value for {e}") from e
