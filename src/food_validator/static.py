"""Static text resources loaded once at process start."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .config.settings import Settings

logger = logging.getLogger(__name__)

RESOURCES_DIR = Path(__file__).resolve().parent / "resources"


@dataclass(frozen=True)
class StaticResources:
    system_prompt: str
    homepage_html: str

    @property
    def system_prompt_loaded(self) -> bool:
        return bool(self.system_prompt.strip())

    @property
    def homepage_loaded(self) -> bool:
        return bool(self.homepage_html.strip())


def load_static_resources(settings: Settings) -> StaticResources:
    """Read the system prompt and homepage, preferring configured override paths."""
    system_prompt = _read_text(settings.system_prompt_path, RESOURCES_DIR / "system_prompt.md")
    homepage_html = _read_text(settings.homepage_path, RESOURCES_DIR / "index.html")
    logger.info(
        "static_resources event=loaded system_prompt_length=%s homepage_length=%s",
        len(system_prompt),
        len(homepage_html),
    )
    return StaticResources(system_prompt=system_prompt, homepage_html=homepage_html)


def _read_text(override: str, default: Path) -> str:
    path = Path(override) if override else default
    return path.read_text(encoding="utf-8")
