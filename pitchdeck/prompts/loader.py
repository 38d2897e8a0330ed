"""
Deck prompt templates, one YAML file per component and version: pitchdeck/prompts/{version}/{component}.yaml.
PROMPT_VERSION (default v1) picks the version when none is passed.
"""
from pathlib import Path

import yaml

_PROMPTS_DIR = Path(__file__).resolve().parent


def _prompt(component: str, key: str, version: str | None) -> str:
    """Read one template ("system" or "user") from the component's file; placeholders like <<PROJECT_NAME>> stay in."""
    if version is None:
        from pitchdeck.core.config import settings
        version = settings.prompt_version

    path = _PROMPTS_DIR / version / f"{component}.yaml"
    if not path.exists():
        raise FileNotFoundError(f"Prompt file not found: {path}")

    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    value = data.get(key)
    if value is None:
        raise ValueError(f"Component {component} has no '{key}' prompt in version {version}")
    return str(value).strip()


def get_system_prompt(component: str, version: str | None = None) -> str:
    """Why available: Keeps the deck-writing instructions editable and versioned without code changes."""
    return _prompt(component, "system", version)


def get_user_prompt(component: str, version: str | None = None) -> str:
    return _prompt(component, "user", version)
