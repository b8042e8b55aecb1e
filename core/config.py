"""Application settings.

Reads configuration from environment variables, loading a ``.env`` file at
the repo root first if one exists.

Variables:
- OPENAI_API_KEY: API key for narrative report generation (optional)
- REPORT_MODEL: Chat model used for the narrative report (default "gpt-4o")
- REPORT_TOP_N: Number of largest discrepancies sent to the report (default 10)
- LOG_LEVEL: Logging level name (default "INFO")
- LOG_JSON: "true" for JSON log lines, otherwise human-readable
- AUDIT_ENTITIES: Comma-separated "id:Name" pairs of auditable entities
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[1]

env_path = REPO_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)


DEFAULT_ENTITIES = "panguipulli:Colegio Panguipulli,pullinque:Colegio Pullinque"


@dataclass(frozen=True)
class EntityConfig:
    """An organization whose ledgers are reconciled (e.g. a school)."""
    id: str
    name: str


@dataclass(frozen=True)
class Settings:
    """Resolved application settings."""
    openai_api_key: Optional[str] = None
    report_model: str = "gpt-4o"
    report_top_n: int = 10
    log_level: str = "INFO"
    log_json: bool = False
    entities: List[EntityConfig] = field(default_factory=list)


def parse_entities(raw: str) -> List[EntityConfig]:
    """Parse ``"id:Name,id:Name"`` into entity configs.

    Entries without a name use the id as the name. Blank entries are ignored.

    Examples:
        >>> parse_entities("a:Colegio A, b")
        [EntityConfig(id='a', name='Colegio A'), EntityConfig(id='b', name='b')]
    """
    entities = []
    for chunk in (raw or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        entity_id, _, name = chunk.partition(":")
        entity_id = entity_id.strip()
        if not entity_id:
            continue
        entities.append(EntityConfig(id=entity_id, name=name.strip() or entity_id))
    return entities


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def load_settings() -> Settings:
    """Build settings from the current environment.

    Raises:
        ValueError: If a numeric variable is malformed
    """
    return Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        report_model=os.getenv("REPORT_MODEL", "gpt-4o"),
        report_top_n=_env_int("REPORT_TOP_N", 10),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_json=_env_bool("LOG_JSON"),
        entities=parse_entities(os.getenv("AUDIT_ENTITIES", DEFAULT_ENTITIES)),
    )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
