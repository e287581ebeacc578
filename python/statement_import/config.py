"""
Import Configuration Module

Confidence thresholds shared by the import pipeline and YAML-backed settings.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

# A candidate scoring at or above this is treated as an existing transaction
DUPLICATE_MATCH_THRESHOLD = 0.95

# Learned patterns below this never produce import-time suggestions
SUGGESTION_MIN_CONFIDENCE = 0.5

# Bulk sweeps rewrite committed data, so they require more confidence
RECATEGORIZE_MIN_CONFIDENCE = 0.7

# Detection confidence levels
STRUCTURAL_MATCH_CONFIDENCE = 1.0
NAME_MATCH_CONFIDENCE = 0.7

# Upper bound of records sent to the AI categorizer in one preview
AI_BATCH_LIMIT = 50

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

DEFAULT_CONFIG_DIR = Path(__file__).parent.parent.parent / "config"


@dataclass
class ImportSettings:
    """Runtime settings for statement imports."""

    # Account holder names, used to recognise transfers between own accounts
    owner_names: list[str] = field(default_factory=list)
    ai_enabled: bool = True
    ai_batch_limit: int = AI_BATCH_LIMIT
    model: str = DEFAULT_MODEL
    max_tokens: int = 2000
    temperature: float = 0.3


def load_settings(config_dir: Path | str | None = None) -> ImportSettings:
    """Load import settings from ``import_settings.yaml``.

    Args:
        config_dir: Path to configuration directory

    Returns:
        ImportSettings, with defaults for anything not configured
    """
    config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
    settings_file = config_dir / "import_settings.yaml"

    data: dict = {}
    if settings_file.exists():
        with open(settings_file) as f:
            data = yaml.safe_load(f) or {}
    else:
        logger.warning(f"Import settings file not found: {settings_file}")

    ai_config = data.get("ai", {}) or {}

    settings = ImportSettings(
        owner_names=[str(n) for n in data.get("owner_names", []) or []],
        ai_enabled=bool(ai_config.get("enabled", True)),
        ai_batch_limit=int(ai_config.get("batch_limit", AI_BATCH_LIMIT)),
        model=os.getenv("ANTHROPIC_MODEL", ai_config.get("model", DEFAULT_MODEL)),
        max_tokens=int(ai_config.get("max_tokens", 2000)),
        temperature=float(ai_config.get("temperature", 0.3)),
    )

    # Configuration may lower the ceiling, never raise it
    settings.ai_batch_limit = min(settings.ai_batch_limit, AI_BATCH_LIMIT)

    return settings
