"""Scanner configuration - scoring weights, thresholds and search limits."""

from __future__ import annotations

import json
from dataclasses import dataclass, fields

import structlog

logger = structlog.get_logger("grailseeker.scanner.config")


@dataclass(frozen=True)
class ScannerConfig:
    """Configuration for scan identification.

    Weights are expressed as fractions of 1.0 so a perfect issue-first match
    scores 1.0 before the bonus and cap are applied.
    """

    # Issue-first weights (query carries an issue number)
    issue_first_title_weight: float = 0.40
    issue_first_publisher_weight: float = 0.30
    issue_first_issue_weight: float = 0.30

    # Volume-only weights (no issue number)
    volume_only_title_weight: float = 0.70
    volume_only_publisher_weight: float = 0.30

    # Tie-break bonus (issue-first only)
    bonus_min_title: float = 0.30
    bonus: float = 0.10
    score_cap: float = 0.98

    # Title tokens of this length or shorter are ignored
    min_title_token_length: int = 2

    # Classification thresholds
    auto_resolve_threshold: float = 0.80
    confirm_threshold: float = 0.60
    max_confirmation_candidates: int = 5

    # Search limits
    volume_search_limit: int = 20
    volume_fanout_limit: int = 10
    issue_search_limit: int = 10
    volume_result_limit: int = 15
    fanout_concurrency: int = 5


# Default config instance
DEFAULT_CONFIG = ScannerConfig()

# Cached config instance (loaded from settings file)
_cached_config: ScannerConfig | None = None


def _load_scanner_section() -> dict | None:
    """Read the "scanner" section of settings.json, if any."""
    from grailseeker.core.config import get_settings

    settings_file = get_settings().config_dir / "settings.json"
    if not settings_file.exists():
        return None

    with settings_file.open("r") as f:
        all_settings = json.load(f)

    section = all_settings.get("scanner") if isinstance(all_settings, dict) else None
    return section if isinstance(section, dict) else None


def get_scanner_config() -> ScannerConfig:
    """Get the current scanner configuration.

    Loads overrides from the "scanner" section of settings.json if available,
    otherwise returns defaults. Unknown keys are ignored. Caches the result.

    Returns:
        ScannerConfig instance with current settings
    """
    global _cached_config

    if _cached_config is not None:
        return _cached_config

    try:
        section = _load_scanner_section()
    except (OSError, ValueError) as e:
        logger.warning("Failed to read scanner settings, using defaults", error=str(e))
        section = None

    if section:
        known = {f.name for f in fields(ScannerConfig)}
        overrides = {k: v for k, v in section.items() if k in known}
        _cached_config = ScannerConfig(**overrides)
        logger.debug("Loaded scanner config overrides", keys=sorted(overrides))
    else:
        _cached_config = DEFAULT_CONFIG

    return _cached_config


def reload_scanner_config() -> ScannerConfig:
    """Reload scanner configuration from the settings file.

    Call this after updating settings to ensure new values are used.
    """
    global _cached_config
    _cached_config = None
    return get_scanner_config()
