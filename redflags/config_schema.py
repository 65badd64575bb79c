from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


# Compiled-in defaults per indicator config key. YAML overrides are merged
# over these one key at a time.
SIGNAL_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "R001_single_bid": {
        "enabled": True,
        "severity_threshold": 0.2,
        "require_competitive_type": True,
    },
    "R002_non_competitive": {
        "enabled": True,
        "codes_to_flag": ["B", "C", "G", "NDO"],
    },
    "R003_splitting": {
        "enabled": True,
        "thresholds": [250_000, 7_500_000],
        "band_width_pct": 0.1,
        "min_cluster_size": 3,
        "period": "quarter",
    },
    "R004_concentration": {
        "enabled": True,
        "vendor_share_threshold": 0.3,
        "spike_threshold": 0.15,
        "min_sector_spend": 1_000_000,
        "min_sector_awards": 3,
        "max_naics_signals": 10,
    },
    "R005_modifications": {
        "enabled": True,
        "max_modification_count": 5,
        "max_growth_ratio": 2.0,
    },
    "R006_price_outliers": {
        "enabled": True,
        "method": "iqr",
        "iqr_multiplier": 1.5,
        "zscore_threshold": 2.0,
        "min_group_size": 5,
    },
}


class IndicatorSettings(BaseModel):
    """Settings block for one indicator.

    Only ``enabled`` is typed here. Indicator-specific keys are kept as extra
    fields and interpreted (leniently) by the indicator's ``configure``.
    """

    model_config = ConfigDict(extra="allow")

    enabled: bool = True

    def as_dict(self) -> Dict[str, Any]:
        return self.model_dump()


def _settings_factory(key: str):
    return lambda: IndicatorSettings(**SIGNAL_DEFAULTS[key])


class SignalsConfig(BaseModel):
    """Per-indicator settings keyed by config name."""

    R001_single_bid: IndicatorSettings = Field(default_factory=_settings_factory("R001_single_bid"))
    R002_non_competitive: IndicatorSettings = Field(
        default_factory=_settings_factory("R002_non_competitive")
    )
    R003_splitting: IndicatorSettings = Field(default_factory=_settings_factory("R003_splitting"))
    R004_concentration: IndicatorSettings = Field(
        default_factory=_settings_factory("R004_concentration")
    )
    R005_modifications: IndicatorSettings = Field(
        default_factory=_settings_factory("R005_modifications")
    )
    R006_price_outliers: IndicatorSettings = Field(
        default_factory=_settings_factory("R006_price_outliers")
    )

    def get(self, key: str) -> Optional[IndicatorSettings]:
        return getattr(self, key, None)


class MaterialityConfig(BaseModel):
    """Thresholds and caps applied when consolidating signals into findings."""

    min_award_count: int = 1
    min_total_amount: float = 0.0
    max_findings: int = 20
    max_per_indicator: int = 5

    @field_validator("max_per_indicator")
    @classmethod
    def validate_max_per_indicator(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_per_indicator must be >= 1")
        return v


class Config(BaseModel):
    """Top-level configuration model for the red-flag screening engine."""

    signals: SignalsConfig = Field(default_factory=SignalsConfig)
    materiality: MaterialityConfig = Field(default_factory=MaterialityConfig)


def _merge_signals(raw: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    merged: Dict[str, Dict[str, Any]] = {}
    for key, defaults in SIGNAL_DEFAULTS.items():
        block = dict(defaults)
        override = raw.get(key) or {}
        if isinstance(override, dict):
            for k, v in override.items():
                if v is not None:
                    block[k] = v
        merged[key] = block
    return merged


def build_config(data: Optional[Dict[str, Any]] = None) -> Config:
    """Build a Config from a plain mapping, filling compiled defaults.

    Args:
        data: Mapping with optional ``signals`` and ``materiality`` sections.

    Returns:
        Parsed and validated Config object.
    """

    data = data or {}
    signals = _merge_signals(data.get("signals") or {})
    materiality = data.get("materiality") or {}
    return Config(
        signals=SignalsConfig(**{k: IndicatorSettings(**v) for k, v in signals.items()}),
        materiality=MaterialityConfig(**materiality),
    )


def load_config(path: Optional[Path] = None) -> Config:
    """Load configuration from a YAML file.

    The file named by the ``REDFLAGS_CONFIG`` environment variable is used when
    no path is given, falling back to the package-local config_defaults.yaml.

    Args:
        path: Optional custom path to the YAML config.

    Returns:
        Parsed and validated Config object.
    """

    if path is None:
        env_path = os.environ.get("REDFLAGS_CONFIG")
        path = Path(env_path) if env_path else Path(__file__).with_name("config_defaults.yaml")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return build_config(data)


# Convenience loader (not module-global singleton to ease testing)
def get_default_config() -> Config:
    """Return a Config loaded from the default YAML file shipped with the package."""

    return load_config(Path(__file__).with_name("config_defaults.yaml"))
