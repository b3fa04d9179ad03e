"""Type inference configuration (boolean literals, date formats, thresholds).

Values are defined in config/type_inference.yaml.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from reportstudio.core.config import get_settings


@dataclass
class TypeInferenceConfig:
    """Literal sets and thresholds used by schema detection and profiling."""

    true_values: frozenset[str] = frozenset({"true", "yes", "y", "1", "t"})
    false_values: frozenset[str] = frozenset({"false", "no", "n", "0", "f"})
    date_formats: list[str] = field(default_factory=lambda: ["%Y-%m-%d"])
    pk_min_unique_ratio: float = 0.95
    pk_min_non_null_ratio: float = 0.95
    missing_high: float = 0.5
    missing_medium: float = 0.2

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> TypeInferenceConfig:
        literals = config.get("boolean_literals", {})
        pk = config.get("primary_key", {})
        missing = config.get("missing_thresholds", {})
        defaults = cls()
        return cls(
            true_values=frozenset(str(v).lower() for v in literals.get("true_values", []))
            or defaults.true_values,
            false_values=frozenset(str(v).lower() for v in literals.get("false_values", []))
            or defaults.false_values,
            date_formats=list(config.get("date_formats") or defaults.date_formats),
            pk_min_unique_ratio=float(pk.get("min_unique_ratio", defaults.pk_min_unique_ratio)),
            pk_min_non_null_ratio=float(
                pk.get("min_non_null_ratio", defaults.pk_min_non_null_ratio)
            ),
            missing_high=float(missing.get("high", defaults.missing_high)),
            missing_medium=float(missing.get("medium", defaults.missing_medium)),
        )

    @property
    def boolean_literals(self) -> frozenset[str]:
        return self.true_values | self.false_values


def load_type_inference_config(config_path: Path | None = None) -> TypeInferenceConfig:
    """Load type inference configuration from YAML.

    Args:
        config_path: Optional path to config file. If None, uses default from settings.

    Returns:
        TypeInferenceConfig instance
    """
    if config_path is None:
        settings = get_settings()
        config_path = settings.config_path / "type_inference.yaml"

    with open(config_path) as f:
        config_dict = yaml.safe_load(f)

    return TypeInferenceConfig.from_dict(config_dict or {})
