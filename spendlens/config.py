"""YAML configuration loader for SpendLens.

Loads the seed config files from the config/ directory:
  parsers.yaml, analytics.yaml

Every consumer accepts ``config=None`` and falls back to the module-level
defaults, so a missing config directory only matters for the CLI.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import yaml


class Config:
    """Loads and provides access to all YAML configuration files."""

    def __init__(self, config_dir: Path | str = "config"):
        self.config_dir = Path(config_dir)
        if not self.config_dir.is_dir():
            raise FileNotFoundError(f"Config directory not found: {self.config_dir}")

        self._parsers: dict | None = None
        self._analytics: dict | None = None

    def _load(self, filename: str) -> dict:
        path = self.config_dir / filename
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            raise ValueError(f"Empty config file: {path}")
        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping at the top of {path}")
        return data

    @property
    def parsers(self) -> dict:
        if self._parsers is None:
            self._parsers = self._load("parsers.yaml")
        return self._parsers

    @property
    def analytics(self) -> dict:
        if self._analytics is None:
            self._analytics = self._load("analytics.yaml")
        return self._analytics

    # ── parsers.yaml ──────────────────────────────────────

    @property
    def header_scan_rows(self) -> int:
        """How many leading rows the format detector inspects. Default: 20."""
        return int(self.parsers.get("header_scan_rows", 20))

    @property
    def suppressed_tags(self) -> list[str]:
        """Lower-case tag substrings whose rows are dropped during extraction."""
        tags = self.parsers.get("suppressed_tags")
        if tags is None:
            return ["döviz al / sat", "kart ödemesi"]
        return [str(t).lower().strip() for t in tags if str(t).strip()]

    @property
    def import_workers(self) -> int:
        """Size of the thread pool used to parse files of one batch."""
        workers = int(self.parsers.get("import_workers", 4))
        if workers < 1:
            raise ValueError(f"import_workers must be >= 1, got {workers}")
        return workers

    # ── analytics.yaml ────────────────────────────────────

    @property
    def subscription_settings(self) -> dict:
        """Subscription detector thresholds, merged over the defaults."""
        defaults = {
            "window_months": 6,
            "min_transactions": 3,
            "max_variance_percent": 20.0,
            "active_days": 60,
            "confirm_window_months": 12,
        }
        defaults.update(self.analytics.get("subscriptions") or {})
        return defaults

    @property
    def projection_settings(self) -> dict:
        """Month-end projection tuning. Fractions are returned as Decimal."""
        settings = {
            "history_months": 12,
            "min_history_months": 3,
            "min_fraction": "0.02",
            "max_fraction": "0.98",
        }
        settings.update(self.analytics.get("projection") or {})
        settings["min_fraction"] = Decimal(str(settings["min_fraction"]))
        settings["max_fraction"] = Decimal(str(settings["max_fraction"]))
        return settings
