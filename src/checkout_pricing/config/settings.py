"""
Centralized settings and path configuration for checkout pricing.
"""
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

CONFIG_DIR_ENV = "CHECKOUT_PRICING_CONFIG_DIR"
WORKBOOK_ENV = "CHECKOUT_PRICING_WORKBOOK"


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 4 levels up from this file (src/checkout_pricing/config/)
    return Path(__file__).resolve().parent.parent.parent.parent


@dataclass
class Settings:
    """Where the pricing tables live."""

    project_root: Path

    # Directory holding surcharges.csv, loyalty_tiers.csv, ...
    config_dir: Path

    # Optional Excel workbook with one sheet per table; wins over the CSVs
    rules_workbook: Optional[Path] = None

    def table_path(self, table: str) -> Path:
        return self.config_dir / f'{table}.csv'

    @classmethod
    def load(cls, project_root: Optional[Path] = None, config_dir: Optional[Path] = None) -> 'Settings':
        """Load settings from the environment and project structure."""
        root = project_root or get_project_root()

        env_dir = os.environ.get(CONFIG_DIR_ENV)
        if config_dir is None:
            config_dir = Path(env_dir) if env_dir else root / 'config'

        workbook = None
        env_workbook = os.environ.get(WORKBOOK_ENV)
        if env_workbook:
            workbook = Path(env_workbook)
        elif (config_dir / 'pricing_rules.xlsx').exists():
            workbook = config_dir / 'pricing_rules.xlsx'

        return cls(
            project_root=root,
            config_dir=Path(config_dir),
            rules_workbook=workbook,
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reset_settings() -> None:
    """Forget the cached instance (tests, config reloads)."""
    global _settings
    _settings = None
