"""
Centralized settings and path configuration for the estimators.
"""
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


PACKAGE_ROOT = Path(__file__).resolve().parent.parent


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Installed without the source tree
    return PACKAGE_ROOT


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path

    # Rule tables and predicate rules
    rules_dir: Path

    # Calculator directory listing
    catalog_csv: Path
    categories_csv: Path

    log_level: str = 'INFO'
    rounding_places: int = 2

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the package layout, with environment overrides."""
        root = project_root or get_project_root()
        rules_dir = os.environ.get('CALCVERSE_RULES_DIR')
        catalog = os.environ.get('CALCVERSE_CATALOG')
        categories = os.environ.get('CALCVERSE_CATEGORIES')

        return cls(
            project_root=root,
            rules_dir=Path(rules_dir) if rules_dir else PACKAGE_ROOT / 'rules' / 'data',
            catalog_csv=Path(catalog) if catalog else PACKAGE_ROOT / 'services' / 'calculators.csv',
            categories_csv=Path(categories) if categories else PACKAGE_ROOT / 'services' / 'categories.csv',
            log_level=os.environ.get('CALCVERSE_LOG_LEVEL', 'INFO').upper(),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
