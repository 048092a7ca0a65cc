"""
Calculator Directory - search, filter and group the calculator catalog.

The catalog is a read-only CSV (one row per calculator, tags separated by
';'). Category display names come from a second CSV keyed by slug.
"""
import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from ..config.settings import get_settings

logger = logging.getLogger(__name__)

ALL = 'all'
OTHER_CATEGORY = 'Other'
TAG_SEPARATOR = ';'


def load_catalog(path: Optional[Path] = None) -> pd.DataFrame:
    """Load the calculator catalog."""
    path = path or get_settings().catalog_csv
    if not path.exists():
        raise FileNotFoundError(f"Calculator catalog not found at {path}")

    catalog = pd.read_csv(path, dtype=str, keep_default_na=False)
    catalog['popular'] = catalog['popular'].str.strip().str.lower() == 'true'
    catalog['tags'] = catalog['tags'].apply(
        lambda raw: [t.strip() for t in raw.split(TAG_SEPARATOR) if t.strip()]
    )
    logger.info("Loaded %d calculators from %s", len(catalog), path.name)
    return catalog


def load_category_names(path: Optional[Path] = None) -> dict[str, str]:
    """Category slug -> display name."""
    path = path or get_settings().categories_csv
    categories = pd.read_csv(path, dtype=str, keep_default_na=False)
    return dict(zip(categories['slug'], categories['name']))


def filter_calculators(
    catalog: pd.DataFrame,
    query: str = '',
    category: str = ALL,
    difficulty: str = ALL,
    popular_only: bool = False,
) -> pd.DataFrame:
    """
    Filter the catalog the way the directory page does.

    The query matches name, description or any tag, case-insensitively.
    'all' disables the category and difficulty filters.
    """
    filtered = catalog

    if query.strip():
        needle = query.lower()
        in_text = (
            filtered['name'].str.lower().str.contains(needle, regex=False)
            | filtered['description'].str.lower().str.contains(needle, regex=False)
        )
        in_tags = filtered['tags'].apply(lambda tags: any(needle in t.lower() for t in tags))
        filtered = filtered[in_text | in_tags]

    if category != ALL:
        filtered = filtered[filtered['category'] == category]

    if difficulty != ALL:
        filtered = filtered[filtered['difficulty'] == difficulty]

    if popular_only:
        filtered = filtered[filtered['popular']]

    return filtered


def group_by_category(catalog: pd.DataFrame, category_names: dict[str, str]) -> list[tuple[str, pd.DataFrame]]:
    """
    Group calculators under their category display name.

    Unknown slugs fall under 'Other'. Larger groups come first; ties keep
    the order in which the category first appears.
    """
    names = catalog['category'].map(lambda slug: category_names.get(slug) or OTHER_CATEGORY)
    groups = [(name, group) for name, group in catalog.groupby(names, sort=False)]
    return sorted(groups, key=lambda item: len(item[1]), reverse=True)
