from __future__ import annotations

import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _fresh_catalog_cache():
    from cineclub.core.enricher import CATALOG_LOOKUP_CACHE

    CATALOG_LOOKUP_CACHE.clear()
    yield
    CATALOG_LOOKUP_CACHE.clear()
