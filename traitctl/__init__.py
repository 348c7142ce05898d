"""
traitctl — User-defined traits over a corpus of social posts.

Traits are small boolean expressions evaluated against every post.
Their results are indexed, cached in SQLite, and drive search filters,
statistics, and a weighted random sampler.
"""

__version__ = "0.1.0"

from traitctl.types import (
    ContentItem,
    TraitDefinition,
    stable_key,
)
from traitctl.store import KVStore, SCHEMA_VERSION
from traitctl.config import TraitctlConfig
from traitctl.search import SearchFilters
from traitctl.session import TraitSession

__all__ = [
    "__version__",
    "ContentItem",
    "TraitDefinition",
    "stable_key",
    "KVStore",
    "SCHEMA_VERSION",
    "TraitctlConfig",
    "SearchFilters",
    "TraitSession",
]
