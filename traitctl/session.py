"""
Session state and its update protocol.

State is explicit and immutable; every change goes through

    state = update(state, event)

where events are plain frozen dataclasses.  ``update`` is pure: it never
touches storage.  ``TraitSession`` is the effectful shell around it that
loads and persists the registry and the index record.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from traitctl import index as trait_index
from traitctl import persistence
from traitctl.config import SamplerConfig, SearchConfig
from traitctl.defaults import default_traits
from traitctl.sampler import sample as weighted_sample
from traitctl.search import SearchFilters, SearchResponse, search
from traitctl.stats import TraitStatistics, aggregate
from traitctl.stats import percent_by_trait as _percent_by_trait
from traitctl.store import KVStore
from traitctl.types import (
    ContentItem,
    TraitDefinition,
    TraitIndex,
    TraitsRegistry,
    stable_key,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# State & events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SessionState:
    items: Tuple[ContentItem, ...] = ()
    registry: Dict[str, TraitDefinition] = field(default_factory=dict)
    index: Dict[str, List[str]] = field(default_factory=dict)
    indexed: bool = False


@dataclass(frozen=True)
class DatasetLoaded:
    items: Tuple[ContentItem, ...]


@dataclass(frozen=True)
class RegistryLoaded:
    registry: Dict[str, TraitDefinition]


@dataclass(frozen=True)
class TraitAdded:
    """Insert or replace a trait (replacement is the edit path)."""

    name: str
    definition: TraitDefinition


@dataclass(frozen=True)
class TraitToggled:
    name: str
    enabled: bool


@dataclass(frozen=True)
class TraitDeleted:
    name: str


@dataclass(frozen=True)
class IndexRebuilt:
    index: Dict[str, List[str]]


Event = Union[DatasetLoaded, RegistryLoaded, TraitAdded, TraitToggled, TraitDeleted, IndexRebuilt]


def update(state: SessionState, event: Event) -> SessionState:
    """Next state for an event. Inputs are never mutated.

    Raises:
        KeyError: If a toggle names an unknown trait.
        TypeError: If the event type is unknown.
    """
    if isinstance(event, DatasetLoaded):
        return replace(state, items=tuple(event.items), index={}, indexed=False)

    if isinstance(event, RegistryLoaded):
        return replace(state, registry=dict(event.registry), index={}, indexed=False)

    if isinstance(event, TraitAdded):
        registry = dict(state.registry)
        registry[event.name] = event.definition
        if not state.indexed:
            return replace(state, registry=registry)
        new_index = trait_index.apply_one(
            state.items, event.name, event.definition.code, state.index,
        )
        return replace(state, registry=registry, index=new_index)

    if isinstance(event, TraitToggled):
        if event.name not in state.registry:
            raise KeyError(event.name)
        registry = dict(state.registry)
        registry[event.name] = replace(registry[event.name], enabled=event.enabled)
        return replace(state, registry=registry)

    if isinstance(event, TraitDeleted):
        registry = {k: v for k, v in state.registry.items() if k != event.name}
        return replace(
            state, registry=registry,
            index=trait_index.remove_trait(state.index, event.name),
        )

    if isinstance(event, IndexRebuilt):
        return replace(state, index=dict(event.index), indexed=True)

    raise TypeError(f"Unknown session event: {type(event).__name__}")


# ---------------------------------------------------------------------------
# Effectful session
# ---------------------------------------------------------------------------


class TraitSession:
    """
    One user session over one dataset.

    Persists the registry on every registry change and the index record
    on every index change.  Without a store, or when the store refuses a
    write, the session keeps working in memory.
    """

    def __init__(
        self,
        store: Optional[KVStore] = None,
        *,
        search_config: Optional[SearchConfig] = None,
        sampler_config: Optional[SamplerConfig] = None,
    ):
        self.store = store
        self.search_config = search_config or SearchConfig()
        self.sampler_config = sampler_config or SamplerConfig()
        self.state = SessionState()

    # -- accessors ---------------------------------------------------------

    @property
    def items(self) -> Tuple[ContentItem, ...]:
        return self.state.items

    @property
    def registry(self) -> TraitsRegistry:
        return self.state.registry

    @property
    def index(self) -> TraitIndex:
        return self.state.index

    def enabled_traits(self, item: ContentItem) -> List[str]:
        return trait_index.enabled_traits_for(stable_key(item), self.index, self.registry)

    # -- persistence helpers -----------------------------------------------

    def _dispatch(self, event: Event) -> None:
        self.state = update(self.state, event)

    def _save_registry(self) -> None:
        if self.store is not None:
            persistence.save_registry(self.store, self.registry)

    def _save_index(self) -> None:
        if self.store is not None and self.state.indexed:
            persistence.save_index(self.store, self.index, self.items, self.registry)

    # -- lifecycle ---------------------------------------------------------

    def load_registry(self) -> TraitsRegistry:
        """Stored registry, or the default pack (seeded) when none is stored.

        Leaves the session unindexed; trait edits made before
        ``load_dataset`` only touch the registry.
        """
        registry = persistence.load_registry(self.store) if self.store is not None else None
        if not registry:
            self._dispatch(RegistryLoaded(default_traits()))
            self._save_registry()
        else:
            self._dispatch(RegistryLoaded(registry))
        return self.registry

    def load_dataset(self, items: Sequence[ContentItem]) -> None:
        """Load items, the registry (stored or default pack) and the index.

        The index comes from the cached record when its signatures match,
        otherwise from a full rebuild that is then persisted.
        """
        self._dispatch(DatasetLoaded(tuple(items)))
        self.load_registry()

        cached = (
            persistence.load_index(self.store, self.items, self.registry)
            if self.store is not None else None
        )
        if cached is not None:
            logger.info("Using cached trait index (%d entries)", len(cached))
            self._dispatch(IndexRebuilt(cached))
        else:
            self.reindex()

    def reindex(self) -> TraitIndex:
        """Full rebuild over every trait, persisted."""
        self._dispatch(IndexRebuilt(trait_index.rebuild_all(self.items, self.registry)))
        self._save_index()
        return self.index

    # -- trait management --------------------------------------------------

    def add_trait(
        self, name: str, code: str, description: str = "", *, enabled: bool = True,
    ) -> TraitDefinition:
        """Insert or replace a trait and index it.

        Raises:
            ValueError: If name is empty.
        """
        name = name.strip()
        if not name:
            raise ValueError("Trait name must not be empty")
        definition = TraitDefinition(code=code, description=description, enabled=enabled)
        self._dispatch(TraitAdded(name, definition))
        self._save_registry()
        self._save_index()
        return definition

    def edit_trait(
        self,
        name: str,
        *,
        code: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TraitDefinition:
        """Change code and/or description, keeping creation time and enabled state.

        Raises:
            KeyError: If the trait does not exist.
        """
        current = self.registry[name]
        definition = replace(
            current,
            code=current.code if code is None else code,
            description=current.description if description is None else description,
        )
        self._dispatch(TraitAdded(name, definition))
        self._save_registry()
        self._save_index()
        return definition

    def toggle_trait(self, name: str, enabled: Optional[bool] = None) -> bool:
        """Set (or flip) a trait's enabled flag. Returns the new state.

        Raises:
            KeyError: If the trait does not exist.
        """
        current = self.registry[name]
        new_state = (not current.enabled) if enabled is None else bool(enabled)
        self._dispatch(TraitToggled(name, new_state))
        self._save_registry()
        self._save_index()
        return new_state

    def delete_trait(self, name: str) -> bool:
        """Remove a trait and prune it from the index. False if unknown."""
        if name not in self.registry:
            return False
        self._dispatch(TraitDeleted(name))
        self._save_registry()
        self._save_index()
        return True

    def rename_trait(self, old: str, new: str) -> TraitDefinition:
        """Delete ``old`` and insert its definition under ``new``.

        Raises:
            KeyError: If ``old`` does not exist.
            ValueError: If ``new`` is empty or already taken.
        """
        definition = self.registry[old]
        new = new.strip()
        if not new:
            raise ValueError("Trait name must not be empty")
        if new != old and new in self.registry:
            raise ValueError(f"Trait already exists: {new}")
        if new == old:
            return definition
        self._dispatch(TraitDeleted(old))
        self._dispatch(TraitAdded(new, definition))
        self._save_registry()
        self._save_index()
        return definition

    # -- queries -----------------------------------------------------------

    def search(
        self, filters: SearchFilters, traits: Iterable[str] = (),
    ) -> SearchResponse:
        """Search, restricted first to items carrying every selected enabled trait."""
        pool = trait_index.filter_by_traits(self.items, self.index, self.registry, traits)
        return search(pool, filters, self.search_config)

    def statistics(self) -> TraitStatistics:
        return aggregate(self.index, self.registry)

    def percent_by_trait(self) -> Dict[str, float]:
        return _percent_by_trait(self.statistics(), len(self.items))

    def sample(
        self, k: Optional[int] = None, rng: Optional[random.Random] = None,
    ) -> List[ContentItem]:
        return weighted_sample(
            self.items, self.index, self.registry,
            k=self.sampler_config.sample_size if k is None else k,
            rng=rng, config=self.sampler_config,
        )
