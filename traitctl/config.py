"""
traitctl Configuration

Configuration dataclasses for traitctl: store, search, sampler and LLM
settings.  Includes load_config() for reading a JSON config file with
silent fallback to compiled defaults.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from traitctl.features import DEFAULT_TIMEZONE


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(ValueError):
    """Raised when config values are out of valid range."""

    pass


_NUMBER = (int, float)


def _check_range(
    errors: List[str], name: str, value, lo, hi, typ=None,
) -> None:
    """Append an error message if value is out of [lo, hi] or wrong type."""
    if typ is not None and (isinstance(value, bool) or not isinstance(value, typ)):
        expected = "number" if typ is _NUMBER else typ.__name__
        errors.append(f"{name}: expected {expected}, got {type(value).__name__}")
        return
    if value < lo or value > hi:
        errors.append(f"{name}: {value} not in [{lo}, {hi}]")


@dataclass
class StoreConfig:
    """SQLite key-value store configuration."""
    db_path: str = ".traitctl/traits.db"
    wal_mode: bool = True
    max_value_bytes: int = 5 * 1024 * 1024

    def validate(self) -> List[str]:
        """Return list of validation error messages (empty = valid)."""
        errors: List[str] = []
        _check_range(errors, "store.max_value_bytes",
                      self.max_value_bytes, 1024, 1024 * 1024 * 1024, int)
        return errors


@dataclass
class SearchConfig:
    """Search, facet and suggestion settings."""
    timezone: str = DEFAULT_TIMEZONE
    long_form_chars: int = 240
    top_emojis: int = 10
    max_suggestions: int = 5
    word_weight: float = 0.6
    trigram_weight: float = 0.4

    def validate(self) -> List[str]:
        """Return list of validation error messages (empty = valid)."""
        errors: List[str] = []
        if not self.timezone:
            errors.append("search.timezone: must not be empty")
        _check_range(errors, "search.long_form_chars",
                      self.long_form_chars, 1, 100000, int)
        _check_range(errors, "search.top_emojis",
                      self.top_emojis, 0, 1000, int)
        _check_range(errors, "search.max_suggestions",
                      self.max_suggestions, 0, 100, int)
        _check_range(errors, "search.word_weight",
                      self.word_weight, 0.0, 1.0, _NUMBER)
        _check_range(errors, "search.trigram_weight",
                      self.trigram_weight, 0.0, 1.0, _NUMBER)
        return errors


@dataclass
class SamplerConfig:
    """Weighted sampler coefficients."""
    sample_size: int = 3
    trait_cap: int = 5
    likes_factor: float = 0.5
    replies_factor: float = 0.3
    image_bonus: float = 1.0
    link_bonus: float = 0.5
    quote_bonus: float = 0.3
    trait_factor: float = 0.4

    def validate(self) -> List[str]:
        """Return list of validation error messages (empty = valid)."""
        errors: List[str] = []
        _check_range(errors, "sampler.sample_size",
                      self.sample_size, 1, 1000, int)
        _check_range(errors, "sampler.trait_cap",
                      self.trait_cap, 0, 1000, int)
        for name in ("likes_factor", "replies_factor", "image_bonus",
                     "link_bonus", "quote_bonus", "trait_factor"):
            _check_range(errors, f"sampler.{name}",
                          getattr(self, name), 0.0, 100.0, _NUMBER)
        return errors


@dataclass
class LLMConfig:
    """Trait generation via an external LLM command."""
    cmd: str = ""
    timeout: int = 120

    def validate(self) -> List[str]:
        """Return list of validation error messages (empty = valid)."""
        errors: List[str] = []
        _check_range(errors, "llm.timeout", self.timeout, 1, 3600, int)
        return errors


@dataclass
class TraitctlConfig:
    """Top-level traitctl configuration."""
    store: StoreConfig = field(default_factory=StoreConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> TraitctlConfig:
        """Build config from a nested dict (e.g. JSON)."""
        kwargs: Dict[str, Any] = {}
        if "store" in d:
            kwargs["store"] = StoreConfig(**d["store"])
        if "search" in d:
            kwargs["search"] = SearchConfig(**d["search"])
        if "sampler" in d:
            kwargs["sampler"] = SamplerConfig(**d["sampler"])
        if "llm" in d:
            kwargs["llm"] = LLMConfig(**d["llm"])
        return cls(**kwargs)

    def validate(self) -> List[str]:
        """Validate all config sections. Returns list of error messages."""
        errors: List[str] = []
        errors.extend(self.store.validate())
        errors.extend(self.search.validate())
        errors.extend(self.sampler.validate())
        errors.extend(self.llm.validate())
        return errors


def load_config(
    path: Optional[str] = None, *, strict: bool = False,
) -> TraitctlConfig:
    """Load config from a JSON file. Returns defaults if file missing/invalid.

    Args:
        path: Path to config.json. If None, returns compiled defaults.
        strict: If True, raise ValidationError on invalid config values.

    Returns:
        TraitctlConfig with values from file or defaults.

    Raises:
        ValidationError: If strict=True and config values are out of range.
    """
    if path is None:
        cfg = TraitctlConfig()
    else:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            cfg = TraitctlConfig.from_dict(data)
        except (FileNotFoundError, json.JSONDecodeError, TypeError, KeyError):
            cfg = TraitctlConfig()

    if strict:
        errors = cfg.validate()
        if errors:
            raise ValidationError(
                f"Config validation failed: {'; '.join(errors)}"
            )

    return cfg
