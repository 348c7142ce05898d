"""
traitctl MCP Tools — 8 trait tools for MCP integration.

Thin wrappers around a loaded TraitSession.  Each tool follows the same
order:

    ① Argument parsing  — tolerant (comma-separated lists, optional flags)
    ② Tool execution    — session call
    ③ Audit log         — always, including on failure (in finally block)

Tool hierarchy:
    QUERY:   trait_search, trait_stats, trait_sample
    TRAITS:  trait_list, trait_add, trait_toggle, trait_delete, trait_check
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Dict, List, Optional

from traitctl.features import extract_emojis
from traitctl.sandbox import check_code, execute_predicate
from traitctl.search import SearchFilters
from traitctl.session import TraitSession
from traitctl.types import ContentItem

logger = logging.getLogger(__name__)

_MAX_LIMIT = 200


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def register_trait_tools(
    mcp,
    session: TraitSession,
    *,
    audit=None,
) -> None:
    """
    Register all 8 trait MCP tools on a FastMCP server instance.

    Args:
        mcp: FastMCP server instance.
        session: TraitSession with its dataset loaded.
        audit: AuditLogger for structured logging.
    """
    from traitctl.mcp.audit import AuditLogger

    if audit is None:
        audit = AuditLogger()

    def _item(item: ContentItem) -> Dict[str, Any]:
        d = item.to_dict()
        d["traits"] = session.enabled_traits(item)
        return d

    # =====================================================================
    # QUERY
    # =====================================================================

    @mcp.tool()
    def trait_search(
        query: str = "",
        traits: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
        sort_by: str = "newest",
        is_quote: Optional[bool] = None,
        has_image: Optional[bool] = None,
        has_link: Optional[bool] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        emojis: Optional[str] = None,
        one_word: bool = False,
        longform: bool = False,
        min_likes: Optional[int] = None,
        min_replies: Optional[int] = None,
        time_bucket: Optional[str] = None,
        time_pattern: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Search posts by text, structure, engagement, time and traits.

        Args:
            query: Case-insensitive substring (own text or quoted text).
            traits: Comma-separated trait names; items must carry all enabled ones.
            limit: Page size (max 200).
            offset: Results to skip.
            sort_by: newest|likes|replies.
            is_quote / has_image / has_link: Structural filters.
            date_from / date_to: Inclusive ISO-8601 bounds.
            emojis: Emoji characters (any separator); any of them in the post's own text.
            one_word / longform: Text-shape filters.
            min_likes / min_replies: Engagement thresholds.
            time_bucket: midnight|morning|lunch (Los Angeles time).
            time_pattern: topOfHour|buzzerBeater|elevenEleven|duplicities.

        Returns:
            total, items, facets and (for empty results) suggestions.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {}
        try:
            filters = SearchFilters(
                q=query or None,
                offset=max(0, offset),
                limit=max(0, min(limit, _MAX_LIMIT)),
                is_quote=is_quote,
                has_image=has_image,
                has_link=has_link,
                date_from=date_from,
                date_to=date_to,
                emojis=extract_emojis(emojis),
                one_word=one_word,
                longform=longform,
                min_likes=min_likes,
                min_replies=min_replies,
                sort_by=sort_by,
                time_bucket=time_bucket,
                time_pattern=time_pattern,
            )
            response = session.search(filters, traits=_split_csv(traits))
            detail = {"query_len": len(query), "total": response.total}
            result: Dict[str, Any] = {
                "status": "ok",
                "total": response.total,
                "count": len(response.results),
                "items": [_item(it) for it in response.results],
                "facets": response.facets.to_dict(),
            }
            if response.suggestions:
                result["suggestions"] = [
                    {"score": round(s.score, 4), "item": _item(s.item)}
                    for s in response.suggestions
                ]
            return result
        except Exception as e:
            outcome = "error"
            return {"status": "error", "message": f"Search failed: {e}"}
        finally:
            audit.log("trait_search", rid, outcome, detail,
                      (time.monotonic() - t0) * 1000)

    @mcp.tool()
    def trait_stats() -> Dict[str, Any]:
        """Per-trait match counts, percentages and the traits-per-post distribution."""
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        try:
            stats = session.statistics()
            return {
                "status": "ok",
                "total_items": len(session.items),
                **stats.to_dict(),
                "percent_by_trait": session.percent_by_trait(),
            }
        except Exception as e:
            outcome = "error"
            return {"status": "error", "message": f"Stats failed: {e}"}
        finally:
            audit.log("trait_stats", rid, outcome, None,
                      (time.monotonic() - t0) * 1000)

    @mcp.tool()
    def trait_sample(k: int = 3, seed: Optional[int] = None) -> Dict[str, Any]:
        """Weighted random posts (favours engagement, media and trait-rich posts).

        Args:
            k: Number of distinct posts (default 3).
            seed: Optional seed for a reproducible draw.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {"k": k}
        try:
            rng = random.Random(seed) if seed is not None else None
            picks = session.sample(k=max(0, min(k, _MAX_LIMIT)), rng=rng)
            detail["count"] = len(picks)
            return {"status": "ok", "count": len(picks), "items": [_item(it) for it in picks]}
        except Exception as e:
            outcome = "error"
            return {"status": "error", "message": f"Sample failed: {e}"}
        finally:
            audit.log("trait_sample", rid, outcome, detail,
                      (time.monotonic() - t0) * 1000)

    # =====================================================================
    # TRAITS
    # =====================================================================

    @mcp.tool()
    def trait_list() -> Dict[str, Any]:
        """List all traits with code, description, enabled state and match count."""
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        try:
            counts = session.statistics().counts_by_trait
            traits = [
                {"name": name, **t.to_dict(), "matches": counts.get(name)}
                for name, t in session.registry.items()
            ]
            return {"status": "ok", "count": len(traits), "traits": traits}
        except Exception as e:
            outcome = "error"
            return {"status": "error", "message": f"List failed: {e}"}
        finally:
            audit.log("trait_list", rid, outcome, None,
                      (time.monotonic() - t0) * 1000)

    @mcp.tool()
    def trait_add(
        name: str,
        code: str,
        description: str = "",
        enabled: bool = True,
    ) -> Dict[str, Any]:
        """Add or replace a trait. Code that does not compile is rejected.

        Args:
            name: Trait name (case-sensitive; an existing name is replaced).
            code: Expression, e.g. 'lambda item: has_url(item.text)'.
            description: Human description (never evaluated).
            enabled: Initial state.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {"name": name, "code": audit.make_code_detail(code)}
        try:
            error = check_code(code)
            if error:
                outcome = "rejected"
                return {"status": "rejected", "message": f"Code does not compile: {error}"}
            replaced = name in session.registry
            session.add_trait(name, code, description, enabled=enabled)
            matches = session.statistics().counts_by_trait.get(name)
            return {"status": "ok", "name": name, "replaced": replaced, "matches": matches}
        except ValueError as e:
            outcome = "rejected"
            return {"status": "rejected", "message": str(e)}
        except Exception as e:
            outcome = "error"
            return {"status": "error", "message": f"Add failed: {e}"}
        finally:
            audit.log("trait_add", rid, outcome, detail,
                      (time.monotonic() - t0) * 1000)

    @mcp.tool()
    def trait_toggle(name: str, enabled: Optional[bool] = None) -> Dict[str, Any]:
        """Enable or disable a trait (flips it when ``enabled`` is omitted)."""
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        try:
            new_state = session.toggle_trait(name, enabled)
            return {"status": "ok", "name": name, "enabled": new_state}
        except KeyError:
            outcome = "rejected"
            return {"status": "not_found", "message": f"Unknown trait: {name}"}
        except Exception as e:
            outcome = "error"
            return {"status": "error", "message": f"Toggle failed: {e}"}
        finally:
            audit.log("trait_toggle", rid, outcome, {"name": name},
                      (time.monotonic() - t0) * 1000)

    @mcp.tool()
    def trait_delete(name: str) -> Dict[str, Any]:
        """Delete a trait and prune it from the index."""
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        try:
            if not session.delete_trait(name):
                outcome = "rejected"
                return {"status": "not_found", "message": f"Unknown trait: {name}"}
            return {"status": "ok", "name": name}
        except Exception as e:
            outcome = "error"
            return {"status": "error", "message": f"Delete failed: {e}"}
        finally:
            audit.log("trait_delete", rid, outcome, {"name": name},
                      (time.monotonic() - t0) * 1000)

    @mcp.tool()
    def trait_check(code: str) -> Dict[str, Any]:
        """Compile-check trait code and count how many posts it would match."""
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        try:
            error = check_code(code)
            if error:
                return {"status": "ok", "ok": False, "error": error}
            matches = sum(1 for it in session.items if execute_predicate(code, it))
            return {"status": "ok", "ok": True, "matches": matches, "total": len(session.items)}
        except Exception as e:
            outcome = "error"
            return {"status": "error", "message": f"Check failed: {e}"}
        finally:
            audit.log("trait_check", rid, outcome, audit.make_code_detail(code),
                      (time.monotonic() - t0) * 1000)
