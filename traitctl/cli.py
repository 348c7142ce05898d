"""
traitctl CLI — Trait Commands over a Post Corpus

Commands:
    traitctl init   [PATH]                      — scaffold store + config + default traits
    traitctl traits                             — list traits
    traitctl add    NAME CODE [-d DESC]         — add or replace a trait
    traitctl generate NAME DESC [--add]         — ask an LLM for trait code
    traitctl enable|disable NAME                — toggle a trait
    traitctl delete NAME                        — delete a trait
    traitctl rename OLD NEW                     — rename a trait
    traitctl check  CODE                        — compile-check trait code
    traitctl search [QUERY] [filters...]        — filter, rank, paginate posts
    traitctl stats                              — trait counts and distribution
    traitctl sample [-k N] [--seed S]           — weighted random picks
    traitctl reindex                            — force a full index rebuild
    traitctl store  [--clear-index]             — inspect the store, drop the cached index
    traitctl serve                              — start MCP server (foreground)

Environment variables:
    TRAITCTL_DB      Path to SQLite database (default: .traitctl/traits.db)
    TRAITCTL_DATA    Path to the dataset (JSON list, {"casts": [...]}, or JSONL)
    TRAITCTL_CONFIG  Path to config.json
    TRAITCTL_LLM     LLM command for `generate` (e.g. "claude -p")

Precedence (invariant):
    CLI --flag  >  TRAITCTL_* env var  >  config file  >  compiled default

Exit codes:
    0  Success (including idempotent no-op)
    1  Operational error (bad args, unknown trait, missing dataset)
    2  Internal failure (unexpected exception, I/O error)
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import random
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from traitctl.config import TraitctlConfig, load_config

logger = logging.getLogger(__name__)

_DEFAULT_DB = ".traitctl/traits.db"


# ---------------------------------------------------------------------------
# Env parsing (never crash on bad export)
# ---------------------------------------------------------------------------


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    """Parse string env var with fallback (empty counts as unset)."""
    return os.environ.get(name) or default


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


def _resolve_config(args: Optional[argparse.Namespace] = None) -> TraitctlConfig:
    """Resolve config: CLI --config > TRAITCTL_CONFIG > compiled defaults."""
    path = getattr(args, "config", None) if args else None
    return load_config(path or _env_str("TRAITCTL_CONFIG"))


def _resolve_db(args: Optional[argparse.Namespace], cfg: TraitctlConfig) -> str:
    """Resolve database path: CLI --db > TRAITCTL_DB > config > .traitctl/traits.db."""
    if args and getattr(args, "db", None):
        return args.db
    return _env_str("TRAITCTL_DB") or cfg.store.db_path or _DEFAULT_DB


def _resolve_data(args: Optional[argparse.Namespace] = None) -> Optional[str]:
    """Resolve dataset path: CLI --data > TRAITCTL_DATA > none."""
    if args and getattr(args, "data", None):
        return args.data
    return _env_str("TRAITCTL_DATA")


def _resolve_llm(args: argparse.Namespace, cfg: TraitctlConfig) -> Optional[str]:
    """Resolve LLM command: CLI --llm > TRAITCTL_LLM > config llm.cmd."""
    if getattr(args, "llm", None):
        return args.llm
    return _env_str("TRAITCTL_LLM") or cfg.llm.cmd or None


# ---------------------------------------------------------------------------
# Store / session factory
# ---------------------------------------------------------------------------


def _open_store(db_path: str, cfg: TraitctlConfig):
    """Open a KVStore. Creates the DB and parent dirs if needed."""
    from traitctl.store import KVStore
    return KVStore(
        db_path=db_path,
        wal_mode=cfg.store.wal_mode,
        max_value_bytes=cfg.store.max_value_bytes,
    )


def _open_session(args: argparse.Namespace, *, need_data: bool):
    """Open store + session. Loads the dataset when one is configured.

    With ``need_data`` and no dataset, exits with code 1.
    """
    from traitctl.dataset import DatasetError, load_items
    from traitctl.session import TraitSession

    cfg = _resolve_config(args)
    store = _open_store(_resolve_db(args, cfg), cfg)
    session = TraitSession(store, search_config=cfg.search, sampler_config=cfg.sampler)

    data_path = _resolve_data(args)
    if data_path is None:
        if need_data:
            _warn("No dataset: pass --data or set TRAITCTL_DATA")
            store.close()
            sys.exit(1)
        session.load_registry()
        return session

    try:
        items = load_items(data_path)
    except DatasetError as e:
        _warn(f"Error: {e}")
        store.close()
        sys.exit(1)
    session.load_dataset(items)
    _info(f"Loaded {len(items)} item(s), {len(session.registry)} trait(s)")
    return session


# ---------------------------------------------------------------------------
# Stderr helpers (respect --quiet)
# ---------------------------------------------------------------------------

_quiet = False


def _info(msg: str) -> None:
    """Print progress to stderr (suppressed by --quiet)."""
    if not _quiet:
        print(msg, file=sys.stderr)


def _warn(msg: str) -> None:
    """Print warning to stderr (always visible)."""
    print(msg, file=sys.stderr)


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _preview(text: Optional[str], width: int = 80) -> str:
    s = " ".join((text or "").split())
    return s if len(s) <= width else s[:width - 3] + "..."


def _print_item(session, item) -> None:
    likes = item.likes
    replies = item.reply_count
    print(f"  {item.id or '-'}  {item.timestamp or '-'}  likes={likes} replies={replies}")
    print(f"    {_preview(item.text)}")
    traits = session.enabled_traits(item)
    if traits:
        print(f"    traits: {', '.join(traits)}")


def _item_json(session, item) -> Dict[str, Any]:
    d = item.to_dict()
    d["traits"] = session.enabled_traits(item)
    return d


# ===========================================================================
# Command: init
# ===========================================================================


def cmd_init(args: argparse.Namespace) -> None:
    """Initialize a trait workspace: database, config.json, .gitignore."""
    from traitctl.session import TraitSession

    target = Path(args.path).resolve()
    db_path = target / "traits.db"

    if db_path.exists() and not args.force:
        # Idempotent: print paths, exit 0 (not error)
        _info(f"Workspace exists: {target}")
        _info(f"  Database:  {db_path}")
        print(f'export TRAITCTL_DB="{db_path}"')
        return

    if args.force and db_path.exists():
        db_path.unlink()
        for suffix in ("-wal", "-shm"):
            p = db_path.parent / (db_path.name + suffix)
            if p.exists():
                p.unlink()

    target.mkdir(parents=True, exist_ok=True)

    cfg = TraitctlConfig()
    cfg.store.db_path = str(db_path)
    store = _open_store(str(db_path), cfg)
    registry = TraitSession(store).load_registry()
    store.close()

    config_path = target / "config.json"
    if not config_path.exists():
        config_path.write_text(
            json.dumps(asdict(cfg), indent=2) + "\n", encoding="utf-8"
        )

    gitignore_path = target / ".gitignore"
    if not gitignore_path.exists():
        gitignore_path.write_text(
            "*.db\n*.db-wal\n*.db-shm\n", encoding="utf-8"
        )

    _info(f"Trait workspace initialized: {target}")
    _info(f"  Database:  {db_path} ({len(registry)} default traits)")
    _info(f"  Config:    {config_path}")
    _info(f"  .gitignore: {gitignore_path}")
    print(f'export TRAITCTL_DB="{db_path}"')


# ===========================================================================
# Trait management commands
# ===========================================================================


def cmd_traits(args: argparse.Namespace) -> None:
    """List traits with their enabled state and (optionally) match counts."""
    session = _open_session(args, need_data=False)
    counts = session.statistics().counts_by_trait if session.state.indexed else {}

    if getattr(args, "json", False):
        out = []
        for name, t in session.registry.items():
            d = {"name": name, **t.to_dict()}
            if session.state.indexed:
                d["matches"] = counts.get(name)
            out.append(d)
        _print_json(out)
    else:
        print(f"{len(session.registry)} trait(s):\n")
        for name, t in session.registry.items():
            flag = "on " if t.enabled else "off"
            n = f"  ({counts[name]} match)" if name in counts else ""
            print(f"  [{flag}] {name}{n}")
            if t.description:
                print(f"        {t.description}")
            if args.code:
                print(f"        {t.code}")

    session.store.close()


def cmd_add(args: argparse.Namespace) -> None:
    """Add (or replace) a trait."""
    from traitctl.sandbox import check_code

    error = check_code(args.code)
    if error:
        if args.strict:
            _warn(f"Error: trait code does not compile: {error}")
            sys.exit(1)
        _warn(f"Warning: trait code does not compile and will match nothing: {error}")

    session = _open_session(args, need_data=False)
    replaced = args.name in session.registry
    session.add_trait(args.name, args.code, args.description or "", enabled=not args.disabled)
    matches = session.statistics().counts_by_trait.get(args.name) if session.state.indexed else None

    if getattr(args, "json", False):
        _print_json({
            "status": "ok", "name": args.name, "replaced": replaced,
            "error": error, "matches": matches,
        })
    else:
        verb = "Replaced" if replaced else "Added"
        suffix = f" ({matches} match)" if matches is not None else ""
        _info(f"{verb} trait: {args.name}{suffix}")

    session.store.close()


def cmd_generate(args: argparse.Namespace) -> None:
    """Generate trait code from a description via an LLM command."""
    from traitctl.generate import generate_trait

    cfg = _resolve_config(args)
    llm_cmd = _resolve_llm(args, cfg)
    if not llm_cmd:
        _warn("No LLM command: pass --llm or set TRAITCTL_LLM")
        sys.exit(1)

    try:
        result = generate_trait(args.name, args.description, llm_cmd, timeout=cfg.llm.timeout)
    except (ValueError, RuntimeError) as e:
        _warn(f"Error: {e}")
        sys.exit(1)

    if getattr(args, "json", False):
        _print_json(result.to_dict())
    else:
        print(result.code)
    if result.error:
        _warn(f"Warning: generated code does not compile: {result.error}")

    if args.add:
        if result.error:
            _warn("Not adding a trait whose code does not compile.")
            sys.exit(1)
        session = _open_session(args, need_data=False)
        session.add_trait(result.name, result.code, result.description)
        session.store.close()
        _info(f"Added trait: {result.name}")


def _set_enabled(args: argparse.Namespace, enabled: bool) -> None:
    session = _open_session(args, need_data=False)
    try:
        session.toggle_trait(args.name, enabled)
    except KeyError:
        _warn(f"Unknown trait: {args.name}")
        session.store.close()
        sys.exit(1)
    session.store.close()
    _info(f"{'Enabled' if enabled else 'Disabled'} trait: {args.name}")


def cmd_enable(args: argparse.Namespace) -> None:
    """Enable a trait."""
    _set_enabled(args, True)


def cmd_disable(args: argparse.Namespace) -> None:
    """Disable a trait (kept in the index, hidden from readers)."""
    _set_enabled(args, False)


def cmd_delete(args: argparse.Namespace) -> None:
    """Delete a trait and prune it from the index."""
    session = _open_session(args, need_data=False)
    deleted = session.delete_trait(args.name)
    session.store.close()
    if not deleted:
        _warn(f"Unknown trait: {args.name}")
        sys.exit(1)
    _info(f"Deleted trait: {args.name}")


def cmd_rename(args: argparse.Namespace) -> None:
    """Rename a trait."""
    session = _open_session(args, need_data=False)
    try:
        session.rename_trait(args.old, args.new)
    except KeyError:
        _warn(f"Unknown trait: {args.old}")
        session.store.close()
        sys.exit(1)
    except ValueError as e:
        _warn(f"Error: {e}")
        session.store.close()
        sys.exit(1)
    session.store.close()
    _info(f"Renamed trait: {args.old} -> {args.new}")


def cmd_check(args: argparse.Namespace) -> None:
    """Compile-check trait code; with a dataset, also count matches."""
    from traitctl.dataset import DatasetError, load_items
    from traitctl.sandbox import check_code, execute_predicate

    error = check_code(args.code)
    matches: Optional[int] = None
    total: Optional[int] = None
    data_path = _resolve_data(args)
    if error is None and data_path:
        try:
            items = load_items(data_path)
        except DatasetError as e:
            _warn(f"Error: {e}")
            sys.exit(1)
        total = len(items)
        matches = sum(1 for it in items if execute_predicate(args.code, it))

    if getattr(args, "json", False):
        _print_json({"ok": error is None, "error": error, "matches": matches, "total": total})
    elif error is None:
        print("OK" if matches is None else f"OK: matches {matches}/{total} item(s)")
    else:
        print(f"Error: {error}")

    if error is not None:
        sys.exit(1)


# ===========================================================================
# Query commands
# ===========================================================================


def _filters_from_args(args: argparse.Namespace):
    from traitctl.search import SearchFilters
    return SearchFilters.from_dict({
        "q": args.query,
        "offset": args.offset,
        "limit": args.limit,
        "is_quote": args.quote,
        "has_image": args.image,
        "has_link": args.link,
        "date_from": args.date_from,
        "date_to": args.date_to,
        "emojis": args.emoji,
        "one_word": args.one_word,
        "longform": args.longform,
        "min_likes": args.min_likes,
        "min_replies": args.min_replies,
        "sort_by": args.sort,
        "time_bucket": args.bucket,
        "time_pattern": args.pattern,
    })


def cmd_search(args: argparse.Namespace) -> None:
    """Search posts: filters, ranking, pagination, facets, suggestions."""
    session = _open_session(args, need_data=True)
    response = session.search(_filters_from_args(args), traits=args.trait or ())

    if getattr(args, "json", False):
        out = response.to_dict()
        out["results"] = [_item_json(session, it) for it in response.results]
        _print_json(out)
        session.store.close()
        return

    if response.total == 0:
        _info("No results found.")
        if response.suggestions:
            print("Did you mean:\n")
            for s in response.suggestions:
                print(f"  ({s.score:.2f}) {_preview(s.item.text)}")
        session.store.close()
        return

    print(f"Found {response.total} item(s), showing {len(response.results)}:\n")
    for item in response.results:
        _print_item(session, item)
    f = response.facets
    print(f"\n  quotes={f.quotes} images={f.images} links={f.links}")
    if f.top_emojis:
        print("  top emoji: " + " ".join(f"{e.emoji}x{e.count}" for e in f.top_emojis))

    session.store.close()


def cmd_stats(args: argparse.Namespace) -> None:
    """Show trait statistics."""
    session = _open_session(args, need_data=True)
    stats = session.statistics()
    percent = session.percent_by_trait()

    if getattr(args, "json", False):
        out = stats.to_dict()
        out["percent_by_trait"] = percent
        out["total_items"] = len(session.items)
        out["status"] = "ok"
        _print_json(out)
    else:
        print("Trait Statistics")
        print("=" * 40)
        print(f"  Items: {len(session.items)}")
        print("  Traits per item:")
        for bucket, count in stats.distribution.items():
            print(f"    {str(bucket):>3s}: {count}")
        print("  By trait:")
        for name, count in sorted(stats.counts_by_trait.items(), key=lambda kv: -kv[1]):
            print(f"    {name:30s} {count:6d}  {percent.get(name, 0.0):5.1f}%")

    session.store.close()


def cmd_sample(args: argparse.Namespace) -> None:
    """Draw weighted random items without replacement."""
    session = _open_session(args, need_data=True)
    rng = random.Random(args.seed) if args.seed is not None else None
    picks = session.sample(k=args.k, rng=rng)

    if getattr(args, "json", False):
        _print_json([_item_json(session, it) for it in picks])
    else:
        if not picks:
            _info("Dataset is empty.")
        for item in picks:
            _print_item(session, item)

    session.store.close()


def cmd_reindex(args: argparse.Namespace) -> None:
    """Force a full trait index rebuild."""
    session = _open_session(args, need_data=True)
    index = session.reindex()
    _info(f"Reindexed {len(index)} item(s) x {len(session.registry)} trait(s)")
    if getattr(args, "json", False):
        _print_json({"status": "ok", "items": len(index), "traits": len(session.registry)})
    session.store.close()


def cmd_store(args: argparse.Namespace) -> None:
    """Show what the SQLite store holds; optionally drop the cached index."""
    from traitctl.persistence import INDEX_KEY

    cfg = _resolve_config(args)
    store = _open_store(_resolve_db(args, cfg), cfg)
    if args.clear_index:
        if store.delete(INDEX_KEY):
            _info("Cleared cached trait index (rebuilt on next load)")
        else:
            _info("No cached trait index")

    info = store.stats()
    if getattr(args, "json", False):
        _print_json(info)
    else:
        print(f"Store: {info['db_path']}")
        print(f"  Schema version: {info['schema_version']}")
        print(f"  Keys: {info['keys']} ({info['total_bytes']} bytes)")
        for key in store.keys():
            print(f"    {key}")

    store.close()


# ===========================================================================
# Command: serve  (start MCP server)
# ===========================================================================


def cmd_serve(args: argparse.Namespace) -> None:
    """Start the traitctl MCP server in foreground."""
    try:
        from traitctl.mcp.server import create_server, build_parser as mcp_parser
    except ImportError:
        _warn("MCP dependencies not installed. Run: pip install traitctl[mcp]")
        sys.exit(1)

    cfg = _resolve_config(args)
    server_argv = ["--db", _resolve_db(args, cfg)]
    data_path = _resolve_data(args)
    if data_path:
        server_argv.extend(["--data", data_path])
    config_path = getattr(args, "config", None) or _env_str("TRAITCTL_CONFIG")
    if config_path:
        server_argv.extend(["--config", config_path])
    if getattr(args, "verbose", False):
        server_argv.append("--verbose")

    server_args = mcp_parser().parse_args(server_argv)

    try:
        mcp, _ = create_server(server_args)
    except ImportError:
        _warn("MCP dependencies not installed. Run: pip install traitctl[mcp]")
        sys.exit(1)

    _info(f"traitctl MCP server (db={server_args.db})")
    _info("Press Ctrl+C to stop.")
    mcp.run()


# ===========================================================================
# Shared argument helper
# ===========================================================================


def _add_filter_arguments(p: argparse.ArgumentParser) -> None:
    """Register search filter arguments on a parser."""
    from traitctl.search import SORT_KEYS, TIME_BUCKETS, TIME_PATTERNS

    p.add_argument("query", nargs="?", default=None, help="Text query (substring, case-insensitive)")
    p.add_argument("--limit", type=int, default=20, help="Max results (default: 20)")
    p.add_argument("--offset", type=int, default=0, help="Skip the first N results")
    p.add_argument("--sort", choices=SORT_KEYS, default="newest", help="Sort key (default: newest)")
    p.add_argument("--quote", action=argparse.BooleanOptionalAction, default=None,
                   help="Only quotes (--no-quote: exclude quotes)")
    p.add_argument("--image", action=argparse.BooleanOptionalAction, default=None,
                   help="Only posts with an image")
    p.add_argument("--link", action=argparse.BooleanOptionalAction, default=None,
                   help="Only posts with a link")
    p.add_argument("--from", dest="date_from", default=None, help="Earliest timestamp (ISO)")
    p.add_argument("--to", dest="date_to", default=None, help="Latest timestamp (ISO)")
    p.add_argument("--emoji", action="append", default=None, help="Emoji to match (repeatable)")
    p.add_argument("--one-word", action="store_true", help="Single-word posts")
    p.add_argument("--longform", action="store_true", help="Long posts")
    p.add_argument("--min-likes", type=int, default=None, help="Minimum like count")
    p.add_argument("--min-replies", type=int, default=None, help="Minimum reply count")
    p.add_argument("--bucket", choices=TIME_BUCKETS, default=None, help="Time-of-day bucket")
    p.add_argument("--pattern", choices=TIME_PATTERNS, default=None, help="Clock pattern")
    p.add_argument("--trait", action="append", default=None,
                   help="Require an enabled trait (repeatable)")


# ===========================================================================
# Entry point
# ===========================================================================


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point: traitctl <command> [args]."""
    global _quiet

    # Shared parent with flags that work on all subcommands.
    # SUPPRESS defaults prevent subparser defaults from overriding
    # values parsed at the main-parser level (argparse parents quirk).
    _db_default = _env_str("TRAITCTL_DB", _DEFAULT_DB)
    _common = argparse.ArgumentParser(add_help=False)
    _common.add_argument(
        "--db", default=argparse.SUPPRESS,
        help=f"Path to SQLite database (default: {_db_default})",
    )
    _common.add_argument(
        "--data", default=argparse.SUPPRESS,
        help="Dataset file: JSON list, {\"casts\": [...]} or JSONL (default: TRAITCTL_DATA)",
    )
    _common.add_argument(
        "--config", default=argparse.SUPPRESS,
        help="Path to config.json (default: TRAITCTL_CONFIG)",
    )
    _common.add_argument(
        "--quiet", "-q", action="store_true", default=argparse.SUPPRESS,
        help="Suppress stderr progress messages",
    )
    _common.add_argument(
        "--json", action="store_true", default=argparse.SUPPRESS,
        help="Machine-readable JSON output",
    )
    _common.add_argument(
        "-v", "--verbose", action="store_true", default=argparse.SUPPRESS,
        help="Enable verbose logging",
    )

    parser = argparse.ArgumentParser(
        prog="traitctl",
        description="traitctl — user-defined traits over a post corpus",
        parents=[_common],
    )

    sub = parser.add_subparsers(dest="command", help="Available commands")

    # -- init --------------------------------------------------------------
    p_init = sub.add_parser("init", parents=[_common], help="Initialize a trait workspace")
    p_init.add_argument(
        "path", nargs="?", default=".traitctl",
        help="Workspace directory (default: .traitctl)",
    )
    p_init.add_argument("--force", action="store_true", help="Reinitialize existing workspace")
    p_init.set_defaults(func=cmd_init)

    # -- traits ------------------------------------------------------------
    p_traits = sub.add_parser("traits", parents=[_common], help="List traits")
    p_traits.add_argument("--code", action="store_true", help="Show trait code")
    p_traits.set_defaults(func=cmd_traits)

    # -- add ---------------------------------------------------------------
    p_add = sub.add_parser("add", parents=[_common], help="Add or replace a trait")
    p_add.add_argument("name", help="Trait name (case-sensitive)")
    p_add.add_argument("code", help="Trait expression, e.g. 'lambda item: has_url(item.text)'")
    p_add.add_argument("-d", "--description", default=None, help="Human description")
    p_add.add_argument("--disabled", action="store_true", help="Add the trait disabled")
    p_add.add_argument("--strict", action="store_true", help="Refuse code that does not compile")
    p_add.set_defaults(func=cmd_add)

    # -- generate ----------------------------------------------------------
    p_gen = sub.add_parser("generate", parents=[_common], help="Generate trait code with an LLM")
    p_gen.add_argument("name", help="Trait name")
    p_gen.add_argument("description", help="What the trait should match")
    p_gen.add_argument("--llm", default=None, help="LLM command (default: TRAITCTL_LLM)")
    p_gen.add_argument("--add", action="store_true", help="Add the trait if the code compiles")
    p_gen.set_defaults(func=cmd_generate)

    # -- enable / disable / delete -----------------------------------------
    p_enable = sub.add_parser("enable", parents=[_common], help="Enable a trait")
    p_enable.add_argument("name", help="Trait name")
    p_enable.set_defaults(func=cmd_enable)

    p_disable = sub.add_parser("disable", parents=[_common], help="Disable a trait")
    p_disable.add_argument("name", help="Trait name")
    p_disable.set_defaults(func=cmd_disable)

    p_delete = sub.add_parser("delete", parents=[_common], help="Delete a trait")
    p_delete.add_argument("name", help="Trait name")
    p_delete.set_defaults(func=cmd_delete)

    # -- rename ------------------------------------------------------------
    p_rename = sub.add_parser("rename", parents=[_common], help="Rename a trait")
    p_rename.add_argument("old", help="Current name")
    p_rename.add_argument("new", help="New name")
    p_rename.set_defaults(func=cmd_rename)

    # -- check -------------------------------------------------------------
    p_check = sub.add_parser("check", parents=[_common], help="Compile-check trait code")
    p_check.add_argument("code", help="Trait expression")
    p_check.set_defaults(func=cmd_check)

    # -- search ------------------------------------------------------------
    p_search = sub.add_parser("search", parents=[_common], help="Search posts")
    _add_filter_arguments(p_search)
    p_search.set_defaults(func=cmd_search)

    # -- stats -------------------------------------------------------------
    p_stats = sub.add_parser("stats", parents=[_common], help="Trait statistics")
    p_stats.set_defaults(func=cmd_stats)

    # -- sample ------------------------------------------------------------
    p_sample = sub.add_parser("sample", parents=[_common], help="Weighted random posts")
    p_sample.add_argument("-k", type=int, default=None, help="Number of picks (default: 3)")
    p_sample.add_argument("--seed", type=int, default=None, help="Random seed")
    p_sample.set_defaults(func=cmd_sample)

    # -- reindex -----------------------------------------------------------
    p_reindex = sub.add_parser("reindex", parents=[_common], help="Rebuild the trait index")
    p_reindex.set_defaults(func=cmd_reindex)

    # -- store -------------------------------------------------------------
    p_store = sub.add_parser("store", parents=[_common], help="Inspect the SQLite store")
    p_store.add_argument(
        "--clear-index", action="store_true", help="Delete the cached trait index record",
    )
    p_store.set_defaults(func=cmd_store)

    # -- serve -------------------------------------------------------------
    p_serve = sub.add_parser("serve", parents=[_common], help="Start MCP server")
    p_serve.set_defaults(func=cmd_serve)

    # -- Parse and dispatch ------------------------------------------------
    args = parser.parse_args(argv)

    _quiet = getattr(args, "quiet", False)

    if getattr(args, "verbose", False):
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(name)s %(levelname)s %(message)s",
        )
    else:
        logging.basicConfig(level=logging.WARNING)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except BrokenPipeError:
        # Handle broken pipe gracefully (e.g. traitctl search | head)
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        sys.exit(0)
    except KeyboardInterrupt:
        sys.exit(0)
    except Exception as e:
        _warn(f"Internal error: {e}")
        if getattr(args, "verbose", False):
            import traceback
            traceback.print_exc(file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
