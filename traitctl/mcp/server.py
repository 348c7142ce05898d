"""
traitctl MCP Server — Trait Search & Sampling over a Post Corpus

Standalone MCP server exposing a TraitSession via the Model Context
Protocol.  Works with Claude Desktop, VS Code, and any MCP-compatible
client.

Architecture: thin MCP layer delegating to TraitSession.  No business
logic in this module; all logic lives in traitctl/*.

Usage:
    python -m traitctl.mcp.server --db .traitctl/traits.db --data casts.json
    traitctl-mcp --data casts.jsonl --audit-log audit.jsonl
"""

from __future__ import annotations

import argparse
import logging
import os

logger = logging.getLogger(__name__)

# Instructions embedded in FastMCP, visible to any MCP client.
_MCP_INSTRUCTIONS = (
    "User-defined boolean traits over a corpus of social posts (8 tools).\n"
    "\n"
    "QUERY:   trait_search (text + structural + time + trait filters),\n"
    "         trait_stats, trait_sample (weighted random picks).\n"
    "TRAITS:  trait_list, trait_add, trait_toggle, trait_delete.\n"
    "         Use trait_check before trait_add to validate code.\n"
    "\n"
    "Trait code is a small Python-like expression, e.g.\n"
    "  lambda item: coalesce(item.reactions.likes_count, 0) >= 100\n"
    "Helpers: matches(pattern, text, flags), has_url, has_emoji, words,\n"
    "local_hour/local_minute/local_weekday (Los Angeles time), is_link,\n"
    "is_quote, is_quote_ref, coalesce.  Access is null-safe.\n"
)


def build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser for the trait MCP server."""
    p = argparse.ArgumentParser(
        prog="traitctl-mcp",
        description="traitctl MCP Server — trait search and sampling over a post corpus",
    )
    p.add_argument(
        "--db",
        default=os.environ.get("TRAITCTL_DB"),
        help="SQLite database path (default: $TRAITCTL_DB or config store.db_path)",
    )
    p.add_argument(
        "--data",
        default=os.environ.get("TRAITCTL_DATA"),
        help="Dataset file: JSON list, {\"casts\": [...]} or JSONL (default: $TRAITCTL_DATA)",
    )
    p.add_argument(
        "--config",
        default=os.environ.get("TRAITCTL_CONFIG"),
        help="Path to config.json (default: $TRAITCTL_CONFIG)",
    )
    p.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    a = p.add_argument_group("audit")
    a.add_argument(
        "--audit-log",
        default=None,
        help="Audit log file path (default: stderr)",
    )

    return p


def create_server(args=None):
    """
    Create and configure the FastMCP server with trait tools.

    Args:
        args: Parsed argparse.Namespace, or None to parse from sys.argv.

    Returns:
        (mcp_server, session) tuple.

    Raises:
        DatasetError: If the dataset cannot be loaded.
    """
    from mcp.server.fastmcp import FastMCP

    from traitctl.config import load_config
    from traitctl.dataset import load_items
    from traitctl.mcp.audit import AuditLogger
    from traitctl.mcp.tools import register_trait_tools
    from traitctl.session import TraitSession
    from traitctl.store import KVStore

    if args is None:
        args = build_parser().parse_args()

    config = load_config(args.config)
    db_path = args.db or config.store.db_path

    store = KVStore(
        db_path=db_path,
        wal_mode=config.store.wal_mode,
        max_value_bytes=config.store.max_value_bytes,
    )
    session = TraitSession(
        store,
        search_config=config.search,
        sampler_config=config.sampler,
    )
    if args.data:
        session.load_dataset(load_items(args.data))
    else:
        logger.warning("No dataset configured; serving traits without a corpus")
        session.load_registry()

    audit_output = None
    if args.audit_log:
        audit_output = open(args.audit_log, "a", encoding="utf-8")
    audit = AuditLogger(output=audit_output)

    mcp = FastMCP(
        name="traitctl Traits",
        instructions=_MCP_INSTRUCTIONS,
    )

    register_trait_tools(mcp, session, audit=audit)

    logger.info(
        "traitctl MCP server ready: db=%s, data=%s, items=%d, traits=%d",
        db_path, args.data or "(none)", len(session.items), len(session.registry),
    )

    return mcp, session


def main():
    """CLI entry point — parse args, create server, run."""
    parser = build_parser()
    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    mcp, _session = create_server(args)
    mcp.run()


if __name__ == "__main__":
    main()
