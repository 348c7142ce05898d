"""
MCP Audit Logger — Structured JSONL logging for MCP tool calls.

One record per tool call, schema-versioned.  Trait code (untrusted text)
is never logged in full: records carry a short preview plus a SHA-256
hash for correlation.

The log() method is fire-and-forget: it catches all exceptions
internally and never disrupts tool execution.
"""

from __future__ import annotations

import hashlib
import json
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

AUDIT_SCHEMA_VERSION = 1
PREVIEW_MAX_CHARS = 120


class AuditLogger:
    """Structured JSONL audit logger for MCP tool calls."""

    def __init__(self, output: Optional[TextIO] = None):
        """
        Args:
            output: File handle for audit output. None → stderr.
        """
        self._output = output if output is not None else sys.stderr

    def new_rid(self) -> str:
        """Generate a new request ID (UUID4 hex string)."""
        return uuid.uuid4().hex

    def log(
        self,
        tool: str,
        rid: str,
        outcome: str,
        detail: Optional[Dict[str, Any]] = None,
        latency_ms: float = 0.0,
    ) -> None:
        """
        Write one JSONL audit record. Fire-and-forget — never raises.

        Args:
            tool: MCP tool name (e.g. "trait_add").
            rid: Request ID (from new_rid()).
            outcome: "ok", "error" or "rejected".
            detail: Tool-specific fields.
            latency_ms: Wall-clock latency in milliseconds.
        """
        try:
            now = datetime.now(timezone.utc)
            record: Dict[str, Any] = {
                "v": AUDIT_SCHEMA_VERSION,
                "ts": now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z",
                "rid": rid,
                "tool": tool,
                "outcome": outcome,
            }
            if detail:
                record["d"] = detail
            record["ms"] = round(latency_ms, 1)

            line = json.dumps(record, ensure_ascii=False, separators=(",", ":"))
            self._output.write(line + "\n")
            self._output.flush()
        except Exception:
            # Audit failures must never disrupt tool execution
            pass

    @staticmethod
    def make_code_detail(code: str) -> Dict[str, Any]:
        """
        Safe audit fields for trait code.

        - preview: first 120 chars, newlines → space, truncated with '…'
        - hash: SHA-256 hex digest
        - bytes: total size
        """
        data = code.encode("utf-8")
        preview = code[:PREVIEW_MAX_CHARS].replace("\n", " ").replace("\r", "")
        if len(code) > PREVIEW_MAX_CHARS:
            preview = preview.rstrip() + "…"
        return {
            "bytes": len(data),
            "hash": hashlib.sha256(data).hexdigest(),
            "preview": preview,
        }
