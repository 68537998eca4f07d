"""Best-effort audit trail of workflow operations (JSON lines)."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, UTC
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class AuditTrail:
    """
    Append-only audit log stored as one JSON object per line.

    Logging never raises: a failing sink must not abort a workflow, so write
    errors are logged at WARNING and dropped.
    """

    def __init__(self, audit_file: Path) -> None:
        self.audit_file = audit_file

    async def log(
        self,
        operation: str,
        autonomy_level: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Record an operation.

        Args:
            operation: What happened (e.g. "workflow_start", "backend_selection").
            autonomy_level: Autonomy level of the run.
            details: Extra JSON-compatible fields.
        """
        entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "operation": operation,
            "autonomy_level": autonomy_level,
            "details": details or {},
        }
        try:
            await asyncio.to_thread(self._append, json.dumps(entry, default=str))
        except Exception as e:
            logger.warning("Failed to write audit entry %s: %s", operation, e)

    def _append(self, line: str) -> None:
        self.audit_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.audit_file, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def read_entries(self, limit: int | None = None) -> list[dict[str, Any]]:
        """
        Read recorded entries, oldest first.

        Args:
            limit: Return only the most recent N entries.

        Returns:
            Parsed entries; unparseable lines are skipped.
        """
        if not self.audit_file.exists():
            return []

        entries = []
        with open(self.audit_file, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.debug("Skipping malformed audit line")

        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries
