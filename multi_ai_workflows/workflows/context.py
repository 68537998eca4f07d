"""Workflow context memory.

Scratch memory for one workflow execution:
- Scalar values with last-write-wins semantics
- Append-only sequences
- Counters (numeric scalars)
- Named checkpoints for rollback after a failed step

A context belongs to exactly one run and is passed explicitly to every step.
It carries no locking; steps of one run never touch it concurrently.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from numbers import Number
from typing import Any
import json
import time
import uuid

from multi_ai_workflows.core.errors import ContextTypeError


@dataclass(frozen=True)
class ContextMetadata:
    """Identity of the run that owns a context."""

    workflow_id: str
    workflow_name: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, str]:
        return {
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow_name,
            "start_time": self.start_time.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContextMetadata:
        return cls(
            workflow_id=data["workflow_id"],
            workflow_name=data["workflow_name"],
            start_time=datetime.fromisoformat(data["start_time"]),
        )


@dataclass
class _Snapshot:
    data: dict[str, Any]
    arrays: dict[str, list[Any]]


class WorkflowContext:
    """Transactional key/value memory shared by the steps of one workflow run."""

    def __init__(self, workflow_id: str | None = None, workflow_name: str = "workflow") -> None:
        self.metadata = ContextMetadata(
            workflow_id=workflow_id or f"{workflow_name}-{uuid.uuid4().hex[:8]}",
            workflow_name=workflow_name,
        )
        self._data: dict[str, Any] = {}
        self._arrays: dict[str, list[Any]] = {}
        self._checkpoints: dict[str, _Snapshot] = {}
        self._created = time.monotonic()

    # -- scalar store ---------------------------------------------------

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def get(self, key: str) -> Any | None:
        """Get a scalar value, or None when the key is absent."""
        return self._data.get(key)

    def has(self, key: str) -> bool:
        """True if the key exists in either the scalar or the sequence store."""
        return key in self._data or key in self._arrays

    def get_or_default(self, key: str, default: Any) -> Any:
        if key in self._data:
            return self._data[key]
        return default

    # -- sequence store -------------------------------------------------

    def append(self, key: str, value: Any) -> None:
        self._arrays.setdefault(key, []).append(value)

    def get_all(self, key: str) -> list[Any]:
        """Get a copy of the sequence under key (empty list when absent)."""
        return list(self._arrays.get(key, []))

    # -- counters and records -------------------------------------------

    def increment(self, key: str, amount: int | float = 1) -> int | float:
        """
        Add amount to the numeric value at key.

        Missing keys count as 0.

        Raises:
            ContextTypeError: If the existing value is not a number.
        """
        current = self._data.get(key, 0)
        if isinstance(current, bool) or not isinstance(current, Number):
            raise ContextTypeError(
                f"Cannot increment '{key}': existing value is {type(current).__name__}, not a number"
            )
        new_value = current + amount
        self._data[key] = new_value
        return new_value

    def decrement(self, key: str, amount: int | float = 1) -> int | float:
        return self.increment(key, -amount)

    def merge(self, key: str, partial: dict[str, Any]) -> dict[str, Any]:
        """
        Shallow-merge partial into the dict stored at key.

        Raises:
            ContextTypeError: If the existing value is not a dict.
        """
        existing = self._data.get(key, {})
        if not isinstance(existing, dict):
            raise ContextTypeError(
                f"Cannot merge into '{key}': existing value is {type(existing).__name__}, not a dict"
            )
        merged = {**existing, **partial}
        self._data[key] = merged
        return merged

    # -- checkpoints ----------------------------------------------------

    def checkpoint(self, name: str) -> None:
        """Snapshot both stores under name, replacing any previous snapshot."""
        self._checkpoints[name] = _Snapshot(
            data=copy.deepcopy(self._data),
            arrays=copy.deepcopy(self._arrays),
        )

    def rollback(self, name: str) -> bool:
        """
        Restore both stores from a checkpoint.

        The checkpoint stays usable: live state gets its own copy.

        Returns:
            True if restored, False if no checkpoint has that name.
        """
        snapshot = self._checkpoints.get(name)
        if snapshot is None:
            return False

        self._data = copy.deepcopy(snapshot.data)
        self._arrays = copy.deepcopy(snapshot.arrays)
        return True

    def list_checkpoints(self) -> list[str]:
        return list(self._checkpoints)

    def delete_checkpoint(self, name: str) -> bool:
        return self._checkpoints.pop(name, None) is not None

    # -- serialization --------------------------------------------------

    def export(self) -> str:
        """
        Serialize metadata and live state to JSON.

        Checkpoint names are included for information only; snapshots are
        not exported. Stored values must be JSON-serializable.
        """
        return json.dumps({
            "metadata": self.metadata.to_dict(),
            "data": self._data,
            "arrays": self._arrays,
            "checkpoints": self.list_checkpoints(),
        })

    @classmethod
    def from_export(cls, serialized: str) -> WorkflowContext:
        """Rebuild a context from export() output (checkpoints are not restored)."""
        parsed = json.loads(serialized)
        metadata = ContextMetadata.from_dict(parsed["metadata"])

        ctx = cls(metadata.workflow_id, metadata.workflow_name)
        ctx.metadata = metadata
        ctx._data = dict(parsed.get("data", {}))
        ctx._arrays = {key: list(values) for key, values in parsed.get("arrays", {}).items()}
        return ctx

    # -- diagnostics ----------------------------------------------------

    def summary(self) -> dict[str, Any]:
        """Diagnostic snapshot for logging."""
        return {
            "workflow_id": self.metadata.workflow_id,
            "workflow_name": self.metadata.workflow_name,
            "start_time": self.metadata.start_time.isoformat(),
            "data_keys": list(self._data),
            "array_keys": list(self._arrays),
            "array_sizes": {key: len(values) for key, values in self._arrays.items()},
            "counters": {
                key: value
                for key, value in self._data.items()
                if isinstance(value, Number) and not isinstance(value, bool)
            },
            "checkpoints": self.list_checkpoints(),
            "elapsed_ms": int((time.monotonic() - self._created) * 1000),
        }

    def keys(self) -> list[str]:
        """All keys across both stores, without duplicates."""
        return list(dict.fromkeys([*self._data, *self._arrays]))

    def __len__(self) -> int:
        return len(self._data) + len(self._arrays)

    def clear(self) -> None:
        """Empty both stores and drop every checkpoint."""
        self._data.clear()
        self._arrays.clear()
        self._checkpoints.clear()

    def __repr__(self) -> str:
        return (
            f"WorkflowContext(workflow_id={self.metadata.workflow_id!r}, "
            f"keys={len(self)}, checkpoints={len(self._checkpoints)})"
        )
