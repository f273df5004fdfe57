"""Reorder Service Module

Persists a new sibling ordering without ever holding two siblings at the
same position, which the unique ``(parent, position)`` index would reject.

The write happens in two bulk updates:

1. quarantine - every affected row moves to ``base_offset + list index``,
   a band above every current and requested position;
2. commit - every row moves to its requested position.

Both phases always run, even for a single row. If the commit phase fails
the rows are left in the quarantine band; running the reorder again with
the same input repairs them.
"""

from collections import OrderedDict
from typing import Any, Dict, Iterable, Optional

from flask import current_app

from errors import ConflictError, InvalidArgumentError, NotFoundError
from models import parent_column
from utils.normalize import is_valid_id, parse_position
from .node_store import KIND_LABELS, NodeStore
from .read_cache import invalidate_listings

DEFAULT_BASE_OFFSET = 10000


class ReorderService:
    """Generic two-phase reorder for any positioned node kind."""

    def __init__(self, store: Optional[NodeStore] = None):
        self.store = store or NodeStore()

    def reorder_siblings(self, kind: str, updates: Any) -> Dict[str, Any]:
        """Apply ``[{"id": ..., "position": ...}, ...]`` to one sibling set."""
        model = self.store.model_for(kind)
        column = parent_column(kind)
        if column is None:
            raise InvalidArgumentError(f"{KIND_LABELS[kind]} nodes have no position")

        targets = self._parse_updates(kind, updates)

        rows = self.store.fetch_many(model, targets)
        missing = [node_id for node_id in targets if node_id not in rows]
        if missing:
            raise NotFoundError(
                f"{len(missing)} {KIND_LABELS[kind]} item(s) not found",
                details={"missing_ids": missing},
            )

        parents = {getattr(row, column) for row in rows.values()}
        if len(parents) > 1:
            raise InvalidArgumentError(
                f"All {KIND_LABELS[kind]} items must share the same {column}"
            )
        parent_id = parents.pop()

        siblings = self.store.sibling_positions(model, column, parent_id)
        held_outside = {
            position: sibling_id
            for sibling_id, position in siblings.items()
            if sibling_id not in targets
        }
        clashes = sorted(
            position for position in targets.values() if position in held_outside
        )
        if clashes:
            raise ConflictError(
                f"Positions already taken by other siblings: {clashes}",
                details={"positions": clashes},
            )

        before = {node_id: rows[node_id].position for node_id in targets}
        base_offset = self.base_offset(siblings.values(), targets.values())
        quarantine = {
            node_id: base_offset + index for index, node_id in enumerate(targets)
        }

        logger = current_app.logger
        logger.debug(
            "Reorder %s under %s: quarantining %d rows at %d",
            kind,
            parent_id,
            len(quarantine),
            base_offset,
        )
        self.store.bulk_set_positions(model, quarantine)

        logger.debug("Reorder %s under %s: committing final positions", kind, parent_id)
        self.store.bulk_set_positions(model, dict(targets))

        invalidate_listings()

        modified = sum(
            1 for node_id, position in targets.items() if before[node_id] != position
        )
        logger.info(
            "Reordered %d %s rows under %s (%d moved)",
            len(targets),
            kind,
            parent_id,
            modified,
        )
        return {
            "success": True,
            "message": f"Successfully reordered {len(targets)} {kind} items",
            "modified_count": modified,
            "base_offset": base_offset,
            "parent_id": parent_id,
        }

    @staticmethod
    def base_offset(current: Iterable[int], requested: Iterable[int]) -> int:
        """First quarantine slot: above the configured floor and every position."""
        configured = int(
            current_app.config.get("REORDER_BASE_OFFSET", DEFAULT_BASE_OFFSET)
        )
        highest = max([0, *current, *requested])
        return max(configured, highest + 1)

    @staticmethod
    def _parse_updates(kind: str, updates: Any) -> "OrderedDict[str, int]":
        label = KIND_LABELS[kind]
        if not isinstance(updates, list) or not updates:
            raise InvalidArgumentError(f"{label} items array is required")

        targets: "OrderedDict[str, int]" = OrderedDict()
        seen_positions: Dict[int, str] = {}
        for item in updates:
            if not isinstance(item, dict):
                raise InvalidArgumentError(f"Each {label} item must be an object")
            node_id = item.get("id") or item.get("_id")
            if not is_valid_id(node_id):
                raise InvalidArgumentError(f"Invalid {label} ID: {node_id}")
            raw_position = item.get("position", item.get("orderNumber"))
            position = parse_position(raw_position)
            if position is None:
                raise InvalidArgumentError(
                    f"Each {label} item must have a positive integer position"
                )
            if node_id in targets:
                raise InvalidArgumentError(f"Duplicate {label} ID: {node_id}")
            if position in seen_positions:
                raise InvalidArgumentError(f"Duplicate position {position}")
            targets[node_id] = position
            seen_positions[position] = node_id
        return targets

