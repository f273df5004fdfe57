"""Cascade Service Module

Keeps the Exam -> ... -> Definition tree consistent when a node is
deleted or its status changes.

Two failure policies exist and are configured per operation:

* ``swallow`` - a store error is logged, the rest of the cascade is
  skipped, and the primary operation still completes. Default for deletes.
* ``abort`` - the error propagates as :class:`CascadeAbortedError` with the
  partial report. Default for status changes.
"""

from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple

from flask import current_app

from errors import CascadeAbortedError, HierarchyError, InvalidArgumentError
from models import (
    ANCESTOR_COLUMNS,
    NODE_STATUSES,
    ExamDetail,
    child_kind,
    descendant_kinds,
    parent_column,
)
from .node_store import KIND_LABELS, NodeStore
from .read_cache import invalidate_listings

POLICY_SWALLOW = "swallow"
POLICY_ABORT = "abort"
POLICIES = (POLICY_SWALLOW, POLICY_ABORT)

LEVEL_LABELS = {
    "subject": "subjects",
    "unit": "units",
    "chapter": "chapters",
    "topic": "topics",
    "subtopic": "subtopics",
    "definition": "definitions",
}
EXAM_DETAILS_LEVEL = "exam_details"
# Error level reported when gathering descendant ids fails.
COLLECTION_STAGE = "collection"

CascadeStep = Tuple[str, Callable[[], int]]


class CascadeService:
    """Service class for cascading deletes and status changes down the tree."""

    def __init__(self, store: Optional[NodeStore] = None):
        self.store = store or NodeStore()

    # ============================================================================
    # CONFIGURATION
    # ============================================================================

    @staticmethod
    def _policy(key: str, default: str) -> str:
        policy = str(current_app.config.get(key, default)).strip().lower()
        if policy not in POLICIES:
            current_app.logger.warning(
                "Unknown cascade policy %r for %s, using %s", policy, key, default
            )
            return default
        return policy

    @staticmethod
    def _bidirectional_kinds() -> Tuple[str, ...]:
        kinds = current_app.config.get("STATUS_CASCADE_BIDIRECTIONAL_KINDS", ("exam",))
        if isinstance(kinds, str):
            kinds = [kind.strip() for kind in kinds.split(",")]
        return tuple(kind for kind in kinds if kind)

    @staticmethod
    def _subject_delete_cascades() -> bool:
        return bool(current_app.config.get("SUBJECT_DELETE_CASCADES", False))

    # ============================================================================
    # CASCADE DELETE
    # ============================================================================

    def delete_node(self, kind: str, node_id: str) -> Dict[str, Any]:
        """Delete a node and, where its level cascades, every descendant row.

        Returns ``{"deleted_primary", "cascade_report", "errors"}`` where the
        report maps each descendant level to the number of rows removed.
        """
        node = self.store.require(kind, node_id)
        logger = current_app.logger
        policy = self._policy("CASCADE_DELETE_ERROR_POLICY", POLICY_SWALLOW)

        report = {level: 0 for level in self._delete_levels(kind)}
        errors: List[Dict[str, str]] = []

        if report:
            logger.info(
                "Cascading delete: removing descendants of %s %s", kind, node.id
            )
        current_level = None
        try:
            for current_level, step in self._delete_steps(kind, node.id):
                report[current_level] = step()
                logger.info(
                    "Cascading delete: deleted %s %s for %s %s",
                    report[current_level],
                    current_level,
                    kind,
                    node.id,
                )
        except HierarchyError as exc:
            failed_level = current_level or COLLECTION_STAGE
            if policy == POLICY_ABORT:
                logger.error(
                    "Cascade delete of %s %s aborted at %s: %s",
                    kind,
                    node.id,
                    failed_level,
                    exc,
                )
                raise CascadeAbortedError(
                    f"Cascade delete aborted at {failed_level}",
                    {
                        "deleted_primary": False,
                        "cascade_report": report,
                        "errors": [{"level": failed_level, "error": exc.message}],
                    },
                ) from exc
            logger.exception(
                "Error in %s cascading delete, continuing with primary delete", kind
            )
            errors.append({"level": failed_level, "error": exc.message})

        self.store.remove(node)
        invalidate_listings()

        return {
            "success": True,
            "message": f"{KIND_LABELS[kind]} deleted successfully",
            "deleted_primary": True,
            "cascade_report": report,
            "errors": errors,
        }

    def _delete_levels(self, kind: str) -> List[str]:
        """Report keys for a delete of ``kind``, in execution order."""
        if kind == "subject" and not self._subject_delete_cascades():
            return []
        levels = [LEVEL_LABELS[below] for below in reversed(descendant_kinds(kind))]
        if kind == "exam":
            levels.insert(0, EXAM_DETAILS_LEVEL)
        return levels

    def _delete_steps(self, kind: str, node_id: str) -> List[CascadeStep]:
        if kind == "exam":
            return self._exam_delete_steps(node_id)
        if kind == "subject" and not self._subject_delete_cascades():
            return []
        return self._collected_delete_steps(kind, node_id)

    def _exam_delete_steps(self, exam_id: str) -> List[CascadeStep]:
        """Every descendant carries ``exam_id``, so each level is one delete."""
        steps: List[CascadeStep] = [
            (
                EXAM_DETAILS_LEVEL,
                partial(self.store.delete_where, ExamDetail, "exam_id", [exam_id]),
            )
        ]
        for below in reversed(descendant_kinds("exam")):
            model = self.store.model_for(below)
            steps.append(
                (
                    LEVEL_LABELS[below],
                    partial(self.store.delete_where, model, "exam_id", [exam_id]),
                )
            )
        return steps

    def _collected_delete_steps(self, kind: str, node_id: str) -> List[CascadeStep]:
        """Walk down through immediate-parent links, then delete deepest first.

        Each level's id set is fetched before any delete is issued, so a
        level is only removed once the ids beneath it are known.
        """
        logger = current_app.logger
        id_sets: List[Tuple[str, str, List[str]]] = []
        parent_ids = [node_id]

        for below in descendant_kinds(kind):
            column = parent_column(below)
            id_sets.append((below, column, parent_ids))
            if child_kind(below) is None or not parent_ids:
                parent_ids = []
                continue
            parent_ids = self.store.find_ids(
                self.store.model_for(below), column, parent_ids
            )
            logger.debug(
                "Cascading delete: found %d %s under %s %s",
                len(parent_ids),
                LEVEL_LABELS[below],
                kind,
                node_id,
            )

        return [
            (
                LEVEL_LABELS[below],
                partial(
                    self.store.delete_where, self.store.model_for(below), column, ids
                ),
            )
            for below, column, ids in reversed(id_sets)
        ]

    # ============================================================================
    # CASCADE STATUS
    # ============================================================================

    def set_status(self, kind: str, node_id: str, status: Any) -> Dict[str, Any]:
        """Update a node's status and propagate it to descendants.

        Deactivation always cascades. Reactivation cascades only for kinds
        listed in ``STATUS_CASCADE_BIDIRECTIONAL_KINDS``; elsewhere it
        touches the target node alone.
        """
        if status not in NODE_STATUSES:
            raise InvalidArgumentError("Valid status is required (active or inactive)")

        node = self.store.require(kind, node_id)
        logger = current_app.logger
        policy = self._policy("CASCADE_STATUS_ERROR_POLICY", POLICY_ABORT)

        node.status = status
        self.store.save(node)

        below_kinds = list(reversed(descendant_kinds(kind)))
        report = {LEVEL_LABELS[below]: 0 for below in below_kinds}
        errors: List[Dict[str, str]] = []

        cascades = status == "inactive" or kind in self._bidirectional_kinds()
        if cascades and below_kinds:
            column = ANCESTOR_COLUMNS[kind]
            logger.info("Cascading status update to %s for %s %s", status, kind, node_id)
            for below in below_kinds:
                level = LEVEL_LABELS[below]
                try:
                    report[level] = self.store.update_status_where(
                        self.store.model_for(below), column, [node_id], status
                    )
                except HierarchyError as exc:
                    errors.append({"level": level, "error": exc.message})
                    if policy == POLICY_ABORT:
                        logger.error(
                            "Status cascade for %s %s aborted at %s: %s",
                            kind,
                            node_id,
                            level,
                            exc,
                        )
                        invalidate_listings()
                        raise CascadeAbortedError(
                            f"Status cascade aborted at {level}",
                            {
                                "updated_primary": True,
                                "cascade_report": report,
                                "errors": errors,
                            },
                        ) from exc
                    logger.exception(
                        "Error in %s status cascade, skipping remaining levels", kind
                    )
                    break
                logger.info("Updated %s %s", report[level], level)

        invalidate_listings()

        verb = "deactivated" if status == "inactive" else "activated"
        scope = "and all children " if cascades and below_kinds else ""
        return {
            "success": True,
            "message": f"{KIND_LABELS[kind]} {scope}{verb} successfully",
            "updated_primary": True,
            "cascade_report": report,
            "errors": errors,
            "data": node.to_dict(),
        }
