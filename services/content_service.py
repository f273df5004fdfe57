"""Content Service Module

Create, read, update and list operations for every node kind in the
hierarchy. Deletes and status changes go through :mod:`cascade_service`
and ordering through :mod:`reorder_service`; this module only handles
single-node writes and the cached listing read path.
"""

from typing import Any, Dict, List, Optional, Tuple

from flask import current_app

from errors import ConflictError, InvalidArgumentError
from models import (
    ANCESTOR_COLUMNS,
    CONTENT_FIELDS,
    EXAM_STATUSES,
    KINDS,
    NODE_STATUSES,
    AncestorPath,
    ExamDetail,
    parent_column,
    parent_kind,
)
from utils.normalize import is_valid_id, normalize_name, parse_position
from .node_store import KIND_LABELS, NodeStore
from .read_cache import get_listing, invalidate_listings, listing_key, store_listing

# camelCase keys sent by the admin UI, mapped to column names.
PAYLOAD_ALIASES = {
    "examId": "exam_id",
    "subjectId": "subject_id",
    "unitId": "unit_id",
    "chapterId": "chapter_id",
    "topicId": "topic_id",
    "subTopicId": "sub_topic_id",
    "orderNumber": "position",
    "metaDescription": "meta_description",
}


def normalize_payload(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Return a copy of ``payload`` with UI aliases mapped to column names."""
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise InvalidArgumentError("Request body must be a JSON object")
    normalized: Dict[str, Any] = {}
    for key, value in payload.items():
        normalized[PAYLOAD_ALIASES.get(key, key)] = value
    return normalized


def allowed_statuses(kind: str) -> Tuple[str, ...]:
    return EXAM_STATUSES if kind == "exam" else NODE_STATUSES


class ContentService:
    """Service class for single-node hierarchy operations."""

    def __init__(self, store: Optional[NodeStore] = None):
        self.store = store or NodeStore()

    # ============================================================================
    # CREATE
    # ============================================================================

    def create_node(self, kind: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a node after validating its whole ancestor chain."""
        model = self.store.model_for(kind)
        data = normalize_payload(payload)
        label = KIND_LABELS[kind]

        name = normalize_name(kind, data.get("name"))
        if not name:
            raise InvalidArgumentError(f"{label} name is required")

        status = data.get("status") or "active"
        if status not in allowed_statuses(kind):
            raise InvalidArgumentError(f"Invalid status '{status}' for {label}")

        path = AncestorPath()
        column = parent_column(kind)
        parent_id = None
        if column:
            parent_id = data.get(column)
            if not parent_id:
                raise InvalidArgumentError(f"{column} is required")
            path = self._resolve_path(kind, parent_id, data)

        duplicate = self.store.find_sibling(model, column, parent_id, name=name)
        if duplicate:
            scope = f" in this {parent_kind(kind)}" if column else ""
            raise ConflictError(f"{label} with this name already exists{scope}")

        node = model(name=name, status=status, **path.columns())
        for field in CONTENT_FIELDS:
            node_value = data.get(field)
            setattr(node, field, node_value if node_value is not None else "")

        if column:
            node.position = self._initial_position(model, column, parent_id, data)

        self.store.add(node)
        invalidate_listings()
        current_app.logger.info("Created %s %s (%s)", kind, node.id, name)
        return node.to_dict()

    def _resolve_path(
        self, kind: str, parent_id: str, data: Dict[str, Any]
    ) -> AncestorPath:
        """Path for a new child of ``parent_id``, checking every ancestor exists.

        Ancestor ids supplied by the caller beyond the immediate parent must
        agree with the parent's own stored path.
        """
        above = parent_kind(kind)
        parent = self.store.require(above, parent_id)
        path = parent.ancestor_path.extend(above, parent.id)

        for ancestor, ancestor_id in path.entries[:-1]:
            supplied = data.get(ANCESTOR_COLUMNS[ancestor])
            if supplied and supplied != ancestor_id:
                raise InvalidArgumentError(
                    f"{ANCESTOR_COLUMNS[ancestor]} does not match the selected {above}"
                )
            self.store.require(ancestor, ancestor_id)
        return path

    def _initial_position(
        self, model, column: str, parent_id: str, data: Dict[str, Any]
    ) -> int:
        raw_position = data.get("position")
        if raw_position is None or raw_position == "":
            return self.store.max_position(model, column, parent_id) + 1

        position = parse_position(raw_position)
        if position is None:
            raise InvalidArgumentError("Position must be a positive integer")
        if self.store.find_sibling(model, column, parent_id, position=position):
            raise ConflictError(f"Position {position} is already taken")
        return position

    # ============================================================================
    # UPDATE
    # ============================================================================

    def update_node(
        self, kind: str, node_id: str, payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Patch the supplied fields of a node. Reparenting is not supported."""
        model = self.store.model_for(kind)
        node = self.store.require(kind, node_id)
        data = normalize_payload(payload)
        label = KIND_LABELS[kind]
        column = parent_column(kind)
        parent_id = node.parent_id

        for ancestor_column in node.ancestor_path.columns():
            supplied = data.get(ancestor_column)
            if supplied and supplied != getattr(node, ancestor_column):
                raise InvalidArgumentError(
                    f"Moving a {label} to a different parent is not supported"
                )

        if "name" in data:
            name = normalize_name(kind, data.get("name"))
            if not name:
                raise InvalidArgumentError(f"{label} name is required")
            if name != node.name and self.store.find_sibling(
                model, column, parent_id, exclude_id=node.id, name=name
            ):
                raise ConflictError(f"{label} with same name already exists")
            node.name = name

        if "position" in data and data["position"] is not None:
            if not column:
                raise InvalidArgumentError(f"{label} nodes have no position")
            position = parse_position(data["position"])
            if position is None:
                raise InvalidArgumentError("Position must be a positive integer")
            if position != node.position and self.store.find_sibling(
                model, column, parent_id, exclude_id=node.id, position=position
            ):
                raise ConflictError(f"Position {position} is already taken")
            node.position = position

        if data.get("status"):
            if data["status"] not in allowed_statuses(kind):
                raise InvalidArgumentError(
                    f"Invalid status '{data['status']}' for {label}"
                )
            node.status = data["status"]

        for field in CONTENT_FIELDS:
            if field in data:
                setattr(node, field, data[field] or "")

        self.store.save(node)
        invalidate_listings()
        return node.to_dict()

    # ============================================================================
    # READ
    # ============================================================================

    def get_node(self, kind: str, node_id: str) -> Dict[str, Any]:
        """Return a node with each ancestor populated as ``{"id", "name"}``."""
        node = self.store.require(kind, node_id)
        data = node.to_dict()
        ancestors: Dict[str, Optional[Dict[str, str]]] = {}
        for ancestor, ancestor_id in node.ancestor_path.entries:
            parent = self.store.get(ancestor, ancestor_id)
            ancestors[ancestor] = (
                {"id": parent.id, "name": parent.name} if parent else None
            )
        data["ancestors"] = ancestors
        return data

    def list_nodes(
        self,
        kind: str,
        parent_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """List nodes of a kind, optionally scoped to one parent and status."""
        model = self.store.model_for(kind)
        status_filter = (status or "all").strip().lower()
        if status_filter != "all" and status_filter not in allowed_statuses(kind):
            raise InvalidArgumentError(f"Invalid status filter '{status}'")

        column = parent_column(kind)
        if parent_id:
            if not column:
                raise InvalidArgumentError(f"{KIND_LABELS[kind]} nodes have no parent")
            if not is_valid_id(parent_id):
                raise InvalidArgumentError(f"Invalid {column}: {parent_id}")

        key = listing_key(kind, parent_id, status_filter)
        cached = get_listing(key)
        if cached is not None:
            return cached

        query = model.query
        if parent_id:
            query = query.filter(getattr(model, column) == parent_id)
        if status_filter != "all":
            query = query.filter(model.status == status_filter)
        if column:
            query = query.order_by(getattr(model, column), model.position)
        else:
            query = query.order_by(model.created_at.desc())

        items = [node.to_dict() for node in query.all()]
        store_listing(key, items)
        return items

    # ============================================================================
    # EXAM DETAILS
    # ============================================================================

    def get_exam_details(self, exam_id: str) -> Dict[str, Any]:
        exam = self.store.require("exam", exam_id)
        details = ExamDetail.query.filter_by(exam_id=exam.id).first()
        data = {"exam_id": exam.id}
        for field in CONTENT_FIELDS:
            data[field] = getattr(details, field) if details else ""
        return data

    def save_exam_details(self, exam_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        exam = self.store.require("exam", exam_id)
        data = normalize_payload(payload)
        details = ExamDetail.query.filter_by(exam_id=exam.id).first()
        if details is None:
            details = ExamDetail(exam_id=exam.id)
            for field in CONTENT_FIELDS:
                setattr(details, field, data.get(field) or "")
            self.store.add(details)
        else:
            for field in CONTENT_FIELDS:
                if field in data:
                    setattr(details, field, data[field] or "")
            self.store.save(details)
        return self.get_exam_details(exam.id)

    # ============================================================================
    # MAINTENANCE
    # ============================================================================

    def backfill_status(self) -> Dict[str, Any]:
        """Give every row written before status existed the ``active`` status."""
        counts: Dict[str, int] = {}
        for kind in KINDS:
            counts[kind] = self.store.backfill_status(
                self.store.model_for(kind), "active"
            )
            current_app.logger.info(
                "Status backfill: %s %s rows set to active", counts[kind], kind
            )
        if any(counts.values()):
            invalidate_listings()
        return {
            "success": True,
            "message": "Status backfill completed",
            "counts": counts,
            "total_modified": sum(counts.values()),
        }