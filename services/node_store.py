"""Node Store Module

Thin persistence layer the hierarchy services talk to. It resolves node
kinds to models, performs the existence checks every operation starts
with, and issues the bulk deletes/updates the cascade and reorder engines
are built from. Every write is committed on its own: multi-step operations
are deliberately sequential and non-transactional.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from flask import current_app
from sqlalchemy import case, delete, func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from errors import ConflictError, InternalError, InvalidArgumentError, NotFoundError
from extensions import db
from models import NODE_MODELS
from utils.normalize import is_valid_id

KIND_LABELS = {
    "exam": "Exam",
    "subject": "Subject",
    "unit": "Unit",
    "chapter": "Chapter",
    "topic": "Topic",
    "subtopic": "SubTopic",
    "definition": "Definition",
}


class NodeStore:
    """Document-style CRUD and bulk writes over the hierarchy tables."""

    # ============================================================================
    # LOOKUPS
    # ============================================================================

    def model_for(self, kind: str):
        model = NODE_MODELS.get(kind)
        if model is None:
            raise NotFoundError(f"Unknown node kind '{kind}'")
        return model

    def get(self, kind: str, node_id: Any):
        """Fetch a node, rejecting malformed ids before touching the database."""
        model = self.model_for(kind)
        if not is_valid_id(node_id):
            raise InvalidArgumentError(f"Invalid {KIND_LABELS[kind]} ID: {node_id}")
        return self._read(lambda: db.session.get(model, node_id))

    def require(self, kind: str, node_id: Any):
        node = self.get(kind, node_id)
        if node is None:
            raise NotFoundError(f"{KIND_LABELS[kind]} not found")
        return node

    def fetch_many(self, model, ids: Iterable[str]) -> Dict[str, Any]:
        ids = list(ids)
        if not ids:
            return {}
        rows = self._read(model.query.filter(model.id.in_(ids)).all)
        return {row.id: row for row in rows}

    def find_ids(self, model, column: str, values: List[str]) -> List[str]:
        """Ids of rows whose ``column`` is one of ``values``."""
        if not values:
            return []
        rows = self._read(
            lambda: db.session.query(model.id)
            .filter(getattr(model, column).in_(values))
            .all()
        )
        return [row.id for row in rows]

    def sibling_positions(self, model, column: str, parent_id: str) -> Dict[str, int]:
        rows = self._read(
            lambda: db.session.query(model.id, model.position)
            .filter(getattr(model, column) == parent_id)
            .all()
        )
        return {row.id: row.position for row in rows}

    def max_position(self, model, column: str, parent_id: str) -> int:
        value = self._read(
            lambda: db.session.query(func.max(model.position))
            .filter(getattr(model, column) == parent_id)
            .scalar()
        )
        return value or 0

    def find_sibling(
        self,
        model,
        column: Optional[str],
        parent_id: Optional[str],
        exclude_id: Optional[str] = None,
        **criteria: Any,
    ):
        """First row in the same parent scope matching ``criteria``."""
        query = model.query.filter_by(**criteria)
        if column:
            query = query.filter(getattr(model, column) == parent_id)
        if exclude_id:
            query = query.filter(model.id != exclude_id)
        return self._read(query.first)

    # ============================================================================
    # WRITES
    # ============================================================================

    def add(self, node) -> None:
        db.session.add(node)
        self._commit()

    def save(self, node) -> None:
        self._commit()

    def remove(self, node) -> None:
        db.session.delete(node)
        self._commit()

    def delete_where(self, model, column: str, values: List[str]) -> int:
        """Delete rows whose ``column`` is one of ``values``; returns the count."""
        if not values:
            return 0
        statement = (
            delete(model)
            .where(getattr(model, column).in_(values))
            .execution_options(synchronize_session=False)
        )
        return self._execute(statement)

    def update_status_where(
        self, model, column: str, values: List[str], status: str
    ) -> int:
        """Set ``status`` on matching rows that do not already carry it."""
        if not values:
            return 0
        statement = (
            update(model)
            .where(getattr(model, column).in_(values))
            .where(or_(model.status != status, model.status.is_(None)))
            .values(status=status, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return self._execute(statement)

    def backfill_status(self, model, status: str) -> int:
        statement = (
            update(model)
            .where(model.status.is_(None))
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        return self._execute(statement)

    def bulk_set_positions(self, model, positions: Dict[str, int]) -> int:
        """Rewrite positions for many rows in a single UPDATE statement."""
        if not positions:
            return 0
        statement = (
            update(model)
            .where(model.id.in_(list(positions)))
            .values(
                position=case(positions, value=model.id),
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return self._execute(statement)

    def _execute(self, statement) -> int:
        try:
            result = db.session.execute(statement)
            count = result.rowcount
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise ConflictError(
                "Write conflicts with an existing row",
                details={"reason": str(exc.orig)},
            ) from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error("Store write failed: %s", exc)
            raise InternalError("Database write failed") from exc
        return count

    def _read(self, load):
        """Run a read, mapping driver failures to :class:`InternalError`."""
        try:
            return load()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error("Store read failed: %s", exc)
            raise InternalError("Database read failed") from exc

    def _commit(self) -> None:
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise ConflictError(
                "Write conflicts with an existing row",
                details={"reason": str(exc.orig)},
            ) from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error("Store commit failed: %s", exc)
            raise InternalError("Database write failed") from exc
