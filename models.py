"""Database models for the exam content hierarchy.

Exam -> Subject -> Unit -> Chapter -> Topic -> SubTopic -> Definition

Every non-root row stores the id of each of its ancestors, not just the
immediate parent, so cascades and listings can filter on a single column.
Ancestor references are plain indexed columns; keeping them consistent is
the job of the cascade service, not of database foreign keys.
"""

from dataclasses import dataclass
from datetime import datetime
import uuid
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import Enum

from extensions import db


KINDS = (
    "exam",
    "subject",
    "unit",
    "chapter",
    "topic",
    "subtopic",
    "definition",
)

NODE_STATUSES = ("active", "inactive")
EXAM_STATUSES = ("active", "inactive", "draft")

# Column each kind's id is stored under on its descendants.
ANCESTOR_COLUMNS = {
    "exam": "exam_id",
    "subject": "subject_id",
    "unit": "unit_id",
    "chapter": "chapter_id",
    "topic": "topic_id",
    "subtopic": "sub_topic_id",
}


def new_id() -> str:
    return str(uuid.uuid4())


def parent_kind(kind: str) -> Optional[str]:
    """Return the kind directly above ``kind`` (``None`` for the root)."""
    index = KINDS.index(kind)
    return KINDS[index - 1] if index > 0 else None


def child_kind(kind: str) -> Optional[str]:
    index = KINDS.index(kind)
    return KINDS[index + 1] if index + 1 < len(KINDS) else None


def ancestor_kinds(kind: str) -> Tuple[str, ...]:
    """Kinds above ``kind``, root first."""
    return KINDS[: KINDS.index(kind)]


def descendant_kinds(kind: str) -> Tuple[str, ...]:
    """Kinds below ``kind``, nearest first."""
    return KINDS[KINDS.index(kind) + 1 :]


def parent_column(kind: str) -> Optional[str]:
    """Column holding the immediate parent id for rows of ``kind``."""
    parent = parent_kind(kind)
    return ANCESTOR_COLUMNS[parent] if parent else None


@dataclass(frozen=True)
class AncestorPath:
    """Ordered ``(kind, id)`` pairs from the root down to the immediate parent."""

    entries: Tuple[Tuple[str, str], ...] = ()

    def columns(self) -> Dict[str, str]:
        """Map of ancestor column name to id, ready to assign onto a row."""
        return {ANCESTOR_COLUMNS[kind]: node_id for kind, node_id in self.entries}

    def extend(self, kind: str, node_id: str) -> "AncestorPath":
        """Path seen by a child of the node ``(kind, node_id)``."""
        return AncestorPath(self.entries + ((kind, node_id),))


class TimestampMixin:
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class ContentMixin:
    """SEO/content fields carried by every node."""

    content = db.Column(db.Text, nullable=False, default="")
    title = db.Column(db.String(255), nullable=False, default="")
    meta_description = db.Column(db.String(500), nullable=False, default="")
    keywords = db.Column(db.String(500), nullable=False, default="")


CONTENT_FIELDS = ("content", "title", "meta_description", "keywords")


class HierarchyNode(TimestampMixin, ContentMixin):
    """Columns and helpers shared by all seven node kinds."""

    kind = ""

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False)
    # Nullable so rows written before status existed can be backfilled.
    status = db.Column(
        Enum(*NODE_STATUSES, name="node_status"), nullable=True, default="active"
    )

    @property
    def ancestor_path(self) -> AncestorPath:
        return AncestorPath(
            tuple(
                (ancestor, getattr(self, ANCESTOR_COLUMNS[ancestor]))
                for ancestor in ancestor_kinds(self.kind)
            )
        )

    @property
    def parent_id(self) -> Optional[str]:
        column = parent_column(self.kind)
        return getattr(self, column) if column else None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "kind": self.kind,
            "name": self.name,
            "status": self.status,
        }
        if hasattr(self, "position"):
            data["position"] = self.position
        data.update(self.ancestor_path.columns())
        for field in CONTENT_FIELDS:
            data[field] = getattr(self, field)
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} {self.name!r}>"


def _sibling_constraints(table: str, parent: str) -> Tuple[Any, ...]:
    """Unique (parent, position) and (parent, name) plus the position floor."""
    return (
        db.UniqueConstraint(parent, "position", name=f"uq_{table}_parent_position"),
        db.UniqueConstraint(parent, "name", name=f"uq_{table}_parent_name"),
        db.CheckConstraint("position >= 1", name=f"ck_{table}_position_positive"),
    )


class Exam(HierarchyNode, db.Model):
    """Root of the hierarchy."""

    __tablename__ = "exams"
    kind = "exam"

    name = db.Column(db.String(200), nullable=False, unique=True)
    status = db.Column(
        Enum(*EXAM_STATUSES, name="exam_status"), nullable=True, default="active"
    )


class ExamDetail(TimestampMixin, ContentMixin, db.Model):
    """Long-form detail page content for an exam, one row per exam."""

    __tablename__ = "exam_details"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    exam_id = db.Column(db.String(36), nullable=False, unique=True, index=True)

    def __repr__(self) -> str:
        return f"<ExamDetail exam:{self.exam_id}>"


class Subject(HierarchyNode, db.Model):
    __tablename__ = "subjects"
    kind = "subject"

    exam_id = db.Column(db.String(36), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    __table_args__ = _sibling_constraints("subjects", "exam_id")


class Unit(HierarchyNode, db.Model):
    __tablename__ = "units"
    kind = "unit"

    exam_id = db.Column(db.String(36), nullable=False, index=True)
    subject_id = db.Column(db.String(36), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    __table_args__ = _sibling_constraints("units", "subject_id")


class Chapter(HierarchyNode, db.Model):
    __tablename__ = "chapters"
    kind = "chapter"

    exam_id = db.Column(db.String(36), nullable=False, index=True)
    subject_id = db.Column(db.String(36), nullable=False, index=True)
    unit_id = db.Column(db.String(36), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    __table_args__ = _sibling_constraints("chapters", "unit_id")


class Topic(HierarchyNode, db.Model):
    __tablename__ = "topics"
    kind = "topic"

    exam_id = db.Column(db.String(36), nullable=False, index=True)
    subject_id = db.Column(db.String(36), nullable=False, index=True)
    unit_id = db.Column(db.String(36), nullable=False, index=True)
    chapter_id = db.Column(db.String(36), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    __table_args__ = _sibling_constraints("topics", "chapter_id")


class SubTopic(HierarchyNode, db.Model):
    __tablename__ = "sub_topics"
    kind = "subtopic"

    exam_id = db.Column(db.String(36), nullable=False, index=True)
    subject_id = db.Column(db.String(36), nullable=False, index=True)
    unit_id = db.Column(db.String(36), nullable=False, index=True)
    chapter_id = db.Column(db.String(36), nullable=False, index=True)
    topic_id = db.Column(db.String(36), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    __table_args__ = _sibling_constraints("sub_topics", "topic_id")


class Definition(HierarchyNode, db.Model):
    """Leaf level of the hierarchy."""

    __tablename__ = "definitions"
    kind = "definition"

    exam_id = db.Column(db.String(36), nullable=False, index=True)
    subject_id = db.Column(db.String(36), nullable=False, index=True)
    unit_id = db.Column(db.String(36), nullable=False, index=True)
    chapter_id = db.Column(db.String(36), nullable=False, index=True)
    topic_id = db.Column(db.String(36), nullable=False, index=True)
    sub_topic_id = db.Column(db.String(36), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    __table_args__ = _sibling_constraints("definitions", "sub_topic_id")


NODE_MODELS = {
    "exam": Exam,
    "subject": Subject,
    "unit": Unit,
    "chapter": Chapter,
    "topic": Topic,
    "subtopic": SubTopic,
    "definition": Definition,
}

