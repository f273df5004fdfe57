"""content hierarchy

Revision ID: 3a7d5e91c4b2
Revises:
Create Date: 2026-10-12 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "3a7d5e91c4b2"
down_revision = None
branch_labels = None
depends_on = None


NODE_STATUS_VALUES = ("active", "inactive")

# Shared by every node table; on PostgreSQL the type is created once in upgrade().
NODE_STATUS = sa.Enum(*NODE_STATUS_VALUES, name="node_status").with_variant(
    postgresql.ENUM(*NODE_STATUS_VALUES, name="node_status", create_type=False),
    "postgresql",
)

# (table, ancestor columns root first); the last column is the parent.
NODE_TABLES = (
    ("subjects", ("exam_id",)),
    ("units", ("exam_id", "subject_id")),
    ("chapters", ("exam_id", "subject_id", "unit_id")),
    ("topics", ("exam_id", "subject_id", "unit_id", "chapter_id")),
    ("sub_topics", ("exam_id", "subject_id", "unit_id", "chapter_id", "topic_id")),
    (
        "definitions",
        ("exam_id", "subject_id", "unit_id", "chapter_id", "topic_id", "sub_topic_id"),
    ),
)


def _content_columns():
    return [
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("title", sa.String(length=255), nullable=False, server_default=""),
        sa.Column(
            "meta_description", sa.String(length=500), nullable=False, server_default=""
        ),
        sa.Column("keywords", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        postgresql.ENUM(*NODE_STATUS_VALUES, name="node_status").create(
            bind, checkfirst=True
        )

    op.create_table(
        "exams",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column(
            "status",
            sa.Enum("active", "inactive", "draft", name="exam_status"),
            nullable=True,
        ),
        *_content_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "exam_details",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("exam_id", sa.String(length=36), nullable=False),
        *_content_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_exam_details_exam_id", "exam_details", ["exam_id"], unique=True
    )

    for table, ancestors in NODE_TABLES:
        parent = ancestors[-1]
        op.create_table(
            table,
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("status", NODE_STATUS, nullable=True),
            *[
                sa.Column(column, sa.String(length=36), nullable=False)
                for column in ancestors
            ],
            sa.Column("position", sa.Integer(), nullable=False),
            *_content_columns(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(parent, "position", name=f"uq_{table}_parent_position"),
            sa.UniqueConstraint(parent, "name", name=f"uq_{table}_parent_name"),
            sa.CheckConstraint("position >= 1", name=f"ck_{table}_position_positive"),
        )
        for column in ancestors:
            op.create_index(f"ix_{table}_{column}", table, [column])


def downgrade():
    for table, ancestors in reversed(NODE_TABLES):
        for column in ancestors:
            op.drop_index(f"ix_{table}_{column}", table_name=table)
        op.drop_table(table)

    op.drop_index("ix_exam_details_exam_id", table_name="exam_details")
    op.drop_table("exam_details")
    op.drop_table("exams")

    bind = op.get_bind()
    if bind.dialect.name != "sqlite":
        sa.Enum(name="node_status").drop(bind, checkfirst=True)
        sa.Enum(name="exam_status").drop(bind, checkfirst=True)
