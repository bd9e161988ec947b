"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "users",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("email", sa.String(), nullable=True),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("avatar", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)

  op.create_table(
    "kanban_boards",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("project_id", sa.String(), nullable=True),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_kanban_boards_project_id", "kanban_boards", ["project_id"], unique=False)

  op.create_table(
    "kanban_columns",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("kanban_boards.id"), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("stage", sa.String(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("color", sa.String(), nullable=True),
    sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_kanban_columns_board_id", "kanban_columns", ["board_id"], unique=False)

  op.create_table(
    "kanban_tasks",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("column_id", sa.String(36), sa.ForeignKey("kanban_columns.id"), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("assignee_id", sa.String(36), nullable=True),
    sa.Column("priority", sa.String(), nullable=False, server_default="medium"),
    sa.Column("tags", sa.JSON(), nullable=False),
    sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
    sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_kanban_tasks_column_id", "kanban_tasks", ["column_id"], unique=False)

  op.create_table(
    "checklist_items",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("kanban_tasks.id"), nullable=False),
    sa.Column("text", sa.Text(), nullable=False),
    sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("assignee_id", sa.String(36), nullable=True),
    sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
    sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_checklist_items_task_id", "checklist_items", ["task_id"], unique=False)

  op.create_table(
    "task_comments",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("kanban_tasks.id"), nullable=False),
    sa.Column("author_id", sa.String(), nullable=False),
    sa.Column("content", sa.Text(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
  )
  op.create_index("ix_task_comments_task_id", "task_comments", ["task_id"], unique=False)

  op.create_table(
    "task_attachments",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("kanban_tasks.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("url", sa.String(), nullable=False),
    sa.Column("type", sa.String(), nullable=False, server_default="document"),
    sa.Column("uploaded_by", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_task_attachments_task_id", "task_attachments", ["task_id"], unique=False)

  op.create_table(
    "audit_events",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("board_id", sa.String(36), nullable=True),
    sa.Column("task_id", sa.String(36), nullable=True),
    sa.Column("actor_id", sa.String(), nullable=True),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("entity_type", sa.String(), nullable=False),
    sa.Column("entity_id", sa.String(), nullable=True),
    sa.Column("payload", sa.JSON(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_audit_events_board_id", "audit_events", ["board_id"], unique=False)


def downgrade() -> None:
  op.drop_table("audit_events")
  op.drop_table("task_attachments")
  op.drop_table("task_comments")
  op.drop_table("checklist_items")
  op.drop_table("kanban_tasks")
  op.drop_table("kanban_columns")
  op.drop_table("kanban_boards")
  op.drop_table("users")
