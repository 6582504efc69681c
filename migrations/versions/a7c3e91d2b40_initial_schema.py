"""initial_schema

Create projects, people, the five workflow entity tables, action items,
workflow logs, closure requests and the standalone action log tables.

Entity tables use SQLite AUTOINCREMENT so ids are never reused; log rows
keep pointing at the entity they were written for after it is deleted.

Revision ID: a7c3e91d2b40
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a7c3e91d2b40"
down_revision = None
branch_labels = None
depends_on = None


ENTITY_TABLES = ("issues", "risks", "changes", "escalations", "faults")


def _entity_columns():
    """Columns every workflow entity table shares."""
    return [
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("number", sa.String(length=50), nullable=False, comment="e.g. RISK-0001"),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False),
        sa.Column("raised_by_id", sa.Integer(), nullable=True, comment="Reporter / identifier / requester"),
        sa.Column("assigned_to_id", sa.Integer(), nullable=True, comment="Assignee / owner / escalated-to"),
        sa.Column("raised_date", sa.Date(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False,
                  comment="Bumped on every mutation; optimistic concurrency"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["raised_by_id"], ["people.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["assigned_to_id"], ["people.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("number"),
    ]


def _entity_indexes(table, *extra):
    for column in ("project_id", "status", "assigned_to_id", *extra):
        op.create_index(f"ix_{table}_{column}", table, [column])


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_code", sa.String(length=50), nullable=False),
            sa.Column("project_name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="Planning"),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("project_manager", sa.String(length=100), nullable=True),
            sa.Column("client_name", sa.String(length=255), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_code"),
        )
        op.create_index("ix_projects_status", "projects", ["status"])

    if "people" not in existing_tables:
        op.create_table(
            "people",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("username", sa.String(length=50), nullable=False),
            sa.Column("full_name", sa.String(length=100), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("role", sa.String(length=100), nullable=True),
            sa.Column("department", sa.String(length=100), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("username"),
        )

    # ── Workflow entities ────────────────────────────────────────────────
    if "issues" not in existing_tables:
        op.create_table(
            "issues",
            *_entity_columns(),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="Medium"),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("impact", sa.Text(), nullable=True),
            sa.Column("target_resolution_date", sa.Date(), nullable=True),
            sa.Column("actual_resolution_date", sa.Date(), nullable=True),
            sqlite_autoincrement=True,
        )
        _entity_indexes("issues", "priority")

    if "risks" not in existing_tables:
        op.create_table(
            "risks",
            *_entity_columns(),
            sa.Column("probability", sa.String(length=20), nullable=False, server_default="Medium"),
            sa.Column("impact", sa.String(length=20), nullable=False, server_default="Medium"),
            sa.Column("risk_score", sa.Integer(), nullable=False, server_default="9",
                      comment="probability × impact"),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("review_date", sa.Date(), nullable=True),
            sa.Column("mitigation_strategy", sa.Text(), nullable=True),
            sa.Column("contingency_plan", sa.Text(), nullable=True),
            sqlite_autoincrement=True,
        )
        _entity_indexes("risks")

    if "changes" not in existing_tables:
        op.create_table(
            "changes",
            *_entity_columns(),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="Medium"),
            sa.Column("change_type", sa.String(length=20), nullable=False, server_default="Other"),
            sa.Column("approved_by_id", sa.Integer(), nullable=True),
            sa.Column("approval_date", sa.Date(), nullable=True),
            sa.Column("implementation_date", sa.Date(), nullable=True),
            sa.Column("cost_impact", sa.Numeric(precision=15, scale=2), nullable=True),
            sa.Column("schedule_impact_days", sa.Integer(), nullable=True),
            sa.Column("justification", sa.Text(), nullable=True),
            sa.Column("impact_assessment", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["approved_by_id"], ["people.id"], ondelete="SET NULL"),
            sqlite_autoincrement=True,
        )
        _entity_indexes("changes", "priority")

    if "escalations" not in existing_tables:
        op.create_table(
            "escalations",
            *_entity_columns(),
            sa.Column("severity", sa.String(length=20), nullable=False, server_default="Medium"),
            sa.Column("escalation_type", sa.String(length=100), nullable=True),
            sa.Column("target_response_date", sa.Date(), nullable=True),
            sa.Column("actual_response_date", sa.Date(), nullable=True),
            sa.Column("resolution_summary", sa.Text(), nullable=True),
            sqlite_autoincrement=True,
        )
        _entity_indexes("escalations", "severity")

    if "faults" not in existing_tables:
        op.create_table(
            "faults",
            *_entity_columns(),
            sa.Column("severity", sa.String(length=20), nullable=False, server_default="Major"),
            sa.Column("fault_type", sa.String(length=100), nullable=True),
            sa.Column("target_fix_date", sa.Date(), nullable=True),
            sa.Column("actual_fix_date", sa.Date(), nullable=True),
            sa.Column("root_cause", sa.Text(), nullable=True),
            sa.Column("resolution", sa.Text(), nullable=True),
            sqlite_autoincrement=True,
        )
        _entity_indexes("faults", "severity")

    # ── Actions, log, closure gate ───────────────────────────────────────
    if "action_items" not in existing_tables:
        op.create_table(
            "action_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("entity_type", sa.String(length=20), nullable=False),
            sa.Column("entity_id", sa.Integer(), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("action_type", sa.String(length=100), nullable=True),
            sa.Column("assigned_to_id", sa.Integer(), nullable=True),
            sa.Column("created_by_id", sa.Integer(), nullable=True),
            sa.Column("created_date", sa.Date(), nullable=False),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("completed_date", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="Pending"),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="Medium"),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("completion_notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["assigned_to_id"], ["people.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["created_by_id"], ["people.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_action_items_entity", "action_items", ["entity_type", "entity_id"])
        op.create_index("ix_action_items_assigned_to_id", "action_items", ["assigned_to_id"])
        op.create_index("ix_action_items_status", "action_items", ["status"])

    if "workflow_logs" not in existing_tables:
        op.create_table(
            "workflow_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("entity_type", sa.String(length=20), nullable=False),
            sa.Column("entity_id", sa.Integer(), nullable=False),
            sa.Column("logged_by_id", sa.Integer(), nullable=True),
            sa.Column("log_type", sa.String(length=30), nullable=False),
            sa.Column("previous_status", sa.String(length=30), nullable=True),
            sa.Column("new_status", sa.String(length=30), nullable=True),
            sa.Column("comments", sa.Text(), nullable=True),
            sa.Column("logged_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["logged_by_id"], ["people.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_workflow_log_entity", "workflow_logs", ["entity_type", "entity_id"])
        op.create_index("idx_workflow_log_ts", "workflow_logs", ["logged_at"])
        op.create_index("ix_workflow_logs_logged_by_id", "workflow_logs", ["logged_by_id"])

    if "closure_requests" not in existing_tables:
        op.create_table(
            "closure_requests",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("entity_type", sa.String(length=20), nullable=False),
            sa.Column("entity_id", sa.Integer(), nullable=False),
            sa.Column("requested_by_id", sa.Integer(), nullable=True),
            sa.Column("justification", sa.Text(), nullable=True),
            sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("resolution", sa.String(length=20), nullable=False, server_default="Pending"),
            sa.Column("decided_by_id", sa.Integer(), nullable=True),
            sa.Column("decision_comments", sa.Text(), nullable=True),
            sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["requested_by_id"], ["people.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["decided_by_id"], ["people.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_closure_entity", "closure_requests", ["entity_type", "entity_id"])
        op.create_index("ix_closure_requests_resolution", "closure_requests", ["resolution"])

    # ── Standalone action logs ───────────────────────────────────────────
    if "action_logs" not in existing_tables:
        op.create_table(
            "action_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("log_number", sa.String(length=50), nullable=False),
            sa.Column("log_name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="Active"),
            sa.Column("created_by_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["created_by_id"], ["people.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("log_number"),
        )
        op.create_index("ix_action_logs_project_id", "action_logs", ["project_id"])
        op.create_index("ix_action_logs_status", "action_logs", ["status"])

    if "action_log_items" not in existing_tables:
        op.create_table(
            "action_log_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("action_log_id", sa.Integer(), nullable=False),
            sa.Column("action_number", sa.String(length=50), nullable=True),
            sa.Column("action_description", sa.Text(), nullable=False),
            sa.Column("action_type", sa.String(length=100), nullable=True),
            sa.Column("assigned_to_id", sa.Integer(), nullable=True),
            sa.Column("created_by_id", sa.Integer(), nullable=True),
            sa.Column("created_date", sa.Date(), nullable=False),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("completed_date", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="Pending"),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="Medium"),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("completion_notes", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["action_log_id"], ["action_logs.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["assigned_to_id"], ["people.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["created_by_id"], ["people.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_action_log_items_action_log_id", "action_log_items", ["action_log_id"])
        op.create_index("ix_action_log_items_assigned_to_id", "action_log_items", ["assigned_to_id"])
        op.create_index("ix_action_log_items_status", "action_log_items", ["status"])

    if "action_requirements" not in existing_tables:
        op.create_table(
            "action_requirements",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("action_item_id", sa.Integer(), nullable=False),
            sa.Column("requirement_description", sa.Text(), nullable=False),
            sa.Column("sequence_order", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="Pending"),
            sa.Column("completed_by_id", sa.Integer(), nullable=True),
            sa.Column("completed_date", sa.Date(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["action_item_id"], ["action_log_items.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["completed_by_id"], ["people.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_action_requirements_action_item_id", "action_requirements", ["action_item_id"])


def downgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    # Children before parents; dropping a table drops its indexes.
    for table in (
        "action_requirements", "action_log_items", "action_logs",
        "closure_requests", "workflow_logs", "action_items",
        *ENTITY_TABLES,
        "people", "projects",
    ):
        if table in existing_tables:
            op.drop_table(table)
