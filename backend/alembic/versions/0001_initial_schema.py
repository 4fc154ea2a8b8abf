"""Initial schema: models, workflows, data objects, wizards, runs, activity.

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    # ── Workflows ────────────────────────────────────────────
    op.create_table(
        "workflows",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("description", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_table(
        "workflow_states",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("workflow_id", sa.String(36), sa.ForeignKey("workflows.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("color", sa.String(20)),
        sa.Column("is_initial", sa.Boolean(), server_default=sa.false()),
        sa.Column("order_index", sa.Integer(), server_default="0"),
    )
    op.create_index("ix_workflow_states_workflow_id", "workflow_states", ["workflow_id"])
    op.create_table(
        "workflow_state_transitions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("workflow_id", sa.String(36), sa.ForeignKey("workflows.id"), nullable=False),
        sa.Column(
            "from_state_id", sa.String(36), sa.ForeignKey("workflow_states.id"), nullable=False
        ),
        sa.Column(
            "to_state_id", sa.String(36), sa.ForeignKey("workflow_states.id"), nullable=False
        ),
    )
    op.create_index(
        "ix_workflow_state_transitions_workflow_id",
        "workflow_state_transitions", ["workflow_id"],
    )
    op.create_index(
        "ix_workflow_state_transitions_from_state_id",
        "workflow_state_transitions", ["from_state_id"],
    )

    # ── Models / properties ──────────────────────────────────
    op.create_table(
        "models",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("description", sa.Text()),
        sa.Column("workflow_id", sa.String(36), sa.ForeignKey("workflows.id")),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_models_workflow_id", "models", ["workflow_id"])
    op.create_table(
        "properties",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("model_id", sa.String(36), sa.ForeignKey("models.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("required", sa.Boolean(), server_default=sa.false()),
        sa.Column("is_unique", sa.Boolean(), server_default=sa.false()),
        sa.Column("min_value", sa.Float()),
        sa.Column("max_value", sa.Float()),
        sa.Column("precision", sa.Integer()),
        sa.Column("unit", sa.String(50)),
        sa.Column("related_model_id", sa.String(36)),
        sa.Column("relationship_type", sa.String(10)),
        sa.Column("auto_set_on_create", sa.Boolean(), server_default=sa.false()),
        sa.Column("auto_set_on_update", sa.Boolean(), server_default=sa.false()),
        sa.Column("order_index", sa.Integer(), server_default="0"),
    )
    op.create_index("ix_properties_model_id", "properties", ["model_id"])

    # ── Data objects ─────────────────────────────────────────
    op.create_table(
        "data_objects",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("model_id", sa.String(36), sa.ForeignKey("models.id"), nullable=False),
        sa.Column("attributes", sa.JSON(), nullable=False),
        sa.Column("current_state_id", sa.String(36)),
        sa.Column("owner_id", sa.String(36)),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_data_objects_model_id", "data_objects", ["model_id"])
    op.create_index("ix_data_objects_current_state_id", "data_objects", ["current_state_id"])
    op.create_index("ix_data_objects_owner_id", "data_objects", ["owner_id"])
    op.create_index("ix_data_objects_created_at", "data_objects", ["created_at"])

    # ── Wizards ──────────────────────────────────────────────
    op.create_table(
        "wizards",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("description", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_table(
        "wizard_steps",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("wizard_id", sa.String(36), sa.ForeignKey("wizards.id"), nullable=False),
        sa.Column("model_id", sa.String(36), sa.ForeignKey("models.id"), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False),
        sa.Column("instructions", sa.Text()),
        sa.Column("property_ids", sa.JSON()),
        sa.Column("property_mappings", sa.JSON()),
    )
    op.create_index("ix_wizard_steps_wizard_id", "wizard_steps", ["wizard_id"])
    op.create_table(
        "wizard_runs",
        sa.Column("id", sa.String(40), primary_key=True),
        sa.Column("wizard_id", sa.String(36), sa.ForeignKey("wizards.id"), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("status", sa.String(20), server_default="IN_PROGRESS"),
        sa.Column("current_step_index", sa.Integer(), server_default="-1"),
        sa.Column("step_data", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime()),
    )
    op.create_index("ix_wizard_runs_wizard_id", "wizard_runs", ["wizard_id"])
    op.create_index("ix_wizard_runs_user_id", "wizard_runs", ["user_id"])
    op.create_index("ix_wizard_runs_status", "wizard_runs", ["status"])
    op.create_index("ix_wizard_runs_updated_at", "wizard_runs", ["updated_at"])

    # ── Activity ─────────────────────────────────────────────
    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(40)),
        sa.Column("summary", sa.Text()),
        sa.Column("details", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_entity_type", "activity_logs", ["entity_type"])
    op.create_index("ix_activity_logs_entity_id", "activity_logs", ["entity_id"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("wizard_runs")
    op.drop_table("wizard_steps")
    op.drop_table("wizards")
    op.drop_table("data_objects")
    op.drop_table("properties")
    op.drop_table("models")
    op.drop_table("workflow_state_transitions")
    op.drop_table("workflow_states")
    op.drop_table("workflows")
