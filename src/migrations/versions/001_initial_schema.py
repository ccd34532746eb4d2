"""Initial schema: accounts, categories, recurrence profiles, service events, ledger, audit.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

DIRECTION = sa.Enum("INCOME", "EXPENSE", name="direction")
FREQUENCY = sa.Enum("DAILY", "WEEKLY", "BIWEEKLY", "MONTHLY", name="frequency")
ENTRY_STATUS = sa.Enum("PENDING", "PAID", "OVERDUE", "CANCELLED", name="entrystatus")
ENTRY_ORIGIN = sa.Enum("MANUAL", "SERVICE", name="entryorigin")
SERVICE_KIND = sa.Enum("RENTAL", "OPERATION", name="servicekind")
SERVICE_STATUS = sa.Enum("ACTIVE", "COMPLETED", name="servicestatus")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
    ]


def upgrade() -> None:
    # Create accounts table
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False, comment="Business name"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("idx_account_name", "name"),
    )

    # Create categories table
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False, comment="Owning account"),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("direction", DIRECTION, nullable=False, comment="income or expense"),
        sa.Column("color", sa.String(length=20), nullable=False, server_default="#64748b"),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_id", "name", "direction", name="uq_category_account_name_direction"),
        sa.Index("ix_categories_account_id", "account_id"),
        sa.Index("idx_category_account_direction", "account_id", "direction"),
    )

    # Create recurrence_profiles table
    op.create_table(
        "recurrence_profiles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False, comment="Owning account"),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("direction", DIRECTION, nullable=False),
        sa.Column("frequency", FREQUENCY, nullable=False),
        sa.Column("weekdays", sa.JSON(), nullable=True, comment="Weekday filter for daily profiles (Monday=0)"),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_recurrence_profiles_account_id", "account_id"),
        sa.Index("ix_recurrence_profiles_category_id", "category_id"),
        sa.Index("idx_profile_account", "account_id"),
    )

    # Create service_events table
    op.create_table(
        "service_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False, comment="Owning account"),
        sa.Column("kind", SERVICE_KIND, nullable=False),
        sa.Column("sequence_number", sa.Integer(), nullable=False),
        sa.Column("client_name", sa.String(length=255), nullable=False),
        sa.Column("status", SERVICE_STATUS, nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("value", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0"),
        sa.Column("assigned_user_id", sa.Integer(), nullable=True),
        sa.Column("vehicle_id", sa.Integer(), nullable=True),
        sa.Column("recurrence_parent_id", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_service_events_account_id", "account_id"),
        sa.Index("ix_service_events_completed_at", "completed_at"),
        sa.Index("ix_service_events_vehicle_id", "vehicle_id"),
        sa.Index("idx_service_parent", "recurrence_parent_id"),
        sa.Index("idx_service_vehicle_status", "vehicle_id", "status"),
    )

    # Create ledger_entries table
    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False, comment="Owning account"),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("direction", DIRECTION, nullable=False),
        sa.Column("status", ENTRY_STATUS, nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=True),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("origin", ENTRY_ORIGIN, nullable=False),
        sa.Column("service_event_id", sa.Integer(), nullable=True),
        sa.Column("recurrence_profile_id", sa.Integer(), nullable=True),
        sa.Column("assigned_user_id", sa.Integer(), nullable=True),
        sa.Column("vehicle_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
        sa.ForeignKeyConstraint(["service_event_id"], ["service_events.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["recurrence_profile_id"], ["recurrence_profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("recurrence_profile_id", "due_date", name="uq_ledger_profile_due_date"),
        sa.Index("ix_ledger_entries_account_id", "account_id"),
        sa.Index("ix_ledger_entries_category_id", "category_id"),
        sa.Index("ix_ledger_entries_due_date", "due_date"),
        sa.Index("idx_ledger_service_event", "service_event_id"),
        sa.Index("idx_ledger_profile_status", "recurrence_profile_id", "status"),
        sa.Index("idx_ledger_account_due", "account_id", "due_date"),
    )

    # Create audit_logs table
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False, comment="Account the change belongs to"),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.Index("idx_audit_account_entity", "account_id", "entity_type", "entity_id"),
    )


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("ledger_entries")
    op.drop_table("service_events")
    op.drop_table("recurrence_profiles")
    op.drop_table("categories")
    op.drop_table("accounts")
