"""roster schema

Revision ID: 0001_roster_schema
Revises: 
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_roster_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "staff",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("account_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("hourly_rate", sa.Float(), nullable=False),
        sa.Column("weekend_rate", sa.Float(), nullable=True),
        sa.Column("employment_type", sa.String(20), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_staff_account_id", "staff", ["account_id"])
    op.create_table(
        "schedule_slots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("account_id", sa.String(64), nullable=False),
        sa.Column("date_key", sa.String(10), nullable=False),
        sa.Column("staff_id", sa.String(64), nullable=False),
        sa.Column("time_slot", sa.String(5), nullable=False),
        sa.Column("role_id", sa.String(64), nullable=False),
        sa.Column("role_code", sa.String(16), nullable=False),
        sa.Column("role_color", sa.String(16), nullable=False),
        sa.UniqueConstraint("account_id", "date_key", "staff_id", "time_slot", name="uq_schedule_slot"),
    )
    op.create_index("ix_schedule_slots_account_id", "schedule_slots", ["account_id"])
    op.create_table(
        "staff_order",
        sa.Column("account_id", sa.String(64), primary_key=True),
        sa.Column("staff_ids", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "business_settings",
        sa.Column("account_id", sa.String(64), primary_key=True),
        sa.Column("rules_json", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "shift_templates",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("account_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("role_id", sa.String(64), nullable=False),
        sa.Column("role_code", sa.String(16), nullable=False),
        sa.Column("role_color", sa.String(16), nullable=False),
        sa.Column("start_time", sa.String(5), nullable=False),
        sa.Column("end_time", sa.String(5), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_shift_templates_account_id", "shift_templates", ["account_id"])
    op.create_table(
        "daily_revenue",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("account_id", sa.String(64), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("projected_revenue", sa.Float(), nullable=False),
        sa.Column("other_revenue", sa.Float(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("account_id", "date", name="uq_daily_revenue_date"),
    )
    op.create_index("ix_daily_revenue_account_id", "daily_revenue", ["account_id"])


def downgrade() -> None:
    op.drop_index("ix_daily_revenue_account_id", table_name="daily_revenue")
    op.drop_table("daily_revenue")
    op.drop_index("ix_shift_templates_account_id", table_name="shift_templates")
    op.drop_table("shift_templates")
    op.drop_table("business_settings")
    op.drop_table("staff_order")
    op.drop_index("ix_schedule_slots_account_id", table_name="schedule_slots")
    op.drop_table("schedule_slots")
    op.drop_index("ix_staff_account_id", table_name="staff")
    op.drop_table("staff")
