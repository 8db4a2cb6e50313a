"""Initial farmbook schema: users, audit, farms, members, invitations, animals, events, cashbox.

Revision ID: a0f1c2d3e4b5
Revises:
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a0f1c2d3e4b5"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _has_table(name: str) -> bool:
    return sa.inspect(op.get_bind()).has_table(name)


def upgrade() -> None:
    if not _has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.UniqueConstraint("email"),
        )

    if not _has_table("farms"):
        op.create_table(
            "farms",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(100), nullable=False),
            sa.Column("currency", sa.String(3), nullable=False, server_default="TND"),
            sa.Column("timezone", sa.String(64), nullable=False, server_default="Africa/Tunis"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.Column("created_by_user_id", sa.Integer(), nullable=True),
            sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["updated_by_user_id"], ["users.id"], ondelete="SET NULL"),
        )

    if not _has_table("audit_events"):
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            sa.Column("actor_user_email", sa.String(320), nullable=True),
            sa.Column("farm_id", sa.Integer(), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
            sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], ondelete="SET NULL"),
            sa.UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
        )

    if not _has_table("farm_members"):
        op.create_table(
            "farm_members",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("farm_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("role", sa.String(16), nullable=False),
            sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
            sa.Column("joined_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("farm_id", "user_id", name="uq_farm_members_farm_user"),
        )
        op.create_index("idx_farm_members_user", "farm_members", ["user_id"])
        op.create_index("idx_farm_members_farm_status", "farm_members", ["farm_id", "status"])

    if not _has_table("farm_invitations"):
        op.create_table(
            "farm_invitations",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("farm_id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("role", sa.String(16), nullable=False),
            sa.Column("token", sa.String(128), nullable=False),
            sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("accepted_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("invited_by_user_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["invited_by_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.UniqueConstraint("token"),
        )
        op.create_index("idx_farm_invitations_farm_email", "farm_invitations", ["farm_id", "email"])
        op.create_index("idx_farm_invitations_status", "farm_invitations", ["status"])

    if not _has_table("animals"):
        op.create_table(
            "animals",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("farm_id", sa.Integer(), nullable=False),
            sa.Column("tag_number", sa.String(20), nullable=False),
            sa.Column("type", sa.String(16), nullable=False, server_default="INDIVIDUAL"),
            sa.Column("species", sa.String(100), nullable=False),
            sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
            sa.Column("sex", sa.String(8), nullable=True),
            sa.Column("birth_date", sa.Date(), nullable=True),
            sa.Column("estimated_age", sa.Integer(), nullable=True),
            sa.Column("lot_count", sa.Integer(), nullable=True),
            sa.Column("photo_url", sa.String(1024), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.Column("created_by_user_id", sa.Integer(), nullable=True),
            sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["updated_by_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.UniqueConstraint("farm_id", "tag_number", name="uq_animals_farm_tag"),
        )
        op.create_index("idx_animals_farm_status", "animals", ["farm_id", "status"])
        op.create_index("idx_animals_farm_species", "animals", ["farm_id", "species"])

    if not _has_table("events"):
        op.create_table(
            "events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("farm_id", sa.Integer(), nullable=False),
            sa.Column("target_type", sa.String(10), nullable=False),
            sa.Column("target_id", sa.Integer(), nullable=False),
            sa.Column("event_type", sa.String(20), nullable=False),
            sa.Column("event_date", sa.DateTime(), nullable=False),
            sa.Column("payload", sa.JSON(), nullable=True),
            sa.Column("note", sa.Text(), nullable=True),
            sa.Column("cost", sa.Numeric(12, 2), nullable=True),
            sa.Column("next_due_date", sa.DateTime(), nullable=True),
            sa.Column("attachment_url", sa.String(1024), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.Column("created_by_user_id", sa.Integer(), nullable=True),
            sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["target_id"], ["animals.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["updated_by_user_id"], ["users.id"], ondelete="SET NULL"),
        )
        op.create_index("idx_events_farm_date", "events", ["farm_id", "event_date"])
        op.create_index("idx_events_farm_target", "events", ["farm_id", "target_id"])
        op.create_index("idx_events_farm_next_due", "events", ["farm_id", "next_due_date"])

    if not _has_table("credit_expenses"):
        op.create_table(
            "credit_expenses",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("farm_id", sa.Integer(), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("remaining_amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("description", sa.String(255), nullable=False),
            sa.Column("category", sa.String(20), nullable=False),
            sa.Column("paid_by", sa.String(255), nullable=False),
            sa.Column("status", sa.String(24), nullable=False, server_default="OUTSTANDING"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.Column("created_by_user_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        )
        op.create_index("idx_credit_expenses_farm_status", "credit_expenses", ["farm_id", "status"])

    if not _has_table("cashbox_movements"):
        op.create_table(
            "cashbox_movements",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("farm_id", sa.Integer(), nullable=False),
            sa.Column("type", sa.String(20), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("description", sa.String(255), nullable=False),
            sa.Column("category", sa.String(20), nullable=True),
            sa.Column("related_event_id", sa.Integer(), nullable=True),
            sa.Column("related_expense_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("created_by_user_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["related_event_id"], ["events.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["related_expense_id"], ["credit_expenses.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        )
        op.create_index("idx_cashbox_movements_farm_created", "cashbox_movements", ["farm_id", "created_at"])
        op.create_index("idx_cashbox_movements_farm_type", "cashbox_movements", ["farm_id", "type"])


def downgrade() -> None:
    for table in (
        "cashbox_movements",
        "credit_expenses",
        "events",
        "animals",
        "farm_invitations",
        "farm_members",
        "audit_events",
        "farms",
        "users",
    ):
        op.drop_table(table)
