"""Initial schema: accounts, transfers, notification outbox

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("kind", sa.String(20), nullable=False, server_default="personal"),
        sa.Column("balance_cents", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()),
        sa.CheckConstraint("balance_cents >= 0", name="ck_accounts_balance_non_negative"),
        sa.CheckConstraint("kind IN ('personal', 'business')", name="ck_accounts_kind"),
    )

    op.create_table(
        "transfers",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("payer_account_id", sa.String(36), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("payee_account_id", sa.String(36), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("amount_cents", sa.BigInteger, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="completed"),
        sa.Column("idempotency_key", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("amount_cents > 0", name="ck_transfers_amount_positive"),
        sa.CheckConstraint("payer_account_id <> payee_account_id", name="ck_transfers_distinct_accounts"),
    )
    op.create_index("ix_transfers_idempotency_key", "transfers", ["idempotency_key"], unique=True)
    op.create_index("ix_transfers_payer_account_id", "transfers", ["payer_account_id"])
    op.create_index("ix_transfers_payee_account_id", "transfers", ["payee_account_id"])
    op.create_index("ix_transfers_created_at", "transfers", ["created_at"])

    op.create_table(
        "notification_outbox",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("recipient", sa.String(255), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'in_flight', 'sent', 'failed')",
            name="ck_notification_outbox_status",
        ),
    )
    op.create_index(
        "ix_notification_outbox_deliverable",
        "notification_outbox",
        ["created_at"],
        postgresql_where=sa.text("status IN ('pending', 'in_flight')"),
    )


def downgrade() -> None:
    op.drop_table("notification_outbox")
    op.drop_table("transfers")
    op.drop_table("accounts")
