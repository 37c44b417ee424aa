"""Initial schema: profiles, tip configs, ledger, push tokens, relayer nonces

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

_AMOUNT = sa.Numeric(38, 18)


def _timestamps(updated_only: bool = False) -> list[sa.Column]:
    cols = [
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]
    if not updated_only:
        cols.insert(0, sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()))
    return cols


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("fid", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("username", sa.String(100), nullable=False, server_default=""),
        sa.Column("display_name", sa.String(200), nullable=True),
        sa.Column("pfp_url", sa.Text(), nullable=True),
        sa.Column("custody_address", sa.String(42), nullable=True),
        sa.Column("connected_address", sa.String(42), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "tip_configs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("fid", sa.BigInteger(), nullable=False),
        sa.Column("interaction_type", sa.String(20), nullable=False),
        sa.Column("token_address", sa.String(42), nullable=False),
        sa.Column("token_symbol", sa.String(20), nullable=False),
        sa.Column("amount", _AMOUNT, nullable=False),
        sa.Column("is_enabled", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("fid", "interaction_type", name="uq_tip_configs_fid_type"),
    )

    op.create_table(
        "super_tip_configs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("fid", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("trigger_phrase", sa.String(100), nullable=False),
        sa.Column("token_address", sa.String(42), nullable=False),
        sa.Column("token_symbol", sa.String(20), nullable=False),
        sa.Column("amount", _AMOUNT, nullable=False),
        sa.Column("is_enabled", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("event_key", sa.String(200), nullable=False),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("from_fid", sa.BigInteger(), nullable=False),
        sa.Column("to_fid", sa.BigInteger(), nullable=False),
        sa.Column("token_address", sa.String(42), nullable=False),
        sa.Column("token_symbol", sa.String(20), nullable=False),
        sa.Column("amount", _AMOUNT, nullable=False),
        sa.Column("amount_units", sa.String(80), nullable=False),
        sa.Column("interaction_type", sa.String(20), nullable=False),
        sa.Column("cast_hash", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("tx_hash", sa.String(80), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("event_key", "attempt", name="uq_transactions_event_attempt"),
    )
    op.create_index("ix_transactions_status_created", "transactions", ["status", "created_at"])
    op.create_index("ix_transactions_from_fid", "transactions", ["from_fid"])
    op.create_index("ix_transactions_to_fid", "transactions", ["to_fid"])

    op.create_table(
        "notification_tokens",
        sa.Column("fid", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("notification_url", sa.Text(), nullable=False),
        sa.Column("is_valid", sa.Boolean(), server_default=sa.true()),
        *_timestamps(updated_only=True),
    )

    op.create_table(
        "relayer_nonces",
        sa.Column("chain_id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("address", sa.String(42), primary_key=True),
        sa.Column("next_nonce", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("released_nonces", sa.JSON(), nullable=False, server_default="[]"),
        *_timestamps(updated_only=True),
    )


def downgrade() -> None:
    op.drop_table("relayer_nonces")
    op.drop_table("notification_tokens")
    op.drop_index("ix_transactions_to_fid", table_name="transactions")
    op.drop_index("ix_transactions_from_fid", table_name="transactions")
    op.drop_index("ix_transactions_status_created", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("super_tip_configs")
    op.drop_table("tip_configs")
    op.drop_table("profiles")
