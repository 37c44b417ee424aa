"""
celotip.database.models — SQLAlchemy 2.0 Data Models
=====================================================

Tables:
- profiles            — Farcaster actors and their resolved wallet address
- tip_configs         — Per-(actor, interaction) tip amount and token
- super_tip_configs   — Per-actor trigger-phrase override
- transactions        — Tip ledger (audit log + idempotency anchor)
- notification_tokens — Push tokens for the notification endpoint
- relayer_nonces      — Shared nonce sequence for the relayer account
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Token amounts: 18 decimals covers every ERC-20 we support.
TokenAmount = Numeric(38, 18)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all CeloTip ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class InteractionKind(enum.StrEnum):
    """Interactions that can trigger a tip."""
    LIKE = "like"
    RECAST = "recast"
    COMMENT = "comment"
    QUOTE = "quote"
    FOLLOW = "follow"


SUPER_TIP_KINDS = frozenset({InteractionKind.COMMENT, InteractionKind.QUOTE})


class TransactionStatus(enum.StrEnum):
    """Ledger lifecycle: pending → exactly one terminal state."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Profiles — one row per Farcaster actor
# ---------------------------------------------------------------------------
class Profile(Base):
    __tablename__ = "profiles"

    fid: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    display_name: Mapped[str | None] = mapped_column(String(200), default=None)
    pfp_url: Mapped[str | None] = mapped_column(Text, default=None)
    custody_address: Mapped[str | None] = mapped_column(String(42), default=None)
    connected_address: Mapped[str | None] = mapped_column(String(42), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<Profile fid={self.fid} name={self.username!r}>"


# ---------------------------------------------------------------------------
# TipConfig — per-interaction tip settings
# ---------------------------------------------------------------------------
class TipConfig(Base):
    """How much an actor tips for one interaction kind.

    Edited by the actor from the settings UI; read-only to the pipeline.
    """
    __tablename__ = "tip_configs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    fid: Mapped[int] = mapped_column(BigInteger, nullable=False)
    interaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    token_address: Mapped[str] = mapped_column(String(42), nullable=False)
    token_symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(TokenAmount, nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("fid", "interaction_type", name="uq_tip_configs_fid_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<TipConfig fid={self.fid} type={self.interaction_type!r} "
            f"amount={self.amount} {self.token_symbol}>"
        )


# ---------------------------------------------------------------------------
# SuperTipConfig — trigger-phrase override (at most one per actor)
# ---------------------------------------------------------------------------
class SuperTipConfig(Base):
    __tablename__ = "super_tip_configs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    fid: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    trigger_phrase: Mapped[str] = mapped_column(String(100), nullable=False)
    token_address: Mapped[str] = mapped_column(String(42), nullable=False)
    token_symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(TokenAmount, nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<SuperTipConfig fid={self.fid} phrase={self.trigger_phrase!r}>"


# ---------------------------------------------------------------------------
# TipTransaction — the ledger
# ---------------------------------------------------------------------------
class TipTransaction(Base):
    """One tip attempt.

    Inserted ``pending`` before the relayer submits anything; moves to
    ``completed`` or ``failed`` exactly once.  ``(event_key, attempt)`` is
    unique so concurrent deliveries of the same webhook event cannot both
    reach the relayer.
    """
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    event_key: Mapped[str] = mapped_column(String(200), nullable=False)
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    from_fid: Mapped[int] = mapped_column(BigInteger, nullable=False)
    to_fid: Mapped[int] = mapped_column(BigInteger, nullable=False)
    token_address: Mapped[str] = mapped_column(String(42), nullable=False)
    token_symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(TokenAmount, nullable=False)
    amount_units: Mapped[str] = mapped_column(String(80), nullable=False)
    interaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    cast_hash: Mapped[str | None] = mapped_column(String(100), default=None)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TransactionStatus.PENDING.value
    )
    tx_hash: Mapped[str | None] = mapped_column(String(80), default=None)
    error_message: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("event_key", "attempt", name="uq_transactions_event_attempt"),
        Index("ix_transactions_status_created", "status", "created_at"),
        Index("ix_transactions_from_fid", "from_fid"),
        Index("ix_transactions_to_fid", "to_fid"),
    )

    def __repr__(self) -> str:
        return (
            f"<TipTransaction id={self.id} {self.from_fid}->{self.to_fid} "
            f"status={self.status}>"
        )


# ---------------------------------------------------------------------------
# NotificationToken — push delivery details per actor
# ---------------------------------------------------------------------------
class NotificationToken(Base):
    __tablename__ = "notification_tokens"

    fid: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    token: Mapped[str] = mapped_column(Text, nullable=False)
    notification_url: Mapped[str] = mapped_column(Text, nullable=False)
    is_valid: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<NotificationToken fid={self.fid} valid={self.is_valid}>"


# ---------------------------------------------------------------------------
# RelayerNonce — shared nonce sequence
# ---------------------------------------------------------------------------
class RelayerNonce(Base):
    """Next nonce to hand out for the relayer account on one chain.

    Rows are locked with ``SELECT ... FOR UPDATE`` while a nonce is
    allocated, which serializes allocation across handler instances.
    """
    __tablename__ = "relayer_nonces"

    chain_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    address: Mapped[str] = mapped_column(String(42), primary_key=True)
    next_nonce: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    released_nonces: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<RelayerNonce chain={self.chain_id} next={self.next_nonce}>"
