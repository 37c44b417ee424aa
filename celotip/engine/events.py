"""
celotip.engine.events — Webhook Payloads and the Interaction Envelope
======================================================================

Every Neynar webhook delivery is parsed into one variant of a tagged
union (discriminated on ``type``) and then normalized into an
:class:`Interaction`, the sole input to the tip pipeline.

Canonical payload shapes (Neynar webhook v2):

``reaction.created``
    ``data.reaction_type`` is the numeric enum — ``1`` like, ``2`` recast.
    ``data.user`` is the reactor, ``data.cast`` the reacted-to cast.
``cast.created``
    ``data.parent_hash`` / ``data.parent_author`` mark a reply (comment).
    ``data.embeds[].cast_id`` marks a quote (only with quote detection on).
``follow.created``
    ``data.follower`` follows ``data.following``.

Older deliveries that send ``reaction_type`` as a string fail validation
and are reported as malformed rather than guessed at.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, TypeAdapter, ValidationError

from celotip.database.models import InteractionKind

logger = logging.getLogger(__name__)

__all__ = [
    "Classification",
    "Interaction",
    "Malformed",
    "NotApplicable",
    "SelfInteraction",
    "SUPPORTED_EVENT_TYPES",
    "classify_event",
]

SUPPORTED_EVENT_TYPES = frozenset({"reaction.created", "cast.created", "follow.created"})

REACTION_KINDS: dict[int, InteractionKind] = {
    1: InteractionKind.LIKE,
    2: InteractionKind.RECAST,
}


# ---------------------------------------------------------------------------
# Payload variants
# ---------------------------------------------------------------------------
class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Actor(_Payload):
    fid: int
    username: str | None = None


class ParentAuthor(_Payload):
    fid: int | None = None


class ReactedCast(_Payload):
    hash: str
    author: Actor


class CastId(_Payload):
    fid: int
    hash: str


class Embed(_Payload):
    cast_id: CastId | None = None
    url: str | None = None


class ReactionData(_Payload):
    reaction_type: StrictInt
    user: Actor
    cast: ReactedCast


class CastData(_Payload):
    hash: str
    text: str = ""
    author: Actor
    parent_hash: str | None = None
    parent_author: ParentAuthor | None = None
    embeds: list[Embed] = Field(default_factory=list)


class FollowData(_Payload):
    follower: Actor
    following: Actor


class ReactionCreated(_Payload):
    type: Literal["reaction.created"]
    data: ReactionData


class CastCreated(_Payload):
    type: Literal["cast.created"]
    data: CastData


class FollowCreated(_Payload):
    type: Literal["follow.created"]
    data: FollowData


WebhookEvent = Annotated[
    ReactionCreated | CastCreated | FollowCreated,
    Field(discriminator="type"),
]

_EVENT_ADAPTER: TypeAdapter[WebhookEvent] = TypeAdapter(WebhookEvent)


# ---------------------------------------------------------------------------
# Classification outcomes
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Interaction:
    """Normalized tip-triggering interaction."""

    from_fid: int
    to_fid: int
    kind: InteractionKind
    event_key: str
    cast_hash: str | None = None
    text: str | None = None
    from_username: str | None = None


@dataclass(frozen=True, slots=True)
class NotApplicable:
    """Event that never triggers a tip (acknowledged and dropped)."""

    reason: str


@dataclass(frozen=True, slots=True)
class Malformed:
    """A supported event type whose payload is missing required fields."""

    reason: str


@dataclass(frozen=True, slots=True)
class SelfInteraction:
    interaction: Interaction


Classification = Interaction | NotApplicable | Malformed | SelfInteraction


# ---------------------------------------------------------------------------
# Per-variant normalization
# ---------------------------------------------------------------------------
def _from_reaction(event: ReactionCreated) -> Interaction | NotApplicable:
    data = event.data
    kind = REACTION_KINDS.get(data.reaction_type)
    if kind is None:
        return NotApplicable(f"Reaction type {data.reaction_type} does not trigger tips")
    return Interaction(
        from_fid=data.user.fid,
        to_fid=data.cast.author.fid,
        kind=kind,
        event_key=f"reaction:{kind.value}:{data.user.fid}:{data.cast.hash}",
        cast_hash=data.cast.hash,
        from_username=data.user.username,
    )


def _from_cast(event: CastCreated, detect_quotes: bool) -> Interaction | NotApplicable:
    data = event.data
    if data.parent_hash:
        if data.parent_author is None or data.parent_author.fid is None:
            return NotApplicable("Reply has no parent author")
        return Interaction(
            from_fid=data.author.fid,
            to_fid=data.parent_author.fid,
            kind=InteractionKind.COMMENT,
            event_key=f"cast:{data.hash}",
            cast_hash=data.parent_hash,
            text=data.text,
            from_username=data.author.username,
        )

    if detect_quotes:
        quoted = next((e.cast_id for e in data.embeds if e.cast_id is not None), None)
        if quoted is not None:
            return Interaction(
                from_fid=data.author.fid,
                to_fid=quoted.fid,
                kind=InteractionKind.QUOTE,
                event_key=f"cast:{data.hash}",
                cast_hash=quoted.hash,
                text=data.text,
                from_username=data.author.username,
            )

    return NotApplicable("Cast is not a reply")


def _from_follow(event: FollowCreated) -> Interaction:
    data = event.data
    return Interaction(
        from_fid=data.follower.fid,
        to_fid=data.following.fid,
        kind=InteractionKind.FOLLOW,
        event_key=f"follow:{data.follower.fid}:{data.following.fid}",
        from_username=data.follower.username,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def classify_event(payload: object, *, detect_quotes: bool = False) -> Classification:
    """Map a decoded webhook body onto a :data:`Classification`.

    This is a PURE function — no DB or network I/O.
    """
    event_type = payload.get("type") if isinstance(payload, dict) else None
    if event_type not in SUPPORTED_EVENT_TYPES:
        return NotApplicable("Event type not supported")

    try:
        event = _EVENT_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        logger.info("Malformed %s payload: %d validation error(s)", event_type, exc.error_count())
        return Malformed("Missing required webhook data")

    if isinstance(event, ReactionCreated):
        result = _from_reaction(event)
    elif isinstance(event, CastCreated):
        result = _from_cast(event, detect_quotes)
    else:
        result = _from_follow(event)

    if isinstance(result, Interaction) and result.from_fid == result.to_fid:
        return SelfInteraction(result)
    return result
