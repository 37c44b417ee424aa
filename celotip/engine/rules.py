"""
celotip.engine.rules — Tip Rule Selection
==========================================

Decides which configuration pays for an interaction.

Precedence:
  1. Comments and quotes only: an enabled super tip whose trigger phrase
     occurs in the cast text (case-insensitive) — replaces the regular
     amount and token entirely.
  2. The enabled per-interaction tip config.
  3. Nothing — the sender has not opted in for this interaction kind.

Pure functions; the DB reads live in
:mod:`celotip.services.tip_config_service`.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from celotip.database.models import SUPER_TIP_KINDS, InteractionKind

__all__ = ["SelectedTip", "TipRule", "phrase_matches", "select_tip_rule"]


@dataclass(frozen=True, slots=True)
class TipRule:
    """Detached snapshot of a TipConfig or SuperTipConfig row."""

    token_address: str
    token_symbol: str
    amount: Decimal
    is_enabled: bool = True
    trigger_phrase: str | None = None


@dataclass(frozen=True, slots=True)
class SelectedTip:
    token_address: str
    token_symbol: str
    amount: Decimal
    is_super_tip: bool = False


def phrase_matches(phrase: str | None, text: str | None) -> bool:
    """Case-insensitive substring match; a blank phrase never matches."""
    if not phrase or not phrase.strip() or not text:
        return False
    return phrase.strip().casefold() in text.casefold()


def select_tip_rule(
    kind: InteractionKind,
    text: str | None,
    tip_rule: TipRule | None,
    super_tip: TipRule | None,
) -> SelectedTip | None:
    """Pick the configuration that applies to this interaction, if any."""
    if (
        kind in SUPER_TIP_KINDS
        and super_tip is not None
        and super_tip.is_enabled
        and phrase_matches(super_tip.trigger_phrase, text)
    ):
        return SelectedTip(
            token_address=super_tip.token_address,
            token_symbol=super_tip.token_symbol,
            amount=super_tip.amount,
            is_super_tip=True,
        )

    if tip_rule is None or not tip_rule.is_enabled:
        return None

    return SelectedTip(
        token_address=tip_rule.token_address,
        token_symbol=tip_rule.token_symbol,
        amount=tip_rule.amount,
    )
