"""
celotip.services.tip_config_service — Tip Configuration Reads
==============================================================

Loads a sender's tip settings as detached :class:`TipRule` snapshots.
All functions are synchronous; call them via ``run_db``.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from celotip.database.models import SUPER_TIP_KINDS, InteractionKind, SuperTipConfig, TipConfig
from celotip.engine.rules import TipRule

logger = logging.getLogger(__name__)


def load_tip_rules(
    engine: Engine, fid: int, kind: InteractionKind
) -> tuple[TipRule | None, TipRule | None]:
    """Return ``(per_kind_rule, super_tip_rule)`` for *fid*.

    The super tip is only loaded for interaction kinds that can use it.
    """
    with Session(engine) as session:
        config = session.scalar(
            select(TipConfig).where(
                TipConfig.fid == fid,
                TipConfig.interaction_type == kind.value,
            )
        )
        tip_rule = None
        if config is not None:
            tip_rule = TipRule(
                token_address=config.token_address,
                token_symbol=config.token_symbol,
                amount=config.amount,
                is_enabled=config.is_enabled,
            )

        super_rule = None
        if kind in SUPER_TIP_KINDS:
            super_cfg = session.scalar(
                select(SuperTipConfig).where(SuperTipConfig.fid == fid)
            )
            if super_cfg is not None:
                super_rule = TipRule(
                    token_address=super_cfg.token_address,
                    token_symbol=super_cfg.token_symbol,
                    amount=super_cfg.amount,
                    is_enabled=super_cfg.is_enabled,
                    trigger_phrase=super_cfg.trigger_phrase,
                )

    return tip_rule, super_rule
