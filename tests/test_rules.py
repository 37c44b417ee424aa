"""
tests/test_rules.py — Tip Rule Selection
=========================================
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from celotip.database.models import InteractionKind
from celotip.engine.rules import TipRule, phrase_matches, select_tip_rule

REGULAR = TipRule("0xcusd", "cUSD", Decimal("0.01"))
SUPER = TipRule("0xcelo", "CELO", Decimal("1"), trigger_phrase="Great Post")


class TestPhraseMatches:
    @pytest.mark.parametrize("phrase,text,expected", [
        ("great post", "This is a GREAT POST!", True),
        ("great post", "great", False),
        ("", "anything", False),
        ("   ", "anything", False),
        (None, "anything", False),
        ("great", None, False),
    ])
    def test_matching(self, phrase, text, expected):
        assert phrase_matches(phrase, text) is expected


class TestSelectTipRule:
    def test_regular_rule(self):
        selected = select_tip_rule(InteractionKind.LIKE, None, REGULAR, None)
        assert selected.amount == Decimal("0.01")
        assert not selected.is_super_tip

    def test_no_rule(self):
        assert select_tip_rule(InteractionKind.LIKE, None, None, None) is None

    def test_disabled_rule(self):
        disabled = TipRule("0xcusd", "cUSD", Decimal("0.01"), is_enabled=False)
        assert select_tip_rule(InteractionKind.LIKE, None, disabled, None) is None

    def test_super_tip_overrides_for_comment(self):
        selected = select_tip_rule(InteractionKind.COMMENT, "what a great post", REGULAR, SUPER)
        assert selected.is_super_tip
        assert selected.token_symbol == "CELO"
        assert selected.amount == Decimal("1")

    def test_super_tip_applies_to_quotes(self):
        selected = select_tip_rule(InteractionKind.QUOTE, "GREAT POST", None, SUPER)
        assert selected.is_super_tip

    def test_super_tip_without_phrase_falls_back(self):
        selected = select_tip_rule(InteractionKind.COMMENT, "nice", REGULAR, SUPER)
        assert not selected.is_super_tip
        assert selected.token_symbol == "cUSD"

    def test_super_tip_ignored_for_likes(self):
        selected = select_tip_rule(InteractionKind.LIKE, "great post", REGULAR, SUPER)
        assert not selected.is_super_tip

    def test_disabled_super_tip_ignored(self):
        disabled = TipRule("0xcelo", "CELO", Decimal("1"), is_enabled=False, trigger_phrase="great post")
        assert select_tip_rule(InteractionKind.COMMENT, "great post", None, disabled) is None

    def test_phrase_scenario_selects_super_amount(self):
        regular = TipRule("0xcusd", "cUSD", Decimal("0.10"))
        super_tip = TipRule("0xcelo", "CELO", Decimal("5.00"), trigger_phrase="CELO")
        selected = select_tip_rule(InteractionKind.COMMENT, "nice work CELO", regular, super_tip)
        assert selected.amount == Decimal("5.00")
