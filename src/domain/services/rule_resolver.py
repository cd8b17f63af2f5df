"""
Effective-dated rule resolution.

Pricing rules and minimum-charge rules share one selection policy:

1. Only active rules whose ``[effective_from, effective_to]`` range covers the
   reference date are candidates (an absent ``effective_to`` is open-ended).
2. A rule scoped to the organisation beats any global rule, regardless of
   how recent the global rule is.
3. Within a scope the latest ``effective_from`` wins; identical start dates
   fall back to the rule id so the choice never depends on input order.

The ordering lives in :func:`rule_precedence_key` rather than in a storage
``ORDER BY`` so that every backend resolves rules identically.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol, TypeVar
from uuid import UUID

from domain.exceptions.billing_exceptions import RuleNotFoundError
from domain.models.pricing import MinimumChargeRule, PricingRule

if TYPE_CHECKING:
    from collections.abc import Iterable


class EffectiveDatedRule(Protocol):
    id: UUID
    organisation_id: UUID | None
    effective_from: datetime
    effective_to: datetime | None
    is_active: bool


R = TypeVar("R", PricingRule, MinimumChargeRule)


def is_in_effect(rule: EffectiveDatedRule, reference_date: datetime) -> bool:
    if not rule.is_active:
        return False
    if rule.effective_from > reference_date:
        return False
    return rule.effective_to is None or rule.effective_to >= reference_date


def applies_to(rule: EffectiveDatedRule, organisation_id: UUID) -> bool:
    return rule.organisation_id is None or rule.organisation_id == organisation_id


def rule_precedence_key(rule: EffectiveDatedRule) -> tuple[int, datetime, str]:
    """Sort key where the greatest value is the winning rule.

    Callers pass only rules that apply to the organisation being billed, so an
    organisation id on the rule means "organisation-specific".
    """
    scope_rank = 0 if rule.organisation_id is None else 1
    return (scope_rank, rule.effective_from, str(rule.id))


def select_rule(candidates: Iterable[R]) -> R | None:
    return max(candidates, key=rule_precedence_key, default=None)


class PricingRuleResolver:
    """Picks the single pricing rule that prices a metric for an organisation."""

    def __init__(self, rules: Iterable[PricingRule]) -> None:
        self._rules: tuple[PricingRule, ...] = tuple(rules)

    def candidates(
        self,
        organisation_id: UUID,
        metric_name: str,
        reference_date: datetime,
        unit: str | None = None,
    ) -> list[PricingRule]:
        return [
            rule
            for rule in self._rules
            if rule.metric_name == metric_name
            and (unit is None or rule.unit == unit)
            and applies_to(rule, organisation_id)
            and is_in_effect(rule, reference_date)
        ]

    def resolve(
        self,
        organisation_id: UUID,
        metric_name: str,
        reference_date: datetime,
        unit: str | None = None,
    ) -> PricingRule:
        """Return the winning rule or raise :class:`RuleNotFoundError`.

        There is no fallback price: a metric without a rule blocks the
        organisation's invoice until configuration is fixed.
        """
        rule = select_rule(self.candidates(organisation_id, metric_name, reference_date, unit))
        if rule is None:
            raise RuleNotFoundError(organisation_id, metric_name, reference_date, unit)
        return rule


class MinimumChargeResolver:
    def __init__(self, rules: Iterable[MinimumChargeRule]) -> None:
        self._rules: tuple[MinimumChargeRule, ...] = tuple(rules)

    def resolve(
        self,
        organisation_id: UUID,
        reference_date: datetime,
    ) -> MinimumChargeRule | None:
        """Return the applicable minimum-charge rule, or ``None`` when no minimum applies."""
        return select_rule(
            rule
            for rule in self._rules
            if applies_to(rule, organisation_id) and is_in_effect(rule, reference_date)
        )
