"""
Promotion Eligibility Evaluator.

Compares a promotion's reserved badges against its template rules.

Allocation, not counting:
    Each reserved badge satisfies at most one rule.  Rules are processed
    specific-category first, then "any"; each rule claims matching badges
    from the unallocated pool up to its required count.  Surplus badges stay
    in the pool, so a fourth technical/gold badge can still satisfy an
    any/gold rule, but never an any/silver one.

Level matching is exact: gold, silver and bronze are tags, a gold badge
never counts toward a silver requirement.

``evaluate`` is a pure read.  Nothing is cached because reservations can
change between calls.

Usage:
    from badger.services.eligibility import evaluate

    result = evaluate(promotion_id)
    if not result["all_satisfied"]:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select

from badger.core.exceptions import NotFoundError
from badger.models import db
from badger.models.catalog import BadgeApplication, CatalogBadge
from badger.models.promotion import Promotion, PromotionBadge, TemplateRule
from badger.services.template_service import load_rules


@dataclass(frozen=True)
class ReservedBadge:
    badge_application_id: str
    category: str
    level: str


@dataclass
class RuleOutcome:
    rule: TemplateRule
    allocated: list[str]

    @property
    def satisfied_count(self) -> int:
        return len(self.allocated)

    @property
    def satisfied(self) -> bool:
        return self.satisfied_count >= self.rule.count

    @property
    def deficit(self) -> int:
        return max(self.rule.count - self.satisfied_count, 0)

    def to_dict(self) -> dict:
        return {
            "category": self.rule.category,
            "level": self.rule.level,
            "required": self.rule.count,
            "satisfied_count": self.satisfied_count,
            "satisfied": self.satisfied,
            "badge_application_ids": list(self.allocated),
        }


def _matches(rule: TemplateRule, badge: ReservedBadge) -> bool:
    if badge.level != rule.level:
        return False
    return rule.is_any or badge.category == rule.category


def allocate(rules: list[TemplateRule], badges: list[ReservedBadge]) -> list[RuleOutcome]:
    """Greedily allocate badges to rules; return outcomes in template order.

    Badges are consumed in the order given, so callers pass them in a
    stable order (reservation time) to keep results deterministic.
    """
    outcomes = [RuleOutcome(rule=r, allocated=[]) for r in rules]
    pool = list(badges)

    # sorted() is stable: template order is kept within each group.
    for outcome in sorted(outcomes, key=lambda o: o.rule.is_any):
        remaining = []
        for badge in pool:
            if len(outcome.allocated) < outcome.rule.count and _matches(outcome.rule, badge):
                outcome.allocated.append(badge.badge_application_id)
            else:
                remaining.append(badge)
        pool = remaining

    return outcomes


def summarize(outcomes: list[RuleOutcome]) -> dict:
    """Shape allocation outcomes into the public evaluation result."""
    return {
        "rules": [o.to_dict() for o in outcomes],
        "all_satisfied": all(o.satisfied for o in outcomes),
        "missing": missing_rules(outcomes),
    }


def missing_rules(outcomes: list[RuleOutcome]) -> list[dict]:
    return [
        {
            "category": o.rule.category,
            "level": o.rule.level,
            "required": o.rule.count,
            "satisfied_count": o.satisfied_count,
            "deficit": o.deficit,
        }
        for o in outcomes
        if not o.satisfied
    ]


def load_reserved_badges(promotion_id: str) -> list[ReservedBadge]:
    """Return the promotion's unconsumed reservations with category/level."""
    rows = db.session.execute(
        select(
            PromotionBadge.badge_application_id,
            CatalogBadge.category,
            CatalogBadge.level,
        )
        .join(BadgeApplication, BadgeApplication.id == PromotionBadge.badge_application_id)
        .join(CatalogBadge, CatalogBadge.id == BadgeApplication.catalog_badge_id)
        .where(
            PromotionBadge.promotion_id == promotion_id,
            PromotionBadge.consumed.is_(False),
        )
        .order_by(PromotionBadge.assigned_at.asc(), PromotionBadge.id.asc())
    ).all()
    return [ReservedBadge(ba_id, category, level) for ba_id, category, level in rows]


def evaluate_promotion(promotion: Promotion) -> dict:
    """Evaluate an already-loaded promotion against its template's current rules."""
    outcomes = allocate(
        load_rules(promotion.template_id),
        load_reserved_badges(promotion.id),
    )
    result = summarize(outcomes)
    result["promotion_id"] = promotion.id
    return result


def evaluate(promotion_id: str) -> dict:
    """Compute per-rule satisfaction and overall readiness for a promotion.

    Returns:
        {"promotion_id", "all_satisfied": bool,
         "rules": [{category, level, required, satisfied_count, satisfied,
                    badge_application_ids}],
         "missing": [{category, level, required, satisfied_count, deficit}]}

    Raises:
        NotFoundError: promotion does not exist.
    """
    promotion = db.session.get(Promotion, promotion_id)
    if promotion is None:
        raise NotFoundError("Promotion", promotion_id)
    return evaluate_promotion(promotion)
