"""Stakeholder generation for the discussion phase."""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence

from bean_republic.simulation.catalog import (
    EDUCATION_LEVELS,
    OCCUPATIONS,
    POLITICAL_IDEOLOGIES,
    SOCIOECONOMIC_TIERS,
    STAKEHOLDER_MAX_AGE,
    STAKEHOLDER_MIN_AGE,
    STAKEHOLDER_NAMES,
)
from bean_republic.simulation.schema import PolicyCategory, StakeholderProfile

logger = logging.getLogger(__name__)


def generate_stakeholders(
    count: int,
    categories: Sequence[PolicyCategory],
    rng: random.Random | None = None,
) -> list[StakeholderProfile]:
    """
    Draw `count` synthetic stakeholders.

    Every attribute is drawn independently and uniformly from its pool.
    Each preference is drawn uniformly from the option ids of that
    category, so categories with non-sequential ids are handled.

    Args:
        count: Number of stakeholders to generate.
        categories: Categories to generate one preference for, each.
        rng: Random source. Pass a seeded ``random.Random`` for
            reproducible profiles.

    Returns:
        Stakeholders with ids ``s1`` .. ``s{count}`` in enumeration order.
    """
    if count < 0:
        raise ValueError(f"Stakeholder count must be non-negative, got {count}")

    rng = rng or random.Random()
    stakeholders = []

    for index in range(1, count + 1):
        stakeholder = StakeholderProfile(
            id=f"s{index}",
            name=rng.choice(STAKEHOLDER_NAMES),
            age=rng.randint(STAKEHOLDER_MIN_AGE, STAKEHOLDER_MAX_AGE),
            education=rng.choice(EDUCATION_LEVELS),
            occupation=rng.choice(OCCUPATIONS),
            socioeconomic_status=rng.choice(SOCIOECONOMIC_TIERS),
            political_ideology=rng.choice(POLITICAL_IDEOLOGIES),
            preferences={c.id: rng.choice(c.option_ids) for c in categories},
        )
        stakeholders.append(stakeholder)

    logger.info(
        "Generated %d stakeholders over %d categories", count, len(categories),
    )
    return stakeholders
