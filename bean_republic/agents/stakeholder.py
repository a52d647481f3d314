"""
Stakeholder Personas — prompt construction for synthetic stakeholders.

Each stakeholder speaks once to introduce themselves and then once per
policy category to explain the option they prefer. The option itself is
fixed by the stakeholder's pre-generated preference; the language model
only supplies the explanation.
"""

from __future__ import annotations

import logging

from bean_republic.agents.text_generation import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    TextGenerator,
    generate_or_fallback,
)
from bean_republic.simulation.schema import PolicyCategory, StakeholderProfile

logger = logging.getLogger(__name__)


def introduction_prompt(stakeholder: StakeholderProfile) -> str:
    return (
        "You are an AI simulating a stakeholder in a refugee education policy "
        f"discussion. Your name is {stakeholder.name}. You are {stakeholder.age} "
        f"years old with {stakeholder.education} education. You work as a "
        f"{stakeholder.occupation} and are {stakeholder.socioeconomic_status} with "
        f"{stakeholder.political_ideology} views. Give a brief introduction of "
        "yourself in the first person. Keep it under 3 sentences."
    )


def opinion_prompt(stakeholder: StakeholderProfile, category: PolicyCategory) -> str:
    option = category.get_option(stakeholder.preferences.get(category.id))
    if option is None:
        raise ValueError(
            f"Stakeholder {stakeholder.id} has no preference for '{category.id}'"
        )
    return (
        f"You are {stakeholder.name}, a {stakeholder.age} year old "
        f"{stakeholder.occupation} with {stakeholder.political_ideology} views and "
        f"{stakeholder.socioeconomic_status} status. For the {category.name} policy "
        f'area, you prefer "{option.title}". Explain why you support this option '
        "based on your background and values. Keep your response under 4 sentences."
    )


class StakeholderAgent:
    """A stakeholder profile bound to a text generator."""

    def __init__(
        self,
        profile: StakeholderProfile,
        generator: TextGenerator,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> None:
        self.profile = profile
        self.generator = generator
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def introduce(self) -> str:
        return await generate_or_fallback(
            self.generator,
            introduction_prompt(self.profile),
            fallback=f"Hello, I'm {self.profile.name}, a {self.profile.occupation}.",
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

    async def opine(self, category: PolicyCategory) -> str:
        """
        Explain this stakeholder's preferred option in ``category``.

        Raises:
            ValueError: If the stakeholder has no preference in ``category``.
        """
        prompt = opinion_prompt(self.profile, category)
        option = category.get_option(self.profile.preferences[category.id])
        return await generate_or_fallback(
            self.generator,
            prompt,
            fallback=f'I support "{option.title}" for {category.name}.',
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
