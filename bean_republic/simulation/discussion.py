"""
Discussion Driver — event-driven choreography of the DISCUSSION phase.

The engine only knows about ballots. This driver interleaves them with the
spoken part of the discussion: the moderator frames each category, each
stakeholder explains its preferred option (text from the language model),
and the stakeholder's ballot is recorded once its turn completes. The
driver advances on completion of each awaited call, never on a timer.

A failed text-generation call degrades to fallback text; the ballot is
recorded all the same.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from bean_republic.agents.stakeholder import StakeholderAgent
from bean_republic.agents.text_generation import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    TextGenerator,
)
from bean_republic.simulation.engine import MODERATOR, PARTICIPANT, PolicyNegotiationEngine
from bean_republic.simulation.errors import InvalidPhase
from bean_republic.simulation.schema import (
    USER_VOTER_ID,
    CategoryStage,
    PolicyCategory,
    SessionState,
    SimulationPhase,
    TabulationResult,
)

logger = logging.getLogger(__name__)

VoteChooser = Callable[[SessionState, PolicyCategory], int]


class DiscussionDriver:
    """Runs introductions and per-category opinions for one engine."""

    def __init__(
        self,
        engine: PolicyNegotiationEngine,
        generator: TextGenerator,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> None:
        self.engine = engine
        self.generator = generator
        self.max_tokens = max_tokens
        self.temperature = temperature

    def _agents(self, session: SessionState) -> list[StakeholderAgent]:
        return [
            StakeholderAgent(s, self.generator, self.max_tokens, self.temperature)
            for s in session.stakeholders
        ]

    async def run_introductions(self, session: SessionState) -> None:
        """
        Welcome the group and let every stakeholder introduce themselves.

        Raises:
            InvalidPhase: If the session is not in DISCUSSION.
        """
        self._require_discussion(session)

        self.engine.record_message(
            session, MODERATOR,
            "Welcome to the group discussion phase. You will now discuss your policy "
            f"choices with {len(session.stakeholders)} stakeholders from the Republic of "
            "Bean. Each stakeholder has their own background and perspective. Let's "
            "begin with introductions.",
        )

        for agent in self._agents(session):
            intro = await agent.introduce()
            self.engine.record_message(
                session, agent.profile.name, intro, speaker_id=agent.profile.id,
            )

        self.engine.record_message(
            session, MODERATOR,
            "Now that we've met everyone, let's begin discussing the policy options. "
            "We'll go through each category, discuss our preferences, and then vote on "
            "the final policy.",
        )
        logger.info("Introductions complete: session=%s", str(session.id)[:8])

    async def run_category_opinions(self, session: SessionState) -> PolicyCategory:
        """
        Let every stakeholder speak on the active category and record their ballots.

        Returns:
            The category, now awaiting the participant's vote.

        Raises:
            InvalidPhase: If no category is collecting stakeholder opinions.
        """
        self._require_discussion(session)
        category = session.active_category
        stage = session.stage_of(category.id) if category else None
        # Without stakeholders a category opens directly awaiting the participant.
        opining = stage == CategoryStage.STAKEHOLDERS_OPINING or (
            stage == CategoryStage.AWAITING_USER_VOTE and not session.stakeholders
        )
        if not opining:
            raise InvalidPhase("No category is waiting for stakeholder opinions")

        tally = session.votes[category.id]
        # A rerun after a failed turn resumes without framing the category again.
        if not any(e.category_id == category.id for e in session.transcript):
            self.engine.record_message(
                session, MODERATOR,
                f'Let\'s discuss the "{category.name}" policy area. {category.description}. '
                "Each person will share their perspective and preferred option.",
                category.id,
            )

        for agent in self._agents(session):
            if agent.profile.id in tally.ballots:
                continue
            opinion = await agent.opine(category)
            self.engine.record_message(
                session, agent.profile.name, opinion, category.id, speaker_id=agent.profile.id,
            )
            self.engine.record_stakeholder_vote(session, category.id, agent.profile.id)

        self.engine.record_message(
            session, MODERATOR,
            f"What's your perspective on the {category.name} policy area? Please share "
            "your thoughts and which option you prefer.",
            category.id,
        )
        return category

    def share_perspective(self, session: SessionState, message: str) -> None:
        """Record the participant's free-text perspective on the active category."""
        category = session.active_category
        if category is None or session.stage_of(category.id) != CategoryStage.AWAITING_USER_VOTE:
            raise InvalidPhase("There is no open question for the participant right now")
        if not message.strip():
            return
        self.engine.record_message(
            session, PARTICIPANT, message.strip(), category.id, speaker_id=USER_VOTER_ID,
        )
        self.engine.record_message(
            session, MODERATOR,
            "Thank you for sharing your perspective. Please vote for your preferred option.",
            category.id,
        )

    async def run_to_completion(
        self,
        session: SessionState,
        choose_vote: VoteChooser,
    ) -> list[TabulationResult]:
        """
        Play the whole discussion, asking ``choose_vote`` for each participant vote.

        Returns:
            One TabulationResult per category, in category order.
        """
        await self.run_introductions(session)

        results = []
        while session.phase == SimulationPhase.DISCUSSION:
            category = await self.run_category_opinions(session)
            option_id = choose_vote(session, category)
            results.append(self.engine.cast_user_vote(session, category.id, option_id))
        return results

    @staticmethod
    def _require_discussion(session: SessionState) -> None:
        if session.phase != SimulationPhase.DISCUSSION:
            raise InvalidPhase(
                f"The group discussion runs during DISCUSSION, session is in {session.phase.name}"
            )
