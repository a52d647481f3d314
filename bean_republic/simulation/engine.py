"""
Policy Negotiation Engine — the session state machine of the Republic of Bean.

Implements the three participant-facing phases:
1. ALLOCATION  — participant spends a fixed budget, one option per category
2. DISCUSSION  — category by category, stakeholders vote their preference,
                 the participant votes, ballots are tabulated
3. REFLECTION  — the resolved package is frozen for reflection and export

The engine owns no session itself: every operation receives the
SessionState it acts on. Every mutating operation validates first and only
then mutates, so a rejected call leaves the session untouched.

Tie-break rule for a tabulation with several leaders: lowest cost wins;
among equal costs the lowest option id wins.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Mapping

from bean_republic.simulation.catalog import (
    DEFAULT_BUDGET_TOTAL,
    REFLECTION_QUESTIONS,
    default_categories,
)
from bean_republic.simulation.errors import (
    BudgetExceeded,
    IncompletePolicySet,
    IncompleteReflection,
    InvalidPhase,
    InvalidReference,
    PhaseOrderViolation,
)
from bean_republic.simulation.schema import (
    MODERATOR_ID,
    USER_VOTER_ID,
    Budget,
    CategoryStage,
    ParticipantProfile,
    PolicyCategory,
    PolicyOption,
    ResolvedPolicy,
    SessionExport,
    SessionState,
    SimulationPhase,
    StakeholderProfile,
    TabulationResult,
    TranscriptEntry,
    VoteTally,
)
from bean_republic.simulation.stakeholders import generate_stakeholders

logger = logging.getLogger(__name__)

MODERATOR = "Moderator"
PARTICIPANT = "You"


# ════════════════════════════════════════════════════════════════
# Tabulation
# ════════════════════════════════════════════════════════════════


def tabulate(category: PolicyCategory, tally: VoteTally) -> TabulationResult:
    """
    Count a category's ballots and pick the winning option.

    Every option starts at zero votes. A single leader wins outright;
    several leaders are separated by lowest cost, then lowest option id.

    Args:
        category: The category being decided.
        tally: All ballots cast for it (stakeholders and participant).

    Returns:
        The TabulationResult, with ``tie_broken`` set when the
        tie-break decided the winner.

    Raises:
        InvalidReference: If a ballot names an option outside the category.
    """
    counts = {option_id: 0 for option_id in category.option_ids}
    for voter_id, option_id in tally.ballots.items():
        if option_id not in counts:
            raise InvalidReference(
                f"Ballot from '{voter_id}' names option {option_id}, "
                f"which is not an option of '{category.id}'"
            )
        counts[option_id] += 1

    max_count = max(counts.values())
    leaders = [option_id for option_id, count in counts.items() if count == max_count]

    if len(leaders) == 1:
        winner = leaders[0]
    else:
        winner = min(leaders, key=lambda oid: (category.get_option(oid).cost, oid))

    return TabulationResult(
        category_id=category.id,
        counts=counts,
        max_count=max_count,
        leaders=sorted(leaders),
        winner=winner,
        tie_broken=len(leaders) > 1,
    )


# ════════════════════════════════════════════════════════════════
# Engine
# ════════════════════════════════════════════════════════════════


class PolicyNegotiationEngine:
    """
    Drives SessionState objects through the simulation.

    Each session moves INTRODUCTION → ALLOCATION → DISCUSSION → REFLECTION.
    The engine never skips a phase and never moves backwards.
    """

    def __init__(
        self,
        stakeholder_count: int = 4,
        budget_total: int = DEFAULT_BUDGET_TOTAL,
        rng: random.Random | None = None,
        categories_factory: Callable[[], list[PolicyCategory]] = default_categories,
    ) -> None:
        """
        Initialize the engine.

        Args:
            stakeholder_count: Stakeholders generated when a session enters DISCUSSION.
            budget_total: Budget given to new sessions.
            rng: Random source for stakeholder generation. Seed it for
                reproducible sessions.
            categories_factory: Produces fresh categories for each new session.
        """
        self.stakeholder_count = stakeholder_count
        self.budget_total = budget_total
        self.rng = rng or random.Random()
        self.categories_factory = categories_factory

    # ── Session lifecycle ──────────────────────────────────────

    def create_session(
        self,
        participant: ParticipantProfile | None = None,
        categories: list[PolicyCategory] | None = None,
        budget_total: int | None = None,
        stakeholders: list[StakeholderProfile] | None = None,
    ) -> SessionState:
        """
        Create a fresh session in the INTRODUCTION phase.

        Args:
            participant: Participant profile, if already known.
            categories: Categories for this session. Defaults to the catalog.
            budget_total: Overrides the engine's budget total.
            stakeholders: Pre-built stakeholders. When omitted they are
                generated on entering DISCUSSION.

        Returns:
            The new SessionState with every category unselected.

        Raises:
            InvalidReference: If a stakeholder lacks a valid preference
                for one of the categories.
        """
        total = self.budget_total if budget_total is None else budget_total
        cats = (
            [c.model_copy(deep=True) for c in categories]
            if categories is not None else self.categories_factory()
        )
        for category in cats:
            category.selected_option = None
        for stakeholder in stakeholders or []:
            self._check_preferences(stakeholder, cats)

        session = SessionState(
            participant=participant or ParticipantProfile(),
            budget=Budget(total=total, remaining=total),
            categories=cats,
            stakeholders=list(stakeholders or []),
            stages={c.id: CategoryStage.NOT_STARTED for c in cats},
        )

        logger.info(
            "Session created: id=%s categories=%d budget=%d",
            str(session.id)[:8], len(cats), total,
        )
        return session

    def register_participant(
        self, session: SessionState, profile: ParticipantProfile,
    ) -> SessionState:
        """Record the participant profile. Only during INTRODUCTION."""
        if session.phase != SimulationPhase.INTRODUCTION:
            raise InvalidPhase(
                f"Participant profile is entered during INTRODUCTION, "
                f"session is in {session.phase.name}"
            )
        session.participant = profile
        return session

    # ── Phase 1: budget & selection ────────────────────────────

    def select_option(
        self,
        session: SessionState,
        category_id: str,
        option_id: int,
    ) -> SessionState:
        """
        Select, switch or deselect an option in a category.

        Selecting the currently selected option deselects it and refunds
        its cost. Selecting a different option refunds the previous one
        and charges the new one, provided the budget stays non-negative.

        Args:
            session: The session to mutate.
            category_id: Category to select in.
            option_id: Option within that category.

        Returns:
            The same session, mutated.

        Raises:
            InvalidPhase: If the session is not in ALLOCATION.
            InvalidReference: If the category or option does not exist.
            BudgetExceeded: If the selection would overspend.
        """
        if session.phase != SimulationPhase.ALLOCATION:
            raise InvalidPhase(
                f"Options are selected during ALLOCATION, session is in {session.phase.name}"
            )

        category = self._require_category(session, category_id)
        option = self._require_option(category, option_id)
        budget = session.budget

        if category.selected_option == option_id:
            category.selected_option = None
            budget.remaining += option.cost
            logger.info(
                "Deselected %s/%d: refund=%d remaining=%d",
                category_id, option_id, option.cost, budget.remaining,
            )
            return session

        previous = category.selected
        refund = previous.cost if previous else 0
        projected = budget.remaining + refund - option.cost

        if projected < 0:
            raise BudgetExceeded(
                f"Not enough budget to select '{option.title}' in {category.name}: "
                f"costs {option.cost}, {budget.remaining + refund} available",
                remaining=budget.remaining,
                required=option.cost - refund,
            )

        category.selected_option = option_id
        budget.remaining = projected

        logger.info(
            "Selected %s/%d: cost=%d refund=%d remaining=%d",
            category_id, option_id, option.cost, refund, budget.remaining,
        )
        return session

    @staticmethod
    def all_categories_selected(session: SessionState) -> bool:
        """True iff every category has a selected option."""
        return all(c.selected_option is not None for c in session.categories)

    # ── Phase gate ─────────────────────────────────────────────

    def advance_phase(
        self,
        session: SessionState,
        target: SimulationPhase | int,
    ) -> SessionState:
        """
        Move the session to the next phase.

        Only the immediate next phase is a legal target, and only once the
        current phase is complete.

        Args:
            session: The session to advance.
            target: The phase to enter.

        Returns:
            The same session, in the target phase.

        Raises:
            PhaseOrderViolation: If the target is not the next phase, or
                discussion still has unresolved categories.
            IncompletePolicySet: If leaving ALLOCATION with gaps.
        """
        try:
            target = SimulationPhase(target)
        except ValueError as e:
            raise PhaseOrderViolation(f"Unknown phase: {target}") from e

        if target != session.phase + 1:
            raise PhaseOrderViolation(
                f"Cannot move from {session.phase.name} to {target.name}. "
                f"Phases only advance one step forward."
            )

        if target == SimulationPhase.ALLOCATION:
            session.phase = SimulationPhase.ALLOCATION

        elif target == SimulationPhase.DISCUSSION:
            if not self.all_categories_selected(session):
                missing = [c.id for c in session.categories if c.selected_option is None]
                raise IncompletePolicySet(
                    f"Select an option in every policy category before the "
                    f"discussion. Missing: {', '.join(missing)}",
                    missing=missing,
                )
            self._enter_discussion(session)

        else:
            unresolved = [
                c.id for c in session.categories
                if session.stage_of(c.id) != CategoryStage.RESOLVED
            ]
            if unresolved:
                raise PhaseOrderViolation(
                    f"Discussion is not finished. Unresolved: {', '.join(unresolved)}"
                )
            self._enter_reflection(session)

        logger.info("Session %s advanced to %s", str(session.id)[:8], session.phase.name)
        return session

    def _enter_discussion(self, session: SessionState) -> None:
        stakeholders = session.stakeholders or generate_stakeholders(
            self.stakeholder_count, session.categories, self.rng,
        )

        session.individual_package = {c.id: c.selected_option for c in session.categories}
        session.stakeholders = stakeholders
        session.phase = SimulationPhase.DISCUSSION

        if session.categories:
            self._open_category(session, session.categories[0])
        else:
            self._enter_reflection(session)

    def _enter_reflection(self, session: SessionState) -> None:
        session.phase = SimulationPhase.REFLECTION
        session.transcript_frozen = True
        logger.info(
            "Session %s transcript frozen: %d entries",
            str(session.id)[:8], len(session.transcript),
        )

    # ── Transcript ─────────────────────────────────────────────

    def record_message(
        self,
        session: SessionState,
        speaker: str,
        message: str,
        category_id: str | None = None,
        *,
        speaker_id: str = MODERATOR_ID,
    ) -> TranscriptEntry:
        """
        Append a line to the discussion transcript.

        ``speaker_id`` identifies the speaker: a stakeholder id, ``user``
        for the participant, ``moderator`` otherwise.

        Raises:
            InvalidPhase: If the transcript is already frozen.
        """
        if session.transcript_frozen:
            raise InvalidPhase("The discussion transcript is frozen and read-only")

        entry = TranscriptEntry(
            speaker=speaker, speaker_id=speaker_id, message=message, category_id=category_id,
        )
        session.transcript.append(entry)
        return entry

    # ── Phase 2: discussion & voting ───────────────────────────

    def _open_category(self, session: SessionState, category: PolicyCategory) -> None:
        session.votes[category.id] = VoteTally(category_id=category.id)
        session.stages[category.id] = CategoryStage.STAKEHOLDERS_OPINING
        logger.info(
            "Category opened: %s (%d stakeholders to opine)",
            category.id, len(session.stakeholders),
        )
        if not session.stakeholders:
            session.stages[category.id] = CategoryStage.AWAITING_USER_VOTE

    def record_stakeholder_vote(
        self,
        session: SessionState,
        category_id: str,
        stakeholder_id: str,
    ) -> int:
        """
        Record a stakeholder's pre-generated preference as its ballot.

        Stakeholders vote in enumeration order, once each. After the last
        one the category awaits the participant's vote.

        Args:
            session: The session.
            category_id: The category being discussed.
            stakeholder_id: The stakeholder whose turn it is.

        Returns:
            The option id recorded.

        Raises:
            InvalidReference: Unknown category or stakeholder, or a
                preference that is not an option of the category.
            InvalidPhase: The category is not collecting stakeholder
                opinions, or the stakeholder is out of turn.
        """
        category = self._require_category(session, category_id)
        stakeholder = session.get_stakeholder(stakeholder_id)
        if stakeholder is None:
            raise InvalidReference(f"Unknown stakeholder: {stakeholder_id}")

        stage = session.stage_of(category_id)
        if stage != CategoryStage.STAKEHOLDERS_OPINING:
            raise InvalidPhase(
                f"Category '{category_id}' is {stage.value}; stakeholder votes are "
                f"recorded while stakeholders are opining"
            )

        tally = session.votes[category_id]
        expected = self._next_stakeholder(session, tally)
        if expected is None or expected.id != stakeholder_id:
            raise InvalidPhase(
                f"It is not {stakeholder_id}'s turn in '{category_id}' "
                f"(expected {expected.id if expected else 'nobody'})"
            )

        option_id = stakeholder.preferences.get(category_id)
        if category.get_option(option_id) is None:
            raise InvalidReference(
                f"Stakeholder {stakeholder_id} has no valid preference for '{category_id}'"
            )

        tally.ballots[stakeholder_id] = option_id
        logger.info(
            "Stakeholder vote: category=%s stakeholder=%s option=%d",
            category_id, stakeholder_id, option_id,
        )

        if self._next_stakeholder(session, tally) is None:
            session.stages[category_id] = CategoryStage.AWAITING_USER_VOTE
        return option_id

    def collect_stakeholder_votes(
        self, session: SessionState, category_id: str,
    ) -> dict[str, int]:
        """Record every stakeholder still to vote in the category, in order."""
        self._require_category(session, category_id)
        stage = session.stage_of(category_id)
        if stage != CategoryStage.STAKEHOLDERS_OPINING:
            raise InvalidPhase(
                f"Category '{category_id}' is {stage.value}; no stakeholder votes to collect"
            )

        tally = session.votes[category_id]
        recorded: dict[str, int] = {}
        while session.stage_of(category_id) == CategoryStage.STAKEHOLDERS_OPINING:
            stakeholder = self._next_stakeholder(session, tally)
            recorded[stakeholder.id] = self.record_stakeholder_vote(
                session, category_id, stakeholder.id,
            )
        return recorded

    @staticmethod
    def _next_stakeholder(
        session: SessionState, tally: VoteTally,
    ) -> StakeholderProfile | None:
        return next((s for s in session.stakeholders if s.id not in tally.ballots), None)

    def cast_user_vote(
        self,
        session: SessionState,
        category_id: str,
        option_id: int,
    ) -> TabulationResult:
        """
        Record the participant's ballot and resolve the category.

        The winning option overwrites the category's selection; budget is
        not touched. The next category is opened, or, after the last one,
        the session enters REFLECTION and the transcript is frozen.

        Args:
            session: The session.
            category_id: The category awaiting the participant's vote.
            option_id: The option the participant votes for.

        Returns:
            The TabulationResult for the category.

        Raises:
            InvalidReference: Unknown category or option.
            InvalidPhase: The category is not awaiting the participant's vote.
        """
        category = self._require_category(session, category_id)
        stage = session.stage_of(category_id)
        if stage != CategoryStage.AWAITING_USER_VOTE:
            raise InvalidPhase(
                f"Category '{category_id}' is {stage.value}; votes are only "
                f"accepted while it awaits the participant's vote"
            )
        option = self._require_option(category, option_id)

        tally = session.votes[category_id]
        result = tabulate(
            category,
            VoteTally(category_id=category_id, ballots={**tally.ballots, USER_VOTER_ID: option_id}),
        )

        tally.ballots[USER_VOTER_ID] = option_id
        session.stages[category_id] = CategoryStage.TALLYING
        self.record_message(
            session, PARTICIPANT,
            f'I vote for "{option.title}" for the {category.name} policy area.',
            category_id,
            speaker_id=USER_VOTER_ID,
        )

        self._resolve(session, category, result)
        return result

    def _resolve(
        self,
        session: SessionState,
        category: PolicyCategory,
        result: TabulationResult,
    ) -> None:
        winner = category.get_option(result.winner)

        if result.tie_broken:
            self.record_message(
                session, MODERATOR,
                "There appears to be a tie. As the moderator, I'll make the final "
                "decision based on what's best for the refugee children.",
                category.id,
            )
            self.record_message(
                session, MODERATOR,
                f'I\'ve decided that "{winner.title}" is the best option for the '
                f"{category.name} policy area.",
                category.id,
            )
        else:
            self.record_message(
                session, MODERATOR,
                f'The group has decided on "{winner.title}" for the {category.name} policy area.',
                category.id,
            )

        category.selected_option = result.winner
        session.stages[category.id] = CategoryStage.RESOLVED
        session.finished.append(category.id)

        logger.info(
            "Category resolved: %s winner=%d counts=%s tie_broken=%s",
            category.id, result.winner, result.counts, result.tie_broken,
        )

        next_category = next(
            (c for c in session.categories
             if session.stage_of(c.id) == CategoryStage.NOT_STARTED),
            None,
        )
        if next_category is not None:
            self.record_message(session, MODERATOR, "Let's move on to the next policy area.")
            self._open_category(session, next_category)
        else:
            self.record_message(
                session, MODERATOR,
                "We've now discussed and voted on all policy areas. Let's move to the "
                "reflection phase where we'll review our decisions.",
            )
            self._enter_reflection(session)

    # ── Phase 3: reflection & export ───────────────────────────

    def submit_reflections(
        self,
        session: SessionState,
        answers: Mapping[str, str],
    ) -> dict[str, str]:
        """
        Store the participant's reflection answers.

        Raises:
            InvalidPhase: If the session is not in REFLECTION.
            IncompleteReflection: If any question is unanswered or blank.
        """
        if session.phase != SimulationPhase.REFLECTION:
            raise InvalidPhase(
                f"Reflections are submitted during REFLECTION, session is in {session.phase.name}"
            )

        missing = [q for q in REFLECTION_QUESTIONS if not (answers.get(q) or "").strip()]
        if missing:
            raise IncompleteReflection(
                f"Please answer all reflection questions. Missing: {', '.join(missing)}",
                missing=missing,
            )

        session.reflection_answers = {q: answers[q].strip() for q in REFLECTION_QUESTIONS}
        return dict(session.reflection_answers)

    def record_feedback(self, session: SessionState, feedback: str) -> SessionState:
        if session.phase != SimulationPhase.REFLECTION:
            raise InvalidPhase("Feedback belongs to the REFLECTION phase")
        session.feedback = feedback
        return session

    @staticmethod
    def final_package(session: SessionState) -> list[ResolvedPolicy]:
        """Selected option per category, in category order. Unselected ones are skipped."""
        package = []
        for category in session.categories:
            option = category.selected
            if option is None:
                continue
            package.append(ResolvedPolicy(
                category_id=category.id,
                category_name=category.name,
                option_id=option.id,
                title=option.title,
                cost=option.cost,
            ))
        return package

    def export_session(self, session: SessionState) -> SessionExport:
        return SessionExport(
            session_id=session.id,
            participant=session.participant,
            budget=session.budget,
            individual_package=dict(session.individual_package),
            package=self.final_package(session),
            stakeholders=list(session.stakeholders),
            transcript=list(session.transcript),
            reflection_answers=dict(session.reflection_answers),
            feedback=session.feedback,
        )

    # ── Lookups ────────────────────────────────────────────────

    @staticmethod
    def _require_category(session: SessionState, category_id: str) -> PolicyCategory:
        category = session.get_category(category_id)
        if category is None:
            raise InvalidReference(f"Unknown policy category: {category_id}")
        return category

    @staticmethod
    def _check_preferences(
        stakeholder: StakeholderProfile, categories: list[PolicyCategory],
    ) -> None:
        for category in categories:
            if category.get_option(stakeholder.preferences.get(category.id)) is None:
                raise InvalidReference(
                    f"Stakeholder {stakeholder.id} has no valid preference for "
                    f"'{category.id}' (valid: {category.option_ids})"
                )

    @staticmethod
    def _require_option(category: PolicyCategory, option_id: int) -> PolicyOption:
        option = category.get_option(option_id)
        if option is None:
            raise InvalidReference(
                f"Option {option_id} is not an option of '{category.id}' "
                f"(valid: {category.option_ids})"
            )
        return option
