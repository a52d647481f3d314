"""
Republic of Bean Demo — play a full session in the terminal.

Allocates the budget greedily, lets the stakeholders discuss every
category, votes for the participant's own phase 1 choice each time and
prints the outcome. Uses the configured language model when an API key is
set, the offline echo generator otherwise.

Usage:
    python -m bean_republic.cli
    python -m bean_republic.cli --seed 7 --strategy priciest
    python -m bean_republic.cli --stakeholders 6 --transcript
"""

from __future__ import annotations

import argparse
import asyncio
import random
import sys

from rich.console import Console
from rich.table import Table

from bean_republic.agents.text_generation import TextGenerator, build_text_generator
from bean_republic.config import settings
from bean_republic.reflection.feedback import FeedbackService
from bean_republic.simulation.catalog import REFLECTION_QUESTIONS
from bean_republic.simulation.discussion import DiscussionDriver
from bean_republic.simulation.engine import PolicyNegotiationEngine
from bean_republic.simulation.errors import SimulationError
from bean_republic.simulation.schema import (
    ParticipantProfile,
    PolicyCategory,
    SessionState,
    SimulationPhase,
)

console = Console()

STRATEGIES = ("cheapest", "priciest")


def allocate_budget(
    engine: PolicyNegotiationEngine,
    session: SessionState,
    strategy: str = "cheapest",
) -> None:
    """
    Select one option per category without overspending.

    ``priciest`` takes the most expensive option that still leaves enough
    budget for the cheapest option of every later category.
    """
    for index, category in enumerate(session.categories):
        reserve = sum(min(o.cost for o in c.options) for c in session.categories[index + 1:])
        options = sorted(
            category.options,
            key=lambda o: (o.cost, o.id),
            reverse=strategy == "priciest",
        )
        for option in options:
            if option.cost + reserve <= session.budget.remaining:
                engine.select_option(session, category.id, option.id)
                break


def vote_own_choice(session: SessionState, category: PolicyCategory) -> int:
    return session.individual_package[category.id]


async def play_session(
    engine: PolicyNegotiationEngine,
    generator: TextGenerator,
    strategy: str = "cheapest",
) -> SessionState:
    """Run a session from INTRODUCTION through REFLECTION with feedback."""
    session = engine.create_session(
        participant=ParticipantProfile(name="Demo Participant", occupation="Policy Advisor"),
    )
    engine.advance_phase(session, SimulationPhase.ALLOCATION)
    allocate_budget(engine, session, strategy)
    engine.advance_phase(session, SimulationPhase.DISCUSSION)

    driver = DiscussionDriver(
        engine, generator,
        max_tokens=settings.message_max_tokens,
        temperature=settings.temperature,
    )
    await driver.run_to_completion(session, vote_own_choice)

    answers = engine.submit_reflections(
        session,
        {qid: f"Demo answer to: {question}" for qid, question in REFLECTION_QUESTIONS.items()},
    )
    feedback = await FeedbackService(
        generator, max_tokens=settings.feedback_max_tokens,
    ).generate_feedback(engine.final_package(session), answers)
    engine.record_feedback(session, feedback)
    return session


def render_session(session: SessionState, show_transcript: bool = False) -> None:
    console.print("\n[bold blue]═══ Republic of Bean — Session Summary ═══[/bold blue]\n")

    stakeholders = Table(title="Stakeholders", show_lines=False)
    stakeholders.add_column("Id", style="cyan", width=4)
    stakeholders.add_column("Name", style="green")
    stakeholders.add_column("Age", width=4)
    stakeholders.add_column("Occupation")
    stakeholders.add_column("Ideology", style="yellow")
    stakeholders.add_column("Status", style="dim")
    for s in session.stakeholders:
        stakeholders.add_row(
            s.id, s.name, str(s.age), s.occupation, s.political_ideology, s.socioeconomic_status,
        )
    console.print(stakeholders)

    package = Table(title="Policy Package", show_lines=True)
    package.add_column("Category", style="cyan")
    package.add_column("Your choice")
    package.add_column("Group decision", style="green")
    package.add_column("Ballots", style="dim")
    for category in session.categories:
        own = category.get_option(session.individual_package.get(category.id))
        tally = session.votes.get(category.id)
        ballots = ", ".join(f"{k}:{v}" for k, v in tally.ballots.items()) if tally else "—"
        package.add_row(
            category.name,
            f"{own.title} ({own.cost})" if own else "—",
            f"{category.selected.title} ({category.selected.cost})" if category.selected else "—",
            ballots,
        )
    console.print(package)
    console.print(
        f"  Budget: [bold]{session.budget.spent}[/bold] of {session.budget.total} units "
        f"allocated in phase 1"
    )

    if show_transcript:
        console.print("\n[bold]Transcript:[/bold]")
        for entry in session.transcript:
            console.print(f"  [cyan]{entry.speaker}[/cyan]: {entry.message}")

    if session.feedback:
        console.print("\n[bold]Feedback:[/bold]")
        console.print(session.feedback)

    console.print("\n[bold blue]═══ Session Complete ═══[/bold blue]\n")


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Play a Republic of Bean refugee education policy session"
    )
    parser.add_argument("--seed", type=int, default=settings.random_seed,
                        help="Seed for stakeholder generation")
    parser.add_argument("--strategy", choices=STRATEGIES, default="cheapest",
                        help="Phase 1 allocation strategy")
    parser.add_argument("--stakeholders", type=int, default=settings.stakeholder_count,
                        help="Number of stakeholders in the discussion")
    parser.add_argument("--budget", type=int, default=settings.budget_total,
                        help="Total budget units")
    parser.add_argument("--transcript", "-t", action="store_true",
                        help="Print the full discussion transcript")
    args = parser.parse_args()

    engine = PolicyNegotiationEngine(
        stakeholder_count=args.stakeholders,
        budget_total=args.budget,
        rng=random.Random(args.seed),
    )
    generator = build_text_generator(
        settings.stakeholder_model,
        api_key=settings.openai_api_key,
        timeout_seconds=settings.text_generation_timeout_seconds,
    )

    try:
        session = asyncio.run(play_session(engine, generator, args.strategy))
    except SimulationError as e:
        console.print(f"[bold red]✗ {type(e).__name__}[/bold red]: {e}")
        sys.exit(1)

    render_session(session, show_transcript=args.transcript)


if __name__ == "__main__":
    main()
