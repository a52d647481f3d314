"""
Tests for the terminal demo.
"""

from __future__ import annotations

import asyncio
import random

from bean_republic.agents.text_generation import EchoTextGenerator
from bean_republic.cli import allocate_budget, play_session, render_session
from bean_republic.simulation.engine import PolicyNegotiationEngine
from bean_republic.simulation.schema import SimulationPhase


class TestAllocateBudget:

    def setup_method(self):
        self.engine = PolicyNegotiationEngine(rng=random.Random(0))
        self.session = self.engine.create_session()
        self.engine.advance_phase(self.session, SimulationPhase.ALLOCATION)

    def test_cheapest(self):
        allocate_budget(self.engine, self.session, "cheapest")
        assert self.engine.all_categories_selected(self.session)
        assert self.session.budget.remaining == 7

    def test_priciest_never_overspends(self):
        allocate_budget(self.engine, self.session, "priciest")
        assert self.engine.all_categories_selected(self.session)
        assert self.session.budget.remaining == 0
        # access is the first category and gets its most expensive option.
        assert self.session.get_category("access").selected.cost == 3


class TestPlaySession:

    def test_offline_session_completes(self):
        engine = PolicyNegotiationEngine(stakeholder_count=3, rng=random.Random(7))
        session = asyncio.run(play_session(engine, EchoTextGenerator(), "priciest"))

        assert session.phase == SimulationPhase.REFLECTION
        assert session.transcript_frozen
        assert len(session.finished) == 7
        assert session.feedback.startswith("This is a simulated AI response for:")
        assert len(session.reflection_answers) == 6

        render_session(session, show_transcript=True)
