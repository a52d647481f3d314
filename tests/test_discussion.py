"""
Tests for the discussion driver and the text-generation collaborator.

Validates:
- Introductions and opinions land in the transcript in order
- Ballots are recorded even when text generation fails
- Full discussion run reaches REFLECTION
- LiteLLM generator error and timeout handling
"""

from __future__ import annotations

import asyncio
import random
from types import SimpleNamespace

import pytest

from bean_republic.agents import text_generation
from bean_republic.agents.stakeholder import StakeholderAgent, opinion_prompt
from bean_republic.agents.text_generation import (
    EchoTextGenerator,
    LiteLLMTextGenerator,
    TextGenerationError,
    build_text_generator,
    generate_or_fallback,
)
from bean_republic.simulation.discussion import DiscussionDriver
from bean_republic.simulation.engine import PolicyNegotiationEngine
from bean_republic.simulation.errors import InvalidPhase
from bean_republic.simulation.schema import CategoryStage, SimulationPhase, StakeholderProfile


class RecordingGenerator:
    """Returns a fixed reply and remembers every prompt."""

    def __init__(self, reply: str = "I have thoughts on this."):
        self.reply = reply
        self.prompts: list[str] = []

    async def generate(self, prompt, *, max_tokens=150, temperature=0.7):
        self.prompts.append(prompt)
        return self.reply


class FailingGenerator:
    async def generate(self, prompt, *, max_tokens=150, temperature=0.7):
        raise TextGenerationError("provider unavailable")


class CrashingGenerator:
    """Raises a non-generation error on one chosen call."""

    def __init__(self, crash_on: int):
        self.crash_on = crash_on
        self.calls = 0

    async def generate(self, prompt, *, max_tokens=150, temperature=0.7):
        self.calls += 1
        if self.calls == self.crash_on:
            raise RuntimeError("connection reset")
        return "Fine."


def _session_in_discussion(engine: PolicyNegotiationEngine):
    session = engine.create_session()
    engine.advance_phase(session, SimulationPhase.ALLOCATION)
    for category in session.categories:
        cheapest = min(category.options, key=lambda o: o.cost)
        engine.select_option(session, category.id, cheapest.id)
    engine.advance_phase(session, SimulationPhase.DISCUSSION)
    return session


class TestDiscussionDriver:
    """Test the per-category discussion loop."""

    def setup_method(self):
        self.engine = PolicyNegotiationEngine(stakeholder_count=3, rng=random.Random(12))
        self.generator = RecordingGenerator()
        self.driver = DiscussionDriver(self.engine, self.generator)
        self.session = _session_in_discussion(self.engine)

    def test_introductions(self):
        asyncio.run(self.driver.run_introductions(self.session))
        speakers = [e.speaker for e in self.session.transcript]
        names = [s.name for s in self.session.stakeholders]
        assert speakers == ["Moderator", *names, "Moderator"]
        assert len(self.generator.prompts) == 3
        assert "refugee education policy" in self.generator.prompts[0]

    def test_opinions_record_every_stakeholder_ballot(self):
        category = asyncio.run(self.driver.run_category_opinions(self.session))
        assert category.id == "access"
        assert self.session.stage_of("access") == CategoryStage.AWAITING_USER_VOTE

        ballots = self.session.votes["access"].ballots
        assert ballots == {s.id: s.preferences["access"] for s in self.session.stakeholders}

        spoken = [e.speaker for e in self.session.transcript if e.category_id == "access"]
        assert spoken[0] == "Moderator"
        assert spoken[1:-1] == [s.name for s in self.session.stakeholders]
        assert spoken[-1] == "Moderator"

    def test_opinion_prompt_names_preferred_option(self):
        asyncio.run(self.driver.run_category_opinions(self.session))
        stakeholder = self.session.stakeholders[0]
        category = self.session.get_category("access")
        preferred = category.get_option(stakeholder.preferences["access"])
        assert f'you prefer "{preferred.title}"' in self.generator.prompts[0]

    def test_opinions_rejected_while_awaiting_user(self):
        asyncio.run(self.driver.run_category_opinions(self.session))
        with pytest.raises(InvalidPhase):
            asyncio.run(self.driver.run_category_opinions(self.session))

    def test_share_perspective(self):
        with pytest.raises(InvalidPhase):
            self.driver.share_perspective(self.session, "Too early")

        asyncio.run(self.driver.run_category_opinions(self.session))
        before = len(self.session.transcript)
        self.driver.share_perspective(self.session, "  Integration matters.  ")
        new = self.session.transcript[before:]
        assert [(e.speaker, e.message) for e in new][0] == ("You", "Integration matters.")
        assert new[1].speaker == "Moderator"

        self.driver.share_perspective(self.session, "   ")
        assert len(self.session.transcript) == before + 2

    def test_run_to_completion(self):
        def vote_cheapest(session, category):
            return min(category.options, key=lambda o: o.cost).id

        results = asyncio.run(self.driver.run_to_completion(self.session, vote_cheapest))

        assert len(results) == len(self.session.categories)
        assert self.session.phase == SimulationPhase.REFLECTION
        assert self.session.transcript_frozen
        assert self.session.finished == [c.id for c in self.session.categories]
        for result in results:
            assert self.session.get_category(result.category_id).selected_option == result.winner

    def test_requires_discussion_phase(self):
        session = self.engine.create_session()
        with pytest.raises(InvalidPhase):
            asyncio.run(self.driver.run_introductions(session))

    def test_transcript_identifies_speakers_with_shared_names(self):
        preferences = {c.id: c.option_ids[0] for c in self.session.categories}
        twins = [
            StakeholderProfile(
                id=f"s{i}", name="Amir", age=30 + i, education="Bachelor's Degree",
                occupation="Teacher", socioeconomic_status="Middle Class",
                political_ideology="Centrist", preferences=preferences,
            )
            for i in (1, 2)
        ]
        session = self.engine.create_session(stakeholders=twins)
        self.engine.advance_phase(session, SimulationPhase.ALLOCATION)
        for category in session.categories:
            self.engine.select_option(session, category.id, min(category.options, key=lambda o: o.cost).id)
        self.engine.advance_phase(session, SimulationPhase.DISCUSSION)

        asyncio.run(self.driver.run_introductions(session))
        asyncio.run(self.driver.run_category_opinions(session))
        self.driver.share_perspective(session, "I lean towards integration.")

        access = [(e.speaker, e.speaker_id) for e in session.transcript if e.category_id == "access"]
        assert access == [
            ("Moderator", "moderator"),
            ("Amir", "s1"),
            ("Amir", "s2"),
            ("Moderator", "moderator"),
            ("You", "user"),
            ("Moderator", "moderator"),
        ]

        self.engine.cast_user_vote(session, "access", 2)
        vote_line = next(e for e in session.transcript if e.message.startswith("I vote for"))
        assert vote_line.speaker_id == "user"


class TestGenerationFailure:
    """A failed model call never blocks voting."""

    def test_failing_generator_uses_fallbacks(self):
        engine = PolicyNegotiationEngine(stakeholder_count=2, rng=random.Random(3))
        driver = DiscussionDriver(engine, FailingGenerator())
        session = _session_in_discussion(engine)

        asyncio.run(driver.run_introductions(session))
        asyncio.run(driver.run_category_opinions(session))

        assert len(session.votes["access"].ballots) == 2
        assert session.stage_of("access") == CategoryStage.AWAITING_USER_VOTE

        first = session.stakeholders[0]
        intro = next(e.message for e in session.transcript if e.speaker == first.name)
        assert intro == f"Hello, I'm {first.name}, a {first.occupation}."
        opinion = [e.message for e in session.transcript
                   if e.speaker == first.name and e.category_id == "access"]
        assert opinion[0].startswith("I support ")

    def test_generate_or_fallback(self):
        assert asyncio.run(generate_or_fallback(FailingGenerator(), "x", "fallback")) == "fallback"
        assert asyncio.run(generate_or_fallback(RecordingGenerator("hi"), "x", "fallback")) == "hi"

    def test_agent_without_preference(self):
        engine = PolicyNegotiationEngine(stakeholder_count=1, rng=random.Random(3))
        session = _session_in_discussion(engine)
        profile = session.stakeholders[0].model_copy(update={"preferences": {}})
        agent = StakeholderAgent(profile, RecordingGenerator())
        category = session.get_category("access")
        generator = agent.generator
        with pytest.raises(ValueError):
            asyncio.run(agent.opine(category))
        with pytest.raises(ValueError):
            opinion_prompt(profile, category)
        assert generator.prompts == []

    @pytest.mark.parametrize("crash_on", [1, 2])
    def test_rerun_after_crash_frames_category_once(self, crash_on):
        engine = PolicyNegotiationEngine(stakeholder_count=3, rng=random.Random(5))
        session = _session_in_discussion(engine)
        driver = DiscussionDriver(engine, CrashingGenerator(crash_on=crash_on))

        with pytest.raises(RuntimeError):
            asyncio.run(driver.run_category_opinions(session))
        assert len(session.votes["access"].ballots) == crash_on - 1

        asyncio.run(driver.run_category_opinions(session))

        framing = [e for e in session.transcript if e.message.startswith("Let's discuss")]
        assert len(framing) == 1
        assert set(session.votes["access"].ballots) == {"s1", "s2", "s3"}
        assert session.stage_of("access") == CategoryStage.AWAITING_USER_VOTE


class TestLiteLLMTextGenerator:
    """LiteLLM calls are wrapped into TextGenerationError."""

    def test_returns_stripped_content(self, monkeypatch):
        async def fake_completion(**kwargs):
            assert kwargs["messages"][0]["role"] == "system"
            assert kwargs["max_tokens"] == 42
            return SimpleNamespace(
                choices=[SimpleNamespace(message=SimpleNamespace(content="  Hello.  "))]
            )

        monkeypatch.setattr(text_generation.litellm, "acompletion", fake_completion)
        generator = LiteLLMTextGenerator(model="openai/gpt-3.5-turbo", api_key="sk-test")
        assert asyncio.run(generator.generate("prompt", max_tokens=42)) == "Hello."

    def test_provider_error(self, monkeypatch):
        async def broken(**kwargs):
            raise RuntimeError("rate limited")

        monkeypatch.setattr(text_generation.litellm, "acompletion", broken)
        generator = LiteLLMTextGenerator(model="openai/gpt-3.5-turbo")
        with pytest.raises(TextGenerationError, match="rate limited"):
            asyncio.run(generator.generate("prompt"))

    def test_empty_completion(self, monkeypatch):
        async def empty(**kwargs):
            return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=None))])

        monkeypatch.setattr(text_generation.litellm, "acompletion", empty)
        with pytest.raises(TextGenerationError):
            asyncio.run(LiteLLMTextGenerator(model="m").generate("prompt"))

    def test_timeout(self, monkeypatch):
        async def slow(**kwargs):
            await asyncio.sleep(5)

        monkeypatch.setattr(text_generation.litellm, "acompletion", slow)
        generator = LiteLLMTextGenerator(model="m", timeout_seconds=0.01)
        with pytest.raises(TextGenerationError, match="did not answer"):
            asyncio.run(generator.generate("prompt"))

    def test_build_without_key_is_offline(self):
        generator = build_text_generator("openai/gpt-3.5-turbo", api_key="")
        assert isinstance(generator, EchoTextGenerator)
        reply = asyncio.run(generator.generate("Explain the policy"))
        assert reply == "This is a simulated AI response for: Explain the policy..."

    def test_build_with_key(self):
        generator = build_text_generator("openai/gpt-3.5-turbo", api_key="sk-test", timeout_seconds=5)
        assert isinstance(generator, LiteLLMTextGenerator)
        assert generator.timeout_seconds == 5
