"""
Republic of Bean — HTTP API for the simulation front end.

FastAPI application providing:
- Session lifecycle (create, inspect, abandon)
- Phase 1 budget allocation
- Phase 2 group discussion and voting
- Phase 3 reflections with AI feedback
- Export of the finished session for report collaborators
- Raw stakeholder message generation

Every mutation of a session runs under that session's lock.
"""

from __future__ import annotations

import logging
import random
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from uuid import UUID

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from bean_republic.agents.text_generation import (
    TextGenerationError,
    TextGenerator,
    build_text_generator,
)
from bean_republic.config import settings
from bean_republic.reflection.feedback import FeedbackService
from bean_republic.simulation.discussion import DiscussionDriver
from bean_republic.simulation.engine import PolicyNegotiationEngine
from bean_republic.simulation.errors import (
    BudgetExceeded,
    IncompletePolicySet,
    IncompleteReflection,
    InvalidPhase,
    InvalidReference,
    PhaseOrderViolation,
    SimulationError,
)
from bean_republic.simulation.registry import SessionRegistry
from bean_republic.simulation.schema import ParticipantProfile, SessionState

logger = logging.getLogger(__name__)


# ── Pydantic request / response models ────────────────────────


class CreateSessionRequest(BaseModel):
    participant: ParticipantProfile | None = None


class PhaseRequest(BaseModel):
    target: int


class SelectionRequest(BaseModel):
    category_id: str
    option_id: int


class VoteRequest(BaseModel):
    category_id: str
    option_id: int


class PerspectiveRequest(BaseModel):
    message: str


class ReflectionRequest(BaseModel):
    answers: dict[str, str]


class GenerateMessageRequest(BaseModel):
    prompt: str = ""
    max_tokens: int = 150
    temperature: float = 0.7


class DashboardState:
    """Mutable application state injected at startup."""

    def __init__(self) -> None:
        self.engine: PolicyNegotiationEngine | None = None
        self.generator: TextGenerator | None = None
        self.driver: DiscussionDriver | None = None
        self.feedback_service: FeedbackService | None = None
        self.registry = SessionRegistry()
        self.startup_time: datetime = datetime.now(timezone.utc)

    def reset(
        self,
        engine: PolicyNegotiationEngine | None = None,
        generator: TextGenerator | None = None,
    ) -> None:
        """Wire services; defaults come from settings."""
        self.engine = engine or PolicyNegotiationEngine(
            stakeholder_count=settings.stakeholder_count,
            budget_total=settings.budget_total,
            rng=random.Random(settings.random_seed),
        )
        self.generator = generator or build_text_generator(
            settings.stakeholder_model,
            api_key=settings.openai_api_key,
            timeout_seconds=settings.text_generation_timeout_seconds,
        )
        self.driver = DiscussionDriver(
            self.engine,
            self.generator,
            max_tokens=settings.message_max_tokens,
            temperature=settings.temperature,
        )
        feedback_generator = generator or build_text_generator(
            settings.feedback_model,
            api_key=settings.openai_api_key,
            timeout_seconds=settings.text_generation_timeout_seconds,
        )
        self.feedback_service = FeedbackService(
            feedback_generator,
            max_tokens=settings.feedback_max_tokens,
            temperature=settings.temperature,
        )
        self.registry = SessionRegistry()


state = DashboardState()


# ── Application lifecycle ──────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup & shutdown lifecycle — wire the engine and text generator."""
    logger.info(
        "Republic of Bean API starting — model=%s llm_enabled=%s",
        settings.stakeholder_model, settings.llm_enabled,
    )
    state.reset()

    yield

    logger.info("Republic of Bean API shut down (%d live sessions dropped)", len(state.registry))


app = FastAPI(
    title="Republic of Bean — Policy Negotiation API",
    description="Refugee education policy simulation: allocate, negotiate, reflect",
    version="0.1.0",
    lifespan=lifespan,
)


# ── Error mapping ──────────────────────────────────────────────


_ERROR_STATUS: dict[type[SimulationError], int] = {
    InvalidReference: 422,
    IncompleteReflection: 422,
    BudgetExceeded: 409,
    IncompletePolicySet: 409,
    InvalidPhase: 409,
    PhaseOrderViolation: 409,
}


@app.exception_handler(SimulationError)
async def simulation_error_handler(request: Request, exc: SimulationError) -> JSONResponse:
    status = _ERROR_STATUS.get(type(exc), 400)
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc)
    body = {"error": type(exc).__name__, "detail": str(exc)}
    missing = getattr(exc, "missing", None)
    if missing:
        body["missing"] = missing
    return JSONResponse(status_code=status, content=body)


def _session(session_id: UUID) -> SessionState:
    try:
        return state.registry.get(session_id)
    except InvalidReference as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


def _dump(session: SessionState) -> dict:
    return session.model_dump(mode="json")


# ── Routes: Sessions ───────────────────────────────────────────


@app.post("/api/sessions", status_code=201)
async def api_create_session(req: CreateSessionRequest):
    """Start a new session in the INTRODUCTION phase."""
    session = state.engine.create_session(participant=req.participant)
    state.registry.add(session)
    return _dump(session)


@app.get("/api/sessions/{session_id}")
async def api_get_session(session_id: UUID):
    return _dump(_session(session_id))


@app.delete("/api/sessions/{session_id}", status_code=204)
async def api_abandon_session(session_id: UUID):
    _session(session_id)
    state.registry.discard(session_id)


@app.put("/api/sessions/{session_id}/participant")
async def api_register_participant(session_id: UUID, profile: ParticipantProfile):
    session = _session(session_id)
    async with state.registry.lock(session_id):
        state.engine.register_participant(session, profile)
    return _dump(session)


@app.post("/api/sessions/{session_id}/phase")
async def api_advance_phase(session_id: UUID, req: PhaseRequest):
    session = _session(session_id)
    async with state.registry.lock(session_id):
        state.engine.advance_phase(session, req.target)
    return _dump(session)


# ── Routes: Phase 1 ────────────────────────────────────────────


@app.post("/api/sessions/{session_id}/selections")
async def api_select_option(session_id: UUID, req: SelectionRequest):
    """Select, switch or toggle off an option."""
    session = _session(session_id)
    async with state.registry.lock(session_id):
        state.engine.select_option(session, req.category_id, req.option_id)
    return {
        "budget": session.budget.model_dump(mode="json"),
        "all_selected": state.engine.all_categories_selected(session),
        "categories": [c.model_dump(mode="json") for c in session.categories],
    }


# ── Routes: Phase 2 ────────────────────────────────────────────


@app.post("/api/sessions/{session_id}/discussion/introductions")
async def api_introductions(session_id: UUID):
    session = _session(session_id)
    async with state.registry.lock(session_id):
        await state.driver.run_introductions(session)
    return {"transcript": [e.model_dump(mode="json") for e in session.transcript]}


@app.post("/api/sessions/{session_id}/discussion/opinions")
async def api_opinions(session_id: UUID):
    """Let stakeholders speak on the active category."""
    session = _session(session_id)
    async with state.registry.lock(session_id):
        category = await state.driver.run_category_opinions(session)
    return {
        "category_id": category.id,
        "stage": session.stage_of(category.id).value,
        "ballots": session.votes[category.id].ballots,
        "transcript": [
            e.model_dump(mode="json") for e in session.transcript if e.category_id == category.id
        ],
    }


@app.post("/api/sessions/{session_id}/discussion/perspective")
async def api_perspective(session_id: UUID, req: PerspectiveRequest):
    session = _session(session_id)
    async with state.registry.lock(session_id):
        state.driver.share_perspective(session, req.message)
    return {"transcript_length": len(session.transcript)}


@app.post("/api/sessions/{session_id}/votes")
async def api_cast_vote(session_id: UUID, req: VoteRequest):
    """Cast the participant's vote and resolve the category."""
    session = _session(session_id)
    async with state.registry.lock(session_id):
        result = state.engine.cast_user_vote(session, req.category_id, req.option_id)
    active = session.active_category
    return {
        "result": result.model_dump(mode="json"),
        "phase": int(session.phase),
        "next_category_id": active.id if active else None,
    }


# ── Routes: Phase 3 ────────────────────────────────────────────


@app.post("/api/sessions/{session_id}/reflections")
async def api_reflections(session_id: UUID, req: ReflectionRequest):
    """Store reflections and return AI feedback on them."""
    session = _session(session_id)
    async with state.registry.lock(session_id):
        answers = state.engine.submit_reflections(session, req.answers)
        feedback = await state.feedback_service.generate_feedback(
            state.engine.final_package(session), answers,
        )
        state.engine.record_feedback(session, feedback)
    return {"feedback": feedback}


@app.get("/api/sessions/{session_id}/export")
async def api_export(session_id: UUID):
    session = _session(session_id)
    return state.engine.export_session(session).model_dump(mode="json")


# ── Routes: Text generation ────────────────────────────────────


@app.post("/api/generate-message")
async def api_generate_message(req: GenerateMessageRequest):
    """Generate a single stakeholder message for an arbitrary prompt."""
    if not req.prompt.strip():
        raise HTTPException(status_code=400, detail="Prompt is required")

    try:
        message = await state.generator.generate(
            req.prompt, max_tokens=req.max_tokens, temperature=req.temperature,
        )
    except TextGenerationError as e:
        logger.error("Error generating AI message: %s", e)
        raise HTTPException(status_code=502, detail="Failed to generate AI message") from e
    return {"message": message}


# ── Health Check ───────────────────────────────────────────────


@app.get("/health")
async def health():
    """Health check endpoint."""
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": (datetime.now(timezone.utc) - state.startup_time).total_seconds(),
        "live_sessions": len(state.registry),
        "llm_enabled": settings.llm_enabled,
    })
