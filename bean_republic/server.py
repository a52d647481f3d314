"""
Republic of Bean — API server entrypoint.

Configures structured logging and serves the simulation API with uvicorn.

Usage:
    python -m bean_republic.server
"""

from __future__ import annotations

import logging

import structlog
import uvicorn

from bean_republic.config import settings


def configure_logging() -> None:
    """Configure structured logging."""
    logging.basicConfig(
        level=logging.getLevelName(settings.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if settings.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def main() -> None:
    configure_logging()
    log = structlog.get_logger()

    log.info(
        "bean_republic.server.starting",
        host=settings.dashboard_host,
        port=settings.dashboard_port,
        model=settings.stakeholder_model,
        llm_enabled=settings.llm_enabled,
        budget_total=settings.budget_total,
        stakeholder_count=settings.stakeholder_count,
    )

    uvicorn.run(
        "bean_republic.dashboard.app:app",
        host=settings.dashboard_host,
        port=settings.dashboard_port,
        log_level=settings.log_level.lower(),
    )
    log.info("bean_republic.server.shutdown")


if __name__ == "__main__":
    main()
