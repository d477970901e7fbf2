"""FastAPI application entry point for the dealership sales bot."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from dealerbot.api.conversations import create_conversations_router
from dealerbot.core.config import Settings, get_settings
from dealerbot.core.db import sqlite_connection, table_exists
from dealerbot.core.errors import unhandled_exception_handler
from dealerbot.core.logging import configure_logging, request_id_middleware
from dealerbot.core.metrics import MetricsCollector
from dealerbot.guardrails.policy import ResponsePolicyEnforcer
from dealerbot.guardrails.reformulate import Reformulator
from dealerbot.guardrails.repetition import RepetitionGuard
from dealerbot.memory.models import utcnow
from dealerbot.memory.store import KeyValueStore, SQLiteKeyValueStore
from dealerbot.memory.summary import TurnSummaryStore
from dealerbot.pipeline import TurnPipeline
from dealerbot.planner.classifier import IntentClassifier
from dealerbot.planner.faq import FAQMatcher, SpecialRule, StoreHours
from dealerbot.planner.rules import RuleGate, RuleResponses
from dealerbot.resilience.circuit import CircuitBreaker, KeyValueCircuitRepository
from dealerbot.resilience.guarded import GuardedCarRepository, GuardedMessageBus, GuardedReasoner
from dealerbot.tools.base import CarRepository, MessageBus, Reasoner
from dealerbot.tools.gateway import EvolutionMessageBus, LoggingMessageBus
from dealerbot.tools.inventory import HttpCarRepository, StaticCarRepository
from dealerbot.tools.reasoner import ChatCompletionsReasoner, OfflineReasoner

logger = logging.getLogger("dealerbot.app")


@dataclass(slots=True)
class Services:
    """Everything a running service owns, built once at startup."""

    settings: Settings
    store: KeyValueStore
    metrics: MetricsCollector
    breaker: CircuitBreaker
    summaries: TurnSummaryStore
    pipeline: TurnPipeline


def rule_responses(settings: Settings) -> RuleResponses:
    """Built-in rule wording, with any configured lists taking its place."""

    responses = RuleResponses()
    configured = {
        "passive": settings.passive_responses,
        "postpone": settings.postpone_responses,
        "exit": settings.exit_responses,
        "greeting": settings.greeting_responses,
    }
    for name, replies in configured.items():
        if replies:
            setattr(responses, name, list(replies))
    return responses


def build_services(
    settings: Settings,
    *,
    store: KeyValueStore | None = None,
    reasoner: Reasoner | None = None,
    bus: MessageBus | None = None,
    inventory: CarRepository | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> Services:
    """Wire collaborators from settings. Explicit arguments replace the configured ones."""

    store = store or SQLiteKeyValueStore(settings.kv_path)
    metrics = MetricsCollector()
    breaker = CircuitBreaker(KeyValueCircuitRepository(store), metrics=metrics)

    if reasoner is None:
        if settings.reasoner_enabled:
            reasoner = ChatCompletionsReasoner(
                settings.reasoner_api_key or "",
                base_url=settings.reasoner_base_url,
                model=settings.reasoner_model,
                temperature=settings.reasoner_temperature,
                max_tokens=settings.reasoner_max_tokens,
            )
        else:
            logger.warning("No reasoner API key configured; generated replies fall back to the static message")
            reasoner = OfflineReasoner()
    guarded_reasoner = GuardedReasoner(reasoner, breaker, metrics=metrics)

    if bus is None:
        if settings.gateway_enabled:
            bus = GuardedMessageBus(
                EvolutionMessageBus(settings.gateway_url or "", settings.gateway_api_key or "", settings.gateway_instance),
                breaker,
            )
        else:
            bus = LoggingMessageBus()

    if inventory is None:
        inventory = HttpCarRepository(settings.inventory_url) if settings.inventory_url else StaticCarRepository()

    hours = StoreHours(
        weekday_open=settings.weekday_open,
        weekday_close=settings.weekday_close,
        saturday_open=settings.saturday_open,
        saturday_close=settings.saturday_close,
        sunday_open=settings.sunday_open,
        sunday_close=settings.sunday_close,
        timezone=settings.timezone,
        special_rules=[SpecialRule(rule.label, rule.description, rule.active) for rule in settings.hours_special_rules],
    )
    summaries = TurnSummaryStore(
        store,
        ttl_days=settings.summary_ttl_days,
        history_size=settings.response_history_size,
    )
    reformulator = Reformulator(guarded_reasoner, temperature=settings.reformulation_temperature, cache=store)

    pipeline = TurnPipeline(
        classifier=IntentClassifier(),
        rules=RuleGate(rule_responses(settings), passive_window_minutes=settings.passive_window_minutes),
        faq=FAQMatcher(hours, address=settings.store_address),
        summaries=summaries,
        reasoner=guarded_reasoner,
        enforcer=ResponsePolicyEnforcer(
            reformulator,
            max_length=settings.max_response_length,
            similarity_threshold=settings.similarity_threshold,
            name_cooldown_turns=settings.name_cooldown_turns,
            metrics=metrics,
        ),
        repetition=RepetitionGuard(
            reformulator,
            threshold=settings.similarity_threshold,
            window=settings.response_history_size,
            temperature=settings.repetition_temperature,
        ),
        bus=bus,
        inventory=GuardedCarRepository(inventory, breaker),
        metrics=metrics,
        hours=hours,
        store_name=settings.store_name,
        seller_phone=settings.seller_phone,
        passive_window_minutes=settings.passive_window_minutes,
        inventory_max_results=settings.inventory_max_results,
        clock=clock,
    )
    return Services(
        settings=settings,
        store=store,
        metrics=metrics,
        breaker=breaker,
        summaries=summaries,
        pipeline=pipeline,
    )


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    settings = settings or (services.settings if services else get_settings())
    services = services or build_services(settings)

    app = FastAPI(title=settings.app_name, version="0.1.0", docs_url="/docs")
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_id_middleware)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(create_conversations_router(services.pipeline, services.summaries))

    @app.on_event("startup")
    async def startup_logging() -> None:
        configure_logging(settings.log_level, settings.environment)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Return basic service status for monitoring."""

        return {"status": "ok"}

    @app.get("/ready", tags=["health"])
    async def readiness_probe() -> dict[str, Any]:
        """Readiness endpoint.

        Checks:
        - Key-value store reachable (SQLite file with the ``kv`` table, or in-memory).
        - Reasoner and messaging gateway configured.
        """

        components: dict[str, dict[str, Any]] = {}

        store = services.store
        store_ok = False
        store_error: str | None = None
        if isinstance(store, SQLiteKeyValueStore):
            try:
                with sqlite_connection(store.db_path) as conn:
                    store_ok = table_exists(conn, "kv")
            except Exception as exc:  # noqa: BLE001
                store_error = str(exc)
            components["kv_store"] = {
                "path": str(store.db_path),
                "ok": store_ok,
                **({"error": store_error} if store_error else {}),
            }
        else:
            store_ok = True
            components["kv_store"] = {"backend": type(store).__name__, "ok": True}

        components["reasoner"] = {"configured": settings.reasoner_enabled, "ok": settings.reasoner_enabled}
        components["gateway"] = {"configured": settings.gateway_enabled, "ok": True}

        if store_ok and settings.reasoner_enabled:
            overall = "ok"
        elif store_ok:
            overall = "degraded"
        else:
            overall = "fail"

        return {
            "status": overall,
            "environment": settings.environment,
            "components": components,
        }

    @app.get("/metrics", tags=["metrics"])
    async def metrics_endpoint() -> dict:
        snapshot = services.metrics.snapshot()
        return {
            "total_turns": snapshot.total_turns,
            "intents": snapshot.intents,
            "short_circuits": snapshot.short_circuits,
            "reasoner_calls": snapshot.reasoner_calls,
            "reasoner_failures": snapshot.reasoner_failures,
            "reformulations": snapshot.reformulations,
            "fallbacks": snapshot.fallbacks,
            "circuit_rejections": snapshot.circuit_rejections,
        }

    @app.get("/circuits", tags=["circuits"])
    async def list_circuits() -> dict[str, dict[str, Any]]:
        records = await services.breaker.status_all()
        return {name: record.to_dict() for name, record in records.items()}

    @app.post("/circuits/{name}/reset", tags=["circuits"])
    async def reset_circuit(name: str) -> dict[str, Any]:
        known = await services.breaker.status_all()
        if name not in known:
            raise HTTPException(status_code=404, detail=f"unknown circuit '{name}'")
        record = await services.breaker.reset(name)
        return {"name": name, **record.to_dict()}

    return app
