"""API routes for inbound messages and per-customer conversation state."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException

from dealerbot.memory.summary import TurnSummaryStore
from dealerbot.pipeline import InboundMessage, TurnPipeline, TurnResult


def create_conversations_router(pipeline: TurnPipeline, summaries: TurnSummaryStore) -> APIRouter:
    router = APIRouter(tags=["conversations"])

    @router.post("/messages")
    async def receive_message(payload: dict) -> dict:
        """Process one inbound customer message and deliver the reply."""

        user_id = payload.get("user_id")
        text = payload.get("text")
        if not user_id or not text or not str(text).strip():
            raise HTTPException(status_code=400, detail="user_id and text are required")

        message = InboundMessage(user_id=str(user_id), text=str(text), sender_name=payload.get("sender_name"))
        result = await pipeline.handle(message, deliver=bool(payload.get("deliver", True)))
        return _result_payload(result)

    @router.get("/conversations/{user_id}/summary")
    async def conversation_summary(user_id: str) -> dict[str, Any]:
        summary = await summaries.load(user_id)
        recent = await summaries.recent_responses(user_id)
        return {
            "user_id": user_id,
            "summary": summary.to_dict(),
            "context": TurnSummaryStore.build_context(summary),
            "recent_responses": [record.to_dict() for record in recent],
        }

    @router.put("/conversations/{user_id}/trade-in")
    async def set_trade_in(user_id: str, payload: dict) -> dict[str, Any]:
        """Store (or clear, with ``null``) the customer's trade-in valuation."""

        if "value" not in payload:
            raise HTTPException(status_code=400, detail="value is required")
        value = payload["value"]
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value <= 0):
            raise HTTPException(status_code=400, detail="value must be a positive integer or null")
        summary = await summaries.set_trade_in_value(user_id, value)
        return {"user_id": user_id, "trade_in_value": summary.trade_in_value}

    @router.post("/conversations/{user_id}/handoff")
    async def mark_handoff(user_id: str) -> dict[str, Any]:
        """Record that a salesperson took over; the bot goes passive for a while."""

        summary = await summaries.mark_handoff(user_id)
        return {"user_id": user_id, "handoff_at": summary.handoff_at.isoformat() if summary.handoff_at else None}

    @router.delete("/conversations/{user_id}")
    async def reset_conversation(user_id: str) -> dict[str, str]:
        await summaries.reset(user_id)
        return {"user_id": user_id, "status": "reset"}

    return router


def _result_payload(result: TurnResult) -> dict[str, Any]:
    intent = result.intent
    return {
        "user_id": result.user_id,
        "message": result.response,
        "source": result.source.value,
        "intent": intent.type.value,
        "confidence": intent.confidence.value,
        "slots": intent.extracted_data.as_dict(),
        "rule_action": result.rule_action.value if result.rule_action else None,
        "faq_category": result.faq_category.value if result.faq_category else None,
        "cars": [car.describe() for car in result.cars],
        "violations": result.violations,
        "was_reformulated": result.was_reformulated,
        "delivered": result.delivered,
    }
