"""Per-user turn summaries and delivered-response history.

Both live in the key-value store under ``summary:{user}`` and
``responses:{user}``. Store failures never interrupt a turn: reads fall back
to empty state and writes are logged and dropped.
"""

from __future__ import annotations

import logging
from dataclasses import fields
from datetime import datetime
from typing import Any, Mapping

from dealerbot.core.errors import StoreError
from dealerbot.memory.models import LAST_ACTION_LABELS, LastAction, ResponseRecord, TurnSummary, utcnow
from dealerbot.memory.store import KeyValueStore

logger = logging.getLogger("dealerbot.memory")

DAY_SECONDS = 24 * 60 * 60


class TurnSummaryStore:
    """Read, merge and persist :class:`TurnSummary` records and the delivered-response history."""

    def __init__(self, store: KeyValueStore, ttl_days: int = 7, history_size: int = 5) -> None:
        self._store = store
        self._ttl_seconds = ttl_days * DAY_SECONDS
        self.history = ResponseHistory(store, size=history_size, ttl_days=ttl_days)

    @staticmethod
    def _key(user_id: str) -> str:
        return f"summary:{user_id}"

    async def load(self, user_id: str) -> TurnSummary:
        """Return the stored summary, or an empty one when absent or unreadable."""

        try:
            payload = await self._store.get(self._key(user_id))
        except StoreError:
            logger.warning("Summary read failed for %s, using empty summary", user_id, exc_info=True)
            return TurnSummary()
        if not payload:
            return TurnSummary()
        try:
            return TurnSummary.from_dict(payload)
        except (KeyError, TypeError, ValueError):
            logger.warning("Discarding malformed summary for %s", user_id)
            return TurnSummary()

    async def save_turn(
        self,
        user_id: str,
        changes: Mapping[str, Any],
        now: datetime | None = None,
    ) -> TurnSummary:
        """Merge ``changes`` into the stored summary and count one more turn."""

        return await self._merge(user_id, changes, now=now, count_turn=True)

    async def save(self, user_id: str, summary: TurnSummary, now: datetime | None = None) -> TurnSummary:
        """Persist every field of ``summary`` and count one more turn."""

        return await self.save_turn(user_id, {f.name: getattr(summary, f.name) for f in fields(summary)}, now=now)

    async def patch(self, user_id: str, changes: Mapping[str, Any], now: datetime | None = None) -> TurnSummary:
        """Merge ``changes`` without counting a turn."""

        return await self._merge(user_id, changes, now=now, count_turn=False)

    async def _merge(
        self,
        user_id: str,
        changes: Mapping[str, Any],
        *,
        now: datetime | None,
        count_turn: bool,
    ) -> TurnSummary:
        summary = await self.load(user_id)
        for name, value in changes.items():
            if name in ("turn_count", "updated_at"):
                continue
            if not hasattr(summary, name):
                raise AttributeError(f"TurnSummary has no field {name!r}")
            setattr(summary, name, value)
        if count_turn:
            summary.turn_count += 1
        summary.updated_at = now or utcnow()

        try:
            await self._store.put(self._key(user_id), summary.to_dict(), ttl_seconds=self._ttl_seconds)
        except StoreError:
            logger.error("Summary write failed for %s, continuing", user_id, exc_info=True)
        return summary

    async def mark_slot_asked(self, user_id: str, slot: str) -> None:
        summary = await self.load(user_id)
        if slot in summary.asked_slots:
            return
        await self.patch(user_id, {"asked_slots": summary.asked_slots | {slot}})

    async def was_slot_asked(self, user_id: str, slot: str) -> bool:
        summary = await self.load(user_id)
        return slot in summary.asked_slots

    async def clear_asked_slots(self, user_id: str) -> None:
        await self.patch(user_id, {"asked_slots": set()})

    async def mark_handoff(self, user_id: str, now: datetime | None = None) -> TurnSummary:
        moment = now or utcnow()
        return await self.patch(user_id, {"handoff_at": moment, "last_action": LastAction.SELLER}, now=moment)

    async def set_trade_in_value(self, user_id: str, value: int | None) -> TurnSummary:
        return await self.patch(user_id, {"trade_in_value": value})

    async def recent_responses(self, user_id: str) -> list[ResponseRecord]:
        return await self.history.recent(user_id)

    async def remember_response(
        self,
        user_id: str,
        text: str,
        digest: str,
        now: datetime | None = None,
    ) -> list[ResponseRecord]:
        record = ResponseRecord(hash=digest, text=text, at=now or utcnow())
        return await self.history.remember(user_id, record)

    async def reset(self, user_id: str) -> None:
        """Forget the summary and the response history."""

        try:
            await self._store.delete(self._key(user_id))
        except StoreError:
            logger.error("Summary delete failed for %s", user_id, exc_info=True)
        await self.history.clear(user_id)

    @staticmethod
    def build_context(summary: TurnSummary) -> str:
        """Render the digest handed to the reasoner so it does not re-ask known facts."""

        if summary.turn_count == 0:
            return ""

        parts: list[str] = []
        if summary.known_slots:
            known = ", ".join(f"{name}={value}" for name, value in sorted(summary.known_slots.items()))
            parts.append(f"SLOTS COLETADOS: {known}")
        elif summary.slots_filled:
            parts.append(f"SLOTS COLETADOS: {', '.join(sorted(summary.slots_filled))}")
        if summary.last_action is not LastAction.NONE:
            parts.append(f"ÚLTIMA AÇÃO: {LAST_ACTION_LABELS[summary.last_action]}")
        if summary.asked_slots:
            parts.append(f"SLOTS JÁ PERGUNTADOS (NÃO REPETIR): {', '.join(sorted(summary.asked_slots))}")
        parts.append(f"ESTÁGIO: {summary.stage.value}")
        parts.append(f"TURNO: {summary.turn_count}")
        return "CONTEXTO DA CONVERSA:\n" + "\n".join(parts)


class ResponseHistory:
    """Ring buffer of the last delivered responses per user, newest first."""

    def __init__(self, store: KeyValueStore, size: int = 5, ttl_days: int = 7) -> None:
        self._store = store
        self._size = size
        self._ttl_seconds = ttl_days * DAY_SECONDS

    @staticmethod
    def _key(user_id: str) -> str:
        return f"responses:{user_id}"

    async def recent(self, user_id: str) -> list[ResponseRecord]:
        try:
            payload = await self._store.get(self._key(user_id))
        except StoreError:
            logger.warning("Response history read failed for %s", user_id, exc_info=True)
            return []
        try:
            return [ResponseRecord.from_dict(item) for item in payload or []][: self._size]
        except (KeyError, TypeError, ValueError):
            logger.warning("Discarding malformed response history for %s", user_id)
            return []

    async def remember(self, user_id: str, record: ResponseRecord) -> list[ResponseRecord]:
        records = [record, *await self.recent(user_id)][: self._size]
        try:
            await self._store.put(
                self._key(user_id),
                [item.to_dict() for item in records],
                ttl_seconds=self._ttl_seconds,
            )
        except StoreError:
            logger.error("Response history write failed for %s", user_id, exc_info=True)
        return records

    async def clear(self, user_id: str) -> None:
        try:
            await self._store.delete(self._key(user_id))
        except StoreError:
            logger.error("Response history delete failed for %s", user_id, exc_info=True)
