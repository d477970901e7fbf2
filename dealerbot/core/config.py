"""Application settings and configuration helpers."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import AnyHttpUrl, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SpecialHoursRule(BaseModel):
    """A note appended to every hours answer while active, e.g. a holiday."""

    label: str
    description: str
    active: bool = True


class Settings(BaseSettings):
    """Strongly-typed configuration sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = Field(default="Dealerbot", description="Human-readable service name.")
    environment: str = Field(default="local", description="Deployment environment identifier.")
    store_name: str = Field(default="Netcar", description="Dealership name used in scripted answers.")
    store_address: str = Field(
        default="Av. Principal, 1000 - Centro",
        description="Street address used by the location FAQ answer.",
    )
    log_level: str = Field(default="INFO", description="Application log level.")

    kv_path: Path = Field(
        default=Path("../db/dealerbot.db"),
        description="SQLite key-value store holding summaries, circuits and response history.",
    )

    reasoner_api_key: str | None = Field(default=None, description="API key for the completion backend.")
    reasoner_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of an OpenAI-compatible chat completions API.",
    )
    reasoner_model: str = Field(default="gpt-4o-mini", description="Completion model identifier.")
    reasoner_temperature: float = Field(default=0.4, ge=0.0, le=2.0, description="Primary sampling temperature.")
    reformulation_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature used when asking the backend to rewrite a response.",
    )
    repetition_temperature: float = Field(
        default=0.9,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for anti-repetition rewrites.",
    )
    reasoner_max_tokens: int = Field(default=300, ge=16, description="Token cap per completion.")

    gateway_url: str | None = Field(default=None, description="Messaging gateway base URL.")
    gateway_api_key: str | None = Field(default=None, description="Messaging gateway API key.")
    gateway_instance: str = Field(default="dealerbot", description="Messaging gateway instance name.")
    seller_phone: str | None = Field(
        default=None,
        description="Salesperson number notified on handoff. Notifications are skipped when unset.",
    )

    inventory_url: str | None = Field(default=None, description="Vehicle inventory search endpoint.")
    inventory_max_results: int = Field(default=3, ge=1, le=10, description="Cars passed to the backend per turn.")

    summary_ttl_days: int = Field(default=7, ge=1, description="Sliding lifetime of a turn summary.")
    response_history_size: int = Field(default=5, ge=1, description="Delivered responses kept per user.")
    passive_window_minutes: int = Field(default=30, ge=1, description="Passive mode duration after handoff.")
    similarity_threshold: float = Field(default=0.75, gt=0.0, le=1.0, description="Near-duplicate threshold.")
    max_response_length: int = Field(default=500, ge=50, description="Character budget per response.")
    name_cooldown_turns: int = Field(default=5, ge=1, description="Turns between uses of the customer name.")

    timezone: str = Field(default="America/Sao_Paulo", description="Store local timezone.")
    weekday_open: str = Field(default="9", description="Weekday opening time (H or HH:MM).")
    weekday_close: str = Field(default="18", description="Weekday closing time (H or HH:MM).")
    saturday_open: str = Field(default="9", description="Saturday opening time.")
    saturday_close: str = Field(default="17", description="Saturday closing time.")
    sunday_open: str | None = Field(default=None, description="Sunday opening time. Closed when unset.")
    sunday_close: str | None = Field(default=None, description="Sunday closing time. Closed when unset.")
    hours_special_rules: List[SpecialHoursRule] = Field(
        default_factory=list,
        description="Hours exceptions as a JSON list of {label, description, active}.",
    )

    passive_responses: List[str] = Field(
        default_factory=list,
        description="Replies to acknowledgments right after a handoff. Built-in wording when empty.",
    )
    postpone_responses: List[str] = Field(default_factory=list, description="Replies when the customer postpones.")
    exit_responses: List[str] = Field(default_factory=list, description="Replies when the customer gives up.")
    greeting_responses: List[str] = Field(default_factory=list, description="Replies to a bare opening greeting.")

    frontend_origin: AnyHttpUrl | None = Field(
        default=None,
        description="Allowed dashboard origin (CORS). If omitted, defaults to localhost dev server.",
    )
    additional_origins: List[AnyHttpUrl] = Field(
        default_factory=list,
        description="Additional allowed CORS origins.",
    )

    @property
    def cors_origins(self) -> list[str]:
        """Return the deduplicated list of allowed CORS origins."""

        origins: list[str] = []
        if self.frontend_origin:
            origins.append(str(self.frontend_origin).rstrip("/"))
        else:
            origins.extend(["http://localhost:5173", "http://127.0.0.1:5173"])

        for origin in self.additional_origins:
            origins.append(str(origin).rstrip("/"))

        seen: set[str] = set()
        unique: list[str] = []
        for origin in origins:
            if origin not in seen:
                seen.add(origin)
                unique.append(origin)
        return unique

    @property
    def reasoner_enabled(self) -> bool:
        return bool(self.reasoner_api_key)

    @property
    def gateway_enabled(self) -> bool:
        return bool(self.gateway_url and self.gateway_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings instance."""

    return Settings()
