"""Canned answers for frequent dealership questions.

The hours answer depends on the current local time and the configured
opening hours; everything else is fixed wording.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from zoneinfo import ZoneInfo

from dealerbot.guardrails.text import split_sentences
from dealerbot.planner.types import FAQAnswer, FAQCategory

TRADE_IN_EXCLUDED = [re.compile(p) for p in (r"aceita", r"troca", r"meu\s*carro", r"tenho\s*um")]

CATEGORY_PATTERNS: list[tuple[FAQCategory, list[re.Pattern[str]]]] = [
    (
        FAQCategory.FINANCING,
        [
            re.compile(p)
            for p in (
                r"financ", r"parcela", r"entrada\s*(m[ií]nima)?", r"consórcio", r"\bcdc\b",
                r"crédito", r"pode\s*parcelar", r"quantas\s*vezes", r"juros",
            )
        ],
    ),
    (
        FAQCategory.HOURS,
        [
            re.compile(p)
            for p in (
                r"hor[aá]rio", r"funciona", r"\babre", r"\bfecham?\b", r"aberto", r"abrimos",
                r"atend(e|em)\s*(até|quando|que horas)", r"que\s*horas", r"domingo", r"s[aá]bado", r"feriado",
            )
        ],
    ),
    (
        FAQCategory.LOCATION,
        [
            re.compile(p)
            for p in (
                r"endere[çc]o", r"onde\s*(fica|ficam|est[aá]|voc[eê]s)", r"(de\s+)?onde\s+(voc[eê]s\s+)?s[aã]o",
                r"localiza[çc][aã]o", r"como\s*chegar", r"\bmapa\b", r"\brua\b", r"\bbairro\b", r"\bcidade\b",
                r"qual\s*(a\s+)?(cidade|local|lugar)",
            )
        ],
    ),
    (
        FAQCategory.WARRANTY,
        [
            re.compile(p)
            for p in (
                r"garantia", r"procedência", r"vistoria", r"laudo", r"sinistro", r"hist[oó]rico",
                r"\bipva\b", r"\bmulta", r"documento", r"transfer[eê]ncia",
            )
        ],
    ),
    (
        FAQCategory.TEST_DRIVE,
        [
            re.compile(p)
            for p in (
                r"test\s*drive", r"experimentar", r"dirigir", r"testar", r"ver\s*(o\s*carro|pessoalmente)",
                r"visitar", r"conhecer\s*(a\s*loja|o\s*carro)",
            )
        ],
    ),
    (
        FAQCategory.PAYMENT,
        [
            re.compile(p)
            for p in (
                r"\bpix\b", r"cart[aã]o", r"boleto", r"forma\s*de\s*pagamento", r"como\s*(pagar|pago)",
                r"aceita(m)?\s*(cart[aã]o|pix)", r"d[ée]bito", r"cr[ée]dito",
            )
        ],
    ),
]

ASKS_SATURDAY = re.compile(r"s[aá]bado")
ASKS_SUNDAY = re.compile(r"domingo")
ASKS_TOMORROW = re.compile(r"amanh[aã]")
ASKS_WEEKDAY = re.compile(r"segunda|ter[cç]a|quarta|quinta|sexta|semana")

SATURDAY = 5
SUNDAY = 6


def format_time(value: str) -> str:
    """Render "9" as "9h", "09:30" as "9h30" and "18:00" as "18h"."""

    value = value.strip()
    if re.fullmatch(r"\d{1,2}", value):
        return f"{int(value)}h"
    if ":" in value:
        hours, minutes = value.split(":", 1)
        return f"{int(hours)}h{minutes}" if int(minutes or 0) > 0 else f"{int(hours)}h"
    return value


def to_minutes(value: str) -> int:
    hours, _, minutes = value.strip().partition(":")
    return int(hours) * 60 + int(minutes or 0)


@dataclass(slots=True)
class SpecialRule:
    label: str
    description: str
    active: bool = True


@dataclass(slots=True)
class StoreHours:
    """Opening hours in local time. A day without times is closed."""

    weekday_open: str = "9"
    weekday_close: str = "18"
    saturday_open: str = "9"
    saturday_close: str = "17"
    sunday_open: str | None = None
    sunday_close: str | None = None
    timezone: str = "America/Sao_Paulo"
    special_rules: list[SpecialRule] = field(default_factory=list)

    @property
    def sunday_closed(self) -> bool:
        return not (self.sunday_open and self.sunday_close)

    def local(self, now: datetime) -> datetime:
        return now.astimezone(ZoneInfo(self.timezone)) if now.tzinfo else now

    def opening_for(self, day: int) -> tuple[str, str] | None:
        if day == SATURDAY:
            return self.saturday_open, self.saturday_close
        if day == SUNDAY:
            return None if self.sunday_closed else (self.sunday_open, self.sunday_close)  # type: ignore[return-value]
        return self.weekday_open, self.weekday_close

    def is_open(self, now: datetime) -> bool:
        local = self.local(now)
        window = self.opening_for(local.weekday())
        if window is None:
            return False
        minute_of_day = local.hour * 60 + local.minute
        return to_minutes(window[0]) <= minute_of_day < to_minutes(window[1])


@dataclass(slots=True)
class FAQScripts:
    """Fixed answers for the non-hours categories."""

    financing: str = (
        "A gente trabalha com financiamento, com entrada a partir de 20% e parcelas em até 60x. "
        "A aprovação sai em média em 30 minutos e buscamos a melhor taxa entre vários bancos. "
        "Quer que um consultor faça uma simulação pra ti?"
    )
    location: str = (
        "A gente fica na {address}, bem fácil de achar. "
        "Quer vir dar uma olhada? Posso te ajudar a agendar uma visita."
    )
    warranty: str = (
        "Todos os carros passam por vistoria completa e vêm com laudo cautelar, sem sinistro e com documentação em dia. "
        "Ainda tem garantia de motor e câmbio por 3 meses. "
        "Ficou com dúvida sobre algum carro específico?"
    )
    test_drive: str = (
        "Claro, tu pode vir conhecer o carro e fazer um test drive, é só trazer a CNH válida. "
        "Vale agendar antes pra garantir que o carro tá disponível. "
        "Quer que eu te conecte com um consultor pra marcar?"
    )
    payment: str = (
        "A gente aceita dinheiro, PIX sem taxa, cartão de débito, transferência e financiamento. "
        "Só não fazemos parcelado direto no cartão de crédito. "
        "Qual forma tu prefere?"
    )


class FAQMatcher:
    """Pure matcher from message text (and the current time) to a canned answer."""

    def __init__(
        self,
        hours: StoreHours | None = None,
        scripts: FAQScripts | None = None,
        *,
        address: str = "Av. Principal, 1000 - Centro",
    ) -> None:
        self.hours = hours or StoreHours()
        self.scripts = scripts or FAQScripts()
        self.address = address

    def match(self, message: str, now: datetime) -> FAQAnswer | None:
        text = message.lower().strip()
        if any(pattern.search(text) for pattern in TRADE_IN_EXCLUDED):
            return None

        for category, patterns in CATEGORY_PATTERNS:
            if any(pattern.search(text) for pattern in patterns):
                return FAQAnswer(category=category, response=self._answer(category, text, now))
        return None

    def _answer(self, category: FAQCategory, text: str, now: datetime) -> str:
        if category is FAQCategory.HOURS:
            return build_hours_response(self.hours, text, now)
        if category is FAQCategory.LOCATION:
            return self.scripts.location.format(address=self.address)
        return getattr(self.scripts, category.value)


def build_hours_response(hours: StoreHours, text: str, now: datetime) -> str:
    """Pick the day-aware hours template and append active special rules."""

    response = _hours_template(hours, text.lower(), hours.local(now))
    active = [rule for rule in hours.special_rules if rule.active]
    if not active:
        return response

    notes = ", ".join(f"{rule.label}: {rule.description}" for rule in active)
    if not notes.endswith((".", "!")):
        notes += "."
    # Joined to the last statement so the answer keeps its sentence count.
    sentences = split_sentences(response)
    last = max(i for i, sentence in enumerate(sentences) if not sentence.endswith("?"))
    sentences[last] = f"{sentences[last].rstrip('.!')}, e só um detalhe: {notes}"
    return " ".join(sentences)


def _hours_template(hours: StoreHours, text: str, local: datetime) -> str:
    wk_open, wk_close = format_time(hours.weekday_open), format_time(hours.weekday_close)
    sat_open, sat_close = format_time(hours.saturday_open), format_time(hours.saturday_close)
    if hours.sunday_closed:
        sunday = "domingo fechado"
    else:
        sunday = f"domingo das {format_time(hours.sunday_open)} às {format_time(hours.sunday_close)}"

    if ASKS_SATURDAY.search(text):
        return f"No sábado a gente funciona das {sat_open} às {sat_close}. Quer agendar uma visita?"

    if ASKS_SUNDAY.search(text):
        if not hours.sunday_closed:
            return f"No {sunday}. Quer agendar uma visita?"
        return (
            f"No domingo a loja fica fechada. "
            f"Mas de segunda a sexta a gente abre das {wk_open} às {wk_close}, e sábado das {sat_open} às {sat_close}."
        )

    if ASKS_WEEKDAY.search(text):
        return (
            f"De segunda a sexta a gente abre das {wk_open} às {wk_close}. "
            f"No sábado das {sat_open} às {sat_close}, e {sunday}."
        )

    day = local.weekday()
    if ASKS_TOMORROW.search(text):
        tomorrow = (day + 1) % 7
        if tomorrow == SUNDAY and hours.sunday_closed:
            return f"Amanhã é domingo, então a loja vai estar fechada. Mas segunda a gente abre às {wk_open}!"
        if tomorrow == SUNDAY:
            return f"Amanhã, {sunday}. Quer vir dar uma olhada?"
        if tomorrow == SATURDAY:
            return f"Amanhã, sábado, a loja abre das {sat_open} às {sat_close}. Quer vir dar uma olhada?"
        return f"Amanhã a gente abre das {wk_open} às {wk_close}. Quer agendar uma visita?"

    if day == SUNDAY and hours.sunday_closed:
        return (
            f"Hoje é domingo, então a loja tá fechada. "
            f"Mas de segunda a sexta a gente abre das {wk_open} às {wk_close}, e sábado das {sat_open} às {sat_close}."
        )

    opening, closing = hours.opening_for(day) or ("0", "0")

    minute_of_day = local.hour * 60 + local.minute
    if minute_of_day < to_minutes(opening):
        return (
            f"Hoje a loja abre às {format_time(opening)} e vai até {format_time(closing)}. "
            "Já já a gente tá por aqui!"
        )
    if minute_of_day >= to_minutes(closing):
        reopen_day, next_open = _next_opening(hours, day)
        return f"Hoje a gente já fechou, mas {reopen_day} abrimos às {next_open} de novo. Quer deixar algo agendado?"
    return (
        f"A loja tá aberta agora, hoje a gente fica até as {format_time(closing)}. "
        f"No sábado a gente funciona das {sat_open} às {sat_close}, e {sunday}."
    )


def _next_opening(hours: StoreHours, day: int) -> tuple[str, str]:
    tomorrow = (day + 1) % 7
    if tomorrow == SATURDAY:
        return "amanhã", format_time(hours.saturday_open)
    if tomorrow == SUNDAY:
        if hours.sunday_closed:
            return "segunda", format_time(hours.weekday_open)
        return "amanhã", format_time(hours.sunday_open)
    return "amanhã", format_time(hours.weekday_open)
