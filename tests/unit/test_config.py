from dealerbot.core.config import Settings
from dealerbot.main import rule_responses
from dealerbot.planner.rules import RuleResponses


def test_special_hours_rules_are_read_from_the_environment(monkeypatch):
    monkeypatch.setenv(
        "HOURS_SPECIAL_RULES",
        '[{"label": "Feriado", "description": "dia 15 fechado"}, {"label": "Reforma", "description": "x", "active": false}]',
    )

    rules = Settings(_env_file=None).hours_special_rules

    assert [(rule.label, rule.active) for rule in rules] == [("Feriado", True), ("Reforma", False)]


def test_only_configured_rule_wording_is_replaced(monkeypatch):
    monkeypatch.setenv("EXIT_RESPONSES", '["Sem problema, até mais!"]')

    responses = rule_responses(Settings(_env_file=None))

    assert responses.exit == ["Sem problema, até mais!"]
    assert responses.greeting == RuleResponses().greeting
