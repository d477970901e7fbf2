#!/usr/bin/env python
"""Export the FastAPI OpenAPI schema to dealerbot/openapi.yaml."""

from __future__ import annotations

from pathlib import Path

import yaml

from dealerbot.core.config import get_settings
from dealerbot.main import build_services, create_app
from dealerbot.memory.store import InMemoryKeyValueStore


def main() -> None:
    repo_root = Path(__file__).resolve().parent.parent
    output_path = repo_root / "dealerbot" / "openapi.yaml"

    settings = get_settings()
    # Schema generation only; keep the configured SQLite file untouched.
    app = create_app(settings, build_services(settings, store=InMemoryKeyValueStore()))

    schema = app.openapi()
    output_path.write_text(yaml.dump(schema, sort_keys=False, allow_unicode=True), encoding="utf-8")
    print(f"Wrote {output_path.relative_to(repo_root)}")


if __name__ == "__main__":
    main()
