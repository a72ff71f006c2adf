"""Loading of the reply template document and the keyword rule table."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from src.config import ConfigError
from src.models import IntentRule, TemplateCatalog


def _read_json(path_str: str, what: str) -> Any:
    path = Path(path_str)
    if not path.exists():
        raise ConfigError(f"{what} file not found: {path_str}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Unreadable {what} file {path_str}: {e}") from e


def load_templates(templates_path: str) -> TemplateCatalog:
    raw = _read_json(templates_path, "Templates")
    try:
        return TemplateCatalog.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid templates in {templates_path}: {e}") from e


def load_rules(rules_path: str, catalog: TemplateCatalog) -> list[IntentRule]:
    """Load the ordered keyword rules and check each maps to a template.

    Order in the file is evaluation order.
    """
    raw = _read_json(rules_path, "Intent rules")
    if not isinstance(raw, list):
        raise ConfigError(f"Intent rules in {rules_path} must be a JSON list")
    try:
        rules = [IntentRule.model_validate(r) for r in raw]
    except ValidationError as e:
        raise ConfigError(f"Invalid intent rule in {rules_path}: {e}") from e

    unknown = sorted({r.intent for r in rules} - set(catalog.intents))
    if unknown:
        raise ConfigError(f"Intent rules reference undefined templates: {unknown}")
    return rules
