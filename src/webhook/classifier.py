"""Keyword intent classification for inbound message text.

Rules are evaluated top to bottom and the first rule with any keyword
contained in the normalized text wins. Text matching no rule gets the
catalog's fallback intent.
"""

from __future__ import annotations

import re

from src.models import IntentRule, TemplateCatalog
from src.webhook.models import Classification

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


class KeywordClassifier:
    """Maps free text to a reply using an ordered keyword table."""

    def __init__(self, rules: list[IntentRule], catalog: TemplateCatalog) -> None:
        self._rules = list(rules)
        self._catalog = catalog
        self._placeholders = dict(catalog.placeholders)

    @property
    def rules(self) -> list[IntentRule]:
        return list(self._rules)

    def classify(self, text: str) -> Classification:
        normalized = text.strip().lower()
        matched = next(
            (r for r in self._rules if any(k in normalized for k in r.keywords)),
            None,
        )
        intent = matched.intent if matched else self._catalog.fallback_intent
        template = self._catalog.intents[intent]
        return Classification(
            intent=intent,
            reply=self.render(template.message),
            reaction=template.reaction,
            notify_operator=matched.notify_operator if matched else False,
        )

    def render(self, body: str) -> str:
        """Replace every ``{{name}}`` placeholder with its configured value.

        Tokens with no configured value are left as written.
        """
        return _PLACEHOLDER.sub(
            lambda m: self._placeholders.get(m.group(1), m.group(0)), body,
        )

    def unsupported_type_reply(self) -> str:
        return self.render(self._catalog.errors.unsupported_type)

    def general_error_reply(self) -> str:
        return self.render(self._catalog.errors.general_error)
