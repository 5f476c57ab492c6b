"""Intent classification from accumulated slot state.

Classification never looks at the prompt text. It runs over the merged
conversation state, so an intent established on turn one survives turns
that only supply assignees or dates.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from .taxonomy import INTENT_RULES, Intent, IntentRule

logger = logging.getLogger(__name__)


class IntentClassifier:
    """Pick the most specific eligible rule for a slot state.

    A rule is eligible when all of its defining slots are non-empty (and
    its value constraints hold). Among eligible rules, the one with the
    most defining slots wins; ties keep table order.

    Example:
        >>> IntentClassifier().classify({"project": "Apollo", "issue_title": "Bug"})
        <Intent.CREATE_ISSUE: 'create_issue'>
    """

    def __init__(self, rules: Iterable[IntentRule] = INTENT_RULES) -> None:
        # Stable sort keeps table order among equally specific rules
        self.rules: list[IntentRule] = sorted(rules, key=lambda r: -r.specificity)

    def classify(self, state: Mapping[str, Any]) -> Intent:
        """Classify a merged slot state.

        Args:
            state: Canonical slot name -> value

        Returns:
            The winning intent, or Intent.UNKNOWN if no rule is eligible
        """
        for rule in self.rules:
            if rule.matches(state):
                logger.debug(f"Classified {sorted(state)} as {rule.intent.value}")
                return rule.intent
        return Intent.UNKNOWN

    def eligible(self, state: Mapping[str, Any]) -> list[Intent]:
        """Every intent whose rule is eligible, most specific first."""
        return [rule.intent for rule in self.rules if rule.matches(state)]


__all__ = ["IntentClassifier"]
