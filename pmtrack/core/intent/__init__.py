"""Intent resolution for pmtrack quick updates.

Users never name an intent. Slots are extracted from each prompt, merged
into the conversation state, and the intent is inferred from which slots
are present:

- EntityExtractor: ordered regex strategies per slot
- LLMEntityExtractor: same output, produced by an inference backend
- IntentClassifier: specificity-ordered defining-slot table

Example usage:
    ```python
    from pmtrack.core.intent import IntentClassifier, extract_entities

    slots = extract_entities("Create an issue called API Bug in Zephyr Migration")
    assert slots["issue_title"] == "API Bug"

    intent = IntentClassifier().classify(slots)
    assert intent == Intent.CREATE_ISSUE
    ```
"""

from .classifier import IntentClassifier
from .entities import (
    EntityExtractor,
    ExtractedEntities,
    extract_entities,
)
from .llm import LLMEntityExtractor
from .taxonomy import (
    INTENT_RULES,
    REQUIRED_FIELDS,
    SLOT_ALIASES,
    SLOTS,
    ConversationState,
    Intent,
    IntentRule,
    TurnResult,
    canonical_slot,
    canonicalize,
    missing_fields,
)

__all__ = [
    # Classification
    "IntentClassifier",
    # Taxonomy
    "Intent",
    "IntentRule",
    "ConversationState",
    "TurnResult",
    "INTENT_RULES",
    "REQUIRED_FIELDS",
    "SLOTS",
    "SLOT_ALIASES",
    "canonical_slot",
    "canonicalize",
    "missing_fields",
    # Entity extraction
    "EntityExtractor",
    "ExtractedEntities",
    "extract_entities",
    "LLMEntityExtractor",
]
