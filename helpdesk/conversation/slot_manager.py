"""
Slot-filling manager: Collect -> Validate -> Store in session context.

Slot values live in ``Session.context`` for the lifetime of the session,
so a value resolved for one intent is reused by any later intent that
needs the same slot.

Usage:
    manager = SlotManager(IntentCatalog())
    ok, value, msg = manager.validate("device_type", "a new Laptop please")
    if ok:
        session.context["device_type"] = value
"""

import logging
from typing import Any, Mapping, MutableMapping, Optional

from helpdesk.conversation.intents import IntentCatalog, IntentDefinition, SlotDefinition

logger = logging.getLogger(__name__)


class SlotManager:
    """Validates slot values and reports what an intent still needs."""

    def __init__(self, catalog: IntentCatalog) -> None:
        self._catalog = catalog

    def validate(self, name: str, raw_value: str) -> tuple[bool, Optional[str], str]:
        """
        Validate and normalise a slot value.

        Returns:
            (success, normalized_value, message)
        """
        defn = self._catalog.slot(name)
        if defn.validator and not defn.validator(raw_value):
            logger.debug("Slot '%s' validation failed: '%s'", name, raw_value)
            return False, None, f"That doesn't look like a valid {defn.display_name}."
        normalized = defn.normalizer(raw_value) if defn.normalizer else raw_value.strip()
        logger.debug("Slot '%s' set to '%s'", name, normalized)
        return True, normalized, f"Got {defn.display_name}: {normalized}"

    def absorb_entities(
        self, context: MutableMapping[str, Any], entities: Mapping[str, str]
    ) -> list[str]:
        """Copy valid classifier entities into the session context."""
        stored = []
        for name, raw in entities.items():
            try:
                ok, value, _ = self.validate(name, raw)
            except ValueError:
                context[name] = raw
                stored.append(name)
                continue
            if ok:
                context[name] = value
                stored.append(name)
        return stored

    def missing_slots(
        self, intent: IntentDefinition, context: Mapping[str, Any]
    ) -> list[SlotDefinition]:
        """Get all required slots still unfilled for an intent."""
        return [
            self._catalog.slot(name)
            for name in intent.required_slots
            if not context.get(name)
        ]

    def get_next_missing_slot(
        self, intent: IntentDefinition, context: Mapping[str, Any]
    ) -> Optional[SlotDefinition]:
        missing = self.missing_slots(intent, context)
        return missing[0] if missing else None

    def prompt_for(self, name: str, retry: bool = False) -> str:
        defn = self._catalog.slot(name)
        if retry:
            return f"Sorry, I still need the {defn.display_name}. {defn.prompt}"
        return defn.prompt
