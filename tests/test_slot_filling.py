"""Tests for the intent catalog and the slot manager."""

import pytest

from helpdesk.conversation.intents import (
    IntentAction,
    IntentCatalog,
    IntentDefinition,
)
from helpdesk.conversation.slot_manager import SlotManager


@pytest.fixture
def catalog():
    return IntentCatalog()


@pytest.fixture
def slot_manager(catalog):
    return SlotManager(catalog)


class TestSlotValidation:
    def test_device_normalized_from_sentence(self, slot_manager):
        ok, value, _ = slot_manager.validate("device_type", "a new Laptop please")
        assert ok is True
        assert value == "laptop"

    def test_unknown_device_rejected(self, slot_manager):
        ok, value, msg = slot_manager.validate("device_type", "toaster")
        assert ok is False
        assert value is None
        assert "device type" in msg

    def test_location_too_short(self, slot_manager):
        ok, _, msg = slot_manager.validate("printer_location", "x")
        assert ok is False
        assert msg == "That doesn't look like a valid printer location."

    def test_account_system_lowercased(self, slot_manager):
        ok, value, _ = slot_manager.validate("account_system", "  Outlook ")
        assert ok is True
        assert value == "outlook"

    def test_software_name_keeps_case(self, slot_manager):
        ok, value, _ = slot_manager.validate("software_name", " Visio ")
        assert ok is True
        assert value == "Visio"

    def test_unknown_slot_raises(self, slot_manager):
        with pytest.raises(ValueError, match="Unknown slot"):
            slot_manager.validate("shoe_size", "42")


class TestSlotTracking:
    def test_missing_slots_for_ticket_intent(self, slot_manager, catalog):
        printer = catalog.get("printer_issue")
        missing = slot_manager.missing_slots(printer, {})
        assert [s.name for s in missing] == ["printer_location"]

    def test_filled_context_has_nothing_missing(self, slot_manager, catalog):
        printer = catalog.get("printer_issue")
        assert slot_manager.get_next_missing_slot(printer, {"printer_location": "room 12"}) is None

    def test_intent_without_slots(self, slot_manager, catalog):
        assert slot_manager.missing_slots(catalog.get("vpn_access"), {}) == []

    def test_absorb_keeps_only_valid_entities(self, slot_manager):
        context = {}
        stored = slot_manager.absorb_entities(
            context, {"device_type": "monitor", "printer_location": "x"}
        )
        assert stored == ["device_type"]
        assert context == {"device_type": "monitor"}

    def test_absorb_passes_through_unknown_entities(self, slot_manager):
        context = {}
        slot_manager.absorb_entities(context, {"ticket_ref": "INC-42"})
        assert context == {"ticket_ref": "INC-42"}

    def test_retry_prompt_mentions_slot(self, slot_manager):
        prompt = slot_manager.prompt_for("software_name", retry=True)
        assert prompt.startswith("Sorry, I still need the software name.")
        assert slot_manager.prompt_for("software_name") == "Which application would you like installed?"


class TestIntentCatalog:
    def test_lookup(self, catalog):
        assert catalog.get("password_reset").action == IntentAction.KNOWLEDGE
        assert catalog.get("printer_issue").action == IntentAction.TICKET
        assert catalog.get("nonexistent") is None

    def test_extract_entities(self, catalog):
        entities = catalog.extract_entities("My laptop on Floor 3 can't reach the VPN")
        assert entities["device_type"].lower() == "laptop"
        assert entities["printer_location"] == "Floor 3"
        assert entities["account_system"] == "VPN"

    def test_extract_entities_none_found(self, catalog):
        assert catalog.extract_entities("it just doesn't work") == {}

    def test_intent_with_unknown_slot_rejected(self):
        bad = IntentDefinition(
            name="broken",
            display_name="broken",
            action=IntentAction.TICKET,
            keywords=("broken",),
            required_slots=("serial_number",),
        )
        with pytest.raises(ValueError, match="serial_number"):
            IntentCatalog(intents=[bad])
