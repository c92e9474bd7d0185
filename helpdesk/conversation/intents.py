"""Help desk intent catalog with required slots and fulfilment actions."""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from helpdesk.schemas.connector_schema import TicketPriority

logger = logging.getLogger(__name__)

MIN_TEXT_SLOT_LENGTH = 2
MIN_LOCATION_LENGTH = 3

DEVICE_TYPES = (
    "laptop", "monitor", "keyboard", "mouse", "headset",
    "docking station", "phone", "webcam",
)
ACCOUNT_SYSTEMS = ("email", "outlook", "vpn", "windows", "sap", "salesforce", "wifi")


class IntentAction(str, Enum):
    KNOWLEDGE = "knowledge"
    TICKET = "ticket"
    ANSWER = "answer"


def _validate_text(value: str) -> bool:
    return len(value.strip()) >= MIN_TEXT_SLOT_LENGTH


def _validate_location(value: str) -> bool:
    return len(value.strip()) >= MIN_LOCATION_LENGTH


def _validate_device(value: str) -> bool:
    normalized = value.lower().strip()
    return any(device in normalized for device in DEVICE_TYPES)


def _normalize_device(value: str) -> str:
    normalized = value.lower().strip()
    for device in DEVICE_TYPES:
        if device in normalized:
            return device
    return normalized


@dataclass(frozen=True)
class SlotDefinition:
    """Schema for a single slot to collect."""

    name: str
    display_name: str
    prompt: str
    validator: Optional[Callable[[str], bool]] = None
    normalizer: Optional[Callable[[str], str]] = None
    pattern: Optional[str] = None


@dataclass(frozen=True)
class IntentDefinition:
    """One thing the bot knows how to help with."""

    name: str
    display_name: str
    action: IntentAction
    keywords: tuple[str, ...]
    required_slots: tuple[str, ...] = ()
    answer: str = ""
    ticket_title: str = ""
    ticket_priority: TicketPriority = TicketPriority.NORMAL
    knowledge_query: str = ""


SLOT_DEFINITIONS: dict[str, SlotDefinition] = {
    "account_system": SlotDefinition(
        name="account_system",
        display_name="system or account",
        prompt="Which system is the password for (for example email, VPN or Windows)?",
        validator=_validate_text,
        normalizer=lambda v: v.strip().lower(),
        pattern=r"\b(" + "|".join(ACCOUNT_SYSTEMS) + r")\b",
    ),
    "printer_location": SlotDefinition(
        name="printer_location",
        display_name="printer location",
        prompt="Where is the printer located (floor, room or office)?",
        validator=_validate_location,
        normalizer=lambda v: v.strip(),
        pattern=r"\b((?:floor|level|room)\s+\w+)\b",
    ),
    "device_type": SlotDefinition(
        name="device_type",
        display_name="device type",
        prompt="What kind of device do you need (laptop, monitor, headset, ...)?",
        validator=_validate_device,
        normalizer=_normalize_device,
        pattern=r"\b(" + "|".join(DEVICE_TYPES) + r")\b",
    ),
    "software_name": SlotDefinition(
        name="software_name",
        display_name="software name",
        prompt="Which application would you like installed?",
        validator=_validate_text,
        normalizer=lambda v: v.strip(),
    ),
}


INTENT_DEFINITIONS: list[IntentDefinition] = [
    IntentDefinition(
        name="password_reset",
        display_name="resetting a password",
        action=IntentAction.KNOWLEDGE,
        keywords=("password", "reset", "locked out", "forgot", "unlock", "expired"),
        required_slots=("account_system",),
        knowledge_query="reset {account_system} password",
    ),
    IntentDefinition(
        name="vpn_access",
        display_name="connecting to the VPN",
        action=IntentAction.KNOWLEDGE,
        keywords=("vpn", "remote access", "work from home", "cannot connect"),
        knowledge_query="vpn connection",
    ),
    IntentDefinition(
        name="printer_issue",
        display_name="a printer problem",
        action=IntentAction.TICKET,
        keywords=("printer", "print", "printing", "toner", "paper jam"),
        required_slots=("printer_location",),
        ticket_title="Printer problem at {printer_location}",
    ),
    IntentDefinition(
        name="hardware_request",
        display_name="requesting new hardware",
        action=IntentAction.TICKET,
        keywords=("replace", "replacement", "broken") + DEVICE_TYPES,
        required_slots=("device_type",),
        ticket_title="Hardware request: {device_type}",
        ticket_priority=TicketPriority.LOW,
    ),
    IntentDefinition(
        name="software_install",
        display_name="installing software",
        action=IntentAction.TICKET,
        keywords=("install", "software", "license", "application", "app"),
        required_slots=("software_name",),
        ticket_title="Software install: {software_name}",
    ),
    IntentDefinition(
        name="greeting",
        display_name="saying hello",
        action=IntentAction.ANSWER,
        keywords=("hello", "hi", "hey", "good morning", "good afternoon"),
        answer="Hi! I'm the help desk assistant. What can I help you with today?",
    ),
    IntentDefinition(
        name="thanks",
        display_name="saying thanks",
        action=IntentAction.ANSWER,
        keywords=("thanks", "thank you", "cheers", "that's all"),
        answer="You're welcome! Message me any time you need IT help.",
    ),
]


class IntentCatalog:
    """Lookup of intent and slot definitions by name."""

    def __init__(
        self,
        intents: Optional[list[IntentDefinition]] = None,
        slots: Optional[dict[str, SlotDefinition]] = None,
    ) -> None:
        self._intents = {i.name: i for i in (intents or INTENT_DEFINITIONS)}
        self._slots = dict(slots or SLOT_DEFINITIONS)
        for intent in self._intents.values():
            unknown = [s for s in intent.required_slots if s not in self._slots]
            if unknown:
                raise ValueError(f"Intent '{intent.name}' requires unknown slots: {unknown}")

    def get(self, name: str) -> Optional[IntentDefinition]:
        return self._intents.get(name)

    def slot(self, name: str) -> SlotDefinition:
        try:
            return self._slots[name]
        except KeyError:
            raise ValueError(f"Unknown slot: {name}") from None

    def intents(self) -> list[IntentDefinition]:
        return list(self._intents.values())

    def slots(self) -> list[SlotDefinition]:
        return list(self._slots.values())

    def extract_entities(self, text: str) -> dict[str, str]:
        """Pull slot values out of free text using each slot's pattern."""
        entities: dict[str, str] = {}
        for slot in self._slots.values():
            if not slot.pattern:
                continue
            match = re.search(slot.pattern, text, re.IGNORECASE)
            if match:
                entities[slot.name] = match.group(1)
        return entities
