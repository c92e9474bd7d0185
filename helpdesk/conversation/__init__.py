from helpdesk.conversation.intents import IntentAction, IntentCatalog, IntentDefinition, SlotDefinition
from helpdesk.conversation.slot_manager import SlotManager
from helpdesk.conversation.state_machine import DialogStateMachine, TransitionTrigger

__all__ = [
    "DialogStateMachine",
    "TransitionTrigger",
    "IntentAction",
    "IntentCatalog",
    "IntentDefinition",
    "SlotDefinition",
    "SlotManager",
]
