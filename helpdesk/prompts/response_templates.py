"""
Canned replies used by the dialog manager and handoff controller.

Kept in one place so wording can be tuned without touching dialog logic.
"""

CLASSIFIER_FALLBACK = (
    "Sorry, I'm having trouble understanding requests right now. "
    "Could you try again in a moment, or type 'talk to agent' to reach a person?"
)

NO_MATCH = (
    "Sorry, I didn't quite get that. Could you describe the problem in a "
    "different way? For example: 'reset my email password' or 'printer jammed'."
)

CONFIRM_INTENT = "Just to check: do you need help with {display_name}? (yes / no)"

REPHRASE = "No problem. Could you tell me a bit more about what you need?"

SLOT_REPHRASE = (
    "Sorry, I couldn't work that out just now. Could you rephrase the {display_name}?"
)

SLOT_INVALID = "{message} {prompt}"

KNOWLEDGE_ANSWER = "Here's what I found: {snippet} (source: {source_id})"

KNOWLEDGE_EMPTY = (
    "I couldn't find an article for that right now. "
    "Type 'talk to agent' if you'd like a person to help."
)

TICKET_CREATED = "I've logged ticket {ticket_id} for you: \"{title}\". The team will be in touch."

TICKET_QUEUED = (
    "I've recorded your request \"{title}\". Our ticketing system is busy, so "
    "the ticket will be created shortly and you'll receive the number by email."
)

HANDOFF_CONNECTED = (
    "I'm connecting you with a support agent now. "
    "You're number {position} in the queue."
)

HANDOFF_PENDING = (
    "I'm trying to reach a support agent for you. "
    "Your messages are being kept and an agent will pick them up shortly."
)

HANDOFF_FORWARDED = "Thanks, I've passed that on to the support agent."

YES_WORDS = ("yes", "yeah", "yep", "correct", "right", "sure", "y", "that's right", "exactly")
NO_WORDS = ("no", "nope", "nah", "wrong", "not really", "n", "that's not it")
