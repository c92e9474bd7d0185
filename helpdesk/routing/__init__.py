from helpdesk.routing.router import MessageRouter

__all__ = ["MessageRouter"]
