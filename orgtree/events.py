"""Post-commit notifications for organization mutations"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Type

logger = logging.getLogger(__name__)


@dataclass
class OrganizationCreated:
    organization: Any


@dataclass
class OrganizationUpdated:
    organization: Any
    changes: Dict[str, Any]


@dataclass
class OrganizationDeleted:
    organization: Any


@dataclass
class ManagerAssigned:
    """A user received a role (or primary management) in an organization"""
    organization: Any
    user: Any
    role: str


@dataclass
class ManagerRemoved:
    """A user lost a role ('all' when every role was removed)"""
    organization: Any
    user: Any
    role: str


Handler = Callable[[Any], None]


class EventDispatcher:
    """
    Synchronous observer registry.

    The service dispatches only after its transaction has committed, so a
    handler failure is logged and never undoes the write.
    """

    def __init__(self):
        self._handlers: Dict[Type, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type, handler: Handler) -> None:
        """Register a handler for an event type"""
        self._handlers[event_type].append(handler)

    def dispatch(self, event: Any) -> None:
        """Invoke every handler registered for the event's type"""
        for handler in self._handlers.get(type(event), []):
            try:
                handler(event)
            except Exception:
                logger.exception(
                    f"Event handler {getattr(handler, '__name__', handler)} failed for {type(event).__name__}"
                )


# Application-wide dispatcher used by the API layer
event_dispatcher = EventDispatcher()
