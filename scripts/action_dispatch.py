#!/usr/bin/env python3
"""
Action dispatch primitives shared by the PDDL action nodes.

An ActionDispatch names a planner action and its bound parameters; the
node answers with ActionFeedback events keyed by the dispatch's action_id.
The dataclasses here mirror rosplan_dispatch_msgs/ActionDispatch so handlers
accept either.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

ACTION_ENABLED = "action enabled"
ACTION_ACHIEVED = "action achieved"
ACTION_FAILED = "action failed"


@dataclass
class KeyValue:
    key: str = ""
    value: str = ""


@dataclass
class ActionDispatch:
    name: str = ""
    action_id: int = 0
    parameters: List[KeyValue] = field(default_factory=list)


FeedbackSink = Callable[[int, str], None]


def get_parameter(msg, key: str) -> Optional[str]:
    """Value bound to ``key`` in a dispatch, or None. The last match wins."""
    value = None
    for kv in msg.parameters:
        if kv.key == key:
            value = kv.value
    return value


def require_parameters(msg, keys: Iterable[str]) -> Optional[Dict[str, str]]:
    """
    Collect required parameters from a dispatch.

    Returns None if any key is missing; the caller aborts silently in that
    case (no feedback is published).
    """
    found = {}
    for key in keys:
        value = get_parameter(msg, key)
        if value is None:
            return None
        found[key] = value
    return found


class DispatchRouter:
    """
    Routes a dispatch to at most one handler by action name.

    Unknown names are dropped. With ``normalise=True`` the name is
    lower-cased before lookup (and route keys are expected lower-case).
    """

    def __init__(self, routes: Dict[str, Callable], normalise: bool = False):
        self.normalise = normalise
        if normalise:
            routes = {name.lower(): handler for name, handler in routes.items()}
        self.routes = dict(routes)

    def route_name(self, name: str) -> str:
        return name.lower() if self.normalise else name

    def handler_for(self, name: str) -> Optional[Callable]:
        return self.routes.get(self.route_name(name))

    def dispatch(self, msg) -> bool:
        """Run the matching handler. Returns True if one fired."""
        handler = self.handler_for(msg.name)
        if handler is None:
            return False
        handler(msg)
        return True
