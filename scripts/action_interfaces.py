#!/usr/bin/env python3
"""
Collaborator interfaces for the SQUIRREL PDDL action handlers.

Handlers never talk to rospy directly. Each external subsystem they need
(knowledge base, message store, perception action servers, tf, the joint
PTP controller) is reached through one of the narrow classes below, so the
same handler code runs against the real robot (see ros_interfaces.py) or
against in-memory fakes.

Every call is blocking. A failed remote call raises CollaboratorError (or
KnowledgeBaseError for knowledge-base calls); an empty answer is not an
error.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class CollaboratorError(Exception):
    """A remote service/action call failed or the server was unreachable."""


class KnowledgeBaseError(CollaboratorError):
    """A knowledge-base update or query failed."""


class UpdateType(Enum):
    ADD_KNOWLEDGE = 0
    ADD_GOAL = 1
    REMOVE_KNOWLEDGE = 2
    REMOVE_GOAL = 3


class TransformFailure(Enum):
    TIMEOUT = "timeout"
    UNKNOWN_FRAME = "unknown_frame"


@dataclass
class TransformResult:
    """Planar robot pose in the map frame, or the reason the lookup failed."""
    x: float = 0.0
    y: float = 0.0
    failure: Optional[TransformFailure] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def failed(cls, failure: TransformFailure, message: str = "") -> "TransformResult":
        return cls(failure=failure, message=message)


@dataclass
class RecognitionOutcome:
    """Terminal result of a look-for / look-at perception goal."""
    succeeded: bool
    state_text: str = ""
    objects_added: list = field(default_factory=list)
    objects_updated: list = field(default_factory=list)
    used_wizard: bool = False

    @property
    def found(self) -> int:
        return len(self.objects_added) + len(self.objects_updated)


@dataclass
class DynamicObjects:
    added: list = field(default_factory=list)
    updated: list = field(default_factory=list)
    removed: list = field(default_factory=list)


class KnowledgeClient:
    """Instance and fact storage of the planning knowledge base."""

    def update(self, update_type: UpdateType, item) -> None:
        raise NotImplementedError

    def get_instances(self, type_name: str) -> List[str]:
        raise NotImplementedError

    def query(self, items: list) -> List[bool]:
        raise NotImplementedError

    def get_attribute(self, predicate_name: str) -> list:
        raise NotImplementedError


class ObjectStore:
    """Named record storage (poses, scene objects)."""

    def insert_named(self, name: str, record) -> str:
        raise NotImplementedError

    def query_named(self, name: str, record_type) -> list:
        raise NotImplementedError

    def delete_id(self, handle: str) -> None:
        raise NotImplementedError


class RecognitionServer:
    """A perception action server that reports added/updated scene objects."""

    def look_at(self, pose) -> RecognitionOutcome:
        raise NotImplementedError

    def look_for(self, object_id: str) -> RecognitionOutcome:
        raise NotImplementedError


class DynamicObjectFinder:
    def find(self) -> DynamicObjects:
        raise NotImplementedError


class RobotLocator:
    def locate(self) -> TransformResult:
        raise NotImplementedError


class JointMotionServer:
    """Point-to-point joint motion action server."""

    def send(self, positions: List[float]) -> None:
        raise NotImplementedError

    def wait_for_result(self, timeout: float) -> bool:
        raise NotImplementedError


class JointStateSource:
    def positions(self) -> List[float]:
        raise NotImplementedError
