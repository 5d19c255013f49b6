#!/usr/bin/env python3
"""
Nearest-entity selection in the map plane.

Distances are squared planar (x, y) distances; no square root is taken.
On ties the first candidate in input order wins.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from action_interfaces import CollaboratorError, KnowledgeClient, ObjectStore, RobotLocator

logger = logging.getLogger(__name__)

BOX_TYPE = "box"
BOX_LOCATION_SUFFIX = "_location"


@dataclass
class NearestResult:
    name: Optional[str] = None
    pose: object = None
    distance_sq: float = float("inf")
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.name is not None


def squared_planar_distance(a, b) -> float:
    """Squared x/y distance between two objects with ``.x`` and ``.y``."""
    dx = float(a.x) - float(b.x)
    dy = float(a.y) - float(b.y)
    return dx * dx + dy * dy


def planar_position(pose):
    """Position of a PoseStamped, Pose or Point."""
    if hasattr(pose, "pose"):
        pose = pose.pose
    if hasattr(pose, "position"):
        pose = pose.position
    return pose


def select_nearest(origin, candidates: Sequence[Tuple[str, object]]) -> NearestResult:
    """
    Pick the candidate closest to ``origin``.

    Args:
        origin: TransformResult (or anything with x/y). A failed
            TransformResult fails the selection.
        candidates: (name, pose) pairs; pose may be a PoseStamped, Pose or
            Point.
    """
    if not getattr(origin, "ok", True):
        return NearestResult(reason=f"robot pose unavailable ({origin.failure.value})")
    if not candidates:
        return NearestResult(reason="no candidates")

    positions = [planar_position(p) for _, p in candidates]
    xy = np.array([[float(p.x), float(p.y)] for p in positions], dtype=np.float64)
    delta = xy - np.array([float(origin.x), float(origin.y)], dtype=np.float64)
    dist_sq = np.einsum("ij,ij->i", delta, delta)
    # argmin returns the first index of the minimum
    best = int(np.argmin(dist_sq))
    name, pose = candidates[best]
    return NearestResult(name=name, pose=pose, distance_sq=float(dist_sq[best]))


def locate_closest_box(knowledge: KnowledgeClient, store: ObjectStore,
                       locator: RobotLocator, pose_type=None) -> NearestResult:
    """
    Closest ``box`` instance to the robot.

    Each box's pose is the record stored under ``<box>_location``. A failed
    transform, instance listing or store query, or a box without a stored
    location, fails the whole selection.
    """
    origin = locator.locate()
    if not origin.ok:
        logger.error("Could not find the transform between map and the robot: %s", origin.message)
        return NearestResult(reason=f"robot pose unavailable ({origin.failure.value})")

    try:
        boxes = knowledge.get_instances(BOX_TYPE)
    except CollaboratorError as e:
        logger.error("Failed to get all the box instances: %s", e)
        return NearestResult(reason="box instances unavailable")
    logger.info("Received %d box instances.", len(boxes))

    candidates = []
    for box in boxes:
        location = box + BOX_LOCATION_SUFFIX
        try:
            results = store.query_named(location, pose_type)
        except CollaboratorError as e:
            logger.error("Could not query message store to fetch box pose %s: %s", location, e)
            return NearestResult(reason=f"store query failed for {location}")
        if not results:
            logger.error("No stored pose for box %s", location)
            return NearestResult(reason=f"no stored pose for {location}")
        candidates.append((box, results[0]))

    nearest = select_nearest(origin, candidates)
    if nearest.ok:
        logger.info("Closest box is %s (d^2=%.3f).", nearest.name, nearest.distance_sq)
    return nearest
