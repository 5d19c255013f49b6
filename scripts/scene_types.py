#!/usr/bin/env python3
"""
Plain value types with the same field layout as the ROS messages the
handlers read (geometry_msgs, sensor_msgs, squirrel_object_perception_msgs).

Handlers only use attribute access, so real messages and these dataclasses
are interchangeable. The dataclasses serve as default values in pure code
and as fixtures in tests.
"""

from dataclasses import dataclass, field
from typing import List


@dataclass
class Header:
    frame_id: str = ""
    stamp: float = 0.0


@dataclass
class Point:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass
class Quaternion:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    w: float = 1.0


@dataclass
class Pose:
    position: Point = field(default_factory=Point)
    orientation: Quaternion = field(default_factory=Quaternion)


@dataclass
class PoseStamped:
    header: Header = field(default_factory=Header)
    pose: Pose = field(default_factory=Pose)


@dataclass
class BoundingCylinder:
    diameter: float = 0.0
    height: float = 0.0


@dataclass
class SceneObject:
    id: str = ""
    category: str = ""
    header: Header = field(default_factory=Header)
    pose: Pose = field(default_factory=Pose)
    bounding_cylinder: BoundingCylinder = field(default_factory=BoundingCylinder)


@dataclass
class PointCloud:
    """Empty by default; callers treat an empty cloud as "not found"."""
    header: Header = field(default_factory=Header)
    height: int = 0
    width: int = 0
    data: bytes = b""
    fields: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return self.width * self.height == 0 and not self.data


def pose_stamped(x: float, y: float, z: float = 0.0, frame_id: str = "map") -> PoseStamped:
    ps = PoseStamped()
    ps.header.frame_id = frame_id
    ps.pose.position = Point(x, y, z)
    return ps
