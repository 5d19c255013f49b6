#!/usr/bin/env python3
"""
Scene Registry

In-process store of segmented point clouds and object positions, keyed by
object name. Last writer wins; removing an unknown name is a no-op; getting
an unknown name returns a fresh default value (an empty cloud / origin
point) without inserting it.

The registry holds no lock; the scene database node serialises access to it.
"""

import logging
from typing import Callable, Dict

from scene_types import Point, PointCloud

logger = logging.getLogger(__name__)


class SceneRegistry:
    """Name -> point cloud and name -> position maps."""

    def __init__(self,
                 cloud_factory: Callable[[], object] = PointCloud,
                 position_factory: Callable[[], object] = Point):
        """
        Args:
            cloud_factory: Builds the value returned for an unknown cloud
                (sensor_msgs/PointCloud2 under ROS).
            position_factory: Builds the value returned for an unknown
                position (geometry_msgs/Point under ROS).
        """
        self._cloud_factory = cloud_factory
        self._position_factory = position_factory
        self._clouds: Dict[str, object] = {}
        self._positions: Dict[str, object] = {}

    # Point clouds

    def add_point_cloud(self, name: str, cloud) -> None:
        self._clouds[name] = cloud

    def remove_point_cloud(self, name: str) -> None:
        if self._clouds.pop(name, None) is not None:
            logger.debug("Removed point cloud %s", name)

    def get_point_cloud(self, name: str):
        cloud = self._clouds.get(name)
        if cloud is None:
            return self._cloud_factory()
        return cloud

    def has_point_cloud(self, name: str) -> bool:
        return name in self._clouds

    # Positions

    def add_position(self, name: str, position) -> None:
        self._positions[name] = position

    def remove_position(self, name: str) -> None:
        if self._positions.pop(name, None) is not None:
            logger.debug("Removed position %s", name)

    def get_position(self, name: str):
        position = self._positions.get(name)
        if position is None:
            return self._position_factory()
        return position

    def has_position(self, name: str) -> bool:
        return name in self._positions

    def clear(self) -> None:
        self._clouds.clear()
        self._positions.clear()

    def __len__(self) -> int:
        return len(self._clouds) + len(self._positions)
