#!/usr/bin/env python3
"""
Scene Database Node

Holds segmented point clouds and object positions in memory and serves
them by object name.

Subscribes:
- /kcl_rosplan/add_point_cloud (SegmentedObject)
- /kcl_rosplan/remove_point_cloud (String)
- /kcl_rosplan/add_object_position (ObjectPosition)
- /kcl_rosplan/remove_object_position (String)

Services:
- /kcl_rosplan/get_point_cloud (PointCloudService)
- /kcl_rosplan/get_object_position (PositionService)
"""

import logging
import threading

import rospy
from geometry_msgs.msg import Point
from perception_msgs.msg import ObjectPosition, SegmentedObject
from planning_knowledge_msgs.srv import (
    PointCloudService,
    PointCloudServiceResponse,
    PositionService,
    PositionServiceResponse,
)
from sensor_msgs.msg import PointCloud2
from std_msgs.msg import String

import scene_registry
from ros_interfaces import route_module_logging
from scene_registry import SceneRegistry


class SceneDatabaseNode:
    def __init__(self):
        rospy.init_node('squirrel_scene_database', anonymous=False)
        route_module_logging([scene_registry.__name__], level=logging.DEBUG)

        prefix = rospy.get_param('~prefix', '/kcl_rosplan')

        self.registry = SceneRegistry(cloud_factory=PointCloud2, position_factory=Point)
        # rospy runs each subscription on its own thread
        self.lock = threading.Lock()

        self.get_cloud_srv = rospy.Service(prefix + '/get_point_cloud', PointCloudService, self.get_point_cloud)
        self.get_position_srv = rospy.Service(prefix + '/get_object_position', PositionService, self.get_position)

        self.add_cloud_sub = rospy.Subscriber(
            prefix + '/add_point_cloud', SegmentedObject, self.add_point_cloud, queue_size=1000)
        self.remove_cloud_sub = rospy.Subscriber(
            prefix + '/remove_point_cloud', String, self.remove_point_cloud, queue_size=1000)
        self.add_position_sub = rospy.Subscriber(
            prefix + '/add_object_position', ObjectPosition, self.add_position, queue_size=1000)
        self.remove_position_sub = rospy.Subscriber(
            prefix + '/remove_object_position', String, self.remove_position, queue_size=1000)

        rospy.on_shutdown(self.shutdown)
        rospy.loginfo("KCL: (SceneDatabase) Ready to receive")

    # Point clouds

    def add_point_cloud(self, msg):
        with self.lock:
            self.registry.add_point_cloud(msg.name, msg.segment)

    def remove_point_cloud(self, msg):
        with self.lock:
            self.registry.remove_point_cloud(msg.data)

    def get_point_cloud(self, req):
        with self.lock:
            if not self.registry.has_point_cloud(req.name):
                rospy.logdebug("KCL: (SceneDatabase) No point cloud stored for %s", req.name)
            return PointCloudServiceResponse(cloud=self.registry.get_point_cloud(req.name))

    # Positions

    def add_position(self, msg):
        with self.lock:
            self.registry.add_position(msg.name, msg.position)

    def remove_position(self, msg):
        with self.lock:
            self.registry.remove_position(msg.data)

    def get_position(self, req):
        with self.lock:
            if not self.registry.has_position(req.name):
                rospy.logdebug("KCL: (SceneDatabase) No position stored for %s", req.name)
            return PositionServiceResponse(position=self.registry.get_position(req.name))

    def shutdown(self):
        with self.lock:
            rospy.loginfo("KCL: (SceneDatabase) Dropping %d entries", len(self.registry))
            self.registry.clear()

    def run(self):
        rospy.spin()


def main():
    try:
        node = SceneDatabaseNode()
        node.run()
    except rospy.ROSInterruptException:
        pass


if __name__ == '__main__':
    main()
