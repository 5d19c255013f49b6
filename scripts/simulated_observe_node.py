#!/usr/bin/env python3
"""
Simulated Observe Node

Answers the planner's observation actions during simulated runs without
any perception. See simulated_observe.py for the handled actions.
"""

import rospy
from geometry_msgs.msg import PoseStamped
from rosplan_dispatch_msgs.msg import ActionDispatch
from squirrel_object_perception_msgs.msg import SceneObject

import knowledge_facts
import nearest_entity
import simulated_observe
from action_interfaces import KnowledgeBaseError
from ros_interfaces import (
    KB_PREFIX,
    FeedbackPublisher,
    MessageStoreObjectStore,
    RosKnowledgeClient,
    TfRobotLocator,
    route_module_logging,
)
from simulated_observe import SimulatedObserveActions


class SimulatedObserveNode:
    def __init__(self):
        rospy.init_node('rpsquirrel_simulated_observe', anonymous=False)
        route_module_logging([simulated_observe.__name__, knowledge_facts.__name__, nearest_entity.__name__])

        self.sort_for = rospy.get_param('sort_for', 3)
        self.box_proximity = rospy.get_param('~box_proximity', 1.5)
        self.map_frame = rospy.get_param('~map_frame', 'map')
        self.robot_frame = rospy.get_param('~robot_frame', 'base_link')
        self.transform_timeout = rospy.get_param('~transform_timeout', 1.0)

        self.actions = SimulatedObserveActions(
            RosKnowledgeClient(KB_PREFIX),
            MessageStoreObjectStore(),
            TfRobotLocator(self.map_frame, self.robot_frame, self.transform_timeout),
            FeedbackPublisher(KB_PREFIX + '/action_feedback'),
            sort_for=self.sort_for,
            box_proximity=self.box_proximity,
            pose_type=PoseStamped,
            scene_object_type=SceneObject,
        )

        self.dispatch_sub = rospy.Subscriber(
            KB_PREFIX + '/action_dispatch', ActionDispatch, self.dispatch_callback, queue_size=1000)

        rospy.loginfo("KCL: (SimulatedObserve) Ready to receive (sort_for=%d)", self.sort_for)

    def dispatch_callback(self, msg):
        try:
            self.actions.dispatch_callback(msg)
        except KnowledgeBaseError as e:
            rospy.logfatal("KCL: (SimulatedObserve) Knowledge base failure during %s: %s", msg.name, e)
            rospy.signal_shutdown("knowledge base failure")

    def run(self):
        rospy.spin()


def main():
    try:
        node = SimulatedObserveNode()
        node.run()
    except rospy.ROSInterruptException:
        pass


if __name__ == '__main__':
    main()
