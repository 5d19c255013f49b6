#!/usr/bin/env python3
"""
Perception Action Node

ROSPlan action interface for the SQUIRREL perception actions. Listens on
/kcl_rosplan/action_dispatch and answers on /kcl_rosplan/action_feedback.
The handlers themselves live in perception_actions.py.

A knowledge-base failure while recording a classification leaves the
planner's state unknown, so the node logs it as fatal and shuts down.
"""

import rospy
from geometry_msgs.msg import PoseStamped
from rosplan_dispatch_msgs.msg import ActionDispatch
from squirrel_object_perception_msgs.msg import (
    LookForObjectsAction,
    LookForObjectsGoal,
    RecognizeObjectsAction,
    RecognizeObjectsGoal,
)

import action_dispatch
import arm_motion
import knowledge_facts
import nearest_entity
import perception_actions
from action_interfaces import KnowledgeBaseError
from arm_motion import ArmPoser
from perception_actions import PerceptionActions
from ros_interfaces import (
    KB_PREFIX,
    ActionlibRecognitionServer,
    DynamicObjectFinderService,
    FeedbackPublisher,
    JointStateListener,
    MessageStoreObjectStore,
    PtpMotionServer,
    RosKnowledgeClient,
    TfRobotLocator,
    route_module_logging,
)


class PerceptionActionNode:
    def __init__(self):
        rospy.init_node('rosplan_interface_perception', anonymous=False)
        route_module_logging([
            perception_actions.__name__,
            knowledge_facts.__name__,
            nearest_entity.__name__,
            arm_motion.__name__,
            action_dispatch.__name__,
        ])

        # Parameters
        self.action_server = rospy.get_param('action_server', '/squirrel_look_for_objects_in_hand')
        self.recognise_server = rospy.get_param('recognise_server', '/squirrel_recognize_objects')
        self.ptp_server = rospy.get_param('~ptp_server', '/joint_ptp')
        self.joint_state_topic = rospy.get_param('~joint_state_topic', '/real/robotino/joint_control/get_state')
        self.map_frame = rospy.get_param('~map_frame', 'map')
        self.robot_frame = rospy.get_param('~robot_frame', 'base_link')
        self.transform_timeout = rospy.get_param('~transform_timeout', 1.0)
        self.tolerance = rospy.get_param('~arm/tolerance', 0.05)
        self.poll_rate = rospy.get_param('~arm/poll_rate', 1.0)
        self.result_timeout = rospy.get_param('~arm/result_timeout', 30.0)
        self.convergence_timeout = rospy.get_param('~arm/convergence_timeout', 0.0)

        # Collaborators
        self.knowledge = RosKnowledgeClient(KB_PREFIX)
        self.store = MessageStoreObjectStore()
        self.examiner = ActionlibRecognitionServer(self.action_server, LookForObjectsAction, LookForObjectsGoal)
        self.recogniser = ActionlibRecognitionServer(
            self.recognise_server, RecognizeObjectsAction, RecognizeObjectsGoal)
        self.finder = DynamicObjectFinderService()
        self.locator = TfRobotLocator(self.map_frame, self.robot_frame, self.transform_timeout)
        self.ptp = PtpMotionServer(self.ptp_server)
        self.joints = JointStateListener(self.joint_state_topic)
        self.feedback = FeedbackPublisher(KB_PREFIX + '/action_feedback')

        self.examiner.wait_for_server()
        self.recogniser.wait_for_server()
        self.ptp.wait_for_server()

        self.arm = ArmPoser(
            self.ptp,
            self.joints,
            tolerance=self.tolerance,
            poll_rate=self.poll_rate,
            result_timeout=self.result_timeout,
            convergence_timeout=self.convergence_timeout,
            sleep=rospy.sleep,
            is_shutdown=rospy.is_shutdown,
        )

        self.actions = PerceptionActions(
            self.knowledge,
            self.store,
            self.examiner,
            self.recogniser,
            self.finder,
            self.locator,
            self.arm,
            self.feedback,
            clock=rospy.Time.now,
            pose_type=PoseStamped,
            map_frame='/' + self.map_frame.lstrip('/'),
        )

        # single subscriber thread, so dispatches are handled one at a time
        self.dispatch_sub = rospy.Subscriber(
            KB_PREFIX + '/action_dispatch', ActionDispatch, self.dispatch_callback, queue_size=1000)

        rospy.loginfo("KCL: (PerceptionAction) Ready to receive")

    def dispatch_callback(self, msg):
        try:
            self.actions.dispatch_callback(msg)
        except KnowledgeBaseError as e:
            rospy.logfatal("KCL: (PerceptionAction) Knowledge base failure during %s: %s", msg.name, e)
            rospy.signal_shutdown("knowledge base failure")

    def run(self):
        rospy.spin()


def main():
    try:
        node = PerceptionActionNode()
        node.run()
    except rospy.ROSInterruptException:
        pass


if __name__ == '__main__':
    main()
