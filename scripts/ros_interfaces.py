#!/usr/bin/env python3
"""
ROS implementations of the collaborator interfaces in action_interfaces.py.

- RosKnowledgeClient         rosplan knowledge base services
- MessageStoreObjectStore    mongodb_store message store
- ActionlibRecognitionServer squirrel look-for / recognise action servers
- DynamicObjectFinderService /squirrel_find_dynamic_objects
- TfRobotLocator             map -> base_link through tf2
- PtpMotionServer            /joint_ptp action server
- JointStateListener         latest arm joint state
- FeedbackPublisher          /kcl_rosplan/action_feedback

Transport errors are converted to CollaboratorError / KnowledgeBaseError.
"""

import logging
from threading import Lock
from typing import Iterable, List

import actionlib
import rospy
import tf2_ros
from actionlib_msgs.msg import GoalStatus
from diagnostic_msgs.msg import KeyValue as KeyValueMsg
from mongodb_store.message_store import MessageStoreProxy
from rosplan_dispatch_msgs.msg import ActionFeedback
from rosplan_knowledge_msgs.msg import KnowledgeItem as KnowledgeItemMsg
from rosplan_knowledge_msgs.srv import (
    GetAttributeService,
    GetInstanceService,
    KnowledgeQueryService,
    KnowledgeUpdateService,
)
from sensor_msgs.msg import JointState
from squirrel_manipulation_msgs.msg import JointPtpAction, JointPtpGoal
from squirrel_object_perception_msgs.srv import FindDynamicObjects
from std_msgs.msg import Float64MultiArray

from action_interfaces import (
    CollaboratorError,
    DynamicObjectFinder,
    DynamicObjects,
    JointMotionServer,
    JointStateSource,
    KnowledgeBaseError,
    KnowledgeClient,
    ObjectStore,
    RecognitionOutcome,
    RecognitionServer,
    RobotLocator,
    TransformFailure,
    TransformResult,
)

KB_PREFIX = "/kcl_rosplan"

_GOAL_STATE_NAMES = {
    value: name for name, value in vars(GoalStatus).items()
    if name.isupper() and isinstance(value, int)
}


def route_module_logging(names: Iterable[str], level: int = logging.INFO) -> None:
    """
    Send records from the pure (rospy-free) modules to rosout.

    Must be called after rospy.init_node, which installs the rosout handlers.
    """
    rosout = logging.getLogger("rosout")
    for name in names:
        log = logging.getLogger(name)
        log.setLevel(level)
        for handler in rosout.handlers:
            if handler not in log.handlers:
                log.addHandler(handler)
        log.propagate = False


def to_knowledge_msg(item) -> KnowledgeItemMsg:
    msg = KnowledgeItemMsg()
    msg.knowledge_type = item.knowledge_type
    msg.instance_type = item.instance_type
    msg.instance_name = item.instance_name
    msg.attribute_name = item.attribute_name
    msg.values = [KeyValueMsg(key=kv.key, value=kv.value) for kv in item.values]
    msg.is_negative = item.is_negative
    return msg


class RosKnowledgeClient(KnowledgeClient):
    def __init__(self, prefix: str = KB_PREFIX):
        self._update = rospy.ServiceProxy(prefix + "/update_knowledge_base", KnowledgeUpdateService)
        self._instances = rospy.ServiceProxy(prefix + "/get_current_instances", GetInstanceService)
        self._query = rospy.ServiceProxy(prefix + "/query_knowledge_base", KnowledgeQueryService)
        self._attribute = rospy.ServiceProxy(prefix + "/get_current_knowledge", GetAttributeService)

    def update(self, update_type, item) -> None:
        try:
            self._update(update_type=update_type.value, knowledge=to_knowledge_msg(item))
        except rospy.ServiceException as e:
            raise KnowledgeBaseError(f"update_knowledge_base failed: {e}") from e

    def get_instances(self, type_name: str) -> List[str]:
        try:
            resp = self._instances(type_name=type_name)
        except rospy.ServiceException as e:
            raise KnowledgeBaseError(f"get_current_instances({type_name}) failed: {e}") from e
        return list(resp.instances)

    def query(self, items: list) -> List[bool]:
        try:
            resp = self._query(knowledge=[to_knowledge_msg(i) for i in items])
        except rospy.ServiceException as e:
            raise KnowledgeBaseError(f"query_knowledge_base failed: {e}") from e
        return [bool(r) for r in resp.results]

    def get_attribute(self, predicate_name: str) -> list:
        try:
            resp = self._attribute(predicate_name=predicate_name)
        except rospy.ServiceException as e:
            raise KnowledgeBaseError(f"get_current_knowledge({predicate_name}) failed: {e}") from e
        return list(resp.attributes)


class MessageStoreObjectStore(ObjectStore):
    def __init__(self, database: str = "message_store", collection: str = "message_store"):
        self._proxy = MessageStoreProxy(database=database, collection=collection)

    def insert_named(self, name: str, record) -> str:
        try:
            return self._proxy.insert_named(name, record)
        except rospy.ServiceException as e:
            raise CollaboratorError(f"message store insert of {name} failed: {e}") from e

    def query_named(self, name: str, record_type) -> list:
        try:
            results = self._proxy.query_named(name, record_type._type, single=False)
        except rospy.ServiceException as e:
            raise CollaboratorError(f"message store query of {name} failed: {e}") from e
        return [msg for msg, _meta in results]

    def delete_id(self, handle: str) -> None:
        try:
            self._proxy.delete(handle)
        except rospy.ServiceException as e:
            raise CollaboratorError(f"message store delete of {handle} failed: {e}") from e


class ActionlibRecognitionServer(RecognitionServer):
    """
    A squirrel perception action server (LookForObjects or RecognizeObjects).

    Goals are sent with ``look_for_object = EXPLORE`` and block until the
    server reports a terminal state.
    """

    def __init__(self, name: str, action_type, goal_type):
        self.name = name
        self._goal_type = goal_type
        self._client = actionlib.SimpleActionClient(name, action_type)

    def wait_for_server(self, timeout: float = 0.0) -> bool:
        rospy.loginfo("KCL: (PerceptionAction) waiting for action server to start on %s", self.name)
        found = self._client.wait_for_server(rospy.Duration(timeout))
        if found:
            rospy.loginfo("KCL: (PerceptionAction) action server %s found!", self.name)
        return found

    def look_at(self, pose) -> RecognitionOutcome:
        goal = self._goal_type()
        goal.look_for_object = self._goal_type.EXPLORE
        goal.look_at_pose = pose
        return self._run(goal)

    def look_for(self, object_id: str) -> RecognitionOutcome:
        goal = self._goal_type()
        goal.look_for_object = self._goal_type.EXPLORE
        goal.id = object_id
        return self._run(goal)

    def _run(self, goal) -> RecognitionOutcome:
        try:
            self._client.send_goal(goal)
            self._client.wait_for_result()
        except rospy.ROSException as e:
            raise CollaboratorError(f"{self.name}: {e}") from e

        state = self._client.get_state()
        result = self._client.get_result()
        return RecognitionOutcome(
            succeeded=state == GoalStatus.SUCCEEDED,
            state_text=_GOAL_STATE_NAMES.get(state, str(state)),
            objects_added=list(result.objects_added) if result else [],
            objects_updated=list(result.objects_updated) if result else [],
            used_wizard=bool(getattr(result, "used_wizard", False)),
        )


class DynamicObjectFinderService(DynamicObjectFinder):
    def __init__(self, name: str = "/squirrel_find_dynamic_objects"):
        self._proxy = rospy.ServiceProxy(name, FindDynamicObjects)

    def find(self) -> DynamicObjects:
        try:
            resp = self._proxy()
        except rospy.ServiceException as e:
            raise CollaboratorError(f"find_dynamic_objects failed: {e}") from e
        return DynamicObjects(
            added=list(resp.dynamic_objects_added),
            updated=list(resp.dynamic_objects_updated),
            removed=list(resp.dynamic_objects_removed),
        )


class TfRobotLocator(RobotLocator):
    def __init__(self, map_frame: str = "map", robot_frame: str = "base_link", timeout: float = 1.0):
        self.map_frame = map_frame
        self.robot_frame = robot_frame
        self.timeout = float(timeout)
        self.tf_buffer = tf2_ros.Buffer()
        self.tf_listener = tf2_ros.TransformListener(self.tf_buffer)

    def locate(self) -> TransformResult:
        try:
            t = self.tf_buffer.lookup_transform(
                self.map_frame, self.robot_frame, rospy.Time(0), rospy.Duration(self.timeout))
        except tf2_ros.LookupException as e:
            return TransformResult.failed(TransformFailure.UNKNOWN_FRAME, str(e))
        except tf2_ros.TransformException as e:
            return TransformResult.failed(TransformFailure.TIMEOUT, str(e))
        translation = t.transform.translation
        return TransformResult(x=translation.x, y=translation.y)


class PtpMotionServer(JointMotionServer):
    def __init__(self, name: str = "/joint_ptp"):
        self.name = name
        self._client = actionlib.SimpleActionClient(name, JointPtpAction)

    def wait_for_server(self, timeout: float = 0.0) -> bool:
        rospy.loginfo("KCL: (PerceptionAction) waiting for ptp server to start on %s", self.name)
        return self._client.wait_for_server(rospy.Duration(timeout))

    def send(self, positions) -> None:
        goal = JointPtpGoal()
        goal.joints = Float64MultiArray(data=list(positions))
        self._client.send_goal(goal)

    def wait_for_result(self, timeout: float) -> bool:
        return self._client.wait_for_result(rospy.Duration(timeout))


class JointStateListener(JointStateSource):
    def __init__(self, topic: str):
        self.lock = Lock()
        self._positions: List[float] = []
        self.joint_state_sub = rospy.Subscriber(topic, JointState, self.joint_callback, queue_size=10)

    def joint_callback(self, msg: JointState):
        with self.lock:
            self._positions = list(msg.position)

    def positions(self) -> List[float]:
        with self.lock:
            return list(self._positions)


class FeedbackPublisher:
    """FeedbackSink publishing rosplan ActionFeedback messages."""

    def __init__(self, topic: str = KB_PREFIX + "/action_feedback"):
        self.feedback_pub = rospy.Publisher(topic, ActionFeedback, queue_size=10, latch=True)

    def __call__(self, action_id: int, status: str) -> None:
        fb = ActionFeedback()
        fb.action_id = action_id
        fb.status = status
        self.feedback_pub.publish(fb)
