#!/usr/bin/env python3
"""
Perception PDDL actions.

Handles the planner's perception actions by driving the recogniser action
servers and recording what they report in the knowledge base and the
message store:

- explore_waypoint (?wp):             find dynamic objects seen from a waypoint
- observe-classifiable_from (?o ...): try to classify an object, record whether it worked
- look_at_object (?o):                recognise an object at its stored waypoint
- examine_object ():                  recognise whatever is in the closest box
- examine_object_in_hand (?o):        hold the object up to the camera and classify it

Every handler follows the same protocol: parse parameters (missing ones
abort silently), report "action enabled", make the blocking calls, write
facts, then report "action achieved" or "action failed".

Knowledge-base failures while recording a classification are not handled
here; they propagate to the node, which shuts down.
"""

import logging
import time
from typing import Callable, Dict, Optional

from action_dispatch import (
    ACTION_ACHIEVED,
    ACTION_ENABLED,
    ACTION_FAILED,
    DispatchRouter,
    FeedbackSink,
    get_parameter,
    require_parameters,
)
from action_interfaces import (
    CollaboratorError,
    DynamicObjectFinder,
    KnowledgeBaseError,
    KnowledgeClient,
    ObjectStore,
    RecognitionOutcome,
    RecognitionServer,
    RobotLocator,
)
from arm_motion import ArmPoser
from knowledge_facts import FactWriter
from nearest_entity import BOX_TYPE, locate_closest_box
from scene_types import PoseStamped

logger = logging.getLogger(__name__)

OBJECT_TYPE = "object"
WAYPOINT_TYPE = "waypoint"
OBJECT_WAYPOINT_SUFFIX = "_wp"
WAYPOINT_PREFIX = "waypoint_"
WIZARD_CYLINDER_HEIGHT = 0.2


class PerceptionActions:
    """Perception action handlers bound to one set of collaborators."""

    def __init__(self,
                 knowledge: KnowledgeClient,
                 store: ObjectStore,
                 examiner: RecognitionServer,
                 recogniser: RecognitionServer,
                 finder: DynamicObjectFinder,
                 locator: RobotLocator,
                 arm: Optional[ArmPoser],
                 feedback: FeedbackSink,
                 clock: Callable[[], object] = time.time,
                 pose_type=PoseStamped,
                 map_frame: str = "/map"):
        """
        Args:
            examiner: Look-for server, goals carry an object id.
            recogniser: Look-at server, goals carry a pose.
            feedback: Called with (action_id, status).
            clock: Stamp for re-detected objects.
            pose_type: Class of stored poses; also used to build the
                waypoint pose written for each object.
        """
        self.knowledge = knowledge
        self.facts = FactWriter(knowledge)
        self.store = store
        self.examiner = examiner
        self.recogniser = recogniser
        self.finder = finder
        self.locator = locator
        self.arm = arm
        self.feedback = feedback
        self.clock = clock
        self.pose_type = pose_type
        self.map_frame = map_frame

        # store handles of the records written for each object / waypoint
        self.db_name_map: Dict[str, str] = {}

        self.router = DispatchRouter({
            "explore_waypoint": self.explore_action,
            "observe-classifiable_from": self.examine_action,
            "look_at_object": self.look_at_object,
            "examine_object": self.examine_object,
            "examine_object_in_hand": self.examine_object_in_hand,
        })

    def dispatch_callback(self, msg) -> bool:
        return self.router.dispatch(msg)

    def publish_feedback(self, action_id: int, status: str) -> None:
        logger.info("Action %d: %s", action_id, status)
        self.feedback(action_id, status)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    def explore_action(self, msg) -> None:
        logger.info("Explore action received")
        params = require_parameters(msg, ["wp"])
        if params is None:
            logger.info("Aborting action dispatch; malformed parameters")
            return
        waypoint = params["wp"]

        self.publish_feedback(msg.action_id, ACTION_ENABLED)

        try:
            found = self.finder.find()
        except CollaboratorError as e:
            logger.error("Could not call the find_dynamic_objects service: %s", e)
            self.publish_feedback(msg.action_id, ACTION_FAILED)
            return

        for so in found.added:
            self.add_object(so)
        for so in found.updated:
            self.update_object(so, waypoint)
        for so in found.removed:
            self.remove_object(so)

        try:
            self.facts.set_fact_polarity("explored", [("wp", waypoint)])
        except KnowledgeBaseError as e:
            logger.error("Could not add the explored predicate to the knowledge base: %s", e)

        self.publish_feedback(msg.action_id, ACTION_ACHIEVED)

    def examine_action(self, msg) -> None:
        """observe-classifiable_from (?from ?view - waypoint ?o - object ...)"""
        logger.info("Classify action received")
        object_id = get_parameter(msg, "o")
        if object_id is None:
            logger.info("Aborting action dispatch; malformed parameters")
            return
        view = get_parameter(msg, "view") or ""
        origin = get_parameter(msg, "from") or ""

        self.publish_feedback(msg.action_id, ACTION_ENABLED)

        outcome = self._look_for(object_id)
        if outcome is None:
            self.publish_feedback(msg.action_id, ACTION_FAILED)
            return
        success = outcome.succeeded and outcome.found > 0

        self.facts.set_fact_polarity(
            "classifiable_from",
            [("from", origin), ("view", view), ("o", object_id)],
            negative=not success,
        )

        if success:
            self._log_outcome(outcome)
            self._update_types(object_id, outcome)
            for so in outcome.objects_added:
                self.add_object(so)
            for so in outcome.objects_updated:
                self.update_object(so, view)
        elif not outcome.succeeded:
            logger.info("Classification of %s failed: %s", object_id, outcome.state_text)
            self.publish_feedback(msg.action_id, ACTION_FAILED)
            return

        self.publish_feedback(msg.action_id, ACTION_ACHIEVED)

    def look_at_object(self, msg) -> None:
        logger.info("Look at object action received")
        params = require_parameters(msg, ["o"])
        if params is None:
            logger.info("Aborting action dispatch; malformed parameters")
            return
        object_id = params["o"]

        self.publish_feedback(msg.action_id, ACTION_ENABLED)

        wp_name = object_id + OBJECT_WAYPOINT_SUFFIX
        try:
            results = self.store.query_named(wp_name, self.pose_type)
        except CollaboratorError as e:
            logger.error("Could not query message store to fetch object wp %s: %s", wp_name, e)
            self.publish_feedback(msg.action_id, ACTION_FAILED)
            return
        if not results:
            logger.error("Aborting waypoint request; no matching object wp %s", wp_name)
            self.publish_feedback(msg.action_id, ACTION_FAILED)
            return
        object_wp = results[0]

        outcome = self._look_at(object_wp)
        if not self._recognised(outcome):
            self.publish_feedback(msg.action_id, ACTION_FAILED)
            return

        for so in outcome.objects_added:
            logger.info("ADD: %s (%s).", so.id, so.category)
            if outcome.used_wizard:
                logger.info("Used the wizard, using the stored pose instead.")
                so.pose = object_wp.pose
                so.bounding_cylinder.height = WIZARD_CYLINDER_HEIGHT
            so.header.frame_id = self.map_frame
            so.header.stamp = self.clock()
            so.id = object_id
            so.category = object_id
            self.add_object(so)

        self.publish_feedback(msg.action_id, ACTION_ACHIEVED)

    def examine_object(self, msg) -> None:
        logger.info("Examine object action received")
        self.publish_feedback(msg.action_id, ACTION_ENABLED)

        nearest = locate_closest_box(self.knowledge, self.store, self.locator, self.pose_type)
        if not nearest.ok:
            logger.error("No box to examine: %s", nearest.reason)
            self.publish_feedback(msg.action_id, ACTION_FAILED)
            return

        outcome = self._look_at(nearest.pose)
        if not self._recognised(outcome):
            self.publish_feedback(msg.action_id, ACTION_FAILED)
            return

        for so in outcome.objects_added:
            logger.info("ADD: %s (%s).", so.id, so.category)
            so.id = so.category
            self.add_object(so)

        self.publish_feedback(msg.action_id, ACTION_ACHIEVED)

    def examine_object_in_hand(self, msg) -> None:
        logger.info("Examine object in hand action received")
        object_id = get_parameter(msg, "o")
        if not object_id:
            logger.info("Aborting action dispatch; malformed parameters")
            return

        self.publish_feedback(msg.action_id, ACTION_ENABLED)

        if not self.arm.extend():
            logger.error("Failed to extend the arm.")
            self.publish_feedback(msg.action_id, ACTION_FAILED)
            return

        # a failed examination leaves the arm extended
        outcome = self._look_for(object_id)
        if outcome is None:
            self.publish_feedback(msg.action_id, ACTION_FAILED)
            return
        if outcome.succeeded and outcome.found > 0:
            self._log_outcome(outcome)
            self._update_types(object_id, outcome)
        elif not outcome.succeeded:
            logger.info("Examination of %s failed: %s", object_id, outcome.state_text)
            self.publish_feedback(msg.action_id, ACTION_FAILED)
            return

        if not self.arm.retract():
            logger.error("Failed to retract the arm.")
            self.publish_feedback(msg.action_id, ACTION_FAILED)
            return

        self.publish_feedback(msg.action_id, ACTION_ACHIEVED)

    # ------------------------------------------------------------------
    # Recognition helpers
    # ------------------------------------------------------------------
    def _look_for(self, object_id: str) -> Optional[RecognitionOutcome]:
        logger.info("Look-for goal sent for %s, waiting for result.", object_id)
        try:
            outcome = self.examiner.look_for(object_id)
        except CollaboratorError as e:
            logger.error("Look-for action server unavailable: %s", e)
            return None
        logger.info("Check object finished: %s", outcome.state_text)
        return outcome

    def _look_at(self, pose) -> Optional[RecognitionOutcome]:
        logger.info("Look-at goal sent, waiting for result.")
        try:
            outcome = self.recogniser.look_at(pose)
        except CollaboratorError as e:
            logger.error("Recogniser action server unavailable: %s", e)
            return None
        logger.info("Check object finished: %s", outcome.state_text)
        return outcome

    @staticmethod
    def _recognised(outcome: Optional[RecognitionOutcome]) -> bool:
        if outcome is None:
            return False
        if not outcome.succeeded:
            logger.info("Recognition failed: %s", outcome.state_text)
            return False
        if outcome.found == 0:
            logger.error("No objects returned!")
            return False
        logger.info("Found %d objects!", outcome.found)
        return True

    @staticmethod
    def _log_outcome(outcome: RecognitionOutcome) -> None:
        logger.info("Found %d objects!", outcome.found)
        for so in outcome.objects_added:
            logger.info("ADD: %s (%s).", so.id, so.category)
        for so in outcome.objects_updated:
            logger.info("UPDATE: %s (%s).", so.id, so.category)

    def _update_types(self, object_id: str, outcome: RecognitionOutcome) -> None:
        if outcome.objects_added:
            self.update_type(object_id, outcome.objects_added[0].category)
        if outcome.objects_updated:
            self.update_type(object_id, outcome.objects_updated[0].category)

    # ------------------------------------------------------------------
    # Knowledge / store bookkeeping
    # ------------------------------------------------------------------
    def update_type(self, object_id: str, category: str) -> Optional[str]:
        """
        Record which box a recognised object belongs in.

        A box matches when ``belongs_in(category, box)`` already holds; the
        last matching box wins. The object then belongs in that box and in
        no other. Returns the matching box, or None if no box matched.
        """
        logger.info("Update where %s belongs.", object_id)
        try:
            boxes = self.knowledge.get_instances(BOX_TYPE)
        except KnowledgeBaseError as e:
            logger.error("Failed to get all the box instances: %s", e)
            return None
        logger.info("Received %d box instances.", len(boxes))

        found_box = None
        for box in boxes:
            if self.facts.holds("belongs_in", [("o", category), ("b", box)]):
                logger.info("%s belongs in %s", category, box)
                found_box = box
            else:
                logger.info("%s does not belong in %s", category, box)

        if found_box is None:
            return None

        for box in boxes:
            self.facts.set_fact_polarity(
                "belongs_in", [("o", object_id), ("b", box)], negative=box != found_box)
        return found_box

    def add_object(self, obj) -> None:
        self.update_object(obj, WAYPOINT_PREFIX + obj.id)

    def update_object(self, obj, waypoint: str) -> None:
        # each write is attempted on its own
        try:
            self.facts.add_instance(OBJECT_TYPE, obj.id)
        except KnowledgeBaseError as e:
            logger.error("Could not add the object %s to the knowledge base: %s", obj.id, e)
        try:
            self.facts.add_instance(WAYPOINT_TYPE, waypoint)
        except KnowledgeBaseError as e:
            logger.error("Could not add the waypoint %s to the knowledge base: %s", waypoint, e)
        try:
            self.facts.set_fact_polarity("object_at", [("o", obj.id), ("wp", waypoint)])
            logger.info("Added the object %s at %s to the knowledge base.", obj.id, waypoint)
        except KnowledgeBaseError as e:
            logger.error("Could not add the object_at predicate for %s at %s: %s", obj.id, waypoint, e)

        ps = self.pose_type()
        ps.header = obj.header
        ps.pose = obj.pose
        try:
            self.db_name_map[waypoint] = self.store.insert_named(waypoint, ps)
            self.db_name_map[obj.id] = self.store.insert_named(obj.id, obj)
        except CollaboratorError as e:
            logger.error("Could not store %s in the message store: %s", obj.id, e)

    def remove_object(self, obj) -> None:
        try:
            self.facts.remove_instance(OBJECT_TYPE, obj.id)
        except KnowledgeBaseError as e:
            logger.error("Could not remove the object %s from the knowledge base: %s", obj.id, e)

        handle = self.db_name_map.pop(obj.id, None)
        if handle is None:
            logger.warning("No stored record for %s", obj.id)
            return
        try:
            self.store.delete_id(handle)
        except CollaboratorError as e:
            logger.error("Could not delete %s from the message store: %s", obj.id, e)
