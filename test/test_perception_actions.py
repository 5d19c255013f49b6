#!/usr/bin/env python3

import os
import sys
import unittest

THIS_DIR = os.path.dirname(os.path.abspath(__file__))
SCRIPTS_DIR = os.path.abspath(os.path.join(THIS_DIR, "..", "scripts"))
if SCRIPTS_DIR not in sys.path:
    sys.path.insert(0, SCRIPTS_DIR)
if THIS_DIR not in sys.path:
    sys.path.insert(0, THIS_DIR)

from action_dispatch import ACTION_ACHIEVED, ACTION_ENABLED, ACTION_FAILED  # noqa: E402
from action_interfaces import KnowledgeBaseError, RecognitionOutcome  # noqa: E402
from arm_motion import ArmPoser  # noqa: E402
from fakes import (  # noqa: E402
    FakeFinder,
    FakeJointMotion,
    FakeJointStates,
    FakeKnowledgeClient,
    FakeLocator,
    FakeObjectStore,
    FakeRecognitionServer,
    FeedbackRecorder,
    dispatch,
)
from perception_actions import PerceptionActions  # noqa: E402
from scene_types import BoundingCylinder, SceneObject, pose_stamped  # noqa: E402


def scene_object(obj_id, category="", x=0.0, y=0.0):
    so = SceneObject(id=obj_id, category=category or obj_id)
    so.pose.position.x = x
    so.pose.position.y = y
    so.bounding_cylinder = BoundingCylinder(diameter=0.1, height=0.05)
    return so


def succeeded(added=(), updated=(), used_wizard=False):
    return RecognitionOutcome(succeeded=True, state_text="SUCCEEDED",
                              objects_added=list(added), objects_updated=list(updated),
                              used_wizard=used_wizard)


ABORTED = RecognitionOutcome(succeeded=False, state_text="ABORTED")


class PerceptionActionsTestBase(unittest.TestCase):
    def setUp(self):
        self.kb = FakeKnowledgeClient(instances={"box": ["box1", "box2"]})
        self.store = FakeObjectStore()
        self.examiner = FakeRecognitionServer()
        self.recogniser = FakeRecognitionServer()
        self.finder = FakeFinder()
        self.locator = FakeLocator(0.0, 0.0)
        self.joints = FakeJointStates([0.0] * 8)
        self.motion = FakeJointMotion(self.joints)
        self.arm = ArmPoser(self.motion, self.joints, sleep=lambda s: None)
        self.feedback = FeedbackRecorder()
        self.actions = PerceptionActions(
            self.kb, self.store, self.examiner, self.recogniser, self.finder,
            self.locator, self.arm, self.feedback, clock=lambda: 42.0)


class ExploreWaypointTest(PerceptionActionsTestBase):
    def test_added_object_is_recorded(self):
        self.finder.result.added.append(scene_object("cup1"))

        self.assertTrue(self.actions.dispatch_callback(dispatch("explore_waypoint", action_id=7, wp="wp3")))

        self.assertEqual(self.feedback.events, [(7, ACTION_ENABLED), (7, ACTION_ACHIEVED)])
        self.assertEqual(self.kb.get_instances("object"), ["cup1"])
        self.assertTrue(self.kb.holds("explored", "wp3"))
        self.assertTrue(self.kb.holds("object_at", "cup1", "waypoint_cup1"))

    def test_updated_object_is_placed_at_explored_waypoint(self):
        self.finder.result.updated.append(scene_object("ball", x=1.0))
        self.actions.dispatch_callback(dispatch("explore_waypoint", wp="wp3"))
        self.assertTrue(self.kb.holds("object_at", "ball", "wp3"))
        self.assertEqual([name for name, _, _ in self.store.inserted], ["wp3", "ball"])

    def test_removed_object_deletes_remembered_record(self):
        self.finder.result.added.append(scene_object("cup1"))
        self.actions.dispatch_callback(dispatch("explore_waypoint", wp="wp1"))
        handle = self.actions.db_name_map["cup1"]

        self.finder.result = type(self.finder.result)(removed=[scene_object("cup1")])
        self.actions.dispatch_callback(dispatch("explore_waypoint", wp="wp1"))

        self.assertEqual(self.store.deleted, [handle])
        self.assertNotIn("cup1", self.actions.db_name_map)
        self.assertEqual(self.kb.get_instances("object"), [])

    def test_finder_failure(self):
        self.finder.fail = True
        self.actions.dispatch_callback(dispatch("explore_waypoint", action_id=2, wp="wp3"))
        self.assertEqual(self.feedback.statuses(2), [ACTION_ENABLED, ACTION_FAILED])
        self.assertFalse(self.kb.holds("explored", "wp3"))

    def test_missing_parameter_aborts_silently(self):
        self.actions.dispatch_callback(dispatch("explore_waypoint", o="cup"))
        self.assertEqual(self.feedback.events, [])
        self.assertEqual(self.finder.calls, 0)

    def test_object_at_written_when_instance_add_fails(self):
        # instance items carry an empty attribute name
        self.kb.fail_updates_for.add("")
        self.actions.update_object(scene_object("cup"), "wp1")
        self.assertTrue(self.kb.holds("object_at", "cup", "wp1"))
        self.assertEqual([name for name, _, _ in self.store.inserted], ["wp1", "cup"])

    def test_store_written_when_object_at_fails(self):
        self.kb.fail_updates_for.add("object_at")
        self.actions.update_object(scene_object("cup"), "wp1")
        self.assertEqual(self.kb.get_instances("object"), ["cup"])
        self.assertEqual(self.kb.get_instances("waypoint"), ["wp1"])
        self.assertIn("cup", self.actions.db_name_map)

    def test_explored_fact_failure_still_achieves(self):
        self.kb.fail_updates_for.add("explored")
        self.actions.dispatch_callback(dispatch("explore_waypoint", wp="wp3"))
        self.assertEqual(self.feedback.statuses(), [ACTION_ENABLED, ACTION_ACHIEVED])


class LookAtObjectTest(PerceptionActionsTestBase):
    def test_missing_object_waypoint(self):
        self.actions.dispatch_callback(dispatch("look_at_object", action_id=3, o="cup1"))
        self.assertEqual(self.feedback.statuses(3), [ACTION_ENABLED, ACTION_FAILED])
        self.assertEqual(self.recogniser.looked_at, [])

    def test_added_objects_take_dispatched_identity(self):
        wp = pose_stamped(2.0, 3.0, frame_id="map")
        self.store.records["cup1_wp"] = [wp]
        self.recogniser.outcomes.append(succeeded(added=[scene_object("obj_17", category="mug")]))

        self.actions.dispatch_callback(dispatch("look_at_object", o="cup1"))

        self.assertEqual(self.recogniser.looked_at, [wp])
        self.assertEqual(self.feedback.statuses(), [ACTION_ENABLED, ACTION_ACHIEVED])
        stored = self.store.records["cup1"][0]
        self.assertEqual((stored.id, stored.category), ("cup1", "cup1"))
        self.assertEqual(stored.header.frame_id, "/map")
        self.assertEqual(stored.header.stamp, 42.0)
        self.assertEqual(stored.bounding_cylinder.height, 0.05)

    def test_wizard_uses_stored_pose(self):
        wp = pose_stamped(2.0, 3.0)
        self.store.records["cup1_wp"] = [wp]
        self.recogniser.outcomes.append(
            succeeded(added=[scene_object("obj_17", x=9.0, y=9.0)], used_wizard=True))

        self.actions.dispatch_callback(dispatch("look_at_object", o="cup1"))

        stored = self.store.records["cup1"][0]
        self.assertEqual(stored.pose.position.x, 2.0)
        self.assertEqual(stored.bounding_cylinder.height, 0.2)

    def test_nothing_recognised(self):
        self.store.records["cup1_wp"] = [pose_stamped(0.0, 0.0)]
        self.recogniser.outcomes.append(succeeded())
        self.actions.dispatch_callback(dispatch("look_at_object", o="cup1"))
        self.assertEqual(self.feedback.statuses(), [ACTION_ENABLED, ACTION_FAILED])

    def test_missing_object_aborts_silently(self):
        self.actions.dispatch_callback(dispatch("look_at_object", wp="wp1"))
        self.assertEqual(self.feedback.events, [])
        self.assertEqual(self.recogniser.looked_at, [])
        self.assertEqual(self.store.inserted, [])

    def test_recogniser_aborted(self):
        self.store.records["cup1_wp"] = [pose_stamped(0.0, 0.0)]
        self.recogniser.outcomes.append(ABORTED)
        self.actions.dispatch_callback(dispatch("look_at_object", o="cup1"))
        self.assertEqual(self.feedback.statuses(), [ACTION_ENABLED, ACTION_FAILED])


class ClassifiableFromTest(PerceptionActionsTestBase):
    def test_success_records_fact_and_type(self):
        self.kb.facts.add(("belongs_in", (("o", "dinosaur"), ("b", "box2"))))
        self.examiner.outcomes.append(succeeded(added=[scene_object("toy1", category="dinosaur")]))

        self.actions.dispatch_callback(
            dispatch("observe-classifiable_from", o="toy1", view="wp2", **{"from": "wp1"}))

        self.assertEqual(self.examiner.looked_for, ["toy1"])
        self.assertTrue(self.kb.holds("classifiable_from", "wp1", "wp2", "toy1"))
        self.assertTrue(self.kb.holds("belongs_in", "toy1", "box2"))
        self.assertTrue(self.kb.negated("belongs_in", "toy1", "box1"))
        self.assertEqual(self.feedback.statuses(), [ACTION_ENABLED, ACTION_ACHIEVED])

    def test_empty_result_records_negative_fact(self):
        self.examiner.outcomes.append(succeeded())
        self.actions.dispatch_callback(dispatch("observe-classifiable_from", o="toy1", view="wp2"))
        self.assertTrue(self.kb.negated("classifiable_from", "", "wp2", "toy1"))
        self.assertEqual(self.feedback.statuses(), [ACTION_ENABLED, ACTION_ACHIEVED])

    def test_aborted_goal_fails(self):
        self.examiner.outcomes.append(ABORTED)
        self.actions.dispatch_callback(dispatch("observe-classifiable_from", o="toy1"))
        self.assertTrue(self.kb.negated("classifiable_from", "", "", "toy1"))
        self.assertEqual(self.feedback.statuses(), [ACTION_ENABLED, ACTION_FAILED])

    def test_knowledge_base_failure_propagates(self):
        self.kb.fail_updates_for.add("classifiable_from")
        self.examiner.outcomes.append(succeeded())
        with self.assertRaises(KnowledgeBaseError):
            self.actions.dispatch_callback(dispatch("observe-classifiable_from", o="toy1"))
        self.assertEqual(self.feedback.statuses(), [ACTION_ENABLED])

    def test_missing_object_aborts_silently(self):
        self.actions.dispatch_callback(dispatch("observe-classifiable_from", view="wp2"))
        self.assertEqual(self.feedback.events, [])
        self.assertEqual(self.examiner.looked_for, [])


class UpdateTypeTest(PerceptionActionsTestBase):
    def test_last_matching_box_wins(self):
        self.kb.facts.add(("belongs_in", (("o", "ball"), ("b", "box1"))))
        self.kb.facts.add(("belongs_in", (("o", "ball"), ("b", "box2"))))
        self.assertEqual(self.actions.update_type("toy", "ball"), "box2")
        self.assertTrue(self.kb.negated("belongs_in", "toy", "box1"))
        self.assertTrue(self.kb.holds("belongs_in", "toy", "box2"))

    def test_no_match_writes_nothing(self):
        self.assertIsNone(self.actions.update_type("toy", "ball"))
        self.assertEqual(self.kb.updates, [])

    def test_box_listing_failure_is_skipped(self):
        self.kb.fail_instances = True
        self.assertIsNone(self.actions.update_type("toy", "ball"))

    def test_query_failure_propagates(self):
        self.kb.fail_queries = True
        with self.assertRaises(KnowledgeBaseError):
            self.actions.update_type("toy", "ball")


class ExamineObjectTest(PerceptionActionsTestBase):
    def test_looks_at_closest_box(self):
        self.store.records["box1_location"] = [pose_stamped(4.0, 0.0)]
        self.store.records["box2_location"] = [pose_stamped(1.0, 0.0)]
        self.recogniser.outcomes.append(succeeded(added=[scene_object("obj_3", category="car")]))

        self.actions.dispatch_callback(dispatch("examine_object"))

        self.assertEqual(self.recogniser.looked_at, [self.store.records["box2_location"][0]])
        self.assertEqual(self.kb.get_instances("object"), ["car"])
        self.assertEqual(self.feedback.statuses(), [ACTION_ENABLED, ACTION_ACHIEVED])

    def test_no_boxes(self):
        self.kb.instances["box"] = []
        self.actions.dispatch_callback(dispatch("examine_object"))
        self.assertEqual(self.feedback.statuses(), [ACTION_ENABLED, ACTION_FAILED])
        self.assertEqual(self.recogniser.looked_at, [])


class ExamineObjectInHandTest(PerceptionActionsTestBase):
    def test_extend_examine_retract(self):
        self.examiner.outcomes.append(succeeded(updated=[scene_object("toy1", category="ball")]))
        self.actions.dispatch_callback(dispatch("examine_object_in_hand", o="toy1"))

        self.assertEqual(len(self.motion.sent), 4)
        self.assertEqual(self.motion.sent[0][3], 1.5)
        self.assertEqual(self.motion.sent[-1][3], 0.7)
        self.assertEqual(self.examiner.looked_for, ["toy1"])
        self.assertEqual(self.feedback.statuses(), [ACTION_ENABLED, ACTION_ACHIEVED])

    def test_extend_failure(self):
        self.joints.current = []
        self.actions.dispatch_callback(dispatch("examine_object_in_hand", o="toy1"))
        self.assertEqual(self.feedback.statuses(), [ACTION_ENABLED, ACTION_FAILED])
        self.assertEqual(self.examiner.looked_for, [])

    def test_empty_object_aborts_silently(self):
        self.actions.dispatch_callback(dispatch("examine_object_in_hand", o=""))
        self.assertEqual(self.feedback.events, [])
        self.assertEqual(self.motion.sent, [])
        self.assertEqual(self.examiner.looked_for, [])

    def test_missing_object_aborts_silently(self):
        self.actions.dispatch_callback(dispatch("examine_object_in_hand", wp="wp1"))
        self.assertEqual(self.feedback.events, [])
        self.assertEqual(self.motion.sent, [])
        self.assertEqual(self.examiner.looked_for, [])

    def test_failed_examination_leaves_arm_extended(self):
        self.examiner.outcomes.append(ABORTED)
        self.actions.dispatch_callback(dispatch("examine_object_in_hand", o="toy1"))
        self.assertEqual(self.feedback.statuses(), [ACTION_ENABLED, ACTION_FAILED])
        self.assertEqual(len(self.motion.sent), 2)
        self.assertEqual(self.joints.current[3], 1.5)


class RoutingTest(PerceptionActionsTestBase):
    def test_unknown_action_is_ignored(self):
        self.assertFalse(self.actions.dispatch_callback(dispatch("goto_waypoint", wp="wp1")))
        self.assertEqual(self.feedback.events, [])

    def test_names_are_case_sensitive(self):
        self.assertFalse(self.actions.dispatch_callback(dispatch("Explore_Waypoint", wp="wp1")))


if __name__ == "__main__":
    unittest.main()
