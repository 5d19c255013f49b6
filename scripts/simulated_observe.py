#!/usr/bin/env python3
"""
Simulated observation actions.

Stands in for real perception when the planner dispatches observation
actions during simulated runs. Every recognised action is reported enabled
and then achieved; two of them also write knowledge:

- observe-sorting_done:     sorting_done stays false until the action has
                            been observed ``sort_for`` times
- observe-toy_at_right_box: for untidied toys near the box closest to the
                            robot, toy_at_right_box mirrors belongs_in

Action names are matched case-insensitively.
"""

import logging
from typing import Callable, Dict

from action_dispatch import ACTION_ACHIEVED, ACTION_ENABLED, ACTION_FAILED, DispatchRouter, FeedbackSink
from action_interfaces import CollaboratorError, KnowledgeBaseError, KnowledgeClient, ObjectStore, RobotLocator
from knowledge_facts import FactWriter
from nearest_entity import locate_closest_box, planar_position, squared_planar_distance
from scene_types import PoseStamped, SceneObject

logger = logging.getLogger(__name__)

OBSERVE_ACTIONS = (
    "observe-has_commanded",
    "observe-is_of_type",
    "observe-holding",
    "observe-sorting_done",
    "observe-is_examined",
    "observe-belongs_in",
    "observe-toy_at_right_box",
    "jump",
    "check_belongs_in",
    "finish",
    "next_observation",
)


class SimulatedObserveActions:
    def __init__(self,
                 knowledge: KnowledgeClient,
                 store: ObjectStore,
                 locator: RobotLocator,
                 feedback: FeedbackSink,
                 sort_for: int = 3,
                 box_proximity: float = 1.5,
                 pose_type=PoseStamped,
                 scene_object_type=SceneObject):
        """
        Args:
            sort_for: Number of observe-sorting_done calls before sorting is done.
            box_proximity: Squared planar distance (m^2) under which a toy
                counts as being at a box.
        """
        self.knowledge = knowledge
        self.facts = FactWriter(knowledge)
        self.store = store
        self.locator = locator
        self.feedback = feedback
        self.sort_for = int(sort_for)
        self.box_proximity = float(box_proximity)
        self.pose_type = pose_type
        self.scene_object_type = scene_object_type

        # Number of observe-sorting_done dispatches since start or the last reset_sorting().
        self.sorting_calls = 0

        self.router = DispatchRouter({name: self.observe for name in OBSERVE_ACTIONS}, normalise=True)
        self.observers: Dict[str, Callable] = {
            "observe-sorting_done": self.observe_sorting_done,
            "observe-toy_at_right_box": self.observe_toy_at_right_box,
        }

    def dispatch_callback(self, msg) -> bool:
        return self.router.dispatch(msg)

    def reset_sorting(self) -> None:
        self.sorting_calls = 0

    def observe(self, msg) -> None:
        name = self.router.route_name(msg.name)
        logger.info("Process the action: %s", name)
        self.feedback(msg.action_id, ACTION_ENABLED)

        observer = self.observers.get(name)
        if observer is not None and not observer(msg):
            self.feedback(msg.action_id, ACTION_FAILED)
            return

        self.feedback(msg.action_id, ACTION_ACHIEVED)

    def observe_sorting_done(self, msg) -> bool:
        self.sorting_calls += 1
        self.facts.set_fact_polarity("sorting_done", negative=self.sorting_calls < self.sort_for)
        return True

    def observe_toy_at_right_box(self, msg) -> bool:
        nearest = locate_closest_box(self.knowledge, self.store, self.locator, self.pose_type)
        if not nearest.ok:
            logger.error("No closest box: %s", nearest.reason)
            return False
        box_position = planar_position(nearest.pose)

        try:
            objects = self.knowledge.get_instances("object")
            tidied = set(self.facts.objects_with("tidy", "o"))
        except KnowledgeBaseError as e:
            logger.error("Failed to fetch objects or tidy facts: %s", e)
            return False
        logger.info("Received %d object instances, %d already tidied.", len(objects), len(tidied))

        for name in objects:
            if name in tidied:
                logger.info("Object %s has already been tidied, ignore.", name)
                continue

            try:
                results = self.store.query_named(name, self.scene_object_type)
            except CollaboratorError as e:
                logger.error("Could not query message store to fetch object pose for %s: %s", name, e)
                return False
            if not results:
                logger.error("No matching object %s in the message store", name)
                return False

            position = planar_position(results[0].pose)
            if squared_planar_distance(position, box_position) >= self.box_proximity:
                continue

            belongs = self.facts.holds("belongs_in", [("o", name), ("b", nearest.name)])
            self.facts.set_fact_polarity("toy_at_right_box", negative=not belongs)
        return True
