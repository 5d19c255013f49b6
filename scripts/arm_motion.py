#!/usr/bin/env python3
"""
Arm posing for in-hand examination.

Moves the manipulator between an "extend" pose (object held in front of the
camera) and a "retract" pose through the joint PTP action server, then
blocks until the reported joint state converges on the goal.
"""

import logging
import time
from typing import Callable, Dict, List, Optional

import numpy as np

from action_interfaces import JointMotionServer, JointStateSource

logger = logging.getLogger(__name__)

# Joints 0-2 are the base; the arm starts at index 3.
FIRST_ARM_JOINT = 3

EXTEND_POSE: Dict[int, float] = {3: 1.5, 4: 0.86, 5: 0.0, 6: -1.6, 7: -1.8}
RETRACT_POSE: Dict[int, float] = {3: 0.7, 4: 1.6, 5: 0.0, 6: -1.7, 7: -1.8}


def joint_goal(current: List[float], overrides: Dict[int, float]) -> Optional[List[float]]:
    """Current joint vector with the arm joints replaced, or None if too short."""
    if len(current) <= max(overrides):
        return None
    goal = list(current)
    for index, value in overrides.items():
        goal[index] = value
    return goal


def converged(goal: List[float], current: List[float], tolerance: float) -> bool:
    """True if every arm joint present in both vectors is within tolerance."""
    n = min(len(goal), len(current))
    if n <= FIRST_ARM_JOINT:
        return True
    error = np.abs(np.asarray(goal[FIRST_ARM_JOINT:n], dtype=np.float64)
                   - np.asarray(current[FIRST_ARM_JOINT:n], dtype=np.float64))
    return bool(np.all(error <= tolerance))


class ArmPoser:
    def __init__(self,
                 motion: JointMotionServer,
                 joints: JointStateSource,
                 tolerance: float = 0.05,
                 poll_rate: float = 1.0,
                 result_timeout: float = 30.0,
                 convergence_timeout: float = 0.0,
                 sleep: Callable[[float], None] = time.sleep,
                 is_shutdown: Callable[[], bool] = lambda: False):
        """
        Args:
            tolerance: Max absolute error per arm joint (rad).
            poll_rate: Joint state polling rate (Hz).
            result_timeout: Soft ceiling on the PTP wait-for-result (s); the
                goal is not cancelled when it expires.
            convergence_timeout: Give up polling after this long (s); 0 polls
                until shutdown.
        """
        self.motion = motion
        self.joints = joints
        self.tolerance = float(tolerance)
        self.poll_period = 1.0 / float(poll_rate)
        self.result_timeout = float(result_timeout)
        self.convergence_timeout = float(convergence_timeout)
        self._sleep = sleep
        self._is_shutdown = is_shutdown

    def extend(self) -> bool:
        logger.info("Extend arm")
        return self.move_to(EXTEND_POSE)

    def retract(self) -> bool:
        logger.info("Retract arm")
        return self.move_to(RETRACT_POSE)

    def move_to(self, overrides: Dict[int, float]) -> bool:
        current = list(self.joints.positions())
        goal = joint_goal(current, overrides)
        if goal is None:
            logger.error("Joint state has %d entries; cannot build arm goal", len(current))
            return False

        self.motion.send(goal)
        logger.info("Goal sent, waiting for the arm to finish moving...")
        self.motion.wait_for_result(self.result_timeout)
        self._sleep(self.poll_period)
        # resend once, then poll
        self.motion.send(goal)
        return self.wait_for_arm(goal)

    def wait_for_arm(self, goal: List[float]) -> bool:
        """Poll joint states until converged, shutdown, or timeout."""
        waited = 0.0
        while not self._is_shutdown():
            self._sleep(self.poll_period)
            waited += self.poll_period

            current = list(self.joints.positions())
            if len(current) != len(goal):
                logger.warning("Goal has %d joints but joint state has %d", len(goal), len(current))
            if converged(goal, current, self.tolerance):
                return True
            if self.convergence_timeout > 0.0 and waited >= self.convergence_timeout:
                logger.error("Arm did not converge within %.1fs", self.convergence_timeout)
                return False
        return False
