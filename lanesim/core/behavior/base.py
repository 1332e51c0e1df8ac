# Copyright (C) 2022. Huawei Technologies Co., Ltd. All rights reserved.
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NON-INFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN
# THE SOFTWARE.
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field, replace
from enum import Enum, IntEnum
from typing import List, Mapping, Optional, Tuple

import numpy as np

from lanesim.core.coordinates import Heading, Point, Pose
from lanesim.core.entity_status import (
    ActionStatus,
    Accel,
    DriverModel,
    DynamicConstraints,
    EntityStatus,
    EntityType,
    Obstacle,
    Twist,
)
from lanesim.core.lanelet_map import LaneletMap
from lanesim.core.spatial_queries import preview_spline
from lanesim.core.spline import TrajectorySpline
from lanesim.core.traffic_lights import TrafficLightColor
from lanesim.core.utils.custom_exceptions import BehaviorTreeRuntimeError
from lanesim.core.utils.kinematics import (
    KinematicStep,
    apply_kinematic_constraints,
    stopping_distance,
)
from lanesim.core.utils.math import clip


class BehaviorKind(IntEnum):
    """The closed set of behaviors an entity can run."""

    FOLLOW_LANE = 0
    YIELD = 1
    CRUISE = 2
    LANE_CHANGE = 3
    WALK_STRAIGHT = 4
    EXTERNAL = 5


class BehaviorStatus(IntEnum):
    """The terminal state of one behavior tick."""

    IDLE = 0
    RUNNING = 1
    SUCCESS = 2
    FAILURE = 3


class Request(Enum):
    """What an entity has been asked to do."""

    NONE = "none"
    FOLLOW_LANE = "follow_lane"
    LANE_CHANGE = "lane_change"
    WALK_STRAIGHT = "walk_straight"


@dataclass(frozen=True)
class BehaviorSettings:
    """Tunables shared by the lane-based behaviors."""

    stop_margin: float = 3.0
    stop_deceleration: float = 5.0
    horizon_factor: float = 5.0
    horizon_min: float = 20.0
    horizon_max: float = 50.0
    waypoint_resolution: float = 1.0
    lane_change_distance: float = 20.0

    @classmethod
    def from_config(cls, config) -> BehaviorSettings:
        """Read the `[behavior]` section of an engine configuration."""
        return cls(
            **{
                name: config("behavior", name, default=default, cast=float)
                for name, default in asdict(cls()).items()
            }
        )

    def horizon(self, speed: float) -> float:
        """How far ahead to preview at `speed`."""
        return clip(speed * self.horizon_factor, self.horizon_min, self.horizon_max)


@dataclass
class BehaviorInput:
    """Everything a behavior may read during one tick.

    `other_statuses` is the snapshot taken at the start of the tick, so every
    entity observes the same world regardless of update order.
    """

    current_time: float
    step_time: float
    status: EntityStatus
    lanelet_map: LaneletMap
    other_statuses: Mapping[str, EntityStatus] = field(default_factory=dict)
    entity_types: Mapping[str, EntityType] = field(default_factory=dict)
    route_lanelets: List[int] = field(default_factory=list)
    request: Request = Request.NONE
    target_speed: Optional[float] = None
    driver_model: DriverModel = field(default_factory=DriverModel)
    constraints: DynamicConstraints = field(default_factory=DynamicConstraints)
    traffic_lights: Mapping[int, TrafficLightColor] = field(default_factory=dict)
    lane_change_target: Optional[int] = None
    settings: BehaviorSettings = field(default_factory=BehaviorSettings)


@dataclass
class BehaviorOutcome:
    """What one behavior tick produced."""

    status: EntityStatus
    state: BehaviorStatus
    waypoints: List[Point] = field(default_factory=list)
    obstacle: Optional[Obstacle] = None
    request: Optional[Request] = None  # replaces the entity's request when set


class Behavior:
    """A behavior node: checks whether it applies and, if so, advances the entity one tick.

    Subclasses implement `preconditions_met` and `tick`. Callers go through
    `run`, which reports unmet preconditions as `BehaviorStatus.FAILURE`.
    """

    kind: BehaviorKind

    def __init__(self):
        self._log = logging.getLogger(self.__class__.__name__)

    def preconditions_met(self, inputs: BehaviorInput) -> bool:
        """Whether this behavior applies this tick."""
        raise NotImplementedError()

    def tick(self, inputs: BehaviorInput) -> BehaviorOutcome:
        """Advance the entity. Only called when the preconditions hold."""
        raise NotImplementedError()

    def run(self, inputs: BehaviorInput) -> BehaviorOutcome:
        """Tick the behavior, or fail without touching the entity."""
        if not self.preconditions_met(inputs):
            return BehaviorOutcome(
                status=inputs.status, state=BehaviorStatus.FAILURE
            )
        return self.tick(inputs)

    @property
    def action_name(self) -> str:
        """The action tag reported in entity statuses."""
        return self.kind.name.lower()

    def _requested_speed(self, inputs: BehaviorInput) -> float:
        """The externally requested speed, else the route speed limit, else the current speed."""
        if inputs.target_speed is not None:
            return inputs.target_speed
        if inputs.route_lanelets:
            limit = inputs.lanelet_map.speed_limit(inputs.route_lanelets)
            if limit is not None:
                return limit
        return inputs.status.speed

    def _kinematic_step(
        self, inputs: BehaviorInput, target_speed: float
    ) -> KinematicStep:
        c = inputs.constraints
        return apply_kinematic_constraints(
            inputs.status.speed,
            target_speed,
            inputs.step_time,
            c.max_acceleration,
            c.max_deceleration,
            c.max_speed,
        )

    def _updated_status(
        self,
        inputs: BehaviorInput,
        pose: Pose,
        step: KinematicStep,
        angular: float = 0.0,
    ) -> EntityStatus:
        """A new status at the end of this tick. The lanelet pose is left for
        the entity to re-match against the map."""
        return replace(
            inputs.status,
            pose=pose,
            time=inputs.current_time + inputs.step_time,
            action_status=ActionStatus(
                current_action=self.action_name,
                twist=Twist(linear=step.speed, angular=angular),
                accel=Accel(linear=step.acceleration),
            ),
        )

    def _lane_preview(
        self, inputs: BehaviorInput
    ) -> Tuple[List[Point], TrajectorySpline]:
        """Waypoints covering the preview horizon ahead of the entity along its route.

        Raises:
            BehaviorTreeRuntimeError: If the entity is not on the lane graph.
        """
        status = inputs.status
        if not status.lanelet_pose_valid or not inputs.route_lanelets:
            raise BehaviorTreeRuntimeError(
                f"Entity `{status.name}` has no lanelet pose to follow"
            )
        if status.speed < 0:
            return [], TrajectorySpline([])
        settings = inputs.settings
        return preview_spline(
            inputs.lanelet_map,
            inputs.route_lanelets,
            status.lanelet_pose.s,
            settings.horizon(status.speed),
            settings.waypoint_resolution,
        )

    def _advance_along_route(
        self, inputs: BehaviorInput, target_speed: float
    ) -> EntityStatus:
        """Integrate toward `target_speed` and move along the route centerline,
        keeping the current lateral offset."""
        status = inputs.status
        step = self._kinematic_step(inputs, target_speed)
        route = TrajectorySpline(
            inputs.lanelet_map.center_points(inputs.route_lanelets)
        )
        s = status.lanelet_pose.s + step.distance
        position = route.point_at(s).as_np_array
        position[:2] += status.lanelet_pose.offset * route.normal_at(s)
        return self._updated_status(
            inputs, Pose.from_center(position, route.heading_at(s)), step
        )

    def _advance_straight(
        self, inputs: BehaviorInput, target_speed: float, yaw_rate: float = 0.0
    ) -> EntityStatus:
        """Integrate toward `target_speed` and move along the current heading,
        turning at `yaw_rate`."""
        status = inputs.status
        step = self._kinematic_step(inputs, target_speed)
        heading = Heading(status.pose.heading + yaw_rate * inputs.step_time)
        # Travel along the mean heading over the step.
        mean_heading = status.pose.heading + 0.5 * yaw_rate * inputs.step_time
        position = np.copy(status.pose.position)
        position[0] += step.distance * math.cos(mean_heading)
        position[1] += step.distance * math.sin(mean_heading)
        return self._updated_status(
            inputs, Pose.from_center(position, heading), step, angular=yaw_rate
        )

    def _stopping_speed(self, inputs: BehaviorInput, distance: float) -> float:
        """The speed that still allows stopping `margin` meters short of a
        target `distance` meters ahead. While braking can wait that is the
        current speed, so nothing speeds up toward a stop target."""
        status = inputs.status
        settings = inputs.settings
        rest = distance - (status.bounding_box.dimensions.length + settings.stop_margin)
        braking = stopping_distance(status.speed, inputs.constraints.max_deceleration)
        if rest >= braking:
            return status.speed
        if rest > 0:
            return math.sqrt(2 * settings.stop_deceleration * rest)
        return 0.0
