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

import copy
import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional, Tuple

from shapely.affinity import rotate as shapely_rotate
from shapely.affinity import translate as shapely_translate
from shapely.geometry import Polygon
from shapely.geometry import box as shapely_box

from .coordinates import Dimensions, LaneletPose, Point, Pose


class EntityType(IntEnum):
    """The closed set of kinds of simulated entity."""

    EGO = 0
    VEHICLE = 1
    PEDESTRIAN = 2


@dataclass(frozen=True)
class BoundingBox:
    """An entity's footprint: its dimensions and the offset of the box center
    from the entity origin, expressed in the entity frame (x forward, y left)."""

    dimensions: Dimensions
    center: Tuple[float, float, float] = (0.0, 0.0, 0.0)

    def polygon(self, pose: Pose) -> Polygon:
        """The box as a 2D polygon in the frame `pose` is expressed in."""
        half_len = 0.5 * self.dimensions.length
        half_width = 0.5 * self.dimensions.width
        poly = shapely_box(
            self.center[0] - half_len,
            self.center[1] - half_width,
            self.center[0] + half_len,
            self.center[1] + half_width,
        )
        poly = shapely_rotate(poly, pose.heading, origin=(0, 0), use_radians=True)
        return shapely_translate(poly, pose.position[0], pose.position[1])


@dataclass
class Twist:
    """Velocity in the entity frame."""

    linear: float = 0.0  # longitudinal speed, m/s
    angular: float = 0.0  # yaw rate, rad/s


@dataclass
class Accel:
    """Acceleration in the entity frame."""

    linear: float = 0.0
    angular: float = 0.0


@dataclass
class ActionStatus:
    """What an entity is doing and how fast."""

    current_action: str = ""
    twist: Twist = field(default_factory=Twist)
    accel: Accel = field(default_factory=Accel)


@dataclass
class EntityStatus:
    """The kinematic and lane-relative status of one entity at one time."""

    name: str
    type: EntityType
    pose: Pose
    bounding_box: BoundingBox
    time: float = 0.0
    action_status: ActionStatus = field(default_factory=ActionStatus)
    lanelet_pose: Optional[LaneletPose] = None
    lanelet_pose_valid: bool = False

    def __post_init__(self):
        if self.lanelet_pose is None:
            self.lanelet_pose_valid = False

    @property
    def speed(self) -> float:
        """Longitudinal speed."""
        return self.action_status.twist.linear

    @property
    def polygon(self) -> Polygon:
        """The world-frame 2D footprint of the entity."""
        return self.bounding_box.polygon(self.pose)

    @property
    def point(self) -> Point:
        """The entity origin."""
        return self.pose.point

    def copy(self) -> EntityStatus:
        """A deep copy that shares no mutable state with this status."""
        return copy.deepcopy(self)


EntityStatusDict = Dict[str, EntityStatus]


@dataclass(frozen=True)
class DynamicConstraints:
    """Kinematic limits applied when an entity's status is integrated."""

    max_speed: float = 50.0
    max_acceleration: float = 10.0
    max_deceleration: float = 10.0

    def with_acceleration(self, acceleration: float) -> DynamicConstraints:
        """A copy limited to the given acceleration magnitude both ways."""
        return DynamicConstraints(
            max_speed=self.max_speed,
            max_acceleration=abs(acceleration),
            max_deceleration=abs(acceleration),
        )


DEFAULT_CONSTRAINTS = {
    EntityType.EGO: DynamicConstraints(),
    EntityType.VEHICLE: DynamicConstraints(),
    EntityType.PEDESTRIAN: DynamicConstraints(
        max_speed=5.0, max_acceleration=5.0, max_deceleration=5.0
    ),
}


@dataclass
class DriverModel:
    """Driver attributes set by controller assignment."""

    see_around: bool = True


class ObstacleType(IntEnum):
    """What kind of thing an obstacle marker stands for."""

    ENTITY = 0
    STEP = 1


@dataclass(frozen=True)
class Obstacle:
    """A stop target found along an entity's trajectory preview."""

    type: ObstacleType
    s: float  # arc-length position along the trajectory preview


@dataclass
class EntityStatusWithTrajectory:
    """The per-tick record emitted for every entity."""

    name: str
    status: EntityStatus
    time: float
    waypoints: List[Point] = field(default_factory=list)
    goal_poses: List[Pose] = field(default_factory=list)
    obstacle: Optional[Obstacle] = None

    @property
    def obstacle_find(self) -> bool:
        """Whether the entity reported a stop target this tick."""
        return self.obstacle is not None


def is_stopped(status: EntityStatus) -> bool:
    """True when the entity's longitudinal speed is effectively zero."""
    return math.fabs(status.speed) < 1e-9
