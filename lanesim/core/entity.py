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
import weakref
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Sequence, Tuple

from .behavior import (
    BehaviorInput,
    BehaviorKind,
    BehaviorStatus,
    Request,
    run_first_applicable,
)
from .coordinates import LaneletPose, Point, Pose
from .entity_status import (
    DEFAULT_CONSTRAINTS,
    ActionStatus,
    BoundingBox,
    DriverModel,
    DynamicConstraints,
    EntityStatus,
    EntityStatusWithTrajectory,
    EntityType,
    Obstacle,
    Twist,
)
from .speed_change import SpeedChangeRequest, Transition

if TYPE_CHECKING:
    from .entity_manager import EntityManager
    from .lanelet_map import LaneletMap

# Speeds closer than this to a one-shot target count as reached.
SPEED_TOLERANCE = 1e-3
# How far short of a goal's arc length the goal counts as reached.
GOAL_TOLERANCE = 1.0


@dataclass
class EntityStepResult:
    """Everything one entity update wants to change, applied by `commit`."""

    status: EntityStatus
    behavior_kind: BehaviorKind
    behavior_status: BehaviorStatus
    waypoints: List[Point] = field(default_factory=list)
    obstacle: Optional[Obstacle] = None
    request: Request = Request.NONE
    speed_change: Optional[SpeedChangeRequest] = None
    target_speed: Optional[float] = None
    goals: List[LaneletPose] = field(default_factory=list)
    lane_change_target: Optional[int] = None


class EntityBase:
    """A simulated road user.

    The entity owns its committed status and its requests. Each tick it first
    `plan`s, reading only its own state and the snapshot it was given, and the
    registry later `commit`s the result once every entity has planned.
    """

    entity_type: EntityType
    behavior_kinds: Tuple[BehaviorKind, ...] = ()
    max_heading_difference: float = math.pi / 2

    def __init__(
        self,
        name: str,
        bounding_box: BoundingBox,
        pose: Optional[Pose] = None,
        lanelet_pose: Optional[LaneletPose] = None,
        speed: float = 0.0,
        constraints: Optional[DynamicConstraints] = None,
        driver_model: Optional[DriverModel] = None,
    ):
        assert (
            pose is not None or lanelet_pose is not None
        ), f"Entity `{name}` needs a pose or a lanelet pose"
        self._log = logging.getLogger(self.__class__.__name__)
        self._owner = None
        self._status = EntityStatus(
            name=name,
            type=self.entity_type,
            pose=pose,
            bounding_box=bounding_box,
            action_status=ActionStatus(twist=Twist(linear=speed)),
            lanelet_pose=lanelet_pose,
            lanelet_pose_valid=lanelet_pose is not None,
        )
        self._constraints = constraints or DEFAULT_CONSTRAINTS[self.entity_type]
        self._driver_model = driver_model or DriverModel()
        self._other_status: Dict[str, EntityStatus] = {}
        self._entity_types: Dict[str, EntityType] = {}
        self._request = Request.NONE
        self._speed_change: Optional[SpeedChangeRequest] = None
        self._target_speed: Optional[float] = None
        self._goals: List[LaneletPose] = []
        self._lane_change_target: Optional[int] = None
        self._waypoints: List[Point] = []
        self._obstacle: Optional[Obstacle] = None
        self._behavior_status = BehaviorStatus.IDLE
        self._behavior_kind: Optional[BehaviorKind] = None

    def __repr__(self):
        return (
            f"{self.__class__.__name__}"
            f"(name={self.name!r}, pose={self._status.pose.point})"
        )

    @property
    def name(self) -> str:
        """The unique entity name."""
        return self._status.name

    @property
    def status(self) -> EntityStatus:
        """The committed status. Do not mutate; use `set_status`."""
        return self._status

    @property
    def constraints(self) -> DynamicConstraints:
        """The dynamic constraints used when no speed change overrides them."""
        return self._constraints

    @property
    def driver_model(self) -> DriverModel:
        """The driver model set by the controller."""
        return self._driver_model

    @property
    def request(self) -> Request:
        """The current request."""
        return self._request

    @property
    def target_speed(self) -> Optional[float]:
        """The speed the entity is asked to hold, if any."""
        return self._target_speed

    @property
    def behavior_status(self) -> BehaviorStatus:
        """The terminal state of the last behavior tick."""
        return self._behavior_status

    @property
    def behavior_kind(self) -> Optional[BehaviorKind]:
        """The behavior that ran last tick."""
        return self._behavior_kind

    @property
    def waypoints(self) -> List[Point]:
        """The trajectory preview from the last tick."""
        return list(self._waypoints)

    @property
    def obstacle(self) -> Optional[Obstacle]:
        """The obstacle reported on the last tick."""
        return self._obstacle

    @property
    def goals(self) -> List[LaneletPose]:
        """The lanelet poses still to be reached, in order."""
        return list(self._goals)

    @property
    def lanelet_map(self) -> LaneletMap:
        """The map of the registry this entity belongs to."""
        return self._manager().lanelet_map

    def _manager(self) -> EntityManager:
        owner = self._owner() if self._owner is not None else None
        assert owner is not None, f"Entity `{self.name}` is not spawned"
        return owner

    def attach(self, owner: EntityManager):
        """Bind to the registry and place the entity on its map."""
        self._owner = weakref.ref(owner)
        status = self._status
        if status.pose is None:
            status = replace(
                status, pose=self.lanelet_map.to_map_pose(status.lanelet_pose)
            )
        self._status = self._matched(status, self._preferred_lanelets(status))

    def detach(self):
        """Unbind from the registry."""
        self._owner = None

    def _preferred_lanelets(self, status: EntityStatus) -> List[int]:
        return [status.lanelet_pose.lanelet_id] if status.lanelet_pose else []

    def _matched(
        self, status: EntityStatus, preferred_ids: Sequence[int]
    ) -> EntityStatus:
        """`status` with its lanelet pose recomputed from its world pose."""
        lanelet_pose = self.lanelet_map.to_lanelet_pose(
            status.pose,
            status.bounding_box,
            preferred_ids,
            self.max_heading_difference,
        )
        return replace(
            status,
            lanelet_pose=lanelet_pose,
            lanelet_pose_valid=lanelet_pose is not None,
        )

    def set_status(self, status: EntityStatus):
        """Overwrite the status. The name and type are kept, the lanelet pose is re-matched."""
        status = replace(status.copy(), name=self.name, type=self.entity_type)
        if self._owner is None:
            self._status = status
            return
        self._status = self._matched(status, self._preferred_lanelets(status))

    def set_other_status(self, statuses: Mapping[str, EntityStatus]):
        """Give the entity its view of everyone else."""
        self._other_status = {n: s for n, s in statuses.items() if n != self.name}

    def set_entity_type_list(self, entity_types: Mapping[str, EntityType]):
        """Give the entity the type of every entity."""
        self._entity_types = dict(entity_types)

    @property
    def other_status(self) -> Dict[str, EntityStatus]:
        """The statuses of the other entities as last distributed."""
        return dict(self._other_status)

    def request_speed_change(self, request: SpeedChangeRequest):
        """Ask for a new speed. A one-shot step change is applied at once."""
        target = request.resolve_target(self._other_status)
        if request.transition == Transition.STEP and target is not None:
            self._status = replace(
                self._status,
                action_status=replace(
                    self._status.action_status,
                    twist=replace(self._status.action_status.twist, linear=target),
                ),
            )
            if not request.continuous:
                self._target_speed = target
                self._speed_change = None
                return
        self._speed_change = request

    def request_lane_change(self, lanelet_id: int):
        """Ask to move onto the neighbouring `lanelet_id`."""
        self._request = Request.LANE_CHANGE
        self._lane_change_target = lanelet_id

    def request_acquire_position(self, goal: LaneletPose):
        """Drive to a single goal."""
        self.request_assign_route([goal])

    def request_assign_route(self, goals: Sequence[LaneletPose]):
        """Drive through the goals in order."""
        self._goals = list(goals)
        self._request = Request.FOLLOW_LANE

    def request_walk_straight(self):
        """Keep going along the current heading."""
        self._request = Request.WALK_STRAIGHT

    def cancel_request(self):
        """Drop the current request and any goals."""
        self._request = Request.NONE
        self._goals = []
        self._lane_change_target = None

    def set_driver_model(self, driver_model: DriverModel):
        """Replace the driver model."""
        self._driver_model = driver_model

    def set_velocity_limit(self, max_speed: float):
        """Cap the speed of this entity."""
        self._constraints = replace(self._constraints, max_speed=max_speed)

    def goal_poses(self) -> List[Pose]:
        """The world poses of the remaining goals."""
        return [self.lanelet_map.to_map_pose(g) for g in self._goals]

    def route_lanelets(
        self,
        status: Optional[EntityStatus] = None,
        goals: Optional[Sequence[LaneletPose]] = None,
    ) -> List[int]:
        """The lanelets the entity will follow: through its goals, then onward far
        enough to cover any preview."""
        status = status or self._status
        goals = self._goals if goals is None else goals
        if not status.lanelet_pose_valid:
            return []
        lanelet_map = self.lanelet_map
        lanelet_pose = status.lanelet_pose
        route = [lanelet_pose.lanelet_id]
        for goal in goals:
            path = lanelet_map.route(route[-1], goal.lanelet_id)
            if not path:
                break
            route.extend(path[1:])
        reach = 2 * self._manager().behavior_settings.horizon_max
        covered = sum(lanelet_map.lanelet_length(i) for i in route) - lanelet_pose.s
        if covered < reach:
            route.extend(
                lanelet_map.following_lanelets(
                    route[-1], reach - covered, include_self=False
                )
            )
        return route

    def _remaining_goals(self, status: EntityStatus) -> List[LaneletPose]:
        goals = list(self._goals)
        if not status.lanelet_pose_valid:
            return goals
        lanelet_pose = status.lanelet_pose
        while (
            goals
            and goals[0].lanelet_id == lanelet_pose.lanelet_id
            and lanelet_pose.s >= goals[0].s - GOAL_TOLERANCE
        ):
            goals.pop(0)
        return goals

    def plan(self, current_time: float, step_time: float) -> EntityStepResult:
        """Run this tick's behavior without changing the entity."""
        manager = self._manager()
        status = self._status.copy()
        constraints = self._constraints
        target_speed = self._target_speed
        speed_change = self._speed_change

        if speed_change is not None:
            resolved = speed_change.resolve_target(self._other_status)
            if resolved is not None:
                target_speed = resolved
                if speed_change.transition == Transition.STEP:
                    status.action_status.twist.linear = resolved
                else:
                    constraints = speed_change.constraints_for(
                        status.speed, resolved, constraints
                    )

        request = self._request
        goals = self._remaining_goals(status)
        if self._goals and not goals and request == Request.FOLLOW_LANE:
            self._log.debug("`%s` reached its last goal", self.name)
            request = Request.NONE
        route = self.route_lanelets(status, goals)

        inputs = BehaviorInput(
            current_time=current_time,
            step_time=step_time,
            status=status,
            lanelet_map=manager.lanelet_map,
            other_statuses=self._other_status,
            entity_types=self._entity_types,
            route_lanelets=route,
            request=request,
            target_speed=target_speed,
            driver_model=self._driver_model,
            constraints=constraints,
            traffic_lights=manager.traffic_light_colors,
            lane_change_target=self._lane_change_target,
            settings=manager.behavior_settings,
        )
        kind, outcome = run_first_applicable(self.behavior_kinds, inputs)

        if outcome.state == BehaviorStatus.FAILURE:
            self._log.debug("No behavior applies to `%s`, holding it", self.name)
            next_status = replace(
                status,
                time=current_time + step_time,
                action_status=ActionStatus(current_action="none"),
            )
        else:
            next_status = outcome.status
        preferred = list(route)
        if self._lane_change_target is not None:
            preferred.append(self._lane_change_target)
        next_status = self._matched(next_status, preferred)

        lane_change_target = self._lane_change_target
        if outcome.request is not None:
            request = outcome.request
            if request != Request.LANE_CHANGE:
                lane_change_target = None

        if (
            speed_change is not None
            and not speed_change.continuous
            and target_speed is not None
            and abs(next_status.speed - target_speed) < SPEED_TOLERANCE
        ):
            speed_change = None

        return EntityStepResult(
            status=next_status,
            behavior_kind=kind,
            behavior_status=outcome.state,
            waypoints=outcome.waypoints,
            obstacle=outcome.obstacle,
            request=request,
            speed_change=speed_change,
            target_speed=target_speed,
            goals=goals,
            lane_change_target=lane_change_target,
        )

    def commit(self, result: EntityStepResult):
        """Apply a planned update."""
        self._status = result.status
        self._behavior_kind = result.behavior_kind
        self._behavior_status = result.behavior_status
        self._waypoints = result.waypoints
        self._obstacle = result.obstacle
        self._request = result.request
        self._speed_change = result.speed_change
        self._target_speed = result.target_speed
        self._goals = result.goals
        self._lane_change_target = result.lane_change_target

    def record(self) -> EntityStatusWithTrajectory:
        """The record published for this entity."""
        return EntityStatusWithTrajectory(
            name=self.name,
            status=self._status.copy(),
            time=self._status.time,
            waypoints=list(self._waypoints),
            goal_poses=self.goal_poses(),
            obstacle=self._obstacle,
        )


class VehicleEntity(EntityBase):
    """A lane-bound vehicle."""

    entity_type = EntityType.VEHICLE
    behavior_kinds = (
        BehaviorKind.LANE_CHANGE,
        BehaviorKind.FOLLOW_LANE,
        BehaviorKind.YIELD,
        BehaviorKind.CRUISE,
    )


class PedestrianEntity(EntityBase):
    """A pedestrian. Pedestrians may face any way relative to the lane they stand on."""

    entity_type = EntityType.PEDESTRIAN
    behavior_kinds = (BehaviorKind.WALK_STRAIGHT,)
    max_heading_difference = math.pi


class EgoEntity(EntityBase):
    """The entity driven by the system under test."""

    entity_type = EntityType.EGO
    behavior_kinds = (BehaviorKind.EXTERNAL,)
