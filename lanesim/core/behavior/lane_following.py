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
from typing import List, Optional, Tuple

from lanesim.core.entity_status import EntityStatus, Obstacle, ObstacleType
from lanesim.core.spatial_queries import (
    conflicting_entities,
    distance_to_entity_along_spline,
    distance_to_polygon_along_spline,
)
from lanesim.core.spline import TrajectorySpline

from .base import (
    Behavior,
    BehaviorInput,
    BehaviorKind,
    BehaviorOutcome,
    BehaviorStatus,
    Request,
)

_LANE_REQUESTS = (Request.NONE, Request.FOLLOW_LANE)


def right_of_way_entities(inputs: BehaviorInput) -> List[EntityStatus]:
    """Entities on lanelets that have priority over the entity's route."""
    lanelet_map = inputs.lanelet_map
    return conflicting_entities(
        lanelet_map,
        inputs.route_lanelets,
        inputs.other_statuses,
        relation=lanelet_map.right_of_way_lanelet_ids,
    )


def _on_lane(inputs: BehaviorInput) -> bool:
    return (
        inputs.request in _LANE_REQUESTS
        and inputs.status.lanelet_pose_valid
        and bool(inputs.route_lanelets)
    )


class LaneFollowingBehavior(Behavior):
    """Follows the route centerline and slows down for whatever is ahead.

    Stop targets are looked up along a preview of the route: entities crossing
    or leading on it, occupied crosswalks, stop lines, and the stop lines of
    red or yellow traffic lights. The nearest one caps the requested speed so
    the entity can still come to rest short of it.
    """

    kind = BehaviorKind.FOLLOW_LANE

    def preconditions_met(self, inputs: BehaviorInput) -> bool:
        if not _on_lane(inputs):
            return False
        if not inputs.driver_model.see_around:
            return False
        return not right_of_way_entities(inputs)

    def tick(self, inputs: BehaviorInput) -> BehaviorOutcome:
        waypoints, preview = self._lane_preview(inputs)
        target_speed = self._requested_speed(inputs)
        stop_target = self.stop_target(inputs, preview)
        if stop_target is None:
            return BehaviorOutcome(
                status=self._advance_along_route(inputs, target_speed),
                state=BehaviorStatus.SUCCESS,
                waypoints=waypoints,
            )

        distance, obstacle_type = stop_target
        target_speed = min(target_speed, self._stopping_speed(inputs, distance))
        obstacle = None
        if 0 <= distance <= preview.length:
            obstacle = Obstacle(obstacle_type, distance)
        return BehaviorOutcome(
            status=self._advance_along_route(inputs, target_speed),
            state=BehaviorStatus.RUNNING,
            waypoints=waypoints,
            obstacle=obstacle,
        )

    def stop_target(
        self, inputs: BehaviorInput, preview: TrajectorySpline
    ) -> Optional[Tuple[float, ObstacleType]]:
        """The nearest stop target along `preview` and what kind it is."""
        if preview.length <= 0:
            return None
        lanelet_map = inputs.lanelet_map
        route = inputs.route_lanelets
        others = inputs.other_statuses
        candidates = []

        for other in conflicting_entities(lanelet_map, route, others):
            candidates.append(
                (distance_to_entity_along_spline(preview, other), ObstacleType.ENTITY)
            )

        route_ids = set(route)
        for name in sorted(others):
            other = others[name]
            if other.lanelet_pose_valid and other.lanelet_pose.lanelet_id in route_ids:
                candidates.append(
                    (
                        distance_to_entity_along_spline(preview, other),
                        ObstacleType.ENTITY,
                    )
                )

        for crosswalk_id in lanelet_map.crosswalk_ids(route):
            crosswalk = lanelet_map.crosswalk_polygon(crosswalk_id)
            if any(other.polygon.intersects(crosswalk) for other in others.values()):
                candidates.append(
                    (
                        distance_to_polygon_along_spline(preview, crosswalk),
                        ObstacleType.ENTITY,
                    )
                )

        controlled = set()
        for light_id in lanelet_map.traffic_light_ids_on_route(route):
            stop_line_ids = lanelet_map.traffic_light_stop_line_ids(light_id)
            controlled.update(stop_line_ids)
            color = inputs.traffic_lights.get(light_id)
            if color is None or not color.means_stop:
                continue
            for stop_line_id in stop_line_ids:
                candidates.append(
                    (
                        distance_to_polygon_along_spline(
                            preview, lanelet_map.stop_line_polygon(stop_line_id)
                        ),
                        ObstacleType.STEP,
                    )
                )

        for stop_line_id in lanelet_map.stop_line_ids_on_route(route):
            if stop_line_id in controlled:
                continue
            candidates.append(
                (
                    distance_to_polygon_along_spline(
                        preview, lanelet_map.stop_line_polygon(stop_line_id)
                    ),
                    ObstacleType.STEP,
                )
            )

        found = [c for c in candidates if c[0] is not None]
        if not found:
            return None
        return min(found)


class YieldBehavior(Behavior):
    """Stops short of lanelets whose traffic has priority while any of it is present."""

    kind = BehaviorKind.YIELD

    def preconditions_met(self, inputs: BehaviorInput) -> bool:
        if not _on_lane(inputs) or not inputs.driver_model.see_around:
            return False
        return bool(right_of_way_entities(inputs))

    def tick(self, inputs: BehaviorInput) -> BehaviorOutcome:
        waypoints, preview = self._lane_preview(inputs)
        lanelet_map = inputs.lanelet_map
        priority = lanelet_map.right_of_way_lanelet_ids(inputs.route_lanelets)
        distances = [
            d
            for d in (
                distance_to_polygon_along_spline(
                    preview, lanelet_map.lanelet_polygon(lanelet_id)
                )
                for lanelet_id in sorted(priority)
            )
            if d is not None
        ]

        obstacle = None
        if distances:
            distance = min(distances)
            target_speed = min(
                self._requested_speed(inputs), self._stopping_speed(inputs, distance)
            )
            obstacle = Obstacle(ObstacleType.ENTITY, distance)
        else:
            target_speed = 0.0

        return BehaviorOutcome(
            status=self._advance_along_route(inputs, target_speed),
            state=BehaviorStatus.RUNNING,
            waypoints=waypoints,
            obstacle=obstacle,
        )


class CruiseBehavior(Behavior):
    """Follows the route at the requested speed without looking ahead.

    This is what a driver that cannot see around does.
    """

    kind = BehaviorKind.CRUISE

    def preconditions_met(self, inputs: BehaviorInput) -> bool:
        return _on_lane(inputs) and not inputs.driver_model.see_around

    def tick(self, inputs: BehaviorInput) -> BehaviorOutcome:
        waypoints, _ = self._lane_preview(inputs)
        return BehaviorOutcome(
            status=self._advance_along_route(inputs, self._requested_speed(inputs)),
            state=BehaviorStatus.SUCCESS,
            waypoints=waypoints,
        )
