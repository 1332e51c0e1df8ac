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
import math

import numpy as np

from lanesim.core.coordinates import Heading, Pose
from lanesim.core.spline import TrajectorySpline

from .base import (
    Behavior,
    BehaviorInput,
    BehaviorKind,
    BehaviorOutcome,
    BehaviorStatus,
    Request,
)

# Lateral distance covered over one `lane_change_distance` of travel.
LANE_CHANGE_LATERAL_SHIFT = 3.5


class LaneChangeBehavior(Behavior):
    """Drifts onto the target lanelet at a fixed lateral slope, then hands
    control back to lane following."""

    kind = BehaviorKind.LANE_CHANGE

    def preconditions_met(self, inputs: BehaviorInput) -> bool:
        return (
            inputs.request == Request.LANE_CHANGE
            and inputs.lane_change_target is not None
            and inputs.lanelet_map.has_lanelet(inputs.lane_change_target)
        )

    def tick(self, inputs: BehaviorInput) -> BehaviorOutcome:
        lanelet_map = inputs.lanelet_map
        settings = inputs.settings
        status = inputs.status
        horizon = settings.horizon(status.speed)

        target = TrajectorySpline(
            lanelet_map.center_points(
                lanelet_map.following_lanelets(
                    inputs.lane_change_target,
                    lanelet_map.lanelet_length(inputs.lane_change_target) + horizon,
                )
            )
        )
        s = target.s_of(status.point)
        foot = target.point_at(s).as_np_array[:2]
        offset = float(np.dot(status.pose.position[:2] - foot, target.normal_at(s)))

        step = self._kinematic_step(inputs, self._requested_speed(inputs))
        shift = (
            abs(step.distance)
            * LANE_CHANGE_LATERAL_SHIFT
            / settings.lane_change_distance
        )
        next_offset = math.copysign(max(abs(offset) - shift, 0.0), offset)
        done = abs(next_offset) < 1e-3
        if done:
            next_offset = 0.0

        next_s = s + step.distance
        position = target.point_at(next_s).as_np_array
        position[:2] += next_offset * target.normal_at(next_s)
        heading = Heading(
            target.heading_at(next_s) + math.atan2(next_offset - offset, step.distance)
            if step.distance > 0
            else target.heading_at(next_s)
        )

        return BehaviorOutcome(
            status=self._updated_status(
                inputs, Pose.from_center(position, heading), step
            ),
            state=BehaviorStatus.SUCCESS if done else BehaviorStatus.RUNNING,
            waypoints=target.trajectory(
                next_s, next_s + horizon, settings.waypoint_resolution
            ),
            request=Request.FOLLOW_LANE if done else None,
        )
