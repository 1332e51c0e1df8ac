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
from lanesim.core.coordinates import Point

from .base import (
    Behavior,
    BehaviorInput,
    BehaviorKind,
    BehaviorOutcome,
    BehaviorStatus,
    Request,
)


class WalkStraightBehavior(Behavior):
    """Walks along the current heading at the requested speed."""

    kind = BehaviorKind.WALK_STRAIGHT

    def preconditions_met(self, inputs: BehaviorInput) -> bool:
        return inputs.request in (Request.NONE, Request.WALK_STRAIGHT)

    def tick(self, inputs: BehaviorInput) -> BehaviorOutcome:
        target_speed = (
            inputs.target_speed
            if inputs.target_speed is not None
            else inputs.status.speed
        )
        status = self._advance_straight(inputs, target_speed)
        settings = inputs.settings
        horizon = settings.horizon(status.speed) if status.speed > 0 else 0.0
        direction = status.pose.heading.direction_vector()
        origin = status.pose.position
        waypoints = []
        distance = 0.0
        while horizon > 0 and distance <= horizon:
            waypoints.append(
                Point(
                    float(origin[0] + distance * direction[0]),
                    float(origin[1] + distance * direction[1]),
                    float(origin[2]),
                )
            )
            distance += settings.waypoint_resolution
        return BehaviorOutcome(
            status=status, state=BehaviorStatus.SUCCESS, waypoints=waypoints
        )
