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
from typing import NamedTuple


def stopping_time(start_speed: float, deceleration: float) -> float:
    """
    Returns the time it would take to stop from initial speed start_speed
    by decelerating at a constant rate of deceleration.
    Note that deceleration should be a non-negative value (not a negative acceleration).
    """
    assert deceleration >= 0.0
    if deceleration == 0.0:
        return math.inf
    return start_speed / deceleration


def stopping_distance(start_speed: float, deceleration: float) -> float:
    """
    Returns the distance it would take to stop from initial speed start_speed
    by decelerating at a constant rate of deceleration.
    Note that deceleration should be a non-negative value (not a negative acceleration).
    """
    assert deceleration >= 0.0
    if start_speed == 0.0:
        return 0.0
    return 0.5 * start_speed * stopping_time(start_speed, deceleration)


class KinematicStep(NamedTuple):
    """The result of advancing a longitudinal state by one step."""

    speed: float
    acceleration: float
    distance: float


def apply_kinematic_constraints(
    speed: float,
    target_speed: float,
    step_time: float,
    max_acceleration: float,
    max_deceleration: float,
    max_speed: float = math.inf,
) -> KinematicStep:
    """Moves `speed` toward `target_speed` for one step of `step_time` without
    exceeding the given acceleration, deceleration and speed limits.

    Both `max_acceleration` and `max_deceleration` are magnitudes.
    The distance returned is the one covered during the step (trapezoidal).
    """
    assert step_time >= 0.0
    assert max_acceleration >= 0.0 and max_deceleration >= 0.0
    target_speed = max(-max_speed, min(target_speed, max_speed))
    if step_time == 0.0:
        return KinematicStep(speed, 0.0, 0.0)
    required = (target_speed - speed) / step_time
    acceleration = max(-max_deceleration, min(required, max_acceleration))
    next_speed = speed + acceleration * step_time
    return KinematicStep(
        next_speed, acceleration, 0.5 * (speed + next_speed) * step_time
    )
