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

import pytest

from lanesim.core.utils.kinematics import (
    apply_kinematic_constraints,
    stopping_distance,
    stopping_time,
)


def test_stopping():
    assert stopping_time(10, 5) == 2
    assert stopping_distance(10, 5) == 10
    assert stopping_distance(0, 5) == 0
    assert stopping_time(10, 0) == math.inf


def test_accelerate_within_limit():
    step = apply_kinematic_constraints(0.0, 10.0, 0.5, 4.0, 8.0)
    assert step.speed == pytest.approx(2.0)
    assert step.acceleration == pytest.approx(4.0)
    assert step.distance == pytest.approx(0.5)


def test_reach_target_exactly():
    step = apply_kinematic_constraints(9.5, 10.0, 0.5, 4.0, 8.0)
    assert step.speed == pytest.approx(10.0)
    assert step.acceleration == pytest.approx(1.0)


def test_decelerate_within_limit():
    step = apply_kinematic_constraints(10.0, 0.0, 0.1, 4.0, 8.0)
    assert step.speed == pytest.approx(9.2)
    assert step.acceleration == pytest.approx(-8.0)
    assert step.distance == pytest.approx(0.96)


def test_max_speed_caps_target():
    step = apply_kinematic_constraints(5.0, 30.0, 1.0, 100.0, 100.0, max_speed=6.0)
    assert step.speed == pytest.approx(6.0)


def test_zero_step():
    step = apply_kinematic_constraints(5.0, 0.0, 0.0, 1.0, 1.0)
    assert step == (5.0, 0.0, 0.0)
