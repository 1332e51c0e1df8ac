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
import pytest

from lanesim.core.utils.math import (
    fast_quaternion_from_angle,
    min_angles_difference_signed,
    polyline_lengths,
    position_to_ego_frame,
    yaw_from_quaternion,
)


def test_egocentric_conversion():
    p_start = [1, 2, 3]
    pe = [1, -5, 2]
    he = -3

    pec = position_to_ego_frame(p_start, pe, he)

    assert np.allclose([-0.9878400564190705, -6.929947476203118, 1.0], pec)


def test_ego_frame_axes():
    # Facing +y, a point further along +y is straight ahead.
    assert np.allclose(position_to_ego_frame([0, 5, 0], [0, 0, 0], math.pi / 2), [5, 0, 0])
    # ...and a point on -x is to the left.
    assert np.allclose(position_to_ego_frame([-2, 0, 0], [0, 0, 0], math.pi / 2), [0, 2, 0])


@pytest.mark.parametrize("angle", [0.0, 0.5, -2.0, math.pi / 2, 3.0])
def test_quaternion_yaw(angle):
    assert yaw_from_quaternion(fast_quaternion_from_angle(angle)) == pytest.approx(angle)


def test_min_angles_difference_signed():
    assert min_angles_difference_signed(0.1, -0.1) == pytest.approx(0.2)
    assert min_angles_difference_signed(math.pi - 0.1, -math.pi + 0.1) == pytest.approx(-0.2)


def test_polyline_lengths():
    cumulative, total = polyline_lengths([[0, 0, 0], [3, 4, 0], [3, 10, 0]])
    assert np.allclose(cumulative, [0, 5, 11])
    assert total == 11

    cumulative, total = polyline_lengths([[1, 1, 1]])
    assert total == 0
    assert len(cumulative) == 1
