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
from shapely.geometry import LineString, Polygon

from lanesim.core.coordinates import Point
from lanesim.core.spline import TrajectorySpline


@pytest.fixture
def elbow():
    # 10m east then 10m north.
    return TrajectorySpline([(0, 0), (10, 0), (10, 0), (10, 10)])


def test_duplicate_points_are_dropped(elbow):
    assert len(elbow.points) == 3
    assert elbow.length == pytest.approx(20)


def test_point_and_heading(elbow):
    assert elbow.point_at(5) == Point(5, 0, 0)
    assert elbow.point_at(15) == Point(10, 5, 0)
    assert elbow.heading_at(5) == pytest.approx(0)
    assert elbow.heading_at(15) == pytest.approx(math.pi / 2)


def test_extrapolates_past_the_ends(elbow):
    assert elbow.point_at(-2) == Point(-2, 0, 0)
    assert elbow.point_at(22) == Point(10, 12, 0)


def test_normal_points_left(elbow):
    assert list(elbow.normal_at(5)) == pytest.approx([0, 1])


def test_trajectory_includes_end(elbow):
    points = elbow.trajectory(2, 5.5, 1)
    assert [p.x for p in points] == pytest.approx([2, 3, 4, 5, 5.5])
    assert elbow.trajectory(5, 5, 1) == []
    assert elbow.trajectory(6, 5, 1) == []


def test_s_of(elbow):
    assert elbow.s_of(Point(4, -1)) == pytest.approx(4)
    assert elbow.s_of(Point(11, 7)) == pytest.approx(17)


def test_collision_point(elbow):
    wall = LineString([(5, -1), (5, 1)])
    assert elbow.collision_point_2d(wall) == pytest.approx(5)
    block = Polygon([(8, -1), (12, -1), (12, 3), (8, 3)])
    assert elbow.collision_point_2d(block) == pytest.approx(8)
    assert elbow.collision_point_2d(block, search_backward=True) == pytest.approx(13)
    assert elbow.collision_point_2d(LineString([(0, 5), (5, 5)])) is None


def test_empty_spline():
    spline = TrajectorySpline([])
    assert spline.empty
    assert spline.length == 0
    assert spline.trajectory(0, 10, 1) == []
    assert spline.collision_point_2d(LineString([(0, -1), (0, 1)])) is None
