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

from lanesim.core.coordinates import Dimensions, Heading, Pose
from lanesim.core.entity_status import BoundingBox, EntityStatus, EntityType
from lanesim.core.utils.custom_exceptions import GridOverflowError
from lanesim.sensor.occupancy_grid import (
    Box,
    OccupancyGridBuilder,
    OccupancyGridSensor,
    grid_traversal,
)

OCCUPIED = 100
INVISIBLE = 50
SQUARE = Dimensions(length=2, width=2, height=1)


def box_at(x, y, heading=0.0, dimensions=SQUARE):
    return Box(Pose.from_center((x, y), Heading(heading)), dimensions)


@pytest.fixture
def builder():
    builder = OccupancyGridBuilder(
        resolution=1.0,
        height=20,
        width=20,
        occupied_cost=OCCUPIED,
        invisible_cost=INVISIBLE,
    )
    builder.reset(Pose.origin())
    return builder


def built_grid(builder):
    builder.build()
    return builder.get().reshape(builder.height, builder.width)


def test_grid_traversal_visits_every_cell():
    assert list(grid_traversal(0.5, 0.5, 3.5, 0.5)) == [(0, 0), (1, 0), (2, 0), (3, 0)]
    assert list(grid_traversal(0.5, 0.5, 0.5, 0.5)) == [(0, 0)]
    cells = list(grid_traversal(0.5, 0.5, 2.5, 1.5))
    assert cells[0] == (0, 0)
    assert cells[-1] == (2, 1)
    # 4-connected: one step per cell boundary crossed.
    assert len(cells) == 4
    assert list(grid_traversal(2.5, 0.5, 0.5, 0.5)) == [(2, 0), (1, 0), (0, 0)]


def test_grid_traversal_accepts_numpy_scalars():
    start = np.array([0.5, 0.5])
    end = np.array([2.5, 1.5])
    assert list(grid_traversal(start[0], start[1], end[0], end[1])) == list(
        grid_traversal(0.5, 0.5, 2.5, 1.5)
    )
    assert list(
        grid_traversal(np.float64(2.5), np.float64(0.5), np.float64(0.5), np.float64(0.5))
    ) == [(2, 0), (1, 0), (0, 0)]


@pytest.mark.parametrize(
    "occupied_cost, invisible_cost", [(200, 50), (100, 128), (-129, 50)]
)
def test_costs_must_fit_in_a_signed_byte(occupied_cost, invisible_cost):
    with pytest.raises(ValueError):
        OccupancyGridBuilder(
            resolution=1.0,
            height=4,
            width=4,
            occupied_cost=occupied_cost,
            invisible_cost=invisible_cost,
        )


def test_box_convex_hull_is_counter_clockwise():
    hull = box_at(5, 5, math.pi / 4).get_2d_convex_hull()
    assert hull.shape == (4, 2)
    x, y = hull[:, 0], hull[:, 1]
    signed_area = 0.5 * np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y)
    assert signed_area == pytest.approx(4)


def test_transforms(builder):
    builder.reset(Pose.from_center((10, 10), Heading(math.pi / 2)))
    # Ahead of a sensor facing +y.
    assert builder.transform_to_grid((10, 15)) == pytest.approx([5, 0])
    # To its left.
    assert builder.transform_to_grid((5, 10)) == pytest.approx([0, 5])
    assert builder.transform_to_pixel((0, 0)) == pytest.approx((10, 10))
    assert builder.transform_to_pixel((-10, 9.5)) == pytest.approx((0, 19.5))


def test_box_ahead(builder):
    builder.add(box_at(5.5, 0.5))
    grid = built_grid(builder)

    assert (grid[9:12, 14:17] == OCCUPIED).all()
    assert (grid[10, 17:20] == INVISIBLE).all()
    assert grid[10, 2] == 0
    assert (grid[10, 12:14] == 0).all()
    assert grid[0, 0] == 0
    assert builder.primitive_count == 1


def test_box_behind_wraps_around(builder):
    builder.add(box_at(-5.5, 0.5))
    grid = built_grid(builder)

    assert (grid[9:12, 3:6] == OCCUPIED).all()
    assert (grid[10, 0:3] == INVISIBLE).all()
    assert grid[10, 8] == 0
    assert (grid[10, 10:] == 0).all()


def test_sensor_inside_obstacle_sees_nothing(builder):
    builder.add(box_at(0, 0))
    grid = built_grid(builder)
    assert grid[10, 10] == OCCUPIED
    assert grid[0, 0] == INVISIBLE
    assert grid[19, 19] == INVISIBLE
    assert ((grid == OCCUPIED) | (grid == INVISIBLE)).all()


def test_build_is_idempotent(builder):
    builder.add(box_at(5.5, 0.5))
    first = built_grid(builder)
    second = built_grid(builder)
    assert (first == second).all()
    assert builder.get().dtype == np.int8


def test_reset_clears(builder):
    builder.add(box_at(5.5, 0.5))
    builder.reset(Pose.origin())
    assert builder.primitive_count == 0
    assert (built_grid(builder) == 0).all()


def test_overflow():
    builder = OccupancyGridBuilder(1.0, 20, 20, OCCUPIED, INVISIBLE, max_primitives=2)
    builder.add(box_at(5.5, 0.5))
    builder.add(box_at(-5.5, 0.5))
    with pytest.raises(GridOverflowError):
        builder.add(box_at(0.5, 5.5))
    builder.reset(Pose.origin())
    builder.add(box_at(0.5, 5.5))


def test_default_limit_is_the_counter_range():
    builder = OccupancyGridBuilder(1.0, 4, 4, OCCUPIED, INVISIBLE)
    assert builder.max_primitives == np.iinfo(np.int16).max


def status(name, x, y, heading=0.0):
    return EntityStatus(
        name=name,
        type=EntityType.VEHICLE,
        pose=Pose.from_center((x, y), Heading(heading)),
        bounding_box=BoundingBox(SQUARE),
    )


def test_sensor_follows_its_entity():
    sensor = OccupancyGridSensor(
        "me",
        resolution=1.0,
        width=20,
        height=20,
        occupied_cost=OCCUPIED,
        invisible_cost=INVISIBLE,
        update_duration=0.5,
    )
    # The sensor faces +y, so the obstacle north of it is straight ahead.
    statuses = {
        "me": status("me", 100, 100, math.pi / 2),
        "other": status("other", 99.5, 105.5, math.pi / 2),
        "distant": status("distant", 300, 300),
    }
    grid = sensor(0.0, statuses)
    assert grid.metadata.created_at == 0.0
    assert grid.metadata.origin == statuses["me"].pose
    assert (grid.grid[9:12, 14:17] == OCCUPIED).all()
    assert (grid.grid[10, 17:20] == INVISIBLE).all()
    # The sensor's own footprint is not an obstacle.
    assert grid.grid[10, 10] == 0
    assert sensor.last_grid is grid

    assert sensor(0.2, statuses) is None
    assert sensor(0.5, statuses) is not None

    sensor.teardown()
    assert sensor.last_grid is None
