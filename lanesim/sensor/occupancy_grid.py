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

import abc
import logging
import math
from typing import Any, Iterator, List, Mapping, NamedTuple, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry import Point as SPoint
from shapely.geometry import Polygon

from lanesim.core.coordinates import Dimensions, Pose
from lanesim.core.entity_status import BoundingBox, EntityStatus
from lanesim.core.utils.custom_exceptions import GridOverflowError
from lanesim.core.utils.math import position_to_ego_frame

# Counts primitives added since the last reset.
MARKER_COUNTER_TYPE = np.int16
COST_TYPE = np.int8


class Primitive(metaclass=abc.ABCMeta):
    """An obstacle shape that can be rasterized."""

    @abc.abstractmethod
    def get_2d_convex_hull(self) -> np.ndarray:
        """The world-frame convex hull as an (N, 2) array of counter-clockwise vertices."""
        raise NotImplementedError


class Box(Primitive):
    """An oriented box."""

    def __init__(self, pose: Pose, dimensions: Dimensions, center=(0.0, 0.0, 0.0)):
        self.pose = pose
        self.dimensions = dimensions
        self.center = tuple(center)

    @classmethod
    def from_status(cls, status: EntityStatus) -> Box:
        """The footprint of an entity."""
        return cls(
            status.pose,
            status.bounding_box.dimensions,
            status.bounding_box.center,
        )

    def polygon(self) -> Polygon:
        """The world-frame footprint."""
        return BoundingBox(self.dimensions, self.center).polygon(self.pose)

    def get_2d_convex_hull(self) -> np.ndarray:
        hull = self.polygon().convex_hull
        coords = np.asarray(hull.exterior.coords)[:-1]
        if not hull.exterior.is_ccw:
            coords = coords[::-1]
        return coords


def grid_traversal(
    start_x: float, start_y: float, end_x: float, end_y: float
) -> Iterator[Tuple[int, int]]:
    """Every (column, row) cell a segment passes through, in order from start to end.

    Coordinates are in cell units; cell (c, r) spans [c, c + 1) x [r, r + 1).
    See Amanatides and Woo, "A Fast Voxel Traversal Algorithm for Ray Tracing".
    """
    col, row = math.floor(start_x), math.floor(start_y)
    end_col, end_row = math.floor(end_x), math.floor(end_y)
    dx, dy = float(end_x - start_x), float(end_y - start_y)

    step_col = (dx > 0) - (dx < 0)
    step_row = (dy > 0) - (dy < 0)
    t_delta_x = abs(1 / dx) if dx else math.inf
    t_delta_y = abs(1 / dy) if dy else math.inf
    if dx > 0:
        t_max_x = (col + 1 - start_x) * t_delta_x
    elif dx < 0:
        t_max_x = (start_x - col) * t_delta_x
    else:
        t_max_x = math.inf
    if dy > 0:
        t_max_y = (row + 1 - start_y) * t_delta_y
    elif dy < 0:
        t_max_y = (start_y - row) * t_delta_y
    else:
        t_max_y = math.inf

    yield col, row
    for _ in range(abs(end_col - col) + abs(end_row - row)):
        if t_max_x < t_max_y:
            col += step_col
            t_max_x += t_delta_x
        else:
            row += step_row
            t_max_y += t_delta_y
        yield col, row


def _theta(point: Sequence[float]) -> float:
    return math.atan2(point[1], point[0])


def _wrapped_theta(point: Sequence[float]) -> float:
    theta = _theta(point)
    return theta + 2 * math.pi if theta < 0 else theta


def _min_max(points: Sequence[np.ndarray], key) -> Tuple[np.ndarray, np.ndarray]:
    # First of the smallest and last of the largest.
    values = [key(p) for p in points]
    lo = min(range(len(values)), key=lambda i: (values[i], i))
    hi = max(range(len(values)), key=lambda i: (values[i], i))
    return points[lo], points[hi]


class OccupancyGridBuilder:
    """Rasterizes obstacle footprints into an occupancy and visibility cost grid.

    The grid is centered on the sensor origin and axis-aligned with its
    frame: x forward, y left. Column `c` and row `r` cover the sensor-frame
    square whose lower corner is `((c - width / 2) * resolution, (r - height / 2) * resolution)`.

    Each primitive marks the cells it covers as occupied, and the cells it
    hides from the origin as invisible. Coverage is recorded per row as a +1 at
    the first covered column and a -1 just past the last one, then integrated
    by `build`.
    """

    def __init__(
        self,
        resolution: float,
        height: int,
        width: int,
        occupied_cost: int,
        invisible_cost: int,
        max_primitives: int = int(np.iinfo(MARKER_COUNTER_TYPE).max),
    ):
        assert resolution > 0
        assert height > 0 and width > 0
        cost_range = np.iinfo(COST_TYPE)
        for cost_name, cost in (
            ("occupied_cost", occupied_cost),
            ("invisible_cost", invisible_cost),
        ):
            if not cost_range.min <= cost <= cost_range.max:
                raise ValueError(
                    f"{cost_name}={cost} does not fit in [{cost_range.min}, {cost_range.max}]"
                )
        self.resolution = resolution
        self.height = height
        self.width = width
        self.occupied_cost = occupied_cost
        self.invisible_cost = invisible_cost
        self.max_primitives = max_primitives

        self._origin = Pose.origin()
        self._primitive_count = 0
        self._occupied = np.zeros((height, width), dtype=np.int32)
        self._invisible = np.zeros((height, width), dtype=np.int32)
        self._values = np.zeros((height, width), dtype=COST_TYPE)

    @property
    def origin(self) -> Pose:
        """The sensor pose the grid is built around."""
        return self._origin

    @property
    def primitive_count(self) -> int:
        """Primitives added since the last reset."""
        return self._primitive_count

    @property
    def half_extents(self) -> Tuple[float, float]:
        """Half the field size along x and y, in meters."""
        return (
            self.width * self.resolution / 2,
            self.height * self.resolution / 2,
        )

    def reset(self, origin: Pose):
        """Start a new frame around `origin`."""
        self._origin = origin
        self._primitive_count = 0
        self._occupied.fill(0)
        self._invisible.fill(0)

    def transform_to_grid(self, point: Sequence[float]) -> np.ndarray:
        """A world point in the sensor frame."""
        local = position_to_ego_frame(
            (point[0], point[1], 0.0),
            (self._origin.position[0], self._origin.position[1], 0.0),
            self._origin.heading,
        )
        return np.array(local[:2])

    def transform_to_pixel(self, point: Sequence[float]) -> Tuple[float, float]:
        """A sensor-frame point in (column, row) cell units."""
        realw, realh = self.half_extents
        return (
            float(point[0] + realw) / self.resolution,
            float(point[1] + realh) / self.resolution,
        )

    def make_occupied_area(self, primitive: Primitive) -> List[np.ndarray]:
        """The primitive's hull in the sensor frame."""
        return [self.transform_to_grid(p) for p in primitive.get_2d_convex_hull()]

    def _corner(self, i: int) -> np.ndarray:
        realw, realh = self.half_extents
        return np.array(
            (
                (-realw, -realh),  # bottom left
                (realw, -realh),  # bottom right
                (realw, realh),  # top right
                (-realw, realh),  # top left
            )[i % 4]
        )

    def _projection(self, p: np.ndarray, i: int) -> np.ndarray:
        """Where the ray from the origin through `p` leaves the field across side `i`."""
        realw, realh = self.half_extents
        side = i % 4
        if side == 0:
            return np.array((-realw, p[1] * -realw / p[0]))  # left
        if side == 1:
            return np.array((p[0] * -realh / p[1], -realh))  # bottom
        if side == 2:
            return np.array((realw, p[1] * realw / p[0]))  # right
        return np.array((p[0] * realh / p[1], realh))  # top

    def make_invisible_area(self, occupied: List[np.ndarray]) -> List[np.ndarray]:
        """The part of the field hidden behind the `occupied` polygon."""
        if Polygon(occupied).buffer(0).intersects(SPoint(0, 0)):
            # The sensor is inside the obstacle and sees nothing.
            return [self._corner(i) for i in range(4)]

        minp, maxp = _min_max(occupied, _theta)
        if _theta(maxp) - _theta(minp) > math.pi:
            # The obstacle straddles the backward axis; compare on [0, 2pi).
            minp, maxp = _min_max(occupied, _wrapped_theta)
        minang, maxang = _theta(minp), _theta(maxp)
        if minang > maxang:
            maxang += 2 * math.pi

        i = 0
        while _theta(self._corner(i)) + 2 * math.pi * (i // 4) < minang:
            i += 1
        area = [minp, self._projection(minp, i)]
        while _theta(self._corner(i)) + 2 * math.pi * (i // 4) < maxang:
            area.append(self._corner(i))
            i += 1
        area.append(self._projection(maxp, i))
        area.append(maxp)
        return area

    def _add_polygon(self, grid: np.ndarray, polygon: List[np.ndarray]):
        mincols = np.full(self.height, self.width, dtype=np.int64)
        maxcols = np.full(self.height, -1, dtype=np.int64)
        pixels = [self.transform_to_pixel(p) for p in polygon]
        for i, p in enumerate(pixels):
            q = pixels[(i + 1) % len(pixels)]
            for col, row in grid_traversal(p[0], p[1], q[0], q[1]):
                if 0 <= row < self.height:
                    mincols[row] = min(mincols[row], col)
                    maxcols[row] = max(maxcols[row], col)

        for row in range(self.height):
            lo, hi = mincols[row], maxcols[row]
            if hi < 0 or lo >= self.width or hi < lo:
                continue
            grid[row, max(lo, 0)] += 1
            if hi + 1 < self.width:
                grid[row, hi + 1] -= 1

    def add(self, primitive: Primitive):
        """Mark the cells `primitive` occupies and the ones it hides.

        Raises:
            GridOverflowError: If the grid already holds as many primitives as its counter can count.
        """
        if self._primitive_count >= self.max_primitives:
            raise GridOverflowError.for_limit(self.max_primitives)
        self._primitive_count += 1

        occupied = self.make_occupied_area(primitive)
        invisible = self.make_invisible_area(occupied)
        self._add_polygon(self._invisible, invisible)
        self._add_polygon(self._occupied, occupied)

    def build(self):
        """Integrate the row markers into costs. The markers are left as they
        are, so building again without adding yields the same grid."""
        occupied = np.cumsum(self._occupied, axis=1)
        invisible = np.cumsum(self._invisible, axis=1)
        self._values = np.where(
            occupied > 0,
            self.occupied_cost,
            np.where(invisible > 0, self.invisible_cost, 0),
        ).astype(COST_TYPE)

    def get(self) -> np.ndarray:
        """The costs from the last `build`, row-major, one signed byte per cell."""
        return self._values.ravel().copy()


class GridMapMetadata(NamedTuple):
    """Occupancy grid metadata."""

    created_at: float
    """Simulation time the grid was built at."""
    resolution: float
    """Grid resolution in meters/cell."""
    width: int
    """Grid width in # of cells."""
    height: int
    """Grid height in # of cells."""
    origin: Pose
    """Sensor pose at the grid center."""


class OccupancyGrid(NamedTuple):
    """Occupancy and visibility costs around a sensor."""

    metadata: GridMapMetadata
    """Grid metadata."""
    data: np.ndarray
    """Row-major int8 costs: 0 free, `invisible_cost` hidden, `occupied_cost` occupied."""

    @property
    def grid(self) -> np.ndarray:
        """The costs as a (height, width) array."""
        return self.data.reshape(self.metadata.height, self.metadata.width)

    def __hash__(self) -> int:
        return self.metadata.__hash__()


class Sensor(metaclass=abc.ABCMeta):
    """The sensor base class."""

    @abc.abstractmethod
    def teardown(self, **kwargs):
        """Clean up internal resources"""
        raise NotImplementedError

    @abc.abstractmethod
    def __call__(self, *args: Any, **kwds: Any) -> Any:
        raise NotImplementedError


class OccupancyGridSensor(Sensor):
    """A sensor that rasterizes the other entities around its entity.

    The grid is rebuilt at most once per `update_duration` of simulation time.
    """

    def __init__(
        self,
        entity_name: str,
        resolution: float,
        width: int,
        height: int,
        occupied_cost: int,
        invisible_cost: int,
        update_duration: float,
    ):
        self._log = logging.getLogger(self.__class__.__name__)
        self._entity_name = entity_name
        self._update_duration = update_duration
        self._builder = OccupancyGridBuilder(
            resolution, height, width, occupied_cost, invisible_cost
        )
        self._last_update_time: Optional[float] = None
        self._last_grid: Optional[OccupancyGrid] = None

    @classmethod
    def from_config(cls, entity_name: str, config, **overrides) -> OccupancyGridSensor:
        """A sensor set up from the `[sensor]` section of an engine configuration."""
        casts = dict(
            resolution=float,
            width=int,
            height=int,
            occupied_cost=int,
            invisible_cost=int,
            update_duration=float,
        )
        kwargs = {
            name: overrides[name]
            if overrides.get(name) is not None
            else config("sensor", name, cast=cast)
            for name, cast in casts.items()
        }
        return cls(entity_name, **kwargs)

    @property
    def entity_name(self) -> str:
        """The entity carrying the sensor."""
        return self._entity_name

    @property
    def last_grid(self) -> Optional[OccupancyGrid]:
        """The most recent grid."""
        return self._last_grid

    def _field(self, origin: Pose) -> Polygon:
        realw, realh = self._builder.half_extents
        return BoundingBox(Dimensions(2 * realw, 2 * realh, 0)).polygon(origin)

    def __call__(
        self, current_time: float, statuses: Mapping[str, EntityStatus]
    ) -> Optional[OccupancyGrid]:
        """Rebuild the grid if it is due. Returns the new grid or `None`."""
        if (
            self._last_update_time is not None
            and current_time - self._last_update_time < self._update_duration - 1e-9
        ):
            return None
        origin = statuses[self._entity_name].pose
        field = self._field(origin)
        builder = self._builder
        builder.reset(origin)
        for name in sorted(statuses):
            if name == self._entity_name:
                continue
            box = Box.from_status(statuses[name])
            # Obstacles outside the field cannot hide anything inside it.
            if box.polygon().intersects(field):
                builder.add(box)
        builder.build()

        self._last_update_time = current_time
        self._last_grid = OccupancyGrid(
            metadata=GridMapMetadata(
                created_at=current_time,
                resolution=builder.resolution,
                width=builder.width,
                height=builder.height,
                origin=origin.copy(),
            ),
            data=builder.get(),
        )
        self._log.debug(
            "Built grid for `%s` from %d primitives",
            self._entity_name,
            builder.primitive_count,
        )
        return self._last_grid

    def teardown(self, **kwargs):
        self._last_grid = None
        self._last_update_time = None
