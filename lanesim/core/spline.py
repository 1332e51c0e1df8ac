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

import math
from typing import List, Optional, Sequence

import numpy as np
from cached_property import cached_property
from shapely.geometry import LineString
from shapely.geometry import Point as SPoint
from shapely.geometry.base import BaseGeometry

from .coordinates import Heading, Point
from .utils.math import get_linear_segments_for_range, polyline_lengths


class TrajectorySpline:
    """An arc-length parametrised curve through an ordered sequence of 3D points.

    Points along the curve are linearly interpolated between the control
    points. Queries outside `[0, length]` extrapolate along the first or last
    segment.
    """

    def __init__(self, points: Sequence[Sequence[float]]):
        pts = np.asarray(
            [(p[0], p[1], p[2] if len(p) > 2 else 0.0) for p in points],
            dtype=np.float64,
        ).reshape(-1, 3)
        if len(pts) > 1:
            keep = np.concatenate(
                ([True], np.linalg.norm(np.diff(pts, axis=0), axis=1) > 1e-9)
            )
            pts = pts[keep]
        self._points = pts
        self._cumulative, self._length = polyline_lengths(pts)

    @property
    def points(self) -> np.ndarray:
        """The control points, with consecutive duplicates removed."""
        return self._points

    @property
    def length(self) -> float:
        """The total arc length."""
        return self._length

    @property
    def empty(self) -> bool:
        """True if there is nothing to follow."""
        return len(self._points) == 0

    @cached_property
    def linestring(self) -> LineString:
        """The curve projected onto the xy plane."""
        return LineString(self._points[:, :2])

    def _segment(self, s: float) -> int:
        index = int(np.searchsorted(self._cumulative, s, side="right")) - 1
        return min(max(index, 0), len(self._points) - 2)

    def point_at(self, s: float) -> Point:
        """The point at arc length `s`."""
        assert not self.empty, "Cannot query an empty spline"
        if len(self._points) == 1:
            return Point.from_np_array(self._points[0])
        i = self._segment(s)
        start, end = self._points[i], self._points[i + 1]
        seglen = self._cumulative[i + 1] - self._cumulative[i]
        ratio = (s - self._cumulative[i]) / seglen
        return Point.from_np_array(start + ratio * (end - start))

    def heading_at(self, s: float) -> Heading:
        """The tangent direction at arc length `s`."""
        assert not self.empty, "Cannot query an empty spline"
        if len(self._points) == 1:
            return Heading(0)
        i = self._segment(s)
        delta = self._points[i + 1] - self._points[i]
        return Heading(math.atan2(delta[1], delta[0]))

    def normal_at(self, s: float) -> np.ndarray:
        """The unit vector 90 degrees counter-clockwise of the tangent at `s`."""
        heading = self.heading_at(s)
        return np.array((-math.sin(heading), math.cos(heading)))

    def trajectory(
        self, start_s: float, end_s: float, resolution: float
    ) -> List[Point]:
        """Points sampled every `resolution` meters from `start_s` to `end_s`.
        The end point is always included. Empty if the range is empty."""
        assert resolution > 0
        if self.empty or end_s <= start_s:
            return []
        samples = get_linear_segments_for_range(start_s, end_s, resolution)
        if end_s - samples[-1] > 1e-9:
            samples.append(end_s)
        return [self.point_at(s) for s in samples]

    def s_of(self, point: Point) -> float:
        """The arc length of the curve point nearest to `point` (2D)."""
        if len(self._points) < 2:
            return 0.0
        return float(self.linestring.project(point.as_shapely))

    def collision_point_2d(
        self, geometry: BaseGeometry, search_backward: bool = False
    ) -> Optional[float]:
        """The arc length at which the curve first meets `geometry` in 2D,
        or the last one if `search_backward`. `None` if they never meet."""
        if len(self._points) < 2 or geometry is None or geometry.is_empty:
            return None
        line = self.linestring
        if not line.intersects(geometry):
            return None
        intersection = line.intersection(geometry)
        candidates = [
            line.project(SPoint(coord[0], coord[1]))
            for coord in _coordinates(intersection)
        ]
        if not candidates:
            return None
        return float(max(candidates) if search_backward else min(candidates))


def _coordinates(geometry: BaseGeometry):
    if hasattr(geometry, "geoms"):
        for geom in geometry.geoms:
            yield from _coordinates(geom)
    elif hasattr(geometry, "exterior"):
        yield from geometry.exterior.coords
    else:
        yield from geometry.coords
