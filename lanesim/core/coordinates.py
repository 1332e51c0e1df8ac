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
from dataclasses import dataclass
from typing import Any, NamedTuple, Optional, SupportsFloat, Union

import numpy as np
from cached_property import cached_property
from shapely.geometry import Point as SPoint

from lanesim.core.utils.math import (
    fast_quaternion_from_angle,
    radians_to_vec,
    yaw_from_quaternion,
)


class Dimensions(NamedTuple):
    """Representation of the size of a 3-dimensional form."""

    length: float
    width: float
    height: float


class Point(NamedTuple):
    """A coordinate in space."""

    x: float
    y: float
    z: Optional[float] = 0

    @classmethod
    def from_np_array(cls, np_array: np.ndarray):
        """Factory for constructing a Point object from a numpy array."""
        assert 2 <= len(np_array) <= 3
        z = np_array[2] if len(np_array) > 2 else 0.0
        return cls(float(np_array[0]), float(np_array[1]), float(z))

    @property
    def as_np_array(self) -> np.ndarray:
        """Convert this Point to a numpy array."""
        return np.array((self.x, self.y, self.z), dtype=np.float64)

    @property
    def as_shapely(self) -> SPoint:
        """Use with caution! Convert this point to a 2D shapely point."""
        # Shapely Point construction is expensive!
        return SPoint((self.x, self.y))


class LaneletPose(NamedTuple):
    """A lane-relative coordinate.

    Also known as the Frenet coordinate system of the lanelet centerline.
    """

    lanelet_id: int
    s: float  # offset along the lanelet centerline from its start
    offset: float = 0.0  # lateral displacement from the centerline, positive to the left


class Heading(float):
    """In this space we use radians, 0 is facing +x (east), and turn counter-clockwise."""

    def __init__(self, value=...):
        float.__init__(value)

    def __new__(self, x: Union[SupportsFloat, Ellipsis.__class__] = ...):
        """A override to constrain heading to -pi to pi"""
        value = x
        if isinstance(value, (int, float)):
            value = value % (2 * math.pi)
            if value > math.pi:
                value -= 2 * math.pi
        if x in {..., None}:
            value = 0
        return float.__new__(self, value)

    def relative_to(self, other: "Heading"):
        """
        Computes the relative heading w.r.t. the given heading
        >>> Heading(math.pi/4).relative_to(Heading(math.pi))
        Heading(-2.356194490192345)
        """
        assert isinstance(other, Heading)

        rel_heading = Heading(self - other)

        assert -math.pi <= rel_heading <= math.pi, f"{rel_heading}"

        return Heading(rel_heading)

    def direction_vector(self):
        """Convert to a 2D directional vector that aligns with Cartesian Coordinate System"""
        return radians_to_vec(self)

    def __repr__(self):
        return f"Heading({super().__repr__()})"


@dataclass
class Pose:
    """A pair of position and orientation values."""

    position: np.ndarray  # [x, y, z]
    """Origin of the entity."""
    orientation: np.ndarray  # [a, b, c, d] -> a + bi + cj + dk = 0
    heading_: Optional[Heading] = None  # cached heading to avoid recomputing

    def __post_init__(self):
        if not isinstance(self.position, np.ndarray):
            self.position = np.array(self.position, dtype=np.float64)
        assert len(self.position) <= 3
        if len(self.position) < 3:
            self.position = np.resize(self.position, 3)
            self.position[2] = 0
        self.position = self.position.astype(np.float64)
        assert len(self.orientation) == 4
        if not isinstance(self.orientation, np.ndarray):
            self.orientation = np.array(self.orientation, dtype=np.float64)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Pose):
            return False
        return (self.position == other.position).all() and (
            self.orientation == other.orientation
        ).all()

    def __hash__(self):
        return hash((*self.position, *self.orientation))

    @cached_property
    def point(self) -> Point:
        """The positional value of this pose as a point."""
        return Point(*(float(v) for v in self.position))

    @classmethod
    def from_center(cls, base_position, heading: Heading):
        """Convert from centred location

        Args:
            base_position: The center of the object's bounds
            heading: The heading of the object
        """
        if not isinstance(heading, Heading):
            heading = Heading(heading)

        position = np.array([*base_position, 0][:3], dtype=np.float64)
        orientation = fast_quaternion_from_angle(heading)

        return cls(
            position=position,
            orientation=orientation,
            heading_=heading,
        )

    @property
    def heading(self) -> Heading:
        """The heading value converted from orientation."""

        if self.heading_ is None:
            yaw = yaw_from_quaternion(self.orientation)
            self.heading_ = Heading(yaw)

        return self.heading_

    def copy(self) -> "Pose":
        """A copy that shares no arrays with this pose."""
        return Pose(
            position=np.copy(self.position),
            orientation=np.copy(self.orientation),
            heading_=self.heading_,
        )

    @classmethod
    def origin(cls):
        """Pose at the origin coordinate of the map."""
        return cls(np.repeat([0.0], 3), np.array([0, 0, 0, 1.0]))
