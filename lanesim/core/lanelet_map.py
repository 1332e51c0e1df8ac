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

import heapq
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import numpy as np
import yaml
from cached_property import cached_property
from shapely.geometry import CAP_STYLE, JOIN_STYLE, LineString, Polygon
from shapely.geometry.base import BaseGeometry

from .coordinates import Heading, LaneletPose, Pose
from .entity_status import BoundingBox
from .spline import TrajectorySpline
from .utils.custom_exceptions import LaneletMapError
from .utils.math import min_angles_difference_signed

logger = logging.getLogger(__name__)


class LaneChangeDirection(Enum):
    """The side to move to when changing lanes."""

    LEFT = "left"
    RIGHT = "right"

    @classmethod
    def from_str(cls, value: str) -> LaneChangeDirection:
        """Strict conversion from a direction name."""
        try:
            return cls(value.lower())
        except ValueError as e:
            raise ValueError(f"Unknown lane change direction `{value}`") from e


class LaneletMap:
    """The road-network interface the simulation core consumes.

    Lanelets are directed lane segments identified by integer ids; positions
    along them are arc lengths `s` measured from the start of their centerline.
    """

    @property
    def source(self) -> str:
        """Path to the map source or an empty string."""
        raise NotImplementedError()

    def lanelet_ids(self) -> List[int]:
        """All lanelet ids, sorted."""
        raise NotImplementedError()

    def has_lanelet(self, lanelet_id: int) -> bool:
        """Whether the lanelet exists."""
        raise NotImplementedError()

    def lanelet_length(self, lanelet_id: int) -> float:
        """The length of the lanelet centerline."""
        raise NotImplementedError()

    def successors(self, lanelet_id: int) -> List[int]:
        """Lanelets that can be entered from the end of this one, in preference order."""
        raise NotImplementedError()

    def longitudinal_distance(
        self, from_id: int, from_s: float, to_id: int, to_s: float
    ) -> Optional[float]:
        """The distance travelled along the lane graph from one lanelet position
        to the other, following the direction of travel. `None` if unreachable."""
        raise NotImplementedError()

    def route(self, from_id: int, to_id: int) -> List[int]:
        """The shortest sequence of lanelets from `from_id` to `to_id`, both
        included. Empty if unreachable."""
        raise NotImplementedError()

    def following_lanelets(
        self, lanelet_id: int, distance: float, include_self: bool = True
    ) -> List[int]:
        """Lanelets ahead of `lanelet_id` covering at least `distance` meters."""
        raise NotImplementedError()

    def center_points(self, lanelet_ids: Sequence[int]) -> np.ndarray:
        """The concatenated centerline points of consecutive lanelets."""
        raise NotImplementedError()

    def lanelet_polygon(self, lanelet_id: int) -> Polygon:
        """The lanelet's drivable area."""
        raise NotImplementedError()

    def speed_limit(self, lanelet_ids: Sequence[int]) -> Optional[float]:
        """The lowest speed limit on the lanelets, or `None` if unrestricted."""
        raise NotImplementedError()

    def lane_changeable_lanelet_id(
        self, lanelet_id: int, direction: LaneChangeDirection
    ) -> Optional[int]:
        """The neighbouring lanelet a lane change in `direction` would reach."""
        raise NotImplementedError()

    def conflicting_lanelet_ids(self, lanelet_ids: Iterable[int]) -> Set[int]:
        """Lanelets that geometrically conflict with any of `lanelet_ids`."""
        raise NotImplementedError()

    def right_of_way_lanelet_ids(self, lanelet_ids: Iterable[int]) -> Set[int]:
        """Lanelets whose traffic has priority over traffic on `lanelet_ids`."""
        raise NotImplementedError()

    def stop_line_ids_on_route(self, lanelet_ids: Iterable[int]) -> List[int]:
        """Stop lines placed on the given lanelets."""
        raise NotImplementedError()

    def stop_line_polygon(self, stop_line_id: int) -> BaseGeometry:
        """The stop line geometry."""
        raise NotImplementedError()

    def traffic_light_ids_on_route(self, lanelet_ids: Iterable[int]) -> List[int]:
        """Traffic lights controlling the given lanelets."""
        raise NotImplementedError()

    def traffic_light_ids(self) -> List[int]:
        """All traffic light ids."""
        raise NotImplementedError()

    def traffic_light_stop_line_ids(self, traffic_light_id: int) -> List[int]:
        """The ids of the stop lines a traffic light governs."""
        raise NotImplementedError()

    def traffic_light_stop_line_polygons(
        self, traffic_light_id: int
    ) -> List[BaseGeometry]:
        """The stop lines a traffic light governs."""
        return [
            self.stop_line_polygon(i)
            for i in self.traffic_light_stop_line_ids(traffic_light_id)
        ]

    def crosswalk_ids(self, lanelet_ids: Optional[Iterable[int]] = None) -> List[int]:
        """Crosswalks crossing the given lanelets, or all crosswalks."""
        raise NotImplementedError()

    def crosswalk_polygon(self, crosswalk_id: int) -> Polygon:
        """The crosswalk area."""
        raise NotImplementedError()

    def to_map_pose(self, lanelet_pose: LaneletPose) -> Pose:
        """Convert a lanelet pose to a world pose facing along the lanelet."""
        raise NotImplementedError()

    def to_lanelet_pose(
        self,
        pose: Pose,
        bounding_box: Optional[BoundingBox] = None,
        preferred_ids: Sequence[int] = (),
        max_heading_difference: float = math.pi / 2,
    ) -> Optional[LaneletPose]:
        """Project a world pose onto the lane graph. `None` if the pose is off-road."""
        raise NotImplementedError()


@dataclass
class _Lanelet:
    id: int
    centerline: np.ndarray
    width: float
    successors: List[int] = field(default_factory=list)
    left: Optional[int] = None
    right: Optional[int] = None
    speed_limit: Optional[float] = None

    def __post_init__(self):
        self.spline = TrajectorySpline(self.centerline)
        self.centerline = self.spline.points

    @cached_property
    def polygon(self) -> Polygon:
        return self.spline.linestring.buffer(
            self.width / 2,
            1,
            cap_style=CAP_STYLE.flat,
            join_style=JOIN_STYLE.round,
            mitre_limit=5.0,
        )


@dataclass
class _StopLine:
    id: int
    lanelet_id: int
    geometry: LineString


@dataclass
class _Crosswalk:
    id: int
    polygon: Polygon
    lanelet_ids: Set[int]


class GraphLaneletMap(LaneletMap):
    """An in-memory lane graph built from centerline polylines.

    The description is a mapping with the keys `lanelets`, and optionally
    `conflicts`, `right_of_way`, `stop_lines`, `traffic_lights` and
    `crosswalks`::

        lanelets:
          - {id: 1, centerline: [[0, 0], [100, 0]], width: 3.5, successors: [2], left: 3}
        conflicts: [[1, 7]]
        right_of_way: [{lanelet: 1, yield_to: [7]}]
        stop_lines: [{id: 100, lanelet: 1, points: [[95, -2], [95, 2]]}]
        traffic_lights: [{id: 200, stop_lines: [100]}]
        crosswalks: [{id: 300, lanelets: [2], polygon: [[...], ...]}]
    """

    DEFAULT_LANE_WIDTH = 3.5

    def __init__(self, description: Mapping[str, Any], source: str = ""):
        self._source = source
        self._log = logging.getLogger(self.__class__.__name__)
        self._lanelets: Dict[int, _Lanelet] = {}
        self._conflicts: Dict[int, Set[int]] = {}
        self._right_of_way: Dict[int, Set[int]] = {}
        self._stop_lines: Dict[int, _StopLine] = {}
        self._traffic_lights: Dict[int, List[int]] = {}
        self._crosswalks: Dict[int, _Crosswalk] = {}
        self._load(description)

    @classmethod
    def from_dict(cls, description: Mapping[str, Any]) -> GraphLaneletMap:
        """Build a map from a parsed description."""
        return cls(description)

    @classmethod
    def from_yaml(cls, path: str) -> GraphLaneletMap:
        """Build a map from a YAML file."""
        with open(path, "r") as f:
            description = yaml.safe_load(f)
        if not isinstance(description, Mapping):
            raise LaneletMapError(f"{path} does not contain a lanelet map")
        return cls(description, source=path)

    def _load(self, description: Mapping[str, Any]):
        try:
            for entry in description["lanelets"]:
                lanelet = _Lanelet(
                    id=int(entry["id"]),
                    centerline=np.asarray(entry["centerline"], dtype=np.float64),
                    width=float(entry.get("width", self.DEFAULT_LANE_WIDTH)),
                    successors=[int(s) for s in entry.get("successors", [])],
                    left=_optional_int(entry.get("left")),
                    right=_optional_int(entry.get("right")),
                    speed_limit=entry.get("speed_limit"),
                )
                if lanelet.id in self._lanelets:
                    raise LaneletMapError(f"Duplicate lanelet id {lanelet.id}")
                if lanelet.spline.length <= 0:
                    raise LaneletMapError(f"Lanelet {lanelet.id} has no length")
                self._lanelets[lanelet.id] = lanelet

            for a, b in description.get("conflicts", []):
                self._conflicts.setdefault(int(a), set()).add(int(b))
                self._conflicts.setdefault(int(b), set()).add(int(a))

            for entry in description.get("right_of_way", []):
                self._right_of_way.setdefault(int(entry["lanelet"]), set()).update(
                    int(i) for i in entry["yield_to"]
                )

            for entry in description.get("stop_lines", []):
                stop_line = _StopLine(
                    id=int(entry["id"]),
                    lanelet_id=int(entry["lanelet"]),
                    geometry=LineString(
                        [(p[0], p[1]) for p in entry["points"]]
                    ),
                )
                self._stop_lines[stop_line.id] = stop_line

            for entry in description.get("traffic_lights", []):
                self._traffic_lights[int(entry["id"])] = [
                    int(i) for i in entry.get("stop_lines", [])
                ]

            for entry in description.get("crosswalks", []):
                crosswalk = _Crosswalk(
                    id=int(entry["id"]),
                    polygon=Polygon([(p[0], p[1]) for p in entry["polygon"]]),
                    lanelet_ids={int(i) for i in entry.get("lanelets", [])},
                )
                self._crosswalks[crosswalk.id] = crosswalk
        except LaneletMapError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise LaneletMapError(f"Malformed lanelet map: {e!r}") from e

        self._validate()
        self._log.debug(
            "Loaded %d lanelets, %d stop lines, %d traffic lights, %d crosswalks",
            len(self._lanelets),
            len(self._stop_lines),
            len(self._traffic_lights),
            len(self._crosswalks),
        )

    def _validate(self):
        def check(lanelet_id, what):
            if lanelet_id is not None and lanelet_id not in self._lanelets:
                raise LaneletMapError(f"{what} refers to unknown lanelet {lanelet_id}")

        for lanelet in self._lanelets.values():
            for succ in lanelet.successors:
                check(succ, f"Lanelet {lanelet.id} successor")
            check(lanelet.left, f"Lanelet {lanelet.id} left neighbour")
            check(lanelet.right, f"Lanelet {lanelet.id} right neighbour")
        for lanelet_id, others in self._conflicts.items():
            for other in (lanelet_id, *others):
                check(other, "Conflict")
        for stop_line in self._stop_lines.values():
            check(stop_line.lanelet_id, f"Stop line {stop_line.id}")
        for light_id, stop_line_ids in self._traffic_lights.items():
            for stop_line_id in stop_line_ids:
                if stop_line_id not in self._stop_lines:
                    raise LaneletMapError(
                        f"Traffic light {light_id} refers to unknown "
                        f"stop line {stop_line_id}"
                    )

    def _lanelet(self, lanelet_id: int) -> _Lanelet:
        lanelet = self._lanelets.get(lanelet_id)
        if lanelet is None:
            raise LaneletMapError(f"Unknown lanelet {lanelet_id}")
        return lanelet

    @property
    def source(self) -> str:
        return self._source

    def lanelet_ids(self) -> List[int]:
        return sorted(self._lanelets)

    def has_lanelet(self, lanelet_id: int) -> bool:
        return lanelet_id in self._lanelets

    def lanelet_length(self, lanelet_id: int) -> float:
        return self._lanelet(lanelet_id).spline.length

    def successors(self, lanelet_id: int) -> List[int]:
        return list(self._lanelet(lanelet_id).successors)

    def _search(self, from_id: int) -> Tuple[Dict[int, float], Dict[int, int]]:
        """Dijkstra over successor edges. Distances are measured from the end
        of `from_id` to the start of each reachable lanelet."""
        dist: Dict[int, float] = {}
        prev: Dict[int, int] = {}
        queue: List[Tuple[float, int, int]] = []
        for succ in self._lanelet(from_id).successors:
            heapq.heappush(queue, (0.0, succ, from_id))
        while queue:
            d, lanelet_id, parent = heapq.heappop(queue)
            if lanelet_id in dist:
                continue
            dist[lanelet_id] = d
            prev[lanelet_id] = parent
            length = self._lanelets[lanelet_id].spline.length
            for succ in self._lanelets[lanelet_id].successors:
                if succ not in dist:
                    heapq.heappush(queue, (d + length, succ, lanelet_id))
        return dist, prev

    def longitudinal_distance(
        self, from_id: int, from_s: float, to_id: int, to_s: float
    ) -> Optional[float]:
        if from_id == to_id and to_s >= from_s:
            return to_s - from_s
        dist, _ = self._search(from_id)
        if to_id not in dist:
            return None
        return self.lanelet_length(from_id) - from_s + dist[to_id] + to_s

    def route(self, from_id: int, to_id: int) -> List[int]:
        if from_id == to_id:
            return [from_id]
        _, prev = self._search(from_id)
        if to_id not in prev:
            return []
        path = [to_id]
        while path[-1] != from_id:
            path.append(prev[path[-1]])
        return list(reversed(path))

    def following_lanelets(
        self, lanelet_id: int, distance: float, include_self: bool = True
    ) -> List[int]:
        lanelet = self._lanelet(lanelet_id)
        result = [lanelet_id] if include_self else []
        total = lanelet.spline.length if include_self else 0.0
        while total < distance and lanelet.successors:
            lanelet = self._lanelets[lanelet.successors[0]]
            result.append(lanelet.id)
            total += lanelet.spline.length
        return result

    def center_points(self, lanelet_ids: Sequence[int]) -> np.ndarray:
        chunks = []
        for lanelet_id in lanelet_ids:
            points = self._lanelet(lanelet_id).centerline
            if chunks and np.allclose(chunks[-1][-1], points[0]):
                points = points[1:]
            chunks.append(points)
        if not chunks:
            return np.zeros((0, 3))
        return np.concatenate(chunks)

    def lanelet_polygon(self, lanelet_id: int) -> Polygon:
        return self._lanelet(lanelet_id).polygon

    def speed_limit(self, lanelet_ids: Sequence[int]) -> Optional[float]:
        limits = [
            float(self._lanelet(i).speed_limit)
            for i in lanelet_ids
            if self._lanelet(i).speed_limit is not None
        ]
        return min(limits) if limits else None

    def lane_changeable_lanelet_id(
        self, lanelet_id: int, direction: LaneChangeDirection
    ) -> Optional[int]:
        lanelet = self._lanelet(lanelet_id)
        if direction == LaneChangeDirection.LEFT:
            return lanelet.left
        return lanelet.right

    def conflicting_lanelet_ids(self, lanelet_ids: Iterable[int]) -> Set[int]:
        result: Set[int] = set()
        for lanelet_id in lanelet_ids:
            result |= self._conflicts.get(lanelet_id, set())
        return result

    def right_of_way_lanelet_ids(self, lanelet_ids: Iterable[int]) -> Set[int]:
        result: Set[int] = set()
        for lanelet_id in lanelet_ids:
            result |= self._right_of_way.get(lanelet_id, set())
        return result

    def stop_line_ids_on_route(self, lanelet_ids: Iterable[int]) -> List[int]:
        route = set(lanelet_ids)
        return sorted(
            s.id for s in self._stop_lines.values() if s.lanelet_id in route
        )

    def stop_line_polygon(self, stop_line_id: int) -> BaseGeometry:
        if stop_line_id not in self._stop_lines:
            raise LaneletMapError(f"Unknown stop line {stop_line_id}")
        return self._stop_lines[stop_line_id].geometry

    def traffic_light_ids_on_route(self, lanelet_ids: Iterable[int]) -> List[int]:
        stop_line_ids = set(self.stop_line_ids_on_route(lanelet_ids))
        return sorted(
            light_id
            for light_id, light_stop_lines in self._traffic_lights.items()
            if stop_line_ids.intersection(light_stop_lines)
        )

    def traffic_light_ids(self) -> List[int]:
        return sorted(self._traffic_lights)

    def traffic_light_stop_line_ids(self, traffic_light_id: int) -> List[int]:
        if traffic_light_id not in self._traffic_lights:
            raise LaneletMapError(f"Unknown traffic light {traffic_light_id}")
        return list(self._traffic_lights[traffic_light_id])

    def crosswalk_ids(self, lanelet_ids: Optional[Iterable[int]] = None) -> List[int]:
        if lanelet_ids is None:
            return sorted(self._crosswalks)
        route = set(lanelet_ids)
        return sorted(c.id for c in self._crosswalks.values() if c.lanelet_ids & route)

    def crosswalk_polygon(self, crosswalk_id: int) -> Polygon:
        if crosswalk_id not in self._crosswalks:
            raise LaneletMapError(f"Unknown crosswalk {crosswalk_id}")
        return self._crosswalks[crosswalk_id].polygon

    def to_map_pose(self, lanelet_pose: LaneletPose) -> Pose:
        spline = self._lanelet(lanelet_pose.lanelet_id).spline
        point = spline.point_at(lanelet_pose.s).as_np_array
        point[:2] += lanelet_pose.offset * spline.normal_at(lanelet_pose.s)
        return Pose.from_center(point, spline.heading_at(lanelet_pose.s))

    def to_lanelet_pose(
        self,
        pose: Pose,
        bounding_box: Optional[BoundingBox] = None,
        preferred_ids: Sequence[int] = (),
        max_heading_difference: float = math.pi / 2,
    ) -> Optional[LaneletPose]:
        position = pose.position[:2]
        # A footprint may hang over the lane edge while its origin stays on the road.
        matching_distance = (
            0.5 * bounding_box.dimensions.width if bounding_box is not None else 0.0
        )
        preferred = {lanelet_id: i for i, lanelet_id in enumerate(preferred_ids)}
        best = None
        for lanelet in self._lanelets.values():
            spline = lanelet.spline
            s = spline.s_of(pose.point)
            foot = spline.point_at(s).as_np_array[:2]
            tangent = spline.heading_at(s).direction_vector()
            delta = position - foot
            along = float(np.dot(delta, tangent))
            if (s <= 0 and along < -1e-6) or (s >= spline.length and along > 1e-6):
                continue
            offset = float(tangent[0] * delta[1] - tangent[1] * delta[0])
            if abs(offset) > 0.5 * lanelet.width + matching_distance:
                continue
            heading_difference = min_angles_difference_signed(
                pose.heading, spline.heading_at(s)
            )
            if abs(heading_difference) > max_heading_difference:
                continue
            rank = (
                preferred.get(lanelet.id, len(preferred)),
                round(abs(offset), 6),
                s >= spline.length,
                lanelet.id,
            )
            if best is None or rank < best[0]:
                best = (rank, LaneletPose(lanelet.id, s, offset))
        return best[1] if best is not None else None


def _optional_int(value) -> Optional[int]:
    return None if value is None else int(value)
