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
"""Stateless geometric and lane-graph queries between entities."""
import math
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import numpy as np
from shapely.geometry.base import BaseGeometry

from .coordinates import Heading, LaneletPose, Point, Pose
from .entity_status import EntityStatus
from .lanelet_map import LaneletMap
from .spline import TrajectorySpline
from .utils.math import position_to_ego_frame


def longitudinal_distance(
    lanelet_map: LaneletMap,
    from_pose: LaneletPose,
    to_pose: LaneletPose,
    max_distance: float = math.inf,
) -> Optional[float]:
    """The signed distance along the lane graph from `from_pose` to `to_pose`.

    The forward distance (`from` to `to`) and the backward distance (`to` to
    `from`) are both looked up and discarded when longer than `max_distance`.
    The shorter survivor wins; a backward distance is returned negated since
    `to_pose` is then behind `from_pose`. `None` if neither is in range.
    """
    forward = lanelet_map.longitudinal_distance(
        from_pose.lanelet_id, from_pose.s, to_pose.lanelet_id, to_pose.s
    )
    backward = lanelet_map.longitudinal_distance(
        to_pose.lanelet_id, to_pose.s, from_pose.lanelet_id, from_pose.s
    )
    if forward is not None and forward > max_distance:
        forward = None
    if backward is not None and backward > max_distance:
        backward = None
    if forward is not None and backward is not None:
        return forward if forward <= backward else -backward
    if forward is not None:
        return forward
    if backward is not None:
        return -backward
    return None


def entity_longitudinal_distance(
    lanelet_map: LaneletMap,
    from_status: EntityStatus,
    to_status: EntityStatus,
    max_distance: float = math.inf,
) -> Optional[float]:
    """`longitudinal_distance` between two entities; `None` unless both are on the lane graph."""
    if not (from_status.lanelet_pose_valid and to_status.lanelet_pose_valid):
        return None
    return longitudinal_distance(
        lanelet_map, from_status.lanelet_pose, to_status.lanelet_pose, max_distance
    )


def bounding_box_distance(a: EntityStatus, b: EntityStatus) -> Optional[float]:
    """The 2D distance between the two entities' footprints; 0 when they touch."""
    poly_a, poly_b = a.polygon, b.polygon
    if poly_a.is_empty or poly_b.is_empty:
        return None
    return float(poly_a.distance(poly_b))


def check_collision_2d(a: EntityStatus, b: EntityStatus) -> bool:
    """Whether the two entities' footprints intersect."""
    return bool(a.polygon.intersects(b.polygon))


def conflicting_entities(
    lanelet_map: LaneletMap,
    following_lanelets: Iterable[int],
    statuses: Mapping[str, EntityStatus],
    relation: Optional[Callable[[Iterable[int]], Set[int]]] = None,
) -> List[EntityStatus]:
    """Entities standing on lanelets related to `following_lanelets`, sorted by name.

    The relation defaults to the map's geometric conflict relation.
    """
    if relation is None:
        relation = lanelet_map.conflicting_lanelet_ids
    related = relation(list(following_lanelets))
    if not related:
        return []
    return [
        statuses[name]
        for name in sorted(statuses)
        if statuses[name].lanelet_pose_valid
        and statuses[name].lanelet_pose.lanelet_id in related
    ]


def relative_pose(from_pose: Pose, to_pose: Pose) -> Pose:
    """`to_pose` expressed in the frame of `from_pose`."""
    position = position_to_ego_frame(
        to_pose.position, from_pose.position, from_pose.heading
    )
    heading = Heading(to_pose.heading).relative_to(Heading(from_pose.heading))
    return Pose.from_center(position, heading)


def preview_spline(
    lanelet_map: LaneletMap,
    lanelet_ids: Sequence[int],
    s: float,
    horizon: float,
    resolution: float,
) -> Tuple[List[Point], TrajectorySpline]:
    """Sample `horizon` meters of centerline ahead of arc length `s` on the
    first of `lanelet_ids`. Returns the waypoints and the spline through them."""
    route = TrajectorySpline(lanelet_map.center_points(lanelet_ids))
    waypoints = route.trajectory(s, s + horizon, resolution)
    return waypoints, TrajectorySpline(waypoints)


def distance_to_polygon_along_spline(
    spline: TrajectorySpline, geometry: BaseGeometry
) -> Optional[float]:
    """Arc length along `spline` at which it first meets `geometry`."""
    return spline.collision_point_2d(geometry)


def distance_to_entity_along_spline(
    spline: TrajectorySpline, status: EntityStatus
) -> Optional[float]:
    """Arc length along `spline` at which it first meets the entity's footprint."""
    return spline.collision_point_2d(status.polygon)


def euclidean_distance(a: Pose, b: Pose) -> float:
    """The 3D distance between the two pose origins."""
    return float(np.linalg.norm(a.position - b.position))
