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
import copy
from typing import Any, Dict, Optional

from lanesim.core.coordinates import Dimensions, LaneletPose
from lanesim.core.entity_status import (
    ActionStatus,
    BoundingBox,
    EntityStatus,
    EntityType,
    Twist,
)
from lanesim.core.lanelet_map import GraphLaneletMap

VEHICLE_BOX = BoundingBox(Dimensions(length=4.0, width=2.0, height=1.5))
PEDESTRIAN_BOX = BoundingBox(Dimensions(length=0.5, width=0.5, height=1.8))

# Two parallel eastbound lanes, 1 -> 2 on the right and 3 -> 4 on the left,
# crossed at x=150 by the northbound lanelet 10.
_ROAD = {
    "lanelets": [
        {
            "id": 1,
            "centerline": [[0, 0], [50, 0], [100, 0]],
            "successors": [2],
            "left": 3,
        },
        {"id": 2, "centerline": [[100, 0], [200, 0]], "left": 4},
        {
            "id": 3,
            "centerline": [[0, 3.5], [100, 3.5]],
            "successors": [4],
            "right": 1,
        },
        {"id": 4, "centerline": [[100, 3.5], [200, 3.5]], "right": 2},
        {"id": 10, "centerline": [[150, -50], [150, 50]]},
    ],
    "conflicts": [[2, 10], [4, 10]],
}


def road_description(**extras: Any) -> Dict[str, Any]:
    """The two-lane road with extra top-level entries merged in."""
    description = copy.deepcopy(_ROAD)
    description.update(copy.deepcopy(extras))
    return description


def road_map(**extras: Any) -> GraphLaneletMap:
    """The two-lane road as a map."""
    return GraphLaneletMap.from_dict(road_description(**extras))


def ring_map(length: float = 100.0) -> GraphLaneletMap:
    """Two straight lanelets joined end to end in both directions, so every
    position is reachable from every other."""
    return GraphLaneletMap.from_dict(
        {
            "lanelets": [
                {"id": 1, "centerline": [[0, 0], [length, 0]], "successors": [2]},
                {"id": 2, "centerline": [[length, 0], [0, 0]], "successors": [1]},
            ]
        }
    )


def status_on_lane(
    lanelet_map: GraphLaneletMap,
    name: str,
    lanelet_pose: LaneletPose,
    speed: float = 0.0,
    entity_type: EntityType = EntityType.VEHICLE,
    bounding_box: Optional[BoundingBox] = None,
) -> EntityStatus:
    """A status placed on the map at `lanelet_pose`."""
    return EntityStatus(
        name=name,
        type=entity_type,
        pose=lanelet_map.to_map_pose(lanelet_pose),
        bounding_box=bounding_box or VEHICLE_BOX,
        action_status=ActionStatus(twist=Twist(linear=speed)),
        lanelet_pose=lanelet_pose,
        lanelet_pose_valid=True,
    )
