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
from helpers.maps import PEDESTRIAN_BOX, road_map, status_on_lane

from lanesim.core.behavior import (
    BehaviorInput,
    BehaviorKind,
    BehaviorStatus,
    CruiseBehavior,
    ExternalBehavior,
    LaneChangeBehavior,
    LaneFollowingBehavior,
    Request,
    WalkStraightBehavior,
    YieldBehavior,
    run_first_applicable,
)
from lanesim.core.coordinates import Heading, LaneletPose, Pose
from lanesim.core.entity import VehicleEntity
from lanesim.core.entity_status import (
    DEFAULT_CONSTRAINTS,
    ActionStatus,
    DriverModel,
    EntityStatus,
    EntityType,
    ObstacleType,
    Twist,
)
from lanesim.core.traffic_lights import TrafficLightColor
from lanesim.core.utils.custom_exceptions import BehaviorTreeRuntimeError

STOP_LINE = {"id": 100, "lanelet": 1, "points": [[40, -2], [40, 2]]}
TRAFFIC_LIGHT = {"id": 200, "stop_lines": [100]}
CROSSWALK = {
    "id": 300,
    "lanelets": [1],
    "polygon": [[40, -3], [45, -3], [45, 7], [40, 7]],
}


def make_inputs(lanelet_map, status, route=(1, 2), **kwargs):
    return BehaviorInput(
        current_time=0.0,
        step_time=0.1,
        status=status,
        lanelet_map=lanelet_map,
        route_lanelets=list(route),
        **kwargs,
    )


def test_follow_lane_on_a_free_road():
    lanelet_map = road_map()
    status = status_on_lane(lanelet_map, "car", LaneletPose(1, 10), speed=10)
    outcome = LaneFollowingBehavior().run(make_inputs(lanelet_map, status))

    assert outcome.state == BehaviorStatus.SUCCESS
    assert outcome.obstacle is None
    assert outcome.status.pose.position[0] == pytest.approx(11)
    assert outcome.status.speed == pytest.approx(10)
    assert outcome.status.time == pytest.approx(0.1)
    assert outcome.status.action_status.current_action == "follow_lane"
    assert len(outcome.waypoints) == 51
    assert outcome.waypoints[0].x == pytest.approx(10)
    # The input status is left untouched.
    assert status.pose.position[0] == pytest.approx(10)


def test_follow_lane_keeps_lateral_offset():
    lanelet_map = road_map()
    status = status_on_lane(lanelet_map, "car", LaneletPose(1, 10, 0.5), speed=10)
    outcome = LaneFollowingBehavior().run(make_inputs(lanelet_map, status))
    assert outcome.status.pose.position[:2] == pytest.approx([11, 0.5])


def test_follow_lane_accelerates_to_target_speed():
    lanelet_map = road_map()
    status = status_on_lane(lanelet_map, "car", LaneletPose(1, 10), speed=10)
    outcome = LaneFollowingBehavior().run(
        make_inputs(lanelet_map, status, target_speed=12)
    )
    assert outcome.status.speed == pytest.approx(11)
    assert outcome.status.action_status.accel.linear == pytest.approx(10)


def test_stop_line_ahead():
    lanelet_map = road_map(stop_lines=[STOP_LINE])
    status = status_on_lane(lanelet_map, "car", LaneletPose(1, 10), speed=10)
    outcome = LaneFollowingBehavior().run(
        make_inputs(lanelet_map, status, target_speed=20)
    )

    assert outcome.state == BehaviorStatus.RUNNING
    assert outcome.obstacle.type == ObstacleType.STEP
    assert outcome.obstacle.s == pytest.approx(30)
    # Far enough away to keep going, but not to speed up.
    assert outcome.status.speed == pytest.approx(10)
    assert outcome.status.action_status.accel.linear == pytest.approx(0)


def test_stop_line_close_brakes():
    lanelet_map = road_map(stop_lines=[STOP_LINE])
    status = status_on_lane(lanelet_map, "car", LaneletPose(1, 30), speed=10)
    outcome = LaneFollowingBehavior().run(make_inputs(lanelet_map, status))

    assert outcome.state == BehaviorStatus.RUNNING
    assert outcome.obstacle.s == pytest.approx(10)
    assert outcome.status.speed == pytest.approx(9)
    assert outcome.status.action_status.accel.linear == pytest.approx(-10)


def test_stop_line_past_the_margin_stops():
    lanelet_map = road_map(stop_lines=[STOP_LINE])
    status = status_on_lane(lanelet_map, "car", LaneletPose(1, 34), speed=0.5)
    outcome = LaneFollowingBehavior().run(make_inputs(lanelet_map, status))
    assert outcome.status.speed == pytest.approx(0)


@pytest.mark.parametrize(
    "color, stops",
    [
        (TrafficLightColor.RED, True),
        (TrafficLightColor.YELLOW, True),
        (TrafficLightColor.GREEN, False),
        (TrafficLightColor.NONE, False),
    ],
)
def test_traffic_light_stop_line(color, stops):
    lanelet_map = road_map(stop_lines=[STOP_LINE], traffic_lights=[TRAFFIC_LIGHT])
    status = status_on_lane(lanelet_map, "car", LaneletPose(1, 10), speed=10)
    outcome = LaneFollowingBehavior().run(
        make_inputs(lanelet_map, status, traffic_lights={200: color})
    )
    if stops:
        assert outcome.state == BehaviorStatus.RUNNING
        assert outcome.obstacle.type == ObstacleType.STEP
        assert outcome.obstacle.s == pytest.approx(30)
    else:
        assert outcome.state == BehaviorStatus.SUCCESS
        assert outcome.obstacle is None


def test_occupied_crosswalk():
    lanelet_map = road_map(crosswalks=[CROSSWALK])
    status = status_on_lane(lanelet_map, "car", LaneletPose(1, 10), speed=10)
    walker = status_on_lane(
        lanelet_map,
        "walker",
        LaneletPose(3, 42),
        entity_type=EntityType.PEDESTRIAN,
        bounding_box=PEDESTRIAN_BOX,
    )

    empty = LaneFollowingBehavior().run(make_inputs(lanelet_map, status))
    assert empty.obstacle is None

    occupied = LaneFollowingBehavior().run(
        make_inputs(lanelet_map, status, other_statuses={"walker": walker})
    )
    assert occupied.state == BehaviorStatus.RUNNING
    assert occupied.obstacle.type == ObstacleType.ENTITY
    assert occupied.obstacle.s == pytest.approx(30)


def test_leading_vehicle():
    lanelet_map = road_map()
    status = status_on_lane(lanelet_map, "car", LaneletPose(1, 10), speed=10)
    leader = status_on_lane(lanelet_map, "leader", LaneletPose(1, 40))
    outcome = LaneFollowingBehavior().run(
        make_inputs(lanelet_map, status, other_statuses={"leader": leader})
    )
    assert outcome.obstacle.type == ObstacleType.ENTITY
    assert outcome.obstacle.s == pytest.approx(28)


def test_vehicle_in_the_next_lane_is_ignored():
    lanelet_map = road_map()
    status = status_on_lane(lanelet_map, "car", LaneletPose(1, 10), speed=10)
    other = status_on_lane(lanelet_map, "other", LaneletPose(3, 20))
    outcome = LaneFollowingBehavior().run(
        make_inputs(lanelet_map, status, other_statuses={"other": other})
    )
    assert outcome.state == BehaviorStatus.SUCCESS


def test_crossing_vehicle():
    lanelet_map = road_map()
    status = status_on_lane(lanelet_map, "car", LaneletPose(2, 20), speed=10)
    crossing = status_on_lane(lanelet_map, "crossing", LaneletPose(10, 50))
    outcome = LaneFollowingBehavior().run(
        make_inputs(
            lanelet_map, status, route=[2], other_statuses={"crossing": crossing}
        )
    )
    assert outcome.obstacle.type == ObstacleType.ENTITY
    assert outcome.obstacle.s == pytest.approx(29)


def test_yield_to_priority_traffic():
    lanelet_map = road_map(right_of_way=[{"lanelet": 2, "yield_to": [10]}])
    status = status_on_lane(lanelet_map, "car", LaneletPose(2, 20), speed=10)
    crossing = status_on_lane(lanelet_map, "crossing", LaneletPose(10, 10))
    inputs = make_inputs(
        lanelet_map, status, route=[2], other_statuses={"crossing": crossing}
    )

    assert not LaneFollowingBehavior().preconditions_met(inputs)
    assert YieldBehavior().preconditions_met(inputs)

    kind, outcome = run_first_applicable(VehicleEntity.behavior_kinds, inputs)
    assert kind == BehaviorKind.YIELD
    assert outcome.state == BehaviorStatus.RUNNING
    assert outcome.obstacle.type == ObstacleType.ENTITY
    # The near edge of the 3.5m wide priority lanelet.
    assert outcome.obstacle.s == pytest.approx(28.25)
    assert outcome.status.action_status.current_action == "yield"


def test_blind_driver_cruises():
    lanelet_map = road_map(stop_lines=[STOP_LINE])
    status = status_on_lane(lanelet_map, "car", LaneletPose(1, 30), speed=10)
    inputs = make_inputs(
        lanelet_map, status, driver_model=DriverModel(see_around=False)
    )
    assert not LaneFollowingBehavior().preconditions_met(inputs)
    assert CruiseBehavior().preconditions_met(inputs)

    kind, outcome = run_first_applicable(VehicleEntity.behavior_kinds, inputs)
    assert kind == BehaviorKind.CRUISE
    assert outcome.state == BehaviorStatus.SUCCESS
    assert outcome.obstacle is None
    assert outcome.status.speed == pytest.approx(10)


def test_off_lane_entity_fails():
    lanelet_map = road_map()
    status = status_on_lane(lanelet_map, "car", LaneletPose(1, 10), speed=10)
    status.lanelet_pose_valid = False
    inputs = make_inputs(lanelet_map, status)

    assert LaneFollowingBehavior().run(inputs).state == BehaviorStatus.FAILURE
    with pytest.raises(BehaviorTreeRuntimeError):
        LaneFollowingBehavior().tick(inputs)


def test_nothing_applies():
    lanelet_map = road_map()
    status = status_on_lane(lanelet_map, "car", LaneletPose(1, 10), speed=10)
    inputs = make_inputs(lanelet_map, status, request=Request.WALK_STRAIGHT)
    kind, outcome = run_first_applicable(VehicleEntity.behavior_kinds, inputs)
    assert kind == BehaviorKind.CRUISE
    assert outcome.state == BehaviorStatus.FAILURE
    assert outcome.status is status


def test_lane_change_drifts_toward_target():
    lanelet_map = road_map()
    status = status_on_lane(lanelet_map, "car", LaneletPose(1, 10), speed=10)
    inputs = make_inputs(
        lanelet_map, status, request=Request.LANE_CHANGE, lane_change_target=3
    )
    outcome = LaneChangeBehavior().run(inputs)

    assert outcome.state == BehaviorStatus.RUNNING
    assert outcome.request is None
    # 1m travelled at 3.5m of lateral shift per 20m.
    assert outcome.status.pose.position[:2] == pytest.approx([11, 0.175])
    assert outcome.status.pose.heading > 0
    assert outcome.waypoints[0].y == pytest.approx(3.5)


def test_lane_change_completes_on_target():
    lanelet_map = road_map()
    status = status_on_lane(lanelet_map, "car", LaneletPose(3, 10), speed=10)
    inputs = make_inputs(
        lanelet_map,
        status,
        route=[3, 4],
        request=Request.LANE_CHANGE,
        lane_change_target=3,
    )
    outcome = LaneChangeBehavior().run(inputs)
    assert outcome.state == BehaviorStatus.SUCCESS
    assert outcome.request == Request.FOLLOW_LANE


def test_lane_change_needs_a_request():
    lanelet_map = road_map()
    status = status_on_lane(lanelet_map, "car", LaneletPose(1, 10), speed=10)
    inputs = make_inputs(lanelet_map, status, lane_change_target=3)
    assert not LaneChangeBehavior().preconditions_met(inputs)


def test_walk_straight():
    pose = Pose.from_center((0, 0), Heading(math.pi / 2))
    status = EntityStatus(
        name="walker",
        type=EntityType.PEDESTRIAN,
        pose=pose,
        bounding_box=PEDESTRIAN_BOX,
        action_status=ActionStatus(twist=Twist(linear=1.0)),
    )
    inputs = BehaviorInput(
        current_time=0.0,
        step_time=1.0,
        status=status,
        lanelet_map=road_map(),
        target_speed=2.0,
        constraints=DEFAULT_CONSTRAINTS[EntityType.PEDESTRIAN],
    )
    outcome = WalkStraightBehavior().run(inputs)
    assert outcome.state == BehaviorStatus.SUCCESS
    assert outcome.status.speed == pytest.approx(2)
    assert outcome.status.pose.position[:2] == pytest.approx([0, 1.5])
    assert outcome.waypoints[0].y == pytest.approx(1.5)
    assert outcome.waypoints[1].y == pytest.approx(2.5)

    inputs.request = Request.FOLLOW_LANE
    assert not WalkStraightBehavior().preconditions_met(inputs)


def test_external_dead_reckons():
    status = EntityStatus(
        name="ego",
        type=EntityType.EGO,
        pose=Pose.origin(),
        bounding_box=PEDESTRIAN_BOX,
        action_status=ActionStatus(twist=Twist(linear=10.0, angular=0.0)),
    )
    inputs = BehaviorInput(
        current_time=1.0, step_time=0.1, status=status, lanelet_map=road_map()
    )
    outcome = ExternalBehavior().run(inputs)
    assert outcome.state == BehaviorStatus.SUCCESS
    assert outcome.status.pose.position[:2] == pytest.approx([1, 0])
    assert outcome.status.time == pytest.approx(1.1)
    assert outcome.status.action_status.current_action == "external"
