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
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence, Union

import psutil

from lanesim.sensor.occupancy_grid import OccupancyGrid, OccupancyGridSensor

from . import config
from .behavior import BehaviorSettings
from .coordinates import LaneletPose, Pose
from .entity import EntityBase, EntityStepResult
from .entity_status import (
    DriverModel,
    EntityStatus,
    EntityStatusWithTrajectory,
    EntityType,
    is_stopped,
)
from .lanelet_map import LaneChangeDirection, LaneletMap
from .spatial_queries import (
    bounding_box_distance,
    check_collision_2d,
    euclidean_distance,
    longitudinal_distance,
    preview_spline,
    relative_pose,
)
from .speed_change import (
    Constraint,
    RelativeTargetSpeed,
    SpeedChangeRequest,
    Transition,
)
from .traffic_lights import TrafficLightColor, TrafficLightManager, TrafficLightPhase
from .utils.custom_exceptions import EntityNotFoundError, SemanticError
from .utils.logging import set_verbose, timeit

logging.basicConfig(
    format="%(asctime)s.%(msecs)03d %(levelname)s: {%(module)s} %(message)s",
    datefmt="%Y-%m-%d,%H:%M:%S",
    level=logging.ERROR,
)

DEFAULT_QUERY_DISTANCE = 100.0


class EntityManager:
    """The registry of simulated entities and the scheduler that steps them.

    Every tick reads a snapshot of all statuses taken before any entity moves,
    so the outcome does not depend on the order entities are updated in. Entity
    updates share nothing but that snapshot and may run in parallel.

    Args:
        lanelet_map: The road network the entities move on.
        entity_update_workers: Threads used to update entities; 0 updates them
            serially and a negative value uses one per physical core. Read from
            the engine configuration if not given.
        verbose: Log per-tick timings. Read from the engine configuration if not given.
        behavior_settings: Tunables of the lane behaviors. Read from the engine
            configuration if not given.
    """

    def __init__(
        self,
        lanelet_map: LaneletMap,
        entity_update_workers: Optional[int] = None,
        verbose: Optional[bool] = None,
        behavior_settings: Optional[BehaviorSettings] = None,
    ):
        self._log = logging.getLogger(self.__class__.__name__)
        conf = config()
        self._lanelet_map = lanelet_map
        if entity_update_workers is None:
            entity_update_workers = conf("core", "entity_update_workers", cast=int)
        if entity_update_workers < 0:
            entity_update_workers = psutil.cpu_count(logical=False) or 1
        self._entity_update_workers = entity_update_workers
        self._verbose = (
            conf("core", "verbose", cast=bool) if verbose is None else verbose
        )
        set_verbose(self._verbose, self.__class__.__name__)
        self._behavior_settings = behavior_settings or BehaviorSettings.from_config(
            conf
        )

        self._entities: Dict[str, EntityBase] = {}
        self._traffic_lights = TrafficLightManager(lanelet_map.traffic_light_ids())
        self._traffic_light_colors = self._traffic_lights.colors()
        self._sensors: Dict[str, OccupancyGridSensor] = {}
        self._current_time = 0.0
        self._step_time = 0.0
        self._npc_logic_started = False
        self._last_status_array: List[EntityStatusWithTrajectory] = []
        self._executor: Optional[ThreadPoolExecutor] = None
        self._is_destroyed = False

    @property
    def lanelet_map(self) -> LaneletMap:
        """The road network."""
        return self._lanelet_map

    @property
    def behavior_settings(self) -> BehaviorSettings:
        """Tunables shared by every entity's behaviors."""
        return self._behavior_settings

    @property
    def traffic_light_colors(self) -> Dict[int, TrafficLightColor]:
        """Traffic light colors as of the start of the current tick."""
        return self._traffic_light_colors

    @property
    def traffic_lights(self) -> TrafficLightManager:
        """The traffic lights of the map."""
        return self._traffic_lights

    @property
    def last_status_array(self) -> List[EntityStatusWithTrajectory]:
        """The records emitted by the last tick, sorted by entity name."""
        return list(self._last_status_array)

    def destroy(self):
        """Release the worker threads."""
        if self._is_destroyed:
            return
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        for sensor in self._sensors.values():
            sensor.teardown()
        self._sensors.clear()
        self._is_destroyed = True

    def __del__(self):
        if not getattr(self, "_is_destroyed", True):
            self.destroy()

    # Registry

    def _entity(self, name: str) -> EntityBase:
        entity = self._entities.get(name)
        if entity is None:
            raise EntityNotFoundError.for_name(name)
        return entity

    def spawn(self, entity: EntityBase) -> EntityBase:
        """Register an entity and place it on the map.

        Raises:
            SemanticError: If the name is already taken.
        """
        if entity.name in self._entities:
            raise SemanticError(f"entity : {entity.name} is already exists.")
        entity.attach(self)
        self._entities[entity.name] = entity
        self._log.debug("Spawned %r", entity)
        return entity

    def despawn(self, name: str):
        """Remove an entity along with its sensors.

        Raises:
            EntityNotFoundError: If no entity has that name.
        """
        entity = self._entity(name)
        entity.detach()
        del self._entities[name]
        sensor = self._sensors.pop(name, None)
        if sensor is not None:
            sensor.teardown()
        for other in self._entities.values():
            other.set_other_status(
                {n: s for n, s in other.other_status.items() if n != name}
            )
        self._log.debug("Despawned `%s`", name)

    def entity_exists(self, name: str) -> bool:
        """Whether an entity has this name."""
        return name in self._entities

    def entity_names(self) -> List[str]:
        """All entity names, sorted."""
        return sorted(self._entities)

    def get_entity(self, name: str) -> EntityBase:
        """The entity with this name."""
        return self._entity(name)

    def get_entity_status(self, name: str) -> EntityStatus:
        """A copy of the entity's committed status."""
        return self._entity(name).status.copy()

    def get_entity_type_list(self) -> Dict[str, EntityType]:
        """The type of every entity, keyed by name."""
        return {name: self._entities[name].entity_type for name in self.entity_names()}

    def get_number_of_ego(self) -> int:
        """How many Ego entities are registered."""
        return sum(
            1 for e in self._entities.values() if e.entity_type == EntityType.EGO
        )

    def is_ego(self, name: str) -> bool:
        """Whether the entity is the Ego."""
        return self._entity(name).entity_type == EntityType.EGO

    def is_ego_spawned(self) -> bool:
        """Whether an Ego is registered."""
        return self.get_number_of_ego() > 0

    def get_ego_name(self) -> str:
        """The name of the Ego.

        Raises:
            SemanticError: If no Ego is registered.
        """
        for name in self.entity_names():
            if self._entities[name].entity_type == EntityType.EGO:
                return name
        raise SemanticError("Ego entity does not exist")

    def get_current_time(self) -> float:
        """The time passed to the last tick."""
        return self._current_time

    def get_step_time(self) -> float:
        """The step passed to the last tick."""
        return self._step_time

    # Commands

    def _check_ego_mutable(self, name: str, what: str):
        if self.is_ego(name) and self._current_time > 0:
            raise SemanticError(
                f"You cannot {what} the Ego vehicle `{name}` after starting the scenario."
            )

    def set_entity_status(self, name: str, status: EntityStatus):
        """Overwrite an entity's status.

        Raises:
            EntityNotFoundError: If no entity has that name.
            SemanticError: If the entity is the Ego and the simulation has started.
        """
        self._check_ego_mutable(name, "set the status of")
        self._entity(name).set_status(status)

    def request_speed_change(
        self,
        name: str,
        target_speed: Union[float, RelativeTargetSpeed],
        transition: Transition = Transition.LINEAR,
        constraint: Constraint = Constraint(),
        continuous: bool = False,
    ):
        """Ask an entity to change speed.

        Raises:
            EntityNotFoundError: If no entity has that name.
            SemanticError: If the entity is the Ego and the simulation has started.
        """
        self._check_ego_mutable(name, "request a speed change of")
        self._entity(name).request_speed_change(
            SpeedChangeRequest(target_speed, transition, constraint, continuous)
        )

    def request_lane_change(
        self, name: str, target: Union[int, str, LaneChangeDirection]
    ) -> bool:
        """Ask a vehicle to change to a lanelet, or to the neighbour in a direction.

        Returns:
            bool: False if there is no lanelet to change to.
        """
        entity = self._entity(name)
        if isinstance(target, int):
            lanelet_id = target if self._lanelet_map.has_lanelet(target) else None
        else:
            if isinstance(target, str):
                target = LaneChangeDirection.from_str(target)
            status = entity.status
            lanelet_id = (
                self._lanelet_map.lane_changeable_lanelet_id(
                    status.lanelet_pose.lanelet_id, target
                )
                if status.lanelet_pose_valid
                else None
            )
        if lanelet_id is None:
            self._log.info("`%s` has no lanelet to change to (%s)", name, target)
            return False
        entity.request_lane_change(lanelet_id)
        return True

    def request_acquire_position(self, name: str, goal: LaneletPose):
        """Send an entity to a lanelet pose."""
        self._entity(name).request_acquire_position(goal)

    def request_assign_route(self, name: str, goals: Sequence[LaneletPose]):
        """Send an entity through lanelet poses in order."""
        self._entity(name).request_assign_route(goals)

    def request_walk_straight(self, name: str):
        """Let an entity keep going along its heading."""
        self._entity(name).request_walk_straight()

    def cancel_request(self, name: str):
        """Drop the entity's current request and goals."""
        self._entity(name).cancel_request()

    def set_driver_model(self, name: str, driver_model: DriverModel):
        """Assign a controller's driver model to an entity."""
        self._entity(name).set_driver_model(driver_model)

    def set_velocity_limit(self, name: str, max_speed: float):
        """Cap an entity's speed."""
        self._entity(name).set_velocity_limit(max_speed)

    def start_npc_logic(self):
        """Start the traffic light programs."""
        self._npc_logic_started = True

    def is_npc_logic_started(self) -> bool:
        """Whether `start_npc_logic` was called."""
        return self._npc_logic_started

    def set_traffic_light_color(self, traffic_light_id: int, color: TrafficLightColor):
        """Fix a traffic light at a color. Entities see it from the next tick."""
        self._traffic_lights.set_color(traffic_light_id, color)
        self._traffic_light_colors = self._traffic_lights.colors()

    def set_traffic_light_phases(
        self, traffic_light_id: int, phases: Sequence[TrafficLightPhase]
    ):
        """Give a traffic light a timed program."""
        self._traffic_lights.get(traffic_light_id).set_phases(phases)
        self._traffic_light_colors = self._traffic_lights.colors()

    def get_traffic_light_color(self, traffic_light_id: int) -> TrafficLightColor:
        """The color a traffic light shows."""
        return self._traffic_lights.get_color(traffic_light_id)

    def has_any_light_changed(self) -> bool:
        """Whether a traffic light changed during the last tick."""
        return self._traffic_lights.has_any_light_changed()

    # Tick

    def _plan(
        self, name: str, current_time: float, step_time: float
    ) -> EntityStepResult:
        self._log.debug("update %s behavior", name)
        return self._entities[name].plan(current_time, step_time)

    def _plan_all(
        self, names: List[str], current_time: float, step_time: float
    ) -> Dict[str, EntityStepResult]:
        if self._entity_update_workers <= 0 or len(names) < 2:
            return {n: self._plan(n, current_time, step_time) for n in names}
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._entity_update_workers,
                thread_name_prefix="lanesim-entity",
            )
        futures = {
            n: self._executor.submit(self._plan, n, current_time, step_time)
            for n in names
        }
        # Wait for every update before looking at results, so no failure
        # leaves other updates running.
        for future in futures.values():
            future.exception()
        return {n: f.result() for n, f in futures.items()}

    def update(
        self, current_time: float, step_time: float
    ) -> List[EntityStatusWithTrajectory]:
        """Advance every entity by one step.

        Returns:
            The per-entity records, sorted by entity name.

        Raises:
            SemanticError: If more than one Ego is registered. Nothing is changed.
        """
        log = self._log.info if self._verbose else self._log.debug
        with timeit("EntityManager::update", log):
            if self.get_number_of_ego() >= 2:
                raise SemanticError("multi ego simulation does not support yet")

            names = self.entity_names()
            entity_types = self.get_entity_type_list()
            with timeit("snapshot", self._log.debug):
                before = {n: self._entities[n].status.copy() for n in names}
                for name in names:
                    entity = self._entities[name]
                    entity.set_entity_type_list(entity_types)
                    entity.set_other_status(before)

            with timeit("entity updates", self._log.debug):
                results = self._plan_all(names, current_time, step_time)

            self._current_time = current_time
            self._step_time = step_time
            for name in names:
                self._entities[name].commit(results[name])

            after = {n: self._entities[n].status.copy() for n in names}
            for name in names:
                self._entities[name].set_other_status(after)

            if self._npc_logic_started:
                self._traffic_lights.update(step_time)
                self._traffic_light_colors = self._traffic_lights.colors()

            self._last_status_array = [self._entities[n].record() for n in names]
        return list(self._last_status_array)

    # Sensors

    def attach_occupancy_grid_sensor(
        self,
        name: str,
        resolution: Optional[float] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        occupied_cost: Optional[int] = None,
        invisible_cost: Optional[int] = None,
        update_duration: Optional[float] = None,
    ) -> OccupancyGridSensor:
        """Mount an occupancy grid sensor on an entity. Unset parameters come
        from the engine configuration."""
        self._entity(name)
        sensor = OccupancyGridSensor.from_config(
            name,
            config(),
            resolution=resolution,
            width=width,
            height=height,
            occupied_cost=occupied_cost,
            invisible_cost=invisible_cost,
            update_duration=update_duration,
        )
        self._sensors[name] = sensor
        return sensor

    def update_sensors(self, current_time: float) -> Dict[str, OccupancyGrid]:
        """Rebuild the grids that are due, keyed by the name of the entity carrying the sensor."""
        statuses = {n: e.status for n, e in self._entities.items()}
        grids = {}
        for name in sorted(self._sensors):
            grid = self._sensors[name](current_time, statuses)
            if grid is not None:
                grids[name] = grid
        return grids

    # Queries

    def check_collision(self, first: str, second: str) -> bool:
        """Whether two entities' footprints overlap. An entity does not collide with itself."""
        if first == second:
            return False
        return check_collision_2d(
            self._entity(first).status, self._entity(second).status
        )

    def _lanelet_pose_of(
        self, target: Union[str, LaneletPose]
    ) -> Optional[LaneletPose]:
        if isinstance(target, LaneletPose):
            return target
        status = self._entity(target).status
        return status.lanelet_pose if status.lanelet_pose_valid else None

    def _pose_of(self, target: Union[str, Pose, LaneletPose]) -> Pose:
        if isinstance(target, Pose):
            return target
        if isinstance(target, LaneletPose):
            return self._lanelet_map.to_map_pose(target)
        return self._entity(target).status.pose

    def get_longitudinal_distance(
        self,
        from_: Union[str, LaneletPose],
        to: Union[str, LaneletPose],
        max_distance: float = DEFAULT_QUERY_DISTANCE,
    ) -> Optional[float]:
        """The signed distance along the lanes from one entity or lanelet pose to
        another; negative when `to` is behind. `None` when either is off the
        lanes or they are further apart than `max_distance`."""
        from_pose = self._lanelet_pose_of(from_)
        to_pose = self._lanelet_pose_of(to)
        if from_pose is None or to_pose is None:
            return None
        return longitudinal_distance(
            self._lanelet_map, from_pose, to_pose, max_distance
        )

    def get_bounding_box_distance(self, first: str, second: str) -> Optional[float]:
        """The distance between two entities' footprints."""
        return bounding_box_distance(
            self._entity(first).status, self._entity(second).status
        )

    def _distance_along_route(
        self, name: str, geometry, horizon: float
    ) -> Optional[float]:
        entity = self._entity(name)
        status = entity.status
        route = entity.route_lanelets()
        if not route:
            return None
        _, spline = preview_spline(
            self._lanelet_map,
            route,
            status.lanelet_pose.s,
            horizon,
            self._behavior_settings.waypoint_resolution,
        )
        return spline.collision_point_2d(geometry)

    def get_distance_to_stop_line(
        self, name: str, stop_line_id: int, horizon: float = DEFAULT_QUERY_DISTANCE
    ) -> Optional[float]:
        """How far ahead along its route an entity meets a stop line."""
        return self._distance_along_route(
            name, self._lanelet_map.stop_line_polygon(stop_line_id), horizon
        )

    def get_distance_to_crosswalk(
        self, name: str, crosswalk_id: int, horizon: float = DEFAULT_QUERY_DISTANCE
    ) -> Optional[float]:
        """How far ahead along its route an entity reaches a crosswalk."""
        return self._distance_along_route(
            name, self._lanelet_map.crosswalk_polygon(crosswalk_id), horizon
        )

    def is_in_lanelet(self, name: str, lanelet_id: int, tolerance: float = 0.1) -> bool:
        """Whether the entity is on the lanelet or within `tolerance` of either end of it."""
        status = self._entity(name).status
        if not status.lanelet_pose_valid:
            return False
        pose = status.lanelet_pose
        if pose.lanelet_id == lanelet_id:
            return True
        lanelet_map = self._lanelet_map
        ahead = lanelet_map.longitudinal_distance(
            pose.lanelet_id, pose.s, lanelet_id, 0.0
        )
        if ahead is not None and ahead <= tolerance:
            return True
        behind = lanelet_map.longitudinal_distance(
            lanelet_id, lanelet_map.lanelet_length(lanelet_id), pose.lanelet_id, pose.s
        )
        return behind is not None and behind <= tolerance

    def is_stopping(self, name: str) -> bool:
        """Whether the entity is at rest."""
        return is_stopped(self._entity(name).status)

    def reach_position(
        self,
        name: str,
        target: Union[str, Pose, LaneletPose],
        tolerance: float,
    ) -> bool:
        """Whether the entity is within `tolerance` of a pose, a lanelet pose, or another entity."""
        return (
            euclidean_distance(self._entity(name).status.pose, self._pose_of(target))
            < tolerance
        )

    def get_relative_pose(
        self, from_: Union[str, Pose], to: Union[str, Pose]
    ) -> Pose:
        """`to` expressed in the frame of `from_`."""
        return relative_pose(self._pose_of(from_), self._pose_of(to))
