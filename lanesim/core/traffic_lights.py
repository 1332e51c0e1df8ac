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

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence


class TrafficLightColor(Enum):
    """The colors a traffic light may show."""

    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"
    NONE = "none"

    @classmethod
    def from_str(cls, value: str) -> TrafficLightColor:
        """Strict conversion from a color name; unknown names are an error."""
        try:
            return cls(value)
        except ValueError as e:
            raise ValueError(f"Invalid traffic light color `{value}`") from e

    @property
    def means_stop(self) -> bool:
        """Red and yellow both require stopping at the stop line."""
        return self in (TrafficLightColor.RED, TrafficLightColor.YELLOW)

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class TrafficLightPhase:
    """One timed step of a traffic light program."""

    color: TrafficLightColor
    duration: float


class TrafficLight:
    """A traffic light cycling through its phases, or fixed at one color."""

    def __init__(
        self,
        traffic_light_id: int,
        phases: Sequence[TrafficLightPhase] = (),
        color: TrafficLightColor = TrafficLightColor.NONE,
    ):
        assert all(p.duration > 0 for p in phases), "Phase durations must be positive"
        self._id = traffic_light_id
        self._phases = list(phases)
        self._phase_index = 0
        self._phase_elapsed = 0.0
        self._color = self._phases[0].color if self._phases else color
        self.last_changed: Optional[float] = None

    @property
    def id(self) -> int:
        """The traffic light id, shared with the lanelet map."""
        return self._id

    @property
    def color(self) -> TrafficLightColor:
        """The color shown now."""
        return self._color

    @property
    def phases(self) -> List[TrafficLightPhase]:
        """The program, empty for a fixed light."""
        return list(self._phases)

    def set_color(self, color: TrafficLightColor) -> bool:
        """Fix the light at `color`, dropping its program. Returns whether the color changed."""
        self._phases = []
        changed = color != self._color
        self._color = color
        return changed

    def set_phases(self, phases: Sequence[TrafficLightPhase]):
        """Replace the program and restart it from its first phase."""
        assert phases, "A program needs at least one phase"
        self._phases = list(phases)
        self._phase_index = 0
        self._phase_elapsed = 0.0
        self._color = self._phases[0].color

    def update(self, step_time: float) -> bool:
        """Advance the program by `step_time`. Returns whether the color changed."""
        if not self._phases:
            return False
        previous = self._color
        self._phase_elapsed += step_time
        while self._phase_elapsed >= self._phases[self._phase_index].duration:
            self._phase_elapsed -= self._phases[self._phase_index].duration
            self._phase_index = (self._phase_index + 1) % len(self._phases)
        self._color = self._phases[self._phase_index].color
        return self._color != previous


class TrafficLightManager:
    """Owns the traffic lights of one simulation run."""

    def __init__(self, traffic_light_ids: Iterable[int] = ()):
        self._log = logging.getLogger(self.__class__.__name__)
        self._lights: Dict[int, TrafficLight] = {
            i: TrafficLight(i) for i in traffic_light_ids
        }
        self._changed = False
        self._elapsed = 0.0

    def add(self, light: TrafficLight):
        """Register a light, replacing one with the same id."""
        self._lights[light.id] = light

    def ids(self) -> List[int]:
        """All managed traffic light ids."""
        return sorted(self._lights)

    def get(self, traffic_light_id: int) -> TrafficLight:
        """The light with the given id."""
        if traffic_light_id not in self._lights:
            raise KeyError(f"Unknown traffic light {traffic_light_id}")
        return self._lights[traffic_light_id]

    def get_color(self, traffic_light_id: int) -> TrafficLightColor:
        """The color the light shows now."""
        return self.get(traffic_light_id).color

    def set_color(self, traffic_light_id: int, color: TrafficLightColor):
        """Fix a light at `color`."""
        light = self.get(traffic_light_id)
        if light.set_color(color):
            light.last_changed = self._elapsed
            self._changed = True
            self._log.debug("Traffic light %s set to %s", traffic_light_id, color)

    def colors(self) -> Dict[int, TrafficLightColor]:
        """A copy of every light's current color, keyed by id."""
        return {i: light.color for i, light in self._lights.items()}

    def update(self, step_time: float):
        """Advance every light's program by one step."""
        self._elapsed += step_time
        self._changed = False
        for light_id in self.ids():
            light = self._lights[light_id]
            if light.update(step_time):
                light.last_changed = self._elapsed
                self._changed = True

    def has_any_light_changed(self) -> bool:
        """Whether any light changed color during the last update or since it."""
        return self._changed
