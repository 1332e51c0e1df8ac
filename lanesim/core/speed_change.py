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

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Mapping, Optional, Union

from .entity_status import DynamicConstraints, EntityStatus


class Transition(IntEnum):
    """How the speed moves to the requested target."""

    LINEAR = 0
    STEP = 1


class ConstraintType(IntEnum):
    """What bounds a linear speed transition."""

    NONE = 0
    LONGITUDINAL_ACCELERATION = 1
    TIME = 2


@dataclass(frozen=True)
class Constraint:
    """The bound on a linear speed transition."""

    type: ConstraintType = ConstraintType.NONE
    value: float = 0.0


class RelativeTargetSpeedType(IntEnum):
    """How a relative target speed is derived from its reference entity."""

    DELTA = 0
    FACTOR = 1


@dataclass(frozen=True)
class RelativeTargetSpeed:
    """A target speed expressed relative to another entity's speed."""

    reference_entity_name: str
    type: RelativeTargetSpeedType = RelativeTargetSpeedType.DELTA
    value: float = 0.0

    def resolve(self, statuses: Mapping[str, EntityStatus]) -> Optional[float]:
        """The absolute target speed, or `None` if the reference entity is not known."""
        reference = statuses.get(self.reference_entity_name)
        if reference is None:
            return None
        if self.type == RelativeTargetSpeedType.DELTA:
            return reference.speed + self.value
        return reference.speed * self.value


@dataclass(frozen=True)
class SpeedChangeRequest:
    """A request to change an entity's longitudinal speed.

    A `continuous` request is re-applied every tick; otherwise it is dropped
    once the target has been reached.
    """

    target_speed: Union[float, RelativeTargetSpeed]
    transition: Transition = Transition.LINEAR
    constraint: Constraint = field(default_factory=Constraint)
    continuous: bool = False

    def resolve_target(self, statuses: Mapping[str, EntityStatus]) -> Optional[float]:
        """The absolute target speed for this tick."""
        if isinstance(self.target_speed, RelativeTargetSpeed):
            return self.target_speed.resolve(statuses)
        return float(self.target_speed)

    def constraints_for(
        self, current_speed: float, target_speed: float, base: DynamicConstraints
    ) -> DynamicConstraints:
        """The dynamic constraints to use while this request is being applied."""
        if self.transition == Transition.STEP:
            return base
        if self.constraint.type == ConstraintType.LONGITUDINAL_ACCELERATION:
            return base.with_acceleration(self.constraint.value)
        if self.constraint.type == ConstraintType.TIME:
            if self.constraint.value <= 0.0:
                return base
            return base.with_acceleration(
                abs(target_speed - current_speed) / self.constraint.value
            )
        return base
