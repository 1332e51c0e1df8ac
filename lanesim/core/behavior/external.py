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
from .base import (
    Behavior,
    BehaviorInput,
    BehaviorKind,
    BehaviorOutcome,
    BehaviorStatus,
)


class ExternalBehavior(Behavior):
    """Dead-reckons an externally driven entity from its own twist.

    The speed only moves if a target speed was requested before the
    simulation started.
    """

    kind = BehaviorKind.EXTERNAL

    def preconditions_met(self, inputs: BehaviorInput) -> bool:
        return True

    def tick(self, inputs: BehaviorInput) -> BehaviorOutcome:
        twist = inputs.status.action_status.twist
        target_speed = (
            inputs.target_speed if inputs.target_speed is not None else twist.linear
        )
        return BehaviorOutcome(
            status=self._advance_straight(inputs, target_speed, twist.angular),
            state=BehaviorStatus.SUCCESS,
        )
