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
from typing import Dict, Sequence, Tuple

from .base import (
    Behavior,
    BehaviorInput,
    BehaviorKind,
    BehaviorOutcome,
    BehaviorSettings,
    BehaviorStatus,
    Request,
)
from .external import ExternalBehavior
from .lane_change import LaneChangeBehavior
from .lane_following import (
    CruiseBehavior,
    LaneFollowingBehavior,
    YieldBehavior,
    right_of_way_entities,
)
from .walk_straight import WalkStraightBehavior

# Behaviors keep no state between ticks, so one instance of each is shared.
BEHAVIORS: Dict[BehaviorKind, Behavior] = {
    b.kind: b
    for b in (
        LaneFollowingBehavior(),
        YieldBehavior(),
        CruiseBehavior(),
        LaneChangeBehavior(),
        WalkStraightBehavior(),
        ExternalBehavior(),
    )
}


def run_first_applicable(
    kinds: Sequence[BehaviorKind], inputs: BehaviorInput
) -> Tuple[BehaviorKind, BehaviorOutcome]:
    """Tick the first behavior in `kinds` whose preconditions hold.

    Returns the kind that ran and its outcome, or the last kind tried with a
    failed outcome when none applies.
    """
    assert kinds, "No behavior to run"
    outcome = None
    for kind in kinds:
        outcome = BEHAVIORS[kind].run(inputs)
        if outcome.state != BehaviorStatus.FAILURE:
            return kind, outcome
    return kinds[-1], outcome
