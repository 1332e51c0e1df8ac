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


class SemanticError(Exception):
    """A fatal precondition was violated by a caller of the simulation core.

    Raised before any entity state is committed.
    """

    pass


class EntityNotFoundError(SemanticError, KeyError):
    """An entity name that is not registered was referenced."""

    @classmethod
    def for_name(cls, name: str) -> "EntityNotFoundError":
        """Generate an `EntityNotFoundError` for the given entity name."""
        return cls(f"entity : {name} does not exist.")

    def __str__(self):
        # KeyError quotes its message otherwise.
        return str(self.args[0]) if self.args else ""


class GridOverflowError(OverflowError):
    """An occupancy grid was asked to hold more primitives than its counter can represent."""

    @classmethod
    def for_limit(cls, limit: int) -> "GridOverflowError":
        """Generate a `GridOverflowError` that names the exhausted limit."""
        return cls(
            f"Grid cannot hold more than {limit} primitives. Too many obstacles were added in a single frame."
        )


class BehaviorTreeRuntimeError(RuntimeError):
    """A behavior could not compute its output for the current tick."""

    pass


class LaneletMapError(ValueError):
    """A lanelet map description is malformed or references unknown lanelets."""

    pass
