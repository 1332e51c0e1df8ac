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
import click


@click.group(
    name="map",
    help="Inspect and query lanelet maps. See `lsim map COMMAND --help` for further options.",
)
def map_cli():
    pass


def _load(map_file: str):
    from lanesim.core.lanelet_map import GraphLaneletMap
    from lanesim.core.utils.custom_exceptions import LaneletMapError

    try:
        return GraphLaneletMap.from_yaml(map_file)
    except LaneletMapError as e:
        raise click.ClickException(str(e)) from e


@map_cli.command(name="inspect", help="List the lanelets of a map")
@click.argument("map_file", type=click.Path(exists=True), metavar="<map>")
def inspect(map_file: str):
    lanelet_map = _load(map_file)
    click.echo(f"{map_file}: {len(lanelet_map.lanelet_ids())} lanelets")
    for lanelet_id in lanelet_map.lanelet_ids():
        successors = ", ".join(str(s) for s in lanelet_map.successors(lanelet_id))
        conflicts = ", ".join(
            str(c) for c in sorted(lanelet_map.conflicting_lanelet_ids([lanelet_id]))
        )
        line = (
            f"  {lanelet_id}: length={lanelet_map.lanelet_length(lanelet_id):.2f}"
            f" successors=[{successors}]"
        )
        if conflicts:
            line += f" conflicts=[{conflicts}]"
        click.echo(line)
    stop_lines = lanelet_map.stop_line_ids_on_route(lanelet_map.lanelet_ids())
    if stop_lines:
        click.echo(f"stop lines: {', '.join(str(s) for s in stop_lines)}")
    if lanelet_map.traffic_light_ids():
        lights = ", ".join(str(t) for t in lanelet_map.traffic_light_ids())
        click.echo(f"traffic lights: {lights}")
    if lanelet_map.crosswalk_ids():
        click.echo(
            f"crosswalks: {', '.join(str(c) for c in lanelet_map.crosswalk_ids())}"
        )


@map_cli.command(
    name="distance",
    help="Signed distance along the lanes between two lanelet positions",
)
@click.option(
    "--max-distance",
    type=float,
    default=float("inf"),
    help="Ignore paths longer than this.",
)
@click.argument("map_file", type=click.Path(exists=True), metavar="<map>")
@click.argument("from_id", type=int)
@click.argument("from_s", type=float)
@click.argument("to_id", type=int)
@click.argument("to_s", type=float)
def distance(
    map_file: str,
    from_id: int,
    from_s: float,
    to_id: int,
    to_s: float,
    max_distance: float,
):
    from lanesim.core.coordinates import LaneletPose
    from lanesim.core.spatial_queries import longitudinal_distance

    lanelet_map = _load(map_file)
    for lanelet_id in (from_id, to_id):
        if not lanelet_map.has_lanelet(lanelet_id):
            raise click.BadParameter(f"no lanelet {lanelet_id} in {map_file}")
    result = longitudinal_distance(
        lanelet_map,
        LaneletPose(from_id, from_s),
        LaneletPose(to_id, to_s),
        max_distance,
    )
    click.echo("no path" if result is None else f"{result:.3f}")
