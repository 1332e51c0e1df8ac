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
"""lanesim.core
============

Core functionality of the lanesim tick engine.
"""

from functools import lru_cache, partial
from pathlib import Path

from lanesim.core.configuration import Config


@lru_cache(maxsize=2)
def config(
    config_path: str = "./lanesim_engine.ini", environment_prefix="LANESIM"
) -> Config:
    """Get the lanesim environment configuration for the tick engine.

    .. note::

        This searches the following locations and loads the first one it finds:
        Supplied ``config_path``. Default: `./lanesim_engine.ini`
        `~/.lanesim/engine.ini`
        `/etc/lanesim/engine.ini`
        `$PYTHON_PATH/lanesim/engine.ini`

    Args:
        config_path (str, optional): The configurable location. Defaults to `./lanesim_engine.ini`.

    Returns:
        Config: A configuration utility that allows resolving environment and `engine.ini` configuration.
    """

    def get_file(config_file: Path):
        try:
            if not config_file.is_file():
                return ""
        except PermissionError:
            return ""

        return str(config_file)

    conf = partial(Config, environment_prefix=environment_prefix)

    file = get_file(Path(config_path).absolute())
    if file:
        return conf(file)

    try:
        file = get_file(Path.home() / ".lanesim" / "engine.ini")
    except (PermissionError, RuntimeError):
        file = ""
    if file:
        return conf(file)

    file = get_file(Path("/etc/lanesim/engine.ini"))
    if file:
        return conf(file)

    default_path = Path(__file__).parents[1].resolve() / "engine.ini"
    return conf(get_file(default_path))
