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
from contextlib import contextmanager
from time import time


@contextmanager
def timeit(name: str, log):
    """Context manger that stopwatches the amount of time between context block start and end.

    .. code-block:: python

       import logging
       with timeit(n,logging.log):
            a = a * b

    """
    start = time()
    yield
    elapsed_time = (time() - start) * 1000

    log(f'"{name}" took: {elapsed_time:4f}ms')


def set_verbose(verbose: bool, *logger_names: str):
    """Raise (or lower back) the level of the given loggers so that per-tick timings show."""
    level = logging.DEBUG if verbose else logging.WARNING
    for name in logger_names:
        logging.getLogger(name).setLevel(level)
