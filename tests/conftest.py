import numpy as np
import pytest

from fractile.fractals.base import ViewportBounds
from fractile.rendering.events import TaskResult
from fractile.rendering.scheduler import EpochContext
from fractile.utils.enums import Algorithm, Precision


def make_context(width=128, height=96, max_iter=32, precision=Precision.NATIVE):
    bounds = ViewportBounds(-2.0, -1.0, 3.0 / width, 2.0 / height, width, height)
    return EpochContext(
        bounds=bounds, algorithm=Algorithm.MANDELBROT, precision=precision,
        max_iter=max_iter, smooth=False, julia_c=(0.0, 0.0), fractional=4,
    )


def zero_result(task):
    rows = -(-task.height // task.block)
    cols = -(-task.width // task.block)
    return TaskResult(task, np.zeros(rows * cols))


@pytest.fixture
def context():
    return make_context()
