import logging
import os
import queue
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Optional

import numpy as np

from fractile.backend.be_base import ComputeBackend
from fractile.fractals.base import RenderSettings
from fractile.kernel_sources.cpu.band import evaluate_band
from fractile.rendering.events import ComputeTask, TaskResult
from fractile.utils.enums import Precision

logger = logging.getLogger(__name__)


def default_worker_count() -> int:
    return max(1, os.cpu_count() or 1)


def run_task(task: ComputeTask) -> np.ndarray:
    b = task.bounds
    return evaluate_band(
        task.algorithm, task.precision,
        (b.x0, b.x0_lo), (b.y0, b.y0_lo), b.x_scale, b.y_scale,
        task.px, task.py, task.width, task.height, task.block,
        task.max_iter, task.smooth, task.julia_c, task.fractional,
    )


class CpuBackend(ComputeBackend):
    """
    Pool of long-lived compute units, each a single-thread executor that
    processes one band at a time. Tasks are handed out strictly round-robin;
    finished results are queued for the controller to drain with `poll`.
    """
    name = "CPU"
    tiled = True

    def __init__(self, workers: Optional[int] = None):
        self.worker_count = int(workers) if workers else default_worker_count()
        self._units: List[ThreadPoolExecutor] = [
            ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"fractile-cpu-{i}")
            for i in range(self.worker_count)
        ]
        self._next = 0
        self._results: "queue.SimpleQueue[TaskResult]" = queue.SimpleQueue()
        self._closed = False

    def compile(self, settings: RenderSettings) -> None:
        """Build the band kernel for the configured algorithm ahead of the first task."""
        precision = settings.precision
        if precision is Precision.AUTO:
            precision = Precision.NATIVE
        # A tiny band forces JIT compilation before the first real task
        evaluate_band(settings.algorithm, precision, (-2.0, 0.0), (-1.5, 0.0),
                      0.5, 0.5, 0, 0, 4, 4, 1, 8, settings.smooth,
                      settings.julia_c, settings.limb_profile.value)

    def submit(self, task: ComputeTask) -> None:
        if self._closed:
            raise RuntimeError("Backend has been closed")
        unit = self._units[self._next]
        self._next = (self._next + 1) % len(self._units)
        future = unit.submit(run_task, task)
        future.add_done_callback(lambda f, t=task: self._collect(t, f))

    def _collect(self, task: ComputeTask, future: Future) -> None:
        if future.cancelled():
            return
        try:
            values = future.result()
            self._results.put(TaskResult(task, values))
        except Exception as e:
            logger.exception("Band evaluation failed (tile %d, stage %d)", task.tile_id, task.stage)
            self._results.put(TaskResult(task, None, error=str(e)))

    def poll(self, timeout: float = 0.0) -> List[TaskResult]:
        out: List[TaskResult] = []
        try:
            if timeout > 0.0:
                out.append(self._results.get(timeout=timeout))
            while True:
                out.append(self._results.get_nowait())
        except queue.Empty:
            pass
        return out

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for unit in self._units:
            unit.shutdown(wait=False, cancel_futures=True)
        self._units = []
