import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

import fractile.kernel_sources.opencl.shader  # noqa: F401  (registers GPU programs)
from fractile.backend.be_base import ComputeBackend
from fractile.errors import BackendUnavailable, ShaderBuildError
from fractile.fractals.base import RenderSettings, ViewportBounds
from fractile.kernel_sources.opencl.shader import variant_key
from fractile.kernel_sources.registry import load_kernel
from fractile.precision.limb import limb_add, limb_from_float, limb_zeros
from fractile.rendering.events import FrameResult, FrameTask
from fractile.utils.enums import Algorithm, Precision

logger = logging.getLogger(__name__)


def _import_cl():
    try:
        import pyopencl as cl
    except Exception as e:
        logger.exception("pyopencl not available")
        raise BackendUnavailable("pyopencl is not installed") from e
    return cl


def split_float32(hi: float, lo: float = 0.0) -> Tuple[np.float32, np.float32]:
    """Split a float64 (plus correction) into a float32 (hi, lo) pair."""
    h = np.float32(hi)
    return h, np.float32((hi - float(h)) + lo)


def origin_limbs(bounds: ViewportBounds, fractional: int) -> Tuple[np.ndarray, np.ndarray]:
    out = []
    for hi, lo in ((bounds.x0, bounds.x0_lo), (bounds.y0, bounds.y0_lo)):
        a = limb_zeros()
        b = limb_zeros()
        limb_from_float(hi, fractional, a)
        limb_from_float(lo, fractional, b)
        limb_add(a, b, a)
        out.append(a.astype(np.float32))
    return out[0], out[1]


class OpenClBackend(ComputeBackend):
    """
    Full-frame GPU backend: one program launch per epoch colours every pixel
    at the full iteration budget. Launches run on a single background thread
    so the controller never blocks.
    """
    name = "OPENCL"
    tiled = False

    def __init__(self, device: Optional[int] = None):
        cl = _import_cl()
        self._cl = cl

        try:
            plats = cl.get_platforms()
            all_devs = [d for p in plats for d in p.get_devices()]
        except Exception as e:
            logger.exception("Failed to query OpenCL platforms")
            raise BackendUnavailable("no OpenCL platform") from e

        if not all_devs:
            raise BackendUnavailable("No OpenCL devices found.")

        if device is None:
            chosen = next((d for d in all_devs if d.type & cl.device_type.GPU), all_devs[0])
        elif 0 <= device < len(all_devs):
            chosen = all_devs[device]
        else:
            raise BackendUnavailable(f"No OpenCL device with ordinal {device} found.")

        self.device = chosen
        self.ctx = cl.Context([self.device])
        self.queue = cl.CommandQueue(self.ctx, self.device)
        self._kernels: Dict[Tuple[Algorithm, str], Any] = {}
        self._kernels_lock = threading.Lock()
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="fractile-gpu")
        self._results: "queue.SimpleQueue[FrameResult]" = queue.SimpleQueue()
        self._closed = False
        logger.info("OpenCL device: %s", getattr(self.device, "name", "?"))

    # ---- Programs ----

    def kernel_for(self, algorithm: Algorithm, precision: Precision, fractional: int):
        """Build (or fetch) the program variant. Raises ShaderBuildError on failure."""
        key = (algorithm, variant_key(precision, fractional))
        with self._kernels_lock:
            kernel = self._kernels.get(key)
            if kernel is not None:
                return kernel
            meta = load_kernel("OPENCL", algorithm, "frame", key[1])
            src = meta["src"]
            try:
                program = self._cl.Program(self.ctx, src).build(options=meta["build_options"])
                kernel = self._cl.Kernel(program, meta["kernel_name"])
            except Exception as e:
                logger.exception("OpenCL build failed for %s/%s", algorithm.value, key[1])
                raise ShaderBuildError(f"{algorithm.value}/{key[1]}: {e}") from e
            self._kernels[key] = kernel
            return kernel

    def compile(self, settings: RenderSettings) -> None:
        precision = settings.precision
        if precision is Precision.AUTO:
            precision = Precision.NATIVE
        self.kernel_for(settings.algorithm, precision, settings.limb_profile.value)

    # ---- Work ----

    def submit(self, task: FrameTask) -> None:
        if self._closed:
            raise RuntimeError("Backend has been closed")
        future = self._worker.submit(self._render, task)
        future.add_done_callback(lambda f, t=task: self._collect(t, f))

    def _render(self, task: FrameTask) -> np.ndarray:
        cl = self._cl
        b = task.bounds
        kernel = self.kernel_for(task.algorithm, task.precision, task.fractional)
        width, height = b.width, b.height
        mf = cl.mem_flags

        x0_hi, x0_lo = split_float32(b.x0, b.x0_lo)
        y0_hi, y0_lo = split_float32(b.y0, b.y0_lo)
        if task.precision is Precision.LIMB:
            xl, yl = origin_limbs(b, task.fractional)
        else:
            xl = yl = np.zeros(1, dtype=np.float32)
        palette = np.ascontiguousarray(task.palette, dtype=np.float32).ravel()
        out = np.empty((height, width, 3), dtype=np.uint8)

        xl_buf = cl.Buffer(self.ctx, mf.READ_ONLY | mf.COPY_HOST_PTR, hostbuf=xl)
        yl_buf = cl.Buffer(self.ctx, mf.READ_ONLY | mf.COPY_HOST_PTR, hostbuf=yl)
        pal_buf = cl.Buffer(self.ctx, mf.READ_ONLY | mf.COPY_HOST_PTR, hostbuf=palette)
        out_buf = cl.Buffer(self.ctx, mf.WRITE_ONLY, out.nbytes)
        try:
            kernel.set_args(
                x0_hi, x0_lo, y0_hi, y0_lo,
                np.float32(b.x_scale), np.float32(b.y_scale),
                xl_buf, yl_buf,
                np.int32(width), np.int32(height), np.int32(task.max_iter),
                np.int32(1 if task.smooth else 0),
                np.float32(task.julia_c[0]), np.float32(task.julia_c[1]),
                np.int32(task.colour_mode), np.float32(task.palette_scale),
                np.float32(task.dither_strength),
                pal_buf, np.int32(task.palette.shape[0]),
                out_buf,
            )
            cl.enqueue_nd_range_kernel(self.queue, kernel, (width, height), None)
            cl.enqueue_copy(self.queue, out, out_buf)
            self.queue.finish()
        finally:
            for buf in (xl_buf, yl_buf, pal_buf, out_buf):
                buf.release()
        return out

    def _collect(self, task: FrameTask, future: Future) -> None:
        if future.cancelled():
            return
        try:
            self._results.put(FrameResult(task, future.result()))
        except Exception as e:
            logger.exception("GPU frame failed (epoch %d)", task.epoch)
            self._results.put(FrameResult(task, None, error=str(e)))

    def poll(self, timeout: float = 0.0) -> List[FrameResult]:
        out: List[FrameResult] = []
        try:
            if timeout > 0.0:
                out.append(self._results.get(timeout=timeout))
            while True:
                out.append(self._results.get_nowait())
        except queue.Empty:
            pass
        return out

    def close(self) -> None:
        if getattr(self, "_closed", True):
            return
        self._closed = True
        try:
            self._worker.shutdown(wait=False, cancel_futures=True)
            self._kernels.clear()
            self.queue = None
            self.ctx = None
        except Exception:
            logger.exception("Error while closing OpenCL backend")
