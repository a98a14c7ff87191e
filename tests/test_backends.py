import time

import numpy as np
import pytest

from fractile.backend.be_base import ComputeBackend
from fractile.backend.be_cpu import CpuBackend
from fractile.backend.be_opencl import OpenClBackend, origin_limbs, split_float32
from fractile.backend.manager import BackendManager, BackendSpec
from fractile.errors import BackendUnavailable, ShaderBuildError
from fractile.fractals.base import RenderSettings, ViewportBounds
from fractile.kernel_sources.opencl.shader import build_source, variant_key
from fractile.kernel_sources.registry import load_kernel
from fractile.precision.limb import limb_to_float
from fractile.rendering.events import ComputeTask
from fractile.utils.enums import Algorithm, BackendType, ColourMode, LimbProfile, Precision


class FakeBackend(ComputeBackend):
    name = "FAKE"

    def __init__(self, workers=None, fail_build=False):
        self.worker_count = workers or 1
        self.fail_build = fail_build
        self.closed = False

    def compile(self, settings):
        pass

    def kernel_for(self, algorithm, precision, fractional):
        if self.fail_build:
            raise ShaderBuildError("no")
        return object()

    def submit(self, task):
        pass

    def poll(self, timeout=0.0):
        return []

    def close(self):
        self.closed = True


def no_gpu():
    raise BackendUnavailable("pyopencl is not installed")


def manager(gpu_factory):
    return BackendManager({
        BackendType.CPU: BackendSpec(FakeBackend, takes_workers=True),
        BackendType.GPU: BackendSpec(gpu_factory, takes_workers=False),
    })


GPU = RenderSettings(backend=BackendType.GPU)


def test_cpu_selection():
    sel = manager(no_gpu).select(RenderSettings(worker_count=3), Precision.NATIVE)
    assert sel.kind is BackendType.CPU
    assert sel.backend.worker_count == 3
    assert "3 workers" in sel.label


def test_missing_gpu_falls_back_to_cpu():
    m = manager(no_gpu)
    sel = m.select(GPU, Precision.NATIVE)
    assert sel.kind is BackendType.CPU
    assert "fallback" in sel.label
    assert m.gpu_available is False
    assert "pyopencl" in m.gpu_error


def test_distribution_mode_keeps_gpu_off():
    m = manager(FakeBackend)
    sel = m.select(RenderSettings(backend=BackendType.GPU, colour_mode=ColourMode.DISTRIBUTION),
                   Precision.NATIVE)
    assert sel.kind is BackendType.CPU
    assert "distribution" in sel.label


def test_gpu_selected_when_program_builds():
    m = manager(FakeBackend)
    sel = m.select(GPU, Precision.DOUBLE_DOUBLE)
    assert sel.kind is BackendType.GPU
    assert "double_double" in sel.label


def test_failed_program_falls_back_and_is_remembered():
    built = []

    def factory():
        backend = FakeBackend(fail_build=True)
        built.append(backend)
        return backend

    m = manager(factory)
    assert m.select(GPU, Precision.LIMB).kind is BackendType.CPU
    assert m.select(GPU, Precision.LIMB).kind is BackendType.CPU
    assert len(built) == 1


def test_close_releases_instances():
    m = manager(FakeBackend)
    cpu = m.cpu(2)
    gpu = m.gpu()
    m.close()
    assert cpu.closed and gpu.closed
    assert m.instances() == []


def test_cpu_pool_round_trip():
    bounds = ViewportBounds(-2.0, -1.0, 3.0 / 32, 2.0 / 16, 32, 16)
    tasks = [
        ComputeTask(epoch=1, tile_id=0, stage=0, px=0, py=y, width=32, height=4, block=2,
                    bounds=bounds, algorithm=Algorithm.MANDELBROT, precision=Precision.NATIVE,
                    max_iter=32, smooth=False, julia_c=(0.0, 0.0), fractional=4)
        for y in range(0, 16, 4)
    ]
    results = []
    with CpuBackend(2) as backend:
        for task in tasks:
            backend.submit(task)
        deadline = time.perf_counter() + 120
        while len(results) < len(tasks) and time.perf_counter() < deadline:
            results.extend(backend.poll(timeout=0.1))
    assert len(results) == len(tasks)
    assert all(r.ok for r in results)
    assert all(r.values.shape == (2 * 16,) for r in results)
    with pytest.raises(RuntimeError):
        backend.submit(tasks[0])


# ---- OpenCL program assembly (no device needed) ----

@pytest.mark.parametrize("algorithm", list(Algorithm))
@pytest.mark.parametrize("precision", [Precision.NATIVE, Precision.DOUBLE_DOUBLE, Precision.LIMB])
def test_program_sources_are_complete(algorithm, precision):
    src, opts = build_source(algorithm, precision, LimbProfile.HIGH.value)
    assert "__kernel void render_frame" in src
    assert "$" not in src
    if precision is Precision.NATIVE:
        assert "-cl-fast-relaxed-math" in opts
    else:
        assert opts == []
        assert "FP_CONTRACT OFF" in src
    if precision is Precision.LIMB:
        assert "#define LIMB_FRACTIONAL 6" in src


def test_program_variants_are_registered():
    assert variant_key(Precision.LIMB, 8) == "LIMB8"
    assert variant_key(Precision.NATIVE, 8) == "NATIVE"
    meta = load_kernel("OPENCL", "burning-ship", "frame", "LIMB8")
    assert meta["kernel_name"] == "render_frame"
    assert "__kernel" in meta["src"]
    with pytest.raises(ValueError):
        build_source(Algorithm.MANDELBROT, Precision.AUTO)


def test_float32_split_and_origin_limbs():
    hi, lo = split_float32(0.1)
    assert hi.dtype == np.float32 and lo.dtype == np.float32
    assert abs(float(hi) + float(lo) - 0.1) < 1e-14

    bounds = ViewportBounds(-1.5, 0.25, 1e-3, 1e-3, 10, 10, 2.0 ** -40, 0.0)
    xl, yl = origin_limbs(bounds, 4)
    assert xl.dtype == np.float32
    assert limb_to_float(xl.astype(np.float64), 4) == -1.5 + 2.0 ** -40
    assert limb_to_float(yl.astype(np.float64), 4) == 0.25


def test_backends_declare_their_work_unit():
    assert CpuBackend.tiled
    assert not OpenClBackend.tiled
    assert FakeBackend.tiled
