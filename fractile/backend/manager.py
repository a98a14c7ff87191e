from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, Tuple

from fractile.backend.be_base import ComputeBackend
from fractile.backend.be_cpu import CpuBackend
from fractile.backend.be_opencl import OpenClBackend
from fractile.errors import FractileError
from fractile.fractals.base import RenderSettings
from fractile.utils.enums import BackendType, ColourMode, Precision

logger = logging.getLogger(__name__)


# Small descriptor of a backend implementation
@dataclass(frozen=True)
class BackendSpec:
    factory: Callable[..., ComputeBackend]
    takes_workers: bool


DEFAULT_BACKENDS: Dict[BackendType, BackendSpec] = {
    BackendType.CPU: BackendSpec(factory=CpuBackend, takes_workers=True),
    BackendType.GPU: BackendSpec(factory=OpenClBackend, takes_workers=False),
}


@dataclass(frozen=True)
class Selection:
    backend: ComputeBackend
    kind: BackendType
    label: str


class BackendManager:
    """
    Creates and caches backend instances and decides, per epoch, whether the
    GPU may be used. Any GPU failure clears the capability and falls back to
    the CPU pool; it is never fatal.
    """

    def __init__(self, registry: Optional[Dict[BackendType, BackendSpec]] = None):
        self.registry = registry or DEFAULT_BACKENDS
        self._cpu: Optional[ComputeBackend] = None
        self._cpu_workers: Optional[int] = None
        self._gpu: Optional[ComputeBackend] = None
        self.gpu_available: Optional[bool] = None     # None = not probed yet
        self.gpu_error: Optional[str] = None
        self._failed_variants: Set[Tuple[str, Precision, int]] = set()

    # ---- Instances ----

    def cpu(self, workers: Optional[int] = None) -> ComputeBackend:
        if self._cpu is not None and workers == self._cpu_workers:
            return self._cpu
        if self._cpu is not None:
            self._cpu.close()
        spec = self.registry[BackendType.CPU]
        self._cpu = spec.factory(workers) if spec.takes_workers else spec.factory()
        self._cpu_workers = workers
        logger.info("CPU backend ready with %s workers", getattr(self._cpu, "worker_count", "?"))
        return self._cpu

    def gpu(self) -> Optional[ComputeBackend]:
        if self.gpu_available is False:
            return None
        if self._gpu is None:
            try:
                self._gpu = self.registry[BackendType.GPU].factory()
                self.gpu_available = True
            except FractileError as e:
                self.disable_gpu(str(e))
                return None
            except Exception as e:
                logger.exception("GPU backend initialisation failed")
                self.disable_gpu(str(e))
                return None
        return self._gpu

    def instances(self) -> List[ComputeBackend]:
        return [be for be in (self._cpu, self._gpu) if be is not None]

    def disable_gpu(self, reason: str) -> None:
        self.gpu_available = False
        self.gpu_error = reason
        logger.warning("GPU disabled: %s", reason)

    # ---- Selection ----

    def select(self, settings: RenderSettings, precision: Precision) -> Selection:
        """
        Pick the backend for an epoch rendered at `precision`.
        The GPU is used only when requested, available, not in distribution
        mode, and the program variant builds.
        """
        if settings.backend is BackendType.GPU:
            reason = self._gpu_blocker(settings, precision)
            if reason is None:
                return Selection(self._gpu, BackendType.GPU, f"GPU · {precision.name.lower()}")
            cpu = self.cpu(settings.worker_count)
            return Selection(cpu, BackendType.CPU, f"CPU fallback ({reason})")
        cpu = self.cpu(settings.worker_count)
        workers = getattr(cpu, "worker_count", settings.worker_count)
        return Selection(cpu, BackendType.CPU, f"CPU · {workers} workers · {precision.name.lower()}")

    def _gpu_blocker(self, settings: RenderSettings, precision: Precision) -> Optional[str]:
        if settings.colour_mode is ColourMode.DISTRIBUTION:
            return "distribution colouring needs CPU"
        gpu = self.gpu()
        if gpu is None:
            return f"GPU unavailable: {self.gpu_error}"
        variant = (settings.algorithm.value, precision, settings.limb_profile.value)
        if variant in self._failed_variants:
            return "GPU program failed to build"
        try:
            gpu.kernel_for(settings.algorithm, precision, settings.limb_profile.value)
        except FractileError as e:
            self._failed_variants.add(variant)
            logger.warning("GPU program unusable, falling back to CPU: %s", e)
            return "GPU program failed to build"
        return None

    def close(self) -> None:
        for be in (self._cpu, self._gpu):
            if be is not None:
                try:
                    be.close()
                except Exception:
                    logger.exception("Error while closing backend %s", getattr(be, "name", "?"))
        self._cpu = None
        self._gpu = None
