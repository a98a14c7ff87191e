from abc import ABC, abstractmethod
from typing import List, Union

from fractile.fractals.base import RenderSettings
from fractile.rendering.events import ComputeTask, FrameTask, FrameResult, TaskResult


class ComputeBackend(ABC):
    """
    A base class for compute backends.

    Work goes in through `submit` and comes back through `poll`, which never
    blocks. Results are immutable values; a backend never touches scheduler
    state.
    """
    name: str
    # True: accepts per-band ComputeTasks. False: accepts one FrameTask per epoch.
    tiled: bool = True

    @abstractmethod
    def compile(self, settings: RenderSettings) -> None:
        ...

    @abstractmethod
    def submit(self, task: Union[ComputeTask, FrameTask]) -> None:
        ...

    @abstractmethod
    def poll(self, timeout: float = 0.0) -> List[Union[TaskResult, FrameResult]]:
        """
        Drain finished results. With timeout > 0 wait up to that long for the
        first one.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __del__(self):
        try:
            self.close()
        except Exception:
            pass
