from abc import ABC, abstractmethod
import numpy as np


class ColoringStrategy(ABC):
    @abstractmethod
    def apply(self, values: np.ndarray, max_iter: float, palette: np.ndarray,
              origin: tuple = (0, 0)) -> np.ndarray:
        ...
