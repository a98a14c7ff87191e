"""
Kernel lookup table.

Kernel modules register what they provide when imported; backends resolve
entries by (backend, algorithm, op, variant). The variant is the precision
name, with the fractional limb count appended for OpenCL limb programs.
"""
from typing import Any, Dict, Tuple, Union

from fractile.utils.enums import Algorithm

KernelKey = Tuple[str, str, str, str]

_KERNELS: Dict[KernelKey, Dict[str, Any]] = {}


def _key(backend: str, algorithm: Union[Algorithm, str], op: str, variant: str) -> KernelKey:
    algo = algorithm.value if isinstance(algorithm, Algorithm) else str(algorithm)
    return backend.upper(), algo, op, variant


def register_kernel(backend: str, algorithm: Union[Algorithm, str], op: str, variant: str,
                    **meta: Any) -> None:
    _KERNELS[_key(backend, algorithm, op, variant)] = meta


def load_kernel(backend: str, algorithm: Union[Algorithm, str], op: str, variant: str) -> Dict[str, Any]:
    """Raises KeyError naming the missing entry."""
    key = _key(backend, algorithm, op, variant)
    try:
        return _KERNELS[key]
    except KeyError:
        raise KeyError("No %s kernel '%s' for %s/%s" % (key[0], op, key[1], variant)) from None
