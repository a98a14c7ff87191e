from typing import Tuple

from fractile.fractals.base import FINAL_BLOCK_SIZES, MAX_BLOCK_SIZE


def refinement_schedule(steps: int = 5, final_block_size: int = 1,
                        first: int = MAX_BLOCK_SIZE) -> Tuple[int, ...]:
    """
    Geometric block-size sequence from `first` down to `final_block_size`.

    steps=5, final=1 gives (256, 64, 16, 4, 1). The result always starts at
    `first`, ends at `final_block_size` and never increases.
    """
    steps = max(2, int(steps))
    final = final_block_size if final_block_size in FINAL_BLOCK_SIZES else 1
    ratio = (final / first) ** (1.0 / (steps - 1))
    sizes = [first]
    for k in range(1, steps - 1):
        size = int(round(first * ratio ** k))
        sizes.append(max(final, min(sizes[-1], size)))
    sizes.append(final)
    return tuple(sizes)
