from __future__ import annotations

from functools import lru_cache
from typing import Optional, Tuple

import numpy as np


_PALETTE: Tuple[Tuple[int, int, int], ...] = (
    (255, 56, 56),
    (255, 157, 151),
    (255, 112, 31),
    (255, 178, 29),
    (207, 210, 49),
    (72, 249, 10),
    (146, 204, 23),
    (61, 219, 134),
    (26, 147, 52),
    (0, 212, 187),
    (44, 153, 168),
    (0, 194, 255),
    (52, 69, 147),
    (100, 115, 255),
    (0, 24, 236),
    (132, 56, 255),
    (82, 0, 133),
    (203, 56, 255),
    (255, 149, 200),
    (255, 55, 199),
)

FALLBACK_COLOR: Tuple[int, int, int] = (155, 135, 245)


@lru_cache(maxsize=None)
def color_for_class(class_id: Optional[int]) -> Tuple[int, int, int]:
    """
    Deterministic RGB color for a class id.

    Small fixed palette first, then an RNG seeded by the id, so the same class
    always gets the same color in and across processes.
    """

    if class_id is None:
        return FALLBACK_COLOR

    if 0 <= class_id < len(_PALETTE):
        return _PALETTE[class_id]

    rng = np.random.default_rng(abs(int(class_id)))
    rgb = rng.integers(0, 256, size=3, dtype=np.uint8)
    return int(rgb[0]), int(rgb[1]), int(rgb[2])


def color_to_hex(color: Tuple[int, int, int]) -> str:
    r, g, b = color
    return f"#{r:02X}{g:02X}{b:02X}"
