from __future__ import annotations

from dataclasses import dataclass

import numpy as np


PARALLEL_MODE = "parallel"
CPU_FALLBACK_MODE = "cpu_fallback"


@dataclass(frozen=True)
class RenderOptions:
    resolution_scale: float = 1.0


@dataclass
class RenderResult:
    frame: np.ndarray
    mode: str

    @property
    def width(self) -> int:
        return int(self.frame.shape[1])

    @property
    def height(self) -> int:
        return int(self.frame.shape[0])
