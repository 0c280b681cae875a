from __future__ import annotations

from typing import Any, Protocol

import numpy as np

from filmsim_approx.engine.uniforms import Uniforms

from .types import RenderOptions


class RenderError(RuntimeError):
    pass


class UnsupportedBackendError(RenderError):
    pass


class Renderer(Protocol):
    mode: str

    def render(self, source: Any, uniforms: Uniforms, options: RenderOptions | None = None) -> np.ndarray:
        ...
