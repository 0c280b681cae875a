from __future__ import annotations

import logging
from typing import Any, Mapping

from filmsim_approx.engine.params import RecipeParams, StrengthScalars
from filmsim_approx.engine.uniforms import Uniforms, derive_uniforms

from .base import RenderError
from .scalar import ScalarRenderer
from .shader import ShaderRenderer
from .types import RenderOptions, RenderResult


logger = logging.getLogger(__name__)

RENDERER_KINDS = ("dual", "parallel", "scalar")


class DualPathRenderer:
    """Parallel path when its backend initializes, scalar path otherwise.

    A backend that fails to initialize is remembered and every later render
    goes straight to the scalar path; the result's mode says which one ran.
    """

    def __init__(self, backend: str = "numpy") -> None:
        self.backend = backend
        self._scalar = ScalarRenderer()
        self._parallel: ShaderRenderer | None = None
        self._parallel_init_error: Exception | None = None
        try:
            self._parallel = ShaderRenderer(backend=backend)
        except RenderError as exc:
            self._parallel_init_error = exc
            logger.warning("parallel renderer unavailable, using scalar path: %s", exc)

    @property
    def mode(self) -> str:
        return self._parallel.mode if self._parallel is not None else self._scalar.mode

    def render(self, source: Any, uniforms: Uniforms, options: RenderOptions | None = None) -> RenderResult:
        if self._parallel is not None:
            try:
                return RenderResult(frame=self._parallel.render(source, uniforms, options), mode=self._parallel.mode)
            except RenderError as exc:
                logger.warning("parallel render failed, falling back to scalar path: %s", exc)
        return RenderResult(frame=self._scalar.render(source, uniforms, options), mode=self._scalar.mode)


class _SinglePathRenderer:
    def __init__(self, inner: ShaderRenderer | ScalarRenderer) -> None:
        self._inner = inner
        self.mode = inner.mode

    def render(self, source: Any, uniforms: Uniforms, options: RenderOptions | None = None) -> RenderResult:
        return RenderResult(frame=self._inner.render(source, uniforms, options), mode=self.mode)


def create_renderer(kind: str = "dual", backend: str = "numpy") -> DualPathRenderer | _SinglePathRenderer:
    if kind == "dual":
        return DualPathRenderer(backend=backend)
    if kind == "parallel":
        return _SinglePathRenderer(ShaderRenderer(backend=backend))
    if kind == "scalar":
        return _SinglePathRenderer(ScalarRenderer())
    raise ValueError(f"unknown renderer kind: {kind} (expected one of {', '.join(RENDERER_KINDS)})")


def render_params(
    source: Any,
    params: RecipeParams | Mapping[str, Any],
    scalars: StrengthScalars | None = None,
    options: RenderOptions | None = None,
    renderer: DualPathRenderer | None = None,
) -> RenderResult:
    recipe = params if isinstance(params, RecipeParams) else RecipeParams.from_dict(params)
    uniforms = derive_uniforms(recipe, scalars)
    return (renderer or DualPathRenderer()).render(source, uniforms, options)
