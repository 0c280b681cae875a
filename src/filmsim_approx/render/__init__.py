from .base import RenderError, Renderer, UnsupportedBackendError
from .dimensions import compute_render_dimensions, prepare_source
from .dual import DualPathRenderer, create_renderer, render_params
from .scalar import ScalarRenderer, shade_pixel
from .shader import SUPPORTED_BACKENDS, ShaderRenderer
from .types import CPU_FALLBACK_MODE, PARALLEL_MODE, RenderOptions, RenderResult

__all__ = [
    "RenderError",
    "Renderer",
    "UnsupportedBackendError",
    "compute_render_dimensions",
    "prepare_source",
    "DualPathRenderer",
    "create_renderer",
    "render_params",
    "ScalarRenderer",
    "shade_pixel",
    "SUPPORTED_BACKENDS",
    "ShaderRenderer",
    "CPU_FALLBACK_MODE",
    "PARALLEL_MODE",
    "RenderOptions",
    "RenderResult",
]
