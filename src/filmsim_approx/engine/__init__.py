from .params import RecipeParams, StrengthScalars, WbShift, merge_params
from .uniforms import Uniforms, compute_wb_multipliers, derive_uniforms, resolve_film_sim_id

__all__ = [
    "RecipeParams",
    "StrengthScalars",
    "WbShift",
    "merge_params",
    "Uniforms",
    "compute_wb_multipliers",
    "derive_uniforms",
    "resolve_film_sim_id",
]
