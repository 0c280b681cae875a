from .color import delta_e_2000, delta_e_76, srgb8_to_lab
from .compare import FrameMetrics, FrameMismatchError, build_difference_visualization, compare_frames, p95

__all__ = [
    "delta_e_2000",
    "delta_e_76",
    "srgb8_to_lab",
    "FrameMetrics",
    "FrameMismatchError",
    "build_difference_visualization",
    "compare_frames",
    "p95",
]
