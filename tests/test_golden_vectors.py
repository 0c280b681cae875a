from __future__ import annotations

import numpy as np
import pytest

from filmsim_approx.engine import RecipeParams, derive_uniforms
from filmsim_approx.render import ScalarRenderer, ShaderRenderer, shade_pixel
from filmsim_approx.render.grain import parallel_grain_field, scalar_grain_seed
from filmsim_approx.render.shader import five_tap_blur


VELVIA = RecipeParams(film_sim="velvia", color=1, highlight=1, chrome="strong")
CLASSIC_NEG = RecipeParams(film_sim="classic_neg", chrome="strong", chrome_blue="strong", wb="shade")
ACROS = RecipeParams(film_sim="acros", shadow=-2, chrome="strong", grain="strong")


@pytest.mark.parametrize(
    ("x", "y", "frequency", "expected"),
    [
        (0, 0, 0.24, 0.876346850058326),
        (1, 0, 0.24, 0.849111913232264),
        (3, 7, 0.12, 0.388254015586426),
        (10, 2, 0.24, 0.457696875600959),
        (0, 1, 0.12, 0.839913135634561),
    ],
)
def test_scalar_grain_seed_values(x: int, y: int, frequency: float, expected: float) -> None:
    assert scalar_grain_seed(x, y, frequency) == pytest.approx(expected, abs=1e-8)


def test_parallel_grain_field_values() -> None:
    field = parallel_grain_field(4, 2, 0, (0.0, 0.0))

    assert field.shape == (2, 4)
    assert field[0, 0] == pytest.approx(0.609195595425263, abs=1e-8)
    assert field[0, 3] == pytest.approx(0.529137340749003, abs=1e-8)
    assert field[1, 1] == pytest.approx(0.968064634369512, abs=1e-8)
    assert field[1, 3] == pytest.approx(0.468148084670247, abs=1e-8)

    large = parallel_grain_field(3, 2, 1, (0.25, -0.5))
    assert large[0, 0] == pytest.approx(0.340311210056825, abs=1e-8)
    assert large[0, 2] == pytest.approx(0.403946449325304, abs=1e-8)
    assert large[1, 1] == pytest.approx(0.490106481411203, abs=1e-8)


def test_five_tap_blur_clamps_at_edges() -> None:
    row = np.array([[[0.0], [1.0]]])
    assert five_tap_blur(row)[..., 0] == pytest.approx(np.array([[0.2, 0.8]]))

    spot = np.zeros((3, 3, 1))
    spot[1, 1, 0] = 1.0
    expected = np.array([[0.0, 0.2, 0.0], [0.2, 0.2, 0.2], [0.0, 0.2, 0.0]])
    assert five_tap_blur(spot)[..., 0] == pytest.approx(expected)


@pytest.mark.parametrize(
    ("params", "rgb8", "seed", "expected"),
    [
        (VELVIA, (200, 140, 110), 0.5, (0.854217333979, 0.523539412523, 0.298939398519)),
        (CLASSIC_NEG, (60, 110, 220), 0.5, (0.265351562350, 0.408077256821, 0.850944077615)),
        (ACROS, (180, 150, 90), 0.8, (0.626906855154, 0.626906855154, 0.626906855154)),
    ],
)
def test_shade_pixel_values(params, rgb8, seed, expected) -> None:
    r, g, b = (c / 255.0 for c in rgb8)
    out = shade_pixel(r, g, b, derive_uniforms(params), seed)

    assert out == pytest.approx(expected, abs=1e-9)


@pytest.mark.parametrize(
    ("params", "rgb8", "expected"),
    [
        (VELVIA, (200, 140, 110), (218, 134, 76)),
        (CLASSIC_NEG, (60, 110, 220), (68, 104, 217)),
        (ACROS, (180, 150, 90), (160, 160, 160)),
    ],
)
def test_scalar_render_values(params, rgb8, expected) -> None:
    frame = np.array([[rgb8]], dtype=np.uint8)
    out = ScalarRenderer().render(frame, derive_uniforms(params))

    assert out[0, 0].tolist() == list(expected)


@pytest.mark.parametrize(
    ("params", "rgb8", "expected"),
    [
        (VELVIA, (200, 140, 110), (219, 133, 72)),
        (CLASSIC_NEG, (60, 110, 220), (66, 104, 219)),
        (ACROS, (180, 150, 90), (159, 159, 159)),
    ],
)
def test_shader_render_values(params, rgb8, expected) -> None:
    frame = np.array([[rgb8]], dtype=np.uint8)
    out = ShaderRenderer().render(frame, derive_uniforms(params))

    assert out[0, 0].tolist() == list(expected)
