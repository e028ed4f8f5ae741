import numpy as np
import pytest

from termfractal.engine import (
    EscapeTimeEngine,
    GenerationRequest,
    box_downsample,
    effective_budget,
    escape_counts,
    replicate_blocks,
)
from termfractal.variants import BurningShip, Custom, Julia, Mandelbrot, Multibrot, Tricorn
from termfractal.viewport import Viewport

VARIANTS = [Mandelbrot(), Julia(complex(-0.7, 0.27)), BurningShip(), Tricorn(), Multibrot(3.0), Custom("z^2 + c")]


def _request(variant=None, *, center=(-0.5, 0.0), zoom=1.0, width=16, height=16, iterations=50, **flags):
    return GenerationRequest(
        variant=variant or Mandelbrot(),
        viewport=Viewport(center[0], center[1], zoom, width, height),
        max_iterations=iterations,
        **flags,
    )


@pytest.fixture
def engine():
    return EscapeTimeEngine(workers=1)


@pytest.mark.parametrize("flags", [
    {},
    {"performance_mode": True},
    {"quality_mode": True},
    {"adaptive_sampling": True},
    {"super_sampling": True},
    {"adaptive_sampling": True, "super_sampling": True},
])
@pytest.mark.parametrize("variant", VARIANTS, ids=lambda v: v.kind)
def test_grid_shape_and_range(engine, variant, flags):
    request = _request(variant, zoom=25.0 if flags.get("adaptive_sampling") else 1.0, width=13, height=9, **flags)
    grid = engine.generate(request)
    assert grid.shape == (9, 13)
    assert grid.dtype == np.uint32
    assert grid.min() >= 0
    assert grid.max() <= effective_budget(request)


def test_origin_never_escapes(engine):
    grid = engine.generate(_request(iterations=50))
    assert grid[8, 10] == 50


def test_origin_hits_transformed_budget(engine):
    grid = engine.generate(_request(iterations=50, quality_mode=True))
    assert grid[8, 10] == 75


def test_counts_vary_across_the_view(engine):
    grid = engine.generate(_request(width=10, height=10, iterations=100))
    assert len(np.unique(grid)) > 1


@pytest.mark.parametrize("iterations, flags, expected", [
    (100, {}, 100),
    (100, {"performance_mode": True}, 50),
    (30, {"performance_mode": True}, 20),
    (100, {"quality_mode": True}, 150),
    (400, {"quality_mode": True}, 512),
    (1000, {"quality_mode": True}, 512),
    (100, {"performance_mode": True, "quality_mode": True}, 50),
])
def test_effective_budget(iterations, flags, expected):
    assert effective_budget(_request(iterations=iterations, **flags)) == expected


def test_request_rejects_zero_budget():
    with pytest.raises(ValueError):
        _request(iterations=0)


def test_adaptive_sampling_is_block_uniform(engine):
    grid = engine.generate(_request(center=(-0.745, 0.11), zoom=40.0, width=15, height=11, iterations=80,
                                    adaptive_sampling=True))
    assert grid.shape == (11, 15)
    for y in range(0, 11, 2):
        for x in range(0, 15, 2):
            block = grid[y:y + 2, x:x + 2]
            assert (block == block[0, 0]).all()


def test_adaptive_sampling_keeps_even_pixels(engine):
    kw = dict(center=(-0.745, 0.11), zoom=40.0, width=12, height=10, iterations=80)
    full = engine.generate(_request(**kw))
    coarse = engine.generate(_request(adaptive_sampling=True, **kw))
    assert np.array_equal(coarse[::2, ::2], full[::2, ::2])


def test_adaptive_sampling_needs_zoom_above_ten(engine):
    kw = dict(center=(-0.745, 0.11), zoom=10.0, width=12, height=10, iterations=80)
    assert np.array_equal(engine.generate(_request(adaptive_sampling=True, **kw)), engine.generate(_request(**kw)))


def test_replicate_blocks_crops_to_size():
    coarse = np.array([[1, 2], [3, 4]], dtype=np.uint32)
    out = replicate_blocks(coarse, 3, 3)
    assert out.tolist() == [[1, 1, 2], [1, 1, 2], [3, 3, 4]]


@pytest.mark.parametrize("shape", [(8, 6), (7, 5), (1, 1)])
def test_downsample_of_constant_grid_is_identity(shape):
    grid = np.full(shape, 37, dtype=np.uint32)
    out = box_downsample(grid, 2)
    assert out.shape == ((shape[0] + 1) // 2, (shape[1] + 1) // 2)
    assert (out == 37).all()


def test_downsample_floors_block_means():
    grid = np.array([
        [1, 2, 10, 10],
        [3, 4, 10, 11],
        [5, 5, 0, 0],
    ], dtype=np.uint32)
    out = box_downsample(grid, 2)
    # (1+2+3+4)//4, (10+10+10+11)//4, (5+5)//2, 0
    assert out.tolist() == [[2, 10], [5, 0]]


def test_downsample_handles_large_counts():
    grid = np.full((2, 2), 2 ** 32 - 1, dtype=np.uint32)
    assert box_downsample(grid).tolist() == [[2 ** 32 - 1]]


def test_super_sampling_of_interior_keeps_budget(engine):
    # whole view inside the main cardioid
    grid = engine.generate(_request(center=(-0.1, 0.0), zoom=40.0, width=6, height=4, iterations=40,
                                    super_sampling=True))
    assert (grid == 40).all()


def test_custom_falls_back_to_mandelbrot(engine):
    a = engine.generate(_request(Mandelbrot()))
    b = engine.generate(_request(Custom("sin(z) + c")))
    assert np.array_equal(a, b)


def test_variants_produce_different_grids(engine):
    base = engine.generate(_request(Mandelbrot(), width=8, height=8))
    for other in (Julia(complex(-0.7, 0.27)), BurningShip(), Tricorn(), Multibrot(3.0)):
        assert not np.array_equal(base, engine.generate(_request(other, width=8, height=8)))


def test_julia_starts_from_the_pixel():
    re = np.array([[-2.0, 0.0]])
    im = np.array([[-2.0, 0.0]])
    counts = escape_counts(Julia(complex(0.0, 0.0)), re, im, 30)
    # |z0|^2 = 8 escapes before any step; z = 0 is a fixed point
    assert counts.tolist() == [[0, 30]]


def test_escape_counts_by_hand():
    re = np.array([1.0, 0.5, -1.0])
    im = np.zeros(3)
    counts = escape_counts(Mandelbrot(), re, im, 10)
    # c=1: 0,1,2,5 -> escapes on the third step; c=0.5: 0.5,0.75,1.06,1.63,3.15;
    # c=-1 cycles between 0 and -1
    assert counts.tolist() == [3, 5, 10]


def test_burning_ship_and_tricorn_rules():
    re = np.array([0.0])
    im = np.array([-1.0])
    # burning ship: z1 = -i, z2 = (0 + i)^2 - i = -1 - i, z3 = (1 + i)^2 - i = i, ...
    assert escape_counts(BurningShip(), re, im, 3).tolist() == [3]
    # tricorn: z1 = -i, z2 = (i)^2 - i = -1 - i, z3 = (-1 + i)^2 - i = -3i escapes
    assert escape_counts(Tricorn(), re, im, 10).tolist() == [3]


def test_non_finite_values_count_as_not_escaping():
    re = np.array([-2.0, 3.0])
    im = np.zeros(2)
    counts = escape_counts(Multibrot(1e6), re, im, 25)
    # |-2|^1e6 overflows on the second step; 3 escapes normally on the first
    assert counts.tolist() == [25, 1]


def test_pathological_power_still_yields_valid_grid(engine):
    request = _request(Multibrot(1e6), center=(0.0, 0.0), width=4, height=4, iterations=25)
    grid = engine.generate(request)
    assert grid.shape == (4, 4)
    assert grid.max() <= 25
    assert grid[2, 0] == 25


def test_parallel_bands_match_inline():
    request = _request(center=(-0.6, 0.1), zoom=1.5, width=24, height=20, iterations=60)
    inline = EscapeTimeEngine(workers=1).generate(request)
    parallel = EscapeTimeEngine(workers=2, band_height=3).generate(request)
    assert np.array_equal(inline, parallel)


def test_parallel_adaptive_and_super_sampling_match_inline():
    request = _request(center=(-0.745, 0.11), zoom=30.0, width=10, height=9, iterations=60,
                       adaptive_sampling=True, super_sampling=True)
    inline = EscapeTimeEngine(workers=1).generate(request)
    parallel = EscapeTimeEngine(workers=3, band_height=2).generate(request)
    assert np.array_equal(inline, parallel)


def test_engine_counts_calls(engine):
    engine.generate(_request(width=2, height=2))
    engine.generate(_request(width=2, height=2))
    assert engine.calls == 2


def test_engine_rejects_bad_settings():
    with pytest.raises(ValueError):
        EscapeTimeEngine(workers=0)
    with pytest.raises(ValueError):
        EscapeTimeEngine(band_height=0)
