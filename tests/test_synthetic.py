"""Tests for analytic reference traveltime fields."""

import numpy as np
import pytest

from upwind import (
    GridContext,
    constant_velocity_traveltime,
    create_shot_scenario,
    gradient_velocity_traveltime,
    surface_sources,
)


class TestTraveltimes:
    def test_constant_velocity(self):
        grid = GridContext((5, 4), (1.0, 1.0))
        t = constant_velocity_traveltime(grid, (0.0, 0.0), velocity=2.0)
        assert t.shape == grid.shape
        # t[z, x] with x fastest in the flat layout
        assert t[0, 0] == 0.0
        assert t[0, 4] == pytest.approx(2.0)
        assert t[3, 4] == pytest.approx(2.5)

    def test_constant_velocity_1d_and_3d(self):
        t1 = constant_velocity_traveltime(GridContext((4,), (0.5,)), (0.0,), velocity=1.0)
        np.testing.assert_allclose(t1, [0.0, 0.5, 1.0, 1.5])

        grid = GridContext((3, 3, 3), (1.0, 1.0, 1.0))
        t3 = constant_velocity_traveltime(grid, (1.0, 1.0, 1.0), velocity=1.0)
        assert t3.shape == (3, 3, 3)
        assert t3[1, 1, 1] == 0.0
        assert t3[0, 0, 0] == pytest.approx(np.sqrt(3.0))

    def test_small_gradient_approaches_constant(self):
        grid = GridContext((11, 6), (10.0, 10.0))
        t0 = constant_velocity_traveltime(grid, (50.0, 0.0), velocity=2000.0)
        tg = gradient_velocity_traveltime(grid, (50.0, 0.0), v0=2000.0, gradient=1e-6)
        np.testing.assert_allclose(tg, t0, rtol=1e-6, atol=1e-12)

    def test_zero_gradient_is_constant(self):
        grid = GridContext((6, 6), (1.0, 1.0))
        np.testing.assert_array_equal(
            gradient_velocity_traveltime(grid, (2.0, 2.0), v0=3.0, gradient=0.0),
            constant_velocity_traveltime(grid, (2.0, 2.0), velocity=3.0),
        )

    def test_gradient_speeds_up_deep_paths(self):
        grid = GridContext((11, 11), (10.0, 10.0))
        t0 = constant_velocity_traveltime(grid, (0.0, 0.0), velocity=1800.0)
        tg = gradient_velocity_traveltime(grid, (0.0, 0.0), v0=1800.0, gradient=2.0)
        assert np.all(tg[1:, :] < t0[1:, :])

    def test_invalid_inputs(self):
        grid = GridContext((4, 4), (1.0, 1.0))
        with pytest.raises(ValueError):
            constant_velocity_traveltime(grid, (0.0, 0.0), velocity=0.0)
        with pytest.raises(ValueError):
            constant_velocity_traveltime(grid, (0.0,), velocity=1.0)
        with pytest.raises(ValueError):
            gradient_velocity_traveltime(grid, (0.0, 0.0), v0=1.0, gradient=-1.0)


class TestScenario:
    def test_surface_sources(self):
        grid = GridContext((11, 5), (10.0, 5.0))
        sources = surface_sources(grid, 3)
        np.testing.assert_allclose(sources, [[0.0, 0.0], [50.0, 0.0], [100.0, 0.0]])
        with pytest.raises(ValueError):
            surface_sources(grid, 0)

    def test_create_shot_scenario(self):
        scenario = create_shot_scenario(size=(21, 11), sampling=(5.0, 5.0), n_sources=3)
        assert scenario.n_sources == 3
        assert len(scenario.traveltimes) == 3
        for src, t in zip(scenario.sources, scenario.traveltimes):
            assert t.shape == scenario.grid.shape
            ix = int(round(src[0] / 5.0))
            assert t[0, ix] == pytest.approx(0.0, abs=1e-12)
            assert np.all(t >= 0.0)
        assert scenario.metadata["gradient"] == 0.6
