from dataclasses import replace

import numpy as np
import pytest

from vhevo.errors import ShapeMismatchError
from vhevo.introduction import run_introductions
from vhevo.params_and_ic import build_y0, draw_scenario
from vhevo.summary_stats import (
    H0,
    R0,
    V0,
    evenness,
    horizontal_transmission,
    mortality,
    pielou_evenness,
    strain_virulence,
    summary_frame,
    virulence,
    weighted_average,
)


@pytest.fixture
def small_matrix():
    # columns: both strains, first strain only, no infected hosts
    return np.array([
        [5.0, 5.0, 5.0],
        [1.0, 2.0, 0.0],
        [3.0, 0.0, 0.0],
    ])


# ========================= Test weighted averages =========================

class TestWeightedAverage:

    def test_values(self, small_matrix):
        avg = weighted_average(small_matrix, [1.0, 2.0])
        assert avg[0] == pytest.approx(7.0 / 4.0)
        assert avg[1] == pytest.approx(1.0)
        assert np.isnan(avg[2])

    def test_trait_length(self, small_matrix):
        with pytest.raises(ShapeMismatchError):
            weighted_average(small_matrix, [1.0, 2.0, 3.0])

    def test_accepts_population_matrix(self, two_strain_params, short_windows, y0_two):
        matrix = run_introductions(y0_two, two_strain_params, 2, short_windows)
        np.testing.assert_allclose(mortality(matrix, two_strain_params), 0.3)
        np.testing.assert_allclose(horizontal_transmission(matrix, two_strain_params), 0.4)


class TestReproductiveRatios:

    def test_single_strain_values(self, two_strain_params, small_matrix):
        # every present strain has b_y=0.5, u_y=0.3, beta_y=0.4
        h0 = H0(small_matrix, two_strain_params)
        v0 = V0(small_matrix, two_strain_params)
        assert h0[0] == pytest.approx(1.0 * 0.4 / 0.3 * (1 - 0.2 / 1.0))
        assert v0[0] == pytest.approx(0.5 * 0.2 / (1.0 * 0.3))
        np.testing.assert_allclose(R0(small_matrix, two_strain_params)[:2], (h0 + v0)[:2])
        assert np.isnan(h0[2])

    def test_virulence(self, two_strain_params, small_matrix):
        vir = strain_virulence(two_strain_params)
        np.testing.assert_allclose(vir, 1 - 0.7 * 0.2 / 0.3)
        assert virulence(small_matrix, two_strain_params)[0] == pytest.approx(vir[0])

    def test_drawn_virulence_takes_precedence(self, two_strain_params, small_matrix):
        drawn = replace(two_strain_params, virulence=[0.2, 0.6])
        np.testing.assert_allclose(virulence(small_matrix, drawn)[:2], [0.5, 0.2])
        assert np.isnan(virulence(small_matrix, drawn)[2])


# ========================= Test evenness =========================

class TestEvenness:

    def test_equal_shares(self):
        assert pielou_evenness([2.0, 2.0, 2.0]) == pytest.approx(1.0)

    def test_single_strain(self):
        assert pielou_evenness([3.0, 0.0]) == 0.0

    def test_no_strain(self):
        assert pielou_evenness([0.0, 0.0]) == 0.0

    def test_negligible_densities_are_dropped(self):
        assert pielou_evenness([1.0, 1e-20]) == 0.0

    def test_uneven(self):
        assert 0.0 < pielou_evenness([1.0, 9.0]) < 1.0

    def test_per_sample(self, small_matrix):
        ev = evenness(small_matrix)
        assert ev.shape == (3,)
        assert ev[0] == pytest.approx(pielou_evenness([1.0, 3.0]))
        assert ev[1] == 0.0
        assert ev[2] == 0.0


# ========================= Test summary_frame =========================

class TestSummaryFrame:

    def test_columns(self, two_strain_params, small_matrix):
        df = summary_frame(small_matrix, two_strain_params)
        assert list(df.columns) == ["Time", "uninfected", "total_infected", "mortality", "beta",
                                    "virulence", "H0", "V0", "R0", "evenness"]
        assert df["Time"].tolist() == [0.0, 1.0, 2.0]
        assert df["total_infected"].tolist() == [4.0, 2.0, 0.0]

    def test_uses_matrix_times(self, two_strain_params, short_windows, y0_two):
        matrix = run_introductions(y0_two, two_strain_params, 2, short_windows)
        df = summary_frame(matrix, two_strain_params)
        assert len(df) == 21
        assert df["Time"].iloc[-1] == 20.0
        assert not df["R0"].isna().any()

    def test_fig2_virulence_is_weighted_r1(self, short_windows):
        p = draw_scenario("fig2", 3, seed=1)
        matrix = run_introductions(build_y0(3), p, 2, short_windows)
        df = summary_frame(matrix, p)
        np.testing.assert_allclose(df["virulence"], weighted_average(matrix, p.virulence))

    def test_fig3_virulence_from_traits(self, short_windows):
        p = draw_scenario("fig3", 3, seed=1)
        matrix = run_introductions(build_y0(3), p, 2, short_windows)
        df = summary_frame(matrix, p)
        np.testing.assert_allclose(df["virulence"],
                                   weighted_average(matrix, strain_virulence(p)))

    def test_warns_on_empty_samples(self, two_strain_params, small_matrix, caplog):
        with caplog.at_level("WARNING", logger="vhevo.summary_stats"):
            summary_frame(small_matrix, two_strain_params)
        assert "no infected hosts" in caplog.text
