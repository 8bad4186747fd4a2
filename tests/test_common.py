import os

import numpy as np
import pandas as pd
import pytest

from mbml.common.gaussian import erf, gaussian_cdf, gaussian_inv_cdf, Gaussian, BetaSummary, dirichlet_log_expectation
from mbml.common.numerics import integrate, integrate_points, bin_values, split_camel_case, arg_max, cumulative_average
from mbml.common.realrange import RealRange
from mbml.common import metrics
from mbml.common.outputter import Outputter
from mbml.common.timer import CodeTimer


def close_enough(x, y, r=3):
    return round(x, r) == round(y, r)


class TestGaussianFunctions():

    def test_erf(self):
        assert abs(erf(0.5) - 0.5204999) < 1e-6
        assert abs(erf(1.0) - 0.8427008) < 1e-6
        assert abs(erf(-1.0) + 0.8427008) < 1e-6
        assert erf(0.0) == pytest.approx(0.0, abs=1e-7)

    def test_interval_masses(self):
        expected = [0.682689, 0.954500, 0.997300, 0.999937, 0.9999994, 0.999999998]
        for k, mass in enumerate(expected, start=1):
            assert abs(gaussian_cdf(k) - gaussian_cdf(-k) - mass) < 1e-6

    def test_inverse_cdf(self):
        assert abs(gaussian_inv_cdf(0.975) - 1.959964) < 1e-2
        assert abs(gaussian_inv_cdf(0.5, mean=3.0, sd=2.0) - 3.0) < 1e-2

    def test_inverse_cdf_rejects_bad_probability(self):
        with pytest.raises(ValueError):
            gaussian_inv_cdf(1.5)

    def test_gaussian_product_and_ratio(self):
        product = Gaussian(0.0, 1.0) * Gaussian(0.0, 1.0)
        assert close_enough(product.variance, 0.5)
        ratio = product / Gaussian(0.0, 1.0)
        assert close_enough(ratio.mean, 0.0)
        assert close_enough(ratio.variance, 1.0)

    def test_point_mass_wins_product(self):
        product = Gaussian.point_mass(2.0) * Gaussian(0.0, 1.0)
        assert product.is_point_mass()
        assert product.mean == 2.0

    def test_beta_summary(self):
        beta = BetaSummary(2, 2)
        assert beta.mean == 0.5
        assert close_enough(beta.variance, 0.05)
        assert close_enough(beta.quantile(0.5), 0.5)
        recovered = BetaSummary.from_mean_and_variance(beta.mean, beta.variance)
        assert close_enough(recovered.alpha, 2.0)
        assert close_enough(recovered.beta, 2.0)

    def test_beta_summary_rejects_unattainable_variance(self):
        with pytest.raises(ValueError):
            BetaSummary.from_mean_and_variance(0.5, 0.3)

    def test_dirichlet_log_expectation(self):
        # digamma(1) - digamma(2) = -1
        assert np.allclose(dirichlet_log_expectation([1.0, 1.0]), [-1.0, -1.0])


class TestNumerics():

    def test_simpson(self):
        assert close_enough(integrate(lambda x: x * x, 0.0, 1.0), 1.0 / 3, 6)
        assert close_enough(integrate(np.sin, 0.0, np.pi, intervals=101), 2.0, 6)

    def test_trapezoid(self):
        assert integrate_points([(0.0, 0.0), (1.0, 1.0)]) == 0.5
        assert integrate_points([(0.0, 1.0), (0.5, 1.0), (1.0, 1.0)]) == 1.0

    def test_bin_values(self):
        counts = bin_values([0.05, 0.15, 0.16, 0.95], 10)
        assert list(counts) == [1, 2, 0, 0, 0, 0, 0, 0, 0, 1]

    def test_split_camel_case(self):
        assert split_camel_case("TrueSkill") == "True Skill"
        assert split_camel_case("AverageLogProb") == "Average Log Prob"

    def test_arg_max_breaks_ties_among_the_best(self):
        rng = np.random.RandomState(0)
        picks = set(arg_max([1.0, 3.0, 3.0, 0.0], rng) for _ in range(50))
        assert picks == {1, 2}
        assert arg_max([1.0, 3.0, 3.0]) == 1

    def test_cumulative_average(self):
        assert cumulative_average([1, 3, 5]) == [1.0, 2.0, 3.0]
        assert cumulative_average([]) == []


class TestRealRange():

    def test_round(self):
        assert RealRange(0.12, 0.87).round() == RealRange(0.0, 1.0)
        assert RealRange(-3.2, 7.5).round() == RealRange(-10.0, 10.0)

    def test_swapped_bounds(self):
        r = RealRange(5.0, 1.0, steps=5)
        assert (r.min, r.max) == (1.0, 5.0)
        assert r.step_size == 1.0

    def test_needs_two_steps(self):
        with pytest.raises(ValueError):
            RealRange(0.0, 1.0, steps=1)


class TestMetrics():

    def test_area_under_curve(self):
        labels = [True, True, False, False]
        assert metrics.area_under_roc_curve([0.9, 0.8, 0.2, 0.1], labels) == 1.0
        assert metrics.area_under_roc_curve([0.1, 0.2, 0.8, 0.9], labels) == 0.0

    def test_roc_needs_both_classes(self):
        with pytest.raises(ValueError):
            metrics.roc_curve([0.1, 0.2], [True, True])
        with pytest.raises(ValueError):
            metrics.area_under_roc_curve([0.1, 0.2], [False, False])

    def test_roc_curve_points(self):
        points = metrics.roc_curve([0.9, 0.8, 0.2, 0.1], [True, True, False, False])
        assert points[0] == (0.0, 0.0)
        assert points[-1] == (1.0, 1.0)
        assert (0.0, 1.0) in points
        assert close_enough(metrics.area_under_roc_curve([0.9, 0.2, 0.8, 0.1], [True, True, False, False]), 0.75)

    def test_precision_recall_curve(self):
        points = metrics.precision_recall_curve([0.9, 0.8, 0.2, 0.1], [True, False, True, False])
        assert points[0] == (0.5, 1.0)
        assert points[1] == (0.5, 0.5)
        assert close_enough(points[2][0], 1.0) and close_enough(points[2][1], 2.0 / 3)
        with pytest.raises(ValueError):
            metrics.precision_recall_curve([0.1, 0.2], [False, False])

    def test_ndcg(self):
        assert close_enough(metrics.ndcg([3, 2, 1], [1, 2, 3]), 1.0)
        assert metrics.ndcg([1, 2, 3], [1, 2, 3]) < 1.0
        assert metrics.ndcg([0, 0], [0, 0]) == 0.0

    def test_average_precision_window(self):
        with pytest.raises(ValueError):
            metrics.average_precision([(0.5, 1.0)], lower=-0.1)

    def test_log_prob_floor(self):
        assert close_enough(metrics.log_prob_of_truth([0.0], [True], floor=0.001), np.log(0.001))

    def test_confusion_accuracy_and_recall(self):
        actual = [0, 0, 1, 1, 2]
        predicted = [0, 1, 1, 1, 0]
        matrix = metrics.confusion_matrix(actual, predicted, [0, 1, 2])
        assert matrix.loc[0, 0] == 1 and matrix.loc[0, 1] == 1 and matrix.loc[2, 0] == 1
        assert close_enough(metrics.accuracy(actual, predicted), 0.6)
        assert close_enough(metrics.average_recall(matrix), (0.5 + 1.0 + 0.0) / 3)


class TestOutputter():

    def test_saves_nested_outputs(self, tmp_path):
        outputter = Outputter("Test")
        outputter.out(pd.DataFrame({"a": [1, 2]}), "Results", "Table")
        outputter.out({"x": 1.5, "y": np.float64(2.0)}, "Results", "Values")
        assert sorted(outputter.flatten()) == ["Results/Table", "Results/Values"]
        outputter.save(str(tmp_path))
        assert os.path.exists(os.path.join(str(tmp_path), "Results", "Table.csv"))
        assert os.path.exists(os.path.join(str(tmp_path), "Results", "Values.json"))

    def test_needs_a_name(self):
        with pytest.raises(ValueError):
            Outputter().out(1)

    def test_timer_records_elapsed(self):
        with CodeTimer("Nothing", print_logs=False) as timer:
            pass
        assert timer.elapsed >= 0.0
