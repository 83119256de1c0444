import math
import unittest

import numpy as np

from fsrskit.core import ValidationError
from fsrskit.engine import initial_state, next_state
from fsrskit.evaluation import calibration_rmse, evaluate
from fsrskit.fsrs_defaults import DEFAULT_PARAMETERS
from fsrskit.math.fsrs import retrievability


def fixed_schedule_corpus(n_items=10):
    return {
        f"item-{i}": [(3, 0), (3 if i % 3 else 1, 1), (3, 3), (4 if i % 2 else 2, 7)]
        for i in range(n_items)
    }


class TestEvaluate(unittest.TestCase):
    def test_default_parameters_on_small_corpus(self):
        result = evaluate(fixed_schedule_corpus(), params=None)
        self.assertTrue(result.success)
        self.assertTrue(math.isfinite(result.log_loss))
        self.assertTrue(math.isfinite(result.rmse_bins))
        self.assertEqual(result.review_count, 30)

    def test_matches_item_by_item_replay(self):
        corpus = {
            "x": [(3, 0), (3, 2), (1, 5)],
            "y": [(2, 0), (3, 0.5), (3, 3)],
        }
        decay = -DEFAULT_PARAMETERS[20]
        terms = []
        for events in corpus.values():
            state = initial_state(events[0][0])
            for rating, elapsed in events[1:]:
                r = retrievability(state.stability, elapsed, decay)
                terms.append(-math.log(r) if rating > 1 else -math.log(1.0 - r))
                state = next_state(state, rating, elapsed)
        result = evaluate(corpus)
        self.assertTrue(result.success)
        self.assertEqual(result.review_count, 4)
        self.assertAlmostEqual(result.log_loss, sum(terms) / len(terms), places=7)

    def test_wrong_length_params_raise(self):
        with self.assertRaises(ValidationError):
            evaluate(fixed_schedule_corpus(), params=DEFAULT_PARAMETERS[:20])
        with self.assertRaises(ValidationError):
            evaluate(fixed_schedule_corpus(), params=list(DEFAULT_PARAMETERS) + [1.0])

    def test_invalid_events_raise(self):
        with self.assertRaises(ValidationError):
            evaluate({"a": [(3, 0), (0, 2)]})

    def test_malformed_items_raise_validation_error(self):
        for corpus in ({"a": None}, {"a": 3}, {"a": [(3, 0), (3, "soon")]}, {"a": [(3, None)]}):
            with self.assertRaises(ValidationError):
                evaluate(corpus)

    def test_empty_corpus_is_a_failure_result(self):
        result = evaluate({})
        self.assertFalse(result.success)
        self.assertTrue(math.isnan(result.log_loss))

    def test_same_day_only_corpus_is_a_failure_result(self):
        result = evaluate({"a": [(3, 0), (3, 0)], "b": [(1, 0), (3, 0)]})
        self.assertFalse(result.success)
        self.assertTrue(math.isnan(result.log_loss))


class TestCalibrationRmse(unittest.TestCase):
    def test_perfect_calibration(self):
        predicted = np.array([0.25, 0.25, 0.25, 0.25])
        observed = np.array([1.0, 0.0, 0.0, 0.0])
        self.assertAlmostEqual(calibration_rmse(predicted, observed), 0.0)

    def test_single_bin_error(self):
        predicted = np.array([0.95, 0.95])
        observed = np.array([0.0, 0.0])
        self.assertAlmostEqual(calibration_rmse(predicted, observed), 0.95)

    def test_sparse_bins_ignored(self):
        predicted = np.array([0.95, 0.15, 0.15])
        observed = np.array([0.0, 0.0, 0.0])
        self.assertAlmostEqual(
            calibration_rmse(predicted, observed, min_bin_count=2), 0.15
        )

    def test_weighted_by_bin_population(self):
        predicted = np.array([0.95, 0.15, 0.15, 0.15])
        observed = np.array([1.0, 0.0, 0.0, 0.0])
        expected = math.sqrt((1 * 0.05**2 + 3 * 0.15**2) / 4)
        self.assertAlmostEqual(calibration_rmse(predicted, observed), expected)

    def test_invalid_bin_width(self):
        with self.assertRaises(ValidationError):
            calibration_rmse(np.array([0.5]), np.array([1.0]), bin_width=0.0)


if __name__ == "__main__":
    unittest.main()
