import math
import random
import unittest
from unittest.mock import patch

import torch

from fsrskit.core import ReviewEvent
from fsrskit.corpus import first_long_term_reviews
from fsrskit.fsrs_defaults import DEFAULT_PARAMETERS, PARAMETER_BOUNDS, PARAMETER_COUNT
from fsrskit.optimizer import OptimizerConfig, optimize, pretrain_initial_stability
from fsrskit.replay import replay


def synthetic_corpus(n_items=30, seed=7):
    rng = random.Random(seed)
    corpus = {}
    for item in range(n_items):
        events = [ReviewEvent(rng.choice((2, 3, 4)), 0)]
        interval = 1
        for _ in range(rng.randint(3, 5)):
            events.append(ReviewEvent(rng.choice((2, 3, 4)), interval))
            interval = interval * rng.randint(2, 3)
        corpus[f"card-{item}"] = events
    return corpus


class TestOptimize(unittest.TestCase):
    def setUp(self):
        self.corpus = synthetic_corpus()
        self.config = OptimizerConfig(epochs=3)

    def assertValidParameters(self, parameters):
        self.assertEqual(len(parameters), PARAMETER_COUNT)
        for value, (low, high) in zip(parameters, PARAMETER_BOUNDS):
            self.assertTrue(math.isfinite(value))
            self.assertGreaterEqual(value, low - 1e-9)
            self.assertLessEqual(value, high + 1e-9)

    def test_fits_synthetic_corpus(self):
        result = optimize(self.corpus, enable_short_term=True, config=self.config)
        self.assertTrue(result.success, result.error)
        self.assertIsNone(result.error)
        self.assertValidParameters(result.parameters)
        self.assertEqual(result.item_count, 30)
        self.assertTrue(math.isfinite(result.loss))

    def test_initial_stability_stays_ordered(self):
        result = optimize(self.corpus, config=self.config)
        self.assertTrue(result.success, result.error)
        s = result.parameters[:4]
        self.assertLess(s[0], s[1])
        self.assertLess(s[1], s[2])
        self.assertLess(s[2], s[3])

    def test_short_term_disabled_zeroes_same_day_slots(self):
        result = optimize(self.corpus, enable_short_term=False, config=self.config)
        self.assertTrue(result.success, result.error)
        self.assertEqual(list(result.parameters[17:20]), [0.0, 0.0, 0.0])

    def test_validation_split_and_patience(self):
        config = OptimizerConfig(epochs=4, validation_split=0.3, patience=1, seed=3)
        result = optimize(self.corpus, config=config)
        self.assertTrue(result.success, result.error)
        self.assertValidParameters(result.parameters)
        self.assertLessEqual(result.epochs, 4)

    def test_too_few_items_is_a_failure_result(self):
        small = dict(list(self.corpus.items())[:4])
        small["single"] = [ReviewEvent(3, 0)]
        result = optimize(small)
        self.assertFalse(result.success)
        self.assertIsNone(result.parameters)
        self.assertTrue(result.error)

    def test_invalid_corpus_is_a_failure_result(self):
        corpus = dict(self.corpus)
        corpus["bad"] = [(3, 0), (6, 2)]
        result = optimize(corpus)
        self.assertFalse(result.success)
        self.assertIn("bad", result.error)

    def test_malformed_events_are_a_failure_result(self):
        for bad in ([(3, 0), (3, "soon")], [(3, 0), (3, None)], None, 7):
            corpus = dict(self.corpus)
            corpus["bad"] = bad
            result = optimize(corpus)
            self.assertFalse(result.success)
            self.assertIsNone(result.parameters)
            self.assertIn("bad", result.error)

    def test_wrong_length_start_is_a_failure_result(self):
        result = optimize(self.corpus, params=DEFAULT_PARAMETERS[:10])
        self.assertFalse(result.success)
        self.assertTrue(result.error)

    def test_same_day_only_corpus_is_a_failure_result(self):
        corpus = {f"c{i}": [(3, 0), (3, 0), (2, 0)] for i in range(10)}
        result = optimize(corpus)
        self.assertFalse(result.success)
        self.assertIn("insufficient data", result.error)

    def test_cancellation(self):
        result = optimize(self.corpus, should_stop=lambda: True)
        self.assertFalse(result.success)
        self.assertIsNone(result.parameters)
        self.assertIn("cancelled", result.error)

    def test_timeout(self):
        result = optimize(self.corpus, config=OptimizerConfig(timeout=0.0))
        self.assertFalse(result.success)
        self.assertIn("timed out", result.error)

    def test_result_serializes(self):
        result = optimize(self.corpus, config=self.config)
        data = result.to_dict()
        self.assertTrue(data["success"])
        self.assertEqual(len(data["parameters"]), PARAMETER_COUNT)


def nan_after(calls):
    """Replay that turns every prediction into NaN once `calls` batches have run."""
    seen = []

    def fake(weights, batch, **kwargs):
        seen.append(batch)
        predicted, labels = replay(weights, batch, **kwargs)
        if len(seen) > calls:
            predicted = predicted * torch.tensor(float("nan"), dtype=predicted.dtype)
        return predicted, labels

    return fake


class TestNumericalFailure(unittest.TestCase):
    def setUp(self):
        self.corpus = synthetic_corpus()
        # 30 items in batches of 8 gives four batches per epoch.
        self.config = OptimizerConfig(epochs=3, batch_size=8)

    def test_divergence_in_first_epoch_keeps_starting_vector(self):
        with patch("fsrskit.optimizer.replay", side_effect=nan_after(1)):
            result = optimize(self.corpus, config=self.config)
        self.assertTrue(result.success, result.error)
        self.assertEqual(result.epochs, 0)
        self.assertEqual(len(result.parameters), PARAMETER_COUNT)
        self.assertTrue(all(math.isfinite(w) for w in result.parameters))

    def test_divergence_later_keeps_best_completed_epoch(self):
        with patch("fsrskit.optimizer.replay", side_effect=nan_after(5)):
            result = optimize(self.corpus, config=self.config)
        self.assertTrue(result.success, result.error)
        self.assertEqual(result.epochs, 1)
        self.assertTrue(all(math.isfinite(w) for w in result.parameters))
        self.assertTrue(math.isfinite(result.loss))

    def test_non_finite_initial_loss_is_a_failure_result(self):
        with patch("fsrskit.optimizer.mean_log_loss", return_value=float("nan")):
            result = optimize(self.corpus, config=self.config)
        self.assertFalse(result.success)
        self.assertIsNone(result.parameters)
        self.assertIn("not finite", result.error)


class TestPretrain(unittest.TestCase):
    def test_missing_ratings_keep_start_values(self):
        sequences = [[ReviewEvent(3, 0), ReviewEvent(3, 4)] for _ in range(20)]
        fitted = pretrain_initial_stability(sequences, DEFAULT_PARAMETERS)
        self.assertEqual(fitted[0], DEFAULT_PARAMETERS[0])
        self.assertEqual(fitted[1], DEFAULT_PARAMETERS[1])
        self.assertLess(fitted[1], fitted[2])
        self.assertLess(fitted[2], fitted[3])

    def test_all_forgotten_pulls_stability_down(self):
        sequences = [[ReviewEvent(3, 0), ReviewEvent(1, 10)] for _ in range(50)]
        self.assertTrue(first_long_term_reviews(sequences)[3])
        fitted = pretrain_initial_stability(sequences, DEFAULT_PARAMETERS)
        self.assertLess(fitted[2], DEFAULT_PARAMETERS[2])


if __name__ == "__main__":
    unittest.main()
