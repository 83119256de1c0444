import unittest

import torch

from fsrskit.core import Rating, ReviewEvent, ValidationError
from fsrskit.corpus import (
    corpus_from_rows,
    first_long_term_reviews,
    is_scored,
    length_batches,
    pack_sequences,
    qualifying_items,
    review_count,
    validate_corpus,
)


class TestCorpus(unittest.TestCase):
    def test_rows_grouped_by_item_in_order(self):
        rows = [("a", 3, 0), ("b", 1, 0), ("a", 4, 2), ("b", 3, 1), ("a", 2, 5)]
        corpus = corpus_from_rows(rows)
        self.assertEqual(list(corpus), ["a", "b"])
        self.assertEqual(
            corpus["a"],
            [ReviewEvent(3, 0), ReviewEvent(4, 2), ReviewEvent(2, 5)],
        )
        self.assertEqual(review_count(corpus), 5)
        self.assertEqual(qualifying_items(corpus), 2)

    def test_malformed_row_rejected(self):
        with self.assertRaises(ValidationError):
            corpus_from_rows([("a", 3)])
        with self.assertRaises(ValidationError):
            corpus_from_rows([("a", 9, 0)])

    def test_validation_names_offending_item(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_corpus({"ok": [(3, 0)], "broken": [(3, 0), (2, -4)]})
        self.assertIn("broken", str(ctx.exception))
        with self.assertRaises(ValidationError):
            validate_corpus({"empty": []})
        with self.assertRaises(ValidationError):
            validate_corpus([(3, 0)])

    def test_scored_positions(self):
        events = [ReviewEvent(3, 0), ReviewEvent(3, 0), ReviewEvent(1, 4)]
        self.assertEqual([is_scored(events, i) for i in range(3)], [False, False, True])

    def test_packing_pads_and_masks(self):
        sequences = [
            [ReviewEvent(3, 0), ReviewEvent(1, 2)],
            [ReviewEvent(4, 0), ReviewEvent(3, 0), ReviewEvent(3, 5)],
        ]
        batch = pack_sequences(sequences, dtype=torch.float64)
        self.assertEqual(batch.size, 2)
        self.assertEqual(tuple(batch.ratings.shape), (2, 3))
        self.assertEqual(batch.mask.tolist(), [[True, True, False], [True, True, True]])
        self.assertEqual(
            batch.scored.tolist(), [[False, True, False], [False, False, True]]
        )

    def test_length_batches_cover_every_sequence(self):
        sequences = [[ReviewEvent(3, 0)] * n for n in (5, 2, 4, 3, 2)]
        batches = length_batches(sequences, 2, dtype=torch.float64)
        self.assertEqual([b.size for b in batches], [2, 2, 1])
        self.assertEqual(int(batches[0].mask.sum()), 4)
        with self.assertRaises(ValidationError):
            length_batches(sequences, 0, dtype=torch.float64)

    def test_first_long_term_reviews(self):
        sequences = [
            [ReviewEvent(3, 0), ReviewEvent(3, 2)],
            [ReviewEvent(3, 0), ReviewEvent(1, 1)],
            [ReviewEvent(1, 0), ReviewEvent(3, 0), ReviewEvent(3, 4)],
            [ReviewEvent(4, 0)],
        ]
        grouped = first_long_term_reviews(sequences)
        self.assertEqual(grouped[Rating.GOOD], [(2.0, 1.0), (1.0, 0.0)])
        self.assertEqual(grouped[Rating.AGAIN], [])
        self.assertEqual(grouped[Rating.EASY], [])


if __name__ == "__main__":
    unittest.main()
