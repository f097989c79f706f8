from __future__ import annotations

import random
import unittest

from schizoid.errors import BrainStateError
from schizoid.model import NgramModel, ngrams, sample
from schizoid.tokenizer import END_OF_TEXT, ByteTokenizer, CharTokenizer


class HelperTests(unittest.TestCase):
    def test_ngrams_windows(self) -> None:
        self.assertEqual(ngrams([1, 2, 3], 2), [[1, 2], [2, 3]])
        self.assertEqual(ngrams([1, 2], 3), [])
        self.assertEqual(ngrams([1, 2], 0), [])

    def test_sample_zero_mass_resolves_to_end_of_text(self) -> None:
        self.assertEqual(sample([]), END_OF_TEXT)
        self.assertEqual(sample([0.0, 0.0, 0.0]), END_OF_TEXT)

    def test_sample_one_hot(self) -> None:
        rng = random.Random(3)
        for _ in range(20):
            self.assertEqual(sample([0.0, 0.0, 1.0], rng), 2)


class TrainingTests(unittest.TestCase):
    def test_train_records_every_order(self) -> None:
        model = NgramModel(CharTokenizer(), n=3)
        model.train("ab")
        self.assertEqual(model.tokenizer.vocabulary(), ["a", "b"])
        for key in ("a", "b", "ab", "ab\0", "b\0", "\0"):
            self.assertEqual(model.counts[key], 1, key)
        # One order-0 count per symbol, end marker included.
        self.assertEqual(model.counts[""], 3)
        self.assertEqual(model.total_symbols(), 3)

    def test_empty_text_is_ignored(self) -> None:
        model = NgramModel(CharTokenizer(), n=3)
        model.train("")
        self.assertEqual(model.counts, {})

    def test_forget_is_inverse_of_train(self) -> None:
        model = NgramModel(CharTokenizer(), n=4)
        model.train("hello")
        before = dict(model.counts)
        model.train("help")
        model.forget("help")
        for key, value in before.items():
            self.assertEqual(model.counts[key], value, key)
        self.assertTrue(all(model.counts[key] == 0 for key in model.counts if key not in before))

    def test_forget_never_goes_negative(self) -> None:
        model = NgramModel(CharTokenizer(), n=3)
        model.train("ab")
        model.forget("ab")
        model.forget("ab")
        model.forget("zz")
        self.assertTrue(all(value >= 0 for value in model.counts.values()))
        self.assertNotIn("zz", model.counts)

    def test_unknown_symbols_are_not_counted_by_byte_tokenizer(self) -> None:
        model = NgramModel(ByteTokenizer(), n=2)
        model.train("a€")
        self.assertEqual(model.counts["a"], 1)
        self.assertNotIn("a€", model.counts)
        self.assertEqual(model.counts[""], 2)


class EstimationTests(unittest.TestCase):
    def test_probs_with_smoothing(self) -> None:
        model = NgramModel(CharTokenizer(), n=3, smoothing=0.5)
        model.train("abcab")
        probs = model.probs("ab")
        self.assertEqual(len(probs), model.tokenizer.vocab_size())
        self.assertAlmostEqual(sum(probs), 1.0)
        # "ab" was followed once by "c" and once by the end marker.
        self.assertAlmostEqual(probs[END_OF_TEXT], 0.375)
        self.assertAlmostEqual(probs[model.tokenizer.encode("c")[0]], 0.375)
        self.assertAlmostEqual(probs[model.tokenizer.encode("a")[0]], 0.125)

    def test_probs_backs_off_past_unknown_context(self) -> None:
        model = NgramModel(CharTokenizer(), n=3)
        model.train("abc")
        probs = model.probs("xb")
        c_id = model.tokenizer.encode("c")[0]
        self.assertAlmostEqual(probs[c_id], 1.0)
        self.assertAlmostEqual(sum(probs), 1.0)

    def test_end_marker_character_in_text_shares_end_of_text_id(self) -> None:
        model = NgramModel(CharTokenizer(), n=2, smoothing=0.1)
        model.train("a\0")
        self.assertEqual(model.tokenizer.vocabulary(), ["a"])
        probs = model.probs("a")
        self.assertEqual(len(probs), 2)
        self.assertAlmostEqual(sum(probs), 1.0)

    def test_unseen_context_backs_off_instead_of_zeroing(self) -> None:
        model = NgramModel(CharTokenizer(), n=3)
        model.train("ab")
        model.train("ba")
        # "bb" never occurred; the distribution comes from the "b" history.
        probs = model.probs("bb")
        self.assertAlmostEqual(sum(probs), 1.0)
        self.assertAlmostEqual(probs[END_OF_TEXT], 0.5)

    def test_probs_on_empty_model_is_all_zero(self) -> None:
        model = NgramModel(CharTokenizer(), n=3)
        self.assertEqual(model.probs("ab"), [0.0])

    def test_count_of_backs_off_to_shorter_context(self) -> None:
        model = NgramModel(CharTokenizer(), n=3)
        model.train("abc")
        model.train("d")
        tokens = model.tokenizer.encode("dbc")
        self.assertEqual(model.count_of(tokens), 1)
        self.assertEqual(model.count_of(tokens, min_context_len=3), 0)
        self.assertEqual(model.backoff_context(tokens), tokens[1:])


class GenerationTests(unittest.TestCase):
    def test_short_seed_yields_nothing(self) -> None:
        model = NgramModel(CharTokenizer(), n=3)
        model.train("abc")
        self.assertEqual(model.generate("a", 10), "")

    def test_generation_includes_seed_and_stops_at_end_marker(self) -> None:
        model = NgramModel(CharTokenizer(), n=3)
        model.train("abc")
        self.assertEqual(model.generate("ab", 10, random.Random(0)), "abc\0")
        self.assertEqual(model.generate("ab", 1, random.Random(0)), "abc")
        self.assertEqual(model.generate("ab", 0), "ab")

    def test_seeded_generation_is_reproducible(self) -> None:
        model = NgramModel(CharTokenizer(), n=3, smoothing=0.1)
        for line in ("the cat sat", "the hat sat on the mat", "that cat"):
            model.train(line)
        first = model.generate("th", 40, random.Random(42))
        second = model.generate("th", 40, random.Random(42))
        self.assertEqual(first, second)
        self.assertTrue(first.startswith("th"))
        self.assertLessEqual(len(first), 42)


class StateTests(unittest.TestCase):
    def test_state_round_trip_preserves_estimates(self) -> None:
        model = NgramModel(CharTokenizer(), n=3, smoothing=0.25)
        model.train("banana")
        restored = NgramModel.from_state(model.to_state())
        self.assertEqual(restored.counts, model.counts)
        self.assertEqual(restored.n, 3)
        self.assertEqual(restored.probs("an"), model.probs("an"))

    def test_invalid_state_raises(self) -> None:
        with self.assertRaises(BrainStateError):
            NgramModel.from_state({"Counts": {}})
        with self.assertRaises(BrainStateError):
            NgramModel.from_state({"N": 3, "Tokenizer": "word"})


if __name__ == "__main__":
    unittest.main()
