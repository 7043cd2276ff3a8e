import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from algorithms import MathTools, WeightConverter


class MathToolsTestCase(unittest.TestCase):
    def test_clamp(self) -> None:
        self.assertEqual(MathTools.clamp(5, 0, 10), 5)
        self.assertEqual(MathTools.clamp(-1, 0, 10), 0)
        self.assertEqual(MathTools.clamp(11, 0, 10), 10)
        with self.assertRaises(ValueError):
            MathTools.clamp(1, 2, 1)

    def test_epley_1rm(self) -> None:
        self.assertAlmostEqual(MathTools.epley_1rm(120, 5), 140.0)
        self.assertAlmostEqual(MathTools.epley_1rm(100, 1), 100 * (1 + 1 / 30))
        with self.assertRaises(ValueError):
            MathTools.epley_1rm(100, -1)

    def test_counts_for_e1rm(self) -> None:
        self.assertTrue(MathTools.counts_for_e1rm(100, 1))
        self.assertTrue(MathTools.counts_for_e1rm(100, 12))
        self.assertFalse(MathTools.counts_for_e1rm(100, 13))
        self.assertFalse(MathTools.counts_for_e1rm(100, 0))
        self.assertFalse(MathTools.counts_for_e1rm(0, 5))

    def test_volume(self) -> None:
        self.assertEqual(MathTools.volume([(10, 100.0), (5, 150.0)]), 1750.0)
        self.assertEqual(MathTools.volume([]), 0.0)

    def test_valid_rpe(self) -> None:
        self.assertTrue(MathTools.valid_rpe(None))
        self.assertTrue(MathTools.valid_rpe(7.5))
        self.assertTrue(MathTools.valid_rpe(10))
        self.assertFalse(MathTools.valid_rpe(0.5))
        self.assertFalse(MathTools.valid_rpe(8.25))

    def test_round_to_increment(self) -> None:
        self.assertEqual(MathTools.round_to_increment(63.9, 2.5), 62.5)
        self.assertEqual(MathTools.round_to_increment(65.0, 2.5), 65.0)
        with self.assertRaises(ValueError):
            MathTools.round_to_increment(60, 0)

    def test_warmup_percentages(self) -> None:
        self.assertEqual(MathTools.warmup_percentages(30), [0.5])
        self.assertEqual(MathTools.warmup_percentages(50), [0.4, 0.7])
        self.assertEqual(MathTools.warmup_percentages(140), [0.4, 0.6, 0.8])

    def test_warmup_plan(self) -> None:
        self.assertEqual(
            MathTools.warmup_plan(140, [0.4, 0.6, 0.8], 2.5),
            [(8, 55.0), (5, 82.5), (3, 110.0)],
        )
        self.assertEqual(MathTools.warmup_weights(5, [0.1, 0.2], 2.5), [])
        with self.assertRaises(ValueError):
            MathTools.warmup_weights(0, [0.5], 2.5)


class WeightConverterTestCase(unittest.TestCase):
    def test_conversion(self) -> None:
        self.assertEqual(WeightConverter.kg_to_lb(100), 220.46)
        self.assertEqual(WeightConverter.lb_to_kg(225), 102.06)
        self.assertEqual(WeightConverter.from_kg(100, "kg"), 100)
        with self.assertRaises(ValueError):
            WeightConverter.to_kg(100, "stone")

    def test_plates_per_side(self) -> None:
        load = WeightConverter.plates_per_side(100, "kg")
        self.assertEqual(load["per_side"], 40.0)
        self.assertEqual(load["plates"], [(25.0, 1), (15.0, 1)])
        self.assertEqual(load["remainder"], 0.0)
        self.assertEqual(WeightConverter.plates_per_side(15, "kg")["plates"], [])
        lb = WeightConverter.plates_per_side(225, "lb")
        self.assertEqual(lb["plates"], [(45.0, 2)])
