import unittest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from engine import (
    Tile, parse_tile, tile_str, full_set, set_size, highest_double,
    round_to_nearest_5, round_down_to_5,
)


class TestTile(unittest.TestCase):
    def test_equality_ignores_orientation(self):
        self.assertEqual(Tile(3, 5), Tile(5, 3))
        self.assertEqual(hash(Tile(3, 5)), hash(Tile(5, 3)))
        self.assertNotEqual(Tile(3, 5), Tile(3, 4))
        self.assertEqual(len({Tile(1, 2), Tile(2, 1), Tile(2, 2)}), 2)

    def test_orientation_is_kept(self):
        t = Tile(3, 5)
        self.assertEqual((t.left, t.right), (3, 5))
        f = t.flip()
        self.assertEqual((f.left, f.right), (5, 3))
        self.assertEqual(str(t), "[3|5]")
        self.assertEqual(tile_str(f), "5-3")

    def test_values(self):
        t = Tile(6, 2)
        self.assertTrue(t.has_value(6))
        self.assertFalse(t.has_value(3))
        self.assertEqual(t.value(), 8)
        self.assertEqual(t.other_value(6), 2)
        self.assertEqual(t.other_value(2), 6)
        with self.assertRaises(ValueError):
            t.other_value(4)
        self.assertTrue(Tile(4, 4).is_double())
        self.assertFalse(t.is_double())

    def test_fits_pips(self):
        self.assertTrue(Tile(6, 6).fits_pips(6))
        self.assertFalse(Tile(7, 0).fits_pips(6))
        self.assertTrue(Tile(9, 3).fits_pips(9))

    def test_negative_pips_rejected(self):
        with self.assertRaises(ValueError):
            Tile(-1, 2)

    def test_parse_tile_forms(self):
        for raw in ["5-3", "5|3", "[5|3]", "53", "5,3", [5, 3], (5, 3), {"left": 5, "right": 3}]:
            t = parse_tile(raw)
            self.assertEqual((t.left, t.right), (5, 3), raw)
        t = Tile(1, 2)
        self.assertIs(parse_tile(t), t)
        with self.assertRaises(ValueError):
            parse_tile("abc")


class TestSets(unittest.TestCase):
    def test_set_sizes(self):
        self.assertEqual(set_size(6), 28)
        self.assertEqual(set_size(9), 55)
        self.assertEqual(len(full_set(6)), 28)
        self.assertEqual(len(set(full_set(9))), 55)

    def test_full_set_contains_every_pair_once(self):
        tiles = full_set(6)
        keys = [t.key() for t in tiles]
        self.assertEqual(len(keys), len(set(keys)))
        for a in range(7):
            for b in range(7):
                self.assertIn(Tile(a, b), tiles)

    def test_highest_double(self):
        self.assertEqual(highest_double([Tile(1, 1), Tile(6, 5), Tile(4, 4)]), Tile(4, 4))
        self.assertIsNone(highest_double([Tile(1, 2), Tile(6, 5)]))


class TestRounding(unittest.TestCase):
    def test_round_to_nearest_5(self):
        self.assertEqual(round_to_nearest_5(0), 0)
        self.assertEqual(round_to_nearest_5(12), 10)
        self.assertEqual(round_to_nearest_5(13), 15)
        self.assertEqual(round_to_nearest_5(17), 15)
        self.assertEqual(round_to_nearest_5(18), 20)
        self.assertEqual(round_to_nearest_5(25), 25)

    def test_round_down_to_5(self):
        self.assertEqual(round_down_to_5(4), 0)
        self.assertEqual(round_down_to_5(19), 15)
        self.assertEqual(round_down_to_5(20), 20)


if __name__ == '__main__':
    unittest.main()
