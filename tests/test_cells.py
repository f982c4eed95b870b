import unittest
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from occurrence_dedup.errors import IndexerFrozenError
from occurrence_dedup.models import CellKey
from occurrence_dedup.services.cells import CellIndexer


class TestCellIndexer(unittest.TestCase):

    def setUp(self):
        self.indexer = CellIndexer(precision=2)

    def test_encode_uses_two_character_geohash(self):
        # Copenhagen falls in geohash "u3"
        key = self.indexer.encode(55.68, 12.57, 2480498, 2019)
        self.assertEqual(key, CellKey("u3", 2480498, 2019))

    def test_encode_is_deterministic(self):
        first = self.indexer.encode(-33.86, 151.21, 5, 2000)
        second = self.indexer.encode(-33.86, 151.21, 5, 2000)
        self.assertEqual(first, second)

    def test_nearby_points_share_a_cell(self):
        a = self.indexer.encode(55.68, 12.57, 1, 2020)
        b = self.indexer.encode(55.40, 12.10, 1, 2020)
        self.assertEqual(a, b)

    def test_species_and_year_split_cells(self):
        base = self.indexer.encode(55.68, 12.57, 1, 2020)
        self.assertNotEqual(base, self.indexer.encode(55.68, 12.57, 2, 2020))
        self.assertNotEqual(base, self.indexer.encode(55.68, 12.57, 1, 2021))

    def test_index_of_assigns_dense_stable_indices(self):
        keys = [CellKey("u3", 1, 2020), CellKey("u3", 2, 2020), CellKey("r3", 1, 2020)]
        indices = [self.indexer.index_of(key) for key in keys]
        self.assertEqual(indices, [0, 1, 2])

        # same key, same index
        self.assertEqual(self.indexer.index_of(keys[1]), 1)
        self.assertEqual(self.indexer.cell_count(), 3)
        self.assertEqual(self.indexer.key_of(2), keys[2])

    def test_frozen_indexer_rejects_new_keys(self):
        known = CellKey("u3", 1, 2020)
        self.indexer.index_of(known)
        self.indexer.freeze()

        self.assertTrue(self.indexer.frozen)
        self.assertEqual(self.indexer.index_of(known), 0)
        with self.assertRaises(IndexerFrozenError):
            self.indexer.index_of(CellKey("u3", 2, 2020))
        self.assertEqual(self.indexer.cell_count(), 1)

    def test_invalid_precision(self):
        with self.assertRaises(ValueError):
            CellIndexer(precision=0)

    def test_precision_controls_geohash_length(self):
        key = CellIndexer(precision=4).encode(55.68, 12.57, 1, 2020)
        self.assertEqual(len(key.geohash), 4)
        self.assertTrue(key.geohash.startswith("u3"))


if __name__ == '__main__':
    unittest.main()
