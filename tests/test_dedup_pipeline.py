import unittest
from unittest.mock import patch, MagicMock
import os
import sys
import tempfile

import pandas as pd

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from occurrence_dedup.errors import PartialComputationError
from occurrence_dedup.models import DatasetMetadata
from occurrence_dedup.services import similarity
from occurrence_dedup.services.storage import count_results, partial_results_path, read_results
from occurrence_dedup.workflows.dedup_pipeline import build_shortlist, compute_similarities, run


def occurrence_table():
    # "dup-1" and "dup-2" hold the same records; "other" is elsewhere on the globe
    rows = []
    for dataset_id in ("dup-1", "dup-2"):
        rows += [
            (dataset_id, 12.57, 55.68, 101, 2019),
            (dataset_id, 12.50, 55.60, 101, 2019),
            (dataset_id, 10.20, 56.15, 202, 2020),
        ]
    rows += [
        ("dup-2", 12.57, 55.68, 101, None),   # dropped, no year
        ("other", 151.21, -33.86, 303, 2018),
        ("other", 151.21, 90.0, 303, 2018),   # dropped, latitude
        ("empty", 12.57, 55.68, 101, None),   # nothing usable
    ]
    return pd.DataFrame(
        rows,
        columns=["datasetKey", "decimalLongitude", "decimalLatitude", "speciesKey", "year"],
    )


class TestDedupPipeline(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.source = os.path.join(self.tmp.name, "occurrence.parquet")
        occurrence_table().to_parquet(self.source, index=False)
        self.results_path = os.path.join(self.tmp.name, "similarity.txt")
        self.report_dir = os.path.join(self.tmp.name, "report")
        self.metadata = {
            "dup-1": DatasetMetadata("dup-1", "https://www.gbif.org/dataset/dup-1", "Survey", 3),
            "dup-2": DatasetMetadata("dup-2", "https://www.gbif.org/dataset/dup-2", "Survey (copy)", 4),
        }

    def tearDown(self):
        self.tmp.cleanup()

    def _triples(self):
        return {
            (r.dataset_x, r.dataset_y): r.similarity for r in read_results(self.results_path)
        }

    def test_compute_similarities(self):
        stats = compute_similarities(self.source, self.results_path, workers=1)

        self.assertEqual(stats.records_seen, 10)
        self.assertEqual(stats.records_retained, 7)
        self.assertEqual(stats.datasets, 4)
        self.assertEqual(stats.pairs_written, 6)

        triples = self._triples()
        self.assertEqual(len(triples), 6)
        self.assertAlmostEqual(triples[("dup-1", "dup-2")], 1.0, places=9)
        self.assertEqual(triples[("dup-1", "other")], 0.0)
        self.assertEqual(triples[("dup-1", "empty")], 0.0)

    def test_rerun_is_idempotent(self):
        compute_similarities(self.source, self.results_path, workers=1)
        first = self._triples()

        # a shuffled table assigns cell indices in another order
        shuffled = occurrence_table().sample(frac=1.0, random_state=3)
        shuffled.to_parquet(self.source, index=False)
        compute_similarities(self.source, self.results_path, workers=2, chunk_size=1)
        second = self._triples()

        self.assertEqual(set(first), set(second))
        for pair, value in first.items():
            self.assertAlmostEqual(second[pair], value, places=9)

    def test_resume_appends_missing_ranges(self):
        partial_path = partial_results_path(self.results_path)

        compute_similarities(self.source, self.results_path, workers=1, ranges=[(0, 1)])
        self.assertFalse(os.path.exists(self.results_path))
        self.assertEqual(count_results(partial_path), 3)

        compute_similarities(self.source, self.results_path, workers=1, ranges=[(1, 3)])
        self.assertFalse(os.path.exists(partial_path))
        self.assertEqual(len(self._triples()), 6)

    def test_failed_slice_leaves_no_results_file(self):
        real_compute_block = similarity.compute_block

        def flaky(matrix, start, stop):
            if start == 1:
                raise MemoryError("worker ran out of memory")
            return real_compute_block(matrix, start, stop)

        with patch.object(similarity, "compute_block", side_effect=flaky):
            with self.assertRaises(PartialComputationError) as ctx:
                compute_similarities(self.source, self.results_path, workers=1, chunk_size=1)

        self.assertEqual(ctx.exception.failed_ranges, [(1, 2)])
        self.assertFalse(os.path.exists(self.results_path))
        self.assertEqual(count_results(partial_results_path(self.results_path)), 4)

        # the next run cannot mistake the partial rows for a finished computation
        candidates = run(self.source, self.results_path, report_dir=None,
                         metadata_lookup=self.metadata, workers=1)
        self.assertEqual(len(self._triples()), 6)
        self.assertEqual(len(candidates), 1)

    def test_resuming_failed_slice_publishes_results(self):
        real_compute_block = similarity.compute_block

        def flaky(matrix, start, stop):
            if start == 2:
                raise MemoryError("worker ran out of memory")
            return real_compute_block(matrix, start, stop)

        with patch.object(similarity, "compute_block", side_effect=flaky):
            with self.assertRaises(PartialComputationError) as ctx:
                compute_similarities(self.source, self.results_path, workers=1, chunk_size=1)
        self.assertFalse(os.path.exists(self.results_path))

        compute_similarities(self.source, self.results_path, workers=1,
                             ranges=ctx.exception.failed_ranges)
        self.assertEqual(len(self._triples()), 6)

    def test_build_shortlist(self):
        compute_similarities(self.source, self.results_path, workers=1)
        candidates = build_shortlist(self.results_path, self.metadata, 0.85, self.report_dir)

        self.assertEqual(len(candidates), 1)
        self.assertEqual((candidates[0].dataset_x, candidates[0].dataset_y), ("dup-1", "dup-2"))
        self.assertEqual(candidates[0].metadata_y.title, "Survey (copy)")
        self.assertTrue(os.path.exists(os.path.join(self.report_dir, "shortlist.html")))

    @patch('occurrence_dedup.workflows.dedup_pipeline.compute_similarities')
    def test_run_reuses_existing_results(self, mock_compute):
        with open(self.results_path, "w", encoding="utf-8") as handle:
            handle.write("x y similarity\ndup-1 dup-2 0.9900000000\n")

        candidates = run(self.source, self.results_path, report_dir=None, metadata_lookup=self.metadata)

        mock_compute.assert_not_called()
        self.assertEqual(len(candidates), 1)

    @patch('occurrence_dedup.workflows.dedup_pipeline.compute_similarities')
    def test_run_recompute(self, mock_compute):
        with open(self.results_path, "w", encoding="utf-8") as handle:
            handle.write("x y similarity\n")

        run(self.source, self.results_path, recompute=True, report_dir=None,
            metadata_lookup=self.metadata, workers=3)

        mock_compute.assert_called_once_with(self.source, self.results_path, workers=3)

    @patch('occurrence_dedup.workflows.dedup_pipeline.GbifMetadataSource')
    def test_default_metadata_source_is_gbif(self, mock_source_cls):
        mock_source_cls.return_value = MagicMock(return_value=None)
        with open(self.results_path, "w", encoding="utf-8") as handle:
            handle.write("x y similarity\na b 0.9\n")

        candidates = build_shortlist(self.results_path, report_dir=None)

        mock_source_cls.assert_called_once()
        self.assertIsNone(candidates[0].metadata_x.title)


if __name__ == '__main__':
    unittest.main()
