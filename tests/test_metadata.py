import unittest
from unittest.mock import MagicMock
import os
import sys
import tempfile

import requests

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from occurrence_dedup.errors import MetadataSourceError
from occurrence_dedup.services.metadata import GbifMetadataSource, TableMetadataSource


def response(status_code, payload=None):
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.json.return_value = payload or {}
    mock_response.text = "error body"
    return mock_response


class TestGbifMetadataSource(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.source = GbifMetadataSource(api_url="https://api.gbif.org/v1/", session=self.session)

    def test_fetch_dataset(self):
        self.session.get.side_effect = [
            response(200, {"key": "abc", "title": "Birds of Denmark"}),
            response(200, {"count": 1234, "results": []}),
        ]

        metadata = self.source("abc")

        self.assertEqual(metadata.id, "abc")
        self.assertEqual(metadata.title, "Birds of Denmark")
        self.assertEqual(metadata.record_count, 1234)
        self.assertEqual(metadata.url, "https://www.gbif.org/dataset/abc")

        first_url = self.session.get.call_args_list[0][0][0]
        second_call = self.session.get.call_args_list[1]
        self.assertEqual(first_url, "https://api.gbif.org/v1/dataset/abc")
        self.assertEqual(second_call[1]["params"], {"datasetKey": "abc", "limit": 0})

    def test_results_are_cached(self):
        self.session.get.side_effect = [
            response(200, {"title": "Birds"}),
            response(200, {"count": 1}),
        ]
        self.source("abc")
        self.source("abc")
        self.assertEqual(self.session.get.call_count, 2)

    def test_unknown_dataset_is_none(self):
        self.session.get.return_value = response(404)
        self.assertIsNone(self.source("missing"))
        self.session.get.assert_called_once()

    def test_server_error_raises_from_fetch(self):
        self.session.get.return_value = response(503)
        with self.assertRaises(MetadataSourceError):
            self.source.fetch("abc")

    def test_call_turns_errors_into_missing_metadata(self):
        self.session.get.side_effect = requests.ConnectionError("offline")
        with self.assertLogs("occurrence_dedup.services.metadata", level="ERROR"):
            self.assertIsNone(self.source("abc"))


class TestTableMetadataSource(unittest.TestCase):

    def test_reads_registry_export(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "gbif_datasets.tsv")
            with open(path, "w", encoding="utf-8") as handle:
                handle.write("key\ttitle\toccurrence_count\n")
                handle.write("abc\tBirds of Denmark\t1234\n")
                handle.write("def\tFungi\t\n")

            source = TableMetadataSource(path)

        self.assertEqual(len(source), 2)
        self.assertEqual(source("abc").title, "Birds of Denmark")
        self.assertEqual(source("abc").record_count, 1234)
        self.assertEqual(source("abc").url, "https://www.gbif.org/dataset/abc")
        self.assertIsNone(source("def").record_count)
        self.assertIsNone(source("zzz"))

    def test_requires_id_column(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "datasets.csv")
            with open(path, "w", encoding="utf-8") as handle:
                handle.write("title\nBirds\n")
            with self.assertRaises(MetadataSourceError):
                TableMetadataSource(path)


if __name__ == '__main__':
    unittest.main()
