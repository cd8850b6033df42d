"""
Tests for the export lifecycle driver and the JSON Lines row source.
"""

import json
import os
import shutil
import tempfile
import unittest
from unittest.mock import Mock, patch

import pyarrow as pa
import pyarrow.parquet as pq

from export_sink.core.engine import ExportRunner
from export_sink.core.errors import ConfigError, FinalizeError, WriteError
from export_sink.core.factory import SinkFactory
from export_sink.core.models import ProjectionColumn, ProjectionType, RowBatch, SinkState
from export_sink.main import run_job
from export_sink.rows import column_index_for, iter_jsonl_batches

from helpers import ClientFactory, FakeS3Client

PROJECTION = [
    ProjectionColumn("name", ProjectionType.STRING),
    ProjectionColumn("age", ProjectionType.INT),
]
INDEX = {"name": 0, "age": 1}


class TestExportRunner(unittest.TestCase):
    def setUp(self):
        self.clients = ClientFactory()
        self.runner = ExportRunner(SinkFactory(session=Mock(), client_factory=self.clients))

    def test_csv_export(self):
        batches = [RowBatch(["Alice", 30], INDEX), RowBatch(["Bob", 25], INDEX)]
        report = self.runner.run("s3://b/users.csv", {"delimiter": ","}, batches, PROJECTION)

        self.assertEqual(report.rows_written, 2)
        self.assertEqual(report.state, SinkState.CLOSED)
        self.assertEqual(report.format, "csv")
        self.assertGreater(report.bytes_uploaded, 0)
        self.assertEqual(self.clients.client.body("b", "users.csv"), b"name,age\nAlice,30\nBob,25\n")

    def test_parquet_export(self):
        batches = (RowBatch([f"user{i}", i], INDEX) for i in range(5))
        report = self.runner.run("s3://b/users.parquet", {"format": "parquet"}, batches, PROJECTION)

        self.assertEqual(report.rows_written, 5)
        table = pq.read_table(pa.BufferReader(self.clients.client.body("b", "users.parquet")))
        self.assertEqual(table.column("age").to_pylist(), ["0", "1", "2", "3", "4"])

    def test_failed_batch_source_closes_without_upload(self):
        def batches():
            yield RowBatch(["Alice", 30], INDEX)
            raise RuntimeError("executor failed")

        with self.assertRaisesRegex(RuntimeError, "executor failed"):
            self.runner.run("s3://b/users.csv", {}, batches(), PROJECTION)
        self.assertEqual(self.clients.client.objects, {})

    def test_write_error_propagates(self):
        batches = [RowBatch(["Alice"], {"name": 0})]
        with self.assertRaises(WriteError):
            self.runner.run("s3://b/users.parquet", {"format": "parquet"}, batches, PROJECTION)
        self.assertEqual(self.clients.client.objects, {})

    def test_csv_close_failure_propagates(self):
        clients = ClientFactory(FakeS3Client(fail_with=OSError("connection reset")))
        runner = ExportRunner(SinkFactory(session=Mock(), client_factory=clients))

        with self.assertRaises(FinalizeError):
            runner.run("s3://b/users.csv", {}, [RowBatch(["Alice", 30], INDEX)], PROJECTION)

    def test_parquet_upload_failure_is_reported_not_raised(self):
        clients = ClientFactory(FakeS3Client(fail_with=OSError("connection reset")))
        runner = ExportRunner(SinkFactory(session=Mock(), client_factory=clients))

        report = runner.run("s3://b/u.parquet", {"format": "parquet"}, [RowBatch(["Alice", 30], INDEX)], PROJECTION)
        self.assertEqual(report.state, SinkState.CLOSED)
        self.assertIn("connection reset", report.error)


class TestJsonlRows(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def _write(self, lines) -> str:
        path = os.path.join(self.tmp_dir, "rows.jsonl")
        with open(path, "w", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")
        return path

    def test_objects_and_arrays(self):
        path = self._write([json.dumps({"age": 30, "name": "Alice"}), "", json.dumps(["Bob", 25]), json.dumps({"name": "Eve"})])
        batches = list(iter_jsonl_batches(path, PROJECTION))

        self.assertEqual([b.values for b in batches], [["Alice", 30], ["Bob", 25], ["Eve", None]])
        self.assertEqual(batches[0].column_index, INDEX)

    def test_bad_lines(self):
        for line in ("{not json", json.dumps(["only"]), json.dumps("scalar")):
            with self.subTest(line=line):
                path = self._write([line])
                with self.assertRaises(ConfigError):
                    list(iter_jsonl_batches(path, PROJECTION))

    def test_column_index_for(self):
        self.assertEqual(column_index_for(PROJECTION), INDEX)


class TestRunJob(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def test_run_job_feeds_runner(self):
        rows_path = os.path.join(self.tmp_dir, "rows.jsonl")
        with open(rows_path, "w", encoding="utf-8") as f:
            f.write(json.dumps({"name": "Alice", "age": 30}) + "\n")

        job_path = os.path.join(self.tmp_dir, "job.yaml")
        with open(job_path, "w", encoding="utf-8") as f:
            f.write(
                "destination: s3://b/users.csv\n"
                "params:\n  delimiter: ','\n"
                "projection:\n  - name: name\n  - name: age\n    type: int\n"
                f"input: {rows_path}\n"
            )

        with patch("export_sink.main.ExportRunner") as runner_cls, patch("export_sink.main.setup_logging"):
            runner_cls.return_value.run.side_effect = lambda dest, params, batches, projection: list(batches)
            run_job(job_path)

        args = runner_cls.return_value.run.call_args.args
        self.assertEqual(args[0], "s3://b/users.csv")
        self.assertEqual(args[1].delimiter, ",")
        self.assertEqual([c.name for c in args[3]], ["name", "age"])


if __name__ == "__main__":
    unittest.main()
