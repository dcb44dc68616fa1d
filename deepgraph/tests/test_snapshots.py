"""
Tests for snapshot files and HTML visualizations.
"""

import json
import shutil
import tempfile
import unittest
from pathlib import Path

from deepgraph.analysis.concept_store import Concept, ConceptStore, Relationship
from deepgraph.analysis.snapshots import SnapshotWriter, latest_snapshot, load_snapshot
from deepgraph.visualization.graph_viz import generate_iteration_visualization


def sample_snapshot(iteration=1, timestamp="20240101_120000"):
    store = ConceptStore()
    store.merge(
        [Concept("a", "Alpha", "first <b>bold</b>"), Concept("b", "Beta", "closes </script> early")],
        [Relationship("a", "b", "enables", "alpha enables beta")],
    )
    return store.snapshot(iteration, timestamp=timestamp)


class TestSnapshotWriter(unittest.TestCase):
    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_write_and_load(self):
        writer = SnapshotWriter(self.temp_dir / "graph_data")
        path = writer.write(sample_snapshot())

        self.assertEqual(path.name, "graph_iteration_1_20240101_120000.json")
        self.assertEqual(list(path.parent.glob("*.tmp")), [])
        with open(path) as f:
            data = json.load(f)
        self.assertEqual(data["stats"], {"num_concepts": 2, "num_relationships": 1})
        self.assertEqual(data["concepts"][0]["id"], "a")
        self.assertEqual(data["relationships"][0]["type"], "enables")

        loaded = load_snapshot(path)
        self.assertEqual(loaded, sample_snapshot())

    def test_load_rejects_other_json(self):
        path = self.temp_dir / "other.json"
        path.write_text('{"nodes": []}')
        with self.assertRaises(ValueError):
            load_snapshot(path)

    def test_load_rejects_malformed_entries(self):
        path = self.temp_dir / "graph_iteration_1_x.json"
        path.write_text('{"concepts": [{"identifier": "a"}], "relationships": []}')
        with self.assertRaises(ValueError):
            load_snapshot(path)

    def test_latest_snapshot_orders_by_iteration(self):
        writer = SnapshotWriter(self.temp_dir)
        writer.write(sample_snapshot(2, "20240101_120000"))
        writer.write(sample_snapshot(10, "20240101_110000"))
        writer.write(sample_snapshot(9, "20240101_130000"))
        self.assertEqual(latest_snapshot(self.temp_dir).name, "graph_iteration_10_20240101_110000.json")

    def test_latest_snapshot_empty_directory(self):
        self.assertIsNone(latest_snapshot(self.temp_dir))


class TestVisualization(unittest.TestCase):
    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_html_file_written(self):
        path = generate_iteration_visualization(sample_snapshot(3), self.temp_dir / "viz", title="Polymers & Co")
        self.assertEqual(path.name, "graph_visualization_iteration_3_20240101_120000.html")
        content = path.read_text()
        self.assertIn("<title>Polymers &amp; Co - Iteration 3</title>", content)
        self.assertIn("Iteration 3 &middot; 2 concepts &middot; 1 relationships", content)
        self.assertIn("d3", content)

    def test_descriptions_cannot_close_script_block(self):
        path = generate_iteration_visualization(sample_snapshot(), self.temp_dir)
        content = path.read_text()
        self.assertNotIn("closes </script> early", content)
        self.assertIn("closes <\\/script> early", content)

    def test_empty_snapshot(self):
        snap = ConceptStore().snapshot(1, timestamp="20240101_000000")
        path = generate_iteration_visualization(snap, self.temp_dir)
        self.assertIn("0 concepts", path.read_text())


if __name__ == '__main__':
    unittest.main()
