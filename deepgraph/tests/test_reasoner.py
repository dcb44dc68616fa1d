"""
Tests for the GraphReasoner loop.
"""

import json
import shutil
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from deepgraph.analysis.reasoner import (
    GraphReasoner,
    IterationRecord,
    ReasonerState,
    marginal_growth_stop,
)
from deepgraph.tests.helpers import ScriptedOracle, extraction_json, make_config
from deepgraph.utils.config_loader import ConfigurationError

ROUNDS = [
    extraction_json([("a", "A"), ("b", "B")], [("a", "b", "enables")]),
    extraction_json([("c", "C")], [("b", "c", "contains")]),
    extraction_json([("d", "D")], [("c", "d", "influences")]),
    extraction_json([("e", "E")], [("d", "e", "requires")]),
    extraction_json([("f", "F")], [("e", "f", "enables"), ("a", "b", "enables")]),
]


class ReasonerTestCase(unittest.TestCase):
    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)


class TestFullRun(ReasonerTestCase):
    def test_runs_all_iterations_and_summarizes(self):
        oracle = ScriptedOracle(ROUNDS[:3])
        events = []
        reasoner = GraphReasoner(make_config(oracle, self.temp_dir, max_iterations=3))
        result = reasoner.run(progress_callback=events.append)

        self.assertEqual(result.state, ReasonerState.DONE)
        self.assertEqual(result.iterations_completed, 3)
        self.assertEqual(result.summary, "Final synthesis")
        self.assertEqual(result.num_concepts, 4)
        self.assertEqual(result.num_relationships, 3)
        self.assertEqual(oracle.calls, ["generate", "extract"] * 3 + ["summarize"])

        statuses = [e["status"] for e in events]
        self.assertEqual(statuses[0], "start")
        self.assertEqual(statuses[-1], "complete")
        self.assertIn("metrics", statuses)

    def test_prompts_chain_from_seed_to_composed(self):
        oracle = ScriptedOracle(ROUNDS[:2])
        reasoner = GraphReasoner(make_config(oracle, self.temp_dir, max_iterations=2))
        reasoner.run()

        self.assertEqual(oracle.generate_prompts[0], reasoner.seed_prompt)
        self.assertIn("Based on our current knowledge graph about test materials", oracle.generate_prompts[1])
        self.assertIn("Exploration text for round 1", oracle.extract_prompts[0])
        self.assertIn("- A: About A", oracle.summary_prompts[0])
        self.assertIn("- B contains C: ", oracle.summary_prompts[0])

    def test_snapshot_per_iteration(self):
        oracle = ScriptedOracle(ROUNDS[:3])
        result = GraphReasoner(make_config(oracle, self.temp_dir, max_iterations=3)).run()

        self.assertEqual(len(result.snapshot_paths), 3)
        for k, path in enumerate(result.snapshot_paths, 1):
            self.assertTrue(path.name.startswith(f"graph_iteration_{k}_"))
            with open(path) as f:
                data = json.load(f)
            self.assertEqual(data["iteration"], k)
        with open(result.snapshot_paths[0]) as f:
            self.assertEqual(len(json.load(f)["concepts"]), 2)

    def test_visualizations_written_when_enabled(self):
        oracle = ScriptedOracle(ROUNDS[:1])
        cfg = make_config(oracle, self.temp_dir, max_iterations=1)
        cfg["output"]["visualize"] = True
        result = GraphReasoner(cfg).run()
        viz = result.records[0].visualization_path
        self.assertIsNotNone(viz)
        self.assertTrue(viz.exists())
        self.assertEqual(viz.parent, self.temp_dir / "graph_visualizations")

    def test_run_twice_raises(self):
        oracle = ScriptedOracle(ROUNDS[:1])
        reasoner = GraphReasoner(make_config(oracle, self.temp_dir, max_iterations=1))
        reasoner.run()
        with self.assertRaises(RuntimeError):
            reasoner.run()


class TestFailureResilience(ReasonerTestCase):
    def test_generate_failure_on_iteration_three(self):
        oracle = ScriptedOracle(
            # Iteration 3 never reaches extraction, so the fourth answer is consumed by iteration 4
            [ROUNDS[0], ROUNDS[1], ROUNDS[3], ROUNDS[4]],
            generate_failures={3},
        )
        debug_logger = MagicMock()
        reasoner = GraphReasoner(make_config(oracle, self.temp_dir, max_iterations=5),
                                 debug_logger=debug_logger)
        result = reasoner.run()

        self.assertEqual(result.iterations_completed, 5)
        self.assertEqual(len(result.records), 5)
        third = result.records[2]
        self.assertEqual(third.failure, "oracle")
        self.assertEqual((third.concepts_added, third.relationships_added), (0, 0))

        # d was only introduced by the failed round; c->d is never merged, d->e is dangling
        self.assertEqual(list(reasoner.store.concepts), ["a", "b", "c", "e", "f"])
        self.assertEqual(
            [r.key for r in reasoner.store.relationships],
            [("a", "b", "enables"), ("b", "c", "contains"), ("e", "f", "enables")],
        )
        self.assertEqual(result.summary, "Final synthesis")
        self.assertEqual(len(result.snapshot_paths), 5)
        event_types = [c.args[0] for c in debug_logger.log_event.call_args_list]
        self.assertIn("Oracle Failure", event_types)

    def test_parse_failure_keeps_raw_response(self):
        oracle = ScriptedOracle([ROUNDS[0], "I refuse to answer in JSON", ROUNDS[1]])
        result = GraphReasoner(make_config(oracle, self.temp_dir, max_iterations=3)).run()

        second = result.records[1]
        self.assertEqual(second.failure, "parse")
        self.assertEqual(second.raw_response, "I refuse to answer in JSON")
        self.assertIsNone(result.records[2].failure)
        self.assertEqual(result.num_concepts, 3)

    def test_extract_oracle_failure(self):
        oracle = ScriptedOracle([ConnectionError("reset"), ROUNDS[0]])
        result = GraphReasoner(make_config(oracle, self.temp_dir, max_iterations=2)).run()
        self.assertEqual(result.records[0].failure, "oracle")
        self.assertEqual(result.num_concepts, 2)

    def test_empty_store_reuses_seed(self):
        oracle = ScriptedOracle(["nothing useful", ROUNDS[0]])
        reasoner = GraphReasoner(make_config(oracle, self.temp_dir, max_iterations=2))
        reasoner.run()
        self.assertEqual(oracle.generate_prompts, [reasoner.seed_prompt, reasoner.seed_prompt])

    def test_summary_failure_yields_none(self):
        oracle = ScriptedOracle(ROUNDS[:1], summary_error=TimeoutError("slow"))
        result = GraphReasoner(make_config(oracle, self.temp_dir, max_iterations=1)).run()
        self.assertIsNone(result.summary)
        self.assertIn("slow", result.summary_error)
        self.assertEqual(result.state, ReasonerState.DONE)

    def test_dangling_relationships_counted(self):
        oracle = ScriptedOracle([extraction_json([("a", "A")], [("a", "ghost", "enables")])])
        result = GraphReasoner(make_config(oracle, self.temp_dir, max_iterations=1)).run()
        self.assertEqual(result.records[0].rejected_relationships, 1)
        self.assertEqual(result.num_relationships, 0)


class TestCancellationAndStopping(ReasonerTestCase):
    def test_cancel_before_next_oracle_call(self):
        oracle = ScriptedOracle(ROUNDS)
        cancel = threading.Event()

        def cancel_after_first_extract(o, user):
            if len(o.extract_prompts) == 1 and not user.startswith("Parse"):
                cancel.set()

        # Set the event while iteration 2 generates; its extraction never runs
        oracle.on_call = cancel_after_first_extract
        result = GraphReasoner(make_config(oracle, self.temp_dir, max_iterations=5)).run(cancel_event=cancel)

        self.assertTrue(result.cancelled)
        self.assertIsNone(result.summary)
        self.assertEqual(oracle.calls, ["generate", "extract", "generate"])
        self.assertEqual(result.iterations_completed, 1)
        self.assertEqual(result.num_concepts, 2)
        self.assertEqual(result.state, ReasonerState.DONE)

    def test_cancel_before_start(self):
        oracle = ScriptedOracle(ROUNDS)
        cancel = threading.Event()
        cancel.set()
        result = GraphReasoner(make_config(oracle, self.temp_dir, max_iterations=3)).run(cancel_event=cancel)
        self.assertTrue(result.cancelled)
        self.assertEqual(oracle.calls, [])
        self.assertEqual(result.snapshot_paths, [])

    def test_stop_predicate_ends_loop(self):
        oracle = ScriptedOracle(ROUNDS)
        result = GraphReasoner(make_config(oracle, self.temp_dir, max_iterations=5)).run(
            stop_predicate=lambda records: len(records) == 2
        )
        self.assertTrue(result.stopped_early)
        self.assertEqual(result.iterations_completed, 2)
        self.assertEqual(result.summary, "Final synthesis")

    def test_configured_growth_stop(self):
        empty = extraction_json([])
        oracle = ScriptedOracle([ROUNDS[0], empty, empty, ROUNDS[1]])
        cfg = make_config(oracle, self.temp_dir, max_iterations=4,
                          stop={"min_new_items": 1, "patience": 2})
        result = GraphReasoner(cfg).run()
        self.assertTrue(result.stopped_early)
        self.assertEqual(result.iterations_completed, 3)

    def test_blank_exploration_does_not_trigger_growth_stop(self):
        oracle = ScriptedOracle([ROUNDS[0], ROUNDS[1]], empty_rounds={2})
        cfg = make_config(oracle, self.temp_dir, max_iterations=3,
                          stop={"min_new_items": 1, "patience": 1})
        result = GraphReasoner(cfg).run()

        self.assertFalse(result.stopped_early)
        self.assertEqual(result.iterations_completed, 3)
        self.assertEqual(result.records[1].failure, "parse")
        self.assertEqual(result.records[1].error, "empty exploration text")
        # The blank answer is never sent to the parsing call
        self.assertEqual(oracle.calls, ["generate", "extract", "generate", "generate", "extract", "summarize"])
        self.assertEqual(result.num_concepts, 3)


class TestMarginalGrowthStop(unittest.TestCase):
    def _rec(self, i, added, failure=None):
        return IterationRecord(iteration=i, prompt="", concepts_added=added, failure=failure)

    def test_requires_patience_low_rounds(self):
        stop = marginal_growth_stop(min_new=2, patience=2)
        self.assertFalse(stop([self._rec(1, 5), self._rec(2, 1)]))
        self.assertTrue(stop([self._rec(1, 5), self._rec(2, 1), self._rec(3, 0)]))

    def test_failed_rounds_do_not_count(self):
        stop = marginal_growth_stop(min_new=1, patience=1)
        self.assertFalse(stop([self._rec(1, 3), self._rec(2, 0, failure="oracle")]))


class TestStartupValidation(ReasonerTestCase):
    def test_invalid_iteration_count(self):
        oracle = ScriptedOracle(ROUNDS)
        with self.assertRaises(ConfigurationError):
            GraphReasoner(make_config(oracle, self.temp_dir, max_iterations=0))
        self.assertEqual(oracle.calls, [])

    def test_missing_api_key(self):
        cfg = {"models": {"reasoner": {"provider": "openai", "model": "gpt-4o"}},
               "openai": {"api_key_env": "DEEPGRAPH_TEST_MISSING_KEY"}}
        with self.assertRaises(ConfigurationError):
            GraphReasoner(cfg)

    def test_rejected_credentials_are_fatal(self):
        oracle = MagicMock()
        oracle.check_credentials.side_effect = PermissionError("invalid api key")
        cfg = make_config(oracle, self.temp_dir, validate_credentials=True)
        reasoner = GraphReasoner(cfg)
        with self.assertRaises(ConfigurationError):
            reasoner.run()
        oracle.raw.assert_not_called()

    def test_openai_key_checked_by_default(self):
        cfg = {"models": {"reasoner": {"provider": "openai", "model": "gpt-4o"}},
               "reasoner": {"max_iterations": 2, "delay_ms": 0},
               "output": {"snapshots_dir": str(self.temp_dir / "graph_data"), "visualize": False}}
        with patch("deepgraph.llm.unified_client.OpenAIProvider") as provider_cls:
            provider = provider_cls.return_value
            provider.provider_name = "OpenAI"
            provider.check_credentials.side_effect = RuntimeError("401 invalid api key")
            provider.is_auth_error.return_value = True
            reasoner = GraphReasoner(cfg)
            with self.assertRaises(ConfigurationError):
                reasoner.run()
        provider.raw.assert_not_called()
        self.assertFalse((self.temp_dir / "graph_data").exists())

    def test_unreachable_credential_check_only_warns(self):
        oracle = ScriptedOracle(ROUNDS[:1])
        oracle.check_credentials = MagicMock(side_effect=ConnectionError("offline"))
        events = []
        cfg = make_config(oracle, self.temp_dir, max_iterations=1, validate_credentials=True)
        result = GraphReasoner(cfg).run(progress_callback=events.append)
        self.assertIn("warn", [e["status"] for e in events])
        self.assertEqual(result.num_concepts, 2)


if __name__ == '__main__':
    unittest.main()
