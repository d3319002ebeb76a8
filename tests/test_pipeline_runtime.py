import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import yaml

from skillgraph.core.dspy_runtime import DSPyModelHandles
from skillgraph.pipeline import PipelineComponents, bootstrap_pipeline, build_components, run_pipeline
from tests.mocks.curriculum import SAMPLE_DOCUMENT, keyword_embed, make_programs


class BootstrapTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.repo_root = Path(self._tmp.name)

    def test_defaults_when_config_missing(self) -> None:
        ctx = bootstrap_pipeline(repo_root=self.repo_root, configure_models=False)

        self.assertEqual(ctx.config.store.sqlite_path, (self.repo_root / "outputs" / "skillgraph.sqlite").resolve())
        self.assertTrue(ctx.paths.artifacts_dir.exists())
        self.assertTrue(ctx.paths.logs_dir.exists())
        self.assertIsNone(ctx.dspy_handles)

    def test_config_and_store_override(self) -> None:
        config_dir = self.repo_root / "config"
        config_dir.mkdir()
        (config_dir / "pipeline.yaml").write_text(
            yaml.safe_dump({"store": {"sqlite_path": "data/graph.sqlite"}, "dag": {"threshold": 0.75}}),
            encoding="utf-8",
        )

        ctx = bootstrap_pipeline(repo_root=self.repo_root, configure_models=False)
        overridden = bootstrap_pipeline(
            repo_root=self.repo_root,
            store_override=self.repo_root / "other.sqlite",
            configure_models=False,
        )

        self.assertEqual(ctx.config.store.sqlite_path, (self.repo_root / "data" / "graph.sqlite").resolve())
        self.assertEqual(ctx.config.dag.threshold, 0.75)
        self.assertEqual(overridden.config.store.sqlite_path, (self.repo_root / "other.sqlite").resolve())
        self.assertEqual(overridden.config.dag.threshold, 0.75)

    def test_env_snapshot_masks_keys(self) -> None:
        with mock.patch.dict(os.environ, {"OPENAI_API_KEY": "sk-secret", "OPENAI_API_BASE": "https://proxy"}, clear=True):
            ctx = bootstrap_pipeline(repo_root=self.repo_root, configure_models=False)

        self.assertEqual(ctx.env, {"OPENAI_API_KEY": "***", "OPENAI_API_BASE": "https://proxy"})

    @mock.patch("skillgraph.pipeline.bootstrap.configure_dspy_models", autospec=True)
    def test_model_configuration_is_logged(self, mock_configure) -> None:
        mock_configure.return_value = DSPyModelHandles(generator=object(), grader=object(), embed=keyword_embed)

        ctx = bootstrap_pipeline(repo_root=self.repo_root)

        self.assertIs(ctx.dspy_handles, mock_configure.return_value)
        events = [json.loads(line) for line in ctx.provenance.output_path.read_text(encoding="utf-8").splitlines()]
        self.assertEqual(events[-1]["stage"], "bootstrap")
        self.assertEqual(events[-1]["payload"]["generator_model"], "gpt-4o-mini")

    def test_components_require_models(self) -> None:
        ctx = bootstrap_pipeline(repo_root=self.repo_root, configure_models=False)

        with self.assertRaises(RuntimeError):
            build_components(ctx)


class PipelineRuntimeTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.repo_root = Path(self._tmp.name)
        self.document = self.repo_root / "databases.md"
        self.document.write_text(SAMPLE_DOCUMENT, encoding="utf-8")
        self.ctx = bootstrap_pipeline(repo_root=self.repo_root, configure_models=False)
        self.components = PipelineComponents(programs=make_programs(), embed=keyword_embed)

    def test_run_pipeline_writes_manifest_and_provenance(self) -> None:
        artifacts = run_pipeline(self.ctx, self.document, user_input="databases", components=self.components)

        self.assertEqual(len(artifacts.lesson_ids), 3)
        self.assertEqual(artifacts.stats, {"objectives": 3, "lessons": 3, "links": 6, "modules": 1})
        manifest = json.loads(artifacts.manifest_path.read_text(encoding="utf-8"))
        self.assertEqual(manifest["skill"]["skill_id"], artifacts.skill_id)
        self.assertEqual(manifest["document"]["file_name"], "databases.md")

        stages = [
            json.loads(line)["stage"]
            for line in artifacts.provenance_path.read_text(encoding="utf-8").splitlines()
        ]
        for stage in ("ingest", "suggest", "document_to_dag", "root_dag", "modules"):
            self.assertIn(stage, stages)
        dag_events = self.ctx.provenance.events(stage="document_to_dag")
        self.assertTrue(dag_events)
        for event in dag_events:
            self.assertEqual(event.document_id, artifacts.document_id)
            self.assertEqual(event.skill_id, artifacts.skill_id)
        self.assertEqual(self.ctx.provenance.events(stage="ingest")[0].document_id, artifacts.document_id)

        skill = self.ctx.adapter().get_skill(artifacts.skill_id)
        self.assertEqual(skill["processing_state"], "SUCCESS")


if __name__ == "__main__":
    unittest.main()
