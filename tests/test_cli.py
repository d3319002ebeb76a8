from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from skillgraph.cli import main as cli
from skillgraph.core.dspy_runtime import DSPyConfigurationError
from skillgraph.pipeline import PipelineComponents
from tests.mocks.curriculum import SAMPLE_DOCUMENT, keyword_embed, make_programs

runner = CliRunner()


@pytest.fixture()
def repo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    components = PipelineComponents(programs=make_programs(), embed=keyword_embed)
    monkeypatch.setattr(cli, "resolve_components", lambda ctx: components)
    (tmp_path / "databases.md").write_text(SAMPLE_DOCUMENT, encoding="utf-8")
    return tmp_path


def _invoke(repo: Path, *args: str):
    return runner.invoke(cli.app, ["--repo-root", str(repo), "--store", str(repo / "graph.sqlite"), *args])


def _skill_id(repo: Path) -> str:
    result = _invoke(repo, "run", str(repo / "databases.md"), "--input", "databases")
    assert result.exit_code == 0, result.output
    manifest = next((repo / "outputs" / "artifacts").glob("run-*-manifest.json"))
    return json.loads(manifest.read_text(encoding="utf-8"))["skill"]["skill_id"]


def test_ingest_reports_chunks(repo: Path) -> None:
    result = _invoke(repo, "ingest", str(repo / "databases.md"))

    assert result.exit_code == 0, result.output
    assert "Stored document" in result.output
    assert "(1 chunks)" in result.output


def test_ingest_rejects_empty_file(repo: Path) -> None:
    empty = repo / "empty.md"
    empty.write_text("  ", encoding="utf-8")

    result = _invoke(repo, "ingest", str(empty))

    assert result.exit_code == 1
    assert "empty" in result.output


def test_suggest_requires_input(repo: Path) -> None:
    result = _invoke(repo, "suggest")

    assert result.exit_code != 0


def test_suggest_then_build(repo: Path) -> None:
    suggested = _invoke(repo, "suggest", "--input", "sql basics", "--level", "beginner")
    assert suggested.exit_code == 0, suggested.output
    assert "Database Internals" in suggested.output

    missing = _invoke(repo, "build-dag", "skill_missing")
    assert missing.exit_code == 1
    assert "Skill not found" in missing.output


def test_run_and_show(repo: Path) -> None:
    skill_id = _skill_id(repo)

    table = _invoke(repo, "show", skill_id)
    as_json = _invoke(repo, "show", skill_id, "--json")

    assert table.exit_code == 0, table.output
    assert "Transactions" in table.output
    assert "Foundations" in table.output
    graph = json.loads(as_json.output[as_json.output.index("{") :])
    assert graph["skill"]["id"] == skill_id
    assert len(graph["modules"]) == 2


def test_build_dag_and_modules_commands(repo: Path) -> None:
    ingested = _invoke(repo, "ingest", str(repo / "databases.md"))
    document_id = ingested.output.split("Stored document", 1)[1].split()[0]
    suggested = _invoke(repo, "suggest", "-d", document_id)
    assert suggested.exit_code == 0, suggested.output
    skill_id = suggested.output.rsplit("(", 1)[1].split(")", 1)[0]

    dag = _invoke(repo, "build-dag", skill_id, "--threshold", "0.6")
    modules = _invoke(repo, "build-modules", skill_id)

    assert dag.exit_code == 0, dag.output
    assert "Generated 3 lessons" in dag.output
    assert modules.exit_code == 0, modules.output
    assert "Foundations" in modules.output


def test_show_unknown_skill(repo: Path) -> None:
    result = _invoke(repo, "show", "skill_missing")

    assert result.exit_code == 1


@pytest.mark.parametrize(
    "args",
    [
        ("suggest", "--input", "databases"),
        ("build-dag", "skill_missing"),
        ("build-modules", "skill_missing"),
        ("run", "databases.md"),
    ],
)
def test_missing_api_key_exits_cleanly(repo: Path, monkeypatch: pytest.MonkeyPatch, args) -> None:
    def missing_key(ctx):
        raise DSPyConfigurationError("Missing API key for generator models")

    monkeypatch.setattr(cli, "resolve_components", missing_key)
    command = [str(repo / arg) if arg.endswith(".md") else arg for arg in args]

    result = _invoke(repo, *command)

    assert result.exit_code == 1
    assert not isinstance(result.exception, DSPyConfigurationError)
    assert "Missing API key" in result.output
