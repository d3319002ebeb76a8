"""Command-line entry point for ingesting documents and building skill graphs."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from apps.curriculum import service
from skillgraph.core.config import merge_dag_overrides
from skillgraph.core.dspy_runtime import DSPyConfigurationError, configure_dspy_models
from skillgraph.core.errors import ActivityError, CurriculumError
from skillgraph.pipeline.bootstrap import bootstrap_pipeline
from skillgraph.pipeline.context import PipelineContext
from skillgraph.pipeline.runtime import PipelineComponents, build_components, run_pipeline

app = typer.Typer(help="Turn documents into learning-objective DAGs, lessons, and course modules.")
console = Console()

_OPTIONS: Dict[str, Any] = {}


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        show_default=False,
        help="Pipeline YAML (defaults to config/pipeline.yaml under the repo root).",
    ),
    repo_root: Optional[Path] = typer.Option(None, "--repo-root", show_default=False, help="Repository root."),
    store: Optional[Path] = typer.Option(None, "--store", show_default=False, help="Override the SQLite store path."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _OPTIONS.update(config=config, repo_root=repo_root, store=store)


def load_context() -> PipelineContext:
    return bootstrap_pipeline(
        _OPTIONS.get("config"),
        repo_root=_OPTIONS.get("repo_root"),
        store_override=_OPTIONS.get("store"),
        configure_models=False,
    )


def resolve_components(ctx: PipelineContext) -> PipelineComponents:
    if ctx.dspy_handles is None:
        ctx.dspy_handles = configure_dspy_models(ctx.config.models)
    return build_components(ctx)


def _fail(exc: Exception) -> None:
    console.print(f"[red]{exc}[/red]")
    raise typer.Exit(code=1) from exc


def _print_table(headers: list[str], rows: List[dict], keys: list[str]) -> None:
    table = Table(*headers)
    for row in rows:
        table.add_row(*[str(row.get(key, "")) for key in keys])
    console.print(table)


@app.command()
def ingest(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Text or markdown file."),
    file_name: Optional[str] = typer.Option(None, help="Name to store (defaults to the file name)."),
) -> None:
    """Store a document and split it into chunks."""

    ctx = load_context()
    try:
        document = service.ingest_document(
            ctx.adapter(),
            path.read_text(encoding="utf-8"),
            file_name=file_name or path.name,
            metadata={"source_path": str(path)},
            chunking=ctx.config.chunking,
        )
    except (CurriculumError, ValueError) as exc:
        _fail(exc)
    console.print(f"[green]Stored document[/green] {document['id']} ({document['chunk_count']} chunks)")


@app.command()
def suggest(
    user_input: Optional[str] = typer.Option(None, "--input", help="What the learner wants to learn."),
    document: List[str] = typer.Option([], "--document", "-d", help="Document id (repeatable)."),
    level: Optional[str] = typer.Option(None, help="Self-reported learner level."),
) -> None:
    """Create a root skill from a request and/or stored documents."""

    if not user_input and not document:
        raise typer.BadParameter("Provide --input, --document, or both.")
    ctx = load_context()
    try:
        components = resolve_components(ctx)
        result = service.suggest_partial_skill(
            ctx.adapter(),
            components.programs,
            user_input=user_input,
            document_ids=document,
            user_level=level,
            max_doc_tokens=ctx.config.api.suggest_max_doc_tokens,
        )
    except (CurriculumError, DSPyConfigurationError, LookupError, ValueError) as exc:
        _fail(exc)
    console.print(f"{result['emoji'] or ''} [bold]{result['skill_name']}[/bold] ({result['skill_id']})")
    if result["description"]:
        console.print(result["description"])


@app.command("build-dag")
def build_dag(
    skill_id: str = typer.Argument(..., help="Root skill id."),
    threshold: Optional[float] = typer.Option(None, min=0.0, max=1.0, help="Objective dedup similarity threshold."),
    max_cluster_size: Optional[int] = typer.Option(None, min=1, help="Largest objective cluster sent to the LLM."),
    threshold_increment: Optional[float] = typer.Option(None, min=0.0, max=1.0, help="Re-clustering step."),
) -> None:
    """Generate learning objectives, lessons, and prerequisite links for a skill."""

    ctx = load_context()
    try:
        dag_config = merge_dag_overrides(
            ctx.config.dag,
            {"threshold": threshold, "max_cluster_size": max_cluster_size, "threshold_increment": threshold_increment},
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    try:
        builder = resolve_components(ctx).dag_builder(ctx, skill_id=skill_id)
        builder.config = dag_config
        lesson_ids = service.generate_root_dag(ctx.adapter(), builder, skill_id)
    except (CurriculumError, DSPyConfigurationError, LookupError, ValueError) as exc:
        _fail(exc)
    console.print(f"[green]Generated {len(lesson_ids)} lessons[/green] for {skill_id}")


@app.command("build-modules")
def build_modules(skill_id: str = typer.Argument(..., help="Root skill id.")) -> None:
    """Group a skill's lessons into modules and submodules."""

    ctx = load_context()
    try:
        components = resolve_components(ctx)
        result = service.generate_skill_modules(
            ctx.adapter(),
            components.programs,
            skill_id,
            config=ctx.config.course_structure,
            batch_size=ctx.config.api.batch_size,
        )
    except (CurriculumError, DSPyConfigurationError, LookupError, ValueError) as exc:
        _fail(exc)
    _print_table(["Position", "Module", "Submodules"], [
        {"position": module["position"], "name": module["name"], "count": len(module["submodule_ids"])}
        for module in result["modules"]
    ], ["position", "name", "count"])


@app.command()
def show(
    skill_id: str = typer.Argument(..., help="Root skill id."),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON instead of tables."),
) -> None:
    """Show a skill's lessons, prerequisites, and modules."""

    ctx = load_context()
    try:
        graph = service.fetch_skill_graph(ctx.adapter(), skill_id, batch_size=ctx.config.api.batch_size)
    except LookupError as exc:
        _fail(exc)
    if as_json:
        typer.echo(json.dumps(graph, indent=2, ensure_ascii=False, default=str))
        return

    skill = graph["skill"]
    console.print(f"{skill['emoji'] or ''} [bold]{skill['name']}[/bold] [dim]{skill['processing_state'] or ''}[/dim]")
    names = {node["id"]: node["name"] for node in graph["nodes"]}
    lessons = [node for node in graph["nodes"] if node["skill_type"] == service.LESSON_SKILL_TYPE]
    if not lessons:
        console.print("[yellow]No lessons generated yet.[/yellow]")
        return
    rows = []
    for lesson in lessons:
        prerequisites = [
            names.get(link["upstream_skill"], link["upstream_skill"])
            for link in graph["links"]
            if link["downstream_skill"] == lesson["id"] and link["link_type"] == "lesson_link"
        ]
        rows.append(
            {
                "name": lesson["name"],
                "minutes": (lesson["metadata"] or {}).get("expected_duration_minutes", ""),
                "prerequisites": ", ".join(prerequisites),
            }
        )
    _print_table(["Lesson", "Minutes", "Prerequisites"], rows, ["name", "minutes", "prerequisites"])

    submodules = {module["id"]: module for module in graph["modules"] if module["module_type"] == "submodule"}
    for module in (m for m in graph["modules"] if m["module_type"] == "module"):
        console.print(f"[bold]{module['position']}. {module['name']}[/bold]")
        for child_id in module["children_ids"]:
            submodule = submodules.get(child_id)
            if submodule is None:
                continue
            lesson_names = ", ".join(names.get(lesson_id, lesson_id) for lesson_id in submodule["children_ids"])
            console.print(f"   {submodule['position']}. {submodule['name']}: {lesson_names}")


@app.command()
def run(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Text or markdown file."),
    user_input: Optional[str] = typer.Option(None, "--input", help="Optional learner request."),
) -> None:
    """Ingest a document and build its skill, DAG, and modules end to end."""

    ctx = load_context()
    try:
        components = resolve_components(ctx)
        artifacts = run_pipeline(ctx, path, user_input=user_input, components=components)
    except (CurriculumError, ActivityError, DSPyConfigurationError, LookupError, ValueError) as exc:
        _fail(exc)
    console.print(f"[green]Skill {artifacts.skill_id}[/green]: {artifacts.stats}")
    console.print(f"Manifest: {artifacts.manifest_path}")
    console.print(f"Provenance: {artifacts.provenance_path}")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(8000, help="Bind port."),
    reload: bool = typer.Option(False, help="Reload on code changes."),
) -> None:
    """Serve the HTTP API with uvicorn."""

    uvicorn.run("apps.api.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":  # pragma: no cover
    app()
