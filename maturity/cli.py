from __future__ import annotations

import asyncio
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

import typer
from rich.box import ROUNDED
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from maturity import services
from maturity.catalog import category_name, display_score
from maturity.config import Settings, load_settings
from maturity.db import init_db, session_scope
from maturity.errors import MaturityError
from maturity.llm import build_client
from maturity.narrative import NarrativeCache
from maturity.roadmap import RoadmapPlanner
from maturity.schemas import PlanEntryUpdate, QuestionCreate, QuestionUpdate, RespondentProfile
from maturity.scorer import grade, maturity_level

app = typer.Typer(help="Supply-chain maturity scoring, benchmarking and recommendations")
console = Console()

PROFILE_KEYS = ("name", "email", "company", "phone", "industry", "company_size")


def _configure_logging(*, verbose: int, json_output: bool, default_level: str) -> None:
    if verbose <= 0:
        level = logging.getLevelName(default_level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    handlers: list[logging.Handler]
    if json_output:
        handlers = [logging.StreamHandler()]
        fmt = "%(levelname)s: %(message)s"
    else:
        handlers = [RichHandler(console=console, show_time=False, show_path=False, markup=False)]
        fmt = "%(message)s"

    logging.basicConfig(level=level, format=fmt, handlers=handlers, force=True)


@app.callback()
def app_callback(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", help="YAML settings file."),
    db: Path | None = typer.Option(None, "--db", help="SQLite database file."),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON for scripting."),
    verbose: int = typer.Option(0, "-v", "--verbose", count=True, help="Increase log verbosity."),
) -> None:
    settings = load_settings(config, database_path=db)
    ctx.obj = {"json_output": json_output, "settings": settings}
    _configure_logging(verbose=verbose, json_output=json_output, default_level=settings.log_level)


def _settings(ctx: typer.Context) -> Settings:
    settings = ctx.obj["settings"]
    init_db(settings.database_path)
    return settings


def _wants_json(ctx: typer.Context) -> bool:
    return bool(ctx.obj and ctx.obj.get("json_output"))


def _emit_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _fmt(score: float | None) -> str:
    shown = display_score(score)
    return "-" if shown is None else f"{shown:.1f}"


@contextmanager
def _handle_errors() -> Generator[None, None, None]:
    try:
        yield
    except (MaturityError, ValueError) as exc:
        console.print(f"[red]error:[/red] {exc}")
        raise typer.Exit(code=1) from exc


# ---------------------------------------------------------------------------
# Database & submission
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_db_command(ctx: typer.Context) -> None:
    settings = _settings(ctx)
    payload = {"status": "ok", "database": str(settings.database_path)}
    if _wants_json(ctx):
        _emit_json(payload)
    else:
        console.print(f"[green]Database ready:[/green] {settings.database_path}")


def _read_submission(path: Path) -> tuple[dict[str, Any], dict[str, Any]]:
    """Answers file: ``{"answers": {...}, "profile": {...}}`` or a bare answer map."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Answers file must contain a JSON object")
    if "answers" in data:
        return data["answers"], data.get("profile") or {}
    return data, {}


@app.command("submit")
def submit_command(
    ctx: typer.Context,
    answers_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file with answers."),
    name: str | None = typer.Option(None, help="Respondent name."),
    email: str | None = typer.Option(None, help="Respondent email."),
    company: str | None = typer.Option(None, help="Company name."),
    phone: str | None = typer.Option(None, help="Phone number."),
    industry: str | None = typer.Option(None, help="Industry (benchmark cohort)."),
    company_size: str | None = typer.Option(None, "--company-size", help="Company size label."),
) -> None:
    """Score a questionnaire and store it. Resubmitting for the same email and company replaces it."""
    settings = _settings(ctx)
    with _handle_errors():
        answers, profile_data = _read_submission(answers_file)
        options = {"name": name, "email": email, "company": company, "phone": phone,
                   "industry": industry, "company_size": company_size}
        profile_data.update({k: v for k, v in options.items() if v is not None})
        profile = RespondentProfile.model_validate({k: profile_data[k] for k in PROFILE_KEYS if k in profile_data})
        with session_scope() as session:
            out = services.submit_survey(session, profile, answers, settings)

    if _wants_json(ctx):
        _emit_json(out.model_dump())
        return
    table = Table(show_header=True, header_style="bold cyan", box=ROUNDED)
    table.add_column("Category", style="bold")
    table.add_column("Score", justify="right")
    table.add_column("Level")
    table.add_column("Grade", justify="center")
    for key, score in out.category_scores.items():
        table.add_row(category_name(key), _fmt(score), maturity_level(score), grade(score))
    if out.overall_score is not None:
        table.add_row("Overall", _fmt(out.overall_score), maturity_level(out.overall_score),
                      grade(out.overall_score), style="bold")
    verb = "created" if out.created else "updated"
    console.print(Panel(table, title=f"result {out.result_id} · {verb}", border_style="cyan"))


@app.command("details")
def details_command(ctx: typer.Context, result_id: int = typer.Argument(...)) -> None:
    """Per-category breakdown of a stored result's answers."""
    _settings(ctx)
    with _handle_errors(), session_scope() as session:
        details = services.survey_details(session, result_id)
    if _wants_json(ctx):
        _emit_json(details)
        return
    for cat in details:
        table = Table(show_header=True, header_style="bold cyan", box=ROUNDED)
        table.add_column("Question")
        table.add_column("Weight", justify="right")
        table.add_column("Answer", justify="right")
        for q in cat["questions"]:
            table.add_row(q["question"], str(q["weight"]), str(q["answer"]))
        console.print(Panel(table, title=f"{cat['category_name']} · {_fmt(cat['score'])}", border_style="cyan"))


@app.command("results")
def results_command(ctx: typer.Context) -> None:
    """List stored results, newest first."""
    _settings(ctx)
    with _handle_errors(), session_scope() as session:
        listing = services.list_results(session)
    if _wants_json(ctx):
        _emit_json(listing)
        return
    table = Table(show_header=True, header_style="bold cyan", box=ROUNDED)
    table.add_column("ID", justify="right")
    table.add_column("Company")
    table.add_column("Industry")
    table.add_column("Overall", justify="right")
    table.add_column("Grade")
    table.add_column("Submitted")
    for r in listing["results"]:
        table.add_row(
            str(r["result_id"]), r["company"] or "-", r["industry"] or "-",
            _fmt(r["overall"]["score"]), r["overall"]["grade"] or "-", r["created_at"] or "-",
        )
    stats = listing["stats"]
    console.print(Panel(table, title=f"Results · {stats['total']} · avg {_fmt(stats['avg_score'])}",
                        border_style="cyan"))


# ---------------------------------------------------------------------------
# Benchmark & plan
# ---------------------------------------------------------------------------


@app.command("benchmark")
def benchmark_command(
    ctx: typer.Context,
    result_id: int = typer.Argument(...),
    industry: str | None = typer.Option(None, help="Industry cohort (default: the result's industry)."),
    company_size: str | None = typer.Option(None, "--company-size", help="Company size label."),
    all_industries: bool = typer.Option(False, "--all", help="Compare against every stored result."),
) -> None:
    settings = _settings(ctx)
    with _handle_errors(), session_scope() as session:
        result = services.get_result(session, result_id)
        if not all_industries and industry is None:
            industry = result.industry
        report = services.run_benchmark(session, result_id, settings, industry=industry,
                                        company_size=company_size or result.company_size)

    if _wants_json(ctx):
        _emit_json(report.model_dump())
        return
    table = Table(show_header=True, header_style="bold magenta", box=ROUNDED)
    table.add_column("Category", style="bold")
    table.add_column("You", justify="right")
    table.add_column("Avg", justify="right")
    table.add_column("Gap", justify="right")
    table.add_column("Pctl", justify="right")
    table.add_column("Top", justify="right")
    table.add_column("n", justify="right", style="dim")
    for c in report.categories:
        table.add_row(
            c.category_name, _fmt(c.user_score),
            "-" if c.avg_score is None else f"{c.avg_score:.2f}",
            "-" if c.gap is None else f"{c.gap:+.2f}",
            "-" if c.percentile is None else str(c.percentile),
            "-" if c.top_percent is None else f"{c.top_percent}%",
            str(c.sample_count),
        )
    title = f"benchmark · {report.industry} · {report.total_sample_count} companies"
    if report.cohort_fallback:
        title += " (industry cohort too small)"
    console.print(Panel(table, title=title, border_style="magenta"))
    if report.message:
        console.print(f"[yellow]{report.message}[/yellow]")


@app.command("plan")
def plan_command(
    ctx: typer.Context,
    result_id: int = typer.Argument(...),
    regenerate: bool = typer.Option(False, "--regenerate", help="Rebuild the plan from current scores."),
) -> None:
    """Show the improvement plan of a result, generating it on first use."""
    _settings(ctx)
    with _handle_errors(), session_scope() as session:
        entries = [] if regenerate else services.list_plan_entries(session, result_id)
        if not entries:
            entries = services.generate_improvement_plan(session, result_id)
            session.commit()

    if _wants_json(ctx):
        _emit_json([e.model_dump() for e in entries])
        return
    table = Table(show_header=True, header_style="bold yellow", box=ROUNDED)
    table.add_column("#", style="dim")
    table.add_column("Priority")
    table.add_column("Area")
    table.add_column("Category")
    table.add_column("Title", style="bold")
    table.add_column("Status")
    colors = {"high": "red", "medium": "yellow", "low": "green"}
    for e in entries:
        table.add_row(
            str(e.id), f"[{colors[e.priority]}]{e.priority}[/{colors[e.priority]}]",
            e.area, e.category, e.title, f"{e.status} {e.progress}%",
        )
    console.print(Panel(table, title=f"improvement plan · result {result_id}", border_style="yellow"))


@app.command("plan-update")
def plan_update_command(
    ctx: typer.Context,
    entry_id: int = typer.Argument(...),
    status: str | None = typer.Option(None, help="pending, in_progress or completed."),
    progress: int | None = typer.Option(None, help="Progress 0-100."),
    assigned_to: str | None = typer.Option(None, "--assigned-to"),
    notes: str | None = typer.Option(None),
) -> None:
    _settings(ctx)
    with _handle_errors():
        update = PlanEntryUpdate(status=status, progress=progress, assigned_to=assigned_to, notes=notes)
        with session_scope() as session:
            entry = services.update_plan_entry(session, entry_id, update)
            session.commit()
    if _wants_json(ctx):
        _emit_json(entry.model_dump())
    else:
        console.print(f"[green]Updated[/green] {entry.title}: {entry.status} {entry.progress}%")


# ---------------------------------------------------------------------------
# AI narrative & roadmap
# ---------------------------------------------------------------------------


@app.command("narrative")
def narrative_command(
    ctx: typer.Context,
    result_id: int = typer.Argument(...),
    refresh: bool = typer.Option(False, "--refresh", help="Discard the cached narrative first."),
) -> None:
    settings = _settings(ctx)
    with _handle_errors(), session_scope() as session:
        result = services.get_result(session, result_id)
        scores = services.get_category_scores(session, result_id)
        benchmark = services.run_benchmark(session, result_id, settings, industry=result.industry,
                                           company_size=result.company_size)
        cache = NarrativeCache(build_client(settings), services.SqlNarrativeStore(session), settings)
        if refresh:
            cache.invalidate(result_id)
        outcome = asyncio.run(cache.get_or_generate(
            result_id, scores, result.overall_score, benchmark=benchmark, profile=services.profile_of(result),
        ))

    n = outcome.narrative
    if _wants_json(ctx):
        _emit_json({"source": outcome.source, "narrative": n.model_dump()})
        return
    console.print(Panel(n.executive_summary, title=f"narrative · {outcome.source}", border_style="green"))
    if n.overall_assessment:
        console.print(n.overall_assessment)
    matrix = Table(show_header=True, header_style="bold green", box=ROUNDED)
    matrix.add_column("Bucket", style="bold")
    matrix.add_column("Items")
    for bucket, items in n.priority_matrix.model_dump().items():
        matrix.add_row(bucket.replace("_", " "), "\n".join(items) or "-")
    console.print(Panel(matrix, title="priority matrix", border_style="green"))
    for line in n.interdependencies:
        console.print(f"- {line}")


@app.command("roadmap")
def roadmap_command(ctx: typer.Context, result_id: int = typer.Argument(...)) -> None:
    """Phased short/mid/long-term roadmap, generated once per result."""
    settings = _settings(ctx)
    with _handle_errors(), session_scope() as session:
        result = services.get_result(session, result_id)
        scores = services.get_category_scores(session, result_id)
        narrative = services.SqlNarrativeStore(session).load_narrative(result_id)
        planner = RoadmapPlanner(build_client(settings), settings)
        outcome = asyncio.run(planner.get_or_generate(
            session, result_id, scores, result.overall_score,
            profile=services.profile_of(result), narrative=narrative,
        ))
        session.commit()

    if _wants_json(ctx):
        _emit_json({"source": outcome.source, "plans": [i.model_dump() for i in outcome.items]})
        return
    table = Table(show_header=True, header_style="bold green", box=ROUNDED)
    table.add_column("Phase")
    table.add_column("Priority")
    table.add_column("Title", style="bold")
    table.add_column("Actions", justify="right")
    for item in outcome.items:
        table.add_row(item.phase_label or item.phase, item.priority, item.title, str(len(item.actions)))
    console.print(Panel(table, title=f"roadmap · result {result_id} · {outcome.source}", border_style="green"))


@app.command("report")
def report_command(ctx: typer.Context, result_id: int = typer.Argument(...)) -> None:
    """Full plain-data report (always JSON)."""
    settings = _settings(ctx)
    with _handle_errors(), session_scope() as session:
        narrative = services.SqlNarrativeStore(session).load_narrative(result_id)
        payload = services.build_report_payload(session, result_id, settings, narrative=narrative)
    _emit_json(payload)


# ---------------------------------------------------------------------------
# Question administration
# ---------------------------------------------------------------------------


@app.command("questions")
def questions_command(
    ctx: typer.Context,
    include_inactive: bool = typer.Option(False, "--all", help="Include deactivated questions."),
) -> None:
    _settings(ctx)
    with session_scope() as session:
        questions = services.list_questions(session, include_inactive=include_inactive)
    if _wants_json(ctx):
        _emit_json(questions)
        return
    table = Table(show_header=True, header_style="bold cyan", box=ROUNDED)
    table.add_column("ID", style="bold")
    table.add_column("Category")
    table.add_column("Weight", justify="right")
    table.add_column("Question")
    for q in questions:
        style = None if q["active"] else "dim"
        table.add_row(q["question_id"], q["category_key"], str(q["weight"]), q["question"], style=style)
    console.print(Panel(table, title=f"questions · {len(questions)}", border_style="cyan"))


@app.command("question-add")
def question_add_command(
    ctx: typer.Context,
    question_id: str = typer.Argument(...),
    category: str = typer.Argument(..., help="Category key, e.g. planning."),
    text: str = typer.Argument(...),
    weight: int = typer.Option(3, min=1),
) -> None:
    _settings(ctx)
    with _handle_errors():
        body = QuestionCreate(question_id=question_id, category_key=category, question=text, weight=weight)
        with session_scope() as session:
            q = services.add_question(session, body)
            session.commit()
    if _wants_json(ctx):
        _emit_json(q)
    else:
        console.print(f"[green]Added[/green] {q['question_id']}")


@app.command("question-update")
def question_update_command(
    ctx: typer.Context,
    question_id: str = typer.Argument(...),
    category: str | None = typer.Option(None, help="Move to another category."),
    text: str | None = typer.Option(None),
    weight: int | None = typer.Option(None, min=1),
    activate: bool | None = typer.Option(None, "--activate/--deactivate"),
) -> None:
    _settings(ctx)
    with _handle_errors():
        body = QuestionUpdate(category_key=category, question=text, weight=weight, active=activate)
        with session_scope() as session:
            q = services.update_question(session, question_id, body)
            session.commit()
    if _wants_json(ctx):
        _emit_json(q)
    else:
        console.print(f"[green]Updated[/green] {q['question_id']}")


@app.command("question-deactivate")
def question_deactivate_command(ctx: typer.Context, question_id: str = typer.Argument(...)) -> None:
    _settings(ctx)
    with _handle_errors(), session_scope() as session:
        q = services.deactivate_question(session, question_id)
        session.commit()
    if _wants_json(ctx):
        _emit_json(q)
    else:
        console.print(f"[yellow]Deactivated[/yellow] {q['question_id']}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
