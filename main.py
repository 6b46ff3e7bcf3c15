import random
import sys

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from pyqmock.config import EngineSettings
from pyqmock.core.errors import EngineError, InsufficientSupply
from pyqmock.core.models import Response, INTEGER
from pyqmock.services.engine import MockTestEngine, build_engine
from pyqmock.tools.utils import initialize_logging, LoggingConfig

load_dotenv()
# CLI output goes through rich; keep log records in the log file only
initialize_logging(LoggingConfig(log_level="WARNING", enable_console=False))
console = Console()


def _engine(seed, year) -> MockTestEngine:
    settings = EngineSettings.from_environment()
    settings.store = "memory"
    if seed is not None:
        settings.random_seed = seed
    if year is not None:
        settings.current_year = year
    return build_engine(settings)


@click.group()
def cli():
    """PYQ Mock Test CLI"""
    pass


@cli.command()
def exams():
    """List exam types and the PYQs available for each."""
    engine = _engine(None, None)
    table = Table(title="Exam Catalog")
    table.add_column("Exam", style="cyan")
    table.add_column("Name")
    table.add_column("Questions", justify="right")
    table.add_column("Minutes", justify="right")
    table.add_column("PYQs loaded", justify="right", style="green")
    table.add_column("Full test")

    for exam_type in engine.catalog.exam_types():
        config = engine.catalog.get(exam_type)
        shortfall = engine.supply_shortfall(exam_type)
        if shortfall:
            status = "[yellow]short: " + ", ".join(f"{k} -{v}" for k, v in shortfall.items()) + "[/yellow]"
        else:
            status = "[green]ready[/green]"
        table.add_row(exam_type, config.name, str(config.total_questions),
                      str(config.time_limit_minutes), str(len(engine.corpus.questions(exam_type))), status)
    console.print(table)
    console.print("[dim]Exam types marked short need --count (or more papers) to generate.[/dim]")


@cli.command()
@click.argument("exam_type")
@click.option("--year", type=int, default=None, help="Year recency is measured against")
def trends(exam_type, year):
    """Show chapter trends and the optimized distribution."""
    engine = _engine(None, year)
    try:
        report = engine.trend_report(exam_type)
    except EngineError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    if not report.chapters:
        console.print(f"[yellow]No PYQ data for {report.exam_type}.[/yellow]")
        return

    table = Table(title=f"{report.exam_type} trends ({report.total_questions_analyzed} PYQs, "
                        f"year {report.analysis_year})")
    table.add_column("Subject", style="cyan")
    table.add_column("Chapter")
    table.add_column("Qs", justify="right")
    table.add_column("Raw %", justify="right")
    table.add_column("Recency", justify="right")
    table.add_column("Consistency", justify="right")
    table.add_column("Optimized %", justify="right", style="green")
    table.add_column("Years")

    for s in report.chapters:
        table.add_row(s.subject, s.chapter, str(s.total_questions), f"{s.raw_percentage:.1f}",
                      f"{s.recency_score:.0f}", f"{s.consistency_score:.0f}",
                      f"{s.optimized_percentage:.1f}", ", ".join(map(str, s.years)))
    console.print(table)


@cli.command()
@click.argument("exam_type")
@click.option("--difficulty", default=None, help="easy, medium, hard or mixed")
@click.option("--count", type=int, default=None, help="Override the catalog question count")
@click.option("--seed", type=int, default=None, help="Random seed for reproducible tests")
def generate(exam_type, difficulty, count, seed):
    """Generate a mock test and print its questions."""
    engine = _engine(seed, None)
    try:
        test = engine.generate_test(exam_type, difficulty=difficulty, question_count=count)
    except (EngineError, ValueError) as e:
        console.print(f"[bold red]Generation Error:[/bold red] {e}")
        if isinstance(e, InsufficientSupply):
            console.print("[dim]Run `pyqmock exams` to see which sections are short, or pass --count.[/dim]")
        sys.exit(1)

    console.print(Panel(
        f"[bold green]{test.name}[/bold green]\n"
        f"Questions: {test.total_questions}   Marks: {test.total_marks:g}   "
        f"Time: {test.time_limit_minutes} min",
        border_style="green",
    ))
    for i, q in enumerate(test.questions, start=1):
        console.print(f"[bold]Q{i}.[/bold] [dim]({q.subject} / {q.chapter}, {q.difficulty}, {q.year})[/dim]")
        console.print(f"    {q.text}")
        for o in q.options:
            console.print(f"      ({o.id}) {o.text}")


@cli.command()
@click.argument("exam_type")
@click.option("--count", type=int, default=10, show_default=True)
@click.option("--accuracy", type=float, default=0.7, show_default=True,
              help="Chance of answering each question correctly")
@click.option("--skip", type=float, default=0.1, show_default=True,
              help="Chance of leaving a question unattempted")
@click.option("--seed", type=int, default=None)
def simulate(exam_type, count, accuracy, skip, seed):
    """Generate a test, answer it at random and print the analysis."""
    engine = _engine(seed, None)
    rng = random.Random(seed)
    try:
        test = engine.generate_test(exam_type, question_count=count)
    except (EngineError, ValueError) as e:
        console.print(f"[bold red]Generation Error:[/bold red] {e}")
        sys.exit(1)

    attempt = engine.start_attempt(test.id)
    responses = []
    for q in test.questions:
        roll = rng.random()
        if roll < skip:
            continue
        if roll < skip + accuracy:
            selected = tuple(sorted(q.correct_options))
        elif q.type == INTEGER:
            selected = ("-1",)
        else:
            wrong = [o.id for o in q.options if o.id not in q.correct_options] or ["?"]
            selected = (rng.choice(wrong),)
        responses.append(Response(question_id=q.id, selected_options=selected,
                                  time_spent=rng.randint(20, 180)))

    result = engine.submit_attempt(attempt.id, responses)
    analysis = result.analysis

    console.print(Panel(
        f"Score: [bold]{result.attempt.obtained_marks:g}/{result.attempt.total_marks:g}[/bold]   "
        f"Accuracy: {analysis.accuracy_percentage:.1f}%\n"
        f"Correct {analysis.total_correct} / Incorrect {analysis.total_incorrect} / "
        f"Unattempted {analysis.total_unattempted}",
        title="Result", border_style="cyan",
    ))

    table = Table(title="Subject-wise")
    table.add_column("Subject", style="cyan")
    table.add_column("Correct", justify="right")
    table.add_column("Incorrect", justify="right")
    table.add_column("Unattempted", justify="right")
    table.add_column("Accuracy %", justify="right")
    for subject, b in analysis.subject_wise_analysis.items():
        table.add_row(subject, str(b.correct), str(b.incorrect), str(b.unattempted), f"{b.accuracy:.1f}")
    console.print(table)

    console.print(f"[green]Strengths:[/green] {', '.join(analysis.strength_areas) or '-'}")
    console.print(f"[red]Weaknesses:[/red] {', '.join(analysis.weakness_areas) or '-'}")


if __name__ == "__main__":
    cli()
