import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import datetime
from typing import List, Optional

from pydantic import ValidationError
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.prompt import Confirm
from rich.table import Table

from survey_panel.aggregator import summarize_panel
from survey_panel.config import Settings
from survey_panel.errors import AnalysisFailure, GenerationFailure
from survey_panel.export import write_report, write_responses
from survey_panel.generation import GenerationClient
from survey_panel.models import Survey, TargetAudience
from survey_panel.simulator import SimulationProgress
from survey_panel.store import JsonStore, PersonaLibrary, TemplateStore
from survey_panel.workflow import Step, SurveyPipeline, SurveyRun

logger = logging.getLogger("survey_panel")

console = Console()

INCOMPLETE_RESPONSES = "responses_incomplete.csv"


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def ask_retry() -> bool:
    """Asks the operator whether to retry the analysis. Never prompts without a terminal."""
    if not sys.stdin.isatty():
        return False
    return Confirm.ask("Retry analysis?", console=console, default=True)


def load_survey(path: str) -> Survey:
    with open(path, "r", encoding="utf-8") as f:
        return Survey.model_validate(json.load(f))


async def run_survey(args, settings: Settings) -> int:
    survey = load_survey(args.survey)
    store = JsonStore(settings.data_dir)
    library = PersonaLibrary(store)
    client = GenerationClient.from_settings(settings)
    pipeline = SurveyPipeline(client, persona_temperature=settings.persona_temperature)
    run = SurveyRun(survey)

    console.log(f"[bold cyan]--- Survey: {survey.title} ({len(survey.questions)} questions) ---[/bold cyan]")
    run.survey_ready()

    if args.audience:
        console.log(f"[bold green]Generating {args.count} personas...[/bold green]")
        try:
            await pipeline.generate_panel(run, TargetAudience(description=args.audience, count=args.count))
        except GenerationFailure as e:
            console.log(f"[bold red]Failed to generate personas: {e}")
            return 1
    panel = library.add_to_panel(run.panel, args.from_library or [])
    run.panel_updated(panel)

    if not run.panel:
        console.log("[bold red]The panel is empty. Pass --audience or --from-library.")
        return 1
    for persona in run.panel:
        console.log(f"[blue]{persona.id}: {persona.name}, {persona.age}, {persona.occupation}")
    if args.save_personas:
        library.save_many(run.panel)
        console.log(f"[green]Saved {len(run.panel)} personas to the library.")

    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Interviewing participants...", total=len(run.panel))

        def on_progress(update: SimulationProgress):
            status = "finished the survey" if update.succeeded else "[red]could not be simulated[/red]"
            progress.console.log(f"{update.persona.name} {status}")
            progress.update(task, completed=update.completed)

        try:
            await pipeline.run_simulation(run, on_progress=on_progress)
        except AnalysisFailure as e:
            console.log(f"[bold red]{e}")

    console.log(f"Collected {len(run.responses)}/{len(run.panel)} responses ({run.failures} failed).")
    while run.step == Step.SIMULATION and run.can_analyze and ask_retry():
        try:
            await pipeline.retry_analysis(run)
        except AnalysisFailure as e:
            console.log(f"[bold red]{e}")

    output_dir = args.output_dir or os.path.join(
        str(settings.output_dir), datetime.now().strftime("%Y%m%d_%H%M%S")
    )
    if run.step != Step.RESULTS:
        if run.responses:
            path = write_responses(run, output_dir, filename=INCOMPLETE_RESPONSES)
            console.log(f"[yellow]Run incomplete: analysis not available. Raw responses saved to {path}")
        else:
            console.log("[bold red]No persona produced a response; nothing to report.")
        return 1

    written = write_report(run, output_dir, summarize_panel(run.panel), charts=not args.no_charts)
    console.log(f"[green]Report saved to {written['report']}")
    console.log(f"[bold]Overall sentiment:[/bold] {run.analysis.sentiment.value}")
    return 0


def templates_command(args, settings: Settings) -> int:
    templates = TemplateStore(JsonStore(settings.data_dir))
    if args.action == "save":
        template = templates.save(args.name, load_survey(args.survey))
        console.log(f"[green]Saved template {template.id} ({template.name})")
        return 0
    if args.action == "show":
        survey = templates.load(args.id)
        if survey is None:
            console.log(f"[red]No template with id {args.id}")
            return 1
        console.print_json(survey.model_dump_json())
        return 0

    table = Table(title="Survey templates")
    for column in ("ID", "Name", "Questions", "Created"):
        table.add_column(column)
    for template in templates.list():
        table.add_row(template.id, template.name, str(len(template.survey.questions)),
                      template.created_at.strftime('%Y-%m-%d %H:%M'))
    console.print(table)
    return 0


def library_command(args, settings: Settings) -> int:
    library = PersonaLibrary(JsonStore(settings.data_dir))
    if args.action == "remove":
        if not library.remove(args.id):
            console.log(f"[red]No persona with id {args.id}")
            return 1
        console.log(f"[green]Removed persona {args.id}")
        return 0

    table = Table(title="Persona library")
    for column in ("ID", "Name", "Age", "Occupation", "Traits"):
        table.add_column(column)
    for persona in library.list():
        table.add_row(persona.id, persona.name, str(persona.age), persona.occupation, persona.traits)
    console.print(table)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Simulate a survey with AI-generated personas")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Generate a panel, simulate the survey and analyze it")
    run_parser.add_argument("--survey", type=str, required=True, help="Path to the survey JSON file")
    run_parser.add_argument("--audience", type=str, help="Description of the target audience")
    run_parser.add_argument("--count", type=int, default=5, help="Number of personas to generate")
    run_parser.add_argument("--from-library", nargs="*", metavar="ID", help="Library persona ids to add to the panel")
    run_parser.add_argument("--save-personas", action="store_true", help="Store the panel in the persona library")
    run_parser.add_argument("--output-dir", type=str, help="Directory for the report bundle")
    run_parser.add_argument("--no-charts", action="store_true", help="Skip chart generation")

    templates_parser = subparsers.add_parser("templates", help="Manage saved survey templates")
    templates_sub = templates_parser.add_subparsers(dest="action", required=True)
    templates_sub.add_parser("list")
    save_parser = templates_sub.add_parser("save")
    save_parser.add_argument("--survey", type=str, required=True)
    save_parser.add_argument("--name", type=str, required=True)
    show_parser = templates_sub.add_parser("show")
    show_parser.add_argument("id")

    library_parser = subparsers.add_parser("library", help="Manage the persona library")
    library_sub = library_parser.add_subparsers(dest="action", required=True)
    library_sub.add_parser("list")
    remove_parser = library_sub.add_parser("remove")
    remove_parser.add_argument("id")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    try:
        if args.command == "templates":
            return templates_command(args, settings)
        if args.command == "library":
            return library_command(args, settings)

        if not Settings.has_api_key():
            console.log("[bold red]Error: OPENAI_API_KEY environment variable not set.")
            console.log("Please create a .env file with OPENAI_API_KEY=your_key")
            return 1
        return asyncio.run(run_survey(args, settings))
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        console.log(f"[bold red]Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
