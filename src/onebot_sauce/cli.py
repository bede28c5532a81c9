import asyncio
import logging

import typer  # type: ignore
from rich.console import Console  # type: ignore
from rich.table import Table  # type: ignore

from onebot_sauce.aggregator import SourceAggregator
from onebot_sauce.config import Settings
from onebot_sauce.main import configure_logging
from onebot_sauce.main import main as serve_main
from onebot_sauce.searchers import build_searchers, list_searchers
from onebot_sauce.searchers.base import SearchOutcome
from onebot_sauce.searchers.http import build_http_client
from onebot_sauce.searchers.registry import get_searcher

app = typer.Typer(help="onebot-sauce reverse image source lookup")
console = Console()

# Keep per-request httpx lines out of the result table
logging.getLogger("httpx").setLevel(logging.WARNING)


@app.command("serve")
def serve() -> None:
    """Run the OneBot webhook server."""
    serve_main()


@app.command("backends")
def backends() -> None:
    """List registered searchers."""
    names = list_searchers()
    if not names:
        console.print("[yellow]No searchers registered.[/yellow]")
        return

    table = Table(title="Available Searchers")
    table.add_column("Name", style="cyan")
    table.add_column("Class", style="green")
    for name in names:
        table.add_row(name, get_searcher(name).__name__)

    console.print(table)


@app.command("search")
def search(
    image_url: str = typer.Argument(..., help="Publicly fetchable image URL"),
    searcher: list[str] | None = typer.Option(
        None, "--searcher", "-s", help="Only query these searchers"
    ),
    saucenao_api_key: str | None = typer.Option(
        None, envvar="SAUCENAO_API_KEY", help="API key for the saucenao searcher"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every backend"),
) -> None:
    """Query the searchers once for IMAGE_URL and print what they found."""
    configure_logging("INFO" if verbose else "WARNING")
    names = tuple(searcher) if searcher else tuple(list_searchers())
    if not saucenao_api_key and "saucenao" in names:
        if searcher:
            console.print("[red]Error:[/red] saucenao requires SAUCENAO_API_KEY.")
            raise typer.Exit(code=1)
        names = tuple(name for name in names if name != "saucenao")

    unknown = [name for name in names if name not in list_searchers()]
    if unknown:
        console.print(f"[red]Error:[/red] Unknown searcher(s): {', '.join(unknown)}")
        console.print(f"Available: {', '.join(list_searchers())}")
        raise typer.Exit(code=1)

    settings = Settings(
        onebot_api_base_url="",
        saucenao_api_key=saucenao_api_key,
        bot_searchers=names,
    )
    with console.status(f"Searching {len(names)} backends for '{image_url}'..."):
        outcomes = asyncio.run(_collect(settings, image_url))

    table = Table(title=f"Results for '{image_url}'")
    table.add_column("Searcher", style="cyan")
    table.add_column("Status", style="bold")
    table.add_column("Source", style="blue underline")
    table.add_column("Metadata", style="white")
    for outcome in outcomes:
        table.add_row(*_outcome_row(outcome))
    console.print(table)

    if not any(outcome.status == "found" for outcome in outcomes):
        raise typer.Exit(code=1)


async def _collect(settings: Settings, image_url: str) -> list[SearchOutcome]:
    async with build_http_client(settings) as http_client:
        aggregator = SourceAggregator(build_searchers(settings, http_client))
        return await aggregator.collect_outcomes(image_url)


def _outcome_row(outcome: SearchOutcome) -> tuple[str, str, str, str]:
    if outcome.image is not None:
        metadata = "\n".join(
            f"{key}：{value}" for key, value in outcome.image.sorted_metadata()
        )
        return outcome.searcher, "[green]found[/green]", outcome.image.url, metadata
    if outcome.status == "failed":
        return outcome.searcher, "[red]failed[/red]", "", str(outcome.error)
    return outcome.searcher, "[yellow]not found[/yellow]", "", ""


if __name__ == "__main__":
    app()
