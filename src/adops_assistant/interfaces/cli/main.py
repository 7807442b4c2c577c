# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""CLI interface for the ad operations assistant."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from ...clients.forecast_client import ForecastClient
from ...config.logging_config import configure_logging
from ...config.settings import settings
from ...gam.errors import ForecastError, RemoteFault
from ...models.forecast import ForecastRequest, ForecastResult

app = typer.Typer(
    name="adops",
    help="Ad operations assistant CLI - GAM availability forecasts and MCP tool server",
    no_args_is_help=True,
)
console = Console()


def parse_size(value: str) -> dict[str, int]:
    """Parse ``300x250`` into a width/height dict."""
    try:
        width, height = value.lower().split("x", 1)
        return {"width": int(width), "height": int(height)}
    except ValueError:
        raise typer.BadParameter(f"Size must look like 300x250, got {value!r}")


def parse_key_value(value: str) -> dict[str, object]:
    """Parse ``KEY=V1,V2`` (or ``KEY!=V1,V2`` for IS_NOT) into a custom targeting entry."""
    operator = "IS"
    if "!=" in value:
        key, values = value.split("!=", 1)
        operator = "IS_NOT"
    elif "=" in value:
        key, values = value.split("=", 1)
    else:
        raise typer.BadParameter(f"Key/value must look like KEY=V1,V2, got {value!r}")
    value_ids = [v.strip() for v in values.split(",") if v.strip()]
    return {"keyId": key.strip(), "valueIds": value_ids, "operator": operator}


def _build_request(
    request_file: Optional[Path],
    start: Optional[str],
    end: Optional[str],
    sizes: Optional[list[str]],
    ad_units: Optional[list[int]],
    excluded_ad_units: Optional[list[int]],
    placements: Optional[list[int]],
    segments: Optional[list[str]],
    key_values: Optional[list[str]],
    goal: Optional[int],
    frequency_cap: Optional[int],
    frequency_unit: str,
    locations: Optional[list[int]],
    excluded_locations: Optional[list[int]],
) -> ForecastRequest:
    if request_file:
        with open(request_file) as f:
            return ForecastRequest.model_validate(json.load(f))

    if not end or not sizes:
        raise typer.BadParameter("--end and at least one --size are required without --request-file")

    data: dict[str, object] = {
        "dateRange": {"start": start, "end": end},
        "creativeSizes": [parse_size(s) for s in sizes],
        "goalImpressions": goal,
        "targetedAdUnitIds": ad_units or None,
        "excludedAdUnitIds": excluded_ad_units or None,
        "targetedPlacementIds": placements or None,
        "audienceSegmentIds": segments or None,
        "customTargeting": [parse_key_value(kv) for kv in key_values] if key_values else None,
    }
    if frequency_cap:
        data["frequencyCap"] = {"maxImpressions": frequency_cap, "timeUnit": frequency_unit.upper()}
    if locations or excluded_locations:
        data["geoTargeting"] = {
            "targetedLocationIds": locations or [],
            "excludedLocationIds": excluded_locations or [],
        }
    return ForecastRequest.model_validate(data)


async def _run_forecast(request: ForecastRequest) -> ForecastResult:
    async with ForecastClient.from_settings(settings) as client:
        return await client.request_forecast(request)


def _show_forecast(request: ForecastRequest, result: ForecastResult) -> None:
    """Display a forecast."""
    date_range = request.date_range
    start = "Immediately" if date_range.is_immediate else date_range.start.isoformat()
    sizes = ", ".join(f"{s.width}x{s.height}" for s in request.creative_sizes)
    console.print(
        Panel(
            f"[bold]Flight:[/bold] {start} to {date_range.end.isoformat()}\n"
            f"[bold]Sizes:[/bold] {sizes}\n"
            f"[bold blue]Available:[/bold blue] {result.available_units:,}\n"
            f"[bold]Matched:[/bold] {result.matched_units:,}\n"
            f"[bold]Possible:[/bold] {result.possible_units:,}\n"
            f"[bold]Delivered:[/bold] {result.delivered_units:,}\n"
            f"[bold]Reserved:[/bold] {result.reserved_units:,}",
            title="Availability Forecast",
        )
    )

    if result.ad_unit_names:
        units_table = Table(title="Ad Units")
        units_table.add_column("Ad Unit ID", style="cyan")
        units_table.add_column("Name")
        for ad_unit_id, name in result.ad_unit_names.items():
            units_table.add_row(str(ad_unit_id), name)
        console.print(units_table)

    if result.contending_line_items:
        contending = Table(title="Contending Line Items")
        contending.add_column("Line Item ID", style="cyan")
        contending.add_column("Name")
        contending.add_column("Priority", justify="right")
        contending.add_column("Impressions", justify="right", style="magenta")
        for item in result.contending_line_items:
            contending.add_row(
                str(item.line_item_id),
                item.name or "",
                "" if item.priority is None else str(item.priority),
                f"{item.contending_impressions:,}",
            )
        console.print(contending)

    if result.targeting_breakdown:
        breakdown = Table(title="Targeting Breakdown")
        breakdown.add_column("Dimension", style="cyan")
        breakdown.add_column("Criterion")
        breakdown.add_column("Available", justify="right", style="green")
        breakdown.add_column("Matched", justify="right")
        for row in result.targeting_breakdown:
            breakdown.add_row(
                row.dimension,
                row.criterion,
                f"{row.available_units:,}",
                f"{row.matched_units:,}",
            )
        console.print(breakdown)


@app.command()
def forecast(
    request_file: Optional[Path] = typer.Option(
        None,
        "--request-file",
        "-r",
        help="Path to a forecast request JSON file",
        exists=True,
        readable=True,
    ),
    start: str = typer.Option("now", "--start", help='Start date (YYYY-MM-DD) or "now"'),
    end: Optional[str] = typer.Option(None, "--end", help="End date (YYYY-MM-DD)"),
    sizes: Optional[list[str]] = typer.Option(None, "--size", "-s", help="Creative size, e.g. 300x250"),
    ad_units: Optional[list[int]] = typer.Option(None, "--ad-unit", "-a", help="Ad unit ID to target"),
    excluded_ad_units: Optional[list[int]] = typer.Option(
        None, "--exclude-ad-unit", help="Ad unit ID to exclude"
    ),
    placements: Optional[list[int]] = typer.Option(None, "--placement", help="Placement ID to target"),
    segments: Optional[list[str]] = typer.Option(None, "--segment", help="Audience segment ID"),
    key_values: Optional[list[str]] = typer.Option(
        None, "--key-value", "-k", help="Custom targeting KEY=V1,V2 (KEY!=... for IS_NOT)"
    ),
    goal: Optional[int] = typer.Option(None, "--goal", help="Impression goal"),
    frequency_cap: Optional[int] = typer.Option(
        None, "--frequency-cap", help="Max impressions per user"
    ),
    frequency_unit: str = typer.Option("WEEK", "--frequency-unit", help="Frequency cap window"),
    locations: Optional[list[int]] = typer.Option(None, "--location", help="Location ID to target"),
    excluded_locations: Optional[list[int]] = typer.Option(
        None, "--exclude-location", help="Location ID to exclude"
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Save the forecast to a JSON file",
    ),
) -> None:
    """Get an availability forecast from Google Ad Manager."""
    configure_logging(settings.log_level)

    try:
        request = _build_request(
            request_file, start, end, sizes, ad_units, excluded_ad_units, placements,
            segments, key_values, goal, frequency_cap, frequency_unit, locations,
            excluded_locations,
        )
    except (ValidationError, json.JSONDecodeError) as e:
        console.print(f"[red]Invalid forecast request:[/red] {e}")
        raise typer.Exit(1)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        progress.add_task("Requesting forecast from GAM...", total=None)
        try:
            result = asyncio.run(_run_forecast(request))
        except RemoteFault as e:
            console.print(f"[red]GAM fault:[/red] {e.fault_string}")
            raise typer.Exit(1)
        except ForecastError as e:
            console.print(f"[red]Error getting forecast:[/red] {e}")
            raise typer.Exit(1)

    _show_forecast(request, result)

    if output:
        with open(output, "w") as f:
            json.dump(result.model_dump(mode="json"), f, indent=2)
        console.print(f"\n[green]Forecast saved to {output}[/green]")


@app.command()
def serve() -> None:
    """Run the MCP tool server on stdio."""
    from ..mcp_server.main import create_server

    configure_logging(settings.log_level)
    create_server().run()


@app.command()
def init() -> None:
    """Create a forecast request template.

    Writes a sample forecast_request.json that you can edit.
    """
    template = {
        "dateRange": {"start": "immediate", "end": "2025-12-31"},
        "creativeSizes": [{"width": 300, "height": 250}, {"width": 728, "height": 90}],
        "goalImpressions": 500000,
        "targetedAdUnitIds": [],
        "customTargeting": [],
        "frequencyCap": {"maxImpressions": 3, "timeUnit": "DAY"},
        "geoTargeting": {"targetedLocationIds": [], "excludedLocationIds": []},
    }

    output_path = Path("forecast_request.json")
    if output_path.exists():
        overwrite = typer.confirm(f"{output_path} already exists. Overwrite?")
        if not overwrite:
            raise typer.Exit(0)

    with open(output_path, "w") as f:
        json.dump(template, f, indent=2)

    console.print(f"[green]Created {output_path}[/green]")
    console.print("\nEdit this file with your targeting, then run:")
    console.print(f"  [cyan]adops forecast --request-file {output_path}[/cyan]")


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
