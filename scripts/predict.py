#!/usr/bin/env python3
"""
Predict the undersea aging trajectory of one product.

Trains on a corpus CSV, runs the full pipeline (AI layers when
OPENAI_API_KEY is set, fallbacks otherwise) and prints the timeline.
"""

import argparse
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from uaps.clustering import ModelStore, load_corpus_csv
from uaps.constants import FlavorAxes, ReductionPotential, WineType
from uaps.error_handling import UAPSError
from uaps.predictor import UnderseaAgingPredictor
from uaps.schema import AgingProduct


def create_timeline_table(prediction):
    table = Table(
        title="📈 Aging Timeline",
        box=box.ROUNDED,
        header_style="bold cyan",
    )
    table.add_column("Month", justify="right")
    for wire in FlavorAxes.wire_names():
        table.add_column(wire, justify="right")
    table.add_column("Quality", justify="right")
    table.add_column("Risk", justify="right")

    for entry in prediction.timeline:
        flavor = entry.flavor.to_dict()
        month = f"[bold green]★ {entry.month}[/bold green]" if entry.is_golden_window else str(entry.month)
        table.add_row(
            month,
            *[f"{flavor[axis]:.1f}" for axis in FlavorAxes.all()],
            f"{entry.quality_score:.1f}",
            f"{entry.off_flavor_risk:.1f}",
        )
    return table


def create_summary_panel(prediction):
    color = "blue" if prediction.model_used.value == "hybrid" else "yellow"
    coefficients = "  ".join(
        f"{name.upper()}={meta.value} ({meta.basis.value})" for name, meta in prediction.coefficients.items()
    )
    content = f"""
[bold {color}]{prediction.model_used.value}[/bold {color}] · {prediction.matched_cluster_count} clusters · confidence {prediction.prediction_confidence:.2f}

[bold cyan]Coefficients:[/bold cyan] {coefficients}
[bold cyan]Deltas from:[/bold cyan] {prediction.inference_source}

[bold white]Insight:[/bold white] {prediction.ai_insight}
[bold green]Recommendation:[/bold green] {prediction.harvest_recommendation}
"""
    if prediction.ai_risk_warning:
        content += f"[bold red]⚠ Risk:[/bold red] {prediction.ai_risk_warning}\n"

    return Panel(content.strip(), title="🍾 Prediction", border_style=f"bold {color}", padding=(1, 2))


def main():
    parser = argparse.ArgumentParser(description="Predict undersea aging for one product")
    parser.add_argument("corpus", type=Path, help="Terrestrial corpus CSV")
    parser.add_argument("--name", required=True, help="Product name")
    parser.add_argument("--type", dest="wine_type", choices=[t.value for t in WineType], default=WineType.BLEND.value)
    parser.add_argument("--vintage", type=int, default=None)
    parser.add_argument("--producer", default="")
    parser.add_argument("--depth", type=float, default=30.0, help="Aging depth in meters")
    parser.add_argument("--months", type=int, default=18, help="Immersion duration (1-36)")
    parser.add_argument("--reduction", choices=[r.value for r in ReductionPotential], default="low")
    parser.add_argument("--no-expert", action="store_true", help="Skip the expert profile layer")
    args = parser.parse_args()

    console = Console()

    corpus = load_corpus_csv(args.corpus) if args.corpus.exists() else []
    if not corpus:
        console.print("[yellow]⚠ Empty or missing corpus; using statistical fallback[/yellow]")

    store = ModelStore()
    store.train(corpus)

    product = AgingProduct(
        id=args.name.lower().replace(" ", "-"),
        product_name=args.name,
        wine_type=args.wine_type,
        vintage=args.vintage,
        producer=args.producer,
        aging_depth=args.depth,
        reduction_potential=args.reduction,
    )

    predictor = UnderseaAgingPredictor.from_environment(store, use_expert=not args.no_expert)

    try:
        with console.status("[bold cyan]Predicting...", spinner="dots"):
            prediction = predictor.predict(product, args.months)
    except UAPSError as e:
        console.print(f"[bold red]✗ {type(e).__name__}:[/bold red] {e}")
        sys.exit(1)

    console.print(create_summary_panel(prediction))
    console.print()
    console.print(create_timeline_table(prediction))


if __name__ == "__main__":
    main()
