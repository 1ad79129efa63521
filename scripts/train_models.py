#!/usr/bin/env python3
"""
Train UAPS model groups from a terrestrial corpus CSV.

Groups the corpus by (wine_type, aging_stage) and prints each group's
centroid, spread and sample count.
"""

import argparse
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table
from rich import box

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from uaps.clustering import ModelStore, load_corpus_csv
from uaps.constants import FlavorAxes


def create_groups_table(snapshot):
    """Table of trained groups, low-sample groups highlighted."""
    table = Table(
        title=f"🌊 Model Groups (snapshot v{snapshot.version})",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold cyan",
    )

    table.add_column("Group", style="cyan")
    table.add_column("n", justify="right")
    for wire in FlavorAxes.wire_names():
        table.add_column(wire, justify="right")

    for group in snapshot.groups:
        centroid = group.centroid.to_dict()
        count_style = "bold yellow" if group.is_low_sample else "white"
        table.add_row(
            group.key,
            f"[{count_style}]{group.sample_count}[/{count_style}]",
            *[f"{centroid[axis]:.1f} ±{group.stddev[axis]:.1f}" for axis in FlavorAxes.all()]
        )

    return table


def main():
    parser = argparse.ArgumentParser(description="Train UAPS model groups from a corpus CSV")
    parser.add_argument("corpus", type=Path, help="CSV with wine_type, aging_stage and six flavor columns")
    args = parser.parse_args()

    console = Console()

    if not args.corpus.exists():
        console.print(f"[bold red]✗ Corpus not found:[/bold red] {args.corpus}")
        sys.exit(1)

    with console.status("[bold cyan]Loading corpus...", spinner="dots"):
        corpus = load_corpus_csv(args.corpus)
    console.print(f"[green]✓[/green] Loaded {len(corpus)} reviews\n")

    store = ModelStore()
    snapshot = store.train(corpus)

    if len(snapshot) == 0:
        console.print("[yellow]⚠ No groups trained; predictions will use the global default baseline[/yellow]")
        return

    console.print(create_groups_table(snapshot))
    low = [g.key for g in snapshot.groups if g.is_low_sample]
    if low:
        console.print(f"\n[yellow]⚠ Low-sample groups:[/yellow] {', '.join(low)}")


if __name__ == "__main__":
    main()
