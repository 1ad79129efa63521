#!/usr/bin/env python3
"""
Score review texts on the six flavor axes.

Reads a CSV with a review_text column (plus optional wine_name, vintage,
review_date) and writes the scores back out. Uses the extraction model chain
when OPENAI_API_KEY is set, keyword scoring otherwise.
"""

import argparse
import sys
from pathlib import Path

import pandas as pd
from rich.console import Console

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from uaps.ai_chain import build_openai_client
from uaps.flavor_extractor import ReviewInput, extract_in_batches


def main():
    parser = argparse.ArgumentParser(description="Extract flavor scores from review texts")
    parser.add_argument("input", type=Path, help="CSV with a review_text column")
    parser.add_argument("output", type=Path, help="Where to write the scored CSV")
    args = parser.parse_args()

    console = Console()

    df = pd.read_csv(args.input)
    if "review_text" not in df.columns:
        console.print("[bold red]✗ Input must have a review_text column[/bold red]")
        sys.exit(1)

    if df.empty:
        console.print("[yellow]⚠ No reviews to score[/yellow]")
        return

    df = df.astype(object).where(pd.notna(df), None)
    reviews = [
        ReviewInput(
            text=row["review_text"] or "",
            wine_name=row.get("wine_name") or "",
            vintage=row.get("vintage"),
            review_date=str(row["review_date"]) if row.get("review_date") else None,
        )
        for _, row in df.iterrows()
    ]

    with console.status(f"[bold cyan]Scoring {len(reviews)} reviews...", spinner="dots"):
        results = extract_in_batches(reviews, client=build_openai_client())

    scores = pd.DataFrame([r.flavor.to_dict() for r in results], index=df.index)
    df = pd.concat([df, scores], axis=1)
    df["aging_years"] = [r.aging_years for r in results]
    df["aging_years_confidence"] = [r.aging_years_confidence for r in results]
    df["extraction_method"] = [r.method for r in results]

    df.to_csv(args.output, index=False)
    methods = pd.Series([r.method for r in results]).value_counts().to_dict()
    console.print(f"[green]✓[/green] Wrote {len(results)} rows to {args.output} ({methods})")


if __name__ == "__main__":
    main()
