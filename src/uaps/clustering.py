"""
Clustering Engine (Layer 1)

Batch-trains statistical model groups from the terrestrial corpus. Each
(wine_type, aging_stage) bucket is summarized by its centroid and population
stddev. Training always produces a complete new snapshot; the ModelStore swaps
it in as one unit so in-flight predictions never see a partial set.
"""

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import pandas as pd
from pydantic import ValidationError

from uaps.constants import AgingStage, AlgorithmConstants, FlavorAxes
from uaps.schema import (
    FlavorVector,
    ModelGroup,
    ModelSnapshot,
    StageThresholds,
    TerrestrialDataPoint,
)

logger = logging.getLogger(__name__)


def infer_aging_stage(years: Optional[float], thresholds: Optional[StageThresholds] = None) -> AgingStage:
    """
    Bucket bottle age into a stage.

    Unknown age (None) maps to developing, the most common stage in the
    corpus.
    """
    thresholds = thresholds or StageThresholds()
    if years is None:
        return AgingStage.DEVELOPING
    if years <= thresholds.youthful:
        return AgingStage.YOUTHFUL
    if years <= thresholds.developing:
        return AgingStage.DEVELOPING
    if years <= thresholds.mature:
        return AgingStage.MATURE
    return AgingStage.AGED


def stage_for_vintage(vintage: Optional[int], thresholds: Optional[StageThresholds] = None,
                      today: Optional[datetime] = None) -> AgingStage:
    """Stage from vintage year relative to today (or a fixed reference date)."""
    if vintage is None:
        return infer_aging_stage(None, thresholds)
    today = today or datetime.now(timezone.utc)
    return infer_aging_stage(max(0, today.year - vintage), thresholds)


def corpus_to_dataframe(corpus: Iterable[TerrestrialDataPoint]) -> pd.DataFrame:
    """Flatten data points into one row per review with the six axis columns."""
    rows = []
    for point in corpus:
        row = {
            "wine_name": point.wine_name,
            "wine_type": point.wine_type.value,
            "aging_stage": point.aging_stage.value,
        }
        row.update(point.flavor.to_dict())
        rows.append(row)
    return pd.DataFrame(rows, columns=["wine_name", "wine_type", "aging_stage"] + FlavorAxes.all())


def load_corpus_csv(path: Union[str, Path], thresholds: Optional[StageThresholds] = None) -> List[TerrestrialDataPoint]:
    """
    Load a terrestrial corpus from CSV.

    Axis columns may be snake_case or camelCase. Rows without aging_stage get
    one from aging_years. Invalid rows are skipped with a warning.

    Args:
        path: CSV file path
        thresholds: Stage thresholds used for rows without a stage

    Returns:
        Validated data points
    """
    df = pd.read_csv(path)
    df = df.rename(columns={wire: axis for axis, wire in FlavorAxes.WIRE_NAMES.items()})
    df = df.astype(object).where(pd.notna(df), None)

    points = []
    skipped = 0
    for idx, row in df.iterrows():
        record = row.to_dict()
        stage = record.get("aging_stage")
        if not stage:
            stage = infer_aging_stage(record.get("aging_years"), thresholds)
        try:
            points.append(TerrestrialDataPoint(
                wine_name=record.get("wine_name") or f"row {idx}",
                vintage=record.get("vintage"),
                wine_type=record.get("wine_type"),
                aging_stage=stage,
                flavor=FlavorVector(**{axis: record.get(axis) for axis in FlavorAxes.all()}),
                data_source=record.get("data_source") or "csv_import",
                rating=record.get("rating"),
                review_text=record.get("review_text"),
                aging_years=record.get("aging_years"),
            ))
        except (ValidationError, ValueError, TypeError) as e:
            skipped += 1
            logger.warning(f"Skipping corpus row {idx}: {e}")

    logger.info(f"Loaded {len(points)} reviews from {path} ({skipped} skipped)")
    return points


def train_model_groups(
    corpus: Union[pd.DataFrame, Sequence[TerrestrialDataPoint]],
    computed_at: Optional[datetime] = None,
) -> List[ModelGroup]:
    """
    Summarize the corpus into model groups.

    Groups are sorted by key so identical input always yields identical
    output. Single-sample groups are kept with stddev 0 and reported as
    low-sample.

    Args:
        corpus: TerrestrialDataPoint list, or a DataFrame with wine_type,
                aging_stage and the six axis columns
        computed_at: Timestamp stamped on every group (defaults to now)

    Returns:
        List of ModelGroup, each with sample_count >= 1
    """
    df = corpus if isinstance(corpus, pd.DataFrame) else corpus_to_dataframe(corpus)
    if df.empty:
        return []

    computed_at = computed_at or datetime.now(timezone.utc)
    axes = FlavorAxes.all()

    grouped = df.groupby(["wine_type", "aging_stage"], sort=True)[axes]
    means = grouped.mean()
    stddevs = grouped.std(ddof=0).fillna(0.0)
    counts = grouped.size()

    groups = []
    for (wine_type, aging_stage), centroid in means.iterrows():
        sample_count = int(counts.loc[(wine_type, aging_stage)])
        group = ModelGroup(
            wine_type=wine_type,
            aging_stage=aging_stage,
            centroid=FlavorVector(**centroid.to_dict()),
            stddev={axis: float(stddevs.loc[(wine_type, aging_stage), axis]) for axis in axes},
            sample_count=sample_count,
            confidence=min(sample_count / AlgorithmConstants.FULL_CONFIDENCE_SAMPLES, 1.0),
            computed_at=computed_at,
            low_sample_threshold=AlgorithmConstants.LOW_SAMPLE_THRESHOLD,
        )
        if group.is_low_sample:
            logger.warning(f"Model group {group.key} has only {sample_count} samples")
        groups.append(group)

    return sorted(groups, key=lambda g: g.key)


class ModelStore:
    """
    Holds the current ModelSnapshot.

    Readers call current() once per request and keep the returned object;
    train() builds the next snapshot off to the side and swaps the reference
    under a writer lock.
    """

    def __init__(self, snapshot: Optional[ModelSnapshot] = None):
        self._snapshot = snapshot or ModelSnapshot(version=0)
        self._write_lock = threading.Lock()

    def current(self) -> ModelSnapshot:
        return self._snapshot

    def publish(self, groups: Sequence[ModelGroup], corpus_size: int = 0,
                trained_at: Optional[datetime] = None) -> ModelSnapshot:
        """Publish a complete group set as the next version."""
        with self._write_lock:
            snapshot = ModelSnapshot(
                version=self._snapshot.version + 1,
                groups=tuple(groups),
                trained_at=trained_at or datetime.now(timezone.utc),
                corpus_size=corpus_size,
            )
            self._snapshot = snapshot
        logger.info(f"Published model snapshot v{snapshot.version}: {len(snapshot)} groups from {corpus_size} reviews")
        return snapshot

    def train(self, corpus: Union[pd.DataFrame, Sequence[TerrestrialDataPoint]]) -> ModelSnapshot:
        """
        Full-corpus training run. Replaces, never appends to, the prior groups.

        An empty corpus publishes an empty snapshot; predictions then use the
        statistical fallback.
        """
        corpus_size = len(corpus)
        if corpus_size == 0:
            logger.warning("Training on empty corpus; predictions will use the global default baseline")
        elif corpus_size < AlgorithmConstants.MIN_RECOMMENDED_CORPUS:
            logger.warning(
                f"Corpus has {corpus_size} reviews, fewer than the recommended "
                f"{AlgorithmConstants.MIN_RECOMMENDED_CORPUS}; group confidence will be low"
            )

        trained_at = datetime.now(timezone.utc)
        groups = train_model_groups(corpus, computed_at=trained_at)
        return self.publish(groups, corpus_size=corpus_size, trained_at=trained_at)
