"""Similarity Matcher: ranks model groups against a target product."""

import logging
from typing import List, Optional

from uaps.clustering import stage_for_vintage
from uaps.constants import AgingStage, AlgorithmConstants, Defaults
from uaps.schema import AgingProduct, ClusterMatch, FlavorVector, ModelSnapshot, StageThresholds

logger = logging.getLogger(__name__)


def product_stage(product: AgingProduct, thresholds: Optional[StageThresholds] = None) -> AgingStage:
    """Explicit stage if the catalog has one, otherwise derived from vintage."""
    if product.aging_stage is not None:
        return product.aging_stage
    return stage_for_vintage(product.vintage, thresholds)


def reference_vector(product: AgingProduct, snapshot: ModelSnapshot,
                     thresholds: Optional[StageThresholds] = None) -> FlavorVector:
    """
    Vector the product is compared with.

    Explicit profile first; else the centroid of the product's own group, so
    that group lands at distance zero; else the global default vector.
    """
    if product.flavor_profile is not None:
        return product.flavor_profile

    own_group = snapshot.get(product.wine_type, product_stage(product, thresholds))
    if own_group is not None:
        return own_group.centroid

    return FlavorVector(**Defaults.GLOBAL_FLAVOR_VECTOR)


def find_similar_clusters(
    product: AgingProduct,
    snapshot: ModelSnapshot,
    top_k: int = AlgorithmConstants.DEFAULT_TOP_K,
    thresholds: Optional[StageThresholds] = None,
) -> List[ClusterMatch]:
    """
    Rank groups by Euclidean distance to the product.

    Ties break on larger sample count, then group key. An empty snapshot
    gives an empty list.

    Args:
        product: Target product
        snapshot: Snapshot read once at request start
        top_k: Maximum number of matches
        thresholds: Stage thresholds for vintage-derived stages

    Returns:
        Up to top_k ClusterMatch, nearest first
    """
    if top_k <= 0 or len(snapshot) == 0:
        return []

    target = reference_vector(product, snapshot, thresholds)
    matches = [
        ClusterMatch(group=group, distance=target.distance_to(group.centroid))
        for group in snapshot.groups
    ]
    matches.sort(key=lambda m: (m.distance, -m.group.sample_count, m.group.key))

    selected = matches[:top_k]
    logger.info(
        f"Matched {len(selected)} clusters for product {product.id}: "
        + ", ".join(f"{m.group.key} ({m.distance:.1f})" for m in selected)
    )
    return selected
