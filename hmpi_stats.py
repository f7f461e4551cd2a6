# hmpi_stats.py
"""
Summary statistics over a collection of samples (dashboard figures).

Every reducer accepts an ordered sequence whose items are Sample objects,
IndexResult objects, or plain dicts with the IndexResult.to_dict() keys.
Empty input yields None ("no data") rather than a NaN.
"""

import logging
from dataclasses import dataclass
from numbers import Real
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from hmpi_categories import CATEGORY_ENUMS, CLASSIFIERS, HPI_THRESHOLDS, UNKNOWN
from hmpi_standards import METALS, WHO, StandardsTable
from hmpi_utils import IndexResult, Sample

logger = logging.getLogger(__name__)

INDICES = ("hpi", "hei", "cd", "npi")


@dataclass(frozen=True)
class Trend:
    direction: str  # "increasing" | "decreasing"
    percentage: Optional[float]  # None when the first-half mean is 0
    first_half_mean: float
    second_half_mean: float


def _score(item, index: str) -> Optional[float]:
    if isinstance(item, Sample):
        item = item.result
    if item is None:
        return None
    if isinstance(item, IndexResult):
        value = getattr(item, index)
    elif isinstance(item, dict):
        value = item.get(index)
    elif isinstance(item, Real) and not isinstance(item, bool):
        # bare scores are allowed for single-index reducers
        value = item
    else:
        raise TypeError(f"Cannot read {index} from {type(item).__name__}")
    if value is None or pd.isna(value):
        return None
    return float(value)


def _category(item, index: str) -> Optional[str]:
    if isinstance(item, Sample):
        item = item.result
    label = None
    if isinstance(item, IndexResult):
        label = getattr(item, f"{index}_category")
    elif isinstance(item, dict):
        label = item.get(f"{index}Category")
    if label is None:
        # fall back to the score so stored rows without labels still count
        label = CLASSIFIERS[index](_score(item, index))
    return getattr(label, "value", label)


def _concentrations(item) -> Dict[str, float]:
    if isinstance(item, Sample):
        return item.concentrations
    if isinstance(item, dict):
        return {m: float(item.get(m) or 0.0) for m in METALS}
    raise TypeError(f"{type(item).__name__} carries no concentrations")


def _created_at(item):
    return item.created_at if isinstance(item, Sample) else None


def _check_index(index: str) -> str:
    index = index.lower()
    if index not in INDICES:
        raise ValueError(f"Unknown index '{index}' (expected one of {INDICES})")
    return index


def index_means(samples: Sequence) -> Optional[Dict[str, Optional[float]]]:
    """Mean of each index, ignoring nulls. None for an empty collection."""
    if not samples:
        return None
    means = {}
    for index in INDICES:
        values = [v for v in (_score(s, index) for s in samples) if v is not None]
        means[index] = float(np.mean(values)) if values else None
    return means


def index_ranges(samples: Sequence) -> Optional[Dict[str, Dict[str, Optional[float]]]]:
    """Min and max of each index, ignoring nulls."""
    if not samples:
        return None
    ranges = {}
    for index in INDICES:
        values = [v for v in (_score(s, index) for s in samples) if v is not None]
        ranges[index] = {
            "min": float(min(values)) if values else None,
            "max": float(max(values)) if values else None,
        }
    return ranges


def quality_distribution(samples: Sequence, index: str = "hpi") -> Optional[Dict[str, Dict]]:
    """
    Count and percentage of samples per category of one index.

    Every category of the index is listed (in severity order, zeros
    included); "Unknown" is appended only when some sample has no category.
    """
    index = _check_index(index)
    if not samples:
        return None
    counts = {member.value: 0 for member in CATEGORY_ENUMS[index]}
    for s in samples:
        label = _category(s, index) or UNKNOWN
        counts[label] = counts.get(label, 0) + 1
    total = len(samples)
    return {
        label: {"count": count, "percentage": count / total * 100.0}
        for label, count in counts.items()
        if count or label != UNKNOWN
    }


def metal_pollution_ratios(samples: Sequence, standards: StandardsTable = WHO) -> Optional[Dict[str, float]]:
    """Mean concentration of each metal divided by its permissible limit."""
    if not samples:
        return None
    frame = pd.DataFrame([_concentrations(s) for s in samples], columns=list(METALS)).fillna(0.0)
    return {m: float(frame[m].mean()) / standards.limit(m) for m in METALS}


def most_polluted_metal(samples: Sequence, standards: StandardsTable = WHO) -> Optional[str]:
    """Metal with the highest mean-concentration-to-limit ratio (first in canonical order on ties)."""
    ratios = metal_pollution_ratios(samples, standards)
    if ratios is None:
        return None
    best = METALS[0]
    for m in METALS[1:]:
        if ratios[m] > ratios[best]:
            best = m
    return best


def metal_concentration_summary(samples: Sequence) -> Optional[pd.DataFrame]:
    """Average, maximum and minimum concentration per metal (rows in canonical order)."""
    if not samples:
        return None
    frame = pd.DataFrame([_concentrations(s) for s in samples], columns=list(METALS)).fillna(0.0)
    return pd.DataFrame({
        "average": frame.mean(),
        "maximum": frame.max(),
        "minimum": frame.min(),
    }).rename_axis("metal")


def _chronological(samples: Sequence) -> List:
    dated = [_created_at(s) for s in samples]
    if all(d is not None for d in dated):
        # sorted() is stable, so equal timestamps keep their given order
        return sorted(samples, key=_created_at)
    return list(samples)


def trend_direction(samples: Sequence, index: str = "hpi") -> Optional[Trend]:
    """
    Compare the mean index of the older half against the newer half.

    Samples are put in chronological order (when they carry timestamps) and
    split at floor(n / 2). Fewer than two usable values -> None.
    """
    index = _check_index(index)
    ordered = _chronological(samples)
    values = [v for v in (_score(s, index) for s in ordered) if v is not None]
    if len(values) < 2:
        return None
    mid = len(values) // 2
    first = float(np.mean(values[:mid]))
    second = float(np.mean(values[mid:]))
    direction = "increasing" if second > first else "decreasing"
    percentage = abs((second - first) / first) * 100.0 if first != 0 else None
    return Trend(direction=direction, percentage=percentage,
                 first_half_mean=first, second_half_mean=second)


def compliance_rate(samples: Sequence) -> Optional[float]:
    """Percentage of samples whose HPI is within the clean limit (HPI <= 100)."""
    if not samples:
        return None
    limit = HPI_THRESHOLDS[0]
    polluted = sum(1 for s in samples if (_score(s, "hpi") or 0.0) > limit)
    return (len(samples) - polluted) / len(samples) * 100.0


def critical_locations(samples: Iterable[Sample], limit: int = 3) -> List[str]:
    """Distinct locations with HPI above 100, in order of first appearance."""
    threshold = HPI_THRESHOLDS[0]
    seen: List[str] = []
    for s in samples:
        hpi = _score(s, "hpi")
        if hpi is not None and hpi > threshold and s.location not in seen:
            seen.append(s.location)
            if len(seen) >= limit:
                break
    return seen


def summarize_by_location(samples: Sequence[Sample]) -> Optional[pd.DataFrame]:
    """
    One row per location: sample count, mean HPI and the worst HPI category
    seen there.
    """
    if not samples:
        return None
    severity = {member.value: rank for rank, member in enumerate(CATEGORY_ENUMS["hpi"])}
    frame = pd.DataFrame({
        "location": [s.location for s in samples],
        "hpi": [_score(s, "hpi") for s in samples],
        "hpi_category": [_category(s, "hpi") for s in samples],
    })
    frame["hpi"] = frame["hpi"].astype(float)

    def worst(labels):
        known = [label for label in labels if label in severity]
        return max(known, key=severity.get) if known else UNKNOWN

    return frame.groupby("location", sort=True).agg(
        samples=("hpi", "size"),
        mean_hpi=("hpi", "mean"),
        worst_category=("hpi_category", worst),
    )


def overview(samples: Sequence[Sample], standards: StandardsTable = WHO) -> Optional[Dict]:
    """Headline figures for a dashboard in one dict."""
    if not samples:
        logger.info("Overview requested for an empty collection")
        return None
    trend = trend_direction(samples)
    return {
        "total_samples": len(samples),
        "means": index_means(samples),
        "ranges": index_ranges(samples),
        "distribution": quality_distribution(samples, "hpi"),
        "most_polluted_metal": most_polluted_metal(samples, standards),
        "trend": trend.direction if trend else None,
        "trend_percentage": trend.percentage if trend else None,
        "compliance_rate": compliance_rate(samples),
        "critical_locations": critical_locations(samples),
    }
