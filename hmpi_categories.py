# hmpi_categories.py
"""
Severity categories for the four pollution indices.

Thresholds live here and nowhere else. Classification is a pure function of
the score: <lower is the clean band, [lower, upper] the middle band(s),
>upper the worst band.
"""

import math
from enum import Enum
from typing import Optional, Union


class HPICategory(str, Enum):
    CLEAN = "Clean"
    MODERATE = "Moderate"
    HIGH = "High"


class HEICategory(str, Enum):
    CLEAN = "Clean"
    MODERATE = "Moderate"
    HIGH = "High"


class CDCategory(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class NPICategory(str, Enum):
    CLEAN = "Clean"
    SLIGHT = "Slight"
    MODERATE = "Moderate"
    SEVERE = "Severe"


class OverallQuality(str, Enum):
    GOOD = "Good"
    FAIR = "Fair"
    MODERATE = "Moderate"
    POOR = "Poor"


# (clean_below, worst_above)
HPI_THRESHOLDS = (100.0, 200.0)
HEI_THRESHOLDS = (10.0, 20.0)
CD_THRESHOLDS = (1.0, 3.0)
# (clean_below, slight_max, moderate_max)
NPI_THRESHOLDS = (0.7, 1.0, 2.0)

CATEGORY_ENUMS = {
    "hpi": HPICategory,
    "hei": HEICategory,
    "cd": CDCategory,
    "npi": NPICategory,
}

UNKNOWN = "Unknown"

_COLORS = {
    "Clean": "#4CAF50",
    "Low": "#4CAF50",
    "Good": "#4CAF50",
    "Slight": "#81C784",
    "Fair": "#81C784",
    "Moderate": "#FFC107",
    "Medium": "#FFC107",
    "High": "#F44336",
    "Severe": "#F44336",
    "Poor": "#F44336",
}
_UNKNOWN_COLOR = "#9E9E9E"


def _is_missing(score) -> bool:
    if score is None:
        return True
    try:
        return math.isnan(float(score))
    except (TypeError, ValueError):
        return True


def classify_hpi(score) -> Optional[HPICategory]:
    if _is_missing(score):
        return None
    low, high = HPI_THRESHOLDS
    score = float(score)
    if score < low:
        return HPICategory.CLEAN
    if score <= high:
        return HPICategory.MODERATE
    return HPICategory.HIGH


def classify_hei(score) -> Optional[HEICategory]:
    if _is_missing(score):
        return None
    low, high = HEI_THRESHOLDS
    score = float(score)
    if score < low:
        return HEICategory.CLEAN
    if score <= high:
        return HEICategory.MODERATE
    return HEICategory.HIGH


def classify_cd(score) -> Optional[CDCategory]:
    if _is_missing(score):
        return None
    low, high = CD_THRESHOLDS
    score = float(score)
    if score < low:
        return CDCategory.LOW
    if score <= high:
        return CDCategory.MEDIUM
    return CDCategory.HIGH


def classify_npi(score) -> Optional[NPICategory]:
    if _is_missing(score):
        return None
    clean, slight, moderate = NPI_THRESHOLDS
    score = float(score)
    if score < clean:
        return NPICategory.CLEAN
    if score <= slight:
        return NPICategory.SLIGHT
    if score <= moderate:
        return NPICategory.MODERATE
    return NPICategory.SEVERE


CLASSIFIERS = {
    "hpi": classify_hpi,
    "hei": classify_hei,
    "cd": classify_cd,
    "npi": classify_npi,
}


def parse_category(index: str, label: Union[str, Enum]):
    """
    Turn a stored label back into its enum member.

    Raises ValueError for an unknown index name or a label outside the
    closed set for that index.
    """
    try:
        enum_cls = CATEGORY_ENUMS[index.lower()]
    except KeyError:
        raise ValueError(f"Unknown index '{index}' (expected one of {sorted(CATEGORY_ENUMS)})")
    if isinstance(label, enum_cls):
        return label
    value = label.value if isinstance(label, Enum) else str(label).strip()
    for member in enum_cls:
        if member.value.lower() == value.lower():
            return member
    allowed = ", ".join(m.value for m in enum_cls)
    raise ValueError(f"'{label}' is not a valid {index.upper()} category ({allowed})")


def overall_quality(hpi_category, hei_category, cd_category, npi_category) -> OverallQuality:
    """
    Combine the four categories into one verdict.

    Counts categories at High/Severe, plus CD at Medium:
    3 or more -> Poor, 2 -> Moderate, 1 -> Fair, none -> Good.
    """
    flagged = {"High", "Severe", "Medium"}
    labels = [getattr(c, "value", c) for c in (hpi_category, hei_category, cd_category, npi_category)]
    count = sum(1 for c in labels if c in flagged)
    if count >= 3:
        return OverallQuality.POOR
    if count == 2:
        return OverallQuality.MODERATE
    if count == 1:
        return OverallQuality.FAIR
    return OverallQuality.GOOD


def category_color(category) -> str:
    """Hex color for a category label (grey when unknown)."""
    if category is None:
        return _UNKNOWN_COLOR
    return _COLORS.get(getattr(category, "value", category), _UNKNOWN_COLOR)
