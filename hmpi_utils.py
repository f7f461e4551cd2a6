# hmpi_utils.py
"""
HMPI utility functions (reusable).

Provides:
- validate_concentrations(concentrations, allow_missing)
- compute_hpi / compute_hei / compute_cd / compute_npi
- compute_indices(concentrations, standards) -> IndexResult
- Sample (one groundwater measurement plus its computed IndexResult)
- detect_metals_in_df(df, cfg)
- compute_indices_for_df(df, cfg)
- samples_from_df(df, cfg)

All concentrations and standards are in mg/L.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from hmpi_categories import (
    CDCategory,
    HEICategory,
    HPICategory,
    NPICategory,
    OverallQuality,
    classify_cd,
    classify_hei,
    classify_hpi,
    classify_npi,
    overall_quality,
)
from hmpi_errors import EmptyDatasetError, HMPIError, InvalidSampleError
from hmpi_standards import METALS, WHO, StandardsTable, normalize_metal_name, standards_from_config

logger = logging.getLogger(__name__)


class CDVariant(str, Enum):
    """How metals at or below background count towards the contamination degree."""

    ALL = "all"  # sum (Cf - 1) over every metal, negatives included
    EXCEEDANCE = "exceedance"  # only metals with Cf > 1


def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def validate_concentrations(concentrations: Mapping, allow_missing: bool = False) -> Dict[str, float]:
    """
    Check and normalize a metal -> concentration mapping.

    Keys may be canonical names, element symbols or display labels; keys that
    are not metals are ignored. Returns a new dict with all eight metals as
    floats in canonical order.

    Raises InvalidSampleError for negative, non-numeric or infinite values,
    and for missing metals unless allow_missing is set, in which case the
    gaps become 0.0 and a warning is logged.
    """
    if concentrations is None:
        raise InvalidSampleError("No concentrations supplied")

    found: Dict[str, object] = {}
    for key, value in concentrations.items():
        metal = normalize_metal_name(key)
        if metal is None:
            continue
        if metal in found and not _is_blank(found[metal]):
            raise InvalidSampleError(f"Concentration for {metal} given more than once", field=metal)
        found[metal] = value

    values: Dict[str, float] = {}
    filled: List[str] = []
    for metal in METALS:
        raw = found.get(metal)
        if _is_blank(raw):
            if not allow_missing:
                raise InvalidSampleError(f"Missing concentration for {metal}", field=metal)
            filled.append(metal)
            values[metal] = 0.0
            continue
        if isinstance(raw, bool):
            raise InvalidSampleError(f"Concentration for {metal} is not a number: {raw!r}", field=metal)
        try:
            v = float(raw)
        except (TypeError, ValueError):
            raise InvalidSampleError(f"Concentration for {metal} is not a number: {raw!r}", field=metal)
        if not math.isfinite(v):
            raise InvalidSampleError(f"Concentration for {metal} is not finite: {raw!r}", field=metal)
        if v < 0:
            raise InvalidSampleError(f"Concentration for {metal} is negative: {v}", field=metal)
        values[metal] = v

    if filled:
        logger.warning("Missing concentrations treated as 0.0 mg/L: %s", ", ".join(filled))
    return values


# --- index formulas ---------------------------------------------------------------

def compute_hpi(concentrations: Mapping, standards: StandardsTable = WHO) -> float:
    """
    Heavy-metal Pollution Index.

        Wi  = 1 / Si
        Qi  = |Mi - Ii| / (Si - Ii) * 100
        HPI = sum(Wi * Qi) / sum(Wi)

    A metal whose permissible limit does not exceed its ideal value
    (Si <= Ii) is left out of both sums. With no usable metal the HPI is 0.0.
    """
    values = validate_concentrations(concentrations)
    num = 0.0
    den = 0.0
    for m in METALS:
        si = standards.limit(m)
        ii = standards.ideal_value(m)
        if si <= ii:
            logger.debug("HPI: skipping %s (Si=%s <= Ii=%s)", m, si, ii)
            continue
        wi = 1.0 / si
        qi = abs(values[m] - ii) / (si - ii) * 100.0
        num += wi * qi
        den += wi
    if den == 0:
        return 0.0
    return num / den


def compute_hei(concentrations: Mapping, standards: StandardsTable = WHO) -> float:
    """Heavy-metal Evaluation Index: HEI = sum(Mi / Si)."""
    values = validate_concentrations(concentrations)
    return float(sum(values[m] / standards.limit(m) for m in METALS))


def compute_cd(concentrations: Mapping, standards: StandardsTable = WHO,
               variant: CDVariant = CDVariant.EXCEEDANCE) -> float:
    """
    Degree of contamination: CD = sum(Cfi - 1), Cfi = Mi / Ii.

    Metals with a zero ideal value are skipped. Under CDVariant.EXCEEDANCE
    only metals with Cfi > 1 contribute.
    """
    variant = CDVariant(variant)
    values = validate_concentrations(concentrations)
    total = 0.0
    for m in METALS:
        ii = standards.ideal_value(m)
        if ii == 0:
            logger.debug("CD: skipping %s (ideal value is 0)", m)
            continue
        cf = values[m] / ii
        if variant is CDVariant.EXCEEDANCE and cf <= 1:
            continue
        total += cf - 1.0
    return total


def compute_npi(concentrations: Mapping, standards: StandardsTable = WHO) -> float:
    """Nemerow Pollution Index: sqrt((Pmax^2 + Pavg^2) / 2), Pi = Mi / Si."""
    values = validate_concentrations(concentrations)
    ratios = np.array([values[m] / standards.limit(m) for m in METALS], dtype=float)
    p_max = float(ratios.max())
    p_avg = float(ratios.mean())
    return math.sqrt((p_max ** 2 + p_avg ** 2) / 2.0)


# --- results ----------------------------------------------------------------------

@dataclass(frozen=True)
class IndexResult:
    hpi: Optional[float] = None
    hei: Optional[float] = None
    cd: Optional[float] = None
    npi: Optional[float] = None
    hpi_category: Optional[HPICategory] = None
    hei_category: Optional[HEICategory] = None
    cd_category: Optional[CDCategory] = None
    npi_category: Optional[NPICategory] = None

    @classmethod
    def from_scores(cls, hpi: Optional[float], hei: Optional[float],
                    cd: Optional[float], npi: Optional[float]) -> "IndexResult":
        """Build a result whose categories are derived from the scores."""
        return cls(
            hpi=hpi, hei=hei, cd=cd, npi=npi,
            hpi_category=classify_hpi(hpi),
            hei_category=classify_hei(hei),
            cd_category=classify_cd(cd),
            npi_category=classify_npi(npi),
        )

    @property
    def overall(self) -> Optional[OverallQuality]:
        if None in (self.hpi_category, self.hei_category, self.cd_category, self.npi_category):
            return None
        return overall_quality(self.hpi_category, self.hei_category, self.cd_category, self.npi_category)

    def to_dict(self) -> Dict:
        def label(c):
            return c.value if c is not None else None

        overall = self.overall
        return {
            "hpi": self.hpi,
            "hei": self.hei,
            "cd": self.cd,
            "npi": self.npi,
            "hpiCategory": label(self.hpi_category),
            "heiCategory": label(self.hei_category),
            "cdCategory": label(self.cd_category),
            "npiCategory": label(self.npi_category),
            "overallQuality": label(overall),
        }


def compute_indices(concentrations: Mapping, standards: StandardsTable = WHO,
                    cd_variant: CDVariant = CDVariant.EXCEEDANCE, allow_missing: bool = False) -> IndexResult:
    """Compute all four indices and their categories for one sample."""
    values = validate_concentrations(concentrations, allow_missing=allow_missing)
    return IndexResult.from_scores(
        hpi=compute_hpi(values, standards),
        hei=compute_hei(values, standards),
        cd=compute_cd(values, standards, cd_variant),
        npi=compute_npi(values, standards),
    )


# --- samples ----------------------------------------------------------------------

def _as_utc(ts) -> datetime:
    if ts is None or _is_blank(ts):
        return datetime.now(timezone.utc)
    if not isinstance(ts, datetime) or isinstance(ts, pd.Timestamp):
        try:
            ts = pd.Timestamp(ts).to_pydatetime()
        except (TypeError, ValueError):
            raise InvalidSampleError(f"Invalid timestamp: {ts!r}", field="created_at")
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _coordinate(value, name: str, bound: float) -> Optional[float]:
    if _is_blank(value):
        return None
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise InvalidSampleError(f"Invalid {name}: {value!r}", field=name)
    if not math.isfinite(v) or v < -bound or v > bound:
        raise InvalidSampleError(f"{name.capitalize()} out of range: {value!r}", field=name)
    return v


@dataclass(frozen=True)
class Sample:
    """One groundwater measurement; owns its IndexResult."""

    sample_id: str
    location: str
    latitude: Optional[float]
    longitude: Optional[float]
    concentrations: Dict[str, float]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    result: Optional[IndexResult] = None

    @classmethod
    def create(cls, sample_id, location, latitude, longitude, concentrations: Mapping,
               created_at=None, standards: StandardsTable = WHO,
               cd_variant: CDVariant = CDVariant.EXCEEDANCE, allow_missing: bool = False) -> "Sample":
        """Validate a raw measurement and compute its indices once."""
        if _is_blank(sample_id):
            raise InvalidSampleError("Sample ID is required", field="sample_id")
        values = validate_concentrations(concentrations, allow_missing=allow_missing)
        return cls(
            sample_id=str(sample_id).strip(),
            location=str(location).strip() if not _is_blank(location) else str(sample_id).strip(),
            latitude=_coordinate(latitude, "latitude", 90.0),
            longitude=_coordinate(longitude, "longitude", 180.0),
            concentrations=values,
            created_at=_as_utc(created_at),
            result=compute_indices(values, standards, cd_variant),
        )

    def recompute(self, standards: StandardsTable, cd_variant: CDVariant = CDVariant.EXCEEDANCE) -> "Sample":
        """Return a copy with indices recomputed against other standards."""
        return replace(self, result=compute_indices(self.concentrations, standards, cd_variant))

    def to_record(self) -> Dict:
        """Flat dict (sample fields, concentrations and indices) for tables and exports."""
        record = {
            "sample_id": self.sample_id,
            "location": self.location,
            "lat": self.latitude,
            "lon": self.longitude,
            "created_at": self.created_at.isoformat(),
        }
        record.update(self.concentrations)
        record.update((self.result or IndexResult()).to_dict())
        return record


# --- DataFrame batch path ---------------------------------------------------------

ID_COLUMNS = ("sample_id", "sampleid", "id")
LOCATION_COLUMNS = ("location", "site_name", "site")
LAT_COLUMNS = ("lat", "latitude")
LON_COLUMNS = ("lon", "lng", "longitude")
DATE_COLUMNS = ("created_at", "date", "timestamp")

RESULT_COLUMNS = ["HPI", "HEI", "CD", "NPI", "HPI_category", "HEI_category",
                  "CD_category", "NPI_category", "overall_quality"]


def _find_column(df: pd.DataFrame, candidates) -> Optional[str]:
    lowered = {str(c).strip().lower(): c for c in df.columns}
    for name in candidates:
        if name in lowered:
            return lowered[name]
    return None


def detect_metals_in_df(df: pd.DataFrame, cfg: Dict) -> Tuple[Dict[str, str], List[str]]:
    """
    Return two values:
    - metal_columns: canonical metal -> column of df holding it
    - missing: canonical metals with no column in df

    cfg["metal_columns"] may map metal -> column explicitly; otherwise columns
    are matched by name, symbol or label ("As", "Arsenic (As)", ...).
    """
    configured = cfg.get("metal_columns") or {}
    metal_columns: Dict[str, str] = {}

    if isinstance(configured, dict):
        for key, col in configured.items():
            metal = normalize_metal_name(key)
            if metal is not None and col in df.columns:
                metal_columns[metal] = col

    for col in df.columns:
        metal = normalize_metal_name(str(col))
        if metal is not None and metal not in metal_columns:
            metal_columns[metal] = col

    missing = [m for m in METALS if m not in metal_columns]
    return metal_columns, missing


def _row_concentrations(row: pd.Series, metal_columns: Dict[str, str]) -> Dict:
    return {m: row.get(col) for m, col in metal_columns.items()}


def compute_indices_for_df(df: pd.DataFrame, cfg: Dict) -> pd.DataFrame:
    """
    Main function: compute HPI, HEI, CD and NPI plus categories for every
    row of df, using the standards and options in cfg.

    Rows that fail validation keep null indices and get a message in the
    "error" column; the rest of the batch is still computed.

    Returns a new DataFrame (copy) with new columns added.
    """
    # copy so we don't mutate original accidentally
    df = df.copy()

    standards = standards_from_config(cfg)
    cd_variant = CDVariant(cfg.get("cd_variant", CDVariant.EXCEEDANCE.value))
    allow_missing = bool(cfg.get("allow_missing", False))
    metal_columns, missing = detect_metals_in_df(df, cfg)
    if missing:
        logger.info("Metals without a column: %s", ", ".join(missing))
    lat_col = _find_column(df, LAT_COLUMNS)
    lon_col = _find_column(df, LON_COLUMNS)
    date_col = _find_column(df, DATE_COLUMNS)

    rows = []
    errors = []
    for i, (_, row) in enumerate(df.iterrows()):
        try:
            # identity checks from Sample.create
            _coordinate(row.get(lat_col) if lat_col else None, "latitude", 90.0)
            _coordinate(row.get(lon_col) if lon_col else None, "longitude", 180.0)
            if date_col:
                _as_utc(row.get(date_col))
            result = compute_indices(_row_concentrations(row, metal_columns), standards,
                                     cd_variant, allow_missing=allow_missing)
        except HMPIError as e:
            logger.warning("Row %d: %s", i + 1, e)
            result = IndexResult()
            errors.append(str(e))
        else:
            errors.append(None)
        d = result.to_dict()
        rows.append([d["hpi"], d["hei"], d["cd"], d["npi"], d["hpiCategory"], d["heiCategory"],
                     d["cdCategory"], d["npiCategory"], d["overallQuality"]])

    out = pd.DataFrame(rows, columns=RESULT_COLUMNS, index=df.index)
    for col in RESULT_COLUMNS:
        df[col] = out[col]
    df["error"] = errors
    df["standards"] = standards.name
    return df


def samples_from_df(df: pd.DataFrame, cfg: Dict) -> List[Sample]:
    """
    Build Sample objects from the rows of df.

    Unlike compute_indices_for_df this is strict: the first invalid row raises
    InvalidSampleError naming the row, and an empty frame raises
    EmptyDatasetError.
    """
    if len(df) == 0:
        raise EmptyDatasetError("No rows to build samples from")
    standards = standards_from_config(cfg)
    cd_variant = CDVariant(cfg.get("cd_variant", CDVariant.EXCEEDANCE.value))
    allow_missing = bool(cfg.get("allow_missing", False))
    metal_columns, _ = detect_metals_in_df(df, cfg)

    id_col = _find_column(df, ID_COLUMNS)
    loc_col = _find_column(df, LOCATION_COLUMNS)
    lat_col = _find_column(df, LAT_COLUMNS)
    lon_col = _find_column(df, LON_COLUMNS)
    date_col = _find_column(df, DATE_COLUMNS)

    samples = []
    for i, (_, row) in enumerate(df.iterrows()):
        sample_id = row.get(id_col) if id_col else None
        if _is_blank(sample_id):
            sample_id = f"Sample_{i + 1}"
        try:
            sample = Sample.create(
                sample_id=sample_id,
                location=row.get(loc_col) if loc_col else None,
                latitude=row.get(lat_col) if lat_col else None,
                longitude=row.get(lon_col) if lon_col else None,
                concentrations=_row_concentrations(row, metal_columns),
                created_at=row.get(date_col) if date_col else None,
                standards=standards,
                cd_variant=cd_variant,
                allow_missing=allow_missing,
            )
        except InvalidSampleError as e:
            raise InvalidSampleError(f"Row {i + 1}: {e}", field=e.field) from e
        samples.append(sample)
    return samples
