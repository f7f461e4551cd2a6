# hmpi_standards.py
"""
Reference standards for heavy metals in groundwater (all values in mg/L).

Provides:
- METALS / METAL_SYMBOLS / normalize_metal_name(name)
- StandardsTable plus the WHO and EPA presets
- custom_standards(overrides, base)
- load_config(path) / standards_from_config(cfg)
"""

import json
import math
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import pandas as pd

from hmpi_errors import InvalidStandardsError

logger = logging.getLogger(__name__)

# canonical order; every table and result uses it
METALS = ("arsenic", "cadmium", "chromium", "lead", "mercury", "nickel", "copper", "zinc")

METAL_SYMBOLS = {
    "arsenic": "As",
    "cadmium": "Cd",
    "chromium": "Cr",
    "lead": "Pb",
    "mercury": "Hg",
    "nickel": "Ni",
    "copper": "Cu",
    "zinc": "Zn",
}

_ALIASES = {m: m for m in METALS}
_ALIASES.update({sym.lower(): m for m, sym in METAL_SYMBOLS.items()})

# WHO drinking-water guideline for nickel is 0.07 mg/L. An older benchmark
# table used 0.02; configs carrying that value are flagged at load time.
WHO_NICKEL_LIMIT = 0.07
NICKEL_LIMIT_DISCREPANCY = 0.02

WHO_PERMISSIBLE = {
    "arsenic": 0.01,
    "cadmium": 0.003,
    "chromium": 0.05,
    "lead": 0.01,
    "mercury": 0.001,
    "nickel": WHO_NICKEL_LIMIT,
    "copper": 2.0,
    "zinc": 3.0,
}

# background / natural concentrations in uncontaminated water
IDEAL_VALUES = {
    "arsenic": 0.001,
    "cadmium": 0.0005,
    "chromium": 0.001,
    "lead": 0.01,
    "mercury": 0.0001,
    "nickel": 0.002,
    "copper": 0.001,
    "zinc": 0.01,
}

EPA_PERMISSIBLE = {
    "arsenic": 0.01,
    "cadmium": 0.005,
    "chromium": 0.1,
    "lead": 0.015,
    "mercury": 0.002,
    "nickel": 0.1,
    "copper": 1.3,
    "zinc": 5.0,
}


def normalize_metal_name(name: str) -> Optional[str]:
    """
    Map a column/field name to its canonical metal name.

    Accepts canonical names ("arsenic"), symbols ("As", "as") and display
    labels ("Arsenic (As)"). Returns None when the name is not a metal.
    """
    if not isinstance(name, str):
        return None
    key = name.strip().lower()
    if "(" in key:
        key = key.split("(", 1)[0].strip()
    return _ALIASES.get(key)


def _check_table(name: str, values: Dict[str, float], label: str, strictly_positive: bool) -> Dict[str, float]:
    checked = {}
    for m in METALS:
        if m not in values or values[m] is None:
            raise InvalidStandardsError(f"{name}: missing {label} value for {m}", field=m)
        try:
            v = float(values[m])
        except (TypeError, ValueError):
            raise InvalidStandardsError(f"{name}: {label} value for {m} is not a number", field=m)
        if not math.isfinite(v):
            raise InvalidStandardsError(f"{name}: {label} value for {m} is not finite", field=m)
        if strictly_positive and v <= 0:
            raise InvalidStandardsError(f"{name}: {label} value for {m} must be > 0", field=m)
        if not strictly_positive and v < 0:
            raise InvalidStandardsError(f"{name}: {label} value for {m} must be >= 0", field=m)
        checked[m] = v
    return checked


@dataclass(frozen=True)
class StandardsTable:
    """Permissible limit (Si) and ideal value (Ii) per metal, in mg/L."""

    name: str
    permissible: Dict[str, float] = field(default_factory=dict)
    ideal: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        # frozen: assign normalized copies through object.__setattr__
        object.__setattr__(self, "permissible", _check_table(self.name, self.permissible, "permissible", True))
        object.__setattr__(self, "ideal", _check_table(self.name, self.ideal, "ideal", False))

    def __hash__(self):
        return hash((self.name, tuple(self.permissible.items()), tuple(self.ideal.items())))

    def limit(self, metal: str) -> float:
        return self.permissible[metal]

    def ideal_value(self, metal: str) -> float:
        return self.ideal[metal]

    def with_overrides(self, name: str = "Custom", permissible: Optional[Dict] = None,
                       ideal: Optional[Dict] = None) -> "StandardsTable":
        """Return a new table with some limits and/or ideal values replaced."""
        new_perm = dict(self.permissible)
        new_ideal = dict(self.ideal)
        for src, dst in ((permissible or {}, new_perm), (ideal or {}, new_ideal)):
            for key, value in src.items():
                metal = normalize_metal_name(key)
                if metal is None:
                    raise InvalidStandardsError(f"{name}: unknown metal '{key}'", field=str(key))
                dst[metal] = value
        return StandardsTable(name=name, permissible=new_perm, ideal=new_ideal)

    def as_frame(self) -> pd.DataFrame:
        """Standards as a DataFrame (one row per metal) for display/export."""
        return pd.DataFrame({
            "metal": list(METALS),
            "symbol": [METAL_SYMBOLS[m] for m in METALS],
            "permissible_mgL": [self.permissible[m] for m in METALS],
            "ideal_mgL": [self.ideal[m] for m in METALS],
        })


WHO = StandardsTable(name="WHO", permissible=WHO_PERMISSIBLE, ideal=IDEAL_VALUES)
EPA = StandardsTable(name="EPA", permissible=EPA_PERMISSIBLE, ideal=IDEAL_VALUES)

PRESETS = {"WHO": WHO, "EPA": EPA}


def get_preset(name: str) -> StandardsTable:
    try:
        return PRESETS[name.upper()]
    except (KeyError, AttributeError):
        raise InvalidStandardsError(f"Unknown standards preset '{name}' (expected one of {sorted(PRESETS)})")


def custom_standards(overrides: Dict[str, float], base: StandardsTable = WHO) -> StandardsTable:
    """User-supplied permissible limits layered over a preset (benchmarking only)."""
    return base.with_overrides(name="Custom", permissible=overrides)


def load_config(path: str = "config.json") -> Dict:
    """Load config JSON (throws FileNotFoundError if missing)."""
    with open(path, "r", encoding="utf-8") as f:
        cfg = json.load(f)
    return cfg


def standards_from_config(cfg: Dict) -> StandardsTable:
    """
    Build the active standards table from a config dict.

    `standards_preset` picks the base (WHO when absent). Any `standard_values`
    or `ideal_values` entries are applied on top, which makes the result a
    "Custom" table.
    """
    preset_name = cfg.get("standards_preset", "WHO")
    base = get_preset(preset_name)

    standard_values = cfg.get("standard_values") or {}
    ideal_values = cfg.get("ideal_values") or {}

    if not standard_values and not ideal_values:
        return base

    overrides_perm = {k: v for k, v in standard_values.items() if v is not None}
    overrides_ideal = {k: v for k, v in ideal_values.items() if v is not None}
    table = base.with_overrides(name="Custom", permissible=overrides_perm, ideal=overrides_ideal)
    if base.name == "WHO" and table.permissible["nickel"] != WHO_NICKEL_LIMIT:
        logger.warning(
            "Config sets nickel permissible limit to %s mg/L; WHO guideline is %s mg/L "
            "(%s mg/L appears in older benchmark tables)",
            table.permissible["nickel"], WHO_NICKEL_LIMIT, NICKEL_LIMIT_DISCREPANCY,
        )
    # entries identical to the preset do not make the table custom
    if table.permissible == base.permissible and table.ideal == base.ideal:
        return base
    return table
