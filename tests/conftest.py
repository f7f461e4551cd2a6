from datetime import datetime, timedelta, timezone

import pytest

from hmpi_standards import WHO_PERMISSIBLE
from hmpi_utils import IndexResult, Sample

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def at_limit():
    """Every metal exactly at its WHO permissible limit."""
    return {
        "arsenic": 0.01, "cadmium": 0.003, "chromium": 0.05, "lead": 0.01,
        "mercury": 0.001, "nickel": 0.07, "copper": 2.0, "zinc": 3.0,
    }


@pytest.fixture
def zeros():
    return {m: 0.0 for m in WHO_PERMISSIBLE}


@pytest.fixture
def make_sample(zeros):
    """Sample with fixed scores, bypassing the calculator."""

    def _make(hpi, location="Site A", day=0, concentrations=None, hei=1.0, cd=0.0, npi=0.5):
        return Sample(
            sample_id=f"S-{location}-{day}",
            location=location,
            latitude=26.1,
            longitude=91.7,
            concentrations=concentrations or dict(zeros),
            created_at=BASE_TIME + timedelta(days=day),
            result=IndexResult.from_scores(hpi=hpi, hei=hei, cd=cd, npi=npi),
        )

    return _make
