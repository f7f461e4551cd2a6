import math
from datetime import datetime, timezone

import numpy as np
import pytest

from hmpi_categories import CDCategory, HEICategory, HPICategory, NPICategory, OverallQuality
from hmpi_errors import HMPIError, InvalidSampleError
from hmpi_standards import EPA, METALS, WHO, StandardsTable
from hmpi_utils import (
    CDVariant,
    Sample,
    compute_cd,
    compute_hei,
    compute_hpi,
    compute_indices,
    compute_npi,
    validate_concentrations,
)


def test_at_limit_sample(at_limit):
    result = compute_indices(at_limit, WHO)

    assert result.hei == pytest.approx(8.0)
    assert result.hei_category is HEICategory.CLEAN
    # every usable metal has Qi = 100
    assert result.hpi == pytest.approx(100.0)
    assert result.npi == pytest.approx(1.0)
    assert result.npi_category is NPICategory.SLIGHT
    assert result.cd == pytest.approx(9 + 5 + 49 + 0 + 9 + 34 + 1999 + 299)
    assert result.cd_category is CDCategory.HIGH
    assert result.overall is OverallQuality.FAIR


def test_all_zero_sample_is_defined_and_clean(zeros):
    result = compute_indices(zeros, WHO)

    for value in (result.hpi, result.hei, result.cd, result.npi):
        assert math.isfinite(value)
    assert 0 <= result.hpi < 100
    assert result.hpi_category is HPICategory.CLEAN
    assert result.hei == 0.0
    assert result.npi == 0.0
    assert result.npi_category is NPICategory.CLEAN
    assert result.cd == 0.0
    assert result.cd_category is CDCategory.LOW
    assert result.overall is OverallQuality.GOOD


def test_hpi_single_metal_value(zeros):
    table = StandardsTable(
        name="flat",
        permissible={m: 1.0 for m in METALS},
        ideal={m: 0.0 for m in METALS},
    )
    sample = dict(zeros, arsenic=4.0)
    # equal weights: mean of Qi = (400 + 0 * 7) / 8
    assert compute_hpi(sample, table) == pytest.approx(50.0)


def test_hpi_skips_metal_whose_limit_equals_ideal(zeros):
    # WHO lead: Si == Ii == 0.01, so lead never moves HPI
    low_lead = dict(zeros, arsenic=0.005, lead=0.0)
    high_lead = dict(zeros, arsenic=0.005, lead=5.0)
    assert compute_hpi(low_lead, WHO) == compute_hpi(high_lead, WHO)


def test_hpi_without_usable_metals_is_zero(at_limit):
    degenerate = StandardsTable(
        name="degenerate",
        permissible={m: 0.5 for m in METALS},
        ideal={m: 0.5 for m in METALS},
    )
    assert compute_hpi(at_limit, degenerate) == 0.0


def test_hei_is_sum_of_ratios(zeros):
    sample = dict(zeros, arsenic=0.02, zinc=1.5)
    assert compute_hei(sample, WHO) == pytest.approx(2.0 + 0.5)


def test_cd_variants(zeros):
    sample = dict(zeros, arsenic=0.005)
    # arsenic Cf = 5; under ALL the seven other metals contribute -1 each
    assert compute_cd(sample, WHO) == pytest.approx(4.0)
    assert compute_cd(sample, WHO, CDVariant.EXCEEDANCE) == pytest.approx(4.0)
    assert compute_cd(sample, WHO, CDVariant.ALL) == pytest.approx(4.0 - 7.0)
    assert compute_cd(sample, WHO, "all") == pytest.approx(4.0 - 7.0)


def test_cd_all_variant_is_opt_in(zeros):
    assert compute_indices(zeros).cd == 0.0
    result = compute_indices(zeros, WHO, CDVariant.ALL)
    assert result.cd == pytest.approx(-8.0)
    assert result.cd_category is CDCategory.LOW


def test_cd_skips_zero_ideal_values(at_limit):
    table = WHO.with_overrides(name="no-background", ideal={m: 0.0 for m in METALS})
    assert compute_cd(at_limit, table) == 0.0
    assert compute_cd(at_limit, table, CDVariant.ALL) == 0.0


def test_npi_value(zeros):
    sample = dict(zeros, arsenic=0.04)
    # P = [4, 0, ...]: Pmax 4, Pavg 0.5
    assert compute_npi(sample, WHO) == pytest.approx(math.sqrt((16 + 0.25) / 2))


def test_standards_change_scores(at_limit):
    assert compute_hei(at_limit, EPA) < compute_hei(at_limit, WHO)


def test_random_samples_stay_finite_and_non_negative():
    rng = np.random.default_rng(42)
    for _ in range(200):
        # low range keeps most metals below background
        sample = {m: float(v) for m, v in zip(METALS, rng.uniform(0, 0.005, len(METALS)))}
        result = compute_indices(sample)
        for value in (result.hpi, result.hei, result.cd, result.npi):
            assert math.isfinite(value)
            assert value >= 0


def test_symbols_and_labels_are_accepted(at_limit):
    by_symbol = {"As": 0.01, "Cd": 0.003, "Cr": 0.05, "Pb": 0.01,
                 "Hg": 0.001, "Ni": 0.07, "Cu": 2.0, "Zn": 3.0}
    by_label = {f"{m.title()} (x)": v for m, v in at_limit.items()}
    assert compute_indices(by_symbol) == compute_indices(at_limit)
    assert compute_indices(by_label) == compute_indices(at_limit)


@pytest.mark.parametrize("bad", [-0.001, "abc", math.inf, math.nan, None, ""])
def test_invalid_concentration_is_rejected(at_limit, bad):
    sample = dict(at_limit, cadmium=bad)
    with pytest.raises(InvalidSampleError) as exc:
        compute_indices(sample)
    assert exc.value.field == "cadmium"


def test_missing_metal_is_rejected(at_limit):
    del at_limit["zinc"]
    with pytest.raises(InvalidSampleError, match="zinc"):
        compute_indices(at_limit)


def test_missing_metal_filled_only_when_allowed(at_limit, caplog):
    del at_limit["zinc"]
    with caplog.at_level("WARNING"):
        values = validate_concentrations(at_limit, allow_missing=True)
    assert values["zinc"] == 0.0
    assert "zinc" in caplog.text


def test_invalid_sample_error_is_a_value_error(at_limit):
    with pytest.raises(ValueError):
        compute_indices(dict(at_limit, lead=-1))
    with pytest.raises(HMPIError):
        compute_indices(dict(at_limit, lead=-1))


def test_result_to_dict_keys(at_limit):
    d = compute_indices(at_limit).to_dict()
    assert set(d) == {"hpi", "hei", "cd", "npi", "hpiCategory", "heiCategory",
                      "cdCategory", "npiCategory", "overallQuality"}
    assert d["heiCategory"] == "Clean"
    assert d["overallQuality"] == "Fair"


def test_sample_create_computes_result(at_limit):
    s = Sample.create("GW-1", "Well", 26.1, 91.7, at_limit, created_at="2025-03-01")
    assert s.result.hei == pytest.approx(8.0)
    assert s.created_at == datetime(2025, 3, 1, tzinfo=timezone.utc)
    assert s.to_record()["heiCategory"] == "Clean"


@pytest.mark.parametrize("lat, lon", [(91, 0), (-90.5, 0), (0, 181), (0, "east")])
def test_sample_rejects_bad_coordinates(at_limit, lat, lon):
    with pytest.raises(InvalidSampleError):
        Sample.create("GW-1", "Well", lat, lon, at_limit)


def test_sample_requires_id(at_limit):
    with pytest.raises(InvalidSampleError) as exc:
        Sample.create("  ", "Well", 0, 0, at_limit)
    assert exc.value.field == "sample_id"


def test_sample_recompute_leaves_original(at_limit):
    s = Sample.create("GW-1", "Well", None, None, at_limit)
    again = s.recompute(EPA)
    assert again.result.hei < s.result.hei
    assert s.result.hei == pytest.approx(8.0)
    assert again.sample_id == s.sample_id
