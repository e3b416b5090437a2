from pathlib import Path
import sys

import numpy as np
import pandas as pd
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from assembler import build_config_bundle
from config import DEFAULT_PARS, DEFAULT_STATE_0, NA_SENTINEL
from data_generation import generate_dataset, EXAMPLE_CASES
from errors import (IncompatibleSchemaError, DimensionError, SegmentError,
                    SentinelCollisionError, InvalidPriorError, SeirInputError)


@pytest.fixture
def example():
    return generate_dataset()


def test_single_stream_fixed(example):
    bundle = build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"])
    assert bundle.n_days == 42
    assert bundle.last_day_obs == 42
    assert bundle.n_streams == 1
    assert bundle.n_samp_frac == 0
    assert bundle.samp_frac_type_code == 1
    assert bundle.daily_cases.shape == (42, 1)
    assert bundle.samp_frac_fixed.shape == (42, 1)
    np.testing.assert_array_equal(bundle.days, np.arange(1, 43))
    # Placeholder prior in fixed mode
    np.testing.assert_allclose(bundle.samp_frac_prior, [1.0, 1.0])
    np.testing.assert_allclose(bundle.f_prior, [2.0, 3.0])
    assert bundle.n_f_segments == 1
    assert bundle.est_phi == 1
    assert bundle.obs_model_code == 1
    assert not bundle.contains_nas


def test_segmented_sample_fraction(example):
    bundle = build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"],
                                 samp_frac_type="segmented",
                                 samp_frac_seg=example["samp_frac_seg"])
    assert bundle.n_samp_frac == 2
    assert bundle.samp_frac_type_code == 4
    np.testing.assert_allclose(bundle.samp_frac_prior, [2.0, 3.0])


@pytest.mark.parametrize("samp_frac_type, expected", [("estimated", 1), ("rw", 42)])
def test_sample_fraction_parameter_count(example, samp_frac_type, expected):
    bundle = build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"],
                                 samp_frac_type=samp_frac_type)
    assert bundle.n_samp_frac == expected
    assert bundle.samp_frac_type_code == 1


def test_two_streams_with_per_stream_delays(example):
    daily_cases = example["daily_cases"]
    samp_frac = np.column_stack([example["s1"], example["s2"]])
    bundle = build_config_bundle(daily_cases, samp_frac_fixed=samp_frac,
                                 delay_scale=[9.8, 11.2], delay_shape=[1.7, 1.9])
    assert bundle.n_streams == 2
    assert bundle.stream_names == ("cases", "hosp")
    assert bundle.est_phi == 2
    with pytest.raises(DimensionError, match="delay_scale"):
        build_config_bundle(daily_cases, samp_frac_fixed=samp_frac,
                            delay_scale=[9.8], delay_shape=[1.7, 1.9])
    with pytest.raises(DimensionError, match="delay_shape"):
        build_config_bundle(daily_cases, samp_frac_fixed=samp_frac,
                            delay_scale=[9.8, 11.2], delay_shape=1.7)


def test_sample_fraction_row_mismatch_raises(example):
    with pytest.raises(DimensionError):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"][:40])
    with pytest.raises(DimensionError):
        build_config_bundle(EXAMPLE_CASES[:40], samp_frac_fixed=example["s1"])
    # Forecast days must be covered by the sampled fractions too
    with pytest.raises(DimensionError):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"], forecast_days=5)


def test_sample_fraction_column_mismatch_raises(example):
    with pytest.raises(DimensionError):
        build_config_bundle(example["daily_cases"], samp_frac_fixed=example["s1"],
                            delay_scale=[9.8, 11.2], delay_shape=[1.7, 1.9])


def test_missing_sample_fraction_raises():
    with pytest.raises(DimensionError):
        build_config_bundle(EXAMPLE_CASES)


def test_forecast_days_extend_days_and_grid():
    example = generate_dataset(forecast_days=10)
    bundle = build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"],
                                 forecast_days=10)
    assert bundle.n_days == 52
    assert bundle.last_day_obs == 42
    assert bundle.time[-1] == 52.0
    assert bundle.x_i[0] == 42
    assert bundle.x_i[1] == 52


def test_schema_mismatch_raises_before_anything_else(example):
    pars = dict(reversed(list(DEFAULT_PARS.items())))
    with pytest.raises(IncompatibleSchemaError):
        # Shapes are also wrong; the schema error wins
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"][:3], pars=pars)
    with pytest.raises(IncompatibleSchemaError):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"],
                            state_0={"S": 1.0, **DEFAULT_STATE_0})


def test_x_r_and_x_i_layout(example):
    bundle = build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"],
                                 f_seg=example["f_seg"], N_pop=1e6, f_ramp_rate=0.5)
    assert bundle.x_r_names == ("N", "D", "k1", "k2", "q", "ud", "ur", "f0",
                                "f_ramp_rate", "imported_cases", "imported_window")
    np.testing.assert_allclose(bundle.x_r,
                               [1e6, 5, 0.2, 1, 0.05, 0.1, 0.02, 1, 0.5, 0, 1])
    assert bundle.pars["N"] == 1e6
    assert bundle.x_i_names[:3] == ("last_day_obs", "n_f_s", "f_seg_id_1")
    assert bundle.x_i_names[-1] == "f_seg_id_42"
    np.testing.assert_array_equal(bundle.x_i[2:], example["f_seg"])
    assert bundle.n_f_segments == 2


def test_segment_origins_are_validated(example):
    with pytest.raises(SegmentError):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"],
                            f_seg=example["f_seg"] + 1)
    with pytest.raises(SegmentError):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"],
                            samp_frac_type="segmented",
                            samp_frac_seg=example["samp_frac_seg"] - 1)
    with pytest.raises(DimensionError):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"],
                            f_seg=example["f_seg"][:30])


def test_segment_ids_must_not_skip_values(example):
    gapped_f_seg = np.array([0] * 14 + [1] * 20 + [3] * 8)
    with pytest.raises(SegmentError, match="without gaps"):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"],
                            f_seg=gapped_f_seg)
    gapped_samp_frac_seg = np.array([1] * 13 + [3] * 29)
    with pytest.raises(SegmentError, match="without gaps"):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"],
                            samp_frac_type="segmented",
                            samp_frac_seg=gapped_samp_frac_seg)


def test_segment_count_covers_largest_id(example):
    bundle = build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"],
                                 f_seg=example["f_seg"])
    stan_data = bundle.to_stan_data()
    assert stan_data["x_i"][2:].max() == stan_data["S"]


def test_samp_frac_seg_origin_only_checked_when_segmented(example):
    zero_based = example["samp_frac_seg"] - 1
    bundle = build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"],
                                 samp_frac_seg=zero_based)
    assert bundle.n_samp_frac == 0
    np.testing.assert_array_equal(bundle.samp_frac_seg, zero_based)
    # Length is still checked, since the vector is always handed to the model
    with pytest.raises(DimensionError):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"],
                            samp_frac_seg=zero_based[:20])


def test_missing_values_are_flagged_and_encoded(example):
    cases = EXAMPLE_CASES.astype(float)
    cases[[3, 10]] = np.nan
    bundle = build_config_bundle(cases, samp_frac_fixed=example["s1"])
    assert bundle.contains_nas
    assert np.isnan(bundle.daily_cases[3, 0])
    stan_data = bundle.to_stan_data()
    assert stan_data["contains_NAs"] == 1
    assert stan_data["daily_cases"][3, 0] == NA_SENTINEL
    assert stan_data["daily_cases"][10, 0] == NA_SENTINEL
    assert stan_data["daily_cases"].dtype == np.int64
    # The bundle itself is untouched
    assert np.isnan(bundle.daily_cases[10, 0])


def test_sentinel_in_raw_data_raises(example):
    cases = EXAMPLE_CASES.copy()
    cases[5] = NA_SENTINEL
    with pytest.raises(SentinelCollisionError):
        build_config_bundle(cases, samp_frac_fixed=example["s1"])
    with_na = cases.astype(float)
    with_na[0] = np.nan
    with pytest.raises(SentinelCollisionError):
        build_config_bundle(with_na, samp_frac_fixed=example["s1"])


def test_invalid_beta_priors_raise(example):
    with pytest.raises(InvalidPriorError, match="f_prior"):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"], f_prior=(0.4, 0.6))
    with pytest.raises(InvalidPriorError, match="e_prior"):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"], e_prior=(1.2, 0.05))
    with pytest.raises(InvalidPriorError, match="samp_frac_prior"):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"],
                            samp_frac_type="estimated", samp_frac_prior=(0.4, 0.9))
    # Never converted when the sample fraction is fixed
    bundle = build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"],
                                 samp_frac_prior=(0.4, 0.9))
    np.testing.assert_allclose(bundle.samp_frac_prior, [1.0, 1.0])


def test_only_first_stream_may_be_estimated(example):
    daily_cases = example["daily_cases"]
    samp_frac = np.column_stack([example["s1"], example["s2"]])
    kwargs = dict(delay_scale=[9.8, 11.2], delay_shape=[1.7, 1.9])
    with pytest.raises(DimensionError, match="first data type"):
        build_config_bundle(daily_cases, samp_frac_fixed=samp_frac,
                            samp_frac_type="estimated",
                            samp_frac_prior=[[0.4, 0.1], [0.2, 0.05]], **kwargs)
    # The first column is ignored when estimated, the second must be fixed
    ignored_first = samp_frac.copy()
    ignored_first[:, 0] = np.nan
    bundle = build_config_bundle(daily_cases, samp_frac_fixed=ignored_first,
                                 samp_frac_type="estimated", **kwargs)
    assert bundle.n_samp_frac == 1
    bad_second = samp_frac.copy()
    bad_second[0, 1] = np.nan
    with pytest.raises(SeirInputError, match="columns 2 and above"):
        build_config_bundle(daily_cases, samp_frac_fixed=bad_second,
                            samp_frac_type="estimated", **kwargs)


def test_scalar_inputs_validated(example):
    s1 = example["s1"]
    with pytest.raises(SeirInputError):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=s1, obs_model="NB1")
    with pytest.raises(SeirInputError):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=s1, samp_frac_type="linear")
    with pytest.raises(SeirInputError):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=s1, time_increment=0)
    with pytest.raises(SeirInputError):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=s1, days_back=0)
    with pytest.raises(SeirInputError):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=s1, forecast_days=-1)
    with pytest.raises(InvalidPriorError):
        build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=s1, phi_prior=0)
    with pytest.raises(SeirInputError):
        build_config_bundle(EXAMPLE_CASES + 0.5, samp_frac_fixed=s1)


def test_poisson_has_no_dispersion_parameters(example):
    bundle = build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"],
                                 obs_model="Poisson")
    assert bundle.obs_model_code == 0
    assert bundle.est_phi == 0


def test_bundle_is_read_only(example):
    bundle = build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"])
    with pytest.raises(ValueError):
        bundle.daily_cases[0, 0] = 1
    with pytest.raises(ValueError):
        bundle.time[0] = 0.0
    with pytest.raises(AttributeError):
        bundle.last_day_obs = 10


def test_input_arrays_are_copied(example):
    cases = EXAMPLE_CASES.astype(float)
    bundle = build_config_bundle(cases, samp_frac_fixed=example["s1"])
    cases[0] = 1000
    assert bundle.daily_cases[0, 0] == 0


def test_stan_data_indices_are_one_based(example):
    bundle = build_config_bundle(EXAMPLE_CASES, samp_frac_fixed=example["s1"])
    stan_data = bundle.to_stan_data()
    time = stan_data["time"]
    assert stan_data["T"] == len(time) == 289
    assert stan_data["t0"] == pytest.approx(-30.000001)
    assert stan_data["time_day_id"][0] == 125
    assert time[stan_data["time_day_id"][-1] - 1] == 42.0
    assert stan_data["time_day_id0"][0] == 1
    assert stan_data["N"] == 42
    assert stan_data["J"] == 1
    assert stan_data["S"] == 1
    assert stan_data["n_x_i"] == 44
    assert stan_data["n_x_r"] == 11
    assert stan_data["priors_only"] == 0
    np.testing.assert_allclose(stan_data["ode_control"], [1e-7, 1e-6, 1e6])


def test_assembly_is_deterministic(example):
    kwargs = dict(samp_frac_fixed=example["s1"], samp_frac_type="segmented",
                  samp_frac_seg=example["samp_frac_seg"], f_seg=example["f_seg"])
    first = build_config_bundle(EXAMPLE_CASES, **kwargs).to_stan_data()
    second = build_config_bundle(EXAMPLE_CASES, **kwargs).to_stan_data()
    assert first.keys() == second.keys()
    for key in first:
        a, b = np.asarray(first[key]), np.asarray(second[key])
        assert a.dtype == b.dtype, key
        np.testing.assert_array_equal(a, b, err_msg=key)


def test_series_input_keeps_name(example):
    bundle = build_config_bundle(pd.Series(EXAMPLE_CASES, name="reported"),
                                 samp_frac_fixed=example["s1"])
    assert bundle.stream_names == ("reported",)
