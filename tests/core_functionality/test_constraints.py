import numpy as np
import pytest

from pydeconv.core_functionality.constraints import ConstraintEnforcer, Constraints


def test_clips_negatives_and_non_finite():
    x, valid = ConstraintEnforcer.apply(np.array([-1.0, np.nan, 2.0, np.inf, 2.0]))
    assert valid
    np.testing.assert_allclose(x, [0.0, 0.0, 0.5, 0.0, 0.5])


def test_renormalizes_to_one():
    x, valid = ConstraintEnforcer.apply(np.array([2.0, 3.0]))
    assert valid
    np.testing.assert_allclose(x, [0.4, 0.6])
    assert abs(x.sum() - 1.0) < 1e-12


def test_idempotent_on_valid_vectors():
    constraints = Constraints(min_fraction=0.05)
    rng = np.random.default_rng(3)
    for _ in range(20):
        once, valid = ConstraintEnforcer.apply(rng.uniform(-0.2, 1.0, size=6), constraints)
        if not valid:
            continue
        twice, valid_twice = ConstraintEnforcer.apply(once, constraints)
        assert valid_twice
        np.testing.assert_allclose(twice, once, atol=1e-12)


def test_min_fraction_zeroes_small_entries():
    x, valid = ConstraintEnforcer.apply(np.array([0.05, 0.45, 0.5]), Constraints(min_fraction=0.1))
    assert valid
    np.testing.assert_allclose(x, [0.0, 0.45 / 0.95, 0.5 / 0.95])


def test_threshold_repeats_after_renormalization():
    # [1, 1, 8] normalizes to [0.1, 0.1, 0.8], which falls under the threshold again
    x, valid = ConstraintEnforcer.apply(np.array([1.0, 1.0, 8.0]), Constraints(min_fraction=0.15))
    assert valid
    np.testing.assert_allclose(x, [0.0, 0.0, 1.0])


def test_all_zero_is_invalid():
    x, valid = ConstraintEnforcer.apply(np.zeros(3))
    assert not valid
    np.testing.assert_array_equal(x, np.zeros(3))


def test_everything_below_threshold_is_invalid():
    x, valid = ConstraintEnforcer.apply(np.array([0.01, 0.02]), Constraints(sum_to_one=False, min_fraction=0.5))
    assert not valid
    assert not np.isnan(x).any()


def test_without_sum_to_one_keeps_scale():
    x, valid = ConstraintEnforcer.apply(np.array([2.0, -3.0, 3.0]), Constraints(sum_to_one=False))
    assert valid
    np.testing.assert_allclose(x, [2.0, 0.0, 3.0])


def test_input_is_not_modified():
    raw = np.array([-1.0, 3.0])
    ConstraintEnforcer.apply(raw)
    np.testing.assert_array_equal(raw, [-1.0, 3.0])


@pytest.mark.parametrize("value", [-0.1, 1.0, 1.5])
def test_min_fraction_out_of_range(value):
    with pytest.raises(ValueError, match="min_fraction"):
        Constraints(min_fraction=value)
