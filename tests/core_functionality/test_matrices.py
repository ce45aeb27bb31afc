import numpy as np
import pandas as pd
import pytest

from pydeconv.core_functionality.matrices import MixtureMatrix, ProportionsMatrix, ReferenceMatrix
from pydeconv.core_functionality.exceptions import DataError, DimensionMismatchError


@pytest.fixture
def reference_frame():
    return pd.DataFrame(
        [[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]],
        index=["g1", "g2", "g3"],
        columns=["B", "T"],
    )


def test_reference_labels_and_shape(reference_frame):
    ref = ReferenceMatrix(reference_frame)
    assert ref.features == ["g1", "g2", "g3"]
    assert ref.cell_types == ["B", "T"]
    assert ref.n_features == 3
    assert ref.n_cell_types == 2
    assert ref.shape == (3, 2)
    assert not ref.is_empty()


def test_reference_is_a_snapshot(reference_frame):
    ref = ReferenceMatrix(reference_frame)
    reference_frame.iloc[0, 0] = 100.0
    assert ref.values[0, 0] == 1.0
    with pytest.raises(ValueError):
        ref.values[0, 0] = 5.0


def test_reference_from_array_gets_default_labels():
    ref = ReferenceMatrix(np.ones((2, 3)))
    assert ref.features == ["feature_0", "feature_1"]
    assert ref.cell_types == ["cell_type_0", "cell_type_1", "cell_type_2"]


def test_reference_nonzero_cell_types(reference_frame):
    frame = reference_frame.copy()
    frame["NK"] = 0.0
    ref = ReferenceMatrix(frame)
    np.testing.assert_array_equal(ref.nonzero_cell_types(), [True, True, False])


def test_duplicate_features_rejected():
    frame = pd.DataFrame([[1.0], [2.0]], index=["g1", "g1"], columns=["B"])
    with pytest.raises(DataError, match="duplicated feature"):
        ReferenceMatrix(frame)


def test_duplicate_columns_rejected():
    frame = pd.DataFrame([[1.0, 2.0]], index=["g1"], columns=["S", "S"])
    with pytest.raises(DataError, match="duplicated column"):
        MixtureMatrix(frame)


def test_non_finite_rejected():
    with pytest.raises(DataError, match="NaN or infinite"):
        MixtureMatrix(np.array([[1.0, np.nan]]))


def test_non_numeric_rejected():
    frame = pd.DataFrame([["a", 1.0]], index=["g1"], columns=["S1", "S2"])
    with pytest.raises(DataError, match="non-numeric"):
        MixtureMatrix(frame)


def test_empty_reference():
    ref = ReferenceMatrix(np.zeros((0, 3)))
    assert ref.is_empty()
    assert not ref.nonzero_cell_types().any()


def test_mixture_zero_samples():
    mix = MixtureMatrix(np.array([[1.0, 0.0, 2.0], [3.0, 0.0, 0.0]]), samples=["a", "b", "c"])
    assert mix.samples == ["a", "b", "c"]
    assert mix.n_samples == 3
    np.testing.assert_array_equal(mix.zero_samples(), [False, True, False])
    np.testing.assert_array_equal(mix.column(2), [2.0, 0.0])

# ============== ProportionsMatrix ==============

def test_proportions_orientation_and_reconstruction(reference_frame):
    ref = ReferenceMatrix(reference_frame)
    props = ProportionsMatrix(np.array([[0.4, 1.0], [0.6, 0.0]]), ["B", "T"], ["s1", "s2"])
    frame = props.to_frame()
    assert list(frame.index) == ["s1", "s2"]
    assert list(frame.columns) == ["B", "T"]
    np.testing.assert_allclose(frame.loc["s1"].to_numpy(), [0.4, 0.6])
    np.testing.assert_allclose(props.sample("s1"), [0.4, 0.6])
    np.testing.assert_allclose(props.reconstruct(ref)[:, 0], [0.4, 0.6, 1.0])
    assert props.n_valid == 2


def test_proportions_shape_mismatch():
    with pytest.raises(DimensionMismatchError):
        ProportionsMatrix(np.zeros((2, 3)), ["B", "T"], ["s1", "s2"])


def test_proportions_valid_mask_length():
    with pytest.raises(DimensionMismatchError):
        ProportionsMatrix(np.zeros((2, 2)), ["B", "T"], ["s1", "s2"], valid=[True])


def test_proportions_from_columns():
    props = ProportionsMatrix.from_columns(
        [np.array([1.0, 0.0]), np.array([0.0, 0.0])],
        [True, False],
        ["B", "T"],
        ["s1", "s2"],
    )
    assert props.values.shape == (2, 2)
    np.testing.assert_array_equal(props.valid, [True, False])
    assert props.n_valid == 1
    with pytest.raises(ValueError):
        props.values[0, 0] = 0.5


def test_reconstruct_rejects_wrong_reference():
    props = ProportionsMatrix(np.ones((3, 1)) / 3, ["a", "b", "c"], ["s1"])
    with pytest.raises(DimensionMismatchError):
        props.reconstruct(ReferenceMatrix(np.ones((4, 2))))
