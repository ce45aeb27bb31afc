import pytest
from pathlib import Path
import numpy as np
import pandas as pd

from pydeconv.core_functionality.data_processing import DataProcessingTable, align_features
from pydeconv.core_functionality.exceptions import DataError


def create_table_file(path: Path, content: str):
    path.write_text(content)
    return path

def test_csv_loading(tmp_path):
    path = create_table_file(tmp_path / "reference.csv", "gene,B,T\ng1,1,0\ng2,0,2.5\ng3,3,1\n")

    table = DataProcessingTable(str(path))

    assert table.delimiter == ","
    assert table.frame.index.tolist() == ["g1", "g2", "g3"]
    assert table.frame.columns.tolist() == ["B", "T"]
    np.testing.assert_array_equal(table.frame.to_numpy(), [[1, 0], [0, 2.5], [3, 1]])

def test_tsv_detected_from_suffix(tmp_path):
    path = create_table_file(tmp_path / "mixture.tsv", "gene\tS1\tS2\ng1\t1\t2\ng2\t3\t4\n")

    table = DataProcessingTable(str(path))

    assert table.delimiter == "\t"
    assert table.frame.shape == (2, 2)

def test_delimiter_sniffed_from_content(tmp_path):
    path = create_table_file(tmp_path / "mixture.txt", "gene;S1;S2\ng1;1;2\ng2;3;4\n")

    table = DataProcessingTable(str(path))

    assert table.delimiter == ";"
    assert table.frame.loc["g2", "S2"] == 4.0

def test_explicit_delimiter_and_transpose(tmp_path):
    path = create_table_file(tmp_path / "truth.csv", "sample,B,T\nS1,0.25,0.75\nS2,0.5,0.5\n")

    table = DataProcessingTable(str(path), delimiter=",", transpose=True)

    assert table.frame.index.tolist() == ["B", "T"]
    assert table.frame.columns.tolist() == ["S1", "S2"]

def test_numeric_labels_become_strings(tmp_path):
    path = create_table_file(tmp_path / "numeric.csv", "id,1,2\n10,1,2\n20,3,4\n")

    table = DataProcessingTable(str(path))

    assert table.frame.index.tolist() == ["10", "20"]
    assert table.frame.columns.tolist() == ["1", "2"]

def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        DataProcessingTable(str(tmp_path / "missing.csv"))

def test_non_numeric_value_raises(tmp_path):
    path = create_table_file(tmp_path / "bad.csv", "gene,B,T\ng1,1,x\ng2,0,2\n")

    with pytest.raises(DataError, match="non-numeric"):
        DataProcessingTable(str(path))

def test_missing_value_raises(tmp_path):
    path = create_table_file(tmp_path / "gap.csv", "gene,B,T\ng1,1,\ng2,0,2\n")

    with pytest.raises(DataError, match="missing values"):
        DataProcessingTable(str(path))

def test_header_only_raises(tmp_path):
    path = create_table_file(tmp_path / "empty.csv", "gene,B,T\n")

    with pytest.raises(DataError, match="no data"):
        DataProcessingTable(str(path))

def test_frame_is_a_copy(tmp_path):
    path = create_table_file(tmp_path / "reference.csv", "gene,B\ng1,1\n")
    table = DataProcessingTable(str(path))

    table.frame.iloc[0, 0] = 99.0

    assert table.frame.iloc[0, 0] == 1.0

def test_align_features_keeps_reference_order():
    reference = pd.DataFrame([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]], index=["g3", "g1", "g2"], columns=["B", "T"])
    mixture = pd.DataFrame([[1.0], [2.0], [4.0]], index=["g1", "g2", "g9"], columns=["S1"])

    ref, mix = align_features(reference, mixture)

    assert ref.features == ["g1", "g2"]
    assert mix.features == ["g1", "g2"]
    np.testing.assert_array_equal(mix.values[:, 0], [1.0, 2.0])
    assert ref.cell_types == ["B", "T"]

def test_align_features_without_overlap():
    reference = pd.DataFrame([[1.0]], index=["g1"], columns=["B"])
    mixture = pd.DataFrame([[1.0]], index=["g2"], columns=["S1"])

    with pytest.raises(DataError):
        align_features(reference, mixture)
