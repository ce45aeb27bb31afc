import pytest

from pydeconv.core_functionality.parallel import map_samples


def test_sequential_order():
    assert map_samples(lambda i: i * i, 5) == [0, 1, 4, 9, 16]


def test_threaded_order_is_preserved():
    assert map_samples(lambda i: i * 10, 20, n_jobs=2) == [i * 10 for i in range(20)]


def test_no_items():
    assert map_samples(lambda i: i, 0, n_jobs=4) == []


def test_zero_jobs_rejected():
    with pytest.raises(ValueError):
        map_samples(lambda i: i, 3, n_jobs=0)
