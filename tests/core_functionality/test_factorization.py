import numpy as np
import pytest

from pydeconv.core_functionality.factorization import joint_factorization
from pydeconv.core_functionality.linear_solver import FallbackTier
from pydeconv.core_functionality.matrices import MixtureMatrix, ReferenceMatrix


@pytest.fixture
def simulated():
    rng = np.random.default_rng(5)
    signatures = rng.uniform(0.0, 10.0, size=(200, 4))
    signatures[rng.choice(200, size=60, replace=False), :] *= rng.uniform(0.0, 0.2, size=(60, 4))
    truth = rng.dirichlet(np.ones(4), size=20).T
    reference = ReferenceMatrix(signatures, cell_types=["B", "T", "NK", "Mono"])
    mixture = MixtureMatrix(signatures @ truth)
    return reference, mixture, truth


def test_recovers_simulated_proportions(simulated):
    reference, mixture, truth = simulated
    fit = joint_factorization(reference, mixture)
    estimated = np.column_stack([r.coefficients for r in fit.results])
    assert all(r.valid for r in fit.results)
    np.testing.assert_allclose(estimated.sum(axis=0), 1.0)
    assert np.corrcoef(estimated.ravel(), truth.ravel())[0, 1] >= 0.9
    assert {r.diagnostic.method for r in fit.results} == {"nmf"}


def test_profiles_keep_reference_labels(simulated):
    reference, mixture, _ = simulated
    fit = joint_factorization(reference, mixture, max_iter=50)
    assert fit.profiles.shape == reference.shape
    assert fit.profiles.columns.tolist() == reference.cell_types
    assert fit.profiles.index.tolist() == reference.features
    assert fit.n_iter >= 1
    assert fit.reconstruction_err >= 0.0


def test_zero_sample_is_skipped(simulated):
    reference, mixture, _ = simulated
    values = mixture.to_frame()
    values.iloc[:, 3] = 0.0
    fit = joint_factorization(reference, MixtureMatrix(values))
    skipped = fit.results[3]
    assert skipped.diagnostic.skipped
    assert skipped.diagnostic.tier is FallbackTier.SKIPPED
    assert not skipped.valid
    assert np.all(skipped.coefficients == 0.0)
    assert fit.results[2].valid


def test_negative_mixture_rejected(simulated):
    reference, mixture, _ = simulated
    values = mixture.to_frame()
    values.iloc[0, 0] = -1.0
    with pytest.raises(ValueError):
        joint_factorization(reference, MixtureMatrix(values))
