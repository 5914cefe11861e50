"""
Tests for divergence measures and the profile distance provider.
"""

import math

import numpy as np
import pytest
from hypothesis import given, strategies as st

from sccs.divergence import (
    MAX_JSD,
    NO_OVERLAP_DIVERGENCE,
    DistanceProvider,
    ProfileDistanceProvider,
    get_divergence,
    jensen_shannon,
    lambda_divergence,
    relative_entropy,
)
from sccs.exceptions import EmptyInputError, InvalidParameterError
from sccs.profiles import profile


sequences = st.text(alphabet="ACGT", min_size=8, max_size=120)


class TestJensenShannon:
    """Test the Jensen-Shannon divergence."""

    @given(seq=sequences, word_size=st.integers(min_value=1, max_value=4))
    def test_self_divergence_is_zero(self, seq, word_size):
        p = profile(seq, word_size)
        assert jensen_shannon(p, p) == pytest.approx(0.0, abs=1e-12)

    @given(a=sequences, b=sequences)
    def test_symmetric_and_bounded(self, a, b):
        p, q = profile(a, 2), profile(b, 2)
        d1 = jensen_shannon(p, q)
        d2 = jensen_shannon(q, p)
        assert d1 == pytest.approx(d2, abs=1e-12)
        assert 0.0 <= d1 <= MAX_JSD

    def test_disjoint_support(self):
        assert jensen_shannon({"A": 1.0}, {"C": 1.0}) == MAX_JSD

    def test_known_value(self):
        # Half-overlapping distributions
        p = {"A": 0.5, "C": 0.5}
        q = {"A": 0.5, "G": 0.5}
        assert jensen_shannon(p, q) == pytest.approx(0.5)

    def test_empty_profile(self):
        with pytest.raises(EmptyInputError):
            jensen_shannon({}, {"A": 1.0})


class TestRelativeEntropy:
    """Test directional relative entropy and the lambda divergence."""

    def test_identical(self):
        p = {"A": 0.5, "C": 0.5}
        assert relative_entropy(p, p) == 0.0

    def test_known_value(self):
        p = {"A": 0.5, "C": 0.5}
        q = {"A": 0.25, "C": 0.75}
        expected = 0.5 * math.log2(2.0) + 0.5 * math.log2(0.5 / 0.75)
        assert relative_entropy(p, q) == pytest.approx(expected)

    def test_disjoint_support(self):
        assert relative_entropy({"A": 1.0}, {"C": 1.0}) == NO_OVERLAP_DIVERGENCE

    def test_non_negative_over_shared_support(self):
        p = {"A": 0.1, "C": 0.9}
        q = {"A": 0.9, "G": 0.1}
        assert relative_entropy(p, q) >= 0.0

    def test_lambda_finite_for_disjoint(self):
        assert lambda_divergence({"A": 1.0}, {"C": 1.0}) == pytest.approx(1.0)

    @pytest.mark.parametrize("lam", [0.0, -0.5, 1.5])
    def test_lambda_out_of_range(self, lam):
        with pytest.raises(InvalidParameterError):
            lambda_divergence({"A": 1.0}, {"A": 1.0}, lam=lam)


class TestGetDivergence:
    """Test divergence measure lookup."""

    def test_by_name(self):
        assert get_divergence("jsd") is jensen_shannon
        assert get_divergence("Jensen_Shannon") is jensen_shannon
        assert get_divergence("kl") is relative_entropy
        assert get_divergence("lambda") is lambda_divergence

    def test_default(self):
        assert get_divergence(None) is jensen_shannon

    def test_callable_passthrough(self):
        assert get_divergence(relative_entropy) is relative_entropy

    def test_unknown(self):
        with pytest.raises(InvalidParameterError, match="Unknown divergence measure"):
            get_divergence("euclid")


class TestProfileDistanceProvider:
    """Test the profile distance provider."""

    def setup_method(self):
        self.seqs = ["ACGTACGTAC", "ACGTACGTTT", "GGGGCCCCAA", "TTTTAAAAGG"]
        self.profiles = [profile(s, 2) for s in self.seqs]
        self.provider = ProfileDistanceProvider(self.profiles, num_workers=0)

    def test_is_distance_provider(self):
        assert isinstance(self.provider, DistanceProvider)

    def test_self_distance(self):
        assert self.provider.get_distance(1, 1) == 0.0

    def test_distance_cached_symmetrically(self):
        d = self.provider.get_distance(0, 2)
        assert self.provider.get_distance(2, 0) == d
        assert (0, 2) in self.provider._distance_cache

    def test_distances_from_sequence(self):
        distances = self.provider.get_distances_from_sequence(0, {1, 2})
        assert set(distances) == {1, 2}
        assert distances[1] == pytest.approx(jensen_shannon(self.profiles[0], self.profiles[1]))

    def test_build_distance_matrix(self):
        matrix = self.provider.build_distance_matrix()
        assert matrix.shape == (4, 4)
        assert np.allclose(matrix, matrix.T)
        assert np.all(np.diag(matrix) == 0.0)
        assert matrix[0, 3] == pytest.approx(jensen_shannon(self.profiles[0], self.profiles[3]))

    def test_single_profile_matrix(self):
        provider = ProfileDistanceProvider(self.profiles[:1], num_workers=0)
        assert provider.build_distance_matrix().shape == (1, 1)

    def test_named_measure(self):
        provider = ProfileDistanceProvider(self.profiles, measure="lambda", num_workers=0)
        assert provider.measure is lambda_divergence

    @given(n=st.integers(min_value=2, max_value=6))
    def test_matrix_matches_pairwise(self, n):
        rng = np.random.default_rng(n)
        seqs = ["".join(rng.choice(list("ACGT"), size=30)) for _ in range(n)]
        profiles = [profile(s, 3) for s in seqs]
        matrix = ProfileDistanceProvider(profiles, num_workers=0).build_distance_matrix()
        for i in range(n):
            for j in range(n):
                assert matrix[i, j] == pytest.approx(jensen_shannon(profiles[i], profiles[j]) if i != j else 0.0)
