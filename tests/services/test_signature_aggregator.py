"""Tests for signature aggregation."""
import numpy as np
import pytest

from rollcall.core.exceptions import LowQualityError
from rollcall.services.signature_aggregator import SignatureAggregator


@pytest.fixture
def aggregator() -> SignatureAggregator:
    return SignatureAggregator(min_images=5, consistency_floor=0.4)


def random_unit(seed: int, dim: int = 64) -> np.ndarray:
    vector = np.random.default_rng(seed).standard_normal(dim)
    return vector / np.linalg.norm(vector)


class TestSignatureAggregator:

    def test_identical_embeddings_round_trip(self, aggregator):
        v = random_unit(1)
        signature = aggregator.aggregate("s-1", [v.copy() for _ in range(5)])

        assert np.allclose(signature.embedding, v, atol=1e-6)
        assert signature.consistency_score == pytest.approx(1.0)
        assert signature.image_count == 5
        assert signature.student_id == "s-1"

    def test_negated_embedding_is_low_quality(self, aggregator):
        v = random_unit(2)
        embeddings = [v, v, v, v, -v]

        with pytest.raises(LowQualityError) as exc_info:
            aggregator.aggregate("s-1", embeddings)
        assert exc_info.value.details["consistency_score"] == pytest.approx(-1.0)

    def test_signature_is_normalized_centroid(self, aggregator):
        base = random_unit(3)
        noisy = [base + 0.05 * random_unit(10 + i) for i in range(6)]

        signature = aggregator.aggregate("s-1", noisy)

        normalized = [n / np.linalg.norm(n) for n in noisy]
        expected = np.mean(normalized, axis=0)
        expected /= np.linalg.norm(expected)
        assert np.linalg.norm(signature.embedding) == pytest.approx(1.0, abs=1e-6)
        assert np.allclose(signature.embedding, expected, atol=1e-6)
        assert 0.4 <= signature.consistency_score <= 1.0

    def test_too_few_usable_embeddings(self, aggregator):
        embeddings = [random_unit(4)] * 4 + [np.zeros(64)]
        with pytest.raises(LowQualityError) as exc_info:
            aggregator.aggregate("s-1", embeddings)
        assert exc_info.value.details == {"usable_images": 4, "required_images": 5}

    def test_single_embedding_branch(self, aggregator):
        v = random_unit(5)
        signature = aggregator.aggregate("s-1", [v * 3.0], min_images=1)

        assert signature.image_count == 1
        assert signature.consistency_score == 1.0
        assert np.allclose(signature.embedding, v, atol=1e-6)

    def test_single_embedding_still_needs_override(self, aggregator):
        with pytest.raises(LowQualityError):
            aggregator.aggregate("s-1", [random_unit(6)])

    def test_mismatched_dimensions(self, aggregator):
        embeddings = [random_unit(7, dim=64)] * 4 + [random_unit(8, dim=32)]
        with pytest.raises(LowQualityError, match="dimensions"):
            aggregator.aggregate("s-1", embeddings)

    def test_consistency_is_min_pairwise_cosine(self):
        matrix = np.array([[1.0, 0.0], [0.0, 1.0], [np.sqrt(0.5), np.sqrt(0.5)]])
        assert SignatureAggregator.consistency(matrix) == pytest.approx(0.0, abs=1e-9)
        assert SignatureAggregator.consistency(matrix[:1]) == 1.0
