"""Tests for the function registry and the covariance builders registered in it."""

import numpy as np
import pytest

from excess_engine.core import FunctionRegistry, InputValidationError
from excess_engine.models import COVARIANCE_REGISTRY, CorrelationModel
from excess_engine.models.covariance import correlated_covariance, independent_covariance, response_covariance


class TestFunctionRegistry:
    """Tests for FunctionRegistry."""

    def test_register_and_get(self):
        registry = FunctionRegistry("thing")
        registry.register("double", lambda x: 2 * x)
        assert registry.get("double")(3) == 6
        assert "double" in registry
        assert registry.keys() == ["double"]

    def test_unknown_key_lists_available(self):
        """Error message lists registered keys."""
        registry = FunctionRegistry("thing")
        registry.register("a", len)
        with pytest.raises(ValueError, match=r"Unknown thing 'b'. Available: \['a'\]"):
            registry.get("b")

    def test_register_non_callable_raises(self):
        registry = FunctionRegistry("thing")
        with pytest.raises(ValueError, match="must be callable"):
            registry.register("bad", "not a function")

    def test_register_decorator(self):
        registry = FunctionRegistry("thing")

        @registry.register_decorator("custom")
        def custom():
            return 1

        assert registry.get("custom") is custom


class TestCovarianceBuilders:
    """Tests for the registered observation covariance builders."""

    def test_builtin_models_registered(self):
        assert set(COVARIANCE_REGISTRY.keys()) >= {"independent", "correlated"}
        assert COVARIANCE_REGISTRY.get("independent") is independent_covariance

    def test_independent_is_diagonal(self):
        v = independent_covariance(np.array([10.0, 20.0]), 1.5)
        np.testing.assert_allclose(v, np.diag([15.0, 30.0]))

    def test_correlated_scales_toeplitz(self):
        """D^(1/2) R D^(1/2) keeps the independent diagonal."""
        model = CorrelationModel(
            order=1,
            ar=np.array([0.5]),
            sigma2=0.75,
            acovf=np.array([1.0, 0.5, 0.25]),
            aic=0.0,
            n_obs=100,
        )
        expected = np.array([4.0, 9.0, 16.0])

        v = correlated_covariance(expected, 1.0, model)

        np.testing.assert_allclose(np.diag(v), expected)
        assert v[0, 1] == pytest.approx(0.5 * 2.0 * 3.0)
        assert v[0, 2] == pytest.approx(0.25 * 2.0 * 4.0)

    def test_correlated_requires_model(self):
        with pytest.raises(InputValidationError):
            correlated_covariance(np.ones(3), 1.0, None)

    def test_response_covariance_rescales(self):
        """Count variance dispersion * expected maps to dispersion / expected."""
        expected = np.array([10.0, 50.0])
        v = response_covariance(independent_covariance(expected, 2.0), expected)
        np.testing.assert_allclose(np.diag(v), 2.0 / expected)
