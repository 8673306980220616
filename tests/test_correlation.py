"""Tests for the correlation estimator."""

import numpy as np
import pytest

from conftest import ar1_noise, make_series
from excess_engine.core import FitTypeError, IdentifiabilityError, InputValidationError, NumericalInstabilityError
from excess_engine.models import fit_ar
from excess_engine.models.correlation import standardized_residuals


def _ar_series(phi=0.6, n=2000, seed=0, excluded=None):
    """Series whose standardized residuals are exactly an AR(1) path."""
    expected = np.full(n, 100.0)
    observed = expected + 10.0 * ar1_noise(n, phi, seed=seed)
    return make_series(observed, expected, dispersion=1.0, excluded=excluded)


class TestFitAr:
    """Tests for fit_ar()."""

    def test_standardized_residuals(self):
        """Residuals are scaled by sqrt(dispersion * expected)."""
        series = make_series([12.0, 8.0], [10.0, 10.0], dispersion=2.5)
        np.testing.assert_allclose(standardized_residuals(series, np.array([0, 1])), [2 / 5, -2 / 5])

    def test_recovers_ar1_coefficient(self):
        """An AR(1) path is identified with the right coefficient."""
        series = _ar_series(phi=0.6)

        model = fit_ar(series, series.dates, max_order=1, select_by_aic=False)

        assert model.order == 1
        assert model.ar[0] == pytest.approx(0.6, abs=0.05)
        assert model.sigma2 == pytest.approx(1.0, rel=0.1)
        assert model.n_obs == len(series)

    def test_aic_selection_keeps_leading_coefficient(self):
        """Whatever order AIC picks, the lag-1 coefficient of AR(1) data is recovered."""
        series = _ar_series(phi=0.6)

        model = fit_ar(series, series.dates, max_order=5, select_by_aic=True)

        assert 1 <= model.order <= 5
        assert len(model.ar) == model.order
        assert model.ar[0] == pytest.approx(0.6, abs=0.08)

    def test_fixed_order_without_selection(self):
        """Without selection the maximum order is used."""
        series = _ar_series()

        model = fit_ar(series, series.dates[:500], max_order=3, select_by_aic=False)

        assert model.order == 3
        assert len(model.ar) == 3

    def test_theoretical_autocovariance(self):
        """gamma(k) follows the AR(1) difference equation."""
        series = _ar_series(phi=0.6)

        model = fit_ar(series, series.dates, max_order=1, select_by_aic=False)

        phi = model.ar[0]
        assert len(model.acovf) == len(series)
        assert model.acovf[0] == pytest.approx(model.sigma2 / (1 - phi**2))
        np.testing.assert_allclose(model.autocorrelation(5), phi ** np.arange(5))

    def test_correlation_matrix_is_toeplitz(self):
        """The correlation matrix has unit diagonal and constant diagonals."""
        series = _ar_series()
        model = fit_ar(series, series.dates[:300], max_order=2)

        r = model.correlation_matrix(6)

        np.testing.assert_allclose(np.diag(r), 1.0)
        np.testing.assert_allclose(r, r.T)
        np.testing.assert_allclose(np.diag(r, 2), r[2, 0])
        assert np.linalg.eigvalsh(r).min() > 0

    def test_nlags_limits_correlation_matrix(self):
        """Requesting more lags than computed is an input error."""
        series = _ar_series(n=300)
        model = fit_ar(series, series.dates, max_order=1, nlags=10)

        assert model.max_lag == 10
        with pytest.raises(InputValidationError, match="refit with a larger nlags"):
            model.correlation_matrix(11)

    def test_too_few_control_dates_raises(self):
        """Fewer control points than the order is an identifiability error."""
        series = _ar_series(n=50)
        with pytest.raises(IdentifiabilityError, match="AR\\(5\\)"):
            fit_ar(series, series.dates[:5], max_order=5)

    def test_held_back_points_count_against_control_dates(self):
        """Between max_order + 1 and 2 * max_order points, every candidate order is rejected up front."""
        series = _ar_series(n=365)
        for n_control in (6, 7, 9, 10):
            for select_by_aic in (True, False):
                with pytest.raises(IdentifiabilityError, match="at least 11"):
                    fit_ar(series, series.dates[:n_control], max_order=5, select_by_aic=select_by_aic)

    def test_smallest_identifiable_control_window(self):
        """2 * max_order + 1 points fit: AR(1) on three residuals [1, 0.5, 0.5]."""
        residuals = np.array([1.0, 0.5, 0.5, 0.0, 0.0])
        series = make_series(100.0 + 10.0 * residuals, np.full(5, 100.0))

        model = fit_ar(series, series.dates[:3], max_order=1, select_by_aic=False)

        assert model.order == 1
        assert model.n_obs == 3
        # least squares of [0.5, 0.5] on [1, 0.5]
        assert model.ar[0] == pytest.approx(0.6)

    def test_estimation_failures_use_pipeline_errors(self, monkeypatch):
        """A statsmodels estimation error surfaces as an identifiability error of the correlation stage."""
        from excess_engine.models import correlation

        class FailingAutoReg:
            def __init__(self, *args, **kwargs):
                pass

            def fit(self):
                raise ValueError("The model specification cannot be estimated")

        monkeypatch.setattr(correlation, "AutoReg", FailingAutoReg)
        series = _ar_series(n=100)

        with pytest.raises(IdentifiabilityError, match=r"\[correlation\].*cannot be estimated"):
            fit_ar(series, series.dates, max_order=2)

    def test_non_contiguous_control_dates_raise(self):
        """Control dates with a hole are rejected."""
        series = _ar_series(n=100)
        control = series.dates[:20].append(series.dates[30:60])
        with pytest.raises(InputValidationError, match="contiguous"):
            fit_ar(series, control)

    def test_excluded_control_dates_raise(self):
        """Control dates must not overlap excluded dates."""
        excluded = np.zeros(100, dtype=bool)
        excluded[50:60] = True
        series = _ar_series(n=100, excluded=excluded)
        with pytest.raises(InputValidationError, match="excluded"):
            fit_ar(series, series.dates[40:80])

    def test_unknown_control_dates_raise(self):
        """Control dates outside the series are rejected."""
        series = _ar_series(n=100)
        with pytest.raises(InputValidationError, match="not present"):
            fit_ar(series, ["1999-01-01", "1999-01-02"])

    def test_explosive_process_raises(self):
        """A non-stationary estimate is surfaced, never corrected."""
        n = 200
        path = np.ones(n)
        rng = np.random.default_rng(5)
        for t in range(1, n):
            path[t] = 1.05 * path[t - 1] + rng.normal(scale=0.1)
        series = make_series(100.0 + 10.0 * path, np.full(n, 100.0))

        with pytest.raises(NumericalInstabilityError, match="not stationary"):
            fit_ar(series, series.dates, max_order=1, select_by_aic=False)

    def test_rejects_curve_fit(self, scenario_fit):
        """fit_ar needs a baseline result."""
        with pytest.raises(FitTypeError):
            fit_ar(scenario_fit, scenario_fit.dates)
