"""Break detection on single time-series

``bfastmonitor`` fits a harmonic regression on a history period and
monitors the subsequent observations for a structural break. ``bfast0n``
searches a complete series for an unknown number of breaks. Both operate on
a ``vibreak.regularize.RegularSeries``.

Citations:

- Verbesselt, J., Zeileis, A. and Herold, M., 2012. Near real-time
  disturbance detection using satellite image time series. Remote Sensing
  of Environment, 123, pp.98-108.

- Verbesselt, J., Hyndman, R., Newnham, G. and Culvenor, D., 2010.
  Detecting trend and seasonal changes in satellite image time series.
  Remote Sensing of Environment, 114(1), pp.106-115.
"""
# Copyright (C) 2022 European Union (Joint Research Centre)
#
# Licensed under the EUPL, Version 1.2 or – as soon they will be approved by
# the European Commission - subsequent versions of the EUPL (the "Licence");
# You may not use this work except in compliance with the Licence.
# You may obtain a copy of the Licence at:
#
#   https://joinup.ec.europa.eu/software/page/eupl
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the Licence is distributed on an "AS IS" basis,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the Licence for the specific language governing permissions and
# limitations under the Licence.

import numpy as np
import pandas as pd

from vibreak.efp import cusum_ols_test_crit, cusum_rec_test_crit
from vibreak.errors import InsufficientDataError
from vibreak.fit_methods import monitor_cusum, ols, select_breaks
from vibreak.log import logger
from vibreak.regularize import RegularSeries
from vibreak.segmentation import DynamicProgramming
from vibreak.status import STATUS, BREAK, INSUFFICIENT_DATA
from vibreak.utils import build_regressors


class BfastMonitorResult:
    """Outcome of ``bfastmonitor``

    Attributes:
        breakpoint (float): Time of the break in fractional years, ``None``
            when no break was detected
        magnitude (float): Median of the monitoring residuals from the break
            onward (all monitoring residuals without break). Negative values
            indicate a decline compared to the model expectation. ``np.nan``
            when the monitoring period has no valid observation
        status (int): One of the codes of ``vibreak.status.STATUS``
        history (tuple): First and last time of the history period used for
            fitting
        monitor (tuple): First and last time of the monitoring period,
            ``None`` if the series ends before monitoring starts
        beta (numpy.ndarray): Regression coefficients
        sigma (float): Residual standard deviation of the history fit
        histsize (int): Number of observations used for fitting
        process (numpy.ndarray): OLS-CUSUM process at every valid monitoring
            observation (``np.nan`` elsewhere)
        boundary (numpy.ndarray): Boundary at every valid monitoring
            observation (``np.nan`` elsewhere)
        series (RegularSeries): The input series
        X (numpy.ndarray): Design matrix of the whole series
    """
    def __init__(self, series, X, status, breakpoint, magnitude, beta, sigma,
                 histsize, history, monitor, process, boundary):
        self.series = series
        self.X = X
        self.status = status
        self.breakpoint = breakpoint
        self.magnitude = magnitude
        self.beta = beta
        self.sigma = sigma
        self.histsize = histsize
        self.history = history
        self.monitor = monitor
        self.process = process
        self.boundary = boundary

    def __repr__(self):
        return ('BfastMonitorResult(breakpoint=%s, magnitude=%.4f, '
                'status=%r)' % (self.breakpoint, self.magnitude,
                                STATUS[self.status]))

    @property
    def is_break(self):
        return self.status == BREAK

    def predict(self):
        """Values expected by the history model over the whole series"""
        return np.dot(self.X, self.beta)

    def to_frame(self):
        """Observed and predicted values, process and boundary as a DataFrame

        The DataFrame is indexed by fractional years and is convenient for
        plotting
        """
        return pd.DataFrame({'observed': self.series.values,
                             'predicted': self.predict(),
                             'process': self.process,
                             'boundary': self.boundary},
                            index=self.series.time)


class Bfast0nResult:
    """Outcome of ``bfast0n``

    Attributes:
        breakpoints (numpy.ndarray): Times of the breaks in fractional years
            (possibly empty). A break is reported at the last observation of
            the segment preceding it
        positions (numpy.ndarray): Positions of the breaks in the series
        magnitudes (numpy.ndarray): Difference between the models after and
            before each break, evaluated at the first slot following it
        segments (list): Regression coefficients of every segment
        fitted (numpy.ndarray): Fitted piecewise model over the whole series
        rss (numpy.ndarray): Minimal residual sum of squares for ``0`` to
            ``max_breaks`` breaks
        bic (numpy.ndarray): BIC for ``0`` to ``max_breaks`` breaks
        h (int): Minimum segment size (number of valid observations)
        series (RegularSeries): The input series
    """
    def __init__(self, series, positions, segments, fitted, magnitudes, rss,
                 bic, h):
        self.series = series
        self.positions = positions
        self.breakpoints = series.time[positions]
        self.segments = segments
        self.fitted = fitted
        self.magnitudes = magnitudes
        self.rss = rss
        self.bic = bic
        self.h = h

    def __repr__(self):
        return 'Bfast0nResult(breakpoints=%s)' % np.round(self.breakpoints, 3)

    @property
    def n_breaks(self):
        return len(self.positions)

    def to_frame(self):
        return pd.DataFrame({'observed': self.series.values,
                             'fitted': self.fitted},
                            index=self.series.time)


def _check_series(series):
    if not isinstance(series, RegularSeries):
        raise TypeError('series must be a RegularSeries, see '
                        'vibreak.regularize.regularize()')


def bfastmonitor(series, start, harmonic_order=1, trend=True, level=0.05,
                 history='all', critval=None):
    """Monitor a time-series for a structural break

    A trend and harmonic regression is fitted by OLS on the valid
    observations of the history period. Monitoring residuals, standardized
    with the history residual standard deviation, are accumulated in an
    OLS-CUSUM process; the first observation for which the process exceeds
    the boundary is the break

    Args:
        series (RegularSeries): The time-series
        start: Start of the monitoring period. Fractional year, ``(year,
            slot)`` tuple or date-like
        harmonic_order (int): The harmonic order of the regression
        trend (bool): Whether to include a trend in the regression
        level (float): Significance level of the monitoring boundary (and of
            the stability test when ``history='ROC'``)
        history: History period used for fitting. ``'all'`` (everything
            before ``start``), ``'ROC'`` (stable period identified with
            Reverse Ordered Rec-CUSUM), ``'BP'`` (period following the last
            break found by ``bfast0n`` in the history) or the start of the
            history period (fractional year, tuple or date-like)
        critval (float): Critical value of the boundary. Computed from
            ``level`` when not provided

    Returns:
        BfastMonitorResult: The result of the monitoring

    Raises:
        InsufficientDataError: If the history period holds fewer than twice as
            many valid observations as regressors

    Examples:
        >>> from vibreak import data
        >>> from vibreak.regularize import regularize
        >>> from vibreak.bfast import bfastmonitor
        >>> dates = data.modis_dates(2005, 10)
        >>> values = data.make_ts(dates, break_idx=200, magnitude=-0.3)
        >>> result = bfastmonitor(regularize(values, dates), start=2012)
        >>> result.is_break
        True
    """
    _check_series(series)
    n_hist = series.locate(start)
    X = build_regressors(series.index, series.period, trend=trend,
                         harmonic_order=harmonic_order)
    y = np.ascontiguousarray(series.values)
    hist_start, roc = _history_start(series, n_hist, history,
                                     harmonic_order=harmonic_order,
                                     trend=trend)
    if critval is None:
        critval = cusum_ols_test_crit(level)
    crit_rec = cusum_rec_test_crit(level) if roc else 0.9478982340418134
    status, bp, magnitude, beta, sigma, histsize, process, boundary = \
        monitor_cusum(X, y, hist_start, n_hist, roc, level, crit_rec, critval)
    if status == INSUFFICIENT_DATA:
        raise InsufficientDataError('%d valid observations in the history '
                                    'period, at least %d required'
                                    % (histsize, 2 * X.shape[1]))
    valid_hist = hist_start + np.flatnonzero(np.isfinite(y[hist_start:n_hist]))
    history_ = (series.time[valid_hist[valid_hist.size - histsize]],
                series.time[n_hist - 1])
    monitor = None
    if n_hist < len(series):
        monitor = (series.time[n_hist], series.time[-1])
    breakpoint = series.time[bp] if bp >= 0 else None
    logger.debug('bfastmonitor: history %s, %d observations, sigma %.4f, '
                 'break %s', history_, histsize, sigma, breakpoint)
    return BfastMonitorResult(series=series, X=X, status=status,
                              breakpoint=breakpoint, magnitude=magnitude,
                              beta=beta, sigma=sigma, histsize=histsize,
                              history=history_, monitor=monitor,
                              process=process, boundary=boundary)


def _history_start(series, n_hist, history, **kwargs):
    """Resolve the history option of ``bfastmonitor``

    Returns:
        tuple: Position of the start of the history period and whether the
            Reverse Ordered Rec-CUSUM selection applies
    """
    if isinstance(history, str) and history.upper() in ('ALL', 'ROC', 'BP'):
        history = history.upper()
        if history == 'ALL':
            return 0, False
        if history == 'ROC':
            return 0, True
        if n_hist == 0:
            return 0, False
        bp_result = bfast0n(series[:n_hist], **kwargs)
        if bp_result.n_breaks:
            return int(bp_result.positions[-1]) + 1, False
        return 0, False
    return min(series.locate(history), n_hist), False


def bfast0n(series, harmonic_order=1, trend=True, h=0.15, max_breaks=None,
            strategy=None):
    """Search a time-series for an unknown number of breaks

    Missing observations are excluded. A segmentation strategy computes the
    optimal breakpoints for every number of breaks; the number of breaks
    minimizing the Bayesian Information Criterion is retained

    Args:
        series (RegularSeries): The time-series
        harmonic_order (int): The harmonic order of the regression
        trend (bool): Whether to include a trend in the regression
        h (float): Minimum segment size, as a fraction of the number of valid
            observations when smaller than 1, as a number of observations
            otherwise
        max_breaks (int): Maximum number of breaks. Defaults to the largest
            number of segments of size ``h`` that fit in the series, minus one
        strategy (vibreak.segmentation.SegmentationStrategy): The breakpoint
            search strategy. Defaults to ``DynamicProgramming()``

    Returns:
        Bfast0nResult: The breaks and the piecewise model

    Raises:
        InsufficientDataError: If the minimum segment size does not exceed the
            number of regressors
    """
    _check_series(series)
    if strategy is None:
        strategy = DynamicProgramming()
    X = build_regressors(series.index, series.period, trend=trend,
                         harmonic_order=harmonic_order)
    is_valid = np.isfinite(series.values)
    valid_idx = np.flatnonzero(is_valid)
    X_valid = np.ascontiguousarray(X[is_valid])
    y_valid = np.ascontiguousarray(series.values[is_valid])
    n, k = X_valid.shape
    h_abs = int(np.floor(h * n)) if h < 1 else int(h)
    if h_abs <= k or h_abs > n:
        raise InsufficientDataError('Minimum segment size (%d observations) '
                                    'must exceed the number of regressors '
                                    '(%d) and fit in the %d valid observations'
                                    % (h_abs, k, n))
    max_possible = n // h_abs - 1
    if max_breaks is None or max_breaks > max_possible:
        max_breaks = max_possible
    rss, breakpoints = strategy.fit(X_valid, y_valid, h_abs, max_breaks)
    rss, bic_, n_breaks = select_breaks(np.asarray(rss, dtype=np.float64),
                                        y_valid, k)
    n_breaks = int(n_breaks)
    bp_valid = breakpoints[n_breaks, :n_breaks]
    positions = valid_idx[bp_valid]
    logger.debug('bfast0n: %d breaks selected with %s, BIC %s', n_breaks,
                 strategy, np.round(bic_, 2))

    # Fit every segment and extend it over the missing slots it spans
    bounds = np.concatenate([[-1], bp_valid, [n - 1]])
    spans = np.concatenate([[-1], positions, [len(series) - 1]])
    segments = []
    fitted = np.full(len(series), np.nan)
    for idx in range(n_breaks + 1):
        seg = slice(bounds[idx] + 1, bounds[idx + 1] + 1)
        beta, _ = ols(X_valid[seg], y_valid[seg])
        segments.append(beta)
        span = slice(spans[idx] + 1, spans[idx + 1] + 1)
        fitted[span] = np.dot(X[span], beta)
    magnitudes = np.array([np.dot(X[pos + 1], segments[idx + 1] - segments[idx])
                           for idx, pos in enumerate(positions)])
    return Bfast0nResult(series=series, positions=positions, segments=segments,
                         fitted=fitted, magnitudes=magnitudes, rss=rss,
                         bic=bic_, h=h_abs)
