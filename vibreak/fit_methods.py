"""Model fitting and monitoring kernels

Functions defined in this module operate on a design matrix (X) and one
(1D) or many (2D, one column per time-series) dependant variables containing
``np.nan`` for missing observations. They are jitted with numba and are
meant to be called by ``vibreak.bfast`` and the raster classes of
``vibreak.monitor``.
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
import numba

from vibreak.efp import history_roc, cusum_ols_boundary
from vibreak.segmentation import partitions, segment_rss
from vibreak.stats import EPS, bic
from vibreak.status import (NO_BREAK, NO_MONITORING_DATA, BREAK,
                            INSUFFICIENT_DATA)


@numba.jit(nopython=True, cache=True)
def ols(X, y):
    """Fit simple OLS model to a single time-series

    Missing and non finite observations are excluded from the fit

    Args:
        X ((M, N) np.ndarray): Matrix of independant variables
        y ((M,) np.ndarray): Dependant variable

    Returns:
        beta (numpy.ndarray): The array of regression estimators
        residuals (numpy.ndarray): Observed minus fitted values, ``np.nan``
            where y is missing or not finite
    """
    is_valid = np.isfinite(y)
    beta = np.linalg.lstsq(X[is_valid], y[is_valid])[0]
    residuals = np.where(is_valid, y - np.dot(X, beta), np.nan)
    return beta, residuals


@numba.jit(nopython=True, cache=True)
def monitor_cusum(X, y, hist_start, n_hist, roc=False, alpha=0.05,
                  crit_rec=0.9478982340418134, crit=2.795483):
    """Fit a model on the history period and monitor subsequent observations

    The model is fitted by OLS on the valid observations between
    ``hist_start`` and ``n_hist``, optionally shortened to its stable part
    (Reverse Ordered Rec-CUSUM). Residuals of the monitoring observations
    are standardized by the history residual standard deviation and
    accumulated in an OLS-CUSUM process. The first monitoring observation
    for which the process exceeds its boundary is the breakpoint

    Args:
        X ((M, N) np.ndarray): C-contiguous design matrix
        y ((M,) np.ndarray): C-contiguous dependant variable
        hist_start (int): Position of the first history observation
        n_hist (int): Position of the first monitoring observation
        roc (bool): Whether to restrict the history to its stable period
        alpha (float): Significance level of the Rec-CUSUM stability test
        crit_rec (float): Critical value of the Rec-CUSUM stability test
        crit (float): Critical value of the OLS-CUSUM monitoring boundary

    Returns:
        tuple: status code, breakpoint position (``-1`` when no break),
            magnitude (median of monitoring residuals from the breakpoint
            onward, or of all monitoring residuals), regression coefficients,
            residual standard deviation, number of observations used for
            fitting, process values and boundary values (both ``np.nan``
            outside of valid monitoring observations)
    """
    n, k = X.shape
    process = np.full(n, np.nan)
    boundary = np.full(n, np.nan)
    beta = np.full(k, np.nan)
    is_valid = np.isfinite(y[hist_start:n_hist])
    X_hist = np.ascontiguousarray(X[hist_start:n_hist][is_valid])
    y_hist = np.ascontiguousarray(y[hist_start:n_hist][is_valid])
    if roc and y_hist.size >= 2 * k:
        stable_idx = history_roc(X_hist, y_hist, alpha=alpha, crit=crit_rec)
        X_hist = np.ascontiguousarray(X_hist[stable_idx:])
        y_hist = np.ascontiguousarray(y_hist[stable_idx:])
    histsize = y_hist.size
    if histsize < 2 * k:
        return (INSUFFICIENT_DATA, -1, np.nan, beta, np.nan, histsize,
                process, boundary)

    beta = np.linalg.lstsq(X_hist, y_hist)[0]
    resid_hist = y_hist - np.dot(X_hist, beta)
    sigma = max(np.sqrt(np.sum(resid_hist ** 2) / (histsize - k)), EPS)
    scale = sigma * np.sqrt(histsize)
    # The process starts from the cumulated history residuals (~0 for OLS)
    cumsum = np.sum(resid_hist) / scale
    count = histsize
    bp = -1
    resid_mon = np.full(n - n_hist, np.nan)
    for idx in range(n_hist, n):
        if not np.isfinite(y[idx]):
            continue
        resid = y[idx] - np.dot(X[idx], beta)
        resid_mon[idx - n_hist] = resid
        count += 1
        cumsum += resid / scale
        process[idx] = cumsum
        boundary[idx] = cusum_ols_boundary(count / histsize, crit)
        if bp < 0 and np.abs(cumsum) > boundary[idx]:
            bp = idx

    if count == histsize:
        return (NO_MONITORING_DATA, -1, np.nan, beta, sigma, histsize,
                process, boundary)
    if bp >= 0:
        status = BREAK
        tail = resid_mon[bp - n_hist:]
    else:
        status = NO_BREAK
        tail = resid_mon
    magnitude = np.median(tail[~np.isnan(tail)])
    return status, bp, magnitude, beta, sigma, histsize, process, boundary


@numba.jit(nopython=True, cache=True, parallel=True)
def monitor_cusum_flat(X, y, hist_start, n_hist, roc=False, alpha=0.05,
                       crit_rec=0.9478982340418134, crit=2.795483):
    """Run ``monitor_cusum`` on every column of a 2D array

    Every time-series is processed independently; failures are reported
    through the returned status codes and do not interrupt the loop

    Note:
        For best performances of the multithreaded implementation, it is
        recommended to limit the number of threads used by MKL or OpenBLAS to 1.
        This avoids over-subscription, and improves performances.
        By default the function will use all cores available; the number of cores
        used can be controled using the ``numba.set_num_threads`` function or
        by modifying the ``NUMBA_NUM_THREADS`` environment variable

    Args:
        X ((M, N) np.ndarray): C-contiguous design matrix
        y ((M, K) np.ndarray): Matrix of dependant variables
        hist_start, n_hist, roc, alpha, crit_rec, crit: See ``monitor_cusum``

    Returns:
        tuple: status codes (K,), breakpoint positions (K,), magnitudes (K,),
            coefficients (N, K), residual standard deviations (K,) and
            history sizes (K,)
    """
    n_series = y.shape[1]
    status = np.zeros(n_series, dtype=np.uint8)
    bp = np.full(n_series, -1, dtype=np.int64)
    magnitude = np.full(n_series, np.nan)
    beta = np.full((X.shape[1], n_series), np.nan)
    sigma = np.full(n_series, np.nan)
    histsize = np.zeros(n_series, dtype=np.int64)
    for idx in numba.prange(n_series):
        y_sub = np.ascontiguousarray(y[:, idx])
        status_, bp_, magnitude_, beta_, sigma_, histsize_, _, _ = \
            monitor_cusum(X, y_sub, hist_start, n_hist, roc, alpha,
                          crit_rec, crit)
        status[idx] = status_
        bp[idx] = bp_
        magnitude[idx] = magnitude_
        beta[:, idx] = beta_
        sigma[idx] = sigma_
        histsize[idx] = histsize_
    return status, bp, magnitude, beta, sigma, histsize


@numba.jit(nopython=True, cache=True)
def select_breaks(rss, y, k):
    """Pick the number of breakpoints minimizing BIC

    Residual sums of squares are floored at rounding error level, noise free
    segments otherwise make BIC favour spurious breakpoints

    Args:
        rss (np.ndarray): Minimal residual sum of squares for ``0`` to
            ``max_breaks`` breakpoints
        y ((M,) np.ndarray): Dependant variable, no missing values
        k (int): Number of regressors per segment

    Returns:
        tuple: Floored residual sums of squares, BIC values and the selected
            number of breakpoints
    """
    rss = np.maximum(rss, EPS * max(np.dot(y, y), 1.))
    values = bic(rss, y.size, k)
    return rss, values, np.argmin(values)


@numba.jit(nopython=True, cache=True)
def segment_breaks(X, y, h, max_breaks=-1, greedy=False):
    """Breaks of a single time-series, their number being selected by BIC

    Non finite observations are excluded. Compiled counterpart of
    ``vibreak.bfast.bfast0n`` for the built-in segmentation strategies

    Args:
        X ((M, N) np.ndarray): Matrix of independant variables
        y ((M,) np.ndarray): Dependant variable
        h (float): Minimum segment size, as a fraction of the number of valid
            observations when smaller than 1, as a number of observations
            otherwise
        max_breaks (int): Maximum number of breakpoints, ``-1`` for as many
            as segments of size ``h`` allow
        greedy (bool): Binary segmentation instead of dynamic programming

    Returns:
        tuple: status code, number of breaks, position of the first break
            (``-1`` without break) and jump of the piecewise model across the
            break with the largest absolute jump (``np.nan`` without break)
    """
    k = X.shape[1]
    is_valid = np.isfinite(y)
    valid_idx = np.flatnonzero(is_valid)
    n = valid_idx.size
    if h < 1:
        h_abs = int(np.floor(h * n))
    else:
        h_abs = int(h)
    if h_abs <= k or h_abs > n:
        return INSUFFICIENT_DATA, 0, -1, np.nan
    X_valid = np.ascontiguousarray(X[is_valid])
    y_valid = np.ascontiguousarray(y[is_valid])
    m_max = n // h_abs - 1
    if 0 <= max_breaks < m_max:
        m_max = max_breaks
    rss, breakpoints = partitions(segment_rss(X_valid, y_valid, h_abs), h_abs,
                                  m_max, greedy)
    _, _, n_breaks = select_breaks(rss, y_valid, k)
    if n_breaks == 0:
        return NO_BREAK, 0, -1, np.nan
    bounds = np.full(n_breaks + 2, n - 1)
    bounds[0] = -1
    bounds[1:n_breaks + 1] = breakpoints[n_breaks, :n_breaks]
    beta_prev = ols(X_valid[:bounds[1] + 1], y_valid[:bounds[1] + 1])[0]
    magnitude = np.nan
    for idx in range(1, n_breaks + 1):
        seg_start, seg_end = bounds[idx] + 1, bounds[idx + 1] + 1
        beta = ols(X_valid[seg_start:seg_end], y_valid[seg_start:seg_end])[0]
        jump = np.dot(X[valid_idx[bounds[idx]] + 1], beta - beta_prev)
        if np.isnan(magnitude) or np.abs(jump) > np.abs(magnitude):
            magnitude = jump
        beta_prev = beta
    return BREAK, n_breaks, valid_idx[bounds[1]], magnitude


@numba.jit(nopython=True, cache=True, parallel=True)
def segment_breaks_flat(X, y, h, max_breaks=-1, greedy=False):
    """Run ``segment_breaks`` on every column of a 2D array

    Note:
        As for ``monitor_cusum_flat``, limiting the number of threads used by
        MKL or OpenBLAS to 1 avoids over-subscription

    Args:
        X ((M, N) np.ndarray): C-contiguous design matrix
        y ((M, K) np.ndarray): Matrix of dependant variables
        h, max_breaks, greedy: See ``segment_breaks``

    Returns:
        tuple: status codes (K,), numbers of breaks (K,), positions of the
            first break (K,) and magnitudes (K,)
    """
    n_series = y.shape[1]
    status = np.zeros(n_series, dtype=np.uint8)
    n_breaks = np.zeros(n_series, dtype=np.int64)
    bp = np.full(n_series, -1, dtype=np.int64)
    magnitude = np.full(n_series, np.nan)
    for idx in numba.prange(n_series):
        y_sub = np.ascontiguousarray(y[:, idx])
        status_, n_breaks_, bp_, magnitude_ = segment_breaks(X, y_sub, h,
                                                             max_breaks,
                                                             greedy)
        status[idx] = status_
        n_breaks[idx] = n_breaks_
        bp[idx] = bp_
        magnitude[idx] = magnitude_
    return status, n_breaks, bp, magnitude
