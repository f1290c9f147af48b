"""Empirical fluctuation processes

Functions defined in this module compute OLS-CUSUM monitoring boundaries
and the Reverse Ordered Rec-CUSUM test used to select a stable history
period, as implemented in the R packages strucchange and bfast. The
Rec-CUSUM functions follow Chris Holden's pybreakpoints package.
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
from scipy import optimize
from scipy.stats import norm

from vibreak.stats import ncdf


def cusum_ols_test_crit(alpha=0.05):
    """Critical value of the OLS-CUSUM monitoring boundary

    Solves ``2 * (Phi(c) - c * phi(c)) = 2 - alpha`` for ``c``, which is the
    critical value ``strucchange`` uses for ``mefp`` objects of type
    ``'OLS-CUSUM'`` with the default boundary

    Args:
        alpha (float): Significance level (probability of type I error)

    Returns:
        float: The critical value
    """
    if not 0 < alpha < 1:
        raise ValueError("'alpha' must be in ]0, 1[")

    def excess(c):
        return 2 * (norm.cdf(c) - c * norm.pdf(c)) + alpha - 2
    return optimize.brentq(excess, 1e-3, 10)


def cusum_rec_test_crit(alpha=0.05):
    """Critical value of the Rec-CUSUM boundary for some alpha"""
    if not 0 < alpha < 1:
        raise ValueError("'alpha' must be in ]0, 1[")
    return optimize.brentq(lambda c: _brownian_motion_pvalue(c, 1) - alpha,
                           0, 20)


@numba.jit(nopython=True, cache=True)
def cusum_ols_boundary(x, crit):
    """OLS-CUSUM monitoring boundary

    Args:
        x (float): Ratio between the number of observations processed so far
            (history and monitoring) and the number of history observations.
            Must be strictly greater than 1
        crit (float): Critical value as computed by ``cusum_ols_test_crit``

    Returns:
        float: The boundary value
    """
    return np.sqrt(x * (x - 1) * (crit**2 + np.log(x / (x - 1))))


@numba.jit(nopython=True, cache=True)
def history_roc(X, y, alpha=0.05, crit=0.9478982340418134):
    """Reverse Ordered Rec-CUSUM check for stable periods

    The Rec-CUSUM process is computed on the time reversed history. When the
    test rejects stability, the stable history starts right after the
    (original order) observation at which the process first leaves its
    boundary

    Args:
        X ((M, N) np.ndarray): Matrix of independant variables, no missing
            observation
        y ((M,) np.ndarray): Dependant variable, no missing observation
        alpha (float): Significance level of the stability test
        crit (float): Critical value of the boundary for ``alpha``, see
            ``cusum_rec_test_crit``. Default is the value for alpha=0.05

    Returns:
        int: Index of the first observation of the stable period (``0``
            when the whole history is stable)
    """
    process = rec_cusum_process(np.ascontiguousarray(X[::-1]),
                                np.ascontiguousarray(y[::-1]))
    size = process.size
    # Standardized by the boundary shape (1 + 2t)
    t = np.arange(1, size) / (size - 1)
    stat = np.max(np.abs(process[1:]) / (1 + 2 * t))
    if _brownian_motion_pvalue(stat, 1) >= alpha:
        return 0
    for idx in range(1, size):
        if np.abs(process[idx]) > crit * (1 + 2 * t[idx - 1]):
            return size - idx
    return 0


@numba.jit(nopython=True, cache=True)
def _brownian_motion_pvalue(x, k):
    """p-value of the supremum of a standard Brownian motion, approximation
    used by ``strucchange::pvalue.efp``"""
    if x < 0.3:
        p = 1 - 0.1464 * x
    else:
        p = 2 * (1 - ncdf(3 * x)
                 + np.exp(-4 * x**2) * (ncdf(x) + ncdf(5 * x) - 1)
                 - np.exp(-16 * x**2) * (1 - ncdf(x)))
    return 1 - (1 - p)**k


@numba.jit(nopython=True, cache=True)
def rec_cusum_process(X, y):
    """Rec-CUSUM empirical fluctuation process

    Cumulative sum of the recursive residuals, scaled by their standard
    deviation and the square root of their number. The process starts at
    ``0`` and has ``M - N + 1`` elements
    """
    n, k = X.shape
    w = recresid(X, y, k)[k:]
    sd = np.sqrt(np.sum((w - w.mean())**2) / (w.size - 1))
    process = np.zeros(w.size + 1)
    process[1:] = np.cumsum(w) / (sd * np.sqrt(n - k))
    return process


@numba.jit(nopython=True, cache=True)
def recresid(X, y, span):
    """Standardized recursive residuals of y ~ X

    The residual at position ``r`` is the prediction error for ``y[r]`` of
    a regression fitted on the ``r`` previous observations, scaled so that
    residuals are N(0, sigma) distributed (Brown, Durbin & Evans 1975).
    The inverse cross-product matrix is updated with the Sherman-Morrison
    formula instead of being recomputed at every step

    Args:
        X ((M, N) np.ndarray): Matrix of independant variables
        y ((M,) np.ndarray): Dependant variable
        span (int): Number of observations used for the initial regression

    Returns:
        np.ndarray: Recursive residuals, ``np.nan`` for the first
            ``span - 1`` positions

    See Also:
        statsmodels.stats.diagnostic.recursive_olsresiduals
    """
    n = X.shape[0]
    out = np.full(n, np.nan)
    X0 = X[:span]
    P = np.linalg.inv(np.dot(X0.T, X0))
    beta = np.dot(P, np.dot(X0.T, y[:span]))
    x = X[span - 1]
    out[span - 1] = ((y[span - 1] - np.dot(x, beta))
                     / np.sqrt(1 + np.dot(x, np.dot(P, x))))
    for r in range(span, n):
        x = X[r]
        Px = np.dot(P, x)
        f = 1 + np.dot(x, Px)
        err = y[r] - np.dot(x, beta)
        out[r] = err / np.sqrt(f)
        P = P - np.outer(Px, Px) / f
        beta = beta + Px * err / f
    return out
