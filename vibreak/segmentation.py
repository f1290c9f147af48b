"""Multiple breakpoints in linear regression relationships

A segmentation strategy receives a design matrix and a dependant variable
without missing values and returns, for every number of breakpoints from
``0`` to ``max_breaks``, the minimal residual sum of squares of the
piecewise regression and the corresponding breakpoints. Selection of the
number of breakpoints (e.g. with BIC) is left to the caller.

Citations:

- Bai, J. and Perron, P., 2003. Computation and analysis of multiple
  structural change models. Journal of Applied Econometrics, 18(1), pp.1-22.

- Zeileis, A., Kleiber, C., Krämer, W. and Hornik, K., 2003. Testing and
  dating of structural changes in practice. Computational Statistics & Data
  Analysis, 44(1-2), pp.109-123.
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

import abc

import numpy as np
import numba


@numba.jit(nopython=True, cache=True)
def segment_rss(X, y, h):
    """Residual sum of squares of all segments of at least ``h`` observations

    Args:
        X ((M, N) np.ndarray): Matrix of independant variables
        y ((M,) np.ndarray): Dependant variable, no missing values
        h (int): Minimum segment size

    Returns:
        np.ndarray: (M, M) array; element ``[i, j]`` is the residual sum of
            squares of the OLS fit on observations ``i`` to ``j`` (inclusive),
            ``np.nan`` for segments shorter than ``h``
    """
    n, k = X.shape
    rss = np.full((n, n), np.nan)
    for i in range(n - h + 1):
        XtX = np.zeros((k, k))
        Xty = np.zeros(k)
        for j in range(i, n):
            XtX += np.outer(X[j], X[j])
            Xty += X[j] * y[j]
            if j - i + 1 >= h:
                beta = np.linalg.lstsq(XtX, Xty)[0]
                resid = y[i:j + 1] - np.dot(X[i:j + 1], beta)
                rss[i, j] = np.sum(resid ** 2)
    return rss


@numba.jit(nopython=True, cache=True)
def optimal_partitions(rss, h, max_breaks):
    """Optimal partitions by dynamic programming

    ``cost[m, j]`` is the minimal residual sum of squares of observations
    ``0`` to ``j`` split in ``m + 1`` segments; it is obtained from
    ``cost[m - 1, b] + rss[b + 1, j]`` minimized over the admissible last
    breakpoints ``b``

    Args:
        rss (np.ndarray): Segment residual sums of squares as returned by
            ``segment_rss``
        h (int): Minimum segment size
        max_breaks (int): Maximum number of breakpoints

    Returns:
        tuple: Residual sum of squares (``max_breaks + 1``,) and breakpoints
            (``max_breaks + 1``, ``max_breaks``) for every number of
            breakpoints. A breakpoint is the index of the last observation of
            a segment. Rows are padded with ``-1``
    """
    n = rss.shape[0]
    cost = np.full((max_breaks + 1, n), np.inf)
    last = np.full((max_breaks + 1, n), -1, dtype=np.int64)
    for j in range(h - 1, n):
        cost[0, j] = rss[0, j]
    for m in range(1, max_breaks + 1):
        for j in range((m + 1) * h - 1, n):
            for b in range(m * h - 1, j - h + 1):
                candidate = cost[m - 1, b] + rss[b + 1, j]
                if candidate < cost[m, j]:
                    cost[m, j] = candidate
                    last[m, j] = b
    breakpoints = np.full((max_breaks + 1, max_breaks), -1, dtype=np.int64)
    for m in range(1, max_breaks + 1):
        j = n - 1
        for mm in range(m, 0, -1):
            j = last[mm, j]
            breakpoints[m, mm - 1] = j
    return cost[:, n - 1].copy(), breakpoints


@numba.jit(nopython=True, cache=True)
def greedy_partitions(rss, h, max_breaks):
    """Partitions by binary segmentation

    At each iteration the split of an existing segment yielding the largest
    reduction of residual sum of squares is retained

    Args:
        rss (np.ndarray): Segment residual sums of squares as returned by
            ``segment_rss``
        h (int): Minimum segment size
        max_breaks (int): Maximum number of breakpoints

    Returns:
        tuple: Same as ``optimal_partitions``. Breakpoint counts that cannot
            be reached have an infinite residual sum of squares
    """
    n = rss.shape[0]
    total = np.full(max_breaks + 1, np.inf)
    breakpoints = np.full((max_breaks + 1, max_breaks), -1, dtype=np.int64)
    total[0] = rss[0, n - 1]
    found = np.full(max_breaks, -1, dtype=np.int64)
    for m in range(1, max_breaks + 1):
        ends = np.sort(found[:m - 1])
        best_gain = -np.inf
        best_b = -1
        start = 0
        for s in range(m):
            end = ends[s] if s < m - 1 else n - 1
            for b in range(start + h - 1, end - h + 1):
                gain = rss[start, end] - rss[start, b] - rss[b + 1, end]
                if gain > best_gain:
                    best_gain = gain
                    best_b = b
            start = end + 1
        if best_b < 0:
            break
        found[m - 1] = best_b
        total[m] = total[m - 1] - best_gain
        breakpoints[m, :m] = np.sort(found[:m])
    return total, breakpoints


@numba.jit(nopython=True, cache=True)
def partitions(rss, h, max_breaks, greedy=False):
    """Dispatch to ``greedy_partitions`` or ``optimal_partitions``"""
    if greedy:
        return greedy_partitions(rss, h, max_breaks)
    return optimal_partitions(rss, h, max_breaks)


class SegmentationStrategy(metaclass=abc.ABCMeta):
    """Abstract class for breakpoints search strategies

    Every strategy must implement ``fit()``, which returns the residual sum
    of squares and breakpoints for every number of breakpoints between ``0``
    and ``max_breaks``. Breakpoint counts that cannot be reached are reported
    with an infinite residual sum of squares

    Strategies with a compiled counterpart in ``partitions`` set ``greedy``
    to a boolean; raster classes then process pixels in parallel. Other
    strategies leave it to ``None`` and are run pixel by pixel
    """
    greedy = None

    @abc.abstractmethod
    def fit(self, X, y, h, max_breaks):
        """Search breakpoints

        Args:
            X ((M, N) np.ndarray): Matrix of independant variables
            y ((M,) np.ndarray): Dependant variable, no missing values
            h (int): Minimum segment size
            max_breaks (int): Maximum number of breakpoints

        Returns:
            tuple: Residual sum of squares (``max_breaks + 1``,) and
                breakpoints (``max_breaks + 1``, ``max_breaks``) with the
                index of the last observation of every segment but the last,
                padded with ``-1``
        """
        pass

    def __repr__(self):
        return '%s()' % type(self).__name__

    def __eq__(self, other):
        return type(self) is type(other)


class DynamicProgramming(SegmentationStrategy):
    """Globally optimal breakpoints (Bai & Perron 2003)

    Equivalent to ``strucchange::breakpoints``
    """
    greedy = False

    def fit(self, X, y, h, max_breaks):
        return optimal_partitions(segment_rss(X, y, h), h, max_breaks)


class BinarySegmentation(SegmentationStrategy):
    """Greedy breakpoints search

    Faster to iterate than the dynamic programming approach but not
    guaranteed to find the optimal partition
    """
    greedy = True

    def fit(self, X, y, h, max_breaks):
        return greedy_partitions(segment_rss(X, y, h), h, max_breaks)
