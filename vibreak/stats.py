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

import numba
import numpy as np


# Floor applied to residual scale estimates. Perfectly flat history periods
# otherwise lead to zero division when standardizing residuals
EPS = float(np.finfo(np.float32).eps)


@numba.jit(nopython=True, cache=True)
def erfcc(x):
    """Complementary error function."""
    z = np.abs(x)
    t = 1. / (1. + 0.5*z)
    r = t * np.exp(-z*z-1.26551223+t*(1.00002368+t*(.37409196+
        t*(.09678418+t*(-.18628806+t*(.27886807+
        t*(-1.13520398+t*(1.48851587+t*(-.82215223+
        t*.17087277)))))))))
    if x >= 0.:
        return r
    else:
        return 2. - r


@numba.jit(nopython=True, cache=True)
def ncdf(x):
    """Normal cumulative distribution function
    Source: Stackoverflow Unknown,
    https://stackoverflow.com/a/809402/12819237"""
    return 1. - 0.5*erfcc(x/(2**0.5))


@numba.jit(nopython=True, cache=True)
def bic(rss, n, k):
    """Bayesian information criterion of piecewise linear regressions

    Log-likelihood and degrees of freedom follow ``strucchange``: every
    segment carries ``k`` regression coefficients and its breakpoint (or the
    error variance for the first segment)

    Args:
        rss ((M,) np.ndarray): Residual sum of squares, one value per number of
            breakpoints (first value corresponds to no breakpoint)
        n (int): Number of observations used in the fits
        k (int): Number of regressors per segment

    Returns:
        numpy.ndarray: BIC values, same shape as ``rss``
    """
    n_breaks = np.arange(rss.size)
    df = (k + 1) * (n_breaks + 1)
    log_lik = -0.5 * n * (np.log(rss) + 1 - np.log(n) + np.log(2 * np.pi))
    return -2 * log_lik + np.log(n) * df
