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

from vibreak.monitor import BaseMonitor
from vibreak.efp import cusum_ols_test_crit, cusum_rec_test_crit
from vibreak.fit_methods import monitor_cusum_flat
from vibreak.log import logger
from vibreak.utils import build_regressors


class BfastMonitor(BaseMonitor):
    """Break detection with the BFAST Monitor approach

    A harmonic regression is fitted on the history period of every pixel and
    the monitoring period is screened for a structural break with an
    OLS-CUSUM process, as implemented in the R package bfast. Unlike most
    near real time approaches, history and monitoring data are provided at
    once to ``fit()``

    Attributes:
        mask (numpy.ndarray): A 2D numpy array with the status code of every
            pixel. ``{0: 'Not monitored', 1: 'No break',
            2: 'No monitoring observations', 3: 'Break detected',
            4: 'Not enough observations'}``
        trend (bool): Indicate whether the regression includes a trend
        harmonic_order (int): The harmonic order of the time-series regression
        level (float): Significance level of the monitoring boundary
        history (str, float or tuple): History period selection. See ``fit()``
        critval (float): Critical value of the monitoring boundary
        start (float): Start of the monitoring period in fractional years
        beta (numpy.ndarray): 3D array of regression coefficients
        sigma (numpy.ndarray): Residual standard deviation of the history fit
        histsize (numpy.ndarray): Number of observations used for fitting
        breakpoint (numpy.ndarray): Time of the break in fractional years,
            ``np.nan`` when no break is detected
        magnitude (numpy.ndarray): Median of the monitoring residuals from the
            break onward (all monitoring residuals without break)
        x (numpy.ndarray): array of x coordinates
        y (numpy.ndarray): array of y coordinates

    Args:
        mask (numpy.ndarray): A 2D numpy array containing pixels that should be
            monitored marked as ``1`` and pixels that should be excluded (marked
            as ``0``). If no mask is supplied all pixels are considered
        trend (bool): Indicate whether the regression includes a trend
        harmonic_order (int): The harmonic order of the time-series regression
        level (float): Significance level of the monitoring boundary (and of
            the stability test when ``history='ROC'``)
        history (str, float or tuple): ``'all'`` uses all observations before
            the start of monitoring, ``'ROC'`` selects a stable history
            period per pixel with the Reverse Ordered Rec-CUSUM test, a
            fractional year or ``(year, slot)`` tuple sets the start of the
            history period
        critval (float): Critical value of the monitoring boundary. Computed
            from ``level`` when not provided
        **kwargs: Used to set internal attributes when initializing with
            ``.from_netcdf()``

    Examples:
        >>> from vibreak import data
        >>> from vibreak.monitor.bfastmonitor import BfastMonitor
        >>> dates = data.modis_dates(2005, 10)
        >>> cube = data.make_cube(dates, shape=(5, 5), break_idx=200)
        >>> monitor = BfastMonitor(harmonic_order=1)
        >>> monitor.fit(cube, start=2012)
        >>> monitor.report('bfastmonitor.tif', layers=['mask', 'breakpoint'])
    """
    _layers = ('mask', 'breakpoint', 'magnitude', 'sigma', 'histsize')

    def __init__(self, mask=None, trend=True, harmonic_order=1, level=0.05,
                 history='all', critval=None, **kwargs):
        super().__init__(mask=mask,
                         trend=trend,
                         harmonic_order=harmonic_order,
                         **kwargs)
        if isinstance(history, str) and history.upper() == 'BP':
            raise ValueError("history='BP' is only available for single "
                             "time-series, see vibreak.bfast.bfastmonitor")
        self.level = level
        self.history = history
        self.critval = cusum_ols_test_crit(level) if critval is None \
            else critval
        self.start = kwargs.get('start')
        self.beta = kwargs.get('beta')
        self.sigma = kwargs.get('sigma')
        self.histsize = kwargs.get('histsize')
        self.breakpoint = kwargs.get('breakpoint')
        self.magnitude = kwargs.get('magnitude')

    def fit(self, dataarray, start, n_threads=1):
        """Fit history models and monitor every pixel

        Args:
            dataarray (xarray.DataArray): A 3 dimension (time, y, x) DataArray
                covering history and monitoring periods. Either with
                datetimes as time coordinate or the output of
                ``vibreak.regularize.regularize_dataarray``
            start: Start of the monitoring period. Fractional year, ``(year,
                slot)`` tuple or date-like
            n_threads (int): Number of threads used for parallel processing
        """
        numba.set_num_threads(n_threads)
        template, y_flat = self._prepare(dataarray)
        n_hist = template.locate(start)
        hist_start, roc = 0, False
        if isinstance(self.history, str):
            if self.history.upper() == 'ROC':
                roc = True
            elif self.history.upper() != 'ALL':
                raise ValueError('Unknown history option %r' % self.history)
        else:
            hist_start = min(template.locate(self.history), n_hist)
        X = build_regressors(template.index, template.period,
                             trend=self.trend,
                             harmonic_order=self.harmonic_order)
        crit_rec = cusum_rec_test_crit(self.level) if roc \
            else 0.9478982340418134
        logger.debug('Monitoring %d pixels, %d history and %d monitoring '
                     'slots', y_flat.shape[1], n_hist, len(template) - n_hist)
        status, bp, magnitude, beta, sigma, histsize = \
            monitor_cusum_flat(X, y_flat, hist_start, n_hist, roc,
                               self.level, crit_rec, self.critval)

        mask_bool = self.mask == 1
        shape = self.mask.shape
        self.start = float(template.time[n_hist]) if n_hist < len(template) \
            else float(template.time[-1] + 1 / template.period)
        self.beta = np.full((X.shape[1],) + shape, np.nan, dtype=np.float32)
        self.beta[:, mask_bool] = beta
        self.sigma = np.full(shape, np.nan, dtype=np.float32)
        self.sigma[mask_bool] = sigma
        self.histsize = np.zeros(shape, dtype=np.uint16)
        self.histsize[mask_bool] = histsize
        self.breakpoint = np.full(shape, np.nan, dtype=np.float32)
        self.breakpoint[mask_bool] = np.where(bp >= 0, template.time[bp],
                                              np.nan)
        self.magnitude = np.full(shape, np.nan, dtype=np.float32)
        self.magnitude[mask_bool] = magnitude
        self.mask[mask_bool] = status
        self._warn_insufficient()
