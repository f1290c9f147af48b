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
from vibreak.bfast import bfast0n
from vibreak.errors import InsufficientDataError
from vibreak.fit_methods import segment_breaks_flat
from vibreak.log import logger
from vibreak.regularize import RegularSeries
from vibreak.segmentation import DynamicProgramming
from vibreak.status import NO_BREAK, BREAK, INSUFFICIENT_DATA
from vibreak.utils import build_regressors


class Bfast0n(BaseMonitor):
    """Multiple breaks search over a raster time-series

    Every pixel is segmented with ``vibreak.bfast.bfast0n``; the number of
    breaks is selected by BIC. With the built-in strategies pixels are
    processed in parallel by compiled kernels

    Attributes:
        mask (numpy.ndarray): A 2D numpy array with the status code of every
            pixel. ``{0: 'Not monitored', 1: 'No break', 3: 'Break detected',
            4: 'Not enough observations'}``
        trend (bool): Indicate whether the regression includes a trend
        harmonic_order (int): The harmonic order of the time-series regression
        h (float): Minimum segment size, fraction of the valid observations or
            number of observations
        max_breaks (int): Maximum number of breaks
        strategy (vibreak.segmentation.SegmentationStrategy): Breakpoints
            search strategy, ``None`` for the default dynamic programming
        n_breaks (numpy.ndarray): Number of breaks of every pixel
        breakpoint (numpy.ndarray): Time of the first break in fractional
            years, ``np.nan`` without break
        magnitude (numpy.ndarray): Jump of the fitted model across the break
            with the largest absolute jump, ``np.nan`` without break
        x (numpy.ndarray): array of x coordinates
        y (numpy.ndarray): array of y coordinates

    Args:
        mask (numpy.ndarray): A 2D numpy array containing pixels that should be
            processed marked as ``1`` and pixels that should be excluded
            (marked as ``0``)
        trend (bool): Indicate whether the regression includes a trend
        harmonic_order (int): The harmonic order of the time-series regression
        h (float): Minimum segment size
        max_breaks (int): Maximum number of breaks
        strategy (vibreak.segmentation.SegmentationStrategy): Breakpoints
            search strategy
        **kwargs: Used to set internal attributes when initializing with
            ``.from_netcdf()``
    """
    _layers = ('mask', 'breakpoint', 'magnitude', 'n_breaks')

    def __init__(self, mask=None, trend=True, harmonic_order=1, h=0.15,
                 max_breaks=None, strategy=None, **kwargs):
        super().__init__(mask=mask,
                         trend=trend,
                         harmonic_order=harmonic_order,
                         **kwargs)
        self.h = h
        self.max_breaks = max_breaks
        self.strategy = strategy
        self.n_breaks = kwargs.get('n_breaks')
        self.breakpoint = kwargs.get('breakpoint')
        self.magnitude = kwargs.get('magnitude')

    def fit(self, dataarray, n_threads=1):
        """Search breaks in every pixel

        Args:
            dataarray (xarray.DataArray): A 3 dimension (time, y, x) DataArray.
                Either with datetimes as time coordinate or the output of
                ``vibreak.regularize.regularize_dataarray``
            n_threads (int): Number of threads to use for processing pixels
                in parallel with one of the built-in strategies
        """
        numba.set_num_threads(n_threads)
        template, y_flat = self._prepare(dataarray)
        X = build_regressors(template.index, template.period,
                             trend=self.trend,
                             harmonic_order=self.harmonic_order)
        strategy = DynamicProgramming() if self.strategy is None \
            else self.strategy
        logger.debug('Segmenting %d pixels with %s', y_flat.shape[1], strategy)
        if getattr(strategy, 'greedy', None) is None:
            status, n_breaks, bp, magnitude = self._fit_pixels(template,
                                                               y_flat,
                                                               strategy)
        else:
            max_breaks = -1 if self.max_breaks is None else self.max_breaks
            status, n_breaks, bp, magnitude = \
                segment_breaks_flat(X, y_flat, float(self.h), int(max_breaks),
                                    bool(strategy.greedy))
        breakpoint = np.where(bp >= 0, template.time[np.maximum(bp, 0)],
                              np.nan)

        mask_bool = self.mask == 1
        shape = self.mask.shape
        self.n_breaks = np.zeros(shape, dtype=np.uint8)
        self.n_breaks[mask_bool] = n_breaks
        self.breakpoint = np.full(shape, np.nan, dtype=np.float32)
        self.breakpoint[mask_bool] = breakpoint
        self.magnitude = np.full(shape, np.nan, dtype=np.float32)
        self.magnitude[mask_bool] = magnitude
        self.mask[mask_bool] = status
        self._warn_insufficient()

    def _fit_pixels(self, template, y_flat, strategy):
        """Pixel by pixel segmentation, for strategies without compiled
        counterpart"""
        n_pixels = y_flat.shape[1]
        status = np.full(n_pixels, INSUFFICIENT_DATA, dtype=np.uint8)
        n_breaks = np.zeros(n_pixels, dtype=np.int64)
        bp = np.full(n_pixels, -1, dtype=np.int64)
        magnitude = np.full(n_pixels, np.nan)
        for idx in range(n_pixels):
            series = RegularSeries(y_flat[:, idx], start=template.start,
                                   period=template.period, step=template.step)
            try:
                result = bfast0n(series, harmonic_order=self.harmonic_order,
                                 trend=self.trend, h=self.h,
                                 max_breaks=self.max_breaks,
                                 strategy=strategy)
            except (InsufficientDataError, np.linalg.LinAlgError) as e:
                logger.debug('Pixel %d not segmented: %s', idx, e)
                continue
            n_breaks[idx] = result.n_breaks
            if result.n_breaks:
                status[idx] = BREAK
                bp[idx] = result.positions[0]
                magnitude[idx] = result.magnitudes[
                    np.argmax(np.abs(result.magnitudes))]
            else:
                status[idx] = NO_BREAK
        return status, n_breaks, bp, magnitude
