"""Regular time-series from irregular acquisitions

Composite products such as MODIS 16-day vegetation indices are nominally
acquired on a fixed revisit cycle that restarts every first of January. The
functions of this module infer that cycle from the acquisition dates and map
every observation to a slot of a regular series with a fixed number of
observations per year, leaving slots without observation empty (``np.nan``).
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

import numbers
import warnings
from collections.abc import Mapping

import numpy as np
import pandas as pd
import xarray as xr

from vibreak.errors import DegenerateGapError
from vibreak.log import logger
from vibreak.utils import to_datetimeindex


class RegularSeries:
    """A regularly spaced time-series with a fixed number of slots per year

    Attributes:
        values (numpy.ndarray): 1D float array, ``np.nan`` marks empty slots
        start (tuple): ``(year, slot)`` of the first value. Slots are 0-based
            (slot ``0`` is the first acquisition cycle of the year)
        period (int): Number of observations per year (frequency)
        step (int): Sampling interval in days. Only required to locate
            calendar dates within the series

    Args:
        values (array-like): Series values
        start (tuple): ``(year, slot)`` of the first value
        period (int): Number of observations per year
        step (int): Sampling interval in days
    """
    def __init__(self, values, start, period, step=None):
        self.values = np.asarray(values, dtype=np.float64)
        if self.values.ndim != 1:
            raise ValueError('values must be one dimensional')
        self.start = (int(start[0]), int(start[1]))
        self.period = int(period)
        self.step = step

    def __len__(self):
        return self.values.size

    def __getitem__(self, key):
        if not isinstance(key, slice) or key.step not in (None, 1):
            raise TypeError('RegularSeries only supports contiguous slicing')
        first, _, _ = key.indices(len(self))
        offset = self.start[1] + first
        start = (self.start[0] + offset // self.period, offset % self.period)
        return RegularSeries(self.values[key], start=start,
                             period=self.period, step=self.step)

    def __repr__(self):
        return ('RegularSeries(n=%d, start=%s, period=%d, step=%s)'
                % (len(self), self.start, self.period, self.step))

    @property
    def index(self):
        """Slot counter since the first slot of the start year

        This is the time index used by the regression models
        """
        return self.start[1] + np.arange(self.values.size)

    @property
    def time(self):
        """Fractional years (``year + slot / period``)"""
        return self.start[0] + self.index / self.period

    @property
    def dates(self):
        """Nominal acquisition date of every slot"""
        if self.step is None:
            raise ValueError('step must be known to compute dates')
        years = self.start[0] + self.index // self.period
        slots = self.index % self.period
        first_day = pd.DatetimeIndex(pd.to_datetime({'year': years,
                                                     'month': 1, 'day': 1}))
        return first_day + pd.to_timedelta(slots * self.step, unit='D')

    def to_index(self, when):
        """Express a point in time as a (possibly fractional) time index

        Args:
            when: Either a fractional year (e.g. ``2019.5``), a ``(year, slot)``
                tuple or a date-like object (``'2019-07-01'``,
                ``datetime.date``, ``numpy.datetime64``)

        Returns:
            float: The time index, comparable to ``self.index``
        """
        if isinstance(when, tuple):
            year, slot = when
            return float((year - self.start[0]) * self.period + slot)
        if isinstance(when, numbers.Real):
            return (when - self.start[0]) * self.period
        if self.step is None:
            raise ValueError('step must be known to locate calendar dates')
        years, slots = date_slots(to_datetimeindex([when]), self.step,
                                  self.period)
        return float((years[0] - self.start[0]) * self.period + slots[0])

    def locate(self, when):
        """Position of the first slot at or after ``when``

        The returned value is clipped to ``[0, len(self)]``; it is the length
        of the history period when ``when`` is the start of monitoring
        """
        position = np.ceil(self.to_index(when) - self.start[1] - 1e-6)
        return int(np.clip(position, 0, len(self)))

    def to_series(self, name=None):
        """Convert to a ``pandas.Series`` indexed by fractional years"""
        return pd.Series(self.values, index=self.time, name=name)

    def to_dataarray(self, name=None):
        """Convert to an ``xarray.DataArray`` with a fractional year time coordinate"""
        attrs = {'period': self.period}
        if self.step is not None:
            attrs['step'] = self.step
        return xr.DataArray(self.values, dims=['time'],
                            coords={'time': self.time},
                            attrs=attrs, name=name)

    @classmethod
    def from_dataarray(cls, dataarray):
        """Build a RegularSeries from a 1D output of ``regularize_dataarray``"""
        period = int(dataarray.attrs['period'])
        start = series_start(dataarray.time.values, period)
        return cls(dataarray.values, start=start, period=period,
                   step=dataarray.attrs.get('step'))


def series_start(time, period):
    """``(year, slot)`` of the first element of a fractional year time axis"""
    first = float(np.asarray(time, dtype=np.float64)[0])
    year = int(np.floor(first + 1e-9))
    slot = int(round((first - year) * period))
    return year, slot


def infer_step(dates):
    """Infer the sampling interval of an acquisition calendar

    Day of year differences are computed between consecutive acquisitions of
    every calendar year, the smallest one is the sampling interval. Years
    with a single acquisition do not contribute, and duplicated dates are
    ignored

    Args:
        dates: Acquisition dates, anything accepted by ``pandas.to_datetime``

    Returns:
        int: The sampling interval in days

    Raises:
        DegenerateGapError: If no calendar year contains two distinct dates
        DateConversionError: If dates cannot be converted
    """
    dates = to_datetimeindex(dates).unique().sort_values()
    doy = pd.Series(dates.dayofyear, index=dates.year)
    gaps = doy.groupby(level=0).diff().dropna()
    gaps = gaps[gaps > 0]
    if gaps.empty:
        raise DegenerateGapError('Sampling interval cannot be inferred: no '
                                 'calendar year holds more than one '
                                 'acquisition')
    return int(gaps.min())


def default_period(step):
    """Number of acquisition cycles starting in a year (23 for 16 days)"""
    return int(np.ceil(365 / step))


def date_slots(dates, step, period):
    """Year and 0-based slot of every date

    Slots beyond the last regular one of the year (e.g. day 366) are merged
    into the last slot

    Returns:
        tuple: Two integer arrays, years and slots
    """
    years = np.asarray(dates.year, dtype=np.int64)
    doy = np.asarray(dates.dayofyear, dtype=np.float64)
    slots = np.clip(np.round((doy - 1) / step), 0, period - 1).astype(np.int64)
    return years, slots


def _positions(dates, period=None):
    """Shared date to slot mapping of ``regularize`` and ``regularize_dataarray``"""
    step = infer_step(dates)
    if period is None:
        period = default_period(step)
    years, slots = date_slots(dates, step, period)
    origin = years.min()
    positions = (years - origin) * period + slots
    logger.debug('Sampling interval of %d days, %d observations per year',
                 step, period)
    return positions, origin, step, period


def regularize(values, dates=None, period=None):
    """Map irregular observations to a regular series

    Observations falling in the same slot are averaged (missing and
    non finite values ignored); slots without observation are left as
    ``np.nan``

    Args:
        values: Observation values. Either an array-like (``dates`` then
            required), a ``pandas.Series`` indexed by dates or a mapping
            ``{date: value}``
        dates: Acquisition dates matching ``values``
        period (int): Number of observations per year. Inferred from the
            sampling interval if not provided

    Returns:
        RegularSeries: The regular series

    Examples:
        >>> from vibreak import data
        >>> from vibreak.regularize import regularize
        >>> dates = data.modis_dates(2010, 3)
        >>> series = regularize(data.make_ts(dates), dates)
        >>> series.period
        23
    """
    if dates is None:
        if isinstance(values, pd.Series):
            dates = values.index
            values = values.values
        elif isinstance(values, Mapping):
            dates = list(values.keys())
            values = list(values.values())
        else:
            raise TypeError('dates must be provided when values is neither '
                            'a pandas.Series nor a mapping')
    dates = to_datetimeindex(dates)
    values = np.asarray(values, dtype=np.float64)
    if values.shape != (len(dates),):
        raise ValueError('values and dates must have the same length')
    values = np.where(np.isfinite(values), values, np.nan)
    positions, origin, step, period = _positions(dates, period)
    grouped = pd.Series(values).groupby(positions).mean()
    full_range = np.arange(grouped.index.min(), grouped.index.max() + 1)
    regular = grouped.reindex(full_range)
    return RegularSeries(regular.values, start=(origin, full_range[0]),
                         period=period, step=step)


def regularize_dataarray(dataarray, period=None):
    """Map the time dimension of a DataArray to a regular series

    The date to slot mapping is computed once and applied to every pixel.
    The returned DataArray has a ``time`` coordinate in fractional years and
    carries ``period`` and ``step`` in its attributes

    Args:
        dataarray (xarray.DataArray): DataArray with a ``time`` dimension of
            datetimes, typically ``(time, y, x)``
        period (int): Number of observations per year. Inferred if not
            provided

    Returns:
        xarray.DataArray: The regular DataArray, ``time`` as first dimension
    """
    dataarray = dataarray.transpose('time', ...)
    dates = to_datetimeindex(dataarray.time.values)
    positions, origin, step, period = _positions(dates, period)
    first, last = positions.min(), positions.max()
    values = dataarray.values.astype(np.float64)
    values[~np.isfinite(values)] = np.nan
    values_flat = values.reshape((values.shape[0], -1))
    out = np.full((last - first + 1, values_flat.shape[1]), np.nan)
    # Empty slices are expected for pixels without valid data in a slot
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', category=RuntimeWarning)
        for position in np.unique(positions):
            out[position - first] = np.nanmean(values_flat[positions == position],
                                               axis=0)
    out = out.reshape((out.shape[0],) + values.shape[1:])
    coords = {k: v for k, v in dataarray.coords.items()
              if 'time' not in v.dims}
    coords['time'] = origin + np.arange(first, last + 1) / period
    attrs = dict(dataarray.attrs, period=period, step=step)
    return xr.DataArray(out, dims=dataarray.dims, coords=coords,
                        attrs=attrs, name=dataarray.name)
