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
import xarray as xr


def modis_dates(start_year, n_years, step=16):
    """Nominal acquisition dates of a MODIS composite product

    The acquisition cycle restarts every first of January (day of year 1,
    17, 33, ... for 16-day composites)

    Args:
        start_year (int): First year
        n_years (int): Number of years
        step (int): Compositing period in days

    Returns:
        pandas.DatetimeIndex: The dates
    """
    offsets = pd.to_timedelta(np.arange(0, 365, step), unit='D')
    dates = [pd.Timestamp(year, 1, 1) + offsets
             for year in range(start_year, start_year + n_years)]
    return dates[0].append(dates[1:])


def make_ts(dates, break_idx=-1, intercept=0.7, amplitude=0.15,
            magnitude=-0.25, sigma_noise=0.02, n_nan=0, seed=None):
    """Simulate a harmonic vegetation index time-series

    The series is made of a constant level, an annual cycle and gaussian
    noise. When ``break_idx`` is a valid position, ``magnitude`` is added to
    all values from that position onward

    Examples:
        >>> from vibreak import data
        >>> dates = data.modis_dates(2010, 5)
        >>> ts = data.make_ts(dates, break_idx=80, n_nan=10, seed=0)
        >>> ts.shape
        (115,)

    Args:
        dates (array-like): Dates of the series (anything accepted by
            ``pandas.DatetimeIndex``)
        break_idx (int): Position of the break. ``-1`` for no break
        intercept (float): Mean level of the series
        amplitude (float): Amplitude of the annual cycle
        magnitude (float): Level shift from the break onward
        sigma_noise (float): Standard deviation of the noise
        n_nan (int): Number of observations randomly set to ``np.nan``
        seed (int): Seed of the random number generator

    Returns:
        numpy.ndarray: The simulated values
    """
    rng = np.random.default_rng(seed)
    dates = pd.DatetimeIndex(dates)
    decimal_year = dates.year + (dates.dayofyear - 1) / 365.25
    ts = intercept + amplitude * np.sin(2 * np.pi * np.asarray(decimal_year))
    ts = ts + rng.normal(0, sigma_noise, ts.size)
    if 0 <= break_idx < ts.size:
        ts[break_idx:] += magnitude
    if n_nan:
        ts[rng.choice(ts.size, size=n_nan, replace=False)] = np.nan
    return ts


def make_cube(dates, shape=(10, 10), break_idx=-1, seed=None, **kwargs):
    """Simulate a (time, y, x) cube of vegetation index time-series

    Every pixel is simulated with ``make_ts``. Noise and missing values
    differ among pixels

    Args:
        dates (array-like): Dates of the series
        shape (tuple): Spatial shape ``(ny, nx)`` of the cube
        break_idx (int or numpy.ndarray): Break position, either common to
            all pixels or a 2D integer array of shape ``shape``. ``-1`` for no
            break
        seed (int): Seed of the random number generator
        **kwargs: Other simulation parameters passed to ``make_ts``

    Returns:
        xarray.DataArray: A DataArray named ``'ndvi'`` with dimensions
            ``(time, y, x)``
    """
    dates = pd.DatetimeIndex(dates)
    break_idx = np.broadcast_to(break_idx, shape)
    rng = np.random.default_rng(seed)
    seeds = rng.integers(0, 2**31, size=shape)
    cube = np.empty((dates.size,) + tuple(shape))
    for row, col in np.ndindex(*shape):
        cube[:, row, col] = make_ts(dates, break_idx=int(break_idx[row, col]),
                                    seed=int(seeds[row, col]), **kwargs)
    return xr.DataArray(cube, dims=['time', 'y', 'x'],
                        coords={'time': dates.values,
                                'y': np.arange(shape[0], 0, -1) * 250.,
                                'x': np.arange(shape[1]) * 250.},
                        name='ndvi')


def long_to_cube(df, shape, date='date', pixel='pixel', value='value'):
    """Convert a long table of observations to a (time, y, x) cube

    Pixel subset services (e.g. the MODIS web service) return one row per
    date and pixel, pixels being numbered row-major starting from 1

    Args:
        df (pandas.DataFrame): The long table
        shape (tuple): Spatial shape ``(ny, nx)`` of the subset
        date (str): Name of the date column
        pixel (str): Name of the pixel id column
        value (str): Name of the value column

    Returns:
        xarray.DataArray: DataArray with dimensions ``(time, y, x)``, missing
            rows as ``np.nan``. ``x`` and ``y`` coordinates are column and row
            indices
    """
    wide = df.pivot_table(index=date, columns=pixel, values=value,
                          aggfunc='mean')
    n_pixels = shape[0] * shape[1]
    wide = wide.reindex(columns=np.arange(1, n_pixels + 1))
    wide.index = pd.to_datetime(wide.index)
    wide = wide.sort_index()
    cube = wide.values.reshape((len(wide),) + tuple(shape))
    return xr.DataArray(cube, dims=['time', 'y', 'x'],
                        coords={'time': wide.index.values,
                                'y': np.arange(shape[0]),
                                'x': np.arange(shape[1])},
                        name=value)
