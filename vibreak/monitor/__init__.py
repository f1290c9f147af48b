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
import warnings

import numpy as np
from netCDF4 import Dataset
import rasterio
from rasterio.crs import CRS
from affine import Affine

from vibreak.regularize import (RegularSeries, regularize_dataarray,
                                series_start)
from vibreak.segmentation import (SegmentationStrategy, DynamicProgramming,
                                  BinarySegmentation)
from vibreak.status import INSUFFICIENT_DATA


class BaseMonitor(metaclass=abc.ABCMeta):
    """Abstract class for break detection over raster time-series

    Every break detection approach working on (time, y, x) data cubes
    inherits from this abstract class and must implement ``fit()``. It
    contains generic methods to regularize the time dimension, write the
    results to a geospatial raster file, dump the instance to a netcdf file
    and reload a dump.

    Attributes:
        mask (numpy.ndarray): A 2D numpy array containing pixels that should
            be processed (1) and not (0). After ``fit()`` every processed
            pixel holds one of the status codes of ``vibreak.status.STATUS``
            ``{0: 'Not monitored', 1: 'No break',
               2: 'No monitoring observations', 3: 'Break detected',
               4: 'Not enough observations'}``
        trend (bool): Indicate whether the regression includes a trend
        harmonic_order (int): The harmonic order of the time-series regression
        period (int): Number of observations per year of the regularized
            data
        step (int): Sampling interval in days of the regularized data
        x (numpy.ndarray): array of x coordinates
        y (numpy.ndarray): array of y coordinates

    Args:
        mask (numpy.ndarray): A 2D numpy array containing pixels that should be
            processed marked as ``1`` and pixels that should be excluded
            (marked as ``0``). Typically a stable forest mask when doing forest
            disturbance monitoring. If no mask is supplied all pixels are
            considered and a mask is created following the ``fit()`` call
        trend (bool): Indicate whether the regression includes a trend
        harmonic_order (int): The harmonic order of the time-series regression
        x_coords (numpy.ndarray): x coordinates
        y_coords (numpy.ndarray): y coordinates
    """
    _layers = ('mask',)

    def __init__(self, mask=None, trend=True, harmonic_order=1, period=None,
                 step=None, x_coords=None, y_coords=None, **kwargs):
        self.mask = np.copy(mask) if isinstance(mask, np.ndarray) else mask
        self.trend = trend
        self.harmonic_order = harmonic_order
        self.period = period
        self.step = step
        self.x = x_coords
        self.y = y_coords

    def __eq__(self, other):
        if not isinstance(other, type(self)):
            return False
        mine, theirs = vars(self), vars(other)
        if mine.keys() != theirs.keys():
            return False
        return all(_same(mine[key], theirs[key]) for key in mine)

    @abc.abstractmethod
    def fit(self):
        pass

    def _prepare(self, dataarray):
        """Regularize a DataArray and flatten the pixels to be processed

        A ``time`` dimension of datetimes is regularized with
        ``regularize_dataarray``. A DataArray that has already been
        regularized (fractional year ``time`` and ``period`` attribute) is
        used as is

        Args:
            dataarray (xarray.DataArray): A 3 dimension (time, y, x) DataArray

        Returns:
            tuple: A ``RegularSeries`` template describing the time axis (its
                values are empty) and the (time, pixels) 2D array of the pixels
                to process, ``mask == 1``
        """
        if np.issubdtype(dataarray.time.dtype, np.datetime64):
            dataarray = regularize_dataarray(dataarray)
        elif 'period' not in dataarray.attrs:
            raise ValueError('dataarray must have a datetime time dimension or'
                             ' be the output of regularize_dataarray')
        dataarray = dataarray.transpose('time', 'y', 'x')
        self.set_xy(dataarray)
        self.period = int(dataarray.attrs['period'])
        step = dataarray.attrs.get('step')
        self.step = None if step is None else int(step)
        # lower level functions using numba require float64 input
        y = dataarray.values.astype(np.float64)
        y[~np.isfinite(y)] = np.nan
        if self.mask is None:
            self.mask = np.ones(y.shape[1:], dtype=np.uint8)
        if self.mask.shape != y.shape[1:]:
            raise ValueError('mask and dataarray spatial shapes differ')
        template = RegularSeries(np.full(y.shape[0], np.nan),
                                 start=series_start(dataarray.time.values,
                                                    self.period),
                                 period=self.period, step=self.step)
        y_flat = np.ascontiguousarray(y[:, self.mask == 1])
        return template, y_flat

    def _warn_insufficient(self):
        amount = np.count_nonzero(self.mask == INSUFFICIENT_DATA)
        if amount:
            warnings.warn(f'{amount} time-series did not contain enough valid '
                          f'observations and were masked.')

    def _report(self, layers, dtype):
        """Stack the requested layers

        Args:
            layers (list): Names of the layers, valid options are listed in
                the ``_layers`` attribute of each class
            dtype (type): The datatype of the stacked layers. Layers holding
                fractional years or magnitudes require a float type to retain
                values

        Returns:
            numpy.ndarray: A (layer, y, x) array, in the order of ``layers``
        """
        invalid = [name for name in layers if name not in self._layers]
        if invalid:
            raise ValueError('invalid layer(s) requested: %s'
                             % ', '.join(invalid))
        return np.stack([getattr(self, name) for name in layers],
                        axis=0).astype(dtype)

    def report(self, filename, layers=['mask', 'breakpoint'],
               driver='GTiff', crs=CRS.from_epsg(4326),
               dtype=np.float32):
        """Write the result of break detection to a raster geospatial file

        Args:
            filename (str): Path of the file to write
            layers (list): A list of strings indicating the layers to include in
                the report. ``'mask'`` contains the status code of every
                pixel, ``'breakpoint'`` the time of the break in fractional
                years (``np.nan`` without break), ``'magnitude'`` the
                magnitude of the change. See ``_layers`` of each class for
                other options
            driver (str): rasterio driver
            crs (rasterio.crs.CRS): Coordinate reference system of the output
            dtype (type): The datatype of the stacked layers
        """
        stack = self._report(layers=layers, dtype=dtype)
        profile = dict(driver=driver, crs=crs, transform=self.transform,
                       count=stack.shape[0], height=stack.shape[1],
                       width=stack.shape[2], dtype=stack.dtype)
        with rasterio.open(filename, 'w', **profile) as dst:
            dst.write(stack)
            for band, name in enumerate(layers, start=1):
                dst.set_band_description(band, name)

    @property
    def transform(self):
        """affine.Affine: Pixel to map coordinates transform of the cube,
        identity when coordinates are unknown"""
        if self.x is None or self.y is None:
            warnings.warn('x and y coordinate arrays not set, returning '
                          'identity transform')
            return Affine.identity()
        x_res = abs(self.x[1] - self.x[0])
        y_res = abs(self.y[1] - self.y[0])
        ulx = np.min(self.x) - x_res / 2
        uly = np.max(self.y) + y_res / 2
        return Affine.translation(ulx, uly) * Affine.scale(x_res, -y_res)

    @classmethod
    def from_netcdf(cls, filename, **kwargs):
        """Instantiate from a file written by ``to_netcdf``

        Args:
            filename (str): Path of the netcdf file
            **kwargs: Override stored attributes

        Returns:
            An instance of the class with the stored state
        """
        params = {}
        with Dataset(filename) as src:
            src.set_always_mask(False)
            for name, var in src.variables.items():
                if name in ('x', 'y'):
                    params['%s_coords' % name] = var[:]
                    continue
                if name in src.dimensions:
                    continue
                attrs = var.ncattrs()
                tag = var.getncattr('dtype') if 'dtype' in attrs else None
                if 'value' in attrs:
                    params[name] = _decode(var.getncattr('value'), tag)
                else:
                    value = var[:]
                    params[name] = value.astype(bool) if tag == 'bool' \
                        else value
        params.update(kwargs)
        return cls(**params)

    def to_netcdf(self, filename):
        """Dump the instance to a netcdf file

        Arrays are written as variables over the ``y`` and ``x`` dimensions
        (plus ``coef`` for regression coefficients). Strings, numbers,
        booleans, tuples of numbers and built-in segmentation strategies are
        written as the ``value`` attribute of a scalar variable

        Args:
            filename (str): Path of the netcdf file to write

        Raises:
            TypeError: If an attribute cannot be represented in the file
        """
        with Dataset(filename, 'w') as dst:
            for name, coords in (('x', self.x), ('y', self.y)):
                dst.createDimension(name, len(coords))
                dst.createVariable(name, coords.dtype, (name,))[:] = coords
            for name, value in vars(self).items():
                if name in ('x', 'y') or value is None:
                    continue
                if isinstance(value, np.ndarray):
                    _write_array(dst, name, value)
                    continue
                nc_type, value, tag = _encode(name, value)
                var = dst.createVariable(name, nc_type)
                if tag is not None:
                    var.setncattr('dtype', tag)
                var.value = value

    def set_xy(self, dataarray):
        self.x = dataarray.x.values
        self.y = dataarray.y.values


# bool is tested before int, it is a subclass of it
_SCALAR_TYPES = (((bool, np.bool_), 'i1'),
                 ((int, np.integer), 'i8'),
                 ((float, np.floating), 'f8'),
                 (str, 'c'))

_STRATEGIES = {cls.__name__: cls
               for cls in (DynamicProgramming, BinarySegmentation)}


def _encode(name, value):
    """netcdf type, attribute value and type tag of a non array attribute"""
    if type(value).__name__ in _STRATEGIES \
            and isinstance(value, SegmentationStrategy):
        return 'c', type(value).__name__, 'strategy'
    is_numbers = all(isinstance(v, (int, float)) for v in value) \
        if isinstance(value, tuple) else False
    if is_numbers and value:
        return 'i1', np.asarray(value), 'tuple'
    for types, nc_type in _SCALAR_TYPES:
        if isinstance(value, types):
            if isinstance(value, (bool, np.bool_)):
                return nc_type, int(value), 'bool'
            return nc_type, value, None
    raise TypeError('Attribute %r of type %s cannot be written to netcdf'
                    % (name, type(value).__name__))


def _decode(value, tag):
    if tag == 'tuple':
        return tuple(np.atleast_1d(value).tolist())
    if tag == 'strategy':
        return _STRATEGIES[value]()
    if isinstance(value, np.generic):
        value = value.item()
    return bool(value) if tag == 'bool' else value


def _same(a, b):
    if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
        try:
            return np.array_equal(a, b, equal_nan=True)
        except TypeError:
            return np.array_equal(a, b)
    return a == b


def _write_array(dst, name, value):
    """Write a (y, x) or (coef, y, x) array to an open netcdf Dataset"""
    if value.ndim == 3:
        if 'coef' not in dst.dimensions:
            dst.createDimension('coef', value.shape[0])
            dst.createVariable('coef', np.uint16, ('coef',))[:] = \
                np.arange(value.shape[0], dtype=np.uint16)
        dims = ('coef', 'y', 'x')
    else:
        dims = ('y', 'x')
    is_bool = value.dtype == bool
    var = dst.createVariable(name, np.uint8 if is_bool else value.dtype, dims,
                             zlib=True)
    var[:] = value
    if is_bool:
        var.setncattr('dtype', 'bool')
