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
import pytest
import rasterio

from vibreak.bfast import bfastmonitor, bfast0n
from vibreak.monitor.bfastmonitor import BfastMonitor
from vibreak.monitor.bfast0n import Bfast0n
from vibreak.regularize import regularize, regularize_dataarray
from vibreak.segmentation import (BinarySegmentation, DynamicProgramming,
                                  SegmentationStrategy)
from vibreak.status import (NOT_MONITORED, NO_BREAK, BREAK,
                            INSUFFICIENT_DATA)


def test_bfastmonitor_fit(ndvi_cube, forest_mask):
    monitor = BfastMonitor(mask=forest_mask, harmonic_order=1)
    with pytest.warns(UserWarning, match='1 time-series'):
        monitor.fit(ndvi_cube, start=2012)
    assert monitor.beta.shape == (4, 4, 5)
    assert monitor.start == pytest.approx(2012.)
    assert monitor.mask[1, 0] == NOT_MONITORED
    assert np.isnan(monitor.breakpoint[1, 0])
    assert monitor.mask[3, 4] == INSUFFICIENT_DATA
    np.testing.assert_array_equal(monitor.mask[0], BREAK)
    assert np.all(monitor.breakpoint[0] >= 2012 + 4 / 23 - 1e-3)
    assert np.all(monitor.breakpoint[0] <= 2012 + 7 / 23 + 1e-3)
    np.testing.assert_allclose(monitor.magnitude[0], -0.3, atol=0.05)
    assert np.isin(monitor.mask, [NOT_MONITORED, NO_BREAK, BREAK,
                                  INSUFFICIENT_DATA]).all()
    # Input mask is not modified
    assert forest_mask[0, 0] == 1


def test_bfastmonitor_matches_single_series(ndvi_cube):
    monitor = BfastMonitor()
    monitor.fit(ndvi_cube, start=2012)
    series = regularize(ndvi_cube.values[:, 2, 1], ndvi_cube.time.values)
    result = bfastmonitor(series, start=2012)
    assert monitor.mask[2, 1] == result.status
    assert monitor.histsize[2, 1] == result.histsize
    np.testing.assert_allclose(monitor.beta[:, 2, 1], result.beta, rtol=1e-5,
                               atol=1e-6)
    np.testing.assert_allclose(monitor.sigma[2, 1], result.sigma, rtol=1e-5)
    np.testing.assert_allclose(monitor.magnitude[2, 1], result.magnitude,
                               rtol=1e-5)


def test_bfastmonitor_regularized_input(ndvi_cube):
    monitor = BfastMonitor()
    monitor.fit(ndvi_cube, start=2012)
    monitor_reg = BfastMonitor()
    monitor_reg.fit(regularize_dataarray(ndvi_cube), start=(2012, 0))
    assert monitor == monitor_reg


def test_bfastmonitor_history_options(ndvi_cube):
    with pytest.raises(ValueError):
        BfastMonitor(history='BP')
    monitor = BfastMonitor(history='ROC')
    monitor.fit(ndvi_cube, start=2012)
    assert monitor.histsize[0, 0] > 0
    monitor = BfastMonitor(history=2009.)
    monitor.fit(ndvi_cube, start=2012)
    assert monitor.histsize.max() <= 3 * 23
    with pytest.raises(ValueError):
        BfastMonitor(history='foo').fit(ndvi_cube, start=2012)


def test_bfast0n_fit(segmentation_cube):
    segmenter = Bfast0n()
    with pytest.warns(UserWarning):
        segmenter.fit(segmentation_cube)
    assert segmenter.mask[2, 2] == INSUFFICIENT_DATA
    np.testing.assert_array_equal(segmenter.mask[:, 0], BREAK)
    np.testing.assert_array_equal(segmenter.n_breaks[:, 0], 1)
    np.testing.assert_allclose(segmenter.breakpoint[:, 0], 2005 + 68 / 23,
                               atol=1e-3)
    np.testing.assert_allclose(segmenter.magnitude[:, 0], -0.5, atol=0.03)
    np.testing.assert_array_equal(segmenter.mask[:2, 1:], NO_BREAK)
    assert np.isnan(segmenter.breakpoint[0, 1])
    # Pixel level results are identical
    series = regularize(segmentation_cube.values[:, 1, 0],
                        segmentation_cube.time.values)
    result = bfast0n(series)
    assert segmenter.breakpoint[1, 0] == pytest.approx(result.breakpoints[0],
                                                       abs=1e-3)


def test_bfast0n_strategy(segmentation_cube):
    segmenter = Bfast0n(strategy=BinarySegmentation(), max_breaks=2)
    segmenter.fit(segmentation_cube)
    np.testing.assert_array_equal(segmenter.mask[:, 0], BREAK)


@pytest.mark.parametrize('monitor_cls, fit_kwargs',
                         [(BfastMonitor, {'start': 2012}),
                          (Bfast0n, {})],
                         ids=['BfastMonitor', 'Bfast0n'])
def test_report(monitor_cls, fit_kwargs, ndvi_cube, tmp_path):
    tif_path = tmp_path / 'report.tif'
    monitor = monitor_cls()
    monitor.fit(ndvi_cube, **fit_kwargs)
    monitor.report(tif_path, layers=['mask', 'breakpoint', 'magnitude'])
    with rasterio.open(tif_path) as src:
        assert src.count == 3
        assert src.descriptions == ('mask', 'breakpoint', 'magnitude')
        assert src.transform == monitor.transform
        np.testing.assert_array_equal(src.read(1), monitor.mask)
        np.testing.assert_allclose(src.read(2), monitor.breakpoint)
    assert monitor.transform.a == 250.
    with pytest.raises(ValueError):
        monitor._report(layers=['mask', 'foo'], dtype=np.float32)


@pytest.mark.parametrize('monitor_cls, fit_kwargs',
                         [(BfastMonitor, {'start': 2012}),
                          (Bfast0n, {})],
                         ids=['BfastMonitor', 'Bfast0n'])
def test_netcdf(monitor_cls, fit_kwargs, ndvi_cube, tmp_path):
    nc_path = tmp_path / 'monitor.nc'
    monitor = monitor_cls(trend=False)
    monitor.fit(ndvi_cube, **fit_kwargs)
    monitor.to_netcdf(nc_path)
    monitor_load = monitor_cls.from_netcdf(nc_path)
    assert monitor == monitor_load
    assert monitor_load.trend is False


class ExhaustiveSearch(SegmentationStrategy):
    """Dynamic programming evaluated pixel by pixel"""
    def fit(self, X, y, h, max_breaks):
        return DynamicProgramming().fit(X, y, h, max_breaks)


class SingularSearch(SegmentationStrategy):
    def fit(self, X, y, h, max_breaks):
        raise np.linalg.LinAlgError('Singular matrix')


def test_bfastmonitor_non_finite_values(break_cube):
    cube_nan = break_cube.copy()
    break_cube[10, 1, 1] = np.inf
    break_cube[180, 0, 2] = -np.inf
    cube_nan[10, 1, 1] = np.nan
    cube_nan[180, 0, 2] = np.nan
    monitor = BfastMonitor()
    monitor.fit(break_cube, start=2012, n_threads=2)
    np.testing.assert_array_equal(monitor.mask, BREAK)
    monitor_nan = BfastMonitor()
    monitor_nan.fit(cube_nan, start=2012, n_threads=2)
    assert monitor == monitor_nan


def test_bfast0n_non_finite_values(segmentation_cube):
    cube_nan = segmentation_cube.copy()
    for cube, value in [(segmentation_cube, np.inf), (cube_nan, np.nan)]:
        cube[10, 1, 1] = value
        cube[100, 0, 0] = -value
    segmenter = Bfast0n()
    with pytest.warns(UserWarning, match='1 time-series'):
        segmenter.fit(segmentation_cube, n_threads=2)
    segmenter_nan = Bfast0n()
    with pytest.warns(UserWarning, match='1 time-series'):
        segmenter_nan.fit(cube_nan, n_threads=2)
    assert segmenter == segmenter_nan
    np.testing.assert_array_equal(segmenter.mask[:, 0], BREAK)


def test_bfast0n_custom_strategy(segmentation_cube):
    segmenter = Bfast0n()
    segmenter_custom = Bfast0n(strategy=ExhaustiveSearch())
    with pytest.warns(UserWarning):
        segmenter.fit(segmentation_cube)
    with pytest.warns(UserWarning):
        segmenter_custom.fit(segmentation_cube)
    np.testing.assert_array_equal(segmenter.mask, segmenter_custom.mask)
    np.testing.assert_array_equal(segmenter.n_breaks,
                                  segmenter_custom.n_breaks)
    np.testing.assert_allclose(segmenter.breakpoint,
                               segmenter_custom.breakpoint)
    np.testing.assert_allclose(segmenter.magnitude, segmenter_custom.magnitude,
                               rtol=1e-5, atol=1e-6)


def test_bfast0n_failing_strategy(segmentation_cube):
    segmenter = Bfast0n(strategy=SingularSearch())
    with pytest.warns(UserWarning, match='9 time-series'):
        segmenter.fit(segmentation_cube)
    np.testing.assert_array_equal(segmenter.mask, INSUFFICIENT_DATA)
    assert np.isnan(segmenter.breakpoint).all()


@pytest.mark.parametrize('monitor', [BfastMonitor(history=(2009, 0)),
                                     BfastMonitor(history=2009.5)],
                         ids=['tuple', 'float'])
def test_netcdf_history(monitor, ndvi_cube, tmp_path):
    nc_path = tmp_path / 'monitor.nc'
    monitor.fit(ndvi_cube, start=2012)
    monitor.to_netcdf(nc_path)
    monitor_load = BfastMonitor.from_netcdf(nc_path)
    assert monitor_load.history == monitor.history
    assert monitor == monitor_load


def test_netcdf_strategy(segmentation_cube, tmp_path):
    nc_path = tmp_path / 'segmenter.nc'
    segmenter = Bfast0n(strategy=BinarySegmentation(), max_breaks=2)
    with pytest.warns(UserWarning):
        segmenter.fit(segmentation_cube)
    segmenter.to_netcdf(nc_path)
    segmenter_load = Bfast0n.from_netcdf(nc_path)
    assert isinstance(segmenter_load.strategy, BinarySegmentation)
    assert segmenter == segmenter_load


def test_netcdf_unsupported_attribute(ndvi_cube, tmp_path):
    monitor = BfastMonitor(history=pd.Timestamp('2009-01-01'))
    monitor.fit(ndvi_cube, start=2012)
    with pytest.raises(TypeError, match='history'):
        monitor.to_netcdf(tmp_path / 'monitor.nc')
    segmenter = Bfast0n(strategy=ExhaustiveSearch())
    with pytest.warns(UserWarning):
        segmenter.fit(ndvi_cube)
    with pytest.raises(TypeError):
        segmenter.to_netcdf(tmp_path / 'segmenter.nc')
