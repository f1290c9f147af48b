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
import pytest

from vibreak.bfast import bfastmonitor
from vibreak.errors import InsufficientDataError
from vibreak.regularize import RegularSeries
from vibreak.status import NO_BREAK, NO_MONITORING_DATA, BREAK


def test_flat_step_scenario(flat_step_series):
    result = bfastmonitor(flat_step_series, start=2012, harmonic_order=1)
    assert result.is_break
    assert result.status == BREAK
    assert result.breakpoint == pytest.approx(2012.)
    assert result.magnitude == pytest.approx(-0.4, abs=1e-6)
    assert result.histsize == 7 * 23
    assert result.history == pytest.approx((2005., 2012 - 1 / 23))
    assert result.monitor == pytest.approx((2012., 2012 + 22 / 23))


def test_flat_step_upward(flat_step_series):
    values = 1 - flat_step_series.values
    series = RegularSeries(values, start=flat_step_series.start, period=23)
    result = bfastmonitor(series, start=(2012, 0))
    assert result.is_break
    assert result.magnitude == pytest.approx(0.4, abs=1e-6)


def test_noisy_break(noisy_break_series):
    result = bfastmonitor(noisy_break_series, start=2012)
    assert result.is_break
    bp_time = noisy_break_series.time[165]
    assert bp_time <= result.breakpoint <= bp_time + 3 / 23
    assert result.magnitude == pytest.approx(-0.3, abs=0.05)
    assert result.sigma == pytest.approx(0.02, abs=0.01)
    # The process exceeds the boundary at the breakpoint only
    df = result.to_frame()
    crossing = df[np.abs(df.process) > df.boundary]
    assert crossing.index[0] == pytest.approx(result.breakpoint)


def test_harmonic_series_no_break(harmonic_series):
    result = bfastmonitor(harmonic_series, start=2011)
    assert result.status == NO_BREAK
    assert result.breakpoint is None
    assert result.magnitude == pytest.approx(0, abs=1e-9)
    np.testing.assert_allclose(result.beta, [0.6, 0.0005, 0.1, -0.05],
                               atol=1e-9)
    np.testing.assert_allclose(result.predict(), harmonic_series.values,
                               atol=1e-9)


def test_missing_monitoring_window(noisy_break_series):
    values = noisy_break_series.values.copy()
    values[161:] = np.nan
    series = RegularSeries(values, start=noisy_break_series.start, period=23)
    result = bfastmonitor(series, start=2012)
    assert not result.is_break
    assert result.status == NO_MONITORING_DATA
    assert result.breakpoint is None
    assert np.isnan(result.magnitude)
    assert np.isnan(result.process).all()


def test_history_only(noisy_break_series):
    history = noisy_break_series[:161]
    result = bfastmonitor(history, start=2012)
    assert not result.is_break
    assert result.status == NO_MONITORING_DATA
    assert result.monitor is None
    assert result.histsize == np.count_nonzero(~np.isnan(history.values))


@pytest.mark.parametrize('harmonic_order', [1, 2, 3])
def test_insufficient_history(noisy_break_series, harmonic_order):
    n_regressors = 2 + 2 * harmonic_order
    values = noisy_break_series.values.copy()
    values[:161 - 2 * n_regressors + 1] = np.nan
    series = RegularSeries(values, start=noisy_break_series.start, period=23)
    with pytest.raises(InsufficientDataError):
        bfastmonitor(series, start=2012, harmonic_order=harmonic_order)
    # One more observation is enough
    values[161 - 2 * n_regressors] = 0.7
    series = RegularSeries(values, start=noisy_break_series.start, period=23)
    result = bfastmonitor(series, start=2012, harmonic_order=harmonic_order)
    assert result.histsize == 2 * n_regressors


def test_monitoring_start_before_series(noisy_break_series):
    with pytest.raises(InsufficientDataError):
        bfastmonitor(noisy_break_series, start=2000)


def test_no_trend(flat_step_series):
    result = bfastmonitor(flat_step_series, start=2012, trend=False,
                          harmonic_order=2)
    assert result.beta.size == 5
    assert result.is_break


def test_critval(noisy_break_series):
    # An unreachable boundary disables detection
    result = bfastmonitor(noisy_break_series, start=2012, critval=1e6)
    assert result.status == NO_BREAK
    assert result.magnitude < -0.2
    with pytest.raises(ValueError):
        bfastmonitor(noisy_break_series, start=2012, level=1.5)


def test_history_roc(unstable_history_series):
    result_all = bfastmonitor(unstable_history_series, start=2012)
    result_roc = bfastmonitor(unstable_history_series, start=2012,
                              history='ROC')
    assert result_all.histsize == 7 * 23
    assert result_roc.histsize < result_all.histsize
    assert 2007. <= result_roc.history[0] <= 2008.
    assert result_roc.sigma < result_all.sigma


def test_history_bp(unstable_history_series):
    result = bfastmonitor(unstable_history_series, start=2012, history='BP')
    assert result.history[0] == pytest.approx(2008., abs=1 / 23 + 1e-9)
    assert result.histsize == 4 * 23


def test_history_start(unstable_history_series):
    result = bfastmonitor(unstable_history_series, start=2012, history=2009)
    assert result.histsize == 3 * 23
    assert result.history[0] == pytest.approx(2009.)
    result = bfastmonitor(unstable_history_series, start=2012,
                          history='2009-01-01')
    assert result.histsize == 3 * 23
