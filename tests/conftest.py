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

import pytest
import numpy as np
import pandas as pd

from vibreak import data
from vibreak.regularize import RegularSeries, regularize
from vibreak.utils import build_regressors


@pytest.fixture
def modis_dates_8y():
    """Nominal dates of 8 years (2005-2012) of a 16-day product"""
    return data.modis_dates(2005, 8)


@pytest.fixture
def flat_step_series():
    """Flat series at 0.5 for 7 years followed by a year at 0.1

    23 observations per year, no seasonality, trend or noise
    """
    values = np.full(8 * 23, 0.5)
    values[7 * 23:] = 0.1
    return RegularSeries(values, start=(2005, 0), period=23, step=16)


@pytest.fixture
def harmonic_series():
    """Noise free series following exactly a first order harmonic model"""
    index = np.arange(8 * 23)
    X = build_regressors(index, 23, trend=True, harmonic_order=1)
    values = np.dot(X, np.array([0.6, 0.0005, 0.1, -0.05]))
    return RegularSeries(values, start=(2005, 0), period=23, step=16)


@pytest.fixture
def noisy_break_series(modis_dates_8y):
    """Seasonal series with a drop of 0.3 at position 165 (2012 + 4 slots)"""
    values = data.make_ts(modis_dates_8y, break_idx=165, magnitude=-0.3,
                          sigma_noise=0.02, seed=42)
    return regularize(values, modis_dates_8y)


@pytest.fixture
def unstable_history_series():
    """Series without seasonality at 0.3 until 2008 and 0.7 afterwards"""
    dates = data.modis_dates(2005, 8)
    values = data.make_ts(dates, break_idx=3 * 23, intercept=0.3,
                          amplitude=0, magnitude=0.4, sigma_noise=0.01,
                          seed=1)
    return regularize(values, dates)


@pytest.fixture
def irregular_observations():
    """Observations with duplicated dates, a day 366 and a single
    observation in the last year"""
    dates = pd.to_datetime(['2010-01-01', '2010-01-17', '2010-01-17',
                            '2010-02-02', '2010-03-06', '2010-12-31',
                            '2011-01-17', '2011-02-02', '2012-12-31'])
    values = np.array([0.2, 0.4, 0.6, 0.5, np.nan, 0.3, 0.7, 0.8, 0.9])
    return dates, values
