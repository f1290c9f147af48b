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

from vibreak import data


@pytest.fixture
def ndvi_cube():
    """8 years (2005-2012) of simulated 16-day NDVI over 4 x 5 pixels

    Pixels of the first row drop by 0.3 from the fifth slot of 2012 (position
    165), a pixel of the last row has no valid observation
    """
    dates = data.modis_dates(2005, 8)
    break_idx = np.full((4, 5), -1)
    break_idx[0] = 165
    cube = data.make_cube(dates, shape=(4, 5), break_idx=break_idx,
                          magnitude=-0.3, sigma_noise=0.02, n_nan=20,
                          seed=0)
    cube[:, 3, 4] = np.nan
    return cube


@pytest.fixture
def forest_mask():
    mask = np.ones((4, 5), dtype=np.uint8)
    mask[1, 0] = 0
    return mask


@pytest.fixture
def segmentation_cube():
    """Simulated cube without seasonality, pixels of the first column drop
    by 0.5 in 2008"""
    dates = data.modis_dates(2005, 8)
    break_idx = np.full((3, 3), -1)
    break_idx[:, 0] = 69
    cube = data.make_cube(dates, shape=(3, 3), break_idx=break_idx,
                          amplitude=0, magnitude=-0.5, sigma_noise=0.01,
                          seed=1)
    cube[:, 2, 2] = np.nan
    return cube


@pytest.fixture
def break_cube():
    """3 x 3 pixels all dropping by 0.3 from position 165"""
    dates = data.modis_dates(2005, 8)
    return data.make_cube(dates, shape=(3, 3), break_idx=165,
                          magnitude=-0.3, sigma_noise=0.02, seed=3)
