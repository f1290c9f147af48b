"""Quality screening of vegetation index observations

MODIS vegetation index products ship a per pixel reliability layer. The
function of this module discards observations whose quality flag is not
accepted, before regularization and break detection.
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

import numpy as np
import xarray as xr


PIXEL_RELIABILITY = {-1: 'Fill/No data',
                     0: 'Good data',
                     1: 'Marginal data',
                     2: 'Snow/Ice',
                     3: 'Cloudy'}


def mask_quality(values, qa, accepted=(0, 1), scale_factor=None):
    """Replace observations with a non accepted quality flag by ``np.nan``

    Args:
        values (numpy.ndarray or xarray.DataArray): Vegetation index values
        qa (numpy.ndarray or xarray.DataArray): Quality flags, same shape as
            ``values``. See ``PIXEL_RELIABILITY`` for the MODIS codes
        accepted (tuple): Quality flags of the observations to keep. Defaults
            to good and marginal data
        scale_factor (float): Optional factor applied to the kept values
            (``0.0001`` converts MODIS integer NDVI to the [-1, 1] range)

    Returns:
        Same type as ``values``, float with ``np.nan`` for discarded
        observations

    Examples:
        >>> import numpy as np
        >>> from vibreak.quality import mask_quality
        >>> mask_quality(np.array([8000, 7500, 3000]), np.array([0, 1, 3]),
        ...              scale_factor=0.0001)
        array([0.8 , 0.75,  nan])
    """
    if isinstance(values, xr.DataArray):
        if not isinstance(qa, xr.DataArray):
            qa = xr.DataArray(qa, dims=values.dims, coords=values.coords)
        out = values.astype(np.float64).where(qa.isin(list(accepted)))
    else:
        values = np.asarray(values, dtype=np.float64)
        qa = np.asarray(qa)
        if values.shape != qa.shape:
            raise ValueError('values and qa must have the same shape')
        out = np.where(np.isin(qa, accepted), values, np.nan)
    if scale_factor is not None:
        out = out * scale_factor
    return out
