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

import pandas as pd
import numpy as np

from vibreak.errors import DateConversionError


def build_regressors(t, period, trend=True, harmonic_order=1):
    """Build the design matrix (X) from a regular time index

    The time index counts observation slots of a regular series, ``period``
    slots making a year. Harmonic terms are therefore annual cycles and
    their multiples

    Args:
        t (numpy.ndarray): Time index of the observations
        period (int): Number of observations per year
        trend (bool): Whether to add a trend component
        harmonic_order (int): The order of the harmonic component

    Returns:
        numpy.ndarray: A design matrix with columns intercept, trend (optional),
            ``harmonic_order`` cosine terms and ``harmonic_order`` sine terms
    """
    t = np.asarray(t, dtype=np.float64)
    columns = [np.ones_like(t)]
    if trend:
        columns.append(t)
    if harmonic_order:
        angles = np.outer(t, np.arange(1, harmonic_order + 1)) \
            * 2 * np.pi / period
        columns.extend(np.cos(angles).T)
        columns.extend(np.sin(angles).T)
    return np.column_stack(columns)


def to_datetimeindex(dates):
    """Convert a sequence of date-like objects to a pandas DatetimeIndex

    Args:
        dates: Anything ``pandas.to_datetime`` understands (strings,
            ``datetime.date``, ``numpy.datetime64``, ...)

    Returns:
        pandas.DatetimeIndex

    Raises:
        DateConversionError: When at least one date cannot be converted
    """
    try:
        index = pd.DatetimeIndex(pd.to_datetime(dates))
    except (ValueError, TypeError, OverflowError) as e:
        raise DateConversionError('Could not convert dates: %s' % e) from e
    if index.hasnans:
        raise DateConversionError('Dates contain missing values')
    return index
