"""Exceptions raised when a series cannot be regularized or modelled

All exceptions derive from ``ValueError`` so that callers catching invalid
input the usual way keep working.
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


class VibreakError(ValueError):
    """Base class for all vibreak errors"""


class InsufficientDataError(VibreakError):
    """Not enough valid observations to fit the requested regression"""


class DegenerateGapError(VibreakError):
    """No calendar year holds two observations, sampling interval unknown"""


class DateConversionError(VibreakError):
    """Dates could not be converted to timestamps"""
