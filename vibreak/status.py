"""Status codes reported per time-series

The same codes are used for the ``status`` attribute of single time-series
results and for the ``mask`` layer of the raster classes
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

NOT_MONITORED = 0
NO_BREAK = 1
NO_MONITORING_DATA = 2
BREAK = 3
INSUFFICIENT_DATA = 4

STATUS = {NOT_MONITORED: 'Not monitored',
          NO_BREAK: 'No break',
          NO_MONITORING_DATA: 'No monitoring observations',
          BREAK: 'Break detected',
          INSUFFICIENT_DATA: 'Not enough observations'}
