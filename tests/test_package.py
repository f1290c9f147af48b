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

import os

import vibreak
from vibreak import data


def test_version():
    assert isinstance(vibreak.__version__, str)
    assert vibreak.__version__


def test_namespace_path():
    # Subpackages resolve through the extended package path
    assert any(os.path.isdir(os.path.join(path, 'monitor'))
               for path in vibreak.__path__)
    assert data.__name__ == 'vibreak.data'
