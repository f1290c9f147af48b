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

from vibreak import efp


@pytest.mark.parametrize("test_input,expected", [(0.01, 3.368214),
                                                 (0.05, 2.795483),
                                                 (0.1, 2.500278)])
def test_cusum_ols_test_crit(test_input, expected):
    assert efp.cusum_ols_test_crit(test_input) == pytest.approx(expected)


@pytest.mark.parametrize('alpha', [0, 1, -0.1, 2])
def test_cusum_ols_test_crit_invalid(alpha):
    with pytest.raises(ValueError):
        efp.cusum_ols_test_crit(alpha)


def test_cusum_rec_test_crit():
    assert efp.cusum_rec_test_crit(0.05) == pytest.approx(0.9478982, rel=1e-5)
    assert efp.cusum_rec_test_crit(0.01) > efp.cusum_rec_test_crit(0.05)


def test_cusum_ols_boundary():
    assert efp.cusum_ols_boundary(2., 2.795483) == \
        pytest.approx(4.1250144, rel=1e-6)
    x = np.linspace(1.01, 3, 20)
    boundary = np.array([efp.cusum_ols_boundary(v, 2.795483) for v in x])
    assert np.all(np.diff(boundary) > 0)


def test_brownian_motion_pvalue():
    assert efp._brownian_motion_pvalue(0., 1) == pytest.approx(1.)
    assert efp._brownian_motion_pvalue(0.9478982, 1) == \
        pytest.approx(0.05, abs=1e-5)
    assert efp._brownian_motion_pvalue(3., 1) < 1e-6


def test_recresid():
    rng = np.random.default_rng(0)
    X = np.c_[np.ones(30), np.arange(30.), rng.normal(size=30)]
    y = rng.normal(size=30)
    k = X.shape[1]
    rr = efp.recresid(X, y, k)
    assert np.isnan(rr[:k - 1]).all()
    for r in range(k, 30):
        X0, y0 = X[:r], y[:r]
        beta = np.linalg.lstsq(X0, y0, rcond=None)[0]
        f = 1 + X[r] @ np.linalg.inv(X0.T @ X0) @ X[r]
        expected = (y[r] - X[r] @ beta) / np.sqrt(f)
        assert rr[r] == pytest.approx(expected, rel=1e-6, abs=1e-9)


def test_history_roc_unstable():
    rng = np.random.default_rng(0)
    X = np.c_[np.ones(100), np.arange(100.)]
    y = 0.5 + rng.normal(0, 0.01, 100)
    y[:30] -= 0.5
    stable_idx = efp.history_roc(X, y)
    assert 15 <= stable_idx <= 30


def test_rec_cusum_process():
    rng = np.random.default_rng(1)
    X = np.c_[np.ones(50), np.arange(50.)]
    y = rng.normal(size=50)
    process = efp.rec_cusum_process(X, y)
    assert process.shape == (49,)
    assert process[0] == 0
    w = efp.recresid(X, y, 2)[2:]
    expected = np.cumsum(w) / (np.std(w, ddof=1) * np.sqrt(48))
    np.testing.assert_allclose(process[1:], expected)
