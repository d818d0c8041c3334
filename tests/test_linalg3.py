#   Copyright (C) IMDEA Networks Institute 2022
#   This program is free software: you can redistribute it and/or modify
#
#   it under the terms of the GNU General Public License as published by
#   the Free Software Foundation, either version 3 of the License, or
#   (at your option) any later version.
#
#   This program is distributed in the hope that it will be useful,
#   but WITHOUT ANY WARRANTY; without even the implied warranty of
#   MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#   GNU General Public License for more details.
#
#   You should have received a copy of the GNU General Public License
#   along with this program.  If not, see http://www.gnu.org/licenses/.
#

import numpy as np
import pytest
import scipy.linalg

from pygeoalt.linalg.linalg3 import (
    SingularMatrixError,
    determinant3x3,
    invert3x3,
    multiply3x3,
    solve3x3,
    transpose3x3,
)


@pytest.fixture
def A():
    return np.array([[4.0, -2.0, 1.0], [-2.0, 4.0, -2.0], [1.0, -2.0, 4.0]])


def test_solve_matches_scipy(A):
    b = np.array([11.0, -16.0, 17.0])

    np.testing.assert_allclose(solve3x3(A, b), scipy.linalg.solve(A, b), rtol=1e-12)


def test_solve_needs_pivoting():
    P = np.array([[0.0, 1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 2.0]])

    np.testing.assert_allclose(solve3x3(P, np.array([1.0, 2.0, 3.0])), [2.0, 1.0, 1.5])


def test_solve_does_not_modify_inputs(A):
    A0 = A.copy()
    b = np.array([1.0, 2.0, 3.0])
    solve3x3(A, b)

    np.testing.assert_array_equal(A, A0)
    np.testing.assert_array_equal(b, [1.0, 2.0, 3.0])


@pytest.mark.parametrize(
    "S",
    [
        np.zeros((3, 3)),
        np.array([[1.0, 2.0, 3.0], [2.0, 4.0, 6.0], [1.0, 1.0, 1.0]]),
        np.diag([1.0, 1.0, 1e-16]),
    ],
)
def test_singular(S):
    with pytest.raises(SingularMatrixError):
        solve3x3(S, np.ones(3))

    with pytest.raises(SingularMatrixError):
        invert3x3(S)


def test_singular_is_linalg_error():
    with pytest.raises(np.linalg.LinAlgError):
        invert3x3(np.zeros((3, 3)))


def test_invert(A):
    inv = invert3x3(A)

    np.testing.assert_allclose(inv, scipy.linalg.inv(A), rtol=1e-12, atol=1e-12)
    np.testing.assert_allclose(multiply3x3(A, inv), np.eye(3), atol=1e-12)


def test_multiply_transpose_determinant():
    rng = np.random.default_rng(3)
    M = rng.normal(size=(3, 3))
    N = rng.normal(size=(3, 3))

    np.testing.assert_allclose(multiply3x3(M, N), M @ N, rtol=1e-12)
    np.testing.assert_array_equal(transpose3x3(M), M.T)
    assert determinant3x3(M) == pytest.approx(scipy.linalg.det(M), rel=1e-12)
