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
import numpy.typing as npt

# Typing alias for better linting
ndarray_f64 = npt.NDArray[np.float64]

# Smallest pivot accepted during elimination
PIVOT_EPS = 1e-15


class SingularMatrixError(np.linalg.LinAlgError):
    """
    Raised when a 3x3 system has no usable pivot
    """


def solve3x3(A: ndarray_f64, b: ndarray_f64) -> ndarray_f64:
    """
    Solve A x = b with Gaussian elimination and partial pivoting

    Parameters:
    A: np.array of shape (3,3)
    b: np.array of shape (3,)

    Returns:
    np.array(3,) with the solution

    Raises SingularMatrixError when the largest pivot candidate of any
    column is below PIVOT_EPS
    """

    n = 3
    M = np.zeros((n, n + 1))
    M[:, :n] = np.asarray(A, dtype=np.float64).reshape(n, n)
    M[:, n] = np.asarray(b, dtype=np.float64).reshape(n)

    for k in range(n):
        piv = k + int(np.argmax(np.abs(M[k:, k])))
        if np.abs(M[piv, k]) < PIVOT_EPS:
            raise SingularMatrixError(f"Pivot below {PIVOT_EPS:g} in column {k}")

        if piv != k:
            M[[k, piv], k:] = M[[piv, k], k:]

        M[k, k:] = M[k, k:] / M[k, k]
        for i in range(k + 1, n):
            M[i, k:] -= M[i, k] * M[k, k:]

    # Back substitution
    x = np.zeros(n)
    for i in range(n - 1, -1, -1):
        x[i] = (M[i, n] - np.dot(M[i, i + 1 : n], x[i + 1 :])) / M[i, i]

    return x


def invert3x3(A: ndarray_f64) -> ndarray_f64:
    """
    Invert A column by column, solving A x_i = e_i
    """

    inv = np.zeros((3, 3))
    for i in range(3):
        e = np.zeros(3)
        e[i] = 1.0
        inv[:, i] = solve3x3(A, e)

    return inv


def multiply3x3(A: ndarray_f64, B: ndarray_f64) -> ndarray_f64:
    R = np.zeros((3, 3))
    for i in range(3):
        for j in range(3):
            for k in range(3):
                R[i, j] += A[i, k] * B[k, j]

    return R


def transpose3x3(A: ndarray_f64) -> ndarray_f64:
    R = np.zeros((3, 3))
    for i in range(3):
        for j in range(3):
            R[i, j] = A[j, i]

    return R


def determinant3x3(A: ndarray_f64) -> float:
    # Cofactor expansion along the first row
    return float(
        A[0, 0] * (A[1, 1] * A[2, 2] - A[1, 2] * A[2, 1])
        - A[0, 1] * (A[1, 0] * A[2, 2] - A[1, 2] * A[2, 0])
        + A[0, 2] * (A[1, 0] * A[2, 1] - A[1, 1] * A[2, 0])
    )
