"""
Sparsity pattern construction and compressed-row sparse matrix storage.
"""

import logging

import numpy as np
import numpy.typing as npt
from scipy import sparse
from typing import Tuple, Union

logger = logging.getLogger(__name__)


class SparsityPattern:
    """
    Compressed-row pattern of the entries that may be nonzero.

    Attributes:
        n_rows: Matrix size (square)
        indptr: Row pointer array, shape (n_rows + 1,)
        indices: Column index of each stored entry, sorted within each row
    """

    def __init__(self, n_rows: int, rows: npt.ArrayLike, cols: npt.ArrayLike):
        """
        Build the pattern from a list of (row, column) pairs.

        Duplicate pairs are merged.

        Args:
            n_rows: Matrix size
            rows: Row index of each pair
            cols: Column index of each pair
        """
        rows = np.asarray(rows, dtype=np.int64)
        cols = np.asarray(cols, dtype=np.int64)
        if rows.size and (rows.min() < 0 or max(rows.max(), cols.max()) >= n_rows or cols.min() < 0):
            raise ValueError("Sparsity pattern entry out of range")

        self.n_rows = int(n_rows)
        keys = np.unique(rows * self.n_rows + cols)
        self._keys = keys
        self.indices = keys % self.n_rows if self.n_rows else keys
        row_of_entry = keys // self.n_rows if self.n_rows else keys
        self.indptr = np.zeros(self.n_rows + 1, dtype=np.int64)
        np.cumsum(np.bincount(row_of_entry, minlength=self.n_rows), out=self.indptr[1:])
        self.row_of_entry = row_of_entry

    @classmethod
    def from_dof_handler(cls, dof_handler) -> "SparsityPattern":
        """
        Couple every pair of dofs that share a cell.

        Constrained dofs are replaced by their masters, and every diagonal
        entry is present.

        Args:
            dof_handler: DoFHandler with distributed dofs

        Returns:
            SparsityPattern of size n_dofs
        """
        rows = [np.arange(dof_handler.n_dofs)]
        cols = [np.arange(dof_handler.n_dofs)]
        for dofs in dof_handler.cell_dofs:
            targets, _ = dof_handler.expand(dofs)
            rows.append(np.repeat(targets, len(targets)))
            cols.append(np.tile(targets, len(targets)))

        pattern = cls(dof_handler.n_dofs, np.concatenate(rows), np.concatenate(cols))
        logger.info("Sparsity pattern: %d rows, %d entries", pattern.n_rows, pattern.n_nonzero)
        return pattern

    @property
    def n_nonzero(self) -> int:
        return int(self.indices.size)

    def row(self, i: int) -> npt.NDArray[np.int64]:
        """Column indices stored in row i."""
        return self.indices[self.indptr[i] : self.indptr[i + 1]]

    def exists(self, i: int, j: int) -> bool:
        key = i * self.n_rows + j
        position = np.searchsorted(self._keys, key)
        return bool(position < self._keys.size and self._keys[position] == key)

    def positions(self, rows: npt.ArrayLike, cols: npt.ArrayLike) -> npt.NDArray[np.int64]:
        """
        Storage positions of (row, col) pairs.

        Raises:
            KeyError: if a pair is not part of the pattern
        """
        keys = np.asarray(rows, dtype=np.int64) * self.n_rows + np.asarray(cols, dtype=np.int64)
        position = np.searchsorted(self._keys, keys)
        valid = position < self._keys.size
        valid[valid] = self._keys[position[valid]] == keys[valid]
        if not np.all(valid):
            missing = keys[~valid][0]
            raise KeyError(f"Entry ({missing // self.n_rows}, {missing % self.n_rows}) is not in the sparsity pattern")
        return position

    def is_symmetric(self) -> bool:
        transposed = np.sort(self.indices * self.n_rows + self.row_of_entry)
        return bool(np.array_equal(transposed, self._keys))


class SparseMatrix:
    """
    Square sparse matrix in compressed-row storage over a fixed pattern.
    """

    def __init__(self, pattern: SparsityPattern):
        self.pattern = pattern
        self.data = np.zeros(pattern.n_nonzero)

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.pattern.n_rows, self.pattern.n_rows)

    @property
    def n_nonzero(self) -> int:
        return self.pattern.n_nonzero

    def copy(self) -> "SparseMatrix":
        """Matrix with the same pattern and a copy of the values."""
        other = SparseMatrix(self.pattern)
        other.data = self.data.copy()
        return other

    def reset(self) -> None:
        """Set all stored values to zero, keeping the pattern."""
        self.data[:] = 0.0

    def add(self, rows: npt.ArrayLike, cols: npt.ArrayLike, values: npt.ArrayLike) -> None:
        """
        Scatter-add values; repeated (row, col) pairs are summed.

        Args:
            rows, cols, values: Arrays of equal length
        """
        positions = self.pattern.positions(rows, cols)
        np.add.at(self.data, positions, np.asarray(values, dtype=np.float64))

    def add_local(self, dofs: npt.NDArray[np.int64], local_matrix: npt.NDArray[np.float64]) -> None:
        """Add a dense local matrix at the given global dofs."""
        n = len(dofs)
        self.add(np.repeat(dofs, n), np.tile(dofs, n), np.ravel(local_matrix))

    def get(self, i: int, j: int) -> float:
        """Entry (i, j); zero for entries outside the pattern."""
        if not self.pattern.exists(i, j):
            return 0.0
        return float(self.data[self.pattern.positions([i], [j])[0]])

    def diagonal(self) -> npt.NDArray[np.float64]:
        """
        Extract the main diagonal.

        Returns:
            Array of shape (n_rows,); zero where no diagonal entry is stored
        """
        n = self.pattern.n_rows
        diagonal = np.zeros(n)
        on_diagonal = self.pattern.indices == self.pattern.row_of_entry
        diagonal[self.pattern.row_of_entry[on_diagonal]] = self.data[on_diagonal]
        return diagonal

    def matvec(self, x: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """Compute A @ x."""
        products = self.data * np.asarray(x)[self.pattern.indices]
        return np.bincount(self.pattern.row_of_entry, weights=products, minlength=self.pattern.n_rows)

    def __matmul__(self, x):
        return self.matvec(x)

    def to_dense(self) -> npt.NDArray[np.float64]:
        return self.to_scipy().toarray()

    def to_scipy(self) -> sparse.csr_matrix:
        """Copy into a scipy.sparse CSR matrix."""
        return sparse.csr_matrix(
            (self.data.copy(), self.pattern.indices.copy(), self.pattern.indptr.copy()),
            shape=self.shape,
        )

    def is_symmetric(self, tol: float = 1e-12) -> bool:
        """Check A[i, j] == A[j, i] up to ``tol`` relative to the largest entry."""
        if not self.pattern.is_symmetric():
            return False
        transposed = self.pattern.positions(self.pattern.indices, self.pattern.row_of_entry)
        scale = max(1.0, float(np.max(np.abs(self.data), initial=0.0)))
        return bool(np.all(np.abs(self.data - self.data[transposed]) <= tol * scale))

    def frobenius_norm(self) -> float:
        return float(np.linalg.norm(self.data))


MatrixLike = Union[SparseMatrix, npt.NDArray[np.float64]]
