import math
import numpy as np
from memthick.exceptions import InvalidGridError, ProcessError


def _identity(value):
    return value


def _check_castable(values, dtype):
    values = np.asarray(values)
    if not np.can_cast(values.dtype, dtype, casting="same_kind"):
        raise ProcessError(f"Cannot add values of type {values.dtype} to a grid of type {dtype}.")

    return values


def _parse_range(value_range, axis_name):
    try:
        low, high = (float(v) for v in value_range)
    except (TypeError, ValueError) as e:
        raise InvalidGridError(f"The {axis_name}-range must be a pair of numbers, not {value_range}.") from e

    if not (math.isfinite(low) and math.isfinite(high)):
        raise InvalidGridError(f"The {axis_name}-range must be finite, not ({low}, {high}).")

    if low > high:
        raise InvalidGridError(
            f"Minimum grid {axis_name}-value ({low}) cannot be higher than the maximum grid {axis_name}-value ({high})."
        )

    return low, high


def _parse_cellsize(cellsize):
    if np.isscalar(cellsize):
        cellsize = (cellsize, cellsize)

    try:
        size_x, size_y = (float(v) for v in cellsize)
    except (TypeError, ValueError) as e:
        raise InvalidGridError(f"Bin size must be a number or a pair of numbers, not {cellsize}.") from e

    for size in (size_x, size_y):
        if not math.isfinite(size) or size <= 0.0:
            raise InvalidGridError(f"Bin size must be a positive number, not {size}.")

    return size_x, size_y


class GridGeometry:
    """Rectangular region of the xy-plane split into equally sized bins.

    The geometry is shared by all grids that have to be combined cell by cell, so that their cells are always in
    one-to-one spatial correspondence.

    Parameters
    ----------
    xrange : tuple of float
        Minimum and maximum x-coordinate of the grid.
    yrange : tuple of float
        Minimum and maximum y-coordinate of the grid.
    cellsize : float or tuple of float
        Size of a bin along x and y. A single number is used for both dimensions.

    Raises
    ------
    InvalidGridError
        If any of the ranges is inverted or not finite, or if the bin size is not positive.

    Notes
    -----
    The number of bins along an axis is ceil((max - min) / size), but at least one. The covered region is half-open,
    i.e. [xmin, xmax) x [ymin, ymax).

    Examples
    --------
    >>> geometry = GridGeometry((0.0, 10.0), (0.0, 10.0), 5.0)
    >>> geometry.shape
    (2, 2)
    """

    def __init__(self, xrange, yrange, cellsize):
        self.xmin, self.xmax = _parse_range(xrange, "x")
        self.ymin, self.ymax = _parse_range(yrange, "y")
        self.size_x, self.size_y = _parse_cellsize(cellsize)

        self.n_x = max(1, math.ceil((self.xmax - self.xmin) / self.size_x))
        self.n_y = max(1, math.ceil((self.ymax - self.ymin) / self.size_y))

    @property
    def shape(self):
        """Shape of the grid arrays in row-major order, i.e. (number of y-bins, number of x-bins)."""
        return self.n_y, self.n_x

    @property
    def n_cells(self):
        return self.n_x * self.n_y

    def _key(self):
        return (self.xmin, self.xmax, self.ymin, self.ymax, self.size_x, self.size_y)

    def __eq__(self, other):
        if not isinstance(other, GridGeometry):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self):
        return hash(self._key())

    def __repr__(self):
        return (
            f"GridGeometry(xrange=({self.xmin}, {self.xmax}), yrange=({self.ymin}, {self.ymax}), "
            f"cellsize=({self.size_x}, {self.size_y}))"
        )

    def contains(self, x, y):
        return self.xmin <= x < self.xmax and self.ymin <= y < self.ymax

    def cell_index(self, x, y):
        """Get the (row, column) of the bin containing the point (x, y).

        Parameters
        ----------
        x : float
            The x-coordinate of the point.
        y : float
            The y-coordinate of the point.

        Returns
        -------
        tuple of int or None
            Row (y-bin) and column (x-bin) of the bin, or None if the point lies outside of the grid.
        """
        if not self.contains(x, y):
            return None

        # rounding can push a coordinate just below max into a non-existent bin
        col = min(int(math.floor((x - self.xmin) / self.size_x)), self.n_x - 1)
        row = min(int(math.floor((y - self.ymin) / self.size_y)), self.n_y - 1)

        return row, col

    def cell_indices(self, xs, ys):
        """Vectorized version of :meth:`cell_index`.

        Parameters
        ----------
        xs : array-like
            The x-coordinates of the points.
        ys : array-like
            The y-coordinates of the points, same length as `xs`.

        Returns
        -------
        rows : ndarray
            Rows of the bins for the points lying inside the grid.
        cols : ndarray
            Columns of the bins for the points lying inside the grid.
        inside : ndarray
            Boolean mask of the points lying inside the grid.
        """
        xs = np.asarray(xs, dtype=float)
        ys = np.asarray(ys, dtype=float)

        if xs.shape != ys.shape:
            raise ValueError(f"Coordinates have different shapes: {xs.shape} and {ys.shape}.")

        # comparisons with NaN are False so unresolved points end up outside
        inside = (xs >= self.xmin) & (xs < self.xmax) & (ys >= self.ymin) & (ys < self.ymax)

        cols = np.floor((xs[inside] - self.xmin) / self.size_x).astype(np.int64)
        rows = np.floor((ys[inside] - self.ymin) / self.size_y).astype(np.int64)

        cols = np.minimum(cols, self.n_x - 1)
        rows = np.minimum(rows, self.n_y - 1)

        return rows, cols, inside

    def cell_centers(self):
        """Centers of all bins.

        Returns
        -------
        centers_x : ndarray
            Array of shape (n_y, n_x) with x-coordinates of the bin centers.
        centers_y : ndarray
            Array of shape (n_y, n_x) with y-coordinates of the bin centers.
        """
        centers_x = self.xmin + (np.arange(self.n_x) + 0.5) * self.size_x
        centers_y = self.ymin + (np.arange(self.n_y) + 0.5) * self.size_y

        return np.meshgrid(centers_x, centers_y)


class GridCell:
    """Mutable handle to a single bin of a :class:`GridMap`."""

    __slots__ = ("_data", "row", "col")

    def __init__(self, data, row, col):
        self._data = data
        self.row = row
        self.col = col

    @property
    def value(self):
        return self._data[self.row, self.col].item()

    @value.setter
    def value(self, new_value):
        _check_castable(new_value, self._data.dtype)
        self._data[self.row, self.col] = new_value

    def __iadd__(self, other):
        _check_castable(other, self._data.dtype)
        self._data[self.row, self.col] += other
        return self

    def __repr__(self):
        return f"GridCell(row={self.row}, col={self.col}, value={self.value})"


class GridMap:
    """Two-dimensional grid of accumulators.

    Each bin holds one accumulator (e.g. a sum of values or a number of samples) that is updated every time a point
    falls into the bin. Points outside of the grid are ignored. The accumulated values are read out with
    :meth:`extract_raw` which applies the extractor to each of them.

    Parameters
    ----------
    geometry : GridGeometry
        Region covered by the grid and the size of its bins.
    zero : int or float, default=0.0
        Initial value of all bins. Its type determines the type of the accumulators, i.e. 0.0 gives a grid of float
        sums and 0 a grid of integer counts.
        Adding values of a wider kind, e.g. floats to a grid of integer counts, raises ProcessError.
    extractor : callable, optional
        Function converting an accumulated value into the reported value. Defaults to identity.

    Examples
    --------
    >>> counts = GridMap(GridGeometry((0.0, 10.0), (0.0, 10.0), 5.0), zero=0)
    >>> counts.add_at(1.0, 1.0, 1)
    True
    >>> next(counts.extract_raw())
    (2.5, 2.5, 1)
    """

    def __init__(self, geometry, zero=0.0, extractor=None):
        if not isinstance(geometry, GridGeometry):
            raise InvalidGridError(f"Grid geometry must be an instance of GridGeometry, not {type(geometry)}.")

        self.geometry = geometry
        self.zero = zero
        self.extractor = extractor if extractor is not None else _identity
        self._data = np.full(geometry.shape, zero, dtype=np.asarray(zero).dtype)

    @classmethod
    def from_ranges(cls, xrange, yrange, cellsize, extractor=None, zero=0.0):
        return cls(GridGeometry(xrange, yrange, cellsize), zero=zero, extractor=extractor)

    @property
    def shape(self):
        return self._data.shape

    @property
    def dtype(self):
        return self._data.dtype

    @property
    def values(self):
        """Copy of the raw accumulators as an array of shape (n_y, n_x)."""
        return self._data.copy()

    def get_cell(self, x, y):
        """Get the bin containing the point (x, y).

        Parameters
        ----------
        x : float
            The x-coordinate of the point.
        y : float
            The y-coordinate of the point.

        Returns
        -------
        GridCell or None
            Mutable handle to the bin, or None if the point lies outside of the grid.
        """
        index = self.geometry.cell_index(x, y)
        if index is None:
            return None

        return GridCell(self._data, *index)

    def add_at(self, x, y, value):
        """Add value to the bin containing the point (x, y).

        Returns
        -------
        bool
            True if the point was inside the grid and the value was added, False otherwise.
        """
        cell = self.get_cell(x, y)
        if cell is None:
            return False

        cell += value
        return True

    def accumulate(self, xs, ys, values):
        """Add values to the bins containing the points (xs, ys).

        Parameters
        ----------
        xs : array-like
            The x-coordinates of the points.
        ys : array-like
            The y-coordinates of the points.
        values : array-like or scalar
            Values to add, one per point. A scalar is added for every point.

        Returns
        -------
        int
            Number of points that were inside the grid.

        Notes
        -----
        Uses unbuffered numpy.add.at so that several points in the same bin are all added. The result does not
        depend on the order of the points.
        """
        rows, cols, inside = self.geometry.cell_indices(xs, ys)
        values = _check_castable(values, self._data.dtype).astype(self._data.dtype)
        values = np.broadcast_to(values, inside.shape)[inside]

        np.add.at(self._data, (rows, cols), values)

        return int(np.count_nonzero(inside))

    def extract_raw(self):
        """Iterate over all bins in row-major order (x changes fastest).

        Yields
        ------
        tuple
            Center x-coordinate, center y-coordinate and the extracted value of the bin.
        """
        centers_x, centers_y = self.geometry.cell_centers()
        for center_x, center_y, value in zip(centers_x.ravel(), centers_y.ravel(), self._data.ravel()):
            yield float(center_x), float(center_y), self.extractor(value.item())

    def __repr__(self):
        return f"GridMap({self.geometry!r}, dtype={self._data.dtype})"
