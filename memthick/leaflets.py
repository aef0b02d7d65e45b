from collections import namedtuple
from enum import Enum
import numpy as np
from memthick.exceptions import TrajectoryError


class Leaflet(Enum):
    UPPER = "upper"
    LOWER = "lower"


MarkerSample = namedtuple("MarkerSample", ["x", "y", "leaflet", "offset"])


def _planar_axes(axis):
    if axis not in (0, 1, 2):
        raise ValueError(f"Axis must be 0, 1 or 2, not {axis}.")

    return [a for a in range(3) if a != axis]


def _as_box(box):
    if box is None:
        raise TrajectoryError("Simulation box is not defined for the current frame.")

    box = np.asarray(box, dtype=float)
    if box.shape != (3,) or not np.all(np.isfinite(box)) or np.any(box <= 0.0):
        raise TrajectoryError(f"Simulation box must consist of three positive lengths, not {box}.")

    return box


def minimum_image_distance(coordinate, reference, box_length):
    """Compute signed distance between coordinate(s) and a reference along one periodic dimension.

    Parameters
    ----------
    coordinate : float or array-like
        Coordinate(s) of the point(s).
    reference : float
        Coordinate of the reference point.
    box_length : float
        Length of the periodic box along the dimension.

    Returns
    -------
    float or ndarray
        Signed distance(s) of the shortest periodic image, in the range [-box_length/2, box_length/2].

    Examples
    --------
    >>> minimum_image_distance(9.0, 1.0, 10.0)
    -2.0
    """
    distance = np.asarray(coordinate, dtype=float) - reference
    distance = distance - box_length * np.round(distance / box_length)

    if distance.ndim == 0:
        return float(distance)

    return distance


def periodic_center(positions, box):
    """Compute geometric center of a group of atoms taking periodic boundary conditions into account.

    Parameters
    ----------
    positions : array-like
        Positions of the atoms, shape (N, 3).
    box : array-like
        Lengths of the orthogonal simulation box.

    Returns
    -------
    ndarray
        Center of the group, each coordinate lying inside the box.

    Raises
    ------
    TrajectoryError
        If the group is empty or if any of the positions is not finite.

    Notes
    -----
    Each dimension is mapped onto a circle and the center is obtained from the average angle, which gives the
    correct center also for groups split across the box boundary.

    References
    ----------
    Bai, L. and Breen, D. (2008). Calculating Center of Mass in an Unbounded 2D Environment. Journal of Graphics
    Tools, 13(4), 53-60.
    """
    box = _as_box(box)
    positions = np.asarray(positions, dtype=float).reshape(-1, 3)

    if positions.shape[0] == 0:
        raise TrajectoryError("Cannot compute center of an empty group of atoms.")

    if not np.all(np.isfinite(positions)):
        raise TrajectoryError("Positions of some atoms could not be resolved.")

    theta = positions / box * 2.0 * np.pi
    xi = np.cos(theta).mean(axis=0)
    zeta = np.sin(theta).mean(axis=0)

    theta_mean = np.arctan2(-zeta, -xi) + np.pi

    return box * theta_mean / (2.0 * np.pi)


def classify_marker(position, center, box, axis=2):
    """Assign a headgroup marker to a membrane leaflet.

    Parameters
    ----------
    position : array-like
        Position of the marker atom.
    center : array-like
        Center of the membrane in the current frame.
    box : array-like
        Lengths of the orthogonal simulation box.
    axis : int, default=2
        Dimension along which the thickness is measured (membrane normal).

    Returns
    -------
    MarkerSample
        Planar coordinates of the marker, its leaflet and its signed distance from the center along the axis.

    Notes
    -----
    A marker with positive distance belongs to the upper leaflet, any other marker (including one lying exactly on
    the membrane center) belongs to the lower leaflet. No information from previous frames is used.
    """
    box = _as_box(box)
    position = np.asarray(position, dtype=float)
    center = np.asarray(center, dtype=float)

    if position.shape != (3,) or not np.all(np.isfinite(position)):
        raise TrajectoryError(f"Position of the marker could not be resolved: {position}.")

    if center.shape != (3,) or not np.all(np.isfinite(center)):
        raise TrajectoryError(f"Membrane center could not be resolved: {center}.")

    first, second = _planar_axes(axis)
    offset = minimum_image_distance(position[axis], center[axis], box[axis])
    leaflet = Leaflet.UPPER if offset > 0.0 else Leaflet.LOWER

    return MarkerSample(float(position[first]), float(position[second]), leaflet, offset)


def classify_markers(positions, center, box, axis=2):
    """Vectorized version of :meth:`classify_marker`.

    Parameters
    ----------
    positions : array-like
        Positions of the marker atoms, shape (N, 3).
    center : array-like
        Center of the membrane in the current frame.
    box : array-like
        Lengths of the orthogonal simulation box.
    axis : int, default=2
        Dimension along which the thickness is measured (membrane normal).

    Returns
    -------
    xs : ndarray
        First planar coordinate of the markers.
    ys : ndarray
        Second planar coordinate of the markers.
    offsets : ndarray
        Signed distances of the markers from the center along the axis.
    upper : ndarray
        Boolean mask of the markers belonging to the upper leaflet.
    """
    box = _as_box(box)
    positions = np.asarray(positions, dtype=float).reshape(-1, 3)
    center = np.asarray(center, dtype=float)

    if not np.all(np.isfinite(positions)):
        raise TrajectoryError("Positions of some markers could not be resolved.")

    if center.shape != (3,) or not np.all(np.isfinite(center)):
        raise TrajectoryError(f"Membrane center could not be resolved: {center}.")

    first, second = _planar_axes(axis)
    offsets = minimum_image_distance(positions[:, axis], center[axis], box[axis])

    return positions[:, first], positions[:, second], offsets, offsets > 0.0
