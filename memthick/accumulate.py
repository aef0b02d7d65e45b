from dataclasses import dataclass
import logging
import numpy as np
from tqdm import tqdm
from memthick.gridmap import GridMap
from memthick.leaflets import classify_markers, periodic_center
from memthick.exceptions import TrajectoryError


@dataclass
class Frame:
    """Positions needed to process a single trajectory frame.

    Attributes
    ----------
    lipids : ndarray
        Positions of all membrane lipid atoms, shape (N, 3).
    heads : ndarray
        Positions of the headgroup marker atoms, shape (M, 3).
    box : ndarray or None
        Lengths of the orthogonal simulation box of the frame.
    time : float, optional
        Simulation time of the frame.
    """

    lipids: np.ndarray
    heads: np.ndarray
    box: np.ndarray
    time: float = None


def check_frame(frame):
    """Validate a frame before any of its data is accumulated.

    Raises
    ------
    TrajectoryError
        If the box is missing or degenerate, or if any position is not finite.
    """
    if frame.box is None:
        raise TrajectoryError(f"Simulation box is not defined for the frame at time {frame.time}.")

    box = np.asarray(frame.box, dtype=float)
    if box.shape != (3,) or not np.all(np.isfinite(box)) or np.any(box <= 0.0):
        raise TrajectoryError(f"Invalid simulation box {box} in the frame at time {frame.time}.")

    for name, positions in (("lipid", frame.lipids), ("headgroup", frame.heads)):
        positions = np.asarray(positions, dtype=float)
        if positions.ndim != 2 or positions.shape[1] != 3:
            raise TrajectoryError(f"Unexpected shape {positions.shape} of {name} positions at time {frame.time}.")
        if not np.all(np.isfinite(positions)):
            raise TrajectoryError(f"Positions of some {name} atoms could not be resolved at time {frame.time}.")


class ThicknessAccumulator:
    """Accumulate headgroup positions of both leaflets into grids, frame by frame.

    Four grids are created from one geometry: sum of distances from the membrane center and number of samples,
    each for the upper and for the lower leaflet.

    Parameters
    ----------
    geometry : GridGeometry
        Region of the xy-plane to analyze and the bin size.
    axis : int, default=2
        Dimension of the membrane normal.
    """

    def __init__(self, geometry, axis=2):
        self.geometry = geometry
        self.axis = axis

        self.upper_sum = GridMap(geometry, zero=0.0)
        self.upper_count = GridMap(geometry, zero=0)
        self.lower_sum = GridMap(geometry, zero=0.0)
        self.lower_count = GridMap(geometry, zero=0)

        self.n_frames = 0
        self.n_samples = 0
        self.n_dropped = 0

    @property
    def grids(self):
        return self.upper_sum, self.upper_count, self.lower_sum, self.lower_count

    def add_frame(self, frame):
        """Classify all headgroup markers of the frame and add them to the grids.

        Parameters
        ----------
        frame : Frame
            Frame to process.

        Raises
        ------
        TrajectoryError
            If the frame data are malformed. Nothing is accumulated in such case.
        """
        check_frame(frame)

        center = periodic_center(frame.lipids, frame.box)
        xs, ys, offsets, upper = classify_markers(frame.heads, center, frame.box, axis=self.axis)
        lower = ~upper

        accepted = self.upper_sum.accumulate(xs[upper], ys[upper], offsets[upper])
        self.upper_count.accumulate(xs[upper], ys[upper], 1)

        accepted += self.lower_sum.accumulate(xs[lower], ys[lower], offsets[lower])
        self.lower_count.accumulate(xs[lower], ys[lower], 1)

        self.n_frames += 1
        self.n_samples += accepted
        self.n_dropped += len(offsets) - accepted

    def run(self, frames, progress=False, logger: logging.Logger = None):
        """Process all frames in the order they are provided.

        Parameters
        ----------
        frames : iterable of Frame
            Frames to process. Can be a lazy generator, only one frame is held at a time.
        progress : bool, default=False
            Whether to show a progress bar.
        logger : logging.Logger, optional
            Logger instance for status messages.

        Returns
        -------
        ThicknessAccumulator
            The accumulator itself.
        """
        log_msg = lambda msg: logger.info(msg) if logger else print(msg)

        for frame in tqdm(frames, desc="Processing frames", unit="frame", disable=not progress):
            self.add_frame(frame)

        log_msg(f"Processed {self.n_frames} frames")
        log_msg(f"Headgroup samples inside the grid: {self.n_samples}, outside the grid: {self.n_dropped}")

        return self
