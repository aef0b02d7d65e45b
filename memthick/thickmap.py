import io
import math
import os
import tempfile
from pathlib import Path
import numpy as np
import pandas as pd
from memthick import __version__
from memthick.exceptions import ProcessError, UserInputError


HEADER_LINES = [
    "@ xlabel x-coordinate [nm]",
    "@ ylabel y-coordinate [nm]",
    "@ zlabel membrane thickness [nm]",
    "@ grid --",
    "$ type colorbar",
    "$ colormap rainbow",
]

AVERAGE_PREFIX = "# Average membrane thickness:"


class ThicknessMap:
    """Membrane thickness in each bin of the grid together with the average thickness.

    Parameters
    ----------
    cells : pandas.DataFrame
        Data frame with columns x, y (bin centers) and thickness, one row per bin in row-major order. Bins with
        insufficient number of samples have NaN thickness.
    average : float
        Average thickness over all bins with defined thickness, NaN if there is no such bin.
    shape : tuple of int, optional
        Shape (n_y, n_x) of the grid.
    """

    def __init__(self, cells, average, shape=None):
        self.cells = cells
        self.average = average
        self.shape = shape

    @property
    def n_defined(self):
        return int(np.count_nonzero(np.isfinite(self.cells["thickness"].to_numpy())))

    def to_grid(self):
        """Get the thickness as a 2D array of shape (n_y, n_x)."""
        if self.shape is None:
            n_x = self.cells["x"].nunique()
            n_y = self.cells["y"].nunique()
            shape = (n_y, n_x)
        else:
            shape = self.shape

        return self.cells["thickness"].to_numpy().reshape(shape)

    def __repr__(self):
        return f"ThicknessMap(n_cells={len(self.cells)}, n_defined={self.n_defined}, average={self.average})"


def mean_defined(thickness_values):
    """Average of the finite values, NaN if there are none."""
    values = np.asarray(thickness_values, dtype=float)
    values = values[np.isfinite(values)]

    if values.size == 0:
        return math.nan

    return float(values.mean())


def compute_thickness_map(upper_sum, upper_count, lower_sum, lower_count, min_samples):
    """Compute membrane thickness in each bin from the accumulated grids.

    Parameters
    ----------
    upper_sum : GridMap
        Sum of distances of upper leaflet headgroups from the membrane center.
    upper_count : GridMap
        Number of upper leaflet headgroup samples.
    lower_sum : GridMap
        Sum of distances of lower leaflet headgroups from the membrane center.
    lower_count : GridMap
        Number of lower leaflet headgroup samples.
    min_samples : int
        Minimal number of samples of each leaflet required in a bin to calculate its thickness.

    Returns
    -------
    ThicknessMap
        Thickness in all bins and the average thickness.

    Raises
    ------
    UserInputError
        If min_samples is lower than 1.
    ProcessError
        If the grids do not share the same geometry.

    Notes
    -----
    Thickness of a bin is the difference between the average position of the upper and the lower leaflet
    headgroups. It is NaN if any of the leaflets has fewer than min_samples samples in the bin.
    """
    if not isinstance(min_samples, (int, np.integer)) or min_samples < 1:
        raise UserInputError(f"Minimal number of samples must be a positive integer, not {min_samples}.")

    grids = (upper_sum, upper_count, lower_sum, lower_count)
    geometry = upper_sum.geometry
    if any(grid.geometry != geometry for grid in grids[1:]):
        raise ProcessError("Grids used to compute membrane thickness do not have the same geometry.")

    rows = []
    for (x, y, u_sum), (_, _, u_count), (_, _, l_sum), (_, _, l_count) in zip(
        upper_sum.extract_raw(), upper_count.extract_raw(), lower_sum.extract_raw(), lower_count.extract_raw()
    ):
        if u_count < min_samples or l_count < min_samples:
            thickness = math.nan
        else:
            thickness = u_sum / u_count - l_sum / l_count

        rows.append((x, y, thickness))

    cells = pd.DataFrame(rows, columns=["x", "y", "thickness"])

    return ThicknessMap(cells, mean_defined(cells["thickness"]), shape=geometry.shape)


def _format_value(value, width, precision):
    if math.isnan(value):
        return f"{'NaN':>{width}}"
    return f"{value:{width}.{precision}f}"


def write_map(output_path, thickness_map, command_line=None):
    """Write the thickness map into a text file.

    Parameters
    ----------
    output_path : str or Path
        Path to the output file.
    thickness_map : ThicknessMap
        Map to write.
    command_line : list of str or str, optional
        Command line used to run the analysis, stored in the header.

    Returns
    -------
    None

    Notes
    -----
    Each bin is written on one line as: x-center, y-center, thickness. The average thickness is written as
    a comment at the end of the file.

    The map is written into a temporary file in the output directory which then replaces the output file, so a
    failed write leaves any existing file untouched.
    """
    if command_line is None:
        command_line = ""
    elif not isinstance(command_line, str):
        command_line = " ".join(command_line)

    output_dir = os.path.dirname(os.path.abspath(output_path))
    fd, temp_path = tempfile.mkstemp(prefix=".memthick-", suffix=".tmp", dir=output_dir)

    try:
        with os.fdopen(fd, "w") as output:
            output.write(f"# Generated with memthick v{__version__}.\n")
            output.write(f"# Command line: {command_line}\n")
            output.write("# See the average membrane thickness at the end of this file.\n")
            for line in HEADER_LINES:
                output.write(line + "\n")

            for x, y, thickness in thickness_map.cells[["x", "y", "thickness"]].itertuples(index=False):
                output.write(
                    f"{_format_value(x, 12, 6)} {_format_value(y, 12, 6)} {_format_value(thickness, 12, 4)}\n"
                )

            output.write(f"{AVERAGE_PREFIX} {_format_value(thickness_map.average, 12, 4)} nm\n")

        os.chmod(temp_path, 0o644)
        os.replace(temp_path, output_path)
    except BaseException:
        if os.path.exists(temp_path):
            os.remove(temp_path)
        raise


def read_map(input_path):
    """Read a thickness map written by :meth:`write_map`.

    Parameters
    ----------
    input_path : str or Path
        Path to the map file.

    Returns
    -------
    ThicknessMap
        The map. Thickness values are rounded to the precision of the file.

    Raises
    ------
    UserInputError
        If the file does not contain any bins.
    """
    data_lines = []
    average = math.nan

    for line in Path(input_path).read_text().splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith(AVERAGE_PREFIX):
            average = float(stripped[len(AVERAGE_PREFIX) :].split()[0])
        elif stripped[0] in "#@$":
            continue
        else:
            data_lines.append(stripped)

    if not data_lines:
        raise UserInputError(f"The file {input_path} does not contain any thickness values.")

    cells = pd.read_csv(
        io.StringIO("\n".join(data_lines)), sep=r"\s+", header=None, names=["x", "y", "thickness"], dtype=float
    )

    return ThicknessMap(cells, average)
