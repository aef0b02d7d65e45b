from dataclasses import dataclass, field, fields
import math
import numbers
import os
import yaml
import numpy as np
from memthick.exceptions import UserInputError
from memthick.gridmap import GridGeometry


def _check_number(name, value):
    if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
        raise UserInputError(f"Option {name} must be a finite number, not {value!r}.")

    return float(value)


@dataclass
class MemthickConfig:
    """Options of the membrane thickness analysis.

    Attributes
    ----------
    structure : str
        Path to a gro, pdb or tpr file with the system structure.
    trajectory : str
        Path to an xtc (or other MDAnalysis supported) trajectory.
    output : str, default="membrane_thickness.dat"
        Path to the output map.
    index : str, optional
        Path to an ndx file with groups of atoms.
    lipids : str, default="@membrane"
        Selection of the membrane lipids, used to calculate the membrane center.
    phosphates : str, default="name PO4 P"
        Selection of atoms identifying lipid headgroups, one atom per lipid.
    nan_limit : int, default=30
        Minimal number of headgroup samples of each leaflet in a bin to calculate its thickness.
    xmin, xmax, ymin, ymax : float, optional
        Grid boundaries in nm. Default to 0 and the box size.
    bin_size : tuple of float, default=(0.1, 0.1)
        Size of a grid bin along x and y in nm.
    """

    structure: str = None
    trajectory: str = None
    output: str = "membrane_thickness.dat"
    index: str = None
    lipids: str = "@membrane"
    phosphates: str = "name PO4 P"
    nan_limit: int = 30
    xmin: float = None
    xmax: float = None
    ymin: float = None
    ymax: float = None
    bin_size: tuple = field(default=(0.1, 0.1))

    @classmethod
    def field_names(cls):
        return [f.name for f in fields(cls)]

    @classmethod
    def from_yaml(cls, config_path, **overrides):
        """Create the configuration from a YAML file.

        Parameters
        ----------
        config_path : str
            Path to the YAML file with a mapping of option names to values.
        **overrides
            Options taking precedence over the file. Options set to None are ignored.

        Returns
        -------
        MemthickConfig
            The configuration. It is not validated.

        Raises
        ------
        UserInputError
            If the file does not exist, is not a mapping or contains unknown options.
        """
        if not os.path.isfile(config_path):
            raise UserInputError(f"The configuration file {config_path} does not exist.")

        with open(config_path, "r") as f:
            try:
                values = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise UserInputError(f"Could not parse the configuration file {config_path}: {e}") from e

        if values is None:
            values = {}

        if not isinstance(values, dict):
            raise UserInputError(f"The configuration file {config_path} must contain a mapping of options.")

        unknown = sorted(set(values) - set(cls.field_names()))
        if unknown:
            raise UserInputError(f"Unknown options in {config_path}: {', '.join(unknown)}")

        values.update({key: value for key, value in overrides.items() if value is not None})

        return cls(**values)

    @property
    def bin_sizes(self):
        if isinstance(self.bin_size, (list, tuple, np.ndarray)):
            sizes = [_check_number("bin_size", size) for size in self.bin_size]
        else:
            sizes = [_check_number("bin_size", self.bin_size)]

        if len(sizes) == 1:
            return sizes[0], sizes[0]
        if len(sizes) != 2:
            raise UserInputError(f"Bin size must be given as one or two numbers, not {self.bin_size}.")

        return sizes[0], sizes[1]

    def validate(self):
        """Check the options before any file is read.

        Raises
        ------
        UserInputError
            If any of the options is missing or invalid.
        """
        if not self.structure:
            raise UserInputError("Input structure file must be provided.")

        if not self.trajectory:
            raise UserInputError("Input trajectory file must be provided.")

        if not self.output:
            raise UserInputError("Output file must be provided.")

        for name in ("structure", "trajectory", "output", "index", "lipids", "phosphates"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise UserInputError(f"Option {name} must be a string, not {value!r}.")

        if isinstance(self.nan_limit, bool) or not isinstance(self.nan_limit, (int, np.integer)):
            raise UserInputError(f"NAN limit must be an integer, not {self.nan_limit}.")

        if self.nan_limit <= 0:
            raise UserInputError(f"NAN limit must be larger than 0, not {self.nan_limit}.")

        for size in self.bin_sizes:
            if size <= 0.0:
                raise UserInputError(f"Bin size must be a positive number, not {size}.")

        for name in ("xmin", "xmax", "ymin", "ymax"):
            if getattr(self, name) is not None:
                _check_number(name, getattr(self, name))

        if self.xmin is not None and self.xmax is not None and self.xmin > self.xmax:
            raise UserInputError("Minimum grid x-value cannot be higher than the maximum grid x-value.")

        if self.ymin is not None and self.ymax is not None and self.ymin > self.ymax:
            raise UserInputError("Minimum grid y-value cannot be higher than the maximum grid y-value.")

    def grid_ranges(self, box):
        """Grid boundaries, missing ones taken from the box.

        Parameters
        ----------
        box : array-like
            Box lengths in nm.

        Returns
        -------
        tuple
            (xmin, xmax), (ymin, ymax)
        """
        xmin = 0.0 if self.xmin is None else float(self.xmin)
        xmax = float(box[0]) if self.xmax is None else float(self.xmax)
        ymin = 0.0 if self.ymin is None else float(self.ymin)
        ymax = float(box[1]) if self.ymax is None else float(self.ymax)

        return (xmin, xmax), (ymin, ymax)

    def grid_geometry(self, box):
        """Create the geometry shared by all grids of the analysis.

        Raises
        ------
        InvalidGridError
            If the resolved ranges are inverted, e.g. only xmin was given and it is larger than the box.
        """
        xrange, yrange = self.grid_ranges(box)
        return GridGeometry(xrange, yrange, self.bin_sizes)
