import logging
import os
import numpy as np
import MDAnalysis as mda
from MDAnalysis.exceptions import SelectionError
from memthick.accumulate import Frame
from memthick.exceptions import StructureError, TrajectoryError, UserInputError


# MDAnalysis works in Angstrom, the analysis in nm
ANGSTROM_TO_NM = 0.1

MEMBRANE_MACRO = "@membrane"

MEMBRANE_RESNAMES = [
    "POPC", "POPE", "POPS", "POPG", "POPA", "POPI",
    "DPPC", "DPPE", "DPPS", "DPPG",
    "DOPC", "DOPE", "DOPS", "DOPG", "DOPA",
    "DMPC", "DMPE", "DMPG",
    "DLPC", "DLPE", "DSPC", "DSPE",
    "DAPC", "DUPC", "PAPC", "PIPC",
    "CHOL", "CHL1", "SM", "PSM", "DPSM", "DPG1", "DPG3", "PIP2", "POP2", "CDL2",
]


def read_ndx(file_path):
    """Read groups from a GROMACS index file.

    Parameters
    ----------
    file_path : str
        Path to the ndx file. Group names are enclosed in square brackets and followed by 1-based atom numbers.

    Returns
    -------
    dict
        Dictionary mapping group names to numpy arrays of 0-based atom indices, in the order of the file.

    Raises
    ------
    StructureError
        If the file does not exist or if it is not a valid index file.

    Examples
    --------
    >>> read_ndx("index.ndx")
    {'System': array([0, 1, 2, 3]), 'Membrane': array([0, 1])}
    """
    if not os.path.isfile(file_path):
        raise StructureError(f"The index file {file_path} does not exist.")

    groups = {}
    current = None

    with open(file_path, "r") as file:
        for line_number, line in enumerate(file, start=1):
            line = line.strip()
            if not line or line.startswith(";") or line.startswith("#"):
                continue

            if line.startswith("["):
                if not line.endswith("]"):
                    raise StructureError(f"Invalid group header on line {line_number} of {file_path}: {line}")
                current = line[1:-1].strip()
                groups[current] = []
                continue

            if current is None:
                raise StructureError(f"Atom numbers on line {line_number} of {file_path} do not belong to any group.")

            try:
                groups[current].extend(int(number) for number in line.split())
            except ValueError as e:
                raise StructureError(f"Invalid atom number on line {line_number} of {file_path}: {line}") from e

    return {name: np.array(numbers, dtype=np.int64) - 1 for name, numbers in groups.items()}


class MembraneSystem:
    """Molecular system with a membrane, backed by an MDAnalysis universe.

    Parameters
    ----------
    universe : MDAnalysis.Universe
        The system with its trajectory.
    groups : dict, optional
        Named groups of atoms (0-based indices), typically read from an index file.
    """

    def __init__(self, universe, groups=None):
        self.universe = universe
        self.groups = groups if groups is not None else {}

    @classmethod
    def from_files(cls, structure, trajectory=None, index=None, logger: logging.Logger = None):
        """Load the system from structure, trajectory and index files.

        Parameters
        ----------
        structure : str
            Path to a gro, pdb or tpr file with the system structure.
        trajectory : str, optional
            Path to a trajectory file (e.g. xtc). If not provided, the structure is the only frame.
        index : str, optional
            Path to an ndx file with groups of atoms.
        logger : logging.Logger, optional
            Logger instance for status messages.

        Returns
        -------
        MembraneSystem
            The loaded system.

        Raises
        ------
        StructureError
            If the structure or the index file cannot be read.
        TrajectoryError
            If the trajectory cannot be opened.
        """
        log_msg = lambda msg: logger.info(msg) if logger else print(msg)

        if not os.path.isfile(structure):
            raise StructureError(f"The structure file {structure} does not exist.")

        if trajectory is not None and not os.path.isfile(trajectory):
            raise TrajectoryError(f"The trajectory file {trajectory} does not exist.")

        log_msg(f"Reading structure from {structure}...")
        try:
            if trajectory is None:
                universe = mda.Universe(structure)
            else:
                universe = mda.Universe(structure, trajectory)
        except (OSError, ValueError, TypeError) as e:
            raise StructureError(f"Could not load the system from {structure}: {e}") from e

        log_msg(f"Number of atoms: {universe.atoms.n_atoms}")
        log_msg(f"Number of frames: {universe.trajectory.n_frames}")

        groups = None
        if index is not None:
            groups = read_ndx(index)
            log_msg(f"Read {len(groups)} groups from {index}")

        return cls(universe, groups=groups)

    def check_box(self):
        """Check that the system has an orthogonal, non-zero simulation box.

        Returns
        -------
        ndarray
            Box lengths in nm.

        Raises
        ------
        StructureError
            If the box does not exist, is not orthogonal or has zero size.
        """
        dimensions = self.universe.dimensions
        if dimensions is None:
            raise StructureError("Simulation box does not exist.")

        dimensions = np.asarray(dimensions, dtype=float)
        lengths = dimensions[:3] * ANGSTROM_TO_NM
        angles = dimensions[3:6]

        if not np.allclose(angles, 90.0, atol=1e-3):
            raise StructureError(f"Simulation box is not orthogonal (angles {angles}).")

        if not np.all(np.isfinite(lengths)) or np.any(lengths <= 0.0):
            raise StructureError(f"Simulation box is not orthogonal or has zero size (lengths {lengths} nm).")

        return lengths

    def select(self, query):
        """Select atoms by index group name, the @membrane macro, or an MDAnalysis selection string.

        Parameters
        ----------
        query : str
            The selection.

        Returns
        -------
        MDAnalysis.AtomGroup
            The selected atoms.

        Raises
        ------
        UserInputError
            If the query is not a valid selection.
        StructureError
            If the query selects no atoms or an index group refers to atoms not present in the system.
        """
        query = query.strip()

        if query in self.groups:
            indices = self.groups[query]
            if indices.size > 0 and (indices.min() < 0 or indices.max() >= self.universe.atoms.n_atoms):
                raise StructureError(f"Index group '{query}' refers to atoms that are not in the system.")
            atoms = self.universe.atoms[indices]
        else:
            expression = query
            if expression == MEMBRANE_MACRO:
                expression = "resname " + " ".join(MEMBRANE_RESNAMES)

            try:
                atoms = self.universe.select_atoms(expression)
            except (SelectionError, ValueError) as e:
                raise UserInputError(f"Invalid selection query '{query}': {e}") from e

        if atoms.n_atoms == 0:
            raise StructureError(f"The query '{query}' selects no atoms.")

        return atoms

    def iter_frames(self, lipids, heads):
        """Iterate over the trajectory.

        Parameters
        ----------
        lipids : MDAnalysis.AtomGroup
            Atoms of the membrane lipids.
        heads : MDAnalysis.AtomGroup
            Headgroup marker atoms.

        Yields
        ------
        Frame
            Positions of lipids and headgroups and the box lengths, all in nm.

        Raises
        ------
        TrajectoryError
            If a frame cannot be read.
        """
        trajectory = iter(self.universe.trajectory)

        while True:
            try:
                ts = next(trajectory)
            except StopIteration:
                return
            except (OSError, ValueError, EOFError) as e:
                raise TrajectoryError(f"Failed to read a trajectory frame: {e}") from e

            box = None
            if ts.dimensions is not None:
                box = np.asarray(ts.dimensions[:3], dtype=float) * ANGSTROM_TO_NM

            yield Frame(
                lipids=lipids.positions.astype(float) * ANGSTROM_TO_NM,
                heads=heads.positions.astype(float) * ANGSTROM_TO_NM,
                box=box,
                time=ts.time,
            )
