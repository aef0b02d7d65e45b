import logging
from pathlib import Path
from memthick.accumulate import ThicknessAccumulator
from memthick.system import MembraneSystem
from memthick.thickmap import compute_thickness_map, write_map


#############################################
# Logging
#############################################


def setup_logger(log_file: str = None, name: str = "memthick") -> logging.Logger:
    """
    Set up logger for the analysis with a console handler and an optional file handler.

    Parameters
    ----------
    log_file : str, optional
        Path to the log file. If not provided, messages are only written to the console.
    name : str, default "memthick"
        Name of the logger

    Returns
    -------
    logging.Logger
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    formatter = logging.Formatter("%(asctime)s - %(message)s")

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    # Clear existing handlers to avoid duplicates
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []

    logger.addHandler(console_handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def print_options(config, box, logger: logging.Logger = None) -> None:
    """
    Report the options of the analysis.

    Parameters
    ----------
    config : MemthickConfig
        Validated configuration.
    box : array-like
        Box lengths in nm, used for the default grid ranges.
    logger : logging.Logger, optional
        Logger instance for status messages
    """
    log_msg = lambda msg: logger.info(msg) if logger else print(msg)

    (xmin, xmax), (ymin, ymax) = config.grid_ranges(box)
    bin_x, bin_y = config.bin_sizes

    log_msg(f"[STRUCTURE]     {config.structure}")
    log_msg(f"[TRAJECTORY]    {config.trajectory}")
    log_msg(f"[OUTPUT]        {config.output}")
    if config.index is not None:
        log_msg(f"[INDEX]         {config.index}")
    log_msg(f"[LIPIDS]        {config.lipids}")
    log_msg(f"[PHOSPHATES]    {config.phosphates}")
    log_msg(f"[NAN LIMIT]     {config.nan_limit}")
    log_msg(f"[X-RANGE]       {xmin}-{xmax} nm")
    log_msg(f"[Y-RANGE]       {ymin}-{ymax} nm")
    if bin_x == bin_y:
        log_msg(f"[BIN SIZE]      {bin_x} nm")
    else:
        log_msg(f"[BIN SIZE]      {bin_x} x {bin_y} nm")


#############################################
# Analysis
#############################################


def run_analysis(config, command_line=None, progress=True, logger: logging.Logger = None):
    """
    Calculate a 2D map of membrane thickness and write it to the output file.

    Parameters
    ----------
    config : MemthickConfig
        Configuration of the analysis. It is validated before any file is read.
    command_line : list of str, optional
        Command line stored in the header of the output file.
    progress : bool, default True
        Whether to show a progress bar while reading the trajectory.
    logger : logging.Logger, optional
        Logger instance for status messages

    Returns
    -------
    ThicknessMap
        The calculated map.

    Raises
    ------
    UserInputError
        If the configuration is invalid.
    StructureError
        If the system has an invalid box or any of the selections is empty.
    TrajectoryError
        If any frame of the trajectory is malformed. No output is written in such case.
    """
    log_msg = lambda msg: logger.info(msg) if logger else print(msg)

    config.validate()

    system = MembraneSystem.from_files(config.structure, config.trajectory, config.index, logger=logger)
    box = system.check_box()

    print_options(config, box, logger=logger)
    geometry = config.grid_geometry(box)

    lipids = system.select(config.lipids)
    heads = system.select(config.phosphates)
    log_msg(f"Lipid atoms: {lipids.n_atoms}, headgroup atoms: {heads.n_atoms}")
    log_msg(f"Grid: {geometry.n_x} x {geometry.n_y} bins")

    accumulator = ThicknessAccumulator(geometry)
    accumulator.run(system.iter_frames(lipids, heads), progress=progress, logger=logger)

    thickness_map = compute_thickness_map(*accumulator.grids, config.nan_limit)

    write_map(config.output, thickness_map, command_line=command_line)
    log_msg(f"Thickness defined in {thickness_map.n_defined} of {len(thickness_map.cells)} bins")
    log_msg(f"Average membrane thickness: {thickness_map.average:.4f} nm")
    log_msg(f"Map written to {config.output}")

    return thickness_map
