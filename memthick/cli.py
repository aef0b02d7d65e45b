import argparse
import sys
from memthick import __version__
from memthick.config import MemthickConfig
from memthick.exceptions import MemthickException
from memthick.pipeline import run_analysis, setup_logger


def parse_arguments(argv=None) -> argparse.Namespace:
    """
    Build and parse command line arguments for the CLI.

    Options not given on the command line are left as None so that values from the configuration file (--config)
    or the defaults of :class:`MemthickConfig` are used.

    Parameters
    ----------
    argv : list of str, optional
        Arguments to parse. Defaults to sys.argv[1:].

    Returns
    -------
    argparse.Namespace
        Parsed CLI arguments.

    Examples
    --------
    Typical invocation:

    - memthick -s system.tpr -f md.xtc -o thickness.dat --bin 0.2 -a 50
    """
    defaults = MemthickConfig()

    parser = argparse.ArgumentParser(
        prog="memthick",
        description="Calculate a 2D map of membrane thickness.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    # Main inputs
    parser.add_argument("-s", "--structure", help="Path to a gro, pdb, or tpr file containing the system structure.")
    parser.add_argument("-f", "--trajectory", help="Path to an xtc file containing the trajectory to analyze.")
    parser.add_argument(
        "-o",
        "--output",
        help=f"Path to the output file where the thickness map will be written (default: {defaults.output}).",
    )
    parser.add_argument("-n", "--index", help="Path to an ndx file containing groups associated with the system.")
    parser.add_argument("--config", help="YAML configuration file with any of the options below")

    # Selections
    parser.add_argument(
        "-l", "--lipids", help=f"Specify atoms corresponding to membrane lipids (default: '{defaults.lipids}')."
    )
    parser.add_argument(
        "-p",
        "--phosphates",
        help=f"Specify atoms identifying lipid headgroups. Use only one atom per lipid molecule! "
        f"(default: '{defaults.phosphates}')",
    )

    # Grid options
    grid_group = parser.add_argument_group("Grid options")
    grid_group.add_argument(
        "-a",
        "--nan",
        dest="nan_limit",
        type=int,
        help=f"How many phosphates must be detected in a grid bin to calculate membrane thickness for this bin "
        f"(default: {defaults.nan_limit}).",
    )
    grid_group.add_argument("--xmin", type=float, help="Minimum coordinate for the x-dimension of the grid (default: 0).")
    grid_group.add_argument(
        "--xmax", type=float, help="Maximum coordinate for the x-dimension of the grid (default: box size)."
    )
    grid_group.add_argument("--ymin", type=float, help="Minimum coordinate for the y-dimension of the grid (default: 0).")
    grid_group.add_argument(
        "--ymax", type=float, help="Maximum coordinate for the y-dimension of the grid (default: box size)."
    )
    grid_group.add_argument(
        "--bin",
        dest="bin_size",
        type=float,
        nargs="+",
        metavar="SIZE",
        help=f"Size of a grid bin in nm, one value for both dimensions or two values for x and y "
        f"(default: {defaults.bin_size[0]}).",
    )

    # Output options
    parser.add_argument("--log", help="Path to a log file (optional)")
    parser.add_argument("--no_progress", action="store_true", help="Do not show the progress bar")

    return parser.parse_args(argv)


def config_from_arguments(args) -> MemthickConfig:
    """Combine the configuration file (if any) and the command line options, the latter taking precedence."""
    options = {name: getattr(args, name, None) for name in MemthickConfig.field_names()}

    if args.config is not None:
        return MemthickConfig.from_yaml(args.config, **options)

    return MemthickConfig(**{name: value for name, value in options.items() if value is not None})


def main(argv=None) -> int:
    """
    Entry point for command line execution.

    Parameters
    ----------
    argv : list of str, optional
        Command line arguments without the program name. Defaults to sys.argv[1:].

    Returns
    -------
    int
        Exit status: 0 on success, 1 if the analysis failed.
    """
    if argv is None:
        command_line = list(sys.argv)
    else:
        command_line = ["memthick"] + list(argv)

    args = parse_arguments(argv)
    logger = setup_logger(args.log)
    logger.info(f">> memthick {__version__} <<")

    try:
        config = config_from_arguments(args)
        config.validate()
        run_analysis(config, command_line=command_line, progress=not args.no_progress, logger=logger)
    except (MemthickException, OSError) as e:
        logger.error(f"Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
