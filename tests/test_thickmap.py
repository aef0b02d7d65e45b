import math
import numpy as np
import pandas as pd
import pytest
from memthick.thickmap import *
from memthick.gridmap import GridGeometry, GridMap
from memthick.exceptions import ProcessError, UserInputError


def make_grids(geometry=None):
    if geometry is None:
        geometry = GridGeometry((0.0, 10.0), (0.0, 10.0), 5.0)

    return (
        GridMap(geometry, zero=0.0),
        GridMap(geometry, zero=0),
        GridMap(geometry, zero=0.0),
        GridMap(geometry, zero=0),
    )


def add_samples(sums, counts, x, y, value, n):
    for _ in range(n):
        sums.add_at(x, y, value)
        counts.add_at(x, y, 1)


def test_scenario_single_defined_bin():
    upper_sum, upper_count, lower_sum, lower_count = make_grids()
    add_samples(upper_sum, upper_count, 1.0, 1.0, 2.0, 30)
    add_samples(lower_sum, lower_count, 1.0, 1.0, -1.0, 30)

    thickness_map = compute_thickness_map(upper_sum, upper_count, lower_sum, lower_count, 30)

    assert list(thickness_map.cells.columns) == ["x", "y", "thickness"]
    assert list(zip(thickness_map.cells["x"], thickness_map.cells["y"])) == [
        (2.5, 2.5),
        (7.5, 2.5),
        (2.5, 7.5),
        (7.5, 7.5),
    ]
    assert thickness_map.cells["thickness"].iloc[0] == pytest.approx(3.0)
    assert thickness_map.cells["thickness"].iloc[1:].isna().all()
    assert thickness_map.average == pytest.approx(3.0)
    assert thickness_map.n_defined == 1
    assert thickness_map.to_grid().shape == (2, 2)


@pytest.mark.parametrize("n_upper, n_lower", [(29, 30), (30, 29), (0, 100), (100, 0), (5, 5)])
def test_insufficient_samples_give_nan(n_upper, n_lower):
    upper_sum, upper_count, lower_sum, lower_count = make_grids()
    add_samples(upper_sum, upper_count, 6.0, 6.0, 2.0, n_upper)
    add_samples(lower_sum, lower_count, 6.0, 6.0, -2.0, n_lower)

    thickness_map = compute_thickness_map(upper_sum, upper_count, lower_sum, lower_count, 30)

    assert thickness_map.cells["thickness"].isna().all()
    assert math.isnan(thickness_map.average)
    assert thickness_map.n_defined == 0


def test_threshold_of_one():
    upper_sum, upper_count, lower_sum, lower_count = make_grids()
    add_samples(upper_sum, upper_count, 6.0, 1.0, 1.5, 1)
    add_samples(lower_sum, lower_count, 6.0, 1.0, -2.5, 1)

    thickness_map = compute_thickness_map(upper_sum, upper_count, lower_sum, lower_count, 1)
    assert thickness_map.to_grid()[0, 1] == pytest.approx(4.0)


def test_average_over_defined_bins_only():
    upper_sum, upper_count, lower_sum, lower_count = make_grids()

    add_samples(upper_sum, upper_count, 1.0, 1.0, 2.0, 2)
    add_samples(lower_sum, lower_count, 1.0, 1.0, -2.0, 2)

    add_samples(upper_sum, upper_count, 6.0, 1.0, 1.0, 3)
    add_samples(upper_sum, upper_count, 6.0, 1.0, 2.0, 1)
    add_samples(lower_sum, lower_count, 6.0, 1.0, -1.0, 2)

    # only the upper leaflet is present here
    add_samples(upper_sum, upper_count, 1.0, 6.0, 10.0, 5)

    thickness_map = compute_thickness_map(upper_sum, upper_count, lower_sum, lower_count, 2)
    thickness = thickness_map.to_grid()

    assert thickness[0, 0] == pytest.approx(4.0)
    assert thickness[0, 1] == pytest.approx(2.25)
    assert np.isnan(thickness[1, 0])
    assert np.isnan(thickness[1, 1])
    assert thickness_map.average == pytest.approx((4.0 + 2.25) / 2)


def test_mean_defined():
    assert mean_defined([1.0, math.nan, 3.0]) == pytest.approx(2.0)
    assert math.isnan(mean_defined([]))
    assert math.isnan(mean_defined([math.nan, math.nan]))


@pytest.mark.parametrize("min_samples", [0, -1, 1.5, None])
def test_invalid_threshold(min_samples):
    with pytest.raises(UserInputError):
        compute_thickness_map(*make_grids(), min_samples)


def test_misaligned_grids():
    upper_sum, upper_count, _, _ = make_grids()
    _, _, lower_sum, lower_count = make_grids(GridGeometry((0.0, 10.0), (0.0, 10.0), 2.5))

    with pytest.raises(ProcessError):
        compute_thickness_map(upper_sum, upper_count, lower_sum, lower_count, 1)


def test_write_map_format(tmp_path):
    cells = pd.DataFrame({"x": [2.5, 7.5], "y": [2.5, 2.5], "thickness": [3.98766, math.nan]})
    output = tmp_path / "thickness.dat"

    write_map(output, ThicknessMap(cells, 3.98766), command_line=["memthick", "-s", "system.gro"])

    lines = output.read_text().splitlines()
    assert lines[0].startswith("# Generated with memthick v")
    assert lines[1] == "# Command line: memthick -s system.gro"
    assert lines[2] == "# See the average membrane thickness at the end of this file."
    assert lines[3:9] == HEADER_LINES
    assert lines[9] == "    2.500000     2.500000       3.9877"
    assert lines[10] == "    7.500000     2.500000          NaN"
    assert lines[11] == "# Average membrane thickness:       3.9877 nm"
    assert len(lines) == 12


def test_write_map_without_defined_bins(tmp_path):
    cells = pd.DataFrame({"x": [0.5], "y": [0.5], "thickness": [math.nan]})
    output = tmp_path / "empty.dat"

    write_map(output, ThicknessMap(cells, math.nan))

    assert output.read_text().splitlines()[-1] == "# Average membrane thickness:          NaN nm"
    assert math.isnan(read_map(output).average)


def test_write_read_round_trip(tmp_path):
    rng = np.random.default_rng(5)
    upper_sum, upper_count, lower_sum, lower_count = make_grids(GridGeometry((-1.0, 4.0), (0.0, 3.0), (0.5, 0.75)))

    xs = rng.uniform(-1.0, 4.0, 400)
    ys = rng.uniform(0.0, 3.0, 400)
    upper_sum.accumulate(xs[:200], ys[:200], rng.uniform(1.5, 2.5, 200))
    upper_count.accumulate(xs[:200], ys[:200], 1)
    lower_sum.accumulate(xs[200:], ys[200:], rng.uniform(-2.5, -1.5, 200))
    lower_count.accumulate(xs[200:], ys[200:], 1)

    original = compute_thickness_map(upper_sum, upper_count, lower_sum, lower_count, 3)
    output = tmp_path / "round_trip.dat"
    write_map(output, original, command_line="memthick")
    loaded = read_map(output)

    assert len(loaded.cells) == len(original.cells)
    np.testing.assert_allclose(loaded.cells["x"], original.cells["x"], atol=1e-6)
    np.testing.assert_allclose(loaded.cells["y"], original.cells["y"], atol=1e-6)
    np.testing.assert_allclose(loaded.cells["thickness"], original.cells["thickness"], atol=1e-4, equal_nan=True)
    assert loaded.average == pytest.approx(original.average, abs=1e-4)
    assert loaded.to_grid().shape == original.to_grid().shape


def test_read_map_without_data(tmp_path):
    output = tmp_path / "header_only.dat"
    output.write_text("# Generated with memthick v0.1.0.\n@ xlabel x-coordinate [nm]\n")

    with pytest.raises(UserInputError):
        read_map(output)


def test_failed_write_keeps_existing_file(tmp_path):
    output = tmp_path / "thickness.dat"
    output.write_text("previous map\n")

    # the second value cannot be formatted, so writing fails halfway through the bins
    cells = pd.DataFrame({"x": [2.5, 7.5], "y": [2.5, 2.5], "thickness": [3.0, "abc"]})

    with pytest.raises(TypeError):
        write_map(output, ThicknessMap(cells, 3.0))

    assert output.read_text() == "previous map\n"
    assert [path.name for path in tmp_path.iterdir()] == ["thickness.dat"]


def test_write_map_replaces_existing_file(tmp_path):
    output = tmp_path / "thickness.dat"
    output.write_text("previous map\n")

    write_map(output, ThicknessMap(pd.DataFrame({"x": [0.5], "y": [0.5], "thickness": [2.0]}), 2.0))

    assert read_map(output).average == pytest.approx(2.0)
    assert [path.name for path in tmp_path.iterdir()] == ["thickness.dat"]
