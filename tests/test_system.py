import numpy as np
import pytest
from memthick.system import *
from memthick.exceptions import StructureError, TrajectoryError, UserInputError
from conftest import BILAYER, write_gro


def test_read_ndx(tmp_path):
    ndx = tmp_path / "index.ndx"
    ndx.write_text("[ System ]\n1 2 3 4\n5 6\n\n[ Heads ]\n1 3\n[Empty]\n")

    groups = read_ndx(ndx)

    assert list(groups) == ["System", "Heads", "Empty"]
    np.testing.assert_array_equal(groups["System"], np.arange(6))
    np.testing.assert_array_equal(groups["Heads"], np.array([0, 2]))
    assert groups["Empty"].size == 0


@pytest.mark.parametrize("content", ["1 2 3\n[ System ]\n1\n", "[ System\n1 2\n", "[ System ]\n1 two\n"])
def test_read_ndx_invalid(tmp_path, content):
    ndx = tmp_path / "invalid.ndx"
    ndx.write_text(content)

    with pytest.raises(StructureError):
        read_ndx(ndx)


def test_read_ndx_missing(tmp_path):
    with pytest.raises(StructureError):
        read_ndx(tmp_path / "missing.ndx")


def test_load_and_check_box(bilayer_gro):
    system = MembraneSystem.from_files(str(bilayer_gro), str(bilayer_gro))

    assert system.universe.atoms.n_atoms == 2 * len(BILAYER)
    np.testing.assert_allclose(system.check_box(), np.array([10.0, 10.0, 10.0]), rtol=1e-6)


def test_missing_files(tmp_path, bilayer_gro):
    with pytest.raises(StructureError):
        MembraneSystem.from_files(str(tmp_path / "missing.gro"))

    with pytest.raises(TrajectoryError):
        MembraneSystem.from_files(str(bilayer_gro), str(tmp_path / "missing.xtc"))


def test_non_orthogonal_box(tmp_path):
    gro = write_gro(tmp_path / "triclinic.gro", BILAYER, box=(10.0, 10.0, 10.0, 0.0, 0.0, 5.0, 0.0, 0.0, 0.0))
    system = MembraneSystem.from_files(str(gro))

    with pytest.raises(StructureError):
        system.check_box()


def test_zero_box(tmp_path):
    gro = write_gro(tmp_path / "zero.gro", BILAYER, box=(0.0, 0.0, 0.0))
    system = MembraneSystem.from_files(str(gro))

    with pytest.raises(StructureError):
        system.check_box()


def test_select(bilayer_gro):
    system = MembraneSystem.from_files(str(bilayer_gro))

    assert system.select("@membrane").n_atoms == 2 * len(BILAYER)
    assert system.select("name PO4 P").n_atoms == len(BILAYER)
    assert system.select("  resname POPC and name C1A ").n_atoms == len(BILAYER)


def test_select_invalid(bilayer_gro):
    system = MembraneSystem.from_files(str(bilayer_gro))

    with pytest.raises(UserInputError):
        system.select("name PO4 and and")

    with pytest.raises(StructureError):
        system.select("name NC3")


def test_select_index_group(tmp_path, bilayer_gro):
    ndx = tmp_path / "index.ndx"
    ndx.write_text("[ Heads ]\n1 3 5\n[ Nothing ]\n\n[ Outside ]\n1 100\n")

    system = MembraneSystem.from_files(str(bilayer_gro), index=str(ndx))
    heads = system.select("Heads")

    assert heads.n_atoms == 3
    assert set(heads.names) == {"PO4"}

    with pytest.raises(StructureError):
        system.select("Nothing")

    with pytest.raises(StructureError):
        system.select("Outside")


def test_iter_frames(bilayer_gro):
    system = MembraneSystem.from_files(str(bilayer_gro), str(bilayer_gro))
    lipids = system.select("@membrane")
    heads = system.select("name PO4")

    frames = list(system.iter_frames(lipids, heads))

    assert len(frames) == 1
    frame = frames[0]
    assert frame.lipids.shape == (2 * len(BILAYER), 3)
    assert frame.heads.shape == (len(BILAYER), 3)
    np.testing.assert_allclose(frame.box, np.array([10.0, 10.0, 10.0]), rtol=1e-6)
    np.testing.assert_allclose(frame.heads[0], np.array([1.0, 1.0, 7.0]), atol=1e-5)
    np.testing.assert_allclose(frame.heads[4], np.array([1.0, 1.0, 3.0]), atol=1e-5)
