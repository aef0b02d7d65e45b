import pytest


def write_gro(file_path, lipids, box=(10.0, 10.0, 10.0), title="membrane"):
    """Write a coarse-grained membrane into a gro file.

    Each lipid is a tuple (x, y, z_head, z_tail) and is written as a POPC residue with two beads: PO4 and C1A.
    """
    lines = [title, f"{2 * len(lipids):5d}"]
    atom_id = 1
    for resid, (x, y, z_head, z_tail) in enumerate(lipids, start=1):
        for name, z in (("PO4", z_head), ("C1A", z_tail)):
            lines.append(f"{resid % 100000:5d}{'POPC':<5s}{name:>5s}{atom_id % 100000:5d}{x:8.3f}{y:8.3f}{z:8.3f}")
            atom_id += 1

    lines.append("".join(f"{length:10.5f}" for length in box))
    file_path.write_text("\n".join(lines) + "\n")

    return file_path


# Four lipids in the upper leaflet (head at 7 nm) and four in the lower leaflet (head at 3 nm), the membrane
# center lies at z = 5 nm. The lower leaflet has two lipids in the bin around (2.5, 2.5) and none around (7.5, 7.5).
BILAYER = [
    (1.0, 1.0, 7.0, 6.0),
    (6.0, 1.0, 7.0, 6.0),
    (1.0, 6.0, 7.0, 6.0),
    (6.0, 6.0, 7.0, 6.0),
    (1.0, 1.0, 3.0, 4.0),
    (2.0, 2.0, 3.0, 4.0),
    (6.0, 1.0, 3.0, 4.0),
    (1.0, 6.0, 3.0, 4.0),
]


@pytest.fixture
def bilayer_gro(tmp_path):
    return write_gro(tmp_path / "bilayer.gro", BILAYER)
