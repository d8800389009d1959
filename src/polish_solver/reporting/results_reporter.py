"""
Results reporting for polish-solver.

Writes the per-micrograph B-factor tables, formats console tables and
appends progress messages to log files.
"""

import re
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

from tabulate import tabulate


BFACTOR_COLUMNS = ["rlnCtfBfactor", "rlnCtfScalefactor"]


def append_to_log(log_file: Union[str, Path], message: str) -> None:
    """Append a line to a log file, flushing immediately."""
    with open(log_file, 'a', encoding='utf-8') as f:
        f.write(message + '\n')
        f.flush()


def format_micrograph_table(micrographs: Sequence[Any]) -> str:
    """Table of selected micrographs: list index, name, particle count."""
    rows = [[m.index, m.name, m.particle_count] for m in micrographs]
    return tabulate(rows, headers=["#", "micrograph", "particles"], tablefmt="simple")


def output_root(micrograph_name: str, out_path: Union[str, Path]) -> Path:
    """
    Output file root of a micrograph: out_path/<name without extension>.

    Directory components of the micrograph name are kept so that
    micrographs with equal file names in different directories don't clash.
    """
    name = re.sub(r"\.[^./]*$", "", micrograph_name.lstrip("/"))
    return Path(out_path) / name


def bfactor_table_path(micrograph_name: str, out_path: Union[str, Path]) -> Path:
    root = output_root(micrograph_name, out_path)
    return root.with_name(root.name + "_bfactor_fit.star")


def write_bfactor_table(
    path: Union[str, Path],
    micrograph_name: str,
    rows: List[Dict[str, float]],
) -> None:
    """
    Write fitted B-factors and scales of one micrograph as a STAR loop.

    Args:
        path: Output file.
        micrograph_name: Written into every row as rlnMicrographName.
        rows: One dict per particle with the keys of BFACTOR_COLUMNS.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    columns = ["rlnMicrographName"] + BFACTOR_COLUMNS

    lines = ["", "data_", "", "loop_"]
    lines += [f"_{c} #{i + 1}" for i, c in enumerate(columns)]
    for row in rows:
        values = [micrograph_name] + [f"{row[c]:.6f}" for c in BFACTOR_COLUMNS]
        lines.append(" ".join(values))
    lines.append("")

    with open(path, 'w', encoding='utf-8') as f:
        f.write("\n".join(lines))


def read_bfactor_table(path: Union[str, Path]) -> List[Dict[str, float]]:
    """Read a table written by write_bfactor_table()."""
    columns: List[str] = []
    rows: List[Dict[str, float]] = []

    with open(path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("data_") or line == "loop_":
                continue
            if line.startswith("_"):
                columns.append(line.split()[0][1:])
                continue
            values = line.split()
            row = {c: float(v) for c, v in zip(columns, values) if c in BFACTOR_COLUMNS}
            rows.append(row)

    return rows


def format_bfactor_table(rows: List[Dict[str, float]]) -> str:
    """Console table of per-particle B-factors and scales."""
    table = [[p, row["rlnCtfBfactor"], row["rlnCtfScalefactor"]] for p, row in enumerate(rows)]
    return tabulate(table, headers=["particle", "B [A^2]", "scale"],
                    tablefmt="simple", floatfmt=".3f")
