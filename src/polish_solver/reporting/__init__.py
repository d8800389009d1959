"""
Reporting module for polish-solver.

Writes B-factor fit tables, formats console tables and handles log files.
"""

from polish_solver.reporting.results_reporter import (
    append_to_log,
    format_micrograph_table,
    format_bfactor_table,
    bfactor_table_path,
    write_bfactor_table,
    read_bfactor_table,
)

__all__ = [
    'append_to_log',
    'format_micrograph_table',
    'format_bfactor_table',
    'bfactor_table_path',
    'write_bfactor_table',
    'read_bfactor_table',
]
