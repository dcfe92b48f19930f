"""Authoritative Sudoku engine: solution generation, carving, uniqueness checks."""

from .engine import (
    BLANK_TARGETS,
    DEFAULT_BLANKS,
    CarvedPuzzle,
    PuzzleGenerationError,
    SearchBudgetExceeded,
    carve_puzzle,
    count_solutions,
    generate_solution,
    is_complete_solution,
    new_puzzle,
    ok_cell,
)

__all__ = [
    'BLANK_TARGETS',
    'DEFAULT_BLANKS',
    'CarvedPuzzle',
    'PuzzleGenerationError',
    'SearchBudgetExceeded',
    'carve_puzzle',
    'count_solutions',
    'generate_solution',
    'is_complete_solution',
    'new_puzzle',
    'ok_cell',
]
