from sudoku_battle.models import Progress

MAX_POINTS = 50
MIN_POINTS = 10
DECAY_POINTS = 5
DECAY_WINDOW_MS = 30000
WRONG_PENALTY = 20
HINT_PENALTY = 50


def points_for_elapsed(elapsed_ms) -> int:
    """Points for a correct cell: 50, minus 5 per full 30s elapsed, never below 10."""
    steps = max(0, int(elapsed_ms)) // DECAY_WINDOW_MS
    return max(MIN_POINTS, MAX_POINTS - DECAY_POINTS * steps)


def apply_correct(progress: Progress, row, col, elapsed_ms) -> int:
    """Credit a correct cell. Returns points awarded.

    A cell already solved is ignored. A cell that earned points before (and
    was erased since) counts towards progress again but pays nothing.
    """
    if (row, col) in progress.solved:
        return 0
    progress.solved.add((row, col))
    progress.filled += 1
    if (row, col) in progress.awarded:
        return 0
    points = points_for_elapsed(elapsed_ms)
    progress.awarded.add((row, col))
    progress.score += points
    return points


def apply_wrong(progress: Progress) -> None:
    progress.errors += 1
    progress.score = max(0, progress.score - WRONG_PENALTY)


def apply_erase(progress: Progress, row, col) -> bool:
    """Forget a solved cell. No points are given back. True if it had been correct."""
    if (row, col) not in progress.solved:
        return False
    progress.solved.discard((row, col))
    progress.filled = max(0, progress.filled - 1)
    return True


def apply_hint(progress: Progress, row, col) -> None:
    progress.hints_remaining = max(0, progress.hints_remaining - 1)
    progress.score = max(0, progress.score - HINT_PENALTY)
    progress.solved.add((row, col))
    progress.filled += 1
    progress.awarded.add((row, col))
