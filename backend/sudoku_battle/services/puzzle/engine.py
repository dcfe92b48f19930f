import random
from typing import List, NamedTuple, Optional

Grid = List[List[int]]

SIZE = 9
DIGITS = list(range(1, SIZE + 1))

BLANK_TARGETS = {'easy': 35, 'medium': 46, 'hard': 55}
DEFAULT_BLANKS = 40


class SearchBudgetExceeded(Exception):
    """A search visited more nodes than it was allowed to."""


class PuzzleGenerationError(Exception):
    pass


class CarvedPuzzle(NamedTuple):
    puzzle: Grid
    blanks: int
    target: int

    @property
    def shortfall(self) -> int:
        return max(0, self.target - self.blanks)


def empty_grid() -> Grid:
    return [[0] * SIZE for _ in range(SIZE)]


def copy_grid(grid: Grid) -> Grid:
    return [list(row) for row in grid]


def ok_cell(grid: Grid, row: int, col: int, n: int) -> bool:
    """True if ``n`` is not already used in the row, column or 3x3 box."""
    box_row = 3 * (row // 3)
    box_col = 3 * (col // 3)
    for i in range(SIZE):
        if grid[row][i] == n or grid[i][col] == n:
            return False
        if grid[box_row + i // 3][box_col + i % 3] == n:
            return False
    return True


def is_complete_solution(grid: Grid) -> bool:
    """Every row, column and box is a permutation of 1-9."""
    expected = set(DIGITS)
    for i in range(SIZE):
        if set(grid[i]) != expected:
            return False
        if {grid[r][i] for r in range(SIZE)} != expected:
            return False
        box_row, box_col = 3 * (i // 3), 3 * (i % 3)
        box = {grid[box_row + r][box_col + c] for r in range(3) for c in range(3)}
        if box != expected:
            return False
    return True


def _check_budget(nodes: int, budget: int) -> None:
    if budget and nodes > budget:
        raise SearchBudgetExceeded(f'search exceeded {budget} nodes')


def generate_solution(rng: Optional[random.Random] = None, budget: int = 0) -> Grid:
    """Fill an empty grid by randomized backtracking.

    Cells are filled in row-major order. Each cell gets its own freshly
    shuffled digit order, and the explicit ``orders``/``positions`` stacks
    hold where the search is at every depth.
    """
    rng = rng or random.Random()
    grid = empty_grid()
    cells = SIZE * SIZE
    orders: List[Optional[List[int]]] = [None] * cells
    positions = [0] * cells
    nodes = 0
    depth = 0
    while depth < cells:
        row, col = divmod(depth, SIZE)
        if orders[depth] is None:
            orders[depth] = rng.sample(DIGITS, SIZE)
            positions[depth] = 0
        grid[row][col] = 0
        order = orders[depth]
        placed = False
        while positions[depth] < SIZE:
            n = order[positions[depth]]
            positions[depth] += 1
            if ok_cell(grid, row, col, n):
                grid[row][col] = n
                placed = True
                break
        if placed:
            nodes += 1
            _check_budget(nodes, budget)
            depth += 1
            continue
        orders[depth] = None
        depth -= 1
        if depth < 0:
            raise PuzzleGenerationError('no completion exists for an empty grid')
    return grid


def count_solutions(grid: Grid, limit: int = 2, budget: int = 0) -> int:
    """Count completions of ``grid``, stopping as soon as ``limit`` are found.

    Blanks are visited in row-major order and digits tried 1-9. With the
    default limit of 2 this proves "unique" or "not unique" without
    enumerating every solution. ``grid`` is not modified.
    """
    work = copy_grid(grid)
    blanks = [(r, c) for r in range(SIZE) for c in range(SIZE) if work[r][c] == 0]
    if not blanks:
        return 1
    tried = [0] * len(blanks)
    last = len(blanks) - 1
    count = 0
    nodes = 0
    depth = 0
    while depth >= 0:
        row, col = blanks[depth]
        work[row][col] = 0
        n = tried[depth] + 1
        while n <= SIZE and not ok_cell(work, row, col, n):
            n += 1
        if n > SIZE:
            tried[depth] = 0
            depth -= 1
            continue
        tried[depth] = n
        work[row][col] = n
        nodes += 1
        _check_budget(nodes, budget)
        if depth == last:
            count += 1
            if count >= limit:
                return count
            continue
        depth += 1
    return count


def carve_puzzle(solution: Grid, difficulty: str, rng: Optional[random.Random] = None,
                 budget: int = 0) -> CarvedPuzzle:
    """Blank cells of ``solution`` while the puzzle keeps exactly one solution.

    Cells are visited in random order; a blank is kept only if the grid still
    has a unique completion. A candidate whose check runs out of budget is
    restored. Carving stops at the difficulty target or when every cell has
    been tried, so the result may fall short of the target.
    """
    rng = rng or random.Random()
    target = BLANK_TARGETS.get(difficulty, DEFAULT_BLANKS)
    puzzle = copy_grid(solution)
    cells = list(range(SIZE * SIZE))
    rng.shuffle(cells)
    removed = 0
    for idx in cells:
        if removed >= target:
            break
        row, col = divmod(idx, SIZE)
        kept = puzzle[row][col]
        puzzle[row][col] = 0
        try:
            unique = count_solutions(puzzle, limit=2, budget=budget) == 1
        except SearchBudgetExceeded:
            unique = False
        if unique:
            removed += 1
        else:
            puzzle[row][col] = kept
    return CarvedPuzzle(puzzle, removed, target)


def new_puzzle(difficulty: str, rng: Optional[random.Random] = None, budget: int = 0,
               attempts: int = 5):
    """Generate a solution and carve it. Returns ``(solution, CarvedPuzzle)``."""
    rng = rng or random.Random()
    last_error = None
    for _ in range(max(1, attempts)):
        try:
            solution = generate_solution(rng, budget=budget)
        except SearchBudgetExceeded as exc:
            last_error = exc
            continue
        return solution, carve_puzzle(solution, difficulty, rng, budget=budget)
    raise PuzzleGenerationError(f'could not generate a solution: {last_error}')
