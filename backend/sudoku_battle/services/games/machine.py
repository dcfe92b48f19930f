from typing import NamedTuple, Optional, Tuple

from sudoku_battle.models import COUNTDOWN, FINISHED, PAUSED, PLAYING, WAITING

ROSTER_FULL = 'roster_full'
COUNTDOWN_DONE = 'countdown_done'
PLAYER_COMPLETED = 'player_completed'
PLAYER_LOST = 'player_lost'
GRACE_EXPIRED = 'grace_expired'
ROSTER_RESTORED = 'roster_restored'
FINISH = 'finish'


class Transition(NamedTuple):
    next_state: str
    effects: Tuple[str, ...]


_TABLE = {
    (WAITING, ROSTER_FULL): Transition(COUNTDOWN, ('start_countdown',)),
    (COUNTDOWN, COUNTDOWN_DONE): Transition(PLAYING, ('record_start', 'announce_start')),
    (PLAYING, PLAYER_COMPLETED): Transition(FINISHED, ('cancel_grace', 'announce_winner')),
    (PLAYING, PLAYER_LOST): Transition(PAUSED, ('record_pause', 'announce_pause', 'arm_grace')),
    (PAUSED, GRACE_EXPIRED): Transition(FINISHED, ('announce_abort',)),
    (PAUSED, ROSTER_RESTORED): Transition(PLAYING, ('cancel_grace', 'shift_start', 'announce_resume')),
}

# An explicit finish is accepted from every live state.
for _state in (WAITING, COUNTDOWN, PLAYING, PAUSED):
    _TABLE.setdefault((_state, FINISH), Transition(FINISHED, ('cancel_grace', 'cancel_countdown', 'announce_winner')))


def transition(state: str, event: str) -> Optional[Transition]:
    """Next state and effects for ``event`` in ``state``; None if it is ignored there."""
    return _TABLE.get((state, event))
