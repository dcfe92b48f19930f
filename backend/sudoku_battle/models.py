import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Set, Tuple

WAITING = 'waiting'
COUNTDOWN = 'countdown'
PLAYING = 'playing'
PAUSED = 'paused'
FINISHED = 'finished'

COMPETITIVE = 'competitive'
COOPERATIVE = 'cooperative'
MODE_ALIASES = {'battle': COMPETITIVE, 'coop': COOPERATIVE}

PLAYER_ROLES = ('p1', 'p2')
SPECTATOR_ROLE = 'spectator'


def new_identity() -> str:
    return uuid.uuid4().hex


def normalize_mode(mode) -> str:
    mode = (mode or COMPETITIVE).lower()
    mode = MODE_ALIASES.get(mode, mode)
    return mode if mode in (COMPETITIVE, COOPERATIVE) else COMPETITIVE


@dataclass
class Progress:
    hints_remaining: int = 3
    filled: int = 0
    score: int = 0
    errors: int = 0
    solved: Set[Tuple[int, int]] = field(default_factory=set)
    # Cells that have earned points once; erasing does not clear them
    awarded: Set[Tuple[int, int]] = field(default_factory=set)

    def to_dict(self):
        return {
            'filled': self.filled,
            'score': self.score,
            'errors': self.errors,
            'hints': self.hints_remaining,
        }


@dataclass
class PlayerSlot:
    identity: str
    display_name: str
    role: str
    sid: Optional[str] = None
    connected: bool = True


@dataclass
class Spectator:
    identity: str
    display_name: str
    sid: Optional[str] = None


@dataclass
class ChatMessage:
    name: str
    role: str
    text: str
    emoji: str
    ts: int

    def to_dict(self):
        return {'name': self.name, 'role': self.role, 'text': self.text, 'emoji': self.emoji, 'ts': self.ts}


class MatchSession:
    """State of one match. Mutated only while holding ``lock``."""

    def __init__(self, code, mode, difficulty, solution, puzzle, created_at,
                 hints_per_player=3, chat_limit=50):
        self.code = code
        self.mode = normalize_mode(mode)
        self.difficulty = difficulty
        self.solution: List[List[int]] = solution
        self.puzzle: List[List[int]] = puzzle
        self.total_empty = sum(1 for row in puzzle for v in row if v == 0)
        self.players: List[PlayerSlot] = []
        self.spectators: List[Spectator] = []
        self.game_state = WAITING
        self.start_time: Optional[int] = None
        self.paused_at: Optional[int] = None
        self.progress: Dict[str, Progress] = {}
        self.chat: Deque[ChatMessage] = deque(maxlen=chat_limit)
        self.created_at = created_at
        self.hints_per_player = hints_per_player
        self.lock = threading.RLock()

    def player(self, identity) -> Optional[PlayerSlot]:
        return next((p for p in self.players if p.identity == identity), None)

    def spectator(self, identity) -> Optional[Spectator]:
        return next((s for s in self.spectators if s.identity == identity), None)

    def free_role(self) -> Optional[str]:
        taken = {p.role for p in self.players}
        return next((r for r in PLAYER_ROLES if r not in taken), None)

    def add_player(self, display_name, role, sid=None) -> PlayerSlot:
        slot = PlayerSlot(identity=new_identity(), display_name=display_name, role=role, sid=sid)
        self.players.append(slot)
        self.players.sort(key=lambda p: p.role)
        self.progress[slot.identity] = Progress(hints_remaining=self.hints_per_player)
        return slot

    def add_spectator(self, display_name, sid=None) -> Spectator:
        spectator = Spectator(identity=new_identity(), display_name=display_name, sid=sid)
        self.spectators.append(spectator)
        return spectator

    def remove_spectator(self, identity) -> None:
        self.spectators = [s for s in self.spectators if s.identity != identity]

    def all_connected(self) -> bool:
        return all(p.connected for p in self.players)

    def is_blank(self, row, col) -> bool:
        return self.puzzle[row][col] == 0

    def players_to_dict(self):
        out = []
        for p in self.players:
            prog = self.progress.get(p.identity) or Progress(hints_remaining=self.hints_per_player)
            entry = {'id': p.identity, 'name': p.display_name, 'role': p.role, 'connected': p.connected}
            entry.update(prog.to_dict())
            out.append(entry)
        return out

    def to_public_dict(self):
        """State sent to every member. The solution stays hidden."""
        return {
            'code': self.code,
            'mode': self.mode,
            'difficulty': self.difficulty,
            'puzzle': self.puzzle,
            'totalEmpty': self.total_empty,
            'gameState': self.game_state,
            'players': self.players_to_dict(),
            'spectatorCount': len(self.spectators),
        }

    def chat_history(self):
        return [m.to_dict() for m in self.chat]
