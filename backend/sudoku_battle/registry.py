import logging
import random
import threading
from typing import Dict, List, NamedTuple, Optional

from sudoku_battle.errors import PuzzleUnavailable, SessionNotFound
from sudoku_battle.models import MatchSession
from sudoku_battle.services.games.coordinator import MatchCoordinator, now_ms
from sudoku_battle.services.puzzle import PuzzleGenerationError, new_puzzle

CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
CODE_LENGTH = 6


class Binding(NamedTuple):
    code: str
    identity: str


class SessionRegistry:
    """Live sessions for this process, plus the connection -> identity bindings.

    Created by the app factory and stored in ``app.extensions``; ``close()``
    tears it down. Sessions live for SESSION_TTL_SEC from creation whatever
    their state, and are only removed by ``sweep``.
    """

    def __init__(self, broadcaster, scheduler, config=None, logger=None, clock=None,
                 puzzle_factory=None, rng=None):
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self.config = config or {}
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock or now_ms
        self.puzzle_factory = puzzle_factory or self._generate
        self.rng = rng or random.SystemRandom()
        self.closed = False
        self._sessions: Dict[str, MatchCoordinator] = {}
        self._bindings: Dict[str, Binding] = {}
        self._lock = threading.RLock()

    def __len__(self):
        return len(self._sessions)

    def __contains__(self, code):
        return code in self._sessions

    def _generate(self, difficulty):
        solution, carved = new_puzzle(
            difficulty,
            budget=int(self.config.get('SOLVER_NODE_BUDGET', 200000)),
            attempts=int(self.config.get('GENERATION_ATTEMPTS', 5)),
        )
        if carved.shortfall:
            self.logger.warning(
                f"[carve-shortfall] difficulty={difficulty} blanks={carved.blanks} target={carved.target}")
        return solution, carved.puzzle

    def generate_code(self) -> str:
        """Random code from an alphabet without 0/O or 1/I, unique among live sessions."""
        with self._lock:
            while True:
                code = ''.join(self.rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
                if code not in self._sessions:
                    return code

    def create(self, mode, difficulty) -> MatchCoordinator:
        difficulty = str(difficulty or 'medium').strip().lower()
        # Generation is slow; do it outside the registry lock
        try:
            solution, puzzle = self.puzzle_factory(difficulty)
        except PuzzleGenerationError as exc:
            self.logger.error(f"[session-create] difficulty={difficulty} generation failed: {exc}")
            raise PuzzleUnavailable() from exc
        with self._lock:
            code = self.generate_code()
            session = MatchSession(
                code=code,
                mode=mode,
                difficulty=difficulty,
                solution=solution,
                puzzle=puzzle,
                created_at=self.clock(),
                hints_per_player=int(self.config.get('HINTS_PER_PLAYER', 3)),
                chat_limit=int(self.config.get('CHAT_HISTORY_LIMIT', 50)),
            )
            coordinator = MatchCoordinator(session, self.broadcaster, self.scheduler,
                                           config=self.config, logger=self.logger, clock=self.clock,
                                           on_replaced=self.forget)
            self._sessions[code] = coordinator
            return coordinator

    def get(self, code) -> MatchCoordinator:
        coordinator = self.find(code)
        if coordinator is None:
            raise SessionNotFound()
        return coordinator

    def find(self, code) -> Optional[MatchCoordinator]:
        if not code:
            return None
        with self._lock:
            return self._sessions.get(str(code).strip().upper())

    def bind(self, sid, code, identity) -> None:
        with self._lock:
            self._bindings[sid] = Binding(code, identity)

    def binding(self, sid) -> Optional[Binding]:
        with self._lock:
            return self._bindings.get(sid)

    def unbind(self, sid) -> Optional[Binding]:
        with self._lock:
            return self._bindings.pop(sid, None)

    def forget(self, sid, code, identity) -> None:
        """Unbind ``sid`` if it still points at the given seat."""
        with self._lock:
            if self._bindings.get(sid) == (code, identity):
                del self._bindings[sid]

    def sweep(self, now=None) -> List[str]:
        """Drop sessions older than SESSION_TTL_SEC. Returns the removed codes."""
        now = self.clock() if now is None else now
        ttl_ms = int(self.config.get('SESSION_TTL_SEC', 7200)) * 1000
        with self._lock:
            expired = [code for code, c in self._sessions.items() if now - c.session.created_at > ttl_ms]
            dropped = [self._sessions.pop(code) for code in expired]
            if expired:
                gone = set(expired)
                for sid in [sid for sid, b in self._bindings.items() if b.code in gone]:
                    del self._bindings[sid]
        # Coordinators call back into the registry under their own lock
        for coordinator in dropped:
            coordinator.close()
        if expired:
            self.logger.info(f"[sweep] removed={len(expired)} live={len(self._sessions)}")
        return expired

    def close(self) -> None:
        with self._lock:
            self.closed = True
            dropped = list(self._sessions.values())
            self._sessions.clear()
            self._bindings.clear()
        for coordinator in dropped:
            coordinator.close()
