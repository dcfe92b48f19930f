import logging
import time
from typing import Optional

from sudoku_battle.errors import HintExhausted, InvalidMove, SessionFinished, SpectatorAction
from sudoku_battle.models import (
    COUNTDOWN,
    FINISHED,
    PAUSED,
    PLAYING,
    SPECTATOR_ROLE,
    ChatMessage,
    MatchSession,
)
from . import machine
from .scoring import apply_correct, apply_erase, apply_hint, apply_wrong


def now_ms() -> int:
    return int(time.time() * 1000)


def _clean_name(name, default):
    name = (name or '').strip()[:32]
    return name or default


def _coord(value, name, lo, hi):
    if isinstance(value, bool) or not isinstance(value, int) or not lo <= value <= hi:
        raise InvalidMove(f'{name} must be an integer between {lo} and {hi}')
    return value


class MatchCoordinator:
    """Owns one session: roster, state machine, timers and scoring.

    Every public method takes the session lock for its whole run, so each
    inbound event (and each timer callback) is applied atomically. Timer
    callbacks carry an epoch and re-check the session before acting.
    """

    def __init__(self, session: MatchSession, broadcaster, scheduler, config=None, logger=None, clock=None,
                 on_replaced=None):
        self.session = session
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self.config = config or {}
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock or now_ms
        self.on_replaced = on_replaced
        self.closed = False
        self._grace_timer = None
        self._grace_epoch = 0
        self._countdown_timer = None
        self._countdown_epoch = 0

    @property
    def code(self) -> str:
        return self.session.code

    def _cfg(self, key, default):
        try:
            return type(default)(self.config.get(key, default))
        except (TypeError, ValueError):
            return default

    # ---- roster ----

    def host(self, display_name, sid=None):
        """Seat the session creator as p1."""
        s = self.session
        with s.lock:
            slot = s.add_player(_clean_name(display_name, 'Player1'), 'p1', sid)
            self.logger.info(f"[session-create] session={s.code} mode={s.mode} difficulty={s.difficulty} blanks={s.total_empty}")
            self.broadcaster.to_connection(sid, 'session_created', {
                'code': s.code,
                'role': slot.role,
                'playerId': slot.identity,
                'state': s.to_public_dict(),
            })
            return slot

    def join(self, display_name, sid=None):
        """Take a free player seat, or watch as a spectator when both are taken.

        Returns ``(member, role)`` where role is ``p1``/``p2`` or ``spectator``.
        """
        s = self.session
        with s.lock:
            if s.game_state == FINISHED:
                raise SessionFinished()
            role = s.free_role()
            if role is None:
                spectator = s.add_spectator(_clean_name(display_name, 'Spectator'), sid)
                self.logger.info(f"[session-join] session={s.code} spectator={spectator.identity}")
                self.broadcaster.to_connection(sid, 'joined_as_spectator', {
                    'spectatorId': spectator.identity,
                    'state': s.to_public_dict(),
                    'chat': s.chat_history(),
                })
                self._broadcast_state()
                return spectator, SPECTATOR_ROLE

            default = 'Player1' if role == 'p1' else 'Player2'
            slot = s.add_player(_clean_name(display_name, default), role, sid)
            self.logger.info(f"[session-join] session={s.code} role={role} player={slot.identity}")
            self._welcome(slot)
            self._broadcast_state()
            if len(s.players) == 2:
                self._fire(machine.ROSTER_FULL)
            return slot, role

    def rejoin(self, display_name, role, sid=None, identity=None):
        """Rebind an existing player seat to a new connection.

        The seat is found by identity when given, else by name and role.
        Progress is keyed by identity so it carries over untouched. With no
        matching seat this behaves like ``join``.
        """
        s = self.session
        with s.lock:
            slot = s.player(identity) if identity else None
            if slot is None:
                slot = next((p for p in s.players if p.display_name == display_name and p.role == role), None)
            if slot is None:
                return self.join(display_name, sid)
            replaced = slot.sid if slot.sid and slot.sid != sid else None
            slot.sid = sid
            slot.connected = True
            if replaced:
                # The old connection no longer speaks for this seat
                self.broadcaster.leave(replaced, s.code)
                if self.on_replaced is not None:
                    self.on_replaced(replaced, s.code, slot.identity)
            self.logger.info(f"[session-rejoin] session={s.code} role={slot.role} state={s.game_state}")
            self._welcome(slot, rejoined=True)
            self._broadcast_state()
            if (s.game_state == PAUSED and s.all_connected()
                    and bool(self.config.get('RESUME_ON_REJOIN', True))):
                self._fire(machine.ROSTER_RESTORED)
            return slot, slot.role

    def disconnect(self, identity, sid) -> None:
        s = self.session
        with s.lock:
            spectator = s.spectator(identity)
            if spectator is not None:
                if spectator.sid == sid:
                    s.remove_spectator(identity)
                    self._broadcast_state()
                return
            slot = s.player(identity)
            # A connection already replaced by a rejoin must not pause the match
            if slot is None or slot.sid != sid:
                return
            slot.connected = False
            slot.sid = None
            self.broadcaster.to_session(s.code, 'player_disconnected', {'name': slot.display_name, 'role': slot.role})
            if s.game_state == PLAYING:
                self._fire(machine.PLAYER_LOST, slot=slot)
            self._broadcast_state()

    # ---- moves ----

    def submit_cell(self, identity, row, col, value) -> Optional[bool]:
        """Validate a cell entry. Returns whether it was correct, None if ignored."""
        s = self.session
        with s.lock:
            progress = self._playing_progress(identity)
            if progress is None:
                return None
            row, col = self._blank_cell(row, col)
            value = _coord(value, 'value', 1, 9)
            correct = value == s.solution[row][col]
            if correct:
                apply_correct(progress, row, col, self._elapsed())
            else:
                apply_wrong(progress)
            self.broadcaster.to_session(s.code, 'cell_update', {
                'playerId': identity,
                'row': row,
                'col': col,
                'value': value,
                'correct': correct,
                'progress': s.players_to_dict(),
            })
            if correct:
                self._check_win(identity, progress)
            return correct

    def erase_cell(self, identity, row, col, was_correct=None) -> Optional[bool]:
        """Clear a cell. Whether it had been correct comes from the server's own record."""
        s = self.session
        with s.lock:
            progress = self._playing_progress(identity)
            if progress is None:
                return None
            row, col = self._blank_cell(row, col)
            had_been_correct = apply_erase(progress, row, col)
            self.broadcaster.to_session(s.code, 'cell_erased', {
                'playerId': identity,
                'row': row,
                'col': col,
                'wasCorrect': had_been_correct,
                'progress': s.players_to_dict(),
            })
            return had_been_correct

    def use_hint(self, identity, row, col) -> Optional[int]:
        """Reveal one cell for a score penalty. Returns the revealed value."""
        s = self.session
        with s.lock:
            progress = self._playing_progress(identity)
            if progress is None:
                return None
            if progress.hints_remaining <= 0:
                raise HintExhausted()
            row, col = self._blank_cell(row, col)
            if (row, col) in progress.solved:
                raise InvalidMove('Cell is already solved')
            apply_hint(progress, row, col)
            value = s.solution[row][col]
            slot = s.player(identity)
            self.broadcaster.to_connection(slot.sid if slot else None, 'hint_result', {
                'row': row,
                'col': col,
                'value': value,
                'hintsLeft': progress.hints_remaining,
            })
            self.broadcaster.to_session(s.code, 'cell_update', {
                'playerId': identity,
                'row': row,
                'col': col,
                'value': value,
                'correct': True,
                'isHint': True,
                'progress': s.players_to_dict(),
            })
            self._check_win(identity, progress)
            return value

    # ---- social ----

    def chat(self, identity, text, emoji=None) -> Optional[dict]:
        s = self.session
        with s.lock:
            name, role = self._member_label(identity)
            limit = self._cfg('CHAT_MAX_LENGTH', 120)
            message = ChatMessage(name=name, role=role, text=str(text or '')[:limit],
                                  emoji=str(emoji or ''), ts=self.clock())
            s.chat.append(message)
            payload = message.to_dict()
            self.broadcaster.to_session(s.code, 'chat', payload)
            return payload

    def react(self, identity, emoji) -> None:
        s = self.session
        with s.lock:
            slot = s.player(identity)
            self.broadcaster.to_session(s.code, 'reaction', {
                'playerId': identity,
                'role': slot.role if slot else SPECTATOR_ROLE,
                'emoji': str(emoji or ''),
            })

    # ---- lifecycle ----

    def finish(self, winner_identity) -> bool:
        """Finish the match for ``winner_identity``. Only the first call has an effect."""
        with self.session.lock:
            return self._fire(machine.FINISH, winner=winner_identity)

    def close(self) -> None:
        """Stop all timers. Called when the registry drops the session."""
        with self.session.lock:
            self.closed = True
            self._effect_cancel_grace()
            self._effect_cancel_countdown()

    def public_state(self) -> dict:
        with self.session.lock:
            return self.session.to_public_dict()

    # ---- internals ----

    def _fire(self, event, **ctx) -> bool:
        s = self.session
        step = machine.transition(s.game_state, event)
        if step is None:
            return False
        previous = s.game_state
        s.game_state = step.next_state
        self.logger.debug(f"[transition] session={s.code} {previous} --{event}--> {step.next_state}")
        for effect in step.effects:
            getattr(self, f"_effect_{effect}")(**ctx)
        return True

    def _playing_progress(self, identity):
        s = self.session
        if s.game_state != PLAYING:
            return None
        progress = s.progress.get(identity)
        if progress is None and s.spectator(identity) is not None:
            raise SpectatorAction()
        return progress

    def _blank_cell(self, row, col):
        row = _coord(row, 'row', 0, 8)
        col = _coord(col, 'col', 0, 8)
        if not self.session.is_blank(row, col):
            raise InvalidMove('Cell is part of the puzzle')
        return row, col

    def _check_win(self, identity, progress) -> None:
        if progress.filled >= self.session.total_empty:
            self._fire(machine.PLAYER_COMPLETED, winner=identity)

    def _elapsed(self) -> int:
        start = self.session.start_time
        return max(0, self.clock() - start) if start is not None else 0

    def _member_label(self, identity):
        s = self.session
        slot = s.player(identity)
        if slot:
            return slot.display_name, slot.role
        spectator = s.spectator(identity)
        if spectator:
            return spectator.display_name, SPECTATOR_ROLE
        return 'Unknown', SPECTATOR_ROLE

    def _welcome(self, slot, rejoined=False) -> None:
        s = self.session
        payload = {
            'role': slot.role,
            'playerId': slot.identity,
            'state': s.to_public_dict(),
            'chat': s.chat_history(),
        }
        if rejoined:
            payload['rejoined'] = True
            payload['startTime'] = s.start_time
        self.broadcaster.to_connection(slot.sid, 'session_joined', payload)

    def _broadcast_state(self) -> None:
        self.broadcaster.to_session(self.session.code, 'session_update', self.session.to_public_dict())

    # ---- countdown ----

    def _effect_start_countdown(self, **ctx) -> None:
        count_from = self._cfg('COUNTDOWN_FROM', 3)
        self.logger.info(f"[countdown] session={self.code} from={count_from}")
        self.broadcaster.to_session(self.code, 'countdown_start', {'from': count_from})
        self._broadcast_state()
        self._countdown_epoch += 1
        self._countdown_timer = self.scheduler.call_later(
            self._cfg('COUNTDOWN_DELAY_SEC', 0.5), self._countdown_tick, count_from, self._countdown_epoch)

    def _countdown_tick(self, n, epoch) -> None:
        with self.session.lock:
            if self.closed or epoch != self._countdown_epoch or self.session.game_state != COUNTDOWN:
                return
            self.broadcaster.to_session(self.code, 'countdown_tick', {'n': n})
            delay = self._cfg('COUNTDOWN_TICK_SEC', 1.0)
            if n > 1:
                self._countdown_timer = self.scheduler.call_later(delay, self._countdown_tick, n - 1, epoch)
            else:
                self._countdown_timer = self.scheduler.call_later(delay, self._countdown_done, epoch)

    def _countdown_done(self, epoch) -> None:
        s = self.session
        with s.lock:
            if self.closed or epoch != self._countdown_epoch or s.game_state != COUNTDOWN:
                return
            self._countdown_timer = None
            self._fire(machine.COUNTDOWN_DONE)
            missing = next((p for p in s.players if not p.connected), None)
            if missing is not None:
                self._fire(machine.PLAYER_LOST, slot=missing)
                self._broadcast_state()

    def _effect_cancel_countdown(self, **ctx) -> None:
        self._countdown_epoch += 1
        if self._countdown_timer is not None:
            self._countdown_timer.cancel()
            self._countdown_timer = None

    def _effect_record_start(self, **ctx) -> None:
        self.session.start_time = self.clock()
        self.session.paused_at = None

    def _effect_announce_start(self, **ctx) -> None:
        self.logger.info(f"[match-start] session={self.code} start={self.session.start_time}")
        self.broadcaster.to_session(self.code, 'match_start', {'startTime': self.session.start_time})
        self._broadcast_state()

    # ---- pause / resume ----

    def _effect_record_pause(self, **ctx) -> None:
        self.session.paused_at = self.clock()

    def _effect_announce_pause(self, slot=None, **ctx) -> None:
        grace = self._cfg('RECONNECT_GRACE_SEC', 30.0)
        name = slot.display_name if slot else 'A player'
        self.logger.info(f"[match-paused] session={self.code} role={slot.role if slot else '?'} grace={grace}s")
        self.broadcaster.to_session(self.code, 'match_paused', {
            'reason': f"{name} disconnected. {int(grace)} seconds to reconnect.",
            'graceSeconds': grace,
        })

    def _effect_arm_grace(self, **ctx) -> None:
        self._effect_cancel_grace()
        self._grace_epoch += 1
        self._grace_timer = self.scheduler.call_later(
            self._cfg('RECONNECT_GRACE_SEC', 30.0), self._grace_expired, self._grace_epoch)

    def _grace_expired(self, epoch) -> None:
        with self.session.lock:
            if self.closed or epoch != self._grace_epoch or self.session.game_state != PAUSED:
                return
            self._grace_timer = None
            self._fire(machine.GRACE_EXPIRED)

    def _effect_cancel_grace(self, **ctx) -> None:
        self._grace_epoch += 1
        if self._grace_timer is not None:
            self._grace_timer.cancel()
            self._grace_timer = None

    def _effect_announce_abort(self, **ctx) -> None:
        self.logger.info(f"[match-aborted] session={self.code}")
        self.broadcaster.to_session(self.code, 'match_aborted', {'reason': 'Opponent left the match.'})
        self._broadcast_state()

    def _effect_shift_start(self, **ctx) -> None:
        s = self.session
        if s.start_time is not None and s.paused_at is not None:
            s.start_time += max(0, self.clock() - s.paused_at)
        s.paused_at = None

    def _effect_announce_resume(self, **ctx) -> None:
        self.logger.info(f"[match-resumed] session={self.code} start={self.session.start_time}")
        self.broadcaster.to_session(self.code, 'match_resumed', {'startTime': self.session.start_time})
        self._broadcast_state()

    # ---- finish ----

    def _effect_announce_winner(self, winner=None, **ctx) -> None:
        s = self.session
        slot = s.player(winner)
        elapsed = self._elapsed()
        self.logger.info(f"[match-over] session={s.code} winner={slot.role if slot else '?'} elapsed={elapsed}ms")
        self.broadcaster.to_session(s.code, 'match_over', {
            'winnerId': winner,
            'winnerName': slot.display_name if slot else '?',
            'winnerRole': slot.role if slot else None,
            'elapsed': elapsed,
            'finalProgress': s.players_to_dict(),
            'solution': s.solution,
        })
        self._broadcast_state()
