import functools
import random
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from music_guesser import errors
from music_guesser.errors import GameError, StateConflictError
from music_guesser.models import ENDED, IN_PROGRESS, LOBBY, ChatEvent, Player, Track
from .scoring import final_scores, score_guess


def locked(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.lock:
            return method(self, *args, **kwargs)
    return wrapper


class RoomSettings:
    def __init__(self, default_turn_duration=30, min_turn_duration=10, max_turn_duration=120,
                 reveal_duration=5, nickname_max_length=20, chat_max_length=500):
        self.default_turn_duration = default_turn_duration
        self.min_turn_duration = min_turn_duration
        self.max_turn_duration = max_turn_duration
        self.reveal_duration = reveal_duration
        self.nickname_max_length = nickname_max_length
        self.chat_max_length = chat_max_length

    @classmethod
    def from_config(cls, config):
        return cls(
            default_turn_duration=int(config.get('DEFAULT_TURN_DURATION_SEC', 30)),
            min_turn_duration=int(config.get('MIN_TURN_DURATION_SEC', 10)),
            max_turn_duration=int(config.get('MAX_TURN_DURATION_SEC', 120)),
            reveal_duration=int(config.get('REVEAL_DURATION_SEC', 5)),
            nickname_max_length=int(config.get('NICKNAME_MAX_LENGTH', 20)),
            chat_max_length=int(config.get('CHAT_MAX_LENGTH', 500)),
        )


class Room:
    """Authoritative state machine for one game room.

    Phases move lobby -> in_progress -> ended -> lobby (via reset). Every
    public mutator runs under ``self.lock`` (re-entrant), so handlers, turn
    timers and disconnects for the same room never interleave. Broadcasts go
    through ``emit(event, payload)``, which the gateway binds to the room's
    Socket.IO channel.

    Every way a turn can end (timer expiry, host skip, turn-holder leaving)
    funnels into ``advance_turn``, and the pending timer is always cancelled
    before a new one is scheduled.
    """

    def __init__(self, code: str, host_id: str, settings: RoomSettings, scheduler,
                 emit: Callable[[str, dict], None], logger):
        self.code = code
        self.host_id = host_id
        self.settings = settings
        self.scheduler = scheduler
        self.emit = emit
        self.logger = logger
        self.lock = threading.RLock()

        # Insertion order doubles as join order
        self.players: Dict[str, Player] = {}
        self.phase = LOBBY
        self.turn_queue: List[str] = []
        self.current_turn_index = 0
        self.turns_played = 0
        self.turns_max = 0
        self.turn_duration = settings.default_turn_duration
        self.turn_deadline: Optional[float] = None
        self.revealing = False
        self.closed = False

        self._timer = None
        self._join_seq = 0
        # Queue entries whose turn was played or forfeited this game
        self._done = set()

    # ---- queries ----

    def current_holder(self) -> Optional[Player]:
        if self.phase != IN_PROGRESS or not self.turn_queue:
            return None
        return self.players.get(self.turn_queue[self.current_turn_index])

    def all_uploaded(self) -> bool:
        return bool(self.players) and all(p.has_uploaded for p in self.players.values())

    @locked
    def snapshot(self) -> dict:
        holder = self.current_holder()
        return {
            'code': self.code,
            'players': [p.to_dict(host_id=self.host_id) for p in self.players.values()],
            'hostId': self.host_id,
            'phase': self.phase,
            'gameStarted': self.phase == IN_PROGRESS,
            'gameEnded': self.phase == ENDED,
            'currentPlayerId': holder.connection_id if holder else None,
            'turnDeadline': self.turn_deadline,
            'turnDurationSeconds': self.turn_duration,
            'turnsPlayed': self.turns_played,
            'turnsMax': self.turns_max,
            'revealing': self.revealing,
        }

    def broadcast_snapshot(self) -> None:
        self.emit('room-update', self.snapshot())

    # ---- lobby ----

    @locked
    def join(self, connection_id: str, nickname: str) -> bool:
        if self.closed:
            raise StateConflictError('Room is closing, please try again', code='RoomClosed')
        nickname = (nickname or '').strip()
        if not nickname:
            raise errors.missing_fields('nickname')
        if len(nickname) > self.settings.nickname_max_length:
            raise errors.nickname_too_long(self.settings.nickname_max_length)
        if connection_id in self.players:
            raise errors.already_joined()
        if any(p.nickname.lower() == nickname.lower() for p in self.players.values()):
            raise errors.duplicate_nickname()

        if not self.players:
            self.host_id = connection_id
        self.players[connection_id] = Player(connection_id, nickname, join_order=self._join_seq)
        self._join_seq += 1
        self.logger.info(f"[join] room={self.code} player={nickname} sid={connection_id} players={len(self.players)}")
        self.broadcast_snapshot()
        return connection_id == self.host_id

    def _check_can_submit(self, connection_id: str) -> Player:
        if self.phase == IN_PROGRESS:
            raise StateConflictError('Game already started. Cannot upload songs.', code='GameAlreadyStarted')
        if self.phase == ENDED:
            raise StateConflictError('Game has ended. Please reset to upload new songs.', code='GameEnded')
        player = self.players.get(connection_id)
        if player is None:
            raise errors.player_not_found()
        return player

    def submit_track(self, connection_id: str, reference: str, resolve: Callable[[str], Track]) -> Tuple[Track, bool]:
        """Resolve ``reference`` and store it as the player's song.

        The lookup runs outside the room lock so a slow provider does not
        stall chat or timers; state is re-validated once it returns.
        Returns the stored track and whether every player has now uploaded.
        """
        with self.lock:
            self._check_can_submit(connection_id)
        try:
            track = resolve(reference)
        except GameError as exc:
            self.logger.info(f"[track-lookup-failed] room={self.code} sid={connection_id} ref={reference!r} code={exc.code}")
            raise
        except Exception as exc:
            self.logger.warning(f"[track-lookup-failed] room={self.code} sid={connection_id} ref={reference!r} error={exc!r}")
            raise errors.metadata_lookup_failed() from exc

        with self.lock:
            player = self._check_can_submit(connection_id)
            player.submitted_track = track
            player.has_uploaded = True
            self.logger.info(
                f"[track-submit] room={self.code} player={player.nickname} track={track.id} "
                f"title={track.title!r} artist={track.artist!r}"
            )
            self.broadcast_snapshot()
            return track, self.all_uploaded()

    def _parse_duration(self, value) -> int:
        low = self.settings.min_turn_duration
        high = self.settings.max_turn_duration
        if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
            raise errors.invalid_duration(low, high)
        try:
            duration = int(value)
        except (TypeError, ValueError):
            raise errors.invalid_duration(low, high) from None
        if not low <= duration <= high:
            raise errors.invalid_duration(low, high)
        return duration

    @locked
    def start_game(self, requester_id: str, turn_duration) -> None:
        if requester_id != self.host_id:
            raise errors.not_host('start the game')
        if not self.all_uploaded():
            raise StateConflictError('Not all players have uploaded songs yet.', code='IncompleteUploads')
        if self.phase == IN_PROGRESS:
            raise StateConflictError('Game is already in progress.', code='AlreadyStarted')
        if self.phase == ENDED:
            raise StateConflictError('Game has ended. Please reset to start a new game.', code='MustReset')
        duration = self._parse_duration(turn_duration)

        queue = list(self.players)
        random.shuffle(queue)
        self.turn_queue = queue
        self.current_turn_index = 0
        self.turns_played = 0
        self.turns_max = len(queue)
        self.turn_duration = duration
        self.turn_deadline = None
        self.revealing = False
        self._done = set()
        for player in self.players.values():
            player.clear_turn_credit()
        self.phase = IN_PROGRESS

        order = [self.players[pid].nickname for pid in queue]
        self.logger.info(f"[game-start] room={self.code} turns={self.turns_max} duration={duration}s order={order}")
        self.emit('game-started', {
            'turnOrder': [{'id': pid, 'nickname': self.players[pid].nickname} for pid in queue],
            'turnDurationSeconds': duration,
        })
        self.advance_turn()

    # ---- turns ----

    @locked
    def advance_turn(self) -> None:
        """Start the next playable turn, or end the game when none remain.

        Queue entries for departed players are dropped, and players without
        a track forfeit their turn. Both repairs shrink the remaining work,
        so the loop is bounded by the queue length.
        """
        if self.phase != IN_PROGRESS:
            return
        self._cancel_timer()
        self.revealing = False
        self.turn_deadline = None

        skipped = 0
        while True:
            if not self.turn_queue:
                self._end_game('turn queue empty')
                return
            if self.turns_played >= self.turns_max or skipped >= len(self.turn_queue):
                self._end_game('all turns played')
                return
            self.current_turn_index %= len(self.turn_queue)
            pid = self.turn_queue[self.current_turn_index]
            player = self.players.get(pid)
            if player is None:
                self.logger.warning(f"[turn-skip-stale] room={self.code} sid={pid} not in room, dropping from queue")
                self._remove_from_queue(pid)
                continue
            if pid in self._done or player.submitted_track is None:
                if pid not in self._done:
                    self.logger.warning(f"[turn-skip-no-track] room={self.code} player={player.nickname} has no track, skipping")
                    self._forfeit(pid)
                self.current_turn_index = (self.current_turn_index + 1) % len(self.turn_queue)
                skipped += 1
                continue
            break

        track = player.submitted_track
        self._done.add(pid)
        self.turns_played += 1
        self.turn_deadline = time.time() + self.turn_duration
        self._timer = self.scheduler.schedule(
            self.turn_duration, self._on_turn_timeout, label=f'turn:{self.code}:{self.turns_played}'
        )
        self.logger.info(
            f"[turn-start] room={self.code} turn={self.turns_played}/{self.turns_max} player={player.nickname} "
            f"deadline={self.turn_deadline:.0f}"
        )
        self.emit('turn-changed', {
            'playerId': pid,
            'nickname': player.nickname,
            'title': track.title,
            'artist': track.artist,
            'trackRef': track.id,
            'previewRef': track.preview_ref,
            'track': track.to_dict(),
            'turnDeadline': self.turn_deadline,
            'turnDurationSeconds': self.turn_duration,
            'turnNumber': self.turns_played,
            'turnsMax': self.turns_max,
        })

    @locked
    def next_turn(self, requester_id: str) -> None:
        if requester_id != self.host_id:
            raise errors.not_host('skip turns')
        if self.phase == LOBBY:
            raise StateConflictError('Game not started yet.', code='GameNotStarted')
        if self.phase == ENDED:
            raise StateConflictError('Game has already ended. Cannot skip turns.', code='GameEnded')
        self.logger.info(f"[turn-skip] room={self.code} requested by host")
        self._cancel_timer()
        self._begin_reveal()

    def _on_turn_timeout(self, handle) -> None:
        with self.lock:
            if not self._owns_timer(handle):
                return
            self._timer = None
            self.logger.info(f"[timer-fire] room={self.code} timer={handle.label} turn expired")
            self._begin_reveal()

    def _begin_reveal(self) -> None:
        holder = self.current_holder()
        self.revealing = True
        self.turn_deadline = None
        if holder is not None and holder.submitted_track is not None:
            track = holder.submitted_track
            self.logger.info(f"[reveal] room={self.code} player={holder.nickname} title={track.title!r} artist={track.artist!r}")
            self.emit('show-answer', {
                'playerId': holder.connection_id,
                'nickname': holder.nickname,
                'title': track.title,
                'artist': track.artist,
                'trackRef': track.id,
                'previewRef': track.preview_ref,
            })
        self._timer = self.scheduler.schedule(
            self.settings.reveal_duration, self._on_reveal_done, label=f'reveal:{self.code}:{self.turns_played}'
        )

    def _on_reveal_done(self, handle) -> None:
        with self.lock:
            if not self._owns_timer(handle):
                return
            self._timer = None
            self.revealing = False
            for player in self.players.values():
                player.clear_turn_credit()
            if self.turn_queue:
                self.current_turn_index = (self.current_turn_index + 1) % len(self.turn_queue)
            self.advance_turn()

    def _owns_timer(self, handle) -> bool:
        if handle.cancelled or handle is not self._timer or self.closed or self.phase != IN_PROGRESS:
            self.logger.info(f"[timer-abort] room={self.code} timer={handle.label} superseded")
            return False
        return True

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self.logger.info(f"[timer-cancel] room={self.code} timer={self._timer.label}")
            self._timer = None

    def _forfeit(self, pid: str) -> None:
        # An unplayed entry leaving the rotation shrinks the game by one turn
        if pid not in self._done:
            self._done.add(pid)
            self.turns_max = max(self.turns_played, self.turns_max - 1)

    def _remove_from_queue(self, pid: str) -> None:
        position = self.turn_queue.index(pid)
        self._forfeit(pid)
        del self.turn_queue[position]
        if position < self.current_turn_index:
            self.current_turn_index -= 1
        if self.current_turn_index >= len(self.turn_queue):
            self.current_turn_index = 0

    def _end_game(self, reason: str) -> None:
        self._cancel_timer()
        self.phase = ENDED
        self.revealing = False
        self.turn_deadline = None
        scores = final_scores(self.players.values())
        self.logger.info(f"[game-end] room={self.code} reason={reason!r} turns={self.turns_played}/{self.turns_max} scores={scores}")
        self.emit('game-ended', {'scores': scores})
        self.broadcast_snapshot()

    # ---- chat ----

    @locked
    def chat_message(self, connection_id: str, text: str) -> ChatEvent:
        sender = self.players.get(connection_id)
        if sender is None:
            raise errors.player_not_found()
        if not isinstance(text, str) or not text.strip():
            raise errors.missing_fields('message')
        text = text[:self.settings.chat_max_length]

        outcome = None
        holder = self.current_holder()
        if (holder is not None and holder.connection_id != connection_id
                and holder.submitted_track is not None):
            outcome = score_guess(sender, holder.submitted_track, text)

        event = ChatEvent(sender.nickname, text, guess_outcome=outcome)
        self.emit('chat-message', event.to_dict())
        if outcome is not None:
            self.logger.info(
                f"[guess] room={self.code} player={sender.nickname} title={outcome.title_correct} "
                f"artist={outcome.artist_correct} score={sender.score}"
            )
            self.broadcast_snapshot()
        return event

    # ---- lifecycle ----

    @locked
    def reset_game(self, requester_id: str) -> None:
        if requester_id != self.host_id:
            raise errors.not_host('reset the game')
        if self.phase != ENDED:
            raise StateConflictError('The game must end before it can be reset.', code='MustEndFirst')
        self._clear_game()
        for player in self.players.values():
            player.reset_for_new_game()
        self.logger.info(f"[game-reset] room={self.code} players={len(self.players)}")
        self.broadcast_snapshot()

    def _clear_game(self) -> None:
        self._cancel_timer()
        self.turn_queue = []
        self.current_turn_index = 0
        self.turns_played = 0
        self.turns_max = 0
        self.turn_duration = self.settings.default_turn_duration
        self.turn_deadline = None
        self.revealing = False
        self._done = set()
        self.phase = LOBBY

    @locked
    def handle_disconnect(self, connection_id: str) -> bool:
        """Remove a player. Returns True when the room is now empty."""
        player = self.players.pop(connection_id, None)
        if player is None:
            return not self.players
        self.logger.info(f"[disconnect] room={self.code} player={player.nickname} remaining={len(self.players)}")
        if not self.players:
            # Whoever joins before the registry drops the room starts from a lobby
            self._clear_game()
            return True

        if self.host_id == connection_id:
            self.host_id = next(iter(self.players))
            self.logger.info(f"[host-migrate] room={self.code} new_host={self.players[self.host_id].nickname}")

        if connection_id in self.turn_queue:
            was_holder = (self.phase == IN_PROGRESS
                          and self.turn_queue[self.current_turn_index] == connection_id)
            self._remove_from_queue(connection_id)
            if self.phase == IN_PROGRESS:
                if not self.turn_queue:
                    self._end_game('turn queue empty')
                    return False
                if was_holder:
                    for other in self.players.values():
                        other.clear_turn_credit()
                    self.advance_turn()
                    if self.phase == ENDED:
                        return False

        self.broadcast_snapshot()
        return False

    def close(self) -> None:
        with self.lock:
            self._cancel_timer()
            self.closed = True

    def __repr__(self):
        return f'<Room {self.code} phase={self.phase} players={len(self.players)}>'
