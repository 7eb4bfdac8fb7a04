"""
Chromatic Valley — Game Engine
Single-session state machine: round sequencing, countdown timer,
scoring with streak/level/time bonuses, lives and castle progress.

Everything runs on one logical thread. The presentation layer calls
`tick()` once per frame (or per request); due transition callbacks and
the countdown are evaluated against the injected monotonic clock.
"""

import logging
import math
import random
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from game_config import DEFAULT_CONFIG, GameConfig
from harmony import ZEN_FILTER_ALL, get_next_challenge_type, is_harmony_type
from round_generator import Round, generate_round

logger = logging.getLogger(__name__)

MODES = ('zen', 'unified')

# Streak values that trigger a one-shot celebration
STREAK_MILESTONES = (3, 5, 10, 15, 20, 25)

# ── Castle progress ───────────────────────────────────────────
CASTLE_MILESTONES = (500, 1500, 3000, 5000, 8000)
CASTLE_STAGES = ('foundation', 'walls', 'tower', 'details', 'crown')

RESULT_TITLES = {
    'masterful': 'A Harmonious Journey',
    'well_done': 'Colors Remember You',
    'good_try': 'The Path Continues',
    'keep_practicing': 'Return to the Valley',
}


@dataclass(frozen=True)
class CastleProgress:
    stage: str
    percentage: float           # completion of the current stage, 0-100
    overall_percentage: float   # completion of the whole castle, 0-100

    def to_dict(self) -> dict:
        return asdict(self)


def get_castle_progress(score: int) -> CastleProgress:
    """Map a session score onto the five castle stages."""
    for index, milestone in enumerate(CASTLE_MILESTONES):
        if score < milestone:
            previous = CASTLE_MILESTONES[index - 1] if index > 0 else 0
            fraction = (score - previous) / (milestone - previous)
            return CastleProgress(
                stage=CASTLE_STAGES[index],
                percentage=min(100.0, fraction * 100),
                overall_percentage=min(100.0, index * 20 + fraction * 20),
            )
    return CastleProgress(stage=CASTLE_STAGES[-1], percentage=100.0, overall_percentage=100.0)


def get_result_title(accuracy: float) -> str:
    if accuracy >= 90:
        return RESULT_TITLES['masterful']
    if accuracy >= 70:
        return RESULT_TITLES['well_done']
    if accuracy >= 50:
        return RESULT_TITLES['good_try']
    return RESULT_TITLES['keep_practicing']


# ── Level curve & scoring ─────────────────────────────────────

def get_time_for_level(level: int, config: GameConfig = DEFAULT_CONFIG) -> int:
    """Round duration in ms: shrinks linearly with level down to a floor."""
    reduction = min(
        level * config.time_reduction_per_level,
        config.base_time_ms - config.min_time_ms,
    )
    return config.base_time_ms - reduction


def calculate_points(
    streak: int,
    level: int,
    time_left: float,
    challenge_type: str,
    config: GameConfig = DEFAULT_CONFIG,
) -> int:
    """
    Points for a correct answer given the streak *before* the answer.

    Scoring:
    - Base: base_points
    - Streak bonus: new streak * streak_bonus_multiplier
    - Time bonus: floor(time_left * time_bonus_multiplier), color-match only
    - Level bonus: level * level_bonus_multiplier
    """
    streak_bonus = (streak + 1) * config.streak_bonus_multiplier
    time_bonus = 0
    if challenge_type == 'color-match':
        time_bonus = math.floor(time_left * config.time_bonus_multiplier)
    level_bonus = level * config.level_bonus_multiplier
    return config.base_points + streak_bonus + time_bonus + level_bonus


# ── Scheduling primitives ─────────────────────────────────────

class Scheduler:
    """Cancellable registry of delayed callbacks, fired by `run_due`."""

    def __init__(self):
        self._pending: Dict[int, Tuple[float, Callable[[], None]]] = {}
        self._next_id = 1

    def schedule(self, callback: Callable[[], None], delay_ms: float, now_ms: float) -> int:
        handle = self._next_id
        self._next_id += 1
        self._pending[handle] = (now_ms + delay_ms, callback)
        return handle

    def cancel(self, handle: int) -> bool:
        return self._pending.pop(handle, None) is not None

    def clear(self) -> None:
        self._pending.clear()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def run_due(self, now_ms: float) -> int:
        """Fire every callback due at `now_ms`, earliest first. Returns how many ran."""
        fired = 0
        while True:
            due = [(at, handle) for handle, (at, _) in self._pending.items() if at <= now_ms]
            if not due:
                return fired
            _, handle = min(due)
            _, callback = self._pending.pop(handle)
            callback()
            fired += 1


class CountdownTimer:
    """
    Countdown that owns {start, duration}. Remaining time is always
    recomputed from the clock, so missed frames cost nothing.
    """

    def __init__(self):
        self.start_ms: Optional[float] = None
        self.duration_ms: float = 0
        self._paused_at: Optional[float] = None

    @property
    def active(self) -> bool:
        return self.start_ms is not None

    @property
    def paused(self) -> bool:
        return self._paused_at is not None

    def start(self, now_ms: float, duration_ms: float) -> None:
        self.start_ms = now_ms
        self.duration_ms = duration_ms
        self._paused_at = None

    def stop(self) -> None:
        self.start_ms = None
        self._paused_at = None

    def pause(self, now_ms: float) -> None:
        if self.active and not self.paused:
            self._paused_at = now_ms

    def resume(self, now_ms: float) -> None:
        """Shift the start instant forward by the paused duration."""
        if self.active and self.paused:
            self.start_ms += now_ms - self._paused_at
            self._paused_at = None

    def remaining_ms(self, now_ms: float) -> float:
        if not self.active:
            return 0.0
        reference = self._paused_at if self.paused else now_ms
        return max(0.0, self.duration_ms - (reference - self.start_ms))

    def time_left_percent(self, now_ms: float) -> float:
        if not self.active or self.duration_ms <= 0:
            return 0.0
        return self.remaining_ms(now_ms) / self.duration_ms * 100


def monotonic_ms() -> float:
    return time.monotonic() * 1000


# ── State ─────────────────────────────────────────────────────

@dataclass
class GameState:
    level: int = 1
    score: int = 0
    streak: int = 0
    max_streak: int = 0
    correct_answers: int = 0
    total_answers: int = 0
    is_playing: bool = False
    processing_choice: bool = False
    mode: str = 'unified'
    wrong_answers: int = 0
    rounds_since_switch: int = 0
    answer_colors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AnswerResult:
    """Outcome of one accepted answer."""
    correct: bool
    feedback: str
    points_earned: int
    streak: int
    correct_color: str
    game_over_pending: bool = False


class GameEngine:
    """
    Round/score state machine for one player.

    Phases: idle -> playing -> feedback -> transition -> playing,
    or -> ended once lives run out (unified mode only).
    """

    def __init__(
        self,
        config: GameConfig = DEFAULT_CONFIG,
        rng=None,
        clock: Callable[[], float] = monotonic_ms,
        lifetime_score_provider: Callable[[], int] = None,
    ):
        self.config = config
        self.rng = rng or random.Random()
        self._clock = clock
        self._lifetime_score = lifetime_score_provider or (lambda: 0)

        self._scheduler = Scheduler()
        self._timer = CountdownTimer()
        self._listeners: List[Callable[[str, dict], None]] = []

        self._tutorial_active = False
        self._timer_pending_start = False
        self._disposed = False
        self._reset_state()

    def _reset_state(self, game_state: GameState = None) -> None:
        self.game_state = game_state or GameState()
        self.round_state: Optional[Round] = None
        self.feedback: Optional[str] = None
        self.streak_milestone: Optional[int] = None
        self.current_challenge_type = 'color-match'
        self.zen_filter = ZEN_FILTER_ALL
        self.phase = 'idle'
        self._timer_pending_start = False

    # ── Observers ─────────────────────────────────────────────

    def subscribe(self, listener: Callable[[str, dict], None]) -> Callable[[], None]:
        """Register `listener(event, payload)`; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _emit(self, event: str, payload: dict) -> None:
        for listener in list(self._listeners):
            listener(event, payload)

    # ── Read-only views ───────────────────────────────────────

    @property
    def castle_progress(self) -> CastleProgress:
        return get_castle_progress(self.game_state.score)

    @property
    def tutorial_active(self) -> bool:
        return self._tutorial_active

    @property
    def timer_active(self) -> bool:
        return self._timer.active

    @property
    def pending_callbacks(self) -> int:
        return self._scheduler.pending_count

    @property
    def accuracy(self) -> int:
        state = self.game_state
        if state.total_answers == 0:
            return 0
        return math.floor(state.correct_answers / state.total_answers * 100 + 0.5)

    def snapshot(self) -> dict:
        """Serializable view of everything the UI observes."""
        return {
            'phase': self.phase,
            'game_state': self.game_state.to_dict(),
            'round_state': self.round_state.to_dict() if self.round_state else None,
            'feedback': self.feedback,
            'streak_milestone': self.streak_milestone,
            'current_challenge_type': self.current_challenge_type,
            'castle_progress': self.castle_progress.to_dict(),
            'tutorial_active': self._tutorial_active,
        }

    def final_report(self) -> dict:
        state = self.game_state
        return {
            'mode': state.mode,
            'score': state.score,
            'level': state.level,
            'max_streak': state.max_streak,
            'correct_answers': state.correct_answers,
            'total_answers': state.total_answers,
            'accuracy': self.accuracy,
            'title': get_result_title(self.accuracy),
            'castle_stage': self.castle_progress.stage,
            'date': datetime.now(timezone.utc).isoformat(),
        }

    # ── Lifecycle ─────────────────────────────────────────────

    def start_game(self, mode: str = 'unified', zen_filter: str = ZEN_FILTER_ALL) -> None:
        if mode not in MODES:
            raise ValueError(f"Unknown game mode: {mode!r}")
        if zen_filter != ZEN_FILTER_ALL and not is_harmony_type(zen_filter):
            raise ValueError(f"Unknown zen harmony filter: {zen_filter!r}")

        self._scheduler.clear()
        self._timer.stop()
        self._reset_state(GameState(is_playing=True, mode=mode))
        self.phase = 'playing'
        if mode == 'zen':
            self.zen_filter = zen_filter
            if zen_filter != ZEN_FILTER_ALL:
                self.current_challenge_type = zen_filter

        logger.info("Game started (mode=%s, zen_filter=%s)", mode, self.zen_filter)
        self._ensure_round()

    def reset_game(self) -> None:
        self._scheduler.clear()
        self._timer.stop()
        self._reset_state()
        logger.info("Game reset")

    def dispose(self) -> None:
        """Teardown: cancel the timer and every pending callback."""
        self._scheduler.clear()
        self._timer.stop()
        self._listeners.clear()
        self._disposed = True

    def set_tutorial_active(self, active: bool) -> None:
        """Freeze the countdown while a tutorial overlay is showing."""
        active = bool(active)
        if active == self._tutorial_active:
            return
        now = self._clock()
        self._tutorial_active = active

        if active:
            self._timer.pause(now)
            return

        self._timer.resume(now)
        if self._timer_pending_start and self.round_state is not None and self.game_state.is_playing:
            self._start_timer(now)

    # ── Frame loop ────────────────────────────────────────────

    def tick(self) -> None:
        """Run due transitions, then update the countdown for this frame."""
        if self._disposed:
            return
        now = self._clock()
        self._scheduler.run_due(now)
        self._ensure_round()
        self._tick_timer(now)

    def _tick_timer(self, now: float) -> None:
        if not self._timer.active or self.round_state is None or self._tutorial_active:
            return
        self.round_state.time_left = self._timer.time_left_percent(now)
        self._expire_timer(now)

    def _expire_timer(self, now: float) -> None:
        if self._timer.active and not self._timer.paused and self._timer.remaining_ms(now) <= 0:
            if self.round_state is not None:
                self.round_state.time_left = 0.0
            self._timer.stop()
            self.handle_timeout()

    def _ensure_round(self) -> None:
        if self.game_state.is_playing and self.round_state is None:
            self.next_round()

    def _start_timer(self, now: float) -> None:
        self._timer_pending_start = False
        self._timer.start(now, get_time_for_level(self.game_state.level, self.config))

    def _schedule(self, callback: Callable[[], None], delay_ms: float) -> int:
        return self._scheduler.schedule(callback, delay_ms, self._clock())

    # ── Rounds ────────────────────────────────────────────────

    def _choose_challenge_type(self) -> str:
        state = self.game_state
        if state.mode == 'zen' and self.zen_filter != ZEN_FILTER_ALL:
            return self.zen_filter
        return get_next_challenge_type(
            self.current_challenge_type,
            state.rounds_since_switch,
            self._lifetime_score(),
            self.rng,
        )

    def next_round(self) -> None:
        state = self.game_state
        if not state.is_playing:
            return
        state.processing_choice = False

        challenge_type = self._choose_challenge_type()
        if challenge_type != self.current_challenge_type:
            self.current_challenge_type = challenge_type
            state.rounds_since_switch = 0
        else:
            state.rounds_since_switch += 1

        self.round_state = generate_round(
            challenge_type, state.level, state.answer_colors, self.rng, self.config,
        )
        self.phase = 'playing'
        self._emit('round_started', {
            'challenge_type': challenge_type,
            'level': state.level,
        })

        if state.mode != 'zen':
            if self._tutorial_active:
                self._timer_pending_start = True
            else:
                self._start_timer(self._clock())

    # ── Answers ───────────────────────────────────────────────

    def _accepts_input(self) -> bool:
        state = self.game_state
        return state.is_playing and not state.processing_choice and self.round_state is not None

    def handle_choice(self, value) -> Optional[AnswerResult]:
        """
        Evaluate a hex string (color-match) or a choice index (other types).
        Returns None when the submission is ignored.
        """
        if self._disposed:
            return None
        # A late answer loses to a countdown that already ran out;
        # otherwise time_left stays at the last rendered frame
        self._expire_timer(self._clock())
        if not self._accepts_input():
            logger.debug("Choice %r ignored (phase=%s)", value, self.phase)
            return None

        round_state = self.round_state
        if round_state.challenge_type == 'color-match':
            if not isinstance(value, str):
                logger.debug("Color-match round expects a hex string, got %r", value)
                return None
            is_correct = value.upper() == round_state.target_color.hex.upper()
        else:
            if isinstance(value, bool) or not isinstance(value, int):
                logger.debug("%s round expects a choice index, got %r", round_state.challenge_type, value)
                return None
            is_correct = value == round_state.correct_choice_index

        self.game_state.processing_choice = True
        self._timer.stop()
        self._timer_pending_start = False

        if is_correct:
            return self._register_hit(round_state)
        return self._register_miss('incorrect')

    def handle_timeout(self) -> Optional[AnswerResult]:
        if not self._accepts_input():
            return None
        self.game_state.processing_choice = True
        return self._register_miss('timeout')

    def _register_hit(self, round_state: Round) -> AnswerResult:
        state = self.game_state
        config = self.config

        points = calculate_points(
            state.streak, state.level, round_state.time_left,
            round_state.challenge_type, config,
        )
        new_streak = state.streak + 1

        state.score += points
        state.streak = new_streak
        state.max_streak = max(state.max_streak, new_streak)
        state.correct_answers += 1
        state.total_answers += 1
        state.level += 1
        state.answer_colors.append(round_state.correct_color)
        excess = len(state.answer_colors) - max(0, config.answer_color_history)
        if excess > 0:
            del state.answer_colors[:excess]

        if new_streak in STREAK_MILESTONES:
            self.streak_milestone = new_streak
            self._schedule(self._clear_streak_milestone, config.streak_milestone_display_ms)
            self._emit('streak_milestone', {'streak': new_streak})

        self._show_feedback('correct')
        self._schedule(self.next_round, config.round_transition_ms)

        logger.debug("Correct (+%d) streak=%d level=%d", points, new_streak, state.level)
        self._emit('correct', {
            'points': points,
            'challenge_type': round_state.challenge_type,
            'color': round_state.correct_color,
            'score': state.score,
        })
        return AnswerResult(
            correct=True, feedback='correct', points_earned=points,
            streak=new_streak, correct_color=round_state.correct_color,
        )

    def _register_miss(self, kind: str) -> AnswerResult:
        state = self.game_state
        config = self.config
        self._timer.stop()

        state.streak = 0
        state.wrong_answers += 1
        state.total_answers += 1

        self._show_feedback(kind)
        out_of_lives = state.mode != 'zen' and state.wrong_answers >= config.max_wrong_answers
        if out_of_lives:
            self._schedule(self._end_game, config.game_end_delay_ms)
        else:
            self._schedule(self.next_round, config.wrong_answer_transition_ms)

        logger.debug("%s (wrong=%d/%d)", kind.capitalize(), state.wrong_answers, config.max_wrong_answers)
        correct_color = self.round_state.correct_color
        self._emit(kind, {
            'challenge_type': self.round_state.challenge_type,
            'wrong_answers': state.wrong_answers,
        })
        return AnswerResult(
            correct=False, feedback=kind, points_earned=0, streak=0,
            correct_color=correct_color, game_over_pending=out_of_lives,
        )

    def _show_feedback(self, kind: str) -> None:
        self.feedback = kind
        self.phase = 'feedback'
        self._schedule(self._clear_feedback, self.config.feedback_duration_ms)

    def _clear_feedback(self) -> None:
        self.feedback = None
        if self.phase == 'feedback':
            self.phase = 'transition'

    def _clear_streak_milestone(self) -> None:
        self.streak_milestone = None

    def _end_game(self) -> None:
        state = self.game_state
        state.is_playing = False
        state.processing_choice = False
        self._timer.stop()
        self.phase = 'ended'
        logger.info(
            "Game over: score=%d level=%d accuracy=%d%%",
            state.score, state.level, self.accuracy,
        )
        self._emit('game_over', self.final_report())
