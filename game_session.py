"""
Chromatic Valley — Game Session
Binds one GameEngine to a player's ProgressStore: unlocks come from the
stored lifetime score, correct answers feed the discovered-color
collection, and finished games are recorded as high scores.
"""

import logging
import threading
from typing import Optional

from game_config import DEFAULT_CONFIG, GameConfig
from game_engine import GameEngine, monotonic_ms
from storage import HighScore, ProgressStore

logger = logging.getLogger(__name__)


class GameSession:
    """
    One player's game, as served by the API.
    Requests may arrive on several server threads; callers hold `lock`
    around every advance-and-act sequence.

    Lifetime score only grows from unified-mode games; zen games still
    compete for the zen high-score table.
    """

    def __init__(
        self,
        progress: ProgressStore,
        config: GameConfig = DEFAULT_CONFIG,
        rng=None,
        clock=monotonic_ms,
    ):
        self.progress = progress
        self.engine = GameEngine(
            config=config,
            rng=rng,
            clock=clock,
            lifetime_score_provider=lambda: progress.lifetime_score,
        )
        self.engine.subscribe(self._on_event)
        self.last_report: Optional[dict] = None
        self.lock = threading.Lock()
        self._closed = False

    def _on_event(self, event: str, payload: dict) -> None:
        if event == 'correct':
            self.progress.add_discovered_colors(payload['challenge_type'], [payload['color']])
        elif event == 'game_over':
            self._record_result(payload)

    def _record_result(self, report: dict) -> dict:
        mode = report['mode']
        previous_high = self.progress.get_high_score(mode)
        is_new_record = self.progress.is_new_high_score(report['score'], mode)
        if is_new_record:
            self.progress.save_high_score(HighScore.from_report(report))
        if mode == 'unified':
            self.progress.add_to_lifetime_score(report['score'])

        self.last_report = {
            **report,
            'is_new_high_score': is_new_record,
            'previous_high_score': previous_high,
            'lifetime_score': self.progress.lifetime_score,
        }
        logger.info("Recorded %s result: %s", mode, self.last_report)
        return self.last_report

    # ── Engine passthrough ────────────────────────────────────

    def start(self, mode: str = 'unified', zen_filter: str = 'all') -> None:
        self.last_report = None
        self.engine.start_game(mode, zen_filter)

    def finish(self) -> Optional[dict]:
        """
        Leave the current game. A game still in progress with at least one
        answer is recorded before the engine resets.
        """
        state = self.engine.game_state
        report = None
        if state.is_playing and state.total_answers > 0:
            report = self._record_result(self.engine.final_report())
        self.engine.reset_game()
        return report

    def advance(self) -> None:
        self.engine.tick()

    @property
    def ended(self) -> bool:
        return self.engine.phase == 'ended'

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True
        self.engine.dispose()
