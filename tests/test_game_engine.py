"""
Game engine tests: scoring, lives, timer, transitions

Run: pytest tests/test_game_engine.py
"""

import random
import unittest
from dataclasses import replace

from game_config import DEFAULT_CONFIG
from game_engine import (
    CountdownTimer,
    GameEngine,
    Scheduler,
    calculate_points,
    get_castle_progress,
    get_result_title,
    get_time_for_level,
)


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


def correct_value(round_state):
    if round_state.challenge_type == 'color-match':
        return round_state.target_color.hex.lower()
    return round_state.correct_choice_index


def wrong_value(round_state):
    if round_state.challenge_type == 'color-match':
        return next(c for c in round_state.choices if c != round_state.correct_color)
    return (round_state.correct_choice_index + 1) % len(round_state.choices)


class EngineTestCase(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock(1000.0)
        self.config = DEFAULT_CONFIG
        self.engine = GameEngine(self.config, rng=random.Random(1234), clock=self.clock)
        self.events = []
        self.engine.subscribe(lambda event, payload: self.events.append((event, payload)))

    def advance(self, ms):
        self.clock.advance(ms)
        self.engine.tick()

    def answer(self, correct=True):
        round_state = self.engine.round_state
        value = correct_value(round_state) if correct else wrong_value(round_state)
        return self.engine.handle_choice(value)


# ── Pure helpers ──────────────────────────────────────────────

class TestScoring(unittest.TestCase):

    def test_color_match_gets_time_bonus(self):
        # 100 + 3*10 + floor(47.9*0.5) + 3*5
        self.assertEqual(calculate_points(2, 3, 47.9, 'color-match'), 168)

    def test_harmony_rounds_skip_time_bonus(self):
        self.assertEqual(calculate_points(2, 3, 47.9, 'triadic'), 145)

    def test_points_grow_with_streak(self):
        for challenge_type in ('color-match', 'tetradic'):
            points = [calculate_points(streak, 4, 60, challenge_type) for streak in range(0, 30)]
            for lower, higher in zip(points, points[1:]):
                self.assertLess(lower, higher)

    def test_points_grow_with_level(self):
        for challenge_type in ('color-match', 'monochromatic'):
            points = [calculate_points(2, level, 60, challenge_type) for level in range(1, 50)]
            for lower, higher in zip(points, points[1:]):
                self.assertLess(lower, higher)

    def test_points_grow_with_time_left_on_color_match(self):
        # floor(time_left * 0.5) steps up every 2 percent
        points = [calculate_points(2, 4, t, 'color-match') for t in range(0, 101, 2)]
        for lower, higher in zip(points, points[1:]):
            self.assertLess(lower, higher)
        self.assertEqual(calculate_points(2, 4, 100, 'color-match') - calculate_points(2, 4, 0, 'color-match'), 50)

    def test_time_left_ignored_on_harmony_rounds(self):
        self.assertEqual(calculate_points(2, 4, 0, 'analogous'), calculate_points(2, 4, 100, 'analogous'))

    def test_time_for_level(self):
        self.assertEqual(get_time_for_level(1), 7900)
        self.assertEqual(get_time_for_level(40), 4000)
        self.assertEqual(get_time_for_level(100), 4000)

    def test_result_titles(self):
        self.assertEqual(get_result_title(95), 'A Harmonious Journey')
        self.assertEqual(get_result_title(70), 'Colors Remember You')
        self.assertEqual(get_result_title(50), 'The Path Continues')
        self.assertEqual(get_result_title(49), 'Return to the Valley')


class TestCastleProgress(unittest.TestCase):

    def test_first_stage(self):
        progress = get_castle_progress(0)
        self.assertEqual(progress.stage, 'foundation')
        self.assertEqual(progress.percentage, 0)
        progress = get_castle_progress(250)
        self.assertAlmostEqual(progress.percentage, 50)
        self.assertAlmostEqual(progress.overall_percentage, 10)

    def test_milestone_starts_next_stage(self):
        progress = get_castle_progress(500)
        self.assertEqual(progress.stage, 'walls')
        self.assertEqual(progress.percentage, 0)
        self.assertAlmostEqual(progress.overall_percentage, 20)

    def test_last_stage(self):
        progress = get_castle_progress(6500)
        self.assertEqual(progress.stage, 'crown')
        self.assertAlmostEqual(progress.percentage, 50)
        self.assertAlmostEqual(progress.overall_percentage, 90)

    def test_complete(self):
        for score in (8000, 25000):
            progress = get_castle_progress(score)
            self.assertEqual(progress.stage, 'crown')
            self.assertEqual(progress.percentage, 100)


class TestScheduler(unittest.TestCase):

    def test_runs_due_callbacks_in_order(self):
        scheduler = Scheduler()
        fired = []
        scheduler.schedule(lambda: fired.append('late'), 500, 0)
        scheduler.schedule(lambda: fired.append('early'), 100, 0)
        scheduler.schedule(lambda: fired.append('future'), 900, 0)
        self.assertEqual(scheduler.run_due(600), 2)
        self.assertEqual(fired, ['early', 'late'])
        self.assertEqual(scheduler.pending_count, 1)

    def test_cancel(self):
        scheduler = Scheduler()
        fired = []
        handle = scheduler.schedule(lambda: fired.append(1), 100, 0)
        self.assertTrue(scheduler.cancel(handle))
        self.assertFalse(scheduler.cancel(handle))
        scheduler.run_due(1000)
        self.assertEqual(fired, [])

    def test_callback_can_schedule_due_work(self):
        scheduler = Scheduler()
        fired = []

        def first():
            fired.append('first')
            scheduler.schedule(lambda: fired.append('second'), 0, 100)

        scheduler.schedule(first, 100, 0)
        scheduler.run_due(100)
        self.assertEqual(fired, ['first', 'second'])


class TestCountdownTimer(unittest.TestCase):

    def test_remaining_from_start(self):
        timer = CountdownTimer()
        timer.start(1000, 8000)
        self.assertEqual(timer.remaining_ms(3000), 6000)
        self.assertAlmostEqual(timer.time_left_percent(3000), 75)
        self.assertEqual(timer.remaining_ms(20000), 0)

    def test_pause_freezes_and_resume_rebaselines(self):
        timer = CountdownTimer()
        timer.start(0, 8000)
        timer.pause(2000)
        self.assertEqual(timer.remaining_ms(9000), 6000)
        timer.resume(9000)
        self.assertEqual(timer.remaining_ms(10000), 5000)

    def test_stop_is_idempotent(self):
        timer = CountdownTimer()
        timer.stop()
        timer.start(0, 100)
        timer.stop()
        timer.stop()
        self.assertFalse(timer.active)
        self.assertEqual(timer.remaining_ms(50), 0)


# ── State machine ─────────────────────────────────────────────

class TestGameFlow(EngineTestCase):

    def test_start_generates_timed_color_match_round(self):
        self.engine.start_game('unified')
        state = self.engine.game_state
        self.assertTrue(state.is_playing)
        self.assertEqual(self.engine.phase, 'playing')
        self.assertEqual(self.engine.round_state.challenge_type, 'color-match')
        self.assertEqual(self.engine.round_state.time_left, 100)
        self.assertTrue(self.engine.timer_active)

    def test_exact_hex_scores_full_bonus(self):
        self.engine.start_game('unified')
        target = self.engine.round_state.target_color.hex

        result = self.engine.handle_choice(target.lower())

        expected = (self.config.base_points
                    + 1 * self.config.streak_bonus_multiplier
                    + int(100 * self.config.time_bonus_multiplier)
                    + 1 * self.config.level_bonus_multiplier)
        state = self.engine.game_state
        self.assertTrue(result.correct)
        self.assertEqual(result.points_earned, expected)
        self.assertEqual(state.score, expected)
        self.assertEqual(state.streak, 1)
        self.assertEqual(state.level, 2)
        self.assertEqual(state.correct_answers, 1)
        self.assertEqual(state.answer_colors, [target])
        self.assertEqual(self.engine.feedback, 'correct')
        self.assertFalse(self.engine.timer_active)

    def test_feedback_then_next_round(self):
        self.engine.start_game('unified')
        first_round = self.engine.round_state
        self.answer(correct=True)

        self.advance(self.config.feedback_duration_ms)
        self.assertIsNone(self.engine.feedback)
        self.assertEqual(self.engine.phase, 'transition')
        self.assertIs(self.engine.round_state, first_round)

        self.advance(self.config.round_transition_ms - self.config.feedback_duration_ms)
        self.assertIsNot(self.engine.round_state, first_round)
        self.assertEqual(self.engine.phase, 'playing')
        self.assertFalse(self.engine.game_state.processing_choice)

    def test_three_misses_end_unified_game(self):
        self.engine.start_game('unified')
        for _ in range(2):
            result = self.answer(correct=False)
            self.assertFalse(result.game_over_pending)
            self.advance(self.config.wrong_answer_transition_ms)

        result = self.answer(correct=False)
        self.assertTrue(result.game_over_pending)
        self.assertTrue(self.engine.game_state.is_playing)

        self.advance(self.config.game_end_delay_ms)
        state = self.engine.game_state
        self.assertFalse(state.is_playing)
        self.assertEqual(state.wrong_answers, 3)
        self.assertEqual(state.total_answers, 3)
        self.assertEqual(self.engine.phase, 'ended')

        game_over = [payload for event, payload in self.events if event == 'game_over']
        self.assertEqual(len(game_over), 1)
        self.assertEqual(game_over[0]['accuracy'], 0)
        self.assertEqual(game_over[0]['title'], 'Return to the Valley')

    def test_miss_resets_streak(self):
        self.engine.start_game('unified')
        self.answer(correct=True)
        self.advance(self.config.round_transition_ms)
        self.answer(correct=True)
        self.advance(self.config.round_transition_ms)
        self.assertEqual(self.engine.game_state.streak, 2)

        result = self.answer(correct=False)
        self.assertEqual(result.feedback, 'incorrect')
        self.assertEqual(self.engine.game_state.streak, 0)
        self.assertEqual(self.engine.game_state.max_streak, 2)
        self.assertEqual(self.engine.accuracy, 67)

    def test_streak_milestone_fires_once(self):
        self.engine.start_game('unified')
        for _ in range(4):
            self.answer(correct=True)
            self.advance(self.config.round_transition_ms)

        self.answer(correct=True)
        self.assertEqual(self.engine.game_state.streak, 5)
        self.assertEqual(self.engine.streak_milestone, 5)

        self.advance(self.config.streak_milestone_display_ms)
        self.assertIsNone(self.engine.streak_milestone)

        fives = [p for e, p in self.events if e == 'streak_milestone' and p['streak'] == 5]
        self.assertEqual(len(fives), 1)

    def test_answer_history_is_bounded(self):
        config = replace(DEFAULT_CONFIG, answer_color_history=3)
        engine = GameEngine(config, rng=random.Random(7), clock=self.clock)
        engine.start_game('unified')
        answered = []
        for _ in range(5):
            answered.append(engine.round_state.correct_color)
            engine.handle_choice(correct_value(engine.round_state))
            self.clock.advance(config.round_transition_ms)
            engine.tick()
        self.assertEqual(engine.game_state.answer_colors, answered[-3:])

    def test_zero_history_keeps_nothing(self):
        config = replace(DEFAULT_CONFIG, answer_color_history=0)
        engine = GameEngine(config, rng=random.Random(8), clock=self.clock)
        engine.start_game('zen')
        for _ in range(30):
            engine.handle_choice(correct_value(engine.round_state))
            self.clock.advance(config.round_transition_ms)
            engine.tick()
        self.assertEqual(engine.game_state.correct_answers, 30)
        self.assertEqual(engine.game_state.answer_colors, [])

    def test_level_and_score_never_decrease(self):
        self.engine.start_game('unified')
        previous_score, previous_level = 0, 1
        for correct in (True, False, True, True, False):
            self.answer(correct=correct)
            state = self.engine.game_state
            self.assertGreaterEqual(state.score, previous_score)
            self.assertGreaterEqual(state.level, previous_level)
            previous_score, previous_level = state.score, state.level
            self.advance(self.config.wrong_answer_transition_ms)


class TestInputGuards(EngineTestCase):

    def test_ignored_before_start(self):
        self.assertIsNone(self.engine.handle_choice('#FFFFFF'))
        self.assertIsNone(self.engine.handle_timeout())

    def test_double_submission_dropped(self):
        self.engine.start_game('unified')
        target = self.engine.round_state.target_color.hex
        self.assertIsNotNone(self.engine.handle_choice(target))
        self.assertIsNone(self.engine.handle_choice(target))
        self.assertEqual(self.engine.game_state.total_answers, 1)

    def test_malformed_value_ignored(self):
        self.engine.start_game('unified')
        self.assertIsNone(self.engine.handle_choice(2))
        self.assertIsNone(self.engine.handle_choice(None))
        self.assertEqual(self.engine.game_state.total_answers, 0)
        self.assertFalse(self.engine.game_state.processing_choice)

    def test_invalid_mode_and_filter(self):
        with self.assertRaises(ValueError):
            self.engine.start_game('hardcore')
        with self.assertRaises(ValueError):
            self.engine.start_game('zen', 'pentadic')


class TestTimer(EngineTestCase):

    def test_time_left_tracks_clock(self):
        self.engine.start_game('unified')
        duration = get_time_for_level(1)
        self.advance(duration / 4)
        self.assertAlmostEqual(self.engine.round_state.time_left, 75)

    def test_timeout_counts_as_miss(self):
        self.engine.start_game('unified')
        self.advance(get_time_for_level(1))

        state = self.engine.game_state
        self.assertEqual(self.engine.feedback, 'timeout')
        self.assertEqual(self.engine.round_state.time_left, 0)
        self.assertEqual(state.wrong_answers, 1)
        self.assertEqual(state.streak, 0)
        self.assertTrue(state.processing_choice)
        self.assertIn('timeout', [event for event, _ in self.events])

    def test_late_answer_loses_to_expired_timer(self):
        self.engine.start_game('unified')
        target = self.engine.round_state.target_color.hex
        self.clock.advance(get_time_for_level(1) + 50)

        self.assertIsNone(self.engine.handle_choice(target))
        self.assertEqual(self.engine.feedback, 'timeout')
        self.assertEqual(self.engine.game_state.correct_answers, 0)

    def test_tutorial_freezes_countdown(self):
        self.engine.start_game('unified')
        duration = get_time_for_level(1)
        self.advance(1000)

        self.engine.set_tutorial_active(True)
        self.advance(duration * 3)
        self.assertIsNone(self.engine.feedback)

        self.engine.set_tutorial_active(False)
        self.engine.tick()
        self.assertAlmostEqual(self.engine.round_state.time_left, (duration - 1000) / duration * 100)

    def test_tutorial_defers_timer_start(self):
        self.engine.set_tutorial_active(True)
        self.engine.start_game('unified')
        self.assertFalse(self.engine.timer_active)

        self.engine.set_tutorial_active(False)
        self.assertTrue(self.engine.timer_active)


class TestZenMode(EngineTestCase):

    def test_untimed_and_endless(self):
        self.engine.start_game('zen')
        self.assertFalse(self.engine.timer_active)
        for _ in range(5):
            self.answer(correct=False)
            self.advance(self.config.wrong_answer_transition_ms)
        self.assertTrue(self.engine.game_state.is_playing)
        self.assertEqual(self.engine.game_state.wrong_answers, 5)

    def test_filter_pins_harmony(self):
        self.engine.start_game('zen', 'tetradic')
        for _ in range(6):
            self.assertEqual(self.engine.round_state.challenge_type, 'tetradic')
            self.answer(correct=True)
            self.advance(self.config.round_transition_ms)

    def test_rotation_counter(self):
        self.engine.start_game('zen', 'triadic')
        self.assertEqual(self.engine.current_challenge_type, 'triadic')
        self.assertEqual(self.engine.game_state.rounds_since_switch, 1)


class TestLifecycle(EngineTestCase):

    def test_restart_flushes_pending_callbacks(self):
        self.engine.start_game('unified')
        self.answer(correct=False)
        self.assertGreater(self.engine.pending_callbacks, 0)

        self.engine.start_game('unified')
        self.assertEqual(self.engine.pending_callbacks, 0)
        self.assertEqual(self.engine.game_state.wrong_answers, 0)
        self.assertIsNone(self.engine.feedback)

    def test_reset_returns_to_idle(self):
        self.engine.start_game('unified')
        self.answer(correct=True)
        self.engine.reset_game()

        self.assertEqual(self.engine.phase, 'idle')
        self.assertIsNone(self.engine.round_state)
        self.assertFalse(self.engine.timer_active)
        self.assertEqual(self.engine.pending_callbacks, 0)
        self.assertEqual(self.engine.game_state.score, 0)
        self.advance(5000)
        self.assertIsNone(self.engine.round_state)

    def test_dispose_stops_everything(self):
        self.engine.start_game('unified')
        round_state = self.engine.round_state
        self.engine.dispose()
        self.advance(60000)
        self.assertIsNone(self.engine.handle_choice(correct_value(round_state)))
        self.assertEqual(self.engine.game_state.total_answers, 0)

    def test_unsubscribe(self):
        seen = []
        unsubscribe = self.engine.subscribe(lambda event, payload: seen.append(event))
        self.engine.start_game('unified')
        unsubscribe()
        self.answer(correct=True)
        self.assertEqual(seen, ['round_started'])

    def test_snapshot_is_plain_data(self):
        self.engine.start_game('unified')
        snapshot = self.engine.snapshot()
        self.assertEqual(snapshot['phase'], 'playing')
        self.assertEqual(snapshot['round_state']['challenge_type'], 'color-match')
        self.assertEqual(snapshot['castle_progress']['stage'], 'foundation')


if __name__ == '__main__':
    unittest.main(verbosity=2)
