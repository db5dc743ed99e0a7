"""
Test cases for the exam grading engine.
Covers scoring, grade reconciliation, the defocus monitor and the API.
"""
import threading
import warnings
from dataclasses import replace
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from unittest import mock

from django.contrib.auth.models import User
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.core.paginator import UnorderedObjectListWarning
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework import status
from rest_framework.authtoken.models import Token
from rest_framework.test import APITestCase

from .grading import (
    GradingSessionController, InvalidQuestionIndex, NotFound, PersistenceFailure,
    QuestionSetStore, QuestionSpec, SessionState, StateViolation, SubmissionRecord, SubmissionStore,
    get_grader, parse_answer, reconcile_grades,
)
from .grading.answers import BooleanAnswer, ChoiceAnswer, NoAnswer, TextAnswer
from .grading.scoring import as_number, clamp_score, percentage, score, total
from .integrity import (
    DefocusMonitor, DefocusState, EventKind, IntegrityEvent, IntegrityLogError,
    ManualClock, MonitorStatus, Signal, SystemClock, summarize, transition, validate_log,
)
from .models import AuditLog, Exam, Question, Submission
from .services import DatabaseQuestionSetStore, DatabaseSubmissionStore, ExamAttempt

T0 = datetime(2026, 5, 1, 10, 0, tzinfo=dt_timezone.utc)


def at(seconds):
    return T0 + timedelta(seconds=seconds)


def sample_questions():
    return [
        QuestionSpec('single_choice', 2, options=('a', 'b', 'c'), correct_option_index=0),
        QuestionSpec('boolean', 1, correct_boolean=True),
        QuestionSpec('short_text', 2, correct_text='Paris'),
        QuestionSpec('free_text', 5),
    ]


SAMPLE_ANSWERS = [0, 'true', ' paris ', 'Lists are mutable, tuples are not.']


class InMemoryQuestionSetStore(QuestionSetStore):
    def __init__(self, question_sets):
        self.question_sets = question_sets

    def get(self, exam_id):
        if exam_id not in self.question_sets:
            raise NotFound('Exam', exam_id)
        return self.question_sets[exam_id]


class InMemorySubmissionStore(SubmissionStore):
    def __init__(self, records=()):
        self.records = {r.id: r for r in records}
        self.saved = []
        self.created = []
        self.failures = 0
        self.on_save = None

    def get(self, submission_id):
        if submission_id not in self.records:
            raise NotFound('Submission', submission_id)
        return self.records[submission_id]

    def save(self, submission_id, patch):
        if self.on_save:
            self.on_save()
        if self.failures:
            self.failures -= 1
            raise PersistenceFailure("database unavailable")
        self.saved.append((submission_id, patch))
        self.records[submission_id] = replace(
            self.records[submission_id],
            graded=True,
            question_scores=list(patch.question_scores),
            question_comments=list(patch.question_comments),
        )

    def create(self, exam_id, payload):
        if self.failures:
            self.failures -= 1
            raise PersistenceFailure("database unavailable")
        submission_id = len(self.created) + 1
        self.created.append((exam_id, payload))
        return submission_id


# =============================================================================
# SCORING
# =============================================================================

class AnswerParsingTests(SimpleTestCase):
    """Tests for turning raw answers into typed answers."""

    def test_blank_values_are_unanswered(self):
        """None and whitespace are unanswered for every question type."""
        for question_type in ('single_choice', 'boolean', 'short_text', 'free_text'):
            self.assertEqual(parse_answer(question_type, None), NoAnswer())
            self.assertEqual(parse_answer(question_type, '  '), NoAnswer())

    def test_choice_index_coercion(self):
        """Option indices accept ints and numeric strings, nothing else."""
        self.assertEqual(parse_answer('single_choice', 2), ChoiceAnswer(2))
        self.assertEqual(parse_answer('single_choice', ' 1 '), ChoiceAnswer(1))
        self.assertEqual(parse_answer('single_choice', 1.0), ChoiceAnswer(1))
        self.assertEqual(parse_answer('single_choice', 'b'), ChoiceAnswer(None))
        self.assertEqual(parse_answer('single_choice', True), ChoiceAnswer(None))

    def test_boolean_and_text_answers(self):
        self.assertEqual(parse_answer('boolean', False), BooleanAnswer(False))
        self.assertEqual(parse_answer('short_text', 42), TextAnswer('42'))

    def test_question_points_must_be_positive(self):
        with self.assertRaises(ValueError):
            QuestionSpec('boolean', 0, correct_boolean=True)


class ObjectiveScoringTests(SimpleTestCase):
    """Tests for exact-match scoring of auto-gradable questions."""

    def test_single_choice_correct(self):
        question = QuestionSpec('single_choice', 5, options=('a', 'b'), correct_option_index=1)
        self.assertEqual(score(question, 1), 5.0)
        self.assertEqual(score(question, '1'), 5.0)

    def test_single_choice_wrong_or_unanswered(self):
        question = QuestionSpec('single_choice', 5, options=('a', 'b'), correct_option_index=1)
        self.assertEqual(score(question, 0), 0.0)
        self.assertEqual(score(question, None), 0.0)

    def test_single_choice_without_key_never_matches(self):
        """An unanswered question must not score against a missing key."""
        question = QuestionSpec('single_choice', 5, options=('a', 'b'))
        self.assertEqual(score(question, None), 0.0)

    def test_boolean_string_coercion(self):
        """Only true and the exact string "true" are true."""
        question = QuestionSpec('boolean', 1, correct_boolean=True)
        self.assertEqual(score(question, 'true'), 1.0)
        self.assertEqual(score(question, ' TRUE '), 0.0)
        self.assertEqual(score(question, 'True'), 0.0)
        self.assertEqual(score(question, False), 0.0)
        self.assertEqual(score(question, 'yes'), 0.0)

    def test_unanswered_boolean_matches_false_key(self):
        """Unanswered normalizes to false, so it matches a false key."""
        question = QuestionSpec('boolean', 1, correct_boolean='false')
        self.assertEqual(score(question, None), 1.0)

    def test_short_text_trim_and_case_fold(self):
        question = QuestionSpec('short_text', 2, correct_text='Paris')
        self.assertEqual(score(question, ' paris '), 2.0)
        self.assertEqual(score(question, 'Lyon'), 0.0)

    def test_free_text_scores_zero(self):
        """Free-text answers are left to a human grader."""
        question = QuestionSpec('free_text', 5)
        result = get_grader('free_text').grade(question, parse_answer('free_text', 'An essay'))
        self.assertEqual(result.points_earned, 0.0)
        self.assertFalse(result.auto_graded)
        self.assertEqual(result.grading_method, 'manual')

    def test_scoring_is_deterministic(self):
        questions = sample_questions()
        first = [score(q, a) for q, a in zip(questions, SAMPLE_ANSWERS)]
        second = [score(q, a) for q, a in zip(questions, SAMPLE_ANSWERS)]
        self.assertEqual(first, [2.0, 1.0, 2.0, 0.0])
        self.assertEqual(first, second)


class AggregateTests(SimpleTestCase):
    """Tests for totals, clamping and percentages."""

    def test_non_numeric_scores_count_as_zero(self):
        self.assertEqual(as_number(None), 0.0)
        self.assertEqual(as_number('abc'), 0.0)
        self.assertEqual(as_number(float('nan')), 0.0)
        self.assertEqual(as_number(True), 0.0)
        self.assertEqual(as_number('2.5'), 2.5)

    def test_clamp_score(self):
        self.assertEqual(clamp_score(7, 5), 5.0)
        self.assertEqual(clamp_score(-1, 5), 0.0)
        self.assertEqual(clamp_score(3.5, 5), 3.5)

    def test_clamp_score_rounds_to_storage_precision(self):
        self.assertEqual(clamp_score(1.236, 5), 1.24)
        self.assertEqual(clamp_score('0.004', 5), 0.0)

    def test_total_is_rounded(self):
        self.assertEqual(total([0.1, 0.2]), 0.3)
        self.assertEqual(total([1, None, 'x', 2]), 3.0)

    def test_percentage(self):
        self.assertEqual(percentage(5, 10), 50.0)
        self.assertEqual(percentage(1, 3), 33.33)
        self.assertEqual(percentage(1, 0), 0.0)


# =============================================================================
# RECONCILIATION & GRADING SESSION
# =============================================================================

class ReconcilerTests(SimpleTestCase):
    """Tests for deriving overrides from a stored grade record."""

    def test_key_change_marks_override(self):
        """A stored score that the scorer no longer produces reads as an override."""
        questions = [QuestionSpec('single_choice', 5, options=('a', 'b'), correct_option_index=1)]
        vectors = reconcile_grades(questions, [0], [5])
        self.assertEqual(vectors.scores, [5.0])
        self.assertEqual(vectors.overrides, [True])

    def test_matching_scores_are_not_overrides(self):
        vectors = reconcile_grades(sample_questions(), SAMPLE_ANSWERS, [2, 1, 2, 4], ['', '', '', 'ok'])
        self.assertEqual(vectors.overrides, [False, False, False, False])
        self.assertEqual(vectors.comments[3], 'ok')

    def test_free_text_is_never_an_override(self):
        vectors = reconcile_grades(sample_questions(), SAMPLE_ANSWERS, [2, 1, 2, 5])
        self.assertFalse(vectors.overrides[3])
        self.assertEqual(vectors.scores[3], 5.0)

    def test_short_vectors_are_padded_with_auto_scores(self):
        vectors = reconcile_grades(sample_questions(), SAMPLE_ANSWERS, [2], None)
        self.assertEqual(vectors.scores, [2.0, 1.0, 2.0, 0.0])
        self.assertEqual(vectors.comments, ['', '', '', ''])

    def test_out_of_range_stored_scores_are_clamped(self):
        vectors = reconcile_grades(sample_questions(), SAMPLE_ANSWERS, [2, 1, 2, 9])
        self.assertEqual(vectors.scores[3], 5.0)

    def test_stored_scores_are_rounded(self):
        vectors = reconcile_grades(sample_questions(), SAMPLE_ANSWERS, [2, 1, 2, 4.567])
        self.assertEqual(vectors.scores[3], 4.57)


class GradingSessionControllerTests(SimpleTestCase):
    """Tests for the grading session state machine."""

    def setUp(self):
        self.record = SubmissionRecord(id=1, exam_id=10, answers=list(SAMPLE_ANSWERS))
        self.store = InMemorySubmissionStore([self.record])
        self.questions = InMemoryQuestionSetStore({10: sample_questions()})
        self.clock = lambda: T0
        self.controller = GradingSessionController.open(1, self.store, self.questions, clock=self.clock)

    def test_fresh_submission_uses_auto_scores(self):
        self.assertEqual(self.controller.state, SessionState.READY)
        self.assertEqual(self.controller.scores, [2.0, 1.0, 2.0, 0.0])
        self.assertEqual(self.controller.overrides, [False] * 4)
        self.assertEqual(self.controller.total_score, 5.0)
        self.assertEqual(self.controller.max_score, 10.0)

    def test_missing_submission_aborts_load(self):
        with self.assertRaises(NotFound):
            GradingSessionController.open(99, self.store, self.questions)

    def test_missing_question_set_aborts_load(self):
        store = InMemorySubmissionStore([replace(self.record, exam_id=11)])
        with self.assertRaises(NotFound):
            GradingSessionController.open(1, store, self.questions)

    def test_short_answer_list_is_padded(self):
        store = InMemorySubmissionStore([replace(self.record, answers=[0])])
        controller = GradingSessionController.open(1, store, self.questions)
        self.assertEqual(controller.answers, [0, None, None, None])
        self.assertEqual(controller.scores, [2.0, 0.0, 0.0, 0.0])

    def test_locked_score_edit_is_ignored(self):
        """Auto-graded scores only change while overridden."""
        self.assertEqual(self.controller.set_score(0, 1), 2.0)
        self.assertEqual(self.controller.scores[0], 2.0)

    def test_override_then_restore(self):
        """Turning an override off restores the automatic score."""
        self.controller.toggle_override(0)
        self.assertTrue(self.controller.overrides[0])
        self.assertEqual(self.controller.set_score(0, 1.5), 1.5)

        self.controller.toggle_override(0)
        self.assertFalse(self.controller.overrides[0])
        self.assertEqual(self.controller.scores[0], 2.0)

    def test_override_is_a_no_op_for_free_text(self):
        self.controller.toggle_override(3)
        self.assertFalse(self.controller.overrides[3])

    def test_manual_scores_are_clamped(self):
        self.assertEqual(self.controller.set_score(3, 7), 5.0)
        self.assertEqual(self.controller.set_score(3, -2), 0.0)
        self.assertEqual(self.controller.set_score(3, 'abc'), 0.0)

    def test_invalid_index(self):
        with self.assertRaises(InvalidQuestionIndex):
            self.controller.set_score(4, 1)
        with self.assertRaises(IndexError):
            self.controller.toggle_override(-1)

    def test_snapshot_lists_zero_mark_questions(self):
        snapshot = self.controller.snapshot()
        self.assertEqual(snapshot.zero_mark_questions, [3])
        self.assertEqual(snapshot.percentage, 50.0)
        self.assertEqual(snapshot.auto_gradable, [True, True, True, False])

    def test_save_writes_whole_record(self):
        self.controller.set_score(3, 4)
        self.controller.set_comment(3, 'Good comparison')
        patch = self.controller.save()

        self.assertEqual(self.controller.state, SessionState.SAVED)
        self.assertEqual(patch.question_scores, [2.0, 1.0, 2.0, 4.0])
        self.assertEqual(patch.question_comments, ['', '', '', 'Good comparison'])
        self.assertEqual(patch.total_score, 9.0)
        self.assertEqual(patch.max_score, 10.0)
        self.assertEqual(patch.graded_at, T0)
        self.assertTrue(patch.graded)
        self.assertEqual(len(self.store.saved), 1)

    def test_total_is_sum_of_stored_scores(self):
        """Manual scores are stored at the same precision as the total."""
        self.assertEqual(self.controller.set_score(3, 1.236), 1.24)
        patch = self.controller.save()

        self.assertEqual(patch.question_scores[3], 1.24)
        self.assertEqual(patch.total_score, 6.24)
        self.assertEqual(patch.total_score, round(sum(patch.question_scores), 2))

    def test_saved_session_rejects_further_edits(self):
        self.controller.save()
        self.assertIsNone(self.controller.last_violation)
        self.assertEqual(self.controller.set_comment(0, 'late'), '')
        self.assertIsInstance(self.controller.last_violation, StateViolation)
        self.assertIn('saved', str(self.controller.last_violation))

        self.assertIsNone(self.controller.save())
        self.assertIsInstance(self.controller.last_violation, StateViolation)
        self.assertEqual(len(self.store.saved), 1)

    def test_failed_save_keeps_edits_and_can_retry(self):
        """A failed save is retryable and loses nothing."""
        self.controller.set_score(3, 3)
        self.store.failures = 1

        with self.assertRaises(PersistenceFailure):
            self.controller.save()
        self.assertEqual(self.controller.state, SessionState.SAVE_FAILED)
        self.assertEqual(self.controller.scores[3], 3.0)
        self.assertEqual(self.store.saved, [])

        patch = self.controller.save()
        self.assertEqual(self.controller.state, SessionState.SAVED)
        self.assertEqual(patch.total_score, 8.0)

    def test_unexpected_store_error_becomes_persistence_failure(self):
        def explode():
            raise RuntimeError("disk full")
        self.store.on_save = explode

        with self.assertRaises(PersistenceFailure):
            self.controller.save()
        self.assertEqual(self.controller.state, SessionState.SAVE_FAILED)

    def test_second_save_while_saving_is_rejected(self):
        """Only one save may be in flight."""
        nested = []
        self.store.on_save = lambda: nested.append(self.controller.save())

        self.assertIsNotNone(self.controller.save())
        self.assertEqual(nested, [None])
        self.assertEqual(len(self.store.saved), 1)

    def test_reopen_detects_manual_override(self):
        self.controller.toggle_override(1)
        self.controller.set_score(1, 0.5)
        self.controller.save()

        reopened = GradingSessionController.open(1, self.store, self.questions)
        self.assertEqual(reopened.overrides, [False, True, False, False])
        self.assertEqual(reopened.scores[1], 0.5)
        self.assertTrue(reopened.is_editable(1))


# =============================================================================
# INTEGRITY MONITOR
# =============================================================================

class DefocusTransitionTests(SimpleTestCase):
    """Tests for the pure defocus transition function."""

    def setUp(self):
        self.state = DefocusState.initial(60)

    def test_blur_starts_countdown(self):
        result = transition(self.state, Signal.BLUR, T0)
        self.assertEqual(result.state.status, MonitorStatus.UNFOCUSED)
        self.assertEqual(result.state.warning_count, 1)
        self.assertEqual(result.state.defocus_count, 1)
        self.assertTrue(result.start_countdown)
        self.assertEqual(result.events[0].kind, EventKind.BLUR)
        self.assertEqual(result.events[0].warning_number, 1)

    def test_focus_and_tick_while_focused_are_ignored(self):
        for signal in (Signal.FOCUS, Signal.TICK):
            result = transition(self.state, signal, T0)
            self.assertEqual(result.state, self.state)
            self.assertFalse(result.changed)

    def test_repeated_blur_is_ignored(self):
        away = transition(self.state, Signal.BLUR, T0).state
        result = transition(away, Signal.BLUR, at(1))
        self.assertEqual(result.state, away)
        self.assertEqual(result.events, ())

    def test_focus_records_time_away(self):
        away = transition(self.state, Signal.BLUR, T0).state
        for _ in range(12):
            away = transition(away, Signal.TICK, T0).state
        result = transition(away, Signal.FOCUS, at(12))
        self.assertEqual(result.state.status, MonitorStatus.FOCUSED)
        self.assertEqual(result.state.seconds_remaining, 60)
        self.assertEqual(result.events[0].time_away_seconds, 12)
        self.assertTrue(result.cancel_countdown)

    def test_last_tick_terminates(self):
        away = replace(transition(self.state, Signal.BLUR, T0).state, seconds_remaining=1)
        result = transition(away, Signal.TICK, at(60))
        self.assertTrue(result.state.terminated)
        self.assertEqual(result.state.seconds_remaining, 0)
        self.assertEqual(result.events[0].kind, EventKind.TERMINATE)

    def test_terminated_is_absorbing(self):
        terminated = replace(self.state, status=MonitorStatus.TERMINATED)
        for signal in Signal:
            self.assertFalse(transition(terminated, signal, T0).changed)

    def test_grace_period_must_be_positive(self):
        with self.assertRaises(ValueError):
            DefocusState.initial(0)


class DefocusMonitorTests(SimpleTestCase):
    """Tests for the monitor driven by a manual clock."""

    def setUp(self):
        self.clock = ManualClock(start=T0)
        self.terminations = []
        self.monitor = DefocusMonitor(
            self.clock, grace_period=60, tick_seconds=1,
            on_terminate=self.terminations.append,
        )

    def test_full_grace_period_away_terminates(self):
        self.monitor.window_blurred()
        self.clock.advance(59)
        self.assertFalse(self.monitor.terminated)
        self.assertEqual(self.monitor.state.seconds_remaining, 1)

        self.clock.advance(1)
        self.assertTrue(self.monitor.terminated)
        self.assertEqual(self.terminations, [self.monitor])
        self.assertEqual(self.monitor.log[-1].kind, EventKind.TERMINATE)
        self.assertEqual(self.monitor.log[-1].timestamp, at(60))
        self.assertFalse(self.monitor.countdown_active)
        self.assertEqual(self.clock.active_timers, 0)

    def test_refocus_resets_countdown(self):
        self.monitor.window_blurred()
        self.clock.advance(59)
        self.monitor.window_focused()
        self.assertFalse(self.monitor.countdown_active)
        self.assertEqual(self.monitor.log[-1].time_away_seconds, 59)

        self.monitor.window_blurred()
        self.assertEqual(self.monitor.state.seconds_remaining, 60)
        self.assertEqual(self.monitor.state.warning_count, 2)
        self.clock.advance(59)
        self.assertFalse(self.monitor.terminated)

    def test_duplicate_blur_does_not_add_warning(self):
        self.monitor.window_blurred()
        self.monitor.window_blurred()
        self.assertEqual(self.monitor.state.warning_count, 1)
        self.assertEqual(self.monitor.log.count(EventKind.BLUR), 1)
        self.assertEqual(self.clock.active_timers, 1)

    def test_ten_blurs_one_termination(self):
        """Nine timely returns and one that runs out."""
        for _ in range(9):
            self.monitor.window_blurred()
            self.clock.advance(5)
            self.monitor.window_focused()
        self.monitor.window_blurred()
        self.clock.advance(60)

        state = self.monitor.state
        self.assertTrue(state.terminated)
        self.assertEqual(state.warning_count, 10)
        self.assertEqual(state.defocus_count, 10)
        self.assertEqual(self.monitor.log.count(EventKind.TERMINATE), 1)
        self.assertEqual(len(self.terminations), 1)

    def test_signals_after_termination_are_ignored(self):
        self.monitor.window_blurred()
        self.clock.advance(60)
        length = len(self.monitor.log)

        self.monitor.window_focused()
        self.monitor.window_blurred()
        self.clock.advance(120)
        self.assertEqual(len(self.monitor.log), length)
        self.assertEqual(len(self.terminations), 1)

    def test_stale_tick_is_ignored(self):
        """A tick from a cancelled countdown must not touch the new one."""
        self.monitor.window_blurred()
        self.monitor.window_focused()
        self.monitor.window_blurred()

        self.monitor._tick(1)
        self.assertEqual(self.monitor.state.seconds_remaining, 60)

        self.clock.advance(1)
        self.assertEqual(self.monitor.state.seconds_remaining, 59)

    def test_shutdown_stops_countdown(self):
        self.monitor.window_blurred()
        self.monitor.shutdown()
        self.clock.advance(120)
        self.assertFalse(self.monitor.terminated)
        self.assertEqual(self.clock.active_timers, 0)

    def test_focus_changed_dispatches(self):
        self.monitor.focus_changed(False)
        self.assertEqual(self.monitor.state.status, MonitorStatus.UNFOCUSED)
        self.monitor.focus_changed(True)
        self.assertEqual(self.monitor.state.status, MonitorStatus.FOCUSED)

    def test_log_replays_to_same_counters(self):
        for _ in range(3):
            self.monitor.window_blurred()
            self.clock.advance(2)
            self.monitor.window_focused()
        self.monitor.window_blurred()
        self.clock.advance(60)

        summary = summarize(self.monitor.log.to_list())
        self.assertEqual(summary.warning_count, self.monitor.state.warning_count)
        self.assertEqual(summary.total_defocus_count, self.monitor.state.defocus_count)
        self.assertTrue(summary.terminated)
        self.assertEqual(summary.total_time_away_seconds, 6)
        self.assertEqual(summary.terminated_at, at(66))


class SystemClockTests(SimpleTestCase):
    """Tests for the thread-backed clock."""

    def test_countdown_terminates_on_real_timer(self):
        terminated = threading.Event()
        monitor = DefocusMonitor(
            SystemClock(), grace_period=2, tick_seconds=0.01,
            on_terminate=lambda m: terminated.set(),
        )
        monitor.window_blurred()
        self.assertTrue(terminated.wait(5))
        self.assertTrue(monitor.terminated)
        self.assertFalse(monitor.countdown_active)


class IntegrityLogTests(SimpleTestCase):
    """Tests for integrity log validation and replay."""

    def event(self, kind, seconds, **kwargs):
        return {'kind': kind, 'timestamp': at(seconds).isoformat(), **kwargs}

    def test_summarize(self):
        log = [
            self.event('blur', 0, warning_number=1),
            self.event('focus', 10, time_away_seconds=10),
            self.event('blur', 20, warning_number=2),
        ]
        summary = summarize(log)
        self.assertEqual(summary.warning_count, 2)
        self.assertEqual(summary.total_defocus_count, 2)
        self.assertFalse(summary.terminated)
        self.assertEqual(summary.total_time_away_seconds, 10)

    def test_empty_log(self):
        summary = summarize([])
        self.assertEqual(summary.warning_count, 0)
        self.assertFalse(summary.terminated)

    def test_focus_without_blur_is_rejected(self):
        with self.assertRaises(IntegrityLogError):
            validate_log([self.event('focus', 0, time_away_seconds=0)])

    def test_warning_numbers_must_be_consecutive(self):
        with self.assertRaises(IntegrityLogError):
            validate_log([
                self.event('blur', 0, warning_number=1),
                self.event('focus', 1, time_away_seconds=1),
                self.event('blur', 2, warning_number=3),
            ])

    def test_nothing_follows_termination(self):
        with self.assertRaises(IntegrityLogError):
            validate_log([
                self.event('blur', 0, warning_number=1),
                self.event('terminate', 60, reason='timeout'),
                self.event('focus', 61, time_away_seconds=61),
            ])

    def test_events_must_be_ordered(self):
        with self.assertRaises(IntegrityLogError):
            validate_log([
                self.event('blur', 10, warning_number=1),
                self.event('focus', 5, time_away_seconds=0),
            ])

    def test_malformed_event(self):
        with self.assertRaises(IntegrityLogError):
            validate_log([{'kind': 'blur'}])
        with self.assertRaises(IntegrityLogError):
            validate_log([{'kind': 'wander', 'timestamp': T0.isoformat()}])

    def test_event_round_trip(self):
        event = IntegrityEvent(EventKind.BLUR, T0, warning_number=1)
        self.assertEqual(IntegrityEvent.from_dict(event.to_dict()), event)


class ExamAttemptTests(SimpleTestCase):
    """Tests for the attempt flow and automatic submission."""

    def setUp(self):
        self.clock = ManualClock(start=T0)
        self.store = InMemorySubmissionStore()
        self.attempt = ExamAttempt(
            10, sample_questions(), self.store, self.clock,
            candidate_name='Ada', grace_period=60,
        )

    def test_submit_builds_payload(self):
        self.attempt.record_answer(0, 0)
        self.attempt.record_answer(2, 'Paris')
        self.attempt.window_blurred()
        self.clock.advance(3)
        self.attempt.window_focused()

        submission_id = self.attempt.submit()
        exam_id, payload = self.store.created[0]
        self.assertEqual(submission_id, 1)
        self.assertEqual(exam_id, 10)
        self.assertEqual(payload.answers, [0, None, 'Paris', None])
        self.assertEqual(payload.warning_count, 1)
        self.assertEqual(payload.total_defocus_count, 1)
        self.assertFalse(payload.terminated)
        self.assertEqual(payload.candidate_name, 'Ada')
        self.assertEqual(len(payload.integrity_log), 2)

    def test_submit_is_idempotent(self):
        first = self.attempt.submit()
        self.assertEqual(self.attempt.submit(), first)
        self.assertEqual(len(self.store.created), 1)

    def test_termination_submits_automatically(self):
        self.attempt.record_answer(1, True)
        self.attempt.window_blurred()
        self.clock.advance(60)

        self.assertTrue(self.attempt.terminated)
        self.assertTrue(self.attempt.submitted)
        self.assertEqual(len(self.store.created), 1)
        self.assertTrue(self.store.created[0][1].terminated)
        self.assertFalse(self.attempt.record_answer(0, 1))

    def test_failed_automatic_submission_can_be_retried(self):
        self.store.failures = 1
        self.attempt.window_blurred()
        self.clock.advance(60)

        self.assertIsInstance(self.attempt.last_error, PersistenceFailure)
        self.assertFalse(self.attempt.submitted)
        self.assertEqual(self.attempt.submit(), 1)

    def test_failed_manual_submit_keeps_monitoring(self):
        """The countdown still runs after a submit the store refused."""
        self.store.failures = 1
        with self.assertRaises(PersistenceFailure):
            self.attempt.submit()
        self.assertFalse(self.attempt.submitted)

        self.attempt.window_blurred()
        self.clock.advance(10)
        self.assertEqual(self.attempt.monitor.state.warning_count, 1)
        self.assertEqual(self.attempt.monitor.state.seconds_remaining, 50)
        self.assertTrue(self.attempt.record_answer(0, 1))

        self.clock.advance(50)
        self.assertTrue(self.attempt.terminated)
        self.assertTrue(self.attempt.submitted)
        self.assertTrue(self.store.created[0][1].terminated)

    @override_settings(INTEGRITY_MONITOR={'GRACE_PERIOD_SECONDS': 2, 'TICK_SECONDS': 0.01})
    def test_automatic_submission_on_timer_thread_closes_connection(self):
        closed = threading.Event()
        attempt = ExamAttempt(10, sample_questions(), self.store, SystemClock())
        with mock.patch('assessments.services.attempt.connection') as connection:
            connection.close.side_effect = closed.set
            attempt.window_blurred()
            self.assertTrue(closed.wait(5))
        self.assertTrue(attempt.submitted)
        self.assertEqual(len(self.store.created), 1)

    def test_record_answer_index_check(self):
        with self.assertRaises(IndexError):
            self.attempt.record_answer(4, 'x')


# =============================================================================
# MODELS & STORES
# =============================================================================

class ExamFixtureMixin:
    def create_exam(self, status=Exam.Status.PUBLISHED):
        exam = Exam.objects.create(title='Geography', duration_minutes=30, status=status)
        Question.objects.create(
            exam=exam, question_type=Question.QuestionType.SINGLE_CHOICE, text='Pick a',
            points=2, order=1, options=['a', 'b', 'c'], correct_option_index=0
        )
        Question.objects.create(
            exam=exam, question_type=Question.QuestionType.BOOLEAN, text='True?',
            points=1, order=2, correct_boolean=True
        )
        Question.objects.create(
            exam=exam, question_type=Question.QuestionType.SHORT_TEXT, text='Capital of France',
            points=2, order=3, correct_text='Paris'
        )
        Question.objects.create(
            exam=exam, question_type=Question.QuestionType.FREE_TEXT, text='Discuss',
            points=5, order=4
        )
        return exam


class DatabaseStoreTests(ExamFixtureMixin, TestCase):
    """Tests for the ORM-backed stores."""

    def setUp(self):
        self.exam = self.create_exam()
        self.submission = Submission.objects.create(exam=self.exam, answers=list(SAMPLE_ANSWERS))

    def test_question_set_is_ordered(self):
        specs = DatabaseQuestionSetStore().get(self.exam.id)
        self.assertEqual([q.question_type.value for q in specs],
                         ['single_choice', 'boolean', 'short_text', 'free_text'])
        self.assertEqual(specs[0].points, 2.0)

    def test_missing_records(self):
        with self.assertRaises(NotFound):
            DatabaseQuestionSetStore().get(999)
        with self.assertRaises(NotFound):
            DatabaseSubmissionStore().get(999)

    def test_controller_round_trip(self):
        controller = GradingSessionController.open(
            self.submission.id, DatabaseSubmissionStore(), DatabaseQuestionSetStore()
        )
        controller.set_score(3, 4.5)
        controller.save()

        self.submission.refresh_from_db()
        self.assertTrue(self.submission.graded)
        self.assertEqual(self.submission.question_scores, [2.0, 1.0, 2.0, 4.5])
        self.assertEqual(self.submission.total_score, Decimal('9.50'))
        self.assertEqual(self.submission.max_score, Decimal('10.00'))
        self.assertEqual(self.submission.percentage, 95.0)
        self.assertIsNotNone(self.submission.graded_at)

    def test_save_to_deleted_submission_fails(self):
        controller = GradingSessionController.open(
            self.submission.id, DatabaseSubmissionStore(), DatabaseQuestionSetStore()
        )
        Submission.objects.filter(pk=self.submission.pk).delete()
        with self.assertRaises(PersistenceFailure):
            controller.save()
        self.assertEqual(controller.state, SessionState.SAVE_FAILED)

    def test_single_choice_question_needs_options(self):
        question = Question(
            exam=self.exam, question_type=Question.QuestionType.SINGLE_CHOICE,
            text='Pick', points=1
        )
        with self.assertRaises(ValidationError):
            question.clean()


# =============================================================================
# API
# =============================================================================

class APIFixtureMixin(ExamFixtureMixin):
    def setUp(self):
        cache.clear()
        self.grader = User.objects.create_user('grader', 'grader@test.com', 'pass123', is_staff=True)
        self.candidate = User.objects.create_user('candidate', 'c@test.com', 'pass123')
        self.other = User.objects.create_user('other', 'o@test.com', 'pass123')
        self.grader_token = Token.objects.create(user=self.grader)
        self.candidate_token = Token.objects.create(user=self.candidate)
        self.other_token = Token.objects.create(user=self.other)
        self.exam = self.create_exam()

    def login(self, token):
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {token.key}')


class SubmissionAPITests(APIFixtureMixin, APITestCase):
    """Tests for submitting attempts."""

    def payload(self, **overrides):
        data = {
            'exam': self.exam.id,
            'answers': list(SAMPLE_ANSWERS),
            'integrity_log': [
                {'kind': 'blur', 'timestamp': at(0).isoformat(), 'warning_number': 1},
                {'kind': 'focus', 'timestamp': at(12).isoformat(), 'time_away_seconds': 12},
            ],
        }
        data.update(overrides)
        return data

    def test_submit_attempt(self):
        self.login(self.candidate_token)
        response = self.client.post('/api/submissions/', self.payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['warning_count'], 1)
        self.assertEqual(response.data['total_defocus_count'], 1)
        self.assertFalse(response.data['terminated'])
        self.assertEqual(response.data['candidate_name'], 'candidate')

        submission = Submission.objects.get(pk=response.data['id'])
        self.assertEqual(submission.candidate, self.candidate)
        self.assertTrue(AuditLog.objects.filter(event_type=AuditLog.EventType.EXAM_SUBMIT).exists())

    def test_terminated_attempt_is_audited(self):
        self.login(self.candidate_token)
        log = [
            {'kind': 'blur', 'timestamp': at(0).isoformat(), 'warning_number': 1},
            {'kind': 'terminate', 'timestamp': at(60).isoformat(), 'reason': 'exceeded defocus grace period'},
        ]
        response = self.client.post('/api/submissions/', self.payload(integrity_log=log), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['terminated'])
        self.assertTrue(AuditLog.objects.filter(event_type=AuditLog.EventType.EXAM_TERMINATED).exists())

    def test_inconsistent_log_is_rejected(self):
        self.login(self.candidate_token)
        log = [{'kind': 'focus', 'timestamp': at(0).isoformat(), 'time_away_seconds': 0}]
        response = self.client.post('/api/submissions/', self.payload(integrity_log=log), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('integrity_log', response.data)

    def test_too_many_answers_rejected(self):
        self.login(self.candidate_token)
        response = self.client.post(
            '/api/submissions/', self.payload(answers=[0, 1, 2, 3, 4]), format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unpublished_exam_rejected(self):
        draft = self.create_exam(status=Exam.Status.DRAFT)
        self.login(self.candidate_token)
        response = self.client.post('/api/submissions/', self.payload(exam=draft.id), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_candidate_sees_only_own_submissions(self):
        mine = Submission.objects.create(exam=self.exam, candidate=self.candidate, answers=[])
        Submission.objects.create(exam=self.exam, candidate=self.other, answers=[])

        self.login(self.candidate_token)
        response = self.client.get('/api/submissions/')
        self.assertEqual(len(response.data['results']), 1)
        self.assertEqual(response.data['results'][0]['id'], mine.id)

        self.login(self.other_token)
        response = self.client.get(f'/api/submissions/{mine.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_requires_authentication(self):
        response = self.client.get('/api/submissions/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class GradingAPITests(APIFixtureMixin, APITestCase):
    """Tests for grading endpoints."""

    def setUp(self):
        super().setUp()
        self.submission = Submission.objects.create(
            exam=self.exam, candidate=self.candidate, candidate_name='Ada',
            answers=list(SAMPLE_ANSWERS)
        )
        self.url = f'/api/submissions/{self.submission.id}/'

    def test_grading_state(self):
        self.login(self.grader_token)
        response = self.client.get(self.url + 'grading/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['state'], 'ready')
        self.assertEqual([q['score'] for q in response.data['questions']], [2.0, 1.0, 2.0, 0.0])
        self.assertEqual(response.data['total_score'], 5.0)
        self.assertEqual(response.data['max_score'], 10.0)
        self.assertEqual(response.data['zero_mark_questions'], [3])
        self.assertFalse(response.data['questions'][0]['editable'])
        self.assertTrue(response.data['questions'][3]['editable'])

    def test_candidate_cannot_grade(self):
        self.login(self.candidate_token)
        response = self.client.get(self.url + 'grading/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.post(self.url + 'grade/', {'edits': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_save_grades(self):
        self.login(self.grader_token)
        response = self.client.post(self.url + 'grade/', {
            'edits': [{'index': 3, 'score': 4, 'comment': 'Good comparison'}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['state'], 'saved')
        self.assertEqual(response.data['total_score'], 9.0)

        self.submission.refresh_from_db()
        self.assertTrue(self.submission.graded)
        self.assertEqual(self.submission.total_score, Decimal('9.00'))
        self.assertEqual(self.submission.question_comments[3], 'Good comparison')
        self.assertTrue(AuditLog.objects.filter(event_type=AuditLog.EventType.GRADES_SAVED).exists())

    def test_locked_score_edit_rejected(self):
        self.login(self.grader_token)
        response = self.client.post(self.url + 'grade/', {
            'edits': [{'index': 0, 'score': 1}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.submission.refresh_from_db()
        self.assertFalse(self.submission.graded)

    def test_override_persists_across_reloads(self):
        self.login(self.grader_token)
        response = self.client.post(self.url + 'grade/', {
            'edits': [{'index': 0, 'override': True, 'score': 1.5}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.get(self.url + 'grading/')
        question = response.data['questions'][0]
        self.assertTrue(question['override'])
        self.assertEqual(question['score'], 1.5)
        self.assertEqual(question['auto_score'], 2.0)

    def test_preview_does_not_save(self):
        self.login(self.grader_token)
        response = self.client.post(self.url + 'grade/', {
            'edits': [{'index': 3, 'score': 5}], 'preview': True
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_score'], 10.0)
        self.submission.refresh_from_db()
        self.assertFalse(self.submission.graded)

    def test_out_of_range_index(self):
        self.login(self.grader_token)
        response = self.client.post(self.url + 'grade/', {
            'edits': [{'index': 9, 'comment': 'x'}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_empty_edit_rejected(self):
        self.login(self.grader_token)
        response = self.client.post(self.url + 'grade/', {'edits': [{'index': 0}]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_exam_without_questions(self):
        empty = Exam.objects.create(title='Empty', status=Exam.Status.PUBLISHED)
        submission = Submission.objects.create(exam=empty, answers=[])
        self.login(self.grader_token)
        response = self.client.get(f'/api/submissions/{submission.id}/grading/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class ExamAndDashboardAPITests(APIFixtureMixin, APITestCase):
    """Tests for grader overview endpoints."""

    def setUp(self):
        super().setUp()
        self.pending = Submission.objects.create(exam=self.exam, candidate_name='Ada', answers=[])
        self.graded = Submission.objects.create(
            exam=self.exam, candidate_name='Bo', answers=[], graded=True,
            question_scores=[2, 1, 2, 3], question_comments=['', '', '', ''],
            total_score=Decimal('8'), max_score=Decimal('10'), terminated=True
        )

    def test_exam_list(self):
        self.login(self.grader_token)
        response = self.client.get('/api/exams/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        exam = response.data['results'][0]
        self.assertEqual(exam['question_count'], 4)
        self.assertEqual(exam['pending_count'], 1)
        self.assertEqual(float(exam['total_points']), 10.0)

    def test_exam_list_is_paginated_newest_first(self):
        newer = self.create_exam()
        Exam.objects.filter(pk=self.exam.pk).update(created_at=newer.created_at - timedelta(days=1))
        self.login(self.grader_token)
        with warnings.catch_warnings():
            warnings.simplefilter('error', UnorderedObjectListWarning)
            response = self.client.get('/api/exams/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([e['id'] for e in response.data['results']], [newer.id, self.exam.id])

    def test_exam_detail_shows_keys_to_graders(self):
        self.login(self.grader_token)
        response = self.client.get(f'/api/exams/{self.exam.id}/')
        self.assertIn('correct_option_index', response.data['questions'][0])

    def test_candidate_cannot_list_exams(self):
        self.login(self.candidate_token)
        response = self.client.get('/api/exams/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_exam_submissions_filter(self):
        self.login(self.grader_token)
        response = self.client.get(f'/api/exams/{self.exam.id}/submissions/?graded=false')
        self.assertEqual([s['id'] for s in response.data], [self.pending.id])

    def test_dashboard(self):
        self.login(self.grader_token)
        response = self.client.get('/api/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['pending_count'], 1)
        self.assertEqual(response.data['graded_count'], 1)
        self.assertEqual(response.data['terminated_count'], 1)
        self.assertEqual(response.data['pending'][0]['id'], self.pending.id)

    def test_export_csv(self):
        self.login(self.grader_token)
        response = self.client.get(f'/api/exams/{self.exam.id}/export/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response['Content-Type'].startswith('text/csv'))
        content = response.content.decode()
        self.assertIn('Submission ID', content)
        self.assertIn('Bo', content)

    def test_export_detailed_csv(self):
        self.login(self.grader_token)
        response = self.client.get(f'/api/exams/{self.exam.id}/export/?detailed=true')
        lines = response.content.decode().strip().splitlines()
        self.assertEqual(len(lines), 2)
        self.assertTrue(lines[1].startswith('Bo,8.0,10.0'))
