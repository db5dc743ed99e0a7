"""
Exam attempt flow.

Collects a candidate's answers while a ``DefocusMonitor`` watches window
focus. The attempt is submitted exactly once: either when the candidate
asks for it or, if the monitor terminates the session, automatically.
"""
import logging
import threading
from typing import Optional, Sequence

from django.db import connection

from assessments.grading import PersistenceFailure, QuestionSpec, SubmissionPayload, SubmissionStore
from assessments.grading.reconciler import align_answers
from assessments.integrity import Clock, DefocusMonitor, summarize

logger = logging.getLogger(__name__)


class ExamAttempt:
    def __init__(
        self,
        exam_id,
        questions: Sequence[QuestionSpec],
        store: SubmissionStore,
        clock: Clock,
        candidate_name: str = '',
        grace_period: Optional[int] = None,
    ):
        self.exam_id = exam_id
        self.questions = list(questions)
        self.store = store
        self.candidate_name = candidate_name
        self.answers = [None] * len(self.questions)
        self.submission_id = None
        self.last_error = None
        self.monitor = DefocusMonitor(
            clock,
            grace_period=grace_period,
            on_terminate=self._on_terminated,
        )
        self._submit_lock = threading.Lock()
        self._submitted = False

    @property
    def submitted(self) -> bool:
        return self._submitted

    @property
    def terminated(self) -> bool:
        return self.monitor.terminated

    def record_answer(self, index: int, value) -> bool:
        """Store an answer. Returns False once the attempt is closed."""
        if self._submitted or self.monitor.terminated:
            logger.debug(f"Answer for question {index} ignored: attempt closed")
            return False
        if not 0 <= index < len(self.questions):
            raise IndexError(f"Question index {index} out of range")
        self.answers[index] = value
        return True

    def window_focused(self):
        return self.monitor.window_focused()

    def window_blurred(self):
        return self.monitor.window_blurred()

    def submit(self):
        """Hand the attempt to the store. Returns the submission id."""
        with self._submit_lock:
            if self._submitted:
                return self.submission_id
            payload = self.build_payload()
            # Monitoring continues until the store has accepted the attempt
            self.submission_id = self.store.create(self.exam_id, payload)
            self._submitted = True
            self.monitor.shutdown()

        logger.info(
            f"Exam {self.exam_id} submitted as {self.submission_id} "
            f"(terminated={payload.terminated}, warnings={payload.warning_count})"
        )
        return self.submission_id

    def build_payload(self) -> SubmissionPayload:
        log = self.monitor.log.to_list()
        summary = summarize(log)
        return SubmissionPayload(
            answers=align_answers(self.answers, len(self.questions)),
            integrity_log=log,
            warning_count=summary.warning_count,
            total_defocus_count=summary.total_defocus_count,
            terminated=summary.terminated,
            candidate_name=self.candidate_name,
        )

    def _on_terminated(self, monitor: DefocusMonitor):
        logger.warning(f"Attempt on exam {self.exam_id} terminated; submitting automatically")
        try:
            self.submit()
        except PersistenceFailure as e:
            # Runs on the tick path; keep the error for the caller to retry submit()
            self.last_error = e
            logger.error(f"Automatic submission for exam {self.exam_id} failed: {e}")
        finally:
            if threading.current_thread() is not threading.main_thread():
                # Tick threads do not go through the request cycle
                connection.close()
