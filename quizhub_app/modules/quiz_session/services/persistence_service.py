# File: quiz_session/services/persistence_service.py
# Saves the results of a finalized session as four independent steps.

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

from quizhub_app.core.error_handlers import QuizHubError
from quizhub_app.core.signals import persistence_step_failed, points_awarded

from ..logics.scoring import compute_awarded_points
from ..schemas import PersistenceReport, PersistenceStep, SessionStatus

logger = logging.getLogger(__name__)


class StepBlockedError(Exception):
    """A step could not run because a step it depends on failed."""


class ResultsPersistenceService:
    """
    Writes a finalized session through the data access layer:

    1. session record
    2. question outcomes (needs the record id from 1)
    3. rank points
    4. resolutions of the answered questions

    The 1->2 chain, 3 and 4 run concurrently. A failing step is logged and
    reported but never stops the others.
    """

    def __init__(self, data_access):
        self.data_access = data_access

    async def persist(self, session) -> PersistenceReport:
        if session.status not in (SessionStatus.FINALIZED, SessionStatus.REVIEWING_RESULTS):
            raise RuntimeError(f"Session {session.session_id} is not finalized")

        score = session.score
        report = PersistenceReport(
            session_id=session.session_id,
            points=compute_awarded_points(score.correct, score.total),
        )
        await self._run(session, report, set(PersistenceStep))
        self._log_report(session, report)
        return report

    async def retry(self, session, report: PersistenceReport,
                    steps: Optional[Iterable[PersistenceStep]] = None) -> PersistenceReport:
        """Re-run failed steps; steps that already succeeded are never repeated."""
        failed = set(report.failed_steps)
        wanted = failed if steps is None else failed & {PersistenceStep(step) for step in steps}
        # Outcomes can only be written once the record exists.
        if PersistenceStep.SESSION_RECORD in wanted and PersistenceStep.QUESTION_OUTCOMES in failed:
            wanted.add(PersistenceStep.QUESTION_OUTCOMES)
        if wanted:
            logger.info("Retrying persistence of session %s: %s",
                        session.session_id, sorted(step.value for step in wanted))
            await self._run(session, report, wanted)
            self._log_report(session, report)
        return report

    async def _run(self, session, report, steps) -> None:
        jobs = []
        if PersistenceStep.SESSION_RECORD in steps or PersistenceStep.QUESTION_OUTCOMES in steps:
            jobs.append(self._record_chain(session, report, steps))
        if PersistenceStep.RANK in steps:
            jobs.append(self._run_step(session, report, PersistenceStep.RANK, self._update_rank))
        if PersistenceStep.RESOLUTIONS in steps:
            jobs.append(self._run_step(session, report, PersistenceStep.RESOLUTIONS, self._upsert_resolutions))
        await asyncio.gather(*jobs)

    async def _record_chain(self, session, report, steps) -> None:
        if PersistenceStep.SESSION_RECORD in steps:
            await self._run_step(session, report, PersistenceStep.SESSION_RECORD, self._insert_record)
        if PersistenceStep.QUESTION_OUTCOMES in steps:
            await self._run_step(session, report, PersistenceStep.QUESTION_OUTCOMES, self._insert_outcomes)

    async def _run_step(self, session, report, step, action) -> None:
        outcome = report.outcomes[step]
        outcome.attempts += 1
        try:
            await action(session, report)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            message = exc.message if isinstance(exc, QuizHubError) else str(exc) or type(exc).__name__
            outcome.succeeded = False
            outcome.error = message
            logger.error("Persistence step %s failed for session %s: %s",
                         step.value, session.session_id, message)
            persistence_step_failed.send(
                self,
                session_id=session.session_id,
                learner_id=session.learner_id,
                step=step,
                error=message,
            )
        else:
            outcome.succeeded = True
            outcome.error = None

    # ── steps ────────────────────────────────────────────────────────

    async def _insert_record(self, session, report) -> None:
        report.session_record_id = await self.data_access.insert_session_record(
            report.points,
            session.config.subject_area_id,
            session.learner_id,
            percentage=session.score.percentage,
            kind=session.config.kind.value,
        )

    async def _insert_outcomes(self, session, report) -> None:
        if report.session_record_id is None:
            raise StepBlockedError('blocked: session record was not saved')
        await self.data_access.insert_question_outcomes(report.session_record_id, session.outcomes())

    async def _update_rank(self, session, report) -> None:
        entry = await self.data_access.increment_rank_points(session.learner_id, report.points)
        points_awarded.send(self, learner_id=session.learner_id, amount=report.points, new_total=entry.points)

    async def _upsert_resolutions(self, session, report) -> None:
        failures = []
        for question, answer in session.answered_questions():
            # A skipped self-assessment is not an attempt.
            if answer.is_skipped:
                continue
            try:
                await self.data_access.upsert_resolution(
                    session.learner_id,
                    question.question_id,
                    question.subject_unit_id,
                    session.is_correct(question),
                )
            except QuizHubError as exc:
                failures.append(f"{question.question_id}: {exc.message}")
        if failures:
            raise QuizHubError(f"{len(failures)} resolution(s) not saved ({'; '.join(failures)})",
                               code='RESOLUTIONS_FAILED')

    def _log_report(self, session, report) -> None:
        if report.succeeded:
            logger.info("Session %s saved: record=%s points=%.2f",
                        session.session_id, report.session_record_id, report.points)
        else:
            logger.warning("Session %s saved partially, failed steps: %s",
                           session.session_id, [step.value for step in report.failed_steps])
