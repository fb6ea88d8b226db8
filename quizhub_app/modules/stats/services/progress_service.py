import asyncio
from typing import Any, Dict

from quizhub_app.modules.quiz_session.interface import build_data_access
from quizhub_app.modules.quiz_session.logics.scoring import compute_subject_progress, percentage_of


class ProgressService:
    """Per subject unit progress of a learner, from stored resolutions."""

    @staticmethod
    async def _load(data_access, learner_id, subject_area_id):
        questions = await data_access.list_question_units(subject_area_id)
        resolutions = await data_access.list_resolutions(
            learner_id, [question.question_id for question in questions]
        )
        return questions, resolutions

    @classmethod
    def get_subject_progress(cls, learner_id: int, subject_area_id: int, data_access=None) -> Dict[str, Any]:
        data_access = data_access or build_data_access()
        questions, resolutions = asyncio.run(cls._load(data_access, learner_id, subject_area_id))
        units = compute_subject_progress(questions, resolutions)

        total = sum(unit.total for unit in units.values())
        attempted = sum(unit.attempted for unit in units.values())
        correct = sum(unit.correct for unit in units.values())
        return {
            'learner_id': learner_id,
            'subject_area_id': subject_area_id,
            'units': [unit.to_dict() for unit in units.values()],
            'overall': {
                'total': total,
                'attempted': attempted,
                'correct': correct,
                'attempted_pct': percentage_of(attempted, total),
                'correct_pct': percentage_of(correct, total),
            },
        }
