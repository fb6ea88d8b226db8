import asyncio
from typing import Any, Dict, List

from quizhub_app.modules.quiz_session.interface import build_data_access
from quizhub_app.modules.quiz_session.logics.scoring import score_tier


class HistoryService:
    @classmethod
    def get_history(cls, learner_id: int, order: str = 'date_desc', data_access=None) -> List[Dict[str, Any]]:
        """A learner's saved sessions, sorted by points or date."""
        data_access = data_access or build_data_access()
        records = asyncio.run(data_access.list_session_records(learner_id, order))
        history = []
        for record in records:
            item = record.to_dict()
            item['tier'] = score_tier(record.percentage).value
            history.append(item)
        return history
