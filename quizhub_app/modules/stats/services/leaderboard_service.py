import asyncio
from typing import Any, Dict, List, Optional

from quizhub_app.modules.quiz_session.interface import build_data_access


class LeaderboardService:
    @classmethod
    def get_leaderboard(cls, limit: int = 50, viewer_id: Optional[int] = None,
                        data_access=None) -> List[Dict[str, Any]]:
        """
        Rank entries by cumulative points, highest first.
        Ties keep the lower learner id first so positions are stable.
        """
        data_access = data_access or build_data_access()
        entries = asyncio.run(data_access.list_rank_entries(limit))

        leaderboard = []
        for idx, entry in enumerate(entries, start=1):
            leaderboard.append({
                'rank': idx,
                'learner_id': entry.learner_id,
                'display_name': entry.display_name,
                'points': round(entry.points, 2),
                'is_current_learner': entry.learner_id == viewer_id,
            })
        return leaderboard
