from typing import List, Optional, Tuple
from datetime import date
import logging

from ..database.database_service import database_service
from ..database.collections import COLLECTIONS
from ..models.database_models import Issue, IssueStatus, Playground, PlaygroundStatus
from .geo_service import nearest
from .live_query_service import sort_newest_first

logger = logging.getLogger(__name__)


class PlaygroundNotFoundError(ValueError):
    pass


def issue_belongs_to(issue: Issue, playground: Playground) -> bool:
    """
    Whether an issue is filed against a playground: by ``playgroundId`` when the
    issue carries one, otherwise by the playground's name or address appearing
    in the issue's free-text location.
    """
    if issue.playgroundId:
        return issue.playgroundId == playground.id
    location = (issue.location or "").lower()
    if not location:
        return False
    return any(
        needle and needle.lower() in location
        for needle in (playground.name, playground.address)
    )


def count_active_issues(playground: Playground, issues: List[Issue]) -> int:
    return sum(
        1 for issue in issues
        if issue.status != IssueStatus.RESOLVED and issue_belongs_to(issue, playground)
    )


class PlaygroundService:
    def __init__(self):
        self.db = database_service

    async def list_playgrounds(self) -> List[Playground]:
        success, docs, error = await self.db.get_all_documents(COLLECTIONS['playgrounds'])
        if not success:
            raise Exception(f"Failed to load playgrounds: {error}")
        return [Playground(**doc) for doc in docs]

    async def get_playground(self, playground_id: str) -> Playground:
        success, data, _ = await self.db.get_document(COLLECTIONS['playgrounds'], playground_id)
        if not success or not data:
            raise PlaygroundNotFoundError(f"Playground {playground_id} not found")
        return Playground(**data)

    async def search(self, term: str) -> List[Playground]:
        playgrounds = await self.list_playgrounds()
        term = (term or "").strip().lower()
        if not term:
            return playgrounds
        return [p for p in playgrounds if term in p.name.lower() or term in p.address.lower()]

    async def nearby(self, origin: Optional[Tuple[float, float]], limit: Optional[int] = None) -> List[Playground]:
        return nearest(origin, await self.list_playgrounds(), limit)

    async def update_status(self, playground_id: str, new_status: str) -> Playground:
        """Set the admin condition rating; doing so counts as an inspection today."""
        try:
            status = PlaygroundStatus(new_status)
        except ValueError:
            raise ValueError(f"Invalid playground status '{new_status}'. Use Good, Attention or Urgent")

        playground = await self.get_playground(playground_id)
        updates = {"status": status.value, "lastInspection": date.today().isoformat()}
        success, error = await self.db.update_document(COLLECTIONS['playgrounds'], playground_id, updates)
        if not success:
            raise Exception(f"Failed to update playground status: {error}")

        logger.info(f"[Playgrounds] {playground.name} marked {status.value}")
        return playground.model_copy(update=updates)

    async def _all_issues(self) -> List[Issue]:
        success, docs, error = await self.db.get_all_documents(COLLECTIONS['issues'])
        if not success:
            raise Exception(f"Failed to load issues: {error}")
        return [Issue(**doc) for doc in docs]

    async def issues_for_playground(self, playground_id: str) -> List[Issue]:
        playground = await self.get_playground(playground_id)
        issues = [i for i in await self._all_issues() if issue_belongs_to(i, playground)]
        return sort_newest_first(issues)

    async def with_active_issues(self, playgrounds: List[Playground]) -> List[Playground]:
        """Annotate playgrounds with a freshly derived ``activeIssues`` count (no writes)."""
        issues = await self._all_issues()
        return [p.model_copy(update={"activeIssues": count_active_issues(p, issues)}) for p in playgrounds]

    async def refresh_active_issues(self) -> int:
        """Recompute and store ``activeIssues`` for every playground. Returns how many changed."""
        playgrounds = await self.list_playgrounds()
        issues = await self._all_issues()
        changed = 0
        for playground in playgrounds:
            count = count_active_issues(playground, issues)
            if count == playground.activeIssues:
                continue
            success, error = await self.db.update_document(
                COLLECTIONS['playgrounds'], playground.id, {"activeIssues": count}
            )
            if success:
                changed += 1
            else:
                logger.error(f"[Playgrounds] Failed to refresh active issues for {playground.id}: {error}")
        logger.info(f"[Playgrounds] Active issue counts refreshed ({changed} changed)")
        return changed


playground_service = PlaygroundService()
