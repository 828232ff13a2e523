"""Eligibility engine: may this project (and contact) be called right now?

Checks run in a fixed order and the first failure wins:

    1. project exists              5. cooldown
    2. project not suppressed      6. project fatigue (day / week)
    3. no global terminal state    7. contact checks, when a contact is given
    4. no project terminal state

Contact checks: contact exists, not do_not_call, no contact terminal state,
pair not suppressed, contact fatigue, no project terminal state bound to
this contact.

The single-pair path and the bulk listing both go through
``EligibilityEngine._evaluate``. Store failures propagate as
UpstreamUnavailable; nothing here ever turns an error into an allow.
"""
import logging
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.connection import run_in_transaction
from db.models import Contact, Project, ProjectContact, TerminalScope, utcnow
from db.repositories import call_sessions as calls_repo
from db.repositories import contacts as contacts_repo
from db.repositories import project_contacts as links_repo
from db.repositories import projects as projects_repo
from db.repositories import terminal_sessions as terminals_repo
from schemas.calls import ContactRef
from schemas.eligibility import EligibilityResult, EligibleCall
from services.config import CallPolicy

logger = logging.getLogger(__name__)


class EligibilityEngine:
    """Call-eligibility decisions for single pairs and bulk candidate lists.

    Args:
        policy: Cooldown and fatigue limits. Defaults to CallPolicy.from_env().
        clock: Returns the current aware UTC datetime. Tests pass a fixed clock.
    """

    def __init__(
        self,
        policy: Optional[CallPolicy] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.policy = policy or CallPolicy.from_env()
        self._clock = clock or utcnow

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def is_eligible(
        self,
        project_external_id: str,
        contact: Optional[ContactRef] = None,
    ) -> EligibilityResult:
        """Decide whether the project, optionally with one contact, may be called now."""
        now = self._clock()

        async def work(session: AsyncSession) -> EligibilityResult:
            project = await projects_repo.get_by_external_id(session, project_external_id)
            if project is None:
                return EligibilityResult.deny("project_exists", "Project not found")

            if contact is None:
                return await self._evaluate(session, project, None, None, now)

            contact_row = await contacts_repo.get_by_ref(session, contact)
            if contact_row is None:
                result = await self._check_project(session, project, now)
                if not result.eligible:
                    return result
                return EligibilityResult.deny("contact_exists", "Contact not found")

            link = await links_repo.get(session, project.id, contact_row.id)
            return await self._evaluate(session, project, contact_row, link, now)

        result = await run_in_transaction(work)
        if not result.eligible:
            logger.debug("Call to %s / %s denied: %s", project_external_id, contact, result.reason)
        return result

    async def check_fatigue(
        self,
        *,
        project_id: Optional[UUID] = None,
        contact_id: Optional[UUID] = None,
    ) -> EligibilityResult:
        """Daily and weekly call caps for exactly one project or one contact."""
        if (project_id is None) == (contact_id is None):
            raise ValueError("Exactly one of project_id or contact_id is required")
        now = self._clock()

        async def work(session: AsyncSession) -> EligibilityResult:
            return await self._fatigue(
                session, now, project_id=project_id, contact_id=contact_id
            )

        return await run_in_transaction(work)

    async def list_eligible(self, limit: Optional[int] = None) -> AsyncIterator[EligibleCall]:
        """Yield callable (project, contact) pairs, best first, at most ``limit``.

        Candidates come from a storage pre-filter ordered by priority and
        cooldown expiry; each one is re-checked with the full per-pair rules
        before it is yielded. Pages are fetched until ``limit`` pairs have
        been yielded or the candidates run out.
        """
        limit = self.policy.default_candidate_limit if limit is None else limit
        if limit <= 0:
            return
        now = self._clock()
        page_size = limit
        offset = 0
        yielded = 0

        while yielded < limit:

            async def work(session: AsyncSession) -> tuple[list[EligibleCall], int]:
                rows = await links_repo.list_call_candidates(session, now, page_size, offset)
                accepted = []
                for link, project, contact in rows:
                    result = await self._evaluate(session, project, contact, link, now)
                    if result.eligible:
                        accepted.append(_to_eligible_call(link, project, contact))
                    else:
                        logger.debug(
                            "Candidate %s / %s dropped: %s",
                            project.external_id, contact.id, result.reason,
                        )
                return accepted, len(rows)

            accepted, fetched = await run_in_transaction(work)
            for call in accepted:
                if yielded >= limit:
                    return
                yield call
                yielded += 1
            if fetched < page_size:
                return
            offset += page_size

    # ------------------------------------------------------------------
    # Rule evaluation
    # ------------------------------------------------------------------

    async def _evaluate(
        self,
        session: AsyncSession,
        project: Project,
        contact: Optional[Contact],
        link: Optional[ProjectContact],
        now: datetime,
    ) -> EligibilityResult:
        result = await self._check_project(session, project, now)
        if not result.eligible or contact is None:
            return result
        return await self._check_contact(session, project, contact, link, now)

    async def _check_project(
        self, session: AsyncSession, project: Project, now: datetime
    ) -> EligibilityResult:
        if project.call_suppressed:
            return EligibilityResult.deny("project_suppressed", "Project is suppressed")

        terminal = await terminals_repo.find_active(session, TerminalScope.GLOBAL, None, now)
        if terminal is not None:
            return EligibilityResult.deny(
                "global_terminal", f"Global terminal state active: {terminal.reason}"
            )

        terminal = await terminals_repo.find_active(session, TerminalScope.PROJECT, project.id, now)
        if terminal is not None:
            return EligibilityResult.deny(
                "project_terminal", f"Project terminal state active: {terminal.reason}"
            )

        if project.next_call_eligible_at is not None and project.next_call_eligible_at > now:
            return EligibilityResult.deny(
                "cooldown",
                f"Cooldown period active until {project.next_call_eligible_at.isoformat()}",
            )

        return await self._fatigue(session, now, project_id=project.id)

    async def _check_contact(
        self,
        session: AsyncSession,
        project: Project,
        contact: Contact,
        link: Optional[ProjectContact],
        now: datetime,
    ) -> EligibilityResult:
        if contact.do_not_call:
            return EligibilityResult.deny("do_not_call", "Contact has do_not_call flag")

        terminal = await terminals_repo.find_active(session, TerminalScope.CONTACT, contact.id, now)
        if terminal is not None:
            return EligibilityResult.deny(
                "contact_terminal", f"Contact terminal state active: {terminal.reason}"
            )

        if link is not None and link.suppress_for_project:
            return EligibilityResult.deny(
                "pair_suppressed", "Contact suppressed for this project"
            )

        result = await self._fatigue(session, now, contact_id=contact.id)
        if not result.eligible:
            return result

        terminal = await terminals_repo.find_active(
            session, TerminalScope.PROJECT, project.id, now, contact_id=contact.id
        )
        if terminal is not None:
            return EligibilityResult.deny(
                "pair_terminal",
                f"Project terminal state active for contact: {terminal.reason}",
            )
        return EligibilityResult.allow()

    async def _fatigue(
        self,
        session: AsyncSession,
        now: datetime,
        *,
        project_id: Optional[UUID] = None,
        contact_id: Optional[UUID] = None,
    ) -> EligibilityResult:
        # Day window starts at UTC midnight; week window is the last 7 days
        label = "Contact daily" if contact_id is not None else "Daily"
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        today = await calls_repo.count_since(
            session, day_start, project_id=project_id, contact_id=contact_id
        )
        if today >= self.policy.max_calls_per_day:
            return EligibilityResult.deny(
                "daily_limit",
                f"{label} call limit reached ({today}/{self.policy.max_calls_per_day})",
            )

        label = "Contact weekly" if contact_id is not None else "Weekly"
        week = await calls_repo.count_since(
            session, now - timedelta(days=7), project_id=project_id, contact_id=contact_id
        )
        if week >= self.policy.max_calls_per_week:
            return EligibilityResult.deny(
                "weekly_limit",
                f"{label} call limit reached ({week}/{self.policy.max_calls_per_week})",
            )
        return EligibilityResult.allow()


def _to_eligible_call(link: ProjectContact, project: Project, contact: Contact) -> EligibleCall:
    return EligibleCall(
        project_id=project.id,
        project_external_id=project.external_id,
        project_name=project.name,
        priority_score=project.priority_score,
        next_call_eligible_at=project.next_call_eligible_at,
        contact_id=contact.id,
        contact_external_id=contact.external_id,
        contact_name=contact.name,
        phone=contact.phone,
        role_for_project=link.role_for_project,
        role_confidence=link.role_confidence,
        preferred_channel=link.preferred_channel_project or contact.preferred_channel or "phone",
    )
