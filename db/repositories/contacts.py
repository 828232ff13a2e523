"""Contact repository — multi-key dedup and lookups.

Resolution is a decision table evaluated top to bottom, first match
wins: external_id, then phone, then email, else a new row. Explicit
external identity is trusted over natural keys and phone over email.
"""
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Contact
from schemas.crm import ContactIn

logger = logging.getLogger(__name__)

# Dedup keys in precedence order; each is a unique column on contacts
RESOLUTION_ORDER: tuple[str, ...] = ("external_id", "phone", "email")


@dataclass
class ContactResolution:
    contact: Contact
    matched_by: Optional[str]  # None when a new row was inserted
    created: bool
    # Payload keys that already belong to a different row: {key: other row id}
    conflicts: dict[str, UUID] = field(default_factory=dict)


async def get_by_id(session: AsyncSession, contact_id: UUID) -> Optional[Contact]:
    """Return the Contact with this internal key, or None."""
    return await session.get(Contact, contact_id)


async def get_by_external_id(session: AsyncSession, external_id: str) -> Optional[Contact]:
    result = await session.execute(
        select(Contact).where(Contact.external_id == external_id)
    )
    return result.scalar_one_or_none()


async def get_by_phone(session: AsyncSession, phone: str) -> Optional[Contact]:
    result = await session.execute(select(Contact).where(Contact.phone == phone.strip()))
    return result.scalar_one_or_none()


async def get_by_email(session: AsyncSession, email: str) -> Optional[Contact]:
    """Return the Contact with this email, or None."""
    result = await session.execute(
        select(Contact).where(Contact.email == email.lower().strip())
    )
    return result.scalar_one_or_none()


async def get_by_ref(session: AsyncSession, ref: Union[UUID, str]) -> Optional[Contact]:
    """Resolve a contact reference: a UUID is an internal key, a str an external id."""
    if isinstance(ref, UUID):
        return await get_by_id(session, ref)
    return await get_by_external_id(session, ref)


_LOOKUPS: dict[str, Callable[[AsyncSession, str], Awaitable[Optional[Contact]]]] = {
    "external_id": get_by_external_id,
    "phone": get_by_phone,
    "email": get_by_email,
}


async def resolve(session: AsyncSession, data: ContactIn) -> tuple[Optional[Contact], Optional[str], dict[str, Contact]]:
    """Walk the decision table.

    Returns (winning row or None, key that matched, every row found per key).
    All lookups run so callers can see rows a lower-precedence key points at.
    """
    found: dict[str, Contact] = {}
    for key in RESOLUTION_ORDER:
        value = getattr(data, key)
        if not value:
            continue
        row = await _LOOKUPS[key](session, value)
        if row is not None:
            found[key] = row

    for key in RESOLUTION_ORDER:
        if key in found:
            return found[key], key, found
    return None, None, found


async def upsert(session: AsyncSession, data: ContactIn) -> ContactResolution:
    """Insert or update a contact, deduplicated on external_id / phone / email.

    A dedup key in the payload that already belongs to a different row is
    not written onto the winning row and that other row is left untouched;
    the clash is reported in ``ContactResolution.conflicts``.
    """
    contact, matched_by, found = await resolve(session, data)
    fields = data.model_dump(exclude_unset=True)
    if fields.get("do_not_call") is None:
        fields.pop("do_not_call", None)

    conflicts: dict[str, UUID] = {}
    if contact is not None:
        for key, other in found.items():
            if other.id != contact.id:
                conflicts[key] = other.id
                fields.pop(key, None)

    if conflicts:
        logger.warning(
            "Contact payload keys %s point at other rows %s; updating %s (matched by %s) only",
            sorted(conflicts),
            {k: str(v) for k, v in conflicts.items()},
            contact.id,
            matched_by,
        )

    created = contact is None
    if created:
        contact = Contact(**fields)
        session.add(contact)
    else:
        for key, value in fields.items():
            setattr(contact, key, value)

    await session.flush()
    await session.refresh(contact)
    return ContactResolution(
        contact=contact,
        matched_by=matched_by,
        created=created,
        conflicts=conflicts,
    )
