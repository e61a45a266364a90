"""
Entity access helpers shared by the kernel services.

Loads approvable entities, approvals and users inside the caller's
transaction, optionally taking the row lock that makes one parent entity
the unit of contention (``SELECT ... FOR UPDATE`` on PostgreSQL; SQLite
writers are already serialized by ``BEGIN IMMEDIATE``).

``populate_existing`` is used on every locked read so that a row cached
in the identity map is overwritten with the committed state observed
after the lock was granted.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from travel_kernel.domain.approval import EntityType
from travel_kernel.exceptions import EntityNotFoundError, UserNotFoundError
from travel_kernel.models.approval import Approval
from travel_kernel.models.claim import Claim
from travel_kernel.models.travel_request import TravelRequest
from travel_kernel.models.user import User

ENTITY_MODELS: dict[EntityType, type[TravelRequest] | type[Claim]] = {
    EntityType.TRAVEL_REQUEST: TravelRequest,
    EntityType.CLAIM: Claim,
}


def load_approvable(
    session: Session,
    entity_type: EntityType,
    entity_id: UUID,
    *,
    for_update: bool = False,
) -> TravelRequest | Claim:
    """Load a travel request or claim, locking its row when asked.

    Raises:
        EntityNotFoundError: if no row matches.
    """
    model = ENTITY_MODELS[EntityType(entity_type)]
    stmt = select(model).where(model.id == entity_id)
    if for_update:
        stmt = stmt.with_for_update(of=model).execution_options(populate_existing=True)
    entity = session.execute(stmt).scalar_one_or_none()
    if entity is None:
        raise EntityNotFoundError(model.__name__, str(entity_id))
    return entity


def lock_parent_of(session: Session, approval: Approval) -> TravelRequest | Claim:
    """Lock the parent entity of an approval."""
    return load_approvable(
        session, approval.entity_type, approval.entity_id, for_update=True,
    )


def reload_siblings(session: Session, entity: TravelRequest | Claim) -> list[Approval]:
    """Re-read every approval of ``entity`` from the database, lowest level first."""
    fk = (
        Approval.travel_request_id
        if isinstance(entity, TravelRequest)
        else Approval.claim_id
    )
    return list(
        session.execute(
            select(Approval)
            .where(fk == entity.id)
            .order_by(Approval.level_rank)
            .execution_options(populate_existing=True)
        ).scalars().all()
    )


def load_user(session: Session, user_id: UUID) -> User:
    """Load a user or raise UserNotFoundError."""
    user = session.get(User, user_id)
    if user is None:
        raise UserNotFoundError(str(user_id))
    return user
