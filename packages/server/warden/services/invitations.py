"""
Invitation engine: issue, accept, revoke and expire project invitations.

Tokens look like ``wd_inv_<invitation id hex>_<secret>``. Only a bcrypt hash
of the secret is stored; the id part locates the row so acceptance costs a
single hash comparison.

Status moves pending -> accepted | revoked | expired exactly once. Every
transition is a conditional UPDATE on ``status = 'pending'``, so of two
concurrent resolutions exactly one wins and the other sees AlreadyResolved.
"""

from __future__ import annotations

import asyncio
import secrets
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Optional

import bcrypt
import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from warden.core.cache import PermissionCache
from warden.core.database import Storage
from warden.core.errors import AccessDenied, AlreadyResolved, Expired, NotFound
from warden.models.base import as_utc, utcnow
from warden.models.invitation import Invitation
from warden.services.gate import AccessGate
from warden.services.memberships import insert_project_member, resolve_project_role, to_member_read
from warden_shared.schemas.common import INVITATION_TRANSITIONS, InvitationStatus
from warden_shared.schemas.invitations import InvitationIssued, InvitationRead
from warden_shared.schemas.members import ProjectMemberRead
from warden_shared.schemas.permissions import Permission
from warden_shared.schemas.principals import Principal

log = structlog.get_logger()

MANAGE = frozenset({Permission.TEAM_MANAGE})
READ = frozenset({Permission.TEAM_READ})

TOKEN_PREFIX = "wd_inv_"

_PENDING = InvitationStatus.PENDING.value


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

def generate_invitation_token(invitation_id: uuid.UUID) -> tuple[str, str]:
    """Return (full token, secret part)."""
    secret = secrets.token_urlsafe(32)
    return f"{TOKEN_PREFIX}{invitation_id.hex}_{secret}", secret


def parse_invitation_token(token: str) -> tuple[uuid.UUID, str]:
    """Split a token into (invitation id, secret). Raises ValueError."""
    if not token.startswith(TOKEN_PREFIX):
        raise ValueError("Not an invitation token")
    id_hex, sep, secret = token[len(TOKEN_PREFIX):].partition("_")
    if not sep or not secret:
        raise ValueError("Malformed invitation token")
    return uuid.UUID(hex=id_hex), secret


def hash_token_secret(secret: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(secret.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def verify_token_secret(secret: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(secret.encode(), hashed.encode())
    except ValueError:
        return False


def to_invitation_read(invitation: Invitation) -> InvitationRead:
    return InvitationRead(
        id=invitation.id,
        project_id=invitation.project_id,
        email=invitation.email,
        custom_role_id=invitation.custom_role_id,
        invited_by=invitation.invited_by,
        expires_at=as_utc(invitation.expires_at),
        status=InvitationStatus(invitation.status),
        accepted_by=invitation.accepted_by,
        resolved_at=as_utc(invitation.resolved_at) if invitation.resolved_at else None,
        created_at=invitation.created_at,
    )


async def expire_pending(
    session: AsyncSession,
    now: datetime,
    *,
    project_id: uuid.UUID | None = None,
) -> int:
    """Move every overdue pending invitation to expired. Returns the count."""
    stmt = update(Invitation).where(
        Invitation.status == _PENDING,
        Invitation.expires_at <= now,
    )
    if project_id is not None:
        stmt = stmt.where(Invitation.project_id == project_id)
    result = await session.execute(
        stmt.values(
            status=InvitationStatus.EXPIRED.value,
            resolved_at=now,
            updated_at=now,
        ).execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def _transition(
    session: AsyncSession,
    invitation_id: uuid.UUID,
    status: InvitationStatus,
    now: datetime,
    **values,
) -> bool:
    """Conditional pending -> ``status`` update. False if someone else won."""
    if status not in INVITATION_TRANSITIONS[InvitationStatus.PENDING]:
        raise ValueError(f"Invalid invitation transition: pending -> {status.value}")
    result = await session.execute(
        update(Invitation)
        .where(Invitation.id == invitation_id, Invitation.status == _PENDING)
        .values(status=status.value, resolved_at=now, updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


class InvitationEngine:
    def __init__(
        self,
        storage: Storage,
        gate: AccessGate,
        cache: PermissionCache,
        *,
        default_ttl: timedelta = timedelta(days=7),
        hash_rounds: int = 12,
        require_email_match: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._storage = storage
        self._gate = gate
        self._cache = cache
        self._default_ttl = default_ttl
        self._hash_rounds = hash_rounds
        self._require_email_match = require_email_match
        self._clock = clock

    async def invite(
        self,
        actor_id: uuid.UUID,
        project_id: uuid.UUID,
        email: str,
        custom_role_id: uuid.UUID | None = None,
        *,
        ttl: Optional[timedelta] = None,
        timeout: float | None = None,
    ) -> InvitationIssued:
        """Create a pending invitation and return it with its one-time token.

        A zero ``ttl`` produces an invitation that is already expired.
        """
        ttl = self._default_ttl if ttl is None else ttl
        if ttl < timedelta(0):
            raise ValueError("ttl must not be negative")

        invitation_id = uuid.uuid4()
        token, secret = generate_invitation_token(invitation_id)
        # Hashed in a worker thread, before the transaction starts
        token_hash = await asyncio.to_thread(hash_token_secret, secret, self._hash_rounds)

        async def work(session: AsyncSession) -> InvitationRead:
            await self._gate.check(session, actor_id, project_id, MANAGE)
            await resolve_project_role(session, project_id, custom_role_id)
            now = self._clock()
            invitation = Invitation(
                id=invitation_id,
                project_id=project_id,
                email=email.strip().lower(),
                custom_role_id=custom_role_id,
                invited_by=actor_id,
                token_hash=token_hash,
                expires_at=now + ttl,
                status=_PENDING,
            )
            session.add(invitation)
            await session.flush()
            return to_invitation_read(invitation)

        invitation = await self._storage.run(work, timeout=timeout)
        log.info(
            "invitation.created",
            invitation_id=str(invitation.id),
            project_id=str(project_id),
            expires_at=invitation.expires_at.isoformat(),
            actor=str(actor_id),
        )
        return InvitationIssued(invitation=invitation, token=token)

    async def accept(
        self,
        token: str,
        principal: Principal,
        *,
        timeout: float | None = None,
    ) -> ProjectMemberRead:
        """Redeem a token: the principal becomes a project member.

        The status flip and the membership insert share one transaction. If
        the principal is already a member nothing is written and the
        invitation stays pending.
        """
        try:
            invitation_id, secret = parse_invitation_token(token)
        except ValueError:
            raise NotFound("Invitation not found") from None

        async def fetch(session: AsyncSession) -> Optional[tuple[str, str]]:
            invitation = await session.get(Invitation, invitation_id)
            if invitation is None:
                return None
            return invitation.token_hash, invitation.email

        found = await self._storage.run(fetch, timeout=timeout, readonly=True)
        if found is None:
            raise NotFound("Invitation not found")
        token_hash, email = found
        if not await asyncio.to_thread(verify_token_secret, secret, token_hash):
            log.warning("invitation.bad_token", invitation_id=str(invitation_id))
            raise NotFound("Invitation not found")

        if self._require_email_match and (principal.email or "").strip().lower() != email:
            log.info(
                "access.denied",
                user_id=str(principal.user_id),
                invitation_id=str(invitation_id),
                reason="email_mismatch",
            )
            raise AccessDenied()

        async def work(session: AsyncSession) -> tuple[str, Optional[ProjectMemberRead], uuid.UUID]:
            invitation = await session.get(Invitation, invitation_id)
            if invitation is None:
                raise NotFound("Invitation not found")
            if invitation.status != _PENDING:
                raise AlreadyResolved(f"Invitation is {invitation.status}")

            now = self._clock()
            if now >= as_utc(invitation.expires_at):
                if not await _transition(session, invitation.id, InvitationStatus.EXPIRED, now):
                    raise AlreadyResolved()
                # Commit the expiry, then report it
                return InvitationStatus.EXPIRED.value, None, invitation.project_id

            if not await _transition(
                session,
                invitation.id,
                InvitationStatus.ACCEPTED,
                now,
                accepted_by=principal.user_id,
            ):
                raise AlreadyResolved()

            role = await resolve_project_role(
                session, invitation.project_id, invitation.custom_role_id
            )
            member = await insert_project_member(
                session, invitation.project_id, principal.user_id, invitation.custom_role_id
            )
            return (
                InvitationStatus.ACCEPTED.value,
                to_member_read(member, role.name if role else None),
                invitation.project_id,
            )

        outcome, member, project_id = await self._storage.run(work, timeout=timeout)
        if outcome == InvitationStatus.EXPIRED.value:
            log.info("invitation.expired", invitation_id=str(invitation_id), project_id=str(project_id))
            raise Expired()

        await self._cache.invalidate(project_id)
        log.info(
            "invitation.accepted",
            invitation_id=str(invitation_id),
            project_id=str(project_id),
            user_id=str(principal.user_id),
        )
        return member

    async def revoke(
        self,
        actor_id: uuid.UUID,
        invitation_id: uuid.UUID,
        *,
        project_id: uuid.UUID | None = None,
        timeout: float | None = None,
    ) -> InvitationRead:
        async def work(session: AsyncSession) -> InvitationRead:
            invitation = await self._load(session, actor_id, invitation_id, project_id, MANAGE)
            if invitation.status != _PENDING:
                raise AlreadyResolved(f"Invitation is {invitation.status}")
            now = self._clock()
            if not await _transition(session, invitation.id, InvitationStatus.REVOKED, now):
                raise AlreadyResolved()
            await session.refresh(invitation)
            return to_invitation_read(invitation)

        invitation = await self._storage.run(work, timeout=timeout)
        log.info(
            "invitation.revoked",
            invitation_id=str(invitation_id),
            project_id=str(invitation.project_id),
            actor=str(actor_id),
        )
        return invitation

    async def list_invitations(
        self,
        actor_id: uuid.UUID,
        project_id: uuid.UUID,
        *,
        status: InvitationStatus | None = None,
        timeout: float | None = None,
    ) -> list[InvitationRead]:
        """Invitations of a project, newest first.

        Overdue pending invitations are expired before they are listed.
        """

        async def work(session: AsyncSession) -> list[InvitationRead]:
            await self._gate.check(session, actor_id, project_id, READ)
            expired = await expire_pending(session, self._clock(), project_id=project_id)
            if expired:
                log.info("invitation.lazy_expired", project_id=str(project_id), count=expired)

            query = select(Invitation).where(Invitation.project_id == project_id)
            if status is not None:
                query = query.where(Invitation.status == InvitationStatus(status).value)
            result = await session.execute(
                query.order_by(Invitation.created_at.desc(), Invitation.id)
            )
            return [to_invitation_read(i) for i in result.scalars().all()]

        return await self._storage.run(work, timeout=timeout)

    async def expire_overdue(
        self,
        project_id: uuid.UUID | None = None,
        *,
        timeout: float | None = None,
    ) -> int:
        """Expire overdue pending invitations of one project, or of all of them."""

        async def work(session: AsyncSession) -> int:
            return await expire_pending(session, self._clock(), project_id=project_id)

        count = await self._storage.run(work, timeout=timeout)
        if count:
            log.info(
                "invitation.sweep",
                expired=count,
                project_id=str(project_id) if project_id else None,
            )
        return count

    async def _load(
        self,
        session: AsyncSession,
        actor_id: uuid.UUID,
        invitation_id: uuid.UUID,
        project_id: uuid.UUID | None,
        needed: frozenset[Permission],
    ) -> Invitation:
        if project_id is not None:
            await self._gate.check(session, actor_id, project_id, needed)
            invitation = await session.get(Invitation, invitation_id)
            if invitation is None or invitation.project_id != project_id:
                raise NotFound("Invitation not found")
            return invitation

        invitation = await session.get(Invitation, invitation_id)
        if invitation is None:
            raise NotFound("Invitation not found")
        await self._gate.check(session, actor_id, invitation.project_id, needed)
        return invitation
