"""
Roadmap Engine SQL Store

SQLAlchemy tables and repositories for users, tickets and proposals.

The one-pending-proposal-per-ticket rule lives in the schema as a partial
unique index, so two racing inserts are settled by the database: the first
commit wins and the second surfaces as DuplicatePendingProposal. Resolution
and status changes are single-row conditional UPDATEs. Sessions are sync and
run in worker threads, one session per repository call.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, TypeVar
from uuid import UUID, uuid4

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    create_engine,
    select,
    text,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from ..models.ticket import (
    Priority,
    Proposal,
    ProposalStatus,
    Role,
    Specialization,
    Ticket,
    TicketStatus,
    User,
    utcnow,
)
from ..services.errors import AlreadyResolved, DuplicatePendingProposal, NotFound
from ..services.state_machine import status_from_storage, status_to_storage

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Base(DeclarativeBase):
    pass


def _uuid_str() -> str:
    return str(uuid4())


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# TABLES
# =============================================================================

class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    account_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    auth_subject: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False, default="")
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=Role.VIEWER.value)
    specialization: Mapped[Optional[str]] = mapped_column(String(16))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class TicketRow(Base):
    __tablename__ = "tickets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    account_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    # Stored as backlog / active / blocked / complete
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="backlog")
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default=Priority.MEDIUM.value)
    assignee_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class ProposalRow(Base):
    __tablename__ = "proposals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    account_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    ticket_id: Mapped[str] = mapped_column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False)
    project_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    proposed_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    from_status: Mapped[str] = mapped_column(String(16), nullable=False)
    to_status: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=ProposalStatus.PENDING.value)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id"))
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index(
            "uq_proposals_one_pending_per_ticket",
            "account_id",
            "ticket_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
        Index("ix_proposals_account_status", "account_id", "status"),
    )


# =============================================================================
# ROW <-> MODEL
# =============================================================================

def _user(row: UserRow) -> User:
    return User(
        id=UUID(row.id),
        account_id=row.account_id,
        auth_subject=row.auth_subject,
        name=row.name,
        email=row.email,
        role=Role(row.role),
        specialization=Specialization(row.specialization) if row.specialization else None,
        created_at=_aware(row.created_at),
    )


def _ticket(row: TicketRow) -> Ticket:
    return Ticket(
        id=UUID(row.id),
        account_id=row.account_id,
        project_id=UUID(row.project_id),
        title=row.title,
        status=status_from_storage(row.status),
        priority=Priority(row.priority),
        assignee_id=UUID(row.assignee_id) if row.assignee_id else None,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _proposal(row: ProposalRow) -> Proposal:
    return Proposal(
        id=UUID(row.id),
        account_id=row.account_id,
        ticket_id=UUID(row.ticket_id),
        project_id=UUID(row.project_id),
        proposed_by=UUID(row.proposed_by),
        from_status=TicketStatus(row.from_status),
        to_status=TicketStatus(row.to_status),
        status=ProposalStatus(row.status),
        rejection_reason=row.rejection_reason,
        resolved_by=UUID(row.resolved_by) if row.resolved_by else None,
        resolved_at=_aware(row.resolved_at),
        created_at=_aware(row.created_at),
    )


# =============================================================================
# REPOSITORIES
# =============================================================================

def _proposal_row(proposal: Proposal) -> ProposalRow:
    return ProposalRow(
        id=str(proposal.id),
        account_id=proposal.account_id,
        ticket_id=str(proposal.ticket_id),
        project_id=str(proposal.project_id),
        proposed_by=str(proposal.proposed_by),
        from_status=proposal.from_status.value,
        to_status=proposal.to_status.value,
        status=ProposalStatus.PENDING.value,
        created_at=proposal.created_at,
    )


class SqlRepo:
    """
    Base for the SQL repositories.

    Sessions are synchronous; each unit of work runs in a worker thread
    with its own session so the event loop is never blocked on the database.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def run(self, work: Callable[[Session], T]) -> T:
        def in_session() -> T:
            with self.session_factory() as session:
                return work(session)
        return await run_in_threadpool(in_session)


class SqlUserRepo(SqlRepo):
    async def get(self, user_id: UUID) -> Optional[User]:
        def work(session):
            row = session.get(UserRow, str(user_id))
            return _user(row) if row else None
        return await self.run(work)

    async def get_many(self, user_ids: Iterable[UUID]) -> Dict[UUID, User]:
        ids = [str(uid) for uid in set(user_ids)]
        if not ids:
            return {}

        def work(session):
            rows = session.scalars(select(UserRow).where(UserRow.id.in_(ids))).all()
            return {UUID(row.id): _user(row) for row in rows}
        return await self.run(work)

    async def get_by_subject(self, auth_subject: str) -> Optional[User]:
        def work(session):
            row = session.scalars(
                select(UserRow).where(UserRow.auth_subject == auth_subject)
            ).one_or_none()
            return _user(row) if row else None
        return await self.run(work)

    async def add(self, user: User) -> User:
        def work(session):
            session.add(UserRow(
                id=str(user.id),
                account_id=user.account_id,
                auth_subject=user.auth_subject,
                name=user.name,
                email=user.email,
                role=user.role.value,
                specialization=user.specialization.value if user.specialization else None,
                created_at=user.created_at,
            ))
            session.commit()
        await self.run(work)
        return user

    async def save(self, user: User) -> User:
        """Persist role/profile changes. account_id is never rewritten."""
        def work(session):
            row = session.get(UserRow, str(user.id))
            if row is None:
                raise NotFound("User", user.id)
            row.name = user.name
            row.email = user.email
            row.role = user.role.value
            row.specialization = user.specialization.value if user.specialization else None
            session.commit()
            return _user(row)
        return await self.run(work)


class SqlTicketRepo(SqlRepo):
    async def get(self, ticket_id: UUID) -> Optional[Ticket]:
        def work(session):
            row = session.get(TicketRow, str(ticket_id))
            return _ticket(row) if row else None
        return await self.run(work)

    async def add(self, ticket: Ticket) -> Ticket:
        def work(session):
            session.add(TicketRow(
                id=str(ticket.id),
                account_id=ticket.account_id,
                project_id=str(ticket.project_id),
                title=ticket.title,
                status=status_to_storage(ticket.status),
                priority=ticket.priority.value,
                assignee_id=str(ticket.assignee_id) if ticket.assignee_id else None,
                created_at=ticket.created_at,
                updated_at=ticket.updated_at,
            ))
            session.commit()
        await self.run(work)
        return ticket

    async def list_for_project(self, account_id: str, project_id: UUID) -> List[Ticket]:
        def work(session):
            rows = session.scalars(
                select(TicketRow)
                .where(TicketRow.account_id == account_id)
                .where(TicketRow.project_id == str(project_id))
                .order_by(TicketRow.created_at)
            ).all()
            return [_ticket(row) for row in rows]
        return await self.run(work)

    async def update_status(
        self,
        ticket_id: UUID,
        account_id: str,
        status: TicketStatus
    ) -> Ticket:
        def work(session):
            result = session.execute(
                update(TicketRow)
                .where(TicketRow.id == str(ticket_id))
                .where(TicketRow.account_id == account_id)
                .values(status=status_to_storage(status), updated_at=utcnow())
            )
            if result.rowcount == 0:
                session.rollback()
                raise NotFound("Ticket", ticket_id)
            session.commit()
            return _ticket(session.get(TicketRow, str(ticket_id)))
        return await self.run(work)


class SqlProposalRepo(SqlRepo):
    async def get(self, proposal_id: UUID) -> Optional[Proposal]:
        def work(session):
            row = session.get(ProposalRow, str(proposal_id))
            return _proposal(row) if row else None
        return await self.run(work)

    async def get_pending_for_ticket(self, ticket_id: UUID) -> Optional[Proposal]:
        def work(session):
            row = session.scalars(
                select(ProposalRow)
                .where(ProposalRow.ticket_id == str(ticket_id))
                .where(ProposalRow.status == ProposalStatus.PENDING.value)
            ).one_or_none()
            return _proposal(row) if row else None
        return await self.run(work)

    async def insert_pending(self, proposal: Proposal) -> Proposal:
        def work(session):
            session.add(_proposal_row(proposal))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.info("Pending proposal already exists for ticket %s", proposal.ticket_id)
                raise DuplicatePendingProposal(proposal.ticket_id)
        await self.run(work)
        return proposal

    async def list_pending(
        self,
        account_id: str,
        project_id: Optional[UUID] = None
    ) -> List[Proposal]:
        query = (
            select(ProposalRow)
            .where(ProposalRow.account_id == account_id)
            .where(ProposalRow.status == ProposalStatus.PENDING.value)
            .order_by(ProposalRow.created_at)
        )
        if project_id is not None:
            query = query.where(ProposalRow.project_id == str(project_id))

        def work(session):
            return [_proposal(row) for row in session.scalars(query).all()]
        return await self.run(work)

    async def mark_resolved(
        self,
        proposal_id: UUID,
        account_id: str,
        status: ProposalStatus,
        resolved_by: UUID,
        resolved_at: datetime,
        rejection_reason: Optional[str] = None
    ) -> Proposal:
        def work(session):
            result = session.execute(
                update(ProposalRow)
                .where(ProposalRow.id == str(proposal_id))
                .where(ProposalRow.account_id == account_id)
                .where(ProposalRow.status == ProposalStatus.PENDING.value)
                .values(
                    status=status.value,
                    resolved_by=str(resolved_by),
                    resolved_at=resolved_at,
                    rejection_reason=rejection_reason,
                )
            )
            if result.rowcount == 0:
                session.rollback()
                row = session.get(ProposalRow, str(proposal_id))
                if row is None or row.account_id != account_id:
                    raise NotFound("Proposal", proposal_id)
                raise AlreadyResolved(proposal_id, row.status)
            session.commit()
            return _proposal(session.get(ProposalRow, str(proposal_id)))
        return await self.run(work)


# =============================================================================
# STORE
# =============================================================================

def build_engine(database_url: str):
    if database_url.startswith("sqlite"):
        # Connections are used from worker threads
        options = {"connect_args": {"check_same_thread": False}}
        if database_url == "sqlite://" or ":memory:" in database_url:
            options["poolclass"] = StaticPool
        return create_engine(database_url, **options)
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    return create_engine(database_url, pool_pre_ping=True)


class SqlStore:
    """Bundle of the three SQL repositories sharing one engine."""

    def __init__(self, database_url: str, create_schema: bool = True):
        self.engine = build_engine(database_url)
        if create_schema:
            Base.metadata.create_all(self.engine)
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self.users = SqlUserRepo(self.session_factory)
        self.tickets = SqlTicketRepo(self.session_factory)
        self.proposals = SqlProposalRepo(self.session_factory)

    def close(self) -> None:
        self.engine.dispose()
