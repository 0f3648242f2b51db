"""
Roadmap Engine API

FastAPI application with:
- Bearer-token identity and tenant resolution
- Status transitions (applied directly or queued as proposals)
- Proposal approval / rejection for PMs and admins
- Pending-proposal lists per account or project
- Own-profile read and update

Run:
    uvicorn roadmap_engine.api.app:create_app --factory
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from .. import __version__
from ..config import Config, get_config
from ..logging_config import configure_logging
from ..models import (
    Identity,
    Priority,
    ProposalOutcome,
    Role,
    Specialization,
    TicketStatus,
)
from ..services import (
    AuthorizationGuard,
    IdentityResolver,
    ProposalLedger,
    UserService,
    WorkflowError,
    WorkflowService,
)
from ..store import build_store

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


# =============================================================================
# CONTAINER
# =============================================================================

class Container:
    """Services wired against one store."""

    def __init__(self, config: Config, store=None):
        self.config = config
        self.store = store if store is not None else build_store(config.DATABASE_URL)
        self.guard = AuthorizationGuard()
        self.identity = IdentityResolver(
            self.store.users,
            secret=config.JWT_SECRET_KEY,
            algorithm=config.JWT_ALGORITHM,
            audience=config.JWT_AUDIENCE,
        )
        self.ledger = ProposalLedger(self.store.proposals, self.guard)
        self.workflow = WorkflowService(
            self.store.tickets, self.store.users, self.ledger, self.guard
        )
        self.users = UserService(self.store.users)


def get_container(request: Request) -> Container:
    return request.app.state.container


async def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    container: Container = Depends(get_container)
) -> Identity:
    token = credentials.credentials if credentials else None
    return await container.identity.resolve(token)


# =============================================================================
# REQUEST MODELS
# =============================================================================

class TransitionRequest(BaseModel):
    to_status: TicketStatus


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class CreateTicketRequest(BaseModel):
    title: str
    priority: Priority = Priority.MEDIUM
    assignee_id: Optional[UUID] = None


class UpdateProfileRequest(BaseModel):
    role: Optional[Role] = None
    specialization: Optional[Specialization] = None


def ok(data, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": True, "data": data})


# =============================================================================
# APP FACTORY
# =============================================================================

def create_app(config: Optional[Config] = None, store=None) -> FastAPI:
    config = config or get_config()
    configure_logging(config)

    container = Container(config, store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        container.store.close()

    app = FastAPI(
        title="Roadmap Engine",
        description="Ticket status workflow with proposals and approvals",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(WorkflowError)
    async def workflow_error_handler(request: Request, exc: WorkflowError):
        logger.debug(
            "%s %s -> %s", request.method, request.url.path, exc.code,
            extra={"method": request.method, "path": request.url.path, "status": exc.http_status},
        )
        return JSONResponse(
            status_code=exc.http_status,
            content={"success": False, "error": exc.message, "code": exc.code},
        )

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:

    # =========================================================================
    # HEALTH CHECK
    # =========================================================================

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": "roadmap-engine",
            "version": __version__,
        }

    # =========================================================================
    # PROFILE ENDPOINTS
    # =========================================================================

    @app.get("/me")
    async def get_profile(
        identity: Identity = Depends(get_identity),
        container: Container = Depends(get_container)
    ):
        user = await container.users.get_profile(identity)
        return ok({"profile": user.model_dump(mode="json")})

    @app.patch("/me")
    async def update_profile(
        request: UpdateProfileRequest,
        identity: Identity = Depends(get_identity),
        container: Container = Depends(get_container)
    ):
        """
        Update the caller's own role/specialization.

        Omitted fields are left alone; `"specialization": null` clears it.
        """
        kwargs = {}
        if "role" in request.model_fields_set and request.role is not None:
            kwargs["role"] = request.role
        if "specialization" in request.model_fields_set:
            kwargs["specialization"] = request.specialization
        user = await container.users.update_own_profile(identity, **kwargs)
        return ok({"profile": user.model_dump(mode="json")})

    # =========================================================================
    # TICKET ENDPOINTS
    # =========================================================================

    @app.get("/projects/{project_id}/tickets")
    async def list_tickets(
        project_id: UUID,
        identity: Identity = Depends(get_identity),
        container: Container = Depends(get_container)
    ):
        tickets = await container.workflow.list_tickets(identity, project_id)
        return ok({"tickets": [t.model_dump(mode="json") for t in tickets]})

    @app.post("/projects/{project_id}/tickets")
    async def create_ticket(
        project_id: UUID,
        request: CreateTicketRequest,
        identity: Identity = Depends(get_identity),
        container: Container = Depends(get_container)
    ):
        ticket = await container.workflow.create_ticket(
            identity, project_id, request.title, request.priority, request.assignee_id
        )
        return ok({"ticket": ticket.model_dump(mode="json")}, status.HTTP_201_CREATED)

    @app.get("/tickets/{ticket_id}")
    async def get_ticket(
        ticket_id: UUID,
        identity: Identity = Depends(get_identity),
        container: Container = Depends(get_container)
    ):
        ticket = await container.workflow.get_ticket(identity, ticket_id)
        return ok({"ticket": ticket.model_dump(mode="json")})

    @app.post("/tickets/{ticket_id}/transitions")
    async def request_transition(
        ticket_id: UUID,
        request: TransitionRequest,
        identity: Identity = Depends(get_identity),
        container: Container = Depends(get_container)
    ):
        """
        Move a ticket to another status.

        PM/admin: applied now (200).
        Engineer: queued as a pending proposal (202).
        """
        result = await container.workflow.request_transition(
            identity, ticket_id, request.to_status
        )
        if result.is_queued:
            return ok(
                {"result": "queued", "proposal": result.queued.model_dump(mode="json")},
                status.HTTP_202_ACCEPTED,
            )
        return ok({"result": "applied", "ticket": result.applied.model_dump(mode="json")})

    # =========================================================================
    # PROPOSAL ENDPOINTS
    # =========================================================================

    @app.get("/proposals/pending")
    async def list_pending(
        project_id: Optional[UUID] = None,
        identity: Identity = Depends(get_identity),
        container: Container = Depends(get_container)
    ):
        pending = await container.workflow.list_pending(identity, project_id)
        return ok({
            "pending": [p.model_dump(mode="json") for p in pending],
            "count": len(pending),
        })

    @app.post("/proposals/{proposal_id}/approve")
    async def approve_proposal(
        proposal_id: UUID,
        identity: Identity = Depends(get_identity),
        container: Container = Depends(get_container)
    ):
        ticket = await container.workflow.resolve_transition(
            identity, proposal_id, ProposalOutcome.APPROVED
        )
        proposal = await container.ledger.get(identity.account_id, proposal_id)
        return ok({
            "message": "Status change approved",
            "proposal": proposal.model_dump(mode="json"),
            "ticket": ticket.model_dump(mode="json") if ticket else None,
        })

    @app.post("/proposals/{proposal_id}/reject")
    async def reject_proposal(
        proposal_id: UUID,
        request: Optional[RejectRequest] = None,
        identity: Identity = Depends(get_identity),
        container: Container = Depends(get_container)
    ):
        reason = request.reason if request else None
        await container.workflow.resolve_transition(
            identity, proposal_id, ProposalOutcome.REJECTED, reason
        )
        proposal = await container.ledger.get(identity.account_id, proposal_id)
        return ok({
            "message": "Status change rejected",
            "proposal": proposal.model_dump(mode="json"),
        })


# =============================================================================
# RUN
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
