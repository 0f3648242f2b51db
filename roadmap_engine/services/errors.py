"""
Roadmap Engine Errors

Every failure of the workflow is terminal for the request and reaches
the caller unchanged. Each kind carries the HTTP status the API renders.
"""


class WorkflowError(Exception):
    """Base class for caller-visible workflow failures."""

    code = "workflow_error"
    http_status = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(WorkflowError):
    """No valid session for the request."""

    code = "unauthenticated"
    http_status = 401

    def __init__(self, message: str = "Authentication required. Please sign in again."):
        super().__init__(message)


class Forbidden(WorkflowError):
    """Role does not allow the action."""

    code = "forbidden"
    http_status = 403


class NotFound(WorkflowError):
    """Entity is missing or belongs to another account."""

    code = "not_found"
    http_status = 404

    def __init__(self, entity: str, entity_id=None):
        message = f"{entity} not found"
        if entity_id is not None:
            message = f"{entity} {entity_id} not found"
        super().__init__(message)
        self.entity = entity


class NoOpTransition(WorkflowError):
    code = "no_op_transition"
    http_status = 400

    def __init__(self, status):
        super().__init__(
            f"Ticket is already '{getattr(status, 'value', status)}'. "
            "Pick a different status to move it."
        )


class DuplicatePendingProposal(WorkflowError):
    """Another proposal for the ticket is still waiting for a decision."""

    code = "duplicate_pending_proposal"
    http_status = 409

    def __init__(self, ticket_id):
        super().__init__(
            f"Ticket {ticket_id} already has a pending status change. "
            "Wait for a PM or admin to approve or reject it first."
        )
        self.ticket_id = ticket_id


class AlreadyResolved(NotFound):
    """No pending proposal with this id: it was resolved before."""

    code = "already_resolved"
    http_status = 409

    def __init__(self, proposal_id, status):
        WorkflowError.__init__(
            self,
            f"Proposal {proposal_id} was already {getattr(status, 'value', status)}.",
        )
        self.entity = "Proposal"
        self.proposal_id = proposal_id


class InvalidRequest(WorkflowError):
    code = "invalid_request"
    http_status = 400
