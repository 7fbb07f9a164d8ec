"""Error handling utilities."""


class ViewingDeskError(Exception):
    """Base exception for the viewing desk backend."""
    pass


class SupabaseError(ViewingDeskError):
    """Supabase operation error."""
    pass


class WorkflowError(ViewingDeskError):
    """Business rule failure surfaced to the caller."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(WorkflowError):
    """Referenced user, property, agent, appointment or request is absent."""
    status_code = 404


class BadRequestError(WorkflowError):
    """Invalid input, or the resource is in the wrong state for the operation."""
    status_code = 400


class ConflictError(WorkflowError):
    """Committing the operation would violate a business invariant."""
    status_code = 409


class ForbiddenError(WorkflowError):
    """Actor lacks authority over the resource."""
    status_code = 403
