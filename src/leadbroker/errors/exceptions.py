"""Domain exception classes.

Every error here is raised before any write is committed; the request or sweep
scope rolls the session back, so a raised error never leaves partial state.
"""


class LeadBrokerError(Exception):
    """Base exception for leadbroker."""

    def __init__(self, code: str, message: str, details=None, status_code: int = 500):
        self.code = code
        self.message = message
        self.details = details
        self.status_code = status_code
        super().__init__(message)


class ValidationError(LeadBrokerError):
    """Request validation failure."""

    def __init__(self, message: str, details=None):
        super().__init__("VALIDATION_ERROR", message, details, status_code=400)


class NotFoundError(LeadBrokerError):
    """Job, grant, dispute, provider or commission missing."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            "NOT_FOUND",
            f"{resource} '{resource_id}' not found",
            status_code=404,
        )


class AuthenticationError(LeadBrokerError):
    """Identity required or token invalid."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__("AUTHENTICATION_ERROR", message, status_code=401)


class AuthorizationError(LeadBrokerError):
    """Caller lacks the role, the job relationship, or an access grant."""

    def __init__(self, message: str = "Not allowed to act on this resource"):
        super().__init__("AUTHORIZATION_ERROR", message, status_code=403)


class ConflictError(LeadBrokerError):
    """Resource state conflict (e.g. a grant already exists)."""

    def __init__(self, message: str):
        super().__init__("CONFLICT", message, status_code=409)


class InvalidTransitionError(LeadBrokerError):
    """A job transition guard failed."""

    def __init__(self, message: str, current_status: str | None = None, action: str | None = None):
        details = None
        if current_status or action:
            details = {"current_status": current_status, "action": action}
        super().__init__("INVALID_TRANSITION", message, details, status_code=409)


class ConflictingClaimError(LeadBrokerError):
    """Several providers claimed the win and none was chosen."""

    def __init__(self, claimant_ids: list[str]):
        super().__init__(
            "CONFLICTING_CLAIM",
            "Multiple providers claimed this job; specify which claim to confirm",
            {"claimant_ids": claimant_ids},
            status_code=409,
        )


class InsufficientCreditsError(LeadBrokerError):
    """Provider has no credit left to spend on access."""

    def __init__(self, provider_id: str, balance: int):
        super().__init__(
            "INSUFFICIENT_CREDITS",
            f"Provider '{provider_id}' has insufficient credits",
            {"credits_balance": balance},
            status_code=402,
        )


class AlreadySettledError(LeadBrokerError):
    """Commission settlement was already claimed for this job.

    Raised and caught inside the commission engine; callers see an outcome,
    not an error.
    """

    def __init__(self, job_id: str):
        super().__init__("ALREADY_SETTLED", f"Commission for job '{job_id}' already settled", status_code=200)
