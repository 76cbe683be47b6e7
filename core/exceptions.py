"""
CORE App - Error taxonomy for FLEET-DISPATCH

Every core operation raises one of these; the HTTP layer maps them to
status codes in core.api. Negative business outcomes (no vehicle, job
already taken) are ConflictError subclasses so callers can tell them
apart from system failures.
"""


class FleetError(Exception):
    """Base class for all engine errors."""

    code = 'error'

    def __init__(self, message: str = ''):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class ValidationError(FleetError):
    """Malformed input."""
    code = 'validation_error'


class InvalidPlan(ValidationError):
    """Unsupported rental plan."""
    code = 'invalid_plan'

    def __init__(self, plan):
        super().__init__(f"Unsupported rental plan: {plan!r}")
        self.plan = plan


class NotFoundError(FleetError):
    """Referenced record does not exist."""
    code = 'not_found'


class NotificationNotFound(NotFoundError):
    """Courier was never offered this job."""
    code = 'notification_not_found'


class ConflictError(FleetError):
    """Lost a race for a shared resource."""
    code = 'conflict'


class NoVehicleAvailable(ConflictError):
    """No vehicle available for the requested window."""
    code = 'no_vehicle_available'


class JobNotAvailable(ConflictError):
    """Job is no longer available."""
    code = 'job_not_available'


class JobNotAccepted(ConflictError):
    """Job is not in the accepted state."""
    code = 'job_not_accepted'


class NotAssigned(FleetError):
    """Job is assigned to another courier."""
    code = 'not_assigned'


class DispatchPartialFailure(FleetError):
    """
    One or more courier notifications could not be published.

    Attached to a DispatchResult, never raised to the caller: the job
    itself is created and offered regardless.
    """
    code = 'dispatch_partial_failure'

    def __init__(self, job_id, failed: dict):
        super().__init__(
            f"Job {job_id}: {len(failed)} courier notification(s) failed to publish"
        )
        self.job_id = job_id
        self.failed = dict(failed)
