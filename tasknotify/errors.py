"""Error taxonomy for the task notification pipeline.

``NotFound`` and ``InvalidReference`` are raised inside the transactional
core and surface to callers of the task service. ``TransientDeliveryFailure``
and ``SuppressedByConfig`` only ever occur past the commit gate; they are
logged where they happen and never propagate back into a request.
"""


class TaskNotifyError(Exception):
    """Base error for pipeline operations."""

    def __init__(self, message: str, code: str = "TASKNOTIFY_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFound(TaskNotifyError):
    """Referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: object):
        super().__init__(f"{entity} not found: {entity_id}", "NOT_FOUND")
        self.entity = entity
        self.entity_id = entity_id


class InvalidReference(TaskNotifyError):
    """A foreign id supplied by the caller does not resolve."""

    def __init__(self, field: str, reference_id: object):
        super().__init__(
            f"Invalid reference {field}={reference_id}: no such entity",
            "INVALID_REFERENCE",
        )
        self.field = field
        self.reference_id = reference_id


class TransientDeliveryFailure(TaskNotifyError):
    """Broker unreachable or a channel send failed."""

    def __init__(self, message: str, destination: str | None = None):
        super().__init__(message, "TRANSIENT_DELIVERY_FAILURE")
        self.destination = destination


class SuppressedByConfig(TaskNotifyError):
    """Notifications are globally disabled."""

    def __init__(self, message: str = "Notifications are disabled"):
        super().__init__(message, "SUPPRESSED_BY_CONFIG")
