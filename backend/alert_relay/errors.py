"""Exceptions raised by the alert pipeline.

Routers map ValidationError and MalformedPayloadError to 400 and
NotFoundError to 404. Everything else surfaces as an opaque 500.
"""


class AlertRelayError(Exception):
    """Base class for pipeline errors."""


class ValidationError(AlertRelayError):
    """A required request field is missing."""


class MalformedPayloadError(ValidationError):
    """An inbound status payload is missing its root key."""


class NotFoundError(AlertRelayError):
    """No deliverable endpoints are registered."""


class TransientStoreError(AlertRelayError):
    """The registry store could not complete a call."""


class GatewayDeliveryError(AlertRelayError):
    """The push gateway failed for a whole batch."""
