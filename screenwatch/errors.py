"""Exception types raised by screenwatch.

Designed failures (no detection, ambiguous detections, malformed OCR output)
are returned as values, never raised. These exceptions cover misuse and
unreadable inputs supplied by external collaborators.
"""


class ScreenwatchError(Exception):
    """Base class for screenwatch errors."""


class InvalidReferenceImageError(ScreenwatchError):
    """Raised when reference template data cannot be decoded into an image."""

    def __init__(self, reference_id: str, message: str = "Cannot decode image"):
        self.reference_id = reference_id
        super().__init__(f"{message}: '{reference_id}'")


class TriggerDefinitionError(ScreenwatchError):
    """Raised when a trigger record cannot be turned into a Trigger."""

    def __init__(self, message: str, record_index: int = -1):
        self.record_index = record_index
        where = f" (record {record_index})" if record_index >= 0 else ""
        super().__init__(f"{message}{where}")
