"""Exception hierarchy for qrgen.

Only hard failures are modelled as exceptions. Bad colors and unreachable
logos degrade to defaults and never raise.
"""


class QRGenError(Exception):
    """Base class for all qrgen errors."""


class InvalidRequestError(QRGenError):
    """Request parameters cannot be rendered (empty content, bad size)."""


class EncodingError(QRGenError):
    """The composed pixel buffer could not be serialized to PNG."""
