"""Exception types for the attachment pipeline.

Every failure is scoped: a degenerate sample is dropped, a channel without
valid samples yields no clip, and an invalid attachment is skipped while the
others continue.
"""


class AttachmentError(Exception):
    """Base class for attachment solving failures."""


class InputValidationError(AttachmentError, ValueError):
    """Missing mesh, missing channel data, empty channel list or bad settings."""


class DegenerateGeometryError(AttachmentError, ArithmeticError):
    """A surface normal or tangent collapsed to (near) zero length."""


class CurveSynthesisError(AttachmentError):
    """No valid samples were available to build animation curves."""
