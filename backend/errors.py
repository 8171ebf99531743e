class AttendanceError(Exception):
    """Base exception for identity resolution and attendance sequencing."""


class MalformedInput(AttendanceError):
    """Raised when input fails validation before the matcher or ledger is touched."""


class NoMatch(AttendanceError):
    """Raised when no enrolled identity matches with enough confidence.

    Deliberately carries no score or candidate detail.
    """

    def __init__(self, message: str = "Facial identity not recognized. Please try again."):
        super().__init__(message)


class UnknownIdentity(AttendanceError):
    """Raised when an identity id does not refer to an enrolled identity."""

    def __init__(self, identity_id: str):
        super().__init__(f"Identity ID {identity_id} not found.")
        self.identity_id = identity_id


class DuplicateEnrollment(AttendanceError):
    """Raised when the name-uniqueness policy rejects an enrollment."""


class SequenceConflict(AttendanceError):
    """Raised when a conditional append finds a newer event than the one it was based on."""


class SequencerBusy(AttendanceError):
    """Raised when the per-identity lock could not be taken in time. Nothing was written."""


class StoreUnavailable(AttendanceError):
    """Raised when a storage collaborator fails."""


class Unauthorized(AttendanceError):
    """Raised by the access gate."""
