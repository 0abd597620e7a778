"""Failure taxonomy shared by the ingestion, pull and backfill paths."""


class IngestError(Exception):
    """Base class for every recoverable ingestion failure."""


class MalformedPayload(IngestError):
    """Body is not JSON, or carries no user identifier at all."""


class NoSummaryFound(IngestError):
    """Payload kind was recognised but no activity field could be extracted."""

    def __init__(self, kind: str, message: str | None = None):
        self.kind = kind
        super().__init__(message or f"No extractable summary in {kind} payload")


class IdentityNotFound(IngestError):
    def __init__(self, external_id: str):
        self.external_id = external_id
        super().__init__(f"User not found for external id {external_id!r}")


class StorageUnavailable(IngestError):
    """The database rejected or could not run a statement."""


class UpstreamError(IngestError):
    """Rook answered with an unexpected status or could not be reached."""


class UpstreamTimeout(UpstreamError):
    pass


class NotConnected(IngestError):
    def __init__(self, user_fid: int):
        self.user_fid = user_fid
        super().__init__(f"User {user_fid} is not connected to Rook")


class NoData(IngestError):
    """Rook explicitly has nothing for the requested day."""


class AggregatorNotConfigured(IngestError):
    """ROOK_CLIENT_UUID / ROOK_CLIENT_SECRET are not set."""
