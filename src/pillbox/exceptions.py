"""pillbox exceptions."""

from __future__ import annotations


class PillboxError(Exception):
    """Base exception for pillbox."""


class NetworkError(PillboxError):
    """The HTTP request itself failed (connection, TLS, timeout...)."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Request to {url} failed: {reason}")


class UnexpectedStatusError(PillboxError):
    """The server answered with a status the flow cannot continue from."""

    def __init__(self, url: str, status_code: int):
        self.url = url
        self.status_code = status_code
        super().__init__(f"Unexpected HTTP status {status_code} from {url}")


class MalformedChallengeError(PillboxError):
    """WWW-Authenticate header missing or not a usable L402 challenge."""

    def __init__(self, header: str | None, reason: str):
        self.header = header
        self.reason = reason
        super().__init__(f"Failed to parse L402 challenge: {reason}")


class DecodeError(PillboxError):
    """Invoice string is not a valid BOLT11 payment request."""

    def __init__(self, invoice: str, reason: str):
        self.invoice = invoice
        self.reason = reason
        super().__init__(f"Failed to decode invoice: {reason}")


class InvalidCredentialError(PillboxError):
    """Credential fields violate the record invariants."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid credential: {reason}")


class InvalidPreimageError(InvalidCredentialError):
    """Preimage is malformed or does not hash to the invoice's payment hash."""

    def __init__(self, reason: str = "preimage does not match invoice payment hash"):
        super().__init__(reason)


class PersistenceError(PillboxError):
    """Credential store could not complete the operation."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Credential store error: {reason}")


class NotFoundError(PillboxError):
    """No credential stored under the given id."""

    def __init__(self, credential_id: int):
        self.credential_id = credential_id
        super().__init__(f"Credential not found: {credential_id}")


class OperationPendingError(PillboxError):
    """A challenge fetch is already in flight for this session."""

    def __init__(self) -> None:
        super().__init__("A challenge request is already pending for this session")


class InvalidStateError(PillboxError):
    """Action not allowed in the session's current state."""

    def __init__(self, state: str, action: str):
        self.state = state
        self.action = action
        super().__init__(f"Cannot {action} while session is {state}")
