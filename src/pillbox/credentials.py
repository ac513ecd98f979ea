"""L402 credential records and the Authorization header format."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pillbox.exceptions import InvalidCredentialError, InvalidPreimageError
from pillbox.preimage import is_hex_preimage


class CredentialType(str, Enum):
    """How a stored credential is consumed."""

    FILE = "file"
    GRAPHQL = "graphql"


class RequestMethod(str, Enum):
    """HTTP method used against the credential's location."""

    GET = "GET"
    POST = "POST"


def _coerce_enum(enum_cls: type[Enum], value: Any, name: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        for member in enum_cls:
            if member.value.lower() == value.strip().lower():
                return member
    allowed = ", ".join(m.value for m in enum_cls)
    raise InvalidCredentialError(f"{name} must be one of {allowed}, got {value!r}")


def format_authorization(macaroon: str, preimage: str) -> str:
    """Format the value of an ``Authorization: L402`` request header.

    The result is sent verbatim, so nothing is encoded or re-cased.
    """
    return f"L402 {macaroon}:{preimage}"


@dataclass(frozen=True)
class CredentialInput:
    """A credential ready to be handed to a store (no id or timestamp yet).

    Text fields are trimmed, the preimage is lowercased and ``type`` /
    ``method`` accept their string values.
    """

    macaroon: str
    preimage: str
    label: str = ""
    location: str = ""
    method: RequestMethod = RequestMethod.GET
    type: CredentialType = CredentialType.FILE
    invoice: str = ""

    def __post_init__(self) -> None:
        # frozen: normalize through object.__setattr__
        object.__setattr__(self, "label", (self.label or "").strip())
        object.__setattr__(self, "location", (self.location or "").strip())
        object.__setattr__(self, "macaroon", (self.macaroon or "").strip())
        object.__setattr__(self, "invoice", (self.invoice or "").strip())
        object.__setattr__(self, "preimage", (self.preimage or "").strip().lower())
        object.__setattr__(self, "method", _coerce_enum(RequestMethod, self.method, "method"))
        object.__setattr__(self, "type", _coerce_enum(CredentialType, self.type, "type"))

    def check_fields(self) -> None:
        """Check the invariants that do not need the invoice decoded."""
        if not self.macaroon:
            raise InvalidCredentialError("macaroon is empty")
        if not self.preimage:
            raise InvalidPreimageError("preimage is empty")
        if not is_hex_preimage(self.preimage):
            raise InvalidPreimageError("preimage is not an even-length hex string")

    @property
    def authorization_header(self) -> str:
        return format_authorization(self.macaroon, self.preimage)


@dataclass(frozen=True)
class CredentialRecord:
    """A persisted L402 credential."""

    id: int
    label: str
    location: str
    method: RequestMethod
    type: CredentialType
    macaroon: str
    preimage: str
    invoice: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_input(
        cls, credential: CredentialInput, id: int, created_at: datetime
    ) -> CredentialRecord:
        return cls(
            id=id,
            label=credential.label,
            location=credential.location,
            method=credential.method,
            type=credential.type,
            macaroon=credential.macaroon,
            preimage=credential.preimage,
            invoice=credential.invoice,
            created_at=created_at,
        )

    @property
    def authorization_header(self) -> str:
        return format_authorization(self.macaroon, self.preimage)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["method"] = self.method.value
        data["type"] = self.type.value
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CredentialRecord:
        """Rebuild a record from ``to_dict`` output.

        Raises:
            InvalidCredentialError: On unknown ``type``/``method`` values.
            KeyError, ValueError: On missing fields or a bad timestamp.
        """
        return cls(
            id=int(data["id"]),
            label=data.get("label", ""),
            location=data.get("location", ""),
            method=_coerce_enum(RequestMethod, data.get("method"), "method"),
            type=_coerce_enum(CredentialType, data.get("type"), "type"),
            macaroon=data["macaroon"],
            preimage=data["preimage"],
            invoice=data.get("invoice", ""),
            created_at=datetime.fromisoformat(data["created_at"]),
        )
