"""Credential acquisition flow.

A session walks one credential from an unauthenticated request to a saved
record::

    IDLE -> AWAITING_CHALLENGE -> CHALLENGE_RECEIVED -> AWAITING_PREIMAGE
         -> VERIFIED | REJECTED -> SAVED

Any failure while fetching the challenge ends in FAILED. A rejected
preimage can be re-entered without fetching a new challenge.

Usage:
    session = AcquisitionSession("https://api.example.com/file", label="report")
    challenge = await session.fetch_challenge()
    # ... user pays challenge.invoice out of band ...
    session.submit_preimage(preimage)
    record = session.save(store)
"""

from __future__ import annotations

import itertools
import logging
from enum import Enum
from typing import Any, NoReturn

import httpx

from pillbox.bolt11 import InvoiceDecoder
from pillbox.challenge import L402Challenge, parse_challenge
from pillbox.config import Settings
from pillbox.credentials import (
    CredentialInput,
    CredentialRecord,
    CredentialType,
    RequestMethod,
    format_authorization,
)
from pillbox.exceptions import (
    DecodeError,
    InvalidPreimageError,
    InvalidStateError,
    MalformedChallengeError,
    NetworkError,
    OperationPendingError,
    PersistenceError,
    PillboxError,
    UnexpectedStatusError,
)
from pillbox.preimage import ensure_valid_preimage
from pillbox.store import CredentialStore, save_credential

logger = logging.getLogger(__name__)

_session_ids = itertools.count(1)


class AcquisitionState(str, Enum):
    IDLE = "idle"
    AWAITING_CHALLENGE = "awaiting_challenge"
    CHALLENGE_RECEIVED = "challenge_received"
    AWAITING_PREIMAGE = "awaiting_preimage"
    VERIFIED = "verified"
    REJECTED = "rejected"
    SAVED = "saved"
    FAILED = "failed"


class AcquisitionSession:
    """One credential acquisition, from challenge fetch to hand-off to a store.

    At most one challenge fetch may be in flight. ``cancel()`` supersedes
    the in-flight fetch: its result is discarded when it arrives.
    """

    def __init__(
        self,
        location: str,
        *,
        label: str = "",
        method: RequestMethod | str = RequestMethod.GET,
        type: CredentialType | str = CredentialType.FILE,
        decoder: InvoiceDecoder | None = None,
        settings: Settings | None = None,
        **httpx_kwargs: Any,
    ):
        """
        Args:
            location: URL of the protected resource.
            label: Free-text label stored with the credential.
            method: Request method used against ``location``.
            type: How the credential will be consumed.
            decoder: Invoice decoder. Defaults to Bolt11Decoder.
            settings: If given, its timeout is applied to the HTTP client.
            **httpx_kwargs: Additional kwargs passed to httpx.AsyncClient.
        """
        # Validate enums up front through the record model
        template = CredentialInput(
            macaroon="", preimage="", label=label, location=location, method=method, type=type
        )
        self.session_id = next(_session_ids)
        self.location = template.location
        self.label = template.label
        self.method = template.method
        self.type = template.type
        self._decoder = decoder
        if settings is not None:
            httpx_kwargs.setdefault("timeout", settings.timeout)
        self._httpx_kwargs = httpx_kwargs

        self.state = AcquisitionState.IDLE
        self.history: list[AcquisitionState] = [AcquisitionState.IDLE]
        self.error: PillboxError | None = None
        self.challenge: L402Challenge | None = None
        self.preimage: str | None = None
        self.record: CredentialRecord | None = None

        self._epoch = 0
        self._pending_epoch: int | None = None

    # ── State helpers ────────────────────────────────────────────────────

    def _transition(self, state: AcquisitionState) -> None:
        logger.debug(
            "Session %d: %s -> %s", self.session_id, self.state.value, state.value
        )
        self.state = state
        self.history.append(state)

    def _fail(self, error: PillboxError) -> NoReturn:
        self.error = error
        self._transition(AcquisitionState.FAILED)
        logger.info("Session %d failed: %s", self.session_id, error)
        raise error

    def _require(self, action: str, *states: AcquisitionState) -> None:
        if self.state not in states:
            raise InvalidStateError(self.state.value, action)

    @property
    def pending(self) -> bool:
        return self._pending_epoch == self._epoch

    # ── Challenge ────────────────────────────────────────────────────────

    async def fetch_challenge(self) -> L402Challenge | None:
        """Request the resource without credentials and parse the 402 challenge.

        Returns:
            The parsed challenge, or None if the session was cancelled
            while the request was in flight.

        Raises:
            OperationPendingError: A fetch is already in flight.
            InvalidStateError: The session is not IDLE.
            NetworkError: The request failed.
            UnexpectedStatusError: The response status was not 402.
            MalformedChallengeError: WWW-Authenticate missing or unusable.
        """
        if self.pending:
            raise OperationPendingError()
        self._require("fetch a challenge", AcquisitionState.IDLE)

        epoch = self._epoch
        self._pending_epoch = epoch
        self._transition(AcquisitionState.AWAITING_CHALLENGE)

        response: httpx.Response | None = None
        network_error: NetworkError | None = None
        try:
            async with httpx.AsyncClient(**self._httpx_kwargs) as client:
                response = await client.request(self.method.value, self.location)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            network_error = NetworkError(self.location, str(e) or type(e).__name__)
        finally:
            if self._pending_epoch == epoch:
                self._pending_epoch = None

        if epoch != self._epoch:
            logger.debug("Session %d: discarding result of cancelled fetch", self.session_id)
            return None

        if network_error is not None:
            self._fail(network_error)
        assert response is not None

        if response.status_code != 402:
            self._fail(UnexpectedStatusError(self.location, response.status_code))

        header = response.headers.get("www-authenticate")
        if not header:
            self._fail(MalformedChallengeError(header, "missing WWW-Authenticate header"))
        try:
            challenge = parse_challenge(header)
        except MalformedChallengeError as e:
            self._fail(e)

        self.challenge = challenge
        self._transition(AcquisitionState.CHALLENGE_RECEIVED)
        logger.info(
            "Session %d: received L402 challenge from %s", self.session_id, self.location
        )
        self._transition(AcquisitionState.AWAITING_PREIMAGE)
        return challenge

    # ── Verification ─────────────────────────────────────────────────────

    def submit_preimage(self, preimage: str) -> None:
        """Check ``preimage`` against the challenge invoice.

        On failure the session moves to REJECTED and the user may submit
        another preimage.

        Raises:
            InvalidStateError: No challenge is awaiting a preimage.
            InvalidPreimageError: Malformed or non-matching preimage, or an
                undecodable invoice.
        """
        self._require(
            "submit a preimage",
            AcquisitionState.AWAITING_PREIMAGE,
            AcquisitionState.REJECTED,
        )
        assert self.challenge is not None
        preimage = (preimage or "").strip().lower()

        try:
            ensure_valid_preimage(self.challenge.invoice, preimage, self._decoder)
        except InvalidPreimageError as e:
            self.error = e
            self._transition(AcquisitionState.REJECTED)
            raise
        except DecodeError as e:
            error = InvalidPreimageError(f"invoice could not be decoded: {e.reason}")
            self.error = error
            self._transition(AcquisitionState.REJECTED)
            raise error from e

        self.preimage = preimage
        self.error = None
        self._transition(AcquisitionState.VERIFIED)

    @property
    def authorization_header(self) -> str:
        """The verified credential as an Authorization header value."""
        if self.challenge is None or self.preimage is None:
            raise InvalidStateError(self.state.value, "format a credential")
        return format_authorization(self.challenge.macaroon, self.preimage)

    @property
    def credential(self) -> CredentialInput:
        if self.challenge is None or self.preimage is None:
            raise InvalidStateError(self.state.value, "build a credential")
        return CredentialInput(
            macaroon=self.challenge.macaroon,
            preimage=self.preimage,
            invoice=self.challenge.invoice,
            label=self.label,
            location=self.location,
            method=self.method,
            type=self.type,
        )

    # ── Persistence ──────────────────────────────────────────────────────

    def save(self, store: CredentialStore) -> CredentialRecord:
        """Hand the verified credential to ``store``.

        Raises:
            InvalidStateError: The preimage has not been verified.
            PersistenceError: The store rejected the record; the session
                stays VERIFIED so the save can be retried.
        """
        self._require("save", AcquisitionState.VERIFIED)
        try:
            record = save_credential(store, self.credential, self._decoder)
        except PersistenceError as e:
            self.error = e
            raise
        self.record = record
        self._transition(AcquisitionState.SAVED)
        return record

    def save_manual(
        self,
        store: CredentialStore,
        macaroon: str,
        preimage: str,
        invoice: str = "",
    ) -> CredentialRecord:
        """Save a credential typed in by hand, without fetching a challenge.

        Without an invoice nothing is verified. With one, the preimage must
        still match it.

        Raises:
            InvalidStateError: The session is not IDLE.
            InvalidCredentialError: Empty macaroon or malformed preimage.
            InvalidPreimageError: Preimage does not match ``invoice``.
            DecodeError: ``invoice`` is not valid BOLT11.
            PersistenceError: The store rejected the record.
        """
        self._require("save a manual credential", AcquisitionState.IDLE)
        credential = CredentialInput(
            macaroon=macaroon,
            preimage=preimage,
            invoice=invoice,
            label=self.label,
            location=self.location,
            method=self.method,
            type=self.type,
        )
        try:
            record = save_credential(store, credential, self._decoder)
        except PillboxError as e:
            self.error = e
            raise

        self.challenge = L402Challenge(macaroon=credential.macaroon, invoice=credential.invoice)
        self.preimage = credential.preimage
        self.record = record
        if credential.invoice:
            self._transition(AcquisitionState.VERIFIED)
        self._transition(AcquisitionState.SAVED)
        return record

    # ── Lifecycle ────────────────────────────────────────────────────────

    def reset(self, location: str | None = None) -> None:
        """Return to IDLE, optionally with a corrected URL.

        Any fetch still in flight is superseded and its result ignored.
        """
        self._epoch += 1
        if location is not None:
            self.location = location.strip()
        self.error = None
        self.challenge = None
        self.preimage = None
        self.record = None
        self._transition(AcquisitionState.IDLE)

    def cancel(self) -> None:
        """Abandon the session; an in-flight fetch result will be discarded."""
        self.reset()
