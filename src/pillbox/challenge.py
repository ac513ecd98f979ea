"""Parse L402 challenges from HTTP 402 responses.

The WWW-Authenticate value is tokenized into auth-schemes and their
``key="value"`` / ``key=token`` parameters, so attribute order, extra
whitespace and escaped quotes inside values do not matter.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pillbox.exceptions import MalformedChallengeError

# Accepted scheme tokens, most preferred first. LSAT is the legacy name.
_SCHEMES = ("l402", "lsat")

_SEPARATORS = " \t\r\n,"
_TOKEN_STOP = " \t\r\n,=\""


@dataclass(frozen=True)
class L402Challenge:
    """Parsed L402 challenge from a WWW-Authenticate header."""

    macaroon: str
    invoice: str


@dataclass
class _AuthChallenge:
    scheme: str
    params: dict[str, str] = field(default_factory=dict)


class _Scanner:
    """Cursor over a header value."""

    def __init__(self, header: str):
        self.text = header
        self.pos = 0

    def done(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self) -> str:
        return "" if self.done() else self.text[self.pos]

    def skip(self, chars: str) -> None:
        while not self.done() and self.text[self.pos] in chars:
            self.pos += 1

    def read_token(self) -> str:
        start = self.pos
        while not self.done() and self.text[self.pos] not in _TOKEN_STOP:
            self.pos += 1
        return self.text[start:self.pos]

    def read_value(self) -> str:
        self.skip(" \t")
        if self.peek() == '"':
            return self._read_quoted()
        # Unquoted values may contain '=' (base64 padding)
        start = self.pos
        while not self.done() and self.text[self.pos] not in _SEPARATORS:
            self.pos += 1
        return self.text[start:self.pos]

    def _read_quoted(self) -> str:
        self.pos += 1  # opening quote
        chars: list[str] = []
        while True:
            if self.done():
                raise MalformedChallengeError(self.text, "unterminated quoted value")
            char = self.text[self.pos]
            if char == "\\" and self.pos + 1 < len(self.text):
                chars.append(self.text[self.pos + 1])
                self.pos += 2
                continue
            self.pos += 1
            if char == '"':
                break
            chars.append(char)
        if not self.done() and self.peek() not in _SEPARATORS:
            raise MalformedChallengeError(
                self.text,
                f"unexpected character {self.peek()!r} after quoted value",
            )
        return "".join(chars)


def _tokenize(header: str) -> list[_AuthChallenge]:
    """Split a header value into auth-schemes with their parameters.

    A bare token not followed by ``=`` starts a new challenge, which also
    covers several WWW-Authenticate headers joined with commas.
    """
    scanner = _Scanner(header)
    challenges: list[_AuthChallenge] = []
    current: _AuthChallenge | None = None

    while True:
        scanner.skip(_SEPARATORS)
        if scanner.done():
            return challenges

        word = scanner.read_token()
        if not word:
            raise MalformedChallengeError(
                header,
                f"unexpected character {scanner.peek()!r} at position {scanner.pos}",
            )

        scanner.skip(" \t")
        if scanner.peek() != "=":
            current = _AuthChallenge(scheme=word)
            challenges.append(current)
            continue

        if current is None:
            raise MalformedChallengeError(header, f"parameter {word!r} before auth scheme")
        scanner.pos += 1  # '='
        key = word.lower()
        if key in current.params:
            raise MalformedChallengeError(header, f"duplicate parameter {key!r}")
        current.params[key] = scanner.read_value()


def parse_challenge(header: str) -> L402Challenge:
    """Parse a WWW-Authenticate header containing an L402 challenge.

    Supports formats:
        L402 macaroon="<mac>", invoice="<bolt11>"
        L402 invoice="<bolt11>", macaroon="<mac>"
        L402 macaroon=<mac>, invoice=<bolt11>
        LSAT macaroon="<mac>", invoice="<bolt11>"  (legacy)

    Args:
        header: The WWW-Authenticate header value.

    Returns:
        Parsed L402Challenge with macaroon and invoice.

    Raises:
        MalformedChallengeError: If the header cannot be parsed or lacks
            either attribute.
    """
    if not header or not header.strip():
        raise MalformedChallengeError(header, "empty header")

    challenges = _tokenize(header)
    candidates = [c for c in challenges if c.scheme.lower() in _SCHEMES]
    if not candidates:
        raise MalformedChallengeError(header, "no L402/LSAT challenge found")
    candidates.sort(key=lambda c: _SCHEMES.index(c.scheme.lower()))
    params = candidates[0].params

    macaroon = params.get("macaroon", "").strip()
    invoice = params.get("invoice", "").strip()

    if not macaroon:
        raise MalformedChallengeError(header, "missing macaroon")
    if not invoice:
        raise MalformedChallengeError(header, "missing invoice")

    return L402Challenge(macaroon=macaroon, invoice=invoice)
