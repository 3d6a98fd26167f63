"""
HTTP Digest authentication (RFC 2617 / RFC 7616) codec.

Only the pieces the firewall handshake needs:

- parse a `WWW-Authenticate: Digest ...` challenge into a dict
- pick the challenge whose algorithm we implement when the device offers several
- build the `Authorization` header for a given method/URI/nonce-count

The codec is stateless: callers pass the nonce-count for every request
(the REST client issues exactly two requests per challenge, nc=1 then nc=2).
"""

import hashlib
import re
import secrets
from typing import Dict, Iterable, Optional

from wan_monitor.errors import ChallengeError

DigestChallenge = Dict[str, str]

DEFAULT_ALGORITHM = "MD5"

# challenge algorithm name -> hashlib constructor name
_HASHES = {
    "MD5": "md5",
    "SHA-256": "sha256",
}

_DIRECTIVE_RE = re.compile(r'(\w+)=(?:"([^"]*)"|([^,\s]+))')


def parse_challenge(header_value: str) -> DigestChallenge:
    """
    Parse the directives of a Digest challenge.

    Both `key=value` and `key="quoted, value"` forms are accepted; commas inside
    quotes are kept. Unknown directives are returned verbatim. Malformed input
    gives an empty or partial dict; required keys are checked when building
    the response.
    """
    params: DigestChallenge = {}
    for match in _DIRECTIVE_RE.finditer(header_value or ""):
        key, quoted, bare = match.groups()
        params[key] = quoted if quoted is not None else bare
    return params


def is_digest(header_value: str) -> bool:
    return (header_value or "").strip().lower().startswith("digest")


def challenge_algorithm(challenge: DigestChallenge) -> str:
    return challenge.get("algorithm", DEFAULT_ALGORITHM).upper()


def select_challenge(
    header_values: Iterable[str],
    algorithm: str = DEFAULT_ALGORITHM,
) -> DigestChallenge:
    """
    Return the parsed Digest challenge that uses `algorithm`.

    SonicOS answers with one WWW-Authenticate header per hash scheme
    (SHA-256 and MD5). Non-Digest schemes are ignored; a Digest challenge
    without an `algorithm` directive counts as MD5.
    """
    wanted = algorithm.upper()
    seen = 0
    for value in header_values:
        if not is_digest(value):
            continue
        seen += 1
        challenge = parse_challenge(value)
        if challenge_algorithm(challenge) == wanted:
            return challenge

    if not seen:
        raise ChallengeError("Expected digest authentication challenge")
    raise ChallengeError(f"No digest challenge offers algorithm {wanted}")


def _hash(algorithm: str, data: str) -> str:
    return hashlib.new(_HASHES[algorithm], data.encode("utf-8")).hexdigest()


def _select_qop(qop: Optional[str]) -> Optional[str]:
    """Pick "auth" from a qop list such as "auth,auth-int"."""
    if qop is None:
        return None
    options = [o.strip() for o in qop.split(",") if o.strip()]
    if not options:
        return None
    if "auth" in options:
        return "auth"
    # auth-int needs an entity-body hash in HA2, which is not implemented.
    raise ChallengeError(f"Unsupported digest qop: {qop}")


def build_authorization_header(
    method: str,
    uri: str,
    username: str,
    password: str,
    challenge: DigestChallenge,
    nonce_count: int,
    cnonce: Optional[str] = None,
) -> str:
    """
    Compute the Digest `Authorization` header value.

    HA1 = H(username:realm:password)
    HA2 = H(method:uri)
    response = H(HA1:nonce:nc:cnonce:qop:HA2)

    A fresh 16 byte client nonce is generated unless `cnonce` is given.
    Challenges without qop get the RFC 2069 form H(HA1:nonce:HA2).
    """
    realm = challenge.get("realm")
    nonce = challenge.get("nonce")
    if realm is None or nonce is None:
        raise ChallengeError("Digest challenge is missing realm or nonce")

    algorithm = challenge_algorithm(challenge)
    if algorithm not in _HASHES:
        raise ChallengeError(f"Unsupported digest algorithm: {algorithm}")

    qop = _select_qop(challenge.get("qop"))
    nc = f"{nonce_count:08x}"
    if cnonce is None:
        cnonce = secrets.token_hex(16)

    ha1 = _hash(algorithm, f"{username}:{realm}:{password}")
    ha2 = _hash(algorithm, f"{method}:{uri}")

    if qop:
        response = _hash(algorithm, f"{ha1}:{nonce}:{nc}:{cnonce}:{qop}:{ha2}")
    else:
        response = _hash(algorithm, f"{ha1}:{nonce}:{ha2}")

    parts = [
        f'username="{username}"',
        f'realm="{realm}"',
        f'nonce="{nonce}"',
        f'uri="{uri}"',
        f"algorithm={algorithm}",
    ]
    if qop:
        parts += [f"qop={qop}", f"nc={nc}", f'cnonce="{cnonce}"']
    parts.append(f'response="{response}"')
    if challenge.get("opaque"):
        parts.append(f'opaque="{challenge["opaque"]}"')

    return "Digest " + ", ".join(parts)
