"""
Identity Service

Derives the single deduplication identity for a viewer from the request's
auth context, session identifier, or client address. A verified principal
always wins over a session identifier, so switching sessions never lets a
logged-in user count twice.
"""

import ipaddress
import logging
from dataclasses import dataclass

from fastapi import Request

from app.config import settings
from app.models.content_view import IdentityKind
from app.models.user import User

logger = logging.getLogger(__name__)

MAX_SESSION_ID_LENGTH = 255


@dataclass(frozen=True)
class ViewerIdentity:
    """Tagged identity used as the view ledger key."""

    kind: IdentityKind
    key: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.key}"


def normalize_ip(address: str | None) -> str | None:
    """
    Canonicalize a client address.

    IPv6 is compressed and IPv4-mapped IPv6 collapses to plain IPv4, so the
    same client always produces the same key. Unparseable input yields None.
    """
    if not address:
        return None
    candidate = address.strip()
    # Strip a zone index ("fe80::1%eth0") and surrounding brackets
    candidate = candidate.strip("[]").split("%", 1)[0]
    try:
        ip = ipaddress.ip_address(candidate)
    except ValueError:
        logger.debug(f"Ignoring unparseable client address: {address!r}")
        return None
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return ip.compressed


def normalize_session_id(session_id: str | None) -> str | None:
    if session_id is None:
        return None
    session_id = session_id.strip()
    if not session_id:
        return None
    return session_id[:MAX_SESSION_ID_LENGTH]


def resolve_identity(
    user_id: int | str | None = None,
    session_id: str | None = None,
    client_ip: str | None = None,
) -> ViewerIdentity | None:
    """
    Resolve the deduplication identity from already-extracted signals.

    Priority: verified principal, then session identifier, then client
    address. Returns None when no usable signal exists; callers treat that
    as "do not count" rather than an error.
    """
    if user_id is not None and str(user_id).strip():
        return ViewerIdentity(IdentityKind.USER, str(user_id).strip())

    session_key = normalize_session_id(session_id)
    if session_key:
        return ViewerIdentity(IdentityKind.SESSION, session_key)

    ip_key = normalize_ip(client_ip)
    if ip_key:
        return ViewerIdentity(IdentityKind.IP, ip_key)

    return None


def extract_session_id(request: Request) -> str | None:
    """Session identifier from the configured header, falling back to the cookie."""
    return request.headers.get(settings.session_header_name) or request.cookies.get(settings.session_cookie_name)


def extract_client_ip(request: Request) -> str | None:
    """
    Client address of the request.

    The first X-Forwarded-For hop is used only when the service is
    configured to trust its proxy.
    """
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def resolve_request_identity(request: Request, user: User | None = None) -> ViewerIdentity | None:
    """Resolve the viewer identity for an incoming request."""
    return resolve_identity(
        user_id=user.id if user is not None else None,
        session_id=extract_session_id(request),
        client_ip=extract_client_ip(request),
    )
