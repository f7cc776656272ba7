"""Redaction helpers applied before an event leaves the request scope."""
import hashlib

USER_AGENT_MAX_LEN = 512


def hash_ip(ip: str | None, salt: str | None) -> str:
    """
    One-way salted hash of a caller IP.

    Returns sha256("<salt>:<ip>") as 64 lowercase hex characters, or an empty
    string when no IP is known.
    """
    if not ip:
        return ""
    digest = hashlib.sha256()
    digest.update(str(salt or "").encode("utf-8"))
    digest.update(b":")
    digest.update(str(ip).encode("utf-8"))
    return digest.hexdigest()


def capture_user_agent(user_agent: str | None, enabled: bool) -> str | None:
    """Bounded user agent when capture is enabled, otherwise None so the field is omitted."""
    if not enabled:
        return None
    value = str(user_agent or "").strip()
    return value[:USER_AGENT_MAX_LEN]


def client_ip(forwarded_for: str | None, remote_addr: str | None) -> str:
    """
    Resolve the caller IP.

    The right-most X-Forwarded-For entry is the one appended by our own edge
    proxy; entries to its left are client supplied and not trusted.
    """
    if forwarded_for and forwarded_for.strip():
        parts = [p.strip() for p in forwarded_for.split(",") if p.strip()]
        if parts:
            return parts[-1]
    return remote_addr or ""
