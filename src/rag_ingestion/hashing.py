"""Content fingerprinting used as the dedup key for uploaded files."""

import hashlib


def compute_content_hash(content: bytes | str) -> str:
    """Compute the SHA-256 hex digest of raw bytes or text.

    Text is encoded as UTF-8 before hashing so that a transcript and the same
    text uploaded as a UTF-8 file share a fingerprint.

    Args:
        content: Raw file bytes or transcript text.

    Returns:
        64-character lowercase hex digest.

    Examples:
        >>> compute_content_hash(b"hello")
        '2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824'
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()
