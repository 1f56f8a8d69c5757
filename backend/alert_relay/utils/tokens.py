"""Token masking for log lines and summaries."""


def mask_token(token: str, length: int = 16) -> str:
    """Return a prefix of token that never shows more than half of it."""
    if not token:
        return "..."
    return f"{token[:min(length, len(token) // 2)]}..."
