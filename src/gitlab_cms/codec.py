"""Base64 codec for file content exchanged with the GitLab API."""

import base64


def to_base64(content: str | bytes) -> str:
    """Encode file content for the wire. Text is UTF-8 encoded first."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return base64.b64encode(content).decode("ascii")


def from_base64(data: str, as_text: bool = True) -> str | bytes:
    """Decode base64 content returned by GitLab.

    Parameters
    ----------
    data : str
        Base64 text; GitLab may wrap it in newlines
    as_text : bool
        If True, decode the bytes as UTF-8 text. Invalid sequences, as in
        Latin-1 or binary files, become U+FFFD instead of failing
    """
    raw = base64.b64decode("".join(data.split()))
    return raw.decode("utf-8", errors="replace") if as_text else raw
