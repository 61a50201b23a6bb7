"""Errors raised by the GitLab CMS backend."""

import typing as tp

from gitlab.exceptions import GitlabHttpError


class APIError(GitlabHttpError):
    """A failed call to the GitLab REST API.

    Raised for non-2xx responses and for transport failures. In the latter
    case there is no response, so ``status`` is None.

    Parameters
    ----------
    error_message : str
        Message reported by GitLab (``message`` or ``error`` key), or the
        transport error text
    response_code : int, optional
        HTTP status of the response
    response_body : bytes, optional
        Raw response body
    body : Any, optional
        Parsed response body (decoded JSON or text)
    """

    backend = "GitLab"

    def __init__(
        self,
        error_message: str = "",
        response_code: int | None = None,
        response_body: bytes | None = None,
        body: tp.Any = None,
    ):
        super().__init__(error_message, response_code, response_body)
        self.body = body

    @property
    def status(self) -> int | None:
        return self.response_code
