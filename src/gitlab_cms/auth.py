"""OAuth authorization flows yielding a GitLab access token."""

import abc
import logging
import secrets
import typing as tp
from urllib.parse import parse_qs, urlencode, urlsplit

logger = logging.getLogger(__name__)

TokenCallback = tp.Callable[[dict[str, str]], None]


class AuthorizationFlow(abc.ABC):
    """A way for the user to grant the CMS access to GitLab.

    The host sends the user to the URL returned by :meth:`begin` and gets
    ``{"token": ...}`` through the callbacks registered with
    :meth:`on_token_received` once the grant completed.
    """

    def __init__(self):
        self._callbacks: list[TokenCallback] = []

    @abc.abstractmethod
    def begin(self) -> str:
        """Start the flow and return the URL the user has to visit."""

    def on_token_received(self, callback: TokenCallback) -> None:
        self._callbacks.append(callback)

    def _emit(self, token: str) -> None:
        for callback in self._callbacks:
            callback({"token": token})


class ImplicitGrantFlow(AuthorizationFlow):
    """OAuth 2 implicit grant against a GitLab instance.

    GitLab redirects back to ``redirect_uri`` with the token in the URL
    fragment, e.g. ``https://cms.example.com/#access_token=...&state=...``.
    The host hands that URL to :meth:`complete`.

    Parameters
    ----------
    gitlab_root : str
        GitLab instance URL
    client_id : str
        Application ID of the OAuth application registered on GitLab
    redirect_uri : str
        Callback URL registered with the application
    scope : str
        Requested scopes, space separated
    """

    def __init__(
        self,
        gitlab_root: str,
        client_id: str,
        redirect_uri: str,
        scope: str = "api",
    ):
        super().__init__()
        self.gitlab_root = gitlab_root.rstrip("/")
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.scope = scope
        self.state: str | None = None

    def begin(self) -> str:
        self.state = secrets.token_urlsafe(16)
        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "response_type": "token",
                "state": self.state,
                "scope": self.scope,
            }
        )
        return f"{self.gitlab_root}/oauth/authorize?{query}"

    def complete(self, redirect_url: str) -> str | None:
        """Extract the access token from the URL GitLab redirected to.

        Returns None, without notifying anyone, when the URL carries no
        token yet.

        Raises
        ------
        ValueError
            If the returned state does not match the one sent by begin()
        """
        parts = urlsplit(redirect_url)
        values = parse_qs(parts.fragment) or parse_qs(parts.query)
        token = values.get("access_token", [None])[0]
        if token is None:
            return None

        state = values.get("state", [None])[0]
        if self.state is not None and state != self.state:
            raise ValueError(
                "OAuth state mismatch, the authorization response was not requested"
            )

        logger.info("Received access token from %s", self.gitlab_root)
        self.state = None
        self._emit(token)
        return token
