"""Settings and client construction for the GitLab CMS backend."""

import typing as tp

import gitlab
import pydantic
import pydantic_settings

API_VERSION = "4"


class GitLabAuthKwargs(tp.TypedDict, total=False):
    """Type definition for GitLab authentication kwargs."""

    oauth_token: str


class GitLabAuth(pydantic_settings.BaseSettings):
    """Credentials of one CMS session, with environment variable support.

    The token obtained from the OAuth implicit grant is an OAuth token, so it
    is sent as ``Authorization: Bearer <token>``. When no token is given
    explicitly it is read from ``GITLAB_OAUTH_TOKEN`` or a ``.env`` file.

    Instances are immutable: a new session gets new credentials.
    """

    oauth_token: str | None = None

    model_config = pydantic_settings.SettingsConfigDict(
        env_prefix="GITLAB_",
        extra="ignore",
        frozen=True,
    )

    def get_auth_kwargs(self) -> GitLabAuthKwargs:
        """Return auth kwargs dict for the GitLab client.

        Returns
        -------
        GitLabAuthKwargs
            Authentication kwargs ready for gitlab.Gitlab constructor
        """
        if self.oauth_token:
            return {"oauth_token": self.oauth_token}
        return {}


class BackendConfig(pydantic_settings.BaseSettings):
    """Configuration of the GitLab backend.

    Every field can be set through a ``GITLAB_CMS_`` prefixed environment
    variable, e.g. ``GITLAB_CMS_REPO=group/site``.
    """

    repo: str = ""
    branch: str = "master"
    gitlab_root: str = "https://gitlab.com"
    per_page: tp.Annotated[int, pydantic.Field(gt=0)] = 50
    media_folder: str = ""

    # OAuth application used by the implicit grant
    app_id: str | None = None
    redirect_uri: str | None = None
    auth_scope: str = "api"

    cache_url: str = "memory://gitlab-cms-cache"
    timeout: float | None = None

    model_config = pydantic_settings.SettingsConfigDict(
        env_prefix="GITLAB_CMS_",
        extra="ignore",
    )

    @pydantic.field_validator("branch")
    @classmethod
    def _strip_branch(cls, value: str) -> str:
        return value.strip()

    @pydantic.field_validator("gitlab_root")
    @classmethod
    def _strip_root(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @property
    def api_root(self) -> str:
        return f"{self.gitlab_root}/api/v{API_VERSION}"


def create_gitlab_client(
    url: str,
    auth: GitLabAuth | None = None,
    timeout: float | None = None,
) -> gitlab.Gitlab:
    """Create and return a GitLab client instance with authentication.

    Parameters
    ----------
    url : str
        GitLab instance URL
    auth : GitLabAuth, optional
        Session credentials; environment variables are used when omitted
    timeout : float, optional
        Request timeout in seconds

    Returns
    -------
    gitlab.Gitlab
        Configured GitLab client instance
    """
    auth = auth or GitLabAuth()

    return gitlab.Gitlab(
        url,
        api_version=API_VERSION,
        timeout=timeout,
        **auth.get_auth_kwargs(),
    )
