"""GitLab backend exposed to the CMS host."""

import logging
import posixpath
import typing as tp
from concurrent.futures import ThreadPoolExecutor, as_completed

from gitlab_cms.api import API
from gitlab_cms.auth import ImplicitGrantFlow
from gitlab_cms.cache import FileCache
from gitlab_cms.config import BackendConfig, GitLabAuth
from gitlab_cms.models import (
    Collection,
    FetchedEntry,
    FileDescriptor,
    FileRef,
    MediaAsset,
    MediaFile,
    PersistOptions,
    RepositoryRef,
)

logger = logging.getLogger(__name__)

MAX_CONCURRENT_DOWNLOADS = 10

ACCESS_DENIED_MESSAGE = "Your GitLab user account does not have access to this repo."


def _file_extension(path: str) -> str:
    return posixpath.splitext(path)[1].lstrip(".")


class GitLabBackend:
    """Content backend storing CMS entries and media in a GitLab repository.

    Parameters
    ----------
    config : BackendConfig, optional
        Backend configuration, read from the environment when omitted
    proxied : bool
        If True, do not require ``repo`` to be configured
    cache : FileCache, optional
        Store of decoded file content shared by all sessions

    Notes
    -----
    Repository operations need a session, opened by :meth:`authenticate`
    and closed by :meth:`logout`.
    """

    def __init__(
        self,
        config: BackendConfig | None = None,
        proxied: bool = False,
        cache: FileCache | None = None,
    ):
        self.config = config or BackendConfig()

        if not proxied and not self.config.repo:
            raise ValueError(
                'The GitLab backend needs a "repo" in the backend configuration.'
            )

        self.ref = RepositoryRef(
            gitlab_root=self.config.gitlab_root,
            repo=self.config.repo,
            branch=self.config.branch,
            per_page=self.config.per_page,
        )
        self.cache = cache or FileCache(self.config.cache_url)
        self.auth: GitLabAuth | None = None
        self._api: API | None = None

    @property
    def api(self) -> API:
        if self._api is None:
            raise RuntimeError("Not authenticated, call authenticate() first")
        return self._api

    def auth_component(self) -> ImplicitGrantFlow:
        """Return the authorization flow the host uses to obtain a token."""
        if not self.config.app_id or not self.config.redirect_uri:
            raise ValueError(
                "OAuth login needs app_id and redirect_uri "
                "in the backend configuration."
            )
        return ImplicitGrantFlow(
            self.config.gitlab_root,
            client_id=self.config.app_id,
            redirect_uri=self.config.redirect_uri,
            scope=self.config.auth_scope,
        )

    def authenticate(self, state: tp.Mapping[str, tp.Any]) -> dict[str, tp.Any]:
        """Open a session with the token in ``state`` and return the user.

        Raises
        ------
        PermissionError
            If the user cannot push to the repository
        """
        token = state.get("token")
        auth = GitLabAuth(oauth_token=token) if token else GitLabAuth()
        api = API(self.ref, auth, cache=self.cache, timeout=self.config.timeout)

        user = api.user()
        if not api.has_write_access(user):
            raise PermissionError(ACCESS_DENIED_MESSAGE)

        self.auth = auth
        self._api = api
        logger.info("Authenticated %s on %s", user.get("username"), self.ref.repo)
        return {**user, "token": auth.oauth_token}

    def restore_user(self, user: tp.Mapping[str, tp.Any]) -> dict[str, tp.Any]:
        return self.authenticate(user)

    def logout(self) -> None:
        self.auth = None
        self._api = None

    def get_token(self) -> str | None:
        return self.auth.oauth_token if self.auth else None

    def fetch_files(self, files: tp.Sequence[FileRef]) -> list[FetchedEntry]:
        """Read files with at most ``MAX_CONCURRENT_DOWNLOADS`` in flight.

        Results come in completion order. The first failure is raised; reads
        already started or queued are not cancelled.
        """
        api = self.api

        def fetch_one(file: FileRef) -> FetchedEntry:
            return FetchedEntry(file=file, data=api.read_file(file.path, file.id))

        executor = ThreadPoolExecutor(max_workers=MAX_CONCURRENT_DOWNLOADS)
        try:
            futures = [executor.submit(fetch_one, file) for file in files]
            return [future.result() for future in as_completed(futures)]
        finally:
            executor.shutdown(wait=False)

    def entries_by_folder(
        self, collection: Collection, extension: str
    ) -> list[FetchedEntry]:
        extension = extension.lstrip(".")
        files = [
            FileRef(path=item.path, id=item.id)
            for item in self.api.list_files(collection.folder or "")
            if _file_extension(item.name) == extension
        ]
        return self.fetch_files(files)

    def entries_by_files(self, collection: Collection) -> list[FetchedEntry]:
        files = [FileRef(path=file.file, label=file.label) for file in collection.files]
        return self.fetch_files(files)

    def get_entry(self, collection: Collection, slug: str, path: str) -> FetchedEntry:
        return FetchedEntry(file=FileRef(path=path), data=self.api.read_file(path))

    def get_media(self) -> list[MediaAsset]:
        return [
            MediaAsset(
                id=item.id,
                name=item.name,
                url=self.ref.raw_url(item.path),
                path=item.path,
            )
            for item in self.api.list_files(self.config.media_folder)
        ]

    def persist_entry(
        self,
        entry: FileDescriptor,
        media_files: tp.Sequence[FileDescriptor] = (),
        options: PersistOptions | tp.Mapping[str, tp.Any] | None = None,
    ) -> FileDescriptor | None:
        options = PersistOptions.model_validate(options or {})
        return self.api.persist_files(entry, media_files, options)

    def persist_media(
        self,
        media_file: MediaFile,
        options: PersistOptions | tp.Mapping[str, tp.Any] | None = None,
    ) -> MediaAsset:
        """Upload a single media file and describe it for the media library.

        ``id`` is left empty: the commit response does not carry blob ids.
        """
        options = PersistOptions.model_validate(options or {})
        self.api.persist_files(None, [media_file], options)

        return MediaAsset(
            name=media_file.value,
            size=media_file.size,
            url=self.ref.raw_url(media_file.path),
            path=media_file.path.lstrip("/"),
        )

    def delete_file(
        self,
        path: str,
        message: str,
        options: tp.Mapping[str, tp.Any] | None = None,
    ) -> tp.Any:
        branch = (options or {}).get("branch")
        return self.api.delete_file(path, message, branch=branch)
