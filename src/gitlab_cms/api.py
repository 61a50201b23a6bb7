"""Client for the repository endpoints of the GitLab REST API used by the CMS."""

import logging
import time
import typing as tp
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from urllib.parse import quote

import requests

from gitlab_cms.cache import FileCache
from gitlab_cms.codec import from_base64, to_base64
from gitlab_cms.config import GitLabAuth, create_gitlab_client
from gitlab_cms.errors import APIError
from gitlab_cms.models import (
    CommitAction,
    FileDescriptor,
    GitLabTreeItem,
    PersistOptions,
    RepositoryRef,
)

logger = logging.getLogger(__name__)

# Developer role, the lowest access level allowed to push
WRITE_ACCESS = 30

# GitLab answers with this message when the user is not a member. A wrong
# endpoint is also a 404, but its body carries an "error" key instead.
MEMBER_NOT_FOUND_MESSAGE = "404 Not found"

NEXT_PAGE_HEADER = "X-Next-Page"

F = tp.TypeVar("F", bound=FileDescriptor)


def _decode_body(response: requests.Response, strict: bool = True) -> tp.Any:
    """Decode a response body according to its Content-Type.

    A body announced as JSON that does not parse raises APIError, or is
    returned as text when ``strict`` is False.
    """
    if not response.content:
        return None
    if "json" in response.headers.get("Content-Type", ""):
        try:
            return response.json()
        except ValueError as e:
            if strict:
                raise APIError(
                    f"Invalid JSON in response: {e}",
                    response.status_code,
                    response.content,
                    body=response.text,
                ) from e
    return response.text


def _accumulate(previous: tp.Any, page: tp.Any) -> tp.Any:
    """Merge one decoded page into the data of the previous pages.

    JSON arrays are concatenated in page order, JSON objects are merged with
    the later page winning, text is concatenated.
    """
    if page is None:
        return previous
    if previous is None:
        return page
    if isinstance(previous, list) and isinstance(page, list):
        return previous + page
    if isinstance(previous, dict) and isinstance(page, dict):
        return {**previous, **page}
    if isinstance(previous, str) and isinstance(page, str):
        return previous + page
    raise APIError(
        f"Cannot merge a page of type {type(page).__name__} "
        f"into {type(previous).__name__}"
    )


def _error_message(body: tp.Any) -> str:
    if isinstance(body, dict):
        for key in ("message", "error"):
            if key in body:
                return str(body[key])
    return body if isinstance(body, str) else ""


class API:
    """Authenticated session against one GitLab project.

    Parameters
    ----------
    ref : RepositoryRef
        Project, branch and instance to work with
    auth : GitLabAuth, optional
        Session credentials; environment variables are used when omitted
    cache : FileCache, optional
        Store of decoded file content, keyed by blob id
    timeout : float, optional
        Request timeout in seconds
    """

    def __init__(
        self,
        ref: RepositoryRef,
        auth: GitLabAuth | None = None,
        cache: FileCache | None = None,
        timeout: float | None = None,
    ):
        self.ref = ref
        self.auth = auth or GitLabAuth()
        self.cache = cache or FileCache()

        self.gl = create_gitlab_client(ref.gitlab_root, self.auth, timeout=timeout)
        self.session = self.gl.session

    @property
    def branch(self) -> str:
        return self.ref.branch

    def request_headers(
        self, headers: tp.Mapping[str, str] | None = None
    ) -> dict[str, str]:
        """Client headers and JSON content type, then caller headers, then auth."""
        result = {
            **self.gl.headers,
            "Content-Type": "application/json",
            **(headers or {}),
        }
        if self.auth.oauth_token:
            result["Authorization"] = f"Bearer {self.auth.oauth_token}"
        return result

    def _send(
        self,
        method: str,
        path: str,
        params: tp.Mapping[str, tp.Any],
        headers: tp.Mapping[str, str] | None,
        body: tp.Any,
    ) -> requests.Response:
        url = self.gl.api_url + path
        query = {"ts": int(time.time() * 1000), **params}

        logger.debug("%s %s (page %s)", method, path, params.get("page", 1))
        try:
            response = self.session.request(
                method,
                url,
                params=query,
                headers=self.request_headers(headers),
                json=body,
                timeout=self.gl.timeout,
                verify=self.gl.ssl_verify,
            )
        except requests.RequestException as e:
            raise APIError(str(e)) from e

        if not response.ok:
            error_body = _decode_body(response, strict=False)
            raise APIError(
                _error_message(error_body),
                response.status_code,
                response.content,
                body=error_body,
            )
        return response

    def request(
        self,
        path: str,
        method: str = "GET",
        *,
        params: tp.Mapping[str, tp.Any] | None = None,
        headers: tp.Mapping[str, str] | None = None,
        body: tp.Any = None,
        accumulated: tp.Any = None,
    ) -> tp.Any:
        """Issue a request and follow pagination until the last page.

        Parameters
        ----------
        path : str
            Path relative to the API root, e.g. ``/user``
        method : str
            HTTP verb
        params : Mapping, optional
            Query parameters
        headers : Mapping, optional
            Extra request headers
        body : Any, optional
            JSON request body
        accumulated : Any, optional
            Data of previously fetched pages to merge the response into

        Returns
        -------
        Any
            Decoded JSON (list or dict) or text of all pages

        Raises
        ------
        APIError
            On transport failures and non-2xx responses
        """
        params = dict(params or {})
        data = accumulated
        while True:
            response = self._send(method, path, params, headers, body)
            data = _accumulate(data, _decode_body(response))

            next_page = response.headers.get(NEXT_PAGE_HEADER, "")
            if not next_page:
                return data
            params = {**params, "page": next_page}

    def user(self) -> dict[str, tp.Any]:
        return self.request("/user")

    def is_group_project(self) -> str | None:
        """Return the group API path if the project belongs to a group."""
        project = self.request(self.ref.project_url)
        namespace = project["namespace"]
        if namespace["kind"] == "group":
            return f"/groups/{quote(namespace['full_path'], safe='')}"
        return None

    def has_write_access(self, user: tp.Mapping[str, tp.Any]) -> bool:
        """Check whether ``user`` may push to the repository.

        Membership is looked up on the group when the project belongs to one,
        otherwise on the project itself.
        """
        group = self.is_group_project()
        scope = group if group is not None else self.ref.project_url
        try:
            member = self.request(f"{scope}/members/{user['id']}")
        except APIError as e:
            # Best effort: relies on the exact wording of GitLab's message
            if e.status == 404 and e.error_message == MEMBER_NOT_FOUND_MESSAGE:
                logger.warning("User %s is not a member of %s", user["id"], scope)
                return False
            raise
        return member["access_level"] >= WRITE_ACCESS

    def list_files(self, path: str) -> list[GitLabTreeItem]:
        """List the files (blobs) directly inside ``path``.

        Raises
        ------
        NotADirectoryError
            If ``path`` does not name a directory
        """
        files = self.request(
            f"{self.ref.project_url}/repository/tree",
            params={
                "path": path,
                "ref": self.branch,
                "per_page": self.ref.per_page,
            },
        )
        if not isinstance(files, list):
            if isinstance(files, dict):
                kind = files.get("type")
            else:
                kind = type(files).__name__
            raise NotADirectoryError(
                f"Cannot list files, path {path} is not a directory but a {kind}"
            )
        return [GitLabTreeItem(**item) for item in files if item["type"] == "blob"]

    def read_file(
        self, path: str, id: str | None = None, branch: str | None = None
    ) -> str:
        """Return the decoded content of a file, from the cache when possible."""
        key = FileCache.key_for(id) if id else None
        if key:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        response = self.request(
            self.ref.file_url(path),
            params={"ref": branch or self.branch},
        )
        result = from_base64(response["content"])
        if key:
            self.cache.set(key, result)
        return result

    def file_exists(self, path: str, branch: str | None = None) -> bool:
        # A 404 may also mean a wrong endpoint, HEAD gives no body to tell
        try:
            self.request(
                self.ref.file_url(path),
                "HEAD",
                params={"ref": branch or self.branch},
            )
        except APIError as e:
            if e.status == 404:
                return False
            raise
        return True

    def delete_file(self, path: str, message: str, branch: str | None = None) -> tp.Any:
        branch = branch or self.branch
        logger.info("Deleting %s on %s", path, branch)
        return self.request(
            self.ref.file_url(path),
            "DELETE",
            params={"branch": branch, "commit_message": message},
        )

    def upload_and_commit(
        self,
        item: F,
        commit_message: str,
        new_file: bool = True,
        branch: str | None = None,
    ) -> F:
        """Commit a single file and return a copy of it marked as uploaded.

        The content goes in the body of a commit rather than in the
        files endpoint, which would need it in the query string.
        """
        action = CommitAction(
            action="create" if new_file else "update",
            file_path=item.path,
            content=to_base64(item.raw),
        )
        branch = branch or self.branch
        logger.info("Committing %s (%s) on %s", action.file_path, action.action, branch)
        self.request(
            f"{self.ref.project_url}/repository/commits",
            "POST",
            body={
                "branch": branch,
                "commit_message": commit_message,
                "actions": [action.model_dump(exclude_none=True)],
            },
        )
        return item.model_copy(update={"uploaded": True})

    def _upload_media(self, file: F, options: PersistOptions) -> F:
        exists = self.file_exists(file.path, options.branch)
        name = getattr(file, "value", file.path)
        return self.upload_and_commit(
            file,
            f"{options.commit_message}: create {name}.",
            new_file=not exists,
            branch=options.branch,
        )

    def persist_files(
        self,
        entry: FileDescriptor | None,
        media_files: tp.Sequence[FileDescriptor],
        options: PersistOptions,
    ) -> FileDescriptor | None:
        """Upload new media files, then commit the entry.

        Media uploads run concurrently. The entry is only committed once all
        of them succeeded, so it never references media missing from the
        repository. The first failure is raised.

        Returns
        -------
        FileDescriptor or None
            The entry marked as uploaded, or None if no entry was given
        """
        new_media = [file for file in media_files if not file.uploaded]

        if new_media:
            executor = ThreadPoolExecutor(max_workers=len(new_media))
            try:
                futures = [
                    executor.submit(self._upload_media, file, options)
                    for file in new_media
                ]
                # Returns once all succeeded or as soon as one failed
                done, _ = wait(futures, return_when=FIRST_EXCEPTION)
                for future in futures:
                    if future in done:
                        future.result()
            finally:
                executor.shutdown(wait=False)

        if entry is None:
            return None
        return self.upload_and_commit(
            entry,
            options.commit_message,
            new_file=options.new_entry,
            branch=options.branch,
        )
