"""Data models exchanged between the CMS host and the GitLab backend."""

import typing as tp
from urllib.parse import quote

import pydantic

from gitlab_cms.config import API_VERSION


class RepositoryRef(pydantic.BaseModel):
    """Location of the content repository on a GitLab instance."""

    model_config = pydantic.ConfigDict(frozen=True)

    gitlab_root: str = "https://gitlab.com"
    repo: str
    branch: str = "master"
    per_page: int = 50

    @property
    def api_root(self) -> str:
        return f"{self.gitlab_root}/api/v{API_VERSION}"

    @property
    def project_url(self) -> str:
        return f"/projects/{quote(self.repo, safe='')}"

    def file_url(self, path: str) -> str:
        """API path of a single repository file."""
        return f"{self.project_url}/repository/files/{quote(path.lstrip('/'), safe='')}"

    def raw_url(self, path: str) -> str:
        """Public URL of a file's raw content on the configured branch."""
        return f"{self.gitlab_root}/{self.repo}/raw/{self.branch}/{path.lstrip('/')}"


class GitLabTreeItem(pydantic.BaseModel):
    """Model for a GitLab repository tree item."""

    id: str
    name: str
    type: tp.Literal["blob", "tree"]
    path: str
    mode: str


class FileDescriptor(pydantic.BaseModel):
    """A file flowing from the CMS host into the repository.

    ``raw`` holds text for entries and bytes for media. ``uploaded`` is only
    set on the copy returned once the owning commit succeeded.
    """

    path: str
    id: str | None = None
    raw: str | bytes = ""
    uploaded: bool = False


class MediaFile(FileDescriptor):
    """An uploaded asset; ``value`` is its display name."""

    value: str
    size: int | None = None

    @pydantic.model_validator(mode="after")
    def _default_size(self) -> "MediaFile":
        if self.size is None:
            content = self.raw
            if isinstance(content, str):
                content = content.encode("utf-8")
            self.size = len(content)
        return self


class CommitAction(pydantic.BaseModel):
    """One file operation of a commit.

    All content is sent base64 encoded, so a commit never mixes encodings.
    """

    action: tp.Literal["create", "update", "delete"]
    file_path: str
    content: str | None = None
    encoding: tp.Literal["base64"] = "base64"

    @pydantic.field_validator("file_path")
    @classmethod
    def _strip_leading_slash(cls, value: str) -> str:
        return value.lstrip("/")


class PersistOptions(pydantic.BaseModel):
    commit_message: str
    new_entry: bool = True
    branch: str | None = None


class CollectionFile(pydantic.BaseModel):
    file: str
    label: str | None = None
    name: str | None = None


class Collection(pydantic.BaseModel):
    """CMS collection: either a folder of entries or a list of files."""

    name: str
    folder: str | None = None
    files: list[CollectionFile] = []


class FileRef(pydantic.BaseModel):
    path: str
    id: str | None = None
    label: str | None = None


class FetchedEntry(pydantic.BaseModel):
    file: FileRef
    data: str


class MediaAsset(pydantic.BaseModel):
    """Media library item as shown by the CMS host."""

    id: str | None = None
    name: str
    url: str
    path: str
    size: int | None = None
