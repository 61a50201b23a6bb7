"""GitLab content backend for editorial web applications."""

from gitlab_cms.api import API
from gitlab_cms.auth import AuthorizationFlow, ImplicitGrantFlow
from gitlab_cms.backend import GitLabBackend
from gitlab_cms.cache import FileCache
from gitlab_cms.config import BackendConfig, GitLabAuth
from gitlab_cms.errors import APIError
from gitlab_cms.models import (
    Collection,
    CollectionFile,
    FetchedEntry,
    FileDescriptor,
    FileRef,
    MediaAsset,
    MediaFile,
    PersistOptions,
    RepositoryRef,
)

__all__ = [
    "API",
    "APIError",
    "AuthorizationFlow",
    "BackendConfig",
    "Collection",
    "CollectionFile",
    "FetchedEntry",
    "FileCache",
    "FileDescriptor",
    "FileRef",
    "GitLabAuth",
    "GitLabBackend",
    "ImplicitGrantFlow",
    "MediaAsset",
    "MediaFile",
    "PersistOptions",
    "RepositoryRef",
]
