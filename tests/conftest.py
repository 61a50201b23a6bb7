"""Test configuration and fixtures."""

import pytest
import requests
from dotenv import find_dotenv, load_dotenv

from gitlab_cms import API, FileCache, GitLabAuth, RepositoryRef
from tests.fakes import FakeGitLab

TOKEN = "test_oauth_token"
PROJECT = "/projects/group%2Fsite"


def pytest_configure(config):
    """Load .env.test file before any tests run."""
    load_dotenv(find_dotenv(".env.test"))


@pytest.fixture
def clean_gitlab_env(monkeypatch):
    """Clear GitLab environment variables for isolated testing."""
    gitlab_env_vars = [
        "GITLAB_OAUTH_TOKEN",
        "GITLAB_CMS_REPO",
        "GITLAB_CMS_BRANCH",
        "GITLAB_CMS_GITLAB_ROOT",
        "GITLAB_CMS_MEDIA_FOLDER",
        "GITLAB_CMS_APP_ID",
        "GITLAB_CMS_REDIRECT_URI",
    ]
    for var in gitlab_env_vars:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def gitlab_api(monkeypatch, clean_gitlab_env):
    """Fake GitLab answering every request made through requests.Session."""
    fake = FakeGitLab()
    monkeypatch.setattr(requests.Session, "request", fake.request)
    return fake


@pytest.fixture
def repo_ref():
    return RepositoryRef(repo="group/site", branch="main")


@pytest.fixture
def cache():
    return FileCache(mapper={})


@pytest.fixture
def api(gitlab_api, repo_ref, cache):
    """API session authenticated with a test token."""
    return API(repo_ref, GitLabAuth(oauth_token=TOKEN), cache=cache)
