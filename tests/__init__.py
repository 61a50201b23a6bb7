"""Test suite for gitlab-cms.

The tests never reach a real GitLab instance. ``requests.Session.request``
is patched with :class:`tests.fakes.FakeGitLab`, which serves canned
responses for the endpoints the backend uses:

GET    /user
GET    /projects/:id
GET    /projects/:id/members/:user_id
GET    /groups/:id/members/:user_id
GET    /projects/:id/repository/tree
GET    /projects/:id/repository/files/:file_path
HEAD   /projects/:id/repository/files/:file_path
DELETE /projects/:id/repository/files/:file_path
POST   /projects/:id/repository/commits

The test project is ``group/site`` on branch ``main``.
"""
