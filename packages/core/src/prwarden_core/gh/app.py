"""GitHub App authentication.

A GitHub App never holds a long-lived token. It signs a short JWT with its
private key, exchanges that for an installation access token scoped to one
installation, and uses the token for every repository call. PyGithub's
GithubIntegration handles the JWT and token exchange; this wrapper only adds
the request timeout and the repository enumeration the webhook needs.

One GitHubApp is built at process start and shared by all requests. Each
request asks for its own installation client.
"""

from __future__ import annotations

import logging

from github import Auth, Github, GithubIntegration

logger = logging.getLogger(__name__)


class GitHubApp:
    def __init__(self, app_id: str | int, private_key: str, timeout: float = 30):
        self._integration = GithubIntegration(auth=Auth.AppAuth(int(app_id), private_key), timeout=timeout)
        self.timeout = timeout

    def installation_client(self, installation_id: int) -> Github:
        """Return a PyGithub client authenticated as the given installation."""
        return self._integration.get_github_for_installation(installation_id)

    def get_repo(self, installation_id: int, full_name: str):
        return self.installation_client(installation_id).get_repo(full_name)

    def list_installation_repositories(self, installation_id: int) -> list[dict]:
        """Enumerate every repository the installation can currently access.

        Returned in the same shape as the ``repositories`` list of an
        installation webhook payload, so callers can treat both sources alike.
        """
        installation = self._integration.get_app_installation(installation_id)
        repos = [
            {
                "id": r.id,
                "name": r.name,
                "full_name": r.full_name,
                "description": r.description,
                "html_url": r.html_url,
                "private": r.private,
            }
            for r in installation.get_repos()
        ]
        logger.info("Installation %s can access %d repositories", installation_id, len(repos))
        return repos
