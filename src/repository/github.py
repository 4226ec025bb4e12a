"""GitHub API client and remote method discovery.

Provides a lightweight REST client over the contents API, and
`resolve_from_github`, which enumerates ``methods/<slug>/`` of a repository
the same way `resolve_from_local` does for a checkout.
"""
from __future__ import annotations

import base64
import binascii
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple, Union

from common.http_client import get_json, robust_get
from constants import Constants
from exceptions import DiscoveryError

from .methods import check_method
from .models import SOURCE_GITHUB, MethodsFile, ParsedAddress, ResolvedMethod, ResolvedRepo, SkippedMethod

logger = logging.getLogger(__name__)


class GitHubApiError(Exception):
    """A GitHub API call failed; status is 0 when no response was received."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class GitHubClient:
    """Lightweight REST client for the GitHub contents API.

    Supports optional authentication via GITHUB_TOKEN environment variable.
    """

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None):
        """Initialize GitHub client.

        Args:
            base_url: Base URL for GitHub API (defaults to Constants.GITHUB_API_BASE)
            token: GitHub personal access token (defaults to GITHUB_TOKEN env var)
        """
        self.base_url = (base_url or Constants.GITHUB_API_BASE).rstrip("/")
        self.token = token or os.environ.get(Constants.ENV_GITHUB_TOKEN)

    def _get_headers(self) -> Dict[str, str]:
        """Get request headers including authorization if token is available."""
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": Constants.GITHUB_USER_AGENT,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _api_get(self, api_path: str) -> Any:
        status, _, data = get_json(f"{self.base_url}/{api_path}", headers=self._get_headers())
        if status == 200 and data is not None:
            return data
        if status == 404:
            hint = "" if self.token else " If this is a private repo, set GITHUB_TOKEN."
            raise GitHubApiError(f"Not found: {api_path}.{hint}", status)
        if status == 403:
            raise GitHubApiError(
                f"GitHub API rate limit or permission error (403) for {api_path}. Try setting GITHUB_TOKEN.", status
            )
        raise GitHubApiError(f"GitHub API error {status} for {api_path}.", status)

    def get_repo(self, org: str, repo: str) -> Dict[str, Any]:
        """Fetch repository metadata (used for existence and visibility).

        Raises:
            GitHubApiError: The repository is missing or the API failed.
        """
        return self._api_get(f"repos/{org}/{repo}")

    def list_contents(self, org: str, repo: str, path: str) -> List[Dict[str, Any]]:
        """List a directory; an empty list when path is a file."""
        data = self._api_get(f"repos/{org}/{repo}/contents/{path}")
        return data if isinstance(data, list) else []

    def get_file_content(self, org: str, repo: str, path: str) -> str:
        """Fetch a file's text, from inline base64 content or its download URL.

        Raises:
            GitHubApiError: The file is missing or cannot be decoded.
        """
        data = self._api_get(f"repos/{org}/{repo}/contents/{path}")
        if not isinstance(data, dict):
            raise GitHubApiError(f"Cannot retrieve content for {path}.")

        if data.get("content") and data.get("encoding") == "base64":
            try:
                return base64.b64decode(data["content"]).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as e:
                raise GitHubApiError(f"Cannot decode content for {path}: {e}") from e

        download_url = data.get("download_url")
        if download_url:
            status, _, text = robust_get(download_url, headers=self._get_headers())
            if status != 200:
                raise GitHubApiError(f"Failed to download {path}: HTTP {status}", status)
            return text

        raise GitHubApiError(f"Cannot retrieve content for {path}.")

    def list_files_recursive(self, org: str, repo: str, base_path: str, extension: str) -> List[str]:
        """Return the paths of all files under base_path ending with extension, sorted."""
        paths: List[str] = []
        stack = [base_path]
        while stack:
            directory = stack.pop()
            for item in self.list_contents(org, repo, directory):
                if item.get("type") == "dir":
                    stack.append(item["path"])
                elif item.get("type") == "file" and item.get("name", "").endswith(extension):
                    paths.append(item["path"])
        return sorted(paths)


def _download_methods_files(
    client: GitHubClient,
    parsed: ParsedAddress,
    method_path: str,
) -> List[MethodsFile]:
    file_paths = client.list_files_recursive(parsed.org, parsed.repo, method_path, Constants.BUNDLE_EXTENSION)
    prefix = f"{method_path}/"
    files = []
    for file_path in file_paths:
        content = client.get_file_content(parsed.org, parsed.repo, file_path)
        relative_path = file_path[len(prefix):] if file_path.startswith(prefix) else file_path
        files.append(MethodsFile(relative_path=relative_path, content=content))
    return files


def _resolve_one_method(
    client: GitHubClient,
    parsed: ParsedAddress,
    methods_path: str,
    slug: str,
) -> Union[ResolvedMethod, SkippedMethod]:
    method_path = f"{methods_path}/{slug}"
    toml_path = f"{method_path}/{Constants.MANIFEST_FILENAME}"
    try:
        raw_manifest = client.get_file_content(parsed.org, parsed.repo, toml_path)
    except GitHubApiError as e:
        return SkippedMethod(slug=slug, errors=[f"No {Constants.MANIFEST_FILENAME} found at {toml_path}: {e}"])

    checked = check_method(slug, raw_manifest)
    if isinstance(checked, SkippedMethod):
        return checked

    try:
        files = _download_methods_files(client, parsed, method_path)
    except GitHubApiError as e:
        return SkippedMethod(slug=slug, errors=[f"Failed to download bundles for '{slug}': {e}"])
    return ResolvedMethod(slug=slug, manifest=checked, raw_manifest=raw_manifest, files=files)


def _repo_label(parsed: ParsedAddress) -> str:
    label = f"{parsed.org}/{parsed.repo}"
    return f"{label}/{parsed.subpath}" if parsed.subpath else label


def resolve_from_github(
    parsed: ParsedAddress,
    client: Optional[GitHubClient] = None,
    max_workers: int = Constants.DISCOVERY_BATCH_SIZE,
) -> ResolvedRepo:
    """Enumerate ``methods/<slug>/`` of a GitHub repository.

    Method directories are fetched concurrently; a method that fails
    validation or download lands in ``skipped``.

    Raises:
        DiscoveryError: The repository or its methods/ folder is missing, or
            holds no method directories.
    """
    client = client or GitHubClient()
    label = _repo_label(parsed)
    methods_path = (
        f"{parsed.subpath}/{Constants.METHODS_DIRNAME}" if parsed.subpath else Constants.METHODS_DIRNAME
    )

    try:
        repo_meta = client.get_repo(parsed.org, parsed.repo)
    except GitHubApiError as e:
        if e.status == 404:
            raise DiscoveryError(
                f'Repository "{parsed.org}/{parsed.repo}" not found on GitHub. '
                "Check the address and make sure the repository exists."
            ) from e
        raise DiscoveryError(f'Could not connect to GitHub for "{parsed.org}/{parsed.repo}": {e}') from e
    is_public = not repo_meta.get("private", False)

    try:
        contents = client.list_contents(parsed.org, parsed.repo, methods_path)
    except GitHubApiError as e:
        raise DiscoveryError(
            f'No {Constants.METHODS_DIRNAME}/ folder found in {label}. '
            f'Expected a "{Constants.METHODS_DIRNAME}/" directory.'
        ) from e

    slugs = sorted(item["name"] for item in contents if item.get("type") == "dir")
    if not slugs:
        raise DiscoveryError(f"No methods found in {Constants.METHODS_DIRNAME}/ of {label}.")

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(slugs)))) as pool:
        outcomes: List[Tuple[str, Union[ResolvedMethod, SkippedMethod]]] = list(zip(
            slugs, pool.map(lambda slug: _resolve_one_method(client, parsed, methods_path, slug), slugs)
        ))

    methods: List[ResolvedMethod] = []
    skipped: List[SkippedMethod] = []
    for slug, outcome in outcomes:
        if isinstance(outcome, SkippedMethod):
            logger.warning("Skipped method '%s': %s", slug, "; ".join(outcome.errors))
            skipped.append(outcome)
        else:
            methods.append(outcome)

    return ResolvedRepo(
        methods=methods,
        skipped=skipped,
        source=SOURCE_GITHUB,
        repo_name=f"{parsed.org}/{parsed.repo}",
        is_public=is_public,
    )
