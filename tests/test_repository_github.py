"""Tests for GitHub method discovery with the HTTP layer patched."""

import base64
from unittest.mock import patch

import pytest

from exceptions import DiscoveryError
from repository.github import GitHubApiError, GitHubClient, resolve_from_github
from repository.models import SOURCE_GITHUB, ParsedAddress

API = "https://api.github.com"
MANIFEST = '[package]\naddress = "github.com/acme/cookbook"\nversion = "1.0.0"\ndescription = "Contracts"\n'


def _b64(text):
    return {"content": base64.b64encode(text.encode("utf-8")).decode("ascii"), "encoding": "base64"}


def _contents(prefix, methods_path="methods"):
    base = f"{prefix}/contents/{methods_path}"
    return {
        f"{base}": [
            {"name": "contract_analysis", "type": "dir", "path": f"{methods_path}/contract_analysis"},
            {"name": "broken", "type": "dir", "path": f"{methods_path}/broken"},
            {"name": "README.md", "type": "file", "path": f"{methods_path}/README.md"},
        ],
        f"{base}/contract_analysis": [
            {"name": "METHODS.toml", "type": "file", "path": f"{methods_path}/contract_analysis/METHODS.toml"},
            {"name": "main.mthds", "type": "file", "path": f"{methods_path}/contract_analysis/main.mthds"},
            {"name": "sub", "type": "dir", "path": f"{methods_path}/contract_analysis/sub"},
        ],
        f"{base}/contract_analysis/sub": [
            {"name": "extra.mthds", "type": "file", "path": f"{methods_path}/contract_analysis/sub/extra.mthds"},
        ],
        f"{base}/contract_analysis/METHODS.toml": _b64(MANIFEST),
        f"{base}/contract_analysis/main.mthds": {"download_url": "https://raw.example.com/main.mthds"},
        f"{base}/contract_analysis/sub/extra.mthds": _b64('domain = "legal.extra"\n'),
    }


def _fake_api(routes):
    def _get_json(url, headers=None):
        if url in routes:
            return 200, {}, routes[url]
        return 404, {}, None
    return _get_json


class TestGitHubClient:
    """Test request construction and error mapping."""

    def test_headers_with_token(self):
        headers = GitHubClient(token="secret")._get_headers()
        assert headers["Authorization"] == "Bearer secret"
        assert headers["Accept"] == "application/vnd.github.v3+json"

    def test_headers_without_token(self, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        assert "Authorization" not in GitHubClient()._get_headers()

    @patch("repository.github.get_json")
    def test_rate_limit_error(self, mock_get_json):
        mock_get_json.return_value = (403, {}, None)

        with pytest.raises(GitHubApiError, match="rate limit") as exc_info:
            GitHubClient().get_repo("acme", "cookbook")
        assert exc_info.value.status == 403

    @patch("repository.github.robust_get")
    @patch("repository.github.get_json")
    def test_file_content_via_download_url(self, mock_get_json, mock_robust_get):
        mock_get_json.return_value = (200, {}, {"download_url": "https://raw.example.com/f"})
        mock_robust_get.return_value = (200, {}, "downloaded")

        assert GitHubClient().get_file_content("acme", "cookbook", "f") == "downloaded"
        assert mock_robust_get.call_args[0][0] == "https://raw.example.com/f"

    @patch("repository.github.get_json")
    def test_list_files_recursive(self, mock_get_json):
        mock_get_json.side_effect = _fake_api(_contents(f"{API}/repos/acme/cookbook"))

        paths = GitHubClient().list_files_recursive("acme", "cookbook", "methods/contract_analysis", ".mthds")

        assert paths == ["methods/contract_analysis/main.mthds", "methods/contract_analysis/sub/extra.mthds"]


class TestResolveFromGitHub:
    """Test enumeration of methods/<slug>/ through the contents API."""

    @patch("repository.github.robust_get")
    @patch("repository.github.get_json")
    def test_resolves_methods_and_skips_invalid(self, mock_get_json, mock_robust_get):
        prefix = f"{API}/repos/acme/cookbook"
        routes = _contents(prefix)
        routes[prefix] = {"private": False}
        mock_get_json.side_effect = _fake_api(routes)
        mock_robust_get.return_value = (200, {}, 'domain = "legal"\n')

        repo = resolve_from_github(ParsedAddress(org="acme", repo="cookbook"), client=GitHubClient(token="t"))

        assert repo.source == SOURCE_GITHUB
        assert repo.repo_name == "acme/cookbook"
        assert repo.is_public is True
        assert [m.slug for m in repo.methods] == ["contract_analysis"]
        method = repo.methods[0]
        assert method.manifest.address == "github.com/acme/cookbook"
        assert [(f.relative_path, f.content) for f in method.files] == [
            ("main.mthds", 'domain = "legal"\n'),
            ("sub/extra.mthds", 'domain = "legal.extra"\n'),
        ]
        assert [s.slug for s in repo.skipped] == ["broken"]
        assert "No METHODS.toml found" in repo.skipped[0].errors[0]

    @patch("repository.github.robust_get")
    @patch("repository.github.get_json")
    def test_subpath_and_private_repo(self, mock_get_json, mock_robust_get):
        prefix = f"{API}/repos/acme/cookbook"
        routes = _contents(prefix, methods_path="examples/methods")
        routes[prefix] = {"private": True}
        mock_get_json.side_effect = _fake_api(routes)
        mock_robust_get.return_value = (200, {}, 'domain = "legal"\n')

        repo = resolve_from_github(
            ParsedAddress(org="acme", repo="cookbook", subpath="examples"), client=GitHubClient(token="t"),
        )

        assert repo.is_public is False
        assert [m.slug for m in repo.methods] == ["contract_analysis"]

    @patch("repository.github.get_json")
    def test_repository_not_found(self, mock_get_json):
        mock_get_json.return_value = (404, {}, None)

        with pytest.raises(DiscoveryError, match="not found on GitHub"):
            resolve_from_github(ParsedAddress(org="acme", repo="missing"), client=GitHubClient(token="t"))

    @patch("repository.github.get_json")
    def test_connection_failure(self, mock_get_json):
        mock_get_json.return_value = (0, {}, None)

        with pytest.raises(DiscoveryError, match="Could not connect to GitHub"):
            resolve_from_github(ParsedAddress(org="acme", repo="cookbook"), client=GitHubClient(token="t"))

    @patch("repository.github.get_json")
    def test_missing_methods_folder(self, mock_get_json):
        mock_get_json.side_effect = _fake_api({f"{API}/repos/acme/cookbook": {"private": False}})

        with pytest.raises(DiscoveryError, match="No methods/ folder found in acme/cookbook"):
            resolve_from_github(ParsedAddress(org="acme", repo="cookbook"), client=GitHubClient(token="t"))
