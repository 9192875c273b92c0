"""Tests for the git working-copy wrapper with subprocess.run replaced."""

from __future__ import annotations

import subprocess

import pytest

from crosspost.adapters import git as git_module
from crosspost.adapters.git import Repository, is_ssh_url, repo_name
from crosspost.errors import PublishError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeGit:
    """Stands in for subprocess.run; answers by git subcommand."""

    def __init__(self, responses: dict[str, tuple[int, str, str]] | None = None):
        self.responses = responses or {}
        self.calls: list[dict] = []

    def __call__(self, cmd, cwd=None, capture_output=False, text=False, timeout=None, env=None):
        self.calls.append({"args": cmd[1:], "cwd": cwd, "timeout": timeout, "env": env})
        code, out, err = self.responses.get(cmd[1], (0, "", ""))
        return subprocess.CompletedProcess(cmd, code, stdout=out, stderr=err)

    def commands(self) -> list[str]:
        return [call["args"][0] for call in self.calls]


@pytest.fixture
def fake_git(monkeypatch):
    fake = FakeGit()
    monkeypatch.setattr(git_module.subprocess, "run", fake)
    return fake


def make_repo(tmp_path, url="git@example.com:me/site.git", **kwargs) -> Repository:
    return Repository(url, "main", tmp_path / "ws", timeout_seconds=7, **kwargs)


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------

class TestRepoName:
    @pytest.mark.parametrize("url,name", [
        ("git@github.com:me/site.git", "site"),
        ("https://github.com/me/site.git", "site"),
        ("https://github.com/me/site/", "site"),
        ("ssh://git@host/me/blog.git", "blog"),
    ])
    def test_names(self, url, name):
        assert repo_name(url) == name

    def test_is_ssh_url(self):
        assert is_ssh_url("git@github.com:me/site.git")
        assert not is_ssh_url("https://github.com/me/site.git")


# ---------------------------------------------------------------------------
# initialize
# ---------------------------------------------------------------------------

class TestInitialize:
    def test_clones_when_missing(self, tmp_path, fake_git):
        repo = make_repo(tmp_path)
        repo.initialize()
        call = fake_git.calls[0]
        assert call["args"] == ["clone", "-b", "main", "git@example.com:me/site.git", "site"]
        assert call["cwd"] == tmp_path / "ws"
        assert call["timeout"] == 7
        assert call["env"]["GIT_SSH_COMMAND"] == "ssh -o StrictHostKeyChecking=accept-new"

    def test_https_remote_has_no_ssh_env(self, tmp_path, fake_git):
        make_repo(tmp_path, url="https://example.com/me/site.git").initialize()
        assert fake_git.calls[0]["env"] is None

    def test_existing_clone_is_pulled(self, tmp_path, fake_git):
        repo = make_repo(tmp_path)
        (repo.local_path / ".git").mkdir(parents=True)
        repo.initialize()
        assert fake_git.commands() == ["status", "checkout", "pull"]
        assert fake_git.calls[-1]["args"] == ["pull", "origin", "main"]

    def test_failed_pull_reclones(self, tmp_path, fake_git):
        fake_git.responses["pull"] = (1, "", "fatal: refusing to merge")
        repo = make_repo(tmp_path)
        (repo.local_path / ".git").mkdir(parents=True)
        repo.initialize()
        assert fake_git.commands() == ["status", "checkout", "pull", "clone"]
        assert not repo.local_path.exists()

    def test_invalid_directory_removed_then_cloned(self, tmp_path, fake_git):
        repo = make_repo(tmp_path)
        repo.local_path.mkdir(parents=True)
        (repo.local_path / "stray.txt").write_text("x")
        repo.initialize()
        assert fake_git.commands() == ["clone"]
        assert not (repo.local_path / "stray.txt").exists()

    def test_missing_local_branch_tracks_remote(self, tmp_path, fake_git):
        fake_git.responses["checkout"] = (1, "", "error: pathspec 'main' did not match any file(s)")
        repo = make_repo(tmp_path)
        (repo.local_path / ".git").mkdir(parents=True)
        with pytest.raises(PublishError):
            # The fallback checkout also answers 1 with this fake.
            repo._checkout()
        assert fake_git.commands() == ["checkout", "fetch", "checkout"]


# ---------------------------------------------------------------------------
# Working tree operations
# ---------------------------------------------------------------------------

class TestWorkingTree:
    def test_commit_configures_identity(self, tmp_path, fake_git):
        repo = make_repo(tmp_path, username="bot", email="bot@example.com")
        assert repo.commit("msg") is True
        assert [c["args"] for c in fake_git.calls] == [
            ["config", "user.name", "bot"],
            ["config", "user.email", "bot@example.com"],
            ["commit", "-m", "msg"],
        ]

    def test_nothing_to_commit_is_not_an_error(self, tmp_path, fake_git):
        fake_git.responses["commit"] = (1, "nothing to commit, working tree clean", "")
        assert make_repo(tmp_path).commit("msg") is False

    def test_commit_failure_raises(self, tmp_path, fake_git):
        fake_git.responses["commit"] = (128, "", "fatal: bad object")
        with pytest.raises(PublishError, match="git commit failed"):
            make_repo(tmp_path).commit("msg")

    def test_push(self, tmp_path, fake_git):
        make_repo(tmp_path).push()
        assert fake_git.calls[0]["args"] == ["push", "origin", "main"]
        assert "GIT_SSH_COMMAND" in fake_git.calls[0]["env"]

    def test_has_changes(self, tmp_path, fake_git):
        fake_git.responses["status"] = (0, " M _posts/a.md\n", "")
        repo = make_repo(tmp_path)
        assert repo.has_changes("_posts/a.md") is True
        assert fake_git.calls[0]["args"] == ["status", "--porcelain", "--", "_posts/a.md"]

    def test_no_changes(self, tmp_path, fake_git):
        assert make_repo(tmp_path).has_changes() is False

    def test_add_defaults_to_everything(self, tmp_path, fake_git):
        make_repo(tmp_path).add()
        assert fake_git.calls[0]["args"] == ["add", "."]

    def test_last_commit_hash(self, tmp_path, fake_git):
        fake_git.responses["rev-parse"] = (0, "abc123\n", "")
        assert make_repo(tmp_path).last_commit_hash() == "abc123"

    def test_create_and_check_file(self, tmp_path):
        repo = make_repo(tmp_path)
        path = repo.create_file("_posts/x.md", "hello")
        assert path.read_text(encoding="utf-8") == "hello"
        assert repo.file_exists("_posts/x.md")
        assert not repo.file_exists("_posts/y.md")


# ---------------------------------------------------------------------------
# Subprocess failures
# ---------------------------------------------------------------------------

class TestSubprocessFailures:
    def test_timeout_raises_publish_error(self, tmp_path, monkeypatch):
        def hang(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(git_module.subprocess, "run", hang)
        with pytest.raises(PublishError, match="timed out") as exc_info:
            make_repo(tmp_path).push()
        assert exc_info.value.context["timeout_seconds"] == 7

    def test_missing_git_binary(self, tmp_path, monkeypatch):
        def missing(cmd, **kwargs):
            raise FileNotFoundError("git")

        monkeypatch.setattr(git_module.subprocess, "run", missing)
        with pytest.raises(PublishError, match="git executable not found"):
            make_repo(tmp_path).has_changes()
