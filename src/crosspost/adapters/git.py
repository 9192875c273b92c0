"""Local working copy of the static-site repository.

Wraps the ``git`` command line.  Every call runs as a subprocess under a
bounded timeout, so a hung remote cannot stall a publish cycle.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path

from crosspost.errors import PublishError
from crosspost.observability import get_logger

log = get_logger("crosspost.adapters.git")

_SSH_COMMAND = "ssh -o StrictHostKeyChecking=accept-new"


def repo_name(url: str) -> str:
    """Return the repository directory name for a clone URL.

    >>> repo_name("git@github.com:me/site.git")
    'site'
    """
    url = url.rstrip("/")
    if url.endswith(".git"):
        url = url[: -len(".git")]
    if "@" in url and ":" in url and not url.startswith(("http://", "https://", "ssh://")):
        url = url.rsplit(":", 1)[-1]
    return url.rsplit("/", 1)[-1] or "repo"


def is_ssh_url(url: str) -> bool:
    return url.startswith(("git@", "ssh://"))


class Repository:
    """A clone of one branch of a remote repository.

    Parameters
    ----------
    url:
        Remote clone URL (HTTPS or SSH).
    branch:
        Branch to check out, commit to and push.
    workspace_dir:
        Parent directory of the clone; the clone itself lives in
        ``workspace_dir/<repo name>``.
    username, email:
        Commit identity, applied to the clone before committing when both
        are set.
    timeout_seconds:
        Timeout for each git subprocess.
    """

    def __init__(
        self,
        url: str,
        branch: str,
        workspace_dir: str | Path,
        *,
        username: str = "",
        email: str = "",
        timeout_seconds: float = 120.0,
    ) -> None:
        self.url = url
        self.branch = branch
        self.workspace_dir = Path(workspace_dir)
        self.local_path = self.workspace_dir / repo_name(url)
        self.username = username
        self.email = email
        self.timeout_seconds = timeout_seconds

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Ensure an up-to-date clone exists.

        An existing clone is checked out and pulled; if that fails, or the
        directory is not a valid repository, it is removed and cloned
        again.
        """
        self.workspace_dir.mkdir(parents=True, exist_ok=True)

        if self.local_path.exists() and not self._is_valid():
            log.warning(
                "Directory is not a valid git repository, removing",
                extra={"extra_fields": {"path": str(self.local_path)}},
            )
            self._remove()

        if self.local_path.exists():
            try:
                self._checkout()
                self._git("pull", "origin", self.branch, remote=True)
                log.info(
                    "Repository pulled",
                    extra={"extra_fields": {"path": str(self.local_path), "branch": self.branch}},
                )
                return
            except PublishError as exc:
                log.warning(
                    "Pull failed, re-cloning",
                    extra={"extra_fields": {"path": str(self.local_path), "error": exc.message}},
                )
                self._remove()

        self._git(
            "clone", "-b", self.branch, self.url, self.local_path.name,
            cwd=self.workspace_dir, remote=True,
        )
        log.info(
            "Repository cloned",
            extra={"extra_fields": {"path": str(self.local_path), "branch": self.branch}},
        )

    # ------------------------------------------------------------------
    # Working tree
    # ------------------------------------------------------------------

    def add(self, *paths: str) -> None:
        self._git("add", *(paths or (".",)))

    def commit(self, message: str) -> bool:
        """Commit staged changes.

        Returns ``False`` when there was nothing to commit.
        """
        self._configure_user()
        result = self._run(["commit", "-m", message], cwd=self.local_path)
        output = result.stdout + result.stderr
        if result.returncode != 0:
            if "nothing to commit" in output:
                log.info("No changes to commit")
                return False
            raise self._failure(["commit"], result)
        log.info("Committed changes", extra={"extra_fields": {"message": message}})
        return True

    def push(self) -> None:
        self._git("push", "origin", self.branch, remote=True)
        log.info("Pushed to remote", extra={"extra_fields": {"branch": self.branch}})

    def has_changes(self, *paths: str) -> bool:
        args = ["status", "--porcelain"]
        if paths:
            args += ["--", *paths]
        return bool(self._git(*args).strip())

    def last_commit_hash(self) -> str:
        return self._git("rev-parse", "HEAD").strip()

    def create_file(self, relative_path: str, content: str | bytes) -> Path:
        """Write *content* to *relative_path*, creating parent directories."""
        path = self.local_path / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        log.debug("File written", extra={"extra_fields": {"path": relative_path}})
        return path

    def file_exists(self, relative_path: str) -> bool:
        return (self.local_path / relative_path).exists()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_valid(self) -> bool:
        if not (self.local_path / ".git").exists():
            return False
        return self._run(["status", "--porcelain"], cwd=self.local_path).returncode == 0

    def _remove(self) -> None:
        shutil.rmtree(self.local_path, ignore_errors=False)

    def _checkout(self) -> None:
        result = self._run(["checkout", self.branch], cwd=self.local_path)
        if result.returncode == 0:
            return
        if "did not match any file" not in result.stderr:
            raise self._failure(["checkout", self.branch], result)
        self._git("fetch", "origin", remote=True)
        self._git("checkout", "-b", self.branch, f"origin/{self.branch}")

    def _configure_user(self) -> None:
        if not (self.username and self.email):
            return
        self._git("config", "user.name", self.username)
        self._git("config", "user.email", self.email)

    def _git(self, *args: str, cwd: Path | None = None, remote: bool = False) -> str:
        result = self._run(list(args), cwd=cwd or self.local_path, remote=remote)
        if result.returncode != 0:
            raise self._failure(list(args), result)
        return result.stdout

    def _run(
        self,
        args: list[str],
        cwd: Path,
        remote: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        env = None
        if remote and is_ssh_url(self.url):
            env = {**os.environ, "GIT_SSH_COMMAND": _SSH_COMMAND}
        try:
            return subprocess.run(
                ["git", *args],
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                env=env,
            )
        except FileNotFoundError as exc:
            raise PublishError(
                message="git executable not found on PATH",
                context={"command": args[0]},
                cause=exc,
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise PublishError(
                message=f"git {args[0]} timed out after {self.timeout_seconds}s",
                context={"command": args[0], "timeout_seconds": self.timeout_seconds},
                cause=exc,
            ) from exc

    @staticmethod
    def _failure(args: list[str], result: subprocess.CompletedProcess[str]) -> PublishError:
        output = (result.stderr or result.stdout).strip()
        return PublishError(
            message=f"git {args[0]} failed (exit {result.returncode}): {output[:500]}",
            context={"command": args[0], "returncode": result.returncode},
        )
