"""
Repository sync with the ``git`` executable.

The target directory decides what happens:

- absent or empty: fresh shallow clone
- clone of the requested remote: fetch, force the branch to ``origin/<branch>``,
  drop untracked and ignored files
- clone of another remote, or a non-empty non-repository: clone into a staging
  directory and swap it in with ``safe_replace``
- not a directory: ``FilesystemError``

When the requested branch does not exist upstream (or none was requested and
the remote HEAD cannot be resolved) ``main``, ``master`` and ``develop`` are
tried in that order.
"""

from __future__ import annotations

import os
import re
import shlex
import shutil
from contextlib import ExitStack
from pathlib import Path
from urllib.parse import quote, urlsplit, urlunsplit

from volume_syncer.exceptions import CommandError, FilesystemError, UnknownSyncError
from volume_syncer.sync.credentials import CredentialMaterial
from volume_syncer.sync.process import ProcessExecutor, ProcessResult
from volume_syncer.sync.safe_replace import safe_replace
from volume_syncer.sync.strategies.base import SyncStrategy, is_empty_directory
from volume_syncer.sync.types import GitDetails, SourceKind
from volume_syncer.utils.logging import get_logger

logger = get_logger("volume_syncer.sync.strategies.repository")

FALLBACK_BRANCHES = ("main", "master", "develop")

REMOTE_REFSPEC = "+refs/heads/*:refs/remotes/origin/*"

_SCP_LIKE = re.compile(r"^(?:[^@/]+@)?(?P<host>[^:/]+):(?P<path>.+)$")

_MISSING_BRANCH = re.compile(
    r"Remote branch .+ not found|not found in upstream|couldn't find remote ref",
    re.IGNORECASE,
)


def normalize_remote(url: str) -> str:
    """
    Reduce a remote URL to ``host/path`` for comparison.

    Credentials, scheme, port, surrounding slashes and a trailing ``.git`` are
    dropped; scp-style ``user@host:path`` is understood.
    """
    url = url.strip()
    if "://" in url:
        parts = urlsplit(url)
        host, path = (parts.hostname or "").lower(), parts.path
    else:
        match = _SCP_LIKE.match(url)
        if match and not url.startswith("/"):
            host, path = match.group("host").lower(), match.group("path")
        else:
            host, path = "", url
    path = path.strip("/").removesuffix(".git").rstrip("/")
    return f"{host}/{path}"


def urls_match(a: str, b: str) -> bool:
    return normalize_remote(a) == normalize_remote(b)


def authenticated_url(url: str, user: str, password: str) -> str:
    """Embed basic credentials into an http(s) URL; other URLs are returned as-is."""
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    netloc = f"{quote(user, safe='')}:{quote(password, safe='')}@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


class RepositoryStrategy(SyncStrategy):
    """Keep the target a clean checkout of one branch of a remote repository."""

    kind = SourceKind.GIT

    def __init__(self, details: GitDetails, target: Path, timeout: float, executor: ProcessExecutor | None = None):
        super().__init__(target, timeout, executor)
        self.details = details

    @property
    def remote_url(self) -> str:
        """URL used for clone/fetch; carries basic credentials when configured."""
        d = self.details
        if d.user and d.password:
            return authenticated_url(d.url, d.user, d.password)
        return d.url

    async def _sync(self) -> None:
        target = self.target
        if target.exists() and not target.is_dir():
            raise FilesystemError(f"target {target} exists and is not a directory")

        if not target.exists() or is_empty_directory(target):
            logger.info(f"Cloning {self.details.url} into {target}")
            target.parent.mkdir(parents=True, exist_ok=True)
            await self.clone(target)
            return

        if (target / ".git").exists():
            origin = await self._origin_url(target)
            if origin is not None and urls_match(origin, self.details.url):
                logger.info(f"Updating existing clone of {self.details.url} in {target}")
                await self.update(target)
                return
            logger.info(f"{target} is a clone of a different remote, replacing it")
        else:
            logger.info(f"{target} is not a repository, replacing it")
        await safe_replace(target, self.clone)

    # --- git invocation ------------------------------------------------------

    async def _git(self, *args: str, cwd: Path | None = None, network: bool = False, check: bool = True) -> ProcessResult:
        env = {"GIT_TERMINAL_PROMPT": "0"}
        with ExitStack() as stack:
            if network and self.details.private_key is not None:
                key_file = stack.enter_context(CredentialMaterial(self.details.private_key))
                env["GIT_SSH_COMMAND"] = shlex.join(
                    [
                        "ssh",
                        "-i",
                        str(key_file),
                        "-o",
                        "IdentitiesOnly=yes",
                        "-o",
                        "StrictHostKeyChecking=no",
                        "-o",
                        "UserKnownHostsFile=/dev/null",
                    ]
                )
            return await self.executor.run(["git", *args], cwd=cwd, env=env, timeout=self.timeout, check=check)

    def _depth_args(self) -> list[str]:
        return ["--depth", str(self.details.depth)] if self.details.depth > 0 else []

    # --- clone ---------------------------------------------------------------

    async def clone(self, destination: Path) -> None:
        """Clone into ``destination`` (absent or empty), falling back across default branch names."""
        requested = self.details.branch
        candidates: list[str | None] = [requested] if requested else [None]
        if requested:
            candidates += [b for b in FALLBACK_BRANCHES if b != requested]

        for i, branch in enumerate(candidates):
            args = ["clone", *self._depth_args()]
            if branch:
                args += ["--branch", branch]
            args += [self.remote_url, str(destination)]
            try:
                await self._git(*args, network=True)
            except CommandError as e:
                last = i == len(candidates) - 1
                if branch is None or last or not _MISSING_BRANCH.search(e.stderr):
                    raise
                logger.warning(f"Branch {branch} not found on {self.details.url}, trying {candidates[i + 1]}")
                _clear_directory(destination)
                continue
            if branch and branch != requested:
                logger.info(f"Checked out fallback branch {branch} instead of {requested}")
            break

        if self.remote_url != self.details.url:
            # Credentials must not stay in .git/config
            await self._git("remote", "set-url", "origin", self.details.url, cwd=destination)

    # --- in-place update -----------------------------------------------------

    async def update(self, repo: Path) -> None:
        """Fetch and force the working tree to match ``origin/<branch>`` exactly."""
        await self._git(
            "fetch",
            "--prune",
            *self._depth_args(),
            self.remote_url if self.remote_url != self.details.url else "origin",
            REMOTE_REFSPEC,
            cwd=repo,
            network=True,
        )
        branch = await self.resolve_branch(repo)
        await self._git("checkout", "-f", "-B", branch, f"origin/{branch}", cwd=repo)
        await self._git("reset", "--hard", f"origin/{branch}", cwd=repo)
        await self._git("clean", "-fdx", cwd=repo)
        logger.info(f"{repo} now at origin/{branch}")

    async def resolve_branch(self, repo: Path) -> str:
        """
        Pick the branch to check out after a fetch.

        Order: explicit branch if it exists upstream; otherwise (no explicit
        branch) the remote HEAD, refreshed once with ``remote set-head``;
        finally the first of main/master/develop that exists.

        Raises:
            UnknownSyncError: If no candidate exists upstream
        """
        requested = self.details.branch
        if requested:
            if await self._remote_branch_exists(repo, requested):
                return requested
            logger.warning(f"Branch {requested} not found on {self.details.url}, probing fallbacks")
        else:
            head = await self._remote_head(repo)
            if head is None:
                await self._git("remote", "set-head", "origin", "--auto", cwd=repo, network=True, check=False)
                head = await self._remote_head(repo)
            if head is not None:
                return head

        for candidate in FALLBACK_BRANCHES:
            if candidate != requested and await self._remote_branch_exists(repo, candidate):
                logger.info(f"Using fallback branch {candidate}")
                return candidate
        tried = ", ".join(b for b in (requested, *FALLBACK_BRANCHES) if b)
        raise UnknownSyncError(f"could not determine a branch to check out from {self.details.url} (tried {tried})")

    async def _remote_head(self, repo: Path) -> str | None:
        result = await self._git("symbolic-ref", "--short", "refs/remotes/origin/HEAD", cwd=repo, check=False)
        ref = result.stdout.strip()
        if not result.ok or not ref:
            return None
        return ref.removeprefix("origin/")

    async def _remote_branch_exists(self, repo: Path, branch: str) -> bool:
        result = await self._git(
            "rev-parse", "--verify", "--quiet", f"refs/remotes/origin/{branch}", cwd=repo, check=False
        )
        return result.ok

    async def _origin_url(self, repo: Path) -> str | None:
        result = await self._git("config", "--get", "remote.origin.url", cwd=repo, check=False)
        url = result.stdout.strip()
        return url if result.ok and url else None


def _clear_directory(path: Path) -> None:
    """Empty ``path`` after a failed clone attempt so the next attempt can reuse it."""
    if not path.is_dir():
        return
    for entry in os.scandir(path):
        if entry.is_dir(follow_symlinks=False):
            shutil.rmtree(entry.path)
        else:
            os.unlink(entry.path)
