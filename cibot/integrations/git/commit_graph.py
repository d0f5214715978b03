"""
Commit graph access through git plumbing.

Each repository is kept as a bare mirror under ``GIT_MIRROR_ROOT/<repo_id>.git``.
"""

import asyncio
import os
import re
from typing import Dict, List, Sequence

from cibot.core.exceptions import CommitGraphError
from cibot.core.logging import get_logger
from cibot.schemas.policy import RepositoryRef

logger = get_logger(__name__)


class GitCommitGraph:
    """Commit graph accessor running ``git`` against local mirrors."""

    def __init__(self, mirror_root: str, git_binary: str = "git"):
        self.mirror_root = mirror_root
        self.git_binary = git_binary

    def repository_path(self, repo: RepositoryRef) -> str:
        return os.path.join(self.mirror_root, f"{repo.id}.git")

    async def _git(self, repo: RepositoryRef, *args: str) -> str:
        path = self.repository_path(repo)
        try:
            process = await asyncio.create_subprocess_exec(
                self.git_binary,
                "--git-dir",
                path,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CommitGraphError(f"Unable to run git for repo {repo.id}: {e}") from e

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            raise CommitGraphError(
                f"git {args[0]} failed for repo {repo.id} "
                f"(exit {process.returncode}): {stderr.decode(errors='replace').strip()}"
            )
        return stdout.decode()

    async def refresh(self, repo: RepositoryRef) -> None:
        """Bring the mirror up to date with the server, dropping deleted refs."""
        await self._git(repo, "remote", "update", "--prune")

    async def branch_tips_matching(
        self, repo: RepositoryRef, pattern: str
    ) -> Dict[str, str]:
        """Current tip of every branch whose full ref id matches ``pattern``."""
        output = await self._git(
            repo, "for-each-ref", "--format=%(refname) %(objectname)", "refs/heads/"
        )
        try:
            regex = re.compile(pattern)
        except re.error as e:
            raise CommitGraphError(f"Invalid branch pattern {pattern!r}: {e}") from e
        tips = {}
        for line in output.splitlines():
            ref, _, tip = line.partition(" ")
            if regex.fullmatch(ref):
                tips[ref] = tip
        return tips

    async def commits_excluding(
        self, repo: RepositoryRef, include: Sequence[str], exclude: Sequence[str]
    ) -> List[str]:
        """One ``rev-list`` call: reachable from ``include``, not from ``exclude``."""
        if not include:
            return []
        args = ["rev-list", "--reverse", *include]
        args.extend(f"^{tip}" for tip in exclude)
        # separates revisions from paths so a ref named like a file is never a path
        args.append("--")
        output = await self._git(repo, *args)
        commits = output.split()
        logger.debug(
            "rev-list for repo %s: %d include, %d exclude, %d commits",
            repo.id,
            len(include),
            len(exclude),
            len(commits),
        )
        return commits
