"""
Jenkins REST client used to start builds.

Jobs are named ``{project}_{slug}_{kind}`` (lower-cased) and started through
``buildWithParameters`` with the parameters the job templates expect:

- ``repoId``: Bitbucket repository id
- ``buildHead``: commit to check out (the target commit for PR builds)
- ``pullRequestId``, ``mergeRef``, ``mergeHead``: merge context of PR builds
"""

from typing import Dict, Optional

import httpx

from cibot.core.exceptions import DispatchError
from cibot.core.logging import get_logger
from cibot.schemas.events import PullRequestRef
from cibot.schemas.policy import JobKind, RepositoryRef
from cibot.services.builds.contracts import PolicyProvider

logger = get_logger(__name__)


def build_parameters(
    repo: RepositoryRef,
    commit: str,
    pull_request: Optional[PullRequestRef] = None,
) -> Dict[str, str]:
    params = {"repoId": str(repo.id), "buildHead": commit}
    if pull_request is not None:
        params.update(
            {
                "pullRequestId": str(pull_request.id),
                # toRef is always present in the target repository
                "buildHead": pull_request.to_sha,
                "mergeRef": pull_request.from_ref.display_id,
                "mergeHead": pull_request.from_sha,
            }
        )
    return params


class JenkinsDispatcher:
    """Build dispatcher starting parameterized Jenkins jobs."""

    def __init__(
        self,
        policies: PolicyProvider,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        """
        Args:
            policies: Used to find the Jenkins server a repository is bound to.
            transport: Optional httpx transport (tests use ``httpx.MockTransport``).
            timeout: Request timeout in seconds.
        """
        self.policies = policies
        self.transport = transport
        self.timeout = timeout

    async def dispatch(
        self,
        repo: RepositoryRef,
        job_kind: JobKind,
        commit: str,
        pull_request: Optional[PullRequestRef] = None,
    ) -> None:
        """
        Start a build.

        A redirect answer means Jenkins accepted (or is already running) the
        build and is treated as success.

        Raises:
            ConfigurationError: The repository has no usable Jenkins server.
            DispatchError: Jenkins refused the build or could not be reached.
        """
        server = await self.policies.get_server_policy(repo.id)
        job_name = repo.job_name(job_kind)
        url = f"{server.url.rstrip('/')}/job/{job_name}/buildWithParameters"
        params = build_parameters(repo, commit, pull_request)
        auth = (server.username, server.password) if server.username else None

        logger.info(
            "Triggering jenkins job %s on hash %s (%s@%s)",
            job_name,
            params["buildHead"],
            server.username,
            server.url,
        )

        try:
            async with httpx.AsyncClient(
                transport=self.transport, timeout=self.timeout, follow_redirects=False
            ) as client:
                response = await client.post(url, params=params, auth=auth)
        except httpx.HTTPError as e:
            raise DispatchError(f"Unable to reach Jenkins at {server.url}: {e}") from e

        if response.is_redirect:
            # not really an error: Jenkins redirects after queueing the build
            logger.debug(
                "Jenkins answered %s for %s, assuming build triggered",
                response.status_code,
                job_name,
            )
            return
        if response.status_code == 404:
            raise DispatchError(f"Build doesn't exist: {job_name}", status_code=404)
        if response.is_error:
            logger.error(
                "HTTP Error (resp code %s) triggering %s", response.status_code, job_name
            )
            raise DispatchError(
                f"Jenkins refused build {job_name}: HTTP {response.status_code}",
                status_code=response.status_code,
            )
