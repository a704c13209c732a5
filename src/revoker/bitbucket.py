# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Access client for the Bitbucket Data Center REST API."""

import json
import logging
from urllib.parse import quote, urlencode

import httpx

from revoker.config import AuditConfig
from revoker.model import MutationResult, VerificationResult
from revoker.reconciler import payload_lists_user

logger = logging.getLogger(__name__)

PERMISSIONS_PATH = "/rest/api/1.0/projects/{project_key}/permissions/users"
REVOKE_SUCCESS_STATUS = 204


class BitbucketAccessClient:
    """Revoke and verify project permissions through the Bitbucket REST API."""

    def __init__(
        self,
        config: AuditConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize client configuration.

        Args:
            config: Run configuration carrying base URL and credentials.
            transport: Optional transport override, mainly for tests.
        """
        self._base_url = config.base_url
        self._client = httpx.Client(
            auth=httpx.BasicAuth(config.username, config.secret),
            timeout=config.request_timeout,
            transport=transport,
        )

    def close(self) -> None:
        """Release pooled connections."""
        self._client.close()

    def __enter__(self) -> "BitbucketAccessClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def permissions_url(self, project_key: str, **query: str) -> str:
        """Build the project user-permissions URL.

        Args:
            project_key: Project key, encoded as a single path segment.
            **query: Query parameters appended in order.

        Returns:
            Absolute request URL.
        """
        path = PERMISSIONS_PATH.format(project_key=quote(project_key, safe=""))
        url = f"{self._base_url}{path}"
        if query:
            url = f"{url}?{urlencode(query, quote_via=quote)}"
        return url

    def revoke(self, project_key: str, username: str) -> MutationResult:
        """Send one DELETE for the user's project grant.

        Args:
            project_key: Project the grant is scoped to.
            username: User whose grant is withdrawn.

        Returns:
            Mutation result; ``succeeded`` only for ``204 No Content``.
        """
        url = self.permissions_url(project_key, name=username)
        try:
            response = self._client.delete(url)
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as exc:
            logger.warning(
                f"Revoke request failed (project={project_key} user={username} error={exc})"
            )
            return MutationResult(
                succeeded=False,
                http_status=None,
                request_url=url,
                transport_error=str(exc),
            )
        succeeded = response.status_code == REVOKE_SUCCESS_STATUS
        if not succeeded:
            logger.warning(
                f"Revoke not accepted (project={project_key} user={username} "
                f"status={response.status_code})"
            )
        return MutationResult(
            succeeded=succeeded, http_status=response.status_code, request_url=url
        )

    def verify(self, project_key: str, username: str) -> VerificationResult:
        """Query the project grants filtered by the user.

        Args:
            project_key: Project to query.
            username: User to look for.

        Returns:
            Verification result. Transport faults and non-2xx responses are
            reported with ``succeeded=False`` and ``still_has_access=False``.
        """
        url = self.permissions_url(project_key, filter=username)
        try:
            response = self._client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as exc:
            logger.warning(
                f"Verify request failed (project={project_key} user={username} error={exc})"
            )
            return VerificationResult(
                succeeded=False,
                http_status=None,
                still_has_access=False,
                raw_payload=None,
                request_url=url,
                transport_error=str(exc),
            )

        payload = _decode_payload(response)
        if not response.is_success:
            logger.warning(
                f"Verify returned error status (project={project_key} user={username} "
                f"status={response.status_code})"
            )
            return VerificationResult(
                succeeded=False,
                http_status=response.status_code,
                still_has_access=False,
                raw_payload=payload,
                request_url=url,
                transport_error=f"HTTP {response.status_code}",
            )
        return VerificationResult(
            succeeded=True,
            http_status=response.status_code,
            still_has_access=payload_lists_user(payload, username),
            raw_payload=payload,
            request_url=url,
        )


def _decode_payload(response: httpx.Response) -> object:
    """Decode a JSON body, keeping undecodable bodies as text evidence."""
    if not response.content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning(
            f"Response body is not valid JSON (url={response.request.url} error={exc})"
        )
        return response.text
