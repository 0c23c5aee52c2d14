"""Client for the portfolio content API that owns the capture targets."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from screenshot_backup.config import ContentSettings
from screenshot_backup.errors import ContentApiError
from screenshot_backup.models import Artifact, Target


class ContentClient:
    """List projects with live URLs and attach new screenshots to them."""

    def __init__(
        self,
        settings: ContentSettings,
        logger: logging.Logger,
        *,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = settings.base_url.rstrip("/")
        self.http_timeout = settings.request_timeout
        self.logger = logger
        self.session = session or requests.Session()
        if settings.api_token:
            self.session.headers["Authorization"] = f"Bearer {settings.api_token}"

    def _projects_url(self, target_id: Optional[str] = None) -> str:
        if target_id is None:
            return f"{self.base_url}/api/projects"
        return f"{self.base_url}/api/projects/{target_id}"

    @staticmethod
    def _unwrap(payload: Any) -> List[Dict[str, Any]]:
        if isinstance(payload, list):
            return [item for item in payload if isinstance(item, dict)]
        if isinstance(payload, dict):
            for key in ("projects", "data", "items"):
                value = payload.get(key)
                if isinstance(value, list):
                    return [item for item in value if isinstance(item, dict)]
        return []

    def list_targets(self) -> List[Target]:
        """Return every project that has at least one live URL."""
        try:
            response = self.session.get(self._projects_url(), timeout=self.http_timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise ContentApiError(f"Failed to list projects: {exc}") from exc

        targets = []
        for document in self._unwrap(payload):
            target = Target.from_api(document)
            if target.id and target.urls:
                targets.append(target)
        self.logger.debug("Content API returned %s capture targets", len(targets))
        return targets

    def get_target(self, target_id: str) -> Optional[Target]:
        try:
            response = self.session.get(self._projects_url(target_id), timeout=self.http_timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise ContentApiError(f"Failed to load project {target_id}: {exc}") from exc
        if isinstance(payload, dict) and isinstance(payload.get("project"), dict):
            payload = payload["project"]
        if not isinstance(payload, dict):
            return None
        return Target.from_api(payload)

    def attach_artifact(self, target_id: str, artifact: Artifact, *, alt: Optional[str] = None) -> None:
        """Replace the project's images with the given screenshot.

        Fire only: the response body is not read back or verified.
        """
        body = {
            "images": [
                {
                    "url": artifact.url,
                    "alt": alt or "screenshot",
                }
            ]
        }
        try:
            response = self.session.put(
                self._projects_url(target_id),
                json=body,
                timeout=self.http_timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ContentApiError(f"Failed to attach screenshot to {target_id}: {exc}") from exc
        self.logger.info("Updated project %s with %s", target_id, artifact.url)

    def close(self) -> None:
        self.session.close()


__all__ = ["ContentClient"]
