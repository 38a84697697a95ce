"""
HTTP Project Data Provider
==========================

Reads project records and codebase analyses from a project data API over
HTTP. Every transport, status or payload failure surfaces as
``ProjectDataError`` naming the operation.

Endpoints:
- GET /projects/{id}
- GET /codebase-analysis?repository=<url>
- GET /teams/{id}
- GET /projects/{id}/deployment-metrics
"""

from typing import Any, Optional

import httpx
import structlog
from pydantic import ValidationError

from pipeline_forge.core.config import Settings, get_settings
from pipeline_forge.core.exceptions import ProjectDataError
from pipeline_forge.core.schemas import CodebaseAnalysis, ProjectMetadata

logger = structlog.get_logger(__name__)


class HttpProjectDataProvider:
    """
    Client for the project data API.

    Usable as an async context manager; otherwise call ``aclose()`` when
    done so the underlying connection pool is released.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.base_url = (base_url or settings.PROJECT_DATA_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.PROJECT_DATA_API_KEY

        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout or settings.PROJECT_DATA_TIMEOUT_SECONDS,
            transport=transport,
        )
        logger.info("project_data_client_initialized", api_url=self.base_url)

    async def __aenter__(self) -> "HttpProjectDataProvider":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ==========================================================================
    # ProjectDataProvider
    # ==========================================================================

    async def get_project(self, project_id: str) -> ProjectMetadata:
        payload = await self._get_json("get_project", f"/projects/{project_id}")
        return self._validate("get_project", ProjectMetadata, payload)

    async def analyze_codebase(self, repository_url: str) -> CodebaseAnalysis:
        payload = await self._get_json(
            "analyze_codebase", "/codebase-analysis", params={"repository": repository_url}
        )
        return self._validate("analyze_codebase", CodebaseAnalysis, payload)

    async def get_team_size(self, team_id: str) -> int:
        payload = await self._get_json("get_team_size", f"/teams/{team_id}")
        return int(self._field("get_team_size", payload, "size"))

    async def get_deployment_frequency(self, project_id: str) -> float:
        payload = await self._get_json(
            "get_deployment_frequency", f"/projects/{project_id}/deployment-metrics"
        )
        return float(self._field("get_deployment_frequency", payload, "frequency"))

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _get_json(self, operation: str, path: str, params: Optional[dict] = None) -> Any:
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "project_data_request_failed",
                operation=operation,
                status_code=e.response.status_code,
                path=path,
            )
            raise ProjectDataError(operation, f"HTTP {e.response.status_code} from {path}") from e
        except httpx.HTTPError as e:
            logger.error("project_data_request_failed", operation=operation, error=str(e), path=path)
            raise ProjectDataError(operation, str(e) or type(e).__name__) from e
        except ValueError as e:
            logger.error("project_data_invalid_json", operation=operation, path=path)
            raise ProjectDataError(operation, "response body is not valid JSON") from e

    @staticmethod
    def _validate(operation: str, model, payload: Any):
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise ProjectDataError(operation, f"invalid payload: {e.error_count()} validation errors") from e

    @staticmethod
    def _field(operation: str, payload: Any, key: str) -> Any:
        if not isinstance(payload, dict) or key not in payload:
            raise ProjectDataError(operation, f"response is missing {key!r}")
        return payload[key]
