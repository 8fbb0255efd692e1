"""Best-effort remote risk assessment collaborator."""

from abc import ABC, abstractmethod

import httpx
import structlog
from pydantic import ValidationError as PydanticValidationError

from .errors import RemoteUnavailable
from .models import RemoteRiskRequest, RemoteRiskResponse

logger = structlog.get_logger()


class RemoteRiskClient(ABC):
    """Capability interface for an external risk service.

    Implementations raise RemoteUnavailable for any transport or protocol
    failure. Timeouts are imposed by the caller.
    """

    @abstractmethod
    async def assess_risk(self, request: RemoteRiskRequest) -> RemoteRiskResponse: ...


class HttpRemoteRiskClient(RemoteRiskClient):
    """Posts assessment requests as JSON to ``{base_url}/api/v1/risk/assess``."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 0.3,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout_seconds)
        self._owns_client = client is None

    async def assess_risk(self, request: RemoteRiskRequest) -> RemoteRiskResponse:
        try:
            response = await self._client.post("/api/v1/risk/assess", json=request.model_dump())
            response.raise_for_status()
            return RemoteRiskResponse.model_validate(response.json())
        except httpx.HTTPError as exc:
            raise RemoteUnavailable(f"Remote risk call failed: {exc}") from exc
        except (ValueError, PydanticValidationError) as exc:
            raise RemoteUnavailable("Remote risk service returned an invalid payload") from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
