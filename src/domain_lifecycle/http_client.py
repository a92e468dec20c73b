"""
Shared async HTTP plumbing for the provider clients.

Owns the httpx.AsyncClient lifecycle and turns every transport failure and
non-2xx answer into an ExternalProviderError with a provider error code and
a retryable flag. Raw httpx exceptions never leave this module.
"""

from typing import Any, Optional

import httpx

from .audit_logger import AuditLogger
from .enums import ProviderErrorCode
from .exceptions import ExternalProviderError


RETRYABLE_CODES = frozenset({
    ProviderErrorCode.TIMEOUT.value,
    ProviderErrorCode.NETWORK_ERROR.value,
    ProviderErrorCode.SERVER_ERROR.value,
    ProviderErrorCode.RATE_LIMITED.value,
})


class ProviderHTTPClient:
    """
    Base class for JSON-over-HTTPS provider clients.

    Subclasses set PROVIDER and COMPONENT, supply auth headers and decide
    how an error body is read.
    """

    PROVIDER = "provider"
    COMPONENT = "ProviderClient"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        simulation_mode: bool = False,
        logger: Optional[AuditLogger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            base_url: API root, without trailing slash
            timeout: Per-request timeout in seconds
            simulation_mode: If True, no real network requests are made
            logger: Optional audit logger
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._simulation_mode = simulation_mode
        self._logger = logger
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def simulation_mode(self) -> bool:
        return self._simulation_mode

    async def __aenter__(self):
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                verify=True,
                timeout=httpx.Timeout(self._timeout),
                headers=self._auth_headers(),
                auth=self._auth(),
                transport=self._transport,
            )
        return self._client

    def _auth_headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def _auth(self) -> Optional[httpx.Auth]:
        return None

    def _error_message(self, payload: Any, status_code: int) -> str:
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return f"{self.PROVIDER} API error: {status_code}"

    def _error(
        self,
        code: ProviderErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict] = None,
    ) -> ExternalProviderError:
        return ExternalProviderError(
            code=code.value,
            message=message,
            details=details or {},
            provider=self.PROVIDER,
            retryable=code.value in RETRYABLE_CODES,
            status_code=status_code,
        )

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """
        Perform one request and return the decoded JSON body.

        Raises:
            ExternalProviderError: on transport failure, non-2xx status or bad JSON
        """
        client = self._ensure_client()
        url = f"{self._base_url}{path}"

        try:
            response = await client.request(method, path, json=json_data, params=params)
        except httpx.TimeoutException:
            raise self._error(
                ProviderErrorCode.TIMEOUT,
                f"{self.PROVIDER} request timed out after {self._timeout}s",
                details={"url": url},
            )
        except httpx.HTTPError as e:
            raise self._error(
                ProviderErrorCode.NETWORK_ERROR,
                f"Connection error: {e}",
                details={"url": url},
            )

        try:
            payload = response.json() if response.content else {}
        except ValueError:
            payload = None

        if response.status_code >= 400:
            message = self._error_message(payload, response.status_code)
            if response.status_code == 429:
                code = ProviderErrorCode.RATE_LIMITED
            elif response.status_code >= 500:
                code = ProviderErrorCode.SERVER_ERROR
            elif response.status_code == 404:
                code = ProviderErrorCode.NOT_FOUND
            else:
                code = ProviderErrorCode.CLIENT_ERROR
            if self._logger:
                self._logger.log_error(
                    self.COMPONENT,
                    f"{self.PROVIDER} request failed",
                    request_url=url,
                    response_status_code=response.status_code,
                    additional_data={"method": method, "message": message},
                )
            raise self._error(code, message, status_code=response.status_code, details={"body": payload})

        if payload is None:
            raise self._error(
                ProviderErrorCode.PARSE_ERROR,
                f"{self.PROVIDER} returned a non-JSON body",
                status_code=response.status_code,
            )
        return payload

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
