"""Transaction backend HTTP client — initiate, confirm, status, contracts.

Provides an async HTTP client for the investor platform API:
- POST /subscriptions, POST /investments — Initiate a payment
- POST /{kind}/confirm-2fa — Confirm a step-up 2FA challenge
- GET /transactions/{id} — Query transaction status
- GET /contracts/templates?project={id} — List contract templates
- POST /contracts/sign — Upload a signed contract (multipart)
- GET /contracts/mine — Signed contract history
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TypeVar

import httpx

from contract_checkout.errors.gateway_errors import GatewayError, NetworkError
from contract_checkout.gateway.models import (
    ContractTemplate,
    InitiateResult,
    SignedContractReceipt,
    StatusResult,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from contract_checkout.config.settings import BackendConfig
    from contract_checkout.gateway.models import GeoLocation, TransactionKind

logger = logging.getLogger(__name__)

_FALLBACK_MESSAGE = "unexpected error talking to the backend"
_UNREADABLE_MESSAGE = "the backend sent a reply that could not be read"

T = TypeVar("T")


class GatewayClient:
    """Async HTTP client for the transaction and contract backend.

    Usage::

        gateway = GatewayClient(config)
        await gateway.connect()
        try:
            result = await gateway.initiate(TransactionKind.INVESTMENT, 7)
        finally:
            await gateway.close()
    """

    def __init__(self, config: BackendConfig) -> None:
        """Initialize the gateway client.

        Args:
            config: Backend configuration (url, token, timeout).
        """
        self._config = config
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        headers: dict[str, str] = {"Accept": "application/json"}
        if self._config.token:
            headers["Authorization"] = f"Bearer {self._config.token}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self._config.timeout,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    @property
    def base_url(self) -> str:
        return self._config.url.rstrip("/")

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def initiate(self, kind: TransactionKind, project_id: int) -> InitiateResult:
        """Start a subscription or investment payment.

        Returns:
            InitiateResult carrying a 2FA challenge, a redirect URL or an
            immediate success.

        Raises:
            GatewayError: On HTTP or API errors.
        """
        payload: dict[str, Any] = {"projectId": project_id}
        if self._config.return_url:
            payload["returnUrl"] = self._config.return_url
        data = await self._request("POST", kind.endpoint, json=payload)
        return _decode(InitiateResult.from_dict, data, "initiate")

    async def confirm_two_factor(
        self,
        kind: TransactionKind,
        pending_transaction_id: int,
        code: str,
    ) -> InitiateResult:
        """Submit the step-up code for a challenged transaction.

        Raises:
            GatewayError: On HTTP or API errors (wrong code included).
        """
        data = await self._request(
            "POST",
            f"{kind.endpoint}/confirm-2fa",
            json={"transactionId": pending_transaction_id, "code": code},
        )
        return _decode(InitiateResult.from_dict, data, "confirm_two_factor")

    async def check_status(self, transaction_id: int, *, refresh: bool = True) -> StatusResult:
        """Query the settlement status of a transaction.

        Args:
            transaction_id: Backend transaction id.
            refresh: Ask the backend to re-query the payment gateway.
        """
        data = await self._request(
            "GET",
            f"/transactions/{transaction_id}",
            params={"refresh": "true" if refresh else "false"},
        )
        return _decode(
            lambda body: StatusResult.from_dict(transaction_id, body), data, "check_status"
        )

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    async def list_templates(self, project_id: int) -> list[ContractTemplate]:
        """List the contract templates attached to a project."""
        data = await self._request("GET", "/contracts/templates", params={"project": project_id})
        items = data.get("data", []) if isinstance(data, dict) else data
        return _decode(
            lambda body: [ContractTemplate.from_dict(item) for item in body], items, "list_templates"
        )

    async def fetch_document(self, file_url: str) -> bytes:
        """Download template bytes. Relative URLs resolve against the backend."""
        client = self._ensure_connected()
        url = self.resolve_url(file_url)
        try:
            response = await client.get(url)
        except httpx.HTTPError as exc:
            raise NetworkError(f"template download failed: {exc}") from exc
        if response.status_code != 200:
            self._raise_for_status(response, "fetch_document")
        return response.content

    async def sign_contract(
        self,
        signed_pdf: bytes,
        *,
        file_name: str,
        template_id: int,
        project_id: int,
        signer_id: int,
        code: str,
        location: GeoLocation | None = None,
        transaction_id: int | None = None,
    ) -> SignedContractReceipt:
        """Upload the visually signed PDF for hashing and storage.

        The backend computes and stores the integrity hash.
        """
        form: dict[str, str] = {
            "templateId": str(template_id),
            "projectId": str(project_id),
            "signerId": str(signer_id),
            "code": code,
        }
        if transaction_id is not None:
            form["transactionId"] = str(transaction_id)
        if location is not None:
            form["latitude"] = location.lat
            form["longitude"] = location.lng

        data = await self._request(
            "POST",
            "/contracts/sign",
            data=form,
            files={"pdfFile": (file_name, signed_pdf, "application/pdf")},
        )
        return _decode(SignedContractReceipt.from_dict, data, "sign_contract")

    async def list_signed_contracts(self) -> list[dict[str, Any]]:
        """Signed contracts of the authenticated user."""
        data = await self._request("GET", "/contracts/mine")
        return data.get("data", []) if isinstance(data, dict) else list(data)

    def download_url(self, contract_id: int) -> str:
        """Absolute download URL of a signed contract."""
        return f"{self.base_url}/contracts/download/{contract_id}"

    def resolve_url(self, file_url: str) -> str:
        """Return *file_url* as an absolute URL."""
        if file_url.startswith(("http://", "https://")):
            return file_url
        return f"{self.base_url}/{file_url.lstrip('/')}"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "Gateway client not connected. Call connect() first."
            raise GatewayError(msg, status_code=500)
        return self._client

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and return the decoded JSON body."""
        client = self._ensure_connected()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkError(f"could not reach the backend: {exc}") from exc

        if not response.is_success:
            self._raise_for_status(response, f"{method} {path}")

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            logger.warning("%s %s returned a non-JSON body", method, path)
            raise GatewayError(_UNREADABLE_MESSAGE, status_code=502) from exc
        if isinstance(body, dict) and body.get("success") is False:
            raise GatewayError(
                body.get("error") or body.get("message") or _FALLBACK_MESSAGE,
                status_code=400,
                error_code=body.get("code") or "",
            )
        return body

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        """Raise a GatewayError from a non-2xx response."""
        status = response.status_code
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        message = body.get("message") or body.get("error") or body.get("detail") or _FALLBACK_MESSAGE
        attempts = body.get("attemptsRemaining")
        logger.info("%s rejected (%d): %s", operation, status, message)
        raise GatewayError(
            message,
            status_code=status,
            error_code=body.get("code") or "",
            action_required=body.get("action_required") or "",
            attempts_remaining=None if attempts is None else int(attempts),
        )


def _decode(parse: Callable[[Any], T], data: Any, operation: str) -> T:
    """Run a model decoder, turning a malformed body into a GatewayError."""
    try:
        return parse(data)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        logger.warning("%s returned an unexpected body: %s", operation, exc)
        raise GatewayError(_UNREADABLE_MESSAGE, status_code=502) from exc
