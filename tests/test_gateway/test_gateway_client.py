"""Tests for the transaction backend client — uses httpx mock transport."""

from __future__ import annotations

import json

import httpx
import pytest

from contract_checkout.config.settings import BackendConfig
from contract_checkout.errors.gateway_errors import ErrorKind, GatewayError, NetworkError
from contract_checkout.gateway.client import GatewayClient
from contract_checkout.gateway.models import GeoLocation, TransactionKind, TransactionStatus

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config(**overrides) -> BackendConfig:
    defaults = {"url": "https://api.test/api/", "token": "jwt-token", "timeout": 5.0}
    defaults.update(overrides)
    return BackendConfig(**defaults)


async def _client(handler, **overrides) -> GatewayClient:
    gateway = GatewayClient(_config(**overrides))
    await gateway.connect()
    await gateway._client.aclose()
    gateway._client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="https://api.test/api"
    )
    return gateway


# ---------------------------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------------------------


class TestGatewayLifecycle:
    async def test_not_connected_by_default(self):
        assert GatewayClient(_config()).is_connected is False

    async def test_connect_and_close(self):
        gateway = GatewayClient(_config())
        await gateway.connect()
        assert gateway.is_connected is True
        assert gateway._client.headers["Authorization"] == "Bearer jwt-token"
        await gateway.close()
        assert gateway.is_connected is False

    async def test_no_token_no_auth_header(self):
        gateway = GatewayClient(_config(token=""))
        await gateway.connect()
        assert "Authorization" not in gateway._client.headers
        await gateway.close()

    async def test_close_idempotent(self):
        gateway = GatewayClient(_config())
        await gateway.close()
        assert gateway.is_connected is False

    async def test_not_connected_raises(self):
        gateway = GatewayClient(_config())
        with pytest.raises(GatewayError, match="not connected"):
            await gateway.initiate(TransactionKind.INVESTMENT, 7)

    def test_base_url_strips_trailing_slash(self):
        assert GatewayClient(_config()).base_url == "https://api.test/api"


# ---------------------------------------------------------------------------
# Initiation and 2FA confirmation
# ---------------------------------------------------------------------------


class TestInitiate:
    async def test_investment_redirect(self):
        def handler(request: httpx.Request):
            assert request.method == "POST"
            assert request.url.path == "/api/investments"
            assert json.loads(request.content) == {"projectId": 7}
            return httpx.Response(
                200,
                json={"success": True, "inversionId": 42, "init_point": "https://pay/42"},
            )

        gateway = await _client(handler)
        result = await gateway.initiate(TransactionKind.INVESTMENT, 7)
        assert result.transaction_id == 42
        assert result.redirect_url == "https://pay/42"
        assert result.is_redirect is True
        await gateway.close()

    async def test_return_url_is_sent_when_configured(self):
        def handler(request: httpx.Request):
            assert json.loads(request.content) == {
                "projectId": 7,
                "returnUrl": "https://app.test/checkout",
            }
            return httpx.Response(200, json={"success": True, "transactionId": 1})

        gateway = await _client(handler, return_url="https://app.test/checkout")
        result = await gateway.initiate(TransactionKind.SUBSCRIPTION, 7)
        assert result.transaction_id == 1
        await gateway.close()

    async def test_subscription_two_factor(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/api/subscriptions"
            return httpx.Response(
                200, json={"is2FARequired": True, "pendingTransactionId": 9, "message": "Code sent"}
            )

        gateway = await _client(handler)
        result = await gateway.initiate(TransactionKind.SUBSCRIPTION, 7)
        assert result.is_2fa_required is True
        assert result.pending_transaction_id == 9
        assert result.message == "Code sent"
        assert result.is_redirect is False
        await gateway.close()

    async def test_preference_init_point(self):
        def handler(request: httpx.Request):
            return httpx.Response(
                200,
                json={"data": {"transaccionId": "5", "preference": {"init_point": "https://mp"}}},
            )

        gateway = await _client(handler)
        result = await gateway.initiate(TransactionKind.INVESTMENT, 7)
        assert result.transaction_id == 5
        assert result.redirect_url == "https://mp"
        await gateway.close()

    async def test_confirm_two_factor(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/api/investments/confirm-2fa"
            assert json.loads(request.content) == {"transactionId": 42, "code": "123456"}
            return httpx.Response(200, json={"redirectUrl": "https://pay", "transactionId": 42})

        gateway = await _client(handler)
        result = await gateway.confirm_two_factor(TransactionKind.INVESTMENT, 42, "123456")
        assert result.redirect_url == "https://pay"
        await gateway.close()

    async def test_success_false_body_raises(self):
        def handler(request: httpx.Request):
            return httpx.Response(200, json={"success": False, "error": "Project closed"})

        gateway = await _client(handler)
        with pytest.raises(GatewayError, match="Project closed") as exc_info:
            await gateway.initiate(TransactionKind.INVESTMENT, 7)
        assert exc_info.value.kind is ErrorKind.VALIDATION
        await gateway.close()


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrors:
    async def test_two_factor_code(self):
        def handler(request: httpx.Request):
            return httpx.Response(
                401,
                json={"message": "Código incorrecto", "code": "2fa-invalid", "attemptsRemaining": 2},
            )

        gateway = await _client(handler)
        with pytest.raises(GatewayError) as exc_info:
            await gateway.confirm_two_factor(TransactionKind.INVESTMENT, 42, "000000")
        err = exc_info.value
        assert err.message == "Código incorrecto"
        assert err.is_two_factor is True
        assert err.attempts_remaining == 2
        await gateway.close()

    async def test_action_required(self):
        def handler(request: httpx.Request):
            return httpx.Response(403, json={"error": "KYC needed", "action_required": "kyc"})

        gateway = await _client(handler)
        with pytest.raises(GatewayError) as exc_info:
            await gateway.initiate(TransactionKind.INVESTMENT, 7)
        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED
        assert exc_info.value.action_required == "kyc"
        await gateway.close()

    async def test_rate_limited(self):
        def handler(request: httpx.Request):
            return httpx.Response(429, json={"detail": "Too many attempts"})

        gateway = await _client(handler)
        with pytest.raises(GatewayError, match="Too many attempts") as exc_info:
            await gateway.confirm_two_factor(TransactionKind.SUBSCRIPTION, 1, "123456")
        assert exc_info.value.status_code == 429
        await gateway.close()

    async def test_non_json_error_body(self):
        def handler(request: httpx.Request):
            return httpx.Response(500, text="<html>oops</html>")

        gateway = await _client(handler)
        with pytest.raises(GatewayError) as exc_info:
            await gateway.check_status(42)
        assert exc_info.value.kind is ErrorKind.SERVER
        assert exc_info.value.message
        await gateway.close()

    async def test_html_success_body(self):
        def handler(request: httpx.Request):
            return httpx.Response(200, text="<html>proxy</html>")

        gateway = await _client(handler)
        with pytest.raises(GatewayError) as exc_info:
            await gateway.initiate(TransactionKind.INVESTMENT, 7)
        assert exc_info.value.status_code == 502
        assert exc_info.value.kind is ErrorKind.SERVER
        await gateway.close()

    @pytest.mark.parametrize("body", [[1, 2], {"transactionId": "abc"}])
    async def test_malformed_success_body(self, body):
        def handler(request: httpx.Request):
            return httpx.Response(200, json=body)

        gateway = await _client(handler)
        with pytest.raises(GatewayError) as exc_info:
            await gateway.initiate(TransactionKind.INVESTMENT, 7)
        assert exc_info.value.status_code == 502
        await gateway.close()

    async def test_malformed_template_list(self):
        def handler(request: httpx.Request):
            return httpx.Response(200, json={"data": [{"fileUrl": "/c.pdf"}]})

        gateway = await _client(handler)
        with pytest.raises(GatewayError):
            await gateway.list_templates(7)
        await gateway.close()

    async def test_transport_failure_is_network_error(self):
        def handler(request: httpx.Request):
            raise httpx.ConnectError("refused", request=request)

        gateway = await _client(handler)
        with pytest.raises(NetworkError):
            await gateway.check_status(42)
        await gateway.close()


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


class TestCheckStatus:
    async def test_refresh_param_and_mapping(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/api/transactions/42"
            assert request.url.params["refresh"] == "true"
            return httpx.Response(
                200,
                json={"transaccion": {"estado": "pagado"}, "pagoPasarela": {"estado": "approved"}},
            )

        gateway = await _client(handler)
        result = await gateway.check_status(42)
        assert result.raw_status == "pagado"
        assert result.gateway_status == "approved"
        assert result.status is TransactionStatus.APPROVED
        await gateway.close()

    async def test_no_refresh(self):
        def handler(request: httpx.Request):
            assert request.url.params["refresh"] == "false"
            return httpx.Response(200, json={"status": "pendiente"})

        gateway = await _client(handler)
        result = await gateway.check_status(42, refresh=False)
        assert result.status is TransactionStatus.AWAITING_GATEWAY
        await gateway.close()


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


class TestContracts:
    async def test_list_templates(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/api/contracts/templates"
            assert request.url.params["project"] == "7"
            return httpx.Response(
                200,
                json={
                    "data": [
                        {"id": 1, "id_proyecto": 7, "url_archivo": "/f/a.pdf", "activo": False},
                        {"id": 2, "projectId": 7, "fileUrl": "/f/b.pdf", "version": 3},
                    ]
                },
            )

        gateway = await _client(handler)
        templates = await gateway.list_templates(7)
        assert [t.id for t in templates] == [1, 2]
        assert templates[0].is_ready is False
        assert templates[1].is_ready is True
        assert templates[1].version == 3
        await gateway.close()

    async def test_fetch_document_relative_url(self):
        def handler(request: httpx.Request):
            assert str(request.url) == "https://api.test/api/files/c.pdf"
            return httpx.Response(200, content=b"%PDF-1.4 ...")

        gateway = await _client(handler)
        assert await gateway.fetch_document("/files/c.pdf") == b"%PDF-1.4 ..."
        await gateway.close()

    async def test_fetch_document_missing(self):
        def handler(request: httpx.Request):
            return httpx.Response(404, json={"message": "Not found"})

        gateway = await _client(handler)
        with pytest.raises(GatewayError, match="Not found"):
            await gateway.fetch_document("https://cdn.test/c.pdf")
        await gateway.close()

    async def test_sign_contract_multipart(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/api/contracts/sign"
            assert request.headers["content-type"].startswith("multipart/form-data")
            body = request.content
            assert b'name="pdfFile"; filename="firmado_contrato.pdf"' in body
            assert b"%PDF-signed" in body
            assert b'name="templateId"' in body
            assert b'name="code"\r\n\r\n123456' in body
            assert b'name="latitude"\r\n\r\n-34.6' in body
            assert b'name="transactionId"\r\n\r\n42' in body
            return httpx.Response(
                201,
                json={"message": "Contrato firmado", "data": {"id": 77, "hash_archivo_firmado": "ab"}},
            )

        gateway = await _client(handler)
        receipt = await gateway.sign_contract(
            b"%PDF-signed",
            file_name="firmado_contrato.pdf",
            template_id=5,
            project_id=7,
            signer_id=3,
            code="123456",
            location=GeoLocation(lat="-34.6", lng="-58.4"),
            transaction_id=42,
        )
        assert receipt.id == 77
        assert receipt.file_hash == "ab"
        assert receipt.message == "Contrato firmado"
        await gateway.close()

    async def test_list_signed_contracts(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/api/contracts/mine"
            return httpx.Response(200, json=[{"id": 1}, {"id": 2}])

        gateway = await _client(handler)
        assert await gateway.list_signed_contracts() == [{"id": 1}, {"id": 2}]
        await gateway.close()

    def test_download_url(self):
        gateway = GatewayClient(_config())
        assert gateway.download_url(77) == "https://api.test/api/contracts/download/77"

    def test_resolve_url_absolute(self):
        gateway = GatewayClient(_config())
        assert gateway.resolve_url("https://cdn.test/a.pdf") == "https://cdn.test/a.pdf"
