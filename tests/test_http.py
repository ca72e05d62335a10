"""
Webhook ingress over HTTP, driven through httpx's ASGI transport.
"""

import json

import httpx
import pytest
import pytest_asyncio

from ordercore.domain import LineRequest, Order, PaymentProvider, Product
from ordercore.http import create_app
from ordercore.orders import OrderService
from ordercore.providers import StripeGateway, sign
from ordercore.settlement import SettlementEngine

from tests.conftest import WEBHOOK_SECRET


@pytest_asyncio.fixture
async def order(memory_store, seed, ledger, auditor, settings, customer, shipping) -> Order:
    await seed(memory_store, Product("p1", "Mug", price=500, stock=3))
    service = OrderService(memory_store, ledger, auditor, settings)
    return (await service.create_order(customer, [LineRequest("p1", 1)], shipping)).unwrap()


@pytest.fixture
def settlement(memory_store, ledger, auditor, settings, gateway) -> SettlementEngine:
    return SettlementEngine(
        memory_store, ledger, auditor, {PaymentProvider.RAZORPAY: gateway}, settings
    )


def make_client(engine: SettlementEngine, settings) -> httpx.AsyncClient:
    app = create_app(engine, settings)
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


def signed(payload: dict) -> tuple[bytes, dict[str, str]]:
    body = json.dumps(payload).encode()
    return body, {"x-webhook-signature": sign(WEBHOOK_SECRET, body)}


class TestPaymentWebhook:
    @pytest.mark.asyncio
    async def test_missing_signature(self, settlement, settings):
        async with make_client(settlement, settings) as client:
            response = await client.post("/webhooks/payment", content=b"{}")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_signature(self, settlement, settings):
        async with make_client(settlement, settings) as client:
            response = await client.post(
                "/webhooks/payment",
                content=b"{}",
                headers={"x-webhook-signature": "bad"},
            )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_non_ascii_signature(self, settlement, settings):
        async with make_client(settlement, settings) as client:
            response = await client.post(
                "/webhooks/payment",
                content=b"{}",
                headers={"x-webhook-signature": b"\xe9abc"},
            )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid webhook signature"

    @pytest.mark.asyncio
    async def test_success(self, settlement, settings, order, customer):
        intent = (
            await settlement.create_payment_intent(order.id, customer, PaymentProvider.RAZORPAY)
        ).unwrap()
        body, headers = signed(
            {"event": "payment.success", "providerOrderId": intent.provider_ref, "amount": 500}
        )

        async with make_client(settlement, settings) as client:
            response = await client.post("/webhooks/payment", content=body, headers=headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Webhook processed successfully"}

    @pytest.mark.asyncio
    async def test_razorpay_header_accepted(self, settlement, settings, order, customer):
        intent = (
            await settlement.create_payment_intent(order.id, customer, PaymentProvider.RAZORPAY)
        ).unwrap()
        body = json.dumps({"event": "payment.failed", "providerOrderId": intent.provider_ref}).encode()

        async with make_client(settlement, settings) as client:
            response = await client.post(
                "/webhooks/payment",
                content=body,
                headers={"x-razorpay-signature": sign(WEBHOOK_SECRET, body)},
            )

        assert response.json()["success"] is True

    @pytest.mark.asyncio
    async def test_processing_error_is_acknowledged(self, settlement, settings):
        body, headers = signed({"event": "payment.success", "providerOrderId": "order_NOPE"})

        async with make_client(settlement, settings) as client:
            response = await client.post("/webhooks/payment", content=body, headers=headers)

        assert response.status_code == 200
        payload = response.json()
        assert payload["success"] is False
        assert "order_NOPE" in payload["message"]

    @pytest.mark.asyncio
    async def test_unexpected_failure_hidden_in_production(self, settings):
        class Exploding:
            async def handle_provider_event(self, provider, payload, signature):
                raise RuntimeError("database on fire")

        async with make_client(Exploding(), settings.with_production()) as client:
            response = await client.post(
                "/webhooks/payment", content=b"{}", headers={"x-webhook-signature": "x"}
            )

        assert response.status_code == 200
        assert response.json() == {"success": False, "message": "Webhook processing failed"}

    @pytest.mark.asyncio
    async def test_unexpected_failure_detail_outside_production(self, settings):
        class Exploding:
            async def handle_provider_event(self, provider, payload, signature):
                raise RuntimeError("database on fire")

        async with make_client(Exploding(), settings) as client:
            response = await client.post(
                "/webhooks/payment", content=b"{}", headers={"x-webhook-signature": "x"}
            )

        assert response.json() == {"success": False, "message": "database on fire"}


class TestStripeWebhook:
    @pytest.mark.asyncio
    async def test_unconfigured_stripe_is_not_processed(self, settlement, settings):
        async with make_client(settlement, settings) as client:
            response = await client.post(
                "/webhooks/stripe", content=b"{}", headers={"stripe-signature": "t=1,v1=00"}
            )

        assert response.status_code == 200
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_missing_signature(self, settlement, settings):
        async with make_client(settlement, settings) as client:
            response = await client.post("/webhooks/stripe", content=b"{}")

        assert response.status_code == 401

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "header", [b"t=1700000000,v1=\xe9", b"t=1700000000,v1=" + b"0" * 64, b"garbage"]
    )
    async def test_unverifiable_signature(self, memory_store, ledger, auditor, settings, header):
        engine = SettlementEngine(
            memory_store,
            ledger,
            auditor,
            {PaymentProvider.STRIPE: StripeGateway("sk_test", "whsec_test")},
            settings,
        )

        async with make_client(engine, settings) as client:
            response = await client.post(
                "/webhooks/stripe", content=b"{}", headers={"stripe-signature": header}
            )

        assert response.status_code == 401


class TestSimulationEndpoints:
    @pytest.mark.asyncio
    async def test_success(self, settlement, settings, order, customer):
        intent = (
            await settlement.create_payment_intent(order.id, customer, PaymentProvider.RAZORPAY)
        ).unwrap()

        async with make_client(settlement, settings) as client:
            response = await client.post("/webhooks/test/success", json={"orderId": order.id})

        assert response.status_code == 200
        assert response.json()["message"] == f"Payment {intent.payment.id} marked as successful"

    @pytest.mark.asyncio
    async def test_failure(self, settlement, settings, order, customer):
        await settlement.create_payment_intent(order.id, customer, PaymentProvider.RAZORPAY)

        async with make_client(settlement, settings) as client:
            response = await client.post(
                "/webhooks/test/failure", json={"orderId": order.id, "reason": "Expired card"}
            )

        assert response.json()["message"].endswith("marked as failed")

    @pytest.mark.asyncio
    async def test_unknown_order(self, settlement, settings):
        async with make_client(settlement, settings) as client:
            response = await client.post("/webhooks/test/success", json={"orderId": "ghost"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_forbidden_in_production(self, memory_store, ledger, auditor, settings, gateway, order):
        production = settings.with_production()
        engine = SettlementEngine(
            memory_store, ledger, auditor, {PaymentProvider.RAZORPAY: gateway}, production
        )

        async with make_client(engine, production) as client:
            response = await client.post("/webhooks/test/success", json={"orderId": order.id})

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_order_id_required(self, settlement, settings):
        async with make_client(settlement, settings) as client:
            response = await client.post("/webhooks/test/success", json={})

        assert response.status_code == 422
