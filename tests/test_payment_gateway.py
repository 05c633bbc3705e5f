import asyncio

import pytest
from aiohttp import web

from consult_booking.application.errors import GatewayError
from consult_booking.application.ports.payment_gateway import PaymentCallbackPayload, signing_message
from consult_booking.infrastructure.payments.http_gateway import HttpPaymentGateway
from consult_booking.infrastructure.payments.signature import HmacSignatureVerifier, compute_signature


PAYLOAD = PaymentCallbackPayload(order_ref="order_1", payment_ref="pay_1", amount=500, currency="INR", status="captured")


def test_signing_message_is_canonical():
    message = signing_message("evt_1", 42, PAYLOAD)
    assert message == (
        b'{"amount":500,"appointment_id":42,"currency":"INR","event_id":"evt_1",'
        b'"order_ref":"order_1","payment_ref":"pay_1","status":"captured"}'
    )


def test_verifier_accepts_matching_signature():
    message = signing_message("evt_1", 42, PAYLOAD)
    verifier = HmacSignatureVerifier("whsec")
    assert verifier.verify(message, compute_signature("whsec", message)) is True
    assert verifier.verify(message, compute_signature("whsec", message).upper()) is True


def test_verifier_rejects_wrong_or_missing_signature():
    message = signing_message("evt_1", 42, PAYLOAD)
    verifier = HmacSignatureVerifier("whsec")
    assert verifier.verify(message, compute_signature("other", message)) is False
    assert verifier.verify(message, None) is False
    assert verifier.verify(message, "") is False


@pytest.mark.parametrize("signature", ["é" * 64, "ÿ" * 32, "z" * 64])
def test_verifier_rejects_non_hex_signature(signature):
    message = signing_message("evt_1", 42, PAYLOAD)
    assert HmacSignatureVerifier("whsec").verify(message, signature) is False


def test_verifier_without_secret_rejects_everything():
    message = signing_message("evt_1", 42, PAYLOAD)
    assert HmacSignatureVerifier("").verify(message, compute_signature("", message)) is False


async def _with_gateway_server(handler_map, fn):
    app = web.Application()
    for path, handler in handler_map.items():
        app.router.add_post(path, handler)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    port = runner.addresses[0][1]
    try:
        gateway = HttpPaymentGateway(base_url=f"http://127.0.0.1:{port}/v1", key_id="key", key_secret="secret", timeout_seconds=5)
        return await fn(gateway)
    finally:
        await runner.cleanup()


def test_http_gateway_creates_order_and_refund():
    seen = []

    async def orders(request):
        body = await request.json()
        seen.append(("orders", body, request.headers.get("Authorization", "")))
        return web.json_response({"id": "order_abc", "amount": body["amount"], "currency": body["currency"], "receipt": body["receipt"]})

    async def refund(request):
        seen.append(("refund", request.match_info["ref"], await request.json()))
        return web.json_response({"id": "rfnd_abc"})

    async def run(gateway):
        order = await gateway.create_order(500, "INR", "appt-1")
        refund_ref = await gateway.refund("pay_1", 500, "INR")
        return order, refund_ref

    order, refund_ref = asyncio.run(_with_gateway_server(
        {"/v1/orders": orders, "/v1/payments/{ref}/refund": refund}, run
    ))

    assert order.order_id == "order_abc"
    assert order.amount == 500
    assert refund_ref == "rfnd_abc"
    assert seen[0][2].startswith("Basic ")
    assert seen[1][:2] == ("refund", "pay_1")


def test_http_gateway_error_status_raises():
    async def orders(request):
        return web.json_response({"error": "bad key"}, status=401)

    async def run(gateway):
        return await gateway.create_order(500, "INR", "appt-1")

    with pytest.raises(GatewayError):
        asyncio.run(_with_gateway_server({"/v1/orders": orders}, run))
