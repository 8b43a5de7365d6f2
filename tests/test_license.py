"""Tests for the licensing backend client."""

import asyncio

import httpx

from auto_accept.license import LicenseVerifier, parse_license_payload
from auto_accept.models import Plan


def _verifier(handler):
    return LicenseVerifier(api_base="https://licensing.test/api", transport=httpx.MockTransport(handler))


def test_parse_requires_pro_flag_and_valid_plan():
    assert parse_license_payload({"isPro": True, "plan": "Lifetime"}).is_entitled
    assert parse_license_payload({"isPro": True, "plan": "monthly"}).plan == Plan.monthly
    assert not parse_license_payload({"isPro": True, "plan": "pro"}).is_entitled
    assert not parse_license_payload({"isPro": "true", "plan": "monthly"}).is_entitled
    assert not parse_license_payload({"isPro": False, "plan": "lifetime"}).is_entitled
    assert not parse_license_payload(["not", "a", "dict"]).is_entitled


def test_verify_sends_user_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["user"] = request.url.params.get("userId")
        return httpx.Response(200, json={"isPro": True, "plan": "lifetime"})

    result = asyncio.run(_verifier(handler).verify("user-1"))
    assert result.is_entitled
    assert result.plan == Plan.lifetime
    assert seen == {"path": "/api/check-license", "user": "user-1"}


def test_verify_fails_soft_on_transport_error():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    result = asyncio.run(_verifier(handler).verify("user-1"))
    assert not result.is_entitled
    assert result.plan == Plan.none


def test_verify_fails_soft_on_bad_json_and_http_error():
    assert not asyncio.run(_verifier(lambda r: httpx.Response(200, text="<html>")).verify("u")).is_entitled
    assert not asyncio.run(_verifier(lambda r: httpx.Response(503)).verify("u")).is_entitled


def test_verify_without_user_skips_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"isPro": True, "plan": "lifetime"})

    assert not asyncio.run(_verifier(handler).verify(None)).is_entitled
    assert calls == []


def test_cancel_subscription():
    def ok(request):
        assert request.method == "POST"
        assert request.url.path == "/api/cancel-subscription"
        return httpx.Response(200, json={})

    assert asyncio.run(_verifier(ok).cancel_subscription("user-1")) is True
    assert asyncio.run(_verifier(lambda r: httpx.Response(500)).cancel_subscription("user-1")) is False
