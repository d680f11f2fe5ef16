"""跨域来源策略和中间件测试"""

import re

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.cors import OriginPolicy, compile_wildcard
from conftest import make_settings

CONFIG = "https://a.com,https://*.b.com"


class TestOriginPolicy:
    """OriginPolicy 判断规则"""

    @pytest.mark.parametrize("raw", [None, "", "   ", "*", CONFIG, "https://only.example"])
    def test_missing_origin_always_allowed(self, raw):
        policy = OriginPolicy.from_config(raw)
        assert policy.is_allowed(None)
        assert policy.is_allowed("")

    @pytest.mark.parametrize("raw", [None, "", "*"])
    @pytest.mark.parametrize("origin", ["https://a.com", "http://localhost:3000", "null", "anything"])
    def test_open_policy_allows_everything(self, raw, origin):
        policy = OriginPolicy.from_config(raw)
        assert policy.allow_all
        assert policy.is_allowed(origin)

    @pytest.mark.parametrize(
        "origin, allowed",
        [
            ("https://a.com", True),
            ("https://x.b.com", True),
            ("https://deep.x.b.com", True),
            ("https://a.com.evil.com", False),
            ("http://a.com", False),
            ("https://b.com", False),
            ("https://x.b.com.evil.com", False),
            ("https://x.bxcom", False),
        ],
    )
    def test_exact_and_wildcard_matching(self, origin, allowed):
        policy = OriginPolicy.from_config(CONFIG)
        assert policy.is_allowed(origin) is allowed

    def test_tokens_are_trimmed_and_empty_tokens_dropped(self):
        policy = OriginPolicy.from_config(" https://a.com , ,https://*.b.com,, ")
        assert policy.exact == frozenset({"https://a.com"})
        assert len(policy.patterns) == 1

    def test_patterns_compiled_once(self):
        policy = OriginPolicy.from_config(CONFIG)
        assert all(isinstance(p, re.Pattern) for p in policy.patterns)

    def test_special_characters_are_literal(self):
        pattern = compile_wildcard("https://*.b.com")
        assert pattern.fullmatch("https://x.b.com")
        # 点号不能匹配任意字符
        assert not pattern.fullmatch("https://x.bXcom")

    def test_evaluation_failure_is_denied(self):
        class BrokenPattern:
            def fullmatch(self, origin):
                raise RuntimeError("boom")

        policy = OriginPolicy(allow_all=False, exact=frozenset(), patterns=(BrokenPattern(),))
        assert policy.is_allowed("https://a.com") is False


@pytest.fixture
async def restricted_client(build_app, fake_storage, fake_qr):
    app = build_app(make_settings(cors_origin=CONFIG), fake_storage, fake_qr)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


class TestOriginPolicyMiddleware:
    """中间件行为"""

    async def test_preflight_allowed(self, restricted_client):
        response = await restricted_client.options(
            "/upload",
            headers={"Origin": "https://x.b.com", "Access-Control-Request-Method": "POST"},
        )
        assert response.status_code == 204
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == "https://x.b.com"
        assert response.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"
        assert response.headers["access-control-allow-headers"] == "Content-Type"
        assert response.headers["access-control-max-age"] == "86400"
        assert "Origin" in response.headers["vary"]

    async def test_preflight_denied_has_no_allow_headers(self, restricted_client):
        response = await restricted_client.options(
            "/upload",
            headers={"Origin": "https://a.com.evil.com", "Access-Control-Request-Method": "POST"},
        )
        assert response.status_code == 204
        assert response.content == b""
        assert "access-control-allow-origin" not in response.headers
        assert "access-control-allow-methods" not in response.headers

    async def test_options_without_origin(self, restricted_client):
        response = await restricted_client.options("/upload")
        assert response.status_code == 204
        assert "access-control-allow-origin" not in response.headers

    async def test_denied_request_is_not_processed(self, restricted_client, fake_storage, fake_qr):
        response = await restricted_client.post(
            "/upload",
            headers={"Origin": "http://a.com"},
            files={"file": ("note.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 403
        assert "access-control-allow-origin" not in response.headers
        assert response.json()["error_type"] == "PolicyDenied"
        assert fake_storage.calls == []
        assert fake_qr.calls == []

    async def test_allowed_request_echoes_origin(self, restricted_client, fake_storage):
        response = await restricted_client.post(
            "/upload",
            headers={"Origin": "https://a.com"},
            files={"file": ("note.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "https://a.com"
        assert "Origin" in response.headers["vary"]
        assert len(fake_storage.calls) == 1

    async def test_allowed_error_response_keeps_cors_headers(self, restricted_client):
        response = await restricted_client.post("/upload", headers={"Origin": "https://a.com"})
        assert response.status_code == 400
        assert response.headers["access-control-allow-origin"] == "https://a.com"

    async def test_request_without_origin_passes(self, restricted_client):
        response = await restricted_client.get("/")
        assert response.status_code == 200
        assert "access-control-allow-origin" not in response.headers

    async def test_open_policy_uses_wildcard_header(self, client):
        response = await client.get("/", headers={"Origin": "https://anywhere.example"})
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

        preflight = await client.options(
            "/upload",
            headers={"Origin": "https://anywhere.example", "Access-Control-Request-Method": "POST"},
        )
        assert preflight.status_code == 204
        assert preflight.headers["access-control-allow-origin"] == "*"
