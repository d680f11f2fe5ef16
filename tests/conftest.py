"""Pytest配置和公共fixture"""

import uuid
from typing import AsyncGenerator, Callable, Optional

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.core.config import Settings
from app.dependencies import get_upload_service
from app.features.qr.models import QrArtifact
from app.features.qr.service import QrIssuer
from app.features.storage.models import StoredAsset
from app.features.upload.models import UploadPolicy
from app.features.upload.service import UploadService
from app.main import create_app

PUBLIC_BASE_URL = "https://pub-test.r2.dev"


class FakeStorage:
    """内存中的存储，记录每次调用"""

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.calls: list[dict] = []
        self.objects: dict[str, bytes] = {}

    async def store(
        self,
        content: bytes,
        content_type: str,
        filename: str,
        key: Optional[str] = None,
    ) -> StoredAsset:
        self.calls.append({"filename": filename, "content_type": content_type, "key": key})
        if self.error is not None:
            raise self.error

        asset_id = uuid.uuid4().hex
        key = key or f"uploads/{asset_id}_{filename}"
        self.objects[key] = content
        public_url = f"{PUBLIC_BASE_URL}/{key}"
        return StoredAsset(
            asset_id=asset_id,
            key=key,
            public_url=public_url,
            download_url=f"{public_url}?X-Amz-Signature=test",
            content_type=content_type,
            size=len(content),
        )

    def fetch(self, url: str) -> bytes:
        """模拟直接访问公开URL"""
        return self.objects[url.removeprefix(f"{PUBLIC_BASE_URL}/")]


class FakeQrIssuer:
    """可配置失败的二维码签发器"""

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def issue(self, target_url: str, asset_id: str) -> QrArtifact:
        self.calls.append((target_url, asset_id))
        if self.error is not None:
            raise self.error
        return QrArtifact(
            image=b"\x89PNG\r\n\x1a\n",
            url=f"{PUBLIC_BASE_URL}/qrcodes/{asset_id}.png",
            target_url=target_url,
        )


def make_settings(**overrides) -> Settings:
    values = {
        "r2_account_id": "test-account",
        "r2_access_key_id": "test-key",
        "r2_secret_access_key": "test-secret",
        "r2_bucket_name": "linksnap-test",
        "r2_public_base_url": PUBLIC_BASE_URL,
        "cors_origin": None,
        "upload_max_bytes": 1024,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def fake_qr() -> FakeQrIssuer:
    return FakeQrIssuer()


@pytest.fixture
def build_app() -> Callable[..., FastAPI]:
    """按给定配置和协作者构造应用"""

    def _build(settings: Settings, storage, qr_issuer=None) -> FastAPI:
        app = create_app(settings)
        service = UploadService(
            storage=storage,
            qr_issuer=qr_issuer or QrIssuer(storage),
            policy=UploadPolicy.from_settings(settings),
        )
        app.dependency_overrides[get_upload_service] = lambda: service
        return app

    return _build


@pytest.fixture
async def client(build_app, settings, fake_storage) -> AsyncGenerator[AsyncClient, None]:
    """使用真实二维码签发器和内存存储的客户端"""
    app = build_app(settings, fake_storage)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
