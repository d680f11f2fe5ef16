"""存储服务模块

提供Cloudflare R2对象存储上传、公开URL推导和预签名下载URL生成
"""

import asyncio
import uuid
from datetime import datetime
from pathlib import PurePosixPath
from typing import Any, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ReadTimeoutError,
)
from loguru import logger

from app.core.config import Settings
from app.shared.exceptions import StorageError

from .models import StoredAsset


def clean_filename(filename: str) -> str:
    """清理文件名，只保留字母数字和 .-_"""
    cleaned = "".join(c for c in filename if c.isalnum() or c in ".-_")
    return cleaned or "file"


class R2StorageService:
    """Cloudflare R2存储服务

    上传文件并返回公开URL；每个进程在启动时构造一次，之后只读
    """

    def __init__(
        self,
        bucket_name: str,
        public_base_url: str,
        s3_client: Any,
        download_url_expires_in: int = 3600,
    ) -> None:
        """初始化R2存储服务

        Args:
            bucket_name: 存储桶名称
            public_base_url: 存储桶公开访问基础URL
            s3_client: boto3 S3客户端
            download_url_expires_in: 预签名下载URL过期时间（秒）
        """
        self.bucket_name = bucket_name
        self.public_base_url = public_base_url.rstrip("/")
        self.s3_client = s3_client
        self.download_url_expires_in = download_url_expires_in

    @classmethod
    def from_settings(cls, settings: Settings) -> "R2StorageService":
        """根据配置创建存储服务

        Raises:
            ConfigurationError: 缺少必需的环境变量
        """
        settings.require_storage_credentials()

        s3_client = boto3.client(
            "s3",
            endpoint_url=settings.r2_endpoint,
            aws_access_key_id=settings.r2_access_key_id,
            aws_secret_access_key=settings.r2_secret_access_key,
            region_name=settings.region_name,
            config=Config(
                signature_version="s3v4",
                connect_timeout=settings.storage_connect_timeout,
                read_timeout=settings.storage_read_timeout,
                # 不自动重试，失败直接返回给客户端
                retries={"total_max_attempts": 1, "mode": "standard"},
            ),
        )

        logger.info(f"R2存储服务已初始化，端点: {settings.r2_endpoint}，存储桶: {settings.r2_bucket_name}")
        return cls(
            bucket_name=settings.r2_bucket_name,
            public_base_url=settings.r2_public_base_url,
            s3_client=s3_client,
            download_url_expires_in=settings.download_url_expires_in,
        )

    def _generate_file_key(self, filename: str) -> tuple[str, str]:
        """生成唯一的文件存储键名

        格式: uploads/{year}/{month}/{uuid}_{filename}

        Returns:
            tuple[str, str]: (文件唯一标识, 存储键名)
        """
        now = datetime.utcnow()
        asset_id = uuid.uuid4().hex
        return asset_id, f"uploads/{now.year}/{now.month:02d}/{asset_id}_{clean_filename(filename)}"

    def public_url_for(self, key: str) -> str:
        """由存储键名推导公开访问URL"""
        return f"{self.public_base_url}/{quote(key, safe='/')}"

    def _put_object(self, key: str, content: bytes, content_type: str) -> None:
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=content,
                ContentType=content_type,
            )
        except (ConnectTimeoutError, ReadTimeoutError) as e:
            logger.error(f"上传文件超时: {key}: {e}")
            raise StorageError(f"Storage request timed out: {e}", status_code=504) from e
        except ClientError as e:
            error = e.response.get("Error", {})
            remote_status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            message = error.get("Message") or error.get("Code") or str(e)
            logger.error(f"上传文件失败: {key}: {remote_status} {message}")
            raise StorageError(message, remote_status=remote_status) from e
        except BotoCoreError as e:
            logger.error(f"存储服务不可用: {key}: {e}")
            raise StorageError(str(e)) from e

    def _generate_download_url(self, key: str, filename: str) -> Optional[str]:
        """生成预签名下载URL

        生成失败时只记录日志，下载URL是可选字段
        """
        try:
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params={
                    "Bucket": self.bucket_name,
                    "Key": key,
                    "ResponseContentDisposition": f'attachment; filename="{clean_filename(filename)}"',
                },
                ExpiresIn=self.download_url_expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"生成预签名下载URL失败: {key}: {e}")
            return None

    async def store(
        self,
        content: bytes,
        content_type: str,
        filename: str,
        key: Optional[str] = None,
    ) -> StoredAsset:
        """上传文件到R2

        Args:
            content: 文件内容
            content_type: 文件MIME类型
            filename: 原始文件名
            key: 指定存储键名，未指定时自动生成；指定时标识取自键名，且不生成下载URL

        Returns:
            StoredAsset: 已存储文件

        Raises:
            StorageError: 远程存储拒绝或失败
        """
        generated = key is None
        if generated:
            asset_id, key = self._generate_file_key(filename)
        else:
            asset_id = PurePosixPath(key).stem

        await asyncio.to_thread(self._put_object, key, content, content_type)
        logger.info(f"文件已上传: {key} ({len(content)} bytes, {content_type})")

        download_url = None
        if generated:
            download_url = await asyncio.to_thread(self._generate_download_url, key, filename)

        return StoredAsset(
            asset_id=asset_id,
            key=key,
            public_url=self.public_url_for(key),
            download_url=download_url,
            content_type=content_type,
            size=len(content),
        )
