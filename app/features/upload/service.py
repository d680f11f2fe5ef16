"""上传服务模块

编排完整的上传流程：
Received -> Validated -> Stored -> QrIssued -> Responded，任一步失败进入 Errored
"""

from typing import Optional

from fastapi import UploadFile
from loguru import logger

from app.features.qr.service import QrIssuer
from app.features.storage.service import R2StorageService
from app.shared.exceptions import BaseAPIException, QrRenderError, StorageError, ValidationError

from .models import UploadPolicy, UploadRequest, UploadResult, resolve_content_type

FILE_FIELD = "file"


class UploadService:
    """上传编排服务

    每个请求独立处理，失败不重试，已存储的文件在二维码失败时不回滚
    """

    def __init__(
        self,
        storage: R2StorageService,
        qr_issuer: QrIssuer,
        policy: UploadPolicy,
    ) -> None:
        self.storage = storage
        self.qr_issuer = qr_issuer
        self.policy = policy

    async def receive(self, files: Optional[list[UploadFile]]) -> UploadRequest:
        """读取multipart中的文件字段

        最多读取 max_bytes + 1 个字节，超出部分不会进入内存

        Raises:
            ValidationError: 没有文件字段或文件字段不止一个
        """
        if not files:
            raise ValidationError(f"No file uploaded: expected a '{FILE_FIELD}' field")
        if len(files) > 1:
            raise ValidationError(f"Only one '{FILE_FIELD}' field is allowed, got {len(files)}")

        upload = files[0]
        try:
            content = await upload.read(self.policy.max_bytes + 1)
        finally:
            await upload.close()

        filename = upload.filename or "upload"
        return UploadRequest(
            content=content,
            content_type=resolve_content_type(upload.content_type, filename),
            filename=filename,
        )

    def validate(self, request: UploadRequest) -> None:
        """按上传策略校验文件

        Raises:
            ValidationError: 空文件(400)、超过大小上限(413)、类型不允许(415)
        """
        size = len(request.content)
        if size == 0:
            raise ValidationError("Uploaded file is empty")
        if size > self.policy.max_bytes:
            raise ValidationError(
                f"File too large: maximum is {self.policy.max_bytes} bytes",
                status_code=413,
            )
        if not self.policy.accepts_type(request.content_type, request.extension):
            raise ValidationError(
                f"Unsupported file type: {request.content_type}",
                status_code=415,
            )

    async def process(self, request: UploadRequest) -> UploadResult:
        """执行上传流程

        Args:
            request: 上传请求

        Returns:
            UploadResult: 公开URL、二维码URL等

        Raises:
            ValidationError: 校验失败，不发起远程调用
            StorageError: 存储失败，不生成二维码；未预期的存储错误也转换为此异常
            QrRenderError: 二维码失败，已存储的文件保留；未预期的签发错误也转换为此异常
        """
        logger.info(f"[Received] {request.filename} ({len(request.content)} bytes, {request.content_type})")
        state = "Received"
        try:
            self.validate(request)
            state = "Validated"

            try:
                asset = await self.storage.store(
                    request.content,
                    request.content_type,
                    request.filename,
                )
            except BaseAPIException:
                raise
            except Exception as e:
                logger.exception(f"存储时发生未预期的错误: {request.filename}")
                raise StorageError(f"Storage failed: {e}") from e
            state = "Stored"
            logger.info(f"[Stored] {asset.key} -> {asset.public_url}")

            try:
                artifact = await self.qr_issuer.issue(asset.public_url, asset.asset_id)
            except BaseAPIException:
                # 不做补偿删除，文件仍可通过公开URL访问
                logger.warning(f"二维码生成失败，已存储文件保留: {asset.public_url}")
                raise
            except Exception as e:
                logger.exception(f"二维码生成时发生未预期的错误，已存储文件保留: {asset.public_url}")
                raise QrRenderError(f"QR code generation failed: {e}") from e
            state = "QrIssued"
            logger.info(f"[QrIssued] {artifact.url}")
        except BaseAPIException as e:
            logger.warning(f"[Errored] 上传在 {state} 之后失败: {e.status_code} {e.detail}")
            raise

        result = UploadResult(
            public_file_url=asset.public_url,
            qr_code_url=artifact.url,
            download_file_url=asset.download_url,
            qr_target_url=artifact.target_url,
            original_file_name=request.filename,
            mime_type=request.content_type,
        )
        logger.info(f"[Responded] {request.filename}")
        return result
