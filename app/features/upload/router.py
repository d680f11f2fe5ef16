"""上传功能路由模块

提供文件上传并生成二维码的API端点
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Response, UploadFile, status

from app.dependencies import get_upload_service

from .models import UploadResult
from .service import UploadService


router = APIRouter()


@router.post(
    "/upload",
    response_model=UploadResult,
    response_model_exclude_none=True,
    summary="上传文件并生成二维码",
    description="上传单个文件到R2存储，返回公开访问URL和指向该URL的二维码图片URL"
)
async def upload_file(
    file: Optional[list[UploadFile]] = File(default=None, description="待上传文件（图片、PDF或文本）"),
    upload_service: UploadService = Depends(get_upload_service),
) -> UploadResult:
    """上传文件

    multipart表单中必须有且只有一个 file 字段

    Returns:
        UploadResult: publicFileUrl、qrCodeUrl 等字段

    Raises:
        ValidationError: 缺少文件、空文件、超过大小或类型不允许
        StorageError: 远程存储失败
        QrRenderError: 二维码生成失败（文件已存储，不回滚）
    """
    request = await upload_service.receive(file)
    return await upload_service.process(request)


@router.options(
    "/upload",
    status_code=status.HTTP_204_NO_CONTENT,
    include_in_schema=False
)
async def upload_preflight() -> Response:
    """不带Origin头的OPTIONS请求；带Origin头的预检由跨域中间件处理"""
    return Response(status_code=status.HTTP_204_NO_CONTENT)
