"""依赖注入

服务实例在应用启动时创建并挂在 app.state 上，请求处理时只读
"""

from fastapi import Request

from app.core.config import Settings
from app.features.upload.service import UploadService


def get_app_settings(request: Request) -> Settings:
    """当前应用的配置"""
    return request.app.state.settings


def get_upload_service(request: Request) -> UploadService:
    """上传服务依赖"""
    return request.app.state.upload_service
