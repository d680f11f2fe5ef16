"""自定义异常类定义

定义上传流程中使用的各种异常
提供统一的错误处理机制
"""

from typing import Any, Optional

from fastapi import HTTPException


class ConfigurationError(RuntimeError):
    """配置错误

    必需的环境变量缺失时抛出，应用启动即失败，不属于单次请求错误
    """


class BaseAPIException(HTTPException):
    """API异常基类

    所有自定义API异常都应该继承这个类
    提供统一的异常处理接口
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_type: str = "APIError",
        headers: Optional[dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_type = error_type


class ValidationError(BaseAPIException):
    """上传校验异常

    缺少文件、空文件、类型或大小不符合策略时抛出，不会发起任何远程调用
    """

    def __init__(self, detail: str = "Invalid upload", status_code: int = 400):
        super().__init__(
            status_code=status_code,
            detail=detail,
            error_type="ValidationError"
        )


class StorageError(BaseAPIException):
    """对象存储异常

    远程存储拒绝或失败时抛出，保留远程返回的状态码和消息
    """

    def __init__(
        self,
        detail: str,
        remote_status: Optional[int] = None,
        status_code: Optional[int] = None
    ):
        if status_code is None:
            status_code = remote_status if remote_status and 400 <= remote_status < 600 else 502
        super().__init__(
            status_code=status_code,
            detail=detail,
            error_type="StorageError"
        )
        self.remote_status = remote_status


class QrRenderError(BaseAPIException):
    """二维码生成异常

    文件已存储但二维码生成或存储失败时抛出，已存储的文件不会回滚
    """

    def __init__(self, detail: str = "QR code rendering failed", status_code: int = 500):
        super().__init__(
            status_code=status_code,
            detail=detail,
            error_type="QrRenderError"
        )


class PolicyDenied(BaseAPIException):
    """跨域拒绝异常

    请求来源不在允许列表中时使用
    """

    def __init__(self, detail: str = "Origin not allowed"):
        super().__init__(
            status_code=403,
            detail=detail,
            error_type="PolicyDenied"
        )
