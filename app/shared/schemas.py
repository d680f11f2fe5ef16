"""共享数据模式

定义通用的API响应格式、错误响应格式和错误消息提取规则
"""

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from app.shared.exceptions import BaseAPIException

T = TypeVar('T')


class APIResponse(BaseModel, Generic[T]):
    """统一API响应格式

    用于 / 和 /health 等信息类接口
    """
    success: bool = Field(description="操作是否成功")
    data: Optional[T] = Field(default=None, description="响应数据")
    message: str = Field(description="响应消息")
    code: int = Field(description="HTTP状态码")
    error_type: Optional[str] = Field(default=None, description="错误类型")


class ErrorResponse(BaseModel):
    """错误响应格式

    客户端从顶层 error 字段读取错误消息
    """
    model_config = ConfigDict(populate_by_name=True)

    error: str = Field(description="错误消息")
    code: int = Field(description="HTTP状态码")
    error_type: Optional[str] = Field(default=None, description="错误类型")
    status_code: Optional[int] = Field(
        default=None,
        alias="statusCode",
        description="远程存储返回的状态码"
    )

    @classmethod
    def from_exception(cls, exc: BaseAPIException) -> "ErrorResponse":
        """由自定义API异常创建错误响应"""
        return cls(
            error=str(exc.detail),
            code=exc.status_code,
            error_type=exc.error_type,
            status_code=getattr(exc, "remote_status", None),
        )

    def to_content(self) -> dict[str, Any]:
        """序列化为JSON响应内容，省略空字段"""
        return self.model_dump(by_alias=True, exclude_none=True)


class HealthCheckResponse(BaseModel):
    """健康检查响应

    用于系统健康状态检查
    """
    status: str = Field(description="服务状态")
    timestamp: str = Field(description="检查时间")
    version: str = Field(description="应用版本")
    storage: bool = Field(description="存储服务状态")


def extract_error_message(data: Any, status: int) -> str:
    """从错误响应体中提取可读的错误消息

    客户端契约辅助函数：前端按此规则读取 /upload 的错误响应，
    服务端的 ErrorResponse 必须让它取到顶层 error 字段

    优先级: 顶层 error 字符串 > error.message 字符串 > 顶层 message 字符串

    Args:
        data: 已解析的JSON响应体
        status: HTTP状态码

    Returns:
        str: 错误消息，均不存在时返回 "Upload failed (<status>)"
    """
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, str):
            return error
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(data.get("message"), str):
            return data["message"]
    return f"Upload failed ({status})"
