"""上传功能数据模型

定义上传请求、上传策略和上传结果
"""

import mimetypes
from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.core.config import Settings

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def resolve_content_type(declared: Optional[str], filename: str) -> str:
    """确定文件MIME类型

    优先使用客户端声明的类型；未声明或为 application/octet-stream 时按文件名推断
    """
    if declared and declared != DEFAULT_CONTENT_TYPE:
        return declared
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or declared or DEFAULT_CONTENT_TYPE


@dataclass(frozen=True)
class UploadRequest:
    """单次上传请求，仅在请求处理期间存在"""

    content: bytes
    content_type: str
    filename: str

    @property
    def extension(self) -> str:
        return PurePath(self.filename).suffix.lower()


@dataclass(frozen=True)
class UploadPolicy:
    """上传校验策略

    类型白名单为空时不限制类型
    """

    max_bytes: int
    allowed_mime_prefixes: tuple[str, ...] = ()
    allowed_extensions: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: Settings) -> "UploadPolicy":
        return cls(
            max_bytes=settings.upload_max_bytes,
            allowed_mime_prefixes=tuple(settings.allowed_mime_prefixes),
            allowed_extensions=tuple(settings.allowed_extensions),
        )

    def accepts_type(self, content_type: str, extension: str) -> bool:
        """MIME前缀或扩展名任一匹配即接受"""
        if not self.allowed_mime_prefixes and not self.allowed_extensions:
            return True
        content_type = content_type.lower()
        if any(content_type.startswith(prefix) for prefix in self.allowed_mime_prefixes):
            return True
        return bool(extension) and extension in self.allowed_extensions


class UploadResult(BaseModel):
    """上传结果

    publicFileUrl 和 qrCodeUrl 必须存在，缺少任一字段视为协议错误
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    public_file_url: str = Field(min_length=1, description="文件公开访问URL")
    qr_code_url: str = Field(min_length=1, description="二维码图片URL")
    download_file_url: Optional[str] = Field(default=None, description="预签名下载URL")
    qr_target_url: Optional[str] = Field(default=None, description="二维码编码的目标URL")
    original_file_name: Optional[str] = Field(default=None, description="原始文件名")
    mime_type: Optional[str] = Field(default=None, description="文件MIME类型")

    @property
    def effective_qr_target(self) -> str:
        """二维码指向的链接，未返回时即公开URL"""
        return self.qr_target_url or self.public_file_url
