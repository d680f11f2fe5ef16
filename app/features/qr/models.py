"""二维码功能数据模型"""

from pydantic import BaseModel, ConfigDict, Field


class QrArtifact(BaseModel):
    """二维码图片

    url 是图片本身的访问地址，target_url 是图片中编码的链接，两者分开保存
    """

    model_config = ConfigDict(frozen=True)

    image: bytes = Field(description="PNG图片内容")
    url: str = Field(description="二维码图片访问URL")
    target_url: str = Field(description="二维码编码的目标URL")
