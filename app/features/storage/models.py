"""存储功能数据模型

定义对象存储返回的文件记录
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class StoredAsset(BaseModel):
    """已存储文件

    上传成功后创建，之后不再修改，也没有删除路径
    """

    model_config = ConfigDict(frozen=True)

    asset_id: str = Field(description="文件唯一标识")
    key: str = Field(description="R2存储键名")
    public_url: str = Field(description="公开访问URL")
    download_url: Optional[str] = Field(default=None, description="预签名下载URL")
    content_type: str = Field(description="文件MIME类型")
    size: int = Field(ge=0, description="文件大小（字节）")
