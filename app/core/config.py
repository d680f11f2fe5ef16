"""核心配置模块

处理环境变量读取，提供存储凭证校验和上传策略
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.shared.exceptions import ConfigurationError


# 必需的存储配置项: (字段名, 环境变量名)
REQUIRED_STORAGE_VARS = (
    ("r2_account_id", "R2_ACCOUNT_ID"),
    ("r2_access_key_id", "R2_ACCESS_KEY_ID"),
    ("r2_secret_access_key", "R2_SECRET_ACCESS_KEY"),
    ("r2_bucket_name", "R2_BUCKET_NAME"),
    ("r2_public_base_url", "R2_PUBLIC_BASE_URL"),
)


def _split_csv(raw: str) -> list[str]:
    """按逗号拆分配置字符串，去除空白和空项"""
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseSettings):
    """应用配置类

    自动从环境变量和 .env 文件读取配置
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Cloudflare R2配置
    r2_account_id: Optional[str] = Field(default=None, description="Cloudflare账户ID")
    r2_access_key_id: Optional[str] = Field(default=None, description="R2访问密钥ID")
    r2_secret_access_key: Optional[str] = Field(default=None, description="R2秘密访问密钥")
    r2_bucket_name: Optional[str] = Field(default=None, description="R2存储桶名称")
    r2_public_base_url: Optional[str] = Field(
        default=None,
        description="存储桶公开访问基础URL（r2.dev子域名或自定义域名）"
    )
    r2_endpoint_url: Optional[str] = Field(
        default=None,
        description="R2端点URL，未设置时由账户ID推导"
    )
    region_name: str = Field(default="auto", description="R2区域名称")
    download_url_expires_in: int = Field(default=3600, gt=0, description="下载URL过期时间（秒）")

    # 远程调用超时（秒）
    storage_connect_timeout: float = Field(default=5.0, gt=0, description="存储连接超时")
    storage_read_timeout: float = Field(default=30.0, gt=0, description="存储读取超时")
    qr_render_timeout: float = Field(default=10.0, gt=0, description="二维码渲染超时")

    # 跨域配置
    cors_origin: Optional[str] = Field(
        default=None,
        description="允许的来源，逗号分隔，支持*通配符；未设置或为*时允许所有来源"
    )

    # 上传策略
    upload_max_bytes: int = Field(default=10 * 1024 * 1024, gt=0, description="单个文件最大字节数")
    upload_allowed_mime_prefixes: str = Field(
        default="image/,application/pdf,text/plain",
        description="允许的MIME类型前缀，逗号分隔"
    )
    upload_allowed_extensions: str = Field(default=".txt", description="允许的文件扩展名，逗号分隔")

    # 应用配置
    app_name: str = Field(default="LinkSnap Backend", description="应用名称")
    app_version: str = Field(default="1.0.0", description="应用版本")
    debug: bool = Field(default=False, description="调试模式")
    host: str = Field(default="0.0.0.0", description="服务器主机")
    port: int = Field(default=3001, description="服务器端口")
    log_level: str = Field(default="INFO", description="日志级别")
    log_file: Optional[str] = Field(default=None, description="日志文件路径，未设置时只输出到stderr")

    @computed_field
    @property
    def r2_endpoint(self) -> Optional[str]:
        """R2 S3兼容端点

        显式配置优先，否则使用 https://<account>.r2.cloudflarestorage.com

        Returns:
            Optional[str]: 端点URL，账户ID未配置时返回None
        """
        if self.r2_endpoint_url:
            return self.r2_endpoint_url
        if not self.r2_account_id:
            return None
        return f"https://{self.r2_account_id}.r2.cloudflarestorage.com"

    @computed_field
    @property
    def allowed_mime_prefixes(self) -> list[str]:
        """允许的MIME类型前缀列表"""
        return [prefix.lower() for prefix in _split_csv(self.upload_allowed_mime_prefixes)]

    @computed_field
    @property
    def allowed_extensions(self) -> list[str]:
        """允许的扩展名列表（小写，带点）"""
        return [
            ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            for ext in _split_csv(self.upload_allowed_extensions)
        ]

    def missing_storage_vars(self) -> list[str]:
        """返回缺失的存储环境变量名"""
        return [env for field, env in REQUIRED_STORAGE_VARS if not getattr(self, field)]

    def require_storage_credentials(self) -> None:
        """校验存储凭证完整

        Raises:
            ConfigurationError: 第一个缺失的环境变量
        """
        missing = self.missing_storage_vars()
        if missing:
            raise ConfigurationError(f"Missing env var: {missing[0]}")


@lru_cache
def get_settings() -> Settings:
    """获取应用配置单例

    使用lru_cache确保配置只被加载一次

    Returns:
        Settings: 应用配置实例
    """
    return Settings()
