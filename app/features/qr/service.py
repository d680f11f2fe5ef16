"""二维码服务模块

生成编码目标URL的PNG二维码，并存储到对象存储中
"""

import asyncio
from io import BytesIO

import qrcode
from loguru import logger
from qrcode.exceptions import DataOverflowError

from app.features.storage.service import R2StorageService
from app.shared.exceptions import QrRenderError, StorageError

from .models import QrArtifact


def build_qr(target_url: str) -> qrcode.QRCode:
    """构造二维码对象

    参数固定，相同URL总是得到相同的图案
    """
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(target_url)
    qr.make(fit=True)
    return qr


def render_png(target_url: str) -> bytes:
    """将目标URL渲染为PNG二维码

    Args:
        target_url: 需要编码的URL，原样编码，不做缩短或跳转

    Returns:
        bytes: PNG图片内容
    """
    img = build_qr(target_url).make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def qr_key_for(asset_id: str) -> str:
    """二维码图片的存储键名，由所属文件的标识推导"""
    return f"qrcodes/{asset_id}.png"


class QrIssuer:
    """二维码签发服务"""

    def __init__(self, storage: R2StorageService, render_timeout: float = 10.0) -> None:
        self.storage = storage
        self.render_timeout = render_timeout

    async def issue(self, target_url: str, asset_id: str) -> QrArtifact:
        """生成并存储二维码

        Args:
            target_url: 二维码编码的目标URL
            asset_id: 所属文件的唯一标识

        Returns:
            QrArtifact: 二维码图片及其访问URL

        Raises:
            QrRenderError: 渲染失败、超时或图片存储失败
        """
        if not target_url:
            raise QrRenderError("QR code target URL is empty")

        try:
            image = await asyncio.wait_for(
                asyncio.to_thread(render_png, target_url),
                timeout=self.render_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"二维码渲染超时: {target_url}")
            raise QrRenderError("QR code rendering timed out", status_code=504) from e
        except (DataOverflowError, ValueError, OSError) as e:
            logger.error(f"二维码渲染失败: {target_url}: {e}")
            raise QrRenderError(f"QR code rendering failed: {e}") from e
        except Exception as e:
            logger.exception(f"二维码渲染时发生未预期的错误: {target_url}")
            raise QrRenderError(f"QR code rendering failed: {e}") from e

        try:
            stored = await self.storage.store(
                image,
                "image/png",
                f"{asset_id}.png",
                key=qr_key_for(asset_id),
            )
        except StorageError as e:
            logger.error(f"二维码存储失败: {asset_id}: {e.detail}")
            status_code = e.status_code if e.status_code >= 500 else 502
            raise QrRenderError(f"Failed to store QR code: {e.detail}", status_code=status_code) from e

        logger.info(f"二维码已生成: {stored.public_url} -> {target_url}")
        return QrArtifact(image=image, url=stored.public_url, target_url=target_url)
