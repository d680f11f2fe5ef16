"""FastAPI应用主入口

配置应用实例、中间件、路由和生命周期事件
"""

import sys
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException

from app.core.config import Settings, get_settings
from app.core.cors import OriginPolicy, OriginPolicyMiddleware
from app.dependencies import get_app_settings
from app.features.qr.service import QrIssuer
from app.features.storage.service import R2StorageService
from app.features.upload.models import UploadPolicy
from app.features.upload.router import router as upload_router
from app.features.upload.service import UploadService
from app.shared.exceptions import BaseAPIException
from app.shared.schemas import APIResponse, ErrorResponse, HealthCheckResponse


def configure_logging(settings: Settings) -> None:
    """配置loguru日志输出

    stderr按配置级别输出；设置了 LOG_FILE 时额外写入按天轮转的JSON日志
    """
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level.upper())

    if settings.log_file:
        logger.add(
            settings.log_file,
            rotation="1 day",
            retention="30 days",
            level=settings.log_level.upper(),
            format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}",
            serialize=True
        )


def build_upload_service(settings: Settings) -> UploadService:
    """创建上传服务及其依赖

    Raises:
        ConfigurationError: 缺少存储凭证
    """
    storage = R2StorageService.from_settings(settings)
    qr_issuer = QrIssuer(storage, render_timeout=settings.qr_render_timeout)
    return UploadService(
        storage=storage,
        qr_issuer=qr_issuer,
        policy=UploadPolicy.from_settings(settings),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理

    启动时校验存储凭证并创建服务实例，缺少凭证时启动失败
    """
    settings: Settings = app.state.settings
    logger.info(f"正在启动 {settings.app_name} v{settings.app_version}...")

    try:
        # 已初始化时跳过，保证每个进程只配置一次
        if getattr(app.state, "upload_service", None) is None:
            app.state.upload_service = build_upload_service(settings)
        logger.info("应用启动完成")
    except Exception as e:
        logger.error(f"应用启动失败: {e}")
        raise

    yield

    logger.info("应用关闭完成")


def error_response(exc: BaseAPIException) -> JSONResponse:
    """将自定义API异常转换为JSON错误响应"""
    body = ErrorResponse.from_exception(exc)
    return JSONResponse(status_code=exc.status_code, content=body.to_content(), headers=exc.headers)


def register_exception_handlers(app: FastAPI) -> None:
    """注册全局异常处理器

    所有错误都转换为带 error 字段的JSON响应，不会让进程崩溃
    """

    @app.exception_handler(BaseAPIException)
    async def api_exception_handler(request: Request, exc: BaseAPIException) -> JSONResponse:
        logger.warning(f"{exc.error_type}: {exc.status_code} - {exc.detail}")
        return error_response(exc)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        logger.warning(f"HTTP异常: {exc.status_code} - {exc.detail}")
        body = ErrorResponse(error=str(exc.detail), code=exc.status_code, error_type="HTTPException")
        return JSONResponse(status_code=exc.status_code, content=body.to_content(), headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning(f"请求格式错误: {exc.errors()}")
        fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in exc.errors())
        body = ErrorResponse(
            error=f"Invalid request: {fields}",
            code=400,
            error_type="ValidationError"
        )
        return JSONResponse(status_code=400, content=body.to_content())

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """处理未捕获的异常，避免暴露内部错误信息"""
        logger.error(f"未处理的异常: {type(exc).__name__}: {str(exc)}")
        debug = request.app.state.settings.debug
        body = ErrorResponse(
            error=str(exc) if debug else "Internal server error",
            code=500,
            error_type=type(exc).__name__
        )
        return JSONResponse(status_code=500, content=body.to_content())


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """创建FastAPI应用

    Args:
        settings: 应用配置，未提供时从环境变量读取

    Returns:
        FastAPI: 应用实例
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="文件上传服务：存储到Cloudflare R2并生成指向公开链接的二维码",
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan
    )
    app.state.settings = settings

    # 来源策略在启动时编译一次
    origin_policy = OriginPolicy.from_config(settings.cors_origin)
    app.add_middleware(OriginPolicyMiddleware, policy=origin_policy)
    if origin_policy.allow_all:
        logger.info("跨域策略: 允许所有来源")
    else:
        logger.info(
            f"跨域策略: {len(origin_policy.exact)} 个精确来源，{len(origin_policy.patterns)} 个通配规则"
        )

    register_exception_handlers(app)

    @app.get(
        "/health",
        response_model=APIResponse[HealthCheckResponse],
        summary="健康检查",
        description="检查应用和存储服务的状态"
    )
    async def health_check(
        request: Request,
        settings: Settings = Depends(get_app_settings),
    ) -> JSONResponse:
        """健康检查端点

        存储凭证完整且服务已初始化时视为健康
        """
        storage_healthy = (
            not settings.missing_storage_vars()
            and getattr(request.app.state, "upload_service", None) is not None
        )

        health_data = HealthCheckResponse(
            status="healthy" if storage_healthy else "unhealthy",
            timestamp=datetime.utcnow().isoformat(),
            version=settings.app_version,
            storage=storage_healthy
        )

        code = 200 if storage_healthy else 503
        body = APIResponse(
            success=storage_healthy,
            data=health_data,
            message="健康检查完成",
            code=code
        )
        return JSONResponse(status_code=code, content=body.model_dump())

    @app.get(
        "/",
        response_model=APIResponse[dict],
        summary="API信息",
        description="获取API基本信息"
    )
    async def root(settings: Settings = Depends(get_app_settings)) -> APIResponse[dict]:
        return APIResponse(
            success=True,
            data={
                "name": settings.app_name,
                "version": settings.app_version,
                "upload_url": "/upload",
                "docs_url": "/docs",
                "health_url": "/health"
            },
            message="欢迎使用LinkSnap文件上传API",
            code=200
        )

    app.include_router(upload_router, tags=["文件上传"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    configure_logging(settings)
    logger.info(f"启动开发服务器: {settings.app_name} v{settings.app_version}")

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="info" if not settings.debug else "debug"
    )
