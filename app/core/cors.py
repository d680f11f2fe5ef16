"""跨域来源策略模块

根据 CORS_ORIGIN 配置判断跨域请求是否允许，并以ASGI中间件的形式应用到每个请求
"""

import re
from dataclasses import dataclass
from typing import Optional

from loguru import logger
from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.shared.exceptions import PolicyDenied
from app.shared.schemas import ErrorResponse

WILDCARD = "*"
ALLOW_METHODS = ("GET", "POST", "OPTIONS")
ALLOW_HEADERS = ("Content-Type",)
MAX_AGE = 86400


def compile_wildcard(token: str) -> re.Pattern[str]:
    """将带*的来源编译为正则

    先转义特殊字符，再把每个*还原为任意字符序列；匹配时必须整体匹配
    """
    return re.compile(re.escape(token).replace(re.escape(WILDCARD), ".*"))


@dataclass(frozen=True)
class OriginPolicy:
    """跨域来源策略

    启动时由配置字符串构造一次，之后只读
    """

    allow_all: bool = False
    exact: frozenset[str] = frozenset()
    patterns: tuple[re.Pattern[str], ...] = ()

    @classmethod
    def from_config(cls, raw: Optional[str]) -> "OriginPolicy":
        """解析 CORS_ORIGIN 配置

        Args:
            raw: 逗号分隔的来源列表；未设置、空串或*表示允许所有来源

        Returns:
            OriginPolicy: 预编译好的策略
        """
        if raw is None or raw.strip() in ("", WILDCARD):
            return cls(allow_all=True)

        exact: set[str] = set()
        patterns: list[re.Pattern[str]] = []
        for token in (item.strip() for item in raw.split(",")):
            if not token:
                continue
            if WILDCARD in token:
                patterns.append(compile_wildcard(token))
            else:
                exact.add(token)

        return cls(allow_all=False, exact=frozenset(exact), patterns=tuple(patterns))

    def is_allowed(self, origin: Optional[str]) -> bool:
        """判断来源是否允许

        没有Origin头的请求（同源或非浏览器客户端）总是允许。
        判断过程不会抛出异常，出错按拒绝处理
        """
        if not origin or self.allow_all:
            return True
        try:
            if origin in self.exact:
                return True
            return any(pattern.fullmatch(origin) for pattern in self.patterns)
        except Exception as e:
            logger.warning(f"来源判断失败，按拒绝处理: {origin!r}: {e}")
            return False


class OriginPolicyMiddleware:
    """跨域中间件

    - 预检请求(OPTIONS)直接返回204，允许时附带CORS头
    - 允许的普通请求正常处理并附带CORS头
    - 拒绝的普通请求不进入业务处理，返回不带CORS头的403
    """

    def __init__(self, app: ASGIApp, policy: OriginPolicy) -> None:
        self.app = app
        self.policy = policy

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        origin = Headers(scope=scope).get("origin")
        if origin is None:
            await self.app(scope, receive, send)
            return

        allowed = self.policy.is_allowed(origin)

        if scope["method"] == "OPTIONS":
            response = self.preflight_response(origin, allowed)
            await response(scope, receive, send)
            return

        if not allowed:
            logger.warning(f"拒绝跨域请求: {origin} {scope['method']} {scope['path']}")
            denied = ErrorResponse.from_exception(PolicyDenied())
            response = JSONResponse(status_code=denied.code, content=denied.to_content())
            await response(scope, receive, send)
            return

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                self._apply_allow_origin(headers, origin)
            await send(message)

        await self.app(scope, receive, send_with_cors)

    def preflight_response(self, origin: str, allowed: bool) -> Response:
        """构造预检响应

        无论是否允许都返回204空响应，拒绝时不带任何允许头，由浏览器判定失败
        """
        response = Response(status_code=204)
        if not allowed:
            logger.info(f"预检请求来源不允许: {origin}")
            return response

        self._apply_allow_origin(response.headers, origin)
        response.headers["Access-Control-Allow-Methods"] = ", ".join(ALLOW_METHODS)
        response.headers["Access-Control-Allow-Headers"] = ", ".join(ALLOW_HEADERS)
        response.headers["Access-Control-Max-Age"] = str(MAX_AGE)
        return response

    def _apply_allow_origin(self, headers: MutableHeaders, origin: str) -> None:
        if self.policy.allow_all:
            headers["Access-Control-Allow-Origin"] = WILDCARD
        else:
            headers["Access-Control-Allow-Origin"] = origin
            headers.add_vary_header("Origin")
