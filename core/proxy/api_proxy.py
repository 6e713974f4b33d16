# core/proxy/api_proxy.py
import asyncio
import logging
from typing import Iterable, Optional

from aiohttp import web, ClientSession, TCPConnector, ClientTimeout, ClientConnectorError, ServerTimeoutError, ClientError
from yarl import URL

from core.proxy.body_codec import BodyCodec, BodyDecodeError, body_kind, KIND_JSON, KIND_MULTIPART
from core.proxy.headers import DEFAULT_SAFE_HEADERS, filter_request_headers, filter_response_headers

logger = logging.getLogger(__name__)

METHODS_WITHOUT_BODY = ('GET', 'HEAD')


class ApiProxy:
    def __init__(self, upstream_url: str, prefix: str = '/api',
                 safe_headers: Iterable[str] = DEFAULT_SAFE_HEADERS,
                 timeout: float = 90, connect_timeout: float = 10,
                 max_connections: int = 100, limit_per_host: int = 50,
                 max_concurrency: int = 50, verify_ssl: bool = True):
        """
        Args:
            upstream_url: URL внешнего API (например, https://qdr.equiron.com)
            prefix: Префикс локальных путей, который срезается при проксировании
            safe_headers: Заголовки запроса, которые разрешено пересылать
        """
        self.upstream_url = upstream_url.rstrip('/')
        self.prefix = prefix.rstrip('/')
        self.safe_headers = tuple(h.lower() for h in safe_headers)
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.max_connections = max_connections
        self.limit_per_host = limit_per_host
        self.verify_ssl = verify_ssl
        self.codec = BodyCodec()

        # Connection pool для переиспользования соединений
        self.connector: Optional[TCPConnector] = None
        self.session: Optional[ClientSession] = None

        # Семафор для ограничения одновременных запросов к upstream
        self.connection_semaphore = asyncio.Semaphore(max_concurrency)

        # Статистика
        self.stats = {
            'total_requests': 0,
            'total_responses': 0,
            'active_connections': 0,
            'errors': 0
        }

    @classmethod
    def from_config(cls, config) -> 'ApiProxy':
        """Создает прокси по настройкам ConfigManager"""
        upstream = config.get_upstream_config()
        proxy = config.get_proxy_config()
        return cls(
            upstream_url=upstream.get('url', ''),
            prefix=proxy.get('prefix', '/api'),
            safe_headers=proxy.get('safe_headers', DEFAULT_SAFE_HEADERS),
            timeout=upstream.get('timeout', 90),
            connect_timeout=upstream.get('connect_timeout', 10),
            max_connections=upstream.get('max_connections', 100),
            limit_per_host=upstream.get('limit_per_host', 50),
            max_concurrency=proxy.get('max_concurrency', 50),
            verify_ssl=upstream.get('verify_ssl', True),
        )

    async def initialize(self):
        """Инициализация connection pool для upstream"""
        if self.connector is None:
            self.connector = TCPConnector(
                ssl=None if self.verify_ssl else False,
                limit=self.max_connections,
                limit_per_host=self.limit_per_host,
                ttl_dns_cache=300,  # DNS кэш на 5 минут
                keepalive_timeout=60,
                enable_cleanup_closed=True
            )

        if self.session is None:
            self.session = ClientSession(
                connector=self.connector,
                timeout=ClientTimeout(total=self.timeout, connect=self.connect_timeout),
                auto_decompress=True
            )

    async def cleanup(self):
        """Очистка ресурсов"""
        if self.session:
            await self.session.close()
            self.session = None
        if self.connector:
            await self.connector.close()
            self.connector = None

    def register(self, app: web.Application):
        """Регистрирует маршруты прокси и закрытие пула в приложении"""
        app.router.add_route('*', self.prefix, self.handle)
        app.router.add_route('*', self.prefix + '/{tail:.*}', self.handle)

        async def _on_cleanup(_app):
            await self.cleanup()

        app.on_cleanup.append(_on_cleanup)

    def build_target_url(self, raw_path: str) -> str:
        """Строит URL upstream: срезает префикс один раз, query сохраняется"""
        path = raw_path
        if self.prefix and path.startswith(self.prefix):
            path = path[len(self.prefix):]
        return f"{self.upstream_url}{path}"

    async def handle(self, request: web.Request) -> web.Response:
        """Обработка запроса /api/* через внешний API"""
        self.stats['total_requests'] += 1
        self.stats['active_connections'] += 1

        try:
            return await self._forward(request)
        finally:
            self.stats['active_connections'] -= 1

    async def _forward(self, request: web.Request) -> web.Response:
        target_url = self.build_target_url(request.raw_path)
        headers = filter_request_headers(request.headers, self.safe_headers)
        has_body = request.method not in METHODS_WITHOUT_BODY

        # Без Content-Type тело считается JSON
        if has_body and 'content-type' not in headers:
            headers['content-type'] = 'application/json'

        kind = body_kind(headers.get('content-type', ''))
        is_upload = has_body and kind == KIND_MULTIPART

        body = None
        if has_body:
            raw = await request.read()
            try:
                body = self.codec.encode_request(kind, raw)
            except BodyDecodeError as e:
                logger.warning(f"⚠️ Отклонен запрос {request.method} {request.path}: {e}")
                return self._json_error(400, message="Invalid JSON body" if kind == KIND_JSON else "Invalid form body")

        if is_upload:
            logger.info(f"📎 Proxying multipart upload to: {target_url}")
            if 'authorization' in headers:
                logger.debug(f"Multipart request has authorization header (length: {len(headers['authorization'])})")
            else:
                logger.error("❌ CRITICAL: multipart request without authorization header - upstream will answer 401")
        else:
            logger.debug(f"🔁 {request.method} {target_url}")

        error_text = "File upload failed" if is_upload else "External API error"

        await self.initialize()

        async with self.connection_semaphore:
            try:
                async with self.session.request(
                    method=request.method,
                    url=URL(target_url, encoded=True),
                    headers=headers,
                    data=body,
                    allow_redirects=False
                ) as upstream_response:
                    content = await upstream_response.read()

                    if is_upload and upstream_response.status >= 400:
                        logger.error(
                            f"❌ Multipart upload failed with status {upstream_response.status}: "
                            f"{content[:500].decode('utf-8', errors='replace')}"
                        )

                    response_headers = filter_response_headers(upstream_response.headers)
                    upstream_type = upstream_response.headers.get('Content-Type', '')
                    content, content_type = self.codec.decode_response(upstream_type, content)
                    if content_type:
                        response_headers['Content-Type'] = content_type

                    self.stats['total_responses'] += 1
                    logger.debug(f"Upstream response: {upstream_response.status}")

                    return web.Response(
                        body=content,
                        status=upstream_response.status,
                        headers=response_headers
                    )

            except (ServerTimeoutError, asyncio.TimeoutError) as e:
                self.stats['errors'] += 1
                logger.error(f"❌ Таймаут соединения с upstream {target_url}: {e}")
                return self._json_error(504, error="External API timeout")

            except ClientConnectorError as e:
                self.stats['errors'] += 1
                logger.error(f"❌ Upstream недоступен: {e}")
                return self._json_error(502, error=error_text)

            except ClientError as e:
                self.stats['errors'] += 1
                logger.error(f"❌ Ошибка проксирования на upstream: {e}", exc_info=True)
                return self._json_error(500, error=error_text)

    def _json_error(self, status: int, **payload) -> web.Response:
        return web.Response(
            body=self.codec.dump_json(payload),
            status=status,
            content_type='application/json',
            charset='utf-8'
        )

    def get_full_stats(self):
        """Получить полную статистику прокси"""
        return {
            'requests': self.stats['total_requests'],
            'responses': self.stats['total_responses'],
            'active': self.stats['active_connections'],
            'errors': self.stats['errors']
        }
