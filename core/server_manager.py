# core/server_manager.py
import asyncio
import logging
from typing import Optional

from aiohttp import web, ClientSession, ClientTimeout, ClientError

from core.app_keys import CONFIG_KEY, PROXY_KEY
from core.config_manager import ConfigManager, get_config
from core.middlewares import create_error_middleware, create_request_log_middleware
from core.proxy.api_proxy import ApiProxy
from utils.port_utils import check_port_availability

logger = logging.getLogger(__name__)


async def check_upstream_health(upstream_url: str, timeout: float = 5) -> dict:
    """
    Проверяет состояние внешнего API через /health

    Returns:
        dict: {
            'status': 'healthy'|'degraded'|'unhealthy'|'unreachable',
            'error': str or None
        }
    """
    if not upstream_url:
        return {'status': 'unreachable', 'error': 'Upstream URL not configured'}

    health_url = f"{upstream_url.rstrip('/')}/health"

    try:
        async with ClientSession(timeout=ClientTimeout(total=timeout)) as session:
            async with session.get(health_url) as response:
                if response.status != 200:
                    return {'status': 'unreachable', 'error': f'HTTP {response.status}'}
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = {}
                status = data.get('status', 'healthy') if isinstance(data, dict) else 'healthy'
                return {'status': status, 'error': None}
    except (ClientError, asyncio.TimeoutError) as e:
        logger.debug(f"Upstream health check failed: {e}")
        return {'status': 'unreachable', 'error': 'Connection failed'}


async def health(request: web.Request) -> web.Response:
    config = request.app[CONFIG_KEY]
    proxy = request.app[PROXY_KEY]
    upstream = await check_upstream_health(config.get('upstream.url', ''))
    return web.json_response({
        'status': 'ok',
        'upstream': upstream,
        'proxy': proxy.get_full_stats(),
    })


def build_app(config: Optional[ConfigManager] = None, ui_transport=None) -> web.Application:
    """
    Собирает aiohttp приложение: прокси /api, /health и веб-интерфейс

    Args:
        config: ConfigManager (по умолчанию глобальный)
        ui_transport: Подмена транспорта httpx для интерфейса (тесты)
    """
    config = config or get_config()
    prefix = config.get('proxy.prefix', '/api')

    # лог снаружи: строка пишется и для ответов, собранных из исключений
    app = web.Application(middlewares=[
        create_request_log_middleware(prefix, config.get('proxy.log_line_limit', 80)),
        create_error_middleware(prefix),
    ])
    app[CONFIG_KEY] = config

    proxy = ApiProxy.from_config(config)
    app[PROXY_KEY] = proxy
    proxy.register(app)

    app.router.add_get('/health', health)

    if config.get('ui.enabled', True):
        from ui.web_app import setup_ui
        setup_ui(app, config, transport=ui_transport)

    return app


class ServerManager:
    def __init__(self, config: Optional[ConfigManager] = None):
        self.config = config or get_config()
        self.is_running = False
        self.app: Optional[web.Application] = None
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None
        self.app_name = "Taskboard"

        # Error tracking
        self.last_error_type = None  # 'port', 'ssl', 'startup'
        self.last_error_details = None

    @property
    def host(self) -> str:
        return self.config.get('server.host', '0.0.0.0')

    @property
    def port(self) -> int:
        return int(self.config.get('server.port', 5000))

    @property
    def scheme(self) -> str:
        return 'https' if self.config.get('server.ssl', False) else 'http'

    def _prepare_ssl(self):
        """SSL контекст, если включен HTTPS (сертификат создается при необходимости)"""
        if not self.config.get('server.ssl', False):
            return None

        from core.certificate_manager import CertificateManager

        hostnames = ['localhost', '127.0.0.1']
        if self.host not in ('0.0.0.0', '::') and self.host not in hostnames:
            hostnames.insert(0, self.host)

        cert_manager = CertificateManager(
            cert_path=self.config.get('server.cert_path'),
            key_path=self.config.get('server.key_path'),
            hostnames=hostnames,
        )
        if not cert_manager.ensure_certificates_exist():
            raise RuntimeError("Не удалось создать SSL сертификаты")

        days = cert_manager.get_certificate_days_remaining()
        if 0 <= days < 14:
            logger.warning(f"⚠️ Сертификат истекает через {days} дн.")

        return cert_manager.create_ssl_context()

    async def start(self) -> bool:
        """
        Запуск HTTP сервера

        Returns:
            bool: True если успешно запущен
        """
        if self.is_running:
            logger.warning("⚠️ Сервер уже запущен")
            return False

        check_host = '127.0.0.1' if self.host in ('0.0.0.0', '') else self.host
        port_available, port_message = check_port_availability(self.port, check_host)
        if not port_available:
            logger.error(f"❌ {port_message}")
            self.last_error_type = 'port'
            self.last_error_details = port_message
            return False

        try:
            ssl_context = self._prepare_ssl()
        except (OSError, RuntimeError) as e:
            logger.error(f"❌ Ошибка подготовки SSL: {e}")
            self.last_error_type = 'ssl'
            self.last_error_details = str(e)
            return False

        try:
            self.app = build_app(self.config)
            self.runner = web.AppRunner(self.app, access_log=None)
            await self.runner.setup()

            self.site = web.TCPSite(self.runner, host=self.host, port=self.port, ssl_context=ssl_context)
            await self.site.start()
        except OSError as e:
            logger.error(f"❌ Ошибка запуска сервера: {e}")
            self.last_error_type = 'startup'
            self.last_error_details = str(e)
            await self._cleanup_runner()
            return False

        self.is_running = True
        self.last_error_type = None
        self.last_error_details = None

        logger.info("=" * 60)
        logger.info(f"🚀 {self.app_name} запущен: {self.scheme}://{self.host}:{self.port}")
        logger.info(f"🌐 Проксируется на: {self.config.get('upstream.url')}")
        logger.info("=" * 60)
        return True

    async def stop(self):
        """Остановка сервера"""
        if not self.is_running:
            logger.warning("⚠️ Сервер не запущен")
            return

        logger.info("🛑 Stopping server...")
        stats = self.get_proxy_stats()
        self.is_running = False

        await self._cleanup_runner()

        if stats:
            logger.info(
                f"📊 Session statistics:\n"
                f"   Total requests: {stats.get('requests', 0)}\n"
                f"   Total responses: {stats.get('responses', 0)}\n"
                f"   Errors: {stats.get('errors', 0)}"
            )

        logger.info("✅ Server stopped")

    async def _cleanup_runner(self):
        if self.runner:
            await self.runner.cleanup()
        self.runner = None
        self.site = None

    def get_status(self) -> dict:
        """Возвращает статус сервера"""
        status = {
            'running': self.is_running,
            'host': self.host,
            'port': self.port,
            'scheme': self.scheme,
            'upstream_url': self.config.get('upstream.url'),
        }

        if self.last_error_type:
            status['error_type'] = self.last_error_type
            status['error_details'] = self.last_error_details

        stats = self.get_proxy_stats()
        if stats:
            status['proxy_stats'] = stats

        return status

    def get_proxy_stats(self) -> Optional[dict]:
        """Получить статистику прокси"""
        if self.app is not None and self.is_running:
            return self.app[PROXY_KEY].get_full_stats()
        return None

    def run(self) -> int:
        """Запускает сервер и ждет остановки (Ctrl+C)"""

        async def _serve():
            if not await self.start():
                return 1
            try:
                await asyncio.Event().wait()
            finally:
                await self.stop()
            return 0

        try:
            return asyncio.run(_serve())
        except KeyboardInterrupt:
            logger.info("🛑 Остановка по Ctrl+C")
            return 0


# Синглтон для глобального доступа
_server_manager = None


def get_server_manager() -> ServerManager:
    """Возвращает глобальный экземпляр ServerManager"""
    global _server_manager
    if _server_manager is None:
        _server_manager = ServerManager()
    return _server_manager
