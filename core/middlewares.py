# core/middlewares.py
import json
import logging
import time

from aiohttp import web

from core.api_client import ApiError

logger = logging.getLogger(__name__)


def format_api_log_line(method: str, path: str, status: int, duration_ms: int,
                        payload: str = None, limit: int = 80) -> str:
    """
    Строка лога для запроса к API

    Формат: "METHOD path STATUS in Nms :: <json>", длиннее limit символов
    обрезается до limit - 1 с многоточием.
    """
    line = f"{method} {path} {status} in {duration_ms}ms"
    if payload:
        line += f" :: {payload}"

    if len(line) > limit:
        line = line[:limit - 1] + "…"

    return line


def create_request_log_middleware(prefix: str = '/api', limit: int = 80):
    """Логирует запросы под префиксом API с длительностью и JSON ответа"""

    @web.middleware
    async def request_log_middleware(request, handler):
        if not request.path.startswith(prefix):
            return await handler(request)

        start = time.monotonic()
        response = await handler(request)
        duration_ms = int((time.monotonic() - start) * 1000)

        payload = None
        if isinstance(response, web.Response) and response.content_type == 'application/json' and response.body:
            try:
                payload = response.body.decode(response.charset or 'utf-8')
            except (AttributeError, UnicodeDecodeError):
                payload = None

        logger.info(format_api_log_line(request.method, request.path, response.status, duration_ms, payload, limit))
        return response

    return request_log_middleware


def create_error_middleware(prefix: str = '/api'):
    """
    Превращает необработанные исключения в ответ

    Для путей API отдает JSON {"message": ...} со статусом ошибки,
    для страниц интерфейса - текстовую страницу ошибки.
    """

    @web.middleware
    async def error_middleware(request, handler):
        try:
            return await handler(request)
        except web.HTTPException as e:
            if not request.path.startswith(prefix) or e.status < 400:
                raise
            return web.json_response({'message': e.reason}, status=e.status)
        except ApiError as e:
            logger.error(f"❌ Upstream error on {request.method} {request.path}: {e}")
            status = e.status if 400 <= e.status < 600 else 502
            return _error_response(request, prefix, status, str(e))
        except Exception as e:
            logger.exception(f"❌ Unhandled error on {request.method} {request.path}: {e}")
            status = getattr(e, 'status', None) or getattr(e, 'status_code', None)
            if not isinstance(status, int) or not 400 <= status < 600:
                status = 500
            message = str(e) or "Internal Server Error"
            return _error_response(request, prefix, status, message)

    return error_middleware


def _error_response(request, prefix, status, message):
    if request.path.startswith(prefix):
        return web.json_response({'message': message}, status=status,
                                 dumps=lambda data: json.dumps(data, ensure_ascii=False))
    return web.Response(text=f"Ошибка {status}: {message}", status=status, content_type='text/plain')
