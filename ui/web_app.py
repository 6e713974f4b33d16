# ui/web_app.py
"""
Веб-интерфейс: регистрация маршрутов и сессионный middleware
"""

import logging

from aiohttp import web

from core.api_client import ApiClient, ApiError, create_http_client
from core.app_keys import (API_CLIENT_KEY, AUTH_KEY, HTTP_CLIENT_KEY, TOKEN_KEY, UI_CONFIG_KEY,
                           USER_KEY)
from core.auth_manager import TOKEN_COOKIE, USER_COOKIE, AuthManager
from ui import auth_views, dashboard_view, task_views, user_views
from ui.rendering import redirect

logger = logging.getLogger(__name__)

PUBLIC_PATHS = frozenset({'/login', '/register', '/theme', '/health'})


def create_session_middleware(api_prefix: str = '/api'):
    """Проверяет сессию для страниц интерфейса и кладет ApiClient в запрос"""

    @web.middleware
    async def ui_session_middleware(request, handler):
        if request.path.startswith(api_prefix):
            return await handler(request)

        http = request.app[HTTP_CLIENT_KEY]
        auth = request.app[AUTH_KEY]

        if request.path in PUBLIC_PATHS:
            request[API_CLIENT_KEY] = ApiClient(http)
            return await handler(request)

        token, user = auth.get_session(request)
        if not token:
            response = redirect('/login')
            if TOKEN_COOKIE in request.cookies or USER_COOKIE in request.cookies:
                auth.clear_session(response)
            return response

        request[TOKEN_KEY] = token
        request[USER_KEY] = user
        request[API_CLIENT_KEY] = ApiClient(http, token)

        try:
            return await handler(request)
        except ApiError as e:
            if e.status != 401:
                raise
            logger.warning(f"⚠️ Upstream rejected token of {user.username}, clearing session")
            response = redirect('/login', 'error', "Сессия истекла, войдите снова")
            auth.clear_session(response)
            return response

    return ui_session_middleware


def setup_ui(app: web.Application, config, transport=None):
    """
    Подключает веб-интерфейс к приложению

    Args:
        app: aiohttp приложение (до запуска)
        config: ConfigManager
        transport: Подмена транспорта httpx (для тестов)
    """
    upstream = config.get_upstream_config()
    ui_config = config.get_ui_config()

    app[UI_CONFIG_KEY] = ui_config
    app[AUTH_KEY] = AuthManager(cookie_secure=ui_config.get('cookie_secure', False))
    app[HTTP_CLIENT_KEY] = create_http_client(
        upstream.get('url', ''),
        timeout=upstream.get('timeout', 30),
        verify=upstream.get('verify_ssl', True),
        transport=transport,
    )

    async def _close_http_client(_app):
        await _app[HTTP_CLIENT_KEY].aclose()

    app.on_cleanup.append(_close_http_client)
    app.middlewares.append(create_session_middleware(config.get('proxy.prefix', '/api')))

    router = app.router
    router.add_get('/login', auth_views.login_page)
    router.add_post('/login', auth_views.login_submit)
    router.add_get('/register', auth_views.register_page)
    router.add_post('/register', auth_views.register_submit)
    router.add_post('/logout', auth_views.logout)
    router.add_post('/theme', auth_views.toggle_theme)

    router.add_get('/', dashboard_view.dashboard)

    router.add_get('/tasks', task_views.task_list)
    router.add_post('/tasks', task_views.task_create)
    router.add_get('/tasks/new', task_views.task_new)
    router.add_get('/tasks/{task_id}', task_views.task_detail)
    router.add_get('/tasks/{task_id}/edit', task_views.task_edit)
    router.add_post('/tasks/{task_id}/edit', task_views.task_update)
    router.add_post('/tasks/{task_id}/delete', task_views.task_delete)
    router.add_post('/tasks/{task_id}/assign', task_views.task_assign)
    router.add_post('/tasks/{task_id}/attachments', task_views.task_upload)
    router.add_get('/tasks/{task_id}/attachment', task_views.task_attachment_download)
    router.add_post('/tasks/{task_id}/comments', task_views.task_comment)

    router.add_get('/users', user_views.user_list)
    router.add_post('/users', user_views.user_create)
    router.add_get('/users/new', user_views.user_new)
    router.add_get('/users/{user_id}/edit', user_views.user_edit)
    router.add_post('/users/{user_id}/edit', user_views.user_update)
    router.add_post('/users/{user_id}/delete', user_views.user_delete)
    router.add_get('/users/{user_id}/tasks', user_views.user_tasks)

    logger.info(f"🖥️ Веб-интерфейс подключен, upstream: {upstream.get('url')}")
