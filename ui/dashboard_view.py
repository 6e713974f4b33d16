# ui/dashboard_view.py
import asyncio

from aiohttp import web

from core.api_client import build_dashboard_stats
from core.app_keys import API_CLIENT_KEY, UI_CONFIG_KEY
from core.models import recent_tasks, users_with_stats
from ui.rendering import render


async def dashboard(request: web.Request) -> web.Response:
    """Главная: статистика, последние задачи и активные пользователи"""
    api = request[API_CLIENT_KEY]
    ui_config = request.app[UI_CONFIG_KEY]

    tasks, users = await asyncio.gather(api.get_tasks(), api.get_users())

    return render(request, 'dashboard.html', {
        'stats': build_dashboard_stats(tasks, users),
        'recent_tasks': recent_tasks(tasks, ui_config.get('recent_tasks_limit', 5)),
        'users': users_with_stats(users, tasks)[:ui_config.get('users_preview_limit', 5)],
    })
