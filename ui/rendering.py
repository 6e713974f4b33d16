# ui/rendering.py
"""Шаблоны Jinja2, flash-сообщения и редиректы веб-интерфейса"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from aiohttp import web
from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.app_keys import UI_CONFIG_KEY, USER_KEY
from core.auth_manager import decode_cookie_json, encode_cookie_json
from core.models import ROLE_LABELS, STATUS_LABELS, parse_datetime
from ui.colors import STATUS_COLORS, get_palette

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / 'templates'

FLASH_COOKIE = 'flash'
THEME_COOKIE = 'theme'

PAGE_TITLES = {
    '/': ("Главная", "Обзор задач и пользователей"),
    '/tasks': ("Задачи", "Управление задачами"),
    '/users': ("Пользователи", "Управление пользователями"),
}

_environment: Optional[Environment] = None


def format_date(value) -> str:
    """Дата в формате ru-RU (дд.мм.гггг), пустая - прочерк"""
    parsed = parse_datetime(value)
    return parsed.strftime('%d.%m.%Y') if parsed else '—'


def format_datetime(value) -> str:
    parsed = parse_datetime(value)
    return parsed.strftime('%d.%m.%Y %H:%M') if parsed else ''


def get_environment() -> Environment:
    """Окружение Jinja2 (создается один раз)"""
    global _environment
    if _environment is None:
        env = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=select_autoescape(['html']),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        env.filters['date_ru'] = format_date
        env.filters['datetime_ru'] = format_datetime
        env.filters['status_label'] = lambda status: STATUS_LABELS.get(status, status)
        env.filters['role_label'] = lambda role: ROLE_LABELS.get(role or 'user', role)
        env.filters['initial'] = lambda value: (value or '?')[:1].upper()
        env.globals['STATUS_LABELS'] = STATUS_LABELS
        env.globals['ROLE_LABELS'] = ROLE_LABELS
        env.globals['STATUS_COLORS'] = STATUS_COLORS
        _environment = env
    return _environment


def navigation(user) -> list:
    """Пункты меню; пользователи видны только администратору"""
    items = [
        {'name': "Главная", 'href': '/'},
        {'name': "Задачи", 'href': '/tasks'},
    ]
    if user is not None and user.is_admin:
        items.append({'name': "Пользователи", 'href': '/users'})
    return items


def get_theme(request: web.Request) -> str:
    theme = request.cookies.get(THEME_COOKIE)
    if theme in ('dark', 'light'):
        return theme
    return request.app[UI_CONFIG_KEY].get('theme', 'dark')


def read_flash(request: web.Request) -> Optional[Dict[str, str]]:
    raw = request.cookies.get(FLASH_COOKIE)
    if not raw:
        return None
    try:
        data = decode_cookie_json(raw)
    except (ValueError, UnicodeError):
        return None
    if not isinstance(data, dict) or 'message' not in data:
        return None
    return data


def set_flash(response: web.StreamResponse, level: str, message: str):
    """
    Сообщение для следующей страницы

    Args:
        level: 'success' или 'error'
        message: Текст уведомления
    """
    response.set_cookie(FLASH_COOKIE, encode_cookie_json({'level': level, 'message': message}),
                        httponly=True, samesite='Lax', path='/')


def redirect(location: str, level: Optional[str] = None, message: Optional[str] = None) -> web.Response:
    response = web.Response(status=302, headers={'Location': location})
    if message:
        set_flash(response, level or 'success', message)
    return response


def render(request: web.Request, template_name: str, context: Optional[Dict[str, Any]] = None,
           status: int = 200) -> web.Response:
    """Рендерит страницу с общим контекстом (пользователь, тема, меню, flash)"""
    user = request.get(USER_KEY)
    theme = get_theme(request)
    flash = read_flash(request)
    section = '/' + request.path.strip('/').split('/')[0] if request.path != '/' else '/'
    title, subtitle = PAGE_TITLES.get(section, ("", ""))

    page_context = {
        'current_user': user,
        'theme': theme,
        'palette': get_palette(theme),
        'flash': flash,
        'nav': navigation(user),
        'section': section,
        'page_title': title,
        'page_subtitle': subtitle,
    }
    page_context.update(context or {})

    html = get_environment().get_template(template_name).render(page_context)
    response = web.Response(text=html, status=status, content_type='text/html')

    if flash:
        response.del_cookie(FLASH_COOKIE, path='/')

    return response
