# ui/auth_views.py
import logging

from aiohttp import web
from pydantic import ValidationError

from core.app_keys import API_CLIENT_KEY, AUTH_KEY, USER_KEY
from core.auth_manager import AuthError
from core.models import ROLE_LABELS, LoginForm, RegisterForm, form_errors
from ui.rendering import THEME_COOKIE, get_theme, redirect, render

logger = logging.getLogger(__name__)


async def login_page(request: web.Request) -> web.Response:
    token, _ = request.app[AUTH_KEY].get_session(request)
    if token:
        return redirect('/')
    return render(request, 'login.html', {'form': {}, 'errors': {}})


async def login_submit(request: web.Request) -> web.Response:
    data = await request.post()
    form_data = {'username': data.get('username', ''), 'password': data.get('password', '')}

    try:
        form = LoginForm(**form_data)
    except ValidationError as e:
        return render(request, 'login.html', {'form': form_data, 'errors': form_errors(e)}, status=400)

    auth = request.app[AUTH_KEY]
    try:
        token, user = await auth.login(request[API_CLIENT_KEY], form.username, form.password)
    except AuthError as e:
        return render(request, 'login.html', {'form': form_data, 'errors': {'__all__': str(e)}}, status=401)

    response = redirect('/', 'success', f"Добро пожаловать, {user.username}!")
    auth.store_session(response, token, user)
    return response


async def register_page(request: web.Request) -> web.Response:
    return render(request, 'register.html', {'form': {'role': 'user'}, 'errors': {}, 'roles': ROLE_LABELS})


async def register_submit(request: web.Request) -> web.Response:
    data = await request.post()
    form_data = {
        'username': data.get('username', ''),
        'password': data.get('password', ''),
        'confirm_password': data.get('confirm_password', ''),
        'role': data.get('role', 'user'),
    }
    context = {'form': form_data, 'roles': ROLE_LABELS}

    try:
        form = RegisterForm(**form_data)
    except ValidationError as e:
        return render(request, 'register.html', {**context, 'errors': form_errors(e)}, status=400)

    auth = request.app[AUTH_KEY]
    try:
        token, user = await auth.register(request[API_CLIENT_KEY], form.username, form.password, form.role)
    except AuthError as e:
        return render(request, 'register.html', {**context, 'errors': {'__all__': str(e)}}, status=400)

    response = redirect('/', 'success', "Регистрация прошла успешно")
    auth.store_session(response, token, user)
    return response


async def logout(request: web.Request) -> web.Response:
    user = request.get(USER_KEY)
    logger.info(f"👋 Logout: {user.username if user else 'unknown'}")

    response = redirect('/login', 'success', "Вы успешно вышли из системы")
    request.app[AUTH_KEY].clear_session(response)
    return response


async def toggle_theme(request: web.Request) -> web.Response:
    """Переключает тему и возвращает на предыдущую страницу"""
    new_theme = 'light' if get_theme(request) == 'dark' else 'dark'

    back = request.headers.get('Referer', '/')
    origin = f'{request.scheme}://{request.host}'
    if back == origin or back.startswith(origin + '/'):
        back = back[len(origin):] or '/'

    # "//host" и "/\host" браузер считает чужим адресом
    location = back if back.startswith('/') and not back.startswith(('//', '/\\')) else '/'

    response = redirect(location)
    response.set_cookie(THEME_COOKIE, new_theme, max_age=365 * 24 * 3600, samesite='Lax', path='/')
    return response
