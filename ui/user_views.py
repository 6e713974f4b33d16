# ui/user_views.py
"""Управление пользователями (только для администратора)"""

import asyncio
import functools
import logging

from aiohttp import web
from pydantic import ValidationError

from core.api_client import ApiError
from core.app_keys import API_CLIENT_KEY, USER_KEY
from core.models import UserForm, form_errors, users_with_stats
from ui.rendering import redirect, render

logger = logging.getLogger(__name__)


def admin_only(handler):
    @functools.wraps(handler)
    async def wrapper(request: web.Request) -> web.Response:
        user = request.get(USER_KEY)
        if user is None or not user.is_admin:
            logger.warning(f"🚫 {user.username if user else 'anonymous'} -> {request.path}: доступ запрещен")
            return render(request, 'forbidden.html', status=403)
        return await handler(request)
    return wrapper


@admin_only
async def user_list(request: web.Request) -> web.Response:
    api = request[API_CLIENT_KEY]
    users, tasks = await asyncio.gather(api.get_users(), api.get_tasks())
    return render(request, 'users.html', {'users': users_with_stats(users, tasks)})


@admin_only
async def user_new(request: web.Request) -> web.Response:
    return render(request, 'user_form.html', {'form': {}, 'errors': {}, 'user': None})


def _user_form_data(data) -> dict:
    return {'username': data.get('username', ''), 'email': data.get('email', '')}


@admin_only
async def user_create(request: web.Request) -> web.Response:
    form_data = _user_form_data(await request.post())
    try:
        form = UserForm(**form_data)
    except ValidationError as e:
        return render(request, 'user_form.html',
                      {'form': form_data, 'errors': form_errors(e), 'user': None}, status=400)

    try:
        await request[API_CLIENT_KEY].create_user(form.to_payload())
    except ApiError as e:
        if e.status == 401:
            raise
        logger.error(f"❌ Create user failed: {e}")
        return redirect('/users', 'error', "Не удалось создать пользователя")

    return redirect('/users', 'success', "Пользователь успешно создан")


@admin_only
async def user_edit(request: web.Request) -> web.Response:
    user = await request[API_CLIENT_KEY].get_user(request.match_info['user_id'])
    form = {'username': user.username, 'email': user.email or ''}
    return render(request, 'user_form.html', {'form': form, 'errors': {}, 'user': user})


@admin_only
async def user_update(request: web.Request) -> web.Response:
    api = request[API_CLIENT_KEY]
    user_id = request.match_info['user_id']
    form_data = _user_form_data(await request.post())

    try:
        form = UserForm(**form_data)
    except ValidationError as e:
        user = await api.get_user(user_id)
        return render(request, 'user_form.html',
                      {'form': form_data, 'errors': form_errors(e), 'user': user}, status=400)

    try:
        await api.update_user(user_id, form.to_payload())
    except ApiError as e:
        if e.status == 401:
            raise
        logger.error(f"❌ Update user {user_id} failed: {e}")
        return redirect('/users', 'error', "Не удалось обновить пользователя")

    return redirect('/users', 'success', "Пользователь успешно обновлен")


@admin_only
async def user_delete(request: web.Request) -> web.Response:
    user_id = request.match_info['user_id']
    try:
        await request[API_CLIENT_KEY].delete_user(user_id)
    except ApiError as e:
        if e.status == 401:
            raise
        logger.error(f"❌ Delete user {user_id} failed: {e}")
        return redirect('/users', 'error', "Не удалось удалить пользователя")

    return redirect('/users', 'success', "Пользователь успешно удален")


@admin_only
async def user_tasks(request: web.Request) -> web.Response:
    api = request[API_CLIENT_KEY]
    user_id = request.match_info['user_id']
    user, tasks = await asyncio.gather(api.get_user(user_id), api.get_user_tasks(user_id))
    return render(request, 'user_tasks.html', {'user': user, 'tasks': tasks})
