# ui/task_views.py
"""Страницы задач: список, форма, детали, вложения, комментарии"""

import asyncio
import base64
import binascii
import logging
import mimetypes
from typing import List, Optional
from urllib.parse import quote

from aiohttp import web
from pydantic import ValidationError

from core.api_client import ApiError
from core.app_keys import API_CLIENT_KEY, USER_KEY
from core.models import (AssignForm, CommentForm, Task, TaskForm, TaskStatus, User,
                         UNASSIGNED, form_errors)
from ui.rendering import redirect, render

logger = logging.getLogger(__name__)


def filter_tasks(tasks: List[Task], users: List[User], query: str = '',
                 status: str = 'all', user_filter: str = 'all') -> List[Task]:
    """
    Фильтрует задачи как таблица задач

    Поиск по названию и описанию без учета регистра; фильтр пользователя
    совпадает и по id, и по username выбранного пользователя.
    """
    query = (query or '').lower()
    selected = next((u for u in users if u.id == user_filter), None)

    result = []
    for task in tasks:
        matches_search = query in (task.name or '').lower() or query in (task.description or '').lower()
        matches_status = status in ('', 'all') or task.status == status

        matches_user = user_filter in ('', 'all')
        if not matches_user:
            matches_user = task.user_id == user_filter or (
                selected is not None and task.user_id == selected.username
            )

        if matches_search and matches_status and matches_user:
            result.append(task)

    return result


def can_edit_task(task: Task, current_user: Optional[User], users: List[User]) -> bool:
    """Администратор или исполнитель задачи (по id или username)"""
    if current_user is None or current_user.is_admin:
        return True
    if task.user_id in (current_user.id, current_user.username):
        return True

    matched = next((u for u in users if u.username == current_user.username or u.id == current_user.id), None)
    return matched is not None and task.user_id == matched.id


def _forbidden(request):
    return render(request, 'forbidden.html', status=403)


async def _load_task_and_users(request):
    api = request[API_CLIENT_KEY]
    task_id = request.match_info['task_id']
    return await asyncio.gather(api.get_task(task_id), api.get_users())


async def task_list(request: web.Request) -> web.Response:
    api = request[API_CLIENT_KEY]
    tasks, users = await asyncio.gather(api.get_tasks(), api.get_users())

    filters = {
        'q': request.query.get('q', ''),
        'status': request.query.get('status', 'all'),
        'user': request.query.get('user', 'all'),
    }
    filtered = filter_tasks(tasks, users, filters['q'], filters['status'], filters['user'])
    users_by_id = {u.id: u for u in users}

    rows = [
        {
            'task': task,
            'assignee': users_by_id.get(task.user_id) or task.user,
            'can_edit': can_edit_task(task, request.get(USER_KEY), users),
        }
        for task in filtered
    ]

    return render(request, 'tasks.html', {
        'rows': rows,
        'users': users,
        'filters': filters,
        'statuses': [s.value for s in TaskStatus],
    })


def _task_form_context(users, form=None, errors=None, task=None):
    return {
        'task': task,
        'users': users,
        'form': form or {},
        'errors': errors or {},
        'statuses': [s.value for s in TaskStatus],
        'unassigned': UNASSIGNED,
    }


def _task_form_data(data) -> dict:
    return {
        'name': data.get('name', ''),
        'description': data.get('description', ''),
        'status': data.get('status', TaskStatus.CREATED.value),
        'user_id': data.get('user_id', UNASSIGNED),
    }


async def task_new(request: web.Request) -> web.Response:
    users = await request[API_CLIENT_KEY].get_users()
    form = {'status': TaskStatus.CREATED.value, 'user_id': UNASSIGNED}
    return render(request, 'task_form.html', _task_form_context(users, form))


async def task_create(request: web.Request) -> web.Response:
    api = request[API_CLIENT_KEY]
    form_data = _task_form_data(await request.post())

    try:
        form = TaskForm(**form_data)
    except ValidationError as e:
        users = await api.get_users()
        return render(request, 'task_form.html', _task_form_context(users, form_data, form_errors(e)), status=400)

    try:
        await api.create_task(form.to_payload())
    except ApiError as e:
        if e.status == 401:
            raise
        logger.error(f"❌ Create task failed: {e}")
        return redirect('/tasks', 'error', "Не удалось создать задачу")

    return redirect('/tasks', 'success', "Задача успешно создана")


async def task_detail(request: web.Request) -> web.Response:
    api = request[API_CLIENT_KEY]
    task, users = await _load_task_and_users(request)

    # Исполнитель: из ответа, из списка пользователей или отдельным запросом
    assignee = task.user or next((u for u in users if u.id == task.user_id), None)
    if assignee is None and task.user_id:
        try:
            assignee = await api.get_user(task.user_id)
        except ApiError as e:
            if e.status == 401:
                raise
            logger.warning(f"⚠️ Не удалось загрузить исполнителя {task.user_id}: {e}")

    attachment = None
    if task.has_attachments:
        try:
            data = await api.get_task_with_attachment(task.id)
            attachment = data.get('attachment') or None
        except ApiError as e:
            if e.status == 401:
                raise
            logger.warning(f"⚠️ Не удалось загрузить вложение задачи {task.id}: {e}")

    return render(request, 'task_detail.html', {
        'task': task,
        'assignee': assignee,
        'attachment': attachment,
        'attachment_names': list(task.attachment_map.keys()),
        'users': users,
        'can_edit': can_edit_task(task, request.get(USER_KEY), users),
        'statuses': [s.value for s in TaskStatus],
    })


async def task_edit(request: web.Request) -> web.Response:
    task, users = await _load_task_and_users(request)
    if not can_edit_task(task, request.get(USER_KEY), users):
        return _forbidden(request)

    form = {
        'name': task.name,
        'description': task.description or '',
        'status': task.status,
        'user_id': task.user_id or UNASSIGNED,
    }
    return render(request, 'task_form.html', _task_form_context(users, form, task=task))


async def task_update(request: web.Request) -> web.Response:
    api = request[API_CLIENT_KEY]
    task, users = await _load_task_and_users(request)
    if not can_edit_task(task, request.get(USER_KEY), users):
        return _forbidden(request)

    form_data = _task_form_data(await request.post())
    try:
        form = TaskForm(**form_data)
    except ValidationError as e:
        return render(request, 'task_form.html',
                      _task_form_context(users, form_data, form_errors(e), task=task), status=400)

    try:
        await api.update_task(task.id, form.to_payload())
    except ApiError as e:
        if e.status == 401:
            raise
        logger.error(f"❌ Update task {task.id} failed: {e}")
        return redirect(f'/tasks/{task.id}', 'error', "Не удалось обновить задачу")

    return redirect(f'/tasks/{task.id}', 'success', "Задача успешно обновлена")


async def task_delete(request: web.Request) -> web.Response:
    api = request[API_CLIENT_KEY]
    task, users = await _load_task_and_users(request)
    if not can_edit_task(task, request.get(USER_KEY), users):
        return _forbidden(request)

    try:
        await api.delete_task(task.id)
    except ApiError as e:
        if e.status == 401:
            raise
        logger.error(f"❌ Delete task {task.id} failed: {e}")
        return redirect('/tasks', 'error', "Не удалось удалить задачу")

    return redirect('/tasks', 'success', "Задача успешно удалена")


async def task_assign(request: web.Request) -> web.Response:
    api = request[API_CLIENT_KEY]
    task, users = await _load_task_and_users(request)
    if not can_edit_task(task, request.get(USER_KEY), users):
        return _forbidden(request)

    task_id = request.match_info['task_id']
    data = await request.post()

    try:
        form = AssignForm(user_id=data.get('user_id', ''), status=data.get('status') or TaskStatus.ASSIGNED.value)
    except ValidationError as e:
        message = next(iter(form_errors(e).values()), "Некорректные данные")
        return redirect(f'/tasks/{task_id}', 'error', message)

    try:
        await api.assign_task(task_id, form.user_id, form.status.value)
    except ApiError as e:
        if e.status == 401:
            raise
        logger.error(f"❌ Assign task {task_id} failed: {e}")
        return redirect(f'/tasks/{task_id}', 'error', "Не удалось назначить задачу")

    return redirect(f'/tasks/{task_id}', 'success', "Задача успешно назначена")


async def task_upload(request: web.Request) -> web.Response:
    """Загрузка одного или нескольких файлов (каждый отдельным запросом)"""
    api = request[API_CLIENT_KEY]
    task_id = request.match_info['task_id']

    if not request.content_type.startswith('multipart/'):
        logger.warning(f"⚠️ Upload to task {task_id} without multipart body: {request.content_type}")
        return redirect(f'/tasks/{task_id}', 'error', "Не удалось загрузить файл")

    uploaded, failed = 0, 0
    reader = await request.multipart()

    async for part in reader:
        if part.name not in ('file', 'files') or not part.filename:
            continue

        content = await part.read(decode=False)
        content_type = part.headers.get('Content-Type', 'application/octet-stream')
        try:
            await api.upload_attachment(task_id, part.filename, bytes(content), content_type)
            uploaded += 1
        except ApiError as e:
            if e.status == 401:
                raise
            logger.error(f"❌ Upload {part.filename} to task {task_id} failed: {e}")
            failed += 1

    if failed or not uploaded:
        return redirect(f'/tasks/{task_id}', 'error', "Не удалось загрузить файл")
    return redirect(f'/tasks/{task_id}', 'success', "Файл успешно загружен")


async def task_attachment_download(request: web.Request) -> web.Response:
    task_id = request.match_info['task_id']
    data = await request[API_CLIENT_KEY].get_task_with_attachment(task_id)
    attachment = data.get('attachment') or {}

    filename = attachment.get('filename')
    encoded = attachment.get('content_base64')
    if not filename or encoded is None:
        raise web.HTTPNotFound(text="Вложение не найдено")

    try:
        content = base64.b64decode(encoded, validate=False)
    except (binascii.Error, ValueError):
        logger.error(f"❌ Broken base64 attachment for task {task_id}")
        raise web.HTTPBadGateway(text="Вложение повреждено")

    content_type = mimetypes.guess_type(filename)[0] or 'application/octet-stream'
    return web.Response(
        body=content,
        content_type=content_type,
        headers={'Content-Disposition': f"attachment; filename*=UTF-8''{quote(filename)}"}
    )


async def task_comment(request: web.Request) -> web.Response:
    api = request[API_CLIENT_KEY]
    task_id = request.match_info['task_id']
    data = await request.post()

    try:
        form = CommentForm(comment=data.get('comment', ''))
    except ValidationError:
        return redirect(f'/tasks/{task_id}', 'error', "Комментарий не может быть пустым")

    try:
        await api.add_comment(task_id, form.comment)
    except ApiError as e:
        if e.status == 401:
            raise
        logger.error(f"❌ Comment on task {task_id} failed: {e}")
        return redirect(f'/tasks/{task_id}', 'error', "Не удалось добавить комментарий")

    return redirect(f'/tasks/{task_id}', 'success', "Комментарий успешно добавлен")
