# core/api_client.py
"""
Клиент внешнего API задач (используется веб-интерфейсом)
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from core.models import DashboardStats, Task, TaskStatus, TaskWithUser, User

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Ответ внешнего API с кодом ошибки"""

    def __init__(self, status: int, body: str = '', reason: str = ''):
        self.status = status
        self.body = body
        self.reason = reason
        super().__init__(f"{status}: {body or reason}")


def create_http_client(base_url: str, timeout: float = 30.0, verify: bool = True,
                       transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """
    Создает общий HTTP клиент для внешнего API

    Args:
        base_url: URL внешнего API
        timeout: Таймаут запроса в секундах
        verify: Проверять ли TLS сертификат upstream
        transport: Подмена транспорта (для тестов)
    """
    return httpx.AsyncClient(
        base_url=base_url.rstrip('/'),
        timeout=timeout,
        verify=verify,
        follow_redirects=False,
        transport=transport
    )


class ApiClient:
    """Типизированные вызовы внешнего API от имени пользователя"""

    def __init__(self, http: httpx.AsyncClient, token: Optional[str] = None):
        self.http = http
        self.token = token

    def _headers(self) -> Dict[str, str]:
        headers = {'Accept': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Выполняет запрос и бросает ApiError на не-2xx ответ"""
        headers = self._headers()
        headers.update(kwargs.pop('headers', {}))

        response = await self.http.request(method, url, headers=headers, **kwargs)

        if response.is_error:
            text = response.text
            logger.warning(f"⚠️ {method} {url} -> {response.status_code}: {text[:200]}")
            raise ApiError(response.status_code, text, response.reason_phrase)

        return response

    async def _json(self, method: str, url: str, **kwargs) -> Any:
        response = await self.request(method, url, **kwargs)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    # --- Задачи ---

    async def get_tasks(self) -> List[TaskWithUser]:
        data = await self._json('GET', '/tasks/')
        return [TaskWithUser.model_validate(t) for t in _items(data, 'tasks')]

    async def get_task(self, task_id: str) -> TaskWithUser:
        data = await self._json('GET', f'/tasks/{task_id}')
        return TaskWithUser.model_validate(_unwrap(data, 'task'))

    async def create_task(self, payload: Dict[str, Any]) -> Optional[Task]:
        data = await self._json('POST', '/tasks/', json=payload)
        return _task_or_none(data)

    async def update_task(self, task_id: str, payload: Dict[str, Any]) -> Optional[Task]:
        data = await self._json('PUT', f'/tasks/{task_id}', json=payload)
        return _task_or_none(data)

    async def delete_task(self, task_id: str):
        await self.request('DELETE', f'/tasks/{task_id}')

    async def assign_task(self, task_id: str, user_id: str,
                          status: str = TaskStatus.ASSIGNED.value) -> Optional[Task]:
        data = await self._json('POST', f'/tasks/assign-task/{task_id}',
                                json={'user_id': user_id, 'status': status})
        return _task_or_none(data)

    async def upload_attachment(self, task_id: str, filename: str, content: bytes,
                                content_type: str = 'application/octet-stream'):
        await self.request('POST', f'/tasks/{task_id}/attachment',
                           files={'file': (filename, content, content_type)})

    async def get_task_with_attachment(self, task_id: str) -> Dict[str, Any]:
        """Возвращает {'task': ..., 'attachment': {'filename', 'content_base64'}}"""
        return await self._json('GET', f'/tasks/{task_id}/with-attachment') or {}

    async def add_comment(self, task_id: str, comment: str) -> Any:
        return await self._json('POST', f'/tasks/{task_id}/comments', json={'comment': comment})

    # --- Пользователи ---

    async def get_users(self) -> List[User]:
        data = await self._json('GET', '/users/')
        return [User.model_validate(u) for u in _items(data, 'users')]

    async def get_user(self, user_id: str) -> User:
        # Пользователь может прийти вложенным в {"user": {...}}
        data = await self._json('GET', f'/users/{user_id}')
        return User.model_validate(_unwrap(data, 'user'))

    async def create_user(self, payload: Dict[str, Any]) -> Optional[User]:
        data = await self._json('POST', '/users/', json=payload)
        return _user_or_none(data)

    async def update_user(self, user_id: str, payload: Dict[str, Any]) -> Optional[User]:
        data = await self._json('PUT', f'/users/{user_id}', json=payload)
        return _user_or_none(data)

    async def delete_user(self, user_id: str):
        await self.request('DELETE', f'/users/{user_id}')

    async def get_user_tasks(self, user_id: str) -> List[TaskWithUser]:
        data = await self._json('GET', f'/users/{user_id}/tasks')
        return [TaskWithUser.model_validate(t) for t in _items(data, 'tasks')]

    # --- Аутентификация ---

    async def login(self, username: str, password: str) -> Dict[str, Any]:
        """POST /auth/login (form-urlencoded), ответ содержит access_token"""
        return await self._json('POST', '/auth/login',
                                data={'username': username, 'password': password}) or {}

    async def register(self, username: str, password: str, role: str = 'user') -> Any:
        return await self._json('POST', '/auth/register',
                                json={'username': username, 'password': password, 'role': role})

    # --- Главная ---

    async def get_dashboard_stats(self) -> DashboardStats:
        tasks, users = await asyncio.gather(self.get_tasks(), self.get_users())
        return build_dashboard_stats(tasks, users)


def build_dashboard_stats(tasks: List[Task], users: List[User]) -> DashboardStats:
    return DashboardStats(
        total_tasks=len(tasks),
        active_users=len(users),
        completed_tasks=sum(1 for t in tasks if t.status == TaskStatus.DONE.value),
        in_progress_tasks=sum(1 for t in tasks if t.status == TaskStatus.ASSIGNED.value),
    )


def _items(data: Any, key: str) -> List[Dict[str, Any]]:
    if isinstance(data, dict):
        return data.get(key) or []
    if isinstance(data, list):
        return data
    return []


def _unwrap(data: Any, key: str) -> Dict[str, Any]:
    if isinstance(data, dict) and isinstance(data.get(key), dict):
        return data[key]
    return data or {}


def _task_or_none(data: Any) -> Optional[Task]:
    data = _unwrap(data, 'task')
    if isinstance(data, dict) and 'id' in data:
        return Task.model_validate(data)
    return None


def _user_or_none(data: Any) -> Optional[User]:
    data = _unwrap(data, 'user')
    if isinstance(data, dict) and 'id' in data:
        return User.model_validate(data)
    return None
