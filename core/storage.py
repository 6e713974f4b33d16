# core/storage.py
"""
In-memory хранилище пользователей и задач

Данные принадлежат внешнему API, это хранилище нужно только для
согласованности типов (и как простая подмена в тестах).
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

from core.models import Task, TaskStatus, User


class MemStorage:
    def __init__(self):
        self.users: Dict[str, User] = {}
        self.tasks: Dict[str, Task] = {}

    async def get_user(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        return next((u for u in self.users.values() if u.username == username), None)

    async def create_user(self, data: dict) -> User:
        user_id = str(uuid.uuid4())
        user = User(**{**data, 'id': user_id, 'created_at': _now()})
        self.users[user_id] = user
        return user

    async def get_task(self, task_id: str) -> Optional[Task]:
        return self.tasks.get(task_id)

    async def create_task(self, data: dict) -> Task:
        task_id = str(uuid.uuid4())
        task = Task(**{
            **data,
            'id': task_id,
            'description': data.get('description') or None,
            'status': data.get('status') or TaskStatus.CREATED.value,
            'user_id': data.get('user_id') or None,
            'attachments': data.get('attachments') or None,
            'created_at': _now(),
        })
        self.tasks[task_id] = task
        return task


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# Синглтон для глобального доступа
_storage = None


def get_storage() -> MemStorage:
    """Возвращает глобальный экземпляр MemStorage"""
    global _storage
    if _storage is None:
        _storage = MemStorage()
    return _storage
