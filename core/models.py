# core/models.py
"""Типы данных задач и пользователей и валидация форм интерфейса"""

import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

UNASSIGNED = 'unassigned'


class TaskStatus(str, Enum):
    CREATED = 'created'
    ASSIGNED = 'assigned'
    DONE = 'done'

    @property
    def label(self) -> str:
        return STATUS_LABELS[self.value]


STATUS_LABELS = {
    'created': 'Создана',
    'assigned': 'Назначена',
    'done': 'Выполнена',
}

ROLE_LABELS = {
    'user': 'Пользователь',
    'admin': 'Администратор',
}


class User(BaseModel):
    """Пользователь внешнего API"""
    model_config = ConfigDict(extra='allow')

    id: str
    username: str = ''
    email: Optional[str] = None
    role: Optional[str] = None
    created_at: Optional[str] = None

    @field_validator('id', mode='before')
    @classmethod
    def _id_to_str(cls, value):
        return str(value) if value is not None else value

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'


class Comment(BaseModel):
    model_config = ConfigDict(extra='allow')

    author: Optional[str] = None
    comment: str = ''
    created_at: Optional[str] = None


class Task(BaseModel):
    """Задача внешнего API"""
    model_config = ConfigDict(extra='allow')

    id: str
    name: str = ''
    description: Optional[str] = None
    status: str = TaskStatus.CREATED.value
    user_id: Optional[str] = None
    created_at: Optional[str] = None
    attachments: Any = None
    comments: List[Comment] = Field(default_factory=list)

    @field_validator('id', 'user_id', mode='before')
    @classmethod
    def _id_to_str(cls, value):
        return str(value) if value is not None else value

    @field_validator('comments', mode='before')
    @classmethod
    def _none_comments(cls, value):
        return value or []

    @property
    def status_label(self) -> str:
        return STATUS_LABELS.get(self.status, self.status)

    @property
    def attachment_map(self) -> Dict[str, Any]:
        return parse_attachments(self.attachments)

    @property
    def has_attachments(self) -> bool:
        return bool(self.attachment_map)


class TaskWithUser(Task):
    user: Optional[User] = None


class TaskStats(BaseModel):
    total: int = 0
    completed: int = 0
    in_progress: int = 0


class UserWithStats(User):
    task_stats: TaskStats = Field(default_factory=TaskStats)


class DashboardStats(BaseModel):
    total_tasks: int = 0
    active_users: int = 0
    completed_tasks: int = 0
    in_progress_tasks: int = 0


class Attachment(BaseModel):
    filename: str
    content_base64: str = ''


# --- Формы ---

def _known_status(value) -> TaskStatus:
    if isinstance(value, TaskStatus):
        return value
    try:
        return TaskStatus(value)
    except ValueError:
        raise ValueError('Выберите статус') from None


class TaskForm(BaseModel):
    name: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.CREATED
    user_id: Optional[str] = None

    @field_validator('name')
    @classmethod
    def _name_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError('Название обязательно')
        return value

    @field_validator('description', mode='before')
    @classmethod
    def _blank_description(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @field_validator('user_id', mode='before')
    @classmethod
    def _unassigned(cls, value):
        if value is None or value == '' or value == UNASSIGNED:
            return None
        return str(value)

    @field_validator('status', mode='before')
    @classmethod
    def _status_known(cls, value):
        return _known_status(value)

    def to_payload(self) -> Dict[str, Any]:
        """Тело запроса для внешнего API (пустые поля не передаются)"""
        return self.model_dump(mode='json', exclude_none=True)


class UserForm(BaseModel):
    username: str
    email: Optional[str] = None

    @field_validator('username')
    @classmethod
    def _username_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError('Имя пользователя обязательно')
        return value

    @field_validator('email', mode='before')
    @classmethod
    def _check_email(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        if not value:
            return None
        local, _, domain = value.partition('@')
        if not local or '.' not in domain:
            raise ValueError('Некорректный email')
        return value

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class LoginForm(BaseModel):
    username: str
    password: str

    @field_validator('username')
    @classmethod
    def _username_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError('Имя пользователя обязательно')
        return value.strip()

    @field_validator('password')
    @classmethod
    def _password_required(cls, value: str) -> str:
        if not value:
            raise ValueError('Пароль обязателен')
        return value


class RegisterForm(BaseModel):
    username: str
    password: str
    confirm_password: str = ''
    role: str = 'user'

    @field_validator('username')
    @classmethod
    def _username_length(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 3:
            raise ValueError('Имя пользователя должно содержать минимум 3 символа')
        return value

    @field_validator('password')
    @classmethod
    def _password_length(cls, value: str) -> str:
        if len(value) < 6:
            raise ValueError('Пароль должен содержать минимум 6 символов')
        return value

    @field_validator('role')
    @classmethod
    def _role_choice(cls, value: str) -> str:
        if value not in ROLE_LABELS:
            raise ValueError('Выберите роль')
        return value

    @model_validator(mode='after')
    def _passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError('Пароли не совпадают')
        return self


class AssignForm(BaseModel):
    user_id: str
    status: TaskStatus = TaskStatus.ASSIGNED

    @field_validator('user_id', mode='before')
    @classmethod
    def _user_required(cls, value):
        if value is None or str(value).strip() in ('', UNASSIGNED):
            raise ValueError('Выберите пользователя')
        return str(value).strip()

    @field_validator('status', mode='before')
    @classmethod
    def _status_known(cls, value):
        return _known_status(value)


class CommentForm(BaseModel):
    comment: str

    @field_validator('comment')
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError('Комментарий не может быть пустым')
        return value


def form_errors(error: ValidationError) -> Dict[str, str]:
    """Сообщения ошибок pydantic в виде {поле: текст}"""
    errors = {}
    for item in error.errors():
        field = item['loc'][0] if item['loc'] else '__all__'
        message = item.get('msg', '')
        # pydantic добавляет префикс "Value error, "
        if message.startswith('Value error, '):
            message = message[len('Value error, '):]
        errors.setdefault(str(field), message)
    return errors


# --- Вспомогательные функции ---

def parse_attachments(attachments: Any) -> Dict[str, Any]:
    """Вложения приходят объектом или JSON-строкой; всё прочее считается пустым"""
    if not attachments:
        return {}
    if isinstance(attachments, dict):
        return attachments
    if isinstance(attachments, str):
        try:
            parsed = json.loads(attachments)
        except ValueError:
            logger.warning(f"Failed to parse attachments JSON: {attachments[:100]!r}")
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None


def calculate_task_stats(tasks: List[Task]) -> TaskStats:
    return TaskStats(
        total=len(tasks),
        completed=sum(1 for t in tasks if t.status == TaskStatus.DONE.value),
        in_progress=sum(1 for t in tasks if t.status == TaskStatus.ASSIGNED.value),
    )


def users_with_stats(users: List[User], tasks: List[Task]) -> List[UserWithStats]:
    result = []
    for user in users:
        user_tasks = [t for t in tasks if t.user_id == user.id]
        result.append(UserWithStats(**user.model_dump(), task_stats=calculate_task_stats(user_tasks)))
    return result


def recent_tasks(tasks: List[Task], limit: int = 5) -> List[Task]:
    """Последние задачи по дате создания (без даты - в конце)"""
    def sort_key(task):
        created = parse_datetime(task.created_at)
        return created.timestamp() if created else float('-inf')

    return sorted(tasks, key=sort_key, reverse=True)[:limit]
