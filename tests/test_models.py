# tests/test_models.py

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.models import (
    AssignForm,
    RegisterForm,
    Task,
    TaskForm,
    User,
    UserForm,
    calculate_task_stats,
    form_errors,
    parse_attachments,
    recent_tasks,
    users_with_stats,
)


def test_ids_are_coerced_to_strings() -> None:
    task = Task.model_validate({"id": 5, "name": "x", "user_id": 7, "comments": None})
    assert task.id == "5"
    assert task.user_id == "7"
    assert task.comments == []


def test_attachments_accept_json_string_or_object() -> None:
    assert parse_attachments('{"a.txt": "path"}') == {"a.txt": "path"}
    assert parse_attachments({"b.txt": "p"}) == {"b.txt": "p"}
    assert parse_attachments("not json") == {}
    assert parse_attachments("[1, 2]") == {}
    assert parse_attachments(None) == {}

    assert Task(id="1", attachments='{"a.txt": "p"}').has_attachments
    assert not Task(id="1", attachments="").has_attachments


def test_task_form_payload_drops_unassigned_and_blank_fields() -> None:
    form = TaskForm(name="  Ship it ", description="  ", status="assigned", user_id="unassigned")
    assert form.to_payload() == {"name": "Ship it", "status": "assigned"}

    form = TaskForm(name="Ship", user_id="3")
    assert form.to_payload() == {"name": "Ship", "status": "created", "user_id": "3"}


def test_task_form_rejects_unknown_status() -> None:
    with pytest.raises(ValidationError) as exc:
        TaskForm(name="x", status="archived")
    assert form_errors(exc.value) == {"status": "Выберите статус"}

    with pytest.raises(ValidationError) as exc:
        AssignForm(user_id="2", status="")
    assert form_errors(exc.value) == {"status": "Выберите статус"}
    assert TaskForm(name="x", status="done").status.value == "done"


def test_form_errors_strip_pydantic_prefix() -> None:
    with pytest.raises(ValidationError) as exc:
        TaskForm(name=" ")
    assert form_errors(exc.value) == {"name": "Название обязательно"}


def test_register_form_rules() -> None:
    with pytest.raises(ValidationError) as exc:
        RegisterForm(username="ab", password="123", confirm_password="123", role="root")
    errors = form_errors(exc.value)
    assert errors["username"] == "Имя пользователя должно содержать минимум 3 символа"
    assert errors["password"] == "Пароль должен содержать минимум 6 символов"
    assert errors["role"] == "Выберите роль"

    with pytest.raises(ValidationError) as exc:
        RegisterForm(username="abc", password="123456", confirm_password="654321")
    assert form_errors(exc.value) == {"__all__": "Пароли не совпадают"}


def test_user_form_email() -> None:
    assert UserForm(username="bob", email="").to_payload() == {"username": "bob"}
    assert UserForm(username="bob", email="bob@example.com").email == "bob@example.com"
    with pytest.raises(ValidationError):
        UserForm(username="bob", email="bob@localhost")


def test_assign_form_requires_user() -> None:
    with pytest.raises(ValidationError):
        AssignForm(user_id="unassigned")
    assert AssignForm(user_id=4).status.value == "assigned"


def test_stats_and_recent_tasks() -> None:
    tasks = [
        Task(id="1", status="done", user_id="1", created_at="2024-01-01T00:00:00Z"),
        Task(id="2", status="assigned", user_id="1", created_at="2024-03-01T00:00:00Z"),
        Task(id="3", status="created", user_id="2"),
        Task(id="4", status="created", user_id="2", created_at="2024-02-01T00:00:00"),
    ]

    stats = calculate_task_stats(tasks)
    assert (stats.total, stats.completed, stats.in_progress) == (4, 1, 1)

    assert [t.id for t in recent_tasks(tasks, limit=3)] == ["2", "4", "1"]

    users = users_with_stats([User(id="1", username="a"), User(id="9", username="z")], tasks)
    assert users[0].task_stats.total == 2
    assert users[1].task_stats.total == 0
