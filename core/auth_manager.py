# core/auth_manager.py
"""
Authentication Manager для сессий веб-интерфейса

Токен выдает внешний API; здесь он только хранится в cookie
и разбирается (без проверки подписи) для отображения пользователя.
"""

import base64
import json
import logging
from typing import Any, Dict, Optional

from aiohttp import web

from core.api_client import ApiClient, ApiError
from core.models import User

logger = logging.getLogger(__name__)

TOKEN_COOKIE = 'auth_token'
USER_COOKIE = 'auth_user'


class AuthError(Exception):
    """Вход или регистрация не удались"""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


def _b64decode(value: str) -> bytes:
    """base64url без обязательного паддинга"""
    return base64.urlsafe_b64decode(value + '=' * (-len(value) % 4))


def encode_cookie_json(data: Any) -> str:
    """JSON в base64url без паддинга (значение cookie без кавычек)"""
    raw = json.dumps(data, ensure_ascii=False).encode('utf-8')
    return base64.urlsafe_b64encode(raw).decode('ascii').rstrip('=')


def decode_cookie_json(value: str) -> Any:
    """
    Обратное к encode_cookie_json

    Raises:
        ValueError: значение повреждено
    """
    return json.loads(_b64decode(value).decode('utf-8'))


def parse_jwt(token: str) -> Dict[str, Any]:
    """
    Разбирает payload JWT без проверки подписи

    Returns:
        dict: payload или {} если токен поврежден
    """
    try:
        payload = json.loads(_b64decode(token.split('.')[1]).decode('utf-8'))
        return payload if isinstance(payload, dict) else {}
    except (IndexError, ValueError, UnicodeDecodeError) as e:
        logger.error(f"Error parsing JWT: {e}")
        return {}


def user_from_token(token: str, username: str) -> User:
    """Информация о пользователе из payload токена (с запасным username)"""
    payload = parse_jwt(token)
    return User(
        id=str(payload.get('sub') or payload.get('id') or username),
        username=payload.get('username') or username,
        role=payload.get('role') or 'user',
    )


class AuthManager:
    """Вход, регистрация и хранение сессии в cookie"""

    def __init__(self, cookie_secure: bool = False):
        self.cookie_secure = cookie_secure

    async def login(self, client: ApiClient, username: str, password: str) -> tuple[str, User]:
        """
        Аутентификация на внешнем API

        Returns:
            tuple: (access_token, User)

        Raises:
            AuthError: неверные данные или ответ без токена
        """
        try:
            data = await client.login(username, password)
        except ApiError as e:
            logger.error(f"❌ Login failed for {username}: HTTP {e.status}")
            raise AuthError("Неверное имя пользователя или пароль", e.status) from e

        token = data.get('access_token')
        if not token:
            logger.error(f"❌ Login response without access_token for {username}")
            raise AuthError("Сервер не вернул токен доступа")

        user = user_from_token(token, username)
        logger.info(f"✅ Authentication successful: user={user.id}, role={user.role}")
        return token, user

    async def register(self, client: ApiClient, username: str, password: str,
                       role: str = 'user') -> tuple[str, User]:
        """Регистрация и автоматический вход"""
        try:
            await client.register(username, password, role)
        except ApiError as e:
            logger.error(f"❌ Registration failed for {username}: HTTP {e.status}")
            raise AuthError("Не удалось зарегистрироваться", e.status) from e

        logger.info(f"✅ Registered user {username} ({role})")
        return await self.login(client, username, password)

    def get_session(self, request: web.Request) -> tuple[Optional[str], Optional[User]]:
        """
        Восстанавливает сессию из cookie

        Returns:
            tuple: (token, User) или (None, None)
        """
        token = request.cookies.get(TOKEN_COOKIE)
        raw_user = request.cookies.get(USER_COOKIE)
        if not token or not raw_user:
            return None, None

        try:
            user_data = decode_cookie_json(raw_user)
            return token, User.model_validate(user_data)
        except (ValueError, UnicodeError) as e:
            # Поврежденные данные - сессия сбрасывается
            logger.warning(f"⚠️ Corrupted session cookie, clearing: {e}")
            return None, None

    def store_session(self, response: web.StreamResponse, token: str, user: User):
        encoded_user = encode_cookie_json(user.model_dump(exclude_none=True))

        for name, value in ((TOKEN_COOKIE, token), (USER_COOKIE, encoded_user)):
            response.set_cookie(name, value, httponly=True, samesite='Lax', secure=self.cookie_secure, path='/')

    def clear_session(self, response: web.StreamResponse):
        response.del_cookie(TOKEN_COOKIE, path='/')
        response.del_cookie(USER_COOKIE, path='/')


# Singleton instance
_auth_manager: Optional[AuthManager] = None


def get_auth_manager(cookie_secure: bool = False) -> AuthManager:
    """
    Получить singleton экземпляр AuthManager

    Args:
        cookie_secure: Ставить ли cookie только для HTTPS
    """
    global _auth_manager

    if _auth_manager is None:
        _auth_manager = AuthManager(cookie_secure)

    return _auth_manager
