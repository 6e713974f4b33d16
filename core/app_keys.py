# core/app_keys.py
"""Ключи объектов, которые хранятся в aiohttp приложении и в запросе"""

from typing import Any, Dict

import httpx
from aiohttp import web

from core.api_client import ApiClient
from core.auth_manager import AuthManager
from core.config_manager import ConfigManager
from core.models import User
from core.proxy.api_proxy import ApiProxy

CONFIG_KEY = web.AppKey('config', ConfigManager)
PROXY_KEY = web.AppKey('proxy', ApiProxy)
HTTP_CLIENT_KEY = web.AppKey('http_client', httpx.AsyncClient)
AUTH_KEY = web.AppKey('auth_manager', AuthManager)
UI_CONFIG_KEY = web.AppKey('ui_config', Dict[str, Any])

# Кладет сессионный middleware интерфейса
API_CLIENT_KEY = web.RequestKey('api', ApiClient)
USER_KEY = web.RequestKey('user', User)
TOKEN_KEY = web.RequestKey('token', str)
