# core/proxy/__init__.py
"""
Proxy modules package.

Прокси ничего не хранит: путь, безопасные заголовки и тело уходят
на внешний API, статус и Content-Type ответа возвращаются как есть.
"""

from core.proxy.api_proxy import ApiProxy
from core.proxy.body_codec import BodyCodec, BodyDecodeError, body_kind

__all__ = ['ApiProxy', 'BodyCodec', 'BodyDecodeError', 'body_kind']
