# core/proxy/headers.py
"""Фильтрация заголовков при проксировании"""

from typing import Dict, Iterable, Mapping

from multidict import CIMultiDict

DEFAULT_SAFE_HEADERS = ('authorization', 'content-type', 'accept', 'user-agent')

# Заголовки ответа, которые не копируем обратно браузеру
SKIPPED_RESPONSE_HEADERS = frozenset({
    'content-encoding',
    'transfer-encoding',
    'content-length',
    'connection',
    'keep-alive',
})


def filter_request_headers(headers: Mapping[str, str],
                           safe_headers: Iterable[str] = DEFAULT_SAFE_HEADERS) -> Dict[str, str]:
    """
    Копирует только безопасные заголовки запроса (без cookie и hop-by-hop)

    Returns:
        dict: Заголовки с ключами в нижнем регистре
    """
    allowed = {h.lower() for h in safe_headers}
    result = {}

    for key, value in headers.items():
        key_lower = key.lower()
        if key_lower in allowed and key_lower not in result:
            result[key_lower] = value

    return result


def filter_response_headers(headers: Mapping[str, str]) -> CIMultiDict:
    """Копирует заголовки ответа upstream, сохраняя повторяющиеся"""
    result = CIMultiDict()

    for key, value in headers.items():
        if key.lower() in SKIPPED_RESPONSE_HEADERS:
            continue
        result.add(key, value)

    return result
