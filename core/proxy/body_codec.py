# core/proxy/body_codec.py
"""Преобразование тел запросов/ответов между браузером и внешним API"""

import json
import logging
from typing import Tuple
from urllib.parse import parse_qsl, urlencode

logger = logging.getLogger(__name__)

JSON_TYPE = 'application/json'
MULTIPART_TYPE = 'multipart/form-data'
FORM_TYPE = 'application/x-www-form-urlencoded'

KIND_JSON = 'json'
KIND_MULTIPART = 'multipart'
KIND_FORM = 'form'
KIND_RAW = 'raw'


class BodyDecodeError(ValueError):
    """Тело запроса не соответствует заявленному Content-Type"""


def body_kind(content_type: str) -> str:
    """
    Определяет стратегию обработки тела по Content-Type

    Args:
        content_type: Значение заголовка Content-Type (может быть пустым)

    Returns:
        str: KIND_MULTIPART, KIND_JSON, KIND_FORM или KIND_RAW
    """
    content_type = (content_type or '').lower()

    if MULTIPART_TYPE in content_type:
        return KIND_MULTIPART
    if JSON_TYPE in content_type:
        return KIND_JSON
    if FORM_TYPE in content_type:
        return KIND_FORM
    return KIND_RAW


class BodyCodec:
    """Кодирование тел запросов для upstream и ответов для браузера"""

    def __init__(self, encoding: str = 'utf-8'):
        self.encoding = encoding

    def encode_request(self, kind: str, raw: bytes) -> bytes:
        """
        Готовит тело запроса к отправке на upstream

        Args:
            kind: Результат body_kind()
            raw: Исходное тело запроса

        Returns:
            bytes: Тело для upstream

        Raises:
            BodyDecodeError: JSON или form-urlencoded не разбирается
        """
        if kind == KIND_JSON:
            return self._encode_json(raw)
        if kind == KIND_FORM:
            return self._encode_form(raw)

        # multipart и неизвестные типы уходят байт в байт
        return raw

    def _encode_json(self, raw: bytes) -> bytes:
        # Пустое тело уходит как пустой объект
        if not raw.strip():
            return b'{}'

        try:
            data = json.loads(raw.decode(self.encoding))
        except (UnicodeDecodeError, ValueError) as e:
            raise BodyDecodeError(f"Invalid JSON body: {e}") from e

        return self.dump_json(data)

    def _encode_form(self, raw: bytes) -> bytes:
        try:
            text = raw.decode(self.encoding)
        except UnicodeDecodeError as e:
            raise BodyDecodeError(f"Invalid form body: {e}") from e

        pairs = parse_qsl(text, keep_blank_values=True)
        return urlencode(pairs).encode('ascii')

    def decode_response(self, content_type: str, raw: bytes) -> Tuple[bytes, str]:
        """
        Готовит тело ответа upstream для браузера

        Args:
            content_type: Content-Type ответа upstream
            raw: Тело ответа upstream

        Returns:
            Tuple[bytes, str]: (тело, Content-Type)
        """
        if JSON_TYPE in (content_type or '').lower():
            try:
                data = json.loads(raw.decode(self.encoding))
            except (UnicodeDecodeError, ValueError):
                logger.debug("Upstream JSON не разобран, отдаем как есть")
                return raw, content_type

            return self.dump_json(data), f'{JSON_TYPE}; charset={self.encoding}'

        return raw, content_type

    def dump_json(self, data) -> bytes:
        """Компактная сериализация JSON без экранирования юникода"""
        return json.dumps(data, ensure_ascii=False, separators=(',', ':')).encode(self.encoding)
