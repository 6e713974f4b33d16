import json
import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

# Переменные окружения, перекрывающие значения из config.json
ENV_OVERRIDES = {
    'PORT': ('server.port', int),
    'TASKBOARD_HOST': ('server.host', str),
    'TASKBOARD_UPSTREAM_URL': ('upstream.url', str),
    'TASKBOARD_LOG_LEVEL': ('logging.level', str),
}


def get_app_data_dir() -> Path:
    """Возвращает путь для хранения данных приложения (конфиг, логи, сертификаты)"""
    env_dir = os.getenv('TASKBOARD_DATA_DIR')
    if env_dir:
        app_data_dir = Path(env_dir)
    else:
        # Dev режим
        app_data_dir = Path(__file__).parent.parent / 'app_data'

    app_data_dir.mkdir(parents=True, exist_ok=True)
    return app_data_dir


class ConfigManager:
    def __init__(self, config_path: Optional[Path] = None, use_env: bool = True):
        self.config_path = Path(config_path) if config_path else self._get_config_path()
        self.config = self._load_config()
        if use_env:
            self._apply_env_overrides()

    def _get_config_path(self) -> Path:
        """Возвращает путь к файлу конфигурации"""
        return get_app_data_dir() / 'config.json'

    def _get_default_config(self) -> dict:
        """Возвращает конфигурацию по умолчанию"""
        return {
            'server': {
                'host': '0.0.0.0',
                'port': 5000,
                'ssl': False,
                'cert_path': None,  # None = самоподписанный сертификат в app_data
                'key_path': None,
            },

            'upstream': {
                'url': 'https://qdr.equiron.com',
                'timeout': 90,
                'connect_timeout': 10,
                'max_connections': 100,
                'limit_per_host': 50,
                'verify_ssl': True,
            },

            'proxy': {
                'prefix': '/api',
                'max_concurrency': 50,
                'safe_headers': ['authorization', 'content-type', 'accept', 'user-agent'],
                'log_line_limit': 80,
            },

            'ui': {
                'enabled': True,
                'theme': 'dark',
                'recent_tasks_limit': 5,
                'users_preview_limit': 5,
                'cookie_secure': False,
            },

            'logging': {
                'level': 'INFO',
                'file': True,
                'max_bytes': 5 * 1024 * 1024,
                'backup_count': 5,
            }
        }

    def _load_config(self) -> Dict[str, Any]:
        """Загружает конфигурацию из файла"""
        default_config = self._get_default_config()

        try:
            if self.config_path.exists():
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    loaded_config = json.load(f)
                    # Объединяем с дефолтными значениями
                    return self._deep_merge(default_config, loaded_config)
        except (OSError, ValueError) as e:
            logger.error(f"Ошибка загрузки конфига {self.config_path}: {e}")

        return default_config

    def _apply_env_overrides(self):
        """Применяет значения из переменных окружения"""
        for env_name, (key, cast) in ENV_OVERRIDES.items():
            raw = os.getenv(env_name)
            if raw is None or raw == '':
                continue
            try:
                self.set(key, cast(raw))
                logger.debug(f"Конфиг: {key} переопределен из {env_name}")
            except ValueError:
                logger.warning(f"⚠️ Некорректное значение {env_name}={raw!r}, игнорируем")

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Рекурсивное объединение словарей"""
        result = base.copy()

        for key, value in update.items():
            if (key in result and
                    isinstance(result[key], dict) and
                    isinstance(value, dict)):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def save(self) -> bool:
        """Сохраняет конфигурацию в файл"""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self.config, f, indent=2, ensure_ascii=False)
            logger.info("Конфигурация сохранена")
            return True
        except OSError as e:
            logger.error(f"Ошибка сохранения конфига: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        """Получает значение по ключу (dot notation)"""
        value = self.config

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any, save: bool = False) -> bool:
        """Устанавливает значение по ключу (dot notation)"""
        keys = key.split('.')
        config_ref = self.config

        for k in keys[:-1]:
            if k not in config_ref or not isinstance(config_ref[k], dict):
                config_ref[k] = {}
            config_ref = config_ref[k]

        config_ref[keys[-1]] = value

        if save:
            return self.save()
        return True

    def get_server_config(self) -> Dict[str, Any]:
        """Возвращает настройки HTTP сервера"""
        return self.get('server', {})

    def get_upstream_config(self) -> Dict[str, Any]:
        """Возвращает настройки внешнего API"""
        return self.get('upstream', {})

    def get_proxy_config(self) -> Dict[str, Any]:
        """Возвращает настройки прокси"""
        return self.get('proxy', {})

    def get_ui_config(self) -> Dict[str, Any]:
        """Возвращает настройки веб-интерфейса"""
        return self.get('ui', {})

    def reset_to_defaults(self) -> bool:
        """Сбрасывает настройки к значениям по умолчанию"""
        self.config = self._get_default_config()
        return self.save()


# Синглтон для глобального доступа
_config_instance = None


def get_config() -> ConfigManager:
    """Возвращает глобальный экземпляр ConfigManager"""
    global _config_instance
    if _config_instance is None:
        _config_instance = ConfigManager()
    return _config_instance
