# main.py
import sys
import logging


def setup_logging():
    """Настраивает логирование ДО всех операций с ротацией"""
    from core.config_manager import get_app_data_dir, get_config
    from logging.handlers import RotatingFileHandler

    config = get_config()
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers = [console_handler]

    if config.get('logging.file', True):
        logs_dir = get_app_data_dir() / "logs"
        logs_dir.mkdir(exist_ok=True)

        # Ротирующий обработчик: макс 5MB, 5 резервных копий
        file_handler = RotatingFileHandler(
            logs_dir / "taskboard.log",
            maxBytes=config.get('logging.max_bytes', 5 * 1024 * 1024),
            backupCount=config.get('logging.backup_count', 5),
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    level = getattr(logging, str(config.get('logging.level', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(level=level, handlers=handlers)


setup_logging()
logger = logging.getLogger(__name__)


def setup_exception_handler():
    """Настраивает глобальный обработчик исключений"""

    def exception_handler(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return

        logger.critical("Необработанное исключение:",
                        exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = exception_handler


def main():
    """Основная функция приложения"""
    setup_exception_handler()
    logger.info("🚀 Запуск Taskboard")

    from core.server_manager import get_server_manager
    server = get_server_manager()

    return_code = server.run()
    if return_code != 0:
        logger.error(f"❌ Сервер не запущен: {server.last_error_details or 'неизвестная ошибка'}")

    return return_code


if __name__ == "__main__":
    sys.exit(main())
