import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler
from typing import Iterable, Union

_FORMAT = "%(asctime)sZ %(levelname)s %(name)s %(message)s"


class TimedFileLoggerConfigurator:
    """Ежедневная ротация лога (UTC) для Flask app.logger и логгеров сервисов."""

    def __init__(
        self,
        log_path: str = "logs/app.log",
        backup_days: int = 7,
        level: Union[int, str] = logging.INFO,
        service_loggers: Iterable[str] = ("auth",),
    ):
        self.log_path = log_path
        self.backup_days = backup_days
        self.level = logging.getLevelName(level) if isinstance(level, str) else level
        self.service_loggers = tuple(service_loggers)

    def build_handler(self) -> TimedRotatingFileHandler:
        directory = os.path.dirname(self.log_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        handler = TimedRotatingFileHandler(
            self.log_path,
            when="D",
            interval=1,
            backupCount=self.backup_days,
            encoding="utf-8",
            utc=True,
        )
        formatter = logging.Formatter(_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")
        formatter.converter = time.gmtime
        handler.setFormatter(formatter)
        return handler

    def configure(self, app) -> None:
        handler = self.build_handler()
        for logger in [app.logger] + [logging.getLogger(name) for name in self.service_loggers]:
            logger.setLevel(self.level)
            logger.addHandler(handler)
            logger.propagate = False

        # Запись первой строки чтобы создать файл сразу
        app.logger.info("logger configured")
