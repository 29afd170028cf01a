import logging
import sys

from loguru import logger

from pulseboard.core.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} - {message}"

# 每次探测都会产生请求日志的第三方库
NOISY_LOGGERS = ("httpx", "httpcore", "watchfiles")


class InterceptHandler(logging.Handler):
    """把标准库 logging（uvicorn、sqlalchemy、租约模块）转发给 loguru"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _add_sinks() -> None:
    logger.add(
        sys.stderr,
        level=settings.LOG_LEVEL,
        format=CONSOLE_FORMAT,
        serialize=settings.LOG_JSON_FORMAT,
        enqueue=settings.LOG_ASYNC,
        diagnose=settings.DEBUG,
    )
    if settings.LOG_FILE_PATH:
        logger.add(
            settings.LOG_FILE_PATH,
            level=settings.LOG_LEVEL,
            format=FILE_FORMAT,
            rotation=settings.LOG_ROTATION,
            retention=settings.LOG_RETENTION,
            compression="zip",
            encoding="utf-8",
            enqueue=settings.LOG_ASYNC,
        )


def _intercept_stdlib() -> None:
    logging.basicConfig(handlers=[InterceptHandler()], level=0)
    for name in ("uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).handlers = [InterceptHandler()]
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger().setLevel(settings.LOG_LEVEL)


def setup_logging():
    """控制台 + 可选滚动文件两个 sink，并接管标准库 logging"""
    logger.remove()
    _add_sinks()
    _intercept_stdlib()
    return logger
