import logging
import sys

from loguru import logger

from asset_gateway.core.config import settings


class InterceptHandler(logging.Handler):
    """
    拦截标准库 logging 消息并转发到 Loguru
    """
    def emit(self, record):
        # 获取对应的 Loguru level
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # 获取调用栈深度
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging():
    """
    配置 Loguru 日志
    """
    # 移除 Loguru 默认的 handler
    logger.remove()

    # 1. 输出到控制台
    logger.add(
        sys.stderr,
        level=settings.LOG_LEVEL,
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        serialize=settings.LOG_JSON_FORMAT,  # True 时输出 JSON，便于采集
        enqueue=settings.LOG_ASYNC,
        backtrace=True,
        diagnose=False,
    )

    # 2. 输出到文件 (如果有路径配置)
    if settings.LOG_FILE_PATH:
        logger.add(
            settings.LOG_FILE_PATH,
            rotation=settings.LOG_ROTATION,
            retention=settings.LOG_RETENTION,
            level=settings.LOG_LEVEL,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}",
            encoding="utf-8",
            enqueue=settings.LOG_ASYNC,
            compression="zip",
        )

    # 3. 拦截标准库 logging（服务模块统一使用 logging.getLogger(__name__)）
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    # httpx 每个请求都会输出 INFO，提升到 WARNING 避免刷屏
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("root").setLevel(settings.LOG_LEVEL)

    return logger
