"""
日志配置
统一的控制台日志格式，各模块通过 get_logger(__name__) 获取子日志器
"""

import logging

from ..config.settings import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
ROOT_LOGGER_NAME = "canteen"


def setup_logging(level: str = None) -> logging.Logger:
    """配置根日志器（可重复调用）"""
    level_name = (level or settings.log_level or "INFO").upper()
    log_level = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(log_level)

    # 避免重复添加控制台处理器
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    for handler in logger.handlers:
        handler.setLevel(log_level)

    logger.propagate = False
    return logger


def get_logger(name: str = None) -> logging.Logger:
    """获取 canteen 下的子日志器"""
    base = logging.getLogger(ROOT_LOGGER_NAME)
    if not name:
        return base
    if name.startswith(ROOT_LOGGER_NAME + "."):
        name = name[len(ROOT_LOGGER_NAME) + 1:]
    return base.getChild(name)
