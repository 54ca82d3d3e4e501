"""Loguru 日志配置"""

import os
import sys
from datetime import datetime
from pathlib import Path

from loguru import logger


def setup_logger(app_name="snquery", log_dir=None, console_output=True, level="INFO"):
    """配置 Loguru 日志系统

    Args:
        app_name: 应用名称，用于日志目录
        log_dir: 日志根目录，默认取 SNQUERY_LOG_DIR 环境变量，否则为 ~/.snquery/logs
        console_output: 是否输出到控制台，默认为True
        level: 控制台日志级别

    Returns:
        tuple: (logger, config_info)
            - logger: 配置好的 logger 实例
            - config_info: 包含日志配置信息的字典
    """
    if log_dir is None:
        log_dir = os.environ.get("SNQUERY_LOG_DIR") or Path.home() / ".snquery" / "logs"

    # 清除默认处理器
    logger.remove()

    # 控制台输出走 stderr，stdout 留给查询结果
    if console_output:
        logger.add(
            sys.stderr,
            level=level,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}:{function}:{line}</cyan> - <level>{message}</level>"
        )

    current_time = datetime.now()
    date_str = current_time.strftime("%Y-%m-%d")

    target_dir = os.path.join(str(log_dir), app_name, date_str)
    os.makedirs(target_dir, exist_ok=True)
    log_file = os.path.join(target_dir, f"{current_time.strftime('%H%M%S')}.log")

    # 添加文件处理器
    logger.add(
        log_file,
        level="DEBUG",
        rotation="10 MB",
        retention="30 days",
        compression="zip",
        encoding="utf-8",
        format="{time:YYYY-MM-DD HH:mm:ss} | {elapsed} | {level: <8} | {name}:{function}:{line} - {message}",
        enqueue=True,
    )

    config_info = {
        'log_file': log_file,
    }

    logger.debug(f"日志系统已初始化，应用名称: {app_name}")
    return logger, config_info
