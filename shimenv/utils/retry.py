"""
重试机制工具模块。

为定义列表等 HTTP 请求提供指数退避重试策略。
"""

import random
import time
from typing import Any, Callable, TypeVar

import requests

from shimenv.utils.logger import get_logger

logger = get_logger()

T = TypeVar('T')

RETRYABLE_EXCEPTIONS = (
    requests.exceptions.Timeout,
    requests.exceptions.ConnectionError,
    requests.exceptions.HTTPError,
    requests.exceptions.ChunkedEncodingError,
)


class RetryHandler:
    """
    重试处理器类。

    实现指数退避重试策略，只重试临时性网络错误和 5xx/408/429 响应。
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 10.0,
        backoff_factor: float = 2.0,
        jitter: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        初始化重试处理器。

        参数:
            max_retries: 最大重试次数
            base_delay: 基础延迟时间（秒）
            max_delay: 最大延迟时间（秒）
            backoff_factor: 退避因子
            jitter: 是否添加随机抖动
            sleep: 等待函数，测试中可替换
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter
        self._sleep = sleep

    def _calculate_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * (self.backoff_factor ** attempt), self.max_delay)
        if self.jitter:
            delay = delay * (0.5 + random.random() * 0.5)
        return delay

    def _is_retryable_error(self, exception: Exception) -> bool:
        """
        判断错误是否可重试。

        参数:
            exception: 异常对象

        返回:
            可重试返回 True，否则返回 False
        """
        if not isinstance(exception, RETRYABLE_EXCEPTIONS):
            return False
        if isinstance(exception, requests.exceptions.HTTPError):
            response = getattr(exception, "response", None)
            if response is not None:
                return response.status_code >= 500 or response.status_code in (408, 429)
        return True

    def execute(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        执行函数，失败时自动重试。

        参数:
            func: 要执行的函数
            *args: 函数位置参数
            **kwargs: 函数关键字参数

        返回:
            函数执行结果

        抛出:
            不可重试的错误立即抛出；超过最大重试次数后抛出最后一次异常
        """
        attempt = 0
        while True:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if not self._is_retryable_error(e):
                    logger.debug(f"遇到不可重试的错误: {e}")
                    raise
                if attempt >= self.max_retries:
                    logger.warning(f"已达到最大重试次数 {self.max_retries}，放弃重试")
                    raise
                delay = self._calculate_delay(attempt)
                logger.info(
                    f"请求失败 (尝试 {attempt + 1}/{self.max_retries + 1}): {e}，"
                    f"{delay:.2f} 秒后重试..."
                )
                self._sleep(delay)
                attempt += 1
