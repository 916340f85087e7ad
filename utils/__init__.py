"""
Utils package for common utilities.
"""

from utils.logger import Logger, logger, setup_logger
from utils.retry import PollingExhausted, poll_until, retry

__all__ = ["Logger", "logger", "setup_logger", "PollingExhausted", "poll_until", "retry"]
