"""
DebugConsole - forwards diagnostic messages to the "pure3d" logger
"""
import logging

logger = logging.getLogger("pure3d")


class DebugConsole:
    @staticmethod
    def log(message):
        """Log debug message"""
        logger.debug(message)

    @staticmethod
    def warn(message):
        """Log something the caller probably wants to know about"""
        logger.warning(message)
