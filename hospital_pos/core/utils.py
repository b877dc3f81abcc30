import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Union


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install the root handler once; later calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    root.setLevel(level.upper())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def money(value: Union[int, float, str, Decimal]) -> Decimal:
    """Coerce a numeric value to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class LoggerMixin:
    """
    Mixin that gives a class structured logging helpers.

    Messages may be plain strings or dicts. Dicts are rendered with
    ``key=value`` pairs so events stay greppable, e.g.::

        self.log_info({"event": "payment_recorded", "receipt": "RCP1000"})
    """

    _logger: Optional[logging.Logger] = None

    @property
    def logger(self) -> logging.Logger:
        if self._logger is None:
            self._logger = logging.getLogger(
                f"{self.__class__.__module__}.{self.__class__.__name__}"
            )
        return self._logger

    def _format_message(self, message: Union[str, Dict[str, Any]]) -> str:
        if isinstance(message, dict):
            return " ".join(f"{key}={value}" for key, value in message.items())
        return message

    def log_info(self, message: Union[str, Dict[str, Any]], **kwargs) -> None:
        self.logger.info(self._format_message(message), **kwargs)

    def log_warning(self, message: Union[str, Dict[str, Any]], **kwargs) -> None:
        self.logger.warning(self._format_message(message), **kwargs)

    def log_error(
        self, message: Union[str, Dict[str, Any]], exc_info: bool = False, **kwargs
    ) -> None:
        self.logger.error(self._format_message(message), exc_info=exc_info, **kwargs)

    def log_debug(self, message: Union[str, Dict[str, Any]], **kwargs) -> None:
        self.logger.debug(self._format_message(message), **kwargs)

    def log_security_event(self, message: Union[str, Dict[str, Any]], **kwargs) -> None:
        """Security events carry a fixed prefix so they can be filtered."""
        self.logger.warning(f"SECURITY EVENT: {self._format_message(message)}", **kwargs)


class _ModuleLevelLogger(LoggerMixin):
    """Shared logger for routes and module-level helpers."""

    def __init__(self):
        self._logger = logging.getLogger("hospital_pos")


logger = _ModuleLevelLogger()
