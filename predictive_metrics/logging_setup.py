import logging
import logging.handlers
import time
from pathlib import Path

from predictive_metrics.config import config

REFRESH_LOGGER = 'predictive_metrics.refresh'


class Logger:
    """Logging manager for the predictive metrics subsystem.

    Console output is attached once to the root logger; named loggers only
    get their own rotating file when file output is enabled.
    """

    _instance = None
    _loggers = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Logger, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._log_config = config.log_config
        self._level = getattr(logging, self._log_config['level'].upper(), logging.INFO)
        self._formatter = logging.Formatter(self._log_config['format'])
        self._log_dir = Path(self._log_config['directory'])

        if self._log_config['file_output']:
            self._log_dir.mkdir(parents=True, exist_ok=True)

        self._configure_root_logger()
        self._initialized = True

    def _configure_root_logger(self):
        root_logger = logging.getLogger()
        root_logger.setLevel(self._level)

        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        if self._log_config['console_output']:
            # stderr keeps stdout free for CLI JSON output
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(self._formatter)
            root_logger.addHandler(console_handler)

    def _file_handler(self, name):
        handler = logging.handlers.RotatingFileHandler(
            self._log_dir / f"{name}.log",
            maxBytes=self._log_config['max_size_mb'] * 1024 * 1024,
            backupCount=self._log_config['backup_count']
        )
        handler.setFormatter(self._formatter)
        return handler

    def get_logger(self, name):
        """Get a logger with the specified name.

        Args:
            name: Name of the logger, usually the module's __name__

        Returns:
            Configured logger instance
        """
        managed = self._loggers.get(name)
        if managed is not None:
            return managed

        managed = logging.getLogger(name)
        managed.setLevel(self._level)

        for handler in managed.handlers[:]:
            managed.removeHandler(handler)

        if self._log_config['file_output']:
            managed.addHandler(self._file_handler(name))

        managed.propagate = True
        self._loggers[name] = managed
        return managed

    def log_exception(self, logger_name, exception, message=None):
        """Log an exception together with its traceback.

        Args:
            logger_name: Logger name
            exception: Exception object
            message: Optional context prefix
        """
        text = f"{message}: {exception}" if message else str(exception)
        self.get_logger(logger_name).error(text, exc_info=exception)

    def set_level(self, level_name):
        """Change the level of the root logger and of every managed logger."""
        self._level = getattr(logging, level_name.upper(), logging.INFO)
        logging.getLogger().setLevel(self._level)
        for managed in self._loggers.values():
            managed.setLevel(self._level)

    def refresh_start_log(self, forecast_type, key, request=None):
        """Log the start of a prediction refresh.

        Returns:
            Dictionary to hand back to refresh_end_log
        """
        refresh_logger = self.get_logger(REFRESH_LOGGER)
        refresh_logger.info(f"Refreshing {forecast_type} prediction for {key}")
        if request:
            refresh_logger.debug(f"Inference request: {request}")

        return {'forecast_type': forecast_type, 'key': key, 'started': time.monotonic()}

    def refresh_end_log(self, log_info, source, result_info=None):
        """Log the end of a prediction refresh.

        A refresh answered by the synthetic generator is logged as a warning.

        Args:
            log_info: Dictionary returned by refresh_start_log
            source: 'inference' or 'synthetic'
            result_info: Optional summary of the stored result
        """
        refresh_logger = self.get_logger(REFRESH_LOGGER)
        elapsed = time.monotonic() - log_info.get('started', time.monotonic())

        message = (
            f"Finished {log_info.get('forecast_type')} refresh for {log_info.get('key')} "
            f"from {source} in {elapsed:.3f}s"
        )
        if source == 'synthetic':
            refresh_logger.warning(message)
        else:
            refresh_logger.info(message)

        if result_info:
            refresh_logger.debug(f"Refresh result: {result_info}")


# Global logger instance
logger = Logger()


def get_logger(name):
    """Get a logger with the specified name."""
    return logger.get_logger(name)
