"""Logging utilities for Certwarden.

`setup` configures the root logger from the parsed command line: a
terminal handler whose level follows ``-v`` and ``-q``, and, when
``--log-file`` is given, a rotating debug log.

The default terminal level is INFO, so every renewal is reported.

"""
import functools
import logging
import logging.handlers
import sys
from types import TracebackType
from typing import IO
from typing import Optional
from typing import Type

from certwarden import configuration
from certwarden import errors
from certwarden import util
from certwarden._internal import constants

# Logging format
CLI_FMT = "%(asctime)s %(levelname)s %(message)s"
FILE_FMT = "%(asctime)s:%(levelname)s:%(name)s:%(message)s"


logger = logging.getLogger(__name__)


def setup(config: configuration.NamespaceConfig) -> None:
    """Setup logging after command line arguments are parsed.

    :param certwarden.configuration.NamespaceConfig config: Configuration object

    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # send all records to handlers

    stream_handler = ColoredStreamHandler()
    stream_handler.setFormatter(logging.Formatter(CLI_FMT))
    if config.quiet:
        level = constants.QUIET_LOGGING_LEVEL
    else:
        level = max(constants.DEFAULT_LOGGING_LEVEL - config.verbose_count * 10,
                    logging.DEBUG)
    stream_handler.setLevel(level)
    root_logger.addHandler(stream_handler)

    if config.log_file:
        root_logger.addHandler(setup_log_file_handler(config, config.log_file, FILE_FMT))
    logger.debug('Root logging level set at %d', level)

    sys.excepthook = functools.partial(except_hook, debug=config.verbose_count > 0)


def setup_log_file_handler(config: configuration.NamespaceConfig, log_file_path: str,
                           fmt: str) -> logging.Handler:
    """Setup file debug logging.

    :param certwarden.configuration.NamespaceConfig config: Configuration object
    :param str log_file_path: path of the log file
    :param str fmt: logging format string

    :returns: file handler
    :rtype: logging.Handler

    """
    try:
        handler = logging.handlers.RotatingFileHandler(
            log_file_path, maxBytes=2 ** 20,
            backupCount=config.max_log_backups)
    except IOError as error:
        raise errors.Error(util.PERM_ERR_FMT.format(error))
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt=fmt))
    return handler


class ColoredStreamHandler(logging.StreamHandler):
    """Sends colored logging output to a stream.

    If the specified stream is not a tty, the class works like the
    standard `logging.StreamHandler`. Default red_level is
    `logging.WARNING`.

    :ivar bool colored: True if output should be colored
    :ivar bool red_level: The level at which to output

    """
    def __init__(self, stream: Optional[IO] = None) -> None:
        super().__init__(stream)
        self.colored = (sys.stderr.isatty() if stream is None else
                        stream.isatty())
        self.red_level = logging.WARNING

    def format(self, record: logging.LogRecord) -> str:
        """Formats the string representation of record.

        :param logging.LogRecord record: Record to be formatted

        :returns: Formatted, string representation of record
        :rtype: str

        """
        out = super().format(record)
        if self.colored and record.levelno >= self.red_level:
            return ''.join((util.ANSI_SGR_RED, out, util.ANSI_SGR_RESET))
        return out


def except_hook(exc_type: Type[BaseException], exc_value: BaseException,
                trace: TracebackType, debug: bool) -> None:
    """Logs fatal exceptions and exits with a nonzero status.

    Certwarden errors are reported by their message alone unless ``debug``
    is set; anything else is logged with its traceback.

    """
    exc_info = (exc_type, exc_value, trace)
    if exc_type is KeyboardInterrupt:
        logger.error('Exiting due to user request.')
    elif issubclass(exc_type, errors.Error) and not debug:
        logger.debug('Exiting abnormally:', exc_info=exc_info)
        logger.error(str(exc_value))
    else:
        logger.error('Exiting abnormally:', exc_info=exc_info)
    sys.exit(1)
