"""Certwarden main entry point."""
import functools
import logging
import signal
import sys
import threading
from typing import List
from typing import Optional
from typing import Union

import certwarden
from certwarden import configuration
from certwarden import errors
from certwarden import manager
from certwarden._internal import cli
from certwarden._internal import log
from certwarden._internal import storage

logger = logging.getLogger(__name__)


def _report_renewal(store: storage.CertStorage, domains: list[str]) -> None:
    for domain in domains:
        logger.info("Certificate for %s saved at %s (key at %s)",
                    domain, store.cert_path(domain), store.key_path(domain))


def run(config: configuration.NamespaceConfig, stop: threading.Event) -> None:
    """Manage the configured domains until ``stop`` is set.

    :param certwarden.configuration.NamespaceConfig config: Configuration object
    :param threading.Event stop: ends the run once set

    """
    mgr = manager.Manager.create(
        config.http01_address, config.storage_dir,
        on_renewed=functools.partial(
            _report_renewal, storage.CertStorage(config.storage_dir)),
        server=config.server, email=config.email, debounce=config.debounce,
        retry_backoff=config.retry_backoff, lead_time=config.lead_time)
    with mgr:
        mgr.add(*config.domains)
        logger.info("Managing certificates for %s", ", ".join(config.domains))
        while not stop.wait(1.0):
            pass
        logger.info("Shutting down")


def main(cli_args: Optional[List[str]] = None) -> Optional[Union[str, int]]:
    """Run Certwarden.

    :param cli_args: command line to Certwarden, defaults to ``sys.argv[1:]``
    :type cli_args: `list` of `str`

    :returns: value for `sys.exit` about the exit status of Certwarden
    :rtype: `str` or `int` or `None`

    """
    if cli_args is None:
        cli_args = sys.argv[1:]

    try:
        config = configuration.NamespaceConfig(cli.prepare_and_parse_args(cli_args))
    except errors.ConfigurationError as error:
        print(str(error), file=sys.stderr)
        return 1

    log.setup(config)
    logger.debug("certwarden version: %s", certwarden.__version__)
    logger.debug("Arguments: %r", cli_args)

    if not config.domains:
        logger.error("No domains given, use -d to name at least one.")
        return 1

    stop = threading.Event()

    def _handle_signal(signum: int, frame: object) -> None:
        logger.debug("Received signal %d", signum)
        stop.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        signal.signal(signum, _handle_signal)

    try:
        run(config, stop)
    except errors.ConfigurationError as error:
        logger.error(str(error))
        return 1
    return 0
