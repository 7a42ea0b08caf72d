"""Certwarden command line argument parser"""
import argparse
import copy
from typing import Any
from typing import Optional
from typing import Sequence

import configargparse

import certwarden
from certwarden import util
from certwarden._internal import constants

SHORT_USAGE = """
  certwarden [-c CONFIG] -d DOMAIN [-d DOMAIN ...] [options]

Obtains certificates for the given domains with the ACME http-01
challenge and keeps them renewed until interrupted.
"""


def flag_default(name: str) -> Any:
    """Default value for CLI flag."""
    return copy.deepcopy(constants.CLI_DEFAULTS[name])


class _DomainsAction(argparse.Action):
    """Action class for parsing domains."""

    def __call__(self, parser: argparse.ArgumentParser, namespace: argparse.Namespace,
                 domain: Any, option_string: Optional[str] = None) -> None:
        """Just wrap add_domains in argparseese."""
        add_domains(namespace, domain)


def add_domains(namespace: argparse.Namespace, domains: str) -> list[str]:
    """Registers new domains to be managed.

    Domains are not added to the list of requested domains if they have
    already been registered.

    :param namespace: parsed command line arguments
    :param str domains: one or more comma separated domains

    :returns: domains after they have been normalized and validated
    :rtype: `list` of `str`

    """
    validated_domains = []
    for domain in domains.split(","):
        domain = util.enforce_le_validity(domain.strip())
        validated_domains.append(domain)
        if domain not in namespace.domains:
            namespace.domains.append(domain)

    return validated_domains


def prepare_parser() -> configargparse.ArgParser:
    """Build the parser, reading defaults from `constants.CLI_DEFAULTS`."""
    parser = configargparse.ArgParser(
        prog="certwarden",
        usage=SHORT_USAGE,
        args_for_setting_config_path=["-c", "--config"],
        default_config_files=flag_default("config_files"),
        config_arg_help_message="path to config file (default: {0})".format(
            " and ".join(flag_default("config_files"))))

    parser.add_argument(
        "-d", "--domains", "--domain", dest="domains", metavar="DOMAIN",
        action=_DomainsAction, default=flag_default("domains"),
        help="Domain names to manage. Use multiple -d flags or enter a "
             "comma separated list of domains as a parameter. The first "
             "domain given is the common name of the certificate.")
    parser.add_argument(
        "--storage-dir", default=flag_default("storage_dir"),
        help="Directory holding the account key, domain keys and certificates.")
    parser.add_argument(
        "--http01-address", default=flag_default("http01_address"),
        help="host:port the http-01 challenge responder listens on. An empty "
             "host listens on all interfaces, IPv6 hosts go in brackets.")
    parser.add_argument(
        "--server", default=flag_default("server"),
        help="ACME Directory Resource URI.")
    parser.add_argument(
        "--staging", "--test-cert", action="store_true",
        default=flag_default("staging"),
        help="Use the Let's Encrypt staging server to obtain test (invalid) "
             "certificates.")
    parser.add_argument(
        "-m", "--email", default=flag_default("email"),
        help="Email address for important account notifications.")
    parser.add_argument(
        "--debounce", type=float, default=flag_default("debounce"),
        help="Seconds to wait after the last added domain before requesting "
             "a certificate.")
    parser.add_argument(
        "--retry-backoff", type=float, default=flag_default("retry_backoff"),
        help="Seconds to wait before retrying a failed renewal.")
    parser.add_argument(
        "--lead-time-days", type=int, default=flag_default("lead_time_days"),
        help="Renew certificates this many days before they expire.")
    parser.add_argument(
        "-v", "--verbose", dest="verbose_count", action="count",
        default=flag_default("verbose_count"),
        help="This flag can be used multiple times to incrementally "
             "increase the verbosity of output, e.g. -vv.")
    parser.add_argument(
        "-q", "--quiet", dest="quiet", action="store_true",
        default=flag_default("quiet"),
        help="Silence all output except errors.")
    parser.add_argument(
        "--log-file", default=flag_default("log_file"),
        help="Also write a debug log to this file.")
    parser.add_argument(
        "--max-log-backups", type=int, default=flag_default("max_log_backups"),
        help="Specifies the maximum number of backup logs that should "
             "be kept by Certwarden's built in log rotation.")
    parser.add_argument(
        "--version", action="version",
        version="%(prog)s {0}".format(certwarden.__version__))
    return parser


def prepare_and_parse_args(args: Sequence[str]) -> argparse.Namespace:
    """Returns parsed command line arguments.

    :param list args: command line arguments with the program name removed

    :returns: parsed command line arguments
    :rtype: argparse.Namespace

    """
    return prepare_parser().parse_args(args)
