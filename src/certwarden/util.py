"""Utilities for all Certwarden."""
import errno
import logging
import os
import re
import socket
from typing import Union

from certwarden import errors

logger = logging.getLogger(__name__)


# ANSI SGR escape codes
# Colors text red
ANSI_SGR_RED = "\033[31m"
# Resets output format
ANSI_SGR_RESET = "\033[0m"


PERM_ERR_FMT = os.linesep.join((
    "The following error was encountered:", "{0}",
    "Either run as root, or set --storage-dir to a writeable path."))


def make_or_verify_dir(directory: str, mode: int = 0o755) -> None:
    """Make sure directory exists.

    :param str directory: Path to a directory.
    :param int mode: Directory mode used if the directory is created.

    :raises .errors.Error: if the path exists but is not a directory

    :raises OSError: if invalid or inaccessible file names and
        paths, or other arguments that have the correct type,
        but are not accepted by the operating system.

    """
    try:
        os.makedirs(directory, mode)
    except OSError as exception:
        if exception.errno != errno.EEXIST:
            raise
        if not os.path.isdir(directory):
            raise errors.Error("{0} exists, but is not a directory".format(directory))


def safe_write(path: str, data: bytes, chmod: int) -> None:
    """Create or truncate ``path``, write ``data`` and enforce ``chmod``.

    The mode is applied before any data is written, so a private key is
    never readable by others, not even briefly.

    """
    fd = os.open(path, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, chmod)
    with os.fdopen(fd, "wb") as f:
        os.chmod(path, chmod)
        f.write(data)


def copy_file(src: str, dest: str, chmod: int) -> None:
    """Copy the contents of ``src`` to ``dest``, giving ``dest`` mode ``chmod``."""
    with open(src, "rb") as f:
        data = f.read()
    safe_write(dest, data, chmod)


def safely_remove(path: str) -> None:
    """Remove a file that may not exist."""
    try:
        os.remove(path)
    except OSError as err:
        if err.errno != errno.ENOENT:
            raise


def parse_address(address: str) -> tuple[str, int]:
    """Split a ``host:port`` listen address.

    An empty host (``":80"``) means all interfaces. IPv6 hosts are given
    in brackets, e.g. ``"[::1]:5002"``.

    :returns: ``(host, port)`` suitable for `socket.socket.bind`
    :raises .errors.ConfigurationError: if the address cannot be parsed

    """
    host, sep, port = address.rpartition(":")
    if not sep:
        raise errors.ConfigurationError(
            "Address {0} must be given as host:port".format(address))
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise errors.ConfigurationError(
            "IPv6 address in {0} must be enclosed in brackets".format(address))
    try:
        port_number = int(port)
    except ValueError:
        raise errors.ConfigurationError(
            "Invalid port {0!r} in address {1}".format(port, address))
    if not 0 <= port_number <= 65535:
        raise errors.ConfigurationError(
            "Port {0} in address {1} is out of range".format(port_number, address))
    return host, port_number


def enforce_domain_sanity(domain: Union[str, bytes]) -> str:
    """Method which validates domain value and errors out if
    the requirements are not met.

    :param domain: Domain to check
    :type domain: `str` or `bytes`
    :raises ConfigurationError: for invalid domains and names an http-01
                                challenge cannot prove control of

    :returns: The domain cast to `str`, with ASCII-only contents
    :rtype: str
    """
    # Unicode
    try:
        if isinstance(domain, bytes):
            domain = domain.decode('utf-8')
        domain.encode('ascii')
    except UnicodeError:
        raise errors.ConfigurationError("Non-ASCII domain names not supported. "
            "To issue for an Internationalized Domain Name, use Punycode.")

    domain = domain.lower()

    # Remove trailing dot
    domain = domain[:-1] if domain.endswith('.') else domain

    for scheme in ["http", "https"]:
        if domain.startswith("{0}://".format(scheme)):
            raise errors.ConfigurationError(
                "Requested name {0} appears to be a URL, not a FQDN. "
                "Try again without the leading \"{1}://\".".format(
                    domain, scheme
                )
            )

    if domain.startswith("*."):
        raise errors.ConfigurationError(
            "Requested name {0} is a wildcard. Wildcard certificates cannot "
            "be obtained with the http-01 challenge.".format(domain))

    if is_ipaddress(domain):
        raise errors.ConfigurationError(
            "Requested name {0} is an IP address, only domain names are "
            "supported.".format(domain))

    # FQDN checks according to RFC 2181: domain name should be less than 255
    # octets (inclusive). And each label is 1 - 63 octets (inclusive).
    # https://tools.ietf.org/html/rfc2181#section-11
    msg = "Requested domain {0} is not a FQDN because".format(domain)
    if len(domain) > 255:
        raise errors.ConfigurationError("{0} it is too long.".format(msg))
    labels = domain.split('.')
    for l in labels:
        if not l:
            raise errors.ConfigurationError("{0} it contains an empty label.".format(msg))
        if len(l) > 63:
            raise errors.ConfigurationError("{0} label {1} is too long.".format(msg, l))

    return domain


def enforce_le_validity(domain: Union[str, bytes]) -> str:
    """Checks that Let's Encrypt will consider domain to be valid.

    The result is also safe to use as a file name in the storage directory.

    :param domain: FQDN to check
    :type domain: `str` or `bytes`
    :returns: The domain cast to `str`, with ASCII-only contents
    :rtype: str
    :raises ConfigurationError: for invalid domains and cases where Let's
                                Encrypt currently will not issue certificates

    """
    domain = enforce_domain_sanity(domain)
    if not re.match("^[A-Za-z0-9.-]*$", domain):
        raise errors.ConfigurationError(
            "{0} contains an invalid character. "
            "Valid characters are A-Z, a-z, 0-9, ., and -.".format(domain))

    labels = domain.split(".")
    if len(labels) < 2:
        raise errors.ConfigurationError(
            "{0} needs at least two labels".format(domain))
    for label in labels:
        if label.startswith("-"):
            raise errors.ConfigurationError(
                'label "{0}" in domain "{1}" cannot start with "-"'.format(
                    label, domain))
        if label.endswith("-"):
            raise errors.ConfigurationError(
                'label "{0}" in domain "{1}" cannot end with "-"'.format(
                    label, domain))
    return domain


def is_ipaddress(address: str) -> bool:
    """Is given address string form of IP(v4 or v6) address?

    :param address: address to check
    :type address: `str`

    :returns: True if address is valid IP address, otherwise return False.
    :rtype: bool

    """
    try:
        socket.inet_pton(socket.AF_INET, address)
        # If this line runs it was ip address (ipv4)
        return True
    except OSError:
        # It wasn't an IPv4 address, so try ipv6
        try:
            socket.inet_pton(socket.AF_INET6, address)
            return True
        except OSError:
            return False
