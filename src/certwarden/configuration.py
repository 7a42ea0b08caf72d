"""Certwarden user-supplied configuration."""
import argparse
import datetime
import logging
import os
from typing import Any
from typing import Optional

from certwarden import errors
from certwarden import util
from certwarden._internal import constants

logger = logging.getLogger(__name__)


class NamespaceConfig:
    """Configuration wrapper around :class:`argparse.Namespace`.

    The storage directory is made absolute, and the account key path is
    resolved relative to it using the names defined in
    :py:mod:`certwarden._internal.constants`.

    :ivar namespace: Namespace typically produced by
        :meth:`argparse.ArgumentParser.parse_args`.
    :type namespace: :class:`argparse.Namespace`

    """

    def __init__(self, namespace: argparse.Namespace) -> None:
        self.namespace: argparse.Namespace
        # Avoid recursion loop because of the delegation defined in __setattr__
        object.__setattr__(self, 'namespace', namespace)

        self.namespace.storage_dir = os.path.abspath(self.namespace.storage_dir)

        # Check command line parameters sanity, and error out in case of problem.
        _check_config_sanity(self)

    # Delegate any attribute not explicitly defined to the underlying namespace object.

    def __getattr__(self, name: str) -> Any:
        return getattr(self.namespace, name)

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self.namespace, name, value)

    @property
    def server(self) -> str:
        """ACME Directory Resource URI, honoring ``--staging``."""
        if self.namespace.staging:
            return constants.STAGING_URI
        return self.namespace.server

    @property
    def email(self) -> Optional[str]:
        """Email used for registration and recovery contact."""
        return self.namespace.email

    @property
    def storage_dir(self) -> str:
        """Directory holding the account key, domain keys and certificates."""
        return self.namespace.storage_dir

    @property
    def account_key_path(self) -> str:
        """Path of the account key."""
        return os.path.join(self.namespace.storage_dir, constants.ACCOUNT_KEY_NAME)

    @property
    def challenge_address(self) -> tuple[str, int]:
        """``(host, port)`` the HTTP-01 responder binds to."""
        return util.parse_address(self.namespace.http01_address)

    @property
    def debounce(self) -> datetime.timedelta:
        """Quiet period after an addition before issuance starts."""
        return datetime.timedelta(seconds=self.namespace.debounce)

    @property
    def retry_backoff(self) -> datetime.timedelta:
        """Delay before a failed renewal is retried."""
        return datetime.timedelta(seconds=self.namespace.retry_backoff)

    @property
    def lead_time(self) -> datetime.timedelta:
        """How long before expiry a certificate is renewed."""
        return datetime.timedelta(days=self.namespace.lead_time_days)


def _check_config_sanity(config: NamespaceConfig) -> None:
    """Validate command line options and display error message if
    requirements are not met.

    :param config: NamespaceConfig instance holding user configuration
    :type args: :class:`certwarden.configuration.NamespaceConfig`

    """
    # Address check
    config.challenge_address  # pylint: disable=pointless-statement

    # Interval checks
    for name in ("debounce", "retry_backoff", "lead_time_days"):
        if getattr(config.namespace, name) <= 0:
            raise errors.ConfigurationError(
                "--{0} must be positive".format(name.replace("_", "-")))
    if config.lead_time >= constants.CERT_VALIDITY:
        raise errors.ConfigurationError(
            "--lead-time-days must be shorter than the {0} day certificate "
            "validity".format(constants.CERT_VALIDITY.days))

    # Domain checks
    if config.namespace.domains is not None:
        config.namespace.domains = [
            util.enforce_le_validity(domain) for domain in config.namespace.domains]
