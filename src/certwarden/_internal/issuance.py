"""Obtain one certificate for a batch of domains."""
import datetime
import logging
import threading
from typing import Sequence

import josepy as jose

from acme import challenges
from acme import messages

from certwarden import crypto_util
from certwarden import errors
from certwarden import interfaces
from certwarden import util
from certwarden._internal import constants
from certwarden._internal import standalone

logger = logging.getLogger(__name__)


def find_challenge(authzr: messages.AuthorizationResource) -> messages.ChallengeBody:
    """Pick the HTTP-01 challenge offered in ``authzr``.

    :raises .errors.NoChallengeFound: if the CA did not offer one

    """
    for challb in authzr.body.challenges:
        if isinstance(challb.chall, challenges.HTTP01):
            return challb
    raise errors.NoChallengeFound(authzr.body.identifier.value)


class Issuer:
    """Runs the ACME issuance protocol for batches of domains.

    :ivar transport: `.interfaces.Transport` used to reach the CA
    :ivar account_key: `josepy.JWK` the challenges are answered with
    :ivar tuple address: ``(host, port)`` the HTTP-01 responder binds to

    """

    def __init__(self, transport: interfaces.Transport, account_key: jose.JWK,
                 address: tuple[str, int], key_size: int = constants.RSA_KEY_SIZE,
                 validity: datetime.timedelta = constants.CERT_VALIDITY) -> None:
        self.transport = transport
        self.account_key = account_key
        self.address = address
        self.key_size = key_size
        self.validity = validity

    def issue(self, domains: Sequence[str], key_path: str, cert_path: str,
              cancel: threading.Event) -> None:
        """Obtain a certificate covering ``domains``.

        A fresh key is written to ``key_path``. The chain, leaf first, is
        written to ``cert_path`` only once the CA has returned all of it.

        :param domains: the first domain becomes the subject common name
        :param threading.Event cancel: abandons the issuance once set

        :raises .errors.NoDomains: if ``domains`` is empty
        :raises .errors.AuthorizationError: if a domain could not be authorized
        :raises .errors.Cancelled: if ``cancel`` was set

        """
        if not domains:
            raise errors.NoDomains("Cannot issue a certificate without any domains")

        for domain in domains:
            _check_cancel(cancel)
            self._authorize(domain, cancel)

        _check_cancel(cancel)
        key = crypto_util.generate_key(key_path, self.key_size)
        csr_pem = crypto_util.make_csr(key, list(domains))
        certs = self.transport.submit_csr(csr_pem, self.validity, True, cancel)
        if not certs:
            raise errors.IssuanceError("CA returned an empty certificate chain")
        _check_cancel(cancel)

        util.safe_write(cert_path, crypto_util.dump_chain(certs), constants.CERT_MODE)
        logger.debug("Saved certificate for %s to %s", ", ".join(domains), cert_path)

    def _authorize(self, domain: str, cancel: threading.Event) -> None:
        authzr = self.transport.authorize(domain)
        status = authzr.body.status
        if status == messages.STATUS_VALID:
            logger.debug("Authorization for %s is already valid", domain)
            return
        if status != messages.STATUS_PENDING:
            raise errors.AuthorizationError(
                "Authorization for {0} is {1}".format(domain, status))

        challb = find_challenge(authzr)
        authzr = self._perform_http01(authzr, challb, cancel)
        if authzr.body.status != messages.STATUS_VALID:
            raise errors.AuthorizationError(
                "Challenge for {0} failed: {1}".format(domain, _describe_failure(authzr)))
        logger.info("Authorized %s", domain)

    def _perform_http01(self, authzr: messages.AuthorizationResource,
                        challb: messages.ChallengeBody,
                        cancel: threading.Event) -> messages.AuthorizationResource:
        """Answer ``challb`` while the responder serves its validation."""
        response, validation = challb.response_and_validation(self.account_key)
        with standalone.serve(self.address, challb.chall.path, validation.encode()):
            self.transport.accept_challenge(challb, response)
            return self.transport.wait_authorization(authzr, cancel)


def _check_cancel(cancel: threading.Event) -> None:
    if cancel.is_set():
        raise errors.Cancelled("Issuance cancelled")


def _describe_failure(authzr: messages.AuthorizationResource) -> str:
    for challb in authzr.body.challenges:
        if challb.error is not None:
            return str(challb.error)
    return "status {0}".format(authzr.body.status)
