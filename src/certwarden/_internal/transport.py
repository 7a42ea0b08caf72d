"""ACME v2 transport built on `acme.client.ClientV2`."""
import datetime
import logging
import threading
import time
from typing import Optional

from cryptography import x509
import josepy as jose
import requests

from acme import challenges
from acme import client as acme_client
from acme import errors as acme_errors
from acme import messages

from certwarden import errors
from certwarden import interfaces
from certwarden._internal import constants

logger = logging.getLogger(__name__)

_UNDECIDED = (messages.STATUS_PENDING, messages.STATUS_PROCESSING)


class ACMETransport(interfaces.Transport):
    """`.interfaces.Transport` speaking RFC 8555 to a CA.

    Authorizations are obtained one domain at a time through a
    single-identifier order. The CA reuses the validated authorizations
    when the order for the whole batch is placed by `submit_csr`.

    :ivar client: `acme.client.ClientV2` signed with the account key
    :ivar str email: contact address sent at registration, if any

    """

    def __init__(self, client: acme_client.ClientV2, email: Optional[str] = None,
                 poll_interval: float = constants.ACME_POLL_INTERVAL,
                 authorization_timeout: float = constants.AUTHORIZATION_TIMEOUT,
                 issuance_timeout: float = constants.ISSUANCE_TIMEOUT) -> None:
        self.client = client
        self.email = email
        self.poll_interval = poll_interval
        self.authorization_timeout = authorization_timeout
        self.issuance_timeout = issuance_timeout

    @classmethod
    def from_directory(cls, server: str, account_key: jose.JWK,
                       user_agent: str = constants.USER_AGENT,
                       **kwargs) -> 'ACMETransport':
        """Build a transport for the CA whose directory is at ``server``."""
        net = acme_client.ClientNetwork(account_key, user_agent=user_agent)
        directory = acme_client.ClientV2.get_directory(server, net)
        return cls(acme_client.ClientV2(directory, net), **kwargs)

    def register(self) -> messages.RegistrationResource:
        regr = messages.NewRegistration.from_data(
            email=self.email, terms_of_service_agreed=True)
        try:
            regr = self.client.new_account(regr)
        except acme_errors.ConflictError as error:
            logger.info("Account key is already registered at %s", error.location)
            return self._adopt_account(error.location)
        logger.info("Registered account %s", regr.uri)
        return regr

    def _adopt_account(self, uri: str) -> messages.RegistrationResource:
        regr = messages.RegistrationResource(body=messages.Registration(), uri=uri)
        self.client.net.account = regr
        return regr

    def _ensure_account(self) -> None:
        """Look up the account of an existing key, registering if the CA has none."""
        if self.client.net.account is not None:
            return
        try:
            self.client.new_account(messages.NewRegistration(only_return_existing=True))
        except acme_errors.ConflictError as error:
            logger.debug("Found existing account %s", error.location)
            self._adopt_account(error.location)
        except messages.Error as error:
            if error.code != "accountDoesNotExist":
                raise
            logger.info("CA does not know the account key, registering it")
            self.register()

    def _post(self, url: str, obj: Optional[jose.JSONDeSerializable]) -> requests.Response:
        # obj is None for POST-as-GET
        return self.client.net.post(
            url, obj, new_nonce_url=getattr(self.client.directory, "newNonce"))

    def authorize(self, domain: str) -> messages.AuthorizationResource:
        self._ensure_account()
        order = messages.NewOrder(identifiers=[
            messages.Identifier(typ=messages.IDENTIFIER_FQDN, value=domain)])
        response = self._post(self.client.directory["newOrder"], order)
        body = messages.Order.from_json(response.json())
        if not body.authorizations:
            raise errors.AuthorizationError(
                "CA returned no authorization for {0}".format(domain))
        url = body.authorizations[0]
        return messages.AuthorizationResource(
            body=messages.Authorization.from_json(self._post(url, None).json()),
            uri=url)

    def accept_challenge(self, challb: messages.ChallengeBody,
                         response: challenges.ChallengeResponse) -> messages.ChallengeBody:
        return self.client.answer_challenge(challb, response).body

    def wait_authorization(self, authzr: messages.AuthorizationResource,
                           cancel: threading.Event) -> messages.AuthorizationResource:
        deadline = time.monotonic() + self.authorization_timeout
        while True:
            if cancel.is_set():
                raise errors.Cancelled("Stopped waiting for the authorization")
            authzr, _ = self.client.poll(authzr)
            if authzr.body.status not in _UNDECIDED:
                return authzr
            if time.monotonic() >= deadline:
                raise errors.AuthorizationError(
                    "Timed out waiting for the authorization of {0}".format(
                        authzr.body.identifier.value))
            if cancel.wait(self.poll_interval):
                raise errors.Cancelled("Stopped waiting for the authorization")

    def submit_csr(self, csr_pem: bytes, validity: datetime.timedelta, want_chain: bool,
                   cancel: threading.Event) -> list[x509.Certificate]:
        self._ensure_account()
        # RFC 8555 CAs decide the lifetime themselves.
        logger.debug("Requesting a certificate valid for %s", validity)
        orderr = self.client.new_order(csr_pem)
        for authzr in orderr.authorizations:
            if authzr.body.status != messages.STATUS_VALID:
                raise errors.IssuanceError(
                    "Authorization for {0} is {1}, not valid".format(
                        authzr.body.identifier.value, authzr.body.status))
        orderr = self.client.begin_finalization(orderr)
        body = self._poll_order(orderr, cancel)

        text = self._post(body.certificate, None).text
        try:
            certs = x509.load_pem_x509_certificates(text.encode())
        except ValueError as error:
            raise errors.IssuanceError("CA returned an unreadable certificate: {0}".format(error))
        return certs if want_chain else certs[:1]

    def _poll_order(self, orderr: messages.OrderResource,
                    cancel: threading.Event) -> messages.Order:
        """Wait for a finalized order to carry its certificate."""
        deadline = time.monotonic() + self.issuance_timeout
        body = orderr.body
        while True:
            if body.status == messages.STATUS_INVALID:
                raise errors.IssuanceError(
                    "The certificate order failed: {0}".format(
                        body.error if body.error is not None else "no details given"))
            if body.status == messages.STATUS_VALID and body.certificate is not None:
                return body
            if time.monotonic() >= deadline:
                raise errors.IssuanceError("Timed out waiting for the certificate")
            if cancel.wait(self.poll_interval):
                raise errors.Cancelled("Stopped waiting for the certificate")
            body = messages.Order.from_json(self._post(orderr.uri, None).json())
