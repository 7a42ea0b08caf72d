"""Certwarden client interfaces."""
from abc import ABCMeta
from abc import abstractmethod
import datetime
import threading

from cryptography import x509

from acme import challenges
from acme import messages


class Transport(metaclass=ABCMeta):
    """Conversation with an ACME certificate authority.

    The issuance logic only talks to the CA through this interface, so
    tests and alternative clients can stand in for the network.

    """

    @abstractmethod
    def register(self) -> messages.RegistrationResource:  # pragma: no cover
        """Register the account key with the CA.

        Registering a key the CA already knows adopts the existing account.

        :returns: the account registration
        :rtype: `acme.messages.RegistrationResource`

        """
        raise NotImplementedError()

    @abstractmethod
    def authorize(self, domain: str) -> messages.AuthorizationResource:  # pragma: no cover
        """Obtain an authorization for ``domain``.

        :returns: the authorization, either ``pending`` with its challenges
            or already ``valid``
        :rtype: `acme.messages.AuthorizationResource`

        """
        raise NotImplementedError()

    @abstractmethod
    def accept_challenge(self, challb: messages.ChallengeBody,
                         response: challenges.ChallengeResponse
                         ) -> messages.ChallengeBody:  # pragma: no cover
        """Tell the CA the challenge is ready to be validated.

        :returns: the updated challenge
        :rtype: `acme.messages.ChallengeBody`

        """
        raise NotImplementedError()

    @abstractmethod
    def wait_authorization(self, authzr: messages.AuthorizationResource,
                           cancel: threading.Event
                           ) -> messages.AuthorizationResource:  # pragma: no cover
        """Wait until the CA has decided on ``authzr``.

        :param threading.Event cancel: aborts the wait once set

        :returns: the authorization in its final state
        :rtype: `acme.messages.AuthorizationResource`

        :raises .errors.Cancelled: if ``cancel`` was set
        :raises .errors.AuthorizationError: if the CA did not decide in time

        """
        raise NotImplementedError()

    @abstractmethod
    def submit_csr(self, csr_pem: bytes, validity: datetime.timedelta, want_chain: bool,
                   cancel: threading.Event
                   ) -> list[x509.Certificate]:  # pragma: no cover
        """Have the CA sign a certificate for every name in ``csr_pem``.

        :param bytes csr_pem: PEM encoded CSR
        :param datetime.timedelta validity: requested certificate lifetime
        :param bool want_chain: include the issuer chain after the leaf
        :param threading.Event cancel: aborts the wait once set

        :returns: the leaf certificate, followed by its chain if requested
        :rtype: `list` of `cryptography.x509.Certificate`

        :raises .errors.Cancelled: if ``cancel`` was set
        :raises .errors.IssuanceError: if the CA refused the request

        """
        raise NotImplementedError()
