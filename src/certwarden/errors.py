"""Certwarden errors."""


class Error(Exception):
    """Generic Certwarden error."""


class Cancelled(Error):
    """An operation was abandoned because of shutdown or a caller timeout."""


class ConfigurationError(Error):
    """Configuration sanity error."""


# Key storage errors
class KeyStoreError(Error):
    """Generic key storage error."""


class KeyNotFound(KeyStoreError):
    """Private key file does not exist."""


class InvalidKey(KeyStoreError):
    """Private key file is not a PEM encoded PKCS#1 RSA key."""


# Certificate storage errors
class CertStorageError(Error):
    """Generic certificate storage error."""


class InvalidCertificate(Error):
    """Certificate file does not hold a PEM encoded X.509 certificate."""


# Issuance errors
class AuthorizationError(Error):
    """Authorization error."""


class NoChallengeFound(AuthorizationError):
    """The CA did not offer a challenge type we are able to answer."""

    def __init__(self, domain: str) -> None:
        super().__init__(
            "No supported challenge (http-01) was offered for {0}".format(domain))
        self.domain = domain


class IssuanceError(Error):
    """The CA refused or failed to issue the requested certificate."""


class NoDomains(Error):
    """A certificate was requested for an empty set of domains."""


class StandaloneBindError(Error):
    """Challenge server bind error."""

    def __init__(self, socket_error: OSError, address: tuple[str, int]) -> None:
        super().__init__(
            "Problem binding to {0}:{1}: {2}".format(address[0], address[1], socket_error))
        self.socket_error = socket_error
        self.address = address
