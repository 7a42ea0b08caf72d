"""Certwarden crypto utility functions.

Keys are RSA and stored as PKCS#1 PEM (``RSA PRIVATE KEY``). Certificates
are stored as a chain of PEM ``CERTIFICATE`` blocks, leaf first.

"""
import datetime
import logging
import re
from typing import Iterable
from typing import Optional

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from certwarden import errors
from certwarden import util
from certwarden._internal import constants

logger = logging.getLogger(__name__)

KEY_PEM_TYPE = b"RSA PRIVATE KEY"
CERT_PEM_TYPE = b"CERTIFICATE"

# Finds the first PEM block according to rfc7468#section-3 and captures its
# label. Does not validate the base64text.
PEM_BLOCK_REGEX = re.compile(
    rb"-----BEGIN ([A-Z0-9 ]+)-----\r?\n.+?\r?\n-----END \1-----",
    re.DOTALL  # DOTALL (/s) because the base64text may include newlines
)


def pem_type(data: bytes) -> Optional[bytes]:
    """Label of the first PEM block in ``data``, or ``None`` if there is none."""
    match = PEM_BLOCK_REGEX.search(data)
    return match.group(1) if match else None


# KeyStore

def load_key(path: str) -> rsa.RSAPrivateKey:
    """Load a PKCS#1 RSA private key.

    :param str path: path to a PEM file holding an ``RSA PRIVATE KEY`` block

    :returns: the private key
    :rtype: `rsa.RSAPrivateKey`

    :raises .errors.KeyNotFound: if the file does not exist
    :raises .errors.InvalidKey: if the file is not a PKCS#1 RSA key
    :raises .errors.KeyStoreError: if the file cannot be read

    """
    try:
        with open(path, "rb") as f:
            data = f.read()
    except FileNotFoundError:
        raise errors.KeyNotFound("No private key at {0}".format(path))
    except OSError as error:
        raise errors.KeyStoreError("Unable to read {0}: {1}".format(path, error))

    if pem_type(data) != KEY_PEM_TYPE:
        raise errors.InvalidKey("{0} does not hold a PEM encoded RSA private key".format(path))
    try:
        key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as error:
        logger.debug("", exc_info=True)
        raise errors.InvalidKey("Unable to decode private key {0}: {1}".format(path, error))
    if not isinstance(key, rsa.RSAPrivateKey):
        raise errors.InvalidKey("{0} is not an RSA key".format(path))
    return key


def generate_key(path: str, bits: int = constants.RSA_KEY_SIZE) -> rsa.RSAPrivateKey:
    """Generate a new RSA key and save it at ``path`` with mode 0600.

    Any existing file at ``path`` is overwritten.

    :param str path: destination of the PEM encoded key
    :param int bits: key size in bits, at least 2048

    :returns: the new private key
    :rtype: `rsa.RSAPrivateKey`

    """
    if bits < 2048:
        raise errors.Error("Unsupported RSA key length: {}".format(bits))
    key = rsa.generate_private_key(public_exponent=65537, key_size=bits)
    util.safe_write(path, key_to_pem(key), constants.KEY_MODE)
    logger.debug("Generating RSA key (%d bits): %s", bits, path)
    return key


def key_to_pem(key: rsa.RSAPrivateKey) -> bytes:
    """PKCS#1 PEM encoding of ``key``."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def make_csr(key: rsa.RSAPrivateKey, domains: list[str]) -> bytes:
    """Generate a CSR for a batch of domains.

    The first domain becomes the subject common name, the remaining
    domains are listed as subject alternative names.

    :param key: key the CSR is signed with
    :param list domains: domains covered by the certificate

    :returns: PEM encoded CSR
    :rtype: bytes

    :raises .errors.NoDomains: if ``domains`` is empty

    """
    if not domains:
        raise errors.NoDomains("Cannot create a CSR without any domains")
    builder = x509.CertificateSigningRequestBuilder().subject_name(
        x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domains[0])]))
    if len(domains) > 1:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in domains[1:]]),
            critical=False,
        )
    csr = builder.sign(key, hashes.SHA256())
    return csr.public_bytes(serialization.Encoding.PEM)


# CertificateReader

def read_expiry(cert_path: str) -> datetime.datetime:
    """When does the leaf certificate at cert_path stop being valid?

    :param str cert_path: path to a certificate chain in PEM format

    :returns: the notAfter value of the first certificate, in UTC
    :rtype: :class:`datetime.datetime`

    :raises .errors.CertStorageError: if the file cannot be read
    :raises .errors.InvalidCertificate: if the file is not a PEM certificate

    """
    try:
        with open(cert_path, "rb") as f:
            data = f.read()
    except OSError as error:
        raise errors.CertStorageError("Unable to read {0}: {1}".format(cert_path, error))

    match = PEM_BLOCK_REGEX.search(data)
    if match is None or match.group(1) != CERT_PEM_TYPE:
        raise errors.InvalidCertificate(
            "{0} does not hold a PEM encoded certificate".format(cert_path))
    try:
        cert = x509.load_pem_x509_certificate(match.group(0))
    except ValueError as error:
        raise errors.InvalidCertificate(
            "Unable to parse certificate {0}: {1}".format(cert_path, error))
    return cert.not_valid_after_utc


def dump_chain(certs: Iterable[x509.Certificate]) -> bytes:
    """PEM encode certificates in the given order into a single blob."""
    return b"".join(cert.public_bytes(serialization.Encoding.PEM) for cert in certs)
