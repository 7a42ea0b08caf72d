"""Test utilities."""
import datetime
import logging
import shutil
import tempfile
from typing import Optional
from typing import Sequence
import unittest
from unittest import mock

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from certwarden import configuration
from certwarden._internal import constants


def make_cert(not_after: datetime.datetime,
              domains: Sequence[str] = ("example.com",),
              lifetime: datetime.timedelta = datetime.timedelta(days=90)) -> x509.Certificate:
    """Self-signed certificate for ``domains`` expiring at ``not_after``."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domains[0])])
    return x509.CertificateBuilder(
        issuer_name=name,
        subject_name=name,
        public_key=key.public_key(),
        serial_number=x509.random_serial_number(),
        not_valid_before=not_after - lifetime,
        not_valid_after=not_after,
    ).add_extension(
        x509.SubjectAlternativeName([x509.DNSName(domain) for domain in domains]),
        critical=False,
    ).sign(
        private_key=key,
        algorithm=hashes.SHA256(),
    )


def make_cert_pem(not_after: datetime.datetime,
                  domains: Sequence[str] = ("example.com",)) -> bytes:
    """PEM of `make_cert`."""
    return make_cert(not_after, domains).public_bytes(serialization.Encoding.PEM)


def make_rsa_key_pem(key: Optional[rsa.RSAPrivateKey] = None) -> bytes:
    """PKCS#1 PEM of ``key``, or of a new 2048 bit key."""
    if key is None:
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def write(path: str, data: bytes) -> str:
    """Write ``data`` to ``path`` and return the path."""
    with open(path, "wb") as f:
        f.write(data)
    return path


def read(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


class TempDirTestCase(unittest.TestCase):
    """Base test class which sets up and tears down a temporary directory"""

    def setUp(self) -> None:
        """Execute before test"""
        self.tempdir = tempfile.mkdtemp()

    def tearDown(self) -> None:
        """Execute after test"""
        # Remove logging handlers that have been closed so they won't be
        # accidentally used in future tests.
        logging.shutdown()
        logging.getLogger().handlers = []

        shutil.rmtree(self.tempdir)


class ConfigTestCase(TempDirTestCase):
    """Test class which sets up a NamespaceConfig object."""
    def setUp(self) -> None:
        super().setUp()
        namespace = mock.MagicMock(**constants.CLI_DEFAULTS)
        namespace.domains = ["example.com"]
        namespace.storage_dir = self.tempdir
        self.config = configuration.NamespaceConfig(namespace)
