"""Tests for certwarden._internal.storage."""
import datetime
import os
import stat
import sys
import unittest
from unittest import mock

import pytest

from certwarden import errors
import certwarden.tests.util as test_util

EXPIRY = datetime.datetime(2030, 1, 2, 3, 4, 5, tzinfo=datetime.timezone.utc)


class BaseCertStorageTest(test_util.TempDirTestCase):

    def setUp(self):
        super().setUp()
        from certwarden._internal.storage import CertStorage
        self.storage = CertStorage(self.tempdir)


class PathsTest(BaseCertStorageTest):
    """Tests for the CertStorage path helpers."""

    def test_domain_paths(self):
        assert self.storage.key_path("a.example.com") == os.path.join(
            self.tempdir, "a.example.com.key")
        assert self.storage.cert_path("a.example.com") == os.path.join(
            self.tempdir, "a.example.com.crt")

    def test_account_key_path(self):
        assert self.storage.account_key_path == os.path.join(self.tempdir, "account.key")

    def test_staging_paths_create_directory(self):
        key_path, cert_path = self.storage.staging_paths("a.example.com")
        staging = os.path.join(self.tempdir, ".staging")
        assert os.path.isdir(staging)
        assert key_path == os.path.join(staging, "a.example.com.key")
        assert cert_path == os.path.join(staging, "a.example.com.crt")

    def test_relative_directory(self):
        from certwarden._internal.storage import CertStorage
        assert os.path.isabs(CertStorage("relative").directory)

    def test_names_leaving_directory(self):
        outside = os.path.join(self.tempdir, "outside")
        for domain in (os.path.join(outside, "pwn.example.com"), "a/b.example.com",
                       "../b.example.com"):
            with pytest.raises(errors.CertStorageError):
                self.storage.key_path(domain)
            with pytest.raises(errors.CertStorageError):
                self.storage.cert_path(domain)
            with pytest.raises(errors.CertStorageError):
                self.storage.staging_paths(domain)
        assert os.listdir(self.tempdir) == []


class LoadExpiryTest(BaseCertStorageTest):
    """Tests for CertStorage.load_expiry."""

    def test_valid(self):
        test_util.write(self.storage.key_path("a.example.com"), test_util.make_rsa_key_pem())
        test_util.write(self.storage.cert_path("a.example.com"),
                        test_util.make_cert_pem(EXPIRY))
        assert self.storage.load_expiry("a.example.com") == EXPIRY

    def test_missing_key(self):
        test_util.write(self.storage.cert_path("a.example.com"),
                        test_util.make_cert_pem(EXPIRY))
        with pytest.raises(errors.KeyNotFound):
            self.storage.load_expiry("a.example.com")

    def test_missing_cert(self):
        test_util.write(self.storage.key_path("a.example.com"), b"key")
        with pytest.raises(errors.CertStorageError):
            self.storage.load_expiry("a.example.com")

    def test_invalid_cert(self):
        test_util.write(self.storage.key_path("a.example.com"), b"key")
        test_util.write(self.storage.cert_path("a.example.com"), b"garbage")
        with pytest.raises(errors.InvalidCertificate):
            self.storage.load_expiry("a.example.com")


class ReplicateTest(BaseCertStorageTest):
    """Tests for CertStorage.replicate."""

    def setUp(self):
        super().setUp()
        self.src_key, self.src_cert = self.storage.staging_paths("a.example.com")
        self.key_pem = test_util.make_rsa_key_pem()
        self.cert_pem = test_util.make_cert_pem(EXPIRY, ["a.example.com", "b.example.com"])
        test_util.write(self.src_key, self.key_pem)
        test_util.write(self.src_cert, self.cert_pem)
        self.domains = ["a.example.com", "b.example.com"]

    def test_byte_identical_copies(self):
        self.storage.replicate(self.src_key, self.src_cert, self.domains)
        for domain in self.domains:
            assert test_util.read(self.storage.key_path(domain)) == self.key_pem
            assert test_util.read(self.storage.cert_path(domain)) == self.cert_pem
            assert self.storage.load_expiry(domain) == EXPIRY

    @unittest.skipIf(sys.platform == "win32", "POSIX permissions")
    def test_modes(self):
        self.storage.replicate(self.src_key, self.src_cert, self.domains)
        for domain in self.domains:
            assert stat.S_IMODE(os.stat(self.storage.key_path(domain)).st_mode) == 0o600
            assert stat.S_IMODE(os.stat(self.storage.cert_path(domain)).st_mode) == 0o644

    def test_overwrites_previous_pair(self):
        test_util.write(self.storage.key_path("b.example.com"), b"old key")
        test_util.write(self.storage.cert_path("b.example.com"), b"old cert")
        self.storage.replicate(self.src_key, self.src_cert, self.domains)
        assert test_util.read(self.storage.key_path("b.example.com")) == self.key_pem
        assert test_util.read(self.storage.cert_path("b.example.com")) == self.cert_pem

    def test_no_temporaries_left(self):
        self.storage.replicate(self.src_key, self.src_cert, self.domains)
        assert not [name for name in os.listdir(self.tempdir) if name.endswith(".tmp")]

    def test_failure_leaves_destinations_untouched(self):
        test_util.write(self.storage.key_path("a.example.com"), b"old key")
        test_util.write(self.storage.cert_path("a.example.com"), b"old cert")

        from certwarden import util
        real_copy = util.copy_file
        calls = []

        def failing_copy(src, dest, chmod):
            calls.append(dest)
            if len(calls) == 3:
                raise OSError("disk full")
            real_copy(src, dest, chmod)

        with mock.patch("certwarden._internal.storage.util.copy_file", side_effect=failing_copy):
            with pytest.raises(errors.CertStorageError):
                self.storage.replicate(self.src_key, self.src_cert, self.domains)

        assert test_util.read(self.storage.key_path("a.example.com")) == b"old key"
        assert test_util.read(self.storage.cert_path("a.example.com")) == b"old cert"
        assert not os.path.exists(self.storage.key_path("b.example.com"))
        assert not [name for name in os.listdir(self.tempdir) if name.endswith(".tmp")]

    def test_rename_failure_removes_temporaries(self):
        real_replace = os.replace
        calls = []

        def failing_replace(src, dest):
            calls.append(dest)
            if len(calls) == 2:
                raise OSError("read-only file system")
            real_replace(src, dest)

        with mock.patch("certwarden._internal.storage.os.replace", side_effect=failing_replace):
            with pytest.raises(errors.CertStorageError):
                self.storage.replicate(self.src_key, self.src_cert, self.domains)

        assert test_util.read(self.storage.key_path("a.example.com")) == self.key_pem
        assert not os.path.exists(self.storage.cert_path("a.example.com"))
        assert not [name for name in os.listdir(self.tempdir) if name.endswith(".tmp")]

    def test_missing_source(self):
        os.remove(self.src_cert)
        with pytest.raises(errors.CertStorageError):
            self.storage.replicate(self.src_key, self.src_cert, self.domains)
        assert not os.path.exists(self.storage.key_path("a.example.com"))


class DiscardTest(BaseCertStorageTest):
    """Tests for CertStorage.discard."""

    def test_removes_existing_and_ignores_missing(self):
        path = test_util.write(os.path.join(self.tempdir, "x"), b"x")
        self.storage.discard([path, os.path.join(self.tempdir, "missing")])
        assert not os.path.exists(path)

    def test_logs_other_errors(self):
        with mock.patch("certwarden._internal.storage.util.safely_remove",
                        side_effect=PermissionError("denied")):
            with mock.patch("certwarden._internal.storage.logger") as mock_logger:
                self.storage.discard(["x"])
        assert mock_logger.warning.called


if __name__ == "__main__":
    sys.exit(pytest.main(sys.argv[1:] + [__file__]))  # pragma: no cover
