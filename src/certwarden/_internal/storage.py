"""Flat file storage of account, domain keys and certificates."""
import datetime
import logging
import os
from typing import Iterable

from certwarden import crypto_util
from certwarden import errors
from certwarden import util
from certwarden._internal import constants

logger = logging.getLogger(__name__)


class CertStorage:
    """Keys and certificates kept side by side in one directory.

    Every domain owns ``<domain>.key`` and ``<domain>.crt``. Domains that
    share a certificate hold byte-identical copies of the same pair.

    :ivar str directory: absolute path of the storage directory

    """

    def __init__(self, directory: str) -> None:
        self.directory = os.path.abspath(directory)

    @property
    def staging_dir(self) -> str:
        """Directory holding key/cert pairs of an issuance in progress."""
        return os.path.join(self.directory, constants.STAGING_DIR)

    @property
    def account_key_path(self) -> str:
        return os.path.join(self.directory, constants.ACCOUNT_KEY_NAME)

    def key_path(self, domain: str) -> str:
        return _domain_file(self.directory, domain, constants.KEY_SUFFIX)

    def cert_path(self, domain: str) -> str:
        return _domain_file(self.directory, domain, constants.CERT_SUFFIX)

    def staging_paths(self, domain: str) -> tuple[str, str]:
        """Key and certificate paths used while issuing for ``domain``."""
        paths = (_domain_file(self.staging_dir, domain, constants.KEY_SUFFIX),
                 _domain_file(self.staging_dir, domain, constants.CERT_SUFFIX))
        util.make_or_verify_dir(self.staging_dir, constants.STORAGE_DIR_MODE)
        return paths

    def load_expiry(self, domain: str) -> datetime.datetime:
        """Expiry of the certificate stored for ``domain``.

        :raises .errors.KeyNotFound: if the domain has no private key
        :raises .errors.CertStorageError: if the certificate cannot be read
        :raises .errors.InvalidCertificate: if the certificate is malformed

        """
        if not os.path.isfile(self.key_path(domain)):
            raise errors.KeyNotFound("No private key stored for {0}".format(domain))
        return crypto_util.read_expiry(self.cert_path(domain))

    def replicate(self, src_key: str, src_cert: str, domains: Iterable[str]) -> None:
        """Install one key/cert pair as the pair of every domain in ``domains``.

        All copies are written to temporary files next to their
        destinations first. If any copy fails, the temporaries are removed
        and no destination is touched. Otherwise they are renamed into
        place. Renames are not atomic as a group: if one fails, the
        destinations renamed before it keep the new pair and the remaining
        temporaries are removed.

        :raises .errors.CertStorageError: if the pair could not be copied

        """
        staged: list[tuple[str, str]] = []
        try:
            for domain in domains:
                for src, dest, mode in ((src_key, self.key_path(domain), constants.KEY_MODE),
                                        (src_cert, self.cert_path(domain),
                                         constants.CERT_MODE)):
                    tmp = dest + ".tmp"
                    staged.append((tmp, dest))
                    util.copy_file(src, tmp, mode)
        except (OSError, errors.CertStorageError) as error:
            self.discard(tmp for tmp, _ in staged)
            raise errors.CertStorageError(
                "Unable to copy {0} to the domain files: {1}".format(src_cert, error))

        for index, (tmp, dest) in enumerate(staged):
            try:
                os.replace(tmp, dest)
            except OSError as error:
                self.discard(remaining for remaining, _ in staged[index:])
                raise errors.CertStorageError(
                    "Unable to install {0}: {1}".format(dest, error))
            logger.debug("Installed %s", dest)

    def discard(self, paths: Iterable[str]) -> None:
        """Remove files that may or may not exist, logging failures."""
        for path in paths:
            try:
                util.safely_remove(path)
            except OSError as error:
                logger.warning("Unable to remove %s: %s", path, error)


def _domain_file(directory: str, domain: str, suffix: str) -> str:
    """Path of ``domain + suffix`` directly inside ``directory``.

    :raises .errors.CertStorageError: if the name would leave ``directory``

    """
    path = os.path.join(directory, domain + suffix)
    if os.path.dirname(os.path.abspath(path)) != directory:
        raise errors.CertStorageError(
            "{0} cannot be stored in {1}".format(domain, directory))
    return path
