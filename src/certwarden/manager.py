"""Keeps certificates of a set of domains issued and renewed.

A `Manager` owns one control loop thread. Callers hand it domains with
`Manager.add` and `Manager.remove`; the loop alone reads and writes the
domain records, decides when a renewal is due and runs it.

"""
import datetime
import enum
import logging
import queue
import threading
import time
import traceback
from typing import Callable
from typing import Optional

import josepy as jose

from certwarden import crypto_util
from certwarden import errors
from certwarden import interfaces
from certwarden import util
from certwarden._internal import constants
from certwarden._internal import issuance
from certwarden._internal import storage as storage_mod
from certwarden._internal import transport as transport_mod

logger = logging.getLogger(__name__)

RenewalCallback = Callable[[list[str]], None]


class State(enum.Enum):
    """Lifecycle of the control loop."""
    IDLE = "idle"
    RENEWING = "renewing"
    STOPPED = "stopped"


def needs_renewal(expiry: Optional[datetime.datetime], now: datetime.datetime,
                  lead_time: datetime.timedelta) -> bool:
    """Is a certificate expiring at ``expiry`` due for renewal at ``now``?

    An unknown expiry is always due.

    """
    return expiry is None or now + lead_time >= expiry


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class _Request:
    """Add or remove message, settled exactly once.

    The loop settles it as accepted or rejected, the caller as withdrawn,
    whichever comes first.

    """
    ADD = "add"
    REMOVE = "remove"

    ACCEPTED = "accepted"
    WITHDRAWN = "withdrawn"
    REJECTED = "rejected"

    def __init__(self, op: str, domains: list[str]) -> None:
        self.op = op
        self.domains = domains
        self.outcome: Optional[str] = None
        self._lock = threading.Lock()
        self._settled = threading.Event()

    def settle(self, outcome: str) -> bool:
        """Record ``outcome`` unless the request is already settled."""
        with self._lock:
            if self.outcome is not None:
                return False
            self.outcome = outcome
        self._settled.set()
        return True

    def wait(self, timeout: float) -> bool:
        return self._settled.wait(timeout)


class Manager:
    """Renewal engine for a set of domains.

    Domains added within the debounce interval of each other are issued
    a single certificate. Every domain then gets its own copy of the key
    and certificate in the storage directory. A failed renewal is retried
    for the same domains after the retry backoff.

    :ivar storage: `.CertStorage` holding the key and certificate files
    :ivar issuer: `.Issuer` running the ACME protocol
    :ivar on_renewed: called from the loop thread with the domains of
        every successful issuance

    """

    def __init__(self, storage: storage_mod.CertStorage, issuer: issuance.Issuer,
                 on_renewed: Optional[RenewalCallback] = None,
                 debounce: datetime.timedelta = constants.DEBOUNCE_INTERVAL,
                 retry_backoff: datetime.timedelta = constants.RETRY_BACKOFF,
                 lead_time: datetime.timedelta = constants.RENEWAL_LEAD_TIME,
                 queue_size: int = constants.REQUEST_QUEUE_SIZE) -> None:
        self.storage = storage
        self.issuer = issuer
        self.on_renewed = on_renewed
        self.debounce = debounce
        self.retry_backoff = retry_backoff
        self.lead_time = lead_time

        # Owned by the loop thread. Insertion order decides the common name.
        self._certs: dict[str, Optional[datetime.datetime]] = {}
        self._pending: set[str] = set()
        self._debounce_deadline: Optional[float] = None
        self._backoff_deadline: Optional[float] = None
        self._renew_at: Optional[datetime.datetime] = None
        self._state = State.IDLE

        self._requests: 'queue.Queue[Optional[_Request]]' = queue.Queue(queue_size)
        self._stop = threading.Event()
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name="certwarden-manager",
                                        daemon=True)
        self._thread.start()

    @classmethod
    def create(cls, address: str, storage_dir: str,
               on_renewed: Optional[RenewalCallback] = None, *,
               transport: Optional[interfaces.Transport] = None,
               server: str = constants.CLI_DEFAULTS["server"],
               email: Optional[str] = None,
               debounce: datetime.timedelta = constants.DEBOUNCE_INTERVAL,
               retry_backoff: datetime.timedelta = constants.RETRY_BACKOFF,
               lead_time: datetime.timedelta = constants.RENEWAL_LEAD_TIME,
               key_size: int = constants.RSA_KEY_SIZE) -> 'Manager':
        """Prepare the storage directory and account, then start a manager.

        The account key is loaded from the storage directory. If there is
        none, a new key is generated and registered with the CA.

        :param str address: ``host:port`` the HTTP-01 responder binds to
        :param str storage_dir: directory for the account, keys and certificates
        :param on_renewed: see `Manager`
        :param transport: `.interfaces.Transport` to use instead of the
            ACME client for ``server``

        :raises .errors.ConfigurationError: if ``address`` is malformed
        :raises .errors.KeyStoreError: if the account key is unusable

        """
        challenge_address = util.parse_address(address)
        util.make_or_verify_dir(storage_dir, constants.STORAGE_DIR_MODE)
        storage = storage_mod.CertStorage(storage_dir)

        try:
            key = crypto_util.load_key(storage.account_key_path)
            registered = True
        except errors.KeyNotFound:
            logger.info("Creating account key %s", storage.account_key_path)
            key = crypto_util.generate_key(storage.account_key_path, key_size)
            registered = False
        account_key = jose.JWKRSA(key=key)

        if transport is None:
            transport = transport_mod.ACMETransport.from_directory(
                server, account_key, email=email)
        if not registered:
            transport.register()

        issuer = issuance.Issuer(transport, account_key, challenge_address, key_size)
        return cls(storage, issuer, on_renewed, debounce=debounce,
                   retry_backoff=retry_backoff, lead_time=lead_time)

    @property
    def state(self) -> State:
        return self._state

    def key_path(self, domain: str) -> str:
        """Path of the private key of ``domain``."""
        return self.storage.key_path(domain)

    def cert_path(self, domain: str) -> str:
        """Path of the certificate chain of ``domain``."""
        return self.storage.cert_path(domain)

    def add(self, *domains: str, timeout: Optional[float] = None) -> None:
        """Start managing ``domains``.

        Their certificate is obtained once no other domain has been added
        for the debounce interval.

        :raises .errors.Cancelled: if the manager is closed or ``timeout``
            seconds pass before the request is accepted
        :raises .errors.ConfigurationError: if a domain name is invalid

        """
        self._submit(_Request.ADD, domains, timeout)

    def remove(self, *domains: str, timeout: Optional[float] = None) -> None:
        """Stop managing ``domains``. Their files are left in place.

        :raises .errors.Cancelled: if the manager is closed or ``timeout``
            seconds pass before the request is accepted

        """
        self._submit(_Request.REMOVE, domains, timeout)

    def close(self) -> None:
        """Cancel any issuance in progress and wait for the loop to exit."""
        self._stop.set()
        try:
            self._requests.put_nowait(None)
        except queue.Full:
            pass  # a full queue wakes the loop anyway
        if threading.current_thread() is not self._thread:
            self._thread.join()

    def __enter__(self) -> 'Manager':
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _submit(self, op: str, domains: tuple[str, ...], timeout: Optional[float]) -> None:
        request = _Request(op, [util.enforce_le_validity(d) for d in domains])
        deadline = None if timeout is None else time.monotonic() + timeout

        def _remaining() -> float:
            if deadline is None:
                return constants.REQUEST_POLL_INTERVAL
            return min(constants.REQUEST_POLL_INTERVAL, deadline - time.monotonic())

        while True:
            if self._stop.is_set():
                raise errors.Cancelled("Manager is closed")
            remaining = _remaining()
            if remaining <= 0:
                raise errors.Cancelled("Timed out submitting {0} request".format(op))
            try:
                self._requests.put(request, timeout=remaining)
                break
            except queue.Full:
                continue

        while not request.wait(max(_remaining(), 0)):
            if self._stop.is_set() or _remaining() <= 0:
                if request.settle(_Request.WITHDRAWN):
                    raise errors.Cancelled(
                        "{0} request for {1} was not accepted".format(
                            op, ", ".join(request.domains)))
        if request.outcome != _Request.ACCEPTED:
            raise errors.Cancelled("Manager is closed")

    # Everything below runs on the loop thread.

    def _run(self) -> None:
        try:
            while not self._stop.is_set():
                try:
                    request = self._requests.get(timeout=self._wait_time())
                except queue.Empty:
                    request = None
                if request is not None:
                    if request.settle(_Request.ACCEPTED):
                        self._handle(request)
                    continue
                if self._due():
                    self._renew()
        except errors.Cancelled:
            logger.debug("Renewal cancelled by shutdown")
        finally:
            self._state = State.STOPPED
            self._reject_queued()
            self._stopped.set()
            logger.debug("Manager stopped")

    def _reject_queued(self) -> None:
        while True:
            try:
                request = self._requests.get_nowait()
            except queue.Empty:
                return
            if request is not None:
                request.settle(_Request.REJECTED)

    def _handle(self, request: _Request) -> None:
        if request.op == _Request.ADD:
            for domain in request.domains:
                self._certs[domain] = None
                self._pending.add(domain)
            self._debounce_deadline = time.monotonic() + self.debounce.total_seconds()
            logger.debug("Added %s", ", ".join(request.domains))
        else:
            for domain in request.domains:
                self._certs.pop(domain, None)
                self._pending.discard(domain)
            if not self._pending:
                self._debounce_deadline = None
            logger.debug("Removed %s", ", ".join(request.domains))
        self._schedule()

    def _schedule(self) -> None:
        """Arm the expiry timer for the earliest known expiry."""
        known = [expiry for expiry in self._certs.values() if expiry is not None]
        self._renew_at = min(known) - self.lead_time if known else None
        if self._renew_at is not None:
            logger.debug("Next renewal at %s", self._renew_at)

    def _wait_time(self) -> Optional[float]:
        """Seconds until the next timer fires, or ``None`` if none is armed."""
        waits = []
        now = time.monotonic()
        if self._backoff_deadline is not None:
            waits.append(self._backoff_deadline - now)
        else:
            if self._debounce_deadline is not None:
                waits.append(self._debounce_deadline - now)
            if self._renew_at is not None:
                waits.append((self._renew_at - _now()).total_seconds())
        if not waits:
            return None
        return max(min(waits), 0)

    def _due(self) -> bool:
        now = time.monotonic()
        if self._backoff_deadline is not None:
            if now < self._backoff_deadline:
                return False
            self._backoff_deadline = None
            return True
        if self._debounce_deadline is not None and now >= self._debounce_deadline:
            return True
        return self._renew_at is not None and _now() >= self._renew_at

    def _renew(self) -> None:
        self._state = State.RENEWING
        self._debounce_deadline = None
        batch: list[str] = []
        try:
            batch = self._find_expiring()
            if batch:
                self._issue(batch)
        except errors.Cancelled:
            raise
        except Exception as e:  # pylint: disable=broad-except
            if self._stop.is_set():
                raise errors.Cancelled("Renewal interrupted by shutdown")
            logger.error("Failed to renew certificate for %s with error: %s",
                         ", ".join(batch), e)
            logger.debug("Traceback was:\n%s", traceback.format_exc())
            self._backoff_deadline = time.monotonic() + self.retry_backoff.total_seconds()
            logger.info("Retrying in %s", self.retry_backoff)
        else:
            self._pending.clear()
            if batch:
                self._notify(batch)
                self._check_issued(batch)
        self._state = State.IDLE
        self._schedule()

    def _check_issued(self, batch: list[str]) -> None:
        """Back off if the new certificate is itself due for renewal."""
        expiry = self._certs[batch[0]]
        if needs_renewal(expiry, _now(), self.lead_time):
            logger.warning(
                "Certificate for %s expires at %s, within the renewal lead time "
                "of %s. Renewing again in %s", ", ".join(batch), expiry,
                self.lead_time, self.retry_backoff)
            self._backoff_deadline = time.monotonic() + self.retry_backoff.total_seconds()

    def _find_expiring(self) -> list[str]:
        """Domains whose certificate is missing, unreadable or due for renewal."""
        now = _now()
        expiring = []
        for domain, expiry in self._certs.items():
            if expiry is None:
                try:
                    expiry = self.storage.load_expiry(domain)
                except errors.Error as error:
                    logger.debug("No usable certificate for %s: %s", domain, error)
                    expiring.append(domain)
                    continue
                self._certs[domain] = expiry
            if needs_renewal(expiry, now, self.lead_time):
                expiring.append(domain)
        return expiring

    def _issue(self, batch: list[str]) -> None:
        logger.info("Requesting a certificate for %s", ", ".join(batch))
        key_path, cert_path = self.storage.staging_paths(batch[0])
        try:
            self.issuer.issue(batch, key_path, cert_path, self._stop)
            expiry = crypto_util.read_expiry(cert_path)
            self.storage.replicate(key_path, cert_path, batch)
        finally:
            self.storage.discard((key_path, cert_path))
        for domain in batch:
            self._certs[domain] = expiry
        logger.info("Certificate for %s is valid until %s", ", ".join(batch), expiry)

    def _notify(self, batch: list[str]) -> None:
        if self.on_renewed is None:
            return
        try:
            self.on_renewed(list(batch))
        except Exception as e:  # pylint: disable=broad-except
            logger.error("Renewal callback for %s failed: %s", ", ".join(batch), e)
            logger.debug("Traceback was:\n%s", traceback.format_exc())
