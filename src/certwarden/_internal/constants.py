"""Certwarden constants."""
import datetime
import logging
import os

CLI_DEFAULTS: dict = dict(  # pylint: disable=use-dict-literal
    config_files=[
        "/etc/certwarden/cli.ini",
        # http://freedesktop.org/wiki/Software/xdg-user-dirs/
        os.path.join(os.environ.get("XDG_CONFIG_HOME", "~/.config"),
                     "certwarden", "cli.ini"),
    ],

    verbose_count=0,
    quiet=False,
    domains=[],
    storage_dir="/var/lib/certwarden",
    http01_address=":80",
    server="https://acme-v02.api.letsencrypt.org/directory",
    staging=False,
    email=None,
    debounce=5.0,
    retry_backoff=30.0,
    lead_time_days=14,
    log_file=None,
    max_log_backups=10,
)
STAGING_URI = "https://acme-staging-v02.api.letsencrypt.org/directory"

DEFAULT_LOGGING_LEVEL = logging.INFO
"""Terminal logging level without -v or -q."""

QUIET_LOGGING_LEVEL = logging.ERROR
"""Logging level to use in quiet mode."""

USER_AGENT = "certwarden"
"""User agent sent to the ACME server."""

RENEWAL_LEAD_TIME = datetime.timedelta(weeks=2)
"""How long before expiry a certificate is renewed. Must exceed the
longest expected retry horizon."""

DEBOUNCE_INTERVAL = datetime.timedelta(seconds=5)
"""Quiet period after the last addition before a renewal is started."""

RETRY_BACKOFF = datetime.timedelta(seconds=30)
"""Delay before a failed renewal is attempted again."""

CERT_VALIDITY = datetime.timedelta(days=90)
"""Validity window requested for issued certificates."""

RSA_KEY_SIZE = 2048
"""Size of generated account and domain keys."""

ACCOUNT_KEY_NAME = "account.key"
KEY_SUFFIX = ".key"
CERT_SUFFIX = ".crt"
STAGING_DIR = ".staging"
"""Subdirectory of the storage directory holding in-progress issuance."""

KEY_MODE = 0o600
CERT_MODE = 0o644
STORAGE_DIR_MODE = 0o755

REQUEST_QUEUE_SIZE = 16
"""Maximum number of add/remove requests waiting for the control loop."""

REQUEST_POLL_INTERVAL = 0.5
"""Seconds between checks for a stopped engine while a request waits."""

ACME_POLL_INTERVAL = 1.0
"""Seconds between polls of pending authorizations and orders."""

AUTHORIZATION_TIMEOUT = 90.0
"""Seconds to wait for the CA to validate one authorization."""

ISSUANCE_TIMEOUT = 90.0
"""Seconds to wait for the CA to issue a finalized order."""

CHALLENGE_REQUEST_TIMEOUT = 30
"""Socket timeout applied to each challenge request handler."""
