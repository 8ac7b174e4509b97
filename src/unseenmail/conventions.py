"""unseenmail conventions

Canonical names and defaults shared by every module. Values that users may
tune live in the ``watcher:`` section of the config file (see schema.py);
the defaults there MUST match the constants here.
"""

# --- Package ---
PACKAGE_NAME = "unseenmail"

# --- IMAP ---
DEFAULT_IMAP_PORT = 993
DEFAULT_MAILBOX = "INBOX"
# Every UID in the mailbox; filtering against the watermark happens locally
# because many servers mishandle "UID n:*" ranges.
DEFAULT_SEARCH_CRITERIA = "ALL"
IDLE_CAPABILITY = "IDLE"
HEADER_FETCH_ITEMS = "(UID RFC822.HEADER)"

# --- Timing (seconds) ---
INITIAL_BACKOFF = 1
ESCALATION_THRESHOLD = 256
# Servers may drop an IDLE after 30 minutes (RFC 2177); re-issue well before.
IDLE_MAX_WAIT = 300
COMMAND_TIMEOUT = 30
# Grace period for the tagged completion after DONE.
IDLE_DONE_TIMEOUT = 10

# --- Notifications ---
NO_SUBJECT = "<no subject>"
NEW_MAIL_TITLE = "@{name} has new mail"
CONNECTION_FAILED_TITLE = "@{name} connection failed"
WARNING_TAG = "warning"
NOTIFY_TIMEOUT = 10.0

# --- Logging ---
CONSOLE_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
CONSOLE_DATE_FORMAT = "%H:%M:%S"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 3
