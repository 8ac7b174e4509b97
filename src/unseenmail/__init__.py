"""unseenmail

Watches IMAP mailboxes with IDLE and pushes an ntfy notification for every
new message:
- One watcher task per configured account (no shared state)
- UID watermark so a message is never announced twice per run
- Reconnect with exponential backoff, escalating to a warning notification
  once the outage looks persistent
"""
