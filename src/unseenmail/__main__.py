"""Allow running as ``python -m unseenmail``."""

from unseenmail.cli import main

main()
