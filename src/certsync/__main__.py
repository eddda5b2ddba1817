"""Allow ``python -m certsync``."""

from certsync.cli.main import main

main()
