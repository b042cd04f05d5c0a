"""Allow ``python -m roadcron_core``."""

from roadcron_core.cli import main

main()
