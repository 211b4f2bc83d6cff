"""Allow ``python -m linkforge.cli`` to run the queue CLI."""

from linkforge.cli.ingest import main

main()
