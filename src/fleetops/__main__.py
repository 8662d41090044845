"""Allow running FleetOps as ``python -m fleetops``."""

from fleetops.cli import main

main()
