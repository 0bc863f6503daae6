"""Client side of flatsync: remote access, local mirror, operations and sync."""
