"""Storage operations: disk discovery, pool, volume, filesystem and mount table."""
