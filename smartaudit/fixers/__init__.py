"""Safe-fix engine: snapshots, version control, validation and confirmation."""
