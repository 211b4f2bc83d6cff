"""Queue store backends.  SQLiteQueueStore is the only one."""
