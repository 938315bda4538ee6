#!/usr/bin/env python3
"""Command line runner, equivalent to the pg-backup-rotated console script"""
from pgbackup.cli import app

if __name__ == '__main__':
    # Usage: ./run.py -c /path/to/pg_backup.config 2>&1 | tee /path/to/backup.log
    app()
