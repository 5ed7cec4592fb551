#!/usr/bin/env python3
"""Quick migration runner."""
import os
import sys

import psycopg2


def main() -> int:
    if len(sys.argv) < 2:
        print("Usage: python3 run_migration.py migrations/0001_chat_context.sql")
        return 1

    migration_file = sys.argv[1]
    with open(migration_file, "r") as f:
        sql = f.read()

    print(f"Migration file: {migration_file}")
    print(f"Content length: {len(sql)} bytes\n")

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("DATABASE_URL environment variable not set")
        return 1

    try:
        print("Connecting to database...")
        conn = psycopg2.connect(database_url)
    except psycopg2.Error as e:
        print(f"Error connecting to database: {e}")
        return 1

    try:
        with conn, conn.cursor() as cursor:
            print("Executing migration...\n")
            cursor.execute(sql)
    except psycopg2.Error as e:
        print(f"Error running migration: {e}")
        return 1
    finally:
        conn.close()

    print("Migration complete!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
