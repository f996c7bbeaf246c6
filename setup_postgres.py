"""Database initialization script.

Creates the table holding the tracked repository set.
"""
import sys
import psycopg2
import logging
from gh_monitor.config import get_connection_string, load_environment

load_environment()


logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def create_schema(conn) -> None:
    """Create database schema.

    - owner+name is the natural key; a repository is tracked at most once
    - position keeps the user's display order (0 = first)
    - added_at records when tracking started
    """
    cursor = conn.cursor()

    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS tracked_repositories (
                id SERIAL PRIMARY KEY,
                owner VARCHAR(255) NOT NULL,
                name VARCHAR(255) NOT NULL,
                full_name VARCHAR(511) NOT NULL,
                position INTEGER NOT NULL,
                added_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                CONSTRAINT tracked_repositories_owner_name_unique UNIQUE (owner, name)
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_tracked_repositories_position
            ON tracked_repositories(position)
        """)

        conn.commit()
        logger.info("Database schema created successfully")

    except Exception as e:
        conn.rollback()
        logger.error(f"Error creating schema: {e}")
        raise
    finally:
        cursor.close()


def main():
    """Initialize the database."""
    try:
        logger.info("Connecting to database...")

        conn = psycopg2.connect(get_connection_string())
        conn.autocommit = False

        create_schema(conn)

        conn.close()
        logger.info("Database initialization completed successfully")

    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
