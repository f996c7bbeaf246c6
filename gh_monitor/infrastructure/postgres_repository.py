"""PostgreSQL storage for the tracked repository set."""
import logging
from typing import List
import psycopg2
from psycopg2.extras import execute_values
from gh_monitor.domain.repository_interface import IRepositoryStorage
from gh_monitor.domain.models import Repository


logger = logging.getLogger(__name__)


class PostgresRepositoryStorage(IRepositoryStorage):
    """PostgreSQL implementation of tracked repository storage.

    The whole set is rewritten in one transaction on every save, keeping the
    ``position`` column in display order.
    """

    def __init__(self, connection_string: str):
        """Initialize PostgreSQL connection.

        Args:
            connection_string: PostgreSQL connection string
        """
        self._connection_string = connection_string
        self._conn = psycopg2.connect(connection_string)
        self._conn.autocommit = False
        logger.info("Connected to PostgreSQL database")

    def load_repositories(self) -> List[Repository]:
        """Load tracked repositories ordered by position.

        Returns:
            Repository entities carrying their row IDs
        """
        cursor = self._conn.cursor()
        try:
            cursor.execute("""
                SELECT id, owner, name, added_at
                FROM tracked_repositories
                ORDER BY position ASC
            """)
            return [
                Repository(owner=owner, name=name, added_at=added_at, repo_id=repo_id)
                for repo_id, owner, name, added_at in cursor.fetchall()
            ]
        finally:
            cursor.close()

    def save_repositories(self, repositories: List[Repository]) -> None:
        """Replace the stored set with ``repositories``.

        Args:
            repositories: List of Repository entities in display order
        """
        cursor = self._conn.cursor()

        try:
            cursor.execute("DELETE FROM tracked_repositories")

            if repositories:
                values = [
                    (
                        repo.owner,
                        repo.name,
                        repo.full_name,
                        position,
                        repo.added_at
                    )
                    for position, repo in enumerate(repositories)
                ]

                execute_values(
                    cursor,
                    """
                    INSERT INTO tracked_repositories (owner, name, full_name, position, added_at)
                    VALUES %s
                    """,
                    values
                )

            self._conn.commit()
            logger.info(f"Saved {len(repositories)} tracked repositories")

        except Exception as e:
            self._conn.rollback()
            logger.error(f"Error saving tracked repositories: {e}")
            raise
        finally:
            cursor.close()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            logger.info("Closed PostgreSQL connection")
