"""CLI context management for database connections and shared state."""

from dataclasses import dataclass, field

from entitygraph import Repository


@dataclass
class CLIContext:
    """Shared context for CLI commands.

    Manages repository lifecycle and output preferences.
    """

    database_url: str
    echo: bool
    json_output: bool
    _repo: Repository | None = field(default=None, init=False, repr=False)

    def get_repository(self) -> Repository:
        """Get or create the repository (lazy initialization).

        Returns:
            Repository instance
        """
        if self._repo is None:
            self._repo = Repository(self.database_url, echo=self.echo)
        return self._repo

    def close(self) -> None:
        """Close database connection if open."""
        if self._repo is not None:
            self._repo.close()
            self._repo = None
