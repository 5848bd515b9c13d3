"""Application configuration defaults."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path

from repoindex.embedding.encoder import DEFAULT_MODEL
from repoindex.utils.text import overlap_size

DEFAULT_EXTENSIONS: tuple[str, ...] = (
    ".java", ".kt", ".js", ".ts", ".py", ".rb", ".go", ".rs", ".c", ".cpp", ".h", ".hpp",
    ".cs", ".php", ".html", ".css", ".md", ".txt", ".json", ".xml", ".yaml", ".yml",
)

DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = (
    # version control
    ".git", ".svn", ".hg", "CVS",
    # dependencies and build output
    "node_modules", "bower_components", "vendor", "Pods", "packages",
    "build", "dist", "target", "out", "bin", "obj", "gen",
    # IDE files
    ".idea", ".vscode", ".project", ".classpath", ".settings", ".DS_Store",
    "*.iml", "*.suo", "*.user", "*.tmproj", "*.sublime-project", "*.sublime-workspace",
    # caches, logs and scratch space
    "logs", "tmp", "temp", ".cache", ".npm", ".yarn", ".gradle", ".mvn",
    "*.log", "*.swp", "*~",
    "__pycache__", ".pytest_cache", ".tox", ".venv", "venv", "env", "*.pyc",
    "coverage", ".nyc_output", ".aider",
    # lockfiles
    "package-lock.json", "pnpm-lock.yaml", "*.lock", "go.sum",
)


def _get_default_db_path() -> Path:
    """Prefer a local data/ database when running from a checkout."""
    local_db = Path("data/repoindex.db")
    if local_db.exists() and not getattr(sys, "frozen", False):
        return local_db
    return Path.home() / ".repoindex" / "repoindex.db"


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    model_name: str = DEFAULT_MODEL
    chunk_lines: int = 50
    overlap_percent: int = 10
    similarity_threshold: float = 0.7
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    ignore_patterns: tuple[str, ...] = DEFAULT_IGNORE_PATTERNS
    workers: int | None = None
    embedding_timeout: float | None = None

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if self.chunk_lines < 1:
            raise ValueError("chunk_lines must be at least 1")
        if self.overlap_percent < 0:
            raise ValueError("overlap_percent cannot be negative")
        if self.chunk_lines - overlap_size(self.chunk_lines, self.overlap_percent) < 1:
            raise ValueError(
                f"overlap_percent={self.overlap_percent} is too large for "
                f"chunk_lines={self.chunk_lines}"
            )
        if not 0.0 <= self.similarity_threshold <= 2.0:
            raise ValueError("similarity_threshold must be a cosine distance in [0, 2]")
        if self.workers is not None and self.workers < 1:
            raise ValueError("workers must be at least 1")
        if self.embedding_timeout is not None and self.embedding_timeout <= 0:
            raise ValueError("embedding_timeout must be positive")

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path
