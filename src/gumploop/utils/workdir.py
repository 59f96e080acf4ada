"""Working-directory validation and pipeline file layout."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from gumploop.constants import DEFAULT_PROJECT_DIR, FORBIDDEN_PATHS, PIPELINE_DIR_NAME

logger = logging.getLogger(__name__)


class WorkDirError(ValueError):
    """Raised when a working directory is rejected."""


def validate_work_dir(work_dir: str) -> Path:
    """Validate ``work_dir`` and return it resolved.

    The ``..`` check runs on the raw string, before resolution, so traversal
    cannot be hidden behind a path that happens to resolve somewhere allowed.

    Raises:
        WorkDirError: if the path is rejected.
    """
    if ".." in Path(work_dir).parts or ".." in work_dir.split(os.sep):
        raise WorkDirError("Path traversal detected")

    if not os.path.isabs(work_dir):
        raise WorkDirError(f"Path must be absolute: {work_dir}")

    resolved = Path(work_dir).resolve()

    if not resolved.exists():
        raise WorkDirError(f"Directory does not exist: {resolved}")
    if not resolved.is_dir():
        raise WorkDirError(f"Not a directory: {resolved}")

    if str(resolved) in FORBIDDEN_PATHS:
        raise WorkDirError(f"Cannot use system directory: {resolved}")

    return resolved


def get_project_dir(work_dir: Optional[str] = None) -> Path:
    """Resolve the project directory, falling back to the default sandbox.

    A missing directory is created before validation.
    """
    if work_dir:
        candidate = Path(work_dir)
        if candidate.is_absolute() and ".." not in candidate.parts and not candidate.exists():
            try:
                candidate.mkdir(parents=True, exist_ok=True)
                logger.info(f"Created workDir: {candidate}")
            except OSError as e:
                logger.error(f"Failed to create workDir {candidate}: {e}")

        try:
            return validate_work_dir(work_dir)
        except WorkDirError as e:
            logger.warning(f"Invalid workDir {work_dir!r}: {e}. Using default.")

    DEFAULT_PROJECT_DIR.mkdir(parents=True, exist_ok=True)
    return DEFAULT_PROJECT_DIR


def get_pipeline_dir(project_dir: Path) -> Path:
    return Path(project_dir) / PIPELINE_DIR_NAME


@dataclass(frozen=True)
class PipelineFiles:
    """Paths of every artifact the pipeline dictates for one project."""

    pipeline_dir: Path

    @classmethod
    def for_project(cls, project_dir: Path) -> "PipelineFiles":
        return cls(get_pipeline_dir(project_dir))

    def _path(self, name: str) -> Path:
        return self.pipeline_dir / name

    @property
    def state_file(self) -> Path:
        return self._path(".state.json")

    @property
    def progress_file(self) -> Path:
        return self._path("progress.jsonl")

    @property
    def plan_file(self) -> Path:
        return self._path("plan.md")

    @property
    def remaining_issues_file(self) -> Path:
        return self._path("remaining-issues.md")

    def review_file(self, agent_name: str) -> Path:
        return self._path(f"review-{agent_name}.md")

    @property
    def code_review_file(self) -> Path:
        return self._path("code-review.md")

    @property
    def test_results_file(self) -> Path:
        return self._path("test-results.md")

    @property
    def bug_analysis_file(self) -> Path:
        return self._path("bug-analysis.md")

    @property
    def research_file(self) -> Path:
        return self._path("research.md")

    @property
    def research_sources_file(self) -> Path:
        return self._path("research-sources.md")

    def research_analysis_file(self, agent_name: str) -> Path:
        return self._path(f"research-{agent_name}.md")

    def discovery_file(self, agent_name: str) -> Path:
        return self._path(f"discovery-{agent_name}.md")

    @property
    def consensus_file(self) -> Path:
        return self._path("consensus.md")

    def consensus_review_file(self, agent_name: str) -> Path:
        return self._path(f"consensus-review-{agent_name}.md")

    def ensure(self) -> None:
        self.pipeline_dir.mkdir(parents=True, exist_ok=True)
