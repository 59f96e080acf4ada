"""Shared machinery for phase executors.

A :class:`PipelineContext` is created per phase invocation. It owns the
loaded :class:`PipelineState`, the project's artifact paths, the target
workspace for new windows and every agent session the phase starts.
:func:`phase_sessions` guarantees those sessions are stopped on every exit
path.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional

from gumploop.clients.i3 import find_empty_workspace
from gumploop.constants import (
    APPROVED_MARKER,
    REVISION_MARKER,
    TESTS_FAIL_MARKER,
    TESTS_PASS_MARKER,
)
from gumploop.models.provider import AgentRole
from gumploop.models.state import PipelineState
from gumploop.providers.base import BaseProvider
from gumploop.providers.manager import create_provider_for_role
from gumploop.services.progress_service import clear_progress_log
from gumploop.services.state_service import load_state, save_state
from gumploop.utils.workdir import PipelineFiles

logger = logging.getLogger(__name__)

# (role, working_directory, target_workspace=...) -> provider
ProviderFactory = Callable[..., BaseProvider]


@dataclass
class PhaseResult:
    success: bool
    report: str


def is_approved(text: str, marker: str = APPROVED_MARKER) -> bool:
    """A document is approved iff it has ``marker`` and no revision request."""
    return marker in text and REVISION_MARKER not in text


def has_consensus(*reviews: str) -> bool:
    """Every reviewer approved their own review."""
    return bool(reviews) and all(is_approved(review) for review in reviews)


def tests_passed(text: str) -> bool:
    return TESTS_PASS_MARKER in text and TESTS_FAIL_MARKER not in text


def read_artifact(path: Path) -> str:
    """Read an agent-written artifact; missing or unreadable reads as empty."""
    try:
        return Path(path).read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return ""
    except OSError as e:
        logger.warning(f"Could not read artifact {path}: {e}")
        return ""


def remove_artifacts(*paths: Path) -> None:
    for path in paths:
        Path(path).unlink(missing_ok=True)


def approval_label(approved: bool, marker: str = APPROVED_MARKER) -> str:
    return f"✓ {marker}" if approved else f"✗ {REVISION_MARKER}"


async def run_parallel(*steps: Awaitable[Any]) -> List[Any]:
    """Await ``steps`` concurrently and return their results in order.

    If any step fails (or the caller is cancelled) the remaining steps are
    cancelled and awaited before the error propagates, so no wait outlives
    the phase that started it.
    """
    tasks = [asyncio.ensure_future(step) for step in steps]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class PipelineContext:
    """Everything one phase invocation needs, threaded through its steps."""

    def __init__(
        self,
        state: PipelineState,
        project_dir: Path,
        provider_factory: Optional[ProviderFactory] = None,
        target_workspace: Optional[int] = None,
    ):
        self.state = state
        self.project_dir = Path(project_dir)
        self.files = PipelineFiles.for_project(self.project_dir)
        self.provider_factory = provider_factory or create_provider_for_role
        self.target_workspace = target_workspace
        self.sessions: List[BaseProvider] = []
        self.lines: List[str] = []

    @classmethod
    def open(
        cls,
        project_dir: Path,
        phase: str,
        provider_factory: Optional[ProviderFactory] = None,
        state: Optional[PipelineState] = None,
    ) -> "PipelineContext":
        """Load state for ``project_dir`` and mark ``phase`` as current.

        Purges the progress log of the previous run and records the phase
        before any agent is started.
        """
        if state is None:
            state = load_state(project_dir)
        ctx = cls(state, project_dir, provider_factory)
        ctx.files.ensure()
        clear_progress_log(ctx.files.progress_file)

        state.current_phase = phase
        state.work_dir = str(ctx.project_dir)
        state.iteration = 0
        state.active_sessions = []
        ctx.save()
        ctx.log(f"**Working Directory:** {ctx.project_dir}\n")
        return ctx

    def log(self, line: str) -> None:
        self.lines.append(line)

    def report(self) -> str:
        return "\n".join(self.lines)

    def save(self) -> None:
        save_state(self.state)

    def place_windows(self) -> None:
        """Pick an empty workspace for the agent windows of this phase."""
        self.target_workspace = find_empty_workspace()
        if self.target_workspace is not None:
            self.log(f"Starting agents on workspace {self.target_workspace}...")

    def create(self, role: AgentRole) -> BaseProvider:
        provider = self.provider_factory(
            role, self.project_dir, target_workspace=self.target_workspace
        )
        self.sessions.append(provider)
        return provider

    def _sync_active_sessions(self) -> None:
        self.state.active_sessions = [provider.session_name for provider in self.sessions]
        self.save()

    async def start(self, *providers: BaseProvider) -> None:
        """Start providers in parallel and record them as active."""
        await run_parallel(*(provider.start() for provider in providers))
        self._sync_active_sessions()

    async def stop(self, provider: BaseProvider) -> None:
        """Stop one provider before the phase ends."""
        await self._stop_quietly(provider)
        if provider in self.sessions:
            self.sessions.remove(provider)
        self._sync_active_sessions()

    async def _stop_quietly(self, provider: BaseProvider) -> None:
        try:
            await provider.stop()
        except Exception as e:
            logger.warning(f"Failed to stop {provider!r}: {e}")

    async def stop_all(self) -> None:
        """Stop every session this phase created. Safe to call repeatedly."""
        sessions, self.sessions = self.sessions, []
        for provider in sessions:
            await self._stop_quietly(provider)
        self.state.active_sessions = []


@asynccontextmanager
async def phase_sessions(ctx: PipelineContext) -> AsyncIterator[PipelineContext]:
    """Run a phase body, tearing its sessions down however it exits.

    On an exception the pipeline is also marked idle (no current phase) and
    the state saved before the exception propagates.
    """
    try:
        yield ctx
    except Exception:
        logger.exception(f"Phase {ctx.state.current_phase} failed")
        await ctx.stop_all()
        ctx.state.current_phase = None
        ctx.save()
        raise
    finally:
        await ctx.stop_all()
