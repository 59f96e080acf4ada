"""Progress event model."""

from pydantic import BaseModel, ConfigDict


class ProgressEvent(BaseModel):
    """One line of progress.jsonl, appended by an agent after a named sub-task."""

    model_config = ConfigDict(strict=True)

    agent: str
    action: str
    iteration: int

    def matches(self, agent: str, action: str, iteration: int) -> bool:
        return self.agent == agent and self.action == action and self.iteration == iteration
