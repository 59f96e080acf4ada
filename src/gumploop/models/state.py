"""Pipeline state model."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class PipelineState(BaseModel):
    """Durable record of the pipeline's current phase and completion gates.

    Serialized with camelCase keys. ``current_phase``, ``task``, ``iteration``,
    the four planning/coding/testing/debugging flags and ``active_sessions``
    are required; validation is strict so a mistyped field (e.g. a string
    iteration, or a non-list ``activeSessions``) marks the whole file as
    corrupt. Discovery and research fields are optional so older state files
    still load.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        strict=True,
    )

    current_phase: Optional[str]
    task: str
    work_dir: str = ""
    iteration: int
    discovery_complete: bool = False
    selected_feature: Optional[str] = None
    research_complete: bool = False
    planning_complete: bool
    coding_complete: bool
    testing_complete: bool
    debugging_complete: bool
    active_sessions: List[str]
    last_update: str = ""

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)
