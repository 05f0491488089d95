import math
from dataclasses import dataclass
from typing import List, Optional, Dict

from loguru import logger

from graph.state import Stage

# (id, label, description) for the seven funnel steps
FUNNEL_STAGES = [
    ("GREETING", "Discovery & Setup", "Initial Contact"),
    ("NAME_COLLECTION", "Identity Collection", "Identity Collection"),
    ("EMAIL_CAPTURE", "Consent & Context", "Consent & Research"),
    ("BACKGROUND_RESEARCH", "Research & Analysis", "Background Analysis"),
    ("PROBLEM_DISCOVERY", "Requirements Discovery", "Requirements Discovery"),
    ("SOLUTION_PRESENTATION", "Solution Presentation", "Solution Presentation"),
    ("CALL_TO_ACTION", "Next Steps & Action", "Next Steps & Action"),
]

STAGE_ID_SEQUENCE = [stage_id for stage_id, _, _ in FUNNEL_STAGES]
STAGE_DESCRIPTIONS = {i + 1: description for i, (_, _, description) in enumerate(FUNNEL_STAGES)}
DEFAULT_CAPABILITY_TOTAL = 16

# Where each conversation stage sits in the funnel
CONVERSATION_TO_FUNNEL: Dict[Stage, str] = {
    Stage.GREETING: "GREETING",
    Stage.EMAIL_REQUEST: "EMAIL_CAPTURE",
    Stage.EMAIL_COLLECTED: "BACKGROUND_RESEARCH",
    Stage.DISCOVERY: "PROBLEM_DISCOVERY",
    Stage.SOLUTION_POSITIONING: "SOLUTION_PRESENTATION",
    Stage.SUMMARY_OFFER: "CALL_TO_ACTION",
    Stage.BOOKING_OFFER: "CALL_TO_ACTION",
}

@dataclass
class StageItem:
    id: str
    label: str
    done: bool = False
    current: bool = False

@dataclass
class Exploration:
    explored_count: int = 0
    total: int = DEFAULT_CAPABILITY_TOTAL

def stage_id_for_index(index: int) -> str:
    if 0 <= index < len(STAGE_ID_SEQUENCE):
        return STAGE_ID_SEQUENCE[index]
    return STAGE_ID_SEQUENCE[0]

def stage_id_for_number(stage_number: int) -> str:
    return stage_id_for_index(max(0, min(len(STAGE_ID_SEQUENCE) - 1, stage_number - 1)))

def stage_number_for_id(stage_id: str) -> int:
    return STAGE_ID_SEQUENCE.index(stage_id) + 1 if stage_id in STAGE_ID_SEQUENCE else 1

def funnel_stage_for(stage: str) -> str:
    return CONVERSATION_TO_FUNNEL[Stage(stage)]

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))

def _initial_stages() -> List[StageItem]:
    return [StageItem(id=stage_id, label=label, current=(i == 0)) for i, (stage_id, label, _) in enumerate(FUNNEL_STAGES)]

class StageTracker:
    """Funnel progress shown next to the chat."""

    def __init__(self):
        self.stages: List[StageItem] = _initial_stages()
        self.exploration = Exploration()

    @property
    def current_stage_index(self) -> int:
        for i, stage in enumerate(self.stages):
            if stage.current:
                return i
        return -1

    @property
    def current_stage(self) -> Optional[StageItem]:
        index = self.current_stage_index
        return self.stages[index] if index >= 0 else None

    def next_stage(self) -> None:
        i = self.current_stage_index
        if 0 <= i < len(self.stages) - 1:
            self.stages[i].done = True
            self.stages[i].current = False
            self.stages[i + 1].current = True

    def previous_stage(self) -> None:
        i = self.current_stage_index
        if i > 0:
            self.stages[i].current = False
            self.stages[i - 1].current = True
            self.stages[i - 1].done = False

    def go_to_stage(self, stage_id: str) -> None:
        for stage in self.stages:
            stage.current = stage.id == stage_id
            if stage.current:
                stage.done = False

    def complete_stage(self, stage_id: str) -> None:
        for stage in self.stages:
            if stage.id == stage_id:
                stage.done = True
                stage.current = False

    def reset(self) -> None:
        self.stages = _initial_stages()
        self.exploration = Exploration()

    def is_stage_completed(self, stage_id: str) -> bool:
        return any(stage.done for stage in self.stages if stage.id == stage_id)

    def get_progress_percentage(self) -> int:
        completed = sum(1 for stage in self.stages if stage.done)
        return _round_half_up(completed / len(self.stages) * 100)

    def trigger(self, stage_id: str, action: str) -> None:
        """Apply a stage progression event ("complete", "next" or "goto")."""
        if action == "complete":
            self.complete_stage(stage_id)
        elif action == "next":
            self.next_stage()
        elif action == "goto":
            self.go_to_stage(stage_id)
        else:
            logger.warning(f"Ignoring unknown stage action: {action}")

    def sync_from_intelligence(
        self,
        stage_id: Optional[str] = None,
        explored_count: Optional[int] = None,
        total: Optional[int] = None,
        completed_stage_ids: Optional[List[str]] = None,
    ) -> None:
        """Align the tracker with progress reported by the intelligence layer."""
        if explored_count is not None or total is not None:
            self.exploration = Exploration(
                explored_count=explored_count if explored_count is not None else self.exploration.explored_count,
                total=total if total is not None else (self.exploration.total or DEFAULT_CAPABILITY_TOTAL),
            )

        for completed in completed_stage_ids or []:
            for stage in self.stages:
                if stage.id == completed:
                    stage.done = True
                    stage.current = False

        if stage_id and stage_id in STAGE_ID_SEQUENCE:
            target = STAGE_ID_SEQUENCE.index(stage_id)
            for i, stage in enumerate(self.stages):
                if i < target:
                    stage.done, stage.current = True, False
                elif i == target:
                    stage.done, stage.current = False, True
                else:
                    stage.current = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "stages": [vars(stage).copy() for stage in self.stages],
            "current_stage_index": self.current_stage_index,
            "exploration": vars(self.exploration).copy(),
            "progress": progress_percentage(self),
        }

def progress_percentage(tracker: Optional[StageTracker] = None, exploration: Optional[Exploration] = None) -> int:
    """Displayed progress: funnel completion, falling back to the exploration ratio."""
    if tracker is not None:
        stage_percent = tracker.get_progress_percentage()
        if stage_percent > 0:
            return stage_percent
        exploration = exploration or tracker.exploration
    if exploration is not None and exploration.total > 0:
        return _round_half_up(exploration.explored_count / exploration.total * 100)
    return 0
