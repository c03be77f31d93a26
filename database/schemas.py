from typing import List
from pydantic import BaseModel, Field

class BinaryAction(BaseModel):
    name: str
    threshold: str = "completed"
    points: int = Field(default=1, ge=1)

class TomorrowPlan(BaseModel):
    eating_window: str = "12pm-8pm"
    first_meal: str = "12pm"
    walk_time: str = "morning"
    strength: bool = False
    danger_moment: str = "evening"

class LossEvent(BaseModel):
    date: str
    reason: str
    amount: int

class Schedule(BaseModel):
    wake: str = "07:00"
    sleep: str = "22:00"
    eating_start: str = "12:00"
    eating_end: str = "20:00"
    danger_times: List[str] = Field(default_factory=lambda: ["21:00"])

def load_actions(raw: list) -> List[BinaryAction]:
    return [BinaryAction.model_validate(a) for a in raw or []]

def dump_actions(actions: List[BinaryAction]) -> list:
    return [a.model_dump() for a in actions]

def total_possible(actions: List[BinaryAction]) -> int:
    return sum(a.points for a in actions)
