# pasiva/models/wheel.py
from typing import Annotated, List, Literal, Union
from pydantic import BaseModel, ConfigDict, Field

class PointsSlice(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["points"] = "points"
    value: int

    @property
    def display_text(self) -> str:
        return str(self.value)

class BankruptSlice(BaseModel):
    """Wipes the spinner's score and passes the turn."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["bankrupt"] = "bankrupt"

    @property
    def display_text(self) -> str:
        return "BANKRUPT"

class ExtraTurnSlice(BaseModel):
    """The spinner keeps the turn and spins again."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["extra_turn"] = "extra_turn"

    @property
    def display_text(self) -> str:
        return "EXTRA TURN"

WheelSlice = Annotated[Union[PointsSlice, BankruptSlice, ExtraTurnSlice], Field(discriminator="kind")]

# Fixed clockwise order: 2x100, 2x200, 2x300, one Bankrupt, one Extra Turn
ALL_SLICES: List[WheelSlice] = [
    PointsSlice(value=100),
    PointsSlice(value=200),
    PointsSlice(value=300),
    BankruptSlice(),
    PointsSlice(value=100),
    PointsSlice(value=200),
    PointsSlice(value=300),
    ExtraTurnSlice(),
]

SLICE_COUNT = len(ALL_SLICES)

def slice_at(index: int) -> WheelSlice:
    return ALL_SLICES[index % SLICE_COUNT]
