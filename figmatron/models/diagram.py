"""Structured diagram description returned by the model on the structured route."""
from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

NodeKind = Literal["block", "decision", "terminator", "io", "gate", "text"]
Side = Literal["top", "right", "bottom", "left"]

DIAGRAM_KIND = "diagram"


class Canvas(BaseModel):
    width: float
    height: float
    padding: Optional[float] = None

    model_config = {
        "allow_inf_nan": False,
    }


class DiagramNode(BaseModel):
    id: str
    kind: NodeKind = "block"
    label: str = ""
    x: float
    y: float
    width: float
    height: float

    model_config = {
        "allow_inf_nan": False,
    }


class DiagramEdge(BaseModel):
    id: str = ""
    from_: str = Field(..., alias="from")
    to: str
    from_side: Optional[Side] = Field(default=None, alias="fromSide")
    to_side: Optional[Side] = Field(default=None, alias="toSide")
    label: Optional[str] = None

    model_config = {
        "populate_by_name": True,
    }


class DiagramStyles(BaseModel):
    stroke: Optional[str] = None
    stroke_width: Optional[float] = Field(default=None, alias="strokeWidth")
    fill: Optional[str] = None
    text_color: Optional[str] = Field(default=None, alias="textColor")
    font_size: Optional[float] = Field(default=None, alias="fontSize")

    model_config = {
        "populate_by_name": True,
        "allow_inf_nan": False,
    }


class DiagramIR(BaseModel):
    kind: Literal["diagram"] = DIAGRAM_KIND
    canvas: Canvas
    nodes: List[DiagramNode]
    edges: List[DiagramEdge] = []
    styles: Optional[DiagramStyles] = None

    model_config = {
        "populate_by_name": True,
    }
