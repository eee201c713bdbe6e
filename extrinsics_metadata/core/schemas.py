from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =========================
# METADATA SOURCE (input side)
# =========================
class ArgumentDescriptor(BaseModel):
    # None when the runtime declares a positional (unnamed) argument
    name: Optional[str] = None
    type_handle: int

    model_config = ConfigDict(frozen=True)


class FunctionDescriptor(BaseModel):
    name: str
    docs: List[str] = []
    real_index: int = Field(ge=0)
    args: List[ArgumentDescriptor] = []

    model_config = ConfigDict(frozen=True)


class ModuleDescriptor(BaseModel):
    """
    One pallet as reported by the runtime.

    `functions` is None when the pallet has no call list at all, which is
    different from a call enum with zero variants (an empty list).
    """

    name: str
    docs: List[str] = []
    index: Optional[int] = None
    functions: Optional[List[FunctionDescriptor]] = None

    model_config = ConfigDict(frozen=True)


# =========================
# RECORDS (output side)
# Field names match the column names in models.py
# =========================
class ModuleRecord(BaseModel):
    id: int
    name: str
    description: str

    model_config = ConfigDict(frozen=True)


class FunctionRecord(BaseModel):
    id: int
    module_id: int
    call_index: int
    name: str
    description: str

    model_config = ConfigDict(frozen=True)


class ParameterRecord(BaseModel):
    id: int
    function_id: int
    name: str
    type: str

    model_config = ConfigDict(frozen=True)


class NormalizedMetadata(BaseModel):
    """The three record sets produced by one traversal, in traversal order."""

    modules: List[ModuleRecord] = []
    functions: List[FunctionRecord] = []
    parameters: List[ParameterRecord] = []

    model_config = ConfigDict(frozen=True)
