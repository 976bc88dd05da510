"""Referral loop check output schema."""

from typing import List

from pydantic import BaseModel, Field


class LoopCheckResult(BaseModel):
    """Whether the candidate referrer -> referred edge closes a cycle.

    loop_chain runs from the referred account up the referrer chain to the
    referrer; each consecutive pair is a child -> parent edge.
    """

    is_loop: bool
    loop_chain: List[str] = Field(default_factory=list)
    loop_length: int = Field(default=0, ge=0, description="len(loop_chain) when is_loop")

    @classmethod
    def no_loop(cls) -> "LoopCheckResult":
        return cls(is_loop=False)

    @classmethod
    def found(cls, chain: List[str]) -> "LoopCheckResult":
        return cls(is_loop=True, loop_chain=list(chain), loop_length=len(chain))
