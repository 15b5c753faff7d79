"""
Merge Proposal - the single slot holding an ambiguous match that awaits a decision

While the slot is occupied the ingestion queue does not drain.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from models import CandidateItem, Item, MergeProposalResponse
from utils.errors import NoOpenProposalError


class ProposalState(str, Enum):
    IDLE = "idle"
    AWAITING_DECISION = "awaiting_decision"


@dataclass(frozen=True)
class MergeProposal:
    list_id: str
    existing_item: Item
    candidate_item: CandidateItem
    # Id and position of the item an update entry removed, reused if the candidate is kept
    replaced_item_id: Optional[str] = None
    replaced_index: Optional[int] = None

    def to_response(self) -> MergeProposalResponse:
        return MergeProposalResponse(
            list_id=self.list_id,
            existing_item=self.existing_item,
            candidate_item=self.candidate_item,
        )


class MergeProposalSlot:
    """IDLE -> AWAITING_DECISION -> IDLE, with at most one proposal at a time"""

    def __init__(self):
        self._proposal: Optional[MergeProposal] = None

    @property
    def state(self) -> ProposalState:
        if self._proposal is None:
            return ProposalState.IDLE
        return ProposalState.AWAITING_DECISION

    @property
    def current(self) -> Optional[MergeProposal]:
        return self._proposal

    @property
    def is_open(self) -> bool:
        return self._proposal is not None

    def open(self, proposal: MergeProposal) -> None:
        if self._proposal is not None:
            raise RuntimeError("A merge proposal is already awaiting a decision")
        self._proposal = proposal

    def close(self) -> MergeProposal:
        if self._proposal is None:
            raise NoOpenProposalError()
        proposal, self._proposal = self._proposal, None
        return proposal
