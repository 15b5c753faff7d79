"""
Ingestion Router - pipeline status and merge proposal decisions
"""
from fastapi import APIRouter, Depends

from models import IngestionStatusResponse, MergeProposalResponse, ResolveProposalRequest
from dependencies import get_engine
from utils.errors import IngestionError, InvalidInputError, NotFoundError, to_api_error

router = APIRouter(prefix="/ingestion", tags=["Ingestion"])


@router.get("/status", response_model=IngestionStatusResponse)
async def get_ingestion_status(engine=Depends(get_engine)):
    """Whether work is waiting, and the open merge proposal if any."""
    return IngestionStatusResponse(**engine.status())


@router.get("/proposal", response_model=MergeProposalResponse)
async def get_merge_proposal(engine=Depends(get_engine)):
    proposal = engine.proposal
    if proposal is None:
        raise NotFoundError("Merge proposal")
    return proposal.to_response()


@router.post("/proposal/resolve")
async def resolve_merge_proposal(data: ResolveProposalRequest, engine=Depends(get_engine)):
    """Accept or decline the open proposal; draining resumes afterwards."""
    if data.accept and data.keep_separate:
        raise InvalidInputError("keep_separate only applies when declining a merge",
                                details={"accept": True, "keep_separate": True})
    try:
        outcome = await engine.resolve_proposal(data.accept, keep_separate=data.keep_separate)
    except IngestionError as e:
        raise to_api_error(e)
    return {"outcome": outcome.value}
