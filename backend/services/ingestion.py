"""
Ingestion Engine - the single pipeline through which items enter shopping lists

Callers enqueue add/update requests. One drain task processes the queue head
at a time:

    normalize (unless skipped) -> re-read the list -> classify -> commit | merge | propose

A proposal parks the head entry and stops draining until `resolve_proposal`
is called. Later entries wait behind it, for every list, and are then
processed in enqueue order. Errors drop the entry they belong to and
draining continues.
"""
import asyncio
import uuid
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Deque, Iterable, List, Optional

from config import settings
from database.websocket_manager import EventType
from models import CandidateItem, Item, ItemDraft
from services.matching import MatchKind, classify, merge_items
from services.merge_proposal import MergeProposal, MergeProposalSlot, ProposalState
from services.normalization import fallback_record
from utils.debug import DebugContext, Loggers, log_ingestion_event
from utils.errors import ListNotFoundError, NormalizationError, NoOpenProposalError, PersistenceWriteError

Notifier = Callable[[EventType, str, dict], Awaitable[None]]


@dataclass(frozen=True)
class PendingQueueEntry:
    draft: ItemDraft
    list_id: str
    skip_normalization: bool = False
    # Set for update requests: the item removed before the draft is matched
    replaces_item_id: Optional[str] = None


class StepOutcome(str, Enum):
    COMMITTED = "committed"
    MERGED = "merged"
    PROPOSED = "proposed"
    DROPPED = "dropped"


class IngestionEngine:
    """
    Owns the ingestion queue and the merge proposal slot.

    All methods must be called from the event loop that runs the engine.
    """

    def __init__(self, store, normalizer, notifier: Optional[Notifier] = None,
                 id_factory: Callable[[], str] = None):
        self._store = store
        self._normalizer = normalizer
        self._notifier = notifier
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))
        self._queue: Deque[PendingQueueEntry] = deque()
        self._proposals = MergeProposalSlot()
        # Held for the whole of a drain step or a proposal resolution
        self._step_lock = asyncio.Lock()
        self._drain_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Caller-facing API
    # ------------------------------------------------------------------

    def enqueue_add(self, list_id: str, draft: ItemDraft, skip_normalization: bool = False) -> None:
        """Queue an item for a list. The outcome is observable through list reads and events."""
        self._enqueue(PendingQueueEntry(draft=draft, list_id=list_id,
                                        skip_normalization=skip_normalization))

    def enqueue_many(self, list_id: str, drafts: Iterable[ItemDraft], skip_normalization: bool = False) -> None:
        for draft in drafts:
            self.enqueue_add(list_id, draft, skip_normalization)

    def enqueue_update(self, list_id: str, existing_item_id: str, draft: ItemDraft) -> None:
        """Replace an item: it is removed, then the draft is ingested like a new add."""
        self._enqueue(PendingQueueEntry(draft=draft, list_id=list_id,
                                        replaces_item_id=existing_item_id))

    async def resolve_proposal(self, accept: bool, keep_separate: bool = False) -> StepOutcome:
        """
        Decide the open merge proposal and resume draining.

        accept=True merges the candidate into the existing item. Otherwise the
        candidate is committed as a new item if keep_separate is set, or
        discarded. Raises NoOpenProposalError when nothing is awaiting a decision.
        """
        async with self._step_lock:
            proposal = self._proposals.current
            if proposal is None:
                raise NoOpenProposalError()
            entry = self._queue[0]

            try:
                if accept:
                    outcome = await self._confirm_merge(proposal)
                elif keep_separate:
                    outcome = await self._commit_separately(proposal)
                else:
                    outcome = StepOutcome.DROPPED
                    log_ingestion_event("DISCARDED", list_id=proposal.list_id,
                                        item_name=proposal.candidate_item.name)
            except Exception as e:
                outcome = StepOutcome.DROPPED
                await self._drop(entry, e)

            self._queue.popleft()
            self._proposals.close()
            log_ingestion_event("PROPOSAL_RESOLVED", list_id=proposal.list_id,
                                item_name=proposal.candidate_item.name,
                                accept=accept, keep_separate=keep_separate)
            await self._notify(EventType.MERGE_PROPOSAL_RESOLVED, proposal.list_id, {
                "accept": accept,
                "keep_separate": keep_separate,
                "outcome": outcome.value,
            })

        self._schedule_drain()
        return outcome

    @property
    def proposal(self) -> Optional[MergeProposal]:
        return self._proposals.current

    @property
    def proposal_state(self) -> ProposalState:
        return self._proposals.state

    @property
    def has_pending(self) -> bool:
        return bool(self._queue)

    def status(self) -> dict:
        proposal = self._proposals.current
        return {
            "busy": bool(self._queue) or self._step_lock.locked(),
            "pending": bool(self._queue),
            "proposal": proposal.to_response() if proposal else None,
        }

    async def join(self) -> None:
        """Wait until the queue is empty or paused on a proposal."""
        while self._drain_task is not None and not self._drain_task.done():
            await self._drain_task

    async def shutdown(self) -> None:
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        if self._queue:
            Loggers.ingestion.warning("Engine stopped with pending entries", pending=len(self._queue))

    # ------------------------------------------------------------------
    # Draining
    # ------------------------------------------------------------------

    def _enqueue(self, entry: PendingQueueEntry) -> None:
        self._queue.append(entry)
        log_ingestion_event("ENQUEUED", list_id=entry.list_id, item_name=entry.draft.name,
                            update=entry.replaces_item_id is not None)
        self._schedule_drain()

    def _can_drain(self) -> bool:
        return bool(self._queue) and not self._proposals.is_open

    def _schedule_drain(self) -> None:
        if self._drain_task is not None and not self._drain_task.done():
            return
        if not self._can_drain():
            return
        self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while self._can_drain():
            await self.drain_once()

    async def drain_once(self) -> Optional[StepOutcome]:
        """Process the queue head. Returns None when the queue is empty or paused."""
        async with self._step_lock:
            if not self._can_drain():
                return None

            entry = self._queue[0]
            try:
                async with DebugContext("drain_step", Loggers.ingestion,
                                        list_id=entry.list_id, item=entry.draft.name):
                    outcome = await self._process(entry)
            except Exception as e:
                outcome = StepOutcome.DROPPED
                await self._drop(entry, e)

            # A proposed entry stays at the head until its proposal is resolved
            if outcome is not StepOutcome.PROPOSED:
                self._queue.popleft()
            return outcome

    async def _process(self, entry: PendingQueueEntry) -> StepOutcome:
        candidate = await self._resolve_candidate(entry)

        shopping_list = await self._store.read(entry.list_id)
        items = list(shopping_list.items)

        replaced_index = None
        if entry.replaces_item_id is not None:
            replaced_index = next((i for i, item in enumerate(items)
                                   if item.id == entry.replaces_item_id), None)
            if replaced_index is not None:
                del items[replaced_index]

        match = classify(candidate, items)

        if match.kind is MatchKind.PERFECT:
            merged = merge_items(match.existing, candidate)
            items = [merged if item.id == merged.id else item for item in items]
            await self._write(entry.list_id, items)
            log_ingestion_event("MERGED", list_id=entry.list_id, item_name=candidate.name,
                                item_id=merged.id, qty=merged.qty)
            return StepOutcome.MERGED

        if match.kind is MatchKind.AMBIGUOUS:
            if replaced_index is not None:
                # The edited item leaves the list now, whatever the decision
                await self._write(entry.list_id, items)
            proposal = MergeProposal(
                list_id=entry.list_id,
                existing_item=match.existing,
                candidate_item=candidate,
                replaced_item_id=entry.replaces_item_id if replaced_index is not None else None,
                replaced_index=replaced_index,
            )
            self._proposals.open(proposal)
            log_ingestion_event("PROPOSAL_OPENED", list_id=entry.list_id, item_name=candidate.name,
                                existing_id=match.existing.id)
            await self._notify(EventType.MERGE_PROPOSAL_OPENED, entry.list_id,
                               proposal.to_response().model_dump())
            return StepOutcome.PROPOSED

        item_id = entry.replaces_item_id if replaced_index is not None else self._new_id()
        new_item = Item(id=item_id, checked=False, **candidate.model_dump())
        if replaced_index is not None:
            items.insert(replaced_index, new_item)
        else:
            items.append(new_item)
        await self._write(entry.list_id, items)
        log_ingestion_event("COMMITTED", list_id=entry.list_id, item_name=candidate.name,
                            item_id=new_item.id)
        return StepOutcome.COMMITTED

    async def _resolve_candidate(self, entry: PendingQueueEntry) -> CandidateItem:
        draft = entry.draft
        details = {
            "notes": (draft.notes or "").strip(),
            "store": (draft.store or "").strip(),
            "urgent": draft.urgent,
            "gf": draft.gf,
        }

        if entry.skip_normalization:
            return CandidateItem(
                name=draft.name,
                canonical_name=(draft.canonical_name or "").strip() or draft.name,
                category=draft.category or settings.default_category,
                icon=draft.icon or settings.default_icon,
                qty=draft.qty,
                unit=(draft.unit or "").strip(),
                **details,
            )

        try:
            normalized = await self._normalizer.normalize(draft.name, draft.qty, draft.unit or None)
        except NormalizationError as e:
            log_ingestion_event("NORMALIZATION_FALLBACK", list_id=entry.list_id,
                                item_name=draft.name, reason=str(e))
            normalized = fallback_record(draft.name, draft.qty, draft.unit)

        return CandidateItem(
            name=normalized.name,
            canonical_name=normalized.canonical_name,
            category=normalized.category,
            icon=normalized.icon,
            qty=normalized.qty,
            unit=(normalized.unit or "").strip(),
            **details,
        )

    # ------------------------------------------------------------------
    # Proposal resolution
    # ------------------------------------------------------------------

    async def _confirm_merge(self, proposal: MergeProposal) -> StepOutcome:
        shopping_list = await self._store.read(proposal.list_id)
        items = list(shopping_list.items)

        target = next((item for item in items
                       if item.id == proposal.existing_item.id and not item.checked), None)
        if target is None:
            # The merge target was removed or checked off meanwhile
            Loggers.ingestion.info("Merge target gone, committing candidate as new",
                                   list_id=proposal.list_id, item_id=proposal.existing_item.id)
            return await self._append_candidate(proposal, items)

        merged = merge_items(target, proposal.candidate_item)
        items = [merged if item.id == merged.id else item for item in items]
        await self._write(proposal.list_id, items)
        log_ingestion_event("MERGED", list_id=proposal.list_id,
                            item_name=proposal.candidate_item.name, item_id=merged.id, qty=merged.qty)
        return StepOutcome.MERGED

    async def _commit_separately(self, proposal: MergeProposal) -> StepOutcome:
        shopping_list = await self._store.read(proposal.list_id)
        return await self._append_candidate(proposal, list(shopping_list.items))

    async def _append_candidate(self, proposal: MergeProposal, items: List[Item]) -> StepOutcome:
        item_id = proposal.replaced_item_id
        if item_id is None or any(item.id == item_id for item in items):
            item_id = self._new_id()
        new_item = Item(id=item_id, checked=False, **proposal.candidate_item.model_dump())
        if proposal.replaced_index is not None:
            items.insert(min(proposal.replaced_index, len(items)), new_item)
        else:
            items.append(new_item)
        await self._write(proposal.list_id, items)
        log_ingestion_event("COMMITTED", list_id=proposal.list_id,
                            item_name=new_item.name, item_id=new_item.id)
        return StepOutcome.COMMITTED

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _write(self, list_id: str, items: List[Item]) -> None:
        await self._store.write(list_id, items)
        await self._notify(EventType.SHOPPING_LIST_UPDATED, list_id, {
            "id": list_id,
            "items": [item.model_dump() for item in items],
        })

    async def _drop(self, entry: PendingQueueEntry, error: Exception) -> None:
        if isinstance(error, ListNotFoundError):
            reason = "list_not_found"
        elif isinstance(error, PersistenceWriteError):
            reason = "persistence_write_failed"
        else:
            reason = "unexpected_error"
            Loggers.ingestion.error(f"Unexpected error while ingesting: {error}", exc_info=True,
                                    list_id=entry.list_id, item=entry.draft.name)

        log_ingestion_event("DROPPED", list_id=entry.list_id, item_name=entry.draft.name, reason=reason)
        await self._notify(EventType.ENTRY_DROPPED, entry.list_id, {
            "reason": reason,
            "item_name": entry.draft.name,
            "message": str(error),
        })

    async def _notify(self, event: EventType, list_id: str, payload: dict) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier(event, list_id, payload)
        except Exception as e:
            Loggers.ingestion.warning("Notifier failed", event=event.value, list_id=list_id, error=str(e))
