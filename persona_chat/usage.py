"""Token usage ledger.

Records are append-only. Aggregates are never stored: every query folds the
full record set again with aggregate_records(), which is a pure function of
its input, so the result does not depend on record order.

Group keys:
  character           - one row per character id
  provider            - one row per provider id
  character_provider  - one row per (character id, provider id)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Literal

from persona_chat.models import TokenStats, TokenUsageRecord
from persona_chat.storage import Storage

logger = logging.getLogger(__name__)

GroupBy = Literal["character", "provider", "character_provider"]


def _group_key(record: TokenUsageRecord, group_by: GroupBy) -> tuple[str, ...]:
    if group_by == "character":
        return (record.character_id,)
    if group_by == "provider":
        return (record.provider,)
    if group_by == "character_provider":
        return (record.character_id, record.provider)
    raise ValueError(f"Unknown group_by '{group_by}'")


def aggregate_records(
    records: Iterable[TokenUsageRecord], group_by: GroupBy = "character_provider"
) -> list[TokenStats]:
    """Sum token counts and request counts per group.

    Sorted by total tokens descending, then by group key.
    """
    groups: dict[tuple[str, ...], TokenStats] = {}
    for record in records:
        key = _group_key(record, group_by)
        stats = groups.get(key)
        if stats is None:
            stats = TokenStats(
                character_id=record.character_id if group_by != "provider" else None,
                provider=record.provider if group_by != "character" else None,
            )
            groups[key] = stats
        if group_by != "provider":
            # name can change between records; keep the lexically smallest so
            # the result is the same for any input order
            name = record.character_name
            if stats.character_name is None or name < stats.character_name:
                stats.character_name = name
        stats.prompt_tokens += record.prompt_tokens
        stats.completion_tokens += record.completion_tokens
        stats.total_tokens += record.total_tokens
        stats.request_count += 1

    ordered = sorted(groups.items(), key=lambda kv: (-kv[1].total_tokens, kv[0]))
    return [stats for _, stats in ordered]


def total_stats(records: Iterable[TokenUsageRecord]) -> TokenStats:
    totals = TokenStats()
    for record in records:
        totals.prompt_tokens += record.prompt_tokens
        totals.completion_tokens += record.completion_tokens
        totals.total_tokens += record.total_tokens
        totals.request_count += 1
    return totals


class UsageLedger:
    """Append-only token usage records backed by Storage."""

    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    def record(
        self,
        character_id: str,
        character_name: str,
        provider: str,
        prompt: int,
        completion: int,
        total: int,
    ) -> TokenUsageRecord:
        record = TokenUsageRecord(
            character_id=character_id,
            character_name=character_name,
            provider=provider,
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=total,
        )
        self._storage.append_token_usage(record)
        logger.debug(
            "usage recorded character=%s provider=%s total=%d",
            character_id, provider, total,
        )
        return record

    def records(self) -> list[TokenUsageRecord]:
        """All records, newest first."""
        return sorted(self._storage.get_token_usage(), key=lambda r: r.timestamp, reverse=True)

    def aggregate(self, group_by: GroupBy = "character_provider") -> list[TokenStats]:
        return aggregate_records(self._storage.get_token_usage(), group_by)

    def totals(self) -> TokenStats:
        return total_stats(self._storage.get_token_usage())

    def stats_for_character(self, character_id: str) -> list[TokenStats]:
        return [s for s in self.aggregate() if s.character_id == character_id]

    def stats_for_provider(self, provider: str) -> list[TokenStats]:
        return [s for s in self.aggregate() if s.provider == provider]

    def clear(self) -> None:
        """Irreversibly delete every usage record."""
        self._storage.clear_token_usage()
        logger.info("token usage ledger cleared")
