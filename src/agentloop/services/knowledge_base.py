"""Knowledge-base chunk search and long-term agent memories.

Search is keyword-ranked: each chunk scores the fraction of query terms
it contains, weighted by term frequency. Documents are split into
paragraph-aligned chunks on ingest.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agentloop.models.knowledge import KbChunk, KbMemory

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1000
_TERM_RE = re.compile(r"[a-z0-9]{2,}")


@dataclass(frozen=True)
class SearchResult:
    document_title: str
    content: str
    score: float


def _terms(text: str) -> list[str]:
    return _TERM_RE.findall(text.lower())


def _score(query_terms: set[str], text: str) -> float:
    words = _terms(text)
    if not words or not query_terms:
        return 0.0
    matched = [t for t in query_terms if t in words]
    if not matched:
        return 0.0
    coverage = len(matched) / len(query_terms)
    frequency = sum(words.count(t) for t in matched) / len(words)
    return coverage + frequency


def chunk_text(text: str, chunk_size: int = CHUNK_SIZE) -> list[str]:
    """Split text into chunks of at most ``chunk_size`` chars on paragraph boundaries."""
    chunks: list[str] = []
    current = ""
    for paragraph in (p.strip() for p in text.split("\n\n")):
        if not paragraph:
            continue
        while len(paragraph) > chunk_size:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(paragraph[:chunk_size])
            paragraph = paragraph[chunk_size:]
        if current and len(current) + len(paragraph) + 2 > chunk_size:
            chunks.append(current)
            current = paragraph
        else:
            current = f"{current}\n\n{paragraph}" if current else paragraph
    if current:
        chunks.append(current)
    return chunks


class KnowledgeBase:
    """Team-scoped document chunks and memories.

    Args:
        db: Async SQLAlchemy session for database operations.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def add_document(self, team_id: str, title: str, text: str) -> int:
        """Chunk and store a document. Returns the number of chunks written."""
        chunks = chunk_text(text)
        for index, content in enumerate(chunks):
            self.db.add(KbChunk(team_id=team_id, document_title=title, chunk_index=index, content=content))
        await self.db.commit()
        logger.info("Indexed '%s' for team '%s' (%d chunks)", title, team_id, len(chunks))
        return len(chunks)

    async def search(self, team_id: str, query: str, top_k: int = 5) -> list[SearchResult]:
        query_terms = set(_terms(query))
        result = await self.db.execute(select(KbChunk).where(KbChunk.team_id == team_id))
        scored = [
            SearchResult(chunk.document_title, chunk.content, _score(query_terms, chunk.content))
            for chunk in result.scalars().all()
        ]
        ranked = sorted((r for r in scored if r.score > 0), key=lambda r: r.score, reverse=True)
        return ranked[:top_k]

    async def add_memory(
        self,
        team_id: str,
        agent_id: str | None,
        content: str,
        channel_id: str | None = None,
    ) -> KbMemory:
        memory = KbMemory(team_id=team_id, agent_id=agent_id, content=content, source_channel_id=channel_id)
        self.db.add(memory)
        await self.db.commit()
        return memory

    async def search_memories(self, team_id: str, query: str, top_k: int = 5) -> list[KbMemory]:
        query_terms = set(_terms(query))
        result = await self.db.execute(select(KbMemory).where(KbMemory.team_id == team_id))
        scored = [(_score(query_terms, m.content), m) for m in result.scalars().all()]
        return [m for score, m in sorted(scored, key=lambda pair: pair[0], reverse=True) if score > 0][:top_k]
