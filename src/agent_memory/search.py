"""
Query / Ranking Engine -- BM25 candidates re-ranked by keyword overlap.

    final_score = bm25(summary * summary_weight, keywords * keyword_weight)
                  - keyword_boost * matched_keywords

Lower scores are better throughout (FTS5 BM25 convention). Stage 1 fetches
twice the requested number of candidates so the keyword boost has room to
reorder them before truncation.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from agent_memory.entities import normalize_keywords
from agent_memory.lexical_index import LexicalIndex
from agent_memory.sqlite_store import SQLiteStore

logger = logging.getLogger("agent_memory.search")

DEFAULT_LIMIT = 10
DEFAULT_SUMMARY_WEIGHT = 0.8
DEFAULT_KEYWORD_WEIGHT = 2.0
DEFAULT_KEYWORD_BOOST = 1.0
CANDIDATE_FACTOR = 2

_BRACKETS_RE = re.compile(r"[(){}\[\]]")
_WHITESPACE_RE = re.compile(r"\s+")
_WORD_RE = re.compile(r"\w")


def sanitize_query(raw: str) -> str:
    """Double embedded quotes, drop bracket characters, collapse whitespace."""
    text = (raw or "").replace('"', '""')
    text = _BRACKETS_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def build_match_expression(sanitized: str) -> str:
    """Turn a sanitized query into an FTS5 MATCH expression.

    Each token with at least one word character becomes a quoted FTS5 string,
    so operators (AND, NEAR, ``*``, ``:``, ``-``...) are matched as plain text
    and no input can produce a syntax error. Tokens are ANDed. Returns "" when
    nothing searchable is left.
    """
    terms = [f'"{tok}"' for tok in sanitized.split(" ") if _WORD_RE.search(tok)]
    return " ".join(terms)


class SearchHit:
    """One ranked search result."""

    __slots__ = (
        "id",
        "content_path",
        "summary",
        "created_at",
        "bm25_score",
        "matched_keywords",
        "final_score",
    )

    def __init__(
        self,
        id: int,
        content_path: str,
        summary: str,
        created_at: str,
        bm25_score: float,
        matched_keywords: int,
        final_score: float,
    ):
        self.id = id
        self.content_path = content_path
        self.summary = summary
        self.created_at = created_at
        self.bm25_score = bm25_score
        self.matched_keywords = matched_keywords
        self.final_score = final_score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content_path": self.content_path,
            "summary": self.summary,
            "created_at": self.created_at,
            "bm25_score": self.bm25_score,
            "matched_keywords": self.matched_keywords,
            "final_score": self.final_score,
        }

    def __repr__(self) -> str:
        return f"SearchHit(id={self.id}, final_score={self.final_score:.4f})"


class SearchResults:
    """Ranked hits plus the size of the candidate pool they were drawn from."""

    __slots__ = ("hits", "total_candidates", "sanitized_query")

    def __init__(self, hits: List[SearchHit], total_candidates: int, sanitized_query: str):
        self.hits = hits
        self.total_candidates = total_candidates
        self.sanitized_query = sanitized_query

    def __len__(self) -> int:
        return len(self.hits)

    def __iter__(self):
        return iter(self.hits)


class SearchEngine:
    """Blends lexical relevance with caller-supplied boost keywords."""

    def __init__(self, store: SQLiteStore, index: Optional[LexicalIndex] = None):
        self._store = store
        self._index = index or LexicalIndex(store)

    def search(
        self,
        query: str,
        boost_keywords: Optional[Iterable[str]] = None,
        limit: int = DEFAULT_LIMIT,
        summary_weight: float = DEFAULT_SUMMARY_WEIGHT,
        keyword_weight: float = DEFAULT_KEYWORD_WEIGHT,
        keyword_boost: float = DEFAULT_KEYWORD_BOOST,
    ) -> SearchResults:
        sanitized = sanitize_query(query)
        match_expr = build_match_expression(sanitized)
        if not match_expr or limit <= 0:
            return SearchResults([], 0, sanitized)

        rows = self._index.candidates(match_expr, summary_weight, keyword_weight, limit * CANDIDATE_FACTOR)
        boosts = normalize_keywords(boost_keywords, max_keywords=None)
        matched = self._count_matches([r[0] for r in rows], boosts)

        hits = []
        for memory_id, content_path, summary, created_at, bm25_score in rows:
            n = matched.get(memory_id, 0)
            hits.append(
                SearchHit(
                    id=memory_id,
                    content_path=content_path,
                    summary=summary,
                    created_at=created_at,
                    bm25_score=bm25_score,
                    matched_keywords=n,
                    final_score=bm25_score - keyword_boost * n,
                )
            )
        hits.sort(key=lambda h: (h.final_score, h.bm25_score, -h.id))
        logger.debug("search %r: %d candidates, returning %d", sanitized, len(hits), min(limit, len(hits)))
        return SearchResults(hits[:limit], len(hits), sanitized)

    def _count_matches(self, memory_ids: List[int], boosts: List[str]) -> Dict[int, int]:
        """Distinct boost keywords present on each candidate."""
        if not memory_ids or not boosts:
            return {}
        id_marks = ",".join("?" * len(memory_ids))
        kw_marks = ",".join("?" * len(boosts))
        rows = self._store.fetchall(
            f"""SELECT memory_id, COUNT(DISTINCT keyword)
                FROM keywords
                WHERE memory_id IN ({id_marks}) AND keyword IN ({kw_marks})
                GROUP BY memory_id""",
            list(memory_ids) + list(boosts),
        )
        return {memory_id: n for memory_id, n in rows}
