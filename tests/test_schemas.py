"""Tests for tool input validation."""
import pytest

from agent_memory.errors import InvalidInput
from agent_memory.schemas import (
    CheckIndexInput,
    InsertMemoryInput,
    ListMemoriesInput,
    MemoryIdInput,
    ReadFileInput,
    SearchMemoriesInput,
    UpdateMemoryInput,
    parse_arguments,
)


class TestInsert:
    def test_defaults(self):
        args = parse_arguments(InsertMemoryInput, {"content": "c", "summary": "s"})
        assert args.keywords == []

    def test_too_many_keywords(self):
        with pytest.raises(InvalidInput, match="keywords"):
            parse_arguments(InsertMemoryInput, {"content": "c", "summary": "s", "keywords": [str(i) for i in range(11)]})

    def test_summary_length(self):
        with pytest.raises(InvalidInput, match="summary"):
            parse_arguments(InsertMemoryInput, {"content": "c", "summary": "x" * 1001})

    def test_missing_fields_listed(self):
        with pytest.raises(InvalidInput) as exc:
            parse_arguments(InsertMemoryInput, None)
        assert "content" in exc.value.message
        assert "summary" in exc.value.message


class TestUpdate:
    def test_needs_a_change(self):
        with pytest.raises(InvalidInput, match="At least one"):
            parse_arguments(UpdateMemoryInput, {"id": 1})

    def test_empty_keyword_list_is_a_change(self):
        args = parse_arguments(UpdateMemoryInput, {"id": 1, "keywords": []})
        assert args.keywords == []

    def test_id_must_be_positive(self):
        with pytest.raises(InvalidInput, match="id"):
            parse_arguments(UpdateMemoryInput, {"id": 0, "summary": "s"})


class TestSearch:
    def test_defaults(self):
        args = parse_arguments(SearchMemoriesInput, {"query": "q"})
        assert (args.limit, args.summary_weight, args.keyword_weight, args.keyword_boost) == (10, 0.8, 2.0, 1.0)

    def test_lambda_alias(self):
        args = parse_arguments(SearchMemoriesInput, {"query": "q", "lambda": 2.5})
        assert args.keyword_boost == 2.5

    def test_camel_case_weights(self):
        args = parse_arguments(SearchMemoriesInput, {"query": "q", "summaryWeight": 1.5, "keywordWeight": 3})
        assert args.summary_weight == 1.5
        assert args.keyword_weight == 3.0

    @pytest.mark.parametrize("limit", [0, 101])
    def test_limit_bounds(self, limit):
        with pytest.raises(InvalidInput):
            parse_arguments(SearchMemoriesInput, {"query": "q", "limit": limit})

    def test_negative_lambda_rejected(self):
        with pytest.raises(InvalidInput):
            parse_arguments(SearchMemoriesInput, {"query": "q", "lambda": -1})

    def test_unknown_fields_ignored(self):
        args = parse_arguments(SearchMemoriesInput, {"query": "q", "extra": True})
        assert args.query == "q"


class TestOthers:
    def test_list_defaults(self):
        args = parse_arguments(ListMemoriesInput, {})
        assert (args.limit, args.offset) == (20, 0)

    def test_list_negative_offset(self):
        with pytest.raises(InvalidInput, match="offset"):
            parse_arguments(ListMemoriesInput, {"offset": -1})

    def test_memory_id_coerces_numeric_string(self):
        assert parse_arguments(MemoryIdInput, {"id": "7"}).id == 7

    def test_read_file_aliases(self):
        assert parse_arguments(ReadFileInput, {"filePath": "/a"}).file_path == "/a"
        assert parse_arguments(ReadFileInput, {"file_path": "/b"}).file_path == "/b"

    def test_read_file_requires_path(self):
        with pytest.raises(InvalidInput):
            parse_arguments(ReadFileInput, {})

    def test_check_index_default(self):
        assert parse_arguments(CheckIndexInput, None).repair is False
