"""
Tool input models.

Pydantic v2 models validate every tool's arguments before any store
operation runs. Tool schemas advertise snake_case names; the camelCase
spellings older clients send (``summaryWeight``, ``keywordWeight``,
``filePath``) are accepted as aliases.
"""

from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from agent_memory.entities import MAX_KEYWORDS, MAX_SUMMARY_LENGTH
from agent_memory.errors import InvalidInput

MAX_LIMIT = 100

ModelT = TypeVar("ModelT", bound=BaseModel)


class _ToolInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class InsertMemoryInput(_ToolInput):
    content: str = Field(min_length=1)
    summary: str = Field(min_length=1, max_length=MAX_SUMMARY_LENGTH)
    keywords: List[str] = Field(default_factory=list, max_length=MAX_KEYWORDS)


class UpdateMemoryInput(_ToolInput):
    id: int = Field(gt=0)
    content: Optional[str] = Field(default=None, min_length=1)
    summary: Optional[str] = Field(default=None, min_length=1, max_length=MAX_SUMMARY_LENGTH)
    keywords: Optional[List[str]] = Field(default=None, max_length=MAX_KEYWORDS)

    @model_validator(mode="after")
    def _require_a_change(self) -> "UpdateMemoryInput":
        if self.content is None and self.summary is None and self.keywords is None:
            raise ValueError("At least one of content, summary, or keywords must be provided")
        return self


class SearchMemoriesInput(_ToolInput):
    query: str = Field(min_length=1)
    keywords: List[str] = Field(default_factory=list, max_length=MAX_KEYWORDS)
    limit: int = Field(default=10, ge=1, le=MAX_LIMIT)
    summary_weight: float = Field(
        default=0.8, gt=0, validation_alias=AliasChoices("summary_weight", "summaryWeight")
    )
    keyword_weight: float = Field(
        default=2.0, gt=0, validation_alias=AliasChoices("keyword_weight", "keywordWeight")
    )
    # "lambda" is a keyword in Python
    keyword_boost: float = Field(
        default=1.0, ge=0, validation_alias=AliasChoices("lambda", "keyword_boost")
    )


class MemoryIdInput(_ToolInput):
    id: int = Field(gt=0)


class ListMemoriesInput(_ToolInput):
    limit: int = Field(default=20, ge=1, le=MAX_LIMIT)
    offset: int = Field(default=0, ge=0)


class ReadFileInput(_ToolInput):
    file_path: str = Field(min_length=1, validation_alias=AliasChoices("file_path", "filePath"))


class CheckIndexInput(_ToolInput):
    repair: bool = False


def _format_errors(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def parse_arguments(model: Type[ModelT], arguments: Optional[Dict[str, Any]]) -> ModelT:
    """Validate raw tool arguments, raising InvalidInput with a readable message."""
    try:
        return model.model_validate(arguments or {})
    except ValidationError as e:
        raise InvalidInput(_format_errors(e)) from e
