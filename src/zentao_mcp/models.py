from __future__ import annotations

from typing import Annotated, Any, Optional, Type, TypeVar

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
)

from .errors import ZenTaoValidationError

T = TypeVar("T", bound=BaseModel)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
DEFAULT_BATCH_SIZE = 20
MAX_BATCH_SIZE = 500


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
# Blank strings count as "not provided"
OptionalText = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
BugId = Annotated[int, Field(gt=0)]


def validate_input(model: Type[T], **values: Any) -> T:
    """Build a tool input model, turning pydantic errors into ZenTaoValidationError."""
    try:
        return model.model_validate(values)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ZenTaoValidationError(
            f"Invalid arguments for {model.__name__}: {problems}"
        ) from exc


# --- Input Models (Tool Payloads) ---


class ProjectListQuery(BaseModel):
    keyword: OptionalText = None

    model_config = ConfigDict(extra="forbid")


class BugListQuery(BaseModel):
    # "" is kept as-is: it switches off the default "assigned to me" filter
    assignee: Annotated[Optional[str], BeforeValidator(_strip)] = None
    status: OptionalText = None
    keyword: OptionalText = None
    product_id: Optional[BugId] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    path: OptionalText = None

    model_config = ConfigDict(extra="forbid")


class BugRef(BaseModel):
    bug_id: BugId

    model_config = ConfigDict(extra="forbid")


class BugActionInput(BugRef):
    comment: OptionalText = None
    path_template: Optional[NonEmptyStr] = None


class ResolveInput(BugActionInput):
    resolution: NonEmptyStr = "fixed"
    resolved_build: NonEmptyStr = "trunk"
    solution: OptionalText = None


class VerifyInput(BugRef):
    # anything but pass/fail, blank included, is rejected by verify_bug itself
    result: str
    comment: OptionalText = None


class CommentInput(BugRef):
    comment: NonEmptyStr
    path_template: Optional[NonEmptyStr] = None


class BatchOptions(BaseModel):
    max_items: int = Field(default=DEFAULT_BATCH_SIZE, ge=1, le=MAX_BATCH_SIZE)
    stop_on_error: bool = False

    model_config = ConfigDict(extra="forbid")


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "DEFAULT_BATCH_SIZE",
    "MAX_BATCH_SIZE",
    "validate_input",
    "ProjectListQuery",
    "BugListQuery",
    "BugRef",
    "BugActionInput",
    "ResolveInput",
    "VerifyInput",
    "CommentInput",
    "BatchOptions",
]
