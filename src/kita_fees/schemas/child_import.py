"""Children CSV import schemas for parse, preview and execute"""
import enum
from typing import Optional, List, Dict, Literal
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PreviewAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    NO_CHANGE = "no_change"


class ParentAction(str, enum.Enum):
    CREATE = "create"
    LINK = "link"


class ConflictResolution(str, enum.Enum):
    EXISTING = "existing"
    NEW = "new"


class ParsedFile(CamelModel):
    headers: List[str]
    detected_separator: str
    sample_rows: List[List[str]]
    total_rows: int


class ChildPreview(CamelModel):
    member_number: str = ""
    first_name: str = ""
    last_name: str = ""
    birth_date: str = ""
    entry_date: str = ""
    street: str = ""
    street_no: str = ""
    postal_code: str = ""
    city: str = ""
    legal_hours: Optional[int] = None
    care_hours: Optional[int] = None


class ParentMatch(CamelModel):
    id: str
    first_name: str
    last_name: str
    email: Optional[str] = None


class ParentPreview(CamelModel):
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    existing_matches: List[ParentMatch] = Field(default_factory=list)
    already_linked: bool = False
    linked_parent_id: Optional[str] = None

    @property
    def has_name(self) -> bool:
        return bool(self.first_name.strip() or self.last_name.strip())


class FieldConflict(CamelModel):
    field: str
    field_label: str
    existing_value: str
    new_value: str


class PreviewRow(CamelModel):
    index: int
    child: ChildPreview
    parent1: Optional[ParentPreview] = None
    parent2: Optional[ParentPreview] = None
    warnings: List[str] = Field(default_factory=list)
    is_duplicate: bool = False
    existing_child_id: Optional[str] = None
    existing_child: Optional[ChildPreview] = None
    action: PreviewAction = PreviewAction.CREATE
    field_conflicts: List[FieldConflict] = Field(default_factory=list)
    is_valid: bool = True

    def parent(self, slot: int) -> Optional[ParentPreview]:
        if slot == 1:
            return self.parent1
        if slot == 2:
            return self.parent2
        raise ValueError(f"parent slot must be 1 or 2, got {slot}")


class PreviewRequest(CamelModel):
    file_content: str
    separator: str = ";"
    mapping: Dict[str, int]
    skip_header: bool = True


class PreviewResult(CamelModel):
    rows: List[PreviewRow]
    valid_count: int
    error_count: int


class ImportRow(CamelModel):
    index: int
    child: ChildPreview
    parent1: Optional[ParentPreview] = None
    parent2: Optional[ParentPreview] = None
    existing_child_id: Optional[str] = None
    merge_parents: bool = False
    field_updates: Dict[str, str] = Field(default_factory=dict)


class ParentDecision(CamelModel):
    row_index: int
    parent_index: Literal[1, 2]
    action: ParentAction = ParentAction.CREATE
    existing_parent_id: Optional[str] = None


class ExecuteRequest(CamelModel):
    rows: List[ImportRow]
    parent_decisions: List[ParentDecision] = Field(default_factory=list)


class ImportRowError(CamelModel):
    row_index: int
    error: str


class ExecuteResult(CamelModel):
    children_created: int = 0
    children_updated: int = 0
    parents_created: int = 0
    parents_linked: int = 0
    errors: List[ImportRowError] = Field(default_factory=list)
