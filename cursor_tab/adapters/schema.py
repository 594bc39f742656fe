from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    """Base for StreamCpp messages. Fields travel in protobuf-JSON camelCase."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CursorPosition(_WireModel):
    line: int
    column: int


class CurrentFileInfo(_WireModel):
    contents: str
    relative_workspace_path: str
    language_id: str
    total_number_of_lines: int
    workspace_root_path: str
    cursor_position: CursorPosition


class CppIntentInfo(_WireModel):
    source: str = "typing"


class StreamCppRequest(_WireModel):
    """
    Request body for AiService/StreamCpp.

    The capability flags are fixed: this client always accepts cursor
    prediction targets, CRLF-aware edits and debug output.
    """
    current_file: CurrentFileInfo
    cpp_intent_info: CppIntentInfo = Field(default_factory=CppIntentInfo)
    supports_cpt: bool = True
    supports_crlf_cpt: bool = True
    give_debug_output: bool = True


class LineRangeToReplace(_WireModel):
    start_line_number: int
    end_line_number_inclusive: int


class StreamChunk(_WireModel):
    """
    One message of the StreamCpp response stream.

    Every field is optional; a single chunk may carry any combination of
    range, text and markers.
    """
    text: str = ""
    range_to_replace: Optional[LineRangeToReplace] = None
    binding_id: Optional[str] = None
    should_remove_leading_eol: Optional[bool] = None
    begin_edit: Optional[bool] = None
    done_edit: Optional[bool] = None
    done_stream: Optional[bool] = None
    debug_model_input: Optional[str] = None
    debug_model_output: Optional[str] = None

    @property
    def is_begin_edit(self) -> bool:
        return bool(self.begin_edit)

    @property
    def is_done_edit(self) -> bool:
        return bool(self.done_edit)

    @property
    def is_done_stream(self) -> bool:
        return bool(self.done_stream)

    @property
    def has_debug(self) -> bool:
        return self.debug_model_input is not None or self.debug_model_output is not None
