"""Client and payload types for the remote responses service."""

from chatterm.responses.client import ResponsesClient
from chatterm.responses.types import (
    FunctionCall,
    FunctionTool,
    InputFile,
    InputImage,
    InputItemsPage,
    InputText,
    ItemListInput,
    Message,
    OutputMessage,
    OutputText,
    Reasoning,
    ReasoningItem,
    Refusal,
    Response,
    ResponseRequest,
    TextInput,
    ToolChoice,
    Truncation,
    UnknownContent,
    UnknownOutputItem,
    Usage,
    WebSearchCall,
    WebSearchPreviewTool,
)

__all__ = [
    "FunctionCall",
    "FunctionTool",
    "InputFile",
    "InputImage",
    "InputItemsPage",
    "InputText",
    "ItemListInput",
    "Message",
    "OutputMessage",
    "OutputText",
    "Reasoning",
    "ReasoningItem",
    "Refusal",
    "Response",
    "ResponseRequest",
    "ResponsesClient",
    "TextInput",
    "ToolChoice",
    "Truncation",
    "UnknownContent",
    "UnknownOutputItem",
    "Usage",
    "WebSearchCall",
    "WebSearchPreviewTool",
]
