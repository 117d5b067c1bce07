from .base import BaseTool, ToolError, ToolResult
from .apply_diff import ApplyDiffTool

__all__ = [
    "BaseTool",
    "ToolError",
    "ToolResult",
    "ApplyDiffTool",
]
