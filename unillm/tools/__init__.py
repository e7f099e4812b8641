from unillm.tools.base import Parameter, Tool, ToolBuilder, tool
from unillm.tools.registry import ToolRegistry

__all__ = ["Parameter", "Tool", "ToolBuilder", "ToolRegistry", "tool"]
