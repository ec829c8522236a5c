"""Tool registry: functions the completion model may call."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger("chatrelay.tools.registry")


@dataclass
class Tool:
    name: str
    description: str
    parameters: dict                    # JSON Schema for parameters
    handler: Callable                   # async function to execute


class ToolRegistry:
    """Tools offered to the model during a completion."""

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, name: str, description: str, parameters: dict, handler: Callable):
        """Register a new tool, replacing any tool with the same name."""
        self._tools[name] = Tool(
            name=name,
            description=description,
            parameters=parameters,
            handler=handler,
        )

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def to_openai_schema(self) -> list[dict]:
        """Convert registered tools to OpenAI function calling format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
            for tool in self._tools.values()
        ]

    async def execute(self, name: str, arguments: dict) -> str:
        """Execute a tool by name. Failures come back as text for the model."""
        tool = self.get(name)
        if not tool:
            return f"Error: Tool '{name}' not found."
        try:
            result = await tool.handler(**arguments)
            return str(result)
        except Exception as e:
            logger.error(f"Error executing tool '{name}': {e}")
            return f"Error executing '{name}': {e}"
