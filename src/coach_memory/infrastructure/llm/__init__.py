from coach_memory.infrastructure.llm.anthropic import AnthropicChatModel
from coach_memory.infrastructure.llm.json_payload import parse_json_array, parse_json_object

__all__ = ["AnthropicChatModel", "parse_json_array", "parse_json_object"]
