from scribeflow.providers.llm.base import LLMProvider, LLMUsage, Message

__all__ = ["LLMProvider", "LLMUsage", "Message"]
