"""rerank_qa.generation

Prompt rendering and the terminal chat-model call.

Modules
-------
prompt_renderer
    Jinja2 rendering of advised request text into chat messages.
chat_model
    Chat-model interface, OpenAI-compatible implementation, and factory.
"""

from .chat_model import BaseChatModel, OpenAIChatModel, create_chat_model
from .prompt_renderer import PromptRenderer, escape_template

__all__ = [
    "BaseChatModel",
    "OpenAIChatModel",
    "create_chat_model",
    "PromptRenderer",
    "escape_template",
]
