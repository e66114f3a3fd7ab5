"""rerank_qa.generation.prompt_renderer

Rendering of advised request text into chat messages.

Advisors only make template values available (for example the retrieved
context under ``question_answer_context``); substitution into the text
happens here, right before the model call, using a sandboxed Jinja2
environment.

Text supplied by callers (questions, per-call system messages) is not a
template. Pass it through :func:`escape_template` before it joins a request so
that it renders back to itself verbatim.

Classes
-------
PromptRenderer
    Renders system and user text with their params into chat messages.

Functions
---------
escape_template
    Turn literal text into template source that renders to that text.
"""
from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from jinja2 import Environment, Template
from jinja2.sandbox import SandboxedEnvironment

if TYPE_CHECKING:
    from rerank_qa.advisors.types import AdvisedRequest

_TEMPLATE_OPENERS = ("{{", "{%", "{#")
_ENDRAW_TAG = re.compile(r"(\{%[-+]?\s*endraw\s*[-+]?%\})")


def escape_template(text: str) -> str:
    """Return template source that renders to ``text`` unchanged.

    Text without Jinja2 delimiters is returned as-is. Otherwise it is wrapped
    in ``{% raw %}`` blocks; embedded ``endraw`` tags are emitted as string
    expressions so they cannot close the block early.

    Parameters
    ----------
    text : str
        Literal text, e.g. a user's question.

    Returns
    -------
    str
        Template source.
    """
    if not text or not any(opener in text for opener in _TEMPLATE_OPENERS):
        return text

    out: List[str] = []
    for i, piece in enumerate(_ENDRAW_TAG.split(text)):
        if i % 2:
            # endraw tags never contain quotes or backslashes
            out.append("{{ '" + piece + "' }}")
        elif piece:
            out.append("{% raw %}" + piece + "{% endraw %}")
    return "".join(out)


class PromptRenderer:
    """Render advised request text with Jinja2.

    Parameters
    ----------
    environment : jinja2.Environment or None, optional
        Environment used to compile templates. Defaults to a
        :class:`jinja2.sandbox.SandboxedEnvironment` with
        ``keep_trailing_newline`` enabled.

    Notes
    -----
    Missing params render as empty strings (Jinja2's default ``Undefined``).
    """

    def __init__(self, environment: Optional[Environment] = None):
        self.environment = environment or SandboxedEnvironment(keep_trailing_newline=True)

    def render_text(self, text: str, params: Mapping[str, Any]) -> str:
        """Render one text with its params.

        Parameters
        ----------
        text : str
            Template text.
        params : Mapping[str, Any]
            Values to substitute.

        Returns
        -------
        str
            The rendered text.
        """
        if not text:
            return ""
        template: Template = self.environment.from_string(text)
        return template.render(**dict(params or {}))

    def render(self, advised_request: AdvisedRequest) -> List[Dict[str, str]]:
        """Render a request into role/content chat messages.

        Parameters
        ----------
        advised_request : AdvisedRequest
            Request whose system and user text should be rendered.

        Returns
        -------
        list[dict[str, str]]
            A ``system`` message (when system text is set) followed by the
            ``user`` message.
        """
        messages: List[Dict[str, str]] = []
        if advised_request.system_text:
            messages.append(
                {
                    "role": "system",
                    "content": self.render_text(advised_request.system_text, advised_request.system_params),
                }
            )
        messages.append(
            {
                "role": "user",
                "content": self.render_text(advised_request.user_text, advised_request.user_params),
            }
        )
        return messages


__all__ = ["PromptRenderer", "escape_template"]
