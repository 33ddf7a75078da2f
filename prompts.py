# prompts.py
from __future__ import annotations

from typing import Iterable, Optional

from tools.tool_schema import render_tool_catalogue

TOOL_CALL_OPEN = "<tool_call>"
TOOL_CALL_CLOSE = "</tool_call>"

_PREAMBLE = """\
You are Lilah, a helpful assistant that can act on the user's device and look things up.
Answer directly when you can. When a tool is needed, reply with exactly one tool call and nothing else:

<tool_call>{"reasoning": "<why this tool>", "tool_name": "<name>", "parameters": {<name>: <value>, ...}}</tool_call>

Parameter values must be strings, numbers or booleans. Request at most one tool per reply;
you will get the result back and then answer the user.
If you need to interact with the screen, call get_screen_content first, then find_element, then tap or type.

Available tools:
"""


def build_system_prompt(tool_names: Optional[Iterable[str]] = None) -> str:
    names = sorted(tool_names) if tool_names is not None else None
    return _PREAMBLE + render_tool_catalogue(names)


def tool_success_prompt(user_message: str, tool_name: str, result: str) -> str:
    return (
        f'The user asked: "{user_message}"\n'
        f"\n"
        f"I used the {tool_name} tool and got this result:\n"
        f"{result}\n"
        f"\n"
        f"Please provide a helpful response to the user incorporating this information.\n"
        f"Do not mention the tool usage explicitly - just provide a natural response."
    )


def tool_failure_prompt(user_message: str, reason: str) -> str:
    return (
        f'I tried to help with: "{user_message}"\n'
        f"\n"
        f"However, I encountered an error: {reason}\n"
        f"\n"
        f"Please provide a helpful response explaining that I couldn't complete the requested action."
    )
