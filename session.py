# session.py
from __future__ import annotations

from typing import List

from loguru import logger

from agent import AgentOrchestrator
from models import Message
from outcome import Outcome
from stores import MessageStore


class ChatSession:
    """A conversation backed by the message store."""

    def __init__(self, orchestrator: AgentOrchestrator, messages: MessageStore, conversation_id: str = "default"):
        self.orchestrator = orchestrator
        self.messages = messages
        self.conversation_id = conversation_id

    def history(self) -> List[Message]:
        return self.messages.list_by_conversation(self.conversation_id)

    def send(self, text: str) -> Outcome:
        # prior history only: the prompt itself goes in as the newest user turn
        prior = self.history()
        self.messages.append(Message(content=text, is_from_user=True, conversation_id=self.conversation_id))
        result = self.orchestrator.process_message(text, prior)
        if result.ok:
            self.messages.append(Message(content=result.value, is_from_user=False, conversation_id=self.conversation_id))
        else:
            logger.warning("ChatSession[{}]: turn failed: {}", self.conversation_id, result.error)
        return result

    def clear(self) -> int:
        return self.messages.delete_conversation(self.conversation_id)
