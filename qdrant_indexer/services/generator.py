"""
LLM Generator Module
====================
Chat sessions used by the query engine to produce grounded answers.

Any object with reset / set_system_instruction / add_message / send_message
can be plugged in; GeminiChatSession is the default backed by Google Gemini.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

import google.generativeai as genai

logger = logging.getLogger(__name__)

USER = "user"
ASSISTANT = "assistant"


@dataclass
class ChatResponse:
    text: Optional[str]


class ChatSession(Protocol):
    def reset(self) -> None: ...

    def set_system_instruction(self, text: str) -> None: ...

    def add_message(self, content: str, role: str = USER) -> None: ...

    def send_message(self, text: str) -> ChatResponse: ...


class GeminiChatSession:
    """Multi-turn chat against Google Gemini."""

    ROLE_MAP = {USER: "user", ASSISTANT: "model"}

    def __init__(self, api_key: str, model_name: str = "gemini-2.0-flash"):
        genai.configure(api_key=api_key)
        self.model_name = model_name
        self.system_instruction: Optional[str] = None
        self.history: List[Dict] = []
        logger.info(f"🤖 Gemini chat session initialized: {model_name}")

    def reset(self) -> None:
        self.history = []

    def set_system_instruction(self, text: str) -> None:
        self.system_instruction = text

    def add_message(self, content: str, role: str = USER) -> None:
        self.history.append({"role": self.ROLE_MAP.get(role, "user"), "parts": [content]})

    def send_message(self, text: str) -> ChatResponse:
        """Send text after the recorded history; exceptions from the API propagate."""
        model = genai.GenerativeModel(
            self.model_name,
            system_instruction=self.system_instruction,
        )
        chat = model.start_chat(history=list(self.history))

        logger.info(f"📝 Generating response ({len(self.history)} prior message(s))")
        response = chat.send_message(text)

        self.history.append({"role": "user", "parts": [text]})
        self.history.append({"role": "model", "parts": [response.text]})
        logger.info("✅ Response generated successfully")
        return ChatResponse(text=response.text)
