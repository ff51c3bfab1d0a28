from __future__ import annotations
import logging
from contextlib import aclosing
from typing import AsyncIterator, List, Optional, Protocol

from .errors import TurnInProgress
from .schemas import ChatMessage, ChatRole

logger = logging.getLogger(__name__)

APOLOGY = "I'm sorry, I encountered an error. Please try again."
GREETING = "Hello! I'm your AI Tutor. I can help you with any topic from Class 8 to 12. What are you studying today?"


class ConversationContext(Protocol):
	def send_message_stream(self, message: str) -> AsyncIterator[str]: ...


def _seed_message(initial_query: Optional[str]) -> str:
	if initial_query:
		return f"I see you selected some text: \"{initial_query[:50]}...\". How can I help you with this?"
	return GREETING


class TutorSession:
	"""Transcript of one tutor conversation plus its remote context.

	Only the newest model message changes after being appended, and only
	while its turn is streaming.
	"""

	def __init__(self, chat: ConversationContext, initial_query: Optional[str] = None) -> None:
		self.chat = chat
		self.initial_query = initial_query
		self.messages: List[ChatMessage] = [ChatMessage(role=ChatRole.MODEL, text=_seed_message(initial_query))]
		self._in_flight = False
		# Incremented per claimed turn so a late release cannot free a newer one
		self.turn = 0

	@property
	def busy(self) -> bool:
		return self._in_flight

	def begin_turn(self, text: str) -> bool:
		"""Claim the turn slot; False (and no change) for blank input."""
		if self._in_flight:
			raise TurnInProgress()
		if not text or not text.strip():
			return False
		self._in_flight = True
		self.turn += 1
		self.messages.append(ChatMessage(role=ChatRole.USER, text=text))
		self.messages.append(ChatMessage(role=ChatRole.MODEL, text=""))
		return True

	def abort_turn(self, turn: Optional[int] = None) -> None:
		"""Release a claimed turn whose stream never ran to completion.

		No-op once the slot is free or when ``turn`` is not the current one.
		"""
		if not self._in_flight or (turn is not None and turn != self.turn):
			return
		logger.warning("Tutor turn %d abandoned before its reply finished", self.turn)
		self.messages[-1].text = APOLOGY
		self._in_flight = False

	async def stream_turn(self, text: str) -> AsyncIterator[str]:
		"""Stream the reply to a turn already claimed with ``begin_turn``.

		Any exit short of the full reply (error, cancellation, the consumer
		closing the stream) leaves ``APOLOGY`` as the model's text.
		"""
		reply = self.messages[-1]
		accumulated = ""
		completed = False
		try:
			async with aclosing(self.chat.send_message_stream(text)) as stream:
				async for fragment in stream:
					if not fragment:
						continue
					accumulated += fragment
					reply.text = accumulated
					yield fragment
			completed = True
		except Exception as err:
			logger.error("Chat error: %s", err)
		finally:
			if not completed:
				reply.text = APOLOGY
			self._in_flight = False

	async def send_turn(self, text: str) -> AsyncIterator[str]:
		"""Append a user turn and stream the model's answer fragment by fragment.

		Blank input yields nothing and leaves the transcript alone. A failure
		while streaming replaces the partial answer with ``APOLOGY``.
		"""
		if not self.begin_turn(text):
			return
		async with aclosing(self.stream_turn(text)) as stream:
			async for fragment in stream:
				yield fragment
