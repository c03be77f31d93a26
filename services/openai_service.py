import logging
from dataclasses import dataclass, field
from typing import List, Optional

from openai import AsyncOpenAI

from database.models import Contract, DailyLog, Message, Pattern, User
from services.prompts import SYSTEM_PROMPT, INTENTS, INTENT_PROMPT, context_prompt

logger = logging.getLogger(__name__)

@dataclass
class ConversationContext:
    user: User
    contract: Optional[Contract]
    recent_logs: List[DailyLog] = field(default_factory=list)
    patterns: List[Pattern] = field(default_factory=list)
    recent_messages: List[Message] = field(default_factory=list) # newest first
    current_flow: str = "general"
    additional_context: Optional[str] = None

class OpenAIService:
    """
    Free-text generation for non-procedural replies and intent labels.
    Errors are not swallowed here: the request boundary decides what the
    user sees.
    """

    def __init__(self, api_key: str, model: str = "gpt-4o", intent_model: str = "gpt-4o-mini", client: AsyncOpenAI = None):
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model
        self.intent_model = intent_model
        logger.info(f"OpenAI service initialized. Model: {self.model}, intents: {self.intent_model}")

    def _base_messages(self, context: ConversationContext) -> list:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "system", "content": context_prompt(context)},
        ]

    async def _complete(self, messages: list) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=500,
            temperature=0.7,
        )
        return response.choices[0].message.content or "I couldn't generate a response."

    async def generate_response(self, user_input: str, context: ConversationContext) -> str:
        messages = self._base_messages(context)

        # Oldest first, last 10
        for msg in reversed(context.recent_messages[:10]):
            messages.append({"role": msg.role, "content": msg.content})

        messages.append({"role": "user", "content": user_input})
        try:
            return await self._complete(messages)
        except Exception as e:
            logger.error(f"Chat generation error: {e}")
            raise

    async def generate_flow_response(self, context: ConversationContext, instruction: str) -> str:
        messages = self._base_messages(context)
        messages.append({"role": "user", "content": instruction})
        try:
            return await self._complete(messages)
        except Exception as e:
            logger.error(f"Flow generation error ({context.current_flow}): {e}")
            raise

    async def classify_intent(self, user_input: str) -> str:
        response = await self.client.chat.completions.create(
            model=self.intent_model,
            messages=[
                {"role": "system", "content": INTENT_PROMPT},
                {"role": "user", "content": user_input}
            ],
            max_tokens=20,
            temperature=0.0
        )
        label = (response.choices[0].message.content or "").strip().upper()
        if label not in INTENTS:
            logger.info(f"Unknown intent label '{label}', using GENERAL")
            return "GENERAL"
        return label
