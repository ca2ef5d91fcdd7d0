from typing import AsyncIterator, List

from .client import Client


class ChatSession:
    """Keeps the turns of an interactive conversation"""

    def __init__(self, client: Client, model: str, instructions: str = None, temperature: float = None):
        self.client = client
        self.model = model
        self.instructions = instructions
        self.temperature = temperature
        # Alternating user / assistant turns
        self.context: List[str] = []

    def set_model(self, model_name: str):
        self.model = model_name

    def reset(self):
        self.context = []

    async def send(self, user_input: str) -> AsyncIterator[str]:
        """Stream the reply to ``user_input``; the turn is kept once the reply completes."""
        stream = await self.client.conversations.create_stream(
            model=self.model,
            input=user_input,
            instructions=self.instructions,
            context=self.context,
            temperature=self.temperature,
        )

        full_content = ""
        async for chunk in stream:
            if chunk.content:
                full_content += chunk.content
                yield chunk.content

        if full_content:
            self.context.extend([user_input, full_content])
