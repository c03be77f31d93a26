from datetime import date
from types import SimpleNamespace

from database.schemas import BinaryAction

# A Wednesday; its ISO week starts on 2024-03-04
TODAY = date(2024, 3, 6)

CONTRACT_ACTIONS = [
    BinaryAction(name="calories", threshold="under 2000", points=2),
    BinaryAction(name="protein", threshold="over 150g", points=2),
    BinaryAction(name="walk", threshold="10k steps", points=1),
    BinaryAction(name="strength", threshold="completed", points=1),
]

class FakeMessenger:
    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_message(self, to, body, media_url=None):
        if self.fail:
            raise RuntimeError("transport down")
        self.sent.append(SimpleNamespace(to=to, body=body, media_url=media_url))

class FakeLLM:
    def __init__(self, intent: str = "GENERAL", reply: str = "generated reply"):
        self.intent = intent
        self.reply = reply
        self.prompts = []
        self.contexts = []

    async def classify_intent(self, user_input):
        return self.intent

    async def generate_response(self, user_input, context):
        self.prompts.append(user_input)
        self.contexts.append(context)
        return self.reply

    async def generate_flow_response(self, context, instruction):
        self.contexts.append(context)
        return self.reply
