"""Turn pipeline: one Conversation per player session.

    conversation = Conversation(world, gateway, message_log=log, journeys=store)
    result = await conversation.send("Hi there!")
    for u in result.utterances:
        print(u.companion, u.text)
"""

from .orchestrator import Conversation, fallback_line  # noqa: F401
