"""Client adapters for messaging integrations.

Each client receives messages from a surface, hands them to
``AgentRuntime.handle_client_message`` and delivers the replies.
"""

from ember.channels.base import Client

__all__ = ["Client"]
