"""Ember - LLM agent runtime with tag-based action orchestration.

Ember turns an inbound conversational message into outbound messages and
asynchronous actions. An LLM decides what to say and what to do; requested
actions are dispatched concurrently, their results are persisted and fed
back into a follow-up round, bounded by a step budget.

Key modules:

- :mod:`ember.agent` - Orchestration loop, action dispatcher, state composer, runtime
- :mod:`ember.prompt` - Template rendering and tolerant tag parsing
- :mod:`ember.memory` - Room-scoped memory store (messages, thoughts, actions)
- :mod:`ember.llm` - Text-generation port and adapters (OpenAI-compatible, Anthropic)
- :mod:`ember.channels` - Client adapter protocol
- :mod:`ember.plugins` - Plugin bundles and the bootstrap plugin
- :mod:`ember.config` - YAML configuration
"""

__version__ = "0.1.0"
