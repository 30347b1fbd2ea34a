"""Plugins bundling actions, providers, evaluators, contexts, services and clients."""

from ember.plugins.base import Plugin
from ember.plugins.bootstrap import bootstrap_plugin, send_client_message

__all__ = ["Plugin", "bootstrap_plugin", "send_client_message"]
