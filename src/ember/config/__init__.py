"""YAML configuration for ember.

- :class:`EmberConfig` - Root pydantic schema
- :func:`load_config` / :func:`save_config` - YAML round-trip with validation
"""

from ember.config.loader import ConfigError, load_config, save_config
from ember.config.schema import EmberConfig

__all__ = ["ConfigError", "EmberConfig", "load_config", "save_config"]
