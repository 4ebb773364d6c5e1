"""Channel adapter registry.

Singleton access to outbound channel adapters. The fake email adapter is the
default; a real provider adapter is registered with ``set_channel`` at
application start.
"""

EMAIL = "email"

_channel_instances: dict[str, object] = {}


def get_channel(channel_type: str = EMAIL):
    if channel_type not in _channel_instances:
        if channel_type == EMAIL:
            from marketplace.ledger.channel.fake_email import FakeEmailAdapter

            _channel_instances[channel_type] = FakeEmailAdapter()
        else:
            raise ValueError(f"Unknown channel type: {channel_type}")

    return _channel_instances[channel_type]


def set_channel(channel_type: str, adapter) -> None:
    _channel_instances[channel_type] = adapter


def reset_channels():
    """Reset all channel singletons (useful for testing)."""
    _channel_instances.clear()
