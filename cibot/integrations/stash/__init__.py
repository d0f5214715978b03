from cibot.integrations.stash.client import StashClient

__all__ = ["StashClient"]
