"""ORM models exposed by the TyreHero offline client."""
from .queued_request import QueuedRequest

__all__ = ["QueuedRequest"]
