from .broadcaster import EVENT_CATALOGUE, EventBroadcaster, NullBroadcaster, Scope
from .tokens import JoinTokenSigner

__all__ = ["EventBroadcaster", "NullBroadcaster", "Scope", "EVENT_CATALOGUE", "JoinTokenSigner"]
