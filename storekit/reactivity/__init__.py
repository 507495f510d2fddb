"""
Reactivity - Subscriptions and Bindings

🔄 Automatic Consistency Across Components:
- subscriptions.py: key-scoped pub/sub used by the entity cache
- bindings.py: per-component accessors that load, cache-read and re-render
  on change
"""

from .subscriptions import Listener, RegistryMetrics, Subscription, SubscriptionRegistry, Unsubscribe
from .bindings import (
    Binding, BindingOptions, FileUrlBinding, FirstMatchingBinding, ItemBinding,
    LoadState, MatchingBinding, StoreBinding
)

__all__ = [
    "SubscriptionRegistry", "Subscription", "RegistryMetrics", "Listener", "Unsubscribe",
    "LoadState", "BindingOptions", "Binding", "StoreBinding",
    "ItemBinding", "MatchingBinding", "FirstMatchingBinding", "FileUrlBinding"
]
