"""プロバイダレジストリの公開API。"""

from deploylink.providers.registry import ProviderDescriptor, ProviderRegistry, describe_source

__all__ = [
    "ProviderDescriptor",
    "ProviderRegistry",
    "describe_source",
]
