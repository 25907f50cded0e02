from .content_store import (
    ARTIFACT_KINDS, SIGNATURES, SIGNED, UNSIGNED,
    ContentStore, LocalContentStore
)

__all__ = [
    'ARTIFACT_KINDS', 'SIGNATURES', 'SIGNED', 'UNSIGNED',
    'ContentStore', 'LocalContentStore'
]
