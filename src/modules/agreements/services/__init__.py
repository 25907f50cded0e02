from .agreement_service import AgreementService
from .cleanup import delete_stale_artifacts
from .compositor import SignatureCompositor
from .renderer import AgreementRenderer, compute_repayment
from .tracking_store import DocumentTrackingStore

__all__ = [
    'AgreementService', 'delete_stale_artifacts', 'SignatureCompositor',
    'AgreementRenderer', 'compute_repayment', 'DocumentTrackingStore'
]
