from .agreement_document import AgreementState, AgreementVersion, LoanAgreementDocument

__all__ = ['AgreementState', 'AgreementVersion', 'LoanAgreementDocument']
