"""
Consent lookups deciding whether an owner may see analysis results
"""

from flask import request


class ConsentProvider:
    """Answers whether analysis results may be shown to an owner"""

    def has_analysis_consent(self, owner_id: str) -> bool:
        raise NotImplementedError


class HeaderConsentProvider(ConsentProvider):
    """
    Reads the consent decision the gateway attaches to each request

    The consent bookkeeping service sits in front of this API and forwards
    ``X-Analysis-Consent: granted`` for owners who agreed to analysis.
    """

    header_name = 'X-Analysis-Consent'

    def has_analysis_consent(self, owner_id: str) -> bool:
        return request.headers.get(self.header_name, '').strip().lower() == 'granted'


class StaticConsentProvider(ConsentProvider):
    """Fixed answer, or an explicit set of consenting owners"""

    def __init__(self, granted: bool = False, owners=None):
        self.granted = granted
        self.owners = set(owners or ())

    def has_analysis_consent(self, owner_id: str) -> bool:
        return self.granted or owner_id in self.owners
