"""
PII redaction for parsed message records

Real values are replaced with numbered placeholder tokens such as
``[PERSON_1]`` or ``[PHONE_2]``. Within one sanitizer instance the same value
always maps to the same token, so conversational structure survives while
the identities do not. The mapping is never persisted.
"""

import hashlib
import json
import re
import unicodedata
from dataclasses import dataclass, field, replace

from message_trust.services.exceptions import SanitizationFailed
from message_trust.shared.logging_config import get_project_logger
from message_trust.shared.models import MessageRecord


CATEGORIES = ('PERSON', 'PHONE', 'EMAIL', 'ACCOUNT', 'ADDRESS', 'HANDLE')

PLACEHOLDER_PATTERN = r'\[(?:' + '|'.join(CATEGORIES) + r')_\d+\]'
PLACEHOLDER_RE = re.compile(PLACEHOLDER_PATTERN)

STREET_SUFFIXES = r'(?:Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Lane|Ln|Drive|Dr|Court|Ct|Place|Pl)'

# Alternation order decides precedence; existing placeholders always win
PII_RE = re.compile(
    r'(?P<placeholder>' + PLACEHOLDER_PATTERN + r')'
    r'|(?P<email>[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,})'
    r'|(?P<account>\b\d{3}-\d{2}-\d{4}\b'
    r'|\b(?:\d{4}[\s-]?){3}\d{4}\b'
    r'|\b[A-Z]{2}\d{2}[A-Z0-9]{11,30}\b'
    r'|\b(?:acct|account)\.?\s*(?:no\.?|number|#)?\s*:?\s*\d{6,17}\b)'
    r'|(?P<address>\b\d{1,5}\s+(?:[A-Za-z]+\s+){1,3}' + STREET_SUFFIXES + r'\b\.?)'
    r'|(?P<phone>(?:\+?1[-.\s]?)?(?:\(\d{3}\)|\b\d{3})[-.\s]?\d{3}[-.\s]?\d{4}\b)'
    r'|(?P<handle>(?<![\w.@])@[A-Za-z0-9_]{2,30}\b)',
    re.IGNORECASE,
)

GROUP_CATEGORIES = {
    'email': 'EMAIL',
    'account': 'ACCOUNT',
    'address': 'ADDRESS',
    'phone': 'PHONE',
    'handle': 'HANDLE',
}

# Sender handles that are also everyday words are tokenized as senders only
MIN_BODY_NAME_LENGTH = 3
COMMON_WORD_NAMES = frozenset({
    'me', 'you', 'him', 'her', 'mom', 'dad', 'home', 'work', 'will', 'may', 'mark', 'grace',
    'hope', 'joy', 'faith', 'june', 'april', 'august', 'bill', 'rose', 'sky', 'summer',
    'dawn', 'art', 'ray', 'max', 'pat', 'sue', 'rich', 'frank', 'guy', 'chase', 'drew',
    'sunny', 'honey', 'baby', 'boss', 'unknown',
})

CONTROL_RE = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')


@dataclass
class SanitizationReport:
    """Redaction counts per category; never contains the redacted values"""
    redactions: dict = field(default_factory=lambda: {category: 0 for category in CATEGORIES})
    warnings: list = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(self.redactions.values())

    def as_dict(self) -> dict:
        return {
            'redactions': dict(self.redactions),
            'total': self.total,
            'warnings': list(self.warnings),
        }


@dataclass
class SanitizationResult:
    records: list[MessageRecord]
    report: SanitizationReport


class PrivacySanitizer:
    """
    Replace identifying content in message records with placeholder tokens

    One instance covers one upload job. Call ``discard()`` when the job ends
    so the value-to-token mapping does not outlive it.
    """

    def __init__(self, logger=None):
        self.logger = logger or get_project_logger(__name__)
        self._tokens: dict[tuple[str, str], str] = {}
        self._counters = {category: 0 for category in CATEGORIES}
        self._names_re = None

    def sanitize(self, records: list[MessageRecord]) -> SanitizationResult:
        """
        Redact sender names and PII from every record

        Args:
            records: Parsed records, in source order

        Returns:
            SanitizationResult with new records (same order and count) and a report

        Raises:
            SanitizationFailed: When no message content survives redaction
        """
        report = SanitizationReport()
        self._register_senders(records)

        sanitized = []
        for record in records:
            body = self._clean_unreadable(record, report)
            body = self._redact_pii(body, report)
            body = self._redact_names(body, report)
            sanitized.append(replace(record, sender=self._sender_token(record.sender), body=body))

        if records and not any(record.body.strip() for record in sanitized):
            raise SanitizationFailed("No message content survived sanitization")

        self.logger.info(
            f"Sanitized {len(sanitized)} records: {report.total} redactions "
            f"({', '.join(f'{k.lower()}={v}' for k, v in report.redactions.items() if v)})"
        )
        return SanitizationResult(records=sanitized, report=report)

    def discard(self):
        """Forget every value-to-token mapping held by this instance"""
        self._tokens.clear()
        self._counters = {category: 0 for category in CATEGORIES}
        self._names_re = None

    @property
    def mapping_size(self) -> int:
        return len(self._tokens)

    def _token_for(self, category: str, value: str) -> str:
        key = (category, value.strip().lower())
        token = self._tokens.get(key)
        if token is None:
            self._counters[category] += 1
            token = f"[{category}_{self._counters[category]}]"
            self._tokens[key] = token
        return token

    def _register_senders(self, records: list[MessageRecord]):
        body_names = set()
        for record in records:
            sender = record.sender.strip()
            if not sender or PLACEHOLDER_RE.fullmatch(sender):
                continue
            self._token_for('PERSON', sender)
            if _matchable_in_body(sender):
                body_names.add(sender)
            # Given names show up in bodies far more often than full names
            first = sender.split()[0]
            if first != sender and first[0].isupper() and _matchable_in_body(first):
                self._tokens.setdefault(('PERSON', first.lower()), self._token_for('PERSON', sender))
                body_names.add(first)

        if not body_names:
            self._names_re = None
            return
        # Case-sensitive: a sender called "Will" must not eat "I will pay"
        alternation = '|'.join(re.escape(name) for name in sorted(body_names, key=len, reverse=True))
        self._names_re = re.compile(
            r'(?P<placeholder>' + PLACEHOLDER_PATTERN + r')|(?<!\w)(?P<name>' + alternation + r')(?!\w)'
        )

    def _sender_token(self, sender: str) -> str:
        sender = sender.strip()
        if not sender or PLACEHOLDER_RE.fullmatch(sender):
            return sender
        return self._token_for('PERSON', sender)

    def _redact_pii(self, body: str, report: SanitizationReport) -> str:
        def substitute(match):
            if match.lastgroup == 'placeholder':
                return match.group(0)
            category = GROUP_CATEGORIES[match.lastgroup]
            report.redactions[category] += 1
            return self._token_for(category, match.group(0))

        return PII_RE.sub(substitute, body)

    def _redact_names(self, body: str, report: SanitizationReport) -> str:
        if self._names_re is None:
            return body

        def substitute(match):
            if match.lastgroup == 'placeholder':
                return match.group(0)
            report.redactions['PERSON'] += 1
            return self._token_for('PERSON', match.group('name'))

        return self._names_re.sub(substitute, body)

    @staticmethod
    def _clean_unreadable(record: MessageRecord, report: SanitizationReport) -> str:
        body = record.body
        try:
            body.encode('utf-8')
        except UnicodeEncodeError:
            body = body.encode('utf-8', errors='replace').decode('utf-8')
            report.warnings.append(f"record {record.sequence}: undecodable characters replaced")

        if CONTROL_RE.search(body):
            body = CONTROL_RE.sub('', body)
            report.warnings.append(f"record {record.sequence}: control characters removed")

        return unicodedata.normalize('NFC', body)


def _matchable_in_body(name: str) -> bool:
    """Whether a sender name is distinctive enough to search for inside message text"""
    return len(name) >= MIN_BODY_NAME_LENGTH and name.lower() not in COMMON_WORD_NAMES


def content_hash(records: list[MessageRecord]) -> str:
    """SHA-256 hex digest over the canonical JSON form of sanitized records"""
    canonical = json.dumps(
        [record.to_canonical() for record in records],
        sort_keys=True,
        separators=(',', ':'),
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()
