"""
Signature-based detection of message export formats

Detection looks at structural markers inside the upload, never at the
filename: a JSON array of chat objects, repeating ``M/D/YY, H:MM AM - Sender:``
lines, RFC-822 mailbox headers, or a CSV header naming the message columns.
"""

import csv
import io
import json
import re
from dataclasses import dataclass

from message_trust.services.exceptions import UnrecognizedFormat
from message_trust.shared.logging_config import get_project_logger
from message_trust.shared.models import MessageFormat


SAMPLE_RECORDS = 200
MATCH_RATIO = 0.5
HIGH_CONFIDENCE_RATIO = 0.8

PLATFORM_A_FIELDS = ('timestamp', 'sender', 'content', 'platform')

# Column aliases accepted for generic JSON/CSV exports
TIMESTAMP_KEYS = ('timestamp', 'date', 'datetime', 'time', 'sent_at')
SENDER_KEYS = ('sender', 'from', 'author', 'user', 'name')
CONTENT_KEYS = ('content', 'message', 'text', 'body')

CHAT_LINE_RE = re.compile(
    r'^(\d{1,2}/\d{1,2}/\d{2,4}), (\d{1,2}:\d{2}[\s ]?[AaPp][Mm]) - ([^:]+): (.*)$'
)
CHAT_PREFIX_RE = re.compile(r'^\d{1,2}/\d{1,2}/\d{2,4}, \d{1,2}:\d{2}[\s ]?[AaPp][Mm] - ')
MBOX_SEPARATOR_RE = re.compile(r'^From \S+', re.MULTILINE)
MAIL_HEADER_RE = re.compile(r'^(Message-ID|From|Date|Subject):', re.MULTILINE | re.IGNORECASE)

HINT_ALIASES = {
    'imessage': MessageFormat.PLATFORM_A_CHAT,
    'platform_a': MessageFormat.PLATFORM_A_CHAT,
    'whatsapp': MessageFormat.PLATFORM_B_CHAT,
    'platform_b': MessageFormat.PLATFORM_B_CHAT,
    'email': MessageFormat.EMAIL_MAILBOX,
    'mbox': MessageFormat.EMAIL_MAILBOX,
    'generic': MessageFormat.GENERIC_STRUCTURED,
    'json': MessageFormat.GENERIC_STRUCTURED,
    'csv': MessageFormat.GENERIC_STRUCTURED,
}


@dataclass(frozen=True)
class SignatureMatch:
    ratio: float
    estimated_count: int


@dataclass(frozen=True)
class DetectionResult:
    format: MessageFormat
    confidence: str
    estimated_count: int
    hint_used: bool = False


def decode_upload(data: bytes) -> str:
    """Decode upload bytes as UTF-8 (BOM tolerated), falling back to Latin-1 for text"""
    try:
        return data.decode('utf-8-sig')
    except UnicodeDecodeError:
        pass

    if b'\x00' in data:
        raise UnrecognizedFormat("Upload contains binary content and is not a text message export")
    return data.decode('latin-1')


def _pick(item: dict, keys: tuple):
    """Return the first non-empty value among the aliased keys"""
    lowered = {str(k).lower(): v for k, v in item.items()}
    for key in keys:
        value = lowered.get(key)
        if value not in (None, ''):
            return value
    return None


def load_json_items(text: str):
    """Return the list of message objects in a JSON export, or None when it is not one"""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None

    if isinstance(data, dict) and isinstance(data.get('messages'), list):
        data = data['messages']
    if not isinstance(data, list):
        return None
    return data


def _confidence(ratio: float) -> str:
    if ratio >= HIGH_CONFIDENCE_RATIO:
        return 'high'
    if ratio >= MATCH_RATIO:
        return 'medium'
    return 'low'


class FormatDetector:
    """Classify raw upload bytes into one of the supported export formats"""

    def __init__(self, logger=None):
        self.logger = logger or get_project_logger(__name__)
        self._signatures = {
            MessageFormat.PLATFORM_A_CHAT: self._platform_a_signature,
            MessageFormat.PLATFORM_B_CHAT: self._platform_b_signature,
            MessageFormat.EMAIL_MAILBOX: self._mailbox_signature,
            MessageFormat.GENERIC_STRUCTURED: self._generic_signature,
        }

    def detect(self, data: bytes, mime_type: str | None = None, hint: str | None = None) -> DetectionResult:
        """
        Detect the export format of an upload

        Args:
            data: Raw upload bytes
            mime_type: Declared MIME type (advisory, logged only)
            hint: Optional user-supplied format hint

        Returns:
            DetectionResult with format, confidence and estimated message count

        Raises:
            UnrecognizedFormat: When no structural signature matches
        """
        if not data or not data.strip():
            raise UnrecognizedFormat("Upload is empty")

        text = decode_upload(data)

        hinted = self._resolve_hint(hint)
        if hinted is not None:
            match = self._signatures[hinted](text)
            if match is not None:
                self.logger.info(f"Format hint '{hint}' confirmed by signature ({match.estimated_count} records)")
                return DetectionResult(hinted, _confidence(match.ratio), match.estimated_count, hint_used=True)
            self.logger.warning(f"Format hint '{hint}' does not match upload structure, auto-detecting")

        # Order matters: platform A is a stricter JSON shape than generic JSON
        for message_format in (MessageFormat.PLATFORM_A_CHAT, MessageFormat.GENERIC_STRUCTURED,
                               MessageFormat.PLATFORM_B_CHAT, MessageFormat.EMAIL_MAILBOX):
            match = self._signatures[message_format](text)
            if match is not None:
                self.logger.info(
                    f"Detected {message_format.value} (ratio {match.ratio:.2f}, "
                    f"~{match.estimated_count} records, declared type {mime_type or 'unknown'})"
                )
                return DetectionResult(message_format, _confidence(match.ratio), match.estimated_count)

        raise UnrecognizedFormat("Upload does not match any supported message export format")

    def _resolve_hint(self, hint: str | None) -> MessageFormat | None:
        if not hint:
            return None
        key = hint.strip().lower()
        try:
            return MessageFormat(key)
        except ValueError:
            pass
        if key in HINT_ALIASES:
            return HINT_ALIASES[key]
        self.logger.warning(f"Ignoring unknown format hint '{hint}'")
        return None

    def _platform_a_signature(self, text: str) -> SignatureMatch | None:
        items = load_json_items(text)
        if not items:
            return None
        sample = items[:SAMPLE_RECORDS]
        hits = sum(
            1 for item in sample
            if isinstance(item, dict) and all(item.get(key) not in (None, '') for key in PLATFORM_A_FIELDS)
        )
        ratio = hits / len(sample)
        return SignatureMatch(ratio, len(items)) if ratio >= MATCH_RATIO else None

    def _generic_signature(self, text: str) -> SignatureMatch | None:
        items = load_json_items(text)
        if items is not None:
            if not items:
                return None
            sample = items[:SAMPLE_RECORDS]
            hits = sum(1 for item in sample if isinstance(item, dict) and self._has_message_columns(item))
            ratio = hits / len(sample)
            return SignatureMatch(ratio, len(items)) if ratio >= MATCH_RATIO else None
        return self._csv_signature(text)

    def _csv_signature(self, text: str) -> SignatureMatch | None:
        try:
            reader = csv.reader(io.StringIO(text))
            header = next(reader, None)
        except csv.Error:
            return None
        if not header:
            return None
        columns = {column.strip().lower() for column in header}
        if not (columns & set(TIMESTAMP_KEYS) and columns & set(SENDER_KEYS) and columns & set(CONTENT_KEYS)):
            return None

        rows = [line for line in text.splitlines()[1:] if line.strip()]
        exact = {'timestamp', 'sender', 'content'} <= columns
        return SignatureMatch(1.0 if exact else MATCH_RATIO, len(rows))

    def _platform_b_signature(self, text: str) -> SignatureMatch | None:
        lines = [line for line in text.splitlines() if line.strip()]
        if not lines:
            return None
        prefixed = [line for line in lines if CHAT_PREFIX_RE.match(line)]
        messages = [line for line in prefixed if CHAT_LINE_RE.match(line)]
        if not messages:
            return None
        # Continuation lines of multi-line messages do not carry the prefix
        ratio = len(prefixed) / len(lines)
        if ratio < MATCH_RATIO:
            return None
        return SignatureMatch(ratio, len(messages))

    def _mailbox_signature(self, text: str) -> SignatureMatch | None:
        headers = {m.group(1).lower() for m in MAIL_HEADER_RE.finditer(text[:20000])}
        if 'from' not in headers:
            return None
        separators = len(MBOX_SEPARATOR_RE.findall(text))
        if separators == 0 and not text.lstrip().lower().startswith(('from:', 'message-id:', 'date:', 'subject:')):
            return None
        ratio = 1.0 if separators and 'message-id' in headers else MATCH_RATIO
        return SignatureMatch(ratio, max(separators, 1))

    @staticmethod
    def _has_message_columns(item: dict) -> bool:
        return all(_pick(item, keys) is not None for keys in (TIMESTAMP_KEYS, SENDER_KEYS, CONTENT_KEYS))


def detect_format(data: bytes, mime_type: str | None = None, hint: str | None = None) -> DetectionResult:
    """Module-level convenience wrapper around FormatDetector"""
    return FormatDetector().detect(data, mime_type, hint)
