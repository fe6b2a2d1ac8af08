"""
Parsers turning raw export bytes into ordered MessageRecord sequences

Every parser shares one contract: bytes in, records out in source order.
A single broken record is skipped with a warning; a file that cannot be
read structurally raises MalformedInput.
"""

import csv
import email
import email.policy
import io
import json
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import parseaddr, parsedate_to_datetime

from message_trust.services.exceptions import InsufficientData, MalformedInput
from message_trust.shared.format_detector import (
    CHAT_LINE_RE,
    CHAT_PREFIX_RE,
    CONTENT_KEYS,
    SENDER_KEYS,
    TIMESTAMP_KEYS,
    _pick,
    decode_upload,
)
from message_trust.shared.logging_config import get_project_logger
from message_trust.shared.models import MessageFormat, MessageRecord


MBOX_SPLIT_RE = re.compile(r'^From \S+.*$', re.MULTILINE)


@dataclass
class ParseWarning:
    """Where and why a record was skipped"""
    reason: str
    line: int | None = None
    index: int | None = None

    def __str__(self):
        if self.line is not None:
            return f"line {self.line}: {self.reason}"
        if self.index is not None:
            return f"record {self.index}: {self.reason}"
        return self.reason


@dataclass
class ParseResult:
    records: list[MessageRecord] = field(default_factory=list)
    warnings: list[ParseWarning] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return len(self.warnings)


def parse_timestamp(value) -> datetime:
    """
    Parse the timestamp shapes found in exports into an aware UTC datetime

    Accepts ISO-8601 strings, RFC-2822 date strings and epoch numbers
    (seconds or milliseconds).

    Raises:
        ValueError: When the value cannot be interpreted
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Unsupported timestamp: {value!r}")

    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e11 else value
        return datetime.fromtimestamp(seconds, tz=UTC)

    text = str(value).strip()
    if not text:
        raise ValueError("Empty timestamp")
    if re.fullmatch(r'\d+(\.\d+)?', text):
        return parse_timestamp(float(text))

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError, IndexError) as e:
            raise ValueError(f"Unrecognized timestamp: {text!r}") from e

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


class MessageParser:
    """Base class for export parsers"""

    format: MessageFormat = None
    platform: str = 'unknown'

    def __init__(self, logger=None):
        self.logger = logger or get_project_logger(self.__class__.__module__)

    def parse(self, data: bytes) -> ParseResult:
        """Parse raw bytes into records, renumbering sequence indexes after skips"""
        result = self._parse_text(decode_upload(data))
        for index, record in enumerate(result.records):
            record.sequence = index
        for warning in result.warnings:
            self.logger.warning(f"Skipped malformed {self.platform} record, {warning}")
        self.logger.info(
            f"Parsed {len(result.records)} {self.platform} records ({result.skipped} skipped)"
        )
        return result

    def _parse_text(self, text: str) -> ParseResult:
        raise NotImplementedError


class PlatformAChatParser(MessageParser):
    """JSON array of {timestamp, sender, content, platform} objects"""

    format = MessageFormat.PLATFORM_A_CHAT
    platform = 'platform_a'

    def _parse_text(self, text: str) -> ParseResult:
        items = _load_json(text)
        result = ParseResult()

        for index, item in enumerate(items):
            if not isinstance(item, dict):
                result.warnings.append(ParseWarning("record is not an object", index=index))
                continue
            sender = item.get('sender')
            content = item.get('content')
            if not isinstance(sender, str) or not sender.strip():
                result.warnings.append(ParseWarning("missing sender", index=index))
                continue
            if not isinstance(content, str) or not content.strip():
                result.warnings.append(ParseWarning("missing content", index=index))
                continue
            try:
                timestamp = parse_timestamp(item.get('timestamp'))
            except ValueError as e:
                result.warnings.append(ParseWarning(str(e), index=index))
                continue

            result.records.append(MessageRecord(
                timestamp=timestamp,
                sender=sender.strip(),
                body=content,
                platform=str(item.get('platform') or self.platform),
            ))

        return result


class PlatformBChatParser(MessageParser):
    """Text export with ``M/D/YY, H:MM AM - Sender: message`` lines"""

    format = MessageFormat.PLATFORM_B_CHAT
    platform = 'platform_b'

    def _parse_text(self, text: str) -> ParseResult:
        result = ParseResult()
        current = None

        for line_number, raw_line in enumerate(text.splitlines(), start=1):
            line = raw_line.rstrip('\r')
            if not line.strip():
                continue

            match = CHAT_LINE_RE.match(line)
            if match:
                date_part, time_part, sender, body = match.groups()
                try:
                    timestamp = self._parse_chat_time(date_part, time_part)
                except ValueError:
                    result.warnings.append(ParseWarning(f"invalid date '{date_part}, {time_part}'", line=line_number))
                    current = None
                    continue
                current = MessageRecord(
                    timestamp=timestamp,
                    sender=sender.strip(),
                    body=body,
                    platform=self.platform,
                )
                result.records.append(current)
            elif CHAT_PREFIX_RE.match(line):
                # System notices ("Messages are end-to-end encrypted") have no sender
                current = None
            elif current is not None:
                current.body = f"{current.body}\n{line}"
            else:
                result.warnings.append(ParseWarning("line is not part of any message", line=line_number))

        return result

    @staticmethod
    def _parse_chat_time(date_part: str, time_part: str) -> datetime:
        time_part = re.sub(r'[\s ]+', ' ', time_part.upper())
        if ' ' not in time_part:
            time_part = f"{time_part[:-2]} {time_part[-2:]}"
        year_format = '%Y' if len(date_part.rsplit('/', 1)[-1]) == 4 else '%y'
        parsed = datetime.strptime(f"{date_part} {time_part}", f"%m/%d/{year_format} %I:%M %p")
        return parsed.replace(tzinfo=UTC)


class EmailMailboxParser(MessageParser):
    """Concatenated RFC-822 messages separated by ``From `` lines"""

    format = MessageFormat.EMAIL_MAILBOX
    platform = 'email'

    def _parse_text(self, text: str) -> ParseResult:
        result = ParseResult()

        for start_line, chunk in self._split_messages(text):
            message = email.message_from_string(chunk, policy=email.policy.default)

            name, address = parseaddr(str(message.get('From', '')))
            sender = name or address
            if not sender:
                result.warnings.append(ParseWarning("missing From header", line=start_line))
                continue

            try:
                timestamp = parse_timestamp(str(message.get('Date', '')))
            except ValueError:
                result.warnings.append(ParseWarning("missing or invalid Date header", line=start_line))
                continue

            body = self._extract_body(message)
            if not body:
                result.warnings.append(ParseWarning("empty message body", line=start_line))
                continue

            subject = str(message.get('Subject', '') or '').strip()
            result.records.append(MessageRecord(
                timestamp=timestamp,
                sender=sender.strip(),
                body=f"{subject}\n\n{body}" if subject else body,
                platform=self.platform,
            ))

        return result

    @staticmethod
    def _split_messages(text: str) -> list[tuple[int, str]]:
        """Split a mailbox on its separator lines, remembering where each message starts"""
        separators = list(MBOX_SPLIT_RE.finditer(text))
        if not separators:
            return [(1, text)]

        chunks = []
        for i, separator in enumerate(separators):
            start = separator.end() + 1
            end = separators[i + 1].start() if i + 1 < len(separators) else len(text)
            line_number = text.count('\n', 0, separator.start()) + 1
            chunks.append((line_number, text[start:end]))
        return chunks

    @staticmethod
    def _extract_body(message) -> str:
        part = message.get_body(preferencelist=('plain', 'html'))
        if part is None:
            return ''
        try:
            content = part.get_content()
        except (LookupError, UnicodeError):
            payload = part.get_payload(decode=True) or b''
            content = payload.decode('utf-8', errors='replace')
        if not isinstance(content, str):
            return ''
        return content.strip()


class GenericStructuredParser(MessageParser):
    """JSON array or CSV with timestamp/sender/content columns (aliases allowed)"""

    format = MessageFormat.GENERIC_STRUCTURED
    platform = 'generic'

    def _parse_text(self, text: str) -> ParseResult:
        stripped = text.lstrip()
        if stripped.startswith(('[', '{')):
            return self._parse_json(text)
        return self._parse_csv(text)

    def _parse_json(self, text: str) -> ParseResult:
        result = ParseResult()
        for index, item in enumerate(_load_json(text)):
            if not isinstance(item, dict):
                result.warnings.append(ParseWarning("record is not an object", index=index))
                continue
            record = self._build_record(item, result, index=index)
            if record:
                result.records.append(record)
        return result

    def _parse_csv(self, text: str) -> ParseResult:
        result = ParseResult()
        reader = csv.DictReader(io.StringIO(text))
        if not reader.fieldnames:
            raise MalformedInput("CSV export has no header row", line=1)

        try:
            for index, row in enumerate(reader):
                record = self._build_record(row, result, line=reader.line_num, index=index)
                if record:
                    result.records.append(record)
        except csv.Error as e:
            raise MalformedInput(f"Unreadable CSV: {e}", line=reader.line_num) from e
        return result

    def _build_record(self, item: dict, result: ParseResult, line: int | None = None,
                      index: int | None = None) -> MessageRecord | None:
        location = {'line': line} if line is not None else {'index': index}

        sender = _pick(item, SENDER_KEYS)
        content = _pick(item, CONTENT_KEYS)
        if sender is None or not str(sender).strip():
            result.warnings.append(ParseWarning("missing sender", **location))
            return None
        if content is None or not str(content).strip():
            result.warnings.append(ParseWarning("missing content", **location))
            return None
        try:
            timestamp = parse_timestamp(_pick(item, TIMESTAMP_KEYS))
        except ValueError as e:
            result.warnings.append(ParseWarning(str(e), **location))
            return None

        return MessageRecord(
            timestamp=timestamp,
            sender=str(sender).strip(),
            body=str(content),
            platform=str(_pick(item, ('platform', 'source')) or self.platform),
        )


def _load_json(text: str) -> list:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedInput(f"Invalid JSON: {e.msg}", line=e.lineno, offset=e.pos) from e

    if isinstance(data, dict) and isinstance(data.get('messages'), list):
        data = data['messages']
    if not isinstance(data, list):
        raise MalformedInput("Expected a JSON array of messages", offset=0)
    return data


PARSERS = {
    MessageFormat.PLATFORM_A_CHAT: PlatformAChatParser,
    MessageFormat.PLATFORM_B_CHAT: PlatformBChatParser,
    MessageFormat.EMAIL_MAILBOX: EmailMailboxParser,
    MessageFormat.GENERIC_STRUCTURED: GenericStructuredParser,
}


def get_parser(message_format, logger=None) -> MessageParser:
    """Return the parser for a detected format"""
    return PARSERS[MessageFormat(message_format)](logger=logger)


def ensure_minimum(records: list[MessageRecord], minimum: int) -> list[MessageRecord]:
    """Fail the job rather than return a low-confidence result on sparse data"""
    if len(records) < minimum:
        raise InsufficientData(found=len(records), required=minimum)
    return records
