"""
Test utilities and mock objects
"""
import json

from message_trust.shared.logging_config import get_project_logger


class MockTaskProgressRepository:
    """Mock repository for testing - doesn't call Celery APIs"""

    def __init__(self, task_id: str):
        self.task_id = task_id
        self.logger = get_project_logger(self.__class__.__name__)
        self.progress_updates = []  # Track updates for testing

    def update_progress(self, status: str, progress: int, **kwargs):
        """Mock progress update that just logs and tracks"""
        update = {'status': status, 'progress': progress, **kwargs}
        self.progress_updates.append(update)
        self.logger.info(f"Task {self.task_id}: {status} ({progress}%)")


CHAT_LINES = [
    "Morning! Did you get a chance to look at the budget?",
    "Yes, I finished it last night and sent it over",
    "Great, thanks for being on top of it",
    "No problem, let me know if anything needs changing",
]


def build_chat_messages(count: int, senders=('Alice Johnson', 'Bob Smith')) -> list[dict]:
    """Platform A message objects alternating between senders"""
    return [
        {
            'timestamp': f"2024-03-01T{10 + i // 60:02d}:{i % 60:02d}:00Z",
            'sender': senders[i % len(senders)],
            'content': CHAT_LINES[i % len(CHAT_LINES)],
            'platform': 'platform_a',
        }
        for i in range(count)
    ]


def build_chat_export(count: int, **kwargs) -> bytes:
    return json.dumps(build_chat_messages(count, **kwargs)).encode('utf-8')


def build_platform_b_export(count: int) -> bytes:
    lines = ["3/1/24, 9:59 AM - Messages and calls are end-to-end encrypted."]
    for i in range(count):
        sender = 'Alice Johnson' if i % 2 == 0 else 'Bob Smith'
        lines.append(f"3/1/24, 10:{i % 60:02d} AM - {sender}: {CHAT_LINES[i % len(CHAT_LINES)]}")
    return '\n'.join(lines).encode('utf-8')
