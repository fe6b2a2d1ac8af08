"""
Base classes for Celery tasks providing common functionality
"""
from abc import ABC, abstractmethod
from typing import Any, Dict

from celery import current_task

from message_trust.shared.logging_config import get_project_logger


class TaskProgressRepository:
    """Repository for reporting task progress to the Celery result backend"""

    def __init__(self, task_id: str):
        self.task_id = task_id
        self.logger = get_project_logger(self.__class__.__name__)

    def update_progress(self, status: str, progress: int, **kwargs):
        """
        Update task progress with consistent formatting

        Args:
            status: Human-readable status message
            progress: Progress percentage (0-100)
            **kwargs: Additional metadata
        """
        meta = {'status': status, 'progress': progress}
        meta.update(kwargs)

        if current_task and current_task.request.id:
            current_task.update_state(
                state='RUNNING',
                meta=meta
            )

        self.logger.info(f"Task {self.task_id}: {status} ({progress}%)")


class BaseTaskManager(ABC):
    """
    Base class for task managers providing common workflow patterns
    """

    def __init__(self, task_id: str):
        """
        Initialize base task manager

        Args:
            task_id: Celery task ID for progress tracking
        """
        self.task_id = task_id
        self.logger = get_project_logger(self.__class__.__name__)
        self.progress = TaskProgressRepository(task_id)

    def update_progress(self, status: str, progress: int, **kwargs):
        """
        Update task progress with consistent formatting

        Args:
            status: Human-readable status message
            progress: Progress percentage (0-100)
            **kwargs: Additional metadata
        """
        self.progress.update_progress(status, progress, **kwargs)

    @abstractmethod
    def run(self) -> Dict[str, Any]:
        """
        Execute the main task workflow

        Returns:
            dict: Task results with success status and relevant data
        """
        pass


class BaseProcessingTask:
    """
    Runs a task manager so that one failing job never takes the worker down
    """

    def __init__(self):
        self.logger = get_project_logger(self.__class__.__name__)

    def execute_with_error_handling(self, task_func, *args, **kwargs) -> Dict[str, Any]:
        """
        Execute a task function, turning unexpected errors into a failure result

        Args:
            task_func: Function to execute
            *args: Arguments for task function
            **kwargs: Keyword arguments for task function

        Returns:
            dict: Task results
        """
        try:
            result = task_func(*args, **kwargs)
            self.logger.info(f"Task completed: success={result.get('success')}")
            return result
        except Exception as e:
            self.logger.error(f"Unexpected error: {e}", exc_info=True)
            return {'success': False, 'error': f'Unexpected error: {e}'}
