from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Type


class WorkflowType(str, Enum):
    """Workflow categories."""

    EXTRACTION = "extraction"


@dataclass
class WorkflowMetadata:
    """Metadata for workflow discovery."""

    workflow_class: Type
    name: str
    category: WorkflowType
    task_queue: Optional[str]  # None means the configured default queue


class WorkflowRegistry:
    """Central registry for all workflows."""

    _workflows: Dict[str, WorkflowMetadata] = {}

    @classmethod
    def register(cls, category: WorkflowType, task_queue: Optional[str] = None):
        """Decorator to register a workflow."""

        def decorator(workflow_class):
            cls._workflows[workflow_class.__name__] = WorkflowMetadata(
                workflow_class=workflow_class,
                name=workflow_class.__name__,
                category=category,
                task_queue=task_queue,
            )
            return workflow_class

        return decorator

    @classmethod
    def get_all_workflows(cls) -> Dict[str, WorkflowMetadata]:
        return cls._workflows

    @classmethod
    def get_by_category(cls, category: WorkflowType) -> List[WorkflowMetadata]:
        return [w for w in cls._workflows.values() if w.category == category]
