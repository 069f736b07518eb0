from daylight.core.config import settings
from daylight.temporal.core.activity_registry import ActivityRegistry
from daylight.temporal.core.discovery import discover_all
from daylight.temporal.core.workflow_registry import WorkflowRegistry, WorkflowType
from daylight.temporal.worker import group_workflows_by_queue
from daylight.temporal.workflows.journal_extraction import JournalExtractionWorkflow


def test_discovery_registers_extraction_components():
    discover_all()

    assert {
        "journal:claim_extraction_job",
        "journal:extract_journal_events",
        "journal:persist_extraction_result",
        "journal:mark_extraction_failed",
    } <= set(ActivityRegistry.get_all_activities())

    workflows = WorkflowRegistry.get_by_category(WorkflowType.EXTRACTION)
    assert [metadata.workflow_class for metadata in workflows] == [JournalExtractionWorkflow]


def test_workflows_default_to_configured_queue():
    discover_all()

    queues = group_workflows_by_queue()

    assert JournalExtractionWorkflow in queues[settings.temporal_task_queue]
