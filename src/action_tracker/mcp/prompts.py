"""MCP prompt templates for common workflows."""

from action_tracker.mcp.server import mcp


@mcp.prompt()
def overdue_report() -> str:
    """Generate a prompt for a report on late and at-risk work."""
    return (
        "Please generate a report on late and at-risk work.\n\n"
        "Use get_status_summary for the overall picture, then list_entities with "
        "status='delayed' for both kinds (task and action_plan). Then provide:\n"
        "1. How many tasks and action plans are delayed, and how many are overdue "
        "but not yet marked\n"
        "2. For each delayed item, when it became delayed (use status_history) and "
        "whether the change was automatic\n"
        "3. Items that are blocked and the justification recorded for the block\n"
        "4. Suggested next steps for each delayed item"
    )


@mcp.prompt()
def status_change(entity_id: str, kind: str = "task") -> str:
    """Generate a prompt that walks through a justified status change."""
    return (
        f"I want to change the status of {kind} '{entity_id}'.\n\n"
        f"First call available_statuses to see the allowed next statuses and "
        f"get_entity to check its planned start and end dates. Ask me which status "
        f"to move to and why, then call change_status with my justification. "
        f"If the change is rejected, explain the reason returned."
    )
