import json
import logging
import os
import tempfile
from datetime import datetime, timezone


logger = logging.getLogger(__name__)


def _now_iso():
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class AgentInbox:
    """
    Denormalized snapshot of the agent's open tasks, rewritten in full
    after every task mutation so the agent can poll a plain JSON file.
    """

    def __init__(self, path: str, agent: str):
        self.path = path
        self.agent = agent

    def render(self, tasks):
        return {
            "updatedAt": _now_iso(),
            "tasks": [
                {
                    "id": t["id"],
                    "title": t["title"],
                    "description": t["description"],
                    "assignedTo": self.agent,
                    "dueDate": t["due_date"],
                    "priority": t["priority"],
                    "status": t["status"],
                    "createdAt": t["created_at"],
                }
                for t in tasks
            ],
        }

    def sync(self, tasks):
        """Overwrite the snapshot with `tasks` (already filtered and sorted)."""
        payload = self.render(tasks)
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)

        fd, tmp = tempfile.mkstemp(prefix=".inbox-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        logger.debug("Wrote %d tasks to %s", len(payload["tasks"]), self.path)
        return payload
