"""
Default runner script.

Reads one JSON task from stdin and answers with one JSON document on
stdout. Started by the bridge as ``<python> runner.py``.
"""

import datetime
import json
import sys

ALLOWED_TASK_TYPES = {"ping", "echo"}


def main():
    raw = sys.stdin.read()
    try:
        task = json.loads(raw)
    except ValueError as e:
        print(f"runner: cannot parse input as JSON: {e}", file=sys.stderr)
        sys.exit(1)

    task_type = task.get("type") if isinstance(task, dict) else None

    if task_type == "echo":
        sys.stdout.write(raw)
        return

    if task_type not in ALLOWED_TASK_TYPES:
        error_response = {
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "error": "Task type not allowed",
            "allowed_types": sorted(ALLOWED_TASK_TYPES),
            "received_type": task_type,
        }
        print(json.dumps(error_response))
        sys.exit(1)

    print(json.dumps({
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "task": task,
        "status": "received",
    }))


if __name__ == "__main__":
    main()
