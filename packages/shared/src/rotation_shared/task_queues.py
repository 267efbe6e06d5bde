"""Task queue name constants.

The single source of truth for queue names. Both the worker runner (which
polls the queue) and any starter that dispatches workflows reference these.
"""

# The greeting worker polls this queue for GreetSomeone executions
GREETING_QUEUE = "greeting-tasks"
