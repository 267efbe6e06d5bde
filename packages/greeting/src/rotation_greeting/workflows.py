"""GreetSomeone workflow.

The registered name is pinned to "GreetSomeone" so starters written against
other SDKs can start it by name.
"""

from temporalio import workflow


def greeting_for(name: str) -> str:
    return f"Hello {name}!"


@workflow.defn(name="GreetSomeone")
class GreetSomeone:
    """Returns "Hello <name>!"."""

    @workflow.run
    async def run(self, name: str) -> str:
        workflow.logger.info(f"GreetSomeone workflow started. name={name}")
        return greeting_for(name)
