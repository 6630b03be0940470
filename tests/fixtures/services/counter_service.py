"""Counter service — per-session state through current_session_data()."""

from toolhost.core.decorators import service, tool
from toolhost.core.field_constraints import constraint
from toolhost.core.request_context import current_session_data


class IncrementInput:
    by: int = constraint(description="Amount to add", minimum=1, maximum=100, default=1)


@service
class CounterService:
    @tool(description="Add to this session's counter", input_class=IncrementInput)
    def increment(self, args: IncrementInput) -> dict:
        data = current_session_data()
        data["count"] = data.get("count", 0) + args.by
        return {"count": data["count"]}

    @tool
    def current(self) -> dict:
        """Read this session's counter.

        Returns zero for a fresh session.
        """
        return {"count": current_session_data().get("count", 0)}
