"""
Domain errors raised by services and mapped to HTTP status codes by routes.

Both subclass ValueError so callers that only know the service layer's
ValueError convention keep working.
"""


class IssueNotFoundError(ValueError):

    def __init__(self, issue_id: str):
        self.issue_id = issue_id
        super().__init__(f"Issue {issue_id} not found")


class InvalidTransitionError(ValueError):

    def __init__(self, from_status: str, to_status: str, allowed=None):
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = list(allowed or [])
        super().__init__(
            f"Invalid status transition: {from_status} → {to_status}. "
            f"Allowed transitions from {from_status}: {self.allowed}"
        )
