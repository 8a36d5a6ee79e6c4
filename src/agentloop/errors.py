"""Exception hierarchy for the agent runtime core.

Services raise these; the tool dispatcher and the ReAct loop convert them
into descriptive text so the model (and the caller) never sees a raw
exception. The HTTP layer maps the approval errors to 404/409.
"""

from __future__ import annotations


class AgentLoopError(Exception):
    """Base class for all agentloop errors."""


class ModelRoutingError(AgentLoopError):
    """A logical model could not be mapped to a backend."""


class NoProviderAvailable(ModelRoutingError):
    """No backend route for a logical model passed its availability check."""

    def __init__(self, model_name: str, message: str | None = None) -> None:
        self.model_name = model_name
        super().__init__(
            message
            or (
                f'No provider available for model "{model_name}". '
                "Configure an API key for one of its providers in Settings -> Model Providers."
            )
        )


class UnknownModelError(NoProviderAvailable):
    """The logical model id is not in the catalog."""

    def __init__(self, model_name: str) -> None:
        super().__init__(model_name, f'Unknown model: "{model_name}"')


class ModelAPIError(AgentLoopError):
    """A chat-completion request failed at the transport or HTTP level."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)

    @property
    def rejects_tools(self) -> bool:
        """True when the backend refused the request because of tool calling."""
        if self.status_code not in (400, 404, 422):
            return False
        lowered = self.body.lower()
        return "tool" in lowered or "function call" in lowered or "function_call" in lowered


class FallbackExhaustedError(ModelAPIError):
    """Both the primary backend and the configured fallback failed."""

    def __init__(self, primary: Exception, fallback: Exception) -> None:
        self.primary = primary
        self.fallback = fallback
        super().__init__(f"Primary: {primary}; Fallback: {fallback}")


class ToolRegistrationError(AgentLoopError):
    """A tool definition or handler was rejected at registration time."""


class ApprovalNotFoundError(AgentLoopError):
    """No approval exists with the given id."""


class ApprovalAlreadyResolvedError(AgentLoopError):
    """The approval has already transitioned out of pending."""


class WorkspaceAccessError(AgentLoopError):
    """A workspace path escaped the team's workspace root."""


class ToolArgumentError(AgentLoopError):
    """A tool call is missing a required argument or carries an invalid one."""


class HeartbeatError(AgentLoopError):
    """A heartbeat tick failed and counts toward escalation."""
