class PandoraError(Exception):
    """Base exception for Pandora errors"""
    def __init__(self, msg: str):
        self.msg = msg
        super().__init__(msg)

    def __str__(self):
        return self.msg


class LLMError(PandoraError):
    pass


class NoChatLLMConfigError(LLMError):
    def __init__(self, msg: str | None = None):
        super().__init__(msg or "Can not find available Chat LLM Config")


class NoRouteConfiguredError(LLMError):
    """Raised when no chat LLM is routed for a capability or provider"""
    def __init__(self, target: str):
        self.target = target
        super().__init__(f"No routing configured for '{target}'")


class ToolError(PandoraError):
    pass


class ToolNotFoundError(ToolError):
    def __init__(self, tool_name: str, available_tools: list[str]):
        self.tool_name = tool_name
        self.available_tools = available_tools
        super().__init__(
            f"Tool '{tool_name}' not found.\n"
            f"Available tools: {', '.join(available_tools) or 'none'}"
        )


class ToolParameterError(ToolError):
    """Raised when a tool call is missing required parameters"""
    def __init__(self, tool_name: str, missing: list[str]):
        self.tool_name = tool_name
        self.missing = missing
        super().__init__(f"Tool '{tool_name}' missing required parameters: {', '.join(missing)}")


class SkillError(PandoraError):
    pass


class SkillNotFoundError(SkillError):
    def __init__(self, skill_id: str):
        self.skill_id = skill_id
        super().__init__(f"Skill '{skill_id}' not found in registry")


class SkillExecutionError(SkillError):
    """Raised when a skill fails. Timeouts are reported through the same type."""
    def __init__(self, skill_id: str, msg: str):
        self.skill_id = skill_id
        super().__init__(msg)


class SkillTimeoutError(SkillExecutionError):
    def __init__(self, skill_id: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(skill_id, f"Skill '{skill_id}' timed out after {timeout_seconds:g}s")


class SkillCancelledError(SkillError):
    """Raised inside a skill when its cancellation token has fired"""
    def __init__(self, reason: str | None = None):
        self.reason = reason
        super().__init__(f"Execution cancelled: {reason}" if reason else "Execution cancelled")


class AgentError(PandoraError):
    pass


class AgentNotFoundError(AgentError):
    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent '{agent_id}' not found")


class AgentDisabledError(AgentError):
    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent '{agent_id}' is disabled")


class AgentExecutionError(AgentError):
    """Raised when an agent run fails. The underlying error is chained as ``__cause__``."""
    def __init__(self, msg: str, run_id: str | None = None):
        self.run_id = run_id
        super().__init__(msg)


class RequiredStepFailedError(AgentExecutionError):
    def __init__(self, skill_id: str, run_id: str | None = None, reason: str | None = None):
        self.skill_id = skill_id
        self.reason = reason
        msg = f"Required skill {skill_id} failed"
        super().__init__(f"{msg}: {reason}" if reason else msg, run_id=run_id)
