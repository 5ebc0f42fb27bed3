"""Conflict analyzer backed by a pydantic-ai agent."""

from contextlib import contextmanager
from pathlib import Path

from pydantic_ai import Agent, providers

from braid.core.config import LLMConfig
from braid.core.log import logger
from braid.git.contract import GitOps
from braid.model.analysis import AnalysisRequest, ConflictResolution
from braid.model.tools import AnalysisContext, analysis_tools

DEFAULT_SYSTEM_PROMPT = (
    "You are a Git expert who helps developers resolve merge and "
    "rebase conflicts."
)

DEFAULT_PROMPTS = {
    "merge": (
        "Analyze these merge conflicts and provide resolution "
        "suggestions.\n\nBranch being merged: {source}\n"
        "Target branch: {target}\nConflicting files: {files}"
    ),
    "sync": (
        "Analyze these {strategy} conflicts and provide resolution "
        "suggestions.\n\nSource branch: {source}\n"
        "Target branch: {target}\nConflicting files: {files}"
    ),
    "rebase_commit": (
        "Analyze this rebase conflict (commit {commit_number}).\n\n"
        "Source branch: {source}\nConflicting files: {files}\n"
        "Current commit: {commit_message}"
    ),
}


@contextmanager
def inject_provider_params(llm_config: LLMConfig):
    """Pass api_key and base_url to the provider pydantic-ai infers.

    Temporarily patches providers.infer_provider and restores it on
    exit. Without either setting nothing is patched and the provider
    reads its own environment variables.
    """
    kwargs = {}
    if llm_config.api_key:
        kwargs['api_key'] = llm_config.api_key
    if llm_config.base_url:
        kwargs['base_url'] = llm_config.base_url

    if not kwargs:
        yield
        return

    original_infer_provider = providers.infer_provider

    def patched_infer_provider(provider_name: str):
        provider_class = providers.infer_provider_class(provider_name)
        return provider_class(**kwargs)

    try:
        providers.infer_provider = patched_infer_provider
        yield
    finally:
        providers.infer_provider = original_infer_provider


class AgentConflictAnalyzer:
    """Asks an LLM agent to explain conflicts and suggest resolutions.

    The agent may inspect the repository through read-only tools and
    must answer with a ConflictResolution.
    """

    def __init__(
        self,
        llm_config: LLMConfig,
        git: GitOps,
        workdir: Path,
        prompts: dict[str, str] | None = None,
        agent_settings: dict | None = None,
    ):
        """Initialize the analyzer.

        Args:
            llm_config: Model, api_key and base_url
            git: Git collaborator for the repository under analysis
            workdir: Repository working directory
            prompts: ``prompts.analyzer`` templates from config
            agent_settings: ``agents.analyzer`` settings from config
        """
        self.llm_config = llm_config
        self.git = git
        self.workdir = Path(workdir)
        self.prompts = prompts or {}
        self.retries = (agent_settings or {}).get("retries", 3)

    def _create_agent(self) -> Agent:
        system_prompt = self.prompts.get("system") or DEFAULT_SYSTEM_PROMPT

        with inject_provider_params(self.llm_config):
            return Agent(
                self.llm_config.model,
                deps_type=AnalysisContext,
                output_type=ConflictResolution,
                tools=analysis_tools,
                system_prompt=system_prompt,
                retries=self.retries,
            )

    def build_prompt(self, request: AnalysisRequest) -> str:
        """Render the prompt template for ``request.strategy``."""
        template = (
            self.prompts.get(request.strategy)
            or DEFAULT_PROMPTS[request.strategy]
        )
        return template.format(
            strategy=request.sync_strategy or request.strategy,
            source=request.source,
            target=request.target or "current branch",
            files=", ".join(request.files) or "(unknown)",
            path=request.path or "current directory",
            commit_number=request.commit_number,
            iteration=request.iteration,
            max_iterations=request.max_iterations,
            commit_message=request.commit_message or "(unknown)",
        )

    def _log_message_history(self, messages: list):
        """Log the conversation, one entry per message part."""
        logger.debug(
            f"LLM conversation: {len(messages)} messages",
            message_count=len(messages),
        )

        for i, msg in enumerate(messages, 1):
            for part in getattr(msg, 'parts', []):
                part_type = type(part).__name__

                if 'ToolCall' in part_type:
                    logger.debug(
                        f"  [{i}] ToolCall: {part.tool_name}",
                        tool_name=part.tool_name,
                        tool_call_id=part.tool_call_id,
                        args=part.args,
                    )
                elif 'ToolReturn' in part_type:
                    content = str(part.content)
                    logger.debug(
                        f"  [{i}] ToolReturn [{part.tool_name}]: "
                        f"{content[:200]}",
                        tool_name=part.tool_name,
                        tool_call_id=part.tool_call_id,
                        content_size=len(content),
                    )
                elif 'RetryPrompt' in part_type:
                    logger.warning(
                        f"  [{i}] RetryPrompt "
                        f"[{part.tool_name or 'general'}]: {part.content}",
                        tool_name=part.tool_name,
                    )
                else:
                    logger.trace(
                        f"  [{i}] {part_type}: "
                        f"{getattr(part, 'content', part)}",
                        part_type=part_type,
                    )

    async def analyze(self, request: AnalysisRequest) -> ConflictResolution:
        """Run the agent over ``request``.

        Raises:
            Whatever the agent or provider raises; callers go through
            request_analysis(), which tolerates failure.
        """
        prompt = self.build_prompt(request)
        logger.debug(
            "Sending conflict analysis prompt",
            model=self.llm_config.model,
            prompt=prompt,
        )

        agent = self._create_agent()
        context = AnalysisContext(
            workdir=self.workdir,
            git=self.git,
            files=request.files,
        )

        result = await agent.run(prompt, deps=context)
        self._log_message_history(result.all_messages())

        logger.info(
            "Conflict analysis complete",
            suggestions=len(result.output.suggestions),
        )
        return result.output


def create_analyzer(config, git: GitOps) -> AgentConflictAnalyzer | None:
    """Build the analyzer described by ``config``.

    Returns:
        None when no model is configured; workflows then run without
        analysis
    """
    if not config.llm.model:
        return None
    return AgentConflictAnalyzer(
        llm_config=config.llm,
        git=git,
        workdir=config.git.workdir,
        prompts=config.prompts.get("analyzer"),
        agent_settings=config.agents.get("analyzer"),
    )


__all__ = [
    "AgentConflictAnalyzer",
    "create_analyzer",
    "inject_provider_params",
]
