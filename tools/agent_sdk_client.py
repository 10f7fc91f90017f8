"""Claude Agent SDK adapter for claude-* model ids."""

import logging
import os

from claude_agent_sdk import (
    query,
    ClaudeAgentOptions,
    ResultMessage,
    AssistantMessage,
)

from config.exceptions import ProviderError

logger = logging.getLogger(__name__)

# The SDK refuses to start when launched inside a Claude Code session.
os.environ.pop("CLAUDECODE", None)


class ClaudeAgentGenerator:
    """Text generator backed by claude_agent_sdk.query().

    Authentication is handled by the Claude Code CLI, so no API key is
    read from settings.
    """

    def __init__(self, max_turns: int = 1):
        self.max_turns = max_turns
        self.total_calls = 0

    async def generate(self, prompt: str, model_id: str, system_prompt: str = "") -> str:
        """Send a single-turn request and return the text result.

        Raises:
            ProviderError: If the query fails.
        """
        self.total_calls += 1
        logger.debug("AgentSDK call: model=%s, max_turns=%d", model_id, self.max_turns)

        options_kwargs = {"model": model_id, "max_turns": self.max_turns}
        if system_prompt:
            options_kwargs["system_prompt"] = system_prompt

        result_text = ""
        try:
            # Exhaust the generator fully: leaving the loop early breaks the
            # SDK's anyio cancel scopes.
            async for message in query(prompt=prompt, options=ClaudeAgentOptions(**options_kwargs)):
                if isinstance(message, ResultMessage):
                    result_text = message.result or result_text
                    logger.debug(
                        "AgentSDK result: %d chars, cost=$%s",
                        len(result_text),
                        message.total_cost_usd,
                    )
                elif isinstance(message, AssistantMessage) and not result_text:
                    parts = [getattr(block, "text", "") for block in message.content]
                    result_text = "".join(p for p in parts if p)
        except Exception as e:
            raise ProviderError(f"Agent SDK query failed: {e}", {"model": model_id}) from e

        if not result_text:
            logger.warning("AgentSDK returned no content for model %s", model_id)
        return result_text
