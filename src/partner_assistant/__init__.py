"""One-shot calls to the Claude CLI; no session object, only an opaque continuation token."""

from .claude import AssistantReply, SuggestedAction, Usage, ask

__all__ = ["AssistantReply", "SuggestedAction", "Usage", "ask"]
