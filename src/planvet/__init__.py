"""planvet - validate implementation plans with the Codex CLI, falling back to
the OpenAI API when the CLI runs out of quota."""

__version__ = "0.1.0"
