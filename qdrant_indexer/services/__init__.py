"""LLM chat sessions."""
