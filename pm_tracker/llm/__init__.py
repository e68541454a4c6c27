"""
LLM client and the collaborators built on it.
"""
