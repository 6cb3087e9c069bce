"""doc canvas - node-based document canvas with llm generation."""

__version__ = "0.1.0"
