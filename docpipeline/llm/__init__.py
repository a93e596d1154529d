"""
LLM Package

Language-model completion client used by the extraction agent::

    from docpipeline.llm import ChatOpenAIClient

    client     = ChatOpenAIClient()
    completion = await client.complete(system_prompt, user_prompt, max_tokens=3000)
"""

from docpipeline.llm.client import ChatOpenAIClient

__all__ = ["ChatOpenAIClient"]
